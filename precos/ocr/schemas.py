from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class ProcessOcrResponse(BaseModel):
    success: bool = True
    processedCount: int
    totalCount: int
    errors: Optional[List[Dict[str, str]]] = None


class ErrorResponse(BaseModel):
    error: str


class BatchOut(BaseModel):
    id: str
    status: str
    uploaded_by: Optional[str] = None
    created_at: str
    meta: Optional[Dict[str, Any]] = None


class OcrItemOut(BaseModel):
    id: str
    batch_id: str
    raw_text: Optional[str] = None
    confidence: Optional[float] = None
    matched_product_id: Optional[str] = None
    product_name: Optional[str] = None
    product_brand: Optional[str] = None
    batch_status: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None

"""
Precos OCR API - FastAPI entry point

LOCAL:
    precos serve --config precos.toml
    curl -i http://127.0.0.1:8000/health

PROCESS A BATCH:
    curl -X POST http://127.0.0.1:8000/process-ocr \\
         -H 'Content-Type: application/json' \\
         -d '{"batchId": "...", "imageFiles": [{"path": "<batch>/folheto.jpg"}], "supermarketId": "..."}'
"""

from __future__ import annotations

from typing import Any, List, Optional

from fastapi import Body, FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import PrecosConfig
from .pipeline import BatchOrchestrator
from .schemas import BatchOut, ErrorResponse, OcrItemOut, ProcessOcrResponse

MAX_LIMIT = 500


def create_app(
    config: PrecosConfig | None = None,
    orchestrator: BatchOrchestrator | None = None,
) -> FastAPI:
    orchestrator = orchestrator or BatchOrchestrator(config or PrecosConfig())

    app = FastAPI(
        title="Precos OCR API",
        version="0.1.0",
        description="Ingestão de fotos de prateleira/panfleto para o catálogo de preços",
    )

    # The admin panel calls this from the browser.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    )

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.post(
        "/process-ocr",
        response_model=ProcessOcrResponse,
        response_model_exclude_none=True,
        responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    )
    async def process_ocr(body: Any = Body(...)):
        status_code, payload = await orchestrator.handle(body)
        return JSONResponse(status_code=status_code, content=payload)

    @app.get("/batches", response_model=List[BatchOut])
    def list_batches(limit: int = Query(20, ge=1, le=MAX_LIMIT)):
        return orchestrator.batches.list_batches(limit=limit)

    @app.get("/ocr-items", response_model=List[OcrItemOut])
    def list_items(
        batch_id: Optional[str] = None,
        pending: bool = False,
        limit: int = Query(50, ge=1, le=MAX_LIMIT),
    ):
        return orchestrator.batches.list_items(
            batch_id=batch_id, pending_only=pending, limit=limit
        )

    return app

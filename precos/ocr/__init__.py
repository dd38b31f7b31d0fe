"""OCR ingestion pipeline: shelf/flyer photos to catalog products and prices."""

from .config import PrecosConfig, load_config
from .models import BatchResult, CandidateItem, ImageError, Resolution
from .parser import parse_response
from .pipeline import BatchOrchestrator, BatchRequest, BatchRequestError
from .pricing import PriceRecorder
from .reconcile import ProductReconciler
from .storage import ImageStorage, StorageError
from .vision import ExtractionFailure, VisionBackend, create_backend

__all__ = [
    "PrecosConfig",
    "load_config",
    "CandidateItem",
    "Resolution",
    "ImageError",
    "BatchResult",
    "parse_response",
    "ProductReconciler",
    "PriceRecorder",
    "BatchOrchestrator",
    "BatchRequest",
    "BatchRequestError",
    "ImageStorage",
    "StorageError",
    "VisionBackend",
    "ExtractionFailure",
    "create_backend",
]

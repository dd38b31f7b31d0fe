"""Batch orchestration: download, extract, parse, reconcile, record."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import asdict, dataclass
from typing import Any

from .config import PrecosConfig
from .db import BatchDB, CatalogDB, PriceDB
from .models import (
    BATCH_DONE,
    BATCH_ERROR,
    BATCH_PROCESSING,
    BatchResult,
    CandidateItem,
    ImageError,
    Resolution,
)
from .parser import parse_response
from .pricing import PriceRecorder
from .reconcile import ProductReconciler
from .storage import ImageStorage
from .vision import VisionBackend, create_backend

logger = logging.getLogger(__name__)


class BatchRequestError(Exception):
    """The request cannot be processed at all; nothing was attempted."""


@dataclass
class BatchRequest:
    batch_id: str
    image_paths: list[str]
    supermarket_id: str

    @classmethod
    def from_dict(cls, body: Any) -> BatchRequest:
        """Validate a ``{batchId, imageFiles: [{path}], supermarketId}`` body.

        snake_case keys are accepted as well.

        Raises:
            BatchRequestError: If any of the three fields is missing or empty.
        """
        if not isinstance(body, dict):
            raise BatchRequestError("Corpo da requisição deve ser um objeto JSON")

        batch_id = body.get("batchId") or body.get("batch_id")
        image_files = body.get("imageFiles") or body.get("image_files") or []
        supermarket_id = body.get("supermarketId") or body.get("supermarket_id")

        paths: list[str] = []
        if isinstance(image_files, list):
            for entry in image_files:
                path = entry.get("path") if isinstance(entry, dict) else entry
                if isinstance(path, str) and path:
                    paths.append(path)

        if not batch_id or not paths or not supermarket_id:
            raise BatchRequestError(
                "Batch ID, imagens e supermercado são obrigatórios"
            )
        return cls(batch_id=str(batch_id), image_paths=paths, supermarket_id=str(supermarket_id))


class BatchOrchestrator:
    """Runs one OCR batch end to end.

    Images are processed strictly one after another. Failures are contained
    at the smallest scope: a bad item doesn't stop its image, a bad image
    doesn't stop the batch. Only request-level problems raise
    :class:`BatchRequestError`.
    """

    def __init__(
        self,
        config: PrecosConfig | None = None,
        *,
        backend: VisionBackend | None = None,
        storage: ImageStorage | None = None,
        catalog: CatalogDB | None = None,
        prices: PriceDB | None = None,
        batches: BatchDB | None = None,
    ) -> None:
        config = config or PrecosConfig()
        self._backend = backend or create_backend(config)
        self._storage = storage or ImageStorage(config.storage.root)
        self._catalog = catalog or CatalogDB(config.database.path)
        self._prices = prices or PriceDB(config.database.path)
        self._batches = batches or BatchDB(config.database.path)
        self._reconciler = ProductReconciler(
            self._catalog, config.reconcile.create_min_confidence
        )
        self._recorder = PriceRecorder(self._prices)

    @property
    def batches(self) -> BatchDB:
        return self._batches

    @property
    def catalog(self) -> CatalogDB:
        return self._catalog

    @property
    def prices(self) -> PriceDB:
        return self._prices

    def close(self) -> None:
        self._catalog.close()
        self._prices.close()
        self._batches.close()

    def upload_batch(
        self,
        files: Iterable[tuple[str, bytes]],
        supermarket_id: str,
        *,
        uploaded_by: str | None = None,
    ) -> BatchRequest:
        """Create a batch in ``uploaded`` state and store its images.

        Args:
            files: ``(filename, data)`` pairs.

        Returns:
            The request that processes the new batch.
        """
        files = list(files)
        if not files:
            raise BatchRequestError("Nenhuma imagem enviada")

        batch_id = self._batches.create_batch(uploaded_by)
        paths = [self._storage.upload(batch_id, name, data) for name, data in files]
        logger.info("Lote %s criado com %d imagem(ns)", batch_id, len(paths))
        return BatchRequest(batch_id=batch_id, image_paths=paths, supermarket_id=supermarket_id)

    async def process(self, request: BatchRequest) -> BatchResult:
        """Process every image of the batch and finalize its status.

        The batch ends ``done`` if at least one image was processed, ``error``
        otherwise. Per-image failures are listed in the batch metadata either
        way.

        Raises:
            BatchRequestError: If the model credential is missing, or the
                batch or the supermarket doesn't exist. The batch is left
                untouched.
        """
        if not self._backend.configured:
            raise BatchRequestError("Credencial do modelo de visão não configurada")
        if self._batches.get_batch(request.batch_id) is None:
            raise BatchRequestError(f"Lote não encontrado: {request.batch_id}")
        if self._catalog.get_supermarket(request.supermarket_id) is None:
            raise BatchRequestError(
                f"Supermercado não encontrado: {request.supermarket_id}"
            )

        logger.info(
            "Processando %d imagens para o lote %s",
            len(request.image_paths),
            request.batch_id,
        )
        self._batches.set_status(request.batch_id, BATCH_PROCESSING)

        processed_count = 0
        errors: list[ImageError] = []

        for path in request.image_paths:
            try:
                item_count = await self._process_image(request, path)
            except Exception as e:
                logger.exception("Erro ao processar imagem %s", path)
                errors.append(ImageError(path=path, error=str(e) or type(e).__name__))
                continue
            processed_count += 1
            logger.info(
                "Imagem processada com sucesso: %s (%d itens extraídos)",
                path,
                item_count,
            )

        final_status = BATCH_DONE if processed_count > 0 else BATCH_ERROR
        meta = {"errors": [asdict(e) for e in errors]} if errors else None
        self._batches.set_status(request.batch_id, final_status, meta=meta)
        logger.info(
            "Lote %s finalizado: %s (%d/%d imagens)",
            request.batch_id,
            final_status,
            processed_count,
            len(request.image_paths),
        )

        return BatchResult(
            processed_count=processed_count,
            total_count=len(request.image_paths),
            errors=errors,
        )

    async def handle(self, body: Any) -> tuple[int, dict]:
        """Process a raw request body and return ``(status_code, payload)``."""
        batch_id = None
        if isinstance(body, dict):
            batch_id = body.get("batchId") or body.get("batch_id")

        try:
            request = BatchRequest.from_dict(body)
            result = await self.process(request)
        except BatchRequestError as e:
            logger.error("Requisição OCR rejeitada: %s", e)
            self._mark_failed(batch_id, str(e))
            return 400, {"error": str(e)}
        except Exception as e:
            logger.exception("Erro no processamento OCR")
            self._mark_failed(batch_id, str(e) or type(e).__name__)
            return 500, {"error": str(e) or type(e).__name__}

        return 200, result.to_dict()

    async def _process_image(self, request: BatchRequest, path: str) -> int:
        logger.info("Processando imagem: %s", path)
        data = self._storage.download(path)
        text = await self._backend.extract(data, self._storage.mime_type(path))
        logger.debug("Resposta do modelo para %s: %s", path, text)

        items = parse_response(text)
        for item in items:
            self._process_item(request, path, item)
        return len(items)

    def _process_item(self, request: BatchRequest, path: str, item: CandidateItem) -> None:
        resolution = Resolution()
        try:
            resolution = self._reconciler.resolve(item)
            if resolution.resolved:
                self._recorder.record(
                    resolution.product_id,
                    request.supermarket_id,
                    request.batch_id,
                    item,
                )
        except Exception:
            logger.exception("Erro ao reconciliar item %r da imagem %s", item.name, path)

        try:
            self._batches.add_item(
                request.batch_id,
                raw_text=item.raw_text,
                confidence=item.confidence,
                matched_product_id=resolution.product_id,
                meta={
                    "image_path": path,
                    "supermarket_id": request.supermarket_id,
                    "extracted_name": item.name,
                    "extracted_brand": item.brand,
                    "extracted_ean": item.ean,
                    "extracted_unit": item.unit,
                    "retail_price": item.retail_price,
                    "wholesale_price": item.wholesale_price,
                    "min_wholesale_qty": item.min_wholesale_qty,
                    "matched_by": resolution.matched_by,
                },
            )
        except Exception:
            logger.exception("Erro ao gravar item de revisão da imagem %s", path)

    def _mark_failed(self, batch_id: str | None, reason: str) -> None:
        """Record a request-level failure on the batch, if it exists.

        A batch that already finished as ``done`` keeps its status and
        per-image errors. Otherwise the batch becomes ``error`` and the reason
        is added to its existing metadata.
        """
        if not batch_id:
            return
        try:
            batch = self._batches.get_batch(str(batch_id))
            if batch is None:
                return
            if batch["status"] == BATCH_DONE:
                logger.warning(
                    "Lote %s já finalizado; requisição rejeitada não altera o status",
                    batch_id,
                )
                return
            meta = {**(batch.get("meta") or {}), "request_error": reason}
            self._batches.set_status(str(batch_id), BATCH_ERROR, meta=meta)
        except Exception:
            logger.exception("Não foi possível marcar o lote %s como erro", batch_id)

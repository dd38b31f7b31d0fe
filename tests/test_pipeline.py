"""Tests for BatchOrchestrator with a fake vision backend."""

import json
import sqlite3

import pytest

from precos.ocr.config import PrecosConfig
from precos.ocr.pipeline import BatchOrchestrator, BatchRequest, BatchRequestError
from precos.ocr.vision import ExtractionFailure, VisionBackend

_ARROZ = json.dumps({
    "items": [{
        "name": "Arroz Tio João",
        "brand": "Tio João",
        "ean": "7896006711234",
        "retail_price": 24.9,
        "confidence": 0.95,
    }]
})


class FakeBackend(VisionBackend):
    """Returns canned responses in call order; exceptions are raised."""

    def __init__(self, responses, configured=True, on_call=None):
        self.responses = list(responses)
        self.calls = []
        self._configured = configured
        self._on_call = on_call

    @property
    def configured(self) -> bool:
        return self._configured

    async def extract(self, image, mime_type="image/jpeg"):
        self.calls.append((image, mime_type))
        if self._on_call is not None:
            self._on_call()
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def config(tmp_path):
    cfg = PrecosConfig()
    cfg.database.path = str(tmp_path / "precos.db")
    cfg.storage.root = str(tmp_path / "images")
    return cfg


def _make(config, responses, **kwargs):
    backend = FakeBackend(responses, **kwargs)
    orchestrator = BatchOrchestrator(config, backend=backend)
    supermarket_id = orchestrator.catalog.add_supermarket("Atacadão")
    return orchestrator, backend, supermarket_id


def _body(request: BatchRequest) -> dict:
    return {
        "batchId": request.batch_id,
        "imageFiles": [{"path": p} for p in request.image_paths],
        "supermarketId": request.supermarket_id,
    }


class TestBatchRequest:
    def test_from_camel_case_body(self):
        request = BatchRequest.from_dict(
            {"batchId": "b1", "imageFiles": [{"path": "b1/a.jpg"}], "supermarketId": "s1"}
        )
        assert request == BatchRequest("b1", ["b1/a.jpg"], "s1")

    def test_from_snake_case_body(self):
        request = BatchRequest.from_dict(
            {"batch_id": "b1", "image_files": ["b1/a.jpg"], "supermarket_id": "s1"}
        )
        assert request.image_paths == ["b1/a.jpg"]

    @pytest.mark.parametrize(
        "body",
        [
            {"imageFiles": [{"path": "a.jpg"}], "supermarketId": "s1"},
            {"batchId": "b1", "imageFiles": [], "supermarketId": "s1"},
            {"batchId": "b1", "supermarketId": "s1"},
            {"batchId": "b1", "imageFiles": [{"path": "a.jpg"}]},
            "not an object",
        ],
    )
    def test_missing_fields(self, body):
        with pytest.raises(BatchRequestError):
            BatchRequest.from_dict(body)


class TestScenarios:
    @pytest.mark.asyncio
    async def test_new_product_with_retail_price(self, config):
        orchestrator, _, sm = _make(config, [_ARROZ])
        request = orchestrator.upload_batch([("prateleira.jpg", b"img")], sm)

        result = await orchestrator.process(request)

        assert result.processed_count == 1
        assert result.total_count == 1
        assert result.errors == []

        product = orchestrator.catalog.find_by_ean("7896006711234")
        assert product["name"] == "Arroz Tio João"

        prices = orchestrator.prices.list_prices(product_id=product["id"])
        assert len(prices) == 1
        assert prices[0]["price"] == 24.90
        assert prices[0]["price_type"] == "retail"
        assert prices[0]["min_quantity"] == 1
        assert prices[0]["source"] == "ocr"
        assert prices[0]["supermarket_id"] == sm
        assert prices[0]["batch_id"] == request.batch_id

        [item] = orchestrator.batches.list_items(batch_id=request.batch_id)
        assert item["matched_product_id"] == product["id"]
        assert item["raw_text"] == "Arroz Tio João Tio João"
        assert item["confidence"] == 0.95
        assert item["meta"]["image_path"] == request.image_paths[0]
        assert item["meta"]["supermarket_id"] == sm
        assert item["meta"]["extracted_ean"] == "7896006711234"
        assert item["meta"]["retail_price"] == 24.9
        assert item["meta"]["matched_by"] == "created"

        assert orchestrator.batches.get_batch(request.batch_id)["status"] == "done"
        orchestrator.close()

    @pytest.mark.asyncio
    async def test_unparseable_output_creates_pending_item(self, config):
        orchestrator, _, sm = _make(config, ["could not analyze"])
        request = orchestrator.upload_batch([("a.jpg", b"img")], sm)

        result = await orchestrator.process(request)

        assert result.processed_count == 1
        [item] = orchestrator.batches.list_items(batch_id=request.batch_id)
        assert item["raw_text"] == "could not analyze"
        assert item["confidence"] == 0.5
        assert item["matched_product_id"] is None
        assert orchestrator.batches.list_items(pending_only=True)[0]["id"] == item["id"]
        assert orchestrator.catalog.search_by_name("could not analyze") == []
        orchestrator.close()

    @pytest.mark.asyncio
    async def test_second_download_fails(self, config):
        orchestrator, backend, sm = _make(config, [_ARROZ])
        request = orchestrator.upload_batch([("a.jpg", b"img")], sm)
        missing = f"{request.batch_id}/b.jpg"
        request.image_paths.append(missing)

        status, payload = await orchestrator.handle(_body(request))

        assert status == 200
        assert payload["success"] is True
        assert payload["processedCount"] == 1
        assert payload["totalCount"] == 2
        assert len(payload["errors"]) == 1
        assert payload["errors"][0]["path"] == missing
        assert len(backend.calls) == 1

        batch = orchestrator.batches.get_batch(request.batch_id)
        assert batch["status"] == "done"
        assert batch["meta"]["errors"][0]["path"] == missing
        orchestrator.close()


class TestStatusAndErrors:
    @pytest.mark.asyncio
    async def test_all_images_fail_is_error(self, config):
        orchestrator, _, sm = _make(
            config, [ExtractionFailure("OpenAI API error: 500"), ExtractionFailure("timeout")]
        )
        request = orchestrator.upload_batch([("a.jpg", b"1"), ("b.jpg", b"2")], sm)

        result = await orchestrator.process(request)

        assert result.processed_count == 0
        assert [e.error for e in result.errors] == ["OpenAI API error: 500", "timeout"]
        batch = orchestrator.batches.get_batch(request.batch_id)
        assert batch["status"] == "error"
        assert len(batch["meta"]["errors"]) == 2
        orchestrator.close()

    @pytest.mark.asyncio
    async def test_extraction_failure_does_not_stop_batch(self, config):
        orchestrator, backend, sm = _make(config, [ExtractionFailure("boom"), _ARROZ])
        request = orchestrator.upload_batch([("a.jpg", b"1"), ("b.jpg", b"2")], sm)

        result = await orchestrator.process(request)

        assert result.processed_count == 1
        assert result.errors[0].path == request.image_paths[0]
        assert len(backend.calls) == 2
        assert orchestrator.batches.get_batch(request.batch_id)["status"] == "done"
        orchestrator.close()

    @pytest.mark.asyncio
    async def test_no_errors_clears_meta(self, config):
        orchestrator, _, sm = _make(config, [_ARROZ])
        request = orchestrator.upload_batch([("a.jpg", b"1")], sm)

        status, payload = await orchestrator.handle(_body(request))

        assert status == 200
        assert "errors" not in payload
        assert orchestrator.batches.get_batch(request.batch_id)["meta"] is None
        orchestrator.close()

    @pytest.mark.asyncio
    async def test_status_is_processing_while_running(self, config):
        seen = []
        orchestrator, _, sm = _make(config, [_ARROZ])
        request = orchestrator.upload_batch([("a.jpg", b"1")], sm)
        orchestrator._backend._on_call = lambda: seen.append(
            orchestrator.batches.get_batch(request.batch_id)["status"]
        )

        await orchestrator.process(request)

        assert seen == ["processing"]
        orchestrator.close()

    @pytest.mark.asyncio
    async def test_images_processed_in_order(self, config):
        orchestrator, backend, sm = _make(config, ['{"items": []}'] * 3)
        request = orchestrator.upload_batch(
            [("1.jpg", b"one"), ("2.png", b"two"), ("3.jpg", b"three")], sm
        )

        await orchestrator.process(request)

        assert backend.calls == [
            (b"one", "image/jpeg"),
            (b"two", "image/png"),
            (b"three", "image/jpeg"),
        ]
        orchestrator.close()

    @pytest.mark.asyncio
    async def test_item_failure_is_contained(self, config, monkeypatch):
        """A failing price insert still leaves a review item and later items."""
        orchestrator, _, sm = _make(config, [json.dumps({"items": [
            {"name": "Arroz Tio João", "retail_price": 24.9, "confidence": 0.9},
            {"name": "Feijão Preto", "retail_price": 7.5, "confidence": 0.9},
        ]})])

        def fail(*args, **kwargs):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(orchestrator.prices, "add_price", fail)
        request = orchestrator.upload_batch([("a.jpg", b"1")], sm)

        result = await orchestrator.process(request)

        assert result.processed_count == 1
        items = orchestrator.batches.list_items(batch_id=request.batch_id)
        assert len(items) == 2
        assert all(i["matched_product_id"] for i in items)
        assert orchestrator.prices.list_prices(batch_id=request.batch_id) == []
        orchestrator.close()

    @pytest.mark.asyncio
    async def test_low_confidence_items_are_reviewed_not_priced(self, config):
        orchestrator, _, sm = _make(config, [json.dumps({"items": [
            {"name": "Biscoito", "retail_price": 3.5, "confidence": 0.4},
        ]})])
        request = orchestrator.upload_batch([("a.jpg", b"1")], sm)

        await orchestrator.process(request)

        [item] = orchestrator.batches.list_items(batch_id=request.batch_id)
        assert item["matched_product_id"] is None
        assert item["meta"]["retail_price"] == 3.5
        assert orchestrator.prices.list_prices(supermarket_id=sm) == []
        orchestrator.close()

    @pytest.mark.asyncio
    async def test_rerun_duplicates_prices(self, config):
        """Processing the same input twice is not idempotent."""
        orchestrator, _, sm = _make(config, [_ARROZ, _ARROZ])
        request = orchestrator.upload_batch([("a.jpg", b"1")], sm)

        await orchestrator.process(request)
        await orchestrator.process(request)

        product = orchestrator.catalog.find_by_ean("7896006711234")
        assert len(orchestrator.prices.list_prices(product_id=product["id"])) == 2
        assert len(orchestrator.catalog.search_by_name("arroz tio joão")) == 1
        assert len(orchestrator.batches.list_items(batch_id=request.batch_id)) == 2
        orchestrator.close()


class TestFatalErrors:
    @pytest.mark.asyncio
    async def test_missing_fields_returns_error(self, config):
        orchestrator, backend, _ = _make(config, [])

        status, payload = await orchestrator.handle({"imageFiles": [{"path": "x.jpg"}]})

        assert status == 400
        assert "obrigatórios" in payload["error"]
        assert backend.calls == []
        orchestrator.close()

    @pytest.mark.asyncio
    async def test_missing_images_marks_known_batch_error(self, config):
        orchestrator, backend, sm = _make(config, [])
        batch_id = orchestrator.batches.create_batch()

        status, payload = await orchestrator.handle(
            {"batchId": batch_id, "imageFiles": [], "supermarketId": sm}
        )

        assert status == 400
        assert "error" in payload
        batch = orchestrator.batches.get_batch(batch_id)
        assert batch["status"] == "error"
        assert batch["meta"] == {"request_error": payload["error"]}
        orchestrator.close()

    @pytest.mark.asyncio
    async def test_missing_credential_fails_before_processing(self, config):
        orchestrator, backend, sm = _make(config, [_ARROZ], configured=False)
        request = orchestrator.upload_batch([("a.jpg", b"1")], sm)

        with pytest.raises(BatchRequestError, match="Credencial"):
            await orchestrator.process(request)

        assert backend.calls == []
        assert orchestrator.batches.get_batch(request.batch_id)["status"] == "uploaded"
        assert orchestrator.batches.list_items(batch_id=request.batch_id) == []
        orchestrator.close()

    @pytest.mark.asyncio
    async def test_missing_credential_via_handle(self, config):
        orchestrator, backend, sm = _make(config, [_ARROZ], configured=False)
        request = orchestrator.upload_batch([("a.jpg", b"1")], sm)

        status, payload = await orchestrator.handle(_body(request))

        assert status == 400
        assert "Credencial" in payload["error"]
        assert orchestrator.batches.get_batch(request.batch_id)["status"] == "error"
        orchestrator.close()

    @pytest.mark.asyncio
    async def test_unknown_batch(self, config):
        orchestrator, backend, sm = _make(config, [_ARROZ])

        status, payload = await orchestrator.handle(
            {"batchId": "nope", "imageFiles": [{"path": "nope/a.jpg"}], "supermarketId": sm}
        )

        assert status == 400
        assert "Lote não encontrado" in payload["error"]
        assert backend.calls == []
        orchestrator.close()

    @pytest.mark.asyncio
    async def test_unknown_supermarket(self, config):
        orchestrator, backend, _ = _make(config, [_ARROZ])
        request = orchestrator.upload_batch([("a.jpg", b"1")], "no-such-market")

        status, payload = await orchestrator.handle(_body(request))

        assert status == 400
        assert "Supermercado não encontrado" in payload["error"]
        assert backend.calls == []
        assert orchestrator.catalog.find_by_ean("7896006711234") is None
        assert orchestrator.batches.list_items(batch_id=request.batch_id) == []
        batch = orchestrator.batches.get_batch(request.batch_id)
        assert batch["status"] == "error"
        assert "Supermercado não encontrado" in batch["meta"]["request_error"]
        orchestrator.close()

    @pytest.mark.asyncio
    async def test_rejected_request_keeps_finished_batch(self, config):
        orchestrator, _, sm = _make(config, [_ARROZ, ExtractionFailure("boom")])
        request = orchestrator.upload_batch([("a.jpg", b"1"), ("b.jpg", b"2")], sm)
        await orchestrator.process(request)

        status, _ = await orchestrator.handle({"batchId": request.batch_id})

        assert status == 400
        batch = orchestrator.batches.get_batch(request.batch_id)
        assert batch["status"] == "done"
        assert batch["meta"] == {"errors": [{"path": request.image_paths[1], "error": "boom"}]}
        orchestrator.close()

    @pytest.mark.asyncio
    async def test_rejected_request_keeps_image_errors(self, config):
        orchestrator, _, sm = _make(config, [ExtractionFailure("boom")])
        request = orchestrator.upload_batch([("a.jpg", b"1")], sm)
        await orchestrator.process(request)

        status, payload = await orchestrator.handle({"batchId": request.batch_id})

        assert status == 400
        batch = orchestrator.batches.get_batch(request.batch_id)
        assert batch["status"] == "error"
        assert batch["meta"]["errors"][0]["error"] == "boom"
        assert batch["meta"]["request_error"] == payload["error"]
        orchestrator.close()

    def test_upload_requires_images(self, config):
        orchestrator, _, sm = _make(config, [])
        with pytest.raises(BatchRequestError):
            orchestrator.upload_batch([], sm)
        assert orchestrator.batches.list_batches() == []
        orchestrator.close()

    def test_upload_creates_uploaded_batch(self, config, tmp_path):
        orchestrator, _, sm = _make(config, [])
        request = orchestrator.upload_batch(
            [("folheto.jpg", b"data")], sm, uploaded_by="admin"
        )

        batch = orchestrator.batches.get_batch(request.batch_id)
        assert batch["status"] == "uploaded"
        assert batch["uploaded_by"] == "admin"
        assert request.image_paths == [f"{request.batch_id}/folheto.jpg"]
        assert (tmp_path / "images" / request.batch_id / "folheto.jpg").read_bytes() == b"data"
        orchestrator.close()

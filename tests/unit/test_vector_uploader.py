"""Unit tests for VectorUploader batching, retries and inter-batch pauses."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from tenantrag.interfaces.vector_store_provider import IVectorStoreProvider
from tenantrag.models.rag import FailedChunk, VectorRecord
from tenantrag.services.ingestion.vector_uploader import VectorUploader
from tenantrag.utils.errors import VectorStoreError


def _records(count: int) -> list[VectorRecord]:
    return [
        VectorRecord(
            record_id=f"doc-1_chunk_{i}",
            values=[0.1, 0.2],
            metadata={"documentId": "doc-1", "chunkId": f"chunk_{i}", "text": f"t{i}"},
        )
        for i in range(count)
    ]


def _store() -> MagicMock:
    store = MagicMock(spec=IVectorStoreProvider)
    store.ensure_namespace_ready = AsyncMock()
    store.upsert = AsyncMock(side_effect=lambda namespace, batch: len(batch))
    return store


class _Sleeps:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class TestVectorUploader:
    @pytest.mark.asyncio
    async def test_batches_of_fifty(self) -> None:
        store, sleeps = _store(), _Sleeps()
        uploader = VectorUploader(store, batch_size=50, sleep=sleeps)

        report = await uploader.upload("tenant_acme", _records(120))

        sizes = [len(call.args[1]) for call in store.upsert.await_args_list]
        assert sizes == [50, 50, 20]
        assert report.uploaded == 120
        assert report.batches == 3
        assert report.namespace == "tenant_acme"
        store.ensure_namespace_ready.assert_awaited_once_with("tenant_acme")

    @pytest.mark.asyncio
    async def test_pause_between_batches_not_after_last(self) -> None:
        store, sleeps = _store(), _Sleeps()
        uploader = VectorUploader(store, batch_size=50, batch_delay=0.2, sleep=sleeps)

        await uploader.upload("tenant_acme", _records(120))

        assert sleeps.delays == [0.2, 0.2]

    @pytest.mark.asyncio
    async def test_empty_records_touch_nothing(self) -> None:
        store = _store()
        failed = [FailedChunk(chunk_id="chunk_0", reason="Empty text")]

        report = await VectorUploader(store).upload("tenant_acme", [], failed)

        assert report.uploaded == 0
        assert report.failed_chunks == failed
        store.ensure_namespace_ready.assert_not_awaited()
        store.upsert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_transient_failure_retried_then_succeeds(self) -> None:
        store, sleeps = _store(), _Sleeps()
        store.upsert = AsyncMock(
            side_effect=[VectorStoreError(message="504 Gateway Timeout", transient=True), 10]
        )
        uploader = VectorUploader(store, base_delay=1.0, sleep=sleeps)

        report = await uploader.upload("tenant_acme", _records(10))

        assert report.uploaded == 10
        assert store.upsert.await_count == 2
        assert sleeps.delays == [1.0]

    @pytest.mark.asyncio
    async def test_exactly_three_attempts_then_raise(self) -> None:
        store, sleeps = _store(), _Sleeps()
        store.upsert = AsyncMock(
            side_effect=VectorStoreError(message="request timeout", transient=True)
        )
        uploader = VectorUploader(store, max_attempts=3, base_delay=1.0, sleep=sleeps)

        with pytest.raises(VectorStoreError):
            await uploader.upload("tenant_acme", _records(10))

        assert store.upsert.await_count == 3
        assert sleeps.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_permanent_failure_aborts_immediately(self) -> None:
        store, sleeps = _store(), _Sleeps()
        store.upsert = AsyncMock(side_effect=VectorStoreError(message="dimension mismatch"))

        with pytest.raises(VectorStoreError):
            await VectorUploader(store, sleep=sleeps).upload("tenant_acme", _records(60))

        assert store.upsert.await_count == 1
        assert sleeps.delays == []

    @pytest.mark.asyncio
    async def test_failed_chunks_passed_through(self) -> None:
        failed = [FailedChunk(chunk_id="chunk_3", reason="rate limited")]
        report = await VectorUploader(_store(), sleep=_Sleeps()).upload(
            "tenant_acme", _records(2), failed
        )
        assert report.failed_count == 1
        assert report.uploaded == 2

    def test_invalid_batch_size(self) -> None:
        with pytest.raises(ValueError):
            VectorUploader(_store(), batch_size=0)

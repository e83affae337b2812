"""Batched, retried upload of vector records into one namespace.

Records are written in fixed-size batches (50 by default).  Each batch is
one all-or-nothing ``upsert`` wrapped in :func:`retry_with_backoff`, so a
timeout or an HTTP 504 / 429 from the vector store is retried with
exponential backoff (1s, 2s, ...) before the upload gives up.  Anything
else aborts the upload immediately.

A short pause separates successful batches to stay under the vector
store's write rate limits; no pause follows the final batch.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from tenantrag.interfaces.vector_store_provider import IVectorStoreProvider
from tenantrag.models.rag import FailedChunk, UploadReport, VectorRecord
from tenantrag.utils.retry import is_transient_vector_error, retry_with_backoff

logger = structlog.get_logger(logger_name=__name__)


class VectorUploader:
    """Uploads vector records to a namespace in retried batches.

    Parameters
    ----------
    vector_store:
        The vector store provider to write to.
    batch_size:
        Records per upsert call.
    max_attempts:
        Attempts per batch, including the first one.
    base_delay:
        Backoff before the first retry, in seconds; doubles per retry.
    batch_delay:
        Pause between successful batches, in seconds.
    sleep:
        Awaitable sleep, injectable so tests run without real waits.
    """

    def __init__(
        self,
        vector_store: IVectorStoreProvider,
        batch_size: int = 50,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        batch_delay: float = 0.2,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self._vector_store = vector_store
        self._batch_size = batch_size
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._batch_delay = batch_delay
        self._sleep = sleep

    async def upload(
        self,
        namespace: str,
        records: list[VectorRecord],
        failed_chunks: list[FailedChunk] | None = None,
    ) -> UploadReport:
        """Upsert *records* into *namespace* batch by batch.

        ``failed_chunks`` (chunks that never became records) is passed
        through to the report unchanged.

        Raises
        ------
        VectorStoreError
            When a batch fails non-transiently or exhausts its attempts.
            Batches already written stay written.
        """
        failures = list(failed_chunks or [])
        if not records:
            return UploadReport(namespace=namespace, failed_chunks=failures)

        await self._vector_store.ensure_namespace_ready(namespace)

        batches = [
            records[start : start + self._batch_size]
            for start in range(0, len(records), self._batch_size)
        ]
        uploaded = 0

        for number, batch in enumerate(batches, start=1):

            async def _write(batch: list[VectorRecord] = batch) -> int:
                return await self._vector_store.upsert(namespace, batch)

            written = await retry_with_backoff(
                _write,
                max_attempts=self._max_attempts,
                base_delay=self._base_delay,
                is_transient=is_transient_vector_error,
                sleep=self._sleep,
                operation_name=f"upsert_batch_{number}",
            )
            uploaded += written
            logger.info(
                "vector_batch_uploaded",
                namespace=namespace,
                batch=number,
                total_batches=len(batches),
                batch_size=len(batch),
            )

            if number < len(batches) and self._batch_delay > 0:
                await self._sleep(self._batch_delay)

        logger.info(
            "vector_upload_complete",
            namespace=namespace,
            uploaded=uploaded,
            batches=len(batches),
            failed_chunks=len(failures),
        )
        return UploadReport(
            namespace=namespace,
            uploaded=uploaded,
            batches=len(batches),
            failed_chunks=failures,
        )

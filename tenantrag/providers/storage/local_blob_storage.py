"""Filesystem-backed blob storage for development and tests.

Objects live under ``root / <path>``; path traversal outside the root is
rejected.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from tenantrag.interfaces.blob_storage import IBlobStorage
from tenantrag.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)


class LocalBlobStorage(IBlobStorage):
    """Stores uploaded files in a local directory tree."""

    def __init__(self, root: str | Path = "data/blobs") -> None:
        self._root = Path(root).resolve()

    async def upload(self, path: str, data: bytes, content_type: str | None = None) -> str:
        target = self._resolve(path)
        await asyncio.to_thread(_write_bytes, target, data)
        logger.info("blob_uploaded", path=path, size=len(data), backend="local")
        return path

    async def download(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise StorageError(
                message=f"File not found in storage: {path}",
                provider_name=self.get_provider_name(),
            )
        try:
            data = await asyncio.to_thread(target.read_bytes)
        except OSError as exc:
            raise StorageError(
                message=f"Failed to read {path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.info("blob_downloaded", path=path, size=len(data), backend="local")
        return data

    async def delete(self, path: str) -> None:
        target = self._resolve(path)
        await asyncio.to_thread(target.unlink, missing_ok=True)
        logger.info("blob_deleted", path=path, backend="local")

    def get_provider_name(self) -> str:
        return "local_storage"

    def _resolve(self, path: str) -> Path:
        target = (self._root / path).resolve()
        if self._root not in target.parents:
            raise StorageError(
                message=f"Path escapes storage root: {path}",
                provider_name=self.get_provider_name(),
            )
        return target


def _write_bytes(target: Path, data: bytes) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)

"""Abstract base class for blob storage holding uploaded files.

Objects are addressed by path, organized as
``<tenantId>/<timestamp>_<filename>.<ext>``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone


def build_blob_path(tenant_id: str, file_name: str, now: datetime | None = None) -> str:
    """Return the storage path for an upload: ``tenant/epochms_name``."""
    moment = now or datetime.now(tz=timezone.utc)  # noqa: UP017
    timestamp = int(moment.timestamp() * 1000)
    safe_name = file_name.replace("/", "_").replace("\\", "_")
    return f"{tenant_id}/{timestamp}_{safe_name}"


# Concrete implementations: LocalBlobStorage, S3BlobStorage
# Located in: tenantrag/providers/storage/
class IBlobStorage(ABC):
    """Contract for raw-file storage used by the ingestion pipeline."""

    @abstractmethod
    async def upload(self, path: str, data: bytes, content_type: str | None = None) -> str:
        """Store *data* at *path* and return the path."""

    @abstractmethod
    async def download(self, path: str) -> bytes:
        """Return the bytes stored at *path*.

        Raises
        ------
        tenantrag.utils.errors.StorageError
            If the object does not exist or cannot be read.
        """

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Delete the object at *path*; missing objects are ignored."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this storage backend."""

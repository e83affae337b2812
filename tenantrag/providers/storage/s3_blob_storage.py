"""S3 blob storage.

Dependencies: boto3
Wraps the synchronous boto3 client in ``asyncio.to_thread`` so downloads
never block the event loop.  A missing key (``NoSuchKey`` / ``404``) is
reported as :class:`StorageError`, which the ingestion pipeline treats as
fatal for the download step.
"""

from __future__ import annotations

import asyncio
from typing import Any

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from tenantrag.interfaces.blob_storage import IBlobStorage
from tenantrag.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)

_MISSING_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


class S3BlobStorage(IBlobStorage):
    """Blob storage backed by one S3 bucket."""

    def __init__(self, bucket: str, region: str = "us-east-1", client: Any | None = None) -> None:
        self._bucket = bucket
        self._region = region
        self._s3_client = client or boto3.client("s3", region_name=region)

    async def upload(self, path: str, data: bytes, content_type: str | None = None) -> str:
        kwargs: dict[str, Any] = {"Bucket": self._bucket, "Key": path, "Body": data}
        if content_type:
            kwargs["ContentType"] = content_type
        try:
            await asyncio.to_thread(self._s3_client.put_object, **kwargs)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(
                message=f"Failed to upload to S3: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.info("blob_uploaded", path=path, size=len(data), backend="s3")
        return path

    async def download(self, path: str) -> bytes:
        if not path:
            raise StorageError(message="S3 key is required", provider_name=self.get_provider_name())
        try:
            response = await asyncio.to_thread(
                self._s3_client.get_object, Bucket=self._bucket, Key=path
            )
            data = await asyncio.to_thread(response["Body"].read)
        except ClientError as exc:
            error_code = exc.response.get("Error", {}).get("Code", "Unknown")
            if error_code in _MISSING_CODES:
                raise StorageError(
                    message=f"File not found in S3: {path}",
                    provider_name=self.get_provider_name(),
                ) from exc
            raise StorageError(
                message=f"Failed to download from S3: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except BotoCoreError as exc:
            raise StorageError(
                message=f"Failed to download from S3: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.info("blob_downloaded", path=path, size=len(data), backend="s3")
        return data

    async def delete(self, path: str) -> None:
        try:
            await asyncio.to_thread(self._s3_client.delete_object, Bucket=self._bucket, Key=path)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(
                message=f"Failed to delete from S3: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.info("blob_deleted", path=path, backend="s3")

    def get_provider_name(self) -> str:
        return "s3"

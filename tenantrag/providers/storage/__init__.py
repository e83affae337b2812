"""Blob storage backends for uploaded files.

    - LocalBlobStorage - directory tree on local disk (default)
    - S3BlobStorage    - one S3 bucket via boto3 (BLOB_STORAGE_BACKEND=s3)
"""

from tenantrag.providers.storage.local_blob_storage import LocalBlobStorage
from tenantrag.providers.storage.s3_blob_storage import S3BlobStorage

__all__ = ["LocalBlobStorage", "S3BlobStorage"]

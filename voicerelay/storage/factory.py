"""
storage/factory.py
------------------
Pick the blob store implementation from settings.
"""

from voicerelay.core.config import Settings
from voicerelay.storage.base import BlobStore
from voicerelay.storage.local import LocalBlobStore
from voicerelay.storage.s3 import S3BlobStore


def build_blob_store(settings: Settings) -> BlobStore:
    if settings.STORAGE_BACKEND == "s3":
        if not settings.S3_BUCKET_NAME:
            raise ValueError("S3_BUCKET_NAME is required when STORAGE_BACKEND=s3")
        return S3BlobStore(
            bucket=settings.S3_BUCKET_NAME,
            region=settings.AWS_REGION,
            access_key_id=settings.AWS_ACCESS_KEY_ID,
            secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            endpoint_url=settings.S3_ENDPOINT_URL,
            timeout=settings.STORAGE_TIMEOUT_SECONDS,
        )
    return LocalBlobStore(
        root=settings.LOCAL_STORAGE_DIR,
        public_base_url=settings.PUBLIC_BASE_URL,
        secret_key=settings.SECRET_KEY,
        timeout=settings.STORAGE_TIMEOUT_SECONDS,
    )

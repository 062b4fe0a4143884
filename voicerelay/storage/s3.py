"""
storage/s3.py
-------------
Blob store on S3 (or any S3-compatible endpoint such as MinIO).

A client is opened per call from one long-lived aioboto3 Session. botocore
connect/read timeouts bound each request; _bounded() bounds the whole call
including retries.
"""

import aioboto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from voicerelay.core.exceptions import StorageUnavailable
from voicerelay.core.logging import get_logger
from voicerelay.storage.base import BlobStore, DeleteOutcome, new_key

logger = get_logger(__name__)

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


class S3BlobStore(BlobStore):

    def __init__(
        self,
        bucket: str,
        region: str,
        access_key_id: str = "",
        secret_access_key: str = "",
        endpoint_url: str = "",
        timeout: float = 10.0,
    ) -> None:
        super().__init__(timeout)
        self.bucket = bucket
        self.endpoint_url = endpoint_url or None
        # Empty credentials fall through to the default AWS provider chain
        self._session = aioboto3.Session(
            aws_access_key_id=access_key_id or None,
            aws_secret_access_key=secret_access_key or None,
            region_name=region,
        )
        self._config = Config(
            connect_timeout=timeout,
            read_timeout=timeout,
            retries={"max_attempts": 2},
        )

    def _client(self):
        return self._session.client(
            "s3", endpoint_url=self.endpoint_url, config=self._config
        )

    async def _put_object(self, key: str, data: bytes, content_type: str) -> None:
        async with self._client() as s3:
            await s3.put_object(
                Bucket=self.bucket, Key=key, Body=data, ContentType=content_type
            )

    async def put(self, data: bytes, content_type: str) -> str:
        key = new_key(content_type)
        try:
            await self._bounded(self._put_object(key, data, content_type), "put", key)
        except (BotoCoreError, ClientError) as exc:
            logger.error("S3 put_object failed", bucket=self.bucket, key=key, error=str(exc))
            raise StorageUnavailable() from exc
        logger.debug("Blob stored", bucket=self.bucket, key=key, size=len(data))
        return key

    async def _presign(self, key: str, ttl: int) -> str:
        async with self._client() as s3:
            return await s3.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=ttl,
            )

    async def signed_get_url(self, key: str, ttl: int) -> str:
        try:
            return await self._bounded(self._presign(key, ttl), "signed_get_url", key)
        except (BotoCoreError, ClientError) as exc:
            logger.error("S3 presign failed", bucket=self.bucket, key=key, error=str(exc))
            raise StorageUnavailable() from exc

    async def _delete_object(self, key: str) -> None:
        async with self._client() as s3:
            await s3.delete_object(Bucket=self.bucket, Key=key)

    async def delete(self, key: str) -> DeleteOutcome:
        # S3 reports success for missing keys, so ALREADY_ABSENT only shows
        # up from stricter S3-compatible backends.
        try:
            await self._bounded(self._delete_object(key), "delete", key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in _MISSING_CODES:
                return DeleteOutcome.ALREADY_ABSENT
            logger.warning("S3 delete_object failed", bucket=self.bucket, key=key, error=str(exc))
            return DeleteOutcome.FAILED
        except (BotoCoreError, StorageUnavailable) as exc:
            logger.warning("S3 delete_object failed", bucket=self.bucket, key=key, error=str(exc))
            return DeleteOutcome.FAILED
        return DeleteOutcome.DELETED

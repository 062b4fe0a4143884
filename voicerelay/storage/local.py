"""
storage/local.py
----------------
Blob store on the local filesystem.

Files live under LOCAL_STORAGE_DIR at their key path. Playback URLs point
back at this service (GET /blobs/{key}?token=...) with a signed blob token
standing in for an object store's presigned query string.
"""

from pathlib import Path
from urllib.parse import quote

import aiofiles
import aiofiles.os

from voicerelay.core.exceptions import NotFound, StorageUnavailable
from voicerelay.core.logging import get_logger
from voicerelay.core.security import create_blob_token, verify_blob_token
from voicerelay.storage.base import BlobStore, DeleteOutcome, new_key

logger = get_logger(__name__)


class LocalBlobStore(BlobStore):

    def __init__(
        self,
        root: str | Path,
        public_base_url: str,
        secret_key: str,
        timeout: float = 10.0,
    ) -> None:
        super().__init__(timeout)
        self.root = Path(root).resolve()
        self.public_base_url = public_base_url.rstrip("/")
        self._secret_key = secret_key

    def _path_for(self, key: str) -> Path | None:
        """Filesystem path for key, or None if the key escapes the root."""
        path = (self.root / key).resolve()
        if path == self.root or not path.is_relative_to(self.root):
            return None
        return path

    async def _write(self, path: Path, data: bytes) -> None:
        await aiofiles.os.makedirs(path.parent, exist_ok=True)
        partial = path.with_name(path.name + ".part")
        async with aiofiles.open(partial, "wb") as f:
            await f.write(data)
            await f.flush()
        await aiofiles.os.replace(partial, path)

    async def put(self, data: bytes, content_type: str) -> str:
        key = new_key(content_type)
        try:
            await self._bounded(self._write(self.root / key, data), "put", key)
        except OSError as exc:
            logger.error("Blob write failed", key=key, error=str(exc))
            raise StorageUnavailable() from exc
        logger.debug("Blob stored", key=key, size=len(data))
        return key

    async def signed_get_url(self, key: str, ttl: int) -> str:
        token = create_blob_token(key, ttl, self._secret_key)
        return f"{self.public_base_url}/blobs/{quote(key)}?token={token}"

    def verify(self, key: str, token: str) -> bool:
        return verify_blob_token(token, key, self._secret_key)

    async def _read(self, path: Path) -> bytes:
        async with aiofiles.open(path, "rb") as f:
            return await f.read()

    async def read(self, key: str) -> bytes:
        path = self._path_for(key)
        if path is None:
            raise NotFound("Audio not found")
        try:
            return await self._bounded(self._read(path), "read", key)
        except FileNotFoundError:
            raise NotFound("Audio not found")
        except OSError as exc:
            logger.error("Blob read failed", key=key, error=str(exc))
            raise StorageUnavailable() from exc

    async def delete(self, key: str) -> DeleteOutcome:
        path = self._path_for(key)
        if path is None:
            return DeleteOutcome.ALREADY_ABSENT
        try:
            await self._bounded(aiofiles.os.remove(path), "delete", key)
        except FileNotFoundError:
            return DeleteOutcome.ALREADY_ABSENT
        except (OSError, StorageUnavailable) as exc:
            logger.warning("Blob delete failed", key=key, error=str(exc))
            return DeleteOutcome.FAILED
        return DeleteOutcome.DELETED

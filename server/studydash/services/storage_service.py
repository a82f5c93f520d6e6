import logging
import os
from typing import Optional

import aiofiles

from studydash.config import settings
from studydash.services.errors import StorageError

logger = logging.getLogger(__name__)


class BlobStore:
    """Local filesystem blob storage for one bucket.

    Files live under ``{base_dir}/{bucket}/{path}`` and are served by FastAPI
    via the ``/api/files/{path}`` route defined in ``main.py``.
    """

    def __init__(
        self,
        base_dir: Optional[str] = None,
        bucket: Optional[str] = None,
        public_base: Optional[str] = None,
    ):
        self.base_dir = base_dir or settings.storage_dir
        self.bucket = bucket or settings.storage_bucket
        self.public_base = (settings.store_url if public_base is None else public_base).rstrip("/")
        os.makedirs(self._bucket_dir(), exist_ok=True)

    def _bucket_dir(self) -> str:
        return os.path.join(self.base_dir, self.bucket)

    def _full_path(self, path: str) -> str:
        full_path = os.path.realpath(os.path.join(self._bucket_dir(), path))
        if not full_path.startswith(os.path.realpath(self._bucket_dir()) + os.sep):
            raise StorageError(f"Invalid object path: {path}")
        return full_path

    async def upload(
        self,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        """Write *data* to ``{bucket}/{path}``. Existing objects are never overwritten."""
        full_path = self._full_path(path)
        if os.path.exists(full_path):
            raise StorageError(f"The resource already exists: {path}")
        try:
            os.makedirs(os.path.dirname(full_path), exist_ok=True)
            async with aiofiles.open(full_path, "wb") as f:
                await f.write(data)
        except OSError as e:
            raise StorageError(f"Failed to store {path}: {e}") from e
        logger.debug(f"Stored {len(data)} bytes ({content_type}) at {full_path}")
        return path

    def get_public_url(self, path: str) -> str:
        """Return the URL served by FastAPI's file route."""
        return f"{self.public_base}/api/files/{self.bucket}/{path}"

    async def remove(self, paths: list[str]) -> list[str]:
        """Remove objects. Missing objects are skipped; returns the removed paths."""
        removed = []
        for path in paths:
            full_path = self._full_path(path)
            try:
                os.remove(full_path)
            except FileNotFoundError:
                continue
            except OSError as e:
                raise StorageError(f"Failed to remove {path}: {e}") from e
            removed.append(path)
        return removed

    async def exists(self, path: str) -> bool:
        return os.path.isfile(self._full_path(path))

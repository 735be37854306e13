"""Blob storage for uploaded photos.

The store is an interface boundary: ``BlobStore`` names the operations and
``LocalBlobStore`` keeps blobs on the local filesystem. Download links are
signed with itsdangerous and expire after the requested TTL.
"""

import asyncio
import logging
from pathlib import Path
from urllib.parse import quote

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from plantvision.core.config import constants, settings


logger = logging.getLogger(__name__)


class BlobNotFoundError(KeyError):
    """No blob stored under the key."""


class BlobStore:
    """Base class for blob storage backends."""

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        raise NotImplementedError

    async def get(self, key: str) -> bytes:
        raise NotImplementedError

    def signed_url(self, key: str, ttl: int) -> str:
        raise NotImplementedError

    def resolve_signed_key(self, token: str) -> str:
        """Return the key a signed URL token grants access to."""
        raise NotImplementedError


class LocalBlobStore(BlobStore):
    """Store blobs as files under a root directory."""

    def __init__(self, root: str | None = None, *, secret_key: str | None = None, base_url: str | None = None) -> None:
        self._root = Path(root or settings.blob_storage_dir).resolve()
        self._serializer = URLSafeTimedSerializer(secret_key or settings.secret_key, salt="plantvision-blob")
        self._base_url = (base_url or settings.public_base_url).rstrip("/")

    def _path_for(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if self._root not in path.parents:
            msg = f"Invalid blob key: {key}"
            raise ValueError(msg)
        return path

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        path = self._path_for(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)
        logger.info("Stored blob", extra={"key": key, "size": len(data), "content_type": content_type})
        return key

    async def get(self, key: str) -> bytes:
        path = self._path_for(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as e:
            raise BlobNotFoundError(key) from e

    def signed_url(self, key: str, ttl: int) -> str:
        # ttl travels with the token; expiry is checked in resolve_signed_key
        token = self._serializer.dumps({"key": key, "ttl": ttl})
        return f"{self._base_url}{constants.API_PREFIX}/files/{quote(token)}"

    def resolve_signed_key(self, token: str) -> str:
        try:
            _, payload = self._serializer.loads_unsafe(token)
            ttl = int(payload["ttl"]) if isinstance(payload, dict) else 0
            data = self._serializer.loads(token, max_age=ttl)
        except SignatureExpired as e:
            msg = "Signed URL expired"
            raise PermissionError(msg) from e
        except (BadSignature, KeyError, TypeError, ValueError) as e:
            msg = "Invalid signed URL"
            raise PermissionError(msg) from e
        return data["key"]

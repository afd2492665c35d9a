"""Provider package object storage.

Packages are stored under the id of the platform mirror that admitted them.
Clients never read the store directly: they receive a short-lived presigned
URL whose signature the package endpoint checks with ``verify_presigned``.

Local layout: {base_path}/{id[0:2]}/{id}.zip
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import os
import shutil
import tempfile
import time
from pathlib import Path
from typing import BinaryIO, Protocol, runtime_checkable
from urllib.parse import urlencode

logger = logging.getLogger(__name__)


class PackageStoreError(RuntimeError):
    """Raised when the object store cannot complete an operation."""


@runtime_checkable
class PackageStore(Protocol):
    def upload(
        self, platform_mirror_id: str, reader: BinaryIO, *, timeout: float | None = None
    ) -> None:
        ...

    def presigned_url(self, platform_mirror_id: str, *, timeout: float | None = None) -> str:
        ...

    def delete(self, platform_mirror_id: str) -> None:
        ...


class LocalPackageStore:
    """Filesystem package store with HMAC-signed download URLs.

    Writes go to a temporary file in the target directory and are renamed
    into place, so a reader never sees a partial package.

    Parameters
    ----------
    base_path:
        Root directory for package objects.
    base_url:
        Public URL prefix under which the package endpoint serves objects.
    secret:
        HMAC key for presigned URLs.
    ttl_seconds:
        Lifetime of a presigned URL.
    chunk_size:
        Copy buffer size for uploads.
    """

    def __init__(
        self,
        base_path: Path,
        *,
        base_url: str,
        secret: str,
        ttl_seconds: int = 60,
        chunk_size: int = 64 * 1024,
    ) -> None:
        self._base = Path(base_path)
        self._base.mkdir(parents=True, exist_ok=True)
        self._base_url = base_url.rstrip("/")
        self._secret = secret.encode("utf-8")
        self._ttl = ttl_seconds
        self._chunk_size = chunk_size

    def _object_path(self, platform_mirror_id: str) -> Path:
        if not platform_mirror_id or "/" in platform_mirror_id or platform_mirror_id.startswith("."):
            raise PackageStoreError(f"Invalid package object key: {platform_mirror_id!r}")
        return self._base / platform_mirror_id[:2] / f"{platform_mirror_id}.zip"

    def _sign(self, platform_mirror_id: str, expires: int) -> str:
        message = f"{platform_mirror_id}:{expires}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def upload(
        self, platform_mirror_id: str, reader: BinaryIO, *, timeout: float | None = None
    ) -> None:
        """Stream *reader* into the object for *platform_mirror_id*."""
        path = self._object_path(platform_mirror_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, suffix=".part")
        try:
            with os.fdopen(fd, "wb") as out:
                shutil.copyfileobj(reader, out, self._chunk_size)
            os.replace(tmp_name, path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise PackageStoreError(
                f"Failed to write package object {platform_mirror_id}: {exc}"
            ) from exc
        logger.debug("Stored package object %s (%d bytes).", platform_mirror_id, path.stat().st_size)

    def delete(self, platform_mirror_id: str) -> None:
        """Remove the object.  Deleting a missing object is a no-op."""
        try:
            self._object_path(platform_mirror_id).unlink(missing_ok=True)
        except OSError as exc:
            raise PackageStoreError(
                f"Failed to delete package object {platform_mirror_id}: {exc}"
            ) from exc

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def exists(self, platform_mirror_id: str) -> bool:
        return self._object_path(platform_mirror_id).exists()

    def open(self, platform_mirror_id: str) -> BinaryIO:
        path = self._object_path(platform_mirror_id)
        if not path.exists():
            raise FileNotFoundError(f"Package object not found: {platform_mirror_id}")
        return path.open("rb")

    def presigned_url(self, platform_mirror_id: str, *, timeout: float | None = None) -> str:
        """Return a download URL valid for ``ttl_seconds``."""
        if not self.exists(platform_mirror_id):
            raise PackageStoreError(f"Package object not found: {platform_mirror_id}")
        expires = int(time.time()) + self._ttl
        query = urlencode(
            {"expires": expires, "signature": self._sign(platform_mirror_id, expires)}
        )
        return f"{self._base_url}/{platform_mirror_id}?{query}"

    def verify_presigned(
        self,
        platform_mirror_id: str,
        expires: int,
        signature: str,
        *,
        now: float | None = None,
    ) -> bool:
        """Check a presigned URL's signature and expiry."""
        current = time.time() if now is None else now
        if expires < current:
            return False
        return hmac.compare_digest(self._sign(platform_mirror_id, expires), signature)

"""SHA-256 helpers for checksum comparison and streamed package hashing."""

from __future__ import annotations

import hashlib
import hmac
from collections.abc import Iterator
from typing import BinaryIO


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def iter_chunks(stream: BinaryIO, chunk_size: int) -> Iterator[bytes]:
    """Yield successive reads of *chunk_size* bytes until *stream* is exhausted."""
    return iter(lambda: stream.read(chunk_size), b"")


def digests_equal(expected: bytes, actual: bytes) -> bool:
    """Constant-time digest comparison."""
    return hmac.compare_digest(expected, actual)


def zip_hash(digest: bytes) -> str:
    """Render a package digest in Terraform's ``zh:`` hash notation."""
    return f"zh:{digest.hex()}"

"""OpenPGP signature checking — wraps PGPy behind ``SignatureChecker``.

Bridge boundary
---------------
Registries sign ``SHA256SUMS`` with GPG and publish the signing keys as
ASCII-armored public key blocks.  PGPy parses the keys and verifies the
binary (or armored) detached signature.  Nothing else in the package
imports PGPy; the trust verifier depends only on the protocol.
"""

from __future__ import annotations

import logging

import pgpy
from pgpy.errors import PGPError

logger = logging.getLogger(__name__)


class OpenPGPSignatureChecker:
    """Verify detached OpenPGP signatures with PGPy.

    Examples
    --------
    >>> checker = OpenPGPSignatureChecker()
    >>> checker.check_detached(b"data", sig_bytes, armored_key)  # doctest: +SKIP
    True
    """

    def _load_key(self, armored_key: str) -> pgpy.PGPKey:
        try:
            key, _ = pgpy.PGPKey.from_blob(armored_key)
        except (PGPError, ValueError, TypeError) as exc:
            raise ValueError(f"cannot parse armored public key: {exc}") from exc
        return key

    def check_detached(self, data: bytes, signature: bytes, armored_key: str) -> bool:
        key = self._load_key(armored_key)
        try:
            sig = pgpy.PGPSignature.from_blob(signature)
        except (PGPError, ValueError, TypeError) as exc:
            logger.debug("Detached signature could not be parsed: %s", exc)
            return False

        try:
            return bool(key.verify(data, sig))
        except PGPError as exc:
            # Raised when the signature was made by a key not in this keyring.
            logger.debug("Key %s does not match signature: %s", key.fingerprint, exc)
            return False

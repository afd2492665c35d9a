"""Checksum manifest trust verification.

Upstream registries publish, per provider version, a ``SHA256SUMS`` manifest
listing the digest of every platform package, a detached signature over that
manifest, and one or more armored public keys.  The manifest is trusted when
the signature verifies under **any one** of the supplied keys; that is the
registry protocol's multi-key model and it is kept as is.

Parsing only happens after verification succeeds, so an unsigned manifest is
rejected no matter how well-formed it is.

Manifest line format::

    <64 hex chars><two spaces><filename>
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from providermirror.errors import invalid

logger = logging.getLogger(__name__)

SHA256_SIZE = 32

_MANIFEST_LINE_RE = re.compile(r"^([0-9a-fA-F]{64})  (\S+)$")


@runtime_checkable
class SignatureChecker(Protocol):
    """Checks a detached signature against a single armored public key.

    Implementations return ``False`` for a signature that does not verify
    and raise ``ValueError`` for a key they cannot parse.
    """

    def check_detached(self, data: bytes, signature: bytes, armored_key: str) -> bool:
        ...


def parse_checksum_manifest(
    manifest: bytes,
    *,
    reject_duplicates: bool = False,
) -> dict[str, bytes]:
    """Parse a checksum manifest into a ``filename -> digest`` table.

    Parameters
    ----------
    manifest:
        Raw manifest bytes (UTF-8).
    reject_duplicates:
        When ``True`` a filename listed twice is an error.  Otherwise the
        last occurrence wins and the duplicate is logged.

    Raises
    ------
    MirrorError
        With code ``invalid`` for undecodable input, malformed lines, wrong
        digest sizes, duplicates (when rejected) or an empty manifest.
    """
    try:
        text = manifest.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise invalid(f"Checksum manifest is not valid UTF-8: {exc}") from exc

    digests: dict[str, bytes] = {}
    for lineno, line in enumerate(text.splitlines(), start=1):
        match = _MANIFEST_LINE_RE.match(line)
        if match is None:
            raise invalid(f"Unexpected checksum line format at line {lineno}: {line!r}")

        hex_digest, filename = match.groups()
        digest = bytes.fromhex(hex_digest)
        if len(digest) != SHA256_SIZE:
            raise invalid(
                f"Unexpected checksum size at line {lineno}. "
                f"Expected {SHA256_SIZE}, got {len(digest)}"
            )

        if filename in digests:
            if reject_duplicates:
                raise invalid(f"Duplicate checksum entry for {filename!r} at line {lineno}")
            logger.warning(
                "Checksum manifest lists %r more than once (line %d); "
                "using the last occurrence.",
                filename,
                lineno,
            )
        digests[filename] = digest

    if not digests:
        raise invalid("No checksums found in checksum manifest")

    return digests


class TrustVerifier:
    """Verifies a signed checksum manifest and returns its digest table.

    Parameters
    ----------
    checker:
        The signature primitive used for each candidate key.
    reject_duplicate_checksums:
        Forwarded to ``parse_checksum_manifest``.
    """

    def __init__(
        self,
        checker: SignatureChecker,
        *,
        reject_duplicate_checksums: bool = False,
    ) -> None:
        self._checker = checker
        self._reject_duplicates = reject_duplicate_checksums

    def verify_signature(
        self,
        manifest: bytes,
        signature: bytes,
        armored_keys: Sequence[str],
    ) -> int:
        """Return the index of the first key that verifies *signature*.

        Raises
        ------
        MirrorError
            With code ``invalid`` when no key verifies.
        """
        for index, key in enumerate(armored_keys):
            try:
                if self._checker.check_detached(manifest, signature, key):
                    logger.debug("Checksum signature verified with key #%d.", index)
                    return index
            except ValueError as exc:
                logger.warning("Skipping unusable signing key #%d: %s", index, exc)
            except Exception as exc:
                # A checker failure on one key must not escape without an error code.
                logger.warning(
                    "Signature check failed for signing key #%d: %s: %s",
                    index,
                    type(exc).__name__,
                    exc,
                )

        raise invalid(
            "Checksum manifest is untrusted: no matching key found for "
            f"signature or signature mismatch ({len(armored_keys)} key(s) tried)"
        )

    def verify_and_parse(
        self,
        manifest: bytes,
        signature: bytes,
        armored_keys: Sequence[str],
    ) -> dict[str, bytes]:
        """Verify *manifest* against *signature* and parse it.

        Examples
        --------
        >>> verifier = TrustVerifier(checker)  # doctest: +SKIP
        >>> table = verifier.verify_and_parse(sums, sums_sig, keys)  # doctest: +SKIP
        >>> table["terraform-provider-aws_5.0.0_linux_amd64.zip"].hex()  # doctest: +SKIP
        '5f0b...'
        """
        self.verify_signature(manifest, signature, armored_keys)
        return parse_checksum_manifest(manifest, reject_duplicates=self._reject_duplicates)

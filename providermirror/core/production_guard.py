"""Production guard for mirror settings.

Checked once, when ``MirrorService.from_settings`` builds the service.  A
mirror that signs package URLs with a guessable secret, or that silently
runs without an upstream registry, must not start.
"""

from __future__ import annotations

import logging

from providermirror.config import DEFAULT_PRESIGN_SECRET, MirrorSettings

logger = logging.getLogger(__name__)

MIN_PRESIGN_SECRET_LENGTH = 32


class ProductionConfigError(RuntimeError):
    """Unsafe settings for a production mirror.  The process should exit."""


def enforce_production_constraints(settings: MirrorSettings) -> None:
    """Validate all production-critical configuration constraints.

    Constraints enforced
    --------------------
    1. Debug mode must be disabled.
    2. The presign secret must be set, not the development default, and at
       least ``MIN_PRESIGN_SECRET_LENGTH`` characters.
    3. A registry client entry point must be configured.

    Raises
    ------
    ProductionConfigError
        If any production constraint is violated.
    """
    if not settings.is_production:
        return

    violations: list[str] = []

    if settings.debug:
        violations.append(
            "debug=True is not allowed in production. Set PROVIDERMIRROR_DEBUG=false."
        )

    if settings.presign_secret == DEFAULT_PRESIGN_SECRET:
        violations.append(
            "The development presign secret is not allowed in production. "
            "Set PROVIDERMIRROR_PRESIGN_SECRET."
        )
    elif len(settings.presign_secret) < MIN_PRESIGN_SECRET_LENGTH:
        violations.append(
            f"presign_secret must be at least {MIN_PRESIGN_SECRET_LENGTH} characters."
        )

    if not settings.registry_client_entry_point:
        violations.append(
            "A registry client is required in production. "
            "Set PROVIDERMIRROR_REGISTRY_CLIENT_ENTRY_POINT."
        )

    if violations:
        msg = "Production configuration guard failed.\n" + "\n".join(
            f"  - {v}" for v in violations
        )
        logger.critical(msg)
        raise ProductionConfigError(msg)

    logger.info("Production configuration guard passed.")

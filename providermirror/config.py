"""Runtime configuration — env-driven, with ``.env`` support.

Centralized settings using pydantic-settings.  Reads from a ``.env`` file
and ``PROVIDERMIRROR_*`` environment variables.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Placeholder secret; the production guard refuses to start with it.
DEFAULT_PRESIGN_SECRET = "providermirror-dev-only-secret"


class MirrorSettings(BaseSettings):
    """Provider mirror configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export PROVIDERMIRROR_ENVIRONMENT=production
        export PROVIDERMIRROR_DATABASE_PATH=/data/mirror.db
        export PROVIDERMIRROR_PRESIGN_SECRET=...

    Or via .env file::

        PROVIDERMIRROR_LOG_LEVEL=DEBUG
        PROVIDERMIRROR_VERSION_MIRRORS_PER_GROUP=50
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PROVIDERMIRROR_",
        env_file_encoding="utf-8",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False

    # Storage
    database_path: Path = Path(".providermirror/mirror.db")
    package_store_path: Path = Path(".providermirror/packages")

    # Presigned package URLs
    package_base_url: str = "http://localhost:8080/provider-mirror/packages"
    presign_secret: str = DEFAULT_PRESIGN_SECRET
    presigned_url_ttl_seconds: int = 60

    # Upload admission
    max_package_size_bytes: int = 256 * 1024 * 1024
    upload_chunk_size: int = 64 * 1024
    upload_spool_threshold_bytes: int = 8 * 1024 * 1024

    # Upstream registry
    registry_timeout_seconds: float = 30.0
    reject_duplicate_checksums: bool = False

    # Quotas
    version_mirrors_per_group: int = 1000

    # Collaborator entry points, "module:attribute"
    registry_client_entry_point: str = ""
    service_discoverer_entry_point: str = ""
    signature_checker_entry_point: str = (
        "providermirror.bridge.openpgp:OpenPGPSignatureChecker"
    )

    @property
    def is_production(self) -> bool:
        """Whether running in production mode."""
        return self.environment == "production"

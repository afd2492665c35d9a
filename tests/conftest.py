"""Shared test fixtures for Provider Mirror."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from providermirror.auth import GroupRoleCaller, RequestContext, Role, SystemCaller
from providermirror.config import MirrorSettings
from providermirror.core.catalog import MirrorCatalog
from providermirror.core.mirror_service import MirrorService
from providermirror.core.package_store import LocalPackageStore
from providermirror.core.quota import QuotaEnforcer
from providermirror.core.trust import TrustVerifier
from providermirror.models.mirrors import Group, VersionMirror

from tests.fakes import (
    NAMESPACE,
    PROVIDER_TYPE,
    REGISTRY_HOST,
    VERSION,
    FakeRegistry,
    FakeSignatureChecker,
)

# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test state."""
    return tmp_path


@pytest.fixture
def settings(tmp_dir: Path) -> MirrorSettings:
    return MirrorSettings(
        database_path=tmp_dir / "mirror.db",
        package_store_path=tmp_dir / "packages",
        package_base_url="https://mirror.example.com/packages",
        presign_secret="test-presign-secret",
        upload_chunk_size=4,
        upload_spool_threshold_bytes=16,
    )


@pytest.fixture
def catalog(settings: MirrorSettings) -> MirrorCatalog:
    """Provide a fresh MirrorCatalog backed by a temp SQLite database."""
    return MirrorCatalog(settings.database_path)


@pytest.fixture
def package_store(settings: MirrorSettings) -> LocalPackageStore:
    return LocalPackageStore(
        settings.package_store_path,
        base_url=settings.package_base_url,
        secret=settings.presign_secret,
        ttl_seconds=settings.presigned_url_ttl_seconds,
    )


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def checker() -> FakeSignatureChecker:
    return FakeSignatureChecker()


@pytest.fixture
def service(
    catalog: MirrorCatalog,
    registry: FakeRegistry,
    checker: FakeSignatureChecker,
    package_store: LocalPackageStore,
    settings: MirrorSettings,
) -> MirrorService:
    """Provide a MirrorService wired to test doubles."""
    return MirrorService(
        catalog=catalog,
        registry=registry,
        discoverer=registry,
        trust_verifier=TrustVerifier(checker),
        package_store=package_store,
        quota=QuotaEnforcer(settings.version_mirrors_per_group),
        settings=settings,
    )


# ---------------------------------------------------------------------------
# Groups and callers
# ---------------------------------------------------------------------------


@pytest.fixture
def root_group(catalog: MirrorCatalog) -> Group:
    with catalog.reader() as db:
        return db.create_group("acme")


@pytest.fixture
def child_group(catalog: MirrorCatalog, root_group: Group) -> Group:
    with catalog.reader() as db:
        return db.create_group("acme/team")


@pytest.fixture
def owner_ctx() -> RequestContext:
    return RequestContext(GroupRoleCaller("alice", {"acme": Role.OWNER}))


@pytest.fixture
def viewer_ctx() -> RequestContext:
    return RequestContext(GroupRoleCaller("victor", {"acme/team": Role.VIEWER}))


@pytest.fixture
def outsider_ctx() -> RequestContext:
    return RequestContext(GroupRoleCaller("mallory", {"other": Role.OWNER}))


@pytest.fixture
def system_ctx() -> RequestContext:
    return RequestContext(SystemCaller())


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def create_mirror(
    service: MirrorService, owner_ctx: RequestContext, root_group: Group
) -> Callable[..., VersionMirror]:
    """Factory fixture: mirror a provider version into the root group."""

    def _factory(
        version: str = VERSION,
        provider_type: str = PROVIDER_TYPE,
        ctx: RequestContext | None = None,
    ) -> VersionMirror:
        return service.create_version_mirror(
            ctx or owner_ctx,
            group_path=root_group.full_path,
            registry_hostname=REGISTRY_HOST,
            registry_namespace=NAMESPACE,
            provider_type=provider_type,
            semantic_version=version,
        )

    return _factory


@pytest.fixture
def version_mirror(create_mirror: Callable[..., VersionMirror]) -> VersionMirror:
    return create_mirror()

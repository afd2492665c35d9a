"""Registry protocol boundary — the upstream provider registry as seen by the mirror.

Bridge boundary
---------------
The mirror needs three things from a provider registry: the versions it
offers with their platforms, the package metadata for one platform (which
carries the checksum manifest URL, signature URL and signing keys), and the
raw bytes behind those URLs.  Resolving a registry hostname to its
``providers.v1`` base URL is a separate discovery step.

Both are protocols.  Concrete HTTP implementations live outside this
package and are loaded from the entry points named in ``MirrorSettings``.
"""

from __future__ import annotations

import importlib
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from providermirror.errors import ErrorCode, MirrorError
from providermirror.models.provider import Provider

PROVIDERS_SERVICE_ID = "providers.v1"


class PlatformInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    os: str
    arch: str


class ProviderVersionInfo(BaseModel):
    """A version offered upstream and the platforms it is built for."""

    model_config = ConfigDict(frozen=True)

    version: str
    platforms: list[PlatformInfo] = Field(default_factory=list)


class PackageInfo(BaseModel):
    """Where to find the signed checksum manifest for a provider version."""

    model_config = ConfigDict(frozen=True)

    manifest_url: str
    signature_url: str
    armored_keys: list[str] = Field(default_factory=list)


@runtime_checkable
class ServiceDiscoverer(Protocol):
    def discover_service_url(
        self, hostname: str, service_id: str, *, timeout: float | None = None
    ) -> str:
        ...


@runtime_checkable
class RegistryProtocolClient(Protocol):
    def list_versions(
        self, provider: Provider, service_url: str, *, timeout: float | None = None
    ) -> list[ProviderVersionInfo]:
        ...

    def get_package_info(
        self,
        provider: Provider,
        version: str,
        os: str,
        arch: str,
        service_url: str,
        *,
        timeout: float | None = None,
    ) -> PackageInfo:
        ...

    def fetch(self, url: str, *, timeout: float | None = None) -> bytes:
        ...


class UnconfiguredRegistry:
    """Stands in when no registry client is configured.

    Catalog and package operations work without upstream access; anything
    that needs the registry fails with an ``invalid`` error naming the
    setting to fix.
    """

    def _fail(self) -> MirrorError:
        return MirrorError(
            "No registry client configured. Set PROVIDERMIRROR_REGISTRY_CLIENT_ENTRY_POINT.",
            code=ErrorCode.INVALID,
        )

    def discover_service_url(
        self, hostname: str, service_id: str, *, timeout: float | None = None
    ) -> str:
        raise self._fail()

    def list_versions(
        self, provider: Provider, service_url: str, *, timeout: float | None = None
    ) -> list[ProviderVersionInfo]:
        raise self._fail()

    def get_package_info(
        self,
        provider: Provider,
        version: str,
        os: str,
        arch: str,
        service_url: str,
        *,
        timeout: float | None = None,
    ) -> PackageInfo:
        raise self._fail()

    def fetch(self, url: str, *, timeout: float | None = None) -> bytes:
        raise self._fail()


def load_entry_point(entry_point: str) -> Any:
    """Import ``module:attribute`` and return the attribute.

    Callables, classes included, are called with no arguments. Other
    objects are returned as is.

    Raises
    ------
    ValueError
        If *entry_point* is empty or not of the ``module:attribute`` form.
    """
    module_name, sep, attr = entry_point.partition(":")
    if not entry_point or not sep or not module_name or not attr:
        raise ValueError(f"Entry point must look like 'module:attribute', got {entry_point!r}")
    target = getattr(importlib.import_module(module_name), attr)
    return target() if callable(target) else target

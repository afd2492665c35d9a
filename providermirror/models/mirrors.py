"""Mirror catalog entities — groups, version mirrors and platform mirrors.

A ``VersionMirror`` records a provider version cached for a root group,
together with the digest table taken from the upstream checksum manifest
after its signature was verified.  The table is set once, at creation, and
never updated.  A ``PlatformMirror`` records one admitted (os, arch)
package belonging to a version mirror.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType

from pydantic import BaseModel, ConfigDict, Field, field_validator

from providermirror.models.provider import package_name, platform_key

VERSION_MIRROR_TRN_TYPE = "terraform_provider_version_mirror"
PLATFORM_MIRROR_TRN_TYPE = "terraform_provider_platform_mirror"


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Group(BaseModel):
    """A namespace in the group tree.  Root groups have no parent."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    name: str
    parent_id: str | None = None
    full_path: str

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


class ResourceMetadata(BaseModel):
    """Identity and optimistic-lock counter shared by catalog rows."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    version: int = 1
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    trn: str = ""


class VersionMirror(BaseModel):
    """A mirrored provider version owned by a root group."""

    model_config = ConfigDict(frozen=True)

    metadata: ResourceMetadata = Field(default_factory=ResourceMetadata)
    created_by: str
    group_id: str
    registry_hostname: str
    registry_namespace: str
    type: str
    semantic_version: str
    digests: Mapping[str, bytes]

    @field_validator("digests")
    @classmethod
    def _digests_are_sha256(cls, value: Mapping[str, bytes]) -> Mapping[str, bytes]:
        for filename, digest in value.items():
            if len(digest) != 32:
                raise ValueError(
                    f"digest for {filename!r} is {len(digest)} bytes, expected 32"
                )
        return MappingProxyType(dict(value))

    @property
    def id(self) -> str:
        return self.metadata.id

    @property
    def provider_address(self) -> str:
        return f"{self.registry_hostname}/{self.registry_namespace}/{self.type}"

    def expected_digest(self, os: str, arch: str) -> bytes | None:
        """Return the recorded digest for the (os, arch) package, if any."""
        return self.digests.get(package_name(self.type, self.semantic_version, os, arch))


class PlatformMirror(BaseModel):
    """One admitted (os, arch) package of a version mirror."""

    model_config = ConfigDict(frozen=True)

    metadata: ResourceMetadata = Field(default_factory=ResourceMetadata)
    version_mirror_id: str
    os: str
    architecture: str

    @property
    def id(self) -> str:
        return self.metadata.id

    @property
    def platform(self) -> str:
        return platform_key(self.os, self.architecture)


def version_mirror_trn(group_path: str, mirror: VersionMirror) -> str:
    return (
        f"trn:{VERSION_MIRROR_TRN_TYPE}:{group_path}/{mirror.registry_hostname}/"
        f"{mirror.registry_namespace}/{mirror.type}/{mirror.semantic_version}"
    )


def platform_mirror_trn(version_mirror_trn_value: str, os: str, arch: str) -> str:
    resource_path = version_mirror_trn_value.split(":", 2)[2]
    return f"trn:{PLATFORM_MIRROR_TRN_TYPE}:{resource_path}/{os}/{arch}"


# ---------------------------------------------------------------------------
# Listing: sort, filter, pagination
# ---------------------------------------------------------------------------

class VersionMirrorSort(str, Enum):
    CREATED_AT_ASC = "CREATED_AT_ASC"
    CREATED_AT_DESC = "CREATED_AT_DESC"
    SEMANTIC_VERSION_ASC = "SEMANTIC_VERSION_ASC"
    SEMANTIC_VERSION_DESC = "SEMANTIC_VERSION_DESC"


class PlatformMirrorSort(str, Enum):
    CREATED_AT_ASC = "CREATED_AT_ASC"
    CREATED_AT_DESC = "CREATED_AT_DESC"


class PaginationOptions(BaseModel):
    """Offset pagination.  ``first=0`` returns no rows, only the total count."""

    model_config = ConfigDict(frozen=True)

    first: int | None = Field(default=None, ge=0)
    offset: int = Field(default=0, ge=0)


COUNT_ONLY = PaginationOptions(first=0)


class PageInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_count: int
    has_next_page: bool = False


class VersionMirrorFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    group_id: str | None = None
    registry_hostname: str | None = None
    registry_namespace: str | None = None
    type: str | None = None
    semantic_version: str | None = None
    version_mirror_ids: list[str] | None = None
    namespace_paths: list[str] | None = None
    has_packages: bool | None = None


class PlatformMirrorFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    version_mirror_id: str | None = None
    os: str | None = None
    architecture: str | None = None


class VersionMirrorsResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    page_info: PageInfo
    version_mirrors: list[VersionMirror]


class PlatformMirrorsResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    page_info: PageInfo
    platform_mirrors: list[PlatformMirror]

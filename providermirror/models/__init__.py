"""Provider mirror data models — all Pydantic v2, all frozen (immutable)."""

from providermirror.models.events import ActivityAction, ActivityEvent, ActivityTarget
from providermirror.models.mirrors import (
    COUNT_ONLY,
    Group,
    PageInfo,
    PaginationOptions,
    PlatformMirror,
    PlatformMirrorFilter,
    PlatformMirrorSort,
    PlatformMirrorsResult,
    ResourceMetadata,
    VersionMirror,
    VersionMirrorFilter,
    VersionMirrorSort,
    VersionMirrorsResult,
)
from providermirror.models.provider import (
    Provider,
    package_name,
    parse_provider_fqn,
    parse_semantic_version,
    platform_key,
)

__all__ = [
    # provider
    "Provider",
    "package_name",
    "parse_provider_fqn",
    "parse_semantic_version",
    "platform_key",
    # mirrors
    "Group",
    "ResourceMetadata",
    "VersionMirror",
    "PlatformMirror",
    "VersionMirrorSort",
    "PlatformMirrorSort",
    "PaginationOptions",
    "COUNT_ONLY",
    "PageInfo",
    "VersionMirrorFilter",
    "PlatformMirrorFilter",
    "VersionMirrorsResult",
    "PlatformMirrorsResult",
    # events
    "ActivityAction",
    "ActivityEvent",
    "ActivityTarget",
]

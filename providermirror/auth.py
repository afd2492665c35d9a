"""Callers, permissions and the per-request context.

Caller resolution is done by the transport layer; this module only defines
what the mirror service needs from a caller: a subject for audit records
and two checks.

* ``require_permission`` — the caller holds *permission* on the group path
  or on one of its ancestors.
* ``require_access_to_inheritable_resource`` — the caller may see a resource
  that lives in the group path.  Mirrors in a root group are inherited by
  every descendant group, so any membership at the path, above it or below
  it grants view access.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Mapping
from enum import Enum
from typing import Protocol, runtime_checkable

from providermirror.errors import ErrorCode, MirrorError, forbidden


class Permission(str, Enum):
    VIEW_PROVIDER_MIRROR = "view_provider_mirror"
    CREATE_PROVIDER_MIRROR = "create_provider_mirror"
    DELETE_PROVIDER_MIRROR = "delete_provider_mirror"


class Role(str, Enum):
    VIEWER = "viewer"
    DEPLOYER = "deployer"
    OWNER = "owner"


ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    Role.VIEWER: frozenset({Permission.VIEW_PROVIDER_MIRROR}),
    Role.DEPLOYER: frozenset(
        {Permission.VIEW_PROVIDER_MIRROR, Permission.CREATE_PROVIDER_MIRROR}
    ),
    Role.OWNER: frozenset(Permission),
}


@runtime_checkable
class Caller(Protocol):
    @property
    def subject(self) -> str:
        ...

    def require_permission(self, permission: Permission, group_path: str) -> None:
        ...

    def require_access_to_inheritable_resource(self, group_path: str) -> None:
        ...


def _ancestors_and_self(path: str) -> list[str]:
    parts = path.split("/")
    return ["/".join(parts[:i]) for i in range(len(parts), 0, -1)]


class GroupRoleCaller:
    """A user or service account with roles on group paths.

    Roles apply to the group they are granted on and to all its descendants.

    Parameters
    ----------
    subject:
        Identity recorded as ``created_by`` on mirrors and events.
    roles:
        Mapping of group full path to the role held there.
    """

    def __init__(self, subject: str, roles: Mapping[str, Role]) -> None:
        self._subject = subject
        self._roles = dict(roles)

    @property
    def subject(self) -> str:
        return self._subject

    def require_permission(self, permission: Permission, group_path: str) -> None:
        for path in _ancestors_and_self(group_path):
            role = self._roles.get(path)
            if role is not None and permission in ROLE_PERMISSIONS[role]:
                return
        raise forbidden(
            f"Caller {self._subject} is not authorized to perform "
            f"{permission.value} on group {group_path}"
        )

    def require_access_to_inheritable_resource(self, group_path: str) -> None:
        if any(path in self._roles for path in _ancestors_and_self(group_path)):
            return
        prefix = f"{group_path}/"
        if any(path.startswith(prefix) for path in self._roles):
            return
        raise forbidden(
            f"Caller {self._subject} is not authorized to view provider mirrors "
            f"in group {group_path}"
        )


class SystemCaller:
    """Internal caller allowed everything; used by the CLI."""

    def __init__(self, subject: str = "system") -> None:
        self._subject = subject

    @property
    def subject(self) -> str:
        return self._subject

    def require_permission(self, permission: Permission, group_path: str) -> None:
        return None

    def require_access_to_inheritable_resource(self, group_path: str) -> None:
        return None


class RequestContext:
    """Caller identity plus the deadline and cancellation flag of one request.

    Parameters
    ----------
    caller:
        The resolved caller, or ``None`` for an unauthenticated request.
    timeout:
        Seconds from construction until the request expires.  ``None`` means
        no deadline.
    """

    def __init__(self, caller: Caller | None, *, timeout: float | None = None) -> None:
        self.caller = caller
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def check(self) -> None:
        """Raise if the request was cancelled or its deadline has passed."""
        if self._cancelled.is_set():
            raise MirrorError("request cancelled", code=ErrorCode.CANCELLED)
        if self._deadline is not None and time.monotonic() >= self._deadline:
            raise MirrorError("request deadline exceeded", code=ErrorCode.CANCELLED)

    def remaining(self, default: float | None = None) -> float | None:
        """Seconds left for a collaborator call, capped at *default*."""
        self.check()
        if self._deadline is None:
            return default
        left = self._deadline - time.monotonic()
        return left if default is None else min(left, default)

    def authorize(self) -> Caller:
        """Return the caller, or raise forbidden for anonymous requests."""
        if self.caller is None:
            raise forbidden("Authentication is required")
        return self.caller

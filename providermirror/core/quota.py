"""Per-group resource limits.

Limits are looked up in the catalog by name, first scoped to the group and
then globally; if neither row exists the configured default applies.  The
check must run inside the same catalog transaction as the insert it guards.
"""

from __future__ import annotations

import logging

from providermirror.core.catalog import CatalogSession
from providermirror.errors import invalid
from providermirror.models.mirrors import COUNT_ONLY, VersionMirrorFilter

logger = logging.getLogger(__name__)

VERSION_MIRRORS_PER_GROUP = "version_mirrors_per_group"


class QuotaEnforcer:
    """Enforce catalog quotas.

    Parameters
    ----------
    default_version_mirrors_per_group:
        Limit used when the catalog holds no ``version_mirrors_per_group`` row.
    """

    def __init__(self, default_version_mirrors_per_group: int) -> None:
        self._default_version_mirrors = default_version_mirrors_per_group

    def limit(self, session: CatalogSession, name: str, group_id: str) -> int:
        value = session.get_resource_limit(name, scope=group_id)
        return self._default_version_mirrors if value is None else value

    def check_version_mirror_quota(self, session: CatalogSession, group_id: str) -> None:
        """Raise invalid if the group already holds its limit of version mirrors."""
        limit = self.limit(session, VERSION_MIRRORS_PER_GROUP, group_id)
        existing = session.get_version_mirrors(
            VersionMirrorFilter(group_id=group_id), pagination=COUNT_ONLY
        ).page_info.total_count

        if existing >= limit:
            logger.info(
                "Group %s is at its provider version mirror limit (%d/%d).",
                group_id,
                existing,
                limit,
            )
            raise invalid(
                f"quota exceeded: group may hold at most {limit} provider version "
                f"mirrors; it already has {existing}"
            )

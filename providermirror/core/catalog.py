"""Mirror catalog backed by SQLite.

The catalog persists groups, version mirrors, platform mirrors, resource
limits and activity events.  All access goes through a ``CatalogSession``
bound to one connection:

- ``MirrorCatalog.reader()`` — autocommit session for reads and single
  writes.
- ``MirrorCatalog.transaction()`` — explicit transaction.  It commits only
  when ``commit()`` is called; leaving the block any other way rolls back.

Design:
- WAL journal mode for concurrent readers.
- ``BEGIN IMMEDIATE`` by default, so a transaction holds the write lock from
  its first statement.  Count-then-insert sequences (quota checks) are
  therefore serialized across connections by SQLite itself.
- Foreign keys with ``ON DELETE CASCADE``: deleting a version mirror removes
  its platform mirrors.
- Optimistic locking on deletes via the ``version`` column.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from providermirror.errors import MirrorError, conflict, invalid, not_found
from providermirror.models.events import ActivityEvent
from providermirror.models.mirrors import (
    PLATFORM_MIRROR_TRN_TYPE,
    VERSION_MIRROR_TRN_TYPE,
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
    platform_mirror_trn,
    version_mirror_trn,
)
from providermirror.models.provider import semver_sort_key

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS groups (
        id          TEXT PRIMARY KEY,
        name        TEXT NOT NULL,
        parent_id   TEXT REFERENCES groups(id) ON DELETE CASCADE,
        full_path   TEXT NOT NULL UNIQUE
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS version_mirrors (
        seq                 INTEGER PRIMARY KEY AUTOINCREMENT,
        id                  TEXT NOT NULL UNIQUE,
        version             INTEGER NOT NULL,
        created_at          TEXT NOT NULL,
        updated_at          TEXT NOT NULL,
        created_by          TEXT NOT NULL,
        group_id            TEXT NOT NULL REFERENCES groups(id) ON DELETE CASCADE,
        registry_hostname   TEXT NOT NULL,
        registry_namespace  TEXT NOT NULL,
        type                TEXT NOT NULL,
        semantic_version    TEXT NOT NULL,
        digests             TEXT NOT NULL,
        UNIQUE (group_id, registry_hostname, registry_namespace, type, semantic_version)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS platform_mirrors (
        seq                 INTEGER PRIMARY KEY AUTOINCREMENT,
        id                  TEXT NOT NULL UNIQUE,
        version             INTEGER NOT NULL,
        created_at          TEXT NOT NULL,
        updated_at          TEXT NOT NULL,
        version_mirror_id   TEXT NOT NULL REFERENCES version_mirrors(id) ON DELETE CASCADE,
        os                  TEXT NOT NULL,
        architecture        TEXT NOT NULL,
        UNIQUE (version_mirror_id, os, architecture)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS resource_limits (
        name    TEXT NOT NULL,
        scope   TEXT NOT NULL DEFAULT '',
        value   INTEGER NOT NULL,
        PRIMARY KEY (name, scope)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS activity_events (
        seq             INTEGER PRIMARY KEY AUTOINCREMENT,
        id              TEXT NOT NULL UNIQUE,
        created_at      TEXT NOT NULL,
        created_by      TEXT NOT NULL,
        namespace_path  TEXT NOT NULL,
        action          TEXT NOT NULL,
        target_type     TEXT NOT NULL,
        target_id       TEXT NOT NULL,
        payload         TEXT NOT NULL DEFAULT '{}'
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_vm_group ON version_mirrors(group_id, seq);",
    "CREATE INDEX IF NOT EXISTS idx_pm_parent ON platform_mirrors(version_mirror_id, seq);",
)

_VERSION_MIRROR_COLUMNS = (
    "vm.id, vm.version, vm.created_at, vm.updated_at, vm.created_by, vm.group_id, "
    "vm.registry_hostname, vm.registry_namespace, vm.type, vm.semantic_version, "
    "vm.digests, g.full_path"
)

_PLATFORM_MIRROR_COLUMNS = (
    "pm.id, pm.version, pm.created_at, pm.updated_at, pm.version_mirror_id, "
    "pm.os, pm.architecture, vm.registry_hostname, vm.registry_namespace, "
    "vm.type, vm.semantic_version, g.full_path"
)

_VERSION_MIRROR_FROM = "FROM version_mirrors vm JOIN groups g ON g.id = vm.group_id"
_PLATFORM_MIRROR_FROM = (
    "FROM platform_mirrors pm "
    "JOIN version_mirrors vm ON vm.id = pm.version_mirror_id "
    "JOIN groups g ON g.id = vm.group_id"
)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def _in_clause(column: str, values: list[str]) -> tuple[str, list[Any]]:
    placeholders = ", ".join("?" for _ in values)
    return f"{column} IN ({placeholders})", list(values)


def _split_trn(trn: str, expected_type: str, parts_after_group: int) -> list[str]:
    prefix = f"trn:{expected_type}:"
    if not trn.startswith(prefix):
        raise invalid(f"Not a {expected_type} TRN: {trn!r}")
    parts = trn[len(prefix):].split("/")
    if len(parts) < parts_after_group + 1 or not all(parts):
        raise invalid(f"Malformed {expected_type} TRN: {trn!r}")
    group_path = "/".join(parts[:-parts_after_group])
    return [group_path, *parts[-parts_after_group:]]


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class CatalogSession:
    """Catalog queries bound to one SQLite connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    # -- Groups -------------------------------------------------------------

    def create_group(self, full_path: str) -> Group:
        """Create a group.  Its parent path, if any, must already exist."""
        full_path = full_path.strip("/")
        if not full_path:
            raise invalid("Group path must not be empty")
        parent_path, _, name = full_path.rpartition("/")
        parent_id = None
        if parent_path:
            parent = self.get_group_by_full_path(parent_path)
            if parent is None:
                raise not_found(f"Parent group {parent_path} not found")
            parent_id = parent.id

        group = Group(name=name, parent_id=parent_id, full_path=full_path)
        try:
            self._conn.execute(
                "INSERT INTO groups (id, name, parent_id, full_path) VALUES (?, ?, ?, ?)",
                (group.id, group.name, group.parent_id, group.full_path),
            )
        except sqlite3.IntegrityError as exc:
            raise conflict(f"Group {full_path} already exists") from exc
        return group

    def get_group_by_full_path(self, full_path: str) -> Group | None:
        row = self._conn.execute(
            "SELECT id, name, parent_id, full_path FROM groups WHERE full_path = ?",
            (full_path,),
        ).fetchone()
        return self._row_to_group(row) if row else None

    def get_group_by_id(self, group_id: str) -> Group | None:
        row = self._conn.execute(
            "SELECT id, name, parent_id, full_path FROM groups WHERE id = ?",
            (group_id,),
        ).fetchone()
        return self._row_to_group(row) if row else None

    # -- Version mirrors ----------------------------------------------------

    def create_version_mirror(self, mirror: VersionMirror) -> VersionMirror:
        """Insert *mirror*.  A duplicate provider version in the group is a conflict."""
        meta = mirror.metadata
        digests = json.dumps(
            {name: digest.hex() for name, digest in sorted(mirror.digests.items())}
        )
        try:
            self._conn.execute(
                """
                INSERT INTO version_mirrors
                    (id, version, created_at, updated_at, created_by, group_id,
                     registry_hostname, registry_namespace, type, semantic_version,
                     digests)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    meta.id,
                    meta.version,
                    _timestamp(meta.created_at),
                    _timestamp(meta.updated_at),
                    mirror.created_by,
                    mirror.group_id,
                    mirror.registry_hostname,
                    mirror.registry_namespace,
                    mirror.type,
                    mirror.semantic_version,
                    digests,
                ),
            )
        except sqlite3.IntegrityError as exc:
            if "UNIQUE" in str(exc):
                raise conflict("terraform provider version is already mirrored") from exc
            raise not_found(f"Group {mirror.group_id} not found") from exc

        created = self.get_version_mirror_by_id(meta.id)
        if created is None:
            raise MirrorError(f"Version mirror {meta.id} missing after insert")
        return created

    def get_version_mirror_by_id(self, mirror_id: str) -> VersionMirror | None:
        row = self._conn.execute(
            f"SELECT {_VERSION_MIRROR_COLUMNS} {_VERSION_MIRROR_FROM} WHERE vm.id = ?",
            (mirror_id,),
        ).fetchone()
        return self._row_to_version_mirror(row) if row else None

    def get_version_mirror_by_trn(self, trn: str) -> VersionMirror | None:
        group_path, hostname, namespace, provider_type, version = _split_trn(
            trn, VERSION_MIRROR_TRN_TYPE, 4
        )
        row = self._conn.execute(
            f"""
            SELECT {_VERSION_MIRROR_COLUMNS} {_VERSION_MIRROR_FROM}
            WHERE g.full_path = ? AND vm.registry_hostname = ?
              AND vm.registry_namespace = ? AND vm.type = ? AND vm.semantic_version = ?
            """,
            (group_path, hostname, namespace, provider_type, version),
        ).fetchone()
        return self._row_to_version_mirror(row) if row else None

    def get_version_mirrors(
        self,
        filter: VersionMirrorFilter | None = None,
        *,
        sort: VersionMirrorSort | None = None,
        pagination: PaginationOptions | None = None,
    ) -> VersionMirrorsResult:
        """List version mirrors.

        ``pagination.first == 0`` runs only the count query and returns an
        empty page with the total count.
        """
        where, params = self._version_mirror_where(filter or VersionMirrorFilter())
        total = self._conn.execute(
            f"SELECT COUNT(*) {_VERSION_MIRROR_FROM} {where}", params
        ).fetchone()[0]

        pagination = pagination or PaginationOptions()
        if pagination.first == 0:
            return VersionMirrorsResult(
                page_info=PageInfo(total_count=total, has_next_page=total > 0),
                version_mirrors=[],
            )

        by_semver = sort in (
            VersionMirrorSort.SEMANTIC_VERSION_ASC,
            VersionMirrorSort.SEMANTIC_VERSION_DESC,
        )
        descending = sort is not None and sort.value.endswith("_DESC")
        order = "DESC" if descending and not by_semver else "ASC"
        query = f"SELECT {_VERSION_MIRROR_COLUMNS} {_VERSION_MIRROR_FROM} {where} ORDER BY vm.seq {order}"

        if by_semver:
            rows = self._conn.execute(query, params).fetchall()
            mirrors = sorted(
                (self._row_to_version_mirror(row) for row in rows),
                key=lambda m: semver_sort_key(m.semantic_version),
                reverse=descending,
            )
            end = None if pagination.first is None else pagination.offset + pagination.first
            page = mirrors[pagination.offset:end]
        else:
            limit = -1 if pagination.first is None else pagination.first
            rows = self._conn.execute(
                f"{query} LIMIT ? OFFSET ?", [*params, limit, pagination.offset]
            ).fetchall()
            page = [self._row_to_version_mirror(row) for row in rows]

        return VersionMirrorsResult(
            page_info=PageInfo(
                total_count=total,
                has_next_page=pagination.offset + len(page) < total,
            ),
            version_mirrors=page,
        )

    def delete_version_mirror(self, mirror: VersionMirror) -> None:
        """Delete *mirror* and, by cascade, its platform mirrors."""
        cursor = self._conn.execute(
            "DELETE FROM version_mirrors WHERE id = ? AND version = ?",
            (mirror.id, mirror.metadata.version),
        )
        if cursor.rowcount == 0:
            raise conflict(
                "Provider version mirror was modified or deleted concurrently"
            )

    # -- Platform mirrors ---------------------------------------------------

    def create_platform_mirror(self, mirror: PlatformMirror) -> PlatformMirror:
        meta = mirror.metadata
        try:
            self._conn.execute(
                """
                INSERT INTO platform_mirrors
                    (id, version, created_at, updated_at, version_mirror_id, os, architecture)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    meta.id,
                    meta.version,
                    _timestamp(meta.created_at),
                    _timestamp(meta.updated_at),
                    mirror.version_mirror_id,
                    mirror.os,
                    mirror.architecture,
                ),
            )
        except sqlite3.IntegrityError as exc:
            if "UNIQUE" in str(exc):
                raise conflict("provider platform package is already mirrored") from exc
            raise not_found(
                f"Provider version mirror {mirror.version_mirror_id} not found"
            ) from exc

        created = self.get_platform_mirror_by_id(meta.id)
        if created is None:
            raise MirrorError(f"Platform mirror {meta.id} missing after insert")
        return created

    def get_platform_mirror_by_id(self, mirror_id: str) -> PlatformMirror | None:
        row = self._conn.execute(
            f"SELECT {_PLATFORM_MIRROR_COLUMNS} {_PLATFORM_MIRROR_FROM} WHERE pm.id = ?",
            (mirror_id,),
        ).fetchone()
        return self._row_to_platform_mirror(row) if row else None

    def get_platform_mirror_by_trn(self, trn: str) -> PlatformMirror | None:
        group_path, hostname, namespace, provider_type, version, os, arch = _split_trn(
            trn, PLATFORM_MIRROR_TRN_TYPE, 6
        )
        row = self._conn.execute(
            f"""
            SELECT {_PLATFORM_MIRROR_COLUMNS} {_PLATFORM_MIRROR_FROM}
            WHERE g.full_path = ? AND vm.registry_hostname = ?
              AND vm.registry_namespace = ? AND vm.type = ? AND vm.semantic_version = ?
              AND pm.os = ? AND pm.architecture = ?
            """,
            (group_path, hostname, namespace, provider_type, version, os, arch),
        ).fetchone()
        return self._row_to_platform_mirror(row) if row else None

    def get_platform_mirrors(
        self,
        filter: PlatformMirrorFilter | None = None,
        *,
        sort: PlatformMirrorSort | None = None,
        pagination: PaginationOptions | None = None,
    ) -> PlatformMirrorsResult:
        filter = filter or PlatformMirrorFilter()
        clauses: list[str] = []
        params: list[Any] = []
        if filter.version_mirror_id is not None:
            clauses.append("pm.version_mirror_id = ?")
            params.append(filter.version_mirror_id)
        if filter.os is not None:
            clauses.append("pm.os = ?")
            params.append(filter.os)
        if filter.architecture is not None:
            clauses.append("pm.architecture = ?")
            params.append(filter.architecture)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        total = self._conn.execute(
            f"SELECT COUNT(*) {_PLATFORM_MIRROR_FROM} {where}", params
        ).fetchone()[0]

        pagination = pagination or PaginationOptions()
        if pagination.first == 0:
            return PlatformMirrorsResult(
                page_info=PageInfo(total_count=total, has_next_page=total > 0),
                platform_mirrors=[],
            )

        order = "DESC" if sort == PlatformMirrorSort.CREATED_AT_DESC else "ASC"
        limit = -1 if pagination.first is None else pagination.first
        rows = self._conn.execute(
            f"SELECT {_PLATFORM_MIRROR_COLUMNS} {_PLATFORM_MIRROR_FROM} {where} "
            f"ORDER BY pm.seq {order} LIMIT ? OFFSET ?",
            [*params, limit, pagination.offset],
        ).fetchall()
        page = [self._row_to_platform_mirror(row) for row in rows]
        return PlatformMirrorsResult(
            page_info=PageInfo(
                total_count=total,
                has_next_page=pagination.offset + len(page) < total,
            ),
            platform_mirrors=page,
        )

    def delete_platform_mirror(self, mirror: PlatformMirror) -> None:
        cursor = self._conn.execute(
            "DELETE FROM platform_mirrors WHERE id = ? AND version = ?",
            (mirror.id, mirror.metadata.version),
        )
        if cursor.rowcount == 0:
            raise conflict(
                "Provider platform mirror was modified or deleted concurrently"
            )

    # -- Resource limits ----------------------------------------------------

    def set_resource_limit(self, name: str, value: int, *, scope: str = "") -> None:
        if value < 0:
            raise invalid(f"Resource limit {name} must not be negative")
        self._conn.execute(
            "INSERT INTO resource_limits (name, scope, value) VALUES (?, ?, ?) "
            "ON CONFLICT (name, scope) DO UPDATE SET value = excluded.value",
            (name, scope, value),
        )

    def get_resource_limit(self, name: str, *, scope: str = "") -> int | None:
        """Return the limit for *scope*, falling back to the global value."""
        row = self._conn.execute(
            "SELECT value FROM resource_limits WHERE name = ? AND scope IN (?, '') "
            "ORDER BY scope = '' LIMIT 1",
            (name, scope),
        ).fetchone()
        return row[0] if row else None

    # -- Activity events ----------------------------------------------------

    def create_activity_event(self, event: ActivityEvent) -> ActivityEvent:
        self._conn.execute(
            """
            INSERT INTO activity_events
                (id, created_at, created_by, namespace_path, action,
                 target_type, target_id, payload)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.id,
                _timestamp(event.created_at),
                event.created_by,
                event.namespace_path,
                event.action.value,
                event.target_type.value,
                event.target_id,
                json.dumps(event.payload, sort_keys=True),
            ),
        )
        return event

    def get_activity_events(self, namespace_path: str | None = None) -> list[ActivityEvent]:
        query = (
            "SELECT id, created_at, created_by, namespace_path, action, "
            "target_type, target_id, payload FROM activity_events"
        )
        params: tuple = ()
        if namespace_path is not None:
            query += " WHERE namespace_path = ?"
            params = (namespace_path,)
        rows = self._conn.execute(f"{query} ORDER BY seq ASC", params).fetchall()
        return [
            ActivityEvent(
                id=row[0],
                created_at=row[1],
                created_by=row[2],
                namespace_path=row[3],
                action=row[4],
                target_type=row[5],
                target_id=row[6],
                payload=json.loads(row[7]),
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _version_mirror_where(filter: VersionMirrorFilter) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        for column, value in (
            ("vm.group_id", filter.group_id),
            ("vm.registry_hostname", filter.registry_hostname),
            ("vm.registry_namespace", filter.registry_namespace),
            ("vm.type", filter.type),
            ("vm.semantic_version", filter.semantic_version),
        ):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)

        # An explicitly empty id or path list matches nothing.
        for column, values in (
            ("vm.id", filter.version_mirror_ids),
            ("g.full_path", filter.namespace_paths),
        ):
            if values is None:
                continue
            if not values:
                clauses.append("0")
                continue
            clause, clause_params = _in_clause(column, values)
            clauses.append(clause)
            params.extend(clause_params)

        if filter.has_packages is not None:
            exists = "EXISTS (SELECT 1 FROM platform_mirrors p WHERE p.version_mirror_id = vm.id)"
            clauses.append(exists if filter.has_packages else f"NOT {exists}")

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    @staticmethod
    def _row_to_group(row: tuple) -> Group:
        group_id, name, parent_id, full_path = row
        return Group(id=group_id, name=name, parent_id=parent_id, full_path=full_path)

    @staticmethod
    def _row_to_version_mirror(row: tuple) -> VersionMirror:
        (
            mirror_id,
            version,
            created_at,
            updated_at,
            created_by,
            group_id,
            registry_hostname,
            registry_namespace,
            provider_type,
            semantic_version,
            digests_json,
            group_path,
        ) = row
        mirror = VersionMirror(
            metadata=ResourceMetadata(
                id=mirror_id,
                version=version,
                created_at=created_at,
                updated_at=updated_at,
            ),
            created_by=created_by,
            group_id=group_id,
            registry_hostname=registry_hostname,
            registry_namespace=registry_namespace,
            type=provider_type,
            semantic_version=semantic_version,
            digests={
                name: bytes.fromhex(hex_digest)
                for name, hex_digest in json.loads(digests_json).items()
            },
        )
        trn = version_mirror_trn(group_path, mirror)
        return mirror.model_copy(
            update={"metadata": mirror.metadata.model_copy(update={"trn": trn})}
        )

    @staticmethod
    def _row_to_platform_mirror(row: tuple) -> PlatformMirror:
        (
            mirror_id,
            version,
            created_at,
            updated_at,
            version_mirror_id,
            os,
            architecture,
            registry_hostname,
            registry_namespace,
            provider_type,
            semantic_version,
            group_path,
        ) = row
        parent_trn = (
            f"trn:{VERSION_MIRROR_TRN_TYPE}:{group_path}/{registry_hostname}/"
            f"{registry_namespace}/{provider_type}/{semantic_version}"
        )
        return PlatformMirror(
            metadata=ResourceMetadata(
                id=mirror_id,
                version=version,
                created_at=created_at,
                updated_at=updated_at,
                trn=platform_mirror_trn(parent_trn, os, architecture),
            ),
            version_mirror_id=version_mirror_id,
            os=os,
            architecture=architecture,
        )


class CatalogTransaction(CatalogSession):
    """A session inside an open transaction.  Call ``commit()`` to keep changes."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        super().__init__(conn)
        self._committed = False

    @property
    def committed(self) -> bool:
        return self._committed

    def commit(self) -> None:
        self._conn.execute("COMMIT")
        self._committed = True


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class MirrorCatalog:
    """SQLite-backed mirror catalog.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.  Created if it does not exist.
    busy_timeout:
        Seconds a connection waits for another writer's lock before failing.
    """

    def __init__(self, db_path: Path, *, busy_timeout: float = 5.0) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._busy_timeout = busy_timeout
        self._init_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self._db_path),
            timeout=self._busy_timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def _init_schema(self) -> None:
        conn = self._connect()
        try:
            for statement in _SCHEMA:
                conn.execute(statement)
        finally:
            conn.close()

    @contextmanager
    def reader(self) -> Iterator[CatalogSession]:
        """Yield an autocommit session."""
        conn = self._connect()
        try:
            yield CatalogSession(conn)
        finally:
            conn.close()

    @contextmanager
    def transaction(self, *, immediate: bool = True) -> Iterator[CatalogTransaction]:
        """Yield a session inside a transaction.

        The transaction is rolled back unless ``commit()`` was called before
        the block exits, including when the block raises.
        """
        conn = self._connect()
        conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
        tx = CatalogTransaction(conn)
        try:
            yield tx
        finally:
            if not tx.committed:
                try:
                    conn.execute("ROLLBACK")
                except sqlite3.Error:
                    logger.exception("Failed to roll back catalog transaction.")
            conn.close()

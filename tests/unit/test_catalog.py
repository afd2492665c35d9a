"""Tests for the MirrorCatalog — SQLite persistence, transactions, listing."""

from __future__ import annotations

import hashlib

import pytest

from providermirror.core.catalog import CatalogSession, MirrorCatalog
from providermirror.errors import ErrorCode, MirrorError
from providermirror.models.events import ActivityAction, ActivityEvent, ActivityTarget
from providermirror.models.mirrors import (
    COUNT_ONLY,
    Group,
    PaginationOptions,
    PlatformMirror,
    PlatformMirrorFilter,
    PlatformMirrorSort,
    VersionMirror,
    VersionMirrorFilter,
    VersionMirrorSort,
)

_DIGESTS = {"terraform-provider-aws_1.0.0_linux_amd64.zip": hashlib.sha256(b"x").digest()}


def _version_mirror(group: Group, version: str = "1.0.0", provider_type: str = "aws") -> VersionMirror:
    return VersionMirror(
        created_by="alice",
        group_id=group.id,
        registry_hostname="registry.example.com",
        registry_namespace="hashicorp",
        type=provider_type,
        semantic_version=version,
        digests=_DIGESTS,
    )


def _insert(catalog: MirrorCatalog, mirror: VersionMirror) -> VersionMirror:
    with catalog.reader() as db:
        return db.create_version_mirror(mirror)


def _add_platform(catalog: MirrorCatalog, mirror: VersionMirror, os: str = "linux", arch: str = "amd64") -> PlatformMirror:
    with catalog.reader() as db:
        return db.create_platform_mirror(
            PlatformMirror(version_mirror_id=mirror.id, os=os, architecture=arch)
        )


class TestGroups:
    def test_create_root_and_child(self, catalog: MirrorCatalog):
        with catalog.reader() as db:
            root = db.create_group("acme")
            child = db.create_group("acme/team")
        assert root.is_root
        assert child.parent_id == root.id
        assert child.name == "team"

    def test_child_requires_parent(self, catalog: MirrorCatalog):
        with catalog.reader() as db, pytest.raises(MirrorError) as exc_info:
            db.create_group("missing/team")
        assert exc_info.value.code == ErrorCode.NOT_FOUND

    def test_duplicate_group_conflicts(self, catalog: MirrorCatalog, root_group: Group):
        with catalog.reader() as db, pytest.raises(MirrorError) as exc_info:
            db.create_group("acme")
        assert exc_info.value.code == ErrorCode.CONFLICT

    def test_lookup_by_path_and_id(self, catalog: MirrorCatalog, root_group: Group):
        with catalog.reader() as db:
            assert db.get_group_by_full_path("acme") == root_group
            assert db.get_group_by_id(root_group.id) == root_group
            assert db.get_group_by_full_path("nope") is None


class TestVersionMirrorPersistence:
    def test_round_trip_keeps_digests_and_sets_trn(self, catalog: MirrorCatalog, root_group: Group):
        created = _insert(catalog, _version_mirror(root_group))
        assert created.digests == _DIGESTS
        assert created.metadata.trn == (
            "trn:terraform_provider_version_mirror:acme/registry.example.com/hashicorp/aws/1.0.0"
        )
        with catalog.reader() as db:
            assert db.get_version_mirror_by_id(created.id) == created

    def test_duplicate_version_conflicts(self, catalog: MirrorCatalog, root_group: Group):
        _insert(catalog, _version_mirror(root_group))
        with pytest.raises(MirrorError, match="already mirrored") as exc_info:
            _insert(catalog, _version_mirror(root_group))
        assert exc_info.value.code == ErrorCode.CONFLICT

    def test_unknown_group_is_not_found(self, catalog: MirrorCatalog):
        orphan = Group(name="ghost", full_path="ghost")
        with pytest.raises(MirrorError) as exc_info:
            _insert(catalog, _version_mirror(orphan))
        assert exc_info.value.code == ErrorCode.NOT_FOUND

    def test_row_missing_after_insert_is_internal(self, catalog: MirrorCatalog, root_group: Group, monkeypatch):
        monkeypatch.setattr(CatalogSession, "get_version_mirror_by_id", lambda self, mirror_id: None)
        with pytest.raises(MirrorError, match="missing after insert") as exc_info:
            _insert(catalog, _version_mirror(root_group))
        assert exc_info.value.code == ErrorCode.INTERNAL

    def test_loaded_digests_are_read_only(self, catalog: MirrorCatalog, root_group: Group):
        created = _insert(catalog, _version_mirror(root_group))
        with pytest.raises(TypeError):
            created.digests["extra.zip"] = b"\x00" * 32
        assert list(created.digests) == list(_DIGESTS)

    def test_get_by_trn(self, catalog: MirrorCatalog, root_group: Group):
        created = _insert(catalog, _version_mirror(root_group))
        with catalog.reader() as db:
            assert db.get_version_mirror_by_trn(created.metadata.trn) == created
            missing = created.metadata.trn.replace("1.0.0", "9.9.9")
            assert db.get_version_mirror_by_trn(missing) is None

    @pytest.mark.parametrize("trn", ["arn:aws:s3:::bucket", "trn:terraform_provider_version_mirror:a/b"])
    def test_malformed_trn_is_invalid(self, catalog: MirrorCatalog, trn: str):
        with catalog.reader() as db, pytest.raises(MirrorError) as exc_info:
            db.get_version_mirror_by_trn(trn)
        assert exc_info.value.code == ErrorCode.INVALID

    def test_delete_cascades_to_platform_mirrors(self, catalog: MirrorCatalog, root_group: Group):
        mirror = _insert(catalog, _version_mirror(root_group))
        platform = _add_platform(catalog, mirror)
        with catalog.reader() as db:
            db.delete_version_mirror(mirror)
            assert db.get_version_mirror_by_id(mirror.id) is None
            assert db.get_platform_mirror_by_id(platform.id) is None

    def test_stale_delete_conflicts(self, catalog: MirrorCatalog, root_group: Group):
        mirror = _insert(catalog, _version_mirror(root_group))
        stale = mirror.model_copy(
            update={"metadata": mirror.metadata.model_copy(update={"version": 7})}
        )
        with catalog.reader() as db, pytest.raises(MirrorError) as exc_info:
            db.delete_version_mirror(stale)
        assert exc_info.value.code == ErrorCode.CONFLICT

    def test_delete_twice_conflicts(self, catalog: MirrorCatalog, root_group: Group):
        mirror = _insert(catalog, _version_mirror(root_group))
        with catalog.reader() as db:
            db.delete_version_mirror(mirror)
            with pytest.raises(MirrorError):
                db.delete_version_mirror(mirror)


class TestVersionMirrorListing:
    @pytest.fixture
    def mirrors(self, catalog: MirrorCatalog, root_group: Group) -> list[VersionMirror]:
        return [
            _insert(catalog, _version_mirror(root_group, version))
            for version in ("1.10.0", "1.2.0", "2.0.0-beta.1", "1.9.0")
        ]

    def test_count_only(self, catalog: MirrorCatalog, mirrors: list[VersionMirror]):
        with catalog.reader() as db:
            result = db.get_version_mirrors(pagination=COUNT_ONLY)
        assert result.page_info.total_count == 4
        assert result.version_mirrors == []

    def test_default_order_is_creation(self, catalog: MirrorCatalog, mirrors: list[VersionMirror]):
        with catalog.reader() as db:
            result = db.get_version_mirrors()
        assert [m.id for m in result.version_mirrors] == [m.id for m in mirrors]

    def test_created_desc(self, catalog: MirrorCatalog, mirrors: list[VersionMirror]):
        with catalog.reader() as db:
            result = db.get_version_mirrors(sort=VersionMirrorSort.CREATED_AT_DESC)
        assert [m.id for m in result.version_mirrors] == [m.id for m in reversed(mirrors)]

    def test_semantic_version_sort(self, catalog: MirrorCatalog, mirrors: list[VersionMirror]):
        with catalog.reader() as db:
            asc = db.get_version_mirrors(sort=VersionMirrorSort.SEMANTIC_VERSION_ASC)
            desc = db.get_version_mirrors(sort=VersionMirrorSort.SEMANTIC_VERSION_DESC)
        expected = ["1.2.0", "1.9.0", "1.10.0", "2.0.0-beta.1"]
        assert [m.semantic_version for m in asc.version_mirrors] == expected
        assert [m.semantic_version for m in desc.version_mirrors] == expected[::-1]

    def test_pagination(self, catalog: MirrorCatalog, mirrors: list[VersionMirror]):
        with catalog.reader() as db:
            first = db.get_version_mirrors(pagination=PaginationOptions(first=3))
            rest = db.get_version_mirrors(pagination=PaginationOptions(first=3, offset=3))
        assert len(first.version_mirrors) == 3
        assert first.page_info.has_next_page
        assert len(rest.version_mirrors) == 1
        assert not rest.page_info.has_next_page
        assert rest.page_info.total_count == 4

    def test_semver_sort_paginates(self, catalog: MirrorCatalog, mirrors: list[VersionMirror]):
        with catalog.reader() as db:
            page = db.get_version_mirrors(
                sort=VersionMirrorSort.SEMANTIC_VERSION_ASC,
                pagination=PaginationOptions(first=2, offset=1),
            )
        assert [m.semantic_version for m in page.version_mirrors] == ["1.9.0", "1.10.0"]
        assert page.page_info.has_next_page

    def test_has_packages_filter(self, catalog: MirrorCatalog, mirrors: list[VersionMirror]):
        _add_platform(catalog, mirrors[1])
        with catalog.reader() as db:
            with_pkgs = db.get_version_mirrors(VersionMirrorFilter(has_packages=True))
            without = db.get_version_mirrors(VersionMirrorFilter(has_packages=False))
        assert [m.id for m in with_pkgs.version_mirrors] == [mirrors[1].id]
        assert without.page_info.total_count == 3

    def test_id_and_path_filters(self, catalog: MirrorCatalog, mirrors: list[VersionMirror], child_group: Group):
        with catalog.reader() as db:
            by_ids = db.get_version_mirrors(
                VersionMirrorFilter(version_mirror_ids=[mirrors[0].id, mirrors[2].id])
            )
            empty = db.get_version_mirrors(VersionMirrorFilter(version_mirror_ids=[]))
            by_path = db.get_version_mirrors(VersionMirrorFilter(namespace_paths=["acme/team"]))
        assert {m.id for m in by_ids.version_mirrors} == {mirrors[0].id, mirrors[2].id}
        assert empty.page_info.total_count == 0
        assert by_path.page_info.total_count == 0


class TestPlatformMirrors:
    def test_create_sets_trn(self, catalog: MirrorCatalog, root_group: Group):
        mirror = _insert(catalog, _version_mirror(root_group))
        platform = _add_platform(catalog, mirror)
        assert platform.metadata.trn == (
            "trn:terraform_provider_platform_mirror:"
            "acme/registry.example.com/hashicorp/aws/1.0.0/linux/amd64"
        )
        with catalog.reader() as db:
            assert db.get_platform_mirror_by_trn(platform.metadata.trn) == platform

    def test_duplicate_platform_conflicts(self, catalog: MirrorCatalog, root_group: Group):
        mirror = _insert(catalog, _version_mirror(root_group))
        _add_platform(catalog, mirror)
        with pytest.raises(MirrorError) as exc_info:
            _add_platform(catalog, mirror)
        assert exc_info.value.code == ErrorCode.CONFLICT

    def test_row_missing_after_insert_is_internal(self, catalog: MirrorCatalog, root_group: Group, monkeypatch):
        mirror = _insert(catalog, _version_mirror(root_group))
        monkeypatch.setattr(CatalogSession, "get_platform_mirror_by_id", lambda self, mirror_id: None)
        with pytest.raises(MirrorError, match="missing after insert") as exc_info:
            _add_platform(catalog, mirror)
        assert exc_info.value.code == ErrorCode.INTERNAL

    def test_filters_and_sort(self, catalog: MirrorCatalog, root_group: Group):
        mirror = _insert(catalog, _version_mirror(root_group))
        linux = _add_platform(catalog, mirror, "linux", "amd64")
        darwin = _add_platform(catalog, mirror, "darwin", "arm64")
        with catalog.reader() as db:
            desc = db.get_platform_mirrors(
                PlatformMirrorFilter(version_mirror_id=mirror.id),
                sort=PlatformMirrorSort.CREATED_AT_DESC,
            )
            only_darwin = db.get_platform_mirrors(PlatformMirrorFilter(os="darwin"))
            count = db.get_platform_mirrors(
                PlatformMirrorFilter(version_mirror_id=mirror.id), pagination=COUNT_ONLY
            )
        assert [p.id for p in desc.platform_mirrors] == [darwin.id, linux.id]
        assert [p.id for p in only_darwin.platform_mirrors] == [darwin.id]
        assert count.page_info.total_count == 2
        assert count.platform_mirrors == []

    def test_delete_platform_mirror(self, catalog: MirrorCatalog, root_group: Group):
        mirror = _insert(catalog, _version_mirror(root_group))
        platform = _add_platform(catalog, mirror)
        with catalog.reader() as db:
            db.delete_platform_mirror(platform)
            assert db.get_platform_mirror_by_id(platform.id) is None
            with pytest.raises(MirrorError) as exc_info:
                db.delete_platform_mirror(platform)
        assert exc_info.value.code == ErrorCode.CONFLICT


class TestTransactions:
    def test_uncommitted_transaction_rolls_back(self, catalog: MirrorCatalog, root_group: Group):
        with catalog.transaction() as tx:
            tx.create_version_mirror(_version_mirror(root_group))
        with catalog.reader() as db:
            assert db.get_version_mirrors(pagination=COUNT_ONLY).page_info.total_count == 0

    def test_error_rolls_back(self, catalog: MirrorCatalog, root_group: Group):
        with pytest.raises(RuntimeError, match="boom"):
            with catalog.transaction() as tx:
                tx.create_version_mirror(_version_mirror(root_group))
                raise RuntimeError("boom")
        with catalog.reader() as db:
            assert db.get_version_mirrors(pagination=COUNT_ONLY).page_info.total_count == 0

    def test_commit_persists(self, catalog: MirrorCatalog, root_group: Group):
        with catalog.transaction() as tx:
            created = tx.create_version_mirror(_version_mirror(root_group))
            tx.commit()
        with catalog.reader() as db:
            assert db.get_version_mirror_by_id(created.id) is not None

    def test_transaction_sees_its_own_writes(self, catalog: MirrorCatalog, root_group: Group):
        with catalog.transaction() as tx:
            tx.create_version_mirror(_version_mirror(root_group))
            count = tx.get_version_mirrors(pagination=COUNT_ONLY).page_info.total_count
        assert count == 1


class TestLimitsAndEvents:
    def test_scoped_limit_overrides_global(self, catalog: MirrorCatalog, root_group: Group):
        with catalog.reader() as db:
            assert db.get_resource_limit("version_mirrors_per_group", scope=root_group.id) is None
            db.set_resource_limit("version_mirrors_per_group", 10)
            assert db.get_resource_limit("version_mirrors_per_group", scope=root_group.id) == 10
            db.set_resource_limit("version_mirrors_per_group", 3, scope=root_group.id)
            assert db.get_resource_limit("version_mirrors_per_group", scope=root_group.id) == 3
            assert db.get_resource_limit("version_mirrors_per_group", scope="other") == 10

    def test_negative_limit_is_invalid(self, catalog: MirrorCatalog):
        with catalog.reader() as db, pytest.raises(MirrorError):
            db.set_resource_limit("version_mirrors_per_group", -1)

    def test_activity_events_round_trip(self, catalog: MirrorCatalog):
        event = ActivityEvent(
            created_by="alice",
            namespace_path="acme",
            action=ActivityAction.DELETE_CHILD_RESOURCE,
            target_type=ActivityTarget.GROUP,
            target_id="g-1",
            payload={"name": "registry.example.com/hashicorp/aws", "id": "vm-1"},
        )
        with catalog.reader() as db:
            db.create_activity_event(event)
            events = db.get_activity_events("acme")
        assert len(events) == 1
        assert events[0].action == ActivityAction.DELETE_CHILD_RESOURCE
        assert events[0].payload == event.payload

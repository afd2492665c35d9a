"""Mirror service — the coordinator for provider mirror operations.

The MirrorService wires together the MirrorCatalog, TrustVerifier,
QuotaEnforcer, PackageStore and the upstream registry bridges.  Every
public operation takes a ``RequestContext`` and follows the same shape:
authorize the caller, validate input, do any upstream I/O, then make all
catalog writes inside one transaction that commits only on success.

Nothing is written to the catalog for a version until its checksum
manifest has been verified, and nothing is written for a package until
its streamed digest matches that manifest.
"""

from __future__ import annotations

import hashlib
import logging
import sqlite3
import tempfile
from typing import IO, Any, BinaryIO

from providermirror.auth import Permission, RequestContext
from providermirror.bridge.registry import (
    PROVIDERS_SERVICE_ID,
    RegistryProtocolClient,
    ServiceDiscoverer,
    UnconfiguredRegistry,
    load_entry_point,
)
from providermirror.config import MirrorSettings
from providermirror.core.catalog import CatalogSession, MirrorCatalog
from providermirror.core.hasher import digests_equal, iter_chunks, zip_hash
from providermirror.core.package_store import LocalPackageStore, PackageStore
from providermirror.core.production_guard import enforce_production_constraints
from providermirror.core.quota import QuotaEnforcer
from providermirror.core.trust import TrustVerifier
from providermirror.errors import (
    ErrorCode,
    MirrorError,
    conflict,
    invalid,
    not_found,
    wrap,
)
from providermirror.models.events import ActivityAction, ActivityEvent, ActivityTarget
from providermirror.models.mirrors import (
    COUNT_ONLY,
    Group,
    PaginationOptions,
    PlatformMirror,
    PlatformMirrorFilter,
    PlatformMirrorSort,
    PlatformMirrorsResult,
    VersionMirror,
    VersionMirrorFilter,
    VersionMirrorSort,
    VersionMirrorsResult,
)
from providermirror.models.provider import (
    Provider,
    parse_provider_fqn,
    parse_semantic_version,
    platform_key,
    validate_platform_part,
)

logger = logging.getLogger(__name__)


def _namespace_path_and_ancestors(path: str) -> list[str]:
    parts = path.split("/")
    return ["/".join(parts[:i]) for i in range(len(parts), 0, -1)]


class MirrorService:
    """Provider mirror operations.

    Parameters
    ----------
    catalog:
        Persistence for groups, mirrors, limits and activity events.
    registry:
        Upstream registry protocol client.
    discoverer:
        Resolves a registry hostname to its ``providers.v1`` base URL.
    trust_verifier:
        Verifies and parses signed checksum manifests.
    package_store:
        Object store for admitted packages.
    quota:
        Per-group limit checks.
    settings:
        Runtime settings.  Uses defaults if not provided.
    """

    def __init__(
        self,
        catalog: MirrorCatalog,
        registry: RegistryProtocolClient,
        discoverer: ServiceDiscoverer,
        trust_verifier: TrustVerifier,
        package_store: PackageStore,
        quota: QuotaEnforcer,
        *,
        settings: MirrorSettings | None = None,
    ) -> None:
        self._settings = settings or MirrorSettings()
        self.catalog = catalog
        self.registry = registry
        self.discoverer = discoverer
        self.trust_verifier = trust_verifier
        self.package_store = package_store
        self.quota = quota

    @classmethod
    def from_settings(cls, settings: MirrorSettings | None = None) -> MirrorService:
        """Build a service from settings, loading collaborators from entry points."""
        settings = settings or MirrorSettings()

        # Production guard: fails hard if production constraints are violated
        enforce_production_constraints(settings)

        registry = (
            load_entry_point(settings.registry_client_entry_point)
            if settings.registry_client_entry_point
            else UnconfiguredRegistry()
        )
        # A registry client that also implements discovery may serve as both.
        discoverer = (
            load_entry_point(settings.service_discoverer_entry_point)
            if settings.service_discoverer_entry_point
            else registry
        )
        checker = load_entry_point(settings.signature_checker_entry_point)

        return cls(
            catalog=MirrorCatalog(settings.database_path),
            registry=registry,
            discoverer=discoverer,
            trust_verifier=TrustVerifier(
                checker,
                reject_duplicate_checksums=settings.reject_duplicate_checksums,
            ),
            package_store=LocalPackageStore(
                settings.package_store_path,
                base_url=settings.package_base_url,
                secret=settings.presign_secret,
                ttl_seconds=settings.presigned_url_ttl_seconds,
                chunk_size=settings.upload_chunk_size,
            ),
            quota=QuotaEnforcer(settings.version_mirrors_per_group),
            settings=settings,
        )

    # ------------------------------------------------------------------
    # Version mirrors: create / delete
    # ------------------------------------------------------------------

    def create_version_mirror(
        self,
        ctx: RequestContext,
        *,
        group_path: str,
        registry_hostname: str,
        registry_namespace: str,
        provider_type: str,
        semantic_version: str,
    ) -> VersionMirror:
        """Mirror a provider version into a root group.

        Fetches the version's checksum manifest from the upstream registry,
        verifies its signature and records the digest table.

        Raises
        ------
        MirrorError
            ``forbidden`` before any I/O if the caller lacks create permission;
            ``not_found`` for a missing group or unreachable registry;
            ``invalid`` for a nested group, bad coordinates, a version not
            offered upstream, an untrusted manifest or an exceeded quota;
            ``conflict`` if the version is already mirrored in the group.
        """
        caller = ctx.authorize()
        caller.require_permission(Permission.CREATE_PROVIDER_MIRROR, group_path)

        with self.catalog.reader() as db:
            group = self._require_group(db, group_path)
        if not group.is_root:
            raise invalid(
                "terraform provider version mirrors can only be created in a top-level group"
            )

        provider = parse_provider_fqn(registry_hostname, registry_namespace, provider_type)
        version = parse_semantic_version(semantic_version)

        digests = self._fetch_verified_digests(ctx, provider, version)

        ctx.check()
        with self.catalog.transaction() as tx:
            self.quota.check_version_mirror_quota(tx, group.id)
            created = tx.create_version_mirror(
                VersionMirror(
                    created_by=caller.subject,
                    group_id=group.id,
                    registry_hostname=provider.hostname,
                    registry_namespace=provider.namespace,
                    type=provider.type,
                    semantic_version=version,
                    digests=digests,
                )
            )
            tx.create_activity_event(
                ActivityEvent(
                    created_by=caller.subject,
                    namespace_path=group.full_path,
                    action=ActivityAction.CREATE,
                    target_type=ActivityTarget.VERSION_MIRROR,
                    target_id=created.id,
                )
            )
            tx.commit()

        logger.info(
            "Created a terraform provider version mirror. caller=%s groupPath=%s "
            "versionMirrorID=%s provider=%s version=%s",
            caller.subject,
            group.full_path,
            created.id,
            provider,
            version,
        )
        return created

    def delete_version_mirror(
        self,
        ctx: RequestContext,
        version_mirror: VersionMirror,
        *,
        force: bool = False,
    ) -> None:
        """Delete a version mirror and, with *force*, its platform mirrors.

        Raises
        ------
        MirrorError
            ``conflict`` if platform mirrors exist and *force* is not set, or
            if *version_mirror* is stale.
        """
        caller = ctx.authorize()
        with self.catalog.reader() as db:
            group = self._require_group_by_id(db, version_mirror.group_id)
        caller.require_permission(Permission.DELETE_PROVIDER_MIRROR, group.full_path)

        ctx.check()
        with self.catalog.transaction() as tx:
            # Counted under the write lock so no upload lands between check and delete.
            children = tx.get_platform_mirrors(
                PlatformMirrorFilter(version_mirror_id=version_mirror.id)
            ).platform_mirrors
            if children and not force:
                raise conflict(
                    f"This provider version mirror can't be deleted because it currently "
                    f"mirrors {len(children)} platform(s). Setting force to true will "
                    "automatically remove all mirrored Terraform provider platform mirrors."
                )
            tx.delete_version_mirror(version_mirror)
            tx.create_activity_event(
                ActivityEvent(
                    created_by=caller.subject,
                    namespace_path=group.full_path,
                    action=ActivityAction.DELETE_CHILD_RESOURCE,
                    target_type=ActivityTarget.GROUP,
                    target_id=group.id,
                    payload={
                        "name": version_mirror.provider_address,
                        "id": version_mirror.id,
                        "type": ActivityTarget.VERSION_MIRROR.value,
                    },
                )
            )
            tx.commit()

        for child in children:
            self._discard_package_object(child.id)

        logger.info(
            "Deleted a terraform provider version mirror. caller=%s groupID=%s "
            "providerName=%s semver=%s platforms=%d",
            caller.subject,
            group.id,
            version_mirror.provider_address,
            version_mirror.semantic_version,
            len(children),
        )

    # ------------------------------------------------------------------
    # Platform mirrors: upload / delete
    # ------------------------------------------------------------------

    def upload_installation_package(
        self,
        ctx: RequestContext,
        *,
        version_mirror_id: str,
        os: str,
        architecture: str,
        data: BinaryIO,
    ) -> PlatformMirror:
        """Admit a provider package if its SHA-256 matches the verified manifest.

        *data* is read in chunks into a spooled temporary file while it is
        hashed, so large packages are never held in memory.

        Raises
        ------
        MirrorError
            ``not_found`` for a missing version mirror; ``conflict`` if the
            platform is already mirrored; ``invalid`` for a bad platform, an
            oversize payload or a digest mismatch; ``internal`` if the
            version's digest table has no entry for the package.
        """
        caller = ctx.authorize()
        with self.catalog.reader() as db:
            version_mirror = self._require_version_mirror(db, version_mirror_id)
            group = self._require_group_by_id(db, version_mirror.group_id)
        caller.require_permission(Permission.CREATE_PROVIDER_MIRROR, group.full_path)

        validate_platform_part(os, "operating system")
        validate_platform_part(architecture, "architecture")

        with self.catalog.reader() as db:
            existing = db.get_platform_mirrors(
                PlatformMirrorFilter(
                    version_mirror_id=version_mirror.id, os=os, architecture=architecture
                ),
                pagination=COUNT_ONLY,
            ).page_info.total_count
        if existing > 0:
            raise conflict("provider platform package is already mirrored")

        expected = version_mirror.expected_digest(os, architecture)
        if expected is None:
            logger.error(
                "No checksum available for provider package %s %s %s_%s "
                "(versionMirrorID=%s).",
                version_mirror.provider_address,
                version_mirror.semantic_version,
                os,
                architecture,
                version_mirror.id,
            )
            raise MirrorError(
                f"no checksum available for provider package "
                f"{version_mirror.type} {version_mirror.semantic_version} {os}_{architecture}"
            )

        spool, actual = self._spool_and_hash(ctx, data)
        with spool:
            if not digests_equal(expected, actual):
                raise invalid(
                    f"checksum of the uploaded provider platform package {actual.hex()} "
                    f"does not match the expected checksum {expected.hex()}"
                )

            ctx.check()
            with self.catalog.transaction() as tx:
                created = tx.create_platform_mirror(
                    PlatformMirror(
                        version_mirror_id=version_mirror.id,
                        os=os,
                        architecture=architecture,
                    )
                )
                try:
                    self.package_store.upload(
                        created.id,
                        spool,
                        timeout=ctx.remaining(self._settings.registry_timeout_seconds),
                    )
                except Exception as exc:
                    raise wrap(
                        exc, "failed to upload provider platform package to object store"
                    ) from exc

                try:
                    tx.commit()
                except sqlite3.Error as exc:
                    self._discard_package_object(created.id)
                    raise MirrorError(
                        f"failed to commit provider platform mirror: {exc}"
                    ) from exc

        logger.info(
            "Uploaded a terraform provider platform package. caller=%s "
            "versionMirrorID=%s platformMirrorID=%s platform=%s",
            caller.subject,
            version_mirror.id,
            created.id,
            created.platform,
        )
        return created

    def delete_platform_mirror(self, ctx: RequestContext, platform_mirror: PlatformMirror) -> None:
        """Delete one platform mirror and its package object."""
        caller = ctx.authorize()
        with self.catalog.reader() as db:
            version_mirror = self._require_version_mirror(db, platform_mirror.version_mirror_id)
            group = self._require_group_by_id(db, version_mirror.group_id)
        caller.require_permission(Permission.DELETE_PROVIDER_MIRROR, group.full_path)

        ctx.check()
        with self.catalog.transaction() as tx:
            tx.delete_platform_mirror(platform_mirror)
            tx.commit()
        self._discard_package_object(platform_mirror.id)

        logger.info(
            "Deleted a terraform provider platform mirror. caller=%s groupID=%s "
            "versionMirrorID=%s os=%s architecture=%s",
            caller.subject,
            group.id,
            version_mirror.id,
            platform_mirror.os,
            platform_mirror.architecture,
        )

    # ------------------------------------------------------------------
    # Read paths
    # ------------------------------------------------------------------

    def get_version_mirror_by_id(self, ctx: RequestContext, version_mirror_id: str) -> VersionMirror:
        caller = ctx.authorize()
        with self.catalog.reader() as db:
            mirror = self._require_version_mirror(db, version_mirror_id)
            group = self._require_group_by_id(db, mirror.group_id)
        caller.require_access_to_inheritable_resource(group.full_path)
        return mirror

    def get_version_mirror_by_trn(self, ctx: RequestContext, trn: str) -> VersionMirror:
        caller = ctx.authorize()
        with self.catalog.reader() as db:
            mirror = db.get_version_mirror_by_trn(trn)
            if mirror is None:
                raise not_found(f"terraform provider version mirror with TRN {trn} not found")
            group = self._require_group_by_id(db, mirror.group_id)
        caller.require_access_to_inheritable_resource(group.full_path)
        return mirror

    def get_version_mirrors_by_ids(
        self, ctx: RequestContext, version_mirror_ids: list[str]
    ) -> list[VersionMirror]:
        """Return the mirrors among *version_mirror_ids* that exist."""
        caller = ctx.authorize()
        with self.catalog.reader() as db:
            mirrors = db.get_version_mirrors(
                VersionMirrorFilter(version_mirror_ids=list(version_mirror_ids))
            ).version_mirrors
            group_paths = {
                m.group_id: self._require_group_by_id(db, m.group_id).full_path
                for m in mirrors
            }
        for path in group_paths.values():
            caller.require_access_to_inheritable_resource(path)
        return mirrors

    def get_version_mirror_by_address(
        self,
        ctx: RequestContext,
        *,
        group_path: str,
        registry_hostname: str,
        registry_namespace: str,
        provider_type: str,
        semantic_version: str,
    ) -> VersionMirror:
        caller = ctx.authorize()
        caller.require_access_to_inheritable_resource(group_path)

        provider = parse_provider_fqn(registry_hostname, registry_namespace, provider_type)
        with self.catalog.reader() as db:
            group = self._require_group(db, group_path)
            mirror = self._find_version_mirror(db, group, provider, semantic_version)
        if mirror is None:
            raise not_found(
                f"terraform provider version mirror with FQN {provider} "
                f"and version {semantic_version} not found"
            )
        return mirror

    def get_version_mirrors(
        self,
        ctx: RequestContext,
        *,
        namespace_path: str,
        include_inherited: bool = False,
        sort: VersionMirrorSort | None = None,
        pagination: PaginationOptions | None = None,
    ) -> VersionMirrorsResult:
        """List version mirrors in a group, optionally including its ancestors'."""
        caller = ctx.authorize()
        caller.require_access_to_inheritable_resource(namespace_path)

        paths = (
            _namespace_path_and_ancestors(namespace_path)
            if include_inherited
            else [namespace_path]
        )
        with self.catalog.reader() as db:
            return db.get_version_mirrors(
                VersionMirrorFilter(namespace_paths=paths),
                sort=sort,
                pagination=pagination,
            )

    def get_platform_mirror_by_id(self, ctx: RequestContext, platform_mirror_id: str) -> PlatformMirror:
        caller = ctx.authorize()
        with self.catalog.reader() as db:
            mirror = db.get_platform_mirror_by_id(platform_mirror_id)
            if mirror is None:
                raise not_found(
                    f"terraform provider platform mirror with ID {platform_mirror_id} not found"
                )
            version_mirror = self._require_version_mirror(db, mirror.version_mirror_id)
            group = self._require_group_by_id(db, version_mirror.group_id)
        caller.require_access_to_inheritable_resource(group.full_path)
        return mirror

    def get_platform_mirrors(
        self,
        ctx: RequestContext,
        *,
        version_mirror_id: str,
        os: str | None = None,
        architecture: str | None = None,
        sort: PlatformMirrorSort | None = None,
        pagination: PaginationOptions | None = None,
    ) -> PlatformMirrorsResult:
        caller = ctx.authorize()
        with self.catalog.reader() as db:
            version_mirror = self._require_version_mirror(db, version_mirror_id)
            group = self._require_group_by_id(db, version_mirror.group_id)
            caller.require_access_to_inheritable_resource(group.full_path)
            return db.get_platform_mirrors(
                PlatformMirrorFilter(
                    version_mirror_id=version_mirror.id, os=os, architecture=architecture
                ),
                sort=sort,
                pagination=pagination,
            )

    def get_available_versions(
        self,
        ctx: RequestContext,
        *,
        group_path: str,
        registry_hostname: str,
        registry_namespace: str,
        provider_type: str,
    ) -> dict[str, dict[str, Any]]:
        """Versions of a provider that have at least one admitted package.

        Returns ``{semantic_version: {}}`` in creation order, the shape of
        the network mirror protocol's version listing.
        """
        caller = ctx.authorize()
        with self.catalog.reader() as db:
            group = self._require_group(db, group_path)
            caller.require_access_to_inheritable_resource(group.full_path)
            provider = parse_provider_fqn(registry_hostname, registry_namespace, provider_type)
            result = db.get_version_mirrors(
                VersionMirrorFilter(
                    group_id=group.id,
                    registry_hostname=provider.hostname,
                    registry_namespace=provider.namespace,
                    type=provider.type,
                    has_packages=True,
                ),
                sort=VersionMirrorSort.CREATED_AT_ASC,
            )

        if result.page_info.total_count == 0:
            raise not_found(f"no versions are currently mirrored for Terraform provider {provider}")
        return {mirror.semantic_version: {} for mirror in result.version_mirrors}

    def get_available_installation_packages(
        self,
        ctx: RequestContext,
        *,
        group_path: str,
        registry_hostname: str,
        registry_namespace: str,
        provider_type: str,
        semantic_version: str,
    ) -> dict[str, dict[str, Any]]:
        """Admitted packages of one version, keyed ``{os}_{arch}``.

        Each entry has exactly two fields: a presigned ``url`` and
        ``hashes`` holding the package digest in ``zh:`` form.

        Examples
        --------
        >>> service.get_available_installation_packages(ctx, ...)  # doctest: +SKIP
        {'linux_amd64': {'url': 'http://.../<id>?expires=...', 'hashes': ['zh:5f0b...']}}
        """
        caller = ctx.authorize()
        with self.catalog.reader() as db:
            group = self._require_group(db, group_path)
            caller.require_access_to_inheritable_resource(group.full_path)
            provider = parse_provider_fqn(registry_hostname, registry_namespace, provider_type)
            version_mirror = self._find_version_mirror(db, group, provider, semantic_version)
            if version_mirror is None:
                raise not_found(
                    f"version {semantic_version} is currently not mirrored "
                    f"for Terraform provider {provider}"
                )
            platform_mirrors = db.get_platform_mirrors(
                PlatformMirrorFilter(version_mirror_id=version_mirror.id)
            ).platform_mirrors

        if not platform_mirrors:
            raise not_found(
                f"no installation packages are currently mirrored for Terraform provider {provider}"
            )

        packages: dict[str, dict[str, Any]] = {}
        for mirror in platform_mirrors:
            digest = version_mirror.expected_digest(mirror.os, mirror.architecture)
            if digest is None:
                logger.error(
                    "Digest table of version mirror %s has no entry for platform %s.",
                    version_mirror.id,
                    mirror.platform,
                )
                raise MirrorError(
                    f"failed to get digest for provider package {mirror.platform}"
                )
            try:
                url = self.package_store.presigned_url(
                    mirror.id, timeout=ctx.remaining(self._settings.registry_timeout_seconds)
                )
            except MirrorError:
                raise
            except Exception as exc:
                raise wrap(
                    exc, "failed to get provider platform package presigned URL"
                ) from exc
            packages[platform_key(mirror.os, mirror.architecture)] = {
                "url": url,
                "hashes": [zip_hash(digest)],
            }
        return packages

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _fetch_verified_digests(
        self, ctx: RequestContext, provider: Provider, version: str
    ) -> dict[str, bytes]:
        timeout = self._settings.registry_timeout_seconds

        try:
            service_url = self.discoverer.discover_service_url(
                provider.hostname, PROVIDERS_SERVICE_ID, timeout=ctx.remaining(timeout)
            )
        except Exception as exc:
            raise self._upstream_error(
                exc, "failed to discover provider registry's service URL"
            ) from exc

        try:
            offered = self.registry.list_versions(
                provider, service_url, timeout=ctx.remaining(timeout)
            )
        except Exception as exc:
            raise self._upstream_error(
                exc, "Failed to list available provider versions"
            ) from exc

        platform = next(
            (
                v.platforms[0]
                for v in offered
                if v.version == version and v.platforms
            ),
            None,
        )
        if platform is None:
            raise invalid(
                f"Unsupported version {version} for provider {provider}: "
                "version not offered upstream"
            )

        try:
            info = self.registry.get_package_info(
                provider,
                version,
                platform.os,
                platform.arch,
                service_url,
                timeout=ctx.remaining(timeout),
            )
            manifest = self.registry.fetch(info.manifest_url, timeout=ctx.remaining(timeout))
            signature = self.registry.fetch(info.signature_url, timeout=ctx.remaining(timeout))
        except Exception as exc:
            raise self._upstream_error(
                exc, "Could not find package at provider registry API"
            ) from exc

        ctx.check()
        return self.trust_verifier.verify_and_parse(manifest, signature, info.armored_keys)

    @staticmethod
    def _upstream_error(exc: Exception, message: str) -> MirrorError:
        # Transport failures become not-found; coded errors keep their code.
        if isinstance(exc, MirrorError):
            return wrap(exc, message)
        return wrap(exc, message, code=ErrorCode.NOT_FOUND)

    def _spool_and_hash(
        self, ctx: RequestContext, data: BinaryIO
    ) -> tuple[IO[bytes], bytes]:
        """Copy *data* into a spooled temp file, returning it rewound with its digest."""
        limit = self._settings.max_package_size_bytes
        spool = tempfile.SpooledTemporaryFile(
            max_size=self._settings.upload_spool_threshold_bytes,
            prefix="terraform-provider-package-",
            suffix=".zip",
        )
        checksum = hashlib.sha256()
        size = 0
        try:
            for chunk in iter_chunks(data, self._settings.upload_chunk_size):
                size += len(chunk)
                if size > limit:
                    raise invalid(
                        f"provider platform package exceeds the maximum size of {limit} bytes"
                    )
                checksum.update(chunk)
                spool.write(chunk)
                ctx.check()
        except BaseException:
            spool.close()
            raise
        spool.seek(0)
        return spool, checksum.digest()

    def _discard_package_object(self, platform_mirror_id: str) -> None:
        try:
            self.package_store.delete(platform_mirror_id)
        except Exception:
            logger.exception(
                "Failed to delete package object %s; it is no longer referenced.",
                platform_mirror_id,
            )

    @staticmethod
    def _find_version_mirror(
        db: CatalogSession, group: Group, provider: Provider, semantic_version: str
    ) -> VersionMirror | None:
        result = db.get_version_mirrors(
            VersionMirrorFilter(
                group_id=group.id,
                registry_hostname=provider.hostname,
                registry_namespace=provider.namespace,
                type=provider.type,
                semantic_version=semantic_version,
            ),
            pagination=PaginationOptions(first=1),
        )
        return result.version_mirrors[0] if result.version_mirrors else None

    @staticmethod
    def _require_group(db: CatalogSession, full_path: str) -> Group:
        group = db.get_group_by_full_path(full_path)
        if group is None:
            raise not_found(f"Group {full_path} not found")
        return group

    @staticmethod
    def _require_group_by_id(db: CatalogSession, group_id: str) -> Group:
        group = db.get_group_by_id(group_id)
        if group is None:
            raise not_found(f"Group with ID {group_id} not found")
        return group

    @staticmethod
    def _require_version_mirror(db: CatalogSession, version_mirror_id: str) -> VersionMirror:
        mirror = db.get_version_mirror_by_id(version_mirror_id)
        if mirror is None:
            raise not_found(
                f"terraform provider version mirror with ID {version_mirror_id} not found"
            )
        return mirror

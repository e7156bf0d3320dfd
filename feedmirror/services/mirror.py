"""
Mirror service: serve packages from the local store, fetching them from the
upstream feed on first request.

This service handles:
- Merging local and upstream version / package listings
- Deciding whether a local package is trustworthy (record *and* artifact file)
- Downloading, indexing and committing missing packages (fetch-index-commit)
- Coalescing concurrent mirror attempts for the same package
"""
from __future__ import annotations

import logging
import os
from typing import Awaitable, Callable, Dict, List, Optional

from feedmirror.domain.errors import ConfigurationError, PathTraversalError
from feedmirror.domain.models import IndexingResult, MirrorOutcome, PackageIdentity, PackageRecord
from feedmirror.domain.versions import PackageVersion
from feedmirror.services.indexer import PackageIndexer
from feedmirror.services.single_flight import SingleFlight
from feedmirror.services.upstream import UpstreamClient
from feedmirror.storage.db_manager import MetadataStore
from feedmirror.storage.store_root import StoreRoot

logger = logging.getLogger(__name__)


class MirrorService:
    """
    Write-through mirror in front of an upstream package feed.

    Listing operations are read-only merges. Lookups of a single package
    version may trigger a mirror attempt. A failed mirror attempt is reported
    as "not found"; only configuration and path confinement errors escape.
    """

    def __init__(
        self,
        store_root: StoreRoot,
        db: MetadataStore,
        upstream: UpstreamClient,
        indexer: PackageIndexer,
    ):
        self.store_root = store_root
        self.db = db
        self.upstream = upstream
        self.indexer = indexer
        self._flights = SingleFlight()

    # ========================================================================
    # Catalog merging
    # ========================================================================

    async def list_versions(self, package_id: str) -> List[PackageVersion]:
        """
        Versions of a package known upstream or locally (unlisted included).
        """
        upstream_versions = await self._upstream_listing(
            "versions", package_id, self.upstream.list_versions
        )

        local_packages = self.db.find_all(package_id, include_unlisted=True)
        local_versions = [p.version for p in local_packages]

        if not upstream_versions:
            return local_versions
        if not local_packages:
            return list(upstream_versions)

        merged: List[PackageVersion] = []
        seen = set()
        for version in list(upstream_versions) + local_versions:
            if version not in seen:
                seen.add(version)
                merged.append(version)
        return merged

    async def list_packages(self, package_id: str) -> List[PackageRecord]:
        """
        One record per version of a package. Local records replace upstream
        records of the same version.
        """
        upstream_packages = await self._upstream_listing(
            "packages", package_id, self.upstream.list_packages
        )
        local_packages = self.db.find_all(package_id, include_unlisted=True)

        if not upstream_packages:
            return local_packages
        if not local_packages:
            return list(upstream_packages)

        result: Dict[PackageVersion, PackageRecord] = {p.version: p for p in upstream_packages}
        for package in local_packages:
            result[package.version] = package
        return list(result.values())

    async def _upstream_listing(self, kind: str, package_id: str, fetch: Callable[[str], Awaitable[list]]) -> list:
        """
        Fetch one side of a catalog merge. An unreachable or misbehaving
        upstream counts as an empty listing so local packages stay visible.
        """
        try:
            return await fetch(package_id)
        except (PathTraversalError, ConfigurationError):
            raise
        except Exception as e:
            logger.error(f"Failed to list {kind} of package {package_id} from upstream: {e}", exc_info=True)
            return []

    # ========================================================================
    # Single package lookups
    # ========================================================================

    async def exists(self, package_id: str, version: PackageVersion) -> bool:
        outcome = await self.resolve(package_id, version)
        return outcome.available

    async def find_package_or_none(self, package_id: str, version: PackageVersion) -> Optional[PackageRecord]:
        outcome = await self.resolve(package_id, version)
        if not outcome.available:
            return None

        # The record can still disappear between the mirror and this lookup.
        return self.db.find_or_none(package_id, version, include_unlisted=True)

    def add_download(self, package_id: str, version: PackageVersion) -> None:
        self.db.add_download(package_id, version)

    def package_path(self, package_id: str, version: PackageVersion) -> str:
        return self.store_root.package_path(package_id, version)

    # ========================================================================
    # Mirroring
    # ========================================================================

    async def resolve(self, package_id: str, version: PackageVersion) -> MirrorOutcome:
        """
        Make sure a package version is available locally.

        Returns HIT_LOCAL when the record and its artifact file are both
        present, HIT_AFTER_MIRROR when the package was just indexed from the
        upstream feed, and MISS otherwise.

        Raises:
            PathTraversalError: if the artifact path escapes the store root.
            asyncio.CancelledError: if the request is cancelled. Nothing is
                committed in that case.
        """
        package_path = self.store_root.package_path(package_id, version)

        if self.db.exists(package_id, version):
            if os.path.isfile(package_path):
                logger.debug(f"Package {package_id} {version} exists locally at {package_path}")
                return MirrorOutcome.HIT_LOCAL

            logger.warning(
                f"Package {package_id} {version} does not exist locally at {package_path}, "
                f"but exists in the metadata store. This is likely due to a missing package file "
                f"in the filesystem storage"
            )

        identity = PackageIdentity(id=package_id, version=version)
        return await self._flights.run(identity.key(), lambda: self._mirror(identity))

    async def _mirror(self, identity: PackageIdentity) -> MirrorOutcome:
        package_id, version = identity.id, identity.version
        logger.info(f"Package {package_id} {version} does not exist locally. Checking upstream feed...")

        stage = "download"
        try:
            package_stream = await self.upstream.download_or_none(package_id, version)
            if package_stream is None:
                logger.info(f"Upstream feed does not have package {package_id} {version}")
                return MirrorOutcome.MISS

            async with package_stream:
                stage = "index"
                logger.info(f"Downloaded package {package_id} {version}, indexing...")
                result = await self.indexer.index(package_stream)

            logger.info(
                f"Finished indexing package {package_id} {version} from upstream feed with result {result.value}"
            )
            if result is IndexingResult.SUCCESS:
                return MirrorOutcome.HIT_AFTER_MIRROR
            return MirrorOutcome.MISS
        except (PathTraversalError, ConfigurationError):
            raise
        except Exception as e:
            logger.error(
                f"Failed to mirror package {package_id} {version} from upstream (stage: {stage}): {e}",
                exc_info=True,
            )
            return MirrorOutcome.MISS

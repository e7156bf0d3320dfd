"""
Index package artifacts into the local store.

The indexer takes a raw ``.nupkg`` stream, spools it to a temporary file under
the store root, validates it, reads its ``.nuspec`` manifest, moves the
artifact to its final location and records it in the metadata store.
"""
from __future__ import annotations

import logging
import os
import uuid
import zipfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from xml.etree import ElementTree

import aiofiles

from feedmirror.domain.models import IndexingResult, PackageRecord
from feedmirror.domain.versions import PackageVersion
from feedmirror.services.upstream import ArtifactStream
from feedmirror.storage.db_manager import MetadataStore
from feedmirror.storage.store_root import StoreRoot

logger = logging.getLogger(__name__)

TEMP_DIR = "temp"


class PackageIndexer(ABC):
    """Abstract base class for artifact indexers."""

    @abstractmethod
    async def index(self, stream: ArtifactStream) -> IndexingResult:
        """Validate, persist and record one artifact."""
        pass


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _read_nuspec(archive: zipfile.ZipFile) -> Optional[Tuple[Dict[str, str], bytes]]:
    """
    Read the top-level .nuspec of a package.

    Returns the metadata as a flat {element: text} dict together with the raw
    manifest bytes, or None if the archive has no manifest.
    """
    names = [n for n in archive.namelist() if "/" not in n and n.lower().endswith(".nuspec")]
    if len(names) != 1:
        return None

    raw = archive.read(names[0])
    root = ElementTree.fromstring(raw)
    metadata = next((el for el in root if _local_name(el.tag) == "metadata"), None)
    if metadata is None:
        return {}, raw

    fields: Dict[str, str] = {}
    for el in metadata:
        if el.text is not None:
            fields[_local_name(el.tag)] = el.text.strip()
    return fields, raw


def _record_from_nuspec(fields: Dict[str, str]) -> Optional[PackageRecord]:
    package_id = fields.get("id")
    version = PackageVersion.try_parse(fields.get("version"))
    if not package_id or version is None:
        return None

    authors: List[str] = [a.strip() for a in fields.get("authors", "").split(",") if a.strip()]
    return PackageRecord(
        id=package_id,
        version=version,
        listed=fields.get("listed", "true").lower() != "false",
        authors=authors,
        description=fields.get("description") or None,
        title=fields.get("title") or None,
        tags=fields.get("tags", "").split(),
        project_url=fields.get("projectUrl") or None,
    )


class NupkgIndexer(PackageIndexer):
    """
    Indexer for .nupkg archives backed by the filesystem store.
    """

    def __init__(self, store_root: StoreRoot, metadata_store: MetadataStore):
        self.store_root = store_root
        self.db = metadata_store

    def _temp_path(self) -> Path:
        temp_dir = Path(self.store_root.get_full_path(TEMP_DIR))
        temp_dir.mkdir(parents=True, exist_ok=True)
        return temp_dir / f"{uuid.uuid4().hex}.nupkg.tmp"

    async def _spool(self, stream: ArtifactStream, target: Path) -> int:
        written = 0
        async with aiofiles.open(target, "wb") as f:
            async for chunk in stream.aiter_bytes():
                await f.write(chunk)
                written += len(chunk)
        return written

    async def index(self, stream: ArtifactStream) -> IndexingResult:
        tmp_path = self._temp_path()
        try:
            size = await self._spool(stream, tmp_path)
            logger.debug(f"Spooled {size} bytes to {tmp_path}")

            try:
                with zipfile.ZipFile(tmp_path, "r") as archive:
                    manifest = _read_nuspec(archive)
            except (zipfile.BadZipFile, ElementTree.ParseError, KeyError) as e:
                logger.warning(f"Rejected malformed package archive: {e}")
                return IndexingResult.MALFORMED_PACKAGE

            if manifest is None:
                logger.warning("Rejected package archive without a .nuspec manifest")
                return IndexingResult.MALFORMED_PACKAGE

            fields, nuspec_bytes = manifest

            record = _record_from_nuspec(fields)
            if record is None:
                logger.warning(f"Rejected package with invalid id/version in manifest: {fields.get('id')!r} {fields.get('version')!r}")
                return IndexingResult.INVALID_DATA

            package_path = self.store_root.package_path(record.id, record.version)
            recorded = self.db.exists(record.id, record.version)
            if recorded and os.path.isfile(package_path):
                return IndexingResult.ALREADY_EXISTS

            self._commit(tmp_path, package_path, nuspec_bytes, record)
            if recorded:
                logger.info(f"Restored missing artifact for {record.id} {record.version}")
                self.db.replace_package(record)
            elif not self.db.add_package(record):
                return IndexingResult.ALREADY_EXISTS

            logger.info(f"Indexed package {record.id} {record.version} at {package_path}")
            return IndexingResult.SUCCESS
        finally:
            tmp_path.unlink(missing_ok=True)

    def _commit(self, tmp_path: Path, package_path: str, nuspec_bytes: bytes, record: PackageRecord) -> None:
        target = Path(package_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        nuspec_path = Path(self.store_root.package_file_path(record.id, record.version, "nuspec"))
        nuspec_path.write_bytes(nuspec_bytes)
        os.replace(tmp_path, target)

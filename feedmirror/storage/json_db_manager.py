import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from feedmirror.domain.models import PackageRecord
from feedmirror.domain.versions import PackageVersion
from feedmirror.storage.db_manager import MetadataStore
from feedmirror.storage.store_root import PACKAGES_DIR, StoreRoot

logger = logging.getLogger(__name__)

RECORD_EXTENSION = "json"


class JsonMetadataStore(MetadataStore):
    """
    Metadata store backed by one JSON file per package version.

    Layout:
        <root>/packages/<id>/<version>/<id>.<version>.json

    The records are crawled into an in-memory index on ``initialize`` and
    every write goes to disk first, then to the index.
    """

    def __init__(self, store_root: StoreRoot):
        self._store_root = store_root
        # lower id -> {version -> record}
        self._index: Dict[str, Dict[PackageVersion, PackageRecord]] = {}

    def initialize(self) -> None:
        self._build_index_from_disk()

    def _build_index_from_disk(self) -> None:
        index: Dict[str, Dict[PackageVersion, PackageRecord]] = {}
        packages_dir = Path(self._store_root.path) / PACKAGES_DIR
        if not packages_dir.is_dir():
            self._index = index
            return

        for record_path in packages_dir.glob(f"*/*/*.{RECORD_EXTENSION}"):
            try:
                record = PackageRecord.model_validate_json(record_path.read_text(encoding="utf-8"))
            except Exception as e:
                # Skip malformed records
                logger.warning(f"Failed to load package record from {record_path}: {e}")
                continue
            index.setdefault(record.id.lower(), {})[record.version] = record

        self._index = index
        logger.info(f"Loaded {sum(len(v) for v in index.values())} package records from {packages_dir}")

    def _record_path(self, package_id: str, version: PackageVersion) -> Path:
        return Path(self._store_root.package_file_path(package_id, version, RECORD_EXTENSION))

    def _write_record(self, record: PackageRecord) -> None:
        record_path = self._record_path(record.id, record.version)
        record_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = record_path.with_name(record_path.name + ".tmp")
        tmp_path.write_text(record.model_dump_json(indent=2, exclude_none=True), encoding="utf-8")
        os.replace(tmp_path, record_path)

    def exists(self, package_id: str, version: PackageVersion) -> bool:
        return version in self._index.get(package_id.lower(), {})

    def find_or_none(
        self,
        package_id: str,
        version: PackageVersion,
        include_unlisted: bool = False,
    ) -> Optional[PackageRecord]:
        record = self._index.get(package_id.lower(), {}).get(version)
        if record is None:
            return None
        if not record.listed and not include_unlisted:
            return None
        return record

    def find_all(self, package_id: str, include_unlisted: bool = False) -> List[PackageRecord]:
        records = self._index.get(package_id.lower(), {}).values()
        return sorted(
            (r for r in records if r.listed or include_unlisted),
            key=lambda r: r.version,
        )

    def add_package(self, record: PackageRecord) -> bool:
        if self.exists(record.id, record.version):
            return False
        self._write_record(record)
        self._index.setdefault(record.id.lower(), {})[record.version] = record
        return True

    def replace_package(self, record: PackageRecord) -> None:
        """
        Overwrite a record, keeping its download count.
        Used when an artifact is re-mirrored over a record whose file went missing.
        """
        existing = self._index.get(record.id.lower(), {}).get(record.version)
        if existing is not None:
            record = record.model_copy(update={"downloads": existing.downloads})
        self._write_record(record)
        self._index.setdefault(record.id.lower(), {})[record.version] = record

    def add_download(self, package_id: str, version: PackageVersion) -> None:
        record = self._index.get(package_id.lower(), {}).get(version)
        if record is None:
            logger.debug(f"Ignoring download of unknown package {package_id} {version}")
            return
        updated = record.model_copy(update={"downloads": record.downloads + 1})
        self._write_record(updated)
        self._index[package_id.lower()][version] = updated

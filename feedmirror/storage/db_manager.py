from abc import ABC, abstractmethod
from typing import List, Optional

from feedmirror.domain.models import PackageRecord
from feedmirror.domain.versions import PackageVersion


class MetadataStore(ABC):
    """
    Abstract base class for the local package catalog.
    """

    @abstractmethod
    def initialize(self) -> None:
        """Initialize the storage subsystem (e.g. load from disk)."""
        pass

    @abstractmethod
    def exists(self, package_id: str, version: PackageVersion) -> bool:
        """True if a record exists for the identity, listed or not."""
        pass

    @abstractmethod
    def find_or_none(
        self,
        package_id: str,
        version: PackageVersion,
        include_unlisted: bool = False,
    ) -> Optional[PackageRecord]:
        """Get a single package version, or None."""
        pass

    @abstractmethod
    def find_all(self, package_id: str, include_unlisted: bool = False) -> List[PackageRecord]:
        """Get every known version of a package id."""
        pass

    @abstractmethod
    def add_package(self, record: PackageRecord) -> bool:
        """
        Add a package record.
        Returns False if the identity is already recorded.
        """
        pass

    @abstractmethod
    def replace_package(self, record: PackageRecord) -> None:
        """Overwrite an existing record (or add it if missing)."""
        pass

    @abstractmethod
    def add_download(self, package_id: str, version: PackageVersion) -> None:
        """Increment the download counter of a package version."""
        pass

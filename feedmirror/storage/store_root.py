"""
Storage root resolution and path confinement.

Every artifact path the mirror computes goes through ``StoreRoot.get_full_path``
so it can never land outside the configured storage directory.
"""
from __future__ import annotations

import os
from dataclasses import dataclass

from feedmirror.domain.errors import ConfigurationError, PathTraversalError
from feedmirror.domain.versions import PackageVersion

PACKAGES_DIR = "packages"
PACKAGE_EXTENSION = "nupkg"
_SEPARATORS = {"/", "\\", os.sep} | ({os.altsep} if os.altsep else set())


def _is_plain_segment(segment: str) -> bool:
    # A single path component: no separators, no parent references.
    if not segment or ".." in segment or segment == ".":
        return False
    return not any(sep in segment for sep in _SEPARATORS)


@dataclass(frozen=True)
class StoreRoot:
    """
    Canonical absolute storage directory, always ending with a separator.

    Build instances with ``resolve_store_root``.
    """

    path: str

    def get_full_path(self, relative_path: str) -> str:
        """
        Join ``relative_path`` onto the root and canonicalize it.

        The result must start with the root and be strictly longer than it.
        Canonicalization is purely lexical; the filesystem is not touched.

        Raises:
            PathTraversalError: if the path escapes the root or is the root itself.
        """
        if not relative_path:
            raise PathTraversalError("", self.path)

        full_path = os.path.normpath(os.path.join(self.path, relative_path))

        if not full_path.startswith(self.path) or len(full_path) <= len(self.path):
            raise PathTraversalError(full_path, self.path)

        return full_path

    def _segments(self, package_id: str, version: PackageVersion) -> tuple:
        lower_id = package_id.lower()
        lower_version = version.to_normalized_string().lower()
        for segment in (lower_id, lower_version):
            if not _is_plain_segment(segment):
                raise PathTraversalError(segment, self.path)
        return lower_id, lower_version

    def package_file_path(self, package_id: str, version: PackageVersion, extension: str) -> str:
        """
        Path of a per-version file named ``<id>.<version>.<extension>``.

        Example:
            <root>/packages/sample.pkg/1.0.0-beta/sample.pkg.1.0.0-beta.nupkg
        """
        lower_id, lower_version = self._segments(package_id, version)
        return self.get_full_path(
            os.path.join(
                PACKAGES_DIR,
                lower_id,
                lower_version,
                f"{lower_id}.{lower_version}.{extension}",
            )
        )

    def package_path(self, package_id: str, version: PackageVersion) -> str:
        return self.package_file_path(package_id, version, PACKAGE_EXTENSION)

    def __str__(self) -> str:
        return self.path


def resolve_store_root(path: str) -> StoreRoot:
    """
    Canonicalize a configured storage path.

    Relative components ('.'/'..') are resolved against the working directory
    and a trailing separator is appended. The directory is not created.

    Raises:
        ConfigurationError: if the path is empty or cannot be canonicalized.
    """
    if path is None or not str(path).strip():
        raise ConfigurationError("Store path is required")

    raw = os.path.expanduser(str(path).strip())
    if "\x00" in raw:
        raise ConfigurationError(f"Store path contains invalid characters: {path!r}")

    try:
        full_path = os.path.abspath(raw)
        os.fsencode(full_path)
    except (OSError, ValueError, UnicodeError) as e:
        raise ConfigurationError(f"Store path cannot be resolved: {path!r} ({e})") from e

    if not full_path.endswith(os.sep):
        full_path += os.sep

    return StoreRoot(full_path)

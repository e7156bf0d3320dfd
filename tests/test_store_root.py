"""
Tests for storage root resolution and path confinement.
"""

import os

import pytest

from feedmirror.domain.errors import ConfigurationError, PathTraversalError
from feedmirror.domain.versions import PackageVersion
from feedmirror.storage.store_root import StoreRoot, resolve_store_root


class TestResolveStoreRoot:
    def test_adds_trailing_separator(self, tmp_path):
        root = resolve_store_root(str(tmp_path / "store"))
        assert root.path == str(tmp_path / "store") + os.sep

    def test_keeps_single_trailing_separator(self, tmp_path):
        root = resolve_store_root(str(tmp_path) + os.sep)
        assert root.path.endswith(os.sep)
        assert not root.path.endswith(os.sep + os.sep)

    def test_resolves_relative_components(self, tmp_path):
        root = resolve_store_root(str(tmp_path / "a" / ".." / "b" / "."))
        assert root.path == str(tmp_path / "b") + os.sep

    def test_relative_path_becomes_absolute(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        root = resolve_store_root("data")
        assert os.path.isabs(root.path)
        assert root.path == str(tmp_path / "data") + os.sep

    def test_does_not_create_directory(self, tmp_path):
        resolve_store_root(str(tmp_path / "missing"))
        assert not (tmp_path / "missing").exists()

    @pytest.mark.parametrize("path", ["", "   ", None])
    def test_empty_path_is_rejected(self, path):
        with pytest.raises(ConfigurationError):
            resolve_store_root(path)

    def test_nul_byte_is_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError):
            resolve_store_root(str(tmp_path) + "\x00bad")


class TestGetFullPath:
    @pytest.fixture
    def root(self, tmp_path):
        return resolve_store_root(str(tmp_path / "store"))

    def test_descendant_path(self, root):
        full = root.get_full_path(os.path.join("packages", "a", "b.nupkg"))
        assert full.startswith(root.path)
        assert full.endswith(os.path.join("packages", "a", "b.nupkg"))

    def test_escaping_path_is_rejected(self, root):
        with pytest.raises(PathTraversalError):
            root.get_full_path(os.path.join("..", "outside.nupkg"))

    def test_sibling_with_common_prefix_is_rejected(self, tmp_path):
        root = resolve_store_root(str(tmp_path / "store"))
        with pytest.raises(PathTraversalError):
            root.get_full_path(os.path.join("..", "store2", "file"))

    @pytest.mark.parametrize("relative", ["", ".", os.path.join("packages", "..")])
    def test_root_itself_is_rejected(self, root, relative):
        with pytest.raises(PathTraversalError):
            root.get_full_path(relative)

    def test_absolute_path_is_rejected(self, root, tmp_path):
        with pytest.raises(PathTraversalError):
            root.get_full_path(str(tmp_path / "elsewhere"))


class TestPackagePath:
    def test_layout_is_lowercase_and_normalized(self):
        root = StoreRoot(os.sep + os.path.join("var", "mirror") + os.sep)
        path = root.package_path("Farmerp.HttpApi", PackageVersion.parse("1.0.0.0-Preview"))
        assert path == os.path.join(
            os.sep, "var", "mirror", "packages", "farmerp.httpapi", "1.0.0-preview",
            "farmerp.httpapi.1.0.0-preview.nupkg",
        )

    @pytest.mark.parametrize(
        "package_id",
        ["..", "../../etc", "a/b", "a\\b", "evil..pkg", ".", ""],
    )
    def test_unsafe_ids_are_rejected(self, store_root, package_id):
        with pytest.raises(PathTraversalError):
            store_root.package_path(package_id, PackageVersion.parse("1.0.0"))

    def test_unsafe_ids_touch_no_files(self, store_root, monkeypatch):
        def _fail(*args, **kwargs):
            raise AssertionError("filesystem accessed")

        with monkeypatch.context() as m:
            m.setattr(os.path, "exists", _fail)
            m.setattr(os.path, "isfile", _fail)
            m.setattr(os, "stat", _fail)
            with pytest.raises(PathTraversalError):
                store_root.package_path("../../etc/passwd", PackageVersion.parse("1.0.0"))

"""
Shared test fixtures and helpers for the feedmirror test suite.
"""

import asyncio
import io
import zipfile
from typing import List, Optional

import pytest

from feedmirror.domain.models import PackageRecord
from feedmirror.domain.versions import PackageVersion
from feedmirror.storage.json_db_manager import JsonMetadataStore
from feedmirror.storage.store_root import resolve_store_root


# ============================================================================
# Artifact helpers
# ============================================================================


NUSPEC_TEMPLATE = """<?xml version="1.0" encoding="utf-8"?>
<package xmlns="http://schemas.microsoft.com/packaging/2013/05/nuspec.xsd">
  <metadata>
    {fields}
  </metadata>
</package>
"""


def build_nupkg(
    package_id: Optional[str] = "Sample.Pkg",
    version: Optional[str] = "1.0.0",
    listed: Optional[bool] = None,
    description: str = "A sample package",
) -> bytes:
    fields = []
    if package_id is not None:
        fields.append(f"<id>{package_id}</id>")
    if version is not None:
        fields.append(f"<version>{version}</version>")
    fields.append("<authors>Alice, Bob</authors>")
    fields.append(f"<description>{description}</description>")
    if listed is not None:
        fields.append(f"<listed>{'true' if listed else 'false'}</listed>")

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("package.nuspec", NUSPEC_TEMPLATE.format(fields="\n    ".join(fields)))
        archive.writestr("lib/net8.0/Sample.dll", b"\x00binary")
    return buffer.getvalue()


class FakeStream:
    """
    In-memory stand-in for an upstream ArtifactStream.

    If ``block`` is set the stream waits on it after the first chunk, which
    lets tests cancel a request in the middle of a download.
    """

    def __init__(self, data: bytes, chunk_size: int = 16, block: Optional[asyncio.Event] = None):
        self.data = data
        self.chunk_size = chunk_size
        self.block = block
        self.started = asyncio.Event()
        self.closed = False

    async def aiter_bytes(self):
        for i in range(0, len(self.data), self.chunk_size):
            yield self.data[i:i + self.chunk_size]
            self.started.set()
            if self.block is not None:
                await self.block.wait()

    async def aclose(self) -> None:
        self.closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def store_root(tmp_path):
    return resolve_store_root(str(tmp_path / "store"))


@pytest.fixture
def metadata_store(store_root):
    store = JsonMetadataStore(store_root)
    store.initialize()
    return store


@pytest.fixture
def nupkg():
    return build_nupkg


@pytest.fixture
def make_record():
    def _make(package_id: str = "Sample.Pkg", version: str = "1.0.0", **kwargs) -> PackageRecord:
        return PackageRecord(id=package_id, version=PackageVersion.parse(version), **kwargs)
    return _make


def versions(*values: str) -> List[PackageVersion]:
    return [PackageVersion.parse(v) for v in values]


@pytest.fixture
def v():
    return versions


@pytest.fixture
def fake_stream():
    return FakeStream

"""
Clients for the upstream package feed.

The upstream is a NuGet v3 feed. Three queries are used:

- the flat container (``PackageBaseAddress/3.0.0``) for version listings and
  ``.nupkg`` downloads
- the registration index (``RegistrationsBaseUrl``) for package metadata

A package or id the upstream does not know is a normal outcome and is reported
as an empty list or ``None``. Transport failures and unexpected HTTP statuses
raise; callers decide how to degrade.
"""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from feedmirror.domain.models import NUGET_SERVICE_INDEX, PackageRecord
from feedmirror.domain.versions import PackageVersion

logger = logging.getLogger(__name__)

PACKAGE_BASE_ADDRESS_TYPE = "PackageBaseAddress/3.0.0"
REGISTRATIONS_BASE_URL_TYPES = (
    "RegistrationsBaseUrl/3.6.0",
    "RegistrationsBaseUrl/3.4.0",
    "RegistrationsBaseUrl/3.0.0-rc",
    "RegistrationsBaseUrl",
)


class ArtifactStream:
    """
    A package artifact being streamed from upstream.

    The stream owns the underlying HTTP response and must be closed, either
    explicitly with ``aclose`` or by using it as an async context manager.
    """

    def __init__(self, response: httpx.Response, chunk_size: int = 64 * 1024):
        self._response = response
        self._chunk_size = chunk_size
        self.closed = False

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        async for chunk in self._response.aiter_bytes(self._chunk_size):
            yield chunk

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self._response.aclose()

    async def __aenter__(self) -> "ArtifactStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


class UpstreamClient(ABC):
    """
    Abstract base class for upstream feed access.
    """

    @abstractmethod
    async def list_versions(self, package_id: str) -> List[PackageVersion]:
        """All versions of a package id. Empty if the id is unknown."""
        pass

    @abstractmethod
    async def list_packages(self, package_id: str) -> List[PackageRecord]:
        """Metadata for every version of a package id. Empty if unknown."""
        pass

    @abstractmethod
    async def download_or_none(self, package_id: str, version: PackageVersion) -> Optional[ArtifactStream]:
        """Open the package artifact, or return None if upstream lacks it."""
        pass

    async def aclose(self) -> None:
        pass


class DisabledUpstreamClient(UpstreamClient):
    """Upstream used when mirroring is turned off; it knows no packages."""

    async def list_versions(self, package_id: str) -> List[PackageVersion]:
        return []

    async def list_packages(self, package_id: str) -> List[PackageRecord]:
        return []

    async def download_or_none(self, package_id: str, version: PackageVersion) -> Optional[ArtifactStream]:
        return None


class NuGetUpstreamClient(UpstreamClient):
    """
    Upstream client for NuGet v3 feeds.
    """

    def __init__(
        self,
        service_index_url: str = NUGET_SERVICE_INDEX,
        timeout: float = 60.0,
        retries: int = 3,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.service_index_url = service_index_url
        self.retries = max(1, retries)
        self._client = client or httpx.AsyncClient(follow_redirects=True, timeout=timeout)
        self._owns_client = client is None
        self._resources: Optional[Dict[str, str]] = None
        self._resources_lock = asyncio.Lock()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ========================================================================
    # Service index
    # ========================================================================

    async def _get_resources(self) -> Dict[str, str]:
        """Read the service index once and map resource types to URLs."""
        if self._resources is not None:
            return self._resources

        async with self._resources_lock:
            if self._resources is None:
                data = await self._get_json(self.service_index_url)
                if data is None:
                    raise ValueError(f"Service index not found: {self.service_index_url}")

                resources: Dict[str, str] = {}
                for resource in data.get("resources", []):
                    resource_type = resource.get("@type")
                    resource_id = resource.get("@id")
                    if isinstance(resource_type, str) and resource_id:
                        resources.setdefault(resource_type, resource_id.rstrip("/"))
                logger.debug(f"Loaded {len(resources)} resources from {self.service_index_url}")
                self._resources = resources
        return self._resources

    async def _package_base_address(self) -> str:
        resources = await self._get_resources()
        base = resources.get(PACKAGE_BASE_ADDRESS_TYPE)
        if not base:
            raise ValueError(f"Upstream service index has no {PACKAGE_BASE_ADDRESS_TYPE} resource")
        return base

    async def _registrations_base_url(self) -> str:
        resources = await self._get_resources()
        for resource_type in REGISTRATIONS_BASE_URL_TYPES:
            if resources.get(resource_type):
                return resources[resource_type]
        raise ValueError("Upstream service index has no RegistrationsBaseUrl resource")

    async def _get_json(self, url: str) -> Optional[Any]:
        """
        GET a JSON document. Returns None on 404.

        Transport errors and 5xx responses are retried with a linear backoff.
        """
        last_error: Optional[Exception] = None
        for attempt in range(1, self.retries + 1):
            try:
                response = await self._client.get(url)
                if response.status_code == 404:
                    return None
                response.raise_for_status()
                return response.json()
            except (httpx.TransportError, httpx.HTTPStatusError) as e:
                if isinstance(e, httpx.HTTPStatusError) and e.response.status_code < 500:
                    raise
                last_error = e
                if attempt < self.retries:
                    logger.warning(f"Request to {url} failed (attempt {attempt}/{self.retries}): {e}. Retrying...")
                    await asyncio.sleep(1.0 * attempt)
        raise last_error

    # ========================================================================
    # Queries
    # ========================================================================

    async def list_versions(self, package_id: str) -> List[PackageVersion]:
        base = await self._package_base_address()
        data = await self._get_json(f"{base}/{package_id.lower()}/index.json")
        if not data:
            return []

        versions: List[PackageVersion] = []
        for raw in data.get("versions", []):
            version = PackageVersion.try_parse(raw)
            if version is None:
                logger.debug(f"Skipping unparsable upstream version {raw!r} of {package_id}")
                continue
            versions.append(version)
        return versions

    async def list_packages(self, package_id: str) -> List[PackageRecord]:
        base = await self._registrations_base_url()
        index = await self._get_json(f"{base}/{package_id.lower()}/index.json")
        if not index:
            return []

        records: List[PackageRecord] = []
        for page in index.get("items", []):
            items = page.get("items")
            if items is None:
                # Large registrations keep their leaves in separate page documents.
                page_data = await self._get_json(page["@id"])
                items = (page_data or {}).get("items", [])

            for leaf in items:
                record = self._record_from_catalog_entry(leaf.get("catalogEntry") or {})
                if record is not None:
                    records.append(record)
        return records

    @staticmethod
    def _record_from_catalog_entry(entry: Dict[str, Any]) -> Optional[PackageRecord]:
        version = PackageVersion.try_parse(entry.get("version"))
        package_id = entry.get("id")
        if version is None or not package_id:
            return None

        authors = entry.get("authors") or []
        if isinstance(authors, str):
            authors = [a.strip() for a in authors.split(",") if a.strip()]
        tags = entry.get("tags") or []
        if isinstance(tags, str):
            tags = tags.split()

        published = None
        if entry.get("published"):
            try:
                published = datetime.fromisoformat(entry["published"].replace("Z", "+00:00"))
            except ValueError:
                published = None

        return PackageRecord(
            id=package_id,
            version=version,
            listed=entry.get("listed", True),
            authors=authors,
            description=entry.get("description") or None,
            title=entry.get("title") or None,
            tags=tags,
            project_url=entry.get("projectUrl") or None,
            published=published,
            from_upstream=True,
        )

    async def download_or_none(self, package_id: str, version: PackageVersion) -> Optional[ArtifactStream]:
        base = await self._package_base_address()
        lower_id = package_id.lower()
        lower_version = version.to_normalized_string().lower()
        url = f"{base}/{lower_id}/{lower_version}/{lower_id}.{lower_version}.nupkg"
        logger.debug(f"Downloading package from {url}")

        request = self._client.build_request("GET", url)
        response = await self._client.send(request, stream=True)
        if response.status_code == 404:
            await response.aclose()
            return None

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError:
            await response.aclose()
            raise

        return ArtifactStream(response)

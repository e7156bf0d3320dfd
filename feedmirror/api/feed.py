from __future__ import annotations

from typing import List, Tuple
import logging
import os

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import FileResponse

from feedmirror.core.dependencies import get_mirror_service
from feedmirror.domain.models import PackageRecord
from feedmirror.domain.versions import PackageVersion
from feedmirror.services.mirror import MirrorService

logger = logging.getLogger(__name__)
router = APIRouter()

NUPKG_MEDIA_TYPE = "application/octet-stream"
NUSPEC_MEDIA_TYPE = "text/xml"


def _parse_version(version: str) -> PackageVersion:
    parsed = PackageVersion.try_parse(version)
    if parsed is None:
        # An unparsable version is simply a package we do not have.
        raise HTTPException(status_code=404, detail="Package not found")
    return parsed


def _base_url(request: Request) -> str:
    return str(request.base_url).rstrip("/")


def _served_file(mirror: MirrorService, package_id: str, version: PackageVersion, file_name: str) -> Tuple[str, str]:
    """
    Map a flat-container file name to the stored file and its media type.

    Accepted names (case-insensitive): <id>.<version>.nupkg, <id>.nuspec and
    <id>.<version>.nuspec. Anything else is a 404.
    """
    package_path = mirror.package_path(package_id, version)
    nuspec_path = mirror.store_root.package_file_path(package_id, version, "nuspec")

    requested = file_name.lower()
    if requested == os.path.basename(package_path):
        return package_path, NUPKG_MEDIA_TYPE
    if requested in (f"{package_id.lower()}.nuspec", os.path.basename(nuspec_path)):
        return nuspec_path, NUSPEC_MEDIA_TYPE
    raise HTTPException(status_code=404, detail="Package not found")


# ---------------------------------------------------------------------------
# 1. GET /v3/index.json
# ---------------------------------------------------------------------------

@router.get("/v3/index.json")
async def get_service_index(request: Request) -> dict:
    """
    NuGet v3 service index advertising the endpoints served here.
    """
    base_url = _base_url(request)
    package_base = f"{base_url}/v3/package/"
    registrations = f"{base_url}/v3/registration/"

    return {
        "version": "3.0.0",
        "resources": [
            {"@id": package_base, "@type": "PackageBaseAddress/3.0.0"},
            {"@id": registrations, "@type": "RegistrationsBaseUrl"},
            {"@id": registrations, "@type": "RegistrationsBaseUrl/3.0.0-rc"},
            {"@id": registrations, "@type": "RegistrationsBaseUrl/3.0.0-beta"},
        ],
    }


# ---------------------------------------------------------------------------
# 2. GET /v3/package/{id}/index.json
# ---------------------------------------------------------------------------

@router.get("/v3/package/{package_id}/index.json")
async def get_package_versions(
    package_id: str,
    mirror: MirrorService = Depends(get_mirror_service),
) -> dict:
    versions = await mirror.list_versions(package_id)
    if not versions:
        raise HTTPException(status_code=404, detail="Package not found")

    return {
        "versions": [v.to_normalized_string().lower() for v in versions],
    }


# ---------------------------------------------------------------------------
# 3. Package content (.nupkg / .nuspec)
# ---------------------------------------------------------------------------

@router.get("/v3/package/{package_id}/{version}/{file_name}")
async def download_package_file(
    package_id: str,
    version: str,
    file_name: str,
    mirror: MirrorService = Depends(get_mirror_service),
) -> FileResponse:
    """
    Serve the package archive (mirroring it first if needed) or its manifest.
    """
    parsed = _parse_version(version)
    served_path, media_type = _served_file(mirror, package_id, parsed, file_name)

    package = await mirror.find_package_or_none(package_id, parsed)
    if package is None:
        raise HTTPException(status_code=404, detail="Package not found")

    if media_type == NUPKG_MEDIA_TYPE:
        mirror.add_download(package_id, parsed)

    if not os.path.isfile(served_path):
        raise HTTPException(status_code=404, detail="Package file not found on disk")

    return FileResponse(
        path=served_path,
        filename=os.path.basename(served_path),
        media_type=media_type,
    )


@router.head("/v3/package/{package_id}/{version}/{file_name}")
async def package_exists(
    package_id: str,
    version: str,
    file_name: str,
    mirror: MirrorService = Depends(get_mirror_service),
) -> Response:
    parsed = _parse_version(version)
    _served_file(mirror, package_id, parsed, file_name)
    if not await mirror.exists(package_id, parsed):
        return Response(status_code=status.HTTP_404_NOT_FOUND)
    return Response(status_code=status.HTTP_200_OK)


# ---------------------------------------------------------------------------
# 4. GET /v3/registration/{id}/index.json
# ---------------------------------------------------------------------------

def _registration_leaf(base_url: str, package: PackageRecord) -> dict:
    lower_id = package.id.lower()
    lower_version = package.version.to_normalized_string().lower()
    return {
        "@id": f"{base_url}/v3/registration/{lower_id}/{lower_version}.json",
        "packageContent": f"{base_url}/v3/package/{lower_id}/{lower_version}/{lower_id}.{lower_version}.nupkg",
        "catalogEntry": {
            "id": package.id,
            "version": package.version.to_normalized_string(),
            "listed": package.listed,
            "authors": ", ".join(package.authors),
            "description": package.description or "",
            "title": package.title or "",
            "tags": package.tags,
            "projectUrl": package.project_url or "",
            "published": package.published.isoformat() if package.published else None,
        },
    }


@router.get("/v3/registration/{package_id}/index.json")
async def get_registration_index(
    package_id: str,
    request: Request,
    mirror: MirrorService = Depends(get_mirror_service),
) -> dict:
    """
    Merged package metadata as a single inline registration page.
    """
    packages: List[PackageRecord] = sorted(
        await mirror.list_packages(package_id),
        key=lambda p: p.version,
    )
    if not packages:
        raise HTTPException(status_code=404, detail="Package not found")

    base_url = _base_url(request)
    lower_id = package_id.lower()
    return {
        "@id": f"{base_url}/v3/registration/{lower_id}/index.json",
        "count": 1,
        "items": [
            {
                "@id": f"{base_url}/v3/registration/{lower_id}/index.json#page",
                "count": len(packages),
                "lower": packages[0].version.to_normalized_string().lower(),
                "upper": packages[-1].version.to_normalized_string().lower(),
                "items": [_registration_leaf(base_url, p) for p in packages],
            }
        ],
    }

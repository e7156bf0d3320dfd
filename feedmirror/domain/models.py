"""
Pydantic models for the package mirror.

This module defines the data models used throughout the application:
- Mirror configuration
- Package identities and package records
- Indexing and mirror outcomes

All models use Pydantic for validation, serialization, and type safety.
"""

from __future__ import annotations

import enum
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from feedmirror.domain.versions import PackageVersion

_PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_STORE_PATH = str(_PROJECT_ROOT / "data")
NUGET_SERVICE_INDEX = "https://api.nuget.org/v3/index.json"


# ---------------------------------------------------------------------------
# Configuration Models
# ---------------------------------------------------------------------------


class MirrorSettings(BaseModel):
    """
    Top-level configuration for the mirror.

    Loaded from the YAML file named by FEEDMIRROR_CONFIG (optional) with
    environment variable overrides applied on top.
    """

    store_path: str = Field(
        default=DEFAULT_STORE_PATH,
        description="Directory that holds every mirrored artifact and metadata record.",
    )
    mirror_enabled: bool = Field(
        default=True,
        description="If False, the upstream feed is never contacted and only local packages are served.",
    )
    upstream_service_index: str = Field(
        default=NUGET_SERVICE_INDEX,
        description="URL of the upstream NuGet v3 service index.",
    )
    upstream_timeout_seconds: float = Field(
        default=60.0,
        ge=1,
        description="Timeout for a single upstream HTTP request, in seconds.",
    )
    upstream_retries: int = Field(
        default=3,
        ge=1,
        description="Attempts for upstream metadata queries before giving up.",
    )
    log_level: str = Field(
        default="INFO",
        description="Root logging level (DEBUG, INFO, WARNING, ERROR).",
    )

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()


# ---------------------------------------------------------------------------
# Package Models
# ---------------------------------------------------------------------------


class PackageIdentity(BaseModel):
    """
    A package id plus a normalized version, the unit of addressing.

    Ids are case-insensitive: two identities are equal when their lowercase ids
    match and their versions are equal.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    version: PackageVersion

    @property
    def lower_id(self) -> str:
        return self.id.lower()

    def key(self) -> tuple:
        return (self.lower_id, self.version)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PackageIdentity):
            return NotImplemented
        return self.key() == other.key()

    def __hash__(self) -> int:
        return hash(self.key())

    def __str__(self) -> str:
        return f"{self.id} {self.version}"


class PackageRecord(BaseModel):
    """
    Metadata for a single package version.

    The mirror core only reads ``id``, ``version`` and existence. Everything
    else is owned by the metadata store and the indexer.

    Persisted at: <STORE_ROOT>/packages/<id>/<version>/<id>.<version>.json
    """

    id: str = Field(description="Package id as declared by the package author.")
    version: PackageVersion = Field(description="Package version.")
    listed: bool = Field(
        default=True,
        description="Unlisted packages are hidden from default listings but can still be fetched.",
    )
    authors: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    title: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    project_url: Optional[str] = None
    published: Optional[datetime] = None
    downloads: int = Field(default=0, ge=0)
    # True when the record was reported by the upstream feed rather than the
    # local store. Not persisted.
    from_upstream: bool = Field(default=False, exclude=True)


class IndexingResult(str, enum.Enum):
    """Disposition reported by the indexer for one artifact."""

    SUCCESS = "Success"
    ALREADY_EXISTS = "AlreadyExists"
    INVALID_DATA = "InvalidData"
    MALFORMED_PACKAGE = "MalformedPackage"


class MirrorOutcome(str, enum.Enum):
    """How a resolve request was satisfied."""

    HIT_LOCAL = "HitLocal"
    HIT_AFTER_MIRROR = "HitAfterMirror"
    MISS = "Miss"

    @property
    def available(self) -> bool:
        return self is not MirrorOutcome.MISS

"""
Package version parsing and normalization.

Versions follow the NuGet flavour of semantic versioning:

* 1 to 4 dot-separated numeric components (``1``, ``1.2``, ``1.2.3``, ``1.2.3.4``)
* an optional ``-prerelease`` part made of dot-separated labels
* an optional ``+metadata`` part, which is ignored for equality and ordering

The normalized string always has at least three numeric components, carries a
fourth one only when it is non-zero, keeps the prerelease part and drops the
build metadata. ``1.0`` and ``1.0.0.0`` both normalize to ``1.0.0``.
"""
from __future__ import annotations

import functools
import re
from typing import Any, Optional, Tuple

from pydantic_core import core_schema

_VERSION_RE = re.compile(
    r"^\s*v?"
    r"(?P<numbers>\d+(?:\.\d+){0,3})"
    r"(?:-(?P<release>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<metadata>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"\s*$"
)


def _label_key(label: str) -> tuple:
    # Numeric labels sort before alphanumeric ones and compare as integers.
    if label.isdigit():
        return (0, int(label), "")
    return (1, 0, label.lower())


@functools.total_ordering
class PackageVersion:
    """
    Hashable package version. Instances are treated as immutable values.
    """

    __slots__ = ("major", "minor", "patch", "revision", "release_labels", "metadata", "original")

    def __init__(
        self,
        major: int,
        minor: int = 0,
        patch: int = 0,
        revision: int = 0,
        release_labels: Tuple[str, ...] = (),
        metadata: Optional[str] = None,
        original: Optional[str] = None,
    ):
        self.major = major
        self.minor = minor
        self.patch = patch
        self.revision = revision
        self.release_labels = tuple(release_labels)
        self.metadata = metadata
        self.original = original

    @classmethod
    def parse(cls, value: str) -> "PackageVersion":
        """
        Parse a version string.

        Raises:
            ValueError: if the string is not a valid package version.
        """
        if not isinstance(value, str):
            raise ValueError(f"Version must be a string, got {type(value).__name__}")

        match = _VERSION_RE.match(value)
        if not match:
            raise ValueError(f"Invalid package version: {value!r}")

        numbers = [int(part) for part in match.group("numbers").split(".")]
        numbers += [0] * (4 - len(numbers))
        release = match.group("release")
        labels = tuple(release.split(".")) if release else ()

        return cls(
            numbers[0],
            numbers[1],
            numbers[2],
            numbers[3],
            release_labels=labels,
            metadata=match.group("metadata"),
            original=value.strip(),
        )

    @classmethod
    def try_parse(cls, value: Optional[str]) -> Optional["PackageVersion"]:
        if value is None:
            return None
        try:
            return cls.parse(value)
        except ValueError:
            return None

    @property
    def release(self) -> str:
        return ".".join(self.release_labels)

    def to_normalized_string(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.revision:
            text += f".{self.revision}"
        if self.release_labels:
            text += f"-{self.release}"
        return text

    def _key(self) -> tuple:
        numbers = (self.major, self.minor, self.patch, self.revision)
        if not self.release_labels:
            # A release sorts after all of its prereleases.
            return numbers + ((1,),)
        return numbers + ((0,) + tuple(_label_key(label) for label in self.release_labels),)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PackageVersion):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other: "PackageVersion") -> bool:
        if not isinstance(other, PackageVersion):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        return self.to_normalized_string()

    def __repr__(self) -> str:
        return f"PackageVersion({self.to_normalized_string()!r})"

    # pydantic v2 integration so models can declare ``version: PackageVersion``
    # and accept plain strings from JSON.
    @classmethod
    def __get_pydantic_core_schema__(cls, source_type, handler):
        def _validate(value: Any) -> "PackageVersion":
            if isinstance(value, PackageVersion):
                return value
            return cls.parse(value)

        return core_schema.no_info_plain_validator_function(
            _validate,
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda v: v.to_normalized_string()
            ),
        )

    @classmethod
    def __get_pydantic_json_schema__(cls, schema, handler):
        return {"type": "string", "format": "package-version"}

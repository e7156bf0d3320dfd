"""
Tests for package version parsing and normalization.
"""

import pytest

from feedmirror.domain.models import PackageIdentity, PackageRecord
from feedmirror.domain.versions import PackageVersion


class TestParse:
    @pytest.mark.parametrize(
        "raw, normalized",
        [
            ("1", "1.0.0"),
            ("1.0", "1.0.0"),
            ("1.0.0.0", "1.0.0"),
            ("1.2.3.4", "1.2.3.4"),
            ("01.002.3", "1.2.3"),
            ("1.0.0-Beta.1", "1.0.0-Beta.1"),
            ("2.0.0+sha.abc", "2.0.0"),
            ("1.0.0-preview-20231115-113309", "1.0.0-preview-20231115-113309"),
        ],
    )
    def test_normalized_string(self, raw, normalized):
        assert PackageVersion.parse(raw).to_normalized_string() == normalized

    @pytest.mark.parametrize("raw", ["", "abc", "1.2.3.4.5", "1.0-", "1..0", "1.0.0-beta..1"])
    def test_invalid_versions_raise(self, raw):
        with pytest.raises(ValueError):
            PackageVersion.parse(raw)

    def test_try_parse_returns_none(self):
        assert PackageVersion.try_parse("not-a-version") is None
        assert PackageVersion.try_parse(None) is None
        assert PackageVersion.try_parse("1.0") == PackageVersion.parse("1.0.0")


class TestEquality:
    def test_metadata_is_ignored(self):
        assert PackageVersion.parse("1.0.0+a") == PackageVersion.parse("1.0.0+b")
        assert hash(PackageVersion.parse("1.0.0+a")) == hash(PackageVersion.parse("1.0.0"))

    def test_release_labels_are_case_insensitive(self):
        assert PackageVersion.parse("1.0.0-BETA") == PackageVersion.parse("1.0.0-beta")

    def test_trailing_zero_revision(self):
        assert PackageVersion.parse("1.0") == PackageVersion.parse("1.0.0.0")
        assert len({PackageVersion.parse("1.0"), PackageVersion.parse("1.0.0")}) == 1


class TestOrdering:
    def test_prerelease_sorts_before_release(self):
        assert PackageVersion.parse("1.0.0-alpha") < PackageVersion.parse("1.0.0")

    def test_numeric_labels_compare_numerically(self):
        assert PackageVersion.parse("1.0.0-beta.2") < PackageVersion.parse("1.0.0-beta.10")

    def test_sorted(self):
        raw = ["2.0.0", "1.0.0-rc.1", "1.0.0", "1.10.0", "1.2.0"]
        ordered = [str(v) for v in sorted(PackageVersion.parse(r) for r in raw)]
        assert ordered == ["1.0.0-rc.1", "1.0.0", "1.2.0", "1.10.0", "2.0.0"]


class TestIdentity:
    def test_identity_is_case_insensitive(self):
        a = PackageIdentity(id="Sample.Pkg", version="1.0")
        b = PackageIdentity(id="sample.pkg", version="1.0.0")
        assert a == b
        assert hash(a) == hash(b)
        assert a.key() == ("sample.pkg", PackageVersion.parse("1.0.0"))

    def test_identity_is_immutable(self):
        identity = PackageIdentity(id="Sample.Pkg", version="1.0.0")
        with pytest.raises(Exception):
            identity.id = "other"

    def test_record_serializes_normalized_version(self):
        record = PackageRecord(id="Sample.Pkg", version="1.0.0.0+meta")
        data = record.model_dump(mode="json")
        assert data["version"] == "1.0.0"
        assert "from_upstream" not in data
        assert PackageRecord.model_validate(data).version == PackageVersion.parse("1.0.0")

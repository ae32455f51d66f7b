"""Tests for semantic versions and host compatibility."""

import pytest

from aniext.core.exceptions import CompatibilityError, ValidationError
from aniext.core.models import CompatibilityStatus
from aniext.core.versioning import CompatibilityChecker, SemVer, VersionRange, compare_versions


class TestSemVer:
    def test_parse(self):
        version = SemVer.parse("2.10.3-beta.1")
        assert (version.major, version.minor, version.patch) == (2, 10, 3)
        assert version.prerelease == "beta.1"
        assert str(version) == "2.10.3-beta.1"

    @pytest.mark.parametrize("text", ["1.0", "v1.0.0", "01.0.0", "1.0.0.0", ""])
    def test_rejects_invalid(self, text):
        assert not SemVer.is_valid(text)
        with pytest.raises(ValidationError):
            SemVer.parse(text)

    def test_ordering(self):
        assert compare_versions("1.2.0", "1.10.0") == -1
        assert compare_versions("1.0.0", "1.0.0") == 0
        assert compare_versions("1.0.0", "1.0.0-rc.1") == 1
        assert compare_versions("1.0.0-alpha", "1.0.0-beta") == -1
        assert compare_versions("1.0.0-2", "1.0.0-10") == -1


class TestCompatibilityChecker:
    @pytest.mark.parametrize(
        "host,minimum",
        [("1.0.0", "2.0.0"), ("2.0.0", "1.0.0"), ("3.4.5", "1.9.9"), ("0.9.0", "1.0.0")],
    )
    def test_different_major_is_incompatible(self, host, minimum):
        report = CompatibilityChecker(host).check(VersionRange(min=minimum))
        assert report.status == CompatibilityStatus.INCOMPATIBLE
        assert not report.is_compatible

    def test_exact_match_is_compatible(self):
        report = CompatibilityChecker("1.2.0").check(VersionRange(min="1.2.0"))
        assert report.status == CompatibilityStatus.COMPATIBLE

    def test_newer_host_warns(self):
        report = CompatibilityChecker("1.4.0").check(VersionRange(min="1.2.0"))
        assert report.status == CompatibilityStatus.COMPATIBLE_WITH_WARNING
        assert report.is_compatible
        assert "1.2.0" in report.reason

    def test_older_host_is_incompatible(self):
        report = CompatibilityChecker("1.1.0").check(VersionRange(min="1.2.0"))
        assert report.status == CompatibilityStatus.INCOMPATIBLE

    def test_host_above_max_is_incompatible(self):
        report = CompatibilityChecker("1.5.0").check(VersionRange(min="1.0.0", max="1.4.0"))
        assert report.status == CompatibilityStatus.INCOMPATIBLE

    def test_host_within_range(self):
        report = CompatibilityChecker("1.3.0").check(VersionRange(min="1.0.0", max="1.4.0"))
        assert report.is_compatible

    def test_require_raises_for_incompatible(self):
        with pytest.raises(CompatibilityError) as exc_info:
            CompatibilityChecker("2.0.0").require(VersionRange(min="1.0.0"))
        assert exc_info.value.host_version == "2.0.0"

    def test_range_description(self):
        assert str(VersionRange(min="1.2.0")) == ">=1.2.0, <2.0.0"
        assert str(VersionRange(min="1.2.0", max="1.5.0")) == ">=1.2.0, <=1.5.0"

"""
Version Compatibility - Semantic versions and host compatibility rules.

An extension declares the host version it was built against (and
optionally the newest host it supports). A host is compatible when it
shares the extension's major version, is at least the declared minimum
and does not exceed a declared maximum.
"""

import logging
import re
from typing import Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from aniext.core.exceptions import CompatibilityError, ValidationError
from aniext.core.models import CompatibilityStatus


logger = logging.getLogger(__name__)

SEMVER_PATTERN = re.compile(
    r'^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)'
    r'(?:-((?:0|[1-9]\d*|\d*[A-Za-z-][0-9A-Za-z-]*)(?:\.(?:0|[1-9]\d*|\d*[A-Za-z-][0-9A-Za-z-]*))*))?$'
)


class SemVer(BaseModel):
    """A parsed ``MAJOR.MINOR.PATCH[-prerelease]`` version."""

    model_config = ConfigDict(frozen=True)

    major: int
    minor: int
    patch: int
    prerelease: Optional[str] = None

    @classmethod
    def parse(cls, text: str) -> "SemVer":
        """
        Parse a strict semantic version string.

        Raises:
            ValidationError: If the string is not a valid version
        """
        match = SEMVER_PATTERN.match(str(text).strip())
        if not match:
            raise ValidationError(f"Invalid semantic version: {text!r}", field_name="version", invalid_value=text)
        major, minor, patch, pre = match.groups()
        return cls(major=int(major), minor=int(minor), patch=int(patch), prerelease=pre)

    @staticmethod
    def is_valid(text: str) -> bool:
        return bool(SEMVER_PATTERN.match(str(text).strip()))

    def _prerelease_key(self) -> Tuple:
        # A release sorts after any of its prereleases
        if self.prerelease is None:
            return (1,)
        parts = []
        for ident in self.prerelease.split("."):
            if ident.isdigit():
                parts.append((0, int(ident), ""))
            else:
                parts.append((1, 0, ident))
        return (0, tuple(parts))

    def sort_key(self) -> Tuple:
        return (self.major, self.minor, self.patch, self._prerelease_key())

    def __lt__(self, other: "SemVer") -> bool:
        return self.sort_key() < other.sort_key()

    def __le__(self, other: "SemVer") -> bool:
        return self.sort_key() <= other.sort_key()

    def __gt__(self, other: "SemVer") -> bool:
        return self.sort_key() > other.sort_key()

    def __ge__(self, other: "SemVer") -> bool:
        return self.sort_key() >= other.sort_key()

    def __str__(self) -> str:
        base = f"{self.major}.{self.minor}.{self.patch}"
        return f"{base}-{self.prerelease}" if self.prerelease else base


def compare_versions(a: str, b: str) -> int:
    """Compare two version strings, returning -1, 0 or 1."""
    left, right = SemVer.parse(a), SemVer.parse(b)
    if left < right:
        return -1
    if left > right:
        return 1
    return 0


class VersionRange(BaseModel):
    """Host versions an extension declares support for."""

    model_config = ConfigDict(frozen=True)

    min: str = Field(..., description="Host version the extension was built against")
    max: Optional[str] = Field(default=None, description="Newest host version supported")

    def __str__(self) -> str:
        return f">={self.min}" + (f", <={self.max}" if self.max else f", <{SemVer.parse(self.min).major + 1}.0.0")


class CompatibilityReport(BaseModel):
    """Result of checking one extension against the running host."""

    status: CompatibilityStatus
    host_version: str
    required: str
    reason: str = ""

    @property
    def is_compatible(self) -> bool:
        return self.status != CompatibilityStatus.INCOMPATIBLE


class CompatibilityChecker:
    """Gates extension loading on the host's running version."""

    def __init__(self, host_version: Union[str, SemVer]):
        """
        Initialize the checker.

        Args:
            host_version: Version of the running host application
        """
        self.host = host_version if isinstance(host_version, SemVer) else SemVer.parse(host_version)

    @property
    def host_version(self) -> str:
        return str(self.host)

    def check(self, target: VersionRange) -> CompatibilityReport:
        """
        Compare a declared target range with the host version.

        Args:
            target: Range declared in the extension manifest

        Returns:
            Report with the compatibility status and a reason
        """
        minimum = SemVer.parse(target.min)
        maximum = SemVer.parse(target.max) if target.max else None
        required = str(target)

        def report(status: CompatibilityStatus, reason: str = "") -> CompatibilityReport:
            return CompatibilityReport(
                status=status,
                host_version=self.host_version,
                required=required,
                reason=reason,
            )

        if self.host.major != minimum.major:
            return report(
                CompatibilityStatus.INCOMPATIBLE,
                f"Extension targets host {minimum.major}.x, running {self.host_version}",
            )

        if self.host < minimum:
            return report(
                CompatibilityStatus.INCOMPATIBLE,
                f"Extension requires host {minimum} or newer, running {self.host_version}",
            )

        if maximum is not None:
            if maximum.major != minimum.major:
                return report(
                    CompatibilityStatus.INCOMPATIBLE,
                    f"Maximum version {maximum} crosses major version {minimum.major}",
                )
            if self.host > maximum:
                return report(
                    CompatibilityStatus.INCOMPATIBLE,
                    f"Extension supports host up to {maximum}, running {self.host_version}",
                )

        if self.host.sort_key()[:3] > minimum.sort_key()[:3]:
            return report(
                CompatibilityStatus.COMPATIBLE_WITH_WARNING,
                f"Extension was built for {minimum}; host {self.host_version} is newer",
            )

        return report(CompatibilityStatus.COMPATIBLE)

    def require(self, target: VersionRange) -> CompatibilityReport:
        """
        Check compatibility and refuse incompatible targets.

        Raises:
            CompatibilityError: If the host cannot run the extension
        """
        result = self.check(target)
        if result.status == CompatibilityStatus.INCOMPATIBLE:
            raise CompatibilityError(
                result.reason,
                host_version=result.host_version,
                required=result.required,
            )
        if result.status == CompatibilityStatus.COMPATIBLE_WITH_WARNING:
            logger.info(result.reason)
        return result


# Export version utilities
__all__ = [
    "SemVer",
    "VersionRange",
    "CompatibilityReport",
    "CompatibilityChecker",
    "compare_versions",
]

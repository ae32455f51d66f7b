"""
Extension Manifests - Schema, validation and integrity checks.

A manifest describes an extension's identity, kind, advertised
capabilities, requested permissions, supported host versions, optional
security block and the locator of its executable payload. Validation
collects every problem it can find so authors see a complete report,
while loading refuses anything with a blocking error.
"""

import base64
import hashlib
import hmac
import logging
import re
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from aniext.core.capabilities import Capability, get_capability
from aniext.core.exceptions import BackendLoadError, ValidationError
from aniext.core.models import ExtensionKind
from aniext.core.versioning import SemVer, VersionRange


logger = logging.getLogger(__name__)

ID_PATTERN = re.compile(r'^[A-Za-z0-9_-]{3,50}$')
DOMAIN_PATTERN = re.compile(r'^(\*\.)?[a-z0-9]([a-z0-9-]*[a-z0-9])?(\.[a-z0-9]([a-z0-9-]*[a-z0-9])?)*$')
INTEGRITY_PATTERN = re.compile(r'^sha256-[A-Za-z0-9+/=]{43,}$')

REQUIRED_FIELDS = ("id", "name", "version", "kind", "capabilities", "targetVersionRange", "locator")

PERMISSIONS = frozenset({
    "network:http",
    "network:websocket",
    "storage:local",
    "storage:cache",
    "ui:notification",
    "ui:dialog",
    "ui:settings",
    "system:clipboard",
    "system:process",
})

PLATFORMS = ("linux", "windows", "macos", "android", "ios")

MAX_KEYWORDS = 10


class BackendFormat(str, Enum):
    """Physical format of an extension payload."""

    SCRIPT = "script"
    WASM = "wasm"
    NATIVE = "native"
    BUILTIN = "builtin"


class Locator(BaseModel):
    """Where to find the extension payload; exactly one form is set."""

    model_config = ConfigDict(frozen=True)

    script: Optional[str] = Field(default=None, description="Path to a script module")
    module: Optional[str] = Field(default=None, description="Path to a linear-memory binary module")
    libraries: Optional[Dict[str, str]] = Field(default=None, description="Platform to shared library path")
    builtin: Optional[str] = Field(default=None, description="Name of an in-process provider")

    @property
    def format(self) -> BackendFormat:
        if self.script is not None:
            return BackendFormat.SCRIPT
        if self.module is not None:
            return BackendFormat.WASM
        if self.libraries is not None:
            return BackendFormat.NATIVE
        return BackendFormat.BUILTIN


class SecurityPolicy(BaseModel):
    """Optional security block of a manifest."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    allowed_domains: List[str] = Field(default_factory=list, alias="allowedDomains")
    integrity_hash: Optional[str] = Field(default=None, alias="integrityHash")


class Manifest(BaseModel):
    """
    Validated extension manifest.

    Instances are immutable; changing a manifest requires unloading and
    reloading the extension.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    version: str
    kind: ExtensionKind
    capabilities: Dict[str, bool]
    permissions: List[str] = Field(default_factory=list)
    target_version_range: VersionRange = Field(..., alias="targetVersionRange")
    security: Optional[SecurityPolicy] = None
    locator: Locator
    description: Optional[str] = None
    author: Optional[str] = None
    icon: Optional[str] = None
    homepage: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    rate_limit_ms: Optional[int] = Field(default=None, ge=0, alias="rateLimitMs")

    @property
    def advertised(self) -> List[Capability]:
        """Capabilities flagged true, in registry order."""
        return [cap for cap in Capability if self.capabilities.get(cap.value)]

    def advertises(self, capability: str) -> bool:
        return bool(self.capabilities.get(str(capability)))

    @property
    def backend_format(self) -> BackendFormat:
        return self.locator.format

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions

    def to_dict(self) -> Dict[str, Any]:
        """Serialize back to the camelCase manifest layout."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ValidationIssue(BaseModel):
    """A single validation finding."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class ManifestValidationResult(BaseModel):
    """Structured validation outcome."""

    valid: bool
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)

    @property
    def error_messages(self) -> List[str]:
        return [str(issue) for issue in self.errors]

    @property
    def warning_messages(self) -> List[str]:
        return [str(issue) for issue in self.warnings]


class ManifestValidator:
    """Checks raw manifest data against structural and semantic rules."""

    def validate(self, data: Any) -> ManifestValidationResult:
        """
        Validate raw manifest data.

        Args:
            data: Decoded manifest (normally a dict loaded from JSON)

        Returns:
            Result with blocking errors and non-blocking warnings
        """
        errors: List[ValidationIssue] = []
        warnings: List[ValidationIssue] = []

        def error(field: str, message: str) -> None:
            errors.append(ValidationIssue(field=field, message=message))

        def warn(field: str, message: str) -> None:
            warnings.append(ValidationIssue(field=field, message=message))

        if not isinstance(data, dict):
            error("manifest", "Manifest must be an object")
            return ManifestValidationResult(valid=False, errors=errors)

        for field in REQUIRED_FIELDS:
            if data.get(field) in (None, "", {}):
                error(field, "Required field is missing")

        self._check_identity(data, error)
        self._check_kind(data, error)
        self._check_capabilities(data, error, warn)
        self._check_permissions(data, error, warn)
        self._check_target(data, error)
        self._check_security(data, error)
        self._check_locator(data, error)
        self._check_metadata(data, error)

        if not data.get("icon"):
            warn("icon", "No icon provided")
        if not data.get("description"):
            warn("description", "No description provided")
        keywords = data.get("keywords")
        if isinstance(keywords, list) and len(keywords) > MAX_KEYWORDS:
            warn("keywords", f"More than {MAX_KEYWORDS} keywords; extras are ignored by search")
        rate_limit = data.get("rateLimitMs")
        if rate_limit is not None and (not isinstance(rate_limit, int) or isinstance(rate_limit, bool) or rate_limit < 0):
            error("rateLimitMs", "Must be a non-negative integer")

        return ManifestValidationResult(valid=not errors, errors=errors, warnings=warnings)

    def _check_metadata(self, data: Dict[str, Any], error) -> None:
        for field in ("description", "author", "icon", "homepage"):
            value = data.get(field)
            if value is not None and not isinstance(value, str):
                error(field, "Must be a string")

        keywords = data.get("keywords")
        if keywords is None:
            return
        if not isinstance(keywords, list):
            error("keywords", "Must be a list of strings")
        elif not all(isinstance(keyword, str) for keyword in keywords):
            error("keywords", "Every keyword must be a string")

    def _check_identity(self, data: Dict[str, Any], error) -> None:
        ext_id = data.get("id")
        if ext_id not in (None, "") and (not isinstance(ext_id, str) or not ID_PATTERN.match(ext_id)):
            error("id", "Must be 3-50 characters of letters, digits, '_' or '-'")

        name = data.get("name")
        if name not in (None, "") and (not isinstance(name, str) or not 2 <= len(name.strip()) <= 100):
            error("name", "Must be 2-100 characters")

        version = data.get("version")
        if version not in (None, "") and (not isinstance(version, str) or not SemVer.is_valid(version)):
            error("version", f"Not a MAJOR.MINOR.PATCH[-prerelease] version: {version!r}")

    def _check_kind(self, data: Dict[str, Any], error) -> None:
        kind = data.get("kind")
        if kind in (None, ""):
            return
        if not isinstance(kind, str) or kind not in {k.value for k in ExtensionKind}:
            error("kind", f"Unknown extension kind: {kind!r}")

    def _check_capabilities(self, data: Dict[str, Any], error, warn) -> None:
        capabilities = data.get("capabilities")
        if capabilities in (None, {}):
            return
        if not isinstance(capabilities, dict):
            error("capabilities", "Must map capability names to booleans")
            return

        for name, flag in capabilities.items():
            if get_capability(name) is None:
                error(f"capabilities.{name}", "Unknown capability")
            elif not isinstance(flag, bool):
                error(f"capabilities.{name}", "Flag must be true or false")

        if not any(flag is True for flag in capabilities.values()):
            warn("capabilities", "Extension advertises no capabilities")

    def _check_permissions(self, data: Dict[str, Any], error, warn) -> None:
        permissions = data.get("permissions", [])
        if not isinstance(permissions, list):
            error("permissions", "Must be a list")
            return

        for permission in permissions:
            if not isinstance(permission, str) or permission not in PERMISSIONS:
                error("permissions", f"Unknown permission: {permission!r}")

        capabilities = data.get("capabilities")
        if isinstance(capabilities, dict) and "network:http" not in permissions:
            needs_network = [
                name for name, flag in capabilities.items()
                if flag is True and get_capability(name) is not None and get_capability(name).network
            ]
            locator = data.get("locator")
            builtin = isinstance(locator, dict) and locator.get("builtin") is not None
            if needs_network and not builtin:
                warn("permissions", f"{', '.join(needs_network)} usually need 'network:http'")

    def _check_target(self, data: Dict[str, Any], error) -> None:
        target = data.get("targetVersionRange")
        if target in (None, ""):
            return
        if not isinstance(target, dict):
            error("targetVersionRange", "Must be an object with 'min' and optional 'max'")
            return

        minimum, maximum = target.get("min"), target.get("max")
        if not isinstance(minimum, str) or not SemVer.is_valid(minimum):
            error("targetVersionRange.min", f"Not a valid version: {minimum!r}")
            return
        if maximum is not None:
            if not isinstance(maximum, str) or not SemVer.is_valid(maximum):
                error("targetVersionRange.max", f"Not a valid version: {maximum!r}")
            elif SemVer.parse(maximum) < SemVer.parse(minimum):
                error("targetVersionRange.max", "Maximum is older than minimum")

    def _check_security(self, data: Dict[str, Any], error) -> None:
        security = data.get("security")
        if security is None:
            return
        if not isinstance(security, dict):
            error("security", "Must be an object")
            return

        domains = security.get("allowedDomains", [])
        if not isinstance(domains, list):
            error("security.allowedDomains", "Must be a list")
        else:
            for domain in domains:
                if not isinstance(domain, str) or not DOMAIN_PATTERN.match(domain):
                    error("security.allowedDomains", f"Invalid domain pattern: {domain!r}")

        integrity = security.get("integrityHash")
        if integrity is not None and (not isinstance(integrity, str) or not INTEGRITY_PATTERN.match(integrity)):
            error("security.integrityHash", "Must look like 'sha256-<base64 digest>'")

    def _check_locator(self, data: Dict[str, Any], error) -> None:
        locator = data.get("locator")
        if locator in (None, "", {}):
            return
        if not isinstance(locator, dict):
            error("locator", "Must be an object")
            return

        forms = [key for key in ("script", "module", "libraries", "builtin") if locator.get(key) is not None]
        if len(forms) != 1:
            error("locator", "Exactly one of 'script', 'module', 'libraries' or 'builtin' is required")
            return

        form = forms[0]
        value = locator[form]
        if form == "libraries":
            if not isinstance(value, dict) or not value:
                error("locator.libraries", "Must map platform names to library paths")
                return
            for platform_name, path in value.items():
                if platform_name not in PLATFORMS:
                    error("locator.libraries", f"Unknown platform: {platform_name!r}")
                elif not isinstance(path, str) or not path:
                    error(f"locator.libraries.{platform_name}", "Library path must be a non-empty string")
        elif not isinstance(value, str) or not value:
            error(f"locator.{form}", "Must be a non-empty string")


def parse_manifest(data: Any, validator: Optional[ManifestValidator] = None) -> Manifest:
    """
    Validate raw data and build an immutable Manifest.

    Raises:
        ValidationError: Naming the first failing field
    """
    result = (validator or ManifestValidator()).validate(data)
    if not result.valid:
        first = result.errors[0]
        raise ValidationError(
            f"Invalid manifest: {first}",
            field_name=first.field,
            details=result.error_messages,
        )

    try:
        return Manifest.model_validate(data)
    except PydanticValidationError as e:
        issues = [(".".join(str(part) for part in err["loc"]) or "manifest", err["msg"]) for err in e.errors()]
        raise ValidationError(
            f"Invalid manifest: {issues[0][0]}: {issues[0][1]}",
            field_name=issues[0][0],
            details=[f"{field}: {message}" for field, message in issues],
        )


def compute_integrity_hash(payload: bytes) -> str:
    """Digest a payload as ``sha256-<base64>``."""
    digest = hashlib.sha256(payload).digest()
    return "sha256-" + base64.b64encode(digest).decode("ascii")


def verify_integrity(manifest: Manifest, payload: bytes) -> None:
    """
    Compare a payload with the manifest's declared integrity hash.

    Manifests without a hash are accepted as-is.

    Raises:
        BackendLoadError: If the hash does not match
    """
    if manifest.security is None or not manifest.security.integrity_hash:
        return
    actual = compute_integrity_hash(payload)
    if not hmac.compare_digest(actual, manifest.security.integrity_hash):
        raise BackendLoadError(
            "Payload integrity check failed",
            extension_id=manifest.id,
            details={"expected": manifest.security.integrity_hash, "actual": actual},
        )
    logger.debug(f"Integrity verified for {manifest.id}")


# Export manifest components
__all__ = [
    "BackendFormat",
    "Locator",
    "SecurityPolicy",
    "Manifest",
    "ValidationIssue",
    "ManifestValidationResult",
    "ManifestValidator",
    "parse_manifest",
    "compute_integrity_hash",
    "verify_integrity",
    "PERMISSIONS",
    "PLATFORMS",
]

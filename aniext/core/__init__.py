"""
Core Layer - Extension runtime services.

This module contains the capability registry, manifest validation,
version checks, the dispatcher and extraction cache, configuration
handling, and the extension manager that ties them together.
"""

from aniext.core.exceptions import (
    AniExtError,
    BackendLoadError,
    CompatibilityError,
    ConfigurationError,
    DecodeError,
    ExtensionNotFound,
    ExtensionUnavailable,
    InvocationError,
    NetworkError,
    PermissionDenied,
    StorageQuotaExceeded,
    ValidationError,
)
from aniext.core.models import (
    CompatibilityStatus,
    ExtensionKind,
    ExtensionSummary,
    InvocationResult,
    LifecycleState,
    LoadReport,
    StreamDescriptor,
    StreamFormat,
)
from aniext.core.capabilities import CAPABILITY_REGISTRY, Capability, CapabilitySpec, get_capability
from aniext.core.versioning import CompatibilityChecker, SemVer, VersionRange
from aniext.core.manifest import Manifest, ManifestValidator, parse_manifest
from aniext.core.cache import CachePolicy, ExtractionCache
from aniext.core.dispatcher import Dispatcher
from aniext.core.config_schemas import AppSettings, ExtensionRecord, ExtensionsConfig
from aniext.core.config_manager import ConfigManager
from aniext.core.extension_manager import ExtensionManager

__all__ = [
    # Data Models
    "StreamDescriptor",
    "StreamFormat",
    "ExtensionKind",
    "LifecycleState",
    "CompatibilityStatus",
    "InvocationResult",
    "LoadReport",
    "ExtensionSummary",
    # Capabilities and Manifests
    "Capability",
    "CapabilitySpec",
    "CAPABILITY_REGISTRY",
    "get_capability",
    "Manifest",
    "ManifestValidator",
    "parse_manifest",
    "SemVer",
    "VersionRange",
    "CompatibilityChecker",
    # Runtime
    "CachePolicy",
    "ExtractionCache",
    "Dispatcher",
    "ExtensionManager",
    # Configuration Management
    "ConfigManager",
    "AppSettings",
    "ExtensionRecord",
    "ExtensionsConfig",
    # Exceptions
    "AniExtError",
    "BackendLoadError",
    "CompatibilityError",
    "ConfigurationError",
    "DecodeError",
    "ExtensionNotFound",
    "ExtensionUnavailable",
    "InvocationError",
    "NetworkError",
    "PermissionDenied",
    "StorageQuotaExceeded",
    "ValidationError",
]

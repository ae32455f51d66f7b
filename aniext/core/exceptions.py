"""
Core Exceptions - Custom exception classes for AniExt.

This module defines the error taxonomy shared by the extension runtime.
Every exception carries a stable ``kind`` string which the dispatcher
copies into invocation results, so callers never need backend-specific
error handling.
"""

from typing import Optional, Any


class AniExtError(Exception):
    """Base exception class for all AniExt-specific errors."""

    kind = "error"

    def __init__(self, message: str, details: Optional[Any] = None):
        """
        Initialize AniExt error.

        Args:
            message: Human-readable error message
            details: Additional error details for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        return self.message


class ConfigurationError(AniExtError):
    """Raised when configuration-related errors occur."""

    kind = "configuration"

    def __init__(self, message: str, config_path: Optional[str] = None, details: Optional[Any] = None):
        """
        Initialize configuration error.

        Args:
            message: Error description
            config_path: Path to the problematic configuration file
            details: Additional error context
        """
        super().__init__(message, details)
        self.config_path = config_path


class ValidationError(AniExtError):
    """Raised when a manifest or call argument fails validation."""

    kind = "validation"

    def __init__(self, message: str, field_name: Optional[str] = None, invalid_value: Optional[Any] = None, details: Optional[Any] = None):
        """
        Initialize validation error.

        Args:
            message: Error description
            field_name: Name of the field that failed validation
            invalid_value: The invalid value that caused the error
            details: Additional error context
        """
        super().__init__(message, details)
        self.field_name = field_name
        self.invalid_value = invalid_value


class CompatibilityError(AniExtError):
    """Raised when an extension targets a host version we are not."""

    kind = "compatibility"

    def __init__(self, message: str, host_version: Optional[str] = None, required: Optional[str] = None, details: Optional[Any] = None):
        """
        Initialize compatibility error.

        Args:
            message: Error description
            host_version: Version of the running host
            required: Version range declared by the extension
            details: Additional error context
        """
        super().__init__(message, details)
        self.host_version = host_version
        self.required = required


class BackendLoadError(AniExtError):
    """Raised when a backend adapter cannot instantiate an extension."""

    kind = "backend-load"

    def __init__(self, message: str, extension_id: Optional[str] = None, backend: Optional[str] = None, details: Optional[Any] = None):
        """
        Initialize backend load error.

        Args:
            message: Error description
            extension_id: Identifier of the extension being loaded
            backend: Name of the backend adapter that failed
            details: Additional error context
        """
        super().__init__(message, details)
        self.extension_id = extension_id
        self.backend = backend


class PermissionDenied(AniExtError):
    """Raised when an extension reaches outside what it was granted."""

    kind = "permission-denied"

    def __init__(self, message: str, extension_id: Optional[str] = None, target: Optional[str] = None, details: Optional[Any] = None):
        """
        Initialize permission error.

        Args:
            message: Error description
            extension_id: Identifier of the offending extension
            target: Capability name or URL that was refused
            details: Additional error context
        """
        super().__init__(message, details)
        self.extension_id = extension_id
        self.target = target


class StorageQuotaExceeded(PermissionDenied):
    """Raised when a storage write would exceed the namespace quota."""

    kind = "storage-quota"


class NetworkError(AniExtError):
    """Raised when network-related errors occur."""

    kind = "network"

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None, details: Optional[Any] = None):
        """
        Initialize network error.

        Args:
            message: Error description
            url: URL that caused the error
            status_code: HTTP status code if applicable
            details: Additional error context
        """
        super().__init__(message, details)
        self.url = url
        self.status_code = status_code


class DecodeError(AniExtError):
    """Raised by decode primitives; never escapes an extraction pipeline."""

    kind = "decode"

    def __init__(self, message: str, stage: Optional[str] = None, details: Optional[Any] = None):
        super().__init__(message, details)
        self.stage = stage


class InvocationError(AniExtError):
    """Raised when an extension fails while handling a capability call."""

    kind = "invocation"

    def __init__(self, message: str, extension_id: Optional[str] = None, capability: Optional[str] = None, details: Optional[Any] = None):
        """
        Initialize invocation error.

        Args:
            message: Error description
            extension_id: Identifier of the extension that failed
            capability: Capability that was being invoked
            details: Additional error context
        """
        super().__init__(message, details)
        self.extension_id = extension_id
        self.capability = capability


class ExtensionNotFound(AniExtError):
    """Raised when no extension is loaded under the requested id."""

    kind = "not-found"

    def __init__(self, message: str, extension_id: Optional[str] = None, details: Optional[Any] = None):
        super().__init__(message, details)
        self.extension_id = extension_id


class ExtensionUnavailable(AniExtError):
    """Raised when an extension exists but cannot accept calls."""

    kind = "unavailable"

    def __init__(self, message: str, extension_id: Optional[str] = None, state: Optional[str] = None, details: Optional[Any] = None):
        super().__init__(message, details)
        self.extension_id = extension_id
        self.state = state


# Export all exception classes
__all__ = [
    "AniExtError",
    "ConfigurationError",
    "ValidationError",
    "CompatibilityError",
    "BackendLoadError",
    "PermissionDenied",
    "StorageQuotaExceeded",
    "NetworkError",
    "DecodeError",
    "InvocationError",
    "ExtensionNotFound",
    "ExtensionUnavailable",
]

"""
Core Data Models - Pydantic models for type safety and validation.

This module defines the data structures shared across the extension
runtime, including stream descriptors, lifecycle states, invocation
results and the summaries exposed to host applications.
"""

from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StreamFormat(str, Enum):
    """Container or delivery format of a playable stream."""

    HLS = "hls"
    MP4 = "mp4"
    MATROSKA = "matroska"
    WEBM = "webm"
    DASH = "dash"
    TORRENT = "torrent"
    EMBED = "embed"

    @classmethod
    def parse(cls, value: Any) -> "StreamFormat":
        """Accept both canonical names and common file-extension spellings."""
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        aliases = {
            "m3u8": cls.HLS,
            "mkv": cls.MATROSKA,
            "mpd": cls.DASH,
            "magnet": cls.TORRENT,
        }
        if text in aliases:
            return aliases[text]
        return cls(text)

    def __str__(self) -> str:
        return self.value


class ExtensionKind(str, Enum):
    """Kinds of extension a manifest may declare."""

    MEDIA_PROVIDER = "media-provider"
    STREAM_PROVIDER = "stream-provider"
    UTILITY = "utility"
    THEME = "theme"
    INTEGRATION = "integration"


class LifecycleState(str, Enum):
    """Lifecycle of a loaded extension instance."""

    UNLOADED = "unloaded"
    INITIALIZING = "initializing"
    READY = "ready"
    SHUTTING_DOWN = "shutting_down"
    ERROR = "error"


class CompatibilityStatus(str, Enum):
    """Outcome of a host/extension version comparison."""

    COMPATIBLE = "compatible"
    COMPATIBLE_WITH_WARNING = "compatible-with-warning"
    INCOMPATIBLE = "incompatible"


class StreamDescriptor(BaseModel):
    """
    Normalized result of a successful stream extraction.

    Produced fresh for every call and never persisted beyond the
    extraction cache lifetime.
    """

    model_config = ConfigDict(frozen=True)

    url: str = Field(..., min_length=1, description="Playable media URL")
    format: StreamFormat = Field(default=StreamFormat.MP4, description="Stream container format")
    quality: str = Field(default="auto", description="Quality label")
    server: str = Field(default="unknown", description="Originating server label")
    headers: Dict[str, str] = Field(default_factory=dict, description="Headers required for playback")
    is_default: bool = Field(default=False, description="Preferred selection among siblings")

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Require an absolute URL or a magnet link."""
        v = v.strip()
        if v.startswith("magnet:"):
            return v
        parsed = urlparse(v)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"Stream URL must be absolute: {v}")
        return v

    @field_validator('format', mode='before')
    @classmethod
    def validate_format(cls, v: Any) -> StreamFormat:
        return StreamFormat.parse(v)

    @classmethod
    def from_raw(cls, data: Dict[str, Any]) -> "StreamDescriptor":
        """
        Build a descriptor from an extension's loosely shaped dictionary.

        Extensions written against the camelCase wire format report
        ``isDefault``; both spellings are accepted.
        """
        payload = dict(data)
        if "isDefault" in payload and "is_default" not in payload:
            payload["is_default"] = payload.pop("isDefault")
        known = set(cls.model_fields)
        return cls.model_validate({k: v for k, v in payload.items() if k in known})

    def __str__(self) -> str:
        return f"{self.server} [{self.format.value}, {self.quality}] {self.url}"


class ErrorInfo(BaseModel):
    """Serializable description of a failed call."""

    kind: str = Field(..., description="Stable error category")
    message: str = Field(..., description="Human-readable message")
    field: Optional[str] = Field(default=None, description="Offending field or argument, if any")


class InvocationResult(BaseModel):
    """
    Tagged result of a dispatched capability call.

    Exactly one of ``value`` (when ``success``) or ``error`` is meaningful.
    """

    extension_id: str
    capability: str
    success: bool
    value: Any = None
    error: Optional[ErrorInfo] = None
    cached: bool = False

    @classmethod
    def ok(cls, extension_id: str, capability: str, value: Any, cached: bool = False) -> "InvocationResult":
        return cls(extension_id=extension_id, capability=capability, success=True, value=value, cached=cached)

    @classmethod
    def failed(cls, extension_id: str, capability: str, error: Exception) -> "InvocationResult":
        kind = getattr(error, "kind", "internal")
        field = getattr(error, "field_name", None)
        return cls(
            extension_id=extension_id,
            capability=capability,
            success=False,
            error=ErrorInfo(kind=kind, message=str(error), field=field),
        )

    @property
    def has_value(self) -> bool:
        """True when the call succeeded with a non-empty value."""
        if not self.success or self.value is None:
            return False
        if isinstance(self.value, (list, dict, str)):
            return len(self.value) > 0
        return True


class LoadReport(BaseModel):
    """Outcome of an extension load attempt."""

    success: bool
    extension_id: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class ExtensionSummary(BaseModel):
    """Host-facing summary of a loaded extension."""

    id: str
    name: str
    version: str
    kind: ExtensionKind
    backend: str
    state: LifecycleState
    enabled: bool
    capabilities: List[str] = Field(default_factory=list)
    permissions: List[str] = Field(default_factory=list)
    allowed_domains: Optional[List[str]] = None
    requests_made: int = 0
    storage_used: int = 0
    last_error: Optional[str] = None


# Export all models
__all__ = [
    "StreamFormat",
    "ExtensionKind",
    "LifecycleState",
    "CompatibilityStatus",
    "StreamDescriptor",
    "ErrorInfo",
    "InvocationResult",
    "LoadReport",
    "ExtensionSummary",
]

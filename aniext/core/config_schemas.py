"""
Configuration Schemas - Pydantic models for configuration validation.

This module defines the data structures and validation rules for the
runtime settings and the persisted list of installed extensions.
"""

from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from aniext.core.versioning import SemVer
from aniext.host.http import DEFAULT_USER_AGENT


class RuntimeSettings(BaseModel):
    """Extension runtime configuration settings."""

    host_version: Optional[str] = Field(
        default=None,
        description="Host version reported to extensions (package version if None)"
    )
    max_concurrent_calls: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Maximum number of extensions queried concurrently in fan-out calls"
    )
    call_timeout: Optional[float] = Field(
        default=60.0,
        gt=0,
        le=600,
        description="Per-call timeout in seconds (None disables)"
    )
    load_builtin_hosters: bool = Field(
        default=True,
        description="Load the built-in hoster stream provider on startup"
    )

    @field_validator('host_version')
    @classmethod
    def validate_host_version(cls, v: Optional[str]) -> Optional[str]:
        """Host version overrides must be valid semantic versions."""
        if v is not None and not SemVer.is_valid(v):
            raise ValueError(f"Invalid host version: {v}")
        return v


class HttpSettings(BaseModel):
    """Extension HTTP configuration settings."""

    timeout: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Network timeout in seconds"
    )
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        min_length=1,
        description="Default User-Agent header for extension requests"
    )
    default_rate_limit_ms: int = Field(
        default=0,
        ge=0,
        le=60000,
        description="Minimum milliseconds between requests when a manifest sets none"
    )


class CacheSettings(BaseModel):
    """Extraction cache configuration settings."""

    enabled: bool = Field(
        default=True,
        description="Whether capability results are cached"
    )
    listing_ttl: int = Field(
        default=3600,
        ge=0,
        description="Seconds to keep listing results"
    )
    stream_ttl: int = Field(
        default=600,
        ge=0,
        description="Seconds to keep extracted stream results"
    )


class StorageSettings(BaseModel):
    """Extension storage configuration settings."""

    quota_bytes: int = Field(
        default=5 * 1024 * 1024,
        ge=1024,
        description="Per-extension storage quota in bytes"
    )
    directory: Optional[str] = Field(
        default=None,
        description="Storage directory (defaults to <config_dir>/storage)"
    )


class LoggingSettings(BaseModel):
    """Logging configuration settings."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Logging level"
    )
    file: Optional[str] = Field(
        default=None,
        description="Optional log file name"
    )


class AppSettings(BaseModel):
    """Main application settings container."""

    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)
    http: HttpSettings = Field(default_factory=HttpSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @model_validator(mode='after')
    def validate_settings_consistency(self) -> 'AppSettings':
        """Keep the call timeout above the HTTP timeout."""
        if self.runtime.call_timeout is not None and self.runtime.call_timeout < self.http.timeout:
            self.runtime.call_timeout = float(self.http.timeout)
        return self


class ExtensionRecord(BaseModel):
    """A persisted, installed extension."""

    manifest: Dict[str, Any] = Field(
        description="Raw manifest document as installed"
    )
    source: Optional[str] = Field(
        default=None,
        description="Directory the extension payload is loaded from"
    )
    enabled: bool = Field(
        default=True,
        description="Whether the extension is dispatchable"
    )

    @property
    def id(self) -> Optional[str]:
        value = self.manifest.get("id")
        return value if isinstance(value, str) else None

    @property
    def source_path(self) -> Optional[Path]:
        return Path(self.source) if self.source else None


class ExtensionsConfig(BaseModel):
    """Installed extensions container."""

    extensions: List[ExtensionRecord] = Field(
        default_factory=list,
        description="Installed extensions in load order"
    )

    def get(self, extension_id: str) -> Optional[ExtensionRecord]:
        for record in self.extensions:
            if record.id == extension_id:
                return record
        return None

    def upsert(self, record: ExtensionRecord) -> None:
        """Replace the record with the same id, or append it."""
        for index, existing in enumerate(self.extensions):
            if existing.id == record.id:
                self.extensions[index] = record
                return
        self.extensions.append(record)

    def remove(self, extension_id: str) -> bool:
        """Remove an extension record. Returns True if removed."""
        before = len(self.extensions)
        self.extensions = [r for r in self.extensions if r.id != extension_id]
        return len(self.extensions) < before


# Export all configuration models
__all__ = [
    "RuntimeSettings",
    "HttpSettings",
    "CacheSettings",
    "StorageSettings",
    "LoggingSettings",
    "AppSettings",
    "ExtensionRecord",
    "ExtensionsConfig",
]

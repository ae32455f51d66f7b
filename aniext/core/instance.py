"""
Extension Instances - Runtime state of one loaded extension.
"""

import time
from pathlib import Path
from typing import Any, Optional

from aniext.backends.base import PluginBackend
from aniext.core.manifest import Manifest
from aniext.core.models import ExtensionSummary, LifecycleState
from aniext.host.surface import CapabilitySurface


class ExtensionInstance:
    """
    A live extension: manifest, backend handle, surface and lifecycle.

    Exactly one instance exists per manifest identifier; it exclusively
    owns its capability surface.
    """

    def __init__(
        self,
        manifest: Manifest,
        backend: PluginBackend,
        surface: CapabilitySurface,
        source: Optional[Path] = None,
        enabled: bool = True,
    ):
        self.manifest = manifest
        self.backend = backend
        self.surface = surface
        self.source = source
        self.enabled = enabled
        self.handle: Any = None
        self.state = LifecycleState.UNLOADED
        self.last_error: Optional[str] = None
        self.loaded_at: Optional[float] = None
        self.calls = 0

    @property
    def id(self) -> str:
        return self.manifest.id

    @property
    def is_ready(self) -> bool:
        return self.state == LifecycleState.READY

    @property
    def is_dispatchable(self) -> bool:
        return self.is_ready and self.enabled

    def mark_ready(self) -> None:
        self.state = LifecycleState.READY
        self.loaded_at = time.time()

    def summary(self) -> ExtensionSummary:
        return ExtensionSummary(
            id=self.manifest.id,
            name=self.manifest.name,
            version=self.manifest.version,
            kind=self.manifest.kind,
            backend=self.backend.name,
            state=self.state,
            enabled=self.enabled,
            capabilities=[cap.value for cap in self.manifest.advertised],
            permissions=list(self.manifest.permissions),
            allowed_domains=self.surface.http.allowlist.describe(),
            requests_made=self.surface.http.request_count,
            storage_used=self.surface.storage.usage().used,
            last_error=self.last_error,
        )

    def __repr__(self) -> str:
        return f"ExtensionInstance(id='{self.id}', backend='{self.backend.name}', state='{self.state.value}')"


__all__ = ["ExtensionInstance"]

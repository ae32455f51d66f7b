"""
Built-in Backend - In-process providers shipped with the host.

Built-in providers are ordinary Python classes constructed with the
instance's capability surface. They still go through manifest
validation, version checks and dispatch like any third-party extension;
they simply skip payload loading.
"""

import inspect
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

from aniext.backends.base import PluginBackend
from aniext.core.capabilities import CapabilitySpec, get_capability
from aniext.core.exceptions import BackendLoadError
from aniext.core.manifest import Manifest
from aniext.host.surface import CapabilitySurface
from aniext.hosters.provider import HosterProvider


logger = logging.getLogger(__name__)

BUILTIN_PROVIDERS: Mapping[str, Callable[[CapabilitySurface], Any]] = {
    "hosters": HosterProvider,
}


class BuiltinHandle:
    def __init__(self, manifest: Manifest, factory: Callable[[CapabilitySurface], Any]):
        self.manifest = manifest
        self.factory = factory
        self.provider: Any = None


class BuiltinBackend(PluginBackend):
    """Adapts registered in-process providers to the backend contract."""

    name = "builtin"

    def __init__(self, providers: Optional[Mapping[str, Callable[[CapabilitySurface], Any]]] = None):
        self.providers: Dict[str, Callable[[CapabilitySurface], Any]] = dict(providers or BUILTIN_PROVIDERS)

    async def create(self, manifest: Manifest, base_dir: Optional[Path] = None) -> BuiltinHandle:
        factory = self.providers.get(manifest.locator.builtin)
        if factory is None:
            raise BackendLoadError(
                f"Unknown built-in provider: {manifest.locator.builtin}",
                extension_id=manifest.id,
                backend=self.name,
            )
        return BuiltinHandle(manifest, factory)

    async def initialize(self, handle: BuiltinHandle, surface: CapabilitySurface) -> None:
        provider = handle.factory(surface)
        for capability in handle.manifest.advertised:
            if not callable(getattr(provider, get_capability(capability.value).python_name, None)):
                raise BackendLoadError(
                    f"Built-in provider does not implement {capability.value}",
                    extension_id=handle.manifest.id,
                    backend=self.name,
                )
        handle.provider = provider

    async def invoke(self, handle: BuiltinHandle, capability: CapabilitySpec, args: Dict[str, Any]) -> Any:
        method = getattr(handle.provider, capability.python_name)
        try:
            result = method(**args)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as e:
            raise self.normalize_error(e, handle.manifest.id, capability.name)

    async def shutdown(self, handle: BuiltinHandle) -> None:
        close = getattr(handle.provider, "close", None)
        handle.provider = None
        if callable(close):
            result = close()
            if inspect.isawaitable(result):
                await result


# Export builtin backend
__all__ = [
    "BuiltinBackend",
    "BUILTIN_PROVIDERS",
]

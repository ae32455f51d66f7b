"""
Backend Contract - Uniform interface over physical extension formats.

Scripts, linear-memory modules, native libraries and in-process
built-ins all look the same to the dispatcher: a backend creates a
handle from a manifest, initializes it against a capability surface,
invokes capabilities on it and shuts it down. Adapters raise only
AniExt errors; anything foreign is normalized into InvocationError.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from aniext.core.capabilities import CapabilitySpec
from aniext.core.exceptions import AniExtError, BackendLoadError, InvocationError
from aniext.core.manifest import Manifest, verify_integrity
from aniext.host.surface import CapabilitySurface


logger = logging.getLogger(__name__)


class PluginBackend(ABC):
    """
    Abstract base class for backend adapters.

    A handle is whatever per-instance state the adapter needs; the
    runtime treats it as opaque and only passes it back to the adapter.
    """

    name: str = "abstract"

    @abstractmethod
    async def create(self, manifest: Manifest, base_dir: Optional[Path] = None) -> Any:
        """
        Load the extension payload and produce an instance handle.

        Args:
            manifest: Validated manifest of the extension
            base_dir: Directory that relative locator paths resolve against

        Returns:
            Backend-specific handle

        Raises:
            BackendLoadError: If the payload cannot be instantiated
        """

    @abstractmethod
    async def initialize(self, handle: Any, surface: CapabilitySurface) -> None:
        """Run the extension's initialization hook against its surface."""

    @abstractmethod
    async def invoke(self, handle: Any, capability: CapabilitySpec, args: Dict[str, Any]) -> Any:
        """
        Call one capability with already bound arguments.

        Raises:
            InvocationError: If the extension fails while handling the call
        """

    @abstractmethod
    async def shutdown(self, handle: Any) -> None:
        """Release everything the handle owns; must not raise."""

    def resolve_path(self, manifest: Manifest, relative: str, base_dir: Optional[Path]) -> Path:
        """
        Resolve a locator path, refusing anything outside the extension directory.

        Raises:
            BackendLoadError: If the path escapes ``base_dir`` or does not exist
        """
        path = Path(relative)
        if base_dir is not None:
            root = Path(base_dir).resolve()
            path = (root / path).resolve()
            if root != path and root not in path.parents:
                raise BackendLoadError(
                    f"Locator path escapes the extension directory: {relative}",
                    extension_id=manifest.id,
                    backend=self.name,
                )
        if not path.is_file():
            raise BackendLoadError(
                f"Extension payload not found: {path}",
                extension_id=manifest.id,
                backend=self.name,
            )
        return path

    def read_payload(self, manifest: Manifest, path: Path) -> bytes:
        """Read a payload file and check it against the manifest's integrity hash."""
        try:
            payload = path.read_bytes()
        except OSError as e:
            raise BackendLoadError(
                f"Cannot read extension payload {path}: {e}",
                extension_id=manifest.id,
                backend=self.name,
            )
        verify_integrity(manifest, payload)
        return payload

    def normalize_error(self, error: Exception, extension_id: str, capability: str) -> AniExtError:
        """Map any exception raised inside an extension to the shared error shape."""
        if isinstance(error, AniExtError):
            return error
        logger.debug(f"{extension_id}.{capability} raised {type(error).__name__}: {error}")
        return InvocationError(
            f"{extension_id} failed in {capability}: {type(error).__name__}: {error}",
            extension_id=extension_id,
            capability=capability,
        )


# Export backend contract
__all__ = ["PluginBackend"]

"""
Native Backend - Shared-library extensions through ctypes.

A native extension is a platform-specific shared library exporting three
C symbols:

    uint32_t get_abi_version(void);
    void*    create_plugin(CallTable* table);
    void     destroy_plugin(void* state);

``create_plugin`` fills the host-allocated call table and returns the
library's opaque state pointer. The table carries a capability bit mask,
one typed function pointer per capability (NULL when unsupported) and a
``free_result`` hook. Every capability function returns an ``int``
status and fills an ``FfiResult`` whose ``value`` is UTF-8 JSON on
success and whose ``error`` is a message on failure.

The library's ABI version is checked before ``create_plugin`` is ever
called; a mismatch refuses the load.
"""

import asyncio
import ctypes
import json
import logging
import sys
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from aniext.backends.base import PluginBackend
from aniext.core.capabilities import CapabilitySpec, ResultShape, get_capability
from aniext.core.exceptions import BackendLoadError, InvocationError
from aniext.core.manifest import Manifest
from aniext.host.surface import CapabilitySurface


logger = logging.getLogger(__name__)

NATIVE_ABI_VERSION = 1


class FfiResult(ctypes.Structure):
    """Tagged success/error result filled in by the library."""

    _fields_ = [
        ("success", ctypes.c_uint8),
        ("value", ctypes.c_char_p),
        ("error", ctypes.c_char_p),
    ]


ResultPtr = ctypes.POINTER(FfiResult)

SearchFn = ctypes.CFUNCTYPE(ctypes.c_int, ctypes.c_void_p, ctypes.c_char_p, ctypes.c_uint32, ResultPtr)
PageFn = ctypes.CFUNCTYPE(ctypes.c_int, ctypes.c_void_p, ctypes.c_uint32, ResultPtr)
AnimePageFn = ctypes.CFUNCTYPE(ctypes.c_int, ctypes.c_void_p, ctypes.c_char_p, ctypes.c_uint32, ResultPtr)
AnimeEpisodeFn = ctypes.CFUNCTYPE(ctypes.c_int, ctypes.c_void_p, ctypes.c_char_p, ctypes.c_char_p, ResultPtr)
StringFn = ctypes.CFUNCTYPE(ctypes.c_int, ctypes.c_void_p, ctypes.c_char_p, ResultPtr)
NoArgFn = ctypes.CFUNCTYPE(ctypes.c_int, ctypes.c_void_p, ResultPtr)
FreeResultFn = ctypes.CFUNCTYPE(None, ctypes.c_void_p, ResultPtr)


class CallTable(ctypes.Structure):
    """Capability entry points, filled in by ``create_plugin``."""

    _fields_ = [
        ("capabilities", ctypes.c_uint32),
        ("search", SearchFn),
        ("get_popular", PageFn),
        ("get_latest", PageFn),
        ("get_episodes", AnimePageFn),
        ("get_streams", AnimeEpisodeFn),
        ("get_anime_details", StringFn),
        ("extract_stream", StringFn),
        ("get_hoster_info", NoArgFn),
        ("decrypt_stream", StringFn),
        ("get_download_link", StringFn),
        ("free_result", FreeResultFn),
    ]


def current_platform() -> str:
    """Name of the running platform as used in library locator maps."""
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform == "darwin":
        return "macos"
    return "linux"


class NativeHandle:
    """Per-instance library state; calls are serialized through ``lock``."""

    def __init__(self, manifest: Manifest, library: Any, state: Any, table: CallTable):
        self.manifest = manifest
        self.library = library
        self.state = state
        self.table = table
        self.lock = threading.Lock()
        self.closed = False


class NativeBackend(PluginBackend):
    """Loads C-ABI shared libraries and calls through their call table."""

    name = "native"

    def __init__(self, library_factory: Callable[[str], Any] = ctypes.CDLL, platform: Optional[str] = None):
        """
        Initialize the native backend.

        Args:
            library_factory: Opens a library path (``ctypes.CDLL`` by default)
            platform: Override for the platform key used in locator maps
        """
        self.library_factory = library_factory
        self.platform = platform or current_platform()

    def _load_library(self, manifest: Manifest, base_dir: Optional[Path]) -> Any:
        libraries = manifest.locator.libraries or {}
        relative = libraries.get(self.platform)
        if relative is None:
            raise BackendLoadError(
                f"No library for platform '{self.platform}' (available: {', '.join(sorted(libraries)) or 'none'})",
                extension_id=manifest.id,
                backend=self.name,
            )
        path = self.resolve_path(manifest, relative, base_dir)
        self.read_payload(manifest, path)
        try:
            return self.library_factory(str(path))
        except OSError as e:
            raise BackendLoadError(f"Cannot open library {path}: {e}", extension_id=manifest.id, backend=self.name)

    def _symbol(self, manifest: Manifest, library: Any, name: str, restype: Any, argtypes: List[Any]) -> Any:
        try:
            fn = getattr(library, name)
        except AttributeError:
            raise BackendLoadError(f"Library does not export '{name}'", extension_id=manifest.id, backend=self.name)
        fn.restype = restype
        fn.argtypes = argtypes
        return fn

    async def create(self, manifest: Manifest, base_dir: Optional[Path] = None) -> NativeHandle:
        library = self._load_library(manifest, base_dir)

        get_abi_version = self._symbol(manifest, library, "get_abi_version", ctypes.c_uint32, [])
        abi_version = int(get_abi_version())
        if abi_version != NATIVE_ABI_VERSION:
            raise BackendLoadError(
                f"ABI version mismatch: library reports {abi_version}, host expects {NATIVE_ABI_VERSION}",
                extension_id=manifest.id,
                backend=self.name,
            )

        create_plugin = self._symbol(manifest, library, "create_plugin", ctypes.c_void_p, [ctypes.POINTER(CallTable)])
        self._symbol(manifest, library, "destroy_plugin", None, [ctypes.c_void_p])

        table = CallTable()
        state = create_plugin(ctypes.pointer(table))
        if not state:
            raise BackendLoadError("create_plugin returned NULL", extension_id=manifest.id, backend=self.name)

        handle = NativeHandle(manifest, library, state, table)
        missing = []
        for capability in manifest.advertised:
            spec = get_capability(capability.value)
            if not (table.capabilities & spec.bit) or not getattr(table, spec.python_name):
                missing.append(spec.name)
        if missing:
            await self.shutdown(handle)
            raise BackendLoadError(
                f"Library does not implement advertised capabilities: {', '.join(missing)}",
                extension_id=manifest.id,
                backend=self.name,
            )

        logger.debug(f"Loaded native library for {manifest.id} (ABI {abi_version})")
        return handle

    async def initialize(self, handle: NativeHandle, surface: CapabilitySurface) -> None:
        # Native code has no injected surface; create_plugin already ran
        surface.log.debug(f"native extension ready on {self.platform}")

    @staticmethod
    def _marshal(capability: CapabilitySpec, args: Dict[str, Any]) -> List[Any]:
        converted = []
        for param in capability.params:
            value = args[param.name]
            converted.append(value.encode("utf-8") if param.type is str else int(value))
        return converted

    def _invoke_sync(self, handle: NativeHandle, capability: CapabilitySpec, args: Dict[str, Any]) -> Any:
        extension_id = handle.manifest.id
        with handle.lock:
            if handle.closed:
                raise InvocationError("Library has been shut down", extension_id=extension_id, capability=capability.name)

            fn = getattr(handle.table, capability.python_name)
            result = FfiResult()
            status = fn(handle.state, *self._marshal(capability, args), ctypes.byref(result))

            success, value, error = bool(result.success), result.value, result.error
            if handle.table.free_result:
                handle.table.free_result(handle.state, ctypes.byref(result))

        if status != 0 or not success:
            message = error.decode("utf-8", errors="replace") if error else f"status {status}"
            raise InvocationError(f"{capability.name} failed: {message}", extension_id=extension_id, capability=capability.name)
        if value is None:
            return None

        text = value.decode("utf-8", errors="replace")
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            if capability.returns == ResultShape.TEXT:
                return text
            raise InvocationError(
                f"{capability.name} returned malformed JSON",
                extension_id=extension_id,
                capability=capability.name,
            )

    async def invoke(self, handle: NativeHandle, capability: CapabilitySpec, args: Dict[str, Any]) -> Any:
        try:
            return await asyncio.to_thread(self._invoke_sync, handle, capability, args)
        except (ctypes.ArgumentError, UnicodeEncodeError) as e:
            raise self.normalize_error(e, handle.manifest.id, capability.name)

    async def shutdown(self, handle: NativeHandle) -> None:
        def run() -> None:
            with handle.lock:
                if handle.closed:
                    return
                handle.closed = True
                handle.library.destroy_plugin(handle.state)
                handle.state = None

        await asyncio.to_thread(run)


# Export native backend
__all__ = [
    "NativeBackend",
    "NativeHandle",
    "FfiResult",
    "CallTable",
    "NATIVE_ABI_VERSION",
    "SearchFn",
    "PageFn",
    "AnimePageFn",
    "AnimeEpisodeFn",
    "StringFn",
    "NoArgFn",
    "FreeResultFn",
    "current_platform",
]

"""
Linear-Memory Backend - WebAssembly extensions through wasmtime.

A module must export ``memory``, ``allocate(len) -> ptr``,
``deallocate(ptr, len)``, ``initialize()`` and ``shutdown()``, plus one
``(ptr, len) -> i64`` entry point per advertised capability named by the
capability's snake_case name (``get_popular``, ``extract_stream``...).

For each call the adapter serializes the arguments to UTF-8 JSON, asks
the module to allocate room for them, bounds-checks the returned
pointer against the module's memory, copies the blob in and calls the
entry point. The 64-bit result packs ``(result_ptr << 32) | result_len``;
the adapter copies the result blob out, releases both blobs with
``deallocate`` and decodes ``{"success", "value", "error"}``. The module
never sees a host pointer.

Host functions imported from ``env``: ``log_message(ptr, len)`` and
``get_timestamp() -> i64`` (milliseconds since the epoch).
"""

import asyncio
import json
import logging
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import wasmtime

from aniext.backends.base import PluginBackend
from aniext.core.capabilities import CapabilitySpec, get_capability, to_wire
from aniext.core.exceptions import BackendLoadError, InvocationError
from aniext.core.manifest import Manifest
from aniext.host.log_sink import ExtensionLogger
from aniext.host.surface import CapabilitySurface


logger = logging.getLogger(__name__)

WASM_ABI_VERSION = 1
PAGE_SIZE = 65536
MAX_MEMORY_PAGES = 256
REQUIRED_EXPORTS = ("memory", "allocate", "deallocate", "initialize", "shutdown")

# (params, results) of exported functions, by value type name
EXPORT_SIGNATURES = {
    "allocate": (("i32",), ("i32",)),
    "deallocate": (("i32", "i32"), ()),
}
CAPABILITY_SIGNATURE = (("i32", "i32"), ("i64",))

_WASM_FAILURES = (wasmtime.WasmtimeError, wasmtime.Trap)


def _describe(params: Tuple[str, ...], results: Tuple[str, ...]) -> str:
    return f"({', '.join(params)}) -> ({', '.join(results)})"


class WasmHandle:
    """Per-instance wasmtime state; every access holds ``lock``."""

    def __init__(self, manifest: Manifest):
        self.manifest = manifest
        self.lock = threading.Lock()
        self.store: Optional[wasmtime.Store] = None
        self.exports: Dict[str, Any] = {}
        self.log: ExtensionLogger = ExtensionLogger(manifest.id)

    @property
    def memory(self) -> wasmtime.Memory:
        return self.exports["memory"]


class WasmBackend(PluginBackend):
    """Runs WebAssembly modules speaking the pointer/length JSON ABI."""

    name = "wasm"

    def __init__(self, engine: Optional[wasmtime.Engine] = None):
        self.engine = engine or wasmtime.Engine()

    def _load_module(self, manifest: Manifest, path: Path) -> wasmtime.Module:
        payload = self.read_payload(manifest, path)
        try:
            if path.suffix == ".wat":
                return wasmtime.Module(self.engine, payload.decode("utf-8"))
            return wasmtime.Module(self.engine, payload)
        except (UnicodeDecodeError, *_WASM_FAILURES) as e:
            raise BackendLoadError(f"Malformed module: {e}", extension_id=manifest.id, backend=self.name)

    def _define_host_functions(self, linker: wasmtime.Linker, handle: WasmHandle) -> None:
        def log_message(caller: wasmtime.Caller, ptr: int, length: int) -> None:
            memory = caller.get("memory")
            if not isinstance(memory, wasmtime.Memory) or ptr < 0 or length < 0:
                return
            if ptr + length > memory.data_len(caller):
                handle.log.warning(f"log_message out of bounds ({ptr}+{length})")
                return
            text = bytes(memory.read(caller, ptr, ptr + length)).decode("utf-8", errors="replace")
            handle.log.info(text)

        def get_timestamp() -> int:
            return int(time.time() * 1000)

        i32, i64 = wasmtime.ValType.i32(), wasmtime.ValType.i64()
        linker.define_func("env", "log_message", wasmtime.FuncType([i32, i32], []), log_message, access_caller=True)
        linker.define_func("env", "get_timestamp", wasmtime.FuncType([], [i64]), get_timestamp)

    def _check_signatures(self, manifest: Manifest, exported: Dict[str, Any], capability_exports: List[str]) -> None:
        expected = dict(EXPORT_SIGNATURES)
        expected.update({name: CAPABILITY_SIGNATURE for name in capability_exports})

        wrong = []
        for name, (params, results) in expected.items():
            extern = exported[name]
            if not isinstance(extern, wasmtime.FuncType):
                wrong.append(f"{name} is not a function")
                continue
            actual = (tuple(str(t) for t in extern.params), tuple(str(t) for t in extern.results))
            if actual != (params, results):
                wrong.append(f"{name} has {_describe(*actual)}, expected {_describe(params, results)}")
        if not isinstance(exported["memory"], wasmtime.MemoryType):
            wrong.append("memory is not a memory")

        if wrong:
            raise BackendLoadError(
                f"Module exports have the wrong type: {'; '.join(wrong)}",
                extension_id=manifest.id,
                backend=self.name,
            )

    async def create(self, manifest: Manifest, base_dir: Optional[Path] = None) -> WasmHandle:
        path = self.resolve_path(manifest, manifest.locator.module, base_dir)
        module = self._load_module(manifest, path)

        exported = {export.name: export.type for export in module.exports}
        required = list(REQUIRED_EXPORTS)
        for capability in manifest.advertised:
            required.append(get_capability(capability.value).python_name)
        missing = [name for name in required if name not in exported]
        if missing:
            raise BackendLoadError(
                f"Module is missing required exports: {', '.join(missing)}",
                extension_id=manifest.id,
                backend=self.name,
            )
        self._check_signatures(manifest, exported, required[len(REQUIRED_EXPORTS):])

        handle = WasmHandle(manifest)
        store = wasmtime.Store(self.engine)
        store.set_limits(memory_size=MAX_MEMORY_PAGES * PAGE_SIZE)
        linker = wasmtime.Linker(self.engine)
        self._define_host_functions(linker, handle)

        try:
            instance = linker.instantiate(store, module)
        except _WASM_FAILURES as e:
            raise BackendLoadError(f"Module instantiation failed: {e}", extension_id=manifest.id, backend=self.name)

        exports = instance.exports(store)
        handle.store = store
        handle.exports = {name: exports[name] for name in required}
        if not isinstance(handle.exports["memory"], wasmtime.Memory):
            raise BackendLoadError("Export 'memory' is not a memory", extension_id=manifest.id, backend=self.name)

        logger.debug(f"Instantiated module {path.name} for {manifest.id}")
        return handle

    async def initialize(self, handle: WasmHandle, surface: CapabilitySurface) -> None:
        handle.log = surface.log

        def run() -> Any:
            with handle.lock:
                return handle.exports["initialize"](handle.store)

        try:
            status = await asyncio.to_thread(run)
        except _WASM_FAILURES as e:
            raise BackendLoadError(f"initialize() trapped: {e}", extension_id=handle.manifest.id, backend=self.name)
        if isinstance(status, int) and status != 0:
            raise BackendLoadError(
                f"initialize() returned status {status}",
                extension_id=handle.manifest.id,
                backend=self.name,
            )

    def _write_arguments(self, handle: WasmHandle, payload: bytes) -> int:
        store, memory = handle.store, handle.memory
        ptr = handle.exports["allocate"](store, len(payload))
        if not isinstance(ptr, int) or ptr <= 0 or ptr + len(payload) > memory.data_len(store):
            raise BackendLoadError(
                f"Argument blob of {len(payload)} bytes does not fit the module's allocation at {ptr}",
                extension_id=handle.manifest.id,
                backend=self.name,
            )
        memory.write(store, payload, ptr)
        return ptr

    def _read_result(self, handle: WasmHandle, packed: int, capability: str) -> bytes:
        store, memory = handle.store, handle.memory
        packed &= 0xFFFFFFFFFFFFFFFF
        result_ptr, result_len = packed >> 32, packed & 0xFFFFFFFF
        if result_ptr == 0:
            raise InvocationError(
                f"{capability} returned a null result",
                extension_id=handle.manifest.id,
                capability=capability,
            )
        if result_ptr + result_len > memory.data_len(store):
            raise InvocationError(
                f"{capability} returned a result outside module memory",
                extension_id=handle.manifest.id,
                capability=capability,
            )
        blob = bytes(memory.read(store, result_ptr, result_ptr + result_len))
        handle.exports["deallocate"](store, result_ptr, result_len)
        return blob

    def _invoke_sync(self, handle: WasmHandle, capability: CapabilitySpec, args: Dict[str, Any]) -> Any:
        payload = json.dumps(to_wire(capability, args)).encode("utf-8")
        with handle.lock:
            if handle.store is None:
                raise InvocationError("Module has been shut down", extension_id=handle.manifest.id, capability=capability.name)
            entry = handle.exports[capability.python_name]
            ptr = self._write_arguments(handle, payload)
            try:
                packed = entry(handle.store, ptr, len(payload))
            finally:
                handle.exports["deallocate"](handle.store, ptr, len(payload))
            blob = self._read_result(handle, packed, capability.name)

        try:
            result = json.loads(blob.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise InvocationError(
                f"{capability.name} returned malformed JSON: {e}",
                extension_id=handle.manifest.id,
                capability=capability.name,
            )
        if not isinstance(result, dict) or "success" not in result:
            raise InvocationError(
                f"{capability.name} returned an unexpected result shape",
                extension_id=handle.manifest.id,
                capability=capability.name,
            )
        if not result["success"]:
            raise InvocationError(
                str(result.get("error") or "extension reported failure"),
                extension_id=handle.manifest.id,
                capability=capability.name,
            )
        return result.get("value")

    async def invoke(self, handle: WasmHandle, capability: CapabilitySpec, args: Dict[str, Any]) -> Any:
        try:
            return await asyncio.to_thread(self._invoke_sync, handle, capability, args)
        except _WASM_FAILURES as e:
            raise self.normalize_error(e, handle.manifest.id, capability.name)

    async def shutdown(self, handle: WasmHandle) -> None:
        def run() -> None:
            with handle.lock:
                if handle.store is None:
                    return
                try:
                    handle.exports["shutdown"](handle.store)
                finally:
                    handle.store = None
                    handle.exports = {}

        try:
            await asyncio.to_thread(run)
        except _WASM_FAILURES as e:
            logger.warning(f"shutdown() of {handle.manifest.id} trapped: {e}")


# Export wasm backend
__all__ = [
    "WasmBackend",
    "WasmHandle",
    "WASM_ABI_VERSION",
    "MAX_MEMORY_PAGES",
    "REQUIRED_EXPORTS",
]

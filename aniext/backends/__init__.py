"""
Backend Adapters - One PluginBackend per physical extension format.

This package maps manifest locator forms to the adapter that knows how
to load and call them.
"""

from typing import Dict

from aniext.backends.base import PluginBackend
from aniext.backends.builtin import BuiltinBackend
from aniext.backends.native import NativeBackend
from aniext.backends.script import ScriptBackend
from aniext.backends.wasm import WasmBackend
from aniext.core.manifest import BackendFormat


def default_backends() -> Dict[BackendFormat, PluginBackend]:
    """Create the standard adapter for every backend format."""
    return {
        BackendFormat.SCRIPT: ScriptBackend(),
        BackendFormat.WASM: WasmBackend(),
        BackendFormat.NATIVE: NativeBackend(),
        BackendFormat.BUILTIN: BuiltinBackend(),
    }


__all__ = [
    "PluginBackend",
    "ScriptBackend",
    "WasmBackend",
    "NativeBackend",
    "BuiltinBackend",
    "default_backends",
]

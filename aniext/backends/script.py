"""
Script Backend - Sandboxed Python extensions.

Script extensions are Python source files. Before anything runs, the
source is parsed and audited: imports, class definitions, dunder names,
private attributes and dangerous builtins are refused. The audited code
then executes in a fresh namespace whose builtins are a small safe
subset and whose only other bindings are the capability surface objects
(``http``, ``html``, ``storage``, ``log``, ``context``) plus the
``StreamFormat`` constants. Host objects are handed over through
facades that expose only their public operations.

Capabilities are exported as top-level functions named after the
capability, either ``getPopular`` or ``get_popular``; they may be plain
or ``async``. Optional ``init(context)`` and ``shutdown()`` hooks run at
the edges of the lifecycle.
"""

import ast
import builtins
import inspect
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from aniext.backends.base import PluginBackend
from aniext.core.capabilities import CapabilitySpec, get_capability
from aniext.core.exceptions import BackendLoadError
from aniext.core.manifest import Manifest
from aniext.core.models import StreamFormat
from aniext.host.surface import CapabilitySurface


logger = logging.getLogger(__name__)

_SAFE_BUILTIN_NAMES = (
    "abs", "all", "any", "bool", "dict", "divmod", "enumerate", "filter",
    "float", "frozenset", "int", "isinstance", "len", "list", "map", "max",
    "min", "next", "range", "repr", "reversed", "round", "set", "slice",
    "sorted", "str", "sum", "tuple", "zip",
    "Exception", "ValueError", "KeyError", "IndexError", "TypeError",
    "RuntimeError", "LookupError", "StopIteration",
)

SAFE_BUILTINS = {name: getattr(builtins, name) for name in _SAFE_BUILTIN_NAMES}

_BLOCKED_CALLS = {
    "exec", "eval", "__import__", "compile", "globals", "locals", "vars",
    "getattr", "setattr", "delattr", "hasattr", "open", "input",
    "breakpoint", "exit", "quit", "help", "dir", "type", "super",
    "memoryview", "object", "id",
}

# Frame and code objects reachable from coroutines, generators and tracebacks
_BLOCKED_ATTRIBUTES = {
    "gi_frame", "gi_code", "cr_frame", "cr_code", "ag_frame", "ag_code",
    "f_globals", "f_locals", "f_builtins", "f_back", "f_code",
    "tb_frame", "tb_next", "format", "format_map", "mro",
}

_HTTP_METHODS = ("get", "post", "head", "request")
_STORAGE_METHODS = ("get", "set", "remove", "clear", "keys", "usage")
_LOG_METHODS = ("debug", "info", "warning", "warn", "error")
_HTML_METHODS = ("parse", "select_text", "select_all_attrs", "make_absolute", "extract_domain")
_PARSER_METHODS = (
    "select_text", "select_attr", "select_all_text", "select_all_attrs",
    "script_texts", "json_scripts", "iframe_sources",
)


class ScriptValidationError(BackendLoadError):
    """Raised when a script fails the sandbox audit."""


def audit_script(source: str, filename: str = "<extension>") -> ast.Module:
    """
    Parse a script and reject constructs that could reach host state.

    Args:
        source: Extension source code
        filename: Name used in syntax error messages

    Returns:
        The parsed module, ready to compile

    Raises:
        ScriptValidationError: On the first forbidden construct
    """
    try:
        tree = ast.parse(source, filename=filename)
    except SyntaxError as e:
        raise ScriptValidationError(f"Script syntax error: {e}")

    for node in ast.walk(tree):
        line = getattr(node, "lineno", "?")

        if isinstance(node, (ast.Import, ast.ImportFrom)):
            raise ScriptValidationError(f"Line {line}: imports are not allowed in extensions")

        if isinstance(node, ast.ClassDef):
            raise ScriptValidationError(f"Line {line}: class definitions are not allowed in extensions")

        if isinstance(node, (ast.Global, ast.Nonlocal)):
            raise ScriptValidationError(f"Line {line}: '{type(node).__name__.lower()}' is not allowed")

        if isinstance(node, ast.Name):
            if node.id.startswith("__"):
                raise ScriptValidationError(f"Line {line}: name '{node.id}' is not allowed")
            if node.id in _BLOCKED_CALLS:
                raise ScriptValidationError(f"Line {line}: builtin '{node.id}' is not allowed")

        elif isinstance(node, ast.Attribute):
            if node.attr.startswith("_"):
                raise ScriptValidationError(f"Line {line}: private attribute '{node.attr}' is not allowed")
            if node.attr in _BLOCKED_ATTRIBUTES:
                raise ScriptValidationError(f"Line {line}: attribute '{node.attr}' is not allowed")

        elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            if node.name.startswith("__"):
                raise ScriptValidationError(f"Line {line}: function name '{node.name}' is not allowed")

    return tree


class _Facade:
    """
    Exposes a fixed set of a host object's methods and nothing else.

    ``wrap_results`` maps a method name to the methods allowed on the
    objects that method returns, so derived host objects stay wrapped.
    """

    __slots__ = ("_target", "_allowed", "_wrap")

    def __init__(self, target: Any, allowed, wrap_results: Optional[Dict[str, Tuple[str, ...]]] = None):
        object.__setattr__(self, "_target", target)
        object.__setattr__(self, "_allowed", frozenset(allowed))
        object.__setattr__(self, "_wrap", dict(wrap_results or {}))

    def __getattr__(self, name: str) -> Any:
        if name not in self._allowed:
            raise AttributeError(name)
        attr = getattr(self._target, name)
        methods = self._wrap.get(name)
        if methods is None:
            return attr

        def wrapped(*args, **kwargs):
            return _Facade(attr(*args, **kwargs), methods)

        return wrapped

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("host objects are read-only")


class ScriptHandle:
    """Per-instance state of a script extension."""

    def __init__(self, manifest: Manifest, code: Any, filename: str):
        self.manifest = manifest
        self.code = code
        self.filename = filename
        self.exports: Dict[str, Callable[..., Any]] = {}
        self.shutdown_hook: Optional[Callable[[], Any]] = None


async def _call(fn: Callable[..., Any], *args, **kwargs) -> Any:
    result = fn(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


class ScriptBackend(PluginBackend):
    """Runs audited Python source in an isolated namespace."""

    name = "script"

    async def create(self, manifest: Manifest, base_dir: Optional[Path] = None) -> ScriptHandle:
        path = self.resolve_path(manifest, manifest.locator.script, base_dir)
        payload = self.read_payload(manifest, path)
        try:
            source = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise BackendLoadError(f"Script is not valid UTF-8: {e}", extension_id=manifest.id, backend=self.name)

        try:
            tree = audit_script(source, filename=str(path))
        except ScriptValidationError as e:
            e.extension_id, e.backend = manifest.id, self.name
            raise

        code = compile(tree, str(path), "exec")
        logger.debug(f"Compiled script extension {manifest.id} from {path}")
        return ScriptHandle(manifest, code, str(path))

    async def initialize(self, handle: ScriptHandle, surface: CapabilitySurface) -> None:
        manifest = handle.manifest
        scope: Dict[str, Any] = {
            "__builtins__": SAFE_BUILTINS,
            "__name__": f"aniext_ext_{manifest.id.replace('-', '_')}",
            "http": _Facade(surface.http, _HTTP_METHODS),
            "html": _Facade(surface.html, _HTML_METHODS, {"parse": _PARSER_METHODS}),
            "storage": _Facade(surface.storage, _STORAGE_METHODS),
            "log": _Facade(surface.log, _LOG_METHODS),
            "context": surface.context,
            "StreamFormat": StreamFormat,
        }

        try:
            exec(handle.code, scope)
        except Exception as e:
            raise BackendLoadError(
                f"Script failed while loading: {type(e).__name__}: {e}",
                extension_id=manifest.id,
                backend=self.name,
            )

        for capability in manifest.advertised:
            spec = get_capability(capability.value)
            fn = scope.get(spec.name) or scope.get(spec.python_name)
            if not callable(fn):
                raise BackendLoadError(
                    f"Script advertises {spec.name} but defines no '{spec.name}' or '{spec.python_name}' function",
                    extension_id=manifest.id,
                    backend=self.name,
                )
            handle.exports[spec.name] = fn

        hook = scope.get("shutdown")
        handle.shutdown_hook = hook if callable(hook) else None

        init = scope.get("init")
        if callable(init):
            try:
                await _call(init, surface.context)
            except Exception as e:
                raise BackendLoadError(
                    f"Script init() failed: {type(e).__name__}: {e}",
                    extension_id=manifest.id,
                    backend=self.name,
                )

    async def invoke(self, handle: ScriptHandle, capability: CapabilitySpec, args: Dict[str, Any]) -> Any:
        fn = handle.exports.get(capability.name)
        if fn is None:
            raise BackendLoadError(
                f"Capability {capability.name} is not exported",
                extension_id=handle.manifest.id,
                backend=self.name,
            )
        try:
            return await _call(fn, **args)
        except Exception as e:
            raise self.normalize_error(e, handle.manifest.id, capability.name)

    async def shutdown(self, handle: ScriptHandle) -> None:
        hook, handle.shutdown_hook = handle.shutdown_hook, None
        handle.exports.clear()
        if hook is None:
            return
        try:
            await _call(hook)
        except Exception as e:
            logger.warning(f"shutdown() of {handle.manifest.id} raised: {e}")


# Export script backend
__all__ = [
    "ScriptBackend",
    "ScriptHandle",
    "ScriptValidationError",
    "audit_script",
    "SAFE_BUILTINS",
]

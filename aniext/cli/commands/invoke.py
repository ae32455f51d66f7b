"""
Invoke Commands - Capability calls from the command line.

This module implements direct capability invocation on one extension,
the fan-out search across all extensions, and stream extraction from
hoster URLs.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

from aniext.cli.context import extension_runtime
from aniext.core.capabilities import require_capability
from aniext.core.exceptions import ValidationError
from aniext.core.models import InvocationResult
from aniext.ui import display_warning, get_console, result_renderable


def parse_arguments(capability: str, pairs: List[str], args_json: Optional[str] = None) -> Dict[str, Any]:
    """
    Build capability arguments from ``key=value`` pairs and optional JSON.

    Keys may use the Python or the camelCase wire name. Values for integer
    parameters are converted; everything else stays a string.

    Raises:
        ValidationError: On malformed pairs, JSON or integers
    """
    spec = require_capability(capability)
    by_key = {}
    for param in spec.params:
        by_key[param.name] = param
        by_key[param.wire_name] = param

    args: Dict[str, Any] = {}
    if args_json:
        try:
            loaded = json.loads(args_json)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid --json arguments: {e}", field_name="json")
        if not isinstance(loaded, dict):
            raise ValidationError("--json arguments must be an object", field_name="json")
        args.update(loaded)

    for pair in pairs:
        key, separator, raw = pair.partition("=")
        if not separator:
            raise ValidationError(f"Arguments must look like key=value, got '{pair}'", field_name=pair)
        param = by_key.get(key)
        if param is None:
            # Unknown names are left for the dispatcher to reject
            args[key] = raw
            continue
        if param.type is int:
            try:
                args[param.name] = int(raw)
            except ValueError:
                raise ValidationError(f"'{key}' must be an integer", field_name=param.name, invalid_value=raw)
        else:
            args[param.name] = raw
    return args


def run_invoke(extension_id: str, capability: str, args: Dict[str, Any]) -> bool:
    """
    Invoke one capability and print the result.

    Returns:
        True if the call succeeded
    """
    result = asyncio.run(_invoke(extension_id, capability, args))
    get_console().print(result_renderable(result))
    return result.success


async def _invoke(extension_id: str, capability: str, args: Dict[str, Any]) -> InvocationResult:
    async with extension_runtime() as manager:
        return await manager.invoke(extension_id, capability, args)


def run_search(query: str, page: int = 1) -> bool:
    """
    Search every extension advertising ``search`` and print each result.

    Returns:
        True if at least one extension answered
    """
    results = asyncio.run(_search(query, page))
    console = get_console()
    if not results:
        display_warning("No loaded extension advertises search.", "⚠️  No Providers")
        return False

    for result in results.values():
        console.print(result_renderable(result))
    return any(result.success for result in results.values())


async def _search(query: str, page: int) -> Dict[str, InvocationResult]:
    async with extension_runtime() as manager:
        return await manager.search_all(query, page)


def run_extract(urls: List[str], extension_id: Optional[str] = None) -> bool:
    """
    Extract a playable stream from the first URL that yields one.

    Returns:
        True if a stream was found
    """
    result = asyncio.run(_extract(urls, extension_id))
    if result is None:
        display_warning("No extractor produced a stream for the given URLs.", "⚠️  Nothing Found")
        return False
    get_console().print(result_renderable(result))
    return result.success


async def _extract(urls: List[str], extension_id: Optional[str]) -> Optional[InvocationResult]:
    async with extension_runtime() as manager:
        last = None
        for url in urls:
            if extension_id:
                result = await manager.extract_stream(extension_id, url)
            else:
                result = await manager.extract_from_any(url)
            if result is not None and result.has_value:
                return result
            last = result or last
        return last


# Export command helpers
__all__ = [
    "parse_arguments",
    "run_invoke",
    "run_search",
    "run_extract",
]

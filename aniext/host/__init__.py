"""
Host Layer - Capability objects injected into extension instances.

This package provides the rate-limited HTTP context, domain allowlist,
namespaced storage, markup toolkit and logging sink that together form
the only surface an extension can reach.
"""

from aniext.host.allowlist import DomainAllowlist
from aniext.host.http import HttpContext, HttpResponse
from aniext.host.log_sink import ExtensionLogger
from aniext.host.markup import HtmlToolkit, MarkupParser
from aniext.host.storage import ExtensionStorage, JsonFileStore, MemoryStore, StorageUsage
from aniext.host.surface import CapabilitySurface, build_surface

__all__ = [
    "DomainAllowlist",
    "HttpContext",
    "HttpResponse",
    "ExtensionLogger",
    "HtmlToolkit",
    "MarkupParser",
    "ExtensionStorage",
    "JsonFileStore",
    "MemoryStore",
    "StorageUsage",
    "CapabilitySurface",
    "build_surface",
]

"""
AniExt - Plugin runtime for anime data-extension providers.

Loads untrusted extensions in three formats (sandboxed scripts, WASM
modules and native libraries) behind one capability interface, and
ships a built-in stream provider that recovers playable media URLs
from common video hosters.
"""

__version__ = "1.0.0"
__author__ = "AniExt Team"

# Package metadata
__title__ = "aniext"
__description__ = "Plugin runtime for anime data-extension providers"
__license__ = "MIT"

# Version info tuple for programmatic access
VERSION_INFO = tuple(map(int, __version__.split(".")))

# Export main components for easy importing
from aniext.core.extension_manager import ExtensionManager
from aniext.core.models import InvocationResult, StreamDescriptor, StreamFormat
from aniext.cli.main import cli_main

__all__ = [
    "__version__",
    "__author__",
    "ExtensionManager",
    "InvocationResult",
    "StreamDescriptor",
    "StreamFormat",
    "cli_main",
]

"""
CLI Context - Global application context and runtime helpers.

This module provides the configuration manager shared by all commands
and an async helper that brings the extension runtime up and down
around a single command.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from aniext.core.config_manager import ConfigManager
from aniext.core.extension_manager import ExtensionManager


# Global application state
_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get the global configuration manager instance."""
    global _config_manager
    if _config_manager is None:
        raise RuntimeError("Configuration manager not initialized")
    return _config_manager


def set_config_manager(config_manager: Optional[ConfigManager]) -> None:
    """Set the global configuration manager instance."""
    global _config_manager
    _config_manager = config_manager


@asynccontextmanager
async def extension_runtime(restore: bool = True) -> AsyncIterator[ExtensionManager]:
    """
    Run a command against a live extension manager.

    Installed extensions are restored on entry and every instance is
    unloaded on exit, even when the command fails.

    Args:
        restore: Load the built-in and installed extensions first
    """
    manager = ExtensionManager(get_config_manager())
    try:
        if restore:
            await manager.restore()
        yield manager
    finally:
        await manager.cleanup()


# Export context functions
__all__ = [
    "get_config_manager",
    "set_config_manager",
    "extension_runtime",
]

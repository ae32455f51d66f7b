"""
Info Command - Runtime and environment information display.

This module implements the info command for showing the host version,
configuration paths and the status of loaded extensions.
"""

import asyncio
import platform
import sys
from typing import Any, Dict

from rich.panel import Panel
from rich.table import Table

from aniext import __version__
from aniext.cli.context import extension_runtime
from aniext.core.config_manager import ConfigManager
from aniext.ui import get_console, get_palette, status_table


def _gather_environment_info(config_manager: ConfigManager) -> Dict[str, Any]:
    return {
        "AniExt": __version__,
        "Python": f"{platform.python_implementation()} {sys.version.split()[0]}",
        "Platform": f"{platform.system()} {platform.machine()}",
        "Config directory": str(config_manager.config_dir.resolve()),
        "Storage directory": str(config_manager.storage_dir),
        "Installed extensions": str(len(config_manager.get_extension_records())),
    }


def show_application_info(config_manager: ConfigManager) -> None:
    """
    Display application and runtime information.

    Args:
        config_manager: Configuration manager instance
    """
    console = get_console()
    palette = get_palette()

    grid = Table(show_header=False, box=None, padding=(0, 2))
    grid.add_column("Key", style="dim")
    grid.add_column("Value")
    for key, value in _gather_environment_info(config_manager).items():
        grid.add_row(key, value)
    console.print(Panel(grid, title="📱 Application Information", border_style=palette.info))

    status = asyncio.run(_runtime_status())
    console.print(Panel(status_table(status), title="🔌 Extension Runtime", border_style=palette.info))


async def _runtime_status() -> Dict[str, Any]:
    async with extension_runtime() as manager:
        return manager.get_status()


__all__ = ["show_application_info"]

"""
Console Management - Centralized Rich console configuration.

This module provides console setup and the color palette shared by
panels and tables across the CLI.
"""

from dataclasses import dataclass
from typing import Optional

from rich.console import Console
from rich.theme import Theme


@dataclass(frozen=True)
class ColorPalette:
    """Semantic colors used by UI components."""

    primary: str = "bright_blue"
    accent: str = "magenta"
    success: str = "green"
    warning: str = "yellow"
    error: str = "red"
    info: str = "cyan"
    muted: str = "dim"
    border: str = "blue"


PALETTE = ColorPalette()

THEME = Theme({
    "info": PALETTE.info,
    "success": PALETTE.success,
    "warning": PALETTE.warning,
    "error": f"bold {PALETTE.error}",
    "muted": PALETTE.muted,
})


# Global console instance
_console: Optional[Console] = None


def setup_console(
    force_terminal: Optional[bool] = None,
    width: Optional[int] = None,
) -> Console:
    """
    Set up and configure the global Rich console.

    Args:
        force_terminal: Force terminal mode detection
        width: Console width override

    Returns:
        Configured Rich Console instance
    """
    global _console

    console_kwargs = {
        "theme": THEME,
        "stderr": False,  # Use stdout for all output
        "force_terminal": force_terminal,
        "color_system": "auto",
    }
    if width is not None:
        console_kwargs["width"] = width

    _console = Console(**console_kwargs)
    return _console


def get_console() -> Console:
    """
    Get the global Rich console instance.

    Creates a default console if none exists.
    """
    global _console

    if _console is None:
        _console = setup_console()

    return _console


def get_palette() -> ColorPalette:
    return PALETTE


__all__ = [
    "ColorPalette",
    "PALETTE",
    "get_console",
    "get_palette",
    "setup_console",
]

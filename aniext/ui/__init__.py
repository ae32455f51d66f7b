"""
UI Layer - Rich console, error panels and renderables.

This module contains the console setup and the Rich components used by
CLI commands to present extensions, reports and invocation results.
"""

from aniext.ui.console import ColorPalette, get_console, get_palette, setup_console
from aniext.ui.error_handler import ErrorHandler, handle_error, display_warning, display_info
from aniext.ui.components import (
    extensions_table,
    load_report_panel,
    result_renderable,
    status_table,
    streams_table,
    summary_panel,
    validation_panel,
)

__all__ = [
    # Console Management
    "ColorPalette",
    "get_console",
    "get_palette",
    "setup_console",
    # Error Handling
    "ErrorHandler",
    "handle_error",
    "display_warning",
    "display_info",
    # Renderables
    "extensions_table",
    "load_report_panel",
    "result_renderable",
    "status_table",
    "streams_table",
    "summary_panel",
    "validation_panel",
]

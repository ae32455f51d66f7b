"""
Error Handler - Error panels with context and suggestions.

This module provides consistent error display across the CLI, with
fields and suggestions specific to each runtime error type.
"""

import traceback
from typing import List, Optional, Tuple

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from aniext.core.exceptions import (
    AniExtError,
    BackendLoadError,
    CompatibilityError,
    ConfigurationError,
    ExtensionNotFound,
    ExtensionUnavailable,
    InvocationError,
    NetworkError,
    PermissionDenied,
    StorageQuotaExceeded,
    ValidationError,
)
from aniext.ui.console import get_console, get_palette


class ErrorHandler:
    """Handles error display with consistent formatting and helpful context."""

    def __init__(self):
        self.palette = get_palette()

    @property
    def console(self) -> Console:
        return get_console()

    def handle_error(
        self,
        error: Exception,
        context: Optional[str] = None,
        show_traceback: bool = False
    ) -> None:
        """
        Handle and display an error with appropriate formatting.

        Args:
            error: Exception to handle
            context: Additional context about where the error occurred
            show_traceback: Whether to show the full traceback
        """
        if isinstance(error, AniExtError):
            title, fields, suggestions = self._describe(error)
            message = error.message
            details = error.details
        else:
            title = "💥 Unexpected Error"
            fields = []
            suggestions = [
                "Check the command syntax and arguments",
                "Run again with [cyan]--debug[/cyan] for the full log",
                "Report this issue if it persists",
            ]
            message = f"{error.__class__.__name__}: {error}"
            details = None

        self._render(title, message, fields, suggestions, context, details, show_traceback)

    def _describe(self, error: AniExtError) -> Tuple[str, List[Tuple[str, str]], List[str]]:
        """Pick a title, extra fields and suggestions for a runtime error."""
        if isinstance(error, ConfigurationError):
            return "⚙️  Configuration Error", [("Configuration file", error.config_path)], [
                "Check configuration file syntax and format",
                "Inspect values with [cyan]aniext config show[/cyan]",
                "Reset to defaults with [cyan]aniext config reset[/cyan]",
            ]
        if isinstance(error, ValidationError):
            fields = [("Field", error.field_name)]
            if error.invalid_value is not None:
                fields.append(("Invalid Value", repr(error.invalid_value)))
            return "✅ Validation Error", fields, [
                "Validate the manifest with [cyan]aniext validate[/cyan]",
                "Check capability names and argument types",
            ]
        if isinstance(error, CompatibilityError):
            return "🧩 Compatibility Error", [("Host", error.host_version), ("Required", error.required)], [
                "Install a release of the extension built for this host",
                "Adjust [cyan]targetVersionRange[/cyan] only if the extension really supports this host",
            ]
        if isinstance(error, BackendLoadError):
            return "🔌 Extension Load Error", [("Extension", error.extension_id), ("Backend", error.backend)], [
                "Check that the locator paths exist inside the extension directory",
                "Verify the payload matches its declared integrity hash",
            ]
        if isinstance(error, StorageQuotaExceeded):
            return "💾 Storage Quota Exceeded", [("Extension", error.extension_id)], [
                "Raise [cyan]storage.quota_bytes[/cyan] in the configuration",
            ]
        if isinstance(error, PermissionDenied):
            return "🔒 Permission Denied", [("Extension", error.extension_id), ("Target", error.target)], [
                "Check the manifest permissions and allowed domains",
            ]
        if isinstance(error, NetworkError):
            fields = [("URL", error.url)]
            if error.status_code:
                fields.append(("Status Code", str(error.status_code)))
            return "🌐 Network Error", fields, [
                "Check your internet connection",
                "Verify the hoster is reachable",
                "Try again in a few moments",
            ]
        if isinstance(error, (ExtensionNotFound, ExtensionUnavailable)):
            return "📦 Extension Not Available", [("Extension", error.extension_id)], [
                "List loaded extensions with [cyan]aniext ext list[/cyan]",
                "Enable it with [cyan]aniext ext enable ID[/cyan]",
            ]
        if isinstance(error, InvocationError):
            return "⚡ Invocation Error", [("Extension", error.extension_id), ("Capability", error.capability)], [
                "Run again with [cyan]--debug[/cyan] to see the extension log",
            ]
        return "❌ Error", [], []

    def _render(
        self,
        title: str,
        message: str,
        fields: List[Tuple[str, Optional[str]]],
        suggestions: List[str],
        context: Optional[str],
        details: object,
        show_traceback: bool,
    ) -> None:
        content_parts = [f"[{self.palette.error}]{escape(message)}[/{self.palette.error}]"]

        for label, value in fields:
            if value:
                content_parts.append(f"[dim]{label}:[/dim] [cyan]{escape(str(value))}[/cyan]")

        if context:
            content_parts.append(f"[dim]Context:[/dim] {context}")

        if suggestions:
            content_parts.append(f"\n[{self.palette.info}]💡 Suggestions:[/{self.palette.info}]")
            content_parts.extend(f"• {suggestion}" for suggestion in suggestions)

        if show_traceback:
            if details:
                content_parts.append(f"\n[dim]Details:[/dim]\n{details}")
            content_parts.append(f"\n[dim]Traceback:[/dim]\n{traceback.format_exc()}")

        panel = Panel(
            "\n".join(content_parts),
            title=title,
            border_style=self.palette.error,
            padding=(1, 2)
        )
        self.console.print(panel)

    def display_warning(self, message: str, title: str = "⚠️  Warning") -> None:
        """Display a warning message."""
        panel = Panel(
            f"[{self.palette.warning}]{message}[/{self.palette.warning}]",
            title=f"[{self.palette.warning}]{title}[/{self.palette.warning}]",
            border_style=self.palette.warning,
            padding=(1, 2)
        )
        self.console.print(panel)

    def display_info(self, message: str, title: str = "ℹ️  Information") -> None:
        """Display an information message."""
        panel = Panel(
            f"[{self.palette.info}]{message}[/{self.palette.info}]",
            title=f"[{self.palette.info}]{title}[/{self.palette.info}]",
            border_style=self.palette.info,
            padding=(1, 2)
        )
        self.console.print(panel)


# Global error handler instance
_error_handler = ErrorHandler()


def get_error_handler() -> ErrorHandler:
    """Get the global error handler instance."""
    return _error_handler


def handle_error(
    error: Exception,
    context: Optional[str] = None,
    show_traceback: bool = False
) -> None:
    """
    Handle and display an error using the global error handler.

    Args:
        error: Exception to handle
        context: Additional context
        show_traceback: Whether to show traceback
    """
    _error_handler.handle_error(error, context, show_traceback)


def display_warning(message: str, title: str = "⚠️  Warning") -> None:
    """Display a warning message using the global error handler."""
    _error_handler.display_warning(message, title)


def display_info(message: str, title: str = "ℹ️  Information") -> None:
    """Display an information message using the global error handler."""
    _error_handler.display_info(message, title)


# Export error handling functions
__all__ = [
    "ErrorHandler",
    "get_error_handler",
    "handle_error",
    "display_warning",
    "display_info",
]

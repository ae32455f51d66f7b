"""
UI Components - Rich renderables for runtime objects.

This module turns extension summaries, load reports, validation results
and invocation results into tables and panels with consistent styling.
"""

import json
from typing import Any, Dict, List, Optional

from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from aniext.core.manifest import ManifestValidationResult
from aniext.core.models import ExtensionSummary, InvocationResult, LoadReport, StreamDescriptor
from aniext.core.versioning import CompatibilityReport
from aniext.ui.console import get_palette


STATE_STYLES = {
    "ready": "green",
    "initializing": "yellow",
    "shutting_down": "yellow",
    "unloaded": "dim",
    "error": "red",
}


def extensions_table(summaries: List[ExtensionSummary], title: str = "Loaded Extensions") -> Table:
    """Build a table with one row per loaded extension."""
    palette = get_palette()
    table = Table(title=title, show_header=True, header_style=f"bold {palette.primary}", border_style=palette.border)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Version", justify="right")
    table.add_column("Kind")
    table.add_column("Backend")
    table.add_column("State")
    table.add_column("Capabilities", overflow="fold")

    for summary in summaries:
        state = summary.state.value
        style = STATE_STYLES.get(state, "white")
        if not summary.enabled:
            state_text = f"[dim]{state} (disabled)[/dim]"
        else:
            state_text = f"[{style}]{state}[/{style}]"
        table.add_row(
            summary.id,
            summary.name,
            summary.version,
            summary.kind.value,
            summary.backend,
            state_text,
            ", ".join(summary.capabilities),
        )
    return table


def summary_panel(summary: ExtensionSummary) -> Panel:
    """Detailed view of one extension."""
    palette = get_palette()
    domains = "unrestricted" if summary.allowed_domains is None else (", ".join(summary.allowed_domains) or "none")
    lines = [
        f"[bold]{summary.name}[/bold] [dim]{summary.version}[/dim]",
        f"[dim]Kind:[/dim] {summary.kind.value}",
        f"[dim]Backend:[/dim] {summary.backend}",
        f"[dim]State:[/dim] {summary.state.value}{'' if summary.enabled else ' (disabled)'}",
        f"[dim]Capabilities:[/dim] {', '.join(summary.capabilities) or 'none'}",
        f"[dim]Permissions:[/dim] {', '.join(summary.permissions) or 'none'}",
        f"[dim]Allowed domains:[/dim] {domains}",
        f"[dim]Requests made:[/dim] {summary.requests_made}",
        f"[dim]Storage used:[/dim] {summary.storage_used} bytes",
    ]
    if summary.last_error:
        lines.append(f"[dim]Last error:[/dim] [{palette.error}]{escape(summary.last_error)}[/{palette.error}]")
    return Panel("\n".join(lines), title=f"📦 {summary.id}", border_style=palette.border, padding=(1, 2))


def load_report_panel(report: LoadReport) -> Panel:
    """Outcome of a load attempt with its errors and warnings."""
    palette = get_palette()
    color = palette.success if report.success else palette.error
    headline = "Loaded" if report.success else "Failed to load"
    lines = [f"[{color}]{headline} {report.extension_id or 'extension'}[/{color}]"]
    lines.extend(f"[{palette.error}]✗ {escape(error)}[/{palette.error}]" for error in report.errors)
    lines.extend(f"[{palette.warning}]! {escape(warning)}[/{palette.warning}]" for warning in report.warnings)
    return Panel("\n".join(lines), border_style=color, padding=(0, 2))


def validation_panel(result: ManifestValidationResult, compatibility: Optional[CompatibilityReport] = None) -> Panel:
    """Manifest validation findings, optionally with a compatibility verdict."""
    palette = get_palette()
    color = palette.success if result.valid else palette.error
    lines = [f"[{color}]{'Manifest is valid' if result.valid else 'Manifest is invalid'}[/{color}]"]
    lines.extend(f"[{palette.error}]✗ {escape(issue)}[/{palette.error}]" for issue in result.error_messages)
    lines.extend(f"[{palette.warning}]! {escape(issue)}[/{palette.warning}]" for issue in result.warning_messages)
    if compatibility is not None:
        verdict = compatibility.status.value
        style = palette.success if compatibility.status.value == "compatible" else (
            palette.warning if compatibility.is_compatible else palette.error
        )
        lines.append(f"\n[dim]Host {compatibility.host_version}, requires {compatibility.required}:[/dim] [{style}]{verdict}[/{style}]")
        if compatibility.reason:
            lines.append(f"[dim]{escape(compatibility.reason)}[/dim]")
    return Panel("\n".join(lines), title="📝 Manifest", border_style=color, padding=(1, 2))


def streams_table(streams: List[StreamDescriptor], title: str = "Streams") -> Table:
    palette = get_palette()
    table = Table(title=title, show_header=True, header_style=f"bold {palette.primary}", border_style=palette.border)
    table.add_column("Server", style="cyan")
    table.add_column("Format")
    table.add_column("Quality", justify="right")
    table.add_column("URL", overflow="fold")
    for stream in streams:
        marker = " ★" if stream.is_default else ""
        table.add_row(stream.server + marker, stream.format.value, stream.quality, stream.url)
    return table


def _plain(value: Any) -> Any:
    if isinstance(value, StreamDescriptor):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_plain(item) for item in value]
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    return value


def result_renderable(result: InvocationResult) -> Any:
    """Best renderable for a dispatched result."""
    palette = get_palette()
    if not result.success:
        error = result.error
        field = f" [dim](field: {error.field})[/dim]" if error and error.field else ""
        return Panel(
            f"[{palette.error}]{escape(error.message) if error else 'Unknown error'}[/{palette.error}]{field}",
            title=f"❌ {result.extension_id}.{result.capability} ({error.kind if error else 'error'})",
            border_style=palette.error,
            padding=(1, 2),
        )

    value = result.value
    if isinstance(value, StreamDescriptor):
        value = [value]
    if isinstance(value, list) and value and all(isinstance(item, StreamDescriptor) for item in value):
        suffix = " (cached)" if result.cached else ""
        return streams_table(value, title=f"{result.extension_id}.{result.capability}{suffix}")

    body = json.dumps(_plain(value), indent=2, ensure_ascii=False, default=str)
    return Panel(escape(body), title=f"✅ {result.extension_id}.{result.capability}", border_style=palette.success)


def status_table(status: Dict[str, Any]) -> Table:
    """Key runtime counters."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="dim")
    table.add_column("Value")
    table.add_row("Host version", status["host_version"])
    table.add_row("Loaded", str(status["loaded"]))
    table.add_row("Dispatchable", str(status["ready"]))
    cache = status["cache"]
    table.add_row("Cache", f"{cache['entries']} entries, {cache['hits']} hits, {cache['misses']} misses")
    for extension_id, error in status["errors"].items():
        table.add_row(f"Failed: {extension_id}", f"[red]{escape(error)}[/red]")
    return table


# Export UI components
__all__ = [
    "extensions_table",
    "summary_panel",
    "load_report_panel",
    "validation_panel",
    "streams_table",
    "result_renderable",
    "status_table",
]

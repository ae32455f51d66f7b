"""
Extensions Command - Installed extension management.

This module implements commands for installing, listing, enabling,
disabling, reloading and removing extensions.
"""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape

from aniext.cli.context import extension_runtime, get_config_manager
from aniext.core.models import ExtensionKind
from aniext.ui import (
    display_info,
    display_warning,
    extensions_table,
    get_console,
    handle_error,
    load_report_panel,
    summary_panel,
)

# Create extensions command group
app = typer.Typer(
    name="ext",
    help="🔌 Manage installed extensions",
    no_args_is_help=True,
)

console = get_console()


@app.command(name="list")
def list_extensions(
    capability: Optional[str] = typer.Option(
        None,
        "--capability",
        "-c",
        help="Show only dispatchable extensions advertising this capability"
    ),
    kind: Optional[ExtensionKind] = typer.Option(
        None,
        "--kind",
        "-k",
        help="Show only dispatchable extensions of this kind"
    ),
) -> None:
    """
    📋 List loaded extensions.

    Examples:

        aniext ext list

        aniext ext list --capability extractStream
    """
    try:
        asyncio.run(_list_extensions(capability, kind))
    except KeyboardInterrupt:
        console.print("\n[yellow]Listing cancelled[/yellow]")
        raise typer.Exit(130)
    except Exception as e:
        handle_error(e, "Failed to list extensions")
        raise typer.Exit(1)


async def _list_extensions(capability: Optional[str], kind: Optional[ExtensionKind]) -> None:
    async with extension_runtime() as manager:
        if capability:
            summaries = manager.list_by_capability(capability)
        elif kind:
            summaries = manager.list_by_kind(kind)
        else:
            summaries = manager.list_extensions()

        if not summaries:
            display_warning("No extensions match.", "⚠️  Nothing Loaded")
            return
        console.print(extensions_table(summaries))

        failed = manager.get_status()["errors"]
        for extension_id, error in failed.items():
            console.print(f"[red]✗ {extension_id}[/red] [dim]{escape(error)}[/dim]")


@app.command(name="show")
def show_extension(
    extension_id: str = typer.Argument(..., help="Extension id"),
) -> None:
    """🔎 Show details of one extension."""
    try:
        found = asyncio.run(_show_extension(extension_id))
    except KeyboardInterrupt:
        raise typer.Exit(130)
    except Exception as e:
        handle_error(e, f"Failed to show extension '{extension_id}'")
        raise typer.Exit(1)
    if not found:
        display_warning(f"No extension loaded with id '{extension_id}'.")
        raise typer.Exit(1)


async def _show_extension(extension_id: str) -> bool:
    async with extension_runtime() as manager:
        summary = manager.get_summary(extension_id)
        if summary is None:
            return False
        console.print(summary_panel(summary))
        return True


@app.command(name="install")
def install_extension(
    directory: Path = typer.Argument(
        ...,
        help="Extension directory containing manifest.json",
        exists=True,
        file_okay=False,
        dir_okay=True,
    ),
    disabled: bool = typer.Option(
        False,
        "--disabled",
        help="Install without enabling the extension",
    ),
) -> None:
    """
    📥 Install an extension from a directory.

    The extension is validated, version-checked and initialized before
    it is recorded; failed installs leave the configuration untouched.
    """
    try:
        success = asyncio.run(_install_extension(directory, not disabled))
    except KeyboardInterrupt:
        raise typer.Exit(130)
    except Exception as e:
        handle_error(e, f"Failed to install extension from '{directory}'")
        raise typer.Exit(1)
    if not success:
        raise typer.Exit(1)


async def _install_extension(directory: Path, enabled: bool) -> bool:
    async with extension_runtime() as manager:
        report = await manager.load_directory(directory, enabled=enabled, persist=True)
        console.print(load_report_panel(report))
        return report.success


def _set_enabled(extension_id: str, enabled: bool) -> None:
    config_manager = get_config_manager()
    if config_manager.extensions.get(extension_id) is None:
        display_warning(f"Extension '{extension_id}' is not installed.")
        raise typer.Exit(1)
    try:
        config_manager.set_extension_enabled(extension_id, enabled)
    except Exception as e:
        handle_error(e, f"Failed to update extension '{extension_id}'")
        raise typer.Exit(1)
    display_info(
        f"Extension [cyan]{extension_id}[/cyan] {'enabled' if enabled else 'disabled'}.",
        "✅ Extension Updated",
    )


@app.command(name="enable")
def enable_extension(
    extension_id: str = typer.Argument(..., help="Extension id to enable"),
) -> None:
    """✅ Enable an installed extension."""
    _set_enabled(extension_id, True)


@app.command(name="disable")
def disable_extension(
    extension_id: str = typer.Argument(..., help="Extension id to disable"),
) -> None:
    """⛔ Disable an installed extension without removing it."""
    _set_enabled(extension_id, False)


@app.command(name="remove")
def remove_extension(
    extension_id: str = typer.Argument(..., help="Extension id to remove"),
) -> None:
    """🗑️  Forget an installed extension."""
    try:
        removed = get_config_manager().remove_extension(extension_id)
    except Exception as e:
        handle_error(e, f"Failed to remove extension '{extension_id}'")
        raise typer.Exit(1)
    if not removed:
        display_warning(f"Extension '{extension_id}' is not installed.")
        raise typer.Exit(1)
    display_info(f"Extension [cyan]{extension_id}[/cyan] removed.", "✅ Extension Removed")


@app.command(name="reload")
def reload_extension(
    extension_id: str = typer.Argument(..., help="Extension id to reload"),
) -> None:
    """🔄 Reload an extension from its directory and report the outcome."""
    try:
        success = asyncio.run(_reload_extension(extension_id))
    except KeyboardInterrupt:
        raise typer.Exit(130)
    except Exception as e:
        handle_error(e, f"Failed to reload extension '{extension_id}'")
        raise typer.Exit(1)
    if not success:
        raise typer.Exit(1)


async def _reload_extension(extension_id: str) -> bool:
    async with extension_runtime() as manager:
        report = await manager.reload(extension_id)
        console.print(load_report_panel(report))
        return report.success


# Export command group
__all__ = ["app"]

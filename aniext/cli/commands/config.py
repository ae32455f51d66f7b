"""
Configuration Command - Settings management functionality.

This module implements configuration commands for viewing and updating
runtime settings with validation.
"""

import json
from typing import Any, Optional

import typer
from rich.syntax import Syntax

from aniext.cli.context import get_config_manager
from aniext.ui import display_info, display_warning, get_console, handle_error

# Create config command group
app = typer.Typer(
    name="config",
    help="⚙️  Manage application configuration and settings",
    no_args_is_help=True,
)

console = get_console()


def _coerce(value: str) -> Any:
    """Interpret a command-line value as JSON where possible."""
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


@app.command(name="show")
def show_config(
    section: Optional[str] = typer.Argument(
        None,
        help="Configuration section to display (runtime, http, cache, storage, logging)"
    ),
) -> None:
    """📋 Display current configuration."""
    config_manager = get_config_manager()
    data = config_manager.settings.model_dump(mode="json")
    if section:
        if section not in data:
            display_warning(f"Unknown configuration section: {section}")
            raise typer.Exit(1)
        data = {section: data[section]}

    console.print(Syntax(json.dumps(data, indent=2), "json", theme="ansi_dark", background_color="default"))


@app.command(name="get")
def get_config(
    key: str = typer.Argument(..., help="Configuration key (dot notation)"),
) -> None:
    """🔎 Print a single setting."""
    sentinel = object()
    value = get_config_manager().get_setting(key, sentinel)
    if value is sentinel:
        display_warning(f"Unknown setting: {key}")
        raise typer.Exit(1)
    console.print(json.dumps(value))


@app.command(name="set")
def set_config(
    key: str = typer.Argument(..., help="Configuration key (dot notation)"),
    value: str = typer.Argument(..., help="New value for the setting (JSON literals accepted)"),
) -> None:
    """
    ✏️  Update a single setting.

    Examples:

        aniext config set cache.stream_ttl 300

        aniext config set runtime.host_version '"1.2.0"'
    """
    try:
        get_config_manager().update_setting(key, _coerce(value))
    except Exception as e:
        handle_error(e, f"Failed to update setting '{key}'")
        raise typer.Exit(1)
    display_info(f"[cyan]{key}[/cyan] updated.", "✅ Configuration Updated")


@app.command(name="reset")
def reset_config(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """♻️  Reset settings to defaults (installed extensions are kept)."""
    if not yes and not typer.confirm("Reset all settings to defaults?"):
        raise typer.Exit()
    get_config_manager().reset_to_defaults()
    display_info("Settings reset to defaults.", "✅ Configuration Reset")


# Export command group
__all__ = ["app"]

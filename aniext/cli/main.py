"""
CLI Main Application - Typer app entry point.

This module provides the main CLI application entry point with logging
setup, configuration loading and command registration.
"""

import sys
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.traceback import install as install_rich_traceback

from aniext import __version__
from aniext.core.config_manager import ConfigManager
from aniext.core.config_schemas import LoggingSettings
from aniext.core.exceptions import AniExtError, ConfigurationError
from aniext.ui import get_console, handle_error
from aniext.cli.context import get_config_manager, set_config_manager


# Create main Typer application
app = typer.Typer(
    name="aniext",
    help="🧩 Plugin runtime for anime data-extension providers",
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _version_callback(value: bool) -> None:
    if value:
        get_console().print(f"[bold blue]AniExt[/bold blue] version [green]{__version__}[/green]")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version information and exit",
        callback=_version_callback,
        is_eager=True,
    ),
    config_dir: Optional[Path] = typer.Option(
        None,
        "--config-dir",
        help="Configuration directory path",
        exists=False,
        file_okay=False,
        dir_okay=True,
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug mode with detailed logging",
    ),
) -> None:
    """
    🧩 AniExt - Load, inspect and call anime data extensions.

    Extensions are validated, version-checked and sandboxed before any of
    their capabilities can be called.
    """
    try:
        _initialize_application(config_dir=config_dir, debug=debug)
    except Exception as e:
        if isinstance(e, AniExtError):
            handle_error(e, "During application initialization")
        else:
            handle_error(e, "Unexpected error during startup", show_traceback=debug)
        raise typer.Exit(1)


def _initialize_application(config_dir: Optional[Path] = None, debug: bool = False) -> None:
    """
    Initialize the application with configuration and logging.

    Args:
        config_dir: Configuration directory override
        debug: Enable debug mode
    """
    install_rich_traceback(show_locals=debug)

    if config_dir is None:
        config_dir = Path("config")

    try:
        config_manager = ConfigManager(config_dir)
    except OSError as e:
        raise ConfigurationError(f"Failed to load configuration: {e}", str(config_dir))
    set_config_manager(config_manager)

    _setup_logging(config_manager.settings.logging, config_manager.config_dir, debug)


def _setup_logging(settings: LoggingSettings, config_dir: Path, debug: bool = False) -> None:
    """
    Set up application logging.

    Args:
        settings: Configured logging section
        config_dir: Directory that relative log file names live in
        debug: Enable debug logging
    """
    level = logging.DEBUG if debug else getattr(logging, settings.level)

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if settings.file:
        handlers.append(logging.FileHandler(config_dir / settings.file, encoding="utf-8"))

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
        force=True,
    )

    # Reduce noise from third-party libraries
    if not debug:
        logging.getLogger("aiohttp").setLevel(logging.WARNING)


def _register_commands() -> None:
    """Register command groups with the main app."""
    # Import commands here to avoid circular imports
    from aniext.cli.commands import config, extensions, hosters

    app.add_typer(extensions.app, name="ext", help="🔌 Manage installed extensions")
    app.add_typer(hosters.app, name="hosters", help="🎞️  Inspect supported video hosters")
    app.add_typer(config.app, name="config", help="⚙️  Manage configuration")


# Register commands at module level to ensure they're available for help
_register_commands()


@app.command(name="validate")
def validate(
    path: Path = typer.Argument(..., help="manifest.json or extension directory", exists=True),
) -> None:
    """📝 Validate a manifest and check it against this host."""
    from aniext.cli.commands.validate import validate_manifest

    host_version = get_config_manager().settings.runtime.host_version or __version__
    try:
        ok = validate_manifest(path, host_version)
    except Exception as e:
        handle_error(e, f"Failed to validate '{path}'")
        raise typer.Exit(1)
    if not ok:
        raise typer.Exit(1)


@app.command(name="invoke")
def invoke(
    extension_id: str = typer.Argument(..., help="Extension id"),
    capability: str = typer.Argument(..., help="Capability name, e.g. search or extractStream"),
    arguments: Optional[List[str]] = typer.Argument(None, help="Arguments as key=value pairs"),
    args_json: Optional[str] = typer.Option(None, "--json", help="Arguments as a JSON object"),
) -> None:
    """
    ⚡ Call one capability on one extension.

    Examples:

        aniext invoke my-source search query=frieren page=2

        aniext invoke builtin-hosters extractStream url=https://voe.sx/e/abc
    """
    from aniext.cli.commands.invoke import parse_arguments, run_invoke

    try:
        args = parse_arguments(capability, arguments or [], args_json)
        ok = run_invoke(extension_id, capability, args)
    except KeyboardInterrupt:
        raise typer.Exit(130)
    except Exception as e:
        handle_error(e, f"Failed to invoke {extension_id}.{capability}")
        raise typer.Exit(1)
    if not ok:
        raise typer.Exit(1)


@app.command(name="search")
def search(
    query: str = typer.Argument(..., help="Search query"),
    page: int = typer.Option(1, "--page", "-p", min=1, help="Result page"),
) -> None:
    """🔍 Search across every extension that supports it."""
    from aniext.cli.commands.invoke import run_search

    try:
        ok = run_search(query, page)
    except KeyboardInterrupt:
        raise typer.Exit(130)
    except Exception as e:
        handle_error(e, "Search failed")
        raise typer.Exit(1)
    if not ok:
        raise typer.Exit(1)


@app.command(name="extract")
def extract(
    urls: List[str] = typer.Argument(..., help="Hoster URLs, tried in order"),
    extension_id: Optional[str] = typer.Option(
        None,
        "--extension",
        "-e",
        help="Use only this extension instead of every stream extractor",
    ),
) -> None:
    """🎬 Extract a playable stream from hoster URLs."""
    from aniext.cli.commands.invoke import run_extract

    try:
        ok = run_extract(urls, extension_id)
    except KeyboardInterrupt:
        raise typer.Exit(130)
    except Exception as e:
        handle_error(e, "Extraction failed")
        raise typer.Exit(1)
    if not ok:
        raise typer.Exit(1)


@app.command(name="info")
def show_info() -> None:
    """📋 Show application and runtime information."""
    from aniext.cli.commands.info import show_application_info

    show_application_info(get_config_manager())


def cli_main() -> None:
    """
    Main CLI entry point for the aniext command.

    This function is called when the user runs 'aniext' from the command line.
    """
    try:
        app()
    except KeyboardInterrupt:
        console = get_console()
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(130)  # Standard exit code for SIGINT
    except Exception as e:
        handle_error(e, "Unexpected error in CLI")
        sys.exit(1)


# Export main components
__all__ = [
    "app",
    "cli_main",
]

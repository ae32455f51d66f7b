"""
Hosters Command - Built-in hoster catalog.

This module lists the hosters the built-in stream provider understands
and shows which one a given URL maps to.
"""

import typer
from rich.table import Table

from aniext.hosters.registry import HOSTERS, match_hoster
from aniext.ui import display_warning, get_console, get_palette

# Create hosters command group
app = typer.Typer(
    name="hosters",
    help="🎞️  Inspect supported video hosters",
    no_args_is_help=True,
)

console = get_console()


@app.command(name="list")
def list_hosters() -> None:
    """📋 List supported hosters and how they are fetched."""
    palette = get_palette()
    table = Table(title="Supported Hosters", header_style=f"bold {palette.primary}", border_style=palette.border)
    table.add_column("Hoster", style="cyan")
    table.add_column("Fetch")
    table.add_column("Cached", justify="center")
    table.add_column("URL pattern", overflow="fold", style="dim")

    for hoster in HOSTERS:
        cached = "[red]no[/red]" if hoster.cache_ttl == 0 else "[green]yes[/green]"
        table.add_row(hoster.name, hoster.fetch.value, cached, hoster.pattern.pattern)

    console.print(table)


@app.command(name="match")
def match_url(
    url: str = typer.Argument(..., help="Hoster URL to classify"),
) -> None:
    """🔗 Show which hoster pipeline handles a URL."""
    hoster = match_hoster(url)
    if hoster is None:
        display_warning("No hoster matches this URL; the generic scanner will be used.", "⚠️  Unknown Hoster")
        raise typer.Exit(1)
    console.print(f"[cyan]{hoster.name}[/cyan] ({hoster.fetch.value} fetch)")


# Export command group
__all__ = ["app"]

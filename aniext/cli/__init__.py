"""
CLI Layer - Command-line interface components.

This module contains the Typer-based CLI application that exposes the
extension runtime for scripting and diagnostics.
"""

from aniext.cli.main import app

__all__ = ["app"]

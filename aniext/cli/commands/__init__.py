"""
CLI Commands - Individual command implementations.

This module contains the command groups and helpers for extension
management, capability invocation, hosters and configuration.
"""

# Import all command modules for registration
from aniext.cli.commands import config, extensions, hosters, info, invoke, validate

__all__ = ["config", "extensions", "hosters", "info", "invoke", "validate"]

"""
Validate Command - Offline manifest checks.

This module validates an extension manifest and checks its target
version range against the running host without loading anything.
"""

import json
from pathlib import Path
from typing import Any, Dict

from aniext.core.exceptions import ValidationError
from aniext.core.extension_manager import read_manifest
from aniext.core.manifest import ManifestValidator, parse_manifest
from aniext.core.versioning import CompatibilityChecker
from aniext.ui import get_console, validation_panel


def load_manifest_file(path: Path) -> Dict[str, Any]:
    """
    Read a manifest from a file or from an extension directory.

    Raises:
        ValidationError: If the document cannot be read as a JSON object
    """
    if path.is_dir():
        return read_manifest(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError(f"Cannot read manifest {path}: {e}", field_name="manifest")
    if not isinstance(data, dict):
        raise ValidationError("Manifest must be a JSON object", field_name="manifest")
    return data


def validate_manifest(path: Path, host_version: str) -> bool:
    """
    Print validation and compatibility findings for one manifest.

    Returns:
        True if the manifest is valid and compatible with the host
    """
    data = load_manifest_file(path)
    validator = ManifestValidator()
    result = validator.validate(data)

    compatibility = None
    if result.valid:
        manifest = parse_manifest(data, validator)
        compatibility = CompatibilityChecker(host_version).check(manifest.target_version_range)

    get_console().print(validation_panel(result, compatibility))
    return result.valid and compatibility is not None and compatibility.is_compatible


__all__ = ["load_manifest_file", "validate_manifest"]

"""
Configuration Manager - JSON-based settings and extension record management.

This module provides centralized configuration management for AniExt,
handling runtime settings and the list of installed extensions with
validation, atomic persistence and default value management.
"""

import json
import logging
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from aniext.core.config_schemas import AppSettings, ExtensionRecord, ExtensionsConfig
from aniext.core.exceptions import ConfigurationError


logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class ConfigManager:
    """
    Manages application configuration with JSON persistence and validation.

    Provides thread-safe access to configuration data with automatic
    validation and recovery from corrupted files.
    """

    def __init__(self, config_dir: Optional[Union[str, Path]] = None):
        """
        Initialize configuration manager.

        Args:
            config_dir: Directory containing configuration files.
                       Defaults to './config' if not specified.
        """
        self.config_dir = Path(config_dir or "config")
        self.config_dir.mkdir(parents=True, exist_ok=True)

        self._settings_file = self.config_dir / "settings.json"
        self._extensions_file = self.config_dir / "extensions.json"

        # Thread-safe access to configuration data
        self._lock = Lock()
        self._settings: Optional[AppSettings] = None
        self._extensions: Optional[ExtensionsConfig] = None

        self._load_configurations()

    def _load_configurations(self) -> None:
        """Load all configuration files with error handling."""
        try:
            self._settings = self._load_model(self._settings_file, AppSettings)
            self._extensions = self._load_model(self._extensions_file, ExtensionsConfig)
            logger.info("Configuration loaded successfully")
        except OSError as e:
            logger.error(f"Failed to load configuration: {e}")
            raise ConfigurationError(f"Configuration loading failed: {e}", config_path=str(self.config_dir))

    def _load_model(self, path: Path, model: Type[ModelT]) -> ModelT:
        """Load and validate one configuration file, falling back to defaults."""
        if not path.exists():
            logger.info(f"{path.name} not found, creating default configuration")
            instance = model()
            self._save_model(path, instance)
            return instance

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return model.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Invalid {path.name}, using defaults: {e}")
            # Backup corrupted file
            backup_path = path.with_suffix('.json.backup')
            path.replace(backup_path)
            logger.info(f"Corrupted {path.name} backed up to {backup_path}")

            instance = model()
            self._save_model(path, instance)
            return instance

    def _save_model(self, path: Path, instance: BaseModel) -> None:
        """Save a model to file with atomic write."""
        temp_file = path.with_suffix('.tmp')
        try:
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump(instance.model_dump(mode="json"), f, indent=2, ensure_ascii=False)
            temp_file.replace(path)
            logger.debug(f"{path.name} saved successfully")
        except (OSError, TypeError, ValueError) as e:
            if temp_file.exists():
                temp_file.unlink()
            raise ConfigurationError(f"Failed to save {path.name}: {e}", config_path=str(path))

    @property
    def settings(self) -> AppSettings:
        """Get current application settings (thread-safe)."""
        with self._lock:
            if self._settings is None:
                self._settings = self._load_model(self._settings_file, AppSettings)
            return self._settings

    @property
    def extensions(self) -> ExtensionsConfig:
        """Get installed extension records (thread-safe)."""
        with self._lock:
            if self._extensions is None:
                self._extensions = self._load_model(self._extensions_file, ExtensionsConfig)
            return self._extensions

    @property
    def storage_dir(self) -> Path:
        """Directory holding per-extension storage files."""
        directory = self.settings.storage.directory
        return Path(directory).expanduser() if directory else self.config_dir / "storage"

    def update_setting(self, key_path: str, value: Any) -> None:
        """
        Update a specific setting using dot notation.

        Args:
            key_path: Dot-separated path to the setting (e.g., 'cache.stream_ttl')
            value: New value for the setting

        Raises:
            ConfigurationError: If key path is invalid or value is invalid
        """
        with self._lock:
            if self._settings is None:
                raise ConfigurationError("Settings not loaded")

            settings_dict = self._settings.model_dump()

            keys = key_path.split('.')
            current = settings_dict

            for key in keys[:-1]:
                if not isinstance(current, dict) or key not in current:
                    raise ConfigurationError(f"Invalid setting path: {key_path}")
                current = current[key]

            final_key = keys[-1]
            if not isinstance(current, dict) or final_key not in current:
                raise ConfigurationError(f"Invalid setting key: {final_key}")

            current[final_key] = value

            try:
                updated_settings = AppSettings.model_validate(settings_dict)
            except ValidationError as e:
                raise ConfigurationError(f"Invalid setting value: {e}")

            self._settings = updated_settings
            self._save_model(self._settings_file, updated_settings)
            logger.info(f"Setting updated: {key_path} = {value}")

    def get_setting(self, key_path: str, default: Any = None) -> Any:
        """
        Get a specific setting using dot notation.

        Args:
            key_path: Dot-separated path to the setting
            default: Default value if setting not found

        Returns:
            The setting value or default
        """
        with self._lock:
            if self._settings is None:
                return default

            current = self._settings.model_dump()
            try:
                for key in key_path.split('.'):
                    current = current[key]
                return current
            except (KeyError, TypeError):
                return default

    def upsert_extension(
        self,
        manifest: Dict[str, Any],
        source: Optional[Union[str, Path]] = None,
        enabled: bool = True,
    ) -> ExtensionRecord:
        """
        Record an installed extension, replacing any record with the same id.

        Raises:
            ConfigurationError: If the manifest has no usable id
        """
        record = ExtensionRecord(
            manifest=dict(manifest),
            source=str(source) if source is not None else None,
            enabled=enabled,
        )
        if record.id is None:
            raise ConfigurationError("Cannot record an extension without an id")

        with self._lock:
            if self._extensions is None:
                raise ConfigurationError("Extensions configuration not loaded")
            self._extensions.upsert(record)
            self._save_model(self._extensions_file, self._extensions)
        logger.info(f"Extension recorded: {record.id}")
        return record

    def remove_extension(self, extension_id: str) -> bool:
        """Forget an installed extension. Returns True if it was recorded."""
        with self._lock:
            if self._extensions is None or not self._extensions.remove(extension_id):
                return False
            self._save_model(self._extensions_file, self._extensions)
        logger.info(f"Extension record removed: {extension_id}")
        return True

    def set_extension_enabled(self, extension_id: str, enabled: bool) -> None:
        """
        Persist the enabled flag of an installed extension.

        Raises:
            ConfigurationError: If the extension is not recorded
        """
        with self._lock:
            record = self._extensions.get(extension_id) if self._extensions else None
            if record is None:
                raise ConfigurationError(f"Extension not installed: {extension_id}")
            record.enabled = enabled
            self._save_model(self._extensions_file, self._extensions)
        logger.info(f"Extension {'enabled' if enabled else 'disabled'}: {extension_id}")

    def get_extension_records(self) -> List[ExtensionRecord]:
        """Installed extensions in load order."""
        return list(self.extensions.extensions)

    def reload_configuration(self) -> None:
        """Reload configuration from files."""
        with self._lock:
            logger.info("Reloading configuration from files")
            self._settings = None
            self._extensions = None
            self._load_configurations()

    def reset_to_defaults(self) -> None:
        """Reset settings to default values; installed extensions are kept."""
        with self._lock:
            logger.warning("Resetting settings to defaults")
            self._settings = AppSettings()
            self._save_model(self._settings_file, self._settings)


# Export configuration manager
__all__ = ["ConfigManager"]

"""Tests for settings persistence and installed extension records."""

import json

import pytest

from aniext.core.config_manager import ConfigManager
from aniext.core.config_schemas import AppSettings
from aniext.core.exceptions import ConfigurationError


class TestSettings:
    def test_defaults_are_written(self, tmp_path):
        manager = ConfigManager(tmp_path)
        assert (tmp_path / "settings.json").exists()
        assert (tmp_path / "extensions.json").exists()
        assert manager.settings.logging.level == "WARNING"
        assert manager.storage_dir == tmp_path / "storage"

    def test_update_and_get(self, tmp_path):
        manager = ConfigManager(tmp_path)
        manager.update_setting("cache.stream_ttl", 120)

        assert manager.get_setting("cache.stream_ttl") == 120
        assert ConfigManager(tmp_path).settings.cache.stream_ttl == 120

    def test_get_unknown_returns_default(self, tmp_path):
        assert ConfigManager(tmp_path).get_setting("cache.nope", "fallback") == "fallback"

    @pytest.mark.parametrize("key", ["nope.value", "cache.nope", "cache.stream_ttl.deeper"])
    def test_invalid_path(self, tmp_path, key):
        with pytest.raises(ConfigurationError):
            ConfigManager(tmp_path).update_setting(key, 1)

    @pytest.mark.parametrize(
        "key,value",
        [("cache.stream_ttl", -5), ("runtime.host_version", "v1"), ("logging.level", "LOUD")],
    )
    def test_invalid_value(self, tmp_path, key, value):
        manager = ConfigManager(tmp_path)
        with pytest.raises(ConfigurationError):
            manager.update_setting(key, value)
        assert manager.settings == AppSettings()

    def test_corrupted_settings_are_backed_up(self, tmp_path):
        (tmp_path / "settings.json").write_text("{broken", encoding="utf-8")
        manager = ConfigManager(tmp_path)
        assert manager.settings == AppSettings()
        assert (tmp_path / "settings.json.backup").read_text(encoding="utf-8") == "{broken"

    def test_call_timeout_follows_http_timeout(self):
        settings = AppSettings.model_validate({"http": {"timeout": 90}, "runtime": {"call_timeout": 10}})
        assert settings.runtime.call_timeout == 90

    def test_reset_keeps_extensions(self, tmp_path):
        manager = ConfigManager(tmp_path)
        manager.update_setting("cache.enabled", False)
        manager.upsert_extension({"id": "kept-ext"})
        manager.reset_to_defaults()

        assert manager.settings.cache.enabled is True
        assert manager.extensions.get("kept-ext") is not None


class TestExtensionRecords:
    def test_upsert_replaces_by_id(self, tmp_path):
        manager = ConfigManager(tmp_path)
        manager.upsert_extension({"id": "ext-a", "version": "1.0.0"}, tmp_path / "a")
        manager.upsert_extension({"id": "ext-b"})
        manager.upsert_extension({"id": "ext-a", "version": "1.1.0"}, tmp_path / "a")

        records = ConfigManager(tmp_path).get_extension_records()
        assert [r.id for r in records] == ["ext-a", "ext-b"]
        assert records[0].manifest["version"] == "1.1.0"
        assert records[0].source_path == tmp_path / "a"

    def test_record_without_id(self, tmp_path):
        with pytest.raises(ConfigurationError):
            ConfigManager(tmp_path).upsert_extension({"name": "anonymous"})

    def test_enable_and_remove(self, tmp_path):
        manager = ConfigManager(tmp_path)
        manager.upsert_extension({"id": "ext-a"})
        manager.set_extension_enabled("ext-a", False)

        saved = json.loads((tmp_path / "extensions.json").read_text(encoding="utf-8"))
        assert saved["extensions"][0]["enabled"] is False

        assert manager.remove_extension("ext-a")
        assert not manager.remove_extension("ext-a")
        with pytest.raises(ConfigurationError):
            manager.set_extension_enabled("ext-a", True)

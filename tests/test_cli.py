"""Tests for the command-line interface."""

import json
import logging

import pytest
from typer.testing import CliRunner

from aniext import __version__
from aniext.cli.main import app
from aniext.core.config_manager import ConfigManager


runner = CliRunner()

SCRIPT = '''
def search(query, page=1):
    return [{"id": "cli-" + query, "title": query.upper()}]
'''


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def config_dir(tmp_path):
    return tmp_path / "config"


@pytest.fixture
def extension_dir(tmp_path, make_manifest):
    directory = tmp_path / "ext"
    directory.mkdir()
    (directory / "manifest.json").write_text(json.dumps(make_manifest()), encoding="utf-8")
    (directory / "main.py").write_text(SCRIPT, encoding="utf-8")
    return directory


def _run(config_dir, *args):
    return runner.invoke(app, ["--config-dir", str(config_dir), *args])


class TestGlobalOptions:
    def test_help(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "validate" in result.output

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestValidate:
    def test_valid_manifest(self, config_dir, extension_dir):
        result = _run(config_dir, "validate", str(extension_dir / "manifest.json"))
        assert result.exit_code == 0

    def test_invalid_manifest(self, config_dir, tmp_path, make_manifest):
        path = tmp_path / "broken.json"
        path.write_text(json.dumps(make_manifest(kind="toaster")), encoding="utf-8")
        assert _run(config_dir, "validate", str(path)).exit_code == 1

    def test_incompatible_manifest(self, config_dir, extension_dir, make_manifest):
        (extension_dir / "manifest.json").write_text(
            json.dumps(make_manifest(targetVersionRange={"min": "9.0.0"})), encoding="utf-8"
        )
        assert _run(config_dir, "validate", str(extension_dir)).exit_code == 1


class TestHosters:
    def test_list(self, config_dir):
        result = _run(config_dir, "hosters", "list")
        assert result.exit_code == 0
        assert "Streamtape" in result.output

    def test_match(self, config_dir):
        result = _run(config_dir, "hosters", "match", "https://voe.sx/e/abc")
        assert result.exit_code == 0
        assert "VOE" in result.output

    def test_no_match(self, config_dir):
        assert _run(config_dir, "hosters", "match", "https://unknown.example/v").exit_code == 1


class TestConfig:
    def test_set_and_get(self, config_dir):
        assert _run(config_dir, "config", "set", "cache.stream_ttl", "300").exit_code == 0
        result = _run(config_dir, "config", "get", "cache.stream_ttl")
        assert result.exit_code == 0
        assert "300" in result.output

    def test_set_invalid(self, config_dir):
        assert _run(config_dir, "config", "set", "cache.stream_ttl", "-1").exit_code == 1

    def test_get_unknown(self, config_dir):
        assert _run(config_dir, "config", "get", "cache.nope").exit_code == 1


class TestExtensions:
    def test_install_invoke_disable_remove(self, config_dir, extension_dir):
        assert _run(config_dir, "ext", "install", str(extension_dir)).exit_code == 0
        assert ConfigManager(config_dir).extensions.get("test-source") is not None

        assert _run(config_dir, "ext", "list").exit_code == 0
        invoked = _run(config_dir, "invoke", "test-source", "search", "query=frieren")
        assert invoked.exit_code == 0

        assert _run(config_dir, "ext", "disable", "test-source").exit_code == 0
        assert ConfigManager(config_dir).extensions.get("test-source").enabled is False
        assert _run(config_dir, "invoke", "test-source", "search", "query=frieren").exit_code == 1

        assert _run(config_dir, "ext", "remove", "test-source").exit_code == 0
        assert _run(config_dir, "ext", "remove", "test-source").exit_code == 1

    def test_failed_install_is_not_recorded(self, config_dir, extension_dir):
        (extension_dir / "main.py").write_text("import os\n", encoding="utf-8")
        assert _run(config_dir, "ext", "install", str(extension_dir)).exit_code == 1
        assert ConfigManager(config_dir).extensions.get("test-source") is None

    def test_enable_unknown(self, config_dir):
        assert _run(config_dir, "ext", "enable", "ghost").exit_code == 1


class TestInvoke:
    def test_malformed_pair(self, config_dir):
        assert _run(config_dir, "invoke", "test-source", "search", "frieren").exit_code == 1

    def test_non_integer_page(self, config_dir):
        assert _run(config_dir, "invoke", "test-source", "search", "query=x", "page=two").exit_code == 1

    def test_unknown_extension(self, config_dir):
        assert _run(config_dir, "invoke", "ghost", "getHosterInfo").exit_code == 1

    def test_builtin_hoster_info(self, config_dir):
        assert _run(config_dir, "invoke", "builtin-hosters", "getHosterInfo").exit_code == 0

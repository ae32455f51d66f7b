"""Tests for namespaced extension storage."""

import json

import pytest

from aniext.core.exceptions import StorageQuotaExceeded, ValidationError
from aniext.host.storage import ExtensionStorage, JsonFileStore, MemoryStore


class TestExtensionStorage:
    def test_set_and_get(self):
        storage = ExtensionStorage("ext-a")
        storage.set("watched", {"ep": 3, "titles": ["a", "b"]})
        assert storage.get("watched") == {"ep": 3, "titles": ["a", "b"]}
        assert storage.get("missing", "fallback") == "fallback"

    def test_namespaces_are_isolated(self):
        backend = MemoryStore()
        first = ExtensionStorage("ext-a", backend)
        second = ExtensionStorage("ext-b", backend)

        first.set("token", "aaa")
        second.set("token", "bbb")
        second.clear()

        assert first.get("token") == "aaa"
        assert second.get("token") is None
        assert first.keys() == ["token"]

    def test_keys_are_prefixed_in_backend(self):
        backend = MemoryStore()
        ExtensionStorage("ext-a", backend).set("k", 1)
        assert backend.load("ext-a") == {"aniext_ext-a_k": "1"}

    def test_quota_is_enforced(self):
        storage = ExtensionStorage("ext-a", quota_bytes=64)
        storage.set("small", "x")
        with pytest.raises(StorageQuotaExceeded):
            storage.set("big", "y" * 100)
        assert storage.get("big") is None
        assert storage.get("small") == "x"

    def test_quota_error_is_a_permission_error(self):
        assert StorageQuotaExceeded("full").kind == "storage-quota"

    def test_non_serializable_value(self):
        with pytest.raises(ValidationError):
            ExtensionStorage("ext-a").set("bad", object())

    def test_empty_key(self):
        with pytest.raises(ValidationError):
            ExtensionStorage("ext-a").set("", 1)

    def test_remove(self):
        storage = ExtensionStorage("ext-a")
        storage.set("k", 1)
        assert storage.remove("k")
        assert not storage.remove("k")

    def test_usage(self):
        storage = ExtensionStorage("ext-a", quota_bytes=1000)
        storage.set("k", "v")
        usage = storage.usage()
        assert usage.used == len("aniext_ext-a_k") + len('"v"')
        assert usage.max == 1000
        assert 0 < usage.percentage < 100


class TestJsonFileStore:
    def test_persists_across_instances(self, tmp_path):
        ExtensionStorage("ext-a", JsonFileStore(tmp_path)).set("page", 7)
        assert ExtensionStorage("ext-a", JsonFileStore(tmp_path)).get("page") == 7
        assert (tmp_path / "ext-a.json").exists()

    def test_corrupted_file_is_backed_up(self, tmp_path):
        (tmp_path / "ext-a.json").write_text("{not json", encoding="utf-8")
        store = JsonFileStore(tmp_path)
        assert store.load("ext-a") == {}
        assert (tmp_path / "ext-a.json.backup").exists()

    def test_unsafe_namespace_names(self, tmp_path):
        store = JsonFileStore(tmp_path)
        store.save("../escape", {"k": "v"})
        assert json.loads((tmp_path / "___escape.json").read_text(encoding="utf-8")) == {"k": "v"}

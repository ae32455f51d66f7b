"""Tests for the native backend against an in-process fake library."""

import json

import pytest

from aniext.backends.native import (
    NATIVE_ABI_VERSION,
    FreeResultFn,
    NativeBackend,
    SearchFn,
    StringFn,
)
from aniext.core.capabilities import capability_mask, get_capability
from aniext.core.exceptions import BackendLoadError, InvocationError
from aniext.core.manifest import parse_manifest


class FakeSymbol:
    """Stands in for a ctypes function exported by a shared library."""

    def __init__(self, fn):
        self.fn = fn
        self.restype = None
        self.argtypes = None

    def __call__(self, *args):
        return self.fn(*args)


class FakeLibrary:
    """A library whose call table is backed by Python callbacks."""

    STATE = 4242

    def __init__(self, abi_version=NATIVE_ABI_VERSION, capabilities=("search", "decryptStream")):
        self.capabilities = capabilities
        self.calls = []
        self.freed = 0
        self.destroyed = []
        self.create_calls = 0
        # Callbacks and result buffers must outlive every call through the table
        self.keepalive = []

        self.get_abi_version = FakeSymbol(lambda: abi_version)
        self.create_plugin = FakeSymbol(self._create)
        self.destroy_plugin = FakeSymbol(self.destroyed.append)

    def _fill(self, result, value=None, error=None):
        for blob in (value, error):
            if blob is not None:
                self.keepalive.append(blob)
        result.contents.success = 1 if error is None else 0
        result.contents.value = value
        result.contents.error = error

    def _search(self, state, query, page, result):
        self.calls.append(("search", state, query, page))
        if query == b"explode":
            self._fill(result, error=b"backend exploded")
            return 1
        self._fill(result, value=json.dumps([{"id": "n1", "title": query.decode(), "page": page}]).encode())
        return 0

    def _decrypt(self, state, data, result):
        self.calls.append(("decrypt_stream", state, data))
        self._fill(result, value=data[::-1])
        return 0

    def _free(self, state, result):
        self.freed += 1

    def _create(self, table_ptr):
        self.create_calls += 1
        table = table_ptr.contents
        table.capabilities = capability_mask(self.capabilities)
        callbacks = {"search": SearchFn(self._search), "decryptStream": StringFn(self._decrypt)}
        for name in self.capabilities:
            fn = callbacks[name]
            self.keepalive.append(fn)
            setattr(table, get_capability(name).python_name, fn)
        free = FreeResultFn(self._free)
        self.keepalive.append(free)
        table.free_result = free
        return self.STATE


@pytest.fixture
def native_manifest(make_manifest, tmp_path):
    (tmp_path / "libext.so").write_bytes(b"\x7fELF fake")

    def factory(capabilities=None):
        data = make_manifest(
            capabilities=capabilities or {"search": True, "decryptStream": True},
            locator={"libraries": {"linux": "libext.so"}},
        )
        return parse_manifest(data)

    return factory


class TestNativeBackend:
    @pytest.mark.asyncio
    async def test_search_through_call_table(self, tmp_path, native_manifest):
        library = FakeLibrary()
        backend = NativeBackend(library_factory=lambda path: library, platform="linux")
        handle = await backend.create(native_manifest(), tmp_path)

        result = await backend.invoke(handle, get_capability("search"), {"query": "frieren", "page": 2})

        assert result == [{"id": "n1", "title": "frieren", "page": 2}]
        assert library.calls[0][2:] == (b"frieren", 2)
        assert library.freed == 1

    @pytest.mark.asyncio
    async def test_plain_text_result(self, tmp_path, native_manifest):
        library = FakeLibrary()
        backend = NativeBackend(library_factory=lambda path: library, platform="linux")
        handle = await backend.create(native_manifest(), tmp_path)

        result = await backend.invoke(handle, get_capability("decryptStream"), {"data": "olleh"})
        assert result == "hello"

    @pytest.mark.asyncio
    async def test_reported_failure(self, tmp_path, native_manifest):
        library = FakeLibrary()
        backend = NativeBackend(library_factory=lambda path: library, platform="linux")
        handle = await backend.create(native_manifest(), tmp_path)

        with pytest.raises(InvocationError) as exc_info:
            await backend.invoke(handle, get_capability("search"), {"query": "explode", "page": 1})
        assert "backend exploded" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_abi_mismatch_refuses_load(self, tmp_path, native_manifest):
        library = FakeLibrary(abi_version=NATIVE_ABI_VERSION + 1)
        backend = NativeBackend(library_factory=lambda path: library, platform="linux")
        with pytest.raises(BackendLoadError) as exc_info:
            await backend.create(native_manifest(), tmp_path)
        assert "ABI" in str(exc_info.value)
        assert library.create_calls == 0

    @pytest.mark.asyncio
    async def test_unimplemented_capability_refuses_load(self, tmp_path, native_manifest):
        library = FakeLibrary(capabilities=("search",))
        backend = NativeBackend(library_factory=lambda path: library, platform="linux")
        with pytest.raises(BackendLoadError) as exc_info:
            await backend.create(native_manifest(), tmp_path)
        assert "decryptStream" in str(exc_info.value)
        assert library.destroyed == [FakeLibrary.STATE]

    @pytest.mark.asyncio
    async def test_missing_platform_library(self, tmp_path, native_manifest):
        backend = NativeBackend(library_factory=lambda path: FakeLibrary(), platform="macos")
        with pytest.raises(BackendLoadError):
            await backend.create(native_manifest(), tmp_path)

    @pytest.mark.asyncio
    async def test_unopenable_library(self, tmp_path, native_manifest):
        def refuse(path):
            raise OSError("wrong ELF class")

        with pytest.raises(BackendLoadError):
            await NativeBackend(library_factory=refuse, platform="linux").create(native_manifest(), tmp_path)

    @pytest.mark.asyncio
    async def test_shutdown_destroys_state_once(self, tmp_path, native_manifest):
        library = FakeLibrary()
        backend = NativeBackend(library_factory=lambda path: library, platform="linux")
        handle = await backend.create(native_manifest(), tmp_path)

        await backend.shutdown(handle)
        await backend.shutdown(handle)

        assert library.destroyed == [FakeLibrary.STATE]
        with pytest.raises(InvocationError):
            await backend.invoke(handle, get_capability("search"), {"query": "x", "page": 1})

"""Pytest configuration and shared fixtures."""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

import pytest

from aniext.backends.base import PluginBackend
from aniext.core.instance import ExtensionInstance
from aniext.core.manifest import parse_manifest
from aniext.host.surface import build_surface


def _manifest(**overrides) -> Dict[str, Any]:
    data = {
        "id": "test-source",
        "name": "Test Source",
        "version": "1.0.0",
        "kind": "media-provider",
        "description": "Source used by the test-suite",
        "icon": "icon.png",
        "capabilities": {"search": True},
        "permissions": ["network:http"],
        "targetVersionRange": {"min": "1.0.0"},
        "locator": {"script": "main.py"},
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_manifest():
    """Factory for raw manifest documents with sensible defaults."""
    return _manifest


class FakeResponse:
    """Stands in for an aiohttp response inside ``async with``."""

    def __init__(self, status: int = 200, body: str = "", headers: Optional[Dict[str, str]] = None, url: str = ""):
        self.status = status
        self.body = body
        self.headers = dict(headers or {})
        self.url = url

    async def text(self, errors: str = "strict") -> str:
        return self.body

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc_info) -> bool:
        return False


class FakeSession:
    """Records requests and answers them from a URL -> response table."""

    def __init__(self, routes: Optional[Dict[str, Any]] = None):
        self.routes = dict(routes or {})
        self.requests: List[Tuple[str, str, Dict[str, Any]]] = []
        self.closed = False

    def request(self, method: str, url: str, **kwargs) -> FakeResponse:
        self.requests.append((method, url, kwargs))
        response = self.routes.get(url)
        if isinstance(response, Exception):
            raise response
        if response is None:
            response = FakeResponse(404, "not found")
        if not response.url:
            response.url = url
        return response

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_session():
    return FakeSession()


class RecordingBackend(PluginBackend):
    """In-memory backend that records every call it receives."""

    name = "recording"

    def __init__(self, results: Optional[Dict[str, Any]] = None, gate: Optional[asyncio.Event] = None):
        self.results = dict(results or {})
        self.gate = gate
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.created = 0
        self.shutdowns = 0
        self.fail_initialize: Optional[Exception] = None

    async def create(self, manifest, base_dir=None):
        self.created += 1
        return {"manifest": manifest.id}

    async def initialize(self, handle, surface):
        if self.fail_initialize is not None:
            raise self.fail_initialize

    async def invoke(self, handle, capability, args):
        self.calls.append((capability.name, dict(args)))
        if self.gate is not None:
            await self.gate.wait()
        result = self.results.get(capability.name)
        if isinstance(result, Exception):
            raise result
        if callable(result):
            return result(**args)
        return result

    async def shutdown(self, handle):
        self.shutdowns += 1


@pytest.fixture
def recording_backend():
    return RecordingBackend()


@pytest.fixture
def make_instance():
    """Build a READY instance around a raw manifest and a backend."""

    def factory(manifest_data: Dict[str, Any], backend: PluginBackend, enabled: bool = True) -> ExtensionInstance:
        manifest = parse_manifest(manifest_data)
        surface = build_surface(manifest, "1.0.0")
        instance = ExtensionInstance(manifest, backend, surface, enabled=enabled)
        instance.handle = {"manifest": manifest.id}
        instance.mark_ready()
        return instance

    return factory

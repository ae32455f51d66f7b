"""Tests for the domain allowlist and the per-extension HTTP context."""

import asyncio

import aiohttp
import pytest

from aniext.core.exceptions import NetworkError, PermissionDenied
from aniext.core.manifest import parse_manifest
from aniext.host.allowlist import DomainAllowlist
from aniext.host.http import HttpContext, HttpResponse

from conftest import FakeResponse, FakeSession


class FakeClock:
    def __init__(self, start: float = 100.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class TestDomainAllowlist:
    def test_no_security_block_allows_everything(self, make_manifest):
        allowlist = DomainAllowlist.from_manifest(parse_manifest(make_manifest()))
        assert allowlist.is_allowed("https://anything.example/path")
        assert allowlist.describe() is None

    def test_exact_and_wildcard(self):
        allowlist = DomainAllowlist(["example.com", "*.cdn.net"], enforce=True)
        assert allowlist.is_allowed("https://example.com/a")
        assert allowlist.is_allowed("https://EXAMPLE.com./a")
        assert allowlist.is_allowed("https://cdn.net/x")
        assert allowlist.is_allowed("https://img.eu.cdn.net/x")
        assert not allowlist.is_allowed("https://www.example.com/a")
        assert not allowlist.is_allowed("https://evilcdn.net/x")
        assert not allowlist.is_allowed("https://example.com.evil.org/")

    def test_empty_list_refuses_everything(self, make_manifest):
        manifest = parse_manifest(make_manifest(security={"allowedDomains": []}))
        allowlist = DomainAllowlist.from_manifest(manifest)
        assert not allowlist.is_allowed("https://example.com/")
        assert allowlist.describe() == []

    def test_check_raises(self):
        allowlist = DomainAllowlist(["example.com"], enforce=True)
        with pytest.raises(PermissionDenied) as exc_info:
            allowlist.check("https://other.com/page", "ext-a")
        assert exc_info.value.target == "https://other.com/page"
        assert exc_info.value.extension_id == "ext-a"


class TestHttpContext:
    @pytest.mark.asyncio
    async def test_refused_domain_makes_no_request(self):
        session = FakeSession({"https://other.com/": FakeResponse(200, "ok")})
        http = HttpContext(
            "ext-a",
            allowlist=DomainAllowlist(["example.com"], enforce=True),
            session=session,
        )
        with pytest.raises(PermissionDenied):
            await http.get("https://other.com/")
        assert session.requests == []
        assert http.request_count == 0
        assert http.refused_count == 1

    @pytest.mark.asyncio
    async def test_missing_permission_is_refused(self):
        session = FakeSession()
        http = HttpContext("ext-a", permitted=False, session=session)
        with pytest.raises(PermissionDenied):
            await http.get("https://example.com/")
        assert session.requests == []

    @pytest.mark.asyncio
    async def test_non_http_scheme_is_refused(self):
        http = HttpContext("ext-a", session=FakeSession())
        with pytest.raises(PermissionDenied):
            await http.get("file:///etc/passwd")

    @pytest.mark.asyncio
    async def test_successful_get(self):
        session = FakeSession({
            "https://example.com/api": FakeResponse(200, '{"items": [1, 2]}', {"Content-Type": "application/json"}),
        })
        http = HttpContext("ext-a", session=session)
        response = await http.get("https://example.com/api", headers={"X-Test": "1"})
        assert response.ok
        assert response.json() == {"items": [1, 2]}
        assert response.headers["Content-Type"] == "application/json"
        method, url, kwargs = session.requests[0]
        assert (method, url) == ("GET", "https://example.com/api")
        assert kwargs["headers"] == {"X-Test": "1"}
        assert kwargs["allow_redirects"] is False

    @pytest.mark.asyncio
    async def test_error_status_is_returned(self):
        session = FakeSession({"https://example.com/missing": FakeResponse(404, "gone")})
        response = await HttpContext("ext-a", session=session).get("https://example.com/missing")
        assert not response.ok
        assert response.status == 404

    @pytest.mark.asyncio
    async def test_redirect_hops_are_rechecked(self):
        session = FakeSession({
            "https://example.com/start": FakeResponse(302, "", {"Location": "https://tracker.evil/next"}),
        })
        http = HttpContext("ext-a", allowlist=DomainAllowlist(["example.com"], enforce=True), session=session)
        with pytest.raises(PermissionDenied):
            await http.get("https://example.com/start")
        assert [url for _, url, _ in session.requests] == ["https://example.com/start"]

    @pytest.mark.asyncio
    async def test_relative_redirect_is_followed(self):
        session = FakeSession({
            "https://example.com/start": FakeResponse(301, "", {"Location": "/final"}),
            "https://example.com/final": FakeResponse(200, "done"),
        })
        response = await HttpContext("ext-a", session=session).get("https://example.com/start")
        assert response.body == "done"
        assert response.url == "https://example.com/final"

    @pytest.mark.asyncio
    async def test_transport_error_becomes_network_error(self):
        session = FakeSession({"https://example.com/": aiohttp.ClientConnectionError("reset")})
        http = HttpContext("ext-a", session=session)
        with pytest.raises(NetworkError) as exc_info:
            await http.get("https://example.com/")
        assert exc_info.value.url == "https://example.com/"
        assert http.error_count == 1

    @pytest.mark.asyncio
    async def test_timeout_becomes_network_error(self):
        session = FakeSession({"https://example.com/": asyncio.TimeoutError()})
        with pytest.raises(NetworkError):
            await HttpContext("ext-a", session=session).get("https://example.com/")

    @pytest.mark.asyncio
    async def test_rate_limit_spaces_requests(self):
        clock = FakeClock()
        session = FakeSession({"https://example.com/": FakeResponse(200, "ok")})
        http = HttpContext("ext-a", min_interval=0.5, session=session, clock=clock, sleep=clock.sleep)

        await http.get("https://example.com/")
        await http.get("https://example.com/")
        clock.now += 2.0
        await http.get("https://example.com/")

        assert clock.sleeps == [0.5]
        assert http.request_count == 3

    @pytest.mark.asyncio
    async def test_zero_interval_never_sleeps(self):
        clock = FakeClock()
        session = FakeSession({"https://example.com/": FakeResponse(200, "ok")})
        http = HttpContext("ext-a", session=session, clock=clock, sleep=clock.sleep)
        await asyncio.gather(*(http.get("https://example.com/") for _ in range(3)))
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_injected_session_is_not_closed(self):
        session = FakeSession()
        http = HttpContext("ext-a", session=session)
        await http.close()
        assert not session.closed

    def test_stats(self):
        http = HttpContext("ext-a", allowlist=DomainAllowlist(["example.com"], enforce=True), min_interval=0.25)
        stats = http.stats()
        assert stats["allowed_domains"] == ["example.com"]
        assert stats["min_interval"] == 0.25
        assert stats["requests"] == 0


class TestHttpResponse:
    def test_json_body(self):
        response = HttpResponse(status=200, body='{"episodes": [1, 2], "next": null}', ok=True)
        assert response.json() == {"episodes": [1, 2], "next": None}

    def test_invalid_json_raises(self):
        with pytest.raises(ValueError):
            HttpResponse(status=200, body="<html>").json()

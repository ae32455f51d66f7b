"""Tests for the built-in hoster provider's fetch flows."""

import random

import pytest

from aniext.core.manifest import parse_manifest
from aniext.hosters.provider import HosterProvider, hosters_manifest
from aniext.host.surface import build_surface

from conftest import FakeResponse, FakeSession


VIDOZA_PAGE = '<script>sourcesCode: [{ src: "https://str.vidoza.example/v/ep1.mp4", type: "video/mp4" }]</script>'


def _provider(routes, **kwargs):
    session = FakeSession(routes)
    surface = build_surface(parse_manifest(hosters_manifest("1.0.0")), "1.0.0", session=session)
    return HosterProvider(surface, **kwargs), session


class TestHosterProvider:
    @pytest.mark.asyncio
    async def test_page_hoster(self):
        provider, _ = _provider({"https://vidoza.net/embed-abc.html": FakeResponse(200, VIDOZA_PAGE)})
        stream = await provider.extract_stream("https://vidoza.net/embed-abc.html")
        assert stream.url == "https://str.vidoza.example/v/ep1.mp4"
        assert stream.server == "Vidoza"

    @pytest.mark.asyncio
    async def test_doodstream_challenge(self):
        provider, session = _provider(
            {
                "https://dood.re/e/abc": FakeResponse(200, "$.get('/pass_md5/9-1/tok42', function(d) {})"),
                "https://dood.re/pass_md5/9-1/tok42": FakeResponse(200, "https://cdn.dood.example/xyz"),
            },
            rng=random.Random(7),
            clock=lambda: 1700000000.0,
        )

        stream = await provider.extract_stream("https://dood.re/e/abc")

        suffix = stream.url[len("https://cdn.dood.example/xyz"):].split("?")[0]
        assert len(suffix) == 10
        assert stream.url.endswith("?token=tok42&expiry=1700000000000")
        assert stream.headers == {"Referer": "https://dood.re/"}
        assert session.requests[1][2]["headers"]["Referer"] == "https://dood.re/e/abc"

    @pytest.mark.asyncio
    async def test_unknown_hoster_uses_generic_scan(self):
        provider, _ = _provider({"https://files.example/watch": FakeResponse(200, "file: 'https://files.example/a.mp4'")})
        stream = await provider.extract_stream("https://files.example/watch")
        assert stream.url == "https://files.example/a.mp4"

    @pytest.mark.asyncio
    async def test_error_page_yields_nothing(self):
        provider, _ = _provider({})
        assert await provider.extract_stream("https://vidoza.net/embed-gone.html") is None

    @pytest.mark.asyncio
    async def test_extract_first(self):
        provider, session = _provider({"https://vidoza.net/embed-2.html": FakeResponse(200, VIDOZA_PAGE)})
        stream = await provider.extract_first(["https://vidoza.net/embed-1.html", "https://vidoza.net/embed-2.html"])
        assert stream.server == "Vidoza"
        assert len(session.requests) == 2

    @pytest.mark.asyncio
    async def test_hoster_info(self):
        provider, _ = _provider({})
        info = await provider.get_hoster_info()
        dood = next(hoster for hoster in info if hoster["name"] == "Doodstream")
        assert dood["cacheable"] is False

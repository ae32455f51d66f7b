"""
Hoster Provider - Built-in stream-provider extension.

The provider matches an arbitrary hoster URL against the registry,
performs the requests that hoster needs through the instance's own
HttpContext (so the usual allowlist and rate limits apply) and runs the
hoster's extraction pipeline on the fetched body.
"""

import logging
import random
import time
from typing import Any, Callable, Dict, Iterable, List, Optional
from urllib.parse import urlparse

from aniext import __version__
from aniext.core.exceptions import AniExtError
from aniext.core.models import StreamDescriptor
from aniext.host.markup import MarkupParser
from aniext.host.surface import CapabilitySurface
from aniext.hosters import extractors
from aniext.hosters.registry import FetchMode, HosterDescriptor, list_hosters, match_hoster


logger = logging.getLogger(__name__)

BUILTIN_HOSTERS_ID = "builtin-hosters"

BROWSER_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
MOBILE_UA = "Mozilla/5.0 (Android 15; Mobile; rv:132.0) Gecko/132.0 Firefox/132.0"


def hosters_manifest(host_version: str = __version__) -> Dict[str, Any]:
    """Manifest of the built-in hoster provider for the given host version."""
    return {
        "id": BUILTIN_HOSTERS_ID,
        "name": "Built-in Hosters",
        "version": __version__,
        "kind": "stream-provider",
        "description": "Extracts playable streams from common video hosters",
        "capabilities": {"extractStream": True, "getHosterInfo": True},
        "permissions": ["network:http"],
        "targetVersionRange": {"min": host_version},
        "locator": {"builtin": "hosters"},
    }


def _origin(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


class HosterProvider:
    """In-process implementation of ``extractStream`` and ``getHosterInfo``."""

    def __init__(
        self,
        surface: CapabilitySurface,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.surface = surface
        self.http = surface.http
        self.rng = rng
        self.clock = clock

    async def _fetch_page(self, url: str, headers: Optional[Dict[str, str]] = None) -> Optional[str]:
        response = await self.http.get(url, headers=headers)
        return response.body if response.ok else None

    async def _run_page(self, hoster: HosterDescriptor, url: str) -> Optional[StreamDescriptor]:
        body = await self._fetch_page(url)
        return hoster.pipeline(body) if body is not None else None

    async def _run_iframe(self, hoster: HosterDescriptor, url: str) -> Optional[StreamDescriptor]:
        response = await self.http.get(url, headers={"User-Agent": BROWSER_UA})
        if not response.ok:
            return None
        source = response.body
        frames = MarkupParser(source, response.url or url).iframe_sources()
        if frames:
            inner = await self.http.get(
                self.surface.html.make_absolute(frames[0], url),
                headers={"Referer": url, "Sec-Fetch-Dest": "iframe", "User-Agent": BROWSER_UA},
            )
            if inner.ok:
                source = inner.body
        return hoster.pipeline(source)

    async def _run_embed(self, hoster: HosterDescriptor, url: str) -> Optional[StreamDescriptor]:
        response = await self.http.get(url, headers={"User-Agent": MOBILE_UA})
        embed = extractors.luluvdo_embed_url(response.url or url)
        if embed is None:
            return None
        body = await self._fetch_page(embed, headers={"User-Agent": MOBILE_UA, "Referer": url})
        return hoster.pipeline(body) if body is not None else None

    async def _run_api(self, hoster: HosterDescriptor, url: str) -> Optional[StreamDescriptor]:
        head = await self.http.head(url)
        api_url = extractors.loadx_api_url(head.url or url)
        if api_url is None:
            return None
        response = await self.http.post(api_url, headers={"X-Requested-With": "XMLHttpRequest"})
        return hoster.pipeline(response.body) if response.ok else None

    async def _run_challenge(self, hoster: HosterDescriptor, url: str) -> Optional[StreamDescriptor]:
        response = await self.http.get(url, headers={"Referer": url})
        if not response.ok:
            return None
        challenge = extractors.parse_doodstream(response.body)
        if challenge is None:
            return None

        page_url = response.url or url
        base = _origin(page_url)
        prefix = await self._fetch_page(f"{base}{challenge.path}", headers={"Referer": page_url})
        if prefix is None:
            return None
        return hoster.pipeline(
            prefix,
            challenge,
            referer=f"{base}/",
            suffix=extractors.random_suffix(10, self.rng),
            timestamp_ms=int(self.clock() * 1000),
        )

    async def extract_stream(self, url: str) -> Optional[StreamDescriptor]:
        """
        Extract a playable stream from a hoster URL.

        Returns:
            StreamDescriptor, or None when the hoster page yields nothing

        Raises:
            PermissionDenied: If a request is refused by the allowlist
            NetworkError: If a request fails in transit
        """
        hoster = match_hoster(url)
        if hoster is None:
            logger.debug(f"No dedicated hoster for {url}, scanning page")
            body = await self._fetch_page(url)
            return extractors.extract_generic(body) if body is not None else None

        runners = {
            FetchMode.PAGE: self._run_page,
            FetchMode.IFRAME: self._run_iframe,
            FetchMode.EMBED: self._run_embed,
            FetchMode.API: self._run_api,
            FetchMode.CHALLENGE: self._run_challenge,
        }
        result = await runners[hoster.fetch](hoster, url)
        if result is None:
            self.surface.log.info(f"{hoster.name}: no stream found at {url}")
        return result

    async def extract_first(self, urls: Iterable[str]) -> Optional[StreamDescriptor]:
        """Try candidate hoster URLs in order until one yields a stream."""
        for url in urls:
            try:
                result = await self.extract_stream(url)
            except AniExtError as e:
                logger.info(f"Candidate {url} failed: {e}")
                continue
            if result is not None:
                return result
        return None

    async def get_hoster_info(self) -> List[dict]:
        return list_hosters()


# Export provider
__all__ = [
    "HosterProvider",
    "hosters_manifest",
    "BUILTIN_HOSTERS_ID",
]

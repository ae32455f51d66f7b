"""
Hoster Registry - Read-only table of supported video hosters.

Each descriptor pairs a URL pattern with the extraction pipeline for
that hoster and the way its page has to be fetched. The table is built
once at import time and never mutated.
"""

import re
from enum import Enum
from typing import Callable, List, NamedTuple, Optional, Pattern, Tuple
from urllib.parse import urlparse

from aniext.core.models import StreamDescriptor
from aniext.hosters import extractors


class FetchMode(str, Enum):
    """How the provider obtains the body a pipeline runs on."""

    PAGE = "page"
    IFRAME = "iframe"
    EMBED = "embed"
    CHALLENGE = "challenge"
    API = "api"


class HosterDescriptor(NamedTuple):
    """A supported hoster and how to extract from it."""

    name: str
    pattern: Pattern
    pipeline: Callable[[str], Optional[StreamDescriptor]]
    fetch: FetchMode = FetchMode.PAGE
    cache_ttl: Optional[float] = None

    def matches(self, url: str) -> bool:
        """True when the URL's host, or a parent domain of it, is this hoster."""
        labels = (urlparse(url or "").hostname or "").split(".")
        return any(self.pattern.fullmatch(".".join(labels[i:])) for i in range(len(labels)))

    def info(self) -> dict:
        return {"name": self.name, "pattern": self.pattern.pattern, "cacheable": self.cache_ttl != 0}


HOSTERS: Tuple[HosterDescriptor, ...] = (
    HosterDescriptor("VOE", re.compile(r'voe\.(sx|bar)|voe-network\.(net|com)', re.I), extractors.extract_voe),
    HosterDescriptor("Vidoza", re.compile(r'vidoza\.(net|org|co)', re.I), extractors.extract_vidoza),
    HosterDescriptor("Vidmoly", re.compile(r'vidmoly\.(to|me|com|net)', re.I), extractors.extract_vidmoly),
    HosterDescriptor("Streamtape", re.compile(r'streamtape\.(com|net|to|xyz)', re.I), extractors.extract_streamtape),
    HosterDescriptor("SpeedFiles", re.compile(r'speedfiles\.(net|com)', re.I), extractors.extract_speedfiles),
    HosterDescriptor("Luluvdo", re.compile(r'luluvdo\.(com|net)', re.I), extractors.extract_luluvdo, FetchMode.EMBED),
    HosterDescriptor("LoadX", re.compile(r'loadx\.(ws|to|net)', re.I), extractors.extract_loadx, FetchMode.API),
    HosterDescriptor("Filemoon", re.compile(r'filemoon\.(sx|to|in|wf)', re.I), extractors.extract_packed, FetchMode.IFRAME),
    # Every execution yields a fresh URL; never cache
    HosterDescriptor(
        "Doodstream",
        re.compile(r'doodstream\.(com|co)|dood\.(re|watch|wf|to|la|pm|sh|li)', re.I),
        extractors.build_doodstream,
        FetchMode.CHALLENGE,
        cache_ttl=0,
    ),
)


def match_hoster(url: str) -> Optional[HosterDescriptor]:
    """Find the descriptor whose pattern matches a hoster URL."""
    for hoster in HOSTERS:
        if hoster.matches(url):
            return hoster
    return None


def cache_ttl_for_url(url: str) -> Optional[float]:
    """TTL override for a hoster URL, or None to use the default."""
    hoster = match_hoster(url)
    return hoster.cache_ttl if hoster else None


def list_hosters() -> List[dict]:
    return [hoster.info() for hoster in HOSTERS]


# Export registry
__all__ = [
    "FetchMode",
    "HosterDescriptor",
    "HOSTERS",
    "match_hoster",
    "cache_ttl_for_url",
    "list_hosters",
]

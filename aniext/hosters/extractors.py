"""
Hoster Extractors - Per-service pipelines that recover playable URLs.

Every extractor takes an already fetched response body and returns a
StreamDescriptor or None. Extractors are total: malformed input, missing
markers and decode failures all end in None so the caller can move on
to the next candidate hoster. Pipelines that need more than one request
are split into pure parse and build steps; the network round-trips live
in ``aniext.hosters.provider``.
"""

import functools
import json
import logging
import random
import re
import string
from typing import Callable, Dict, NamedTuple, Optional
from urllib.parse import urlparse

from aniext.core.exceptions import DecodeError
from aniext.core.models import StreamDescriptor, StreamFormat
from aniext.host.markup import MarkupParser
from aniext.hosters.primitives import (
    b64decode,
    b64encode,
    chars_to_hex,
    hex_to_chars,
    reverse,
    rot13,
    shift_chars,
    strip_tokens,
    swapcase,
    try_unpack,
)


logger = logging.getLogger(__name__)

# Failures a pipeline may hit on hostile input; all mean "not found"
_PIPELINE_FAILURES = (DecodeError, ValueError, KeyError, IndexError, TypeError, AttributeError)

HLS_PATTERNS = (
    re.compile(r"'hls'\s*:\s*'([^']+\.m3u8[^']*)'"),
    re.compile(r'"hls"\s*:\s*"([^"]+\.m3u8[^"]*)"'),
    re.compile(r"""(?:source|file)\s*:\s*['"]([^'"]+\.m3u8[^'"]*)['"]"""),
    re.compile(r"""sources\s*:\s*\[\s*['"]([^'"]+\.m3u8[^'"]*)['"]"""),
    re.compile(r'"sources"\s*:\s*\[\s*\{\s*"file"\s*:\s*"([^"]+\.m3u8[^"]*)"'),
    re.compile(r"""(https?://[^\s'"<>]+\.m3u8[^\s'"<>]*)"""),
)

MP4_PATTERNS = (
    re.compile(r"""['"]mp4['"]\s*:\s*['"]([^'"]+\.mp4[^'"]*)['"]"""),
    re.compile(r"""(?:source|file|src)\s*:\s*['"]([^'"]+\.mp4[^'"]*)['"]"""),
    re.compile(r"""(https?://[^\s'"<>]+\.mp4[^\s'"<>]*)"""),
)

VOE_TOKENS = ('@$', '^^', '~@', '%?', '*~', '!!', '#&')
STREAMTAPE_PATTERN = re.compile(r"""'botlink.*?innerHTML\s*=\s*['"]([^'"]+)['"]\s*\+\s*\(['"]([^'"]+)""", re.DOTALL)
STREAMTAPE_SKIP = 4
SPEEDFILES_PATTERN = re.compile(r'var _0x5opu234\s*=\s*"([^"]+)"')
DOODSTREAM_PATTERN = re.compile(r'/pass_md5/([\w-]+)/([\w-]+)')
VIDOZA_PATTERN = re.compile(r"""sourcesCode:\s*\[.*?\{.*?src:\s*['"]([^'"]+)['"]""", re.DOTALL)
VIDMOLY_PATTERN = re.compile(r'sources:\s*\[\{file:\s*"([^"]+)"\}\]')
FILE_PATTERN = re.compile(r'file:\s*"([^"]+)"')

VIDMOLY_REFERER = "https://vidmoly.to/"


def total(pipeline: Callable[..., Optional[StreamDescriptor]]) -> Callable[..., Optional[StreamDescriptor]]:
    """Turn any pipeline failure into a None result."""

    @functools.wraps(pipeline)
    def wrapper(*args, **kwargs) -> Optional[StreamDescriptor]:
        try:
            return pipeline(*args, **kwargs)
        except _PIPELINE_FAILURES as e:
            logger.debug(f"{pipeline.__name__} gave up: {e}")
            return None

    return wrapper


def detect_format(url: str) -> StreamFormat:
    """Guess a stream format from its URL."""
    lowered = url.lower()
    path = urlparse(lowered).path
    if lowered.startswith("magnet:"):
        return StreamFormat.TORRENT
    if path.endswith(".m3u8") or ".m3u8" in lowered or "/hls/" in lowered:
        return StreamFormat.HLS
    if path.endswith(".mpd") or "/dash/" in lowered:
        return StreamFormat.DASH
    if path.endswith(".mkv"):
        return StreamFormat.MATROSKA
    if path.endswith(".webm"):
        return StreamFormat.WEBM
    return StreamFormat.MP4


def scan_media_url(text: str) -> Optional[str]:
    """Look for a literal HLS playlist URL, then a progressive MP4 URL."""
    for pattern in HLS_PATTERNS + MP4_PATTERNS:
        match = pattern.search(text or "")
        if match:
            return match.group(1)
    return None


def _descriptor(url: str, server: str, headers: Optional[Dict[str, str]] = None, **fields) -> StreamDescriptor:
    url = url.strip()
    if url.startswith("//"):
        url = "https:" + url
    fields.setdefault("format", detect_format(url))
    fields.setdefault("quality", "default")
    return StreamDescriptor(url=url, server=server, headers=headers or {}, **fields)


# -- VOE: rotation + layered encoding ----------------------------------------

def decode_voe_payload(raw: str) -> str:
    """
    Decode the obfuscated JSON block embedded in VOE pages.

    Raises:
        DecodeError: If any stage fails or the result lacks a source
    """
    content = raw.strip()[2:-2]
    stage = rot13(content)
    stage = strip_tokens(stage, VOE_TOKENS)
    stage = b64decode(stage)
    stage = shift_chars(stage, -3)
    stage = reverse(stage)
    stage = b64decode(stage)
    data = json.loads(stage)
    source = data.get("source") if isinstance(data, dict) else None
    if not source:
        raise DecodeError("Decoded VOE payload has no source", stage="json")
    return source


def encode_voe_payload(data: Dict[str, str]) -> str:
    """Inverse of :func:`decode_voe_payload`, without token salting."""
    stage = b64encode(json.dumps(data))
    stage = reverse(stage)
    stage = shift_chars(stage, 3)
    stage = b64encode(stage)
    return '["' + rot13(stage) + '"]'


@total
def extract_voe(body: str) -> Optional[StreamDescriptor]:
    parser = MarkupParser(body)
    for raw in parser.script_texts('script[type="application/json"]'):
        try:
            return _descriptor(decode_voe_payload(raw), "VOE")
        except _PIPELINE_FAILURES as e:
            logger.debug(f"VOE payload did not decode: {e}")

    url = scan_media_url(body)
    return _descriptor(url, "VOE") if url else None


# -- Streamtape: token exchange ----------------------------------------------

@total
def extract_streamtape(body: str) -> Optional[StreamDescriptor]:
    match = STREAMTAPE_PATTERN.search(body)
    if not match:
        return None
    head, tail = match.group(1), match.group(2)[STREAMTAPE_SKIP:]
    return _descriptor(f"https:{head}{tail}", "Streamtape", format=StreamFormat.MP4)


# -- SpeedFiles: ten-stage transform -----------------------------------------

def decode_speedfiles(encoded: str) -> str:
    """Run the SpeedFiles chain; order matters at every stage."""
    stage = b64decode(encoded)
    stage = swapcase(stage)
    stage = reverse(stage)
    stage = b64decode(stage)
    stage = reverse(stage)
    stage = hex_to_chars(stage)
    stage = shift_chars(stage, -3)
    stage = swapcase(stage)
    stage = reverse(stage)
    return b64decode(stage)


def encode_speedfiles(plain: str) -> str:
    """Apply the inverse of every SpeedFiles stage in reverse order."""
    stage = b64encode(plain)
    stage = reverse(stage)
    stage = swapcase(stage)
    stage = shift_chars(stage, 3)
    stage = chars_to_hex(stage)
    stage = reverse(stage)
    stage = b64encode(stage)
    stage = reverse(stage)
    stage = swapcase(stage)
    return b64encode(stage)


@total
def extract_speedfiles(body: str) -> Optional[StreamDescriptor]:
    match = SPEEDFILES_PATTERN.search(body)
    if not match:
        return None
    return _descriptor(decode_speedfiles(match.group(1)), "SpeedFiles")


# -- Doodstream: two-request challenge ---------------------------------------

class DoodChallenge(NamedTuple):
    """The pass_md5 path and token found on a Doodstream page."""

    path: str
    token: str


def parse_doodstream(body: str) -> Optional[DoodChallenge]:
    match = DOODSTREAM_PATTERN.search(body or "")
    if not match:
        return None
    return DoodChallenge(path=match.group(0), token=match.group(2))


def random_suffix(length: int = 10, rng: Optional[random.Random] = None) -> str:
    alphabet = string.ascii_letters + string.digits
    rng = rng or random.SystemRandom()
    return "".join(rng.choice(alphabet) for _ in range(length))


@total
def build_doodstream(
    prefix: str,
    challenge: DoodChallenge,
    referer: str,
    suffix: str,
    timestamp_ms: int,
) -> Optional[StreamDescriptor]:
    """
    Assemble the final Doodstream URL from the pass_md5 response.

    Each call yields a different but valid URL, so results should not be
    cached.
    """
    prefix = prefix.strip()
    if not prefix:
        return None
    url = f"{prefix}{suffix}?token={challenge.token}&expiry={timestamp_ms}"
    return _descriptor(url, "Doodstream", headers={"Referer": referer}, format=StreamFormat.MP4)


# -- Filemoon: packed script -------------------------------------------------

FILEMOON_DIRECT = (
    re.compile(r'file:\s*"([^"]+\.m3u8[^"]*)"'),
    re.compile(r'source:\s*"([^"]+\.m3u8[^"]*)"'),
    re.compile(r'"sources":\s*\[\s*\{\s*"file":\s*"([^"]+\.m3u8[^"]*)"'),
    re.compile(r'sources\s*=\s*\[\s*\{\s*file:\s*"([^"]+\.m3u8[^"]*)"'),
)


@total
def extract_packed(body: str, server: str = "Filemoon") -> Optional[StreamDescriptor]:
    """Try direct playlist patterns, then unpack a packed script and scan it."""
    for pattern in FILEMOON_DIRECT:
        match = pattern.search(body)
        if match:
            return _descriptor(match.group(1), server, quality="auto")

    unpacked = try_unpack(body)
    if unpacked is None:
        return None
    url = scan_media_url(unpacked)
    return _descriptor(url, server, quality="auto") if url else None


# -- Simple pattern hosters --------------------------------------------------

@total
def extract_vidoza(body: str) -> Optional[StreamDescriptor]:
    match = VIDOZA_PATTERN.search(body)
    return _descriptor(match.group(1), "Vidoza") if match else None


@total
def extract_vidmoly(body: str) -> Optional[StreamDescriptor]:
    match = VIDMOLY_PATTERN.search(body)
    if not match:
        return None
    return _descriptor(match.group(1), "Vidmoly", headers={"Referer": VIDMOLY_REFERER})


def luluvdo_embed_url(url: str) -> Optional[str]:
    """Rewrite a Luluvdo page URL to its embed endpoint."""
    parts = [p for p in urlparse(url).path.split("/") if p]
    if not parts:
        return None
    return f"https://luluvdo.com/dl?op=embed&file_code={parts[-1]}"


@total
def extract_luluvdo(body: str) -> Optional[StreamDescriptor]:
    match = FILE_PATTERN.search(body)
    return _descriptor(match.group(1), "Luluvdo") if match else None


def loadx_api_url(final_url: str) -> Optional[str]:
    """Build the LoadX player API URL from the page URL after redirects."""
    parsed = urlparse(final_url)
    parts = [p for p in parsed.path.split("/") if p]
    if not parsed.netloc or not parts:
        return None
    id_hash = parts[1] if len(parts) > 1 else parts[0]
    return f"https://{parsed.netloc}/player/index.php?data={id_hash}&do=getVideo"


@total
def extract_loadx(body: str) -> Optional[StreamDescriptor]:
    data = json.loads(body)
    source = data.get("videoSource") if isinstance(data, dict) else None
    return _descriptor(source, "LoadX") if source else None


@total
def extract_generic(body: str, server: str = "Direct") -> Optional[StreamDescriptor]:
    """Literal URL scan, used when no dedicated pipeline applies."""
    url = scan_media_url(body)
    return _descriptor(url, server) if url else None


# Export extractors
__all__ = [
    "detect_format",
    "scan_media_url",
    "decode_voe_payload",
    "encode_voe_payload",
    "extract_voe",
    "extract_streamtape",
    "decode_speedfiles",
    "encode_speedfiles",
    "extract_speedfiles",
    "DoodChallenge",
    "parse_doodstream",
    "random_suffix",
    "build_doodstream",
    "extract_packed",
    "extract_vidoza",
    "extract_vidmoly",
    "luluvdo_embed_url",
    "extract_luluvdo",
    "loadx_api_url",
    "extract_loadx",
    "extract_generic",
]

"""
Extension HTTP Context - Rate-limited, allowlisted HTTP for extensions.

Each loaded extension receives its own HttpContext. Every outbound hop,
including redirects, is checked against the extension's domain
allowlist before any network I/O happens, and a per-instance clock
spaces requests by the configured minimum interval. Transport failures
surface as NetworkError; retry policy belongs to the caller.
"""

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import urljoin, urlparse

import aiohttp
from pydantic import BaseModel, Field

from aniext.core.exceptions import NetworkError, PermissionDenied
from aniext.host.allowlist import DomainAllowlist


logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "AniExt/1.0.0"
REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})
MAX_REDIRECTS = 10


class HttpResponse(BaseModel):
    """Response handed back to extensions."""

    status: int
    headers: Dict[str, str] = Field(default_factory=dict)
    body: str = ""
    ok: bool = False
    url: str = ""

    def json(self) -> Any:
        return json.loads(self.body)


class HttpContext:
    """
    Per-extension HTTP client.

    The minimum interval between requests is enforced first-come,
    first-released: concurrent callers queue on one lock and each is
    delayed just long enough to respect the interval.
    """

    def __init__(
        self,
        extension_id: str,
        allowlist: Optional[DomainAllowlist] = None,
        min_interval: float = 0.0,
        timeout: float = 30,
        user_agent: str = DEFAULT_USER_AGENT,
        permitted: bool = True,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the HTTP context.

        Args:
            extension_id: Owning extension, used in errors and logs
            allowlist: Domain gate; unrestricted when omitted
            min_interval: Seconds between requests, 0 for unthrottled
            timeout: Total request timeout in seconds
            user_agent: Default User-Agent header
            permitted: Whether the extension holds the network permission
            session: Pre-built session; one is created lazily otherwise
            clock: Monotonic clock used by the rate limiter
            sleep: Coroutine used to wait out the interval
        """
        self.extension_id = extension_id
        self.allowlist = allowlist or DomainAllowlist()
        self.min_interval = max(0.0, float(min_interval))
        self.timeout = timeout
        self.user_agent = user_agent
        self.permitted = permitted

        self._session = session
        self._owns_session = session is None
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_request: Optional[float] = None

        self.request_count = 0
        self.error_count = 0
        self.refused_count = 0

        self.logger = logging.getLogger(f"{__name__}.{extension_id}")

    @property
    def session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session with proper configuration."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(limit=10, limit_per_host=5, ttl_dns_cache=300)
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={
                    'User-Agent': self.user_agent,
                    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
                    'Accept-Language': 'en-US,en;q=0.5',
                },
            )
            self._owns_session = True
        return self._session

    def _guard(self, url: str) -> None:
        if not self.permitted:
            self.refused_count += 1
            raise PermissionDenied(
                "Extension lacks the 'network:http' permission",
                extension_id=self.extension_id,
                target=url,
            )
        if urlparse(url).scheme not in ("http", "https"):
            self.refused_count += 1
            raise PermissionDenied(
                f"Only http and https URLs may be requested: {url}",
                extension_id=self.extension_id,
                target=url,
            )
        try:
            self.allowlist.check(url, self.extension_id)
        except PermissionDenied:
            self.refused_count += 1
            self.logger.warning(f"Refused request outside allowlist: {url}")
            raise

    async def _rate_limit(self) -> None:
        """Enforce the minimum interval between requests."""
        if self.min_interval <= 0:
            return
        async with self._lock:
            if self._last_request is not None:
                wait = self._last_request + self.min_interval - self._clock()
                if wait > 0:
                    await self._sleep(wait)
            self._last_request = self._clock()

    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        data: Any = None,
        json: Any = None,
        params: Optional[Dict[str, str]] = None,
        follow_redirects: bool = True,
    ) -> HttpResponse:
        """
        Issue a request on behalf of the extension.

        Args:
            method: HTTP method
            url: Absolute target URL
            headers: Extra request headers
            data: Form or raw body
            json: JSON body
            params: Query parameters
            follow_redirects: Follow 3xx responses (each hop is re-checked)

        Returns:
            HttpResponse; non-2xx statuses are returned with ``ok=False``

        Raises:
            PermissionDenied: If the target (or a redirect hop) is refused
            NetworkError: If the transport fails or times out
        """
        method = method.upper()
        current = url

        for _hop in range(MAX_REDIRECTS + 1):
            self._guard(current)
            await self._rate_limit()
            self.request_count += 1
            self.logger.debug(f"{method} {current}")

            try:
                async with self.session.request(
                    method,
                    current,
                    headers=headers,
                    data=data,
                    json=json,
                    params=params,
                    allow_redirects=False,
                ) as response:
                    location = response.headers.get("Location")
                    if follow_redirects and response.status in REDIRECT_STATUSES and location:
                        current = urljoin(current, location)
                        if response.status == 303 or (response.status in (301, 302) and method == "POST"):
                            method, data, json = "GET", None, None
                        params = None
                        continue

                    body = "" if method == "HEAD" else await response.text(errors="replace")
                    return HttpResponse(
                        status=response.status,
                        headers={k: v for k, v in response.headers.items()},
                        body=body,
                        ok=200 <= response.status < 300,
                        url=str(response.url),
                    )
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                self.error_count += 1
                raise NetworkError(
                    f"Request to {current} failed: {e or type(e).__name__}",
                    url=current,
                    details=str(e),
                )

        self.error_count += 1
        raise NetworkError(f"Too many redirects starting at {url}", url=url)

    async def get(self, url: str, headers: Optional[Dict[str, str]] = None, **kwargs) -> HttpResponse:
        return await self.request("GET", url, headers=headers, **kwargs)

    async def post(self, url: str, data: Any = None, headers: Optional[Dict[str, str]] = None, **kwargs) -> HttpResponse:
        return await self.request("POST", url, headers=headers, data=data, **kwargs)

    async def head(self, url: str, headers: Optional[Dict[str, str]] = None, **kwargs) -> HttpResponse:
        return await self.request("HEAD", url, headers=headers, **kwargs)

    def stats(self) -> Dict[str, Any]:
        return {
            "requests": self.request_count,
            "errors": self.error_count,
            "refused": self.refused_count,
            "min_interval": self.min_interval,
            "allowed_domains": self.allowlist.describe(),
        }

    async def close(self) -> None:
        """Close the underlying session if this context created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None


# Export HTTP components
__all__ = [
    "HttpResponse",
    "HttpContext",
    "DEFAULT_USER_AGENT",
]

"""
Host Capability Surface - Everything an extension instance may touch.

A surface is built fresh for every loaded instance and owned by it. It
bundles the instance's HTTP context, markup toolkit, storage namespace
and logger together with a read-only view of the host version.
"""

import logging
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

import aiohttp

from aniext.core.manifest import Manifest
from aniext.host.allowlist import DomainAllowlist
from aniext.host.http import DEFAULT_USER_AGENT, HttpContext
from aniext.host.log_sink import ExtensionLogger
from aniext.host.markup import HtmlToolkit
from aniext.host.storage import DEFAULT_QUOTA_BYTES, ExtensionStorage, StorageBackend


logger = logging.getLogger(__name__)


class CapabilitySurface:
    """Per-instance host objects injected into an extension."""

    def __init__(
        self,
        manifest: Manifest,
        host_version: str,
        http: HttpContext,
        storage: ExtensionStorage,
        html: Optional[HtmlToolkit] = None,
        log: Optional[ExtensionLogger] = None,
    ):
        self._manifest = manifest
        self._host_version = host_version
        self.http = http
        self.storage = storage
        self.html = html or HtmlToolkit()
        self.log = log or ExtensionLogger(manifest.id)

    @property
    def extension_id(self) -> str:
        return self._manifest.id

    @property
    def host_version(self) -> str:
        return self._host_version

    @property
    def context(self) -> Mapping[str, Any]:
        """Read-only facts about the host and the extension itself."""
        return MappingProxyType({
            "extension_id": self._manifest.id,
            "extension_version": self._manifest.version,
            "kind": self._manifest.kind.value,
            "host_version": self._host_version,
            "permissions": tuple(self._manifest.permissions),
        })

    def bindings(self) -> Dict[str, Any]:
        """Names exposed to sandboxed scripts."""
        return {
            "http": self.http,
            "html": self.html,
            "storage": self.storage,
            "log": self.log,
            "context": self.context,
        }

    async def close(self) -> None:
        await self.http.close()


def build_surface(
    manifest: Manifest,
    host_version: str,
    storage_backend: Optional[StorageBackend] = None,
    default_rate_limit_ms: int = 0,
    timeout: float = 30,
    user_agent: str = DEFAULT_USER_AGENT,
    quota_bytes: int = DEFAULT_QUOTA_BYTES,
    session: Optional[aiohttp.ClientSession] = None,
) -> CapabilitySurface:
    """
    Wire a fresh surface for one extension instance.

    The manifest's ``rateLimitMs`` overrides the configured default.
    """
    rate_limit_ms = manifest.rate_limit_ms if manifest.rate_limit_ms is not None else default_rate_limit_ms
    http = HttpContext(
        extension_id=manifest.id,
        allowlist=DomainAllowlist.from_manifest(manifest),
        min_interval=rate_limit_ms / 1000.0,
        timeout=timeout,
        user_agent=user_agent,
        # In-process built-ins are trusted host code
        permitted=manifest.has_permission("network:http") or manifest.locator.builtin is not None,
        session=session,
    )
    storage = ExtensionStorage(manifest.id, storage_backend, quota_bytes)
    logger.debug(f"Built capability surface for {manifest.id} (rate limit {rate_limit_ms}ms)")
    return CapabilitySurface(manifest, host_version, http, storage)


# Export surface components
__all__ = [
    "CapabilitySurface",
    "build_surface",
]

"""
Domain Allowlist - Outbound request gate for extension HTTP calls.

An extension without a security block may contact any host. Once a
manifest declares a security block its ``allowedDomains`` list becomes
authoritative: targets must match an entry exactly or through a
``*.domain`` wildcard, and an empty list refuses everything.
"""

from typing import Iterable, List, Optional
from urllib.parse import urlparse

from aniext.core.exceptions import PermissionDenied
from aniext.core.manifest import Manifest


class DomainAllowlist:
    """Decides whether a URL's host may be contacted."""

    def __init__(self, domains: Optional[Iterable[str]] = None, enforce: bool = False):
        """
        Initialize the allowlist.

        Args:
            domains: Exact hosts or ``*.suffix`` wildcards
            enforce: Whether the list restricts traffic at all
        """
        self.domains: List[str] = [d.strip().lower() for d in (domains or []) if d and d.strip()]
        self.enforce = enforce

    @classmethod
    def from_manifest(cls, manifest: Manifest) -> "DomainAllowlist":
        if manifest.security is None:
            return cls()
        return cls(manifest.security.allowed_domains, enforce=True)

    @staticmethod
    def _matches(host: str, pattern: str) -> bool:
        if pattern.startswith("*."):
            base = pattern[2:]
            return host == base or host.endswith("." + base)
        return host == pattern

    def is_allowed(self, url: str) -> bool:
        """Check a URL's hostname against the list."""
        if not self.enforce:
            return True
        host = (urlparse(url).hostname or "").lower().rstrip(".")
        if not host:
            return False
        return any(self._matches(host, pattern) for pattern in self.domains)

    def check(self, url: str, extension_id: Optional[str] = None) -> None:
        """
        Refuse a URL outside the list.

        Raises:
            PermissionDenied: If the host is not allowed
        """
        if not self.is_allowed(url):
            host = urlparse(url).hostname or url
            raise PermissionDenied(
                f"Domain not allowed: {host}",
                extension_id=extension_id,
                target=url,
            )

    def describe(self) -> Optional[List[str]]:
        """Allowed patterns, or None when traffic is unrestricted."""
        return list(self.domains) if self.enforce else None


# Export allowlist
__all__ = ["DomainAllowlist"]

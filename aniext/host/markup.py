"""
Markup Extraction - HTML parsing helpers exposed to extensions.

Extensions never import a parser themselves; they receive an
``HtmlToolkit`` on their capability surface and use it to turn response
bodies into ``MarkupParser`` documents queried with CSS selectors.
"""

import json
import logging
from typing import Any, List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup


logger = logging.getLogger(__name__)

_URL_ATTRS = ('href', 'src', 'data-src')


class MarkupParser:
    """CSS-selector queries over one HTML document."""

    def __init__(self, html_content: str, base_url: str = ""):
        """
        Initialize HTML parser.

        Args:
            html_content: HTML content to parse
            base_url: Base URL for resolving relative links
        """
        self.soup = BeautifulSoup(html_content or "", 'html.parser')
        self.base_url = base_url

    def _attr_value(self, element, attr: str) -> Optional[str]:
        if not element.has_attr(attr):
            return None
        value = element[attr]
        # BeautifulSoup returns multi-valued attributes as lists
        if isinstance(value, list):
            value = value[0] if value else ""
        if attr in _URL_ATTRS and self.base_url and isinstance(value, str):
            return urljoin(self.base_url, value)
        return value

    def select_text(self, selector: str, default: str = "") -> str:
        """
        Find text content using CSS selector.

        Args:
            selector: CSS selector string
            default: Default value if element not found

        Returns:
            Text content or default value
        """
        element = self.soup.select_one(selector)
        if element:
            return element.get_text(strip=True)
        return default

    def select_attr(self, selector: str, attr: str, default: str = "") -> str:
        """
        Find attribute value using CSS selector.

        Relative ``href``/``src`` values are resolved against the base URL.
        """
        element = self.soup.select_one(selector)
        if element is not None:
            value = self._attr_value(element, attr)
            if value is not None:
                return value
        return default

    def select_all_text(self, selector: str) -> List[str]:
        """Find all text content matching a CSS selector."""
        return [elem.get_text(strip=True) for elem in self.soup.select(selector)]

    def select_all_attrs(self, selector: str, attr: str) -> List[str]:
        """Find all attribute values matching a CSS selector."""
        values = []
        for elem in self.soup.select(selector):
            value = self._attr_value(elem, attr)
            if value is not None:
                values.append(value)
        return values

    def script_texts(self, selector: str = "script") -> List[str]:
        """Raw bodies of matching script tags, skipping empty ones."""
        return [s.string for s in self.soup.select(selector) if s.string]

    def json_scripts(self) -> List[Any]:
        """Decode every ``application/json`` script block that parses."""
        decoded = []
        for text in self.script_texts('script[type="application/json"]'):
            try:
                decoded.append(json.loads(text))
            except json.JSONDecodeError:
                logger.debug("Skipping non-JSON application/json script block")
        return decoded

    def iframe_sources(self) -> List[str]:
        """Absolute ``src`` URLs of every iframe in the document."""
        return [src for src in self.select_all_attrs("iframe[src]", "src") if src]


class HtmlToolkit:
    """The ``html`` object handed to extensions."""

    def parse(self, html_content: str, base_url: str = "") -> MarkupParser:
        return MarkupParser(html_content, base_url)

    def select_text(self, html_content: str, selector: str, default: str = "") -> str:
        return MarkupParser(html_content).select_text(selector, default)

    def select_all_attrs(self, html_content: str, selector: str, attr: str, base_url: str = "") -> List[str]:
        return MarkupParser(html_content, base_url).select_all_attrs(selector, attr)

    @staticmethod
    def make_absolute(url: str, base_url: str) -> str:
        """Convert relative URL to absolute."""
        if urlparse(url).netloc:
            return url
        if url.startswith("//"):
            return f"{urlparse(base_url).scheme or 'https'}:{url}"
        return urljoin(base_url, url)

    @staticmethod
    def extract_domain(url: str) -> str:
        return (urlparse(url).hostname or "").lower()


# Export markup helpers
__all__ = [
    "MarkupParser",
    "HtmlToolkit",
]

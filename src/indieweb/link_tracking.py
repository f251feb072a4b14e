"""
Outbound link extraction for webmention sending.

Every external http(s) link in a rendered document is a candidate
webmention target. Links are reported once each, in the order they first
appear, with fragments removed.

References:
    - W3C Webmention: https://www.w3.org/TR/webmention/ (Section 3.1: Sending)
"""

import logging
from html.parser import HTMLParser
from typing import List, Optional
from urllib.parse import urlparse, urlunparse

logger = logging.getLogger(__name__)

# Maximum HTML size to parse for link extraction (5 MB).
MAX_HTML_PARSE_BYTES = 5_242_880


def origin_of(url: str) -> str:
    """Return scheme://host[:port] of a URL."""
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def outbound_target(href: str, source_origin: str) -> Optional[str]:
    """Normalize ``href`` into a webmention target, or None if it is not one.

    Relative, fragment-only and non-http(s) links are skipped, as are links
    back to ``source_origin`` (compared case-insensitively).
    """
    href = (href or "").strip()
    if not href or href.startswith("#"):
        return None

    try:
        parsed = urlparse(href)
    except ValueError:
        return None

    if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
        return None
    if origin_of(href).lower() == source_origin.lower().rstrip("/"):
        return None

    return urlunparse(parsed._replace(fragment=""))


class OutboundLinkParser(HTMLParser):
    """Collects the distinct outbound targets of <a href> elements."""

    def __init__(self, source_origin: str):
        super().__init__()
        self.source_origin = source_origin
        self.targets: List[str] = []
        self._seen = set()

    def handle_starttag(self, tag: str, attrs: list) -> None:
        if tag != "a":
            return
        target = outbound_target(dict(attrs).get("href"), self.source_origin)
        if target and target not in self._seen:
            self._seen.add(target)
            self.targets.append(target)


def extract_outbound_links(html_content: str, source_origin: str) -> List[str]:
    """Extract unique external HTTP(S) links from HTML content.

    Args:
        html_content: The rendered HTML of the document.
        source_origin: The origin (scheme://host) of the document itself,
                       used to filter out self-links.

    Returns:
        Unique absolute external URLs, in the order they first appear.
    """
    if not html_content:
        return []

    if len(html_content) > MAX_HTML_PARSE_BYTES:
        logger.warning(
            f"HTML content too large for link extraction ({len(html_content)} bytes), "
            f"truncating to {MAX_HTML_PARSE_BYTES} bytes"
        )
        html_content = html_content[:MAX_HTML_PARSE_BYTES]

    parser = OutboundLinkParser(source_origin)
    parser.feed(html_content)
    parser.close()
    return parser.targets

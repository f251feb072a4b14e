"""
Webmention sending with endpoint discovery.

Used by outbound delivery to notify every page a newly published or
edited document links to:

    POST {webmention-endpoint}
    Content-Type: application/x-www-form-urlencoded

    source={document-url}&target={linked-url}

Discovery order follows the W3C recommendation: the HTTP Link header
first, then the first <link> or <a> element with rel="webmention" in
document order. Relative endpoints resolve against the final URL after
redirects.

Usage:
    >>> from indieweb.webmention import send_webmention
    >>> result = send_webmention("https://blog.example.com/post/", "https://other.example.org/article")
    >>> result.success, result.transmitted

References:
    - W3C Webmention: https://www.w3.org/TR/webmention/
"""

import ipaddress
import logging
import socket
from dataclasses import dataclass
from html.parser import HTMLParser
from typing import Optional
from urllib.parse import urljoin, urlparse

import requests
from requests.utils import parse_header_links


logger = logging.getLogger(__name__)

WEBMENTION_USER_AGENT = "Webmention (blogwatch)"
MAX_DISCOVERY_RESPONSE_BYTES = 1_048_576  # 1 MB
MAX_REDIRECTS = 20
DEFAULT_TIMEOUT = 10.0


@dataclass
class WebmentionResult:
    """Result of a webmention send attempt.

    Attributes:
        success: Whether the endpoint acknowledged the webmention (2xx)
        status_code: HTTP status code from the response (0 when nothing was sent)
        message: Human-readable status message
        transmitted: Whether the request reached the endpoint and got a response
        location: Optional status URL returned by some endpoints
        endpoint: Optional webmention endpoint URL used for this send
    """
    success: bool
    status_code: int
    message: str
    transmitted: bool = False
    location: Optional[str] = None
    endpoint: Optional[str] = None

    @classmethod
    def failure(cls, message: str, endpoint: Optional[str] = None) -> "WebmentionResult":
        """A send that never got a response from an endpoint."""
        return cls(success=False, status_code=0, message=message, endpoint=endpoint)


def _is_private_or_loopback(url: str) -> bool:
    """Check if a URL resolves to a private, loopback, reserved or link-local address.

    Unresolvable hosts count as private, so they are never contacted.
    """
    hostname = urlparse(url).hostname
    if not hostname:
        return True

    try:
        infos = socket.getaddrinfo(hostname, None, socket.AF_UNSPEC, socket.SOCK_STREAM)
        addresses = [ipaddress.ip_address(sockaddr[0]) for *_, sockaddr in infos]
    except (socket.gaierror, ValueError, OSError) as e:
        logger.warning(f"DNS resolution failed for URL {url}: {e}")
        return True

    for addr in addresses:
        if addr.is_private or addr.is_loopback or addr.is_reserved or addr.is_link_local:
            logger.warning(f"Blocked request to private/loopback address: url={url}, resolved={addr}")
            return True
    return False


def _is_http_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _build_session() -> requests.Session:
    """Session with a Webmention User-Agent and the recommended redirect limit."""
    session = requests.Session()
    session.headers["User-Agent"] = WEBMENTION_USER_AGENT
    session.max_redirects = MAX_REDIRECTS
    return session


def _has_webmention_rel(rel: Optional[str]) -> bool:
    return "webmention" in (rel or "").lower().split()


def _endpoint_from_link_header(link_header: str) -> Optional[str]:
    for link in parse_header_links(link_header):
        if _has_webmention_rel(link.get("rel")):
            return link.get("url", "")
    return None


class EndpointParser(HTMLParser):
    """Finds the href of the first <link> or <a> with rel="webmention"."""

    def __init__(self):
        super().__init__()
        self.endpoint: Optional[str] = None

    def handle_starttag(self, tag: str, attrs: list) -> None:
        if self.endpoint is not None or tag not in ("link", "a"):
            return
        attrs_dict = dict(attrs)
        if "href" in attrs_dict and _has_webmention_rel(attrs_dict.get("rel")):
            # An empty href means the page is its own endpoint
            self.endpoint = attrs_dict["href"] or ""

    handle_startendtag = handle_starttag


def _read_bounded_response(response: requests.Response, limit: int) -> bytes:
    """Read a streamed response body, stopping after ``limit`` bytes."""
    chunks = []
    bytes_read = 0
    try:
        for chunk in response.iter_content(chunk_size=8192, decode_unicode=False):
            chunks.append(chunk)
            bytes_read += len(chunk)
            if bytes_read > limit:
                logger.warning(f"Response too large ({bytes_read}+ bytes): {response.url}")
                break
    finally:
        response.close()
    return b"".join(chunks)


def _decode(body: bytes, encoding: Optional[str]) -> str:
    try:
        return body.decode(encoding or "utf-8", errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


def discover_webmention_endpoint(
    target_url: str,
    timeout: float = DEFAULT_TIMEOUT,
    allow_private: bool = False,
) -> Optional[str]:
    """Discover the webmention endpoint for a target URL.

    Args:
        target_url: The URL to discover the webmention endpoint for.
        timeout: Request timeout in seconds.
        allow_private: Skip the private/loopback address check.

    Returns:
        The absolute webmention endpoint URL, or None if not found.
    """
    if not allow_private and _is_private_or_loopback(target_url):
        logger.warning(f"Blocked discovery for private/loopback URL: {target_url}")
        return None

    session = _build_session()
    try:
        response = session.get(
            target_url,
            headers={"Accept": "text/html"},
            timeout=timeout,
            allow_redirects=True,
            stream=True,
        )
        response.raise_for_status()
    except requests.exceptions.TooManyRedirects:
        logger.error(f"Too many redirects during webmention discovery: {target_url}")
        return None
    except requests.exceptions.RequestException as e:
        logger.error(f"Failed to fetch target for webmention discovery: {target_url}, error={e}")
        return None

    base_url = response.url or target_url

    endpoint = _endpoint_from_link_header(response.headers.get("Link", ""))
    if endpoint is not None:
        response.close()
        return urljoin(base_url, endpoint)

    body = _read_bounded_response(response, MAX_DISCOVERY_RESPONSE_BYTES)
    parser = EndpointParser()
    parser.feed(_decode(body, response.encoding))
    parser.close()

    if parser.endpoint is None:
        logger.info(f"No webmention endpoint found for: {target_url}")
        return None
    return urljoin(base_url, parser.endpoint)


def _parse_error_response(response: requests.Response) -> str:
    """Best short description of a rejected webmention."""
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and "error" in data:
        return data.get("error_description", data["error"])

    text = (response.text or "").strip()
    if text and len(text) < 200:
        return f"HTTP {response.status_code}: {text}"
    return f"HTTP {response.status_code}: {response.reason}"


def send_webmention(
    source_url: str,
    target_url: str,
    timeout: float = DEFAULT_TIMEOUT,
    allow_private: bool = False,
) -> WebmentionResult:
    """Send a webmention from source to target with automatic endpoint discovery.

    Args:
        source_url: The URL of the page that mentions the target.
        target_url: The URL being mentioned.
        timeout: Request timeout in seconds, applied to discovery and sending.
        allow_private: Skip the private/loopback address checks.

    Returns:
        WebmentionResult. ``transmitted`` is True whenever the endpoint
        answered; ``success`` only when it answered with a 2xx status.
    """
    if not _is_http_url(target_url):
        return WebmentionResult.failure(f"Malformed target URL: {target_url}")

    endpoint = discover_webmention_endpoint(target_url, timeout=timeout, allow_private=allow_private)
    if not endpoint:
        return WebmentionResult.failure(f"No webmention endpoint found for {target_url}")

    if not allow_private and _is_private_or_loopback(endpoint):
        return WebmentionResult.failure(
            f"Endpoint resolves to a private or loopback address: {endpoint}", endpoint
        )

    logger.info(f"Sending webmention: source={source_url}, target={target_url}, endpoint={endpoint}")

    try:
        response = _build_session().post(
            endpoint,
            data={"source": source_url, "target": target_url},
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=timeout,
        )
    except requests.exceptions.TooManyRedirects:
        logger.error(f"Too many redirects sending webmention: endpoint={endpoint}")
        return WebmentionResult.failure("Too many redirects", endpoint)
    except requests.exceptions.Timeout:
        logger.error(f"Webmention request timed out: endpoint={endpoint}")
        return WebmentionResult.failure("Request timed out", endpoint)
    except requests.exceptions.RequestException as e:
        logger.error(f"Webmention request failed: endpoint={endpoint}, error={e}")
        return WebmentionResult.failure(f"Request failed: {e}", endpoint)

    if response.ok:
        location = response.headers.get("Location")
        logger.info(
            f"Webmention accepted: target={target_url}, "
            f"status_code={response.status_code}, location={location}"
        )
        return WebmentionResult(
            success=True,
            status_code=response.status_code,
            message="Webmention accepted",
            transmitted=True,
            location=location,
            endpoint=endpoint,
        )

    message = _parse_error_response(response)
    logger.warning(
        f"Webmention rejected: target={target_url}, "
        f"status_code={response.status_code}, error={message}"
    )
    return WebmentionResult(
        success=False,
        status_code=response.status_code,
        message=message,
        transmitted=True,
        endpoint=endpoint,
    )

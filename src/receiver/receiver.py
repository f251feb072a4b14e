"""
Webmention Receiver Endpoint.

Accepts W3C webmentions for documents published by this site and queues
them for later verification. The receiver answers immediately; it never
fetches the source page itself.

Receiving flow:
    1. POST / with source and target (form body or query string)
    2. Reject malformed requests with 400 "Malformed webmention request"
    3. Resolve target in the PublishedDocumentIndex, rebuilding it first if
       the watch loop invalidated it; unknown targets get
       400 "Unrecognized target URL"
    4. Answer 202 with a short confirmation
    5. After the response has been sent, append a Notification to the
       NotificationQueue

An append failure in step 5 is only logged: the sender already has its 202.

Usage:
    >>> app = create_app(config, index, queue)
    >>> # Serve with gunicorn (see blogwatch.supervisor) or the test client
"""

import html
import logging
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlparse

from flask import Flask, Response, jsonify, request
from flask_cors import CORS

from publish.documents import PublishedDocumentIndex
from receiver.notification_queue import Notification, NotificationQueue

logger = logging.getLogger(__name__)

MAX_URL_LENGTH = 2048

MALFORMED_MESSAGE = "Malformed webmention request"
UNRECOGNIZED_MESSAGE = "Unrecognized target URL"


def _is_valid_url(url: str) -> bool:
    """Check if a string is a valid HTTP(S) URL.

    Args:
        url: The URL string to validate

    Returns:
        True if valid HTTP or HTTPS URL, False otherwise
    """
    if not url or len(url) > MAX_URL_LENGTH:
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def parse_webmention_request(values) -> Optional[Tuple[str, str]]:
    """Extract (source, target) from request values, or None if malformed."""
    source = (values.get("source") or "").strip()
    target = (values.get("target") or "").strip()

    if not _is_valid_url(source) or not _is_valid_url(target):
        return None
    if source.rstrip("/") == target.rstrip("/"):
        return None
    return source, target


def _plain_text(body: str, status: int) -> Response:
    return Response(body, status=status, mimetype="text/plain")


def accepted_body(source: str, target: str, site_url: str, site_title: str) -> str:
    """Human-readable 202 body with links back to the target and the site."""
    site_root = f"{site_url.rstrip('/')}/"
    return (
        f"Webmention from {html.escape(source)} queued for verification.\n"
        f'Return to <a href="{html.escape(target)}">{html.escape(target)}</a>\n'
        f'<a href="{html.escape(site_root)}">{html.escape(site_title or site_root)}</a>\n'
    )


def create_app(
    config: Dict[str, Any],
    index: PublishedDocumentIndex,
    queue: NotificationQueue,
) -> Flask:
    """Factory function to create the webmention receiver application.

    The index and queue are injected so the same app can be served by
    gunicorn in the receiver process or driven by Flask's test client.

    Args:
        config: Application configuration dictionary
        index: Published documents that may be webmention targets
        queue: Queue that accepted webmentions are appended to

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)

    site_config = config.get("site", {})
    site_url = site_config.get("url", "").rstrip("/")
    site_title = site_config.get("title", "")

    receiver_config = config.get("webmention_receiver", {})
    endpoint_url = receiver_config.get("endpoint_url") or "/"

    cors_config = config.get("cors", {})
    if cors_config.get("enabled", False):
        cors_origins = cors_config.get("origins", [])
        if cors_origins:
            CORS(app, origins=cors_origins)
            logger.info(f"CORS enabled for origins: {cors_origins}")
        else:
            logger.warning("CORS enabled but no origins configured")

    app.config["DOCUMENT_INDEX"] = index
    app.config["NOTIFICATION_QUEUE"] = queue

    def enqueue(notification: Notification) -> None:
        try:
            queue.append(notification)
        except Exception as e:
            logger.error(
                f"Failed to queue webmention: source={notification.source}, "
                f"target={notification.target}, error={e}",
                exc_info=True,
            )

    # Endpoint discovery (W3C Webmention section 3.1.2)
    @app.after_request
    def add_webmention_link_header(response):
        response.headers.setdefault("Link", f'<{endpoint_url}>; rel="webmention"')
        return response

    @app.route("/", methods=["POST"])
    def receive_webmention():
        """W3C Webmention receiving endpoint.

        Returns:
            - 202 Accepted: queued for verification
            - 400 Bad Request: malformed request or unknown target
            - 500 Internal Server Error: unexpected failure
        """
        try:
            parsed = parse_webmention_request(request.values)
            if parsed is None:
                logger.info("Rejected malformed webmention request")
                return _plain_text(MALFORMED_MESSAGE, 400)
            source, target = parsed

            if index.resolve(target) is None:
                logger.info(f"Rejected webmention for unknown target: {target}")
                return _plain_text(UNRECOGNIZED_MESSAGE, 400)

            logger.info(f"Accepted webmention: source={source}, target={target}")
            notification = Notification(source=source, target=target)
            response = _plain_text(accepted_body(source, target, site_url, site_title), 202)
            response.call_on_close(lambda: enqueue(notification))
            return response

        except Exception as e:
            logger.error(f"Unexpected error receiving webmention: {e}", exc_info=True)
            return _plain_text("Internal server error", 500)

    @app.route("/", methods=["GET"])
    def webmention_info():
        """Describe the endpoint for humans who open it in a browser."""
        return _plain_text(
            f"Webmention endpoint for {site_title or site_url}.\n"
            "POST source and target (application/x-www-form-urlencoded) to send a webmention.\n",
            200,
        )

    @app.route("/health", methods=["GET"])
    def health_check():
        return jsonify({"status": "healthy"}), 200

    return app

"""
IndieWeb Module for blogwatch.

This module provides outbound webmention delivery for published
documents: link extraction, W3C endpoint discovery, sending, and
aggregate delivery reports.

Features:
    - W3C Webmention endpoint discovery
    - Generic webmention sending with endpoint discovery
    - Per-document delivery to every linked target with outcome counts

Usage:
    >>> from indieweb import OutboundDelivery
    >>>
    >>> delivery = OutboundDelivery.from_config(config)
    >>> report = delivery.deliver(document)

Configuration (config.yml):
    webmention:
      send_enabled: true
      timeout: 10
      allow_private_targets: false
"""

from indieweb.webmention import (
    WebmentionResult,
    discover_webmention_endpoint,
    send_webmention,
)
from indieweb.link_tracking import extract_outbound_links, outbound_target
from indieweb.delivery import (
    DeliveryAttempt,
    DeliveryOutcome,
    DeliveryReport,
    DeliveryReporter,
    OutboundDelivery,
)

__all__ = [
    "WebmentionResult",
    "discover_webmention_endpoint",
    "send_webmention",
    "extract_outbound_links",
    "outbound_target",
    "DeliveryAttempt",
    "DeliveryOutcome",
    "DeliveryReport",
    "DeliveryReporter",
    "OutboundDelivery",
]

"""
Outbound webmention delivery for published documents.

For one document, every external link in its rendered content is a
target. Each target gets its own delivery attempt; a failing target never
stops the others. The outcomes are summarized in a DeliveryReport:

    attempts   every target tried
    sent       requests that reached an endpoint (includes delivered)
    delivered  requests the endpoint acknowledged with a 2xx status

so ``attempts >= sent >= delivered >= 0`` always holds and
``attempts - sent`` is the number of failed attempts.

Usage:
    >>> delivery = OutboundDelivery.from_config(config)
    >>> report = delivery.deliver(document)
    >>> print(report.attempts, report.sent, report.delivered)
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from indieweb.link_tracking import extract_outbound_links, origin_of
from indieweb.webmention import DEFAULT_TIMEOUT, WebmentionResult, send_webmention
from publish.documents import Document, render_document_html

logger = logging.getLogger(__name__)


class DeliveryOutcome(str, Enum):
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"


@dataclass(frozen=True)
class DeliveryAttempt:
    target_url: str
    outcome: DeliveryOutcome
    message: str = ""


@dataclass(frozen=True)
class DeliveryReport:
    """Aggregate outcome of one document's outbound batch."""
    attempts: int = 0
    sent: int = 0
    delivered: int = 0

    @property
    def failed(self) -> int:
        return self.attempts - self.sent

    @property
    def sent_not_delivered(self) -> int:
        return self.sent - self.delivered

    def __str__(self) -> str:
        return (
            f"{self.attempts} attempted, {self.sent} sent, "
            f"{self.delivered} delivered, {self.failed} failed"
        )


class DeliveryReporter:
    """Collects DeliveryAttempts and summarizes them."""

    def __init__(self):
        self._attempts: List[DeliveryAttempt] = []
        self._lock = threading.Lock()

    def record(self, attempt: DeliveryAttempt) -> None:
        with self._lock:
            self._attempts.append(attempt)

    @property
    def attempts(self) -> List[DeliveryAttempt]:
        with self._lock:
            return list(self._attempts)

    def report(self) -> DeliveryReport:
        with self._lock:
            outcomes = [a.outcome for a in self._attempts]
        delivered = outcomes.count(DeliveryOutcome.DELIVERED)
        return DeliveryReport(
            attempts=len(outcomes),
            sent=delivered + outcomes.count(DeliveryOutcome.SENT),
            delivered=delivered,
        )


def classify_result(result: WebmentionResult) -> DeliveryOutcome:
    """Map a send result onto a delivery outcome."""
    if result.success:
        return DeliveryOutcome.DELIVERED
    if result.transmitted:
        return DeliveryOutcome.SENT
    return DeliveryOutcome.FAILED


class OutboundDelivery:
    """Sends webmentions to every target linked from a document.

    Args:
        timeout: Per-request timeout in seconds, so one unresponsive target
                 cannot stall the watch loop
        allow_private: Permit targets on private/loopback addresses
        sender: Callable with the signature of ``send_webmention``
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        allow_private: bool = False,
        sender: Optional[Callable[..., WebmentionResult]] = None,
    ):
        self.timeout = timeout
        self.allow_private = allow_private
        self._sender = sender or send_webmention

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "OutboundDelivery":
        wm_config = config.get("webmention", {})
        return cls(
            timeout=float(wm_config.get("timeout", DEFAULT_TIMEOUT)),
            allow_private=bool(wm_config.get("allow_private_targets", False)),
        )

    def discover_targets(self, document: Document) -> List[str]:
        """External links of the document, in discovery order."""
        return extract_outbound_links(render_document_html(document), origin_of(document.url))

    def _attempt(self, source_url: str, target_url: str) -> DeliveryAttempt:
        try:
            result = self._sender(
                source_url,
                target_url,
                timeout=self.timeout,
                allow_private=self.allow_private,
            )
        except Exception as e:
            logger.error(
                f"Webmention delivery raised: source={source_url}, target={target_url}, error={e}",
                exc_info=True,
            )
            return DeliveryAttempt(target_url, DeliveryOutcome.FAILED, str(e))

        outcome = classify_result(result)
        if outcome is DeliveryOutcome.FAILED:
            logger.warning(f"Webmention to {target_url} failed: {result.message}")
        return DeliveryAttempt(target_url, outcome, result.message)

    def deliver(self, document: Document) -> DeliveryReport:
        """Attempt delivery to every target of ``document``.

        All attempts run to completion before the report is returned.
        """
        targets = self.discover_targets(document)
        if not targets:
            logger.debug(f"No outbound links in {document.url}")
            return DeliveryReport()

        logger.info(f"Sending webmentions for {document.url} to {len(targets)} target(s)")
        reporter = DeliveryReporter()
        for target in targets:
            reporter.record(self._attempt(document.url, target))

        report = reporter.report()
        logger.info(f"Webmentions for {document.url}: {report}")
        return report

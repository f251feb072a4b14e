"""
Publish coordinator: turns change batches into rebuilds and webmentions.

For each batch coming out of the watcher:

1. Drop events that are not document files; an empty remainder is a no-op.
2. Invalidate the published document index and the publisher's cached
   document list.
3. Rebuild the whole site once, however many events the batch holds.
4. If outbound webmentions are enabled, deliver them for every created or
   modified document (once per path), stopping early once the caller's
   stop event is set.

Every failure is logged and contained here, so one bad document or one
unreachable target never stops the watch loop.
"""

import logging
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from indieweb.delivery import DeliveryReport, OutboundDelivery
from publish.documents import PublishedDocumentIndex, load_document
from publish.publisher import SitePublisher
from watcher.watcher import ChangeEvent, ChangeKind, is_document_path, normalize_extensions

logger = logging.getLogger(__name__)

DELIVERABLE_KINDS = (ChangeKind.CREATED, ChangeKind.MODIFIED)


class PublishCoordinator:
    """Drives rebuilds and outbound delivery from change batches.

    Args:
        publisher: Object with ``rebuild()`` and ``clear_cache()``
        index: Index shared (through its signal) with the receiver
        delivery: Outbound delivery, or None to never send
        send_enabled: Whether outbound webmentions are sent at all
        extensions: Document extension filter
    """

    def __init__(
        self,
        publisher: SitePublisher,
        index: PublishedDocumentIndex,
        delivery: Optional[OutboundDelivery] = None,
        send_enabled: bool = False,
        extensions=None,
    ):
        self.publisher = publisher
        self.index = index
        self.delivery = delivery
        self.send_enabled = send_enabled
        self.extensions = normalize_extensions(extensions)
        self.rebuild_count = 0

    @classmethod
    def from_config(cls, config, index: PublishedDocumentIndex) -> "PublishCoordinator":
        send_enabled = bool(config.get("webmention", {}).get("send_enabled", False))
        return cls(
            SitePublisher.from_config(config),
            index,
            delivery=OutboundDelivery.from_config(config) if send_enabled else None,
            send_enabled=send_enabled,
            extensions=config.get("watch", {}).get("extensions"),
        )

    def relevant_events(self, batch: Iterable[ChangeEvent]) -> List[ChangeEvent]:
        return [event for event in batch if is_document_path(event.path, self.extensions)]

    def rebuild(self) -> bool:
        """Invalidate caches and rebuild the site; False if the rebuild failed."""
        self.index.invalidate()
        self.publisher.clear_cache()
        self.rebuild_count += 1
        try:
            self.publisher.rebuild()
        except Exception as e:
            logger.error(f"Rebuild failed: {e}", exc_info=True)
            return False
        return True

    def handle_batch(
        self,
        batch: Iterable[ChangeEvent],
        stop_event: Optional[threading.Event] = None,
    ) -> Dict[Path, DeliveryReport]:
        """Process one change batch.

        Args:
            batch: Events from the ChangeSource
            stop_event: Once set, no further documents are delivered

        Returns:
            Delivery report per document path (empty if nothing was sent)
        """
        events = self.relevant_events(batch)
        if not events:
            logger.debug("Ignoring batch without document changes")
            return {}

        logger.info(f"Processing {len(events)} document change(s)")
        for event in events:
            logger.debug(f"  {event.kind.value}: {event.path}")

        self.rebuild()

        if not (self.send_enabled and self.delivery):
            return {}

        reports: Dict[Path, DeliveryReport] = {}
        seen = set()
        for event in events:
            if event.kind not in DELIVERABLE_KINDS or event.path in seen:
                continue
            if stop_event is not None and stop_event.is_set():
                logger.info("Stop requested, skipping remaining deliveries in this batch")
                break
            seen.add(event.path)
            report = self._deliver(event.path)
            if report is not None:
                reports[event.path] = report
        return reports

    def _deliver(self, path: Path) -> Optional[DeliveryReport]:
        try:
            document = load_document(path, self.publisher.source_dir, self.publisher.site_url)
            if document.draft:
                logger.debug(f"Not sending webmentions for draft {path}")
                return None
            report = self.delivery.deliver(document)
        except Exception as e:
            logger.error(f"Webmention delivery failed for {path}: {e}", exc_info=True)
            return None

        logger.info(f"Delivery report for {path}: {report}")
        return report

"""
Source directory watcher.

Wraps a watchdog Observer on the document source directory and turns the
stream of filesystem events into debounced batches. The watch loop never
sees an individual event: everything that arrives within one quiet period
is handed over as a single ChangeBatch.

Flow:
    watchdog thread -> DocumentEventHandler -> ChangeSource buffer
    main thread     -> ChangeSource.next_batch() -> ChangeBatch

Usage:
    >>> source = ChangeSource("content", extensions={".md"})
    >>> source.start()
    >>> for batch in source.batches(stop_event):
    ...     coordinator.handle_batch(batch)
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import FrozenSet, Iterable, Iterator, List, Optional, Tuple

from watchdog.events import FileSystemEvent, PatternMatchingEventHandler
from watchdog.observers import Observer

from blogwatch.errors import WatchError
from config import DEFAULT_EXTENSIONS

logger = logging.getLogger(__name__)

IGNORE_PATTERNS = [".*", "*~", "*.tmp", "*.swp", "*.part"]


class ChangeKind(str, Enum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    OTHER = "other"


@dataclass(frozen=True)
class ChangeEvent:
    """A single filesystem change on a document file.

    Attributes:
        path: Path of the changed file
        kind: What happened to it
    """
    path: Path
    kind: ChangeKind


ChangeBatch = Tuple[ChangeEvent, ...]


def normalize_extensions(extensions: Optional[Iterable[str]]) -> FrozenSet[str]:
    """Lowercase extensions and make sure each one starts with a dot."""
    result = set()
    for ext in extensions or DEFAULT_EXTENSIONS:
        ext = ext.strip().lower()
        if ext and not ext.startswith("."):
            ext = f".{ext}"
        if ext:
            result.add(ext)
    return frozenset(result)


def is_document_path(path, extensions: FrozenSet[str]) -> bool:
    """Check if a path names a document file (case-insensitive extension match)."""
    name = Path(path).name
    if not name or name.startswith(".") or name.endswith("~"):
        return False
    return Path(name).suffix.lower() in extensions


class DocumentEventHandler(PatternMatchingEventHandler):
    """watchdog handler forwarding document events to a callback."""

    def __init__(self, callback, extensions: FrozenSet[str]):
        super().__init__(
            patterns=[f"*{ext}" for ext in sorted(extensions)],
            ignore_patterns=IGNORE_PATTERNS,
            ignore_directories=True,
            case_sensitive=False,
        )
        self._callback = callback

    def on_created(self, event: FileSystemEvent) -> None:
        self._callback(ChangeEvent(Path(event.src_path), ChangeKind.CREATED))

    def on_modified(self, event: FileSystemEvent) -> None:
        self._callback(ChangeEvent(Path(event.src_path), ChangeKind.MODIFIED))

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._callback(ChangeEvent(Path(event.src_path), ChangeKind.DELETED))

    def on_moved(self, event: FileSystemEvent) -> None:
        dest = getattr(event, "dest_path", "") or event.src_path
        self._callback(ChangeEvent(Path(dest), ChangeKind.OTHER))


class ChangeSource:
    """Debounced stream of document change batches for one directory.

    Events are buffered by the watchdog thread; ``next_batch`` waits for the
    first one and then for a quiet period of ``debounce_seconds`` (capped at
    ``max_wait_seconds``) before returning the whole buffer at once.

    When an ``invalidation_signal`` (any object with ``bump()``, normally the
    InvalidationSignal shared with the receiver) is given, it is bumped for
    every buffered event, so document indexes go stale as soon as a change
    is observed.
    """

    def __init__(
        self,
        directory,
        extensions: Optional[Iterable[str]] = None,
        debounce_seconds: float = 0.5,
        max_wait_seconds: float = 5.0,
        recursive: bool = True,
        invalidation_signal=None,
    ):
        self.directory = Path(directory)
        self.extensions = normalize_extensions(extensions)
        self.debounce_seconds = debounce_seconds
        self.max_wait_seconds = max(max_wait_seconds, debounce_seconds)
        self.recursive = recursive
        self.invalidation_signal = invalidation_signal
        self._pending: List[ChangeEvent] = []
        self._last_event_at = 0.0
        self._condition = threading.Condition()
        self._observer: Optional[Observer] = None

    @classmethod
    def from_config(cls, config, invalidation_signal=None) -> "ChangeSource":
        watch = config.get("watch", {})
        return cls(
            config["paths"]["source_dir"],
            extensions=watch.get("extensions"),
            debounce_seconds=float(watch.get("debounce_seconds", 0.5)),
            max_wait_seconds=float(watch.get("max_wait_seconds", 5.0)),
            invalidation_signal=invalidation_signal,
        )

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        """Establish the filesystem watch.

        Raises:
            WatchError: If the directory is unusable or the observer fails to start.
        """
        if self._observer is not None:
            return
        if not self.directory.is_dir():
            raise WatchError(f"Watch directory does not exist or is not a directory: {self.directory}")

        handler = DocumentEventHandler(self.push, self.extensions)
        observer = Observer()
        try:
            observer.schedule(handler, str(self.directory), recursive=self.recursive)
            observer.start()
        except OSError as e:
            raise WatchError(f"Cannot watch {self.directory}: {e}") from e

        self._observer = observer
        logger.info(
            f"Watching {self.directory} for {sorted(self.extensions)} "
            f"(debounce {self.debounce_seconds}s)"
        )

    def stop(self, timeout: float = 5.0) -> None:
        observer = self._observer
        if observer is None:
            return
        self._observer = None
        observer.stop()
        observer.join(timeout=timeout)
        with self._condition:
            self._condition.notify_all()
        logger.info(f"Stopped watching {self.directory}")

    def push(self, event: ChangeEvent) -> None:
        """Buffer one event; called from the watchdog thread."""
        if not is_document_path(event.path, self.extensions):
            return
        if self.invalidation_signal is not None:
            self.invalidation_signal.bump()
        with self._condition:
            self._pending.append(event)
            self._last_event_at = time.monotonic()
            self._condition.notify_all()
        logger.debug(f"Buffered {event.kind.value} event for {event.path}")

    def next_batch(self, timeout: Optional[float] = None) -> Optional[ChangeBatch]:
        """Block until a debounced batch is available.

        Args:
            timeout: Seconds to wait for the first event (None waits forever)

        Returns:
            The coalesced batch, or None if no event arrived within ``timeout``
        """
        with self._condition:
            if not self._pending:
                self._condition.wait(timeout=timeout)
                if not self._pending:
                    return None

            first_seen = time.monotonic()
            while True:
                now = time.monotonic()
                quiet_for = now - self._last_event_at
                if quiet_for >= self.debounce_seconds:
                    break
                if now - first_seen >= self.max_wait_seconds:
                    break
                self._condition.wait(timeout=self.debounce_seconds - quiet_for)

            batch = tuple(self._pending)
            self._pending.clear()

        logger.debug(f"Coalesced {len(batch)} event(s) into one batch")
        return batch

    def batches(self, stop_event: threading.Event, poll_interval: float = 1.0) -> Iterator[ChangeBatch]:
        """Yield non-empty batches until ``stop_event`` is set."""
        while not stop_event.is_set():
            batch = self.next_batch(timeout=poll_interval)
            if stop_event.is_set():
                return
            if batch:
                yield batch

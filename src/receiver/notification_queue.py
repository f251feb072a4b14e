"""SQLite-backed queue of accepted inbound webmentions awaiting verification."""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from jsonschema import validate
from schema import NOTIFICATION_SCHEMA

logger = logging.getLogger(__name__)

QUEUE_DB_FILENAME = "notifications.db"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Notification:
    """An accepted webmention.

    Attributes:
        source: URL of the page claiming to link to the target
        target: Published URL on this site
        received_at: ISO-8601 UTC timestamp of acceptance
    """
    source: str
    target: str
    received_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class QueuedNotification:
    id: int
    notification: Notification


class NotificationQueue:
    """Append-only, arrival-ordered queue persisted in SQLite.

    Appends from concurrent request threads are serialized by a lock, and
    appends from separate processes by SQLite's write lock. Ids come from
    an AUTOINCREMENT column, so reading by id returns arrival order.
    Duplicates are stored as-is.
    """

    def __init__(self, storage_path: str):
        self.storage_path = str(storage_path)
        os.makedirs(self.storage_path, mode=0o755, exist_ok=True)
        self.db_path = os.path.join(self.storage_path, QUEUE_DB_FILENAME)
        self._lock = threading.Lock()
        self._ensure_schema()

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "NotificationQueue":
        return cls(config["paths"]["data_dir"])

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=5.0)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        conn = self._connect()
        try:
            with conn:
                self._create_tables(conn)
        finally:
            conn.close()

    @staticmethod
    def _create_tables(conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS notifications (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                source TEXT NOT NULL,
                target TEXT NOT NULL,
                received_at TEXT NOT NULL,
                acknowledged INTEGER NOT NULL DEFAULT 0
            )
            """
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_notifications_pending "
            "ON notifications(acknowledged, id)"
        )

    def append(self, notification: Notification) -> int:
        """Add a notification at the tail of the queue.

        Returns:
            The id assigned to the notification

        Raises:
            jsonschema.ValidationError: If the record is not a valid notification
            sqlite3.Error: If the database write fails
        """
        validate(instance=notification.to_dict(), schema=NOTIFICATION_SCHEMA)

        with self._lock:
            conn = self._connect()
            try:
                with conn:
                    cursor = conn.execute(
                        "INSERT INTO notifications (source, target, received_at) VALUES (?, ?, ?)",
                        (notification.source, notification.target, notification.received_at),
                    )
                    row_id = cursor.lastrowid
            finally:
                conn.close()

        logger.debug(f"Queued notification {row_id}: source={notification.source}, target={notification.target}")
        return row_id

    def list_pending(self, limit: Optional[int] = None) -> List[QueuedNotification]:
        """Unacknowledged notifications, oldest first."""
        query = (
            "SELECT id, source, target, received_at FROM notifications "
            "WHERE acknowledged = 0 ORDER BY id"
        )
        params: tuple = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (int(limit),)

        conn = self._connect()
        try:
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()

        return [
            QueuedNotification(
                id=row["id"],
                notification=Notification(row["source"], row["target"], row["received_at"]),
            )
            for row in rows
        ]

    def acknowledge(self, notification_id: int) -> bool:
        """Mark a notification as handled by the verification stage."""
        with self._lock:
            conn = self._connect()
            try:
                with conn:
                    cursor = conn.execute(
                        "UPDATE notifications SET acknowledged = 1 WHERE id = ? AND acknowledged = 0",
                        (notification_id,),
                    )
                    updated = cursor.rowcount > 0
            finally:
                conn.close()
        return updated

    def __len__(self) -> int:
        conn = self._connect()
        try:
            row = conn.execute("SELECT COUNT(*) FROM notifications WHERE acknowledged = 0").fetchone()
        finally:
            conn.close()
        return row[0]

"""
Tests for the SQLite-backed notification queue.

Covers:
- Arrival order and duplicates
- Schema validation before insertion
- Concurrent appends from many threads
- Sharing one database between queue instances

Running Tests:
    $ PYTHONPATH=src python -m pytest tests/test_notification_queue.py -v
"""
import sqlite3
import threading
from datetime import datetime

import pytest
from jsonschema import ValidationError

from receiver.notification_queue import QUEUE_DB_FILENAME, Notification, NotificationQueue


@pytest.fixture
def queue(tmp_path):
    return NotificationQueue(str(tmp_path / "data"))


def mention(i, target="http://blog.example.com/a/"):
    return Notification(source=f"https://other.example.org/{i}", target=target)


class TestNotification:
    def test_received_at_is_utc_iso_timestamp(self):
        stamp = datetime.fromisoformat(mention(1).received_at)
        assert stamp.utcoffset().total_seconds() == 0


class TestNotificationQueue:
    def test_creates_database(self, tmp_path):
        NotificationQueue(str(tmp_path / "nested" / "data"))
        assert (tmp_path / "nested" / "data" / QUEUE_DB_FILENAME).exists()

    def test_empty(self, queue):
        assert len(queue) == 0
        assert queue.list_pending() == []

    def test_append_preserves_arrival_order(self, queue):
        ids = [queue.append(mention(i)) for i in range(5)]

        assert ids == sorted(ids)
        assert len(queue) == 5
        assert [q.notification.source for q in queue.list_pending()] == [
            f"https://other.example.org/{i}" for i in range(5)
        ]

    def test_duplicates_are_kept(self, queue):
        queue.append(mention(1))
        queue.append(mention(1))
        assert len(queue) == 2

    def test_round_trip_fields(self, queue):
        notification = mention(7)
        queue.append(notification)
        assert queue.list_pending()[0].notification == notification

    @pytest.mark.parametrize("notification", [
        Notification(source="not-a-url", target="http://blog.example.com/a/"),
        Notification(source="https://other.example.org/", target="ftp://blog.example.com/a/"),
        Notification(source="https://other.example.org/" + "x" * 2100, target="http://blog.example.com/a/"),
    ])
    def test_invalid_notification_rejected(self, queue, notification):
        with pytest.raises(ValidationError):
            queue.append(notification)
        assert len(queue) == 0

    def test_list_pending_limit(self, queue):
        for i in range(4):
            queue.append(mention(i))
        assert len(queue.list_pending(limit=2)) == 2

    def test_acknowledge(self, queue):
        first = queue.append(mention(1))
        queue.append(mention(2))

        assert queue.acknowledge(first) is True
        assert queue.acknowledge(first) is False
        assert len(queue) == 1
        assert queue.list_pending()[0].notification.source == "https://other.example.org/2"

    def test_concurrent_appends_lose_nothing(self, queue):
        def worker(n):
            for i in range(10):
                queue.append(mention(f"{n}-{i}"))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        pending = queue.list_pending()
        assert len(pending) == 80
        # Each worker's own appends stay in the order it made them
        for n in range(8):
            mine = [q.notification.source for q in pending if q.notification.source.split("/")[-1].startswith(f"{n}-")]
            assert mine == [f"https://other.example.org/{n}-{i}" for i in range(10)]

    def test_instances_share_the_database(self, tmp_path):
        writer = NotificationQueue(str(tmp_path))
        reader = NotificationQueue(str(tmp_path))

        writer.append(mention(1))
        assert len(reader) == 1

    def test_from_config(self, test_config):
        queue = NotificationQueue.from_config(test_config)
        assert queue.storage_path == test_config["paths"]["data_dir"]

    def test_connections_are_closed(self, tmp_path):
        opened = []

        class TrackingQueue(NotificationQueue):
            def _connect(self):
                conn = super()._connect()
                opened.append(conn)
                return conn

        queue = TrackingQueue(str(tmp_path))
        queue.append(mention(1))
        queue.list_pending()
        len(queue)

        assert len(opened) == 4
        for conn in opened:
            with pytest.raises(sqlite3.ProgrammingError):
                conn.execute("SELECT 1")

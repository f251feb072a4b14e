"""
Tests for the webmention receiver endpoint.

Covers:
- POST / validation (malformed requests, unknown targets)
- 202 response body and enqueue-after-response behaviour
- Index freshness after invalidation by the watch loop
- Discovery Link header, info route, CORS and error handling

Note:
    Accepted notifications are appended when the response is closed, so
    tests close the response before inspecting the queue.

Running Tests:
    $ PYTHONPATH=src python -m pytest tests/test_receiver.py -v
"""
import logging
import sqlite3
from unittest.mock import MagicMock, patch

import pytest

from publish.documents import InvalidationSignal, PublishedDocumentIndex
from receiver import NotificationQueue, create_app
from receiver.receiver import (
    MALFORMED_MESSAGE,
    UNRECOGNIZED_MESSAGE,
    accepted_body,
    parse_webmention_request,
)
from watcher import ChangeEvent, ChangeKind, ChangeSource


SITE_URL = "http://blog.example.com"
SOURCE = "https://other.example.org/reply"
TARGET = f"{SITE_URL}/hello/"


# =========================================================================
# Fixtures
# =========================================================================

@pytest.fixture
def signal():
    return InvalidationSignal()


@pytest.fixture
def index(test_config, signal, write_document):
    write_document("hello.md", "# Hello")
    return PublishedDocumentIndex.from_config(test_config, signal)


@pytest.fixture
def queue(test_config):
    return NotificationQueue.from_config(test_config)


@pytest.fixture
def app(test_config, index, queue):
    app = create_app(test_config, index, queue)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


def post(client, **data):
    response = client.post("/", data=data, content_type="application/x-www-form-urlencoded")
    body = response.get_data(as_text=True)
    response.close()
    return response, body


# =========================================================================
# POST / - Validation
# =========================================================================

class TestMalformedRequests:
    @pytest.mark.parametrize("data", [
        {},
        {"source": SOURCE},
        {"target": TARGET},
        {"source": "", "target": TARGET},
        {"source": "not a url", "target": TARGET},
        {"source": "ftp://other.example.org/file", "target": TARGET},
        {"source": SOURCE, "target": "javascript:alert(1)"},
        {"source": "https://other.example.org/" + "x" * 2048, "target": TARGET},
        {"source": TARGET, "target": TARGET},
        {"source": TARGET.rstrip("/"), "target": TARGET},
    ])
    def test_returns_400_and_does_not_enqueue(self, client, queue, data):
        response, body = post(client, **data)

        assert response.status_code == 400
        assert body == MALFORMED_MESSAGE
        assert response.mimetype == "text/plain"
        assert len(queue) == 0


class TestUnrecognizedTarget:
    def test_unknown_target_returns_400(self, client, queue):
        response, body = post(client, source=SOURCE, target=f"{SITE_URL}/unknown")

        assert response.status_code == 400
        assert body == UNRECOGNIZED_MESSAGE
        assert len(queue) == 0

    def test_other_site_returns_400(self, client, queue):
        response, body = post(client, source=SOURCE, target="https://elsewhere.example.net/hello/")

        assert response.status_code == 400
        assert body == UNRECOGNIZED_MESSAGE
        assert len(queue) == 0

    def test_draft_is_not_a_valid_target(self, client, queue, write_document, index):
        write_document("secret.md", "Body", draft="true")
        index.invalidate()

        response, _ = post(client, source=SOURCE, target=f"{SITE_URL}/secret/")

        assert response.status_code == 400
        assert len(queue) == 0


# =========================================================================
# POST / - Accepted
# =========================================================================

class TestAccepted:
    def test_known_target_returns_202_and_enqueues(self, client, queue):
        response, body = post(client, source=SOURCE, target=TARGET)

        assert response.status_code == 202
        assert response.mimetype == "text/plain"
        assert "queued for verification" in body
        assert f'<a href="{SITE_URL}/">Example Blog</a>' in body
        assert f'<a href="{TARGET}">' in body

        pending = queue.list_pending()
        assert len(pending) == 1
        assert pending[0].notification.source == SOURCE
        assert pending[0].notification.target == TARGET

    def test_enqueue_happens_after_response(self, client, queue):
        response = client.post("/", data={"source": SOURCE, "target": TARGET})

        assert response.status_code == 202
        assert len(queue) == 0

        response.close()
        assert len(queue) == 1

    def test_parameters_from_query_string(self, client, queue):
        response = client.post("/", query_string={"source": SOURCE, "target": TARGET})
        response.close()

        assert response.status_code == 202
        assert len(queue) == 1

    def test_target_without_trailing_slash(self, client, queue):
        response, _ = post(client, source=SOURCE, target=TARGET.rstrip("/"))
        assert response.status_code == 202

    def test_arrival_order_preserved(self, client, queue):
        sources = [f"https://other.example.org/{i}" for i in range(5)]
        for source in sources:
            response, _ = post(client, source=source, target=TARGET)
            assert response.status_code == 202

        assert [q.notification.source for q in queue.list_pending()] == sources

    def test_duplicates_are_queued(self, client, queue):
        post(client, source=SOURCE, target=TARGET)
        post(client, source=SOURCE, target=TARGET)
        assert len(queue) == 2

    def test_enqueue_failure_is_logged_not_surfaced(self, test_config, index, caplog):
        failing_queue = MagicMock()
        failing_queue.append.side_effect = sqlite3.OperationalError("database is locked")
        client = create_app(test_config, index, failing_queue).test_client()

        with caplog.at_level(logging.ERROR, logger="receiver.receiver"):
            response, body = post(client, source=SOURCE, target=TARGET)

        assert response.status_code == 202
        assert "queued for verification" in body
        failing_queue.append.assert_called_once()
        assert "Failed to queue webmention" in caplog.text


class TestIndexFreshness:
    def test_new_document_resolves_after_invalidation(self, client, queue, test_config, signal, write_document):
        response, _ = post(client, source=SOURCE, target=f"{SITE_URL}/fresh/")
        assert response.status_code == 400

        write_document("fresh.md", "# Fresh")
        # The watch loop owns its own index; only the shared signal connects them
        PublishedDocumentIndex.from_config(test_config, signal).invalidate()

        response, _ = post(client, source=SOURCE, target=f"{SITE_URL}/fresh/")
        assert response.status_code == 202
        assert len(queue) == 1

    def test_observed_change_is_visible_before_rebuild(self, client, queue, test_config, signal, write_document):
        response, _ = post(client, source=SOURCE, target=f"{SITE_URL}/early/")
        assert response.status_code == 400

        source = ChangeSource.from_config(test_config, signal)
        path = write_document("early.md", "# Early")
        # Debounce has not elapsed and no batch has been handed out yet
        source.push(ChangeEvent(path, ChangeKind.CREATED))

        response, _ = post(client, source=SOURCE, target=f"{SITE_URL}/early/")
        assert response.status_code == 202
        assert len(queue) == 1

    def test_deleted_document_stops_resolving(self, client, queue, index, site_dirs):
        (site_dirs["source_dir"] / "hello.md").unlink()
        index.invalidate()

        response, body = post(client, source=SOURCE, target=TARGET)

        assert response.status_code == 400
        assert body == UNRECOGNIZED_MESSAGE


# =========================================================================
# Other routes and behaviour
# =========================================================================

class TestEndpointExtras:
    def test_link_header_on_every_response(self, client):
        response, _ = post(client, source=SOURCE, target=TARGET)
        assert response.headers["Link"] == '</>; rel="webmention"'

        response, _ = post(client)
        assert response.headers["Link"] == '</>; rel="webmention"'

    def test_configured_endpoint_url(self, test_config, index, queue):
        test_config["webmention_receiver"]["endpoint_url"] = "https://wm.example.net/"
        client = create_app(test_config, index, queue).test_client()

        response = client.get("/")
        assert response.headers["Link"] == '<https://wm.example.net/>; rel="webmention"'

    def test_info_route(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert "Webmention endpoint for Example Blog" in response.get_data(as_text=True)

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json() == {"status": "healthy"}

    def test_unexpected_error_returns_500(self, client, index, queue):
        with patch.object(index, "resolve", side_effect=RuntimeError("disk on fire")):
            response, _ = post(client, source=SOURCE, target=TARGET)

        assert response.status_code == 500
        assert len(queue) == 0

        response, _ = post(client, source=SOURCE, target=TARGET)
        assert response.status_code == 202

    def test_cors_enabled(self, test_config, index, queue):
        test_config["cors"] = {"enabled": True, "origins": ["https://blog.example.com"]}
        client = create_app(test_config, index, queue).test_client()

        response = client.get("/", headers={"Origin": "https://blog.example.com"})
        assert response.headers.get("Access-Control-Allow-Origin") == "https://blog.example.com"

    def test_cors_disabled_by_default(self, client):
        response = client.get("/", headers={"Origin": "https://blog.example.com"})
        assert "Access-Control-Allow-Origin" not in response.headers


# =========================================================================
# Helpers
# =========================================================================

class TestHelpers:
    def test_parse_strips_whitespace(self):
        assert parse_webmention_request({"source": f" {SOURCE} ", "target": TARGET}) == (SOURCE, TARGET)

    def test_parse_rejects_missing(self):
        assert parse_webmention_request({}) is None

    def test_accepted_body_escapes_html(self):
        body = accepted_body('https://x.example/"><script>', TARGET, SITE_URL, "<Blog>")
        assert "<script>" not in body
        assert "&lt;Blog&gt;" in body

    def test_accepted_body_without_title_uses_site_root(self):
        body = accepted_body(SOURCE, TARGET, SITE_URL, "")
        assert f'<a href="{SITE_URL}/">{SITE_URL}/</a>' in body

"""
Tests for the HTTP transport (FastAPI TestClient).
"""

import json

import pytest
from fastapi.testclient import TestClient

from conftest import FakeClassifier, FakeGenerator, decision
from synapse.api import http_api
from synapse.core.routing_types import Tool
from synapse.core.scratchpad import EmailDraft
from synapse.core.session import SessionRegistry
from synapse.exceptions import EmailDeliveryError


def read_events(response):
    return [json.loads(line) for line in response.text.splitlines() if line.strip()]


@pytest.fixture
def sessions():
    return SessionRegistry()


@pytest.fixture
def client_for(make_engine, sessions):
    def _client(**engine_kwargs):
        app = http_api.create_app(engine=make_engine(**engine_kwargs), sessions=sessions)
        return TestClient(app)

    return _client


class TestAgentEndpoint:

    def test_health(self, client_for):
        response = client_for().get("/")

        assert response.status_code == 200
        assert response.text == "Synapse Agent Backend Running."

    def test_message_or_file_required(self, client_for):
        response = client_for().post("/api/agent", data={"message": "   "})

        assert response.status_code == 400
        assert response.json() == {"error": "Message or file is required."}

    def test_streams_ndjson_events(self, client_for):
        client = client_for(generator=FakeGenerator(stream_chunks=["Hi", "!"]))

        response = client.post("/api/agent", data={"message": "hello", "session_id": "s1"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/x-ndjson")
        events = read_events(response)
        assert events[0] == {"type": "thought", "data": "Analyzing user intent..."}
        assert events[-1] == {"type": "final_output", "data": "Hi!"}
        assert [e["data"] for e in events if e["type"] == "text"] == ["Hi", "!"]

    def test_uploaded_csv_is_parsed_into_session(self, client_for, sessions):
        client = client_for(
            classifier=FakeClassifier(decision(Tool.GENERAL_QUERY, "analyze")),
            generator=FakeGenerator(stream_chunks=["Up."]),
        )
        csv_bytes = b"month,revenue\nJan,10\nFeb,20\n"

        response = client.post(
            "/api/agent",
            data={"message": "analyze", "fileType": "text/csv", "fileName": "sales.csv", "session_id": "s2"},
            files={"file": ("sales.csv", csv_bytes, "text/csv")},
        )

        events = read_events(response)
        chart = next(e["data"] for e in events if e["type"] == "chart")
        assert chart["dataKeysY"] == ["revenue"]
        assert sessions.get("s2").scratchpad.extracted_table is not None
        assert not sessions.get("s2").busy

    @pytest.mark.asyncio
    async def test_busy_session_is_rejected(self, client_for, sessions):
        client = client_for()
        session = sessions.get_or_create("busy")
        await session.lock.acquire()
        try:
            response = client.post("/api/agent", data={"message": "hello", "session_id": "busy"})
        finally:
            session.lock.release()

        assert response.status_code == 409

    def test_delete_session(self, client_for, sessions):
        client = client_for()
        sessions.get_or_create("gone")

        assert client.delete("/api/agent/sessions/gone").status_code == 200
        assert sessions.get("gone") is None
        assert client.delete("/api/agent/sessions/gone").status_code == 404


class TestSendEmailEndpoint:

    def test_explicit_draft_is_sent(self, client_for, monkeypatch):
        sent = []

        async def fake_send(draft, config=None):
            sent.append(draft)

        monkeypatch.setattr(http_api, "send_email", fake_send)

        response = client_for().post(
            "/api/agent/send-email",
            json={"to": "a@example.com", "subject": "Hi", "html": "<p>x</p>"},
        )

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert sent == [EmailDraft("a@example.com", "Hi", "<p>x</p>")]

    def test_session_draft_is_sent(self, client_for, sessions, monkeypatch):
        sent = []

        async def fake_send(draft, config=None):
            sent.append(draft)

        monkeypatch.setattr(http_api, "send_email", fake_send)
        draft = EmailDraft("jane@example.com", "Job Offer: Analyst", "<p>offer</p>")
        sessions.get_or_create("s3").scratchpad.store_draft(draft)

        response = client_for().post("/api/agent/send-email", json={"session_id": "s3"})

        assert response.status_code == 200
        assert sent == [draft]

    def test_missing_fields(self, client_for):
        response = client_for().post("/api/agent/send-email", json={"to": "a@example.com"})

        assert response.status_code == 400

    def test_delivery_failure(self, client_for, monkeypatch):
        async def failing_send(draft, config=None):
            raise EmailDeliveryError("SMTP down")

        monkeypatch.setattr(http_api, "send_email", failing_send)

        response = client_for().post(
            "/api/agent/send-email",
            json={"to": "a@example.com", "subject": "Hi", "html": "<p>x</p>"},
        )

        assert response.status_code == 500
        assert response.json()["error"] == "SMTP down"


class TestSessionRegistryInjection:

    def test_empty_registry_passed_in_is_used(self, make_engine):
        sessions = SessionRegistry()
        client = TestClient(http_api.create_app(engine=make_engine(), sessions=sessions))

        for _ in range(3):
            response = client.post("/api/agent", data={"message": "hello"})
            assert response.status_code == 200

        assert len(sessions) == 3
        session_id = response.headers["X-Session-Id"]
        assert sessions.get(session_id) is not None
        assert not sessions.get(session_id).busy

    def test_oversized_upload_is_rejected_before_the_engine_runs(self, client_for, sessions, monkeypatch):
        monkeypatch.setattr(http_api.native, "MAX_FILE_SIZE_BYTES", 16)
        client = client_for()

        response = client.post(
            "/api/agent",
            data={"message": "analyze", "session_id": "big"},
            files={"file": ("big.csv", b"a,b\n" + b"1,2\n" * 50, "text/csv")},
        )

        assert response.status_code == 413
        assert "max size" in response.json()["error"]
        assert sessions.get("big") is None

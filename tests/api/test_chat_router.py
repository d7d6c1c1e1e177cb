"""
Tests for the chat endpoints.

The orchestrator dependency is overridden with one wired to mocked backends,
so the full request path (form parsing, sessions, error rendering) runs
without network calls.
"""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from api.deps import get_turn_orchestrator
from api.main import app
from api.orchestrators.turn_orchestrator import TurnOrchestrator
from libs.common.settings import get_settings
from libs.dialogflow.client import DialogflowError
from libs.google.vision import ExtractionResult

EXISTING_ID = "1b4e28ba-2fa1-41d2-883f-0016d3cca427"
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@pytest.fixture
def llm(make_llm):
    return make_llm("I want to know the remittance fees.", "Sending money costs $3.")


@pytest.fixture
def extractor():
    extractor = AsyncMock()
    extractor.extract.return_value = ExtractionResult(kind="image", text="Transfer failed")
    return extractor


@pytest.fixture
def client(settings, llm, intent_client, extractor):
    orchestrator = TurnOrchestrator(settings=settings, llm=llm, intent_client=intent_client, extractor=extractor)
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_turn_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides = {}


def session_cookies(response):
    return {
        header.split("=", 1)[0]: header.split("=", 1)[1].split(";", 1)[0]
        for header in response.headers.get_list("set-cookie")
    }


class TestDetectIntent:

    def test_success(self, client, intent_client):
        response = client.post("/api/detectIntent", data={"query": "fees?", "history": "[]"})

        assert response.status_code == 200
        body = response.json()
        assert body["agentReply"] == "Remittance fees start at $3."
        assert body["rewrittenReply"] == "Sending money costs $3."
        assert body["queryResult"]["responseMessages"][0]["text"]["text"] == ["Sending money costs $3."]
        assert body["diagnostics"]["intent"] == "remittance.fees"

        cookies = session_cookies(response)
        assert set(cookies) == {"dialogflow_session_id", "dialogflow_session_expiry"}
        assert body["sessionId"] == cookies["dialogflow_session_id"]
        assert intent_client.detect_intent.await_args.args[0] == cookies["dialogflow_session_id"]
        assert response.headers["X-Request-ID"].startswith("req_")

    def test_existing_session_is_reused(self, client, intent_client):
        expiry = (datetime.now(timezone.utc) + timedelta(minutes=10)).isoformat()

        response = client.post(
            "/api/detectIntent",
            data={"query": "fees?"},
            headers={"Cookie": f"dialogflow_session_id={EXISTING_ID}; dialogflow_session_expiry={expiry}"},
        )

        assert response.status_code == 200
        assert response.json()["sessionId"] == EXISTING_ID
        assert intent_client.detect_intent.await_args.args[0] == EXISTING_ID
        new_expiry = datetime.fromisoformat(session_cookies(response)["dialogflow_session_expiry"])
        assert new_expiry > datetime.fromisoformat(expiry)

    def test_expired_session_is_replaced(self, client):
        expiry = (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat()

        response = client.post(
            "/api/detectIntent",
            data={"query": "fees?"},
            headers={"Cookie": f"dialogflow_session_id={EXISTING_ID}; dialogflow_session_expiry={expiry}"},
        )

        assert response.status_code == 200
        assert response.json()["sessionId"] != EXISTING_ID

    def test_history_is_passed_to_context_enhancement(self, client, llm):
        history = [
            {"role": "user", "message": "I send money to Nepal."},
            {"role": "assistant", "message": "You can use the POSB app."},
        ]
        llm.ainvoke.side_effect = None
        llm.ainvoke.return_value.content = '{"summary": "s", "enhancedQuery": "What are the fees to Nepal?"}'

        response = client.post("/api/detectIntent", data={"query": "fees?", "history": json.dumps(history)})

        assert response.status_code == 200
        prompt = llm.ainvoke.await_args_list[0].args[0][-1].content
        assert "[user] I send money to Nepal." in prompt

    def test_file_upload(self, client, extractor):
        response = client.post(
            "/api/detectIntent",
            data={"query": "what happened?"},
            files={"file": ("error.png", PNG, "image/png")},
        )

        assert response.status_code == 200
        extractor.extract.assert_awaited_once_with(PNG, "image/png")

    def test_missing_query_and_file(self, client, llm, intent_client):
        response = client.post("/api/detectIntent", data={"query": ""})

        assert response.status_code == 400
        assert response.json() == {"error": "Query or file is required"}
        assert "dialogflow_session_id" in session_cookies(response)
        llm.ainvoke.assert_not_awaited()
        intent_client.detect_intent.assert_not_awaited()

    def test_invalid_file_type(self, client, llm, intent_client, extractor):
        response = client.post(
            "/api/detectIntent",
            data={"query": "what is this?"},
            files={"file": ("notes.txt", b"just text", "image/png")},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid file type. Only JPEG, PNG, and PDF files are allowed."}
        llm.ainvoke.assert_not_awaited()
        intent_client.detect_intent.assert_not_awaited()
        extractor.extract.assert_not_awaited()

    def test_invalid_history(self, client):
        response = client.post("/api/detectIntent", data={"query": "fees?", "history": '{"role": "user"}'})
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid conversation history"}

    def test_missing_configuration(self, client, settings, llm, intent_client):
        settings.gcloud_agent_id = None

        response = client.post("/api/detectIntent", data={"query": "fees?"})

        assert response.status_code == 500
        assert response.json() == {"error": "Missing required environment variables"}
        llm.ainvoke.assert_not_awaited()
        intent_client.detect_intent.assert_not_awaited()

    def test_intent_failure(self, client, intent_client):
        intent_client.detect_intent.side_effect = DialogflowError("quota exceeded")

        response = client.post("/api/detectIntent", data={"query": "fees?"})

        assert response.status_code == 503
        assert response.json() == {"error": "Failed to detect intent"}


class TestSessionReset:

    def test_reset_clears_cookies(self, client):
        response = client.post("/api/session/reset")

        assert response.status_code == 200
        assert response.json() == {"status": "reset"}
        set_cookies = response.headers.get_list("set-cookie")
        assert len(set_cookies) == 2
        assert all("Max-Age=0" in c for c in set_cookies)


class TestHealth:

    def test_healthz(self, client):
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_readyz_reports_missing_configuration(self, client):
        response = client.get("/readyz")
        assert response.status_code == 200
        assert response.json()["status"] == "not_ready"

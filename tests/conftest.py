"""
Pytest configuration and fixtures for WorkerBank assistant tests.

Provides shared fixtures for:
- Test environment variables and a configured Settings instance
- A scripted chat model (no network calls)
- Dialogflow envelopes and chat history samples
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from api.models import ChatMessage
from libs.common.settings import Settings, get_settings
from libs.dialogflow.client import IntentReply, extract_agent_reply
from libs.google.auth import get_access_token_provider


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("WORKERBANK_APP_ENV", "test")
    get_settings.cache_clear()
    get_access_token_provider.cache_clear()
    yield
    get_settings.cache_clear()
    get_access_token_provider.cache_clear()


@pytest.fixture
def settings():
    """Settings with a complete Dialogflow agent configuration."""
    return Settings(
        app_env="test",
        gcloud_project_id="workerbank-test",
        gcloud_subdomain_region="asia-southeast1",
        gcloud_region_id="asia-southeast1",
        gcloud_agent_id="agent-123",
        session_cookie_secure=False,
    )


def chat_response(content):
    """A chat model reply as returned by ``ainvoke``."""
    response = MagicMock()
    response.content = content
    return response


@pytest.fixture
def make_llm():
    """Build a mock chat model that replies with the given contents in order.

    Strings become replies; exceptions are raised from ``ainvoke``.
    """

    def _make(*replies):
        llm = AsyncMock()
        llm.ainvoke.side_effect = [
            reply if isinstance(reply, Exception) else chat_response(reply) for reply in replies
        ]
        return llm

    return _make


def make_envelope(*texts, **query_result_fields):
    """A detectIntent response whose response messages carry ``texts``."""
    query_result = {
        "text": "query",
        "languageCode": "en",
        "responseMessages": [{"text": {"text": [text]}} for text in texts],
        "match": {"confidence": 0.87, "intent": {"displayName": "remittance.fees"}},
        "currentPage": {"displayName": "Start Page"},
    }
    query_result.update(query_result_fields)
    return {"responseId": "resp-1", "queryResult": query_result}


@pytest.fixture
def envelope():
    return make_envelope("Remittance fees start at $3.")


@pytest.fixture
def intent_client(envelope):
    """Mock intent backend returning the ``envelope`` fixture."""
    client = AsyncMock()
    client.detect_intent.return_value = IntentReply(
        agent_reply=extract_agent_reply(envelope),
        envelope=envelope,
    )
    return client


@pytest.fixture
def history():
    return [
        ChatMessage(role="user", message="I work in construction and send money to Bangladesh."),
        ChatMessage(role="assistant", message="You can send money home with the POSB app."),
        ChatMessage(role="user", message="How much does it cost?"),
        ChatMessage(role="assistant", message="Do you want to send to a bank account or for cash pickup?"),
    ]


@pytest.fixture
def context_json():
    return json.dumps({
        "summary": "The user asked about sending money to Bangladesh.",
        "keyTopics": ["remittance", "fees"],
        "userPreferences": {"destination": "Bangladesh", "occupation": "construction"},
        "enhancedQuery": "I want to send money to a bank account in Bangladesh.",
    })


@pytest.fixture
def envelope_factory():
    return make_envelope

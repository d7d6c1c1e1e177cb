"""Dialogflow CX detectIntent over REST.

The agent keeps its own conversation state keyed by the session id in the
request path; this client is stateless apart from its HTTP connection pool.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx
import structlog

from libs.common.settings import Settings
from libs.google.auth import AccessTokenProvider, get_access_token_provider

logger = structlog.get_logger(__name__)


class DialogflowError(Exception):
    """Any failure talking to the agent: transport, auth, quota or a bad payload."""


@dataclass
class IntentReply:
    """Agent reply envelope plus the text selected for rewriting."""

    agent_reply: str
    envelope: Dict[str, Any] = field(default_factory=dict)


def extract_agent_reply(envelope: Dict[str, Any]) -> str:
    """Return the first non-empty text response message, or ``""`` if there is none."""
    query_result = envelope.get("queryResult") or {}
    for message in query_result.get("responseMessages") or []:
        texts = ((message or {}).get("text") or {}).get("text") or []
        for text in texts:
            if isinstance(text, str) and text.strip():
                return text
    return ""


class DialogflowClient:
    """
    Client for a single Dialogflow CX agent.

    Usage:
        async with httpx.AsyncClient() as http:
            client = DialogflowClient(settings, http)
            reply = await client.detect_intent(session_id, "How do I send money home?")
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        token_provider: Optional[AccessTokenProvider] = None,
    ):
        self.settings = settings
        self.http = http_client
        self.token_provider = token_provider or get_access_token_provider()

    def session_url(self, session_id: str) -> str:
        s = self.settings
        return (
            f"https://{s.gcloud_subdomain_region}-dialogflow.googleapis.com/v3/"
            f"projects/{s.gcloud_project_id}/locations/{s.gcloud_region_id}/"
            f"agents/{s.gcloud_agent_id}/sessions/{session_id}:detectIntent"
        )

    def build_payload(self, text: str, language_code: str) -> Dict[str, Any]:
        return {
            "queryInput": {"text": {"text": text}, "languageCode": language_code},
            "queryParams": {"timeZone": self.settings.time_zone},
        }

    async def detect_intent(
        self,
        session_id: str,
        text: str,
        language_code: Optional[str] = None,
    ) -> IntentReply:
        """
        Submit one text query to the agent.

        Raises:
            DialogflowError: On any transport, auth, quota or decoding failure
        """
        language_code = language_code or self.settings.language_code
        try:
            token = await self.token_provider.get_access_token()
            response = await self.http.post(
                self.session_url(session_id),
                json=self.build_payload(text, language_code),
                headers={
                    "Authorization": f"Bearer {token}",
                    "x-goog-user-project": self.settings.gcloud_project_id or "",
                    "Content-Type": "application/json; charset=utf-8",
                },
                timeout=self.settings.dialogflow_timeout_seconds,
            )
            response.raise_for_status()
            envelope = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Dialogflow API error",
                status_code=e.response.status_code,
                error=e.response.text[:500],
            )
            raise DialogflowError(f"detectIntent returned {e.response.status_code}") from e
        except Exception as e:
            logger.error("Dialogflow request failed", error=str(e))
            raise DialogflowError(str(e)) from e

        if not isinstance(envelope, dict):
            raise DialogflowError("detectIntent returned a non-object body")

        return IntentReply(agent_reply=extract_agent_reply(envelope), envelope=envelope)

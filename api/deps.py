"""Backend handles and the dependencies that hand them to requests.

Backends are built once in the application lifespan and closed on shutdown:
one HTTP connection pool for the agent, one access token provider, one
channel per Google service, and one compiled turn graph. Requests get them
through the dependencies below; tests replace those with fakes through
``app.dependency_overrides``.
"""

import httpx
import structlog
from fastapi import Request, WebSocket

from api.llm.client import GenerativeClient
from api.orchestrators.turn_orchestrator import TurnOrchestrator
from libs.common.settings import Settings
from libs.dialogflow.client import DialogflowClient
from libs.google.auth import get_access_token_provider
from libs.google.speech import SpeechRelay
from libs.google.text_to_speech import TextToSpeechService
from libs.google.vision import FileContentExtractor

logger = structlog.get_logger(__name__)


class Backends:
    """Clients shared by all requests for the lifetime of the app."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.http = httpx.AsyncClient(timeout=settings.dialogflow_timeout_seconds)
        self.extractor = FileContentExtractor()
        self.text_to_speech = TextToSpeechService(settings)
        self.speech_relay = SpeechRelay(settings)
        self.orchestrator = TurnOrchestrator(
            settings=settings,
            llm=GenerativeClient(settings),
            intent_client=DialogflowClient(settings, self.http, get_access_token_provider()),
            extractor=self.extractor,
        )

    async def aclose(self) -> None:
        await self.http.aclose()
        await self.extractor.aclose()
        await self.text_to_speech.aclose()
        await self.speech_relay.aclose()
        logger.info("Backend clients closed")


def get_turn_orchestrator(request: Request) -> TurnOrchestrator:
    return request.app.state.backends.orchestrator


def get_text_to_speech_service(request: Request) -> TextToSpeechService:
    return request.app.state.backends.text_to_speech


def get_speech_relay(websocket: WebSocket) -> SpeechRelay:
    return websocket.app.state.backends.speech_relay

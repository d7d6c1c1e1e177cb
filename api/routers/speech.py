from __future__ import annotations

import json

import structlog
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from fastapi.responses import ORJSONResponse, Response

from api.deps import get_speech_relay, get_text_to_speech_service
from api.errors import ConfigurationError
from api.models import ErrorResponse, TextToSpeechRequest
from libs.common.settings import Settings, get_settings
from libs.google.speech import RecognitionStream, SpeechRelay, Transcript
from libs.google.text_to_speech import LanguageDetectionError, TextToSpeechService

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post(
    "/tts",
    response_class=Response,
    responses={
        200: {"content": {"audio/mpeg": {}}},
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    tags=["Speech"],
)
async def text_to_speech(
    payload: TextToSpeechRequest,
    settings: Settings = Depends(get_settings),
    service: TextToSpeechService = Depends(get_text_to_speech_service),
) -> Response:
    """Synthesize a reply as MP3 in the language it is written in.

    Example:
        ```bash
        curl -X POST http://localhost:8000/api/tts \\
          -H "Content-Type: application/json" \\
          -d '{"text": "Your card has been blocked."}' -o speech.mp3
        ```
    """
    if not settings.gcloud_project_id:
        raise ConfigurationError(["gcloud_project_id"])

    if not payload.text or not payload.text.strip():
        return ORJSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Text is required"})

    try:
        audio = await service.synthesize(payload.text)
    except LanguageDetectionError:
        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to detect language"},
        )
    except Exception as e:
        logger.error("Text to speech failed", error=str(e))
        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to convert text to speech"},
        )

    return Response(
        content=audio,
        media_type="audio/mpeg",
        headers={"Content-Disposition": "attachment; filename=speech.mp3"},
    )


@router.websocket("/stt")
async def speech_to_text(websocket: WebSocket, relay: SpeechRelay = Depends(get_speech_relay)) -> None:
    """Relay browser audio to streaming recognition and send transcripts back.

    Text frames carry control events (``startGoogleCloudStream``,
    ``endGoogleCloudStream``); binary frames carry LINEAR16 audio.
    """
    await websocket.accept()
    stream: RecognitionStream | None = None

    async def send_transcript(transcript: Transcript) -> None:
        await websocket.send_json(transcript.to_message())

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            if message.get("bytes") is not None:
                if stream is not None and stream.active:
                    stream.write(message["bytes"])
                continue

            try:
                event = json.loads(message.get("text") or "").get("event")
            except (json.JSONDecodeError, AttributeError):
                logger.warning("Ignored malformed control message")
                continue

            if event == "startGoogleCloudStream":
                if stream is not None:
                    await stream.aclose()
                stream = RecognitionStream(relay, send_transcript)
                stream.start()
            elif event == "endGoogleCloudStream":
                if stream is not None:
                    stream.end()
                    await stream.wait_closed()
                    stream = None
            else:
                logger.info("Unknown speech event", speech_event=event)
    except WebSocketDisconnect:
        pass
    finally:
        # The socket is gone; pending transcripts have nowhere to go
        if stream is not None:
            await stream.aclose()
        logger.info("Speech client disconnected")

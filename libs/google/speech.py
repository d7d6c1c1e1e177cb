"""
Streaming speech recognition relay.

Audio arrives from the browser as LINEAR16 chunks; transcripts go back as
interim and final events. One ``RecognitionStream`` lives for one
start/end cycle on a socket.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

import structlog
from google.cloud import speech

from libs.common.settings import Settings

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Transcript:
    transcript: str
    is_final: bool

    @property
    def event(self) -> str:
        return "finalTranscription" if self.is_final else "interimTranscription"

    def to_message(self) -> dict[str, str]:
        return {"event": self.event, "transcript": self.transcript}


class SpeechRelay:
    """Wraps ``SpeechAsyncClient.streaming_recognize`` for one audio stream."""

    def __init__(self, settings: Settings, client: Optional[Any] = None):
        self.settings = settings
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = speech.SpeechAsyncClient()
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.transport.close()
            self._client = None

    def streaming_config(self) -> speech.StreamingRecognitionConfig:
        return speech.StreamingRecognitionConfig(
            config=speech.RecognitionConfig(
                encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
                sample_rate_hertz=self.settings.stt_sample_rate_hertz,
                language_code=self.settings.stt_language_code,
            ),
            interim_results=True,
        )

    async def transcribe(self, audio: AsyncIterator[bytes]) -> AsyncIterator[Transcript]:
        """Yield a transcript for the top alternative of each recognition result."""

        async def requests():
            yield speech.StreamingRecognizeRequest(streaming_config=self.streaming_config())
            async for chunk in audio:
                yield speech.StreamingRecognizeRequest(audio_content=chunk)

        responses = await self.client.streaming_recognize(requests=requests())
        async for response in responses:
            if not response.results:
                continue
            result = response.results[0]
            if not result.alternatives:
                continue
            yield Transcript(transcript=result.alternatives[0].transcript, is_final=result.is_final)


class RecognitionStream:
    """
    Bridges socket frames to a background recognition task.

    Usage:
        stream = RecognitionStream(relay, send_json)
        stream.start()
        stream.write(chunk)   # for each binary frame
        stream.end()
    """

    def __init__(self, relay: SpeechRelay, on_transcript: Callable[[Transcript], Awaitable[None]]):
        self.relay = relay
        self.on_transcript = on_transcript
        self._queue: asyncio.Queue[Optional[bytes]] = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self._task = asyncio.create_task(self._run())

    def write(self, chunk: bytes) -> None:
        self._queue.put_nowait(chunk)

    def end(self) -> None:
        self._queue.put_nowait(None)

    async def wait_closed(self) -> None:
        if self._task is not None:
            await self._task

    async def aclose(self) -> None:
        """Stop recognition without waiting for final results."""
        self.end()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    async def _chunks(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                return
            yield chunk

    async def _run(self) -> None:
        try:
            async for transcript in self.relay.transcribe(self._chunks()):
                await self.on_transcript(transcript)
        except Exception as e:
            # Recognition errors end this stream only; the socket stays open.
            logger.error("Speech recognition error", error=str(e))

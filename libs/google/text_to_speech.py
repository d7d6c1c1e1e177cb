"""Text-to-speech: detect the language of a reply, then synthesize it as MP3."""

from __future__ import annotations

from typing import Any, Optional
from xml.sax.saxutils import escape

import structlog
from google.cloud import texttospeech, translate_v3

from libs.common.settings import Settings

logger = structlog.get_logger(__name__)

# Preferred voices; other languages use the service default for the language.
VOICE_BY_LANGUAGE = {
    "en": "en-US-Neural2-F",
    "cmn": "cmn-TW-Wavenet-A",
}


class LanguageDetectionError(Exception):
    pass


class SynthesisError(Exception):
    pass


def build_ssml(text: str) -> str:
    """Wrap text in SSML with a slightly slower rate and a pause after each sentence."""
    body = escape(text).replace(". ", '.<break time="0.5s"/>')
    return f'<speak><prosody rate="0.9" pitch="+0.5st">{body}</prosody></speak>'


def voice_for_language(language_code: str) -> texttospeech.VoiceSelectionParams:
    name = VOICE_BY_LANGUAGE.get(language_code)
    if name:
        # Voice names start with their BCP-47 code, e.g. en-US-Neural2-F.
        return texttospeech.VoiceSelectionParams(language_code="-".join(name.split("-")[:2]), name=name)
    return texttospeech.VoiceSelectionParams(language_code=language_code)


class TextToSpeechService:
    """Cloud Translation language detection followed by Cloud Text-to-Speech synthesis."""

    def __init__(
        self,
        settings: Settings,
        translation_client: Optional[Any] = None,
        tts_client: Optional[Any] = None,
    ):
        self.settings = settings
        self._translation_client = translation_client
        self._tts_client = tts_client

    @property
    def translation_client(self) -> Any:
        if self._translation_client is None:
            self._translation_client = translate_v3.TranslationServiceAsyncClient()
        return self._translation_client

    @property
    def tts_client(self) -> Any:
        if self._tts_client is None:
            self._tts_client = texttospeech.TextToSpeechAsyncClient()
        return self._tts_client

    async def aclose(self) -> None:
        """Close whichever service channels were opened."""
        if self._translation_client is not None:
            await self._translation_client.transport.close()
            self._translation_client = None
        if self._tts_client is not None:
            await self._tts_client.transport.close()
            self._tts_client = None

    async def detect_language(self, text: str) -> str:
        """
        Raises:
            LanguageDetectionError: If the service fails or returns no language
        """
        try:
            response = await self.translation_client.detect_language(
                request={
                    "parent": f"projects/{self.settings.gcloud_project_id}/locations/global",
                    "content": text,
                    "mime_type": "text/plain",
                }
            )
        except Exception as e:
            logger.error("Language detection failed", error=str(e))
            raise LanguageDetectionError(str(e)) from e

        languages = list(response.languages)
        if not languages or not languages[0].language_code:
            raise LanguageDetectionError("no language detected")
        return languages[0].language_code

    async def synthesize(self, text: str) -> bytes:
        """
        Synthesize ``text`` in its detected language.

        Raises:
            LanguageDetectionError: If the language cannot be detected
            SynthesisError: If synthesis fails
        """
        language_code = await self.detect_language(text)
        try:
            response = await self.tts_client.synthesize_speech(
                input=texttospeech.SynthesisInput(ssml=build_ssml(text)),
                voice=voice_for_language(language_code),
                audio_config=texttospeech.AudioConfig(
                    audio_encoding=texttospeech.AudioEncoding.MP3,
                    pitch=0,
                    speaking_rate=self.settings.tts_speaking_rate,
                ),
            )
        except Exception as e:
            logger.error("Speech synthesis failed", error=str(e), language_code=language_code)
            raise SynthesisError(str(e)) from e

        logger.info("Speech synthesized", language_code=language_code, audio_bytes=len(response.audio_content))
        return response.audio_content

"""Speech-to-text for recorded voice commands (OpenAI audio transcription API)."""
import base64
import binascii
import logging
import mimetypes
from typing import Optional, Protocol

import openai

from errors import TranscriptionError

logger = logging.getLogger(__name__)


class Transcriber(Protocol):
    async def transcribe(self, audio: bytes, mime_type: str) -> str: ...


def decode_data_uri(data_uri: str) -> tuple[str, bytes]:
    """
    Split a "data:<mimetype>;base64,<data>" URI into (mime type, raw bytes).
    Raises TranscriptionError for anything else.
    """
    if not data_uri or not data_uri.startswith("data:"):
        raise TranscriptionError("Audio must be a data URI")
    header, sep, encoded = data_uri.partition(",")
    if not sep or not header.endswith(";base64"):
        raise TranscriptionError("Audio data URI must be base64 encoded")
    mime_type = header[len("data:"):-len(";base64")].split(";")[0] or "application/octet-stream"
    try:
        audio = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise TranscriptionError(f"Invalid base64 audio data: {e}") from e
    if not audio:
        raise TranscriptionError("Audio recording is empty")
    return mime_type, audio


class WhisperTranscriber:
    def __init__(
        self,
        api_key: Optional[str],
        *,
        model: str = "whisper-1",
        client: Optional[openai.AsyncOpenAI] = None,
    ):
        self._model = model
        self._client = client
        if self._client is None and api_key:
            self._client = openai.AsyncOpenAI(api_key=api_key, max_retries=0)

    async def transcribe(self, audio: bytes, mime_type: str) -> str:
        if self._client is None:
            raise TranscriptionError("Transcription API key not configured")
        if not audio:
            raise TranscriptionError("Audio recording is empty")

        extension = mimetypes.guess_extension(mime_type) or ".webm"
        try:
            result = await self._client.audio.transcriptions.create(
                model=self._model,
                file=(f"command{extension}", audio, mime_type),
            )
        except openai.APIError as e:
            raise TranscriptionError(f"Transcription failed: {e}") from e

        text = (getattr(result, "text", "") or "").strip()
        if not text:
            raise TranscriptionError("Transcription failed or returned empty.")
        logger.info("Transcribed %d bytes of %s into %d chars", len(audio), mime_type, len(text))
        return text

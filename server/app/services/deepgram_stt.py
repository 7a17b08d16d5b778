"""
Deepgram Speech-to-Text service for recorded questions.

Transcribes Twilio recordings (by URL) and browser uploads (by bytes)
with Deepgram's pre-recorded API. Configured for a single speaker with
Indian English accent recognition.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from deepgram import DeepgramClient, PrerecordedOptions

logger = logging.getLogger(__name__)

MIME_TYPES: Dict[str, str] = {
    ".mp3": "audio/mp3",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".m4a": "audio/m4a",
    ".webm": "audio/webm",
    ".flac": "audio/flac",
}


class TranscriptionError(Exception):
    """Provider failure or unreadable response.

    An empty transcript is not an error; it comes back as a normal result.
    """


@dataclass
class TranscriptionResult:
    transcript: str
    confidence: float
    language: str

    @property
    def is_empty(self) -> bool:
        return not self.transcript or not self.transcript.strip()


def mimetype_for(path: str) -> str:
    """Guess the audio MIME type from a file extension."""
    return MIME_TYPES.get(Path(path).suffix.lower(), "audio/mp3")


class DeepgramSTTService:
    """
    Deepgram pre-recorded transcription.

    Configured for question recordings with:
    - nova-2 model (most accurate)
    - en-IN language for regional accent recognition
    - Smart formatting and punctuation
    - No diarization or profanity filtering (single speaker)
    """

    def __init__(
        self,
        api_key: str,
        model: str = "nova-2",
        language: str = "en-IN",
        client: Optional[DeepgramClient] = None,
    ):
        """
        Initialize Deepgram STT service.

        Args:
            api_key: Deepgram API key
            model: Recognition model (default: nova-2)
            language: Language/locale code (default: en-IN)
            client: Preconfigured client, mainly for tests
        """
        self.api_key = api_key
        self.model = model
        self.language = language
        self.client = client or DeepgramClient(api_key)

        self.options = PrerecordedOptions(
            model=model,
            language=language,
            smart_format=True,  # Auto-capitalize, punctuate, format numbers
            punctuate=True,
            diarize=False,
            filler_words=False,
            profanity_filter=False,
        )

        logger.info(f"DeepgramSTTService initialized with {model} ({language})")

    async def transcribe_url(self, audio_url: str) -> TranscriptionResult:
        """
        Transcribe audio hosted at a URL (Twilio recordings).

        Raises:
            TranscriptionError: If Deepgram fails or returns an unreadable response
        """
        start_time = time.time()
        logger.info(f"Starting transcription from URL: {audio_url}")

        try:
            response = await self.client.listen.asyncrest.v("1").transcribe_url(
                {"url": audio_url}, self.options
            )
        except Exception as e:
            logger.error(f"Deepgram error: {e}")
            raise TranscriptionError(f"Transcription failed: {e}") from e

        result = self._parse_response(response)
        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Transcription completed in {elapsed_ms:.0f}ms "
            f"with {result.confidence * 100:.1f}% confidence"
        )
        return result

    async def transcribe_bytes(
        self, audio: bytes, mimetype: str = "audio/wav"
    ) -> TranscriptionResult:
        """
        Transcribe a raw audio buffer (browser demo uploads).

        Raises:
            TranscriptionError: If the buffer is empty or Deepgram fails
        """
        if not audio:
            raise TranscriptionError("Audio buffer is empty")

        start_time = time.time()
        logger.info(f"Starting transcription from buffer, size: {len(audio)} bytes")

        try:
            response = await self.client.listen.asyncrest.v("1").transcribe_file(
                {"buffer": audio},
                self.options,
                headers={"Content-Type": mimetype},
            )
        except Exception as e:
            logger.error(f"Deepgram error: {e}")
            raise TranscriptionError(f"Transcription failed: {e}") from e

        result = self._parse_response(response)
        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(f"Buffer transcription completed in {elapsed_ms:.0f}ms")
        return result

    async def transcribe_file(self, path: str) -> TranscriptionResult:
        """Transcribe a local audio file."""
        try:
            audio = Path(path).read_bytes()
        except OSError as e:
            raise TranscriptionError(f"Cannot read audio file {path}: {e}") from e
        return await self.transcribe_bytes(audio, mimetype_for(path))

    @staticmethod
    def _parse_response(response: Any) -> TranscriptionResult:
        try:
            channel = response.results.channels[0]
            alternative = channel.alternatives[0]
        except (AttributeError, IndexError, TypeError) as e:
            raise TranscriptionError("Malformed transcription response") from e

        return TranscriptionResult(
            transcript=alternative.transcript or "",
            confidence=alternative.confidence or 0.0,
            language=getattr(channel, "detected_language", None) or "en",
        )

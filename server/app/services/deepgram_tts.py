"""
Deepgram Text-to-Speech service for answer playback.

Uses Deepgram's Aura REST endpoint to render a whole answer at once,
either to an MP3 file served back to Twilio via <Play> or to an
in-memory buffer for the web demo.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import httpx

logger = logging.getLogger(__name__)

DEEPGRAM_TTS_API = "https://api.deepgram.com/v1/speak"

# Deepgram Aura-2 voices
AURA_VOICES: List[str] = [
    "aura-2-thalia-en",  # feminine, American, Clear/Confident/Energetic
    "aura-2-andromeda-en",  # feminine, American, Casual/Expressive
    "aura-2-helena-en",  # feminine, American, Caring/Natural/Friendly
    "aura-2-apollo-en",  # masculine, American, Confident/Casual
    "aura-2-arcas-en",  # masculine, American, Natural/Smooth/Clear
    "aura-2-aries-en",  # masculine, American, Warm/Energetic/Caring
    "aura-2-orpheus-en",  # masculine, American, Professional/Clear/Trustworthy
    "aura-2-zeus-en",  # masculine, American, Deep/Trustworthy/Smooth
]


class SynthesisError(Exception):
    """Speech synthesis failed."""

    reason = "synthesis_failed"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class EmptyTextError(SynthesisError):
    reason = "empty_text"


class TextTooLongError(SynthesisError):
    reason = "text_too_long"


class SynthesisAuthError(SynthesisError):
    reason = "authentication_failed"


class SynthesisRequestError(SynthesisError):
    reason = "invalid_request"


class SynthesisPayloadTooLargeError(SynthesisError):
    reason = "payload_too_large"


class SynthesisRateLimitError(SynthesisError):
    reason = "rate_limited"


@dataclass
class TTSResult:
    audio_path: str
    audio_url: str


def classify_http_error(status_code: int, detail: str, max_chars: int) -> SynthesisError:
    """Map a Deepgram HTTP failure to a typed error."""
    if status_code in (401, 403):
        return SynthesisAuthError(
            "Deepgram authentication failed. Please check your API key.", status_code
        )
    if status_code == 400:
        return SynthesisRequestError(
            f"Invalid request: {detail}. Please check the text and model parameters.",
            status_code,
        )
    if status_code == 413:
        return SynthesisPayloadTooLargeError(
            f"Text too long. Deepgram TTS has a {max_chars} character limit.", status_code
        )
    if status_code == 429:
        return SynthesisRateLimitError(
            "Deepgram rate limit exceeded. Please wait and try again.", status_code
        )
    return SynthesisError(f"Failed to synthesize speech: {detail}", status_code)


class DeepgramTTSService:
    """
    Deepgram Text-to-Speech over REST.

    The voice model is chosen per call; the service holds no mutable voice
    state, so concurrent calls can use different voices safely.
    """

    def __init__(
        self,
        api_key: str,
        output_dir: str,
        base_url: str,
        default_model: str = "aura-2-thalia-en",
        max_chars: int = 2000,
        api_url: str = DEEPGRAM_TTS_API,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize Deepgram TTS service.

        Args:
            api_key: Deepgram API key
            output_dir: Directory synthesized files are written to
            base_url: Public base URL; files are served from {base_url}/audio/
            default_model: Voice used when a call does not pick one
            max_chars: Longest accepted input text
            api_url: Speak endpoint
            timeout: HTTP timeout in seconds
            http_client: Shared client, mainly for tests
        """
        self.api_key = api_key
        self.output_dir = Path(output_dir)
        self.base_url = base_url.rstrip("/")
        self.default_model = default_model
        self.max_chars = max_chars
        self.api_url = api_url
        self.timeout = timeout
        self._http_client = http_client

        self.output_dir.mkdir(parents=True, exist_ok=True)

        logger.info(
            f"DeepgramTTSService initialized: model={default_model}, output_dir={self.output_dir}"
        )

    def validate_text(self, text: str) -> None:
        """
        Reject text Deepgram would refuse, before any request is made.

        Raises:
            EmptyTextError: If text is empty or whitespace
            TextTooLongError: If text exceeds max_chars
        """
        if not text or not text.strip():
            raise EmptyTextError("Text is required for speech synthesis")
        if len(text) > self.max_chars:
            raise TextTooLongError(
                f"Text is {len(text)} characters; Deepgram TTS accepts at most {self.max_chars}."
            )

    async def synthesize_to_buffer(self, text: str, model: Optional[str] = None) -> bytes:
        """
        Convert text to MP3 bytes.

        Raises:
            SynthesisError: Validation or provider failure (see subclasses)
        """
        self.validate_text(text)
        voice = model or self.default_model

        start_time = time.time()
        preview = f"{text[:100]}{'...' if len(text) > 100 else ''}"
        logger.info(f"🔊 TTS Input: \"{preview}\"")

        audio = await self._request_audio(text, voice)

        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(f"✅ TTS completed in {elapsed_ms:.0f}ms, size: {len(audio)} bytes")
        return audio

    async def synthesize_to_file(
        self,
        text: str,
        filename: Optional[str] = None,
        model: Optional[str] = None,
    ) -> TTSResult:
        """
        Convert text to an MP3 file under output_dir.

        Args:
            text: Text to synthesize
            filename: File name; re-using a name overwrites the earlier file
            model: Voice model for this call

        Returns:
            TTSResult with local path and public URL
        """
        audio = await self.synthesize_to_buffer(text, model=model)

        audio_file_name = filename or f"{uuid.uuid4()}.mp3"
        audio_path = self.output_dir / audio_file_name
        try:
            audio_path.write_bytes(audio)
        except OSError as e:
            logger.error(f"❌ Failed to write audio file {audio_path}: {e}")
            raise SynthesisError(f"Failed to store synthesized audio: {e}") from e

        return TTSResult(
            audio_path=str(audio_path),
            audio_url=f"{self.base_url}/audio/{audio_file_name}",
        )

    async def _request_audio(self, text: str, model: str) -> bytes:
        headers = {
            "Authorization": f"Token {self.api_key}",
            "Content-Type": "application/json",
        }
        params = {"model": model, "encoding": "mp3"}

        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    self.api_url, params=params, headers=headers, json={"text": text}
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(
                        self.api_url, params=params, headers=headers, json={"text": text}
                    )
        except httpx.HTTPError as e:
            logger.error(f"❌ Deepgram TTS transport error: {e}")
            raise SynthesisError(f"Failed to reach Deepgram TTS: {e}") from e

        if response.status_code >= 400:
            detail = self._error_detail(response)
            logger.error(f"❌ Deepgram TTS Error [{response.status_code}]: {detail}")
            raise classify_http_error(response.status_code, detail, self.max_chars)

        if not response.content:
            raise SynthesisError("Deepgram returned an empty audio stream")

        return response.content

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or "Unknown error"
        return body.get("err_msg") or body.get("message") or str(body)

    def available_voices(self) -> List[str]:
        return list(AURA_VOICES)

    def cleanup_old_files(self, max_age_hours: float = 24) -> int:
        """
        Delete synthesized files older than max_age_hours.

        Best effort: per-file errors are logged and skipped, and a failure to
        list the directory returns the count so far.

        Returns:
            Number of files deleted
        """
        deleted_count = 0
        cutoff = time.time() - max_age_hours * 3600

        try:
            entries = list(self.output_dir.iterdir())
        except OSError as e:
            logger.error(f"Cleanup error listing {self.output_dir}: {e}")
            return deleted_count

        for path in entries:
            try:
                if path.is_file() and path.stat().st_mtime < cutoff:
                    path.unlink()
                    deleted_count += 1
            except OSError as e:
                logger.warning(f"Could not remove {path}: {e}")

        logger.info(f"Cleaned up {deleted_count} old audio files")
        return deleted_count

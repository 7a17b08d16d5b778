"""
Call flow state machine for the voice tutor.

Twilio keeps no session between webhooks, so each callback rebuilds what
it needs from the CallSid, the caller's number, and the `level` query
parameter we attach to our own redirect URLs:

    ENTRY → LEVEL_SELECT → RECORDING → PROCESSING → ANSWERED
                  ↑  (timeout: default level)   │
                  └──────── RECORDING ←─────────┤ CONTINUE_LOOP, digit 1
                                                └→ ENDED, anything else

Recoverable turns (no recording, nothing understood) loop back to
RECORDING at the same level. Provider failures after retries and fallback
end the call with an apology.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from app.services.answer_generator import AnswerGenerator, GenerationError
from app.services.deepgram_stt import DeepgramSTTService, TranscriptionError
from app.services.deepgram_tts import DeepgramTTSService, SynthesisError
from app.services.education_levels import EducationCategory, resolve_level
from app.services.session_store import (
    GenerationContext,
    SessionStore,
    SessionStoreError,
    is_private_number,
)
from app.utils.performance_metrics import PerformanceMetrics

logger = logging.getLogger(__name__)


class CallState(Enum):
    """Call flow states. Only the level travels between webhooks."""

    ENTRY = "entry"
    LEVEL_SELECT = "level_select"
    RECORDING = "recording"
    PROCESSING = "processing"
    ANSWERED = "answered"
    CONTINUE_LOOP = "continue_loop"
    ENDED = "ended"


class TurnOutcome(Enum):
    """How a PROCESSING callback ended."""

    ANSWERED = "answered"  # → ANSWERED, play audio and offer to continue
    NO_RECORDING = "no_recording"  # → RECORDING, same level
    EMPTY_TRANSCRIPT = "empty_transcript"  # → RECORDING, same level
    FAILED = "failed"  # → ENDED with apology


@dataclass
class TurnResult:
    outcome: TurnOutcome
    level: EducationCategory
    question: Optional[str] = None
    answer: Optional[str] = None
    audio_url: Optional[str] = None
    response_time_ms: int = 0
    timings: Dict[str, float] = field(default_factory=dict)

    @property
    def next_state(self) -> CallState:
        if self.outcome is TurnOutcome.ANSWERED:
            return CallState.ANSWERED
        if self.outcome is TurnOutcome.FAILED:
            return CallState.ENDED
        return CallState.RECORDING


CONTINUE_DIGIT = "1"


def next_state_after_continue(digit: Optional[str]) -> CallState:
    """
    Continue-or-end prompt.

    "1" asks another question at the same level. "2", a timeout, and any
    other key all end the call.
    """
    if digit is not None and digit.strip() == CONTINUE_DIGIT:
        return CallState.RECORDING
    return CallState.ENDED


def audio_file_name(call_sid: str, recording_sid: Optional[str] = None) -> str:
    """
    Deterministic file name for one turn's answer.

    Re-processing the same recording overwrites the same file; different
    calls never share a name.
    """
    turn_id = f"{call_sid}_{recording_sid}" if recording_sid else f"{call_sid}_response"
    return re.sub(r"[^A-Za-z0-9_-]", "", turn_id) + ".mp3"


def recording_is_empty(recording_url: Optional[str], recording_duration: Optional[str]) -> bool:
    if not recording_url or not recording_url.strip():
        return True
    if recording_duration is None:
        return False
    try:
        return int(recording_duration) <= 0
    except ValueError:
        return False


class CallFlowOrchestrator:
    """
    Runs the per-turn pipeline for a finished recording.

    Steps run strictly in order, each awaited before the next:
        1. Recording present?               no  → NO_RECORDING
        2. Transcribe                       blank → EMPTY_TRANSCRIPT
        3. Find or create caller
        4. Recent context (never fails)
        5. Generate answer (retry + fallback inside)
        6. Synthesize answer audio
        7. Record turn, bump count, remember level (failures logged only)
        8. Log timings

    process_recording never raises; every failure maps to a TurnOutcome.
    """

    def __init__(
        self,
        stt: DeepgramSTTService,
        generator: AnswerGenerator,
        tts: DeepgramTTSService,
        store: SessionStore,
        tts_model: Optional[str] = None,
    ):
        self.stt = stt
        self.generator = generator
        self.tts = tts
        self.store = store
        self.tts_model = tts_model

    async def process_recording(
        self,
        call_sid: str,
        caller_number: str,
        recording_url: Optional[str],
        level: Optional[str],
        recording_sid: Optional[str] = None,
        recording_duration: Optional[str] = None,
    ) -> TurnResult:
        """
        Turn a recorded question into a spoken answer.

        Args:
            call_sid: Twilio CallSid
            caller_number: Twilio From
            recording_url: Twilio RecordingUrl (absent if nothing was recorded)
            level: `level` query parameter, untrusted
            recording_sid: Twilio RecordingSid, used to name the audio file
            recording_duration: Twilio RecordingDuration in seconds

        Returns:
            TurnResult describing the next state
        """
        category = resolve_level(level)
        metrics = PerformanceMetrics()

        logger.info(f"Processing recording for {caller_number}, Level: {category.id}")

        if recording_is_empty(recording_url, recording_duration):
            logger.warning(f"No usable recording for call {call_sid}")
            return TurnResult(TurnOutcome.NO_RECORDING, category)

        try:
            return await self._run_pipeline(
                call_sid, caller_number, recording_url, category, recording_sid, metrics
            )
        except (TranscriptionError, GenerationError, SynthesisError, SessionStoreError) as e:
            logger.error(f"Turn failed for call {call_sid}: {type(e).__name__}: {e}")
        except Exception as e:
            logger.error(f"Unexpected error processing call {call_sid}: {e}", exc_info=True)

        metrics.log_summary(call_sid)
        return TurnResult(
            TurnOutcome.FAILED,
            category,
            response_time_ms=metrics.elapsed_ms(),
            timings=metrics.get_metrics(),
        )

    async def _run_pipeline(
        self,
        call_sid: str,
        caller_number: str,
        recording_url: str,
        category: EducationCategory,
        recording_sid: Optional[str],
        metrics: PerformanceMetrics,
    ) -> TurnResult:
        # 1-2. Transcribe
        logger.info("Step 1: Transcribing audio...")
        with metrics.track("transcription"):
            transcription = await self.stt.transcribe_url(recording_url)

        if transcription.is_empty:
            logger.info(f"Empty transcript for call {call_sid}; asking caller to repeat")
            return TurnResult(TurnOutcome.EMPTY_TRANSCRIPT, category)

        question = transcription.transcript.strip()
        logger.info(f"Transcript: \"{question}\"")

        # 3-4. Caller and context
        caller = None
        context = GenerationContext.empty()
        if is_private_number(caller_number):
            logger.info("Private caller ID; answering without history")
        else:
            logger.info("Step 2: Getting caller...")
            with metrics.track("caller_lookup"):
                caller = await self.store.find_or_create_caller(caller_number)

            logger.info("Step 3: Fetching conversation context...")
            with metrics.track("context"):
                context = await self.store.recent_context(caller.id)

        # 5. Generate
        logger.info("Step 4: Generating AI response...")
        with metrics.track("generation"):
            generation = await self.generator.generate(question, category, context)
        logger.info(f"AI Response generated ({len(generation.text)} chars)")

        # 6. Synthesize
        logger.info("Step 5: Synthesizing speech...")
        with metrics.track("synthesis"):
            tts_result = await self.tts.synthesize_to_file(
                generation.text,
                filename=audio_file_name(call_sid, recording_sid),
                model=self.tts_model,
            )

        # 7. Persist
        response_time_ms = metrics.elapsed_ms()
        if caller is not None:
            logger.info("Step 6: Saving conversation...")
            with metrics.track("persistence"):
                await self._save_turn(
                    caller.id,
                    caller.phone_number,
                    category,
                    question,
                    generation.text,
                    response_time_ms,
                    tts_result.audio_url,
                )

        # 8. Observability
        metrics.log_summary(call_sid)
        logger.info(f"Total processing time: {metrics.elapsed_ms()}ms")

        return TurnResult(
            TurnOutcome.ANSWERED,
            category,
            question=question,
            answer=generation.text,
            audio_url=tts_result.audio_url,
            response_time_ms=response_time_ms,
            timings=metrics.get_metrics(),
        )

    async def _save_turn(
        self,
        caller_id: int,
        phone_number: str,
        category: EducationCategory,
        question: str,
        answer: str,
        response_time_ms: int,
        audio_url: str,
    ) -> None:
        """The answer is already synthesized; a storage error must not block playback."""
        try:
            await self.store.record_turn(
                caller_id,
                phone_number,
                category.id,
                question,
                answer,
                response_time_ms,
                audio_url,
            )
        except SessionStoreError as e:
            logger.error(f"Turn not saved for caller {caller_id}: {e}")
            return

        await self.store.update_preferred_level(caller_id, category.id)

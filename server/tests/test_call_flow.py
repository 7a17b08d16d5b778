"""Tests for the per-turn call flow pipeline."""

from unittest.mock import AsyncMock

import pytest
from app.models.turn import Turn
from app.services.call_flow import (
    CallFlowOrchestrator,
    CallState,
    TurnOutcome,
    audio_file_name,
    next_state_after_continue,
    recording_is_empty,
)
from app.services.container import ServiceContainer
from app.services.deepgram_stt import TranscriptionError
from app.services.deepgram_tts import SynthesisRateLimitError
from app.services.session_store import SessionStoreError
from conftest import TEST_BASE_URL, TEST_CALL_SID, TEST_PHONE, make_deepgram_client
from sqlalchemy import func, select

RECORDING_URL = "https://api.twilio.com/recordings/RE42"


async def count_turns(session_maker) -> int:
    async with session_maker() as session:
        return await session.scalar(select(func.count()).select_from(Turn))


class TestTransitions:
    def test_continue_with_one_records_again(self):
        assert next_state_after_continue("1") is CallState.RECORDING
        assert next_state_after_continue(" 1") is CallState.RECORDING

    @pytest.mark.parametrize("digit", ["2", None, "", "9", "*", "#"])
    def test_anything_else_ends_the_call(self, digit):
        assert next_state_after_continue(digit) is CallState.ENDED

    def test_recording_is_empty(self):
        assert recording_is_empty(None, None)
        assert recording_is_empty("  ", "5")
        assert recording_is_empty(RECORDING_URL, "0")
        assert not recording_is_empty(RECORDING_URL, "4")
        assert not recording_is_empty(RECORDING_URL, None)

    def test_audio_file_name_is_per_turn(self):
        assert audio_file_name("CA1", "RE1") == "CA1_RE1.mp3"
        assert audio_file_name("CA1") == "CA1_response.mp3"
        assert audio_file_name("CA../1", "RE/2") == "CA1_RE2.mp3"


class TestProcessRecording:
    @pytest.mark.asyncio
    async def test_answered_turn_is_stored(self, services: ServiceContainer):
        result = await services.orchestrator.process_recording(
            call_sid=TEST_CALL_SID,
            caller_number=TEST_PHONE,
            recording_url=RECORDING_URL,
            level="3",
            recording_sid="RE42",
            recording_duration="6",
        )

        assert result.outcome is TurnOutcome.ANSWERED
        assert result.next_state is CallState.ANSWERED
        assert result.level.id == "3"
        assert result.question == "What is photosynthesis?"
        assert result.audio_url == f"{TEST_BASE_URL}/audio/{TEST_CALL_SID}_RE42.mp3"
        assert "transcription_ms" in result.timings

        caller = await services.store.get_caller(TEST_PHONE)
        assert caller.total_calls == 1
        assert caller.preferred_level == "3"
        turns = await services.store.recent_turns_for_phone(TEST_PHONE)
        assert turns[0].education_level == "3"
        assert turns[0].audio_url == result.audio_url

    @pytest.mark.asyncio
    async def test_invalid_level_uses_default(self, services: ServiceContainer):
        result = await services.orchestrator.process_recording(
            TEST_CALL_SID, TEST_PHONE, RECORDING_URL, level="9"
        )
        assert result.outcome is TurnOutcome.ANSWERED
        assert result.level.id == "2"

    @pytest.mark.asyncio
    async def test_zero_length_recording(self, services: ServiceContainer, session_maker):
        result = await services.orchestrator.process_recording(
            TEST_CALL_SID, TEST_PHONE, RECORDING_URL, level="4", recording_duration="0"
        )

        assert result.outcome is TurnOutcome.NO_RECORDING
        assert result.next_state is CallState.RECORDING
        assert result.level.id == "4"
        assert await count_turns(session_maker) == 0

    @pytest.mark.asyncio
    async def test_blank_transcript_asks_again(self, services, session_maker):
        services.stt.client = make_deepgram_client("  ")

        result = await services.orchestrator.process_recording(
            TEST_CALL_SID, TEST_PHONE, RECORDING_URL, level="1"
        )

        assert result.outcome is TurnOutcome.EMPTY_TRANSCRIPT
        assert result.next_state is CallState.RECORDING
        assert await count_turns(session_maker) == 0
        services.generator.client.chat.completions.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_transcription_failure_ends_call(self, services, session_maker):
        services.stt.transcribe_url = AsyncMock(side_effect=TranscriptionError("boom"))

        result = await services.orchestrator.process_recording(
            TEST_CALL_SID, TEST_PHONE, RECORDING_URL, level="2"
        )

        assert result.outcome is TurnOutcome.FAILED
        assert result.next_state is CallState.ENDED
        assert await count_turns(session_maker) == 0

    @pytest.mark.asyncio
    async def test_synthesis_failure_ends_call_without_turn(self, services, session_maker):
        services.tts.synthesize_to_file = AsyncMock(
            side_effect=SynthesisRateLimitError("slow down", 429)
        )

        result = await services.orchestrator.process_recording(
            TEST_CALL_SID, TEST_PHONE, RECORDING_URL, level="2"
        )

        assert result.outcome is TurnOutcome.FAILED
        assert await count_turns(session_maker) == 0

    @pytest.mark.asyncio
    async def test_unexpected_error_is_contained(self, services):
        services.tts.synthesize_to_file = AsyncMock(side_effect=KeyError("surprise"))

        result = await services.orchestrator.process_recording(
            TEST_CALL_SID, TEST_PHONE, RECORDING_URL, level="2"
        )

        assert result.outcome is TurnOutcome.FAILED

    @pytest.mark.asyncio
    async def test_store_failure_still_answers(self, services):
        services.store.record_turn = AsyncMock(side_effect=SessionStoreError("disk full"))
        services.store.update_preferred_level = AsyncMock()

        result = await services.orchestrator.process_recording(
            TEST_CALL_SID, TEST_PHONE, RECORDING_URL, level="2"
        )

        assert result.outcome is TurnOutcome.ANSWERED
        services.store.update_preferred_level.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_private_caller_is_answered_without_history(self, services, session_maker):
        result = await services.orchestrator.process_recording(
            TEST_CALL_SID, "anonymous", RECORDING_URL, level="2"
        )

        assert result.outcome is TurnOutcome.ANSWERED
        assert await count_turns(session_maker) == 0

    @pytest.mark.asyncio
    async def test_second_turn_uses_history(self, services):
        await services.orchestrator.process_recording(
            TEST_CALL_SID, TEST_PHONE, RECORDING_URL, level="2", recording_sid="RE1"
        )
        await services.orchestrator.process_recording(
            TEST_CALL_SID, TEST_PHONE, RECORDING_URL, level="2", recording_sid="RE2"
        )

        create = services.generator.client.chat.completions.create
        first_messages = create.await_args_list[0].kwargs["messages"]
        second_messages = create.await_args_list[1].kwargs["messages"]
        assert [m["role"] for m in first_messages] == ["system", "user"]
        assert [m["role"] for m in second_messages] == ["system", "user", "assistant", "user"]
        assert "Previous Q1: What is photosynthesis?" in second_messages[0]["content"]

    @pytest.mark.asyncio
    async def test_tts_model_override(self, stt, generator, tts, store, tts_requests):
        orchestrator = CallFlowOrchestrator(stt, generator, tts, store, tts_model="aura-2-zeus-en")

        await orchestrator.process_recording(TEST_CALL_SID, TEST_PHONE, RECORDING_URL, level="2")

        assert tts_requests[0].url.params["model"] == "aura-2-zeus-en"

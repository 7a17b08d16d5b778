"""
Twilio voice webhooks for the tutoring call flow.

Each handler answers one Twilio callback with TwiML describing the next
step. No session is kept server-side: the selected level rides along as
the `level` query parameter on every action/redirect URL we emit.
"""

import logging
from typing import Optional

from app.config import settings
from app.services.call_flow import (
    CallState,
    TurnOutcome,
    TurnResult,
    next_state_after_continue,
)
from app.services.container import ServiceContainer, get_services
from app.services.education_levels import DEFAULT_LEVEL, level_menu_text, resolve_level
from fastapi import APIRouter, Depends, Form, Query
from fastapi.responses import Response
from twilio.twiml.voice_response import VoiceResponse

logger = logging.getLogger(__name__)

router = APIRouter()

ROUTE_PREFIX = "/api/twilio"

WELCOME_MESSAGE = "Welcome to Guru Call, your AI-powered voice tutor!"
NO_SELECTION_MESSAGE = "No selection made. Defaulting to Class 6 to 10 level."
NO_SPEECH_MESSAGE = "I did not hear a question. Please try again."
NO_RECORDING_MESSAGE = "Sorry, I could not receive your recording. Please try again."
NOT_UNDERSTOOD_MESSAGE = (
    "Sorry, I could not understand your question. Please speak clearly and try again."
)
ANSWER_INTRO_MESSAGE = "Here is your answer."
CONTINUE_PROMPT = "Press 1 to ask another question, or press 2 to end the call."
NEXT_QUESTION_MESSAGE = "Please ask your next question after the beep."
GOODBYE_MESSAGE = "Thank you for using Guru Call. Goodbye!"
CLOSING_MESSAGE = "Thank you for using Guru Call. Have a great day learning! Goodbye!"
APOLOGY_MESSAGE = (
    "Sorry, an error occurred while processing your question. Please try again later."
)


def say(twiml, text: str) -> None:
    """<Say> with the configured voice and locale."""
    twiml.say(text, voice=settings.TWILIO_VOICE, language=settings.TWILIO_LANGUAGE)


def record_url(level: str) -> str:
    return f"{ROUTE_PREFIX}/record?level={level}"


def twiml_response(response: VoiceResponse) -> Response:
    return Response(content=str(response), media_type="application/xml")


def apology_twiml() -> VoiceResponse:
    """Terminal state for unrecoverable errors: apologize and hang up."""
    response = VoiceResponse()
    say(response, APOLOGY_MESSAGE)
    response.hangup()
    return response


def redirect_to_recording(response: VoiceResponse, level: str) -> VoiceResponse:
    response.redirect(record_url(level), method="POST")
    return response


def render_turn(result: TurnResult) -> VoiceResponse:
    """TwiML for the outcome of a processed recording."""
    level = result.level.id

    if result.outcome is TurnOutcome.NO_RECORDING:
        response = VoiceResponse()
        say(response, NO_RECORDING_MESSAGE)
        return redirect_to_recording(response, level)

    if result.outcome is TurnOutcome.EMPTY_TRANSCRIPT:
        response = VoiceResponse()
        say(response, NOT_UNDERSTOOD_MESSAGE)
        return redirect_to_recording(response, level)

    if result.outcome is TurnOutcome.FAILED:
        return apology_twiml()

    response = VoiceResponse()
    say(response, ANSWER_INTRO_MESSAGE)
    response.play(result.audio_url)

    gather = response.gather(
        num_digits=1,
        action=f"{ROUTE_PREFIX}/continue?level={level}",
        method="POST",
        timeout=settings.CONTINUE_GATHER_TIMEOUT,
    )
    say(gather, CONTINUE_PROMPT)

    # Reached only if the caller presses nothing
    say(response, GOODBYE_MESSAGE)
    response.hangup()
    return response


@router.post("/voice")
async def handle_incoming_call(
    From: Optional[str] = Form(None),
    CallSid: Optional[str] = Form(None),
):
    """
    Twilio webhook for incoming calls (ENTRY).

    Greets the caller and gathers one digit for the education level. If
    the gather times out, Twilio falls through to the default-level
    redirect.
    """
    logger.info(f"Incoming call - From: {From}, CallSid: {CallSid}")

    response = VoiceResponse()
    say(response, WELCOME_MESSAGE)

    gather = response.gather(
        num_digits=1,
        action=f"{ROUTE_PREFIX}/level-selected",
        method="POST",
        timeout=settings.LEVEL_GATHER_TIMEOUT,
    )
    say(gather, level_menu_text())

    say(response, NO_SELECTION_MESSAGE)
    redirect_to_recording(response, DEFAULT_LEVEL)

    return twiml_response(response)


@router.post("/level-selected")
async def handle_level_selected(
    Digits: Optional[str] = Form(None),
    From: Optional[str] = Form(None),
):
    """LEVEL_SELECT: confirm the chosen category and move to RECORDING."""
    category = resolve_level(Digits)
    logger.info(f"User {From} selected level: {category.id} (pressed {Digits!r})")

    response = VoiceResponse()
    say(
        response,
        f"Great! You selected {category.name}. Please ask your question after the beep.",
    )
    redirect_to_recording(response, category.id)

    return twiml_response(response)


@router.post("/record")
async def handle_record(level: Optional[str] = Query(None)):
    """
    RECORDING: record the question.

    Twilio posts the recording to /process. If the caller stays silent the
    record verb falls through to the retry prompt and loops back here.
    """
    category = resolve_level(level)

    response = VoiceResponse()
    response.record(
        action=f"{ROUTE_PREFIX}/process?level={category.id}",
        method="POST",
        max_length=settings.RECORD_MAX_LENGTH,
        timeout=settings.RECORD_TIMEOUT,
        play_beep=True,
    )

    say(response, NO_SPEECH_MESSAGE)
    redirect_to_recording(response, category.id)

    return twiml_response(response)


@router.post("/process")
async def handle_process_recording(
    level: Optional[str] = Query(None),
    RecordingUrl: Optional[str] = Form(None),
    RecordingSid: Optional[str] = Form(None),
    RecordingDuration: Optional[str] = Form(None),
    From: Optional[str] = Form(None),
    CallSid: Optional[str] = Form(None),
    services: ServiceContainer = Depends(get_services),
):
    """
    PROCESSING: transcribe, answer, synthesize, store, then play.

    Always returns TwiML; failures become a retry prompt or an apology.
    """
    logger.info(f"Recording URL: {RecordingUrl}")

    try:
        result = await services.orchestrator.process_recording(
            call_sid=CallSid or "unknown",
            caller_number=From or "",
            recording_url=RecordingUrl,
            level=level,
            recording_sid=RecordingSid,
            recording_duration=RecordingDuration,
        )
        response = render_turn(result)
    except Exception as e:
        logger.error(f"Processing error: {e}", exc_info=True)
        response = apology_twiml()

    return twiml_response(response)


@router.post("/continue")
async def handle_continue(
    level: Optional[str] = Query(None),
    Digits: Optional[str] = Form(None),
):
    """CONTINUE_LOOP: 1 records another question at the same level, anything else ends."""
    category = resolve_level(level)
    response = VoiceResponse()

    if next_state_after_continue(Digits) is CallState.RECORDING:
        say(response, NEXT_QUESTION_MESSAGE)
        redirect_to_recording(response, category.id)
    else:
        say(response, CLOSING_MESSAGE)
        response.hangup()

    return twiml_response(response)


@router.post("/status")
async def handle_status(
    CallSid: Optional[str] = Form(None),
    CallStatus: Optional[str] = Form(None),
    From: Optional[str] = Form(None),
    CallDuration: Optional[str] = Form(None),
):
    """Status callback for call events."""
    logger.info(f"Call {CallSid} from {From}: {CallStatus} (Duration: {CallDuration}s)")
    return {"status": "received"}

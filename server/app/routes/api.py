"""
Developer and web demo endpoints.

Everything here answers JSON in a {"success": ..., ...} envelope, except
/tts/synthesize which streams MP3 bytes on success.
"""

import asyncio
import base64
import binascii
import logging
import time
from dataclasses import asdict
from typing import Dict, List, Optional

from app.config import settings
from app.services.answer_generator import GenerationError
from app.services.container import ServiceContainer, get_services
from app.services.deepgram_stt import TranscriptionError
from app.services.deepgram_tts import (
    EmptyTextError,
    SynthesisAuthError,
    SynthesisError,
    SynthesisPayloadTooLargeError,
    SynthesisRateLimitError,
    SynthesisRequestError,
    TextTooLongError,
)
from app.services.education_levels import (
    DEFAULT_LEVEL,
    all_categories,
    resolve_demo_level,
    resolve_level,
)
from app.services.session_store import SessionStoreError
from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

router = APIRouter()

TTS_FALLBACK_HINT = "The frontend will automatically use browser TTS as fallback."

SYNTHESIS_STATUS_CODES = {
    EmptyTextError: status.HTTP_400_BAD_REQUEST,
    SynthesisRequestError: status.HTTP_400_BAD_REQUEST,
    SynthesisAuthError: status.HTTP_401_UNAUTHORIZED,
    TextTooLongError: 413,
    SynthesisPayloadTooLargeError: 413,
    SynthesisRateLimitError: status.HTTP_429_TOO_MANY_REQUESTS,
}


class AskRequest(BaseModel):
    question: Optional[str] = None
    level: str = DEFAULT_LEVEL


class SpeakRequest(BaseModel):
    text: Optional[str] = None


class CleanupRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    max_age_hours: Optional[float] = Field(None, alias="maxAgeHours")


class TranscribeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    audio: Optional[str] = None
    mime_type: str = Field("audio/wav", alias="mimeType")


class ChatMessage(BaseModel):
    role: str
    content: str = ""


class GenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question: Optional[str] = None
    education_level: str = Field("high_school", alias="educationLevel")
    context: List[ChatMessage] = Field(default_factory=list)


class SynthesizeRequest(BaseModel):
    text: Optional[str] = None
    model: Optional[str] = None


class SaveConversationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone_number: Optional[str] = Field(None, alias="phoneNumber")
    messages: Optional[List[ChatMessage]] = None
    duration: Optional[int] = None
    level: str = DEFAULT_LEVEL


def error_response(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, **extra},
    )


def synthesis_status_code(error: SynthesisError) -> int:
    for error_type, status_code in SYNTHESIS_STATUS_CODES.items():
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@router.get("/categories")
async def get_categories():
    """All selectable education levels."""
    return {"success": True, "data": [asdict(category) for category in all_categories()]}


@router.post("/test-ai")
async def test_ai(
    body: AskRequest,
    services: ServiceContainer = Depends(get_services),
):
    """Generate an answer without history (development)."""
    if not body.question or not body.question.strip():
        return error_response(status.HTTP_400_BAD_REQUEST, "Question is required")

    category = resolve_level(body.level)
    start_time = time.time()
    try:
        result = await services.generator.generate(body.question, category)
    except GenerationError as e:
        logger.error(f"Test AI error: {e}")
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to generate AI response"
        )

    response_time_ms = int((time.time() - start_time) * 1000)
    return {
        "success": True,
        "data": {
            "question": body.question,
            "level": category.id,
            "answer": result.text,
            "tokensUsed": result.tokens_used,
            "usedFallback": result.used_fallback,
            "responseTime": f"{response_time_ms}ms",
        },
    }


@router.post("/test-tts")
async def test_tts(
    body: SpeakRequest,
    services: ServiceContainer = Depends(get_services),
):
    """Synthesize text to a served MP3 file (development)."""
    if not body.text or not body.text.strip():
        return error_response(status.HTTP_400_BAD_REQUEST, "Text is required")

    try:
        result = await services.tts.synthesize_to_file(body.text)
    except SynthesisError as e:
        logger.error(f"Test TTS error: {e}")
        return error_response(synthesis_status_code(e), "Failed to synthesize speech")

    return {"success": True, "data": {"audioUrl": result.audio_url, "audioPath": result.audio_path}}


@router.get("/history/{phone_number}")
async def get_history(
    phone_number: str,
    limit: int = Query(10, ge=1, le=100),
    services: ServiceContainer = Depends(get_services),
):
    """Recent turns for a phone number, newest first."""
    turns = await services.store.recent_turns_for_phone(phone_number, limit)
    return {
        "success": True,
        "data": [
            {
                "question": turn.question,
                "answer": turn.answer,
                "educationLevel": turn.education_level,
                "audioUrl": turn.audio_url,
                "responseTime": turn.response_time_ms,
                "createdAt": turn.created_at.isoformat() if turn.created_at else None,
            }
            for turn in turns
        ],
    }


@router.get("/stats/{phone_number}")
async def get_stats(
    phone_number: str,
    services: ServiceContainer = Depends(get_services),
):
    """Usage summary for one caller."""
    caller = await services.store.get_caller(phone_number)
    if caller is None:
        return error_response(status.HTTP_404_NOT_FOUND, "Caller not found")

    try:
        stats = await services.store.caller_stats(caller.id)
    except SessionStoreError:
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to get caller statistics"
        )

    return {
        "success": True,
        "data": {
            "phoneNumber": caller.phone_number,
            "preferredLevel": caller.preferred_level,
            "totalCalls": caller.total_calls,
            "totalTurns": stats.total_turns,
            "levelUsage": stats.level_usage,
            "avgResponseTime": stats.avg_response_time_ms,
        },
    }


@router.post("/cleanup")
async def cleanup_audio(
    body: Optional[CleanupRequest] = None,
    services: ServiceContainer = Depends(get_services),
):
    """Delete synthesized audio older than maxAgeHours (default from settings)."""
    max_age_hours = settings.AUDIO_MAX_AGE_HOURS
    if body and body.max_age_hours is not None:
        max_age_hours = body.max_age_hours
    deleted_count = await asyncio.to_thread(services.tts.cleanup_old_files, max_age_hours)
    return {"success": True, "data": {"deletedFiles": deleted_count}}


@router.post("/stt/transcribe")
async def transcribe_audio(
    body: TranscribeRequest,
    services: ServiceContainer = Depends(get_services),
):
    """Transcribe base64-encoded audio from the browser demo."""
    if not body.audio:
        return error_response(
            status.HTTP_400_BAD_REQUEST, "Audio data is required (base64 encoded)"
        )

    try:
        audio = base64.b64decode(body.audio, validate=True)
    except (binascii.Error, ValueError):
        return error_response(status.HTTP_400_BAD_REQUEST, "Audio data is not valid base64")

    try:
        result = await services.stt.transcribe_bytes(audio, body.mime_type)
    except TranscriptionError as e:
        logger.error(f"STT transcription error: {e}")
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to transcribe audio")

    logger.info(f"🎤 STT transcription: \"{result.transcript}\"")
    return {
        "success": True,
        "transcription": result.transcript,
        "confidence": result.confidence,
    }


@router.post("/generate")
async def generate_answer(
    body: GenerateRequest,
    services: ServiceContainer = Depends(get_services),
):
    """Answer a demo question using the chat history the browser sends along."""
    if not body.question or not body.question.strip():
        return error_response(status.HTTP_400_BAD_REQUEST, "Question is required")

    category = resolve_demo_level(body.education_level)
    history: List[Dict[str, str]] = [message.model_dump() for message in body.context]

    try:
        result = await services.generator.generate_with_history(body.question, category, history)
    except GenerationError as e:
        logger.error(f"Generation error: {e}")
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to generate response")

    logger.info(f"🤖 AI response ({result.tokens_used} tokens): \"{result.text}\"")
    return {"success": True, "response": result.text, "tokensUsed": result.tokens_used}


@router.post("/tts/synthesize")
async def synthesize_speech(
    body: SynthesizeRequest,
    services: ServiceContainer = Depends(get_services),
):
    """
    Synthesize text straight to MP3 bytes.

    Errors come back as JSON with a status code per failure class so the
    browser can decide whether to fall back to its own speech synthesis.
    """
    try:
        audio = await services.tts.synthesize_to_buffer(body.text or "", model=body.model)
    except SynthesisError as e:
        logger.error(f"TTS synthesis error: {e}")
        return error_response(
            synthesis_status_code(e), str(e), reason=e.reason, hint=TTS_FALLBACK_HINT
        )

    return Response(
        content=audio,
        media_type="audio/mpeg",
        headers={"Content-Length": str(len(audio))},
    )


@router.post("/conversation/save")
async def save_conversation(
    body: SaveConversationRequest,
    services: ServiceContainer = Depends(get_services),
):
    """Store a finished demo conversation as turns."""
    if not body.phone_number or body.messages is None:
        return error_response(
            status.HTTP_400_BAD_REQUEST, "Phone number and messages are required"
        )

    try:
        saved = await services.store.save_transcript(
            body.phone_number,
            [message.model_dump() for message in body.messages],
            level=resolve_level(body.level).id,
        )
    except SessionStoreError as e:
        logger.error(f"Save conversation error: {e}")
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to save conversation"
        )

    logger.info(f"Saved conversation for {body.phone_number}, duration: {body.duration}ms")
    return {"success": True, "message": "Conversation saved", "data": {"turnsSaved": saved}}

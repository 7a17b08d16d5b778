"""
Service wiring.

Built once at startup and stored on ``app.state.services``; route
handlers reach it through the FastAPI dependencies below, which tests can
override.
"""

import logging
from dataclasses import dataclass

from app.services.answer_generator import AnswerGenerator
from app.services.call_flow import CallFlowOrchestrator
from app.services.deepgram_stt import DeepgramSTTService
from app.services.deepgram_tts import DeepgramTTSService
from app.services.session_store import SessionStore
from fastapi import Request
from sqlalchemy.ext.asyncio import async_sessionmaker

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    stt: DeepgramSTTService
    generator: AnswerGenerator
    tts: DeepgramTTSService
    store: SessionStore
    orchestrator: CallFlowOrchestrator


def build_services(settings, session_maker: async_sessionmaker) -> ServiceContainer:
    """Create every provider client and the orchestrator from settings."""
    if not settings.DEEPGRAM_API_KEY:
        logger.warning("⚠️ DEEPGRAM_API_KEY is not set; transcription and synthesis will fail")
    if not settings.LLM_API_KEY:
        logger.warning("⚠️ LLM_API_KEY is not set; answer generation will fail")

    stt = DeepgramSTTService(
        api_key=settings.DEEPGRAM_API_KEY,
        model=settings.DEEPGRAM_STT_MODEL,
        language=settings.DEEPGRAM_STT_LANGUAGE,
    )
    generator = AnswerGenerator.from_settings(settings)
    tts = DeepgramTTSService(
        api_key=settings.DEEPGRAM_API_KEY,
        output_dir=settings.AUDIO_OUTPUT_DIR,
        base_url=settings.BASE_URL,
        default_model=settings.DEEPGRAM_TTS_MODEL,
        max_chars=settings.TTS_MAX_CHARS,
        api_url=settings.DEEPGRAM_TTS_URL,
        timeout=settings.TTS_TIMEOUT,
    )
    store = SessionStore(session_maker, context_limit=settings.CONTEXT_TURN_LIMIT)
    orchestrator = CallFlowOrchestrator(stt, generator, tts, store)

    return ServiceContainer(
        stt=stt, generator=generator, tts=tts, store=store, orchestrator=orchestrator
    )


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services

"""Pytest configuration and fixtures."""

import os
import tempfile

# Settings are read at import time; keep test audio out of the source tree
os.environ.setdefault("AUDIO_OUTPUT_DIR", tempfile.mkdtemp(prefix="gurucall-audio-"))
os.environ.setdefault("AUDIO_CLEANUP_ENABLED", "false")

from types import SimpleNamespace
from typing import AsyncGenerator, List
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio
from app.main import app
from app.models.base import Base
from app.services.answer_generator import AnswerGenerator
from app.services.call_flow import CallFlowOrchestrator
from app.services.container import ServiceContainer, get_services
from app.services.deepgram_stt import DeepgramSTTService
from app.services.deepgram_tts import DeepgramTTSService
from app.services.session_store import SessionStore
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

TEST_DATABASE_URL = "sqlite+aiosqlite://"
TEST_BASE_URL = "https://tutor.example.com"
TEST_PHONE = "+919876543210"
TEST_CALL_SID = "CA1234567890abcdef1234567890abcdef"  # pragma: allowlist secret
FAKE_MP3 = b"ID3\x03\x00\x00\x00fake-mp3-frames"


def make_completion(text: str, tokens: int = 42) -> SimpleNamespace:
    """Shape of an OpenAI chat completion, enough for AnswerGenerator."""
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        usage=SimpleNamespace(total_tokens=tokens),
    )


def make_transcription(transcript: str, confidence: float = 0.93) -> SimpleNamespace:
    """Shape of a Deepgram pre-recorded response."""
    alternative = SimpleNamespace(transcript=transcript, confidence=confidence)
    channel = SimpleNamespace(alternatives=[alternative], detected_language="en")
    return SimpleNamespace(results=SimpleNamespace(channels=[channel]))


def make_deepgram_client(transcript: str = "What is photosynthesis?") -> MagicMock:
    client = MagicMock()
    rest = client.listen.asyncrest.v.return_value
    rest.transcribe_url = AsyncMock(return_value=make_transcription(transcript))
    rest.transcribe_file = AsyncMock(return_value=make_transcription(transcript))
    return client


def make_llm_client(*responses) -> SimpleNamespace:
    """OpenAI-like client whose completions return (or raise) the given items in order."""
    create = AsyncMock(side_effect=list(responses))
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


@pytest.fixture
def tts_requests() -> List[httpx.Request]:
    """Requests seen by the fake Deepgram speak endpoint."""
    return []


@pytest.fixture
def tts_http_client(tts_requests):
    def handler(request: httpx.Request) -> httpx.Response:
        tts_requests.append(request)
        return httpx.Response(200, content=FAKE_MP3, headers={"Content-Type": "audio/mpeg"})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest_asyncio.fixture(scope="function")
async def session_maker() -> AsyncGenerator[async_sessionmaker, None]:
    """In-memory database shared across sessions of one test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def store(session_maker) -> SessionStore:
    return SessionStore(session_maker, context_limit=5)


@pytest.fixture
def stt() -> DeepgramSTTService:
    return DeepgramSTTService(api_key="test-key", client=make_deepgram_client())


@pytest.fixture
def llm_client():
    return make_llm_client(
        *[make_completion(f"Answer number {i}. Plants make food from sunlight.") for i in range(10)]
    )


@pytest.fixture
def generator(llm_client) -> AnswerGenerator:
    async def no_sleep(delay: float) -> None:
        return None

    return AnswerGenerator(client=llm_client, model="test-model", sleep=no_sleep)


@pytest.fixture
def tts(tmp_path, tts_http_client) -> DeepgramTTSService:
    return DeepgramTTSService(
        api_key="test-key",
        output_dir=str(tmp_path / "audio"),
        base_url=TEST_BASE_URL,
        http_client=tts_http_client,
    )


@pytest.fixture
def services(stt, generator, tts, store) -> ServiceContainer:
    return ServiceContainer(
        stt=stt,
        generator=generator,
        tts=tts,
        store=store,
        orchestrator=CallFlowOrchestrator(stt, generator, tts, store),
    )


@pytest_asyncio.fixture(scope="function")
async def client(services: ServiceContainer) -> AsyncGenerator[AsyncClient, None]:
    """Test HTTP client. The lifespan does not run, so no real providers are built."""
    app.dependency_overrides[get_services] = lambda: services

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

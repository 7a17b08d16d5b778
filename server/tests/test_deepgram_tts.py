"""Tests for Deepgram speech synthesis."""

import json
import os
import time
from pathlib import Path

import httpx
import pytest
from app.services.deepgram_tts import (
    DeepgramTTSService,
    EmptyTextError,
    SynthesisAuthError,
    SynthesisError,
    SynthesisPayloadTooLargeError,
    SynthesisRateLimitError,
    SynthesisRequestError,
    TextTooLongError,
)
from conftest import FAKE_MP3, TEST_BASE_URL


def service_with(handler, tmp_path, max_chars: int = 2000) -> DeepgramTTSService:
    return DeepgramTTSService(
        api_key="dg-key",
        output_dir=str(tmp_path / "audio"),
        base_url=f"{TEST_BASE_URL}/",
        max_chars=max_chars,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


@pytest.mark.asyncio
async def test_synthesize_to_file_writes_mp3_and_builds_url(tts, tts_requests):
    result = await tts.synthesize_to_file("Plants make food.", filename="CA1_RE1.mp3")

    assert result.audio_url == f"{TEST_BASE_URL}/audio/CA1_RE1.mp3"
    assert Path(result.audio_path).read_bytes() == FAKE_MP3

    request = tts_requests[0]
    assert request.headers["Authorization"] == "Token test-key"
    assert request.url.params["model"] == "aura-2-thalia-en"
    assert request.url.params["encoding"] == "mp3"
    assert json.loads(request.content) == {"text": "Plants make food."}


@pytest.mark.asyncio
async def test_model_can_be_chosen_per_call(tts, tts_requests):
    await tts.synthesize_to_buffer("Hello", model="aura-2-zeus-en")
    await tts.synthesize_to_buffer("Hello")

    assert [r.url.params["model"] for r in tts_requests] == ["aura-2-zeus-en", "aura-2-thalia-en"]


@pytest.mark.asyncio
async def test_generated_names_are_unique(tts):
    first = await tts.synthesize_to_file("one")
    second = await tts.synthesize_to_file("two")
    assert first.audio_path != second.audio_path


@pytest.mark.asyncio
async def test_oversized_text_rejected_without_request(tmp_path):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, content=FAKE_MP3)

    service = service_with(handler, tmp_path, max_chars=50)

    with pytest.raises(TextTooLongError):
        await service.synthesize_to_buffer("x" * 51)
    with pytest.raises(EmptyTextError):
        await service.synthesize_to_buffer("   ")

    assert requests == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status_code, error_type",
    [
        (401, SynthesisAuthError),
        (403, SynthesisAuthError),
        (400, SynthesisRequestError),
        (413, SynthesisPayloadTooLargeError),
        (429, SynthesisRateLimitError),
        (502, SynthesisError),
    ],
)
async def test_http_errors_are_classified(tmp_path, status_code, error_type):
    def handler(request):
        return httpx.Response(status_code, json={"err_msg": "provider said no"})

    with pytest.raises(error_type) as exc_info:
        await service_with(handler, tmp_path).synthesize_to_buffer("Hello")

    assert exc_info.value.status_code == status_code


@pytest.mark.asyncio
async def test_transport_error_becomes_synthesis_error(tmp_path):
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    with pytest.raises(SynthesisError):
        await service_with(handler, tmp_path).synthesize_to_buffer("Hello")


@pytest.mark.asyncio
async def test_empty_audio_is_an_error(tmp_path):
    def handler(request):
        return httpx.Response(200, content=b"")

    with pytest.raises(SynthesisError):
        await service_with(handler, tmp_path).synthesize_to_buffer("Hello")


def test_cleanup_removes_only_old_files(tts):
    old_file = tts.output_dir / "old.mp3"
    new_file = tts.output_dir / "new.mp3"
    old_file.write_bytes(FAKE_MP3)
    new_file.write_bytes(FAKE_MP3)
    two_days_ago = time.time() - 48 * 3600
    os.utime(old_file, (two_days_ago, two_days_ago))

    deleted = tts.cleanup_old_files(max_age_hours=24)

    assert deleted == 1
    assert not old_file.exists()
    assert new_file.exists()


def test_cleanup_of_missing_directory_returns_zero(tts):
    tts.output_dir.rmdir()
    assert tts.cleanup_old_files() == 0


def test_available_voices(tts):
    assert "aura-2-thalia-en" in tts.available_voices()

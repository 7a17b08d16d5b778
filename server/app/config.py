"""
Application configuration using pydantic-settings.
"""

from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


def find_env_file() -> str:
    """Find .env file by checking multiple locations."""
    # Try relative to this file (server/app/config.py)
    current_dir = Path(__file__).parent
    candidates = [
        current_dir / ".env",  # server/app/.env
        current_dir.parent / ".env",  # server/.env
        current_dir.parent.parent / ".env",  # project root/.env
    ]

    for candidate in candidates:
        if candidate.exists():
            return str(candidate)

    # Default to project root
    return str(current_dir.parent.parent / ".env")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=find_env_file(),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    APP_ENV: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    BASE_URL: str = "http://localhost:8000"  # Public URL Twilio can reach (ngrok during development)

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./gurucall.db"

    # Twilio
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_PHONE_NUMBER: str = ""
    TWILIO_VOICE: str = "Polly.Aditi"
    TWILIO_LANGUAGE: str = "en-IN"
    LEVEL_GATHER_TIMEOUT: int = 10  # seconds
    CONTINUE_GATHER_TIMEOUT: int = 5  # seconds
    RECORD_MAX_LENGTH: int = 60  # seconds
    RECORD_TIMEOUT: int = 3  # seconds of silence before recording stops

    # Deepgram STT
    DEEPGRAM_API_KEY: str = ""
    DEEPGRAM_STT_MODEL: str = "nova-2"  # Most accurate pre-recorded model
    DEEPGRAM_STT_LANGUAGE: str = "en-IN"  # Indian English accent recognition

    # Deepgram TTS
    DEEPGRAM_TTS_MODEL: str = "aura-2-thalia-en"
    DEEPGRAM_TTS_URL: str = "https://api.deepgram.com/v1/speak"
    TTS_MAX_CHARS: int = 2000  # Deepgram documented input limit
    TTS_TIMEOUT: float = 30.0  # seconds

    # Synthesized audio storage
    AUDIO_OUTPUT_DIR: str = str(Path(__file__).parent.parent / "public" / "audio")
    AUDIO_MAX_AGE_HOURS: int = 24
    AUDIO_CLEANUP_CRON: str = "0 * * * *"  # Hourly
    AUDIO_CLEANUP_ENABLED: bool = True

    # LLM (OpenAI-compatible endpoint, Groq by default)
    LLM_API_KEY: str = ""
    LLM_BASE_URL: str = "https://api.groq.com/openai/v1"
    LLM_MODEL: str = "llama-3.3-70b-versatile"
    LLM_TEMPERATURE: float = 0.7
    LLM_MAX_TOKENS: int = 1024
    LLM_TOP_P: float = 0.8
    LLM_MAX_ATTEMPTS: int = 3
    LLM_RETRY_BASE_DELAY: float = 2.0  # seconds, multiplied by attempt number

    # Conversation history
    CONTEXT_TURN_LIMIT: int = 5


settings = Settings()

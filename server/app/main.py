"""
Main FastAPI application for GuruCall, the AI voice tutor.
Handles Twilio voice webhooks and the web demo API.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from app.config import settings
from app.routes import api, health, voice
from app.services.container import build_services
from app.services.database import close_db, init_db
from app.utils.background_tasks import start_scheduler, stop_scheduler
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Served under /audio for Twilio <Play>
Path(settings.AUDIO_OUTPUT_DIR).mkdir(parents=True, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown tasks."""
    # Startup
    session_maker = await init_db()
    app.state.services = build_services(settings, session_maker)

    scheduler = None
    if settings.AUDIO_CLEANUP_ENABLED:
        scheduler = start_scheduler(
            app.state.services.tts,
            settings.AUDIO_CLEANUP_CRON,
            settings.AUDIO_MAX_AGE_HOURS,
        )

    logger.info(f"✅ GuruCall started ({settings.APP_ENV}) at {settings.BASE_URL}")

    yield
    # Shutdown
    stop_scheduler(scheduler)
    await close_db()


app = FastAPI(
    title="GuruCall Voice Tutor",
    description="AI-powered voice tutor over the phone",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routes
app.include_router(voice.router, prefix="/api/twilio", tags=["twilio"])
app.include_router(health.router, prefix="/api", tags=["health"])
app.include_router(api.router, prefix="/api", tags=["api"])

app.mount("/audio", StaticFiles(directory=settings.AUDIO_OUTPUT_DIR), name="audio")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "GuruCall Voice Tutor",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "health": "/api/health",
            "categories": "/api/categories",
            "testAI": "POST /api/test-ai",
            "testTTS": "POST /api/test-tts",
            "twilioVoice": "POST /api/twilio/voice",
        },
    }

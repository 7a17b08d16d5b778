"""
Background maintenance jobs.

Synthesized answers accumulate under the audio directory; a cron-scheduled
sweep removes files older than AUDIO_MAX_AGE_HOURS.
"""

import asyncio
import logging
from typing import Optional

from app.services.deepgram_tts import DeepgramTTSService
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

CLEANUP_JOB_ID = "audio_cleanup"


async def cleanup_audio_files(tts: DeepgramTTSService, max_age_hours: float) -> int:
    """Run the file sweep off the event loop."""
    deleted = await asyncio.to_thread(tts.cleanup_old_files, max_age_hours)
    if deleted:
        logger.info(f"🧹 Audio cleanup removed {deleted} files older than {max_age_hours}h")
    return deleted


def start_scheduler(
    tts: DeepgramTTSService,
    cron_schedule: str,
    max_age_hours: float,
    scheduler: Optional[AsyncIOScheduler] = None,
) -> AsyncIOScheduler:
    """
    Register the cleanup job and start the scheduler.

    Must be called from within a running event loop (FastAPI lifespan).
    """
    scheduler = scheduler or AsyncIOScheduler()

    scheduler.add_job(
        cleanup_audio_files,
        trigger=CronTrigger.from_crontab(cron_schedule),
        args=[tts, max_age_hours],
        id=CLEANUP_JOB_ID,
        name="Remove old synthesized audio",
        replace_existing=True,
    )

    scheduler.start()
    logger.info(f"Scheduler started. Jobs: {[job.id for job in scheduler.get_jobs()]}")
    return scheduler


def stop_scheduler(scheduler: Optional[AsyncIOScheduler]) -> None:
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")

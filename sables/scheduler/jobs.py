"""Scheduled background jobs using APScheduler."""

import logging
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from sables.config import get_settings
from sables.services.database import async_session_maker

settings = get_settings()
logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


async def channel_renewal_job():
    """Replace Drive push channels that are about to expire (hourly)."""
    logger.info("Starting webhook channel renewal job")
    try:
        async with async_session_maker() as db:
            from sables.drive.client import get_drive_client
            from sables.sync.webhook import WebhookHandler

            handler = WebhookHandler(db, get_drive_client())
            renewed = await handler.renew_expiring_channels()
            logger.info(f"Channel renewal completed: {renewed} renewed")
    except Exception as e:
        logger.error(f"Channel renewal job failed: {e}")


async def ensure_change_channel_job():
    """Open a change-feed push channel if none is active."""
    if not settings.webhook_base_url:
        logger.info("No webhook base URL configured, relying on polling only")
        return
    try:
        async with async_session_maker() as db:
            from sables.drive.client import get_drive_client
            from sables.models.drive_sync import ChannelKind, DriveWatchChannel
            from sables.sync.webhook import WebhookHandler
            from sqlalchemy import select

            result = await db.execute(
                select(DriveWatchChannel.id).where(
                    DriveWatchChannel.active.is_(True),
                    DriveWatchChannel.kind == ChannelKind.CHANGES,
                    DriveWatchChannel.expiration > datetime.utcnow(),
                )
            )
            if result.first() is not None:
                return

            from sables.sync.polling import get_polling_service

            polling = get_polling_service()
            handler = WebhookHandler(db, get_drive_client())
            channel = await handler.watch_changes(polling.page_token)
            logger.info(f"Opened change-feed channel {channel.channel_id}")
    except Exception as e:
        logger.error(f"Could not open change-feed channel: {e}")


async def start_scheduler():
    """Start the scheduler with all jobs."""
    # Channel renewal every hour
    scheduler.add_job(
        channel_renewal_job,
        IntervalTrigger(hours=1),
        id="webhook_channel_renewal",
        name="Webhook Channel Renewal",
        replace_existing=True,
    )

    scheduler.start()

    # Drive change polling (its own interval job)
    if settings.drive_polling_enabled:
        from sables.sync.polling import get_polling_service

        try:
            await get_polling_service().start_polling()
        except Exception as e:
            logger.error(f"Drive polling could not start: {e}")

    await ensure_change_channel_job()
    logger.info("Scheduler started with all jobs")


async def stop_scheduler():
    """Stop the scheduler."""
    from sables.sync import polling

    if polling._polling_service is not None:
        polling._polling_service.stop_polling()
    scheduler.shutdown(wait=False)
    logger.info("Scheduler stopped")


def get_job_status() -> list[dict]:
    """Get status of all scheduled jobs."""
    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            "trigger": str(job.trigger),
        })
    return jobs

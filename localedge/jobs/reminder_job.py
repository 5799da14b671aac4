"""
Appointment reminder job.
Texts customers about their appointments on the next workday, once a day.
"""

import asyncio
from datetime import UTC, datetime

from localedge.db.pool import db_pool
from localedge.infrastructure.observability.logging import get_logger
from localedge.services.reminder_service import reminder_service

logger = get_logger(__name__)

REMINDER_INTERVAL_HOURS = 24
RETRY_DELAY_SECONDS = 1800


async def run_appointment_reminders_job(now: datetime | None = None) -> dict:
    """Single pass. Returns {sent, failed, skipped, details}."""
    owns_pool = not db_pool.initialized
    if owns_pool:
        await db_pool.initialize()

    started = datetime.now(UTC)
    try:
        result = await reminder_service.send_due_reminders(now or started)
    finally:
        if owns_pool:
            await db_pool.close()

    duration = (datetime.now(UTC) - started).total_seconds()
    logger.info(
        "Appointment reminder job completed",
        sent=result.sent,
        failed=result.failed,
        skipped=result.skipped,
        duration_seconds=round(duration, 2),
        job_run="appointment_reminders",
    )
    return {
        "sent": result.sent,
        "failed": result.failed,
        "skipped": result.skipped,
        "details": result.details,
    }


async def start_appointment_reminder_scheduler():
    """Run the reminder job forever, once per interval."""
    logger.info("Starting appointment reminder scheduler", interval_hours=REMINDER_INTERVAL_HOURS)

    # Held open across passes; a closed pool cannot be reopened
    await db_pool.initialize()
    try:
        while True:
            try:
                await run_appointment_reminders_job()
                await asyncio.sleep(REMINDER_INTERVAL_HOURS * 3600)
            except Exception as e:
                logger.error(
                    "Error in appointment reminder scheduler",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                await asyncio.sleep(RETRY_DELAY_SECONDS)
    finally:
        await db_pool.close()

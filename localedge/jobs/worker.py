"""
Entrypoint for the `localedge-worker` process.

    localedge-worker appointment_reminders             # one pass, for cron
    localedge-worker appointment_reminders_scheduler   # daily loop

WORKER_JOB is used when no argument is given.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from localedge.config import settings
from localedge.infrastructure.observability.logging import get_logger, setup_logging
from localedge.jobs.reminder_job import (
    run_appointment_reminders_job,
    start_appointment_reminder_scheduler,
)

logger = get_logger(__name__)

DEFAULT_JOB = "appointment_reminders"

JOB_REGISTRY: dict[str, Callable[[], Awaitable[object]]] = {
    "appointment_reminders": run_appointment_reminders_job,
    "appointment_reminders_scheduler": start_appointment_reminder_scheduler,
}


def _resolve_job_name() -> str:
    raw = sys.argv[1] if len(sys.argv) > 1 else os.getenv("WORKER_JOB", DEFAULT_JOB)
    return raw.strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    name = (job_name or _resolve_job_name()).strip().lower()
    job = JOB_REGISTRY.get(name)
    if job is None:
        available = ", ".join(sorted(JOB_REGISTRY))
        raise ValueError(f"Unknown worker job '{name}'. Available jobs: {available}")

    logger.info("Starting background worker", job=name, environment=settings.environment)
    await job()


def main() -> None:
    setup_logging(log_level=settings.LOG_LEVEL)
    asyncio.run(run_worker(_resolve_job_name()))


if __name__ == "__main__":
    main()

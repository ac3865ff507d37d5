"""Scheduler process for recurring cache maintenance.

Run separately from CLI/manual flows using:
    python -m ccm_offload.jobs.scheduler
"""

from __future__ import annotations

import argparse
import logging
import os
from datetime import datetime

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from ccm_offload.jobs.tasks import cache_maintenance

JOB_ID = "ccm_cache_maintenance"
DEFAULT_SCHEDULE_HOUR = 3

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Configure process-wide logging for scheduler mode."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def resolve_schedule_hour() -> int:
    raw = os.getenv("CCM_OFFLOAD_SCHEDULE_HOUR", "").strip()
    if not raw:
        return DEFAULT_SCHEDULE_HOUR
    try:
        hour = int(raw)
    except ValueError:
        logger.warning("Ignoring invalid CCM_OFFLOAD_SCHEDULE_HOUR=%r", raw)
        return DEFAULT_SCHEDULE_HOUR
    if not 0 <= hour <= 23:
        logger.warning("Ignoring out-of-range CCM_OFFLOAD_SCHEDULE_HOUR=%r", raw)
        return DEFAULT_SCHEDULE_HOUR
    return hour


def _log_job_state(scheduler: BlockingScheduler, event: JobExecutionEvent) -> None:
    """Log last and next run metadata for observability."""
    job = scheduler.get_job(event.job_id)
    job_next_run = getattr(job, "next_run_time", None) if job else None
    next_run = job_next_run.isoformat() if job_next_run else "none"
    last_run_at = (
        event.scheduled_run_time.isoformat()
        if event.scheduled_run_time
        else datetime.now().astimezone().isoformat()
    )

    if event.exception:
        logger.exception(
            "Job %s failed at %s; next run at %s",
            event.job_id,
            last_run_at,
            next_run,
            exc_info=event.exception,
        )
        return

    logger.info("Job %s completed at %s; next run at %s", event.job_id, last_run_at, next_run)


def build_scheduler(hour: int | None = None) -> BlockingScheduler:
    """Build and configure the scheduler instance in host-local time."""
    hour = resolve_schedule_hour() if hour is None else hour
    scheduler = BlockingScheduler()

    trigger = CronTrigger(hour=hour, minute=0)
    scheduler.add_job(
        cache_maintenance,
        trigger=trigger,
        id=JOB_ID,
        replace_existing=True,
        coalesce=True,
        max_instances=1,
        misfire_grace_time=3600,
    )

    scheduler.add_listener(
        lambda event: _log_job_state(scheduler, event),
        EVENT_JOB_EXECUTED | EVENT_JOB_ERROR,
    )

    next_run = trigger.get_next_fire_time(None, datetime.now().astimezone())
    logger.info(
        "Registered %s for %02d:00 local time (next run: %s)",
        JOB_ID,
        hour,
        next_run.isoformat() if next_run else "none",
    )

    return scheduler


def main() -> None:
    """Entrypoint for a dedicated scheduler process."""
    parser = argparse.ArgumentParser(description="Run the recurring cache maintenance scheduler")
    parser.add_argument(
        "--once",
        action="store_true",
        help=f"Execute {JOB_ID} immediately and exit (manual mode)",
    )
    args = parser.parse_args()

    configure_logging()

    if args.once:
        logger.info("Running in manual mode: executing %s once", JOB_ID)
        cache_maintenance()
        logger.info("Manual execution of %s completed", JOB_ID)
        return

    scheduler = build_scheduler()
    logger.info("Starting scheduler process")
    scheduler.start()


if __name__ == "__main__":
    main()

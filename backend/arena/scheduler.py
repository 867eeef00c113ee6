"""Job scheduler using APScheduler."""

import asyncio
import logging
from typing import NoReturn

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from arena.config import Settings
from arena.pipeline import run_daily_snapshot, run_session

logger = logging.getLogger(__name__)


def session_job(settings: Settings) -> None:
    """Run one session pass; failures are logged so the schedule keeps going."""
    try:
        report = asyncio.run(
            run_session(settings, budget_seconds=settings.session.budget_seconds)
        )
        logger.info(
            f"Session {report.cycle_key} {report.state} ({report.gate}): "
            f"{report.agents_processed} agents, {report.trades_executed} trades"
        )
        for alert in report.alerts:
            logger.critical(f"Session alert: {alert}")
    except Exception as e:
        logger.error(f"Session job failed: {e}", exc_info=True)


def snapshot_job(settings: Settings) -> None:
    try:
        snapshots = asyncio.run(run_daily_snapshot(settings))
        logger.info(f"Snapshot job saved {len(snapshots)} rows")
    except Exception as e:
        logger.error(f"Snapshot job failed: {e}", exc_info=True)


def build_scheduler(settings: Settings) -> BlockingScheduler:
    """Scheduler with the session and snapshot jobs, in exchange time."""
    tz = settings.session.exchange_timezone
    scheduler = BlockingScheduler(timezone=tz)

    scheduler.add_job(
        session_job,
        CronTrigger.from_crontab(settings.scheduler.session_cron, timezone=tz),
        args=[settings],
        id="trading-session",
        name="Arena: Trading Session",
        max_instances=1,
        coalesce=True,
    )
    logger.info(f"Registered job: Trading Session ({settings.scheduler.session_cron} {tz})")

    scheduler.add_job(
        snapshot_job,
        CronTrigger.from_crontab(settings.scheduler.snapshot_cron, timezone=tz),
        args=[settings],
        id="daily-snapshot",
        name="Arena: Daily Snapshot",
        max_instances=1,
        coalesce=True,
    )
    logger.info(f"Registered job: Daily Snapshot ({settings.scheduler.snapshot_cron} {tz})")

    return scheduler


def start_scheduler(settings: Settings) -> NoReturn:
    """Start the APScheduler with configured jobs."""
    scheduler = build_scheduler(settings)

    try:
        logger.info("Scheduler starting...")
        logger.info(f"{len(scheduler.get_jobs())} jobs registered")
        logger.info("Press Ctrl+C to stop\n")

        scheduler.start()

    except (KeyboardInterrupt, SystemExit):
        logger.info("\nReceived interrupt signal")
        scheduler.shutdown()
        logger.info("Scheduler stopped cleanly")

"""Daily backup drivers.

Two ways to take the once-a-day snapshot at midnight in the reference
timezone (18:30 UTC):

- ``build_scheduler`` registers a cron job on an APScheduler
  ``AsyncIOScheduler``, for a long-running server process.
- ``DailyBackupTimer`` is a self-rescheduling asyncio task owned by whoever
  starts it, for a client that stays open. A failed run is retried after
  ``retry_delay`` seconds; the timer only stops when ``stop()`` is called.

Both end up in ``BackupService.create_daily_backup_if_needed``, which makes
running them side by side harmless within one process.
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from study_tracker.backup import BackupService
from study_tracker.config import (
    DAILY_BACKUP_HOUR_UTC, DAILY_BACKUP_MINUTE_UTC, DAILY_BACKUP_RETRY_SECONDS, DB_PATH,
)
from study_tracker.db import DocumentStore, init_db
from study_tracker.logging_config import init_logging

logger = logging.getLogger(__name__)

DAILY_BACKUP_JOB_ID = "daily_backup"


def seconds_until_next_run(
    now: datetime,
    hour: int = DAILY_BACKUP_HOUR_UTC,
    minute: int = DAILY_BACKUP_MINUTE_UTC,
) -> float:
    """Seconds from ``now`` until the next hour:minute UTC (tomorrow's if already past)."""
    now = now.astimezone(timezone.utc)
    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if now >= target:
        target += timedelta(days=1)
    return (target - now).total_seconds()


async def run_daily_backup_job(service) -> str | None:
    """Load the live dataset and take today's snapshot if it is still missing."""
    user_data = await service.get_current_user_data()
    backup_id = await service.create_daily_backup_if_needed(user_data)
    if backup_id:
        logger.info("Daily backup created: %s", backup_id)
    else:
        logger.info("Daily backup not needed")
    return backup_id


def build_scheduler(
    service,
    hour: int = DAILY_BACKUP_HOUR_UTC,
    minute: int = DAILY_BACKUP_MINUTE_UTC,
) -> AsyncIOScheduler:
    """Return an unstarted scheduler with the daily backup cron job registered."""
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        func=run_daily_backup_job,
        args=[service],
        trigger="cron",
        hour=hour,
        minute=minute,
        timezone="UTC",
        id=DAILY_BACKUP_JOB_ID,
        replace_existing=True,
        misfire_grace_time=3600,
        coalesce=True,
    )
    return scheduler


class DailyBackupTimer:
    """Sleeps until the next daily run, takes the snapshot, and repeats."""

    def __init__(
        self,
        service,
        load_user_data=None,
        hour: int = DAILY_BACKUP_HOUR_UTC,
        minute: int = DAILY_BACKUP_MINUTE_UTC,
        retry_delay: float = DAILY_BACKUP_RETRY_SECONDS,
        now=None,
        sleep=asyncio.sleep,
    ):
        self.service = service
        self.load_user_data = load_user_data or service.get_current_user_data
        self.hour = hour
        self.minute = minute
        self.retry_delay = retry_delay
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._sleep = sleep
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the timer on the running event loop. A second call is a no-op."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self.run_forever())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def run_once(self) -> str | None:
        user_data = await self.load_user_data()
        return await self.service.create_daily_backup_if_needed(user_data)

    async def run_forever(self) -> None:
        delay = seconds_until_next_run(self._now(), self.hour, self.minute)
        while True:
            logger.info("Next daily backup in %d minutes", round(delay / 60))
            await self._sleep(delay)
            try:
                await self.run_once()
            except Exception:
                logger.exception("Scheduled daily backup failed, retrying in %d seconds", self.retry_delay)
                delay = self.retry_delay
            else:
                delay = seconds_until_next_run(self._now(), self.hour, self.minute)


def _build_service(db_path: str = DB_PATH) -> BackupService:
    init_db(db_path)
    return BackupService(DocumentStore(db_path))


def run_once_main() -> None:
    """Entry point: take today's daily snapshot once and exit."""
    init_logging()
    asyncio.run(run_daily_backup_job(_build_service()))


def main() -> None:
    """Entry point: run the daily backup cron job until interrupted."""
    init_logging()

    async def _serve():
        scheduler = build_scheduler(_build_service())
        scheduler.start()
        logger.info("Daily backup scheduler started (%02d:%02d UTC)", DAILY_BACKUP_HOUR_UTC, DAILY_BACKUP_MINUTE_UTC)
        try:
            await asyncio.Event().wait()
        finally:
            scheduler.shutdown(wait=False)

    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        logger.info("Daily backup scheduler stopped")


if __name__ == "__main__":
    main()

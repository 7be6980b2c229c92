"""
Sweep scheduling.

`select_due` decides which sources a scheduled sweep polls. SweepScheduler
triggers those sweeps periodically with APScheduler; the check interval is
much shorter than any fetch interval, so the due filter decides what is
actually fetched.
"""

from datetime import datetime, timedelta
from typing import Awaitable, Callable, Iterable, Optional
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from sourcewatch.config import Settings
from sourcewatch.models.domain import MonitoredSource
from sourcewatch.services.data_ingestion.base import as_naive_utc

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "source_sweep"


def next_due_at(source: MonitoredSource) -> Optional[datetime]:
    """When a source becomes due, or None if it has never been fetched."""
    if source.last_fetched_at is None:
        return None
    return as_naive_utc(source.last_fetched_at) + timedelta(hours=source.fetch_interval_hours)


def is_due(source: MonitoredSource, now: datetime) -> bool:
    """
    Enabled, and either never fetched or its interval has fully elapsed.

    The interval counts from the last actual fetch, so a late sweep pushes
    the next one back instead of catching up.
    """
    if not source.enabled:
        return False
    due_at = next_due_at(source)
    return due_at is None or as_naive_utc(now) >= due_at


def select_due(sources: Iterable[MonitoredSource], now: datetime) -> list[MonitoredSource]:
    """Sources due for fetching at `now`, in input order."""
    return [source for source in sources if is_due(source, now)]


class SweepScheduler:
    """
    Runs a sweep callable on a fixed check interval.

    Args:
        sweep: Coroutine function performing one scheduled sweep
        check_interval_minutes: Minutes between sweeps
    """

    def __init__(
        self,
        sweep: Callable[[], Awaitable[object]],
        check_interval_minutes: int = 15,
    ):
        self.sweep = sweep
        self.check_interval = timedelta(minutes=check_interval_minutes)
        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self._run_sweep,
            IntervalTrigger(minutes=check_interval_minutes),
            id=SWEEP_JOB_ID,
            name="Monitored source sweep",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(),
        )

    def start(self):
        """Start triggering sweeps. Needs a running event loop."""
        if self._scheduler.running:
            logger.warning("Sweep scheduler already running")
            return
        self._scheduler.start()
        logger.info(f"Started sweep scheduler (interval: {self.check_interval})")

    def stop(self):
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        logger.info("Sweep scheduler stopped")

    async def _run_sweep(self):
        try:
            await self.sweep()
        except Exception as e:
            logger.error(f"Scheduled sweep failed: {e}", exc_info=True)

    @property
    def is_running(self) -> bool:
        return self._scheduler.running

    def get_status(self) -> dict:
        job = self._scheduler.get_job(SWEEP_JOB_ID)
        next_run = job.next_run_time if job else None
        return {
            "running": self.is_running,
            "next_sweep": next_run.isoformat() if next_run else None,
            "check_interval_minutes": self.check_interval.total_seconds() / 60,
        }


def build_scheduler(sweep: Callable[[], Awaitable[object]], settings: Settings) -> SweepScheduler:
    """Scheduler for `sweep` using the configured check interval."""
    return SweepScheduler(sweep, check_interval_minutes=settings.sweep_check_interval_minutes)

"""
Tests for due-for-fetch selection and the sweep scheduler.
"""

from datetime import datetime, timedelta, timezone

from sourcewatch.config import Settings
from sourcewatch.models.domain import MonitoredSource, SourceKind
from sourcewatch.services.data_ingestion.scheduler import (
    SWEEP_JOB_ID,
    build_scheduler,
    is_due,
    next_due_at,
    select_due,
)

NOW = datetime(2024, 3, 1, 12, 0, 0)


def make_source(name: str, last_fetched_at=None, interval: int = 24, enabled: bool = True) -> MonitoredSource:
    return MonitoredSource(
        id=name,
        name=name,
        url=f"https://{name}.example.org/",
        kind=SourceKind.FEED,
        enabled=enabled,
        last_fetched_at=last_fetched_at,
        fetch_interval_hours=interval,
        created_at=NOW - timedelta(days=30),
    )


class TestSelectDue:
    """Tests for the due filter."""

    def test_never_fetched_is_due(self):
        assert is_due(make_source("fresh"), NOW)

    def test_interval_boundary(self):
        """Exactly one interval after the last fetch is due; a second earlier is not."""
        at_boundary = make_source("a", last_fetched_at=NOW - timedelta(hours=24))
        just_before = make_source("b", last_fetched_at=NOW - timedelta(hours=24) + timedelta(seconds=1))

        assert is_due(at_boundary, NOW)
        assert not is_due(just_before, NOW)

    def test_disabled_never_due(self):
        assert not is_due(make_source("off", enabled=False), NOW)
        assert not is_due(make_source("off", last_fetched_at=NOW - timedelta(days=9), enabled=False), NOW)

    def test_order_preserved(self):
        sources = [
            make_source("c"),
            make_source("a", last_fetched_at=NOW - timedelta(hours=1)),
            make_source("b", last_fetched_at=NOW - timedelta(hours=2), interval=1),
            make_source("d", enabled=False),
            make_source("e", last_fetched_at=NOW - timedelta(hours=48)),
        ]

        due = select_due(sources, NOW)

        assert [s.name for s in due] == ["c", "b", "e"]

    def test_empty_input(self):
        assert select_due([], NOW) == []

    def test_aware_and_naive_compared_as_utc(self):
        """A timezone-aware stamp is compared in UTC against a naive UTC clock."""
        last = datetime(2024, 3, 1, 13, 0, 0, tzinfo=timezone(timedelta(hours=2)))  # 11:00 UTC
        source = make_source("tz", last_fetched_at=last, interval=1)

        assert next_due_at(source) == datetime(2024, 3, 1, 12, 0, 0)
        assert is_due(source, NOW)
        assert not is_due(source, NOW.replace(tzinfo=timezone.utc) - timedelta(minutes=1))

    def test_no_catch_up(self):
        """A source fetched late is due one interval after the late fetch."""
        source = make_source("late", last_fetched_at=NOW - timedelta(hours=30))
        assert is_due(source, NOW)

        stamped = source.model_copy(update={"last_fetched_at": NOW})
        assert not is_due(stamped, NOW + timedelta(hours=23))
        assert is_due(stamped, NOW + timedelta(hours=24))


class TestSweepScheduler:
    """Tests for the periodic sweep trigger."""

    def test_build_scheduler_uses_check_interval(self):
        async def sweep():
            return None

        scheduler = build_scheduler(sweep, Settings(sweep_check_interval_minutes=5))

        assert scheduler.check_interval == timedelta(minutes=5)
        assert not scheduler.is_running

        status = scheduler.get_status()
        assert status["running"] is False
        assert status["check_interval_minutes"] == 5

    def test_registers_single_sweep_job(self):
        async def sweep():
            return None

        scheduler = build_scheduler(sweep, Settings())

        jobs = scheduler._scheduler.get_jobs()
        assert [job.id for job in jobs] == [SWEEP_JOB_ID]

"""
Long-running sourcewatch service: logging setup and the scheduled sweep loop.
"""
import asyncio
import logging
import signal
from typing import Optional

import structlog

from sourcewatch.config import Settings, get_settings
from sourcewatch.jobs.source_sweep import SourceSweepJob
from sourcewatch.models.database import Database
from sourcewatch.models.domain import SweepTrigger
from sourcewatch.services.data_ingestion.robots import RobotsCache
from sourcewatch.services.data_ingestion.scheduler import build_scheduler

logger = structlog.get_logger()


def configure_logging(settings: Optional[Settings] = None):
    """Route stdlib and structlog output through one structured pipeline."""
    settings = settings or get_settings()

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.log_json
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


async def serve(settings: Optional[Settings] = None):
    """Run scheduled sweeps until interrupted."""
    settings = settings or get_settings()

    logger.info(
        "Starting service",
        app=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )
    logger.info("Initializing database", url=settings.database_url)
    database = Database(settings.database_url)
    await database.create_tables()

    # One robots cache for the life of the process
    job = SourceSweepJob.from_settings(
        database,
        settings,
        robots_cache=RobotsCache(ttl_seconds=settings.robots_cache_ttl_seconds),
    )

    async def run_scheduled_sweep():
        result = await job.run_sweep(SweepTrigger.SCHEDULED)
        logger.info(
            "Scheduled sweep finished",
            sources_processed=result.sources_processed,
            new_articles=result.total_new_articles,
            errors=result.total_errors,
        )

    scheduler = build_scheduler(run_scheduled_sweep, settings)
    scheduler.start()
    logger.info(
        "Scheduler started",
        check_interval_minutes=settings.sweep_check_interval_minutes,
    )

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Signal handlers are unavailable on some platforms; Ctrl+C still cancels
            pass

    try:
        await stop.wait()
    finally:
        logger.info("Shutting down")
        scheduler.stop()
        await database.dispose()


if __name__ == "__main__":
    configure_logging()
    asyncio.run(serve())

"""
Main FastAPI application for the feed pipeline.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from feedpipe import __version__
from feedpipe.api.routes import router, set_feed_job
from feedpipe.config import get_settings
from feedpipe.jobs.feed_refresh import FeedRefreshJob
from feedpipe.models.database import Database
from feedpipe.services.ingestion.base import IngestionRunError


def configure_logging(level: str = "INFO"):
    """Structured JSON logging on top of the stdlib logging tree."""
    logging.basicConfig(format="%(message)s", level=level.upper())
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger()

# Global instances
database: Optional[Database] = None
scheduler: Optional[AsyncIOScheduler] = None
feed_job: Optional[FeedRefreshJob] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - handles startup and shutdown."""
    global database, scheduler, feed_job

    settings = get_settings()
    configure_logging(settings.log_level)

    logger.info("Initializing database", url=settings.database_url)
    database = Database(settings.database_url)

    feed_job = FeedRefreshJob(database, settings)
    await feed_job.initialize()
    set_feed_job(feed_job)

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        run_scheduled_refresh,
        IntervalTrigger(minutes=settings.ingestion_interval_minutes),
        id="feed_refresh",
        name="Feed Refresh",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info("Scheduler started", interval_minutes=settings.ingestion_interval_minutes)

    yield

    logger.info("Shutting down")
    if scheduler:
        scheduler.shutdown(wait=False)
    set_feed_job(None)
    await feed_job.aclose()
    await database.dispose()


async def run_scheduled_refresh():
    """Scheduled ingestion run; a run already in progress is not overlapped."""
    if feed_job is None:
        return
    if feed_job.is_running:
        logger.info("Skipping scheduled refresh, a run is in progress")
        return
    try:
        summary = await feed_job.run()
    except IngestionRunError as e:
        logger.error("Scheduled refresh failed", error=str(e))
        return
    logger.info(
        "Scheduled refresh completed",
        new_articles=summary.new_articles,
        failed_sources=summary.failed_sources,
    )


app = FastAPI(
    title="Feedpipe",
    description="News feed ingestion and source quality tracking.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "feedpipe",
        "version": __version__,
        "ingestion_running": feed_job.is_running if feed_job else False,
    }


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "feedpipe.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )

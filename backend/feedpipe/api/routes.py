"""
FastAPI routes for the feed pipeline operator surface.
"""

from typing import Annotated, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from feedpipe.core.seeds import ZIMBABWE_NEWS_SOURCES
from feedpipe.jobs.feed_refresh import FeedRefreshJob
from feedpipe.models.domain import (
    AddSourceResult,
    Article,
    ArticlePage,
    BulkImportRequest,
    BulkImportResult,
    DiscoverRequest,
    DiscoverResponse,
    PerformanceReport,
    RunSummary,
    Source,
    SourceCreate,
    SourceUpdate,
    SourceValidationResult,
    ValidateRequest,
)
from feedpipe.services.ingestion.base import IngestionRunError, StoreUnavailableError

logger = structlog.get_logger(__name__)
router = APIRouter()

_feed_job: Optional[FeedRefreshJob] = None


def set_feed_job(job: Optional[FeedRefreshJob]):
    """Install the pipeline the routes operate on (done by the app lifespan)."""
    global _feed_job
    _feed_job = job


def get_feed_job() -> FeedRefreshJob:
    if _feed_job is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Feed pipeline not initialized",
        )
    return _feed_job


JobDep = Annotated[FeedRefreshJob, Depends(get_feed_job)]


def _storage_unavailable(e: Exception) -> HTTPException:
    logger.error("Storage unavailable", error=str(e))
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Storage unavailable: {e}",
    )


# ============================================================================
# Ingestion Routes
# ============================================================================


@router.post("/admin/ingestion/run", response_model=RunSummary)
async def trigger_ingestion_run(job: JobDep):
    """
    Run ingestion over all enabled sources and return the run summary.

    Rejected while another run is in progress.
    """
    if job.is_running:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An ingestion run is already in progress",
        )
    try:
        return await job.run()
    except IngestionRunError as e:
        raise _storage_unavailable(e) from e


# ============================================================================
# Source Routes
# ============================================================================


@router.post("/sources", response_model=AddSourceResult)
async def add_source(request: SourceCreate, job: JobDep, response: Response):
    """
    Discover, validate and register a news site.

    Failures come back as `success: false` with a message; nothing is stored.
    """
    result = await job.registry.add_source(
        request.site_url,
        request.name,
        category=request.category,
        priority=request.priority,
    )
    response.status_code = status.HTTP_201_CREATED if result.success else status.HTTP_200_OK
    return result


@router.get("/sources", response_model=list[Source])
async def list_sources(job: JobDep):
    try:
        return await job.registry.list_sources()
    except StoreUnavailableError as e:
        raise _storage_unavailable(e) from e


@router.get("/sources/report", response_model=PerformanceReport)
async def source_performance_report(job: JobDep):
    """Totals, sources needing attention, top performers and recent additions."""
    try:
        return await job.registry.performance_report()
    except StoreUnavailableError as e:
        raise _storage_unavailable(e) from e


@router.patch("/sources/{source_id}", response_model=Source)
async def update_source(source_id: str, update: SourceUpdate, job: JobDep):
    """Enable/disable a source or change its priority."""
    try:
        source = await job.registry.update_source(source_id, update)
    except StoreUnavailableError as e:
        raise _storage_unavailable(e) from e

    if source is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Source not found")
    return source


@router.post("/sources/discover", response_model=DiscoverResponse)
async def discover_feeds(request: DiscoverRequest, job: JobDep):
    feeds = await job.discovery.discover_feeds(request.site_url)
    return DiscoverResponse(site_url=request.site_url, feeds=feeds)


@router.post("/sources/validate", response_model=SourceValidationResult)
async def validate_feed(request: ValidateRequest, job: JobDep):
    return await job.validator.validate_feed(request.feed_url)


@router.post("/sources/import", response_model=BulkImportResult)
async def import_sources(request: BulkImportRequest, job: JobDep):
    """Bulk import sources; defaults to the built-in Zimbabwe seed list."""
    entries = request.entries if request.entries is not None else list(ZIMBABWE_NEWS_SOURCES)
    try:
        return await job.registry.bulk_import(entries, validate=request.validate_feeds)
    except StoreUnavailableError as e:
        raise _storage_unavailable(e) from e


# ============================================================================
# Article Routes
# ============================================================================


@router.get("/articles", response_model=ArticlePage)
async def list_articles(
    job: JobDep,
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    source_id: Optional[str] = None,
    category_id: Optional[str] = None,
):
    """Most recently published articles first."""
    try:
        total = await job.article_store.count(source_id=source_id, category_id=category_id)
        rows = await job.article_store.list(
            limit=limit,
            offset=offset,
            source_id=source_id,
            category_id=category_id,
        )
    except StoreUnavailableError as e:
        raise _storage_unavailable(e) from e

    return ArticlePage(total=total, items=[Article.model_validate(row) for row in rows])

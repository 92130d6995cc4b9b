"""
Scheduled feed refresh job.

Wires the stores, HTTP client and services together and runs one ingestion
pass over all enabled sources. The API, the scheduler and the CLI all drive
ingestion and onboarding through this object.
"""
import asyncio
from typing import Optional

import httpx
import structlog

from feedpipe.config import Settings, get_settings
from feedpipe.core.categories import iter_category_rows
from feedpipe.models.database import Database
from feedpipe.models.domain import RunSummary
from feedpipe.services.classifier import CategoryCache, CategoryClassifier
from feedpipe.services.ingestion.fetcher import FeedFetcher, create_http_client
from feedpipe.services.ingestion.orchestrator import ImageOptimizer, IngestionOrchestrator
from feedpipe.services.sources.discovery import SourceDiscovery
from feedpipe.services.sources.registry import SourceRegistry
from feedpipe.services.sources.scorer import SourceQualityScorer
from feedpipe.services.sources.validator import SourceValidator
from feedpipe.services.stores import ArticleStore, CategoryStore, SourceStore

logger = structlog.get_logger(__name__)


class FeedRefreshJob:
    """
    Owns one wired-up pipeline.

    Pass `transport` to route every outbound request through a custom httpx
    transport (tests use `httpx.MockTransport`).
    """

    def __init__(
        self,
        database: Database,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        classifier: Optional[CategoryClassifier] = None,
        image_optimizer: Optional[ImageOptimizer] = None,
    ):
        self.database = database
        self.settings = settings or get_settings()

        self.client = create_http_client(self.settings.feed_timeout_seconds, transport=transport)

        self.article_store = ArticleStore(database)
        self.source_store = SourceStore(database)
        self.category_store = CategoryStore(database)
        self.category_cache = CategoryCache(
            self.category_store,
            ttl_seconds=self.settings.category_cache_ttl_seconds,
        )

        self.fetcher = FeedFetcher(
            client=self.client,
            timeout=self.settings.feed_timeout_seconds,
            user_agent=self.settings.user_agent,
            retry_attempts=self.settings.fetch_retry_attempts,
        )
        self.orchestrator = IngestionOrchestrator(
            article_store=self.article_store,
            source_store=self.source_store,
            category_cache=self.category_cache,
            fetcher=self.fetcher,
            scorer=SourceQualityScorer(self.settings.scoring),
            settings=self.settings,
            classifier=classifier,
            image_optimizer=image_optimizer,
        )
        self.discovery = SourceDiscovery(client=self.client, settings=self.settings)
        self.validator = SourceValidator(client=self.client, settings=self.settings)
        self.registry = SourceRegistry(
            source_store=self.source_store,
            discovery=self.discovery,
            validator=self.validator,
            settings=self.settings,
        )

        self._lock = asyncio.Lock()

    async def initialize(self):
        """Create tables and seed the category list."""
        logger.info("Initializing feed refresh job")
        await self.database.create_tables()
        added = await self.database.seed_categories(iter_category_rows())
        if added:
            self.category_cache.invalidate()
        logger.info("Categories seeded", added=added)

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def run(self, cancel_event: Optional[asyncio.Event] = None) -> RunSummary:
        """Run one ingestion pass. Overlapping calls wait for the current one."""
        async with self._lock:
            return await self.orchestrator.run(cancel_event=cancel_event)

    async def aclose(self):
        await self.client.aclose()

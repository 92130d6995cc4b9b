"""
Ingestion runs: fetch every enabled source, store new articles, score sources.

A run walks the enabled sources in priority order with a small worker pool.
Each source is handled start to finish by one worker:

    fetch -> parse -> extract -> (exists? skip : classify -> insert)

and ends with exactly one outcome applied to the source. Per-source failures
are recorded and the run moves on; losing the database aborts the run.
"""

import asyncio
import time
from typing import Optional, Protocol
from uuid import uuid4

import structlog

from feedpipe.config import Settings, get_settings
from feedpipe.models.database import DBArticle, DBSource
from feedpipe.models.domain import ArticleStatus, RunSummary, SourceRunReport
from feedpipe.services.classifier import CategoryCache, CategoryClassifier, KeywordCategoryClassifier
from feedpipe.services.ingestion.base import (
    ArticleCandidate,
    DuplicateArticleError,
    FeedStructureError,
    FetchOutcome,
    IngestionRunError,
    StoreUnavailableError,
)
from feedpipe.services.ingestion.extractor import ArticleExtractor
from feedpipe.services.ingestion.fetcher import FeedFetcher
from feedpipe.services.ingestion.parser import parse_feed
from feedpipe.services.sources.scorer import SourceQualityScorer
from feedpipe.services.stores import ArticleStore, SourceStore
from feedpipe.utils.time import utcnow

logger = structlog.get_logger(__name__)


class ImageOptimizer(Protocol):
    """Optional collaborator that rehosts or resizes article images."""

    async def optimize(self, image_url: str, article_id: str) -> str:
        ...


class IngestionOrchestrator:
    """
    Runs ingestion over all enabled sources.

    Collaborators are injected so tests can swap the HTTP layer, the
    classifier and the image optimizer.
    """

    def __init__(
        self,
        article_store: ArticleStore,
        source_store: SourceStore,
        category_cache: CategoryCache,
        fetcher: FeedFetcher,
        scorer: Optional[SourceQualityScorer] = None,
        settings: Optional[Settings] = None,
        classifier: Optional[CategoryClassifier] = None,
        image_optimizer: Optional[ImageOptimizer] = None,
    ):
        self.settings = settings or get_settings()
        self.articles = article_store
        self.sources = source_store
        self.category_cache = category_cache
        self.fetcher = fetcher
        self.scorer = scorer or SourceQualityScorer(self.settings.scoring)
        self.classifier = classifier
        self.image_optimizer = image_optimizer
        self.extractor = ArticleExtractor(
            description_max_length=self.settings.description_max_length,
            content_max_length=self.settings.content_max_length,
        )

    async def run(self, cancel_event: Optional[asyncio.Event] = None) -> RunSummary:
        """
        Execute one ingestion run.

        Raises:
            IngestionRunError: if the article or source store becomes
                unavailable. Remaining work is cancelled.
        """
        summary = RunSummary(started_at=utcnow())

        try:
            sources = await self.sources.list_enabled()
        except StoreUnavailableError as e:
            logger.error("Ingestion run aborted", error=str(e))
            raise IngestionRunError(f"Ingestion run aborted: {e}") from e

        summary.sources = len(sources)
        logger.info("Starting ingestion run", sources=len(sources))

        queue: asyncio.Queue[DBSource] = asyncio.Queue()
        for source in sources:
            queue.put_nowait(source)

        deadline = None
        if self.settings.run_deadline_seconds is not None:
            deadline = time.monotonic() + self.settings.run_deadline_seconds

        worker_count = min(self.settings.fetch_concurrency, len(sources))
        workers = [
            asyncio.create_task(self._worker(queue, summary, cancel_event, deadline))
            for _ in range(worker_count)
        ]

        try:
            await asyncio.gather(*workers)
        except StoreUnavailableError as e:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            logger.error("Ingestion run aborted", error=str(e))
            raise IngestionRunError(f"Ingestion run aborted: {e}") from e

        summary.finished_at = utcnow()
        logger.info(
            "Ingestion run completed",
            sources=summary.sources,
            processed=summary.processed,
            new_articles=summary.new_articles,
            skipped_duplicates=summary.skipped_duplicates,
            failed_sources=summary.failed_sources,
            cancelled=summary.cancelled,
            elapsed_seconds=(summary.finished_at - summary.started_at).total_seconds(),
        )
        return summary

    async def _worker(
        self,
        queue: "asyncio.Queue[DBSource]",
        summary: RunSummary,
        cancel_event: Optional[asyncio.Event],
        deadline: Optional[float],
    ):
        while True:
            try:
                source = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            if cancel_event is not None and cancel_event.is_set():
                summary.cancelled = True
                return
            if deadline is not None and time.monotonic() >= deadline:
                logger.warning("Run deadline reached, stopping", remaining=queue.qsize() + 1)
                summary.cancelled = True
                return

            summary.record(await self.process_source(source))

    async def process_source(self, source: DBSource) -> SourceRunReport:
        """Fetch one source and apply its outcome. Never raises for feed problems."""
        started = time.monotonic()
        log = logger.bind(source_id=source.id, feed=source.rss_url)

        try:
            outcome = await self._ingest(source)
        except StoreUnavailableError:
            raise
        except Exception as e:
            outcome = FetchOutcome.failure(source.id, e)
            log.warning("Source failed", kind=outcome.error_kind, error=outcome.error)

        outcome.duration_seconds = time.monotonic() - started
        await self.sources.record_outcome(outcome, self.scorer)

        if outcome.success:
            log.info(
                "Source processed",
                seen=outcome.articles_seen,
                new=outcome.articles_found,
                duplicates=outcome.skipped_duplicates,
                skipped=outcome.skipped_items,
            )

        return SourceRunReport(
            source_id=source.id,
            source_name=source.name,
            success=outcome.success,
            articles_seen=outcome.articles_seen,
            new_articles=outcome.articles_found,
            skipped_duplicates=outcome.skipped_duplicates,
            skipped_items=outcome.skipped_items,
            error=outcome.error,
            duration_seconds=round(outcome.duration_seconds, 3),
        )

    async def _ingest(self, source: DBSource) -> FetchOutcome:
        document = await self.fetcher.fetch(source.rss_url)
        parsed = parse_feed(document.content, document.encoding)

        outcome = FetchOutcome(source_id=source.id, success=True, skipped_items=parsed.skipped)

        candidates: list[ArticleCandidate] = []
        for item in parsed.items[: self.settings.max_items_per_fetch]:
            try:
                candidate = self.extractor.extract(item)
            except Exception as e:
                logger.warning(
                    "Skipping unreadable item",
                    source_id=source.id,
                    title=(item.title or "")[:60],
                    error=str(e),
                )
                candidate = None
            if candidate is None:
                outcome.skipped_items += 1
                continue
            candidates.append(candidate)

        if not candidates:
            raise FeedStructureError("Feed contains no usable articles")

        categories = await self.category_cache.get()
        classifier = self.classifier or KeywordCategoryClassifier(
            categories, fallback=self.settings.fallback_category
        )

        outcome.articles_seen = len(candidates)
        for candidate in candidates:
            if await self.articles.exists(candidate.link, candidate.guid):
                outcome.skipped_duplicates += 1
                continue

            article = self._build_article(source, candidate, classifier, categories)
            if article.image_url and self.image_optimizer is not None:
                article.image_url = await self._optimize_image(article.image_url, article.id)

            try:
                await self.articles.insert(article)
            except DuplicateArticleError:
                # Lost a race with another writer
                outcome.skipped_duplicates += 1
                continue
            outcome.articles_found += 1

        return outcome

    def _build_article(
        self,
        source: DBSource,
        candidate: ArticleCandidate,
        classifier: CategoryClassifier,
        categories: dict[str, list[str]],
    ) -> DBArticle:
        return DBArticle(
            id=uuid4().hex,
            title=candidate.title,
            slug=self.extractor.slugs.generate(candidate.title),
            description=candidate.description,
            content=candidate.content,
            author=candidate.author,
            source=source.name,
            source_id=source.id,
            source_url=source.url,
            category_id=self._categorize(candidate, classifier, categories),
            published_at=candidate.published_at,
            image_url=candidate.image_url,
            original_url=candidate.link,
            rss_guid=candidate.guid,
            status=ArticleStatus.PUBLISHED.value,
        )

    def _categorize(
        self,
        candidate: ArticleCandidate,
        classifier: CategoryClassifier,
        categories: dict[str, list[str]],
    ) -> str:
        fallback = self.settings.fallback_category
        try:
            category_id = classifier.classify(candidate.title, candidate.description)
        except Exception as e:
            logger.warning("Classifier failed", title=candidate.title[:60], error=str(e))
            return fallback

        if category_id not in categories:
            logger.warning("Unknown category from classifier", category=category_id, fallback=fallback)
            return fallback
        return category_id

    async def _optimize_image(self, image_url: str, article_id: str) -> str:
        try:
            return await self.image_optimizer.optimize(image_url, article_id) or image_url
        except Exception as e:
            logger.warning("Image optimization failed", image_url=image_url, error=str(e))
            return image_url

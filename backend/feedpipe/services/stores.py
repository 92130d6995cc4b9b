"""
Persistence access for categories, articles and sources.

Every store call opens its own short session. Uniqueness conflicts surface as
domain errors; any other database failure becomes StoreUnavailableError so
callers can tell "duplicate" apart from "storage is down".
"""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from feedpipe.models.database import Database, DBArticle, DBCategory, DBSource
from feedpipe.services.ingestion.base import (
    DuplicateArticleError,
    FetchOutcome,
    StoreUnavailableError,
)
from feedpipe.utils.time import utcnow

if TYPE_CHECKING:
    from feedpipe.services.sources.scorer import SourceQualityScorer


class DuplicateSourceError(Exception):
    """A source with the same id or domain is already registered."""


@asynccontextmanager
async def _storage_errors(operation: str):
    try:
        yield
    except IntegrityError:
        raise
    except SQLAlchemyError as e:
        raise StoreUnavailableError(f"{operation} failed: {e}") from e


class CategoryStore:
    """Read access to the category table."""

    def __init__(self, database: Database):
        self.database = database

    async def list(self) -> list[DBCategory]:
        async with _storage_errors("list categories"):
            async with self.database.async_session() as session:
                result = await session.execute(
                    select(DBCategory).order_by(DBCategory.sort_order, DBCategory.id)
                )
                return list(result.scalars().all())


class ArticleStore:
    """Article persistence; the unique constraints are the dedup authority."""

    def __init__(self, database: Database):
        self.database = database

    async def exists(self, original_url: str, guid: Optional[str] = None) -> bool:
        conditions = [DBArticle.original_url == original_url]
        if guid:
            conditions.append(DBArticle.rss_guid == guid)

        async with _storage_errors("article lookup"):
            async with self.database.async_session() as session:
                result = await session.execute(
                    select(DBArticle.id).where(or_(*conditions)).limit(1)
                )
                return result.scalar_one_or_none() is not None

    async def insert(self, article: DBArticle) -> str:
        """
        Insert an article and return its id.

        Raises:
            DuplicateArticleError: if the URL or GUID is already stored.
        """
        async with _storage_errors("article insert"):
            async with self.database.async_session() as session:
                session.add(article)
                try:
                    await session.commit()
                except IntegrityError as e:
                    await session.rollback()
                    raise DuplicateArticleError(article.original_url) from e
        return article.id

    async def count(
        self,
        source_id: Optional[str] = None,
        category_id: Optional[str] = None,
    ) -> int:
        query = select(func.count(DBArticle.id))
        if source_id:
            query = query.where(DBArticle.source_id == source_id)
        if category_id:
            query = query.where(DBArticle.category_id == category_id)
        async with _storage_errors("article count"):
            async with self.database.async_session() as session:
                result = await session.execute(query)
                return result.scalar() or 0

    async def list(
        self,
        limit: int = 20,
        offset: int = 0,
        source_id: Optional[str] = None,
        category_id: Optional[str] = None,
    ) -> list[DBArticle]:
        query = select(DBArticle)
        if source_id:
            query = query.where(DBArticle.source_id == source_id)
        if category_id:
            query = query.where(DBArticle.category_id == category_id)
        query = query.order_by(DBArticle.published_at.desc()).limit(limit).offset(offset)

        async with _storage_errors("article list"):
            async with self.database.async_session() as session:
                result = await session.execute(query)
                return list(result.scalars().all())


class SourceStore:
    """
    Source persistence.

    `record_outcome` is serialized per source id, so two updates for the same
    source never interleave even when sources are fetched concurrently.
    """

    HIGH_QUALITY_THRESHOLD = 70
    ATTENTION_THRESHOLD = 50

    def __init__(self, database: Database):
        self.database = database
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def list_enabled(self) -> list[DBSource]:
        """Enabled sources with a feed URL, highest priority first."""
        query = (
            select(DBSource)
            .where(DBSource.enabled.is_(True), DBSource.rss_url.is_not(None))
            .order_by(DBSource.priority.desc(), DBSource.name)
        )
        return await self._select(query, "list enabled sources")

    async def list_all(self) -> list[DBSource]:
        query = select(DBSource).order_by(DBSource.priority.desc(), DBSource.name)
        return await self._select(query, "list sources")

    async def get(self, source_id: str) -> Optional[DBSource]:
        async with _storage_errors("source lookup"):
            async with self.database.async_session() as session:
                return await session.get(DBSource, source_id)

    async def get_by_domain(self, base_domain: str) -> Optional[DBSource]:
        rows = await self._select(
            select(DBSource).where(DBSource.base_domain == base_domain).limit(1),
            "source domain lookup",
        )
        return rows[0] if rows else None

    async def insert(self, source: DBSource) -> DBSource:
        async with _storage_errors("source insert"):
            async with self.database.async_session() as session:
                session.add(source)
                try:
                    await session.commit()
                except IntegrityError as e:
                    await session.rollback()
                    raise DuplicateSourceError(source.id) from e
        return source

    async def update(self, source: DBSource) -> DBSource:
        async with self._locks[source.id]:
            async with _storage_errors("source update"):
                async with self.database.async_session() as session:
                    merged = await session.merge(source)
                    await session.commit()
                    return merged

    async def set_enabled(self, source_id: str, enabled: bool) -> Optional[DBSource]:
        async with self._locks[source_id]:
            async with _storage_errors("source update"):
                async with self.database.async_session() as session:
                    source = await session.get(DBSource, source_id)
                    if source is None:
                        return None
                    source.enabled = enabled
                    await session.commit()
                    return source

    async def record_outcome(
        self,
        outcome: FetchOutcome,
        scorer: "SourceQualityScorer",
        now: Optional[datetime] = None,
    ) -> Optional[DBSource]:
        """
        Apply one fetch outcome: fetch counters/timestamps, then scores.
        """
        now = now or utcnow()
        async with self._locks[outcome.source_id]:
            async with _storage_errors("source outcome update"):
                async with self.database.async_session() as session:
                    source = await session.get(DBSource, outcome.source_id)
                    if source is None:
                        return None
                    source.fetch_count = (source.fetch_count or 0) + 1
                    source.last_fetched_at = now
                    scorer.apply(source, outcome, now)
                    await session.commit()
                    return source

    # -------------------------------------------------------------------------
    # Reporting queries
    # -------------------------------------------------------------------------

    async def counts(self) -> tuple[int, int, int]:
        """(total, enabled, high quality) source counts."""
        async with _storage_errors("source counts"):
            async with self.database.async_session() as session:
                total = await session.scalar(select(func.count(DBSource.id)))
                active = await session.scalar(
                    select(func.count(DBSource.id)).where(DBSource.enabled.is_(True))
                )
                high_quality = await session.scalar(
                    select(func.count(DBSource.id)).where(
                        DBSource.quality_score >= self.HIGH_QUALITY_THRESHOLD
                    )
                )
        return total or 0, active or 0, high_quality or 0

    async def needing_attention(self, limit: int = 10) -> list[DBSource]:
        query = (
            select(DBSource)
            .where(or_(
                DBSource.quality_score < self.ATTENTION_THRESHOLD,
                DBSource.error_count > DBSource.success_count,
            ))
            .order_by(DBSource.quality_score.asc())
            .limit(limit)
        )
        return await self._select(query, "sources needing attention")

    async def top_performers(self, limit: int = 10) -> list[DBSource]:
        query = (
            select(DBSource)
            .where(DBSource.enabled.is_(True))
            .order_by(DBSource.quality_score.desc(), DBSource.reliability_score.desc())
            .limit(limit)
        )
        return await self._select(query, "top sources")

    async def recent_additions(self, limit: int = 5) -> list[DBSource]:
        query = select(DBSource).order_by(DBSource.created_at.desc()).limit(limit)
        return await self._select(query, "recent sources")

    async def _select(self, query, operation: str) -> list[DBSource]:
        async with _storage_errors(operation):
            async with self.database.async_session() as session:
                result = await session.execute(query)
                return list(result.scalars().all())

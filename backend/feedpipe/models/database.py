"""
SQLAlchemy database models for the feed pipeline.
Uses SQLAlchemy 2.0 async patterns.
"""
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    select,
)
from sqlalchemy.ext.asyncio import AsyncAttrs, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from feedpipe.models.domain import ArticleStatus, ValidationStatus
from feedpipe.utils.time import utcnow


# =============================================================================
# Base
# =============================================================================

class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all database models."""
    pass


# =============================================================================
# Categories
# =============================================================================

class DBCategory(Base):
    """Article category with the keywords used by the default classifier."""
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    keywords: Mapped[Optional[list]] = mapped_column(JSON)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)


# =============================================================================
# Sources
# =============================================================================

class DBSource(Base):
    """Registered news source with rolling quality scores."""
    __tablename__ = "sources"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    rss_url: Mapped[Optional[str]] = mapped_column(Text)
    base_domain: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    category: Mapped[str] = mapped_column(String(64), default="general")
    country: Mapped[str] = mapped_column(String(8), default="ZW")
    language: Mapped[str] = mapped_column(String(16), default="en")
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    priority: Mapped[int] = mapped_column(Integer, default=3)

    # Scores, all within [0, 100]
    quality_score: Mapped[float] = mapped_column(Float, default=0.0)
    reliability_score: Mapped[float] = mapped_column(Float, default=50.0)
    freshness_score: Mapped[float] = mapped_column(Float, default=50.0)

    validation_status: Mapped[str] = mapped_column(
        String(20), default=ValidationStatus.PENDING.value
    )
    error_count: Mapped[int] = mapped_column(Integer, default=0)
    success_count: Mapped[int] = mapped_column(Integer, default=0)
    fetch_count: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text)

    last_fetched_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_successful_fetch: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_validated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("ix_sources_enabled_priority", "enabled", "priority"),
        Index("ix_sources_quality", "quality_score"),
    )


# =============================================================================
# Articles
# =============================================================================

class DBArticle(Base):
    """Stored article, content frozen at ingestion time."""
    __tablename__ = "articles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    content: Mapped[Optional[str]] = mapped_column(Text)
    author: Mapped[Optional[str]] = mapped_column(String(255))

    source: Mapped[str] = mapped_column(String(255), nullable=False)
    source_id: Mapped[str] = mapped_column(String(64), ForeignKey("sources.id"), nullable=False)
    source_url: Mapped[Optional[str]] = mapped_column(Text)
    category_id: Mapped[str] = mapped_column(String(64), ForeignKey("categories.id"), nullable=False)

    published_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    image_url: Mapped[Optional[str]] = mapped_column(Text)
    original_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    rss_guid: Mapped[Optional[str]] = mapped_column(String(2048))
    status: Mapped[str] = mapped_column(String(20), default=ArticleStatus.PUBLISHED.value)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("original_url", name="uq_articles_original_url"),
        UniqueConstraint("rss_guid", name="uq_articles_rss_guid"),
        Index("ix_articles_published_at", "published_at"),
        Index("ix_articles_source_published", "source_id", "published_at"),
        Index("ix_articles_category", "category_id"),
    )


# =============================================================================
# Database Connection
# =============================================================================

class Database:
    """Database connection manager."""

    def __init__(self, database_url: str):
        self.engine = create_async_engine(
            database_url,
            echo=False,  # Set to True for SQL logging
        )
        self.async_session = async_sessionmaker(
            self.engine,
            expire_on_commit=False,
        )

    async def create_tables(self):
        """Create all tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_tables(self):
        """Drop all tables (use with caution!)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def seed_categories(self, categories: Iterable[dict]) -> int:
        """Insert missing categories. Returns the number added."""
        added = 0
        async with self.async_session() as session:
            result = await session.execute(select(DBCategory.id))
            existing = set(result.scalars().all())
            for order, category in enumerate(categories):
                if category["id"] in existing:
                    continue
                session.add(DBCategory(
                    id=category["id"],
                    name=category["name"],
                    keywords=list(category.get("keywords", [])),
                    sort_order=order,
                ))
                added += 1
            await session.commit()
        return added

    async def dispose(self):
        """Close pooled connections."""
        await self.engine.dispose()

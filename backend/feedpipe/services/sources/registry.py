"""
Source onboarding and operator reporting.

`SourceRegistry` ties discovery, validation and the source store together:
adding a site, importing seed lists, toggling sources and summarising how
well the registered sources perform.
"""

import asyncio
import re
from typing import Iterable, Optional
from urllib.parse import urlparse

import structlog

from feedpipe.config import Settings, get_settings
from feedpipe.models.database import DBSource
from feedpipe.models.domain import (
    AddSourceResult,
    BulkImportResult,
    PerformanceReport,
    PerformanceTotals,
    SeedSource,
    Source,
    SourceUpdate,
    SourceValidationResult,
    ValidationStatus,
)
from feedpipe.services.ingestion.base import StoreUnavailableError
from feedpipe.services.sources.discovery import SourceDiscovery
from feedpipe.services.sources.scorer import clamp_score
from feedpipe.services.sources.validator import SourceValidator
from feedpipe.services.stores import DuplicateSourceError, SourceStore
from feedpipe.utils.time import utcnow

logger = structlog.get_logger(__name__)

SOURCE_ID_MAX_LENGTH = 50
INITIAL_RELIABILITY = 50.0
FRESHNESS_WITH_RECENT = 80.0
FRESHNESS_WITHOUT_RECENT = 30.0


def source_id_from_name(name: str) -> str:
    """`The Herald` -> `the-herald`."""
    slug = re.sub(r"[^a-z0-9\s-]", "", name.lower())
    slug = re.sub(r"\s+", "-", slug.strip())
    return slug[:SOURCE_ID_MAX_LENGTH]


def base_domain_of(url: str) -> Optional[str]:
    return urlparse(url).hostname


class SourceRegistry:
    """Operator-facing source management."""

    def __init__(
        self,
        source_store: SourceStore,
        discovery: SourceDiscovery,
        validator: SourceValidator,
        settings: Optional[Settings] = None,
    ):
        self.sources = source_store
        self.discovery = discovery
        self.validator = validator
        self.settings = settings or get_settings()

    async def add_source(
        self,
        site_url: str,
        name: str,
        category: str = "general",
        priority: int = 3,
    ) -> AddSourceResult:
        """
        Discover, validate and register a site.

        Never raises for expected failures: duplicates, sites without feeds and
        storage errors all come back as `success=False` with a message, and
        nothing is stored in those cases.
        """
        logger.info("Adding source", name=name, site_url=site_url)

        base_domain = base_domain_of(site_url)
        source_id = source_id_from_name(name)
        if not base_domain:
            return self._rejected(name, f"Invalid site URL: {site_url}")
        if not source_id:
            return self._rejected(name, f"Cannot derive an identifier from name {name!r}")

        try:
            if await self.sources.get_by_domain(base_domain):
                return self._rejected(name, f"Source with domain {base_domain} already exists")

            feeds = await self.discovery.discover_feeds(site_url)
            if not feeds:
                return self._rejected(name, "No RSS feeds found on this website")

            best_url, best = await self._best_feed(feeds)
            if best is None:
                return self._rejected(name, "No valid RSS feeds found on this website")

            now = utcnow()
            db_source = DBSource(
                id=source_id,
                name=name,
                url=site_url,
                rss_url=best_url,
                base_domain=base_domain,
                category=category,
                country=self.settings.default_country,
                language=best.language_detected or self.settings.default_language,
                enabled=True,
                priority=priority,
                quality_score=clamp_score(best.feed_quality),
                reliability_score=INITIAL_RELIABILITY,
                freshness_score=(
                    FRESHNESS_WITH_RECENT if best.recent_articles else FRESHNESS_WITHOUT_RECENT
                ),
                validation_status=ValidationStatus.VALID.value,
                error_count=0,
                success_count=1,
                fetch_count=0,
                last_validated_at=now,
                last_successful_fetch=now,
            )
            await self.sources.insert(db_source)

        except DuplicateSourceError:
            return self._rejected(name, f"Source {source_id} already exists")
        except StoreUnavailableError as e:
            logger.error("Source storage failed", name=name, error=str(e))
            return self._rejected(name, f"Error adding source: {e}")

        logger.info("Source added", source_id=source_id, feed=best_url, quality=best.feed_quality)
        return AddSourceResult(
            success=True,
            source=Source.model_validate(db_source),
            message=f"Successfully added {name} with {best.feed_quality} quality score",
        )

    async def _best_feed(
        self,
        feeds: list[str],
    ) -> tuple[Optional[str], Optional[SourceValidationResult]]:
        best_url: Optional[str] = None
        best: Optional[SourceValidationResult] = None
        for feed_url in feeds[: self.settings.max_feeds_to_validate]:
            validation = await self.validator.validate_feed(feed_url)
            if not validation.is_valid:
                continue
            if best is None or validation.feed_quality > best.feed_quality:
                best_url, best = feed_url, validation
        return best_url, best

    def _rejected(self, name: str, message: str) -> AddSourceResult:
        logger.warning("Source not added", name=name, reason=message)
        return AddSourceResult(success=False, message=message)

    async def bulk_import(
        self,
        entries: Iterable[SeedSource],
        validate: bool = False,
    ) -> BulkImportResult:
        """
        Register many sources.

        With `validate` every entry goes through `add_source`, one at a time
        with a pause in between. Without it entries are stored as `pending`
        and only enabled when they already carry a feed URL.
        """
        entries = list(entries)
        result = BulkImportResult()

        for index, entry in enumerate(entries):
            if validate:
                if index:
                    await asyncio.sleep(self.settings.bulk_import_delay_seconds)
                outcome = await self.add_source(entry.url, entry.name, entry.category, entry.priority)
                if outcome.success:
                    result.added += 1
                    result.details.append(f"✓ {entry.name}: {outcome.message}")
                else:
                    result.failed += 1
                    result.details.append(f"✗ {entry.name}: {outcome.message}")
                continue

            await self._import_pending(entry, result)

        logger.info(
            "Bulk import finished",
            added=result.added,
            failed=result.failed,
            skipped=result.skipped,
            validated=validate,
        )
        return result

    async def _import_pending(self, entry: SeedSource, result: BulkImportResult) -> None:
        base_domain = base_domain_of(entry.url)
        source_id = source_id_from_name(entry.name)
        if not base_domain or not source_id:
            result.failed += 1
            result.details.append(f"✗ {entry.name}: invalid name or URL")
            return

        if await self.sources.get_by_domain(base_domain):
            result.skipped += 1
            result.details.append(f"- {entry.name}: domain {base_domain} already registered")
            return

        try:
            await self.sources.insert(DBSource(
                id=source_id,
                name=entry.name,
                url=entry.url,
                rss_url=entry.rss_url,
                base_domain=base_domain,
                category=entry.category,
                country=self.settings.default_country,
                language=self.settings.default_language,
                enabled=entry.rss_url is not None,
                priority=entry.priority,
                validation_status=ValidationStatus.PENDING.value,
            ))
        except DuplicateSourceError:
            result.failed += 1
            result.details.append(f"✗ {entry.name}: source {source_id} already exists")
            return

        result.added += 1
        result.details.append(f"✓ {entry.name}: added as pending")

    async def set_enabled(self, source_id: str, enabled: bool) -> Optional[Source]:
        source = await self.sources.set_enabled(source_id, enabled)
        if source is None:
            return None
        logger.info("Source toggled", source_id=source_id, enabled=enabled)
        return Source.model_validate(source)

    async def update_source(self, source_id: str, changes: SourceUpdate) -> Optional[Source]:
        source = await self.sources.get(source_id)
        if source is None:
            return None
        for field, value in changes.model_dump(exclude_none=True).items():
            setattr(source, field, value)
        updated = await self.sources.update(source)
        logger.info("Source updated", source_id=source_id, **changes.model_dump(exclude_none=True))
        return Source.model_validate(updated)

    async def list_sources(self) -> list[Source]:
        return [Source.model_validate(s) for s in await self.sources.list_all()]

    async def performance_report(self) -> PerformanceReport:
        total, active, high_quality = await self.sources.counts()
        return PerformanceReport(
            totals=PerformanceTotals(
                total_sources=total,
                active_sources=active,
                high_quality_sources=high_quality,
            ),
            sources_needing_attention=[
                Source.model_validate(s) for s in await self.sources.needing_attention()
            ],
            top_performers=[
                Source.model_validate(s) for s in await self.sources.top_performers()
            ],
            recent_additions=[
                Source.model_validate(s) for s in await self.sources.recent_additions()
            ],
        )

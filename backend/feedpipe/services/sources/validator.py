"""
Feed validation and quality assessment for candidate sources.
"""

from datetime import datetime, timedelta
from typing import Optional

import httpx
import structlog

from feedpipe.config import Settings, get_settings
from feedpipe.models.domain import SourceValidationResult, UpdateFrequency, ValidationDetails
from feedpipe.services.ingestion.base import EmptyFeedError, FeedFetchError, FeedItem, FeedStructureError
from feedpipe.services.ingestion.extractor import clean_text
from feedpipe.services.ingestion.fetcher import FeedFetcher, create_http_client
from feedpipe.services.ingestion.parser import decode_document, parse_feed
from feedpipe.utils.time import parse_feed_date, utcnow

logger = structlog.get_logger(__name__)

FEED_MARKERS = ("<rss", "<feed", "<rdf:RDF")


def _item_date(item: FeedItem) -> Optional[datetime]:
    for raw in item.dates:
        parsed = parse_feed_date(raw)
        if parsed is not None:
            return parsed
    return None


class SourceValidator:
    """
    Fetches a feed URL once and scores it.

    Score: 10 points per item up to 100, +20 when anything was published in
    the last week, +30 when the first item reads as local content. Invalid
    feeds always score 0.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.rules = self.settings.validation
        self._owns_client = client is None
        self._client = client or create_http_client(self.settings.validation_timeout_seconds)
        self.fetcher = FeedFetcher(
            client=self._client,
            timeout=self.settings.validation_timeout_seconds,
            user_agent=f"{self.settings.user_agent} (Validation)",
            retry_attempts=1,
        )

    async def validate_feed(
        self,
        feed_url: str,
        now: Optional[datetime] = None,
    ) -> SourceValidationResult:
        now = now or utcnow()
        logger.info("Validating feed", feed_url=feed_url)

        result = SourceValidationResult(detected_feeds=[feed_url])
        details = result.validation_details

        try:
            document = await self.fetcher.fetch(feed_url)
        except FeedFetchError as e:
            result.error_message = str(e)
            if e.status_code is None:
                result.detected_feeds = []
                result.validation_details = ValidationDetails(has_rss=False)
            return self._finish(feed_url, result)

        details.rss_accessible = True

        text = decode_document(document.content, document.encoding)
        if not any(marker in text for marker in FEED_MARKERS):
            result.error_message = "Not a valid RSS or Atom feed"
            return self._finish(feed_url, result)

        details.feed_structure_valid = True

        try:
            parsed = parse_feed(document.content, document.encoding)
        except EmptyFeedError:
            result.error_message = "Feed contains no articles"
            return self._finish(feed_url, result)
        except FeedStructureError as e:
            result.error_message = f"Feed parsing error: {e}"
            details.encoding_issues = True
            return self._finish(feed_url, result)

        items = parsed.items
        details.articles_count = len(items)
        quality = min(len(items) * self.rules.points_per_article, self.rules.article_points_cap)

        cutoff = now - timedelta(days=self.rules.recent_window_days)
        recent = 0
        for item in items:
            published = _item_date(item)
            if published is not None and published > cutoff:
                recent += 1

        details.recent_articles = recent > 0
        if recent:
            quality += self.rules.recency_bonus

        if recent >= self.rules.daily_min_recent:
            result.estimated_update_frequency = UpdateFrequency.DAILY
        elif recent >= self.rules.weekly_min_recent:
            result.estimated_update_frequency = UpdateFrequency.WEEKLY
        else:
            result.estimated_update_frequency = UpdateFrequency.MONTHLY

        first = items[0]
        title = clean_text(first.title) or ""
        description = clean_text(first.description or first.summary) or ""
        result.content_sample = f"{title} {description}"[: self.rules.sample_length]

        sample = result.content_sample.lower()
        if any(keyword in sample for keyword in self.rules.locale_keywords):
            result.language_detected = self.rules.locale_language
            quality += self.rules.locale_bonus
        else:
            result.language_detected = self.settings.default_language

        result.feed_quality = quality
        result.is_valid = True
        result.rss_url = feed_url
        return self._finish(feed_url, result)

    def _finish(self, feed_url: str, result: SourceValidationResult) -> SourceValidationResult:
        if not result.is_valid:
            result.feed_quality = 0
        logger.info(
            "Validation complete",
            feed_url=feed_url,
            valid=result.is_valid,
            quality=result.feed_quality,
            error=result.error_message,
        )
        return result

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

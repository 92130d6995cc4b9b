"""
Base data models and errors for feed ingestion.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


# =============================================================================
# Errors
# =============================================================================

class FeedError(Exception):
    """A per-source failure: recorded on the source, never fatal to a run."""

    kind = "feed_error"


class FeedFetchError(FeedError):
    """Network failure, timeout or non-2xx response."""

    kind = "transient"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FeedStructureError(FeedError):
    """Unparseable XML, unknown root element, or no usable items."""

    kind = "structural"


class EmptyFeedError(FeedStructureError):
    """The document parsed but contained no items."""


class DuplicateArticleError(Exception):
    """An article with the same original URL or GUID is already stored."""


class StoreUnavailableError(Exception):
    """Persistence failed for a reason other than a uniqueness conflict."""


class IngestionRunError(Exception):
    """A run aborted because a shared resource became unavailable."""


# =============================================================================
# Feed items
# =============================================================================

class FeedFormat(str, Enum):
    RSS = "rss"
    RDF = "rdf"
    ATOM = "atom"


@dataclass
class FeedItem:
    """
    Canonical feed item.

    RSS 2.0, RSS 1.0 and Atom entries are all normalized into this shape by
    the parser; every field is a single string or None. Text fields keep their
    raw markup so the extractor can look for inline images before cleaning.
    """
    title: Optional[str] = None
    link: Optional[str] = None
    guid: Optional[str] = None

    description: Optional[str] = None
    summary: Optional[str] = None
    content_encoded: Optional[str] = None
    content: Optional[str] = None

    author: Optional[str] = None
    # Raw date strings in precedence order: pubDate, published, updated, dc:date
    dates: list[str] = field(default_factory=list)

    media_url: Optional[str] = None
    media_type: Optional[str] = None
    enclosure_url: Optional[str] = None
    enclosure_type: Optional[str] = None


@dataclass
class ParsedFeed:
    """Result of parsing one feed document."""
    format: FeedFormat
    items: list[FeedItem]
    title: Optional[str] = None
    skipped: int = 0


# =============================================================================
# Articles and outcomes
# =============================================================================

@dataclass
class ArticleCandidate:
    """
    Cleaned article extracted from a feed item, not yet classified or stored.
    """
    title: str
    link: str
    guid: str
    published_at: datetime
    description: Optional[str] = None
    content: Optional[str] = None
    author: Optional[str] = None
    image_url: Optional[str] = None


@dataclass
class FetchOutcome:
    """
    What one fetch of one source produced.

    This is the only input to the quality scorer. `articles_found` counts the
    articles newly stored by this fetch.
    """
    source_id: str
    success: bool
    articles_found: int = 0
    articles_seen: int = 0
    skipped_duplicates: int = 0
    skipped_items: int = 0
    error: Optional[str] = None
    error_kind: Optional[str] = None
    duration_seconds: float = 0.0

    @classmethod
    def failure(
        cls,
        source_id: str,
        error: Exception,
        duration_seconds: float = 0.0,
    ) -> "FetchOutcome":
        return cls(
            source_id=source_id,
            success=False,
            error=str(error) or error.__class__.__name__,
            error_kind=getattr(error, "kind", "unexpected"),
            duration_seconds=duration_seconds,
        )

    def __str__(self) -> str:
        status = "✓" if self.success else "✗"
        return (
            f"{status} {self.source_id}: "
            f"seen={self.articles_seen}, new={self.articles_found}, "
            f"duplicates={self.skipped_duplicates}, skipped={self.skipped_items}, "
            f"error={self.error or '-'}, time={self.duration_seconds:.1f}s"
        )

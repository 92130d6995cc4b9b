"""
Domain models for the feed pipeline.
These are the operator-facing entities, independent of database representation.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Enums
# =============================================================================

class ValidationStatus(str, Enum):
    """Lifecycle state of a source's feed validation."""
    PENDING = "pending"
    VALID = "valid"
    INVALID = "invalid"
    NEEDS_REVIEW = "needs_review"


class ArticleStatus(str, Enum):
    """Moderation state of a stored article."""
    PUBLISHED = "published"
    PENDING = "pending"
    FLAGGED = "flagged"
    DELETED = "deleted"


class UpdateFrequency(str, Enum):
    """Estimated publishing cadence of a feed."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    UNKNOWN = "unknown"


# =============================================================================
# Sources
# =============================================================================

class Source(BaseModel):
    """A registered news origin and its quality metadata."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    url: str
    rss_url: Optional[str] = None
    base_domain: str
    category: str = "general"
    country: str = "ZW"
    language: str = "en"
    enabled: bool = True
    priority: int = 3

    quality_score: float = Field(default=0.0, ge=0.0, le=100.0)
    reliability_score: float = Field(default=50.0, ge=0.0, le=100.0)
    freshness_score: float = Field(default=50.0, ge=0.0, le=100.0)

    validation_status: ValidationStatus = ValidationStatus.PENDING
    error_count: int = 0
    success_count: int = 0
    fetch_count: int = 0
    last_error: Optional[str] = None
    last_fetched_at: Optional[datetime] = None
    last_successful_fetch: Optional[datetime] = None
    last_validated_at: Optional[datetime] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SourceCreate(BaseModel):
    """Request to onboard a new source from its bare site URL."""
    site_url: str
    name: str = Field(min_length=1, max_length=255)
    category: str = "general"
    priority: int = Field(default=3, ge=0, le=10)


class SourceUpdate(BaseModel):
    """Operator changes to an existing source."""
    enabled: Optional[bool] = None
    priority: Optional[int] = Field(default=None, ge=0, le=10)


class SeedSource(BaseModel):
    """One entry of a bulk import list."""
    name: str
    url: str
    category: str = "general"
    priority: int = 3
    rss_url: Optional[str] = None


class DiscoverRequest(BaseModel):
    site_url: str


class DiscoverResponse(BaseModel):
    site_url: str
    feeds: list[str]


class ValidateRequest(BaseModel):
    feed_url: str


class BulkImportRequest(BaseModel):
    """Sources to import; the built-in seed list when `entries` is omitted."""
    entries: Optional[list[SeedSource]] = None
    validate_feeds: bool = False


class AddSourceResult(BaseModel):
    """Structured answer to an add-source request."""
    success: bool
    source: Optional[Source] = None
    message: str


class BulkImportResult(BaseModel):
    """Outcome of importing a list of sources."""
    added: int = 0
    failed: int = 0
    skipped: int = 0
    details: list[str] = Field(default_factory=list)


class ValidationDetails(BaseModel):
    """Individual checks performed while validating a feed."""
    has_rss: bool = True
    rss_accessible: bool = False
    articles_count: int = 0
    recent_articles: bool = False
    feed_structure_valid: bool = False
    encoding_issues: bool = False


class SourceValidationResult(BaseModel):
    """Quality assessment of a candidate feed URL."""
    is_valid: bool = False
    rss_url: Optional[str] = None
    detected_feeds: list[str] = Field(default_factory=list)
    feed_quality: int = 0
    estimated_update_frequency: UpdateFrequency = UpdateFrequency.UNKNOWN
    language_detected: Optional[str] = None
    content_sample: Optional[str] = None
    error_message: Optional[str] = None
    validation_details: ValidationDetails = Field(default_factory=ValidationDetails)

    @property
    def recent_articles(self) -> bool:
        return self.validation_details.recent_articles


class PerformanceTotals(BaseModel):
    total_sources: int = 0
    active_sources: int = 0
    high_quality_sources: int = 0


class PerformanceReport(BaseModel):
    """Source health overview for operators."""
    totals: PerformanceTotals = Field(default_factory=PerformanceTotals)
    sources_needing_attention: list[Source] = Field(default_factory=list)
    top_performers: list[Source] = Field(default_factory=list)
    recent_additions: list[Source] = Field(default_factory=list)


# =============================================================================
# Articles
# =============================================================================

class Article(BaseModel):
    """A persisted news item."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    slug: str
    description: Optional[str] = None
    content: Optional[str] = None
    author: Optional[str] = None
    source: str
    source_id: str
    source_url: Optional[str] = None
    category_id: str
    published_at: datetime
    image_url: Optional[str] = None
    original_url: str
    rss_guid: Optional[str] = None
    status: ArticleStatus = ArticleStatus.PUBLISHED
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ArticlePage(BaseModel):
    """Paginated article listing."""
    total: int
    items: list[Article]


# =============================================================================
# Ingestion runs
# =============================================================================

class SourceRunReport(BaseModel):
    """What happened to one source during a run."""
    source_id: str
    source_name: str
    success: bool
    articles_seen: int = 0
    new_articles: int = 0
    skipped_duplicates: int = 0
    skipped_items: int = 0
    error: Optional[str] = None
    duration_seconds: float = 0.0


class RunSummary(BaseModel):
    """Aggregate result of one ingestion run."""
    sources: int = 0
    processed: int = 0
    new_articles: int = 0
    skipped_duplicates: int = 0
    failed_sources: int = 0
    errors: list[str] = Field(default_factory=list)
    cancelled: bool = False
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    results: list[SourceRunReport] = Field(default_factory=list)

    def record(self, report: SourceRunReport) -> None:
        self.results.append(report)
        self.processed += report.articles_seen
        self.new_articles += report.new_articles
        self.skipped_duplicates += report.skipped_duplicates
        if not report.success:
            self.failed_sources += 1
            self.errors.append(f"{report.source_name}: {report.error}")

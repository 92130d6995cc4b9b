"""
Feed ingestion: fetch, parse and extract articles.
"""

from feedpipe.services.ingestion.base import (
    ArticleCandidate,
    DuplicateArticleError,
    EmptyFeedError,
    FeedError,
    FeedFetchError,
    FeedFormat,
    FeedItem,
    FeedStructureError,
    FetchOutcome,
    IngestionRunError,
    ParsedFeed,
    StoreUnavailableError,
)
from feedpipe.services.ingestion.extractor import ArticleExtractor, SlugGenerator, clean_text, slugify
from feedpipe.services.ingestion.fetcher import FeedFetcher, create_http_client
from feedpipe.services.ingestion.parser import parse_feed

__all__ = [
    # Data models
    "ArticleCandidate",
    "FeedFormat",
    "FeedItem",
    "FetchOutcome",
    "ParsedFeed",
    # Errors
    "DuplicateArticleError",
    "EmptyFeedError",
    "FeedError",
    "FeedFetchError",
    "FeedStructureError",
    "IngestionRunError",
    "StoreUnavailableError",
    # Pipeline stages
    "ArticleExtractor",
    "FeedFetcher",
    "SlugGenerator",
    "clean_text",
    "create_http_client",
    "slugify",
    "parse_feed",
]

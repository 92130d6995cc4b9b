#!/usr/bin/env python3
"""
CLI tool for the feed pipeline.

Usage:
    # Run one ingestion pass over all enabled sources
    python -m scripts.ingest fetch

    # Find and score feeds for a site
    python -m scripts.ingest discover https://www.herald.co.zw
    python -m scripts.ingest validate https://www.herald.co.zw/feed/

    # Register sources
    python -m scripts.ingest add-source https://www.herald.co.zw "The Herald" --priority 5
    python -m scripts.ingest import-seeds --validate

    # Source health overview
    python -m scripts.ingest report

    # Run the API with the scheduled refresh
    python -m scripts.ingest serve
"""

import argparse
import asyncio
import json
import logging
import sys
from contextlib import asynccontextmanager

# Add parent directory to path for imports
sys.path.insert(0, str(__file__).rsplit("/", 2)[0])

from feedpipe.config import get_settings
from feedpipe.core.seeds import ZIMBABWE_NEWS_SOURCES
from feedpipe.jobs.feed_refresh import FeedRefreshJob
from feedpipe.models.database import Database
from feedpipe.models.domain import Source
from feedpipe.services.ingestion.base import IngestionRunError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def feed_job(args):
    """An initialized pipeline for the configured (or overridden) database."""
    settings = get_settings()
    database = Database(args.database or settings.database_url)
    job = FeedRefreshJob(database, settings)
    try:
        await job.initialize()
        yield job
    finally:
        await job.aclose()
        await database.dispose()


def print_sources(title: str, sources: list[Source]):
    print(f"\n{title}")
    print("-" * 60)
    if not sources:
        print("  (none)")
    for source in sources:
        status = "on " if source.enabled else "off"
        print(
            f"  [{status}] {source.name:<28} quality={source.quality_score:6.2f} "
            f"reliability={source.reliability_score:6.2f} "
            f"ok/err={source.success_count}/{source.error_count}"
        )


async def cmd_fetch(args):
    """Run one ingestion pass."""
    async with feed_job(args) as job:
        print("Fetching articles from all enabled sources...")
        try:
            summary = await job.run()
        except IngestionRunError as e:
            print(f"Run aborted: {e}")
            return 2

    print("\n" + "=" * 60)
    print("INGESTION RESULTS")
    print("=" * 60)

    for result in summary.results:
        status = "✓" if result.success else "✗"
        print(
            f"{status} {result.source_name}: seen={result.articles_seen}, "
            f"new={result.new_articles}, duplicates={result.skipped_duplicates}, "
            f"error={result.error or '-'}, time={result.duration_seconds:.1f}s"
        )

    print("-" * 60)
    print(f"Sources: {summary.sources}  Failed: {summary.failed_sources}")
    print(f"Articles seen: {summary.processed}  New: {summary.new_articles}  "
          f"Duplicates: {summary.skipped_duplicates}")
    if summary.cancelled:
        print("Run stopped early (deadline or cancellation)")

    if args.output:
        with open(args.output, "w") as f:
            f.write(summary.model_dump_json(indent=2))
        print(f"\nSummary saved to: {args.output}")

    return 1 if summary.sources and summary.failed_sources == summary.sources else 0


async def cmd_discover(args):
    """List feed URLs found for a site."""
    async with feed_job(args) as job:
        feeds = await job.discovery.discover_feeds(args.site_url)

    if not feeds:
        print(f"No feeds found for {args.site_url}")
        return 1
    for feed in feeds:
        print(feed)
    return 0


async def cmd_validate(args):
    """Validate and score one feed URL."""
    async with feed_job(args) as job:
        result = await job.validator.validate_feed(args.feed_url)

    print(json.dumps(result.model_dump(mode="json"), indent=2))
    return 0 if result.is_valid else 1


async def cmd_add_source(args):
    """Discover, validate and register a site."""
    async with feed_job(args) as job:
        result = await job.registry.add_source(
            args.site_url,
            args.name,
            category=args.category,
            priority=args.priority,
        )

    status = "✓" if result.success else "✗"
    print(f"{status} {result.message}")
    if result.source:
        print(f"  Feed: {result.source.rss_url}")
    return 0 if result.success else 1


async def cmd_import_seeds(args):
    """Import the built-in seed source list."""
    async with feed_job(args) as job:
        result = await job.registry.bulk_import(
            ZIMBABWE_NEWS_SOURCES,
            validate=args.validate,
        )

    for line in result.details:
        print(line)
    print("-" * 60)
    print(f"Added: {result.added}  Failed: {result.failed}  Skipped: {result.skipped}")
    return 0


async def cmd_report(args):
    """Show source performance."""
    async with feed_job(args) as job:
        report = await job.registry.performance_report()

    if args.json:
        print(report.model_dump_json(indent=2))
        return 0

    totals = report.totals
    print("\n" + "=" * 60)
    print("SOURCE PERFORMANCE")
    print("=" * 60)
    print(f"Total sources: {totals.total_sources}")
    print(f"Active sources: {totals.active_sources}")
    print(f"High quality sources: {totals.high_quality_sources}")

    print_sources("Needing attention", report.sources_needing_attention)
    print_sources("Top performers", report.top_performers)
    print_sources("Recent additions", report.recent_additions)
    return 0


def cmd_serve(args):
    """Run the API server with the scheduled refresh."""
    import uvicorn

    settings = get_settings()
    print(f"Starting server on {args.host or settings.host}:{args.port or settings.port} "
          f"(refresh every {settings.ingestion_interval_minutes} minutes)")
    uvicorn.run(
        "feedpipe.main:app",
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level=settings.log_level.lower(),
    )
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Feedpipe - News Feed Ingestion CLI"
    )
    parser.add_argument(
        "--database", "-d",
        help="Database URL (default: DATABASE_URL setting)"
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Fetch command
    fetch_parser = subparsers.add_parser("fetch", help="Run one ingestion pass")
    fetch_parser.add_argument(
        "--output", "-o",
        help="Output file for the run summary (JSON)"
    )

    # Discover command
    discover_parser = subparsers.add_parser("discover", help="Find feeds for a site")
    discover_parser.add_argument("site_url", help="Site home page URL")

    # Validate command
    validate_parser = subparsers.add_parser("validate", help="Validate a feed URL")
    validate_parser.add_argument("feed_url", help="Feed URL")

    # Add-source command
    add_parser = subparsers.add_parser("add-source", help="Register a new site")
    add_parser.add_argument("site_url", help="Site home page URL")
    add_parser.add_argument("name", help="Display name")
    add_parser.add_argument(
        "--category", "-c",
        default="general",
        help="Default category (default: general)"
    )
    add_parser.add_argument(
        "--priority", "-p",
        type=int,
        default=3,
        help="Fetch priority, higher first (default: 3)"
    )

    # Import-seeds command
    import_parser = subparsers.add_parser("import-seeds", help="Import the seed source list")
    import_parser.add_argument(
        "--validate",
        action="store_true",
        help="Discover and validate each site instead of importing as pending"
    )

    # Report command
    report_parser = subparsers.add_parser("report", help="Show source performance")
    report_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the report as JSON"
    )

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the API server")
    serve_parser.add_argument("--host", help="Bind address")
    serve_parser.add_argument("--port", type=int, help="Port")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    # Run command
    if args.command == "fetch":
        return asyncio.run(cmd_fetch(args))
    elif args.command == "discover":
        return asyncio.run(cmd_discover(args))
    elif args.command == "validate":
        return asyncio.run(cmd_validate(args))
    elif args.command == "add-source":
        return asyncio.run(cmd_add_source(args))
    elif args.command == "import-seeds":
        return asyncio.run(cmd_import_seeds(args))
    elif args.command == "report":
        return asyncio.run(cmd_report(args))
    elif args.command == "serve":
        return cmd_serve(args)

    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Tests for ingestion runs end to end: mocked HTTP, real SQLite.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from feedpipe.models.database import DBArticle
from feedpipe.services.ingestion.base import IngestionRunError, StoreUnavailableError
from feedpipe.utils.time import utcnow

from feed_samples import (
    days_ago,
    feed_pipeline,
    make_source,
    rfc822,
    rss_feed,
    rss_item,
    simple_feed,
    xml_response,
)


def feed_url(source_id: str) -> str:
    return f"https://{source_id}.example.zw/feed"


def serve_feeds(feeds: dict, requested: list = None):
    """Handler serving `feeds[host_prefix]`; callables may raise."""

    def handler(request):
        if requested is not None:
            requested.append(str(request.url))
        slug = request.url.host.split(".")[0]
        body = feeds.get(slug)
        if body is None:
            return httpx.Response(404)
        if callable(body):
            return body(request)
        return xml_response(body)

    return handler


def time_out(request):
    raise httpx.ReadTimeout("timed out", request=request)


def stored_article(source_id: str, url: str) -> DBArticle:
    return DBArticle(
        id=f"existing-{abs(hash(url))}",
        title="Already stored",
        slug="already-stored-00000001",
        source=source_id.title(),
        source_id=source_id,
        category_id="general",
        published_at=utcnow(),
        original_url=url,
        rss_guid=url,
    )


class TestIngestionRun:
    """Tests for the happy path and deduplication."""

    def test_three_new_one_duplicate(self, database_url):
        handler = serve_feeds({"herald": simple_feed("herald", 4)})

        async def scenario():
            async with feed_pipeline(
                database_url,
                handler,
                sources=(make_source("herald", feed_url("herald")),),
            ) as job:
                await job.article_store.insert(
                    stored_article("herald", "https://herald.example.zw/news/3")
                )
                summary = await job.run()
                source = await job.source_store.get("herald")
                total = await job.article_store.count()
                articles = await job.article_store.list(limit=10)
                categories = await job.category_cache.known_ids()
                return summary, source, total, articles, categories

        summary, source, total, articles, categories = asyncio.run(scenario())

        assert summary.sources == 1
        assert summary.processed == 4
        assert summary.new_articles == 3
        assert summary.skipped_duplicates == 1
        assert summary.failed_sources == 0
        assert summary.errors == []
        assert total == 4

        assert source.fetch_count == 1
        assert source.success_count == 1
        assert source.error_count == 0
        assert source.reliability_score == 52.0
        assert source.freshness_score == 80.0
        assert source.last_fetched_at is not None
        assert source.last_successful_fetch is not None
        assert source.quality_score == pytest.approx(74.8)

        for article in articles:
            assert article.category_id in categories
            assert "<" not in (article.description or "")

    def test_reruns_are_idempotent(self, database_url):
        handler = serve_feeds({"herald": simple_feed("herald", 5)})

        async def scenario():
            async with feed_pipeline(
                database_url,
                handler,
                sources=(make_source("herald", feed_url("herald")),),
            ) as job:
                first = await job.run()
                second = await job.run()
                articles = await job.article_store.list(limit=50)
                source = await job.source_store.get("herald")
                return first, second, articles, source

        first, second, articles, source = asyncio.run(scenario())

        assert first.new_articles == 5
        assert second.new_articles == 0
        assert second.skipped_duplicates == 5
        assert len(articles) == 5
        assert len({a.original_url for a in articles}) == 5
        assert len({a.slug for a in articles}) == 5
        assert source.fetch_count == 2
        assert source.success_count == 2
        # No new articles on the second fetch
        assert source.freshness_score == 50.0

    def test_max_items_per_fetch(self, database_url):
        handler = serve_feeds({"herald": simple_feed("herald", 8)})

        async def scenario():
            async with feed_pipeline(
                database_url,
                handler,
                sources=(make_source("herald", feed_url("herald")),),
                max_items_per_fetch=3,
            ) as job:
                return await job.run()

        summary = asyncio.run(scenario())
        assert summary.new_articles == 3

    def test_sources_processed_by_priority(self, database_url):
        feeds = {slug: simple_feed(slug, 1) for slug in ("low", "high", "mid")}

        async def scenario():
            async with feed_pipeline(
                database_url,
                serve_feeds(feeds),
                sources=(
                    make_source("low", feed_url("low"), priority=1),
                    make_source("high", feed_url("high"), priority=5),
                    make_source("mid", feed_url("mid"), priority=3),
                ),
            ) as job:
                return await job.run()

        summary = asyncio.run(scenario())
        assert [r.source_id for r in summary.results] == ["high", "mid", "low"]

    def test_concurrent_workers_handle_each_source_once(self, database_url):
        slugs = [f"site{i}" for i in range(6)]
        feeds = {slug: simple_feed(slug, 2) for slug in slugs}

        async def scenario():
            async with feed_pipeline(
                database_url,
                serve_feeds(feeds),
                sources=tuple(make_source(slug, feed_url(slug)) for slug in slugs),
                fetch_concurrency=3,
            ) as job:
                summary = await job.run()
                sources = await job.source_store.list_all()
                return summary, sources

        summary, sources = asyncio.run(scenario())

        assert sorted(r.source_id for r in summary.results) == sorted(slugs)
        assert summary.new_articles == 12
        assert all(s.fetch_count == 1 for s in sources)


class TestSourceSelection:
    """Tests for which sources a run touches."""

    def test_disabled_sources_are_never_fetched(self, database_url):
        requested = []
        handler = serve_feeds(
            {"herald": simple_feed("herald", 1), "muted": simple_feed("muted", 1)},
            requested,
        )

        async def scenario():
            async with feed_pipeline(
                database_url,
                handler,
                sources=(
                    make_source("herald", feed_url("herald")),
                    make_source("muted", feed_url("muted"), enabled=False),
                    make_source("pending", None),
                ),
            ) as job:
                summary = await job.run()
                muted = await job.source_store.get("muted")
                return summary, muted

        summary, muted = asyncio.run(scenario())

        assert summary.sources == 1
        assert requested == [feed_url("herald")]
        assert muted.fetch_count == 0
        assert muted.last_fetched_at is None

    def test_no_enabled_sources(self, database_url):
        async def scenario():
            async with feed_pipeline(database_url, serve_feeds({})) as job:
                return await job.run()

        summary = asyncio.run(scenario())
        assert summary.sources == 0
        assert summary.results == []
        assert summary.finished_at is not None


class TestSourceFailures:
    """Tests for per-source failures; the run always continues."""

    def test_timeout_is_recorded_and_run_continues(self, database_url):
        handler = serve_feeds({"herald": simple_feed("herald", 2), "broken": time_out})

        async def scenario():
            async with feed_pipeline(
                database_url,
                handler,
                sources=(
                    make_source("herald", feed_url("herald"), priority=5),
                    make_source("broken", feed_url("broken"), priority=3),
                ),
            ) as job:
                summary = await job.run()
                broken = await job.source_store.get("broken")
                return summary, broken

        summary, broken = asyncio.run(scenario())

        assert summary.new_articles == 2
        assert summary.failed_sources == 1
        assert summary.errors == [f"Broken: Timeout fetching {feed_url('broken')}"]

        assert broken.error_count == 1
        assert broken.success_count == 0
        assert broken.fetch_count == 1
        assert broken.reliability_score == 45.0
        assert broken.last_error == f"Timeout fetching {feed_url('broken')}"

    def test_reliability_floor_after_repeated_failures(self, database_url):
        async def scenario():
            async with feed_pipeline(
                database_url,
                serve_feeds({"broken": lambda request: httpx.Response(503)}),
                sources=(make_source("broken", feed_url("broken"), reliability_score=18.0),),
            ) as job:
                for _ in range(3):
                    await job.run()
                return await job.source_store.get("broken")

        broken = asyncio.run(scenario())

        assert broken.error_count == 3
        assert broken.reliability_score == 10.0
        assert broken.last_error == "HTTP 503: Service Unavailable"

    def test_all_sources_failing_still_returns_summary(self, database_url):
        async def scenario():
            async with feed_pipeline(
                database_url,
                serve_feeds({}),
                sources=(make_source("a", feed_url("a")), make_source("b", feed_url("b"))),
            ) as job:
                return await job.run()

        summary = asyncio.run(scenario())
        assert summary.failed_sources == 2
        assert len(summary.errors) == 2
        assert all("HTTP 404" in e for e in summary.errors)

    def test_structural_errors(self, database_url):
        no_links = rss_feed([rss_item("Orphan", None), rss_item("Another", "ftp://x")])
        feeds = {"nolinks": no_links, "garbage": b"<html><body>moved</body></html>"}

        async def scenario():
            async with feed_pipeline(
                database_url,
                serve_feeds(feeds),
                sources=(
                    make_source("nolinks", feed_url("nolinks"), priority=2),
                    make_source("garbage", feed_url("garbage"), priority=1),
                ),
            ) as job:
                return await job.run()

        summary = asyncio.run(scenario())

        results = {r.source_id: r for r in summary.results}
        assert results["nolinks"].error == "Feed contains no usable articles"
        assert results["nolinks"].success is False
        assert results["garbage"].error.startswith("Not a valid RSS or Atom feed")

    def test_bad_items_are_skipped_not_fatal(self, database_url):
        feed = rss_feed([
            rss_item("Good one", "https://herald.example.zw/good"),
            rss_item("", "https://herald.example.zw/untitled"),
            rss_item("No link", None),
        ])

        async def scenario():
            async with feed_pipeline(
                database_url,
                serve_feeds({"herald": feed}),
                sources=(make_source("herald", feed_url("herald")),),
            ) as job:
                return await job.run()

        summary = asyncio.run(scenario())
        result = summary.results[0]
        assert result.success
        assert result.new_articles == 1
        assert result.skipped_items == 2

    def test_malformed_link_only_skips_that_item(self, database_url):
        feed = rss_feed([
            rss_item("Good one", "https://herald.example.zw/good"),
            rss_item("Broken link", "http://[broken/path"),
        ])

        async def scenario():
            async with feed_pipeline(
                database_url,
                serve_feeds({"herald": feed}),
                sources=(make_source("herald", feed_url("herald")),),
            ) as job:
                summary = await job.run()
                return summary, await job.article_store.list()

        summary, articles = asyncio.run(scenario())
        result = summary.results[0]

        assert result.success
        assert result.new_articles == 1
        assert result.skipped_items == 1
        assert [a.original_url for a in articles] == ["https://herald.example.zw/good"]

    def test_extractor_crash_only_skips_that_item(self, database_url):
        async def scenario():
            async with feed_pipeline(
                database_url,
                serve_feeds({"herald": simple_feed("herald", 2)}),
                sources=(make_source("herald", feed_url("herald")),),
            ) as job:
                extract = job.orchestrator.extractor.extract
                calls = []

                def flaky_extract(item):
                    calls.append(item)
                    if len(calls) == 1:
                        raise ValueError("bad item")
                    return extract(item)

                with patch.object(job.orchestrator.extractor, "extract", flaky_extract):
                    return await job.run()

        result = asyncio.run(scenario()).results[0]

        assert result.success
        assert result.new_articles == 1
        assert result.skipped_items == 1

    def test_out_of_range_date_falls_back_to_now(self, database_url):
        feed = rss_feed([
            rss_item("Good one", "https://herald.example.zw/good", pub_date=rfc822(days_ago(1))),
            rss_item(
                "Ancient one",
                "https://herald.example.zw/ancient",
                extra="<dc:date>0001-01-01T00:00:00+05:00</dc:date>",
            ),
        ])

        async def scenario():
            async with feed_pipeline(
                database_url,
                serve_feeds({"herald": feed}),
                sources=(make_source("herald", feed_url("herald")),),
            ) as job:
                summary = await job.run()
                return summary, await job.article_store.count()

        summary, total = asyncio.run(scenario())

        assert summary.results[0].success
        assert summary.new_articles == 2
        assert total == 2


class TestCollaborators:
    """Tests for the classifier and image optimizer seams."""

    def test_classifier_failure_falls_back_to_general(self, database_url):
        classifier = MagicMock()
        classifier.classify.side_effect = RuntimeError("model offline")

        async def scenario():
            async with feed_pipeline(
                database_url,
                serve_feeds({"herald": simple_feed("herald", 2)}),
                sources=(make_source("herald", feed_url("herald")),),
                classifier=classifier,
            ) as job:
                await job.run()
                return await job.article_store.list()

        articles = asyncio.run(scenario())
        assert [a.category_id for a in articles] == ["general", "general"]

    def test_unknown_category_falls_back_to_general(self, database_url):
        classifier = MagicMock()
        classifier.classify.return_value = "astrology"

        async def scenario():
            async with feed_pipeline(
                database_url,
                serve_feeds({"herald": simple_feed("herald", 1)}),
                sources=(make_source("herald", feed_url("herald")),),
                classifier=classifier,
            ) as job:
                await job.run()
                return await job.article_store.list()

        articles = asyncio.run(scenario())
        assert articles[0].category_id == "general"

    def test_keyword_classifier_is_used_by_default(self, database_url):
        feed = rss_feed([
            rss_item(
                "Warriors win football cup",
                "https://herald.example.zw/sport",
                description="Soccer fans celebrate",
            )
        ])

        async def scenario():
            async with feed_pipeline(
                database_url,
                serve_feeds({"herald": feed}),
                sources=(make_source("herald", feed_url("herald")),),
            ) as job:
                await job.run()
                return await job.article_store.list()

        articles = asyncio.run(scenario())
        assert articles[0].category_id == "sports_athletics"

    def test_image_optimizer(self, database_url):
        feed = rss_feed([
            rss_item(
                f"Photo story {i}",
                f"https://herald.example.zw/photo/{i}",
                extra=f'<media:content url="https://herald.example.zw/img/{i}.jpg" medium="image"/>',
            )
            for i in range(2)
        ])

        async def optimize(image_url, article_id):
            if image_url.endswith("0.jpg"):
                return f"https://cdn.example.zw/{article_id}.webp"
            raise RuntimeError("resize failed")

        optimizer = MagicMock()
        optimizer.optimize = AsyncMock(side_effect=optimize)

        async def scenario():
            async with feed_pipeline(
                database_url,
                serve_feeds({"herald": feed}),
                sources=(make_source("herald", feed_url("herald")),),
                image_optimizer=optimizer,
            ) as job:
                await job.run()
                return await job.article_store.list()

        articles = {a.original_url: a for a in asyncio.run(scenario())}

        first = articles["https://herald.example.zw/photo/0"]
        second = articles["https://herald.example.zw/photo/1"]
        assert first.image_url == f"https://cdn.example.zw/{first.id}.webp"
        assert second.image_url == "https://herald.example.zw/img/1.jpg"


class TestRunControl:
    """Tests for cancellation, deadlines and store failures."""

    def test_cancel_event_stops_before_next_source(self, database_url):
        requested = []

        async def scenario():
            async with feed_pipeline(
                database_url,
                serve_feeds({"herald": simple_feed("herald", 1)}, requested),
                sources=(make_source("herald", feed_url("herald")),),
            ) as job:
                cancel = asyncio.Event()
                cancel.set()
                summary = await job.run(cancel_event=cancel)
                source = await job.source_store.get("herald")
                return summary, source

        summary, source = asyncio.run(scenario())

        assert summary.cancelled is True
        assert summary.results == []
        assert requested == []
        assert source.fetch_count == 0

    def test_run_deadline(self, database_url):
        async def scenario():
            async with feed_pipeline(
                database_url,
                serve_feeds({"herald": simple_feed("herald", 1)}),
                sources=(make_source("herald", feed_url("herald")),),
                run_deadline_seconds=0,
            ) as job:
                return await job.run()

        summary = asyncio.run(scenario())
        assert summary.cancelled is True
        assert summary.results == []

    def test_store_unavailable_aborts_run(self, database_url):
        async def scenario():
            async with feed_pipeline(
                database_url,
                serve_feeds({"herald": simple_feed("herald", 2)}),
                sources=(make_source("herald", feed_url("herald")),),
            ) as job:
                failing_insert = AsyncMock(
                    side_effect=StoreUnavailableError("article insert failed: disk I/O error")
                )
                with patch.object(job.article_store, "insert", failing_insert):
                    await job.run()

        with pytest.raises(IngestionRunError, match="disk I/O error"):
            asyncio.run(scenario())

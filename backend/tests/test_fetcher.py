"""
Tests for the HTTP feed fetcher.
"""

import asyncio

import httpx
import pytest

from feedpipe.services.ingestion.base import FeedFetchError
from feedpipe.services.ingestion.fetcher import FeedFetcher


def run_fetch(handler, url="https://example.zw/feed/", retry_attempts=1):
    async def scenario():
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        fetcher = FeedFetcher(
            client=client,
            retry_attempts=retry_attempts,
            retry_wait_max=0,
            user_agent="Test Agent",
        )
        try:
            return await fetcher.fetch(url)
        finally:
            await client.aclose()

    return asyncio.run(scenario())


class TestFeedFetcher:
    """Tests for status handling, timeouts and retries."""

    def test_successful_fetch(self):
        seen = {}

        def handler(request):
            seen["user_agent"] = request.headers["user-agent"]
            return httpx.Response(
                200,
                content=b"<rss/>",
                headers={"content-type": "application/rss+xml; charset=iso-8859-1"},
            )

        document = run_fetch(handler)

        assert document.content == b"<rss/>"
        assert document.encoding == "iso-8859-1"
        assert document.status_code == 200
        assert seen["user_agent"] == "Test Agent"

    def test_http_error_status(self):
        with pytest.raises(FeedFetchError, match="HTTP 500: Internal Server Error") as exc:
            run_fetch(lambda request: httpx.Response(500))
        assert exc.value.status_code == 500
        assert exc.value.kind == "transient"

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(FeedFetchError, match="Timeout fetching https://example.zw/feed/"):
            run_fetch(handler)

    def test_transport_errors_are_retried(self):
        calls = []

        def handler(request):
            calls.append(request.url)
            if len(calls) == 1:
                raise httpx.ConnectError("connection reset", request=request)
            return httpx.Response(200, content=b"<rss/>")

        document = run_fetch(handler, retry_attempts=2)

        assert document.content == b"<rss/>"
        assert len(calls) == 2

    def test_http_errors_are_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request.url)
            return httpx.Response(404)

        with pytest.raises(FeedFetchError, match="HTTP 404"):
            run_fetch(handler, retry_attempts=3)
        assert len(calls) == 1

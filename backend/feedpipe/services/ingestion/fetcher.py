"""
HTTP fetching of feed documents.

Each call has an explicit timeout; transport errors (connection resets,
timeouts) are retried with exponential backoff, HTTP error statuses are not.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from feedpipe.services.ingestion.base import FeedFetchError

logger = logging.getLogger(__name__)

FEED_ACCEPT = "application/rss+xml, application/atom+xml, application/xml, text/xml;q=0.9, */*;q=0.8"


def create_http_client(
    timeout: float = 30.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Shared client settings for every outbound call of the pipeline."""
    return httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        transport=transport,
    )


@dataclass
class FetchedDocument:
    """A successfully fetched feed body."""
    url: str
    status_code: int
    content: bytes
    encoding: Optional[str]
    content_type: str


class FeedFetcher:
    """
    Fetches feed URLs with a bounded timeout and a distinct user agent.

    The client can be injected (tests use `httpx.MockTransport`); an owned
    client is closed by `aclose()`.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        user_agent: str = "Harare Metro News Aggregator 2.0",
        retry_attempts: int = 2,
        retry_wait_max: float = 10.0,
    ):
        self._owns_client = client is None
        self._client = client or create_http_client(timeout)
        self.timeout = timeout
        self.user_agent = user_agent
        self.retry_attempts = max(1, retry_attempts)
        self.retry_wait_max = retry_wait_max

    async def fetch(self, url: str) -> FetchedDocument:
        """
        GET a feed.

        Raises:
            FeedFetchError: on timeout, network failure or non-2xx status.
        """
        headers = {
            "User-Agent": self.user_agent,
            "Accept": FEED_ACCEPT,
            "Cache-Control": "no-cache",
        }

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.retry_attempts),
                wait=wait_exponential(
                    multiplier=1,
                    min=min(1.0, self.retry_wait_max),
                    max=self.retry_wait_max,
                ),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    response = await self._client.get(url, headers=headers, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise FeedFetchError(f"Timeout fetching {url}") from e
        except httpx.HTTPError as e:
            raise FeedFetchError(f"Network error fetching {url}: {e}") from e

        if not response.is_success:
            raise FeedFetchError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )

        logger.debug(f"Fetched {len(response.content)} bytes from {url}")
        return FetchedDocument(
            url=str(response.url),
            status_code=response.status_code,
            content=response.content,
            encoding=response.charset_encoding,
            content_type=response.headers.get("content-type", ""),
        )

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "FeedFetcher":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

"""
Feed endpoint discovery for a candidate news site.

Two independent strategies: HEAD probes of the paths where publishing
platforms usually expose feeds, and `<link rel="alternate">` tags on the
site's home page.
"""

import asyncio
import re
from typing import Optional
from urllib.parse import urljoin, urlparse

import httpx
import structlog

from feedpipe.config import Settings, get_settings
from feedpipe.services.ingestion.fetcher import create_http_client

logger = structlog.get_logger(__name__)

FEED_LINK_TYPES = ("application/rss+xml", "application/atom+xml")

_LINK_TAG = re.compile(r"<link\b[^>]*>", re.IGNORECASE)
_ATTRIBUTE = re.compile(r"""([\w:-]+)\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s>]+))""")


def _attributes(tag: str) -> dict[str, str]:
    attrs = {}
    for match in _ATTRIBUTE.finditer(tag):
        name = match.group(1).lower()
        value = next((g for g in match.groups()[1:] if g is not None), "")
        attrs[name] = value.strip()
    return attrs


def extract_feed_links(page: str, base_url: str) -> list[str]:
    """Feed URLs advertised by `<link type=application/rss+xml|atom+xml>` tags."""
    links: list[str] = []
    for tag in _LINK_TAG.findall(page):
        attrs = _attributes(tag)
        if attrs.get("type", "").lower() not in FEED_LINK_TYPES:
            continue
        href = attrs.get("href")
        if not href:
            continue
        url = urljoin(base_url, href)
        if url not in links:
            links.append(url)
    return links


def site_origin(site_url: str) -> str:
    parsed = urlparse(site_url)
    return f"{parsed.scheme}://{parsed.netloc}/"


class SourceDiscovery:
    """Finds candidate feed URLs for a site."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self._owns_client = client is None
        self._client = client or create_http_client(self.settings.discovery_timeout_seconds)
        self.headers = {"User-Agent": f"{self.settings.user_agent} (Feed Discovery)"}

    async def discover_feeds(self, site_url: str) -> list[str]:
        """
        Ordered, deduplicated feed URLs for a site: probe hits first, then
        links found on the home page. Network failures only shrink the list.
        """
        logger.info("Discovering feeds", site_url=site_url)

        probed, advertised = await asyncio.gather(
            self._probe_common_paths(site_url),
            self._scan_home_page(site_url),
            return_exceptions=True,
        )

        feeds: list[str] = []
        for strategy, found in (("probe", probed), ("home_page", advertised)):
            if isinstance(found, BaseException):
                logger.warning(
                    "Discovery strategy failed",
                    site_url=site_url,
                    strategy=strategy,
                    error=str(found),
                )
                continue
            for url in found:
                if url not in feeds:
                    feeds.append(url)

        logger.info("Discovery finished", site_url=site_url, feeds=len(feeds))
        return feeds

    async def _probe_common_paths(self, site_url: str) -> list[str]:
        base_url = site_url.rstrip("/")
        candidates = [f"{base_url}{path}" for path in self.settings.discovery_paths]
        hits = await asyncio.gather(*(self._probe(url) for url in candidates))
        return [url for url, hit in zip(candidates, hits) if hit]

    async def _probe(self, url: str) -> bool:
        try:
            response = await self._client.head(
                url,
                headers=self.headers,
                timeout=self.settings.discovery_timeout_seconds,
            )
        except httpx.HTTPError as e:
            logger.debug("Feed probe failed", url=url, error=str(e))
            return False

        if not response.is_success:
            return False
        content_type = response.headers.get("content-type", "").lower()
        if "xml" in content_type or "rss" in content_type:
            logger.info("Found feed", url=url)
            return True
        return False

    async def _scan_home_page(self, site_url: str) -> list[str]:
        try:
            response = await self._client.get(
                site_url,
                headers=self.headers,
                timeout=self.settings.discovery_timeout_seconds,
            )
        except httpx.HTTPError as e:
            logger.warning("Could not fetch home page", site_url=site_url, error=str(e))
            return []

        if not response.is_success:
            return []
        return extract_feed_links(response.text, site_origin(site_url))

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

"""
Turns canonical feed items into cleaned article candidates.
"""

import html
import logging
import re
import time
import unicodedata
from typing import Callable, Optional
from urllib.parse import urlparse

from feedpipe.services.ingestion.base import ArticleCandidate, FeedItem
from feedpipe.utils.time import parse_feed_date, utcnow

logger = logging.getLogger(__name__)

_TAG = re.compile(r"<[^>]*>")
_UNCLOSED_TAG = re.compile(r"<[A-Za-z/!][^>]*$")
_IMG_SRC = re.compile(r"""<(?:\w+:)?img\b[^>]*?\bsrc\s*=\s*["']([^"']+)["']""", re.IGNORECASE)
_IMAGE_EXTENSION = re.compile(r"\.(jpe?g|png|gif|webp|svg|bmp|avif)(\?.*)?$", re.IGNORECASE)
_SLUG_STRIP = re.compile(r"[^\w\s-]")
_SLUG_SPACES = re.compile(r"[\s_]+")
_SLUG_DASHES = re.compile(r"-{2,}")

TITLE_MAX_LENGTH = 500
AUTHOR_MAX_LENGTH = 255
SLUG_BASE_MAX_LENGTH = 100


def strip_html(text: str) -> str:
    """Remove tags, including a dangling unclosed tag at the end."""
    text = _TAG.sub(" ", text)
    return _UNCLOSED_TAG.sub(" ", text)


def clean_text(text: Optional[str], max_length: int = 1000) -> Optional[str]:
    """
    Make feed text safe to store: no markup, no entities, single spaces.

    Tags are stripped both before and after entity decoding so that
    escaped markup (`&lt;b&gt;`) cannot come back as real tags.
    """
    if not text:
        return None

    clean = strip_html(text)
    clean = html.unescape(clean)
    clean = strip_html(clean)
    clean = " ".join(clean.split())

    if len(clean) > max_length:
        clean = clean[:max_length].rstrip()
    return clean or None


def is_http_url(value: Optional[str]) -> bool:
    if not value:
        return False
    try:
        parsed = urlparse(value.strip())
    except ValueError:
        # e.g. an unbalanced IPv6 bracket
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_image_url(url: Optional[str]) -> bool:
    """Guess whether a URL points at an image from its extension or wording."""
    if not url:
        return False
    try:
        path = urlparse(url).path
    except ValueError:
        return False
    lowered = url.lower()
    return bool(_IMAGE_EXTENSION.search(path)) or "image" in lowered or "photo" in lowered


def find_inline_image(markup: Optional[str]) -> Optional[str]:
    """First `<img src>` in an HTML fragment."""
    if not markup:
        return None
    match = _IMG_SRC.search(markup)
    if not match:
        return None
    src = html.unescape(match.group(1)).strip()
    return src if is_http_url(src) else None


def slugify(title: str) -> str:
    """ASCII, lowercase, dash separated; `article` when nothing is left."""
    ascii_title = (
        unicodedata.normalize("NFKD", title)
        .encode("ascii", "ignore")
        .decode("ascii")
        .lower()
    )
    base = _SLUG_STRIP.sub("", ascii_title)
    base = _SLUG_SPACES.sub("-", base)
    base = _SLUG_DASHES.sub("-", base).strip("-")
    return base[:SLUG_BASE_MAX_LENGTH].rstrip("-") or "article"


class SlugGenerator:
    """
    URL slugs for titles with a short timestamp suffix.

    The suffix comes from a microsecond clock that never repeats for one
    generator, so repeated titles stay distinct; the slugified title is
    always the prefix.
    """

    def __init__(self, clock: Callable[[], int] = time.time_ns):
        self._clock = clock
        self._last_stamp = 0

    def _stamp(self) -> int:
        self._last_stamp = max(self._clock() // 1000, self._last_stamp + 1)
        return self._last_stamp

    def generate(self, title: str) -> str:
        return f"{slugify(title)}-{self._stamp() % 100_000_000:08d}"


class ArticleExtractor:
    """
    Applies the article rules to one feed item.

    Order: title, link, description, date, image, GUID. Items without a title
    or a usable link are rejected; a missing date never rejects an item.
    """

    def __init__(self, description_max_length: int = 500, content_max_length: int = 1000):
        self.description_max_length = description_max_length
        self.content_max_length = content_max_length
        self.slugs = SlugGenerator()

    def extract(self, item: FeedItem) -> Optional[ArticleCandidate]:
        title = clean_text(item.title, TITLE_MAX_LENGTH)
        if not title:
            return None

        link = self._resolve_link(item)
        if not link:
            logger.debug(f"Dropping item without a usable link: {title[:60]}")
            return None

        raw_description = (
            item.description or item.summary or item.content_encoded or item.content
        )
        description = clean_text(raw_description, self.description_max_length)
        content = clean_text(item.content_encoded or item.content, self.content_max_length)

        published_at = self._resolve_date(item)
        image_url = self._resolve_image(item)
        guid = (item.guid or "").strip() or link

        return ArticleCandidate(
            title=title,
            link=link,
            guid=guid,
            published_at=published_at,
            description=description,
            content=content,
            author=clean_text(item.author, AUTHOR_MAX_LENGTH),
            image_url=image_url,
        )

    def _resolve_link(self, item: FeedItem) -> Optional[str]:
        link = (item.link or "").strip()
        if is_http_url(link):
            return link
        if is_http_url(item.guid):
            return item.guid.strip()
        return None

    def _resolve_date(self, item: FeedItem):
        for raw in item.dates:
            parsed = parse_feed_date(raw)
            if parsed is not None:
                return parsed
        return utcnow()

    def _resolve_image(self, item: FeedItem) -> Optional[str]:
        if is_http_url(item.media_url):
            media_type = (item.media_type or "").lower()
            if media_type.startswith("image") or is_image_url(item.media_url):
                return item.media_url

        if is_http_url(item.enclosure_url) and is_image_url(item.enclosure_url):
            return item.enclosure_url

        for markup in (item.description, item.summary, item.content_encoded):
            inline = find_inline_image(markup)
            if inline:
                return inline
        return None

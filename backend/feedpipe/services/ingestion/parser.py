"""
Feed parsing for RSS 2.0, RSS 1.0 (RDF) and Atom documents.

Every supported shape is normalized into `FeedItem` here, so the rest of the
pipeline never needs to know which format a source publishes.
"""

import html.entities
import logging
import re
from typing import Optional
from xml.etree import ElementTree

from feedpipe.services.ingestion.base import (
    EmptyFeedError,
    FeedFormat,
    FeedItem,
    FeedStructureError,
    ParsedFeed,
)

logger = logging.getLogger(__name__)

ATOM_NS = "http://www.w3.org/2005/Atom"

# Namespace URI fragments mapped to the prefix used in item keys. Matching on a
# fragment tolerates the trailing-slash and http/https variants seen in the wild.
# An empty prefix means "treat as a plain element".
NAMESPACE_PREFIXES = (
    ("purl.org/rss/1.0/modules/content", "content"),
    ("purl.org/dc/elements", "dc"),
    ("search.yahoo.com/mrss", "media"),
    ("www.w3.org/2005/atom", ""),
    ("purl.org/atom/ns", ""),
    ("purl.org/rss/1.0", ""),
    ("www.w3.org/1999/02/22-rdf-syntax-ns", "rdf"),
)

DATE_KEYS = ("pubDate", "published", "updated", "dc:date")

_XML_DECLARATION = re.compile(r"^\s*<\?xml[^>]*\?>", re.IGNORECASE)
_DECLARED_ENCODING = re.compile(rb"""<\?xml[^>]*encoding=["']([A-Za-z0-9._-]+)["']""")
_NAMED_ENTITY = re.compile(r"&([A-Za-z][A-Za-z0-9]*);")
_BARE_AMPERSAND = re.compile(r"&(?!#?[A-Za-z0-9]+;)")
_XML_ENTITIES = {"amp", "lt", "gt", "quot", "apos"}


def split_tag(tag: str) -> tuple[str, str]:
    """Split `{namespace}local` into (namespace, local)."""
    if tag.startswith("{"):
        namespace, _, local = tag[1:].partition("}")
        return namespace, local
    return "", tag


def _prefix_for(namespace: str) -> Optional[str]:
    lowered = namespace.lower()
    for fragment, prefix in NAMESPACE_PREFIXES:
        if fragment in lowered:
            return prefix
    return None


def element_key(tag) -> Optional[str]:
    """
    Canonical key for an element tag, e.g. `title`, `content:encoded`.

    Returns None for comments/processing instructions and for elements in
    namespaces the pipeline does not read.
    """
    if not isinstance(tag, str):
        return None
    namespace, local = split_tag(tag)
    if not namespace:
        return local
    prefix = _prefix_for(namespace)
    if prefix is None:
        return None
    return f"{prefix}:{local}" if prefix else local


def _local(tag) -> str:
    if not isinstance(tag, str):
        return ""
    return split_tag(tag)[1]


def _inner_markup(elem: ElementTree.Element) -> str:
    """Text plus serialized child markup of an element."""
    parts = [elem.text or ""]
    for child in elem:
        parts.append(ElementTree.tostring(child, encoding="unicode", method="html"))
    return "".join(parts)


def element_text(elem: Optional[ElementTree.Element]) -> Optional[str]:
    """
    Resolve an element to a single string.

    Plain text nodes are returned stripped; elements with nested markup
    (XHTML content) are serialized; empty values become None.
    """
    if elem is None:
        return None
    text = _inner_markup(elem) if len(elem) else elem.text
    if text is None:
        return None
    text = text.strip()
    return text or None


def _first(current: Optional[str], candidate: Optional[str]) -> Optional[str]:
    return current if current else candidate


def _author_text(elem: ElementTree.Element) -> Optional[str]:
    # Atom: <author><name>..</name><email>..</email></author>
    for child in elem:
        if _local(child.tag) == "name":
            return element_text(child)
    return element_text(elem)


def _is_image_media(elem: ElementTree.Element) -> bool:
    medium = (elem.get("medium") or "").lower()
    media_type = (elem.get("type") or "").lower()
    if medium and medium != "image":
        return False
    if media_type and not media_type.startswith("image/"):
        return False
    return True


def read_item(elem: ElementTree.Element) -> FeedItem:
    """Normalize one RSS item or Atom entry element."""
    item = FeedItem()
    dates: dict[str, str] = {}
    thumbnail: Optional[tuple[str, Optional[str]]] = None

    for child in elem:
        key = element_key(child.tag)
        if key is None:
            continue

        if key == "title":
            item.title = _first(item.title, element_text(child))

        elif key == "link":
            href = child.get("href")
            if href is None:
                item.link = _first(item.link, element_text(child))
                continue
            rel = child.get("rel", "alternate")
            if rel == "alternate" and not item.link:
                item.link = href.strip() or None
            elif rel == "enclosure" and not item.enclosure_url:
                item.enclosure_url = href.strip() or None
                item.enclosure_type = child.get("type")

        elif key in ("guid", "id", "rdf:about"):
            item.guid = _first(item.guid, element_text(child))

        elif key == "description":
            item.description = _first(item.description, element_text(child))

        elif key == "summary":
            item.summary = _first(item.summary, element_text(child))

        elif key == "content:encoded":
            item.content_encoded = _first(item.content_encoded, element_text(child))

        elif key == "content":
            item.content = _first(item.content, element_text(child))

        elif key in ("author", "dc:creator", "creator"):
            item.author = _first(item.author, _author_text(child))

        elif key in DATE_KEYS:
            value = element_text(child)
            if value and key not in dates:
                dates[key] = value

        elif key == "media:content" and not item.media_url:
            url = child.get("url")
            if url and _is_image_media(child):
                item.media_url = url.strip()
                item.media_type = child.get("type") or child.get("medium")

        elif key == "media:thumbnail" and thumbnail is None:
            url = child.get("url")
            if url:
                thumbnail = (url.strip(), "image")

        elif key == "media:group" and not item.media_url:
            for media in child:
                if element_key(media.tag) == "media:content" and media.get("url"):
                    if _is_image_media(media):
                        item.media_url = media.get("url").strip()
                        item.media_type = media.get("type") or media.get("medium")
                        break

        elif key == "enclosure" and not item.enclosure_url:
            url = child.get("url")
            if url:
                item.enclosure_url = url.strip()
                item.enclosure_type = child.get("type")

    # RSS 1.0 items identify themselves with an rdf:about attribute
    if not item.guid:
        for attr, value in elem.attrib.items():
            if _local(attr) == "about" and value.strip():
                item.guid = value.strip()
                break

    if not item.media_url and thumbnail:
        item.media_url, item.media_type = thumbnail

    item.dates = [dates[k] for k in DATE_KEYS if k in dates]
    return item


def decode_document(data: bytes, encoding: Optional[str]) -> str:
    """Decode feed bytes, trying the header charset, the XML declaration, then UTF-8."""
    candidates = []
    if encoding:
        candidates.append(encoding)
    declared = _DECLARED_ENCODING.search(data[:200])
    if declared:
        candidates.append(declared.group(1).decode("ascii"))
    candidates.append("utf-8")

    for candidate in candidates:
        try:
            return data.decode(candidate, errors="replace")
        except LookupError:
            continue
    return data.decode("utf-8", errors="replace")


def _repair_entities(text: str) -> str:
    """Rewrite HTML-only named entities and bare ampersands so XML accepts them."""

    def replace(match: re.Match) -> str:
        name = match.group(1)
        if name in _XML_ENTITIES:
            return match.group(0)
        codepoint = html.entities.name2codepoint.get(name)
        if codepoint is None:
            return f"&amp;{name};"
        return f"&#{codepoint};"

    text = _BARE_AMPERSAND.sub("&amp;", text)
    return _NAMED_ENTITY.sub(replace, text)


def parse_xml(content: bytes, encoding: Optional[str] = None) -> ElementTree.Element:
    """
    Parse raw feed bytes into an element tree.

    First tries the bytes as declared; on failure decodes them (declared
    encoding, then XML declaration, then UTF-8), repairs HTML entities and
    retries once.
    """
    data = content
    if data.startswith(b"\xef\xbb\xbf"):
        data = data[3:]
    data = data.lstrip(b" \t\r\n")

    try:
        return ElementTree.fromstring(data)
    except ElementTree.ParseError as first_error:
        text = _XML_DECLARATION.sub("", decode_document(data, encoding), count=1)
        try:
            return ElementTree.fromstring(_repair_entities(text))
        except ElementTree.ParseError:
            raise FeedStructureError(f"Invalid XML: {first_error}") from first_error


def _find_child(elem: ElementTree.Element, local: str) -> Optional[ElementTree.Element]:
    for child in elem:
        if _local(child.tag) == local:
            return child
    return None


def parse_feed(content: bytes, encoding: Optional[str] = None) -> ParsedFeed:
    """
    Parse an RSS or Atom document into canonical items.

    Malformed items are skipped and counted. Raises FeedStructureError if the
    document is not a feed and EmptyFeedError if no item could be read.
    """
    root = parse_xml(content, encoding)
    root_name = _local(root.tag)

    if root_name == "rss":
        feed_format = FeedFormat.RSS
        channel = _find_child(root, "channel")
        if channel is None:
            raise FeedStructureError("RSS document has no channel")
        title = element_text(_find_child(channel, "title"))
        elements = [child for child in channel if _local(child.tag) == "item"]
    elif root_name == "RDF":
        feed_format = FeedFormat.RDF
        channel = _find_child(root, "channel")
        title = element_text(_find_child(channel, "title")) if channel is not None else None
        elements = [child for child in root if _local(child.tag) == "item"]
    elif root_name == "feed":
        feed_format = FeedFormat.ATOM
        title = element_text(_find_child(root, "title"))
        elements = [child for child in root if _local(child.tag) == "entry"]
    else:
        raise FeedStructureError(f"Not a valid RSS or Atom feed (root element <{root_name}>)")

    items: list[FeedItem] = []
    skipped = 0
    for element in elements:
        try:
            items.append(read_item(element))
        except Exception as e:
            skipped += 1
            logger.warning(f"Skipping malformed {feed_format.value} item: {e}")

    if not items:
        if skipped:
            raise EmptyFeedError(f"Feed contains no readable articles ({skipped} malformed)")
        raise EmptyFeedError("Feed contains no articles")

    return ParsedFeed(format=feed_format, items=items, title=title, skipped=skipped)

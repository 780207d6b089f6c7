"""
Feed Format Normalizer
======================

Fetches RSS 2.0 and Atom documents and normalizes their entries into
CanonicalFeedItem values, then converts them into CMS candidate posts.

Strict parsing uses ElementTree over the native RSS/Atom shapes; documents
that are not well-formed XML are recovered with feedparser's tolerant parser.
"""

import asyncio
import io
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, TYPE_CHECKING

import aiohttp
import feedparser

from ..models import CandidatePost, CanonicalFeedItem, ExtractedContent
from ..utils.exceptions import (
    ErrorCode,
    ExtractionError,
    FeedFetchError,
    FeedParseError,
    ValidationError,
)
from ..utils.logging import get_logger_for_component
from ..utils.validators import URLValidator

if TYPE_CHECKING:
    from .content_extractor import ContentExtractor

FEED_ACCEPT_HEADER = "application/rss+xml, application/atom+xml, application/xml, text/xml"

ATOM_NAMESPACE = "http://www.w3.org/2005/Atom"
_ATOM_DECLARATION = f'xmlns="{ATOM_NAMESPACE}"'
_FEED_ELEMENT_RE = re.compile(r"<feed[\s>/]")


class FeedFormat(str, Enum):
    """Wire format of a feed document."""
    RSS = "rss"
    ATOM = "atom"


@dataclass
class ParsedFeed:
    """Feed-level metadata plus its items in document order."""

    format: FeedFormat
    title: str = ""
    description: str = ""
    link: str = ""
    items: List[CanonicalFeedItem] = field(default_factory=list)
    recovered: bool = False

    @property
    def item_count(self) -> int:
        return len(self.items)


# Date negotiation

# Tried in order, first match wins
_DATE_FORMATS = (
    "%Y-%m-%dT%H:%M:%S%z",  # RFC 3339
    "%Y-%m-%dT%H:%M:%S.%f%z",  # RFC 3339 with fractional seconds
    "%a, %d %b %Y %H:%M:%S %z",  # RFC 1123, numeric or named zone
    "%Y-%m-%d %H:%M:%S %z",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
)

# RFC 822 zone names; unknown abbreviations resolve to UTC
_ZONE_OFFSETS = {
    "UT": "+0000",
    "UTC": "+0000",
    "GMT": "+0000",
    "Z": "+0000",
    "EST": "-0500",
    "EDT": "-0400",
    "CST": "-0600",
    "CDT": "-0500",
    "MST": "-0700",
    "MDT": "-0600",
    "PST": "-0800",
    "PDT": "-0700",
}

_ZONE_NAME_RE = re.compile(r"\s([A-Za-z]{1,5})$")
_FRACTION_RE = re.compile(r"(\.\d{1,6})\d*")


def parse_feed_date(value: Optional[str]) -> Optional[datetime]:
    """Parse an RSS/Atom date string into an aware UTC datetime.

    Accepts RFC 3339 (with or without fractional seconds), RFC 1123 with a
    numeric or named zone, and a few loose ``YYYY-MM-DD HH:MM:SS`` variants.
    Naive values are taken as UTC.

    Returns:
        Parsed datetime in UTC, or None when no format matches
    """
    if not value:
        return None

    text = " ".join(value.split())
    # strptime's %f stops at microseconds
    text = _FRACTION_RE.sub(lambda m: m.group(1), text, count=1)

    candidates = [text]
    zone = _ZONE_NAME_RE.search(text)
    if zone:
        offset = _ZONE_OFFSETS.get(zone.group(1).upper(), "+0000")
        candidates.append(f"{text[:zone.start()]} {offset}")

    for candidate in candidates:
        for fmt in _DATE_FORMATS:
            try:
                parsed = datetime.strptime(candidate, fmt)
            except ValueError:
                continue
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc)

    return None


def format_rfc3339(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# Text cleanup

_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]*>")


def clean_text(value: Optional[str]) -> str:
    """Trim, turn ``<br>`` into newlines, drop remaining tags and normalize newlines."""
    if not value:
        return ""
    text = value.strip()
    text = _BR_RE.sub("\n", text)
    text = _TAG_RE.sub("", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


# Format detection and strict parsing

def detect_feed_format(raw: bytes) -> FeedFormat:
    """Atom when the document declares the Atom namespace or has a <feed> element."""
    head = raw.decode("utf-8", errors="replace")
    if _ATOM_DECLARATION in head or _FEED_ELEMENT_RE.search(head):
        return FeedFormat.ATOM
    return FeedFormat.RSS


def _local(tag) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1] if "}" in tag else tag.split(":")[-1]


def _prefix(tag: str) -> str:
    if tag.startswith("{"):
        return tag[1:].split("}", 1)[0]
    return tag.split(":", 1)[0] if ":" in tag else ""


def _children(element: ET.Element, name: str) -> List[ET.Element]:
    return [child for child in element if _local(child.tag) == name]


def _child(element: ET.Element, name: str, namespace_hint: Optional[str] = None) -> Optional[ET.Element]:
    """First child named ``name``.

    ``namespace_hint`` None matches any namespace, "" only un-namespaced
    elements, anything else a namespace URI containing the hint.
    """
    for child in element:
        if _local(child.tag) != name:
            continue
        namespace = _prefix(child.tag)
        if namespace_hint is None:
            return child
        if namespace_hint == "" and not namespace:
            return child
        if namespace_hint and namespace_hint in namespace:
            return child
    return None


def _text(element: Optional[ET.Element]) -> str:
    """Element text, or its serialized children for inline XHTML content."""
    if element is None:
        return ""
    if len(element):
        parts = [element.text or ""]
        for child in element:
            parts.append(ET.tostring(child, encoding="unicode"))
        return "".join(parts).strip()
    return (element.text or "").strip()


def _child_text(element: ET.Element, name: str, namespace_hint: Optional[str] = None) -> str:
    return _text(_child(element, name, namespace_hint))


def _attr(element: Optional[ET.Element], name: str) -> Optional[str]:
    if element is None:
        return None
    value = element.get(name)
    return value.strip() if value else None


def _atom_link(links: List[ET.Element]) -> str:
    for link in links:
        rel = link.get("rel")
        if rel in (None, "", "alternate"):
            return (link.get("href") or "").strip()
    return ""


def _parse_rss_item(item: ET.Element) -> CanonicalFeedItem:
    enclosure = _child(item, "enclosure", "")
    # RSS bodies live in content:encoded; a bare <content> is the legacy fallback
    body = _child_text(item, "encoded") or _child_text(item, "content", "")

    link = _child_text(item, "link", "")
    guid = _child_text(item, "guid", "")
    author = _child_text(item, "author", "") or _child_text(item, "creator")
    date_text = _child_text(item, "pubDate", "") or _child_text(item, "date")

    return CanonicalFeedItem(
        title=_child_text(item, "title", ""),
        summary=_child_text(item, "description", ""),
        content=body,
        author=author,
        published_at=parse_feed_date(date_text),
        guid=guid or link,
        link=link,
        thumbnail_url=_attr(_child(item, "thumbnail"), "url"),
        media_content_url=_attr(_child(item, "content", "mrss"), "url"),
        enclosure_url=_attr(enclosure, "url"),
        enclosure_type=_attr(enclosure, "type"),
        categories=tuple(c for c in (_text(e) for e in _children(item, "category")) if c),
    )


def _parse_atom_entry(entry: ET.Element) -> CanonicalFeedItem:
    link = _atom_link(_children(entry, "link"))
    guid = _child_text(entry, "id")
    author = _child(entry, "author")
    date_text = _child_text(entry, "published") or _child_text(entry, "updated")

    return CanonicalFeedItem(
        title=_child_text(entry, "title"),
        summary=_child_text(entry, "summary"),
        content=_child_text(entry, "content"),
        author=_child_text(author, "name") if author is not None else "",
        published_at=parse_feed_date(date_text),
        guid=guid or link,
        link=link,
        thumbnail_url=_attr(_child(entry, "thumbnail"), "url"),
        categories=tuple(
            c for c in (_attr(e, "term") for e in _children(entry, "category")) if c
        ),
    )


def _parse_strict(root: ET.Element, feed_format: FeedFormat) -> ParsedFeed:
    if feed_format is FeedFormat.ATOM:
        if _local(root.tag) != "feed":
            raise FeedParseError(f"Expected <feed> root element, found <{_local(root.tag)}>")
        return ParsedFeed(
            format=FeedFormat.ATOM,
            title=_child_text(root, "title"),
            description=_child_text(root, "subtitle"),
            link=_atom_link(_children(root, "link")),
            items=[_parse_atom_entry(e) for e in _children(root, "entry")],
        )

    channel = _child(root, "channel") if _local(root.tag) == "rss" else None
    if channel is None:
        raise FeedParseError(f"Expected <rss><channel>, found <{_local(root.tag)}>")
    return ParsedFeed(
        format=FeedFormat.RSS,
        title=_child_text(channel, "title", ""),
        description=_child_text(channel, "description", ""),
        link=_child_text(channel, "link", ""),
        items=[_parse_rss_item(i) for i in _children(channel, "item")],
    )


# Tolerant recovery

def _entry_value(entry, key: str) -> str:
    value = entry.get(key)
    return value.strip() if isinstance(value, str) else ""


def _first_url(entries) -> Optional[str]:
    for media in entries or []:
        url = media.get("url") or media.get("href")
        if url:
            return url
    return None


def _parse_recovered(raw: bytes, feed_format: FeedFormat) -> ParsedFeed:
    data = feedparser.parse(io.BytesIO(raw))
    if not data.entries and not data.feed.get("title"):
        message = str(getattr(data, "bozo_exception", "no feed structure found"))
        raise FeedParseError(f"Failed to parse {feed_format.value} feed: {message}")

    items = []
    for entry in data.entries:
        link = _entry_value(entry, "link")
        guid = _entry_value(entry, "id")
        content = ""
        if entry.get("content"):
            content = (entry.content[0].get("value") or "").strip()
        enclosure = (entry.get("enclosures") or [{}])[0]
        date_text = _entry_value(entry, "published") or _entry_value(entry, "updated")

        items.append(
            CanonicalFeedItem(
                title=_entry_value(entry, "title"),
                summary=_entry_value(entry, "summary"),
                content=content,
                author=_entry_value(entry, "author"),
                published_at=parse_feed_date(date_text),
                guid=guid or link,
                link=link,
                thumbnail_url=_first_url(entry.get("media_thumbnail")),
                media_content_url=_first_url(entry.get("media_content")),
                enclosure_url=enclosure.get("href") or enclosure.get("url"),
                enclosure_type=enclosure.get("type"),
                categories=tuple(t.get("term") for t in entry.get("tags", []) if t.get("term")),
            )
        )

    return ParsedFeed(
        format=feed_format,
        title=data.feed.get("title", ""),
        description=data.feed.get("subtitle") or data.feed.get("description", ""),
        link=data.feed.get("link", ""),
        items=items,
        recovered=True,
    )


def parse_feed_document(raw: bytes) -> ParsedFeed:
    """Parse an RSS 2.0 or Atom document into canonical items.

    Args:
        raw: Feed document bytes

    Returns:
        ParsedFeed with items in document order

    Raises:
        FeedParseError: If the document is neither RSS nor Atom
    """
    if not raw or not raw.strip():
        raise FeedParseError("Empty feed document")

    feed_format = detect_feed_format(raw)
    try:
        root = ET.fromstring(raw)
    except ET.ParseError:
        return _parse_recovered(raw, feed_format)

    return _parse_strict(root, feed_format)


class FeedParser:
    """Fetches feed documents and turns their items into candidate posts."""

    def __init__(
        self,
        user_agent: str,
        request_timeout: int = 30,
        proxy_url: Optional[str] = None,
    ):
        self.user_agent = user_agent
        self.timeout = aiohttp.ClientTimeout(total=request_timeout)
        self.proxy_url = proxy_url
        self.logger = get_logger_for_component("feed_parser")

    async def fetch_feed(self, feed_url: str, session: aiohttp.ClientSession) -> ParsedFeed:
        """Download and parse one feed.

        Raises:
            FeedFetchError: On transport failure or a non-200 response
            FeedParseError: If the body is not a feed
        """
        try:
            URLValidator.validate_http_url(feed_url, field_name="feed_url")
        except ValidationError as e:
            raise FeedFetchError(
                e.user_message,
                feed_url=feed_url,
                error_code=ErrorCode.FEED_INVALID_URL,
                recoverable=False,
            )

        headers = {"User-Agent": self.user_agent, "Accept": FEED_ACCEPT_HEADER}
        try:
            async with session.get(
                feed_url, headers=headers, timeout=self.timeout, proxy=self.proxy_url
            ) as response:
                if response.status in (401, 403):
                    raise FeedFetchError(
                        f"Feed access denied with status {response.status}",
                        feed_url=feed_url,
                        error_code=ErrorCode.FEED_ACCESS_DENIED,
                        recoverable=False,
                    )
                if response.status != 200:
                    raise FeedFetchError(
                        f"Feed returned status {response.status}",
                        feed_url=feed_url,
                        error_code=ErrorCode.FEED_HTTP_STATUS,
                        recoverable=response.status >= 500,
                    )
                body = await response.read()
        except asyncio.TimeoutError:
            raise FeedFetchError(
                f"Request timeout after {self.timeout.total}s",
                feed_url=feed_url,
                error_code=ErrorCode.FEED_FETCH_TIMEOUT,
            )
        except aiohttp.ClientError as e:
            raise FeedFetchError(
                f"Failed to fetch feed: {e}",
                feed_url=feed_url,
                error_code=ErrorCode.FEED_NETWORK_ERROR,
            )

        try:
            parsed = parse_feed_document(body)
        except FeedParseError as e:
            e.context["feed_url"] = feed_url
            raise

        if parsed.recovered:
            self.logger.info(f"Recovered malformed {parsed.format.value} feed: {feed_url}")
        self.logger.debug(
            f"Parsed {parsed.item_count} items from {parsed.format.value} feed {feed_url}"
        )
        return parsed

    async def build_candidates(
        self,
        feed_id: str,
        items: List[CanonicalFeedItem],
        extractor: Optional["ContentExtractor"] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> List[CandidatePost]:
        """Convert canonical items into candidate posts, in document order.

        Each item's page is run through the extractor when one is given; the
        feed-embedded image is used only when extraction found none. Items
        without a title or URL are dropped.
        """
        candidates = []
        for item in items:
            title = clean_text(item.title)
            url = clean_text(item.link)
            if not title or not url:
                continue

            extracted = ExtractedContent()
            if url and extractor is not None and session is not None:
                try:
                    extracted = await extractor.extract_from_url(url, session)
                except ExtractionError as e:
                    self.logger.debug(f"No extracted content for {url}: {e}")
                except Exception as e:
                    self.logger.warning(
                        f"Unexpected extraction failure for {url}, using feed data only: "
                        f"{type(e).__name__}: {e}"
                    )

            image_url = extracted.image_url or clean_text(item.embedded_image_url()) or None

            candidates.append(
                CandidatePost(
                    inspiration_feed_id=feed_id,
                    title=title,
                    url=url,
                    description=clean_text(item.summary) or None,
                    content=clean_text(item.content) or None,
                    author=clean_text(item.author) or None,
                    published_at=format_rfc3339(item.published_at),
                    guid=clean_text(item.guid) or url,
                    image_url=image_url,
                    full_content=extracted.full_content or None,
                )
            )

        return candidates

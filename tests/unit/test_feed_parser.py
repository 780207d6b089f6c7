"""
Unit Tests for Feed Format Normalizer
=====================================

Tests for RSS/Atom parsing, date negotiation, malformed-feed recovery,
fetching and candidate post construction.
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, Mock

import aiohttp
import pytest

from feedharvest.ingestion.feed_parser import (
    FeedFormat,
    FeedParser,
    clean_text,
    detect_feed_format,
    format_rfc3339,
    parse_feed_date,
    parse_feed_document,
)
from feedharvest.models import CanonicalFeedItem, ExtractedContent
from feedharvest.utils.exceptions import ErrorCode, ExtractionError, FeedFetchError, FeedParseError

SAMPLE_RSS_FEED = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"
     xmlns:content="http://purl.org/rss/1.0/modules/content/"
     xmlns:dc="http://purl.org/dc/elements/1.1/"
     xmlns:media="http://search.yahoo.com/mrss/"
     xmlns:atom="http://www.w3.org/2005/Atom">
    <channel>
        <title>Test RSS Feed</title>
        <link>https://example.com</link>
        <atom:link href="https://example.com/feed.xml" rel="self" type="application/rss+xml"/>
        <description>Test feed for unit testing</description>
        <item>
            <title>Test Article 1</title>
            <link>https://example.com/article1</link>
            <description>Summary with &lt;strong&gt;HTML&lt;/strong&gt;</description>
            <content:encoded><![CDATA[<p>Full body of article one</p>]]></content:encoded>
            <pubDate>Mon, 02 Jan 2006 15:04:05 -0700</pubDate>
            <guid>article-1-guid</guid>
            <author>reporter@example.com</author>
            <media:thumbnail url="https://example.com/thumb1.jpg"/>
            <category>Tech</category>
            <category>Science</category>
        </item>
        <item>
            <title>Test Article 2</title>
            <link>https://example.com/article2</link>
            <description>Second summary</description>
            <dc:creator>Jane Writer</dc:creator>
            <pubDate>not a date</pubDate>
            <media:content url="https://example.com/media2.jpg" medium="image"/>
            <enclosure url="https://example.com/podcast.mp3" type="audio/mpeg" length="100"/>
        </item>
        <item>
            <title>Test Article 3</title>
            <link>https://example.com/article3</link>
            <enclosure url="https://example.com/photo3.png" type="image/png" length="100"/>
        </item>
    </channel>
</rss>"""

SAMPLE_ATOM_FEED = b"""<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
    <title>Test Atom Feed</title>
    <subtitle>Atom feed for unit testing</subtitle>
    <link href="https://example.com/atom.xml" rel="self"/>
    <link href="https://example.com"/>
    <id>https://example.com/feed</id>
    <updated>2024-09-07T00:00:01Z</updated>
    <entry>
        <title>Atom Published Article</title>
        <link href="https://example.com/atom/comments" rel="replies"/>
        <link href="https://example.com/atom/1" rel="alternate"/>
        <id>urn:uuid:atom-1</id>
        <updated>2024-09-06T12:00:00Z</updated>
        <published>2024-09-05T12:00:00Z</published>
        <summary>Atom summary</summary>
        <content type="html">&lt;p&gt;Atom body&lt;/p&gt;</content>
        <author><name>Atom Author</name><email>atom@example.com</email></author>
        <category term="Science"/>
    </entry>
    <entry>
        <title>Atom Updated Only</title>
        <link href="https://example.com/atom/2"/>
        <updated>2024-09-04T08:30:00+02:00</updated>
    </entry>
</feed>"""

MALFORMED_RSS_FEED = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
    <channel>
        <title>Malformed Feed</title>
        <link>https://example.com</link>
        <item>
            <title>Broken & Unescaped Article</title>
            <link>https://example.com/broken</link>
            <guid>broken-guid</guid>
            <pubDate>Tue, 03 Jan 2006 10:00:00 GMT</pubDate>
        </item>
    </channel>
</rss>"""


class TestDateNegotiation:
    """Multi-format date parsing."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("2006-01-02T15:04:05Z", datetime(2006, 1, 2, 15, 4, 5, tzinfo=timezone.utc)),
            ("2006-01-02T15:04:05-07:00", datetime(2006, 1, 2, 22, 4, 5, tzinfo=timezone.utc)),
            ("2006-01-02T15:04:05.000Z", datetime(2006, 1, 2, 15, 4, 5, tzinfo=timezone.utc)),
            ("2006-01-02T15:04:05.123456789+00:00", datetime(2006, 1, 2, 15, 4, 5, 123456, tzinfo=timezone.utc)),
            ("Mon, 02 Jan 2006 15:04:05 -0700", datetime(2006, 1, 2, 22, 4, 5, tzinfo=timezone.utc)),
            ("Mon, 02 Jan 2006 15:04:05 GMT", datetime(2006, 1, 2, 15, 4, 5, tzinfo=timezone.utc)),
            ("Mon, 02 Jan 2006 15:04:05 MST", datetime(2006, 1, 2, 22, 4, 5, tzinfo=timezone.utc)),
            ("Mon, 2 Jan 2006 15:04:05 -0700", datetime(2006, 1, 2, 22, 4, 5, tzinfo=timezone.utc)),
            ("2006-01-02 15:04:05 -0700", datetime(2006, 1, 2, 22, 4, 5, tzinfo=timezone.utc)),
            ("2006-01-02 15:04:05", datetime(2006, 1, 2, 15, 4, 5, tzinfo=timezone.utc)),
            ("  Mon, 02 Jan 2006   15:04:05 +0000 ", datetime(2006, 1, 2, 15, 4, 5, tzinfo=timezone.utc)),
        ],
    )
    def test_supported_formats(self, value, expected):
        assert parse_feed_date(value) == expected

    @pytest.mark.parametrize("value", [None, "", "yesterday", "2006/01/02", "32 Jan 2006"])
    def test_unparseable_dates_return_none(self, value):
        assert parse_feed_date(value) is None

    def test_unknown_zone_name_resolves_to_utc(self):
        parsed = parse_feed_date("Mon, 02 Jan 2006 15:04:05 XYZ")
        assert parsed == datetime(2006, 1, 2, 15, 4, 5, tzinfo=timezone.utc)

    def test_result_is_always_utc(self):
        parsed = parse_feed_date("2006-01-02T15:04:05+05:30")
        assert parsed.tzinfo == timezone.utc
        assert parsed.hour == 9 and parsed.minute == 34

    def test_format_rfc3339(self):
        value = datetime(2006, 1, 2, 22, 4, 5, tzinfo=timezone.utc)
        assert format_rfc3339(value) == "2006-01-02T22:04:05Z"
        assert format_rfc3339(None) is None


class TestCleanText:
    """String cleanup applied when building candidates."""

    def test_breaks_become_newlines_and_tags_are_dropped(self):
        assert clean_text("  Line one<br/>Line <b>two</b>  ") == "Line one\nLine two"

    def test_newlines_are_normalized(self):
        assert clean_text("a\r\nb\r\n\r\n\r\n\r\nc") == "a\nb\n\nc"

    def test_empty_values(self):
        assert clean_text(None) == ""
        assert clean_text("   ") == ""


class TestFormatDetection:
    """Atom versus RSS sniffing."""

    def test_atom_namespace(self):
        assert detect_feed_format(SAMPLE_ATOM_FEED) is FeedFormat.ATOM

    def test_feed_element_without_namespace(self):
        assert detect_feed_format(b"<feed><entry/></feed>") is FeedFormat.ATOM

    def test_rss_with_atom_self_link_is_rss(self):
        assert detect_feed_format(SAMPLE_RSS_FEED) is FeedFormat.RSS

    def test_feedburner_prefix_is_not_atom(self):
        document = b'<rss xmlns:feedburner="http://rssnamespace.org/feedburner/ext/1.0"><channel><feedburner:info uri="x"/></channel></rss>'
        assert detect_feed_format(document) is FeedFormat.RSS


class TestRSSParsing:
    """RSS 2.0 canonicalization."""

    def setup_method(self):
        self.parsed = parse_feed_document(SAMPLE_RSS_FEED)

    def test_feed_metadata(self):
        assert self.parsed.format is FeedFormat.RSS
        assert self.parsed.title == "Test RSS Feed"
        assert self.parsed.link == "https://example.com"
        assert self.parsed.description == "Test feed for unit testing"
        assert not self.parsed.recovered

    def test_items_in_document_order(self):
        assert [item.title for item in self.parsed.items] == [
            "Test Article 1",
            "Test Article 2",
            "Test Article 3",
        ]

    def test_first_item_fields(self):
        item = self.parsed.items[0]
        assert item.link == "https://example.com/article1"
        assert item.guid == "article-1-guid"
        assert item.summary == "Summary with <strong>HTML</strong>"
        assert item.content == "<p>Full body of article one</p>"
        assert item.author == "reporter@example.com"
        assert item.published_at == datetime(2006, 1, 2, 22, 4, 5, tzinfo=timezone.utc)
        assert item.thumbnail_url == "https://example.com/thumb1.jpg"
        assert item.categories == ("Tech", "Science")

    def test_dc_creator_and_unparseable_date(self):
        item = self.parsed.items[1]
        assert item.author == "Jane Writer"
        # Item is kept, only the date is dropped
        assert item.published_at is None
        assert item.media_content_url == "https://example.com/media2.jpg"
        assert item.enclosure_type == "audio/mpeg"

    def test_guid_falls_back_to_link(self):
        assert self.parsed.items[1].guid == "https://example.com/article2"

    def test_embedded_image_priority(self):
        thumb, media, enclosure = self.parsed.items
        assert thumb.embedded_image_url() == "https://example.com/thumb1.jpg"
        # Audio enclosure is ignored, media content wins
        assert media.embedded_image_url() == "https://example.com/media2.jpg"
        assert enclosure.embedded_image_url() == "https://example.com/photo3.png"

    def test_parsing_is_idempotent(self):
        assert parse_feed_document(SAMPLE_RSS_FEED).items == self.parsed.items

    def test_items_are_immutable(self):
        with pytest.raises(Exception):
            self.parsed.items[0].title = "changed"


class TestAtomParsing:
    """Atom canonicalization."""

    def setup_method(self):
        self.parsed = parse_feed_document(SAMPLE_ATOM_FEED)

    def test_feed_metadata(self):
        assert self.parsed.format is FeedFormat.ATOM
        assert self.parsed.title == "Test Atom Feed"
        assert self.parsed.description == "Atom feed for unit testing"
        assert self.parsed.link == "https://example.com"

    def test_entry_fields(self):
        entry = self.parsed.items[0]
        assert entry.title == "Atom Published Article"
        assert entry.link == "https://example.com/atom/1"
        assert entry.guid == "urn:uuid:atom-1"
        assert entry.summary == "Atom summary"
        assert entry.content == "<p>Atom body</p>"
        assert entry.author == "Atom Author"
        assert entry.categories == ("Science",)

    def test_published_preferred_over_updated(self):
        assert self.parsed.items[0].published_at == datetime(2024, 9, 5, 12, 0, tzinfo=timezone.utc)

    def test_updated_used_when_published_missing(self):
        entry = self.parsed.items[1]
        assert entry.published_at == datetime(2024, 9, 4, 6, 30, tzinfo=timezone.utc)
        assert entry.guid == "https://example.com/atom/2"


class TestDocumentErrors:
    """Empty, foreign and malformed documents."""

    def test_empty_document(self):
        with pytest.raises(FeedParseError):
            parse_feed_document(b"   ")

    def test_non_feed_xml(self):
        with pytest.raises(FeedParseError) as exc_info:
            parse_feed_document(b"<html><body>Not a feed</body></html>")
        assert exc_info.value.error_code == ErrorCode.FEED_PARSE_ERROR

    def test_malformed_feed_is_recovered(self):
        parsed = parse_feed_document(MALFORMED_RSS_FEED)
        assert parsed.recovered
        assert parsed.format is FeedFormat.RSS
        assert len(parsed.items) == 1
        item = parsed.items[0]
        assert item.link == "https://example.com/broken"
        assert item.guid == "broken-guid"
        assert item.published_at == datetime(2006, 1, 3, 10, 0, tzinfo=timezone.utc)

    def test_garbage_is_not_recovered(self):
        with pytest.raises(FeedParseError):
            parse_feed_document(b"<<<this is not xml at all")


def _mock_response(status=200, body=b""):
    response = MagicMock()
    response.status = status
    response.read = AsyncMock(return_value=body)
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=False)
    return response


class TestFeedParserFetch:
    """HTTP fetching through an aiohttp session."""

    def setup_method(self):
        self.parser = FeedParser(user_agent="FeedHarvest-Test/1.0", request_timeout=5)
        self.feed_url = "https://example.com/feed.xml"

    @pytest.mark.asyncio
    async def test_fetch_success(self):
        session = Mock()
        session.get = Mock(return_value=_mock_response(200, SAMPLE_RSS_FEED))

        parsed = await self.parser.fetch_feed(self.feed_url, session)

        assert parsed.item_count == 3
        _, kwargs = session.get.call_args
        assert kwargs["headers"]["User-Agent"] == "FeedHarvest-Test/1.0"
        assert "application/atom+xml" in kwargs["headers"]["Accept"]

    @pytest.mark.asyncio
    async def test_non_200_status(self):
        session = Mock()
        session.get = Mock(return_value=_mock_response(404))

        with pytest.raises(FeedFetchError) as exc_info:
            await self.parser.fetch_feed(self.feed_url, session)

        assert exc_info.value.error_code == ErrorCode.FEED_HTTP_STATUS
        assert not exc_info.value.recoverable
        assert exc_info.value.context["feed_url"] == self.feed_url

    @pytest.mark.asyncio
    async def test_server_error_is_recoverable(self):
        session = Mock()
        session.get = Mock(return_value=_mock_response(503))

        with pytest.raises(FeedFetchError) as exc_info:
            await self.parser.fetch_feed(self.feed_url, session)
        assert exc_info.value.recoverable

    @pytest.mark.asyncio
    async def test_timeout(self):
        session = Mock()
        session.get = Mock(side_effect=asyncio.TimeoutError())

        with pytest.raises(FeedFetchError) as exc_info:
            await self.parser.fetch_feed(self.feed_url, session)
        assert exc_info.value.error_code == ErrorCode.FEED_FETCH_TIMEOUT

    @pytest.mark.asyncio
    async def test_client_error(self):
        session = Mock()
        session.get = Mock(side_effect=aiohttp.ClientConnectionError("refused"))

        with pytest.raises(FeedFetchError) as exc_info:
            await self.parser.fetch_feed(self.feed_url, session)
        assert exc_info.value.error_code == ErrorCode.FEED_NETWORK_ERROR

    @pytest.mark.asyncio
    async def test_access_denied(self):
        session = Mock()
        session.get = Mock(return_value=_mock_response(403))

        with pytest.raises(FeedFetchError) as exc_info:
            await self.parser.fetch_feed(self.feed_url, session)

        assert exc_info.value.error_code == ErrorCode.FEED_ACCESS_DENIED
        assert not exc_info.value.recoverable

    @pytest.mark.asyncio
    @pytest.mark.parametrize("feed_url", ["ftp://example.com/feed.xml", "not a url", ""])
    async def test_invalid_url_is_not_requested(self, feed_url):
        session = Mock()

        with pytest.raises(FeedFetchError) as exc_info:
            await self.parser.fetch_feed(feed_url, session)

        assert exc_info.value.error_code == ErrorCode.FEED_INVALID_URL
        assert not exc_info.value.recoverable
        session.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_parse_error_carries_feed_url(self):
        session = Mock()
        session.get = Mock(return_value=_mock_response(200, b"<html></html>"))

        with pytest.raises(FeedParseError) as exc_info:
            await self.parser.fetch_feed(self.feed_url, session)
        assert exc_info.value.context["feed_url"] == self.feed_url


class TestBuildCandidates:
    """Canonical item to candidate post conversion."""

    def setup_method(self):
        self.parser = FeedParser(user_agent="FeedHarvest-Test/1.0")

    @pytest.mark.asyncio
    async def test_candidate_fields(self):
        items = parse_feed_document(SAMPLE_RSS_FEED).items

        candidates = await self.parser.build_candidates("feed-1", items)

        assert [c.title for c in candidates] == ["Test Article 1", "Test Article 2", "Test Article 3"]
        first = candidates[0]
        assert first.inspiration_feed_id == "feed-1"
        assert first.url == "https://example.com/article1"
        assert first.description == "Summary with HTML"
        assert first.content == "Full body of article one"
        assert first.published_at == "2006-01-02T22:04:05Z"
        assert first.guid == "article-1-guid"
        assert first.image_url == "https://example.com/thumb1.jpg"
        assert first.full_content is None
        assert candidates[1].published_at is None

    @pytest.mark.asyncio
    async def test_items_without_title_or_link_are_dropped(self):
        items = [
            CanonicalFeedItem(title="", link="https://example.com/a"),
            CanonicalFeedItem(title="No link"),
            CanonicalFeedItem(title="<br/>", link="https://example.com/b"),
            CanonicalFeedItem(title="Kept", link="https://example.com/c"),
        ]

        candidates = await self.parser.build_candidates("feed-1", items)

        assert [c.title for c in candidates] == ["Kept"]
        assert candidates[0].guid == "https://example.com/c"

    @pytest.mark.asyncio
    async def test_extracted_image_wins_over_feed_media(self):
        extractor = Mock()
        extractor.extract_from_url = AsyncMock(
            return_value=ExtractedContent(
                image_url="https://example.com/og.jpg", full_content="<p>Extracted</p>"
            )
        )
        items = [
            CanonicalFeedItem(
                title="With media",
                link="https://example.com/a",
                thumbnail_url="https://example.com/thumb.jpg",
            )
        ]

        candidates = await self.parser.build_candidates("feed-1", items, extractor, Mock())

        assert candidates[0].image_url == "https://example.com/og.jpg"
        assert candidates[0].full_content == "<p>Extracted</p>"

    @pytest.mark.asyncio
    async def test_extraction_failure_falls_back_to_feed_media(self):
        extractor = Mock()
        extractor.extract_from_url = AsyncMock(
            side_effect=ExtractionError("HTTP error: 403", page_url="https://example.com/a")
        )
        items = [
            CanonicalFeedItem(
                title="Blocked page",
                link="https://example.com/a",
                enclosure_url="https://example.com/enc.jpg",
                enclosure_type="image/jpeg",
            )
        ]

        candidates = await self.parser.build_candidates("feed-1", items, extractor, Mock())

        assert len(candidates) == 1
        assert candidates[0].image_url == "https://example.com/enc.jpg"
        assert candidates[0].full_content is None

    @pytest.mark.asyncio
    async def test_extractor_not_called_for_dropped_items(self):
        extractor = Mock()
        extractor.extract_from_url = AsyncMock(return_value=ExtractedContent())
        items = [CanonicalFeedItem(title="", link="https://example.com/a")]

        await self.parser.build_candidates("feed-1", items, extractor, Mock())

        extractor.extract_from_url.assert_not_called()

    @pytest.mark.asyncio
    async def test_unexpected_extraction_error_only_affects_its_item(self):
        def extract(url, session):
            if url.endswith("/b"):
                raise RecursionError("maximum recursion depth exceeded")
            return ExtractedContent(full_content=f"<p>Body of {url}</p>")

        extractor = Mock()
        extractor.extract_from_url = AsyncMock(side_effect=extract)
        items = [
            CanonicalFeedItem(title=f"Item {suffix}", link=f"https://example.com/{suffix}")
            for suffix in ("a", "b", "c")
        ]

        candidates = await self.parser.build_candidates("feed-1", items, extractor, Mock())

        assert [c.title for c in candidates] == ["Item a", "Item b", "Item c"]
        assert candidates[0].full_content == "<p>Body of https://example.com/a</p>"
        assert candidates[1].full_content is None
        assert candidates[2].full_content == "<p>Body of https://example.com/c</p>"

"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for FeedHarvest tests.

The CMS, feed fetching and classifier are replaced with in-memory fakes so
the crawl pipeline runs without network access.
"""

import asyncio
import os
import sys
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Optional, Union
from unittest.mock import Mock

import pytest

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before any imports
os.environ["FEEDHARVEST_CMS__BASE_URL"] = "https://cms.test.local"
os.environ["FEEDHARVEST_CMS__ACCESS_TOKEN"] = "test-access-token"
os.environ["FEEDHARVEST_AI__ENABLE_CONTENT_ANALYSIS"] = "false"
os.environ["FEEDHARVEST_LOGGING__FILE_PATH"] = ""
os.environ["FEEDHARVEST_DEBUG"] = "true"

from feedharvest.ingestion.feed_parser import FeedParser, ParsedFeed, parse_feed_document
from feedharvest.models import (
    CandidatePost,
    ClassificationVerdict,
    ExistingPost,
    FeedDefinition,
    QueueRequest,
)
from feedharvest.utils.exceptions import (
    ClassifierError,
    CMSError,
    ErrorCode,
    FeedFetchError,
    FeedNotFoundError,
    QueueError,
)


# ============================================================================
# Fakes
# ============================================================================


class FakeCMS:
    """In-memory CMS implementing the crawler API surface."""

    def __init__(self, feeds=()):
        self.feeds: Dict[str, FeedDefinition] = {feed.id: feed for feed in feeds}
        self.posts: Dict[str, List[ExistingPost]] = defaultdict(list)
        self.created: List[CandidatePost] = []
        self.marked: List[str] = []
        self.queue: List[QueueRequest] = []
        self.acked: List[str] = []
        self.list_feeds_calls = 0

        self.fail_list_feeds = False
        self.fail_list_posts = False
        self.fail_mark = False
        self.fail_poll = False
        self.fail_ack = False
        self.fail_create_guids = set()

    def add_existing(self, feed_id: str, *guids: str) -> None:
        for guid in guids:
            self.posts[feed_id].append(
                ExistingPost(id=f"existing-{guid}", inspiration_feed_id=feed_id, guid=guid)
            )

    async def list_feeds(self):
        self.list_feeds_calls += 1
        if self.fail_list_feeds:
            raise CMSError("API request failed with status 503", endpoint="inspiration_feeds", status=503)
        return list(self.feeds.values())

    async def get_feed(self, feed_id: str):
        if feed_id not in self.feeds:
            raise FeedNotFoundError(feed_id)
        return self.feeds[feed_id]

    async def list_posts(self, feed_id: str, limit: int):
        if self.fail_list_posts:
            raise CMSError("API request failed with status 500", endpoint="inspiration_feed_posts", status=500)
        return list(self.posts[feed_id][-limit:])

    async def create_post(self, post: CandidatePost):
        if post.guid in self.fail_create_guids:
            raise CMSError("API request failed with status 500", endpoint="inspiration_feed_posts", status=500)
        self.created.append(post)
        stored = ExistingPost(
            id=str(len(self.created)),
            inspiration_feed_id=post.inspiration_feed_id,
            title=post.title,
            url=post.url,
            guid=post.guid,
        )
        self.posts[post.inspiration_feed_id].append(stored)
        return stored

    async def mark_crawled(self, feed_id: str):
        if self.fail_mark:
            raise CMSError("API request failed with status 500", endpoint="last-crawled", status=500)
        self.marked.append(feed_id)

    async def poll_request(self):
        if self.fail_poll:
            raise QueueError("requests/poll failed", endpoint="requests/poll", error_code=ErrorCode.QUEUE_POLL_FAILED)
        return self.queue.pop(0) if self.queue else None

    async def ack_request(self, request_id: str):
        self.acked.append(request_id)
        if self.fail_ack:
            raise QueueError("API request failed with status 500", endpoint="requests", status=500)


class FakeFeedParser(FeedParser):
    """Serves feed documents from memory and records fetch concurrency."""

    def __init__(
        self,
        documents: Dict[str, Union[bytes, Exception]],
        delay: Union[float, Dict[str, float]] = 0.0,
    ):
        super().__init__(user_agent="FeedHarvest-Test/1.0")
        self.documents = documents
        self.delay = delay
        self.active = 0
        self.peak_active = 0
        self.fetch_order: List[str] = []
        self.completion_order: List[str] = []

    def _delay_for(self, feed_url: str) -> float:
        if isinstance(self.delay, dict):
            return self.delay.get(feed_url, 0.0)
        return self.delay

    async def fetch_feed(self, feed_url: str, session) -> ParsedFeed:
        self.active += 1
        self.peak_active = max(self.peak_active, self.active)
        try:
            self.fetch_order.append(feed_url)
            await asyncio.sleep(self._delay_for(feed_url))
            document = self.documents.get(feed_url)
            if document is None:
                raise FeedFetchError(
                    "Feed returned status 404",
                    feed_url=feed_url,
                    error_code=ErrorCode.FEED_HTTP_STATUS,
                )
            if isinstance(document, Exception):
                raise document
            return parse_feed_document(document)
        finally:
            self.active -= 1
            self.completion_order.append(feed_url)


class FakeClassifier:
    """Returns a fixed verdict, or raises when configured to fail."""

    def __init__(self, verdict: Optional[ClassificationVerdict] = None, error: Optional[Exception] = None):
        self.verdict = verdict or ClassificationVerdict(
            is_primary_reporting=False, original_source_name="Reuters", confidence=0.9
        )
        self.error = error
        self.calls: List[str] = []

    async def classify(self, title, description=None, content=None, full_content=None, url=None):
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        return self.verdict


# ============================================================================
# Feed document builders
# ============================================================================


def build_rss(*items: dict, title: str = "Test Feed") -> bytes:
    """RSS 2.0 document with one <item> per dict of child elements."""
    entries = []
    for item in items:
        children = "".join(f"<{key}>{value}</{key}>" for key, value in item.items())
        entries.append(f"<item>{children}</item>")
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel>'
        f"<title>{title}</title><link>https://news.example.com</link>"
        "<description>Test feed</description>"
        f"{''.join(entries)}"
        "</channel></rss>"
    ).encode("utf-8")


def rss_item(n: int, **overrides) -> dict:
    item = {
        "title": f"Article {n}",
        "link": f"https://news.example.com/articles/{n}",
        "guid": f"guid-{n}",
        "description": f"Summary of article {n}",
        "pubDate": "Mon, 02 Jan 2006 15:04:05 GMT",
    }
    item.update(overrides)
    return item


def make_feed(feed_id: str, **overrides) -> FeedDefinition:
    data = {
        "id": feed_id,
        "name": f"Feed {feed_id}",
        "url": f"https://feeds.example.com/{feed_id}.xml",
        "is_active": True,
        "crawl_interval_minutes": 60,
        "last_crawled_at": None,
    }
    data.update(overrides)
    return FeedDefinition(**data)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def fake_session():
    """Stand-in HTTP session for components that only pass it through."""
    return Mock(closed=False)


@pytest.fixture
def fake_cms():
    return FakeCMS()


@pytest.fixture
def fake_classifier():
    return FakeClassifier()


@pytest.fixture
def sample_feed():
    return make_feed("feed-1")


@pytest.fixture
def sample_rss():
    return build_rss(rss_item(1), rss_item(2), rss_item(3))

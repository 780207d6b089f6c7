"""
FeedHarvest Data Models
=======================

Pydantic models for the CMS wire contract and dataclasses for the values
passed between the parser, extractor and crawl orchestrator.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Tuple, Union

from pydantic import BaseModel, Field, field_validator


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp from the CMS, returning None when unusable.

    Naive timestamps are interpreted as UTC.
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class FeedCategory(BaseModel):
    """Category summary attached to a feed definition."""
    id: str
    name: Optional[str] = None
    key: Optional[str] = None
    path: Optional[str] = None


class FeedDefinition(BaseModel):
    """An inspiration feed configured in the CMS."""
    id: str = Field(..., min_length=1, description="Feed identifier")
    name: str = Field(default="", description="Display name")
    url: str = Field(..., min_length=1, description="Feed document URL")
    description: Optional[str] = None
    category_id: Optional[str] = None
    category: Optional[FeedCategory] = None
    is_active: bool = Field(default=True)
    last_crawled_at: Optional[str] = Field(default=None, description="RFC 3339 timestamp of the last crawl")
    crawl_interval_minutes: int = Field(default=60, ge=0)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    post_count: int = Field(default=0)

    model_config = {"extra": "ignore"}

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v) if v is not None else v

    @property
    def last_crawled(self) -> Optional[datetime]:
        return parse_timestamp(self.last_crawled_at)

    def is_due(self, now: Optional[datetime] = None) -> bool:
        """Whether the feed should be crawled at ``now``.

        Inactive feeds are never due. A feed with no usable last-crawl
        timestamp (missing or unparseable) is always due.
        """
        if not self.is_active:
            return False

        last = self.last_crawled
        if last is None:
            return True

        now = now or datetime.now(timezone.utc)
        return now - last >= timedelta(minutes=self.crawl_interval_minutes)

    def __str__(self) -> str:
        return f"Feed({self.name or self.id}:{self.url})"


class ExistingPost(BaseModel):
    """A post already stored in the CMS, used for deduplication."""
    id: Optional[str] = None
    inspiration_feed_id: Optional[str] = None
    title: Optional[str] = None
    url: Optional[str] = None
    guid: Optional[str] = None

    model_config = {"extra": "ignore"}


class CandidatePost(BaseModel):
    """Create-post request body sent to the CMS."""
    inspiration_feed_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    description: Optional[str] = None
    content: Optional[str] = None
    author: Optional[str] = None
    published_at: Optional[str] = Field(default=None, description="RFC 3339 publication time")
    guid: Optional[str] = None
    image_url: Optional[str] = None
    full_content: Optional[str] = None
    is_primary_reporting: Optional[bool] = None
    original_source_name: Optional[str] = None

    def to_payload(self) -> dict:
        return self.model_dump()


@dataclass(frozen=True)
class CanonicalFeedItem:
    """Format-independent view of one RSS item or Atom entry."""

    title: str = ""
    summary: str = ""
    content: str = ""
    author: str = ""
    published_at: Optional[datetime] = None
    guid: str = ""
    link: str = ""
    thumbnail_url: Optional[str] = None
    media_content_url: Optional[str] = None
    enclosure_url: Optional[str] = None
    enclosure_type: Optional[str] = None
    categories: Tuple[str, ...] = ()

    def embedded_image_url(self) -> Optional[str]:
        """Image carried by the feed itself: thumbnail, media content, image enclosure."""
        if self.thumbnail_url:
            return self.thumbnail_url
        if self.media_content_url:
            return self.media_content_url
        if self.enclosure_url and (self.enclosure_type or "").startswith("image/"):
            return self.enclosure_url
        return None


@dataclass(frozen=True)
class ExtractedContent:
    """Result of article page extraction."""

    image_url: str = ""
    full_content: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.image_url and not self.full_content


@dataclass
class CrawlResult:
    """Outcome of crawling a single feed."""

    feed_id: str
    success: bool = False
    error: Optional[str] = None
    posts_found: int = 0
    posts_added: int = 0
    posts_skipped: int = 0

    def __post_init__(self):
        if self.error and self.success:
            raise ValueError("A successful crawl result cannot carry an error")

    def summary(self) -> str:
        if not self.success:
            return f"feed {self.feed_id}: failed ({self.error})"
        return (
            f"feed {self.feed_id}: found={self.posts_found} "
            f"added={self.posts_added} skipped={self.posts_skipped}"
        )


class QueueRequestType(str, Enum):
    """Request kinds understood by the queue processor."""
    SINGLE = "single"
    ALL = "all"


class QueueRequest(BaseModel):
    """Priority crawl request polled from the CMS queue."""
    id: str = Field(..., min_length=1)
    type: str = Field(default="")
    feed_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    priority: int = 0

    model_config = {"extra": "ignore"}

    @field_validator("id", "feed_id", mode="before")
    @classmethod
    def coerce_str(cls, v):
        return str(v) if v is not None else v

    def to_command(self) -> "QueueCommand":
        """Resolve the wire ``type`` string into a closed command variant."""
        if self.type == QueueRequestType.SINGLE.value:
            return SingleFeedRequest(feed_id=self.feed_id or None)
        if self.type == QueueRequestType.ALL.value:
            return AllFeedsRequest()
        return UnknownRequest(request_type=self.type)


@dataclass(frozen=True)
class SingleFeedRequest:
    feed_id: Optional[str]


@dataclass(frozen=True)
class AllFeedsRequest:
    pass


@dataclass(frozen=True)
class UnknownRequest:
    request_type: str


QueueCommand = Union[SingleFeedRequest, AllFeedsRequest, UnknownRequest]


class ClassificationVerdict(BaseModel):
    """Answer of the primary-reporting classifier."""
    is_primary_reporting: bool = True
    original_source_name: Optional[str] = None
    confidence: float = 0.5
    reasoning: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v):
        try:
            value = float(v)
        except (TypeError, ValueError):
            return 0.5
        if value < 0 or value > 1:
            return 0.5
        return value

    @field_validator("original_source_name", mode="before")
    @classmethod
    def normalize_source_name(cls, v):
        if v is None:
            return None
        text = str(v).strip()
        if not text or text.lower() == "null":
            return None
        return text


@dataclass
class QueueProcessingResult:
    """What one queue poll did."""

    request: Optional[QueueRequest] = None
    command: Optional[QueueCommand] = None
    results: list = field(default_factory=list)
    acknowledged: bool = False
    error: Optional[str] = None

    @property
    def handled(self) -> bool:
        return self.request is not None

    @property
    def posts_added(self) -> int:
        return sum(r.posts_added for r in self.results)

"""
Feed Cache
==========

TTL-bounded read-through cache of the CMS feed definitions with
single-flight refresh.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence, Tuple

from ..models import FeedDefinition
from ..utils.logging import get_logger_for_component


class FeedSource(Protocol):
    async def list_feeds(self) -> Sequence[FeedDefinition]:
        ...


@dataclass(frozen=True)
class CachedFeedSet:
    feeds: Tuple[FeedDefinition, ...]
    refreshed_at: float

    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        return bool(self.feeds) and now - self.refreshed_at < ttl_seconds


class FeedCache:
    """Caches the full feed-definition set for a fixed TTL.

    Fresh reads return the snapshot without suspending. Stale reads take an
    exclusive lock and re-check freshness before fetching, so concurrent
    callers share one refresh. A failed refresh leaves the previous snapshot
    and its timestamp untouched.
    """

    def __init__(
        self,
        source: FeedSource,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.source = source
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._snapshot: Optional[CachedFeedSet] = None
        self._refresh_lock = asyncio.Lock()
        self.refresh_count = 0
        self.logger = get_logger_for_component("feed_cache")

    def _fresh_snapshot(self) -> Optional[CachedFeedSet]:
        snapshot = self._snapshot
        if snapshot is not None and snapshot.is_fresh(self._clock(), self.ttl_seconds):
            return snapshot
        return None

    async def get_feeds(self) -> Tuple[FeedDefinition, ...]:
        """Return cached feed definitions, refreshing from the source when stale."""
        snapshot = self._fresh_snapshot()
        if snapshot is not None:
            return snapshot.feeds

        async with self._refresh_lock:
            snapshot = self._fresh_snapshot()
            if snapshot is not None:
                return snapshot.feeds

            feeds = tuple(await self.source.list_feeds())
            self._snapshot = CachedFeedSet(feeds=feeds, refreshed_at=self._clock())
            self.refresh_count += 1
            self.logger.info(f"Refreshed feed cache with {len(feeds)} feeds")
            return feeds

    def invalidate(self) -> None:
        """Drop the snapshot so the next read refreshes."""
        self._snapshot = None

    @property
    def snapshot(self) -> Optional[CachedFeedSet]:
        return self._snapshot

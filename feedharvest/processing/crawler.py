"""
Crawl Orchestrator
==================

Selects due feeds, crawls them under a concurrency ceiling and turns their
items into deduplicated, attributed CMS posts.
"""

import asyncio
from typing import List, Optional, Set

import aiohttp

from ..clients.cms_client import CMSClient, CMSSource
from ..clients.http import create_session
from ..config.settings import FeedHarvestSettings, TenantSettings
from ..ingestion.content_extractor import ContentExtractor
from ..ingestion.feed_parser import FeedParser
from ..models import CandidatePost, CrawlResult, FeedDefinition
from ..utils.exceptions import (
    CMSError,
    FeedError,
    FeedHarvestError,
    handle_exception,
    is_retryable_error,
)
from ..utils.logging import PerformanceLogger, get_logger_for_component
from .classification import Classifier, apply_attribution, classify_candidate
from .feed_cache import FeedCache


class CrawlerService:
    """Crawl orchestrator for one CMS tenant.

    Owns the HTTP session used for feed and article fetches unless one is
    passed in. Use as an async context manager or call ``close()``.
    """

    def __init__(
        self,
        cms: CMSSource,
        feed_parser: FeedParser,
        extractor: Optional[ContentExtractor] = None,
        classifier: Optional[Classifier] = None,
        cache: Optional[FeedCache] = None,
        max_concurrent_crawls: int = 3,
        existing_posts_limit: int = 100,
        request_timeout: int = 30,
        session: Optional[aiohttp.ClientSession] = None,
        tenant: Optional[str] = None,
    ):
        """Initialize crawler service.

        Args:
            cms: CMS source for feeds, posts and timestamps
            feed_parser: Feed fetcher and candidate builder
            extractor: Article content extractor, None to skip page fetches
            classifier: Primary-reporting classifier, None when disabled
            cache: Feed definition cache (defaults to a 5 minute TTL over ``cms``)
            max_concurrent_crawls: Feeds crawled at the same time
            existing_posts_limit: Stored posts fetched per feed for deduplication
            request_timeout: Timeout of the owned HTTP session, in seconds
            session: Shared HTTP session, otherwise one is created on demand
            tenant: Tenant identifier for log context
        """
        if max_concurrent_crawls < 1:
            raise ValueError("max_concurrent_crawls must be at least 1")

        self.cms = cms
        self.feed_parser = feed_parser
        self.extractor = extractor
        self.classifier = classifier
        self.cache = cache or FeedCache(cms)
        self.max_concurrent_crawls = max_concurrent_crawls
        self.existing_posts_limit = existing_posts_limit
        self.request_timeout = request_timeout
        self.tenant = tenant

        self._session = session
        self._owns_session = session is None
        self._owned_resources: List = []
        self.logger = get_logger_for_component("crawler", tenant=tenant)

    @classmethod
    def from_settings(
        cls,
        settings: FeedHarvestSettings,
        tenant: TenantSettings,
        classifier: Optional[Classifier] = None,
    ) -> "CrawlerService":
        """Wire a service for ``tenant`` from application settings.

        The CMS client created here is closed together with the service.
        """
        crawler_settings = settings.crawler
        cms = CMSClient(
            base_url=tenant.cms_base_url,
            access_token=tenant.access_token,
            request_timeout=crawler_settings.request_timeout,
            tenant=tenant.id,
        )
        feed_parser = FeedParser(
            user_agent=crawler_settings.user_agent,
            request_timeout=crawler_settings.request_timeout,
            proxy_url=crawler_settings.proxy_url,
        )
        extractor = None
        if crawler_settings.extract_full_content:
            extractor = ContentExtractor(
                user_agent=crawler_settings.user_agent,
                request_timeout=crawler_settings.request_timeout,
                proxy_url=crawler_settings.proxy_url,
            )

        service = cls(
            cms=cms,
            feed_parser=feed_parser,
            extractor=extractor,
            classifier=classifier,
            cache=FeedCache(cms, ttl_seconds=crawler_settings.feed_cache_ttl_minutes * 60),
            max_concurrent_crawls=crawler_settings.max_concurrent_crawls,
            existing_posts_limit=crawler_settings.existing_posts_limit,
            request_timeout=crawler_settings.request_timeout,
            tenant=tenant.id,
        )
        service._owned_resources.append(cms)
        return service

    async def __aenter__(self) -> "CrawlerService":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Release the owned HTTP session and owned clients."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

        for resource in self._owned_resources:
            await resource.close()
        self._owned_resources = []

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = create_session(
                request_timeout=self.request_timeout,
                max_connections=self.max_concurrent_crawls * 2,
            )
            self._owns_session = True
        return self._session

    async def crawl_all_due_feeds(self) -> List[CrawlResult]:
        """Crawl every due feed, at most ``max_concurrent_crawls`` at a time.

        Results are in the order of the due list, not completion order.

        Raises:
            FeedHarvestError: If the feed definitions cannot be loaded
        """
        feeds = await self.cache.get_feeds()
        due_feeds = [feed for feed in feeds if feed.is_due()]

        if not due_feeds:
            self.logger.debug(f"No feeds due ({len(feeds)} known)")
            return []

        self.logger.info(f"Found {len(due_feeds)} feeds due for crawling")

        semaphore = asyncio.Semaphore(self.max_concurrent_crawls)

        async def crawl_with_semaphore(feed: FeedDefinition) -> CrawlResult:
            async with semaphore:
                return await self._crawl_guarded(feed)

        with PerformanceLogger(self.logger, "crawl batch", feed_count=len(due_feeds)):
            results = await asyncio.gather(
                *(crawl_with_semaphore(feed) for feed in due_feeds)
            )
        return list(results)

    async def crawl_feed(self, feed_id: str) -> CrawlResult:
        """Crawl one feed by id, reading its definition straight from the CMS.

        Raises:
            FeedNotFoundError: If the CMS has no such feed
            CMSError: If the definition cannot be fetched
        """
        feed = await self.cms.get_feed(feed_id)
        return await self._crawl_guarded(feed)

    async def _crawl_guarded(self, feed: FeedDefinition) -> CrawlResult:
        try:
            return await self.crawl_single_feed(feed)
        except Exception as e:
            error = handle_exception(
                e, self.logger, "crawl_feed", {"feed_id": feed.id, "feed_url": feed.url}
            )
            return CrawlResult(feed_id=feed.id, success=False, error=str(error))

    async def crawl_single_feed(self, feed: FeedDefinition) -> CrawlResult:
        """Run the per-feed routine: parse, build, dedupe, classify, submit, stamp."""
        logger = self.logger.bind(feed_id=feed.id)
        result = CrawlResult(feed_id=feed.id)

        logger.info(f"Crawling feed: {feed.name} ({feed.url})")

        try:
            parsed = await self.feed_parser.fetch_feed(feed.url, self.session)
        except FeedError as e:
            retry_note = " (transient, retried next cycle)" if is_retryable_error(e) else ""
            logger.warning(f"Failed to parse feed {feed.url}: {e}{retry_note}")
            result.error = f"failed to parse feed: {e}"
            return result

        result.posts_found = parsed.item_count
        logger.info(f"Found {result.posts_found} items in feed {feed.name}")

        if result.posts_found == 0:
            result.success = True
            return result

        candidates = await self.feed_parser.build_candidates(
            feed.id, parsed.items, extractor=self.extractor, session=self.session
        )
        known_guids = await self._existing_guids(feed.id)

        for candidate in candidates:
            if candidate.guid and candidate.guid in known_guids:
                result.posts_skipped += 1
                continue

            if await self._submit(candidate, feed):
                result.posts_added += 1
                if candidate.guid:
                    known_guids.add(candidate.guid)
            else:
                result.posts_skipped += 1

        try:
            await self.cms.mark_crawled(feed.id)
        except FeedHarvestError as e:
            logger.warning(f"Failed to update last crawled timestamp for feed {feed.id}: {e}")

        result.success = True
        logger.info(
            f"Completed crawling feed {feed.name}: {result.posts_found} found, "
            f"{result.posts_added} added, {result.posts_skipped} skipped"
        )
        return result

    async def _existing_guids(self, feed_id: str) -> Set[str]:
        try:
            posts = await self.cms.list_posts(feed_id, self.existing_posts_limit)
        except CMSError as e:
            self.logger.warning(f"Failed to get existing posts for feed {feed_id}: {e}")
            return set()
        return {post.guid for post in posts if post.guid}

    async def _submit(self, candidate: CandidatePost, feed: FeedDefinition) -> bool:
        outcome = await classify_candidate(self.classifier, candidate)
        post = apply_attribution(candidate, outcome)

        try:
            await self.cms.create_post(post)
        except CMSError as e:
            self.logger.warning(f"Failed to create post '{post.title}' for feed {feed.name}: {e}")
            return False

        self.logger.debug(f"Added post: {post.title}")
        return True

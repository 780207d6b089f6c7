"""
Queue Request Processor
=======================

Handles out-of-band priority crawl requests polled from the CMS queue.
Every polled request is acknowledged exactly once, whatever happened while
dispatching it.
"""

from typing import Optional

from ..clients.cms_client import CMSSource
from ..models import (
    AllFeedsRequest,
    QueueProcessingResult,
    SingleFeedRequest,
    UnknownRequest,
)
from ..utils.exceptions import FeedHarvestError
from ..utils.logging import get_logger_for_component
from .crawler import CrawlerService


class QueueRequestProcessor:
    """Polls one request at a time and dispatches it to the crawler."""

    def __init__(self, cms: CMSSource, crawler: CrawlerService, tenant: Optional[str] = None):
        self.cms = cms
        self.crawler = crawler
        self.logger = get_logger_for_component("queue", tenant=tenant)

    async def process_once(self) -> QueueProcessingResult:
        """Poll the queue and handle at most one request.

        Raises:
            QueueError: If polling fails
        """
        self.logger.debug("Checking for queue requests")
        request = await self.cms.poll_request()
        if request is None:
            return QueueProcessingResult()

        command = request.to_command()
        outcome = QueueProcessingResult(request=request, command=command)
        self.logger.info(f"Processing queue request: {request.id} (type: {request.type})")

        try:
            await self._dispatch(outcome)
        except Exception as e:
            outcome.error = str(e)
            if isinstance(e, FeedHarvestError):
                self.logger.warning(f"Queue request {request.id} failed: {e}")
            else:
                self.logger.error(f"Unexpected failure handling queue request {request.id}: {e}")

        try:
            await self.cms.ack_request(request.id)
            outcome.acknowledged = True
        except FeedHarvestError as e:
            self.logger.warning(f"Failed to acknowledge request {request.id}: {e}")

        self._log_totals(outcome)
        return outcome

    async def _dispatch(self, outcome: QueueProcessingResult) -> None:
        command = outcome.command

        if isinstance(command, SingleFeedRequest):
            if not command.feed_id:
                self.logger.warning("Invalid single crawl request: missing feed ID")
                return
            outcome.results.append(await self.crawler.crawl_feed(command.feed_id))

        elif isinstance(command, AllFeedsRequest):
            # Explicit requests see feeds added since the last refresh
            self.crawler.cache.invalidate()
            self.logger.debug("Feed cache invalidated for all-feeds request")
            outcome.results.extend(await self.crawler.crawl_all_due_feeds())

        elif isinstance(command, UnknownRequest):
            self.logger.warning(f"Unknown request type: {command.request_type!r}")

    def _log_totals(self, outcome: QueueProcessingResult) -> None:
        if not outcome.results:
            return
        succeeded = sum(1 for result in outcome.results if result.success)
        self.logger.info(
            f"Queue request {outcome.request.id} completed: {succeeded}/{len(outcome.results)} "
            f"feeds successful, {outcome.posts_added} posts added"
        )

"""
FeedHarvest Crawl Scheduler
===========================

Drives crawling for every enabled tenant: one-shot runs for cron style
invocation, and a long-running mode with two independent periodic tasks
(queue polling and the scheduled crawl tick).

Each tenant is handled in isolation. A failure for one tenant is logged and
reported without stopping the others.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..ai.content_classifier import ContentClassifier
from ..config.settings import FeedHarvestSettings, get_settings
from ..models import CrawlResult, QueueProcessingResult
from ..processing.classification import Classifier
from ..processing.crawler import CrawlerService
from ..processing.queue_processor import QueueRequestProcessor
from ..utils.exceptions import ConfigurationError, FeedHarvestError
from ..utils.logging import get_logger_for_component


@dataclass
class TenantRuntime:
    """Crawler and queue processor wired for one tenant."""

    tenant_id: str
    crawler: CrawlerService
    queue: QueueRequestProcessor


@dataclass
class TenantRunReport:
    """What one tenant did during a scheduler pass."""

    tenant_id: str
    results: List[CrawlResult] = field(default_factory=list)
    queue_result: Optional[QueueProcessingResult] = None
    error: Optional[str] = None

    @property
    def success_count(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def error_count(self) -> int:
        return len(self.results) - self.success_count

    @property
    def posts_added(self) -> int:
        return sum(result.posts_added for result in self.results if result.success)

    @property
    def successful(self) -> bool:
        return self.error is None and self.error_count == 0


def build_classifier(settings: FeedHarvestSettings) -> Optional[Classifier]:
    """Content classifier from settings, None when analysis is disabled."""
    logger = get_logger_for_component("scheduler")
    ai = settings.ai
    if not ai.classifier_enabled:
        logger.info(
            f"Content analysis disabled (enabled={ai.enable_content_analysis}, "
            f"key_provided={bool(ai.openai_api_key)}); posts default to primary reporting"
        )
        return None

    logger.info(f"Content analysis enabled with model {ai.model}")
    return ContentClassifier(
        api_key=ai.openai_api_key,
        model_name=ai.model,
        temperature=ai.temperature,
        max_tokens=ai.max_tokens,
        max_content_chars=ai.max_content_chars,
        timeout=settings.crawler.request_timeout,
    )


class CrawlScheduler:
    """Coordinates crawl passes and queue polling across tenants."""

    def __init__(
        self,
        runtimes: List[TenantRuntime],
        crawl_interval_seconds: float = 300,
        queue_poll_interval_seconds: float = 10,
    ):
        if not runtimes:
            raise ConfigurationError("No enabled tenants found", config_key="tenants")

        self.runtimes: Dict[str, TenantRuntime] = {rt.tenant_id: rt for rt in runtimes}
        self.crawl_interval_seconds = crawl_interval_seconds
        self.queue_poll_interval_seconds = queue_poll_interval_seconds
        self.logger = get_logger_for_component("scheduler")
        self._stop_event = asyncio.Event()

    @classmethod
    def from_settings(
        cls,
        settings: Optional[FeedHarvestSettings] = None,
        interval_seconds: Optional[float] = None,
    ) -> "CrawlScheduler":
        """Wire one runtime per enabled tenant."""
        settings = settings or get_settings()
        logger = get_logger_for_component("scheduler")
        classifier = build_classifier(settings)

        runtimes = []
        for tenant in settings.get_tenants():
            if not tenant.enabled:
                logger.info(f"Skipping disabled tenant: {tenant.id}")
                continue
            crawler = CrawlerService.from_settings(settings, tenant, classifier=classifier)
            runtimes.append(
                TenantRuntime(
                    tenant_id=tenant.id,
                    crawler=crawler,
                    queue=QueueRequestProcessor(crawler.cms, crawler, tenant=tenant.id),
                )
            )
            logger.info(f"Initialized crawler service for tenant: {tenant.display_name}")

        return cls(
            runtimes,
            crawl_interval_seconds=interval_seconds or settings.crawler.crawl_interval_seconds,
            queue_poll_interval_seconds=settings.crawler.queue_poll_interval_seconds,
        )

    async def __aenter__(self) -> "CrawlScheduler":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        for runtime in self.runtimes.values():
            await runtime.crawler.close()

    def select(self, tenant_id: Optional[str] = None) -> List[TenantRuntime]:
        """Runtimes to operate on, all of them when ``tenant_id`` is None.

        Raises:
            ConfigurationError: If the tenant is unknown or disabled
        """
        if tenant_id is None:
            return list(self.runtimes.values())
        if tenant_id not in self.runtimes:
            raise ConfigurationError(
                f"Tenant {tenant_id} not found or not enabled", config_key="tenants"
            )
        return [self.runtimes[tenant_id]]

    async def process_queues(
        self, tenant_id: Optional[str] = None
    ) -> Dict[str, Optional[QueueProcessingResult]]:
        """Poll each tenant's queue once. Poll failures are logged per tenant."""
        outcomes: Dict[str, Optional[QueueProcessingResult]] = {}
        for runtime in self.select(tenant_id):
            outcomes[runtime.tenant_id] = await self._poll_queue(runtime)
        return outcomes

    async def _poll_queue(self, runtime: TenantRuntime) -> Optional[QueueProcessingResult]:
        try:
            return await runtime.queue.process_once()
        except FeedHarvestError as e:
            self.logger.warning(
                f"Failed to process queue requests for tenant {runtime.tenant_id}: {e}"
            )
            return None

    async def run_once(
        self, feed_id: Optional[str] = None, tenant_id: Optional[str] = None
    ) -> Dict[str, TenantRunReport]:
        """One pass per tenant: queue first, then one feed or every due feed."""
        reports: Dict[str, TenantRunReport] = {}

        for runtime in self.select(tenant_id):
            report = TenantRunReport(tenant_id=runtime.tenant_id)
            reports[runtime.tenant_id] = report
            self.logger.info(f"Processing tenant: {runtime.tenant_id}")

            report.queue_result = await self._poll_queue(runtime)

            try:
                if feed_id:
                    report.results = [await runtime.crawler.crawl_feed(feed_id)]
                else:
                    report.results = await runtime.crawler.crawl_all_due_feeds()
            except FeedHarvestError as e:
                report.error = str(e)
                self.logger.error(f"Failed to crawl feeds for tenant {runtime.tenant_id}: {e}")
                continue

            if not report.results:
                self.logger.info(f"No feeds due for crawling for tenant {runtime.tenant_id}")
                continue

            for result in report.results:
                if result.success:
                    self.logger.info(f"[{runtime.tenant_id}] {result.summary()}")
                else:
                    self.logger.warning(f"[{runtime.tenant_id}] {result.summary()}")

            self.logger.info(
                f"Tenant {runtime.tenant_id} summary: {len(report.results)} feeds processed, "
                f"{report.success_count} successful, {report.error_count} errors, "
                f"{report.posts_added} total posts added"
            )

        return reports

    async def run_forever(
        self, feed_id: Optional[str] = None, tenant_id: Optional[str] = None
    ) -> None:
        """Run the queue poller and the crawl tick until ``stop()`` is called."""
        self.select(tenant_id)
        self.logger.info(
            f"Starting crawler scheduler (interval: {self.crawl_interval_seconds}s, "
            f"queue poll: {self.queue_poll_interval_seconds}s)"
        )

        await asyncio.gather(
            self._queue_loop(tenant_id),
            self._crawl_loop(feed_id, tenant_id),
        )
        self.logger.info("Crawler scheduler stopped")

    def stop(self) -> None:
        """Stop issuing new passes. An in-flight pass runs to completion."""
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    async def _sleep(self, seconds: float) -> bool:
        """Wait ``seconds`` or until stopped. Returns True when stopped."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def _crawl_loop(self, feed_id: Optional[str], tenant_id: Optional[str]) -> None:
        while not self.stopped:
            self.logger.info("Running scheduled crawl")
            try:
                await self.run_once(feed_id=feed_id, tenant_id=tenant_id)
            except Exception as e:
                self.logger.error(f"Scheduled crawl failed: {e}", exc_info=True)
            if await self._sleep(self.crawl_interval_seconds):
                break

    async def _queue_loop(self, tenant_id: Optional[str]) -> None:
        while not await self._sleep(self.queue_poll_interval_seconds):
            try:
                await self.process_queues(tenant_id)
            except Exception as e:
                self.logger.error(f"Queue polling failed: {e}", exc_info=True)

#!/usr/bin/env python3
"""
FeedHarvest - Inspiration Feed Crawler
======================================

Main application entry point with CLI interface.

Usage:
    python main.py --help                         # Show all commands
    python main.py check-config                   # Validate configuration
    python main.py crawl --once                   # Crawl all due feeds once and exit
    python main.py crawl --once --feed abc123     # Crawl one feed once
    python main.py run --interval 600             # Crawl continuously every 10 minutes
    python main.py process-queue                  # Handle one queued request per tenant
    python main.py show-feeds                     # List feed definitions from the CMS
"""

import asyncio
import signal
import sys
from pathlib import Path
from typing import Dict, Optional

import click
from rich.console import Console
from rich.table import Table

from feedharvest.config.settings import FeedHarvestSettings, get_settings
from feedharvest.processing.crawler import CrawlerService
from feedharvest.scheduler.crawl_scheduler import CrawlScheduler, TenantRunReport
from feedharvest.utils.exceptions import FeedHarvestError
from feedharvest.utils.logging import configure_application_logging

console = Console()


def _load(ctx) -> FeedHarvestSettings:
    """Load settings and configure logging, exiting on configuration errors."""
    try:
        settings = get_settings()
    except FeedHarvestError as e:
        console.print(f"[bold red]❌ Configuration error: {e.user_message}[/bold red]")
        sys.exit(1)

    debug = ctx.obj.get("debug") if ctx.obj else False
    configure_application_logging(
        log_level="DEBUG" if debug else settings.get_effective_log_level(),
        log_file=settings.logging.file_path,
        enable_console=settings.logging.console_logging,
        structured_logging=settings.logging.structured_logging,
        max_file_size=settings.logging.max_file_size_mb * 1024 * 1024,
        backup_count=settings.logging.backup_count,
    )
    return settings


@click.group(invoke_without_command=True)
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, debug):
    """FeedHarvest - RSS/Atom inspiration feed crawler."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
def check_config():
    """Validate environment configuration."""
    console.print("[bold blue]🔧 Checking FeedHarvest Configuration[/bold blue]")

    try:
        settings = get_settings()
    except FeedHarvestError as e:
        console.print(f"[bold red]❌ {e.user_message}[/bold red]")
        sys.exit(1)

    table = Table(title="Configuration Status")
    table.add_column("Component", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Details")

    checks = [
        ("Tenants", _check_tenant_config),
        ("Crawler", _check_crawler_config),
        ("Content Analysis", _check_ai_config),
        ("Logging", _check_logging_config),
    ]

    all_passed = True
    for name, check_func in checks:
        status, details = check_func(settings)
        table.add_row(name, "✅ Valid" if status else "❌ Invalid", details)
        all_passed = all_passed and status

    console.print(table)

    if all_passed:
        console.print("[bold green]✅ All configuration checks passed![/bold green]")
    else:
        console.print("[bold red]❌ Configuration validation failed[/bold red]")
        sys.exit(1)


@cli.command()
@click.option("--once", is_flag=True, help="Run a single crawl pass and exit")
@click.option("--feed", "feed_id", help="Crawl a specific feed ID only")
@click.option("--tenant", "tenant_id", help="Run only for a specific tenant ID")
@click.option("--interval", type=click.IntRange(min=10), help="Crawl interval in seconds")
@click.pass_context
def crawl(ctx, once, feed_id, tenant_id, interval):
    """Crawl due feeds, once or on a schedule."""
    settings = _load(ctx)

    if once:
        reports = asyncio.run(_run_once(settings, feed_id, tenant_id))
        _print_reports(reports)
        if not all(report.successful for report in reports.values()):
            sys.exit(1)
        console.print("[bold green]✅ Crawl completed successfully[/bold green]")
    else:
        asyncio.run(_run_forever(settings, feed_id, tenant_id, interval))


@cli.command()
@click.option("--interval", type=click.IntRange(min=10), help="Crawl interval in seconds")
@click.option("--tenant", "tenant_id", help="Run only for a specific tenant ID")
@click.pass_context
def run(ctx, interval, tenant_id):
    """Run the scheduler until interrupted."""
    settings = _load(ctx)
    asyncio.run(_run_forever(settings, None, tenant_id, interval))


@cli.command()
@click.option("--tenant", "tenant_id", help="Poll only a specific tenant's queue")
@click.pass_context
def process_queue(ctx, tenant_id):
    """Handle at most one queued crawl request per tenant."""
    settings = _load(ctx)

    async def poll():
        async with CrawlScheduler.from_settings(settings) as scheduler:
            return await scheduler.process_queues(tenant_id)

    try:
        outcomes = asyncio.run(poll())
    except FeedHarvestError as e:
        console.print(f"[bold red]❌ {e.user_message}[/bold red]")
        sys.exit(1)

    table = Table(title="Queue Requests")
    table.add_column("Tenant", style="cyan")
    table.add_column("Request")
    table.add_column("Type")
    table.add_column("Feeds", justify="right")
    table.add_column("Posts Added", justify="right")
    table.add_column("Acknowledged")

    for tenant, outcome in outcomes.items():
        if outcome is None:
            table.add_row(tenant, "[red]poll failed[/red]", "", "", "", "")
        elif not outcome.handled:
            table.add_row(tenant, "[dim]none[/dim]", "", "", "", "")
        else:
            table.add_row(
                tenant,
                outcome.request.id,
                outcome.request.type or "?",
                str(len(outcome.results)),
                str(outcome.posts_added),
                "✅" if outcome.acknowledged else "❌",
            )

    console.print(table)


@cli.command()
@click.option("--tenant", "tenant_id", help="Show feeds of a specific tenant only")
@click.pass_context
def show_feeds(ctx, tenant_id):
    """List feed definitions from the CMS with their due status."""
    settings = _load(ctx)

    async def fetch():
        tenants = [settings.get_tenant(tenant_id)] if tenant_id else settings.get_tenants()
        listing = {}
        for tenant in tenants:
            async with CrawlerService.from_settings(settings, tenant) as service:
                listing[tenant.id] = await service.cache.get_feeds()
        return listing

    try:
        listing = asyncio.run(fetch())
    except FeedHarvestError as e:
        console.print(f"[bold red]❌ Error showing feeds: {e}[/bold red]")
        sys.exit(1)

    for tenant, feeds in listing.items():
        feeds_table = Table(title=f"Feeds for tenant {tenant}")
        feeds_table.add_column("Status", style="green")
        feeds_table.add_column("ID", style="cyan")
        feeds_table.add_column("Name")
        feeds_table.add_column("URL", style="blue")
        feeds_table.add_column("Interval", justify="right")
        feeds_table.add_column("Last Crawled")

        for feed in feeds:
            status = "⚪" if not feed.is_active else "🟢" if feed.is_due() else "🟡"
            url = feed.url if len(feed.url) <= 40 else feed.url[:37] + "..."
            feeds_table.add_row(
                status,
                feed.id,
                feed.name,
                url,
                f"{feed.crawl_interval_minutes}m",
                feed.last_crawled_at or "Never",
            )

        console.print(feeds_table)


async def _run_once(
    settings: FeedHarvestSettings, feed_id: Optional[str], tenant_id: Optional[str]
) -> Dict[str, TenantRunReport]:
    try:
        async with CrawlScheduler.from_settings(settings) as scheduler:
            return await scheduler.run_once(feed_id=feed_id, tenant_id=tenant_id)
    except FeedHarvestError as e:
        console.print(f"[bold red]❌ {e.user_message}[/bold red]")
        sys.exit(1)


async def _run_forever(
    settings: FeedHarvestSettings,
    feed_id: Optional[str],
    tenant_id: Optional[str],
    interval: Optional[int],
) -> None:
    try:
        scheduler = CrawlScheduler.from_settings(settings, interval_seconds=interval)
    except FeedHarvestError as e:
        console.print(f"[bold red]❌ {e.user_message}[/bold red]")
        sys.exit(1)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, scheduler.stop)
        except NotImplementedError:
            pass

    console.print(
        f"[bold blue]🚀 Crawling every {scheduler.crawl_interval_seconds}s "
        f"for {len(scheduler.select(tenant_id))} tenant(s)[/bold blue]"
    )
    async with scheduler:
        await scheduler.run_forever(feed_id=feed_id, tenant_id=tenant_id)


def _print_reports(reports: Dict[str, TenantRunReport]) -> None:
    table = Table(title="Crawl Results")
    table.add_column("Tenant", style="cyan")
    table.add_column("Feed")
    table.add_column("Status")
    table.add_column("Found", justify="right")
    table.add_column("Added", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Error", style="red")

    for tenant, report in reports.items():
        if report.error:
            table.add_row(tenant, "-", "❌", "", "", "", report.error)
        for result in report.results:
            table.add_row(
                tenant,
                result.feed_id,
                "✅" if result.success else "❌",
                str(result.posts_found),
                str(result.posts_added),
                str(result.posts_skipped),
                result.error or "",
            )

    console.print(table)

    total_feeds = sum(len(report.results) for report in reports.values())
    total_posts = sum(report.posts_added for report in reports.values())
    console.print(f"Grand total: {total_feeds} feeds processed, {total_posts} posts added")


# Helper functions for configuration checks
def _check_tenant_config(settings) -> tuple:
    tenants = settings.get_tenants()
    if not tenants:
        return False, "No enabled tenants"
    return True, ", ".join(f"{t.display_name} ({t.cms_base_url})" for t in tenants)


def _check_crawler_config(settings) -> tuple:
    crawler = settings.crawler
    details = (
        f"Concurrency: {crawler.max_concurrent_crawls}, "
        f"Cache TTL: {crawler.feed_cache_ttl_minutes}m, "
        f"Timeout: {crawler.request_timeout}s"
    )
    if crawler.proxy_url:
        details += ", proxy configured"
    return True, details


def _check_ai_config(settings) -> tuple:
    ai = settings.ai
    if not ai.enable_content_analysis:
        return True, "Disabled (posts default to primary reporting)"
    if not ai.openai_api_key:
        return True, "No API key (posts default to primary reporting)"
    return True, f"Model: {ai.model}"


def _check_logging_config(settings) -> tuple:
    try:
        if settings.logging.file_path:
            Path(settings.logging.file_path).parent.mkdir(parents=True, exist_ok=True)
        mode = "production" if settings.is_production_mode() else "development"
        return True, f"Level: {settings.get_effective_log_level()}, Console: {settings.logging.console_logging}, Mode: {mode}"
    except OSError as e:
        return False, str(e)


if __name__ == "__main__":
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]👋 FeedHarvest interrupted by user[/yellow]")
        sys.exit(130)

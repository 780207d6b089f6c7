"""
FeedHarvest - Inspiration Feed Crawler
======================================

Ingests RSS and Atom feeds configured in a CMS, extracts and sanitizes the
linked articles and posts them back, deduplicated and attributed.

Main Components:
- Ingestion: feed parsing, selector engine, HTML sanitizing, content extraction
- Processing: feed cache, crawl orchestrator, priority queue processor
- Clients: CMS crawler API
- AI: primary-reporting classifier
- Scheduler: one-shot and periodic crawling across tenants
"""

__version__ = "1.0.0"
__author__ = "FeedHarvest Development Team"
__description__ = "RSS/Atom inspiration feed crawler"

# Core imports for easy access
from .config.settings import get_settings
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import FeedHarvestError

__all__ = [
    "get_settings",
    "configure_application_logging",
    "get_logger_for_component",
    "FeedHarvestError",
]

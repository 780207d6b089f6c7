"""
FeedHarvest Processing Module
=============================

Crawl orchestration components: the feed definition cache, the per-feed
crawl routine, classification policy and the CMS request queue.
"""

"""
FeedHarvest AI Module
=====================

OpenAI-backed classification of articles as primary or referenced reporting.
"""

"""
FeedHarvest Ingestion Module
============================

Feed parsing and article content handling.

This module handles:
- RSS 2.0 and Atom parsing with date normalization
- Article page extraction with per-platform selectors
- HTML sanitization of extracted content
"""

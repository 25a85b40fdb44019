"""
Safha Ingest Ingestion Module
=============================

RSS/Atom fetching and entry normalization.
"""

from .feed_reader import FeedReader

__all__ = ["FeedReader"]

"""
Safha Ingest Extraction Module
==============================

Article page fetching, full-text extraction and media resolution.
"""

from .content_extractor import ContentExtractor, StrategyResult
from .webpage import WebpageFetcher

__all__ = ["ContentExtractor", "StrategyResult", "WebpageFetcher"]

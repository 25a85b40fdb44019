"""
Safha Ingest Storage Layer
==========================

Repositories for RSS sources and raw articles.
"""

from .article_repository import ArticleRepository
from .source_repository import SourceRepository

__all__ = [
    "ArticleRepository",
    "SourceRepository",
]

"""
Safha Ingest - News Ingestion and Extraction Pipeline
=====================================================

Ingests articles from configured RSS/Atom sources, extracts clean full
text, lead images and videos from article pages, and stores deduplicated
rows for the downstream summarization stage.

Main Components:
- Feed Reader: RSS/Atom fetching and normalization with media hints
- Extraction: JSON-LD, readability and DOM strategies plus media resolution
- Storage: SQLite repositories with a URL/hash deduplication gate
- Processing: batched orchestrator, source health tracking and backfills
- API: FastAPI trigger endpoints with allowlisted CORS
"""

__version__ = "1.0.0"
__author__ = "Safha Development Team"
__description__ = "RSS ingestion and article extraction pipeline"

from .config.settings import get_settings
from .database.connection import get_db_manager
from .database.schema import DatabaseSchema
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import SafhaError

__all__ = [
    "get_settings",
    "get_db_manager",
    "DatabaseSchema",
    "configure_application_logging",
    "get_logger_for_component",
    "SafhaError",
]

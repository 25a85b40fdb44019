"""
Safha Ingest Processing Module
==============================

Ingestion orchestration and backfill jobs.
"""

from .pipeline import IngestionPipeline
from .backfill import BackfillService

__all__ = [
    "IngestionPipeline",
    "BackfillService",
]

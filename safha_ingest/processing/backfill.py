"""
Backfill Jobs
=============

Re-visits stored articles whose page extraction failed at ingestion time
to fill in missing bodies or images, plus on-demand extraction of a
single URL.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..config.settings import SafhaSettings, get_settings
from ..database.connection import DatabaseConnection
from ..database.models import WebpageExtraction
from ..extraction.webpage import WebpageFetcher
from ..processing.pipeline import clamp_batch_limit
from ..storage.article_repository import ArticleRepository
from ..utils.http import http_session
from ..utils.logging import get_logger_for_component
from ..utils.validators import URLValidator


@dataclass
class BackfillReport:
    """Counters and per-article notes for one backfill run."""
    processed: int = 0
    updated: int = 0
    failed: int = 0
    details: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "updated": self.updated,
            "failed": self.failed,
            "details": self.details,
        }


class BackfillService:
    """Fill missing content and media for already-ingested articles."""

    def __init__(
        self,
        db_connection: DatabaseConnection,
        settings: Optional[SafhaSettings] = None,
        webpage_fetcher: Optional[WebpageFetcher] = None,
    ):
        self.settings = settings or get_settings()
        self.articles = ArticleRepository(db_connection)
        self.webpage_fetcher = webpage_fetcher or WebpageFetcher(
            self.settings.fetch, self.settings.extraction
        )
        self.logger = get_logger_for_component("backfill")

    def _limit(self, limit: Any) -> int:
        backfill = self.settings.backfill
        return clamp_batch_limit(limit, backfill.default_limit, backfill.max_limit)

    async def _pause(self, index: int) -> None:
        if index > 0 and self.settings.backfill.delay_seconds:
            await asyncio.sleep(self.settings.backfill.delay_seconds)

    async def backfill_content(self, limit: Any = None) -> BackfillReport:
        """Extract bodies for pending articles that have none."""
        report = BackfillReport()
        candidates = self.articles.find_missing_content(self._limit(limit))
        self.logger.info(f"Backfilling content for {len(candidates)} articles")

        async with http_session(self.settings.fetch) as session:
            for index, article in enumerate(candidates):
                await self._pause(index)
                report.processed += 1

                page = await self.webpage_fetcher.fetch_webpage_data(article.original_url, session)
                if page.full_content:
                    self.articles.update_full_content(
                        article.id, page.full_content, page.content_quality, page.extraction_method
                    )
                    self.articles.update_media(
                        article.id, page.image_url, page.video_url, page.video_type
                    )
                    report.updated += 1
                    report.details.append({
                        "id": article.id,
                        "method": page.extraction_method,
                        "quality": page.content_quality,
                        "length": len(page.full_content),
                    })
                else:
                    report.failed += 1
                    report.details.append({"id": article.id, "error": "No content extracted"})

        self.logger.info(
            f"Content backfill done: {report.updated} updated, {report.failed} failed"
        )
        return report

    async def backfill_images(self, limit: Any = None) -> BackfillReport:
        """Find lead images for articles stored without one."""
        report = BackfillReport()
        candidates = self.articles.find_missing_images(self._limit(limit))
        self.logger.info(f"Backfilling images for {len(candidates)} articles")

        async with http_session(self.settings.fetch) as session:
            for index, article in enumerate(candidates):
                await self._pause(index)
                report.processed += 1

                html = await self.webpage_fetcher.fetch_html(article.original_url, session)
                page = (
                    await asyncio.to_thread(
                        self.webpage_fetcher.extract_media, html, article.original_url
                    )
                    if html
                    else WebpageExtraction.failed()
                )

                if page.image_url:
                    self.articles.update_media(
                        article.id, page.image_url, page.video_url, page.video_type
                    )
                    report.updated += 1
                    report.details.append({"id": article.id, "image_url": page.image_url})
                else:
                    report.failed += 1
                    report.details.append({"id": article.id, "error": "No image found"})

        self.logger.info(
            f"Image backfill done: {report.updated} updated, {report.failed} failed"
        )
        return report

    async def fetch_content(self, url: str) -> WebpageExtraction:
        """On-demand extraction for one URL.

        Raises:
            ValidationError: If the URL is not an absolute http(s) URL
        """
        validated = URLValidator.validate_url(url)
        async with http_session(self.settings.fetch) as session:
            return await self.webpage_fetcher.fetch_webpage_data(validated, session)

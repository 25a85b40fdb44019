"""
Ingestion Pipeline Orchestrator
===============================

Selects due sources, fetches them in small concurrent groups, extracts
each new entry's page and persists deduplicated articles. Source health
is updated after every attempt; one failing source never aborts a run.
"""

import asyncio
from typing import Any, List, Optional

import aiohttp

from ..config.settings import SafhaSettings, get_settings
from ..database.connection import DatabaseConnection
from ..database.models import (
    FeedEntry,
    PipelineRunResult,
    PipelineSummary,
    RawArticle,
    RssSource,
    SourceResult,
    WebpageExtraction,
)
from ..extraction.webpage import WebpageFetcher
from ..ingestion.feed_reader import FeedReader
from ..storage.article_repository import ArticleRepository
from ..storage.source_repository import SourceRepository
from ..utils.exceptions import SafhaError
from ..utils.http import http_session
from ..utils.logging import PerformanceLogger, get_logger_for_component
from ..utils.text import content_hash, strip_html

NO_SOURCES_MESSAGE = "No sources need fetching"


def clamp_batch_limit(requested: Any, default: int = 10, maximum: int = 20) -> int:
    """Coerce a caller-supplied limit into [1, maximum], falling back to default."""
    if requested is None or isinstance(requested, bool):
        return default
    try:
        value = int(requested)
    except (TypeError, ValueError):
        return default
    if value < 1:
        return default
    return min(value, maximum)


class IngestionPipeline:
    """Runs one ingestion pass over due RSS sources."""

    def __init__(
        self,
        db_connection: DatabaseConnection,
        settings: Optional[SafhaSettings] = None,
        feed_reader: Optional[FeedReader] = None,
        webpage_fetcher: Optional[WebpageFetcher] = None,
    ):
        """Initialize pipeline.

        Args:
            db_connection: Database connection manager
            settings: Application settings (defaults to global settings)
            feed_reader: Feed reader override (tests)
            webpage_fetcher: Webpage fetcher override (tests)
        """
        self.db = db_connection
        self.settings = settings or get_settings()
        self.logger = get_logger_for_component("pipeline")

        self.sources = SourceRepository(db_connection)
        self.articles = ArticleRepository(db_connection)
        self.feed_reader = feed_reader or FeedReader(self.settings.fetch)
        self.webpage_fetcher = webpage_fetcher or WebpageFetcher(
            self.settings.fetch, self.settings.extraction
        )

    def select_sources(self, limit: Any = None) -> List[RssSource]:
        scheduling = self.settings.scheduling
        batch = clamp_batch_limit(limit, scheduling.default_batch_size, scheduling.max_batch_size)
        return self.sources.get_due_sources(
            limit=batch,
            stale_minutes=scheduling.stale_minutes,
            max_errors=scheduling.max_source_errors,
        )

    async def run(self, limit: Any = None) -> PipelineRunResult:
        """Fetch all due sources.

        Args:
            limit: Requested number of sources (default 10, capped at 20)

        Returns:
            PipelineRunResult with a summary and per-source results
        """
        loop = asyncio.get_running_loop()
        started = loop.time()

        sources = self.select_sources(limit)
        if not sources:
            self.logger.info(NO_SOURCES_MESSAGE)
            return PipelineRunResult(message=NO_SOURCES_MESSAGE)

        self.logger.info(f"Fetching {len(sources)} due sources")
        group_size = self.settings.scheduling.concurrency_group_size
        results: List[SourceResult] = []

        async with http_session(self.settings.fetch) as session:
            for start in range(0, len(sources), group_size):
                group = sources[start:start + group_size]
                group_results = await asyncio.gather(
                    *(self.process_source(source, session) for source in group)
                )
                results.extend(group_results)

        summary = PipelineSummary.from_results(results)
        duration = loop.time() - started

        self.logger.info(
            f"Ingestion run complete: {summary.sources_processed} sources, "
            f"{summary.total_articles_fetched} entries, {summary.total_new_articles} new, "
            f"{summary.errors} errors in {duration:.2f}s",
            extra={"summary": summary.to_dict()},
        )

        return PipelineRunResult(summary=summary, results=results, duration_seconds=duration)

    async def process_source(
        self, source: RssSource, session: aiohttp.ClientSession
    ) -> SourceResult:
        """Ingest one source and record its health; never raises."""
        result = SourceResult(source_id=source.id, source_name=source.name)
        logger = get_logger_for_component("pipeline", source_id=source.id, url=source.feed_url)

        try:
            with PerformanceLogger(logger, f"source {source.name}"):
                entries = await self.feed_reader.read_feed(source.feed_url, session)
                result.articles_fetched = len(entries)

                for entry in entries:
                    if await self.ingest_entry(source, entry, session):
                        result.new_articles += 1

            self.sources.mark_success(source.id)

        except Exception as e:
            # Any failure is confined to this source
            result.error = e.message if isinstance(e, SafhaError) else str(e) or type(e).__name__
            logger.warning(f"Source {source.name} failed: {result.error}")
            try:
                self.sources.mark_failure(source.id, result.error)
            except SafhaError as health_error:
                logger.error(f"Could not record failure for source {source.id}: {health_error}")

        return result

    async def ingest_entry(
        self, source: RssSource, entry: FeedEntry, session: aiohttp.ClientSession
    ) -> bool:
        """Extract and store one entry. Returns True if a new row was inserted."""
        entry_hash = content_hash(entry.title, entry.raw_content)

        # Skip the page fetch for entries we already have
        if self.articles.is_duplicate(entry.url, entry_hash):
            return False

        page = await self.webpage_fetcher.fetch_webpage_data(entry.url, session)
        article = self.build_article(source, entry, entry_hash, page)
        return self.articles.insert_if_new(article)

    @staticmethod
    def build_article(
        source: RssSource,
        entry: FeedEntry,
        entry_hash: str,
        page: WebpageExtraction,
    ) -> RawArticle:
        """Merge feed fields and page extraction into a pending article.

        Page media wins over feed hints; feed hints fill the gaps.
        """
        video_url, video_type = page.video_url, page.video_type
        if not video_url and entry.hinted_video:
            video_url, video_type = entry.hinted_video.url, entry.hinted_video.type

        return RawArticle(
            rss_source_id=source.id,
            guid=entry.guid,
            original_url=entry.url,
            original_title=entry.title,
            original_content=strip_html(entry.raw_content) or None,
            original_description=strip_html(entry.raw_description) or None,
            full_content=page.full_content,
            content_quality=page.content_quality,
            extraction_method=page.extraction_method,
            image_url=page.image_url or entry.hinted_image_url,
            video_url=video_url,
            video_type=video_type,
            author=entry.author or page.byline,
            published_at=entry.published_at,
            content_hash=entry_hash,
        )

"""
Ingestion Pipeline Integration Tests
====================================

Runs the orchestrator and backfill jobs end to end against a real SQLite
database with HTTP served by an in-memory fake session.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from safha_ingest.database.models import to_db_timestamp
from safha_ingest.processing.backfill import BackfillService
from safha_ingest.processing.pipeline import IngestionPipeline, NO_SOURCES_MESSAGE
from safha_ingest.utils.exceptions import ValidationError

FEED_URL = "https://news.example.com/rss.xml"
STORY_URL = "https://news.example.com/2024/transport-plan"
STORM_URL = "https://news.example.com/2024/storm"
MARKETS_URL = "https://news.example.com/2024/markets"

RSS_HEADERS = {"Content-Type": "application/rss+xml; charset=utf-8"}

EMBED_FEED = f"""<?xml version="1.0"?>
<rss version="2.0" xmlns:content="http://purl.org/rss/1.0/modules/content/">
<channel><title>Feed</title><link>https://example.com</link>
<item>
<title>Markets interview</title>
<link>{MARKETS_URL}</link>
<description><![CDATA[<p>Short <b>desc</b></p>]]></description>
<content:encoded><![CDATA[<p>Intro <b>bold</b></p><iframe src="https://www.youtube.com/embed/dQw4w9WgXcQ"></iframe><script>track()</script>]]></content:encoded>
</item>
</channel></rss>"""


def single_item_feed(title, link):
    return f"""<?xml version="1.0"?>
<rss version="2.0"><channel><title>Feed</title><link>https://example.com</link>
<item><title>{title}</title><link>{link}</link><description>{title} summary</description></item>
</channel></rss>"""


@pytest.fixture
def fake_http(fake_session_factory):
    """Replace the shared aiohttp session with a routable fake."""
    session = fake_session_factory()

    @asynccontextmanager
    async def _http_session(settings=None):
        yield session

    with patch("safha_ingest.processing.pipeline.http_session", _http_session), \
            patch("safha_ingest.processing.backfill.http_session", _http_session):
        yield session


@pytest.fixture
def pipeline(db_connection, test_settings):
    return IngestionPipeline(db_connection, settings=test_settings)


class TestPipelineRun:
    """Test a complete ingestion pass."""

    @pytest.mark.asyncio
    async def test_no_due_sources(self, pipeline, fake_http):
        result = await pipeline.run()

        assert result.message == NO_SOURCES_MESSAGE
        assert result.to_dict() == {"message": NO_SOURCES_MESSAGE, "results": []}
        assert fake_http.calls == []

    @pytest.mark.asyncio
    async def test_end_to_end(
        self, pipeline, make_source, article_repo, source_repo, fake_http,
        fake_response_factory, sample_rss, sample_article_html, article_paragraphs,
    ):
        source = make_source(feed_url=FEED_URL)
        fake_http.routes[FEED_URL] = fake_response_factory(body=sample_rss, headers=RSS_HEADERS)
        fake_http.routes[STORY_URL] = fake_response_factory(body=sample_article_html)

        result = await pipeline.run()

        assert result.summary.sources_processed == 1
        assert result.summary.total_articles_fetched == 3
        assert result.summary.total_new_articles == 3
        assert result.summary.errors == 0
        assert result.results[0].success

        story = article_repo.get_article_by_url(STORY_URL)
        assert story.status == "pending"
        assert story.guid == "news-1001"
        assert article_paragraphs[0] in story.full_content
        assert story.extraction_method in ("readability", "dom")
        assert story.content_quality > 0
        # Page media wins over the feed enclosure
        assert story.image_url == "https://news.example.com/images/council-vote.jpg"
        assert story.video_url == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
        assert story.author == "Jane Reporter"

        # Unreachable page still yields a pending row with the feed hint
        storm = article_repo.get_article_by_url(STORM_URL)
        assert storm.full_content is None
        assert storm.content_quality == 0.0
        assert storm.extraction_method == "failed"
        assert storm.image_url == "https://cdn.example.com/storm-thumb.jpg"

        refreshed = source_repo.get_source(source.id)
        assert refreshed.error_count == 0
        assert refreshed.last_fetched_at is not None

    @pytest.mark.asyncio
    async def test_second_pass_is_idempotent(
        self, pipeline, make_source, article_repo, fake_http, fake_response_factory, sample_rss,
    ):
        source = make_source(feed_url=FEED_URL)
        fake_http.routes[FEED_URL] = fake_response_factory(body=sample_rss, headers=RSS_HEADERS)

        first = await pipeline.process_source(source, fake_http)
        fake_http.calls.clear()
        second = await pipeline.process_source(source, fake_http)

        assert first.new_articles == 3
        assert second.articles_fetched == 3
        assert second.new_articles == 0
        # Known entries are skipped before any page request
        assert fake_http.calls == [FEED_URL]
        assert article_repo.count_for_source(source.id) == 3

    @pytest.mark.asyncio
    async def test_failing_source_does_not_abort_run(
        self, pipeline, make_source, source_repo, article_repo, fake_http,
        fake_response_factory,
    ):
        broken = make_source(name="broken", feed_url="https://down.example.com/rss")
        working = make_source(name="working", feed_url=FEED_URL)
        fake_http.routes[FEED_URL] = fake_response_factory(
            body=single_item_feed("Only story", MARKETS_URL), headers=RSS_HEADERS
        )

        result = await pipeline.run()

        by_name = {r.source_name: r for r in result.results}
        assert result.summary.errors == 1
        assert "404" in by_name["broken"].error
        assert by_name["working"].new_articles == 1

        failed = source_repo.get_source(broken.id)
        assert failed.error_count == 1
        assert "404" in failed.last_error
        assert source_repo.get_source(working.id).error_count == 0
        assert article_repo.count_for_source(working.id) == 1

    @pytest.mark.asyncio
    async def test_same_article_from_two_sources_stored_once(
        self, pipeline, make_source, article_repo, fake_http, fake_response_factory,
    ):
        feed = single_item_feed("Shared wire story", MARKETS_URL)
        for url in ("https://a.example.com/rss", "https://b.example.com/rss"):
            make_source(feed_url=url)
            fake_http.routes[url] = fake_response_factory(body=feed, headers=RSS_HEADERS)

        result = await pipeline.run()

        assert result.summary.total_articles_fetched == 2
        assert result.summary.total_new_articles == 1
        assert result.summary.errors == 0
        assert article_repo.count_by_status() == {"pending": 1}

    @pytest.mark.asyncio
    async def test_limit_and_ordering(
        self, pipeline, make_source, db_connection, fake_http, fake_response_factory,
    ):
        now = datetime.now(timezone.utc)
        sources = [make_source(name=f"s{i}") for i in range(4)]
        db_connection.execute_update(
            "UPDATE rss_sources SET last_fetched_at = ? WHERE id = ?",
            (to_db_timestamp(now - timedelta(hours=3)), sources[0].id),
        )

        result = await pipeline.run(limit=2)

        # Never-fetched sources come first
        assert [r.source_name for r in result.results] == ["s1", "s2"]

    @pytest.mark.asyncio
    async def test_recently_fetched_source_skipped(
        self, pipeline, make_source, source_repo, fake_http,
    ):
        source = make_source()
        source_repo.mark_success(source.id)

        result = await pipeline.run()

        assert result.message == NO_SOURCES_MESSAGE

    @pytest.mark.asyncio
    async def test_feed_text_stored_without_markup(
        self, pipeline, make_source, article_repo, fake_http, fake_response_factory,
    ):
        make_source(feed_url=FEED_URL)
        fake_http.routes[FEED_URL] = fake_response_factory(body=EMBED_FEED, headers=RSS_HEADERS)

        await pipeline.run()

        article = article_repo.get_article_by_url(MARKETS_URL)
        assert article.original_content == "Intro bold"
        assert article.original_description == "Short desc"
        # Page is unreachable, so the embed in the feed supplies the video
        assert article.video_url == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
        assert article.video_type == "youtube"


class TestConcurrencyGroups:
    """Test that sources are fetched in bounded, sequential groups."""

    @pytest.mark.asyncio
    async def test_groups_bounded_and_sequential(
        self, db_connection, test_settings, make_source, fake_http,
    ):
        reader = TrackingFeedReader()
        pipeline = IngestionPipeline(db_connection, settings=test_settings, feed_reader=reader)
        sources = [make_source(name=f"g{i}") for i in range(7)]

        result = await pipeline.run(limit=7)

        group_size = test_settings.scheduling.concurrency_group_size
        assert reader.peak == group_size
        assert sorted(r.source_id for r in result.results) == sorted(s.id for s in sources)
        assert all(r.success for r in result.results)
        # Each group starts only after the previous one has finished
        assert reader.finished_at_start == [0, 0, 0, 3, 3, 3, 6]


class TrackingFeedReader:
    """Feed reader double that records how many reads overlap."""

    def __init__(self):
        self.in_flight = 0
        self.peak = 0
        self.finished = 0
        self.finished_at_start = []

    async def read_feed(self, feed_url, session):
        self.finished_at_start.append(self.finished)
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        await asyncio.sleep(0.01)
        self.in_flight -= 1
        self.finished += 1
        return []


class TestBackfill:
    """Test content and image backfills."""

    @pytest.fixture
    def service(self, db_connection, test_settings):
        return BackfillService(db_connection, settings=test_settings)

    @pytest.mark.asyncio
    async def test_backfill_content(
        self, pipeline, service, make_source, article_repo, fake_http,
        fake_response_factory, sample_article_html,
    ):
        make_source(feed_url=FEED_URL)
        fake_http.routes[FEED_URL] = fake_response_factory(
            body=single_item_feed("Storm expected", STORM_URL), headers=RSS_HEADERS
        )
        await pipeline.run()
        assert article_repo.get_article_by_url(STORM_URL).full_content is None

        fake_http.routes[STORM_URL] = fake_response_factory(body=sample_article_html)
        report = await service.backfill_content(limit=5)

        assert report.processed == 1
        assert report.updated == 1
        stored = article_repo.get_article_by_url(STORM_URL)
        assert stored.full_content
        assert stored.extraction_method in ("readability", "dom")
        assert stored.image_url == "https://news.example.com/images/council-vote.jpg"

    @pytest.mark.asyncio
    async def test_backfill_content_still_unreachable(
        self, pipeline, service, make_source, fake_http, fake_response_factory,
    ):
        make_source(feed_url=FEED_URL)
        fake_http.routes[FEED_URL] = fake_response_factory(
            body=single_item_feed("Storm expected", STORM_URL), headers=RSS_HEADERS
        )
        await pipeline.run()

        report = await service.backfill_content()

        assert report.updated == 0
        assert report.failed == 1
        assert report.to_dict()["details"][0]["error"] == "No content extracted"

    @pytest.mark.asyncio
    async def test_backfill_images(
        self, pipeline, service, make_source, article_repo, fake_http,
        fake_response_factory, sample_article_html,
    ):
        make_source(feed_url=FEED_URL)
        fake_http.routes[FEED_URL] = fake_response_factory(
            body=single_item_feed("Markets", MARKETS_URL), headers=RSS_HEADERS
        )
        await pipeline.run()
        assert article_repo.get_article_by_url(MARKETS_URL).image_url is None

        fake_http.routes[MARKETS_URL] = fake_response_factory(body=sample_article_html)
        report = await service.backfill_images()

        assert report.updated == 1
        assert article_repo.get_article_by_url(MARKETS_URL).image_url == \
            "https://news.example.com/images/council-vote.jpg"

    @pytest.mark.asyncio
    async def test_fetch_content(self, service, fake_http, fake_response_factory, sample_article_html):
        fake_http.routes[STORY_URL] = fake_response_factory(body=sample_article_html)

        page = await service.fetch_content(STORY_URL)

        assert page.full_content
        assert page.video_type == "youtube"

    @pytest.mark.asyncio
    async def test_fetch_content_rejects_invalid_url(self, service, fake_http):
        with pytest.raises(ValidationError):
            await service.fetch_content("javascript:alert(1)")

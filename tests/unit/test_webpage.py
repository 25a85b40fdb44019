"""
Webpage Fetcher Tests
=====================

Tests for article page download and the never-raising extraction
contract.
"""

import asyncio
from unittest.mock import patch

import aiohttp
import pytest

from safha_ingest.config.settings import ExtractionSettings, FetchSettings
from safha_ingest.extraction.webpage import WebpageFetcher

PAGE_URL = "https://news.example.com/2024/transport-plan"


@pytest.fixture
def fetcher():
    return WebpageFetcher(FetchSettings(), ExtractionSettings())


class TestFetchWebpageData:
    """Test the full fetch and extract flow."""

    @pytest.mark.asyncio
    async def test_extracts_media_and_content(
        self, fetcher, sample_article_html, fake_session_factory, fake_response_factory
    ):
        session = fake_session_factory({PAGE_URL: fake_response_factory(body=sample_article_html)})

        page = await fetcher.fetch_webpage_data(PAGE_URL, session)

        assert page.image_url == "https://news.example.com/images/council-vote.jpg"
        assert page.video_url == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
        assert page.video_type == "youtube"
        assert page.full_content
        assert page.extraction_method in ("readability", "dom")
        assert 0.0 < page.content_quality <= 1.0

    @pytest.mark.asyncio
    async def test_http_error_returns_failed(self, fetcher, fake_session_factory):
        page = await fetcher.fetch_webpage_data(PAGE_URL, fake_session_factory())

        assert page.full_content is None
        assert page.image_url is None
        assert page.extraction_method == "failed"
        assert page.content_quality == 0.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        asyncio.TimeoutError(),
        aiohttp.ClientConnectionError("connection reset"),
    ])
    async def test_transport_errors_return_failed(
        self, fetcher, error, fake_session_factory, fake_response_factory
    ):
        session = fake_session_factory({PAGE_URL: fake_response_factory(raise_on_enter=error)})

        page = await fetcher.fetch_webpage_data(PAGE_URL, session)

        assert page.extraction_method == "failed"

    @pytest.mark.asyncio
    async def test_non_html_response_skipped(self, fetcher, fake_session_factory, fake_response_factory):
        session = fake_session_factory({
            PAGE_URL: fake_response_factory(body=b"%PDF-1.4", headers={"Content-Type": "application/pdf"}),
        })

        assert await fetcher.fetch_html(PAGE_URL, session) is None

    @pytest.mark.asyncio
    async def test_extraction_crash_returns_failed(
        self, fetcher, sample_article_html, fake_session_factory, fake_response_factory
    ):
        session = fake_session_factory({PAGE_URL: fake_response_factory(body=sample_article_html)})

        with patch.object(fetcher, "extract_from_html", side_effect=RuntimeError("boom")):
            page = await fetcher.fetch_webpage_data(PAGE_URL, session)

        assert page.extraction_method == "failed"


class TestHeaders:

    def test_browser_like_headers(self, fetcher):
        headers = fetcher.build_headers(PAGE_URL)

        assert "Mozilla/5.0" in headers["User-Agent"]
        assert headers["Referer"] == PAGE_URL
        assert "ar" in headers["Accept-Language"]


class TestExtractMedia:

    def test_media_only(self, fetcher, sample_article_html):
        page = fetcher.extract_media(sample_article_html, PAGE_URL)

        assert page.image_url == "https://news.example.com/images/council-vote.jpg"
        assert page.video_type == "youtube"
        assert page.full_content is None

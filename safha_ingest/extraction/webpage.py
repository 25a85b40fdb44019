"""
Webpage Fetcher
===============

Downloads an article page with browser-like headers and runs the media
resolver and content extractor over it. ``fetch_webpage_data`` never
raises: an unreachable page or unusable markup yields a failed
``WebpageExtraction`` and the pipeline keeps going.
"""

import asyncio
from typing import Optional

import aiohttp
from bs4 import BeautifulSoup

from ..config.settings import FetchSettings, ExtractionSettings, get_settings
from ..database.models import WebpageExtraction
from ..utils.logging import get_logger_for_component
from .content_extractor import ContentExtractor
from .media_resolver import extract_image, extract_video

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")


class WebpageFetcher:
    """Fetch article pages and turn them into WebpageExtraction values."""

    def __init__(
        self,
        fetch_settings: Optional[FetchSettings] = None,
        extraction_settings: Optional[ExtractionSettings] = None,
    ):
        if fetch_settings is None or extraction_settings is None:
            settings = get_settings()
            fetch_settings = fetch_settings or settings.fetch
            extraction_settings = extraction_settings or settings.extraction

        self.settings = fetch_settings
        self.extractor = ContentExtractor(extraction_settings)
        self.logger = get_logger_for_component("webpage_fetcher")

    def build_headers(self, url: str) -> dict:
        """Browser-like headers; Referer is the page itself to pass naive hot-link checks."""
        return {
            "User-Agent": self.settings.page_user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
            "Accept-Language": self.settings.accept_language,
            "Referer": url,
            "Cache-Control": "no-cache",
        }

    async def fetch_html(self, url: str, session: aiohttp.ClientSession) -> Optional[str]:
        """Download a page, returning None on any HTTP or transport failure."""
        timeout = aiohttp.ClientTimeout(total=self.settings.page_timeout)

        try:
            async with session.get(url, headers=self.build_headers(url), timeout=timeout) as response:
                if response.status < 200 or response.status >= 300:
                    self.logger.warning(f"Page fetch failed for {url}: HTTP {response.status}")
                    return None

                content_type = response.headers.get("Content-Type", "").lower()
                if content_type and not any(t in content_type for t in HTML_CONTENT_TYPES):
                    self.logger.info(f"Skipping non-HTML page {url} ({content_type})")
                    return None

                return await response.text(errors="replace")

        except asyncio.TimeoutError:
            self.logger.warning(f"Page fetch timed out after {self.settings.page_timeout}s: {url}")
        except aiohttp.ClientError as e:
            self.logger.warning(f"Page fetch error for {url}: {e}")
        except UnicodeError as e:
            self.logger.warning(f"Could not decode page {url}: {e}")

        return None

    def extract_media(self, html: str, url: str) -> WebpageExtraction:
        """Resolve only image and video; used when the body is already known."""
        soup = BeautifulSoup(html, "lxml")
        video = extract_video(soup, url)
        return WebpageExtraction(
            image_url=extract_image(soup, url),
            video_url=video.url if video else None,
            video_type=video.type if video else None,
        )

    def extract_from_html(self, html: str, url: str) -> WebpageExtraction:
        """Run media resolution and content extraction on downloaded HTML."""
        soup = BeautifulSoup(html, "lxml")
        image_url = extract_image(soup, url)
        video = extract_video(soup, url)

        result = self.extractor.extract(html, url)

        return WebpageExtraction(
            image_url=image_url,
            video_url=video.url if video else None,
            video_type=video.type if video else None,
            full_content=result.content if result.found else None,
            content_quality=round(result.quality, 2) if result.found else 0.0,
            extraction_method=result.method,
            excerpt=result.excerpt,
            byline=result.byline,
            site_name=result.site_name,
        )

    async def fetch_webpage_data(
        self, url: str, session: aiohttp.ClientSession
    ) -> WebpageExtraction:
        """Fetch and extract a page; failures come back as a failed extraction."""
        html = await self.fetch_html(url, session)
        if html is None:
            return WebpageExtraction.failed()

        try:
            # Parsing is CPU-bound; keep the event loop free for other sources
            return await asyncio.to_thread(self.extract_from_html, html, url)
        except Exception as e:
            self.logger.warning(f"Extraction crashed for {url}: {e}", exc_info=True)
            return WebpageExtraction.failed()

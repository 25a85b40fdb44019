"""
Feed Reader
===========

Fetches RSS 2.0 / Atom feeds and normalizes their items into
``FeedEntry`` values, including image and video hints read from
enclosures, Media RSS, iTunes tags and inline HTML.
"""

import asyncio
import calendar
from datetime import datetime, timezone
from typing import Any, List, Optional

import aiohttp
import feedparser
from bs4 import BeautifulSoup

from ..config.settings import FetchSettings, get_settings
from ..database.models import FeedEntry, VideoInfo, VideoType
from ..extraction.media_resolver import (
    find_embedded_video,
    normalize_video_url,
    resolve_image_url,
)
from ..utils.exceptions import ErrorCode, FeedFetchError, FeedParseError
from ..utils.logging import get_logger_for_component

FEED_ACCEPT = "application/rss+xml, application/atom+xml, application/xml, text/xml, */*"


def _get(obj: Any, key: str, default=None):
    """Read a field from a feedparser dict or a plain dict."""
    if obj is None:
        return default
    try:
        value = obj.get(key, default)
    except AttributeError:
        value = getattr(obj, key, default)
    return default if value is None else value


def _as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _first_img_src(html: Optional[str]) -> Optional[str]:
    if not html or "<img" not in html.lower():
        return None
    img = BeautifulSoup(html, "html.parser").find("img", src=True)
    return img["src"] if img else None


def _entry_content(entry) -> Optional[str]:
    for item in _as_list(_get(entry, "content")):
        value = _get(item, "value")
        if value and value.strip():
            return value
    return None


def _entry_description(entry) -> Optional[str]:
    value = _get(entry, "summary") or _get(entry, "description")
    return value if value and value.strip() else None


def _entry_link(entry) -> Optional[str]:
    link = _get(entry, "link")
    if link:
        return link.strip()
    for item in _as_list(_get(entry, "links")):
        href = _get(item, "href")
        if href and _get(item, "rel", "alternate") == "alternate":
            return href.strip()
    return None


def _entry_author(entry) -> Optional[str]:
    author = _get(entry, "author")
    if not author:
        author = _get(_get(entry, "author_detail"), "name")
    if not author:
        # feedparser maps dc:creator onto author; some versions keep it apart
        author = _get(entry, "dc_creator")
    return author.strip() if isinstance(author, str) and author.strip() else None


def _entry_published(entry) -> Optional[datetime]:
    for key in ("published_parsed", "updated_parsed", "created_parsed"):
        parsed = _get(entry, key)
        if parsed:
            try:
                return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc)
            except (TypeError, ValueError, OverflowError):
                continue
    return None


def extract_image_hint(entry, base_url: str) -> Optional[str]:
    """Image hint from feed-native fields, in priority order.

    Enclosure image, media:content image, media:thumbnail, inline <img>
    in content, inline <img> in description, then the iTunes image.
    """
    candidates = []

    for enclosure in _as_list(_get(entry, "enclosures")):
        if str(_get(enclosure, "type", "")).startswith("image/"):
            candidates.append(_get(enclosure, "href") or _get(enclosure, "url"))

    for media in _as_list(_get(entry, "media_content")):
        medium = _get(media, "medium", "")
        media_type = str(_get(media, "type", ""))
        if medium == "image" or media_type.startswith("image/") or (
            not medium and not media_type
        ):
            candidates.append(_get(media, "url"))

    for thumbnail in _as_list(_get(entry, "media_thumbnail")):
        candidates.append(_get(thumbnail, "url"))

    candidates.append(_first_img_src(_entry_content(entry)))
    candidates.append(_first_img_src(_entry_description(entry)))

    itunes_image = _get(entry, "image")
    candidates.append(_get(itunes_image, "href") if isinstance(itunes_image, dict) else itunes_image)

    for candidate in candidates:
        if not isinstance(candidate, str):
            continue
        resolved = resolve_image_url(candidate, base_url)
        if resolved:
            return resolved
    return None


def extract_video_hint(entry, base_url: str) -> Optional[VideoInfo]:
    """Video hint from enclosures, Media RSS or embedded player URLs."""
    for enclosure in _as_list(_get(entry, "enclosures")):
        if str(_get(enclosure, "type", "")).startswith("video/"):
            url = resolve_image_url(_get(enclosure, "href") or _get(enclosure, "url"), base_url)
            if url:
                return VideoInfo(url=url, type=VideoType.MP4.value)

    # feedparser flattens media:group children into media_content
    for media in _as_list(_get(entry, "media_content")):
        if _get(media, "medium") == "video" or str(_get(media, "type", "")).startswith("video/"):
            url = resolve_image_url(_get(media, "url"), base_url)
            if url:
                return normalize_video_url(url) or VideoInfo(url=url, type=VideoType.MP4.value)

    for html in (_entry_content(entry), _entry_description(entry)):
        video = find_embedded_video(html)
        if video:
            return video

    return None


class FeedReader:
    """Fetch RSS/Atom feeds and parse them into FeedEntry values."""

    def __init__(self, settings: Optional[FetchSettings] = None):
        self.settings = settings or get_settings().fetch
        self.logger = get_logger_for_component("feed_reader")

    def build_headers(self) -> dict:
        return {
            "User-Agent": self.settings.feed_user_agent,
            "Accept": FEED_ACCEPT,
        }

    async def fetch_feed(self, feed_url: str, session: aiohttp.ClientSession) -> tuple:
        """Download a feed document.

        Returns:
            (body bytes, response headers)

        Raises:
            FeedFetchError: On non-2xx status, timeout or transport error
        """
        timeout = aiohttp.ClientTimeout(total=self.settings.feed_timeout)

        try:
            async with session.get(feed_url, headers=self.build_headers(), timeout=timeout) as response:
                if response.status < 200 or response.status >= 300:
                    raise FeedFetchError(
                        f"HTTP {response.status}: {response.reason}",
                        feed_url=feed_url,
                        error_code=ErrorCode.FEED_HTTP_ERROR,
                    )
                body = await response.read()
                return body, {k.lower(): v for k, v in response.headers.items()}

        except asyncio.TimeoutError as e:
            raise FeedFetchError(
                f"Request timeout after {self.settings.feed_timeout}s",
                feed_url=feed_url,
                error_code=ErrorCode.FEED_FETCH_TIMEOUT,
            ) from e
        except aiohttp.ClientError as e:
            raise FeedFetchError(
                f"Network error: {e}",
                feed_url=feed_url,
                error_code=ErrorCode.FEED_NETWORK_ERROR,
            ) from e

    async def read_feed(self, feed_url: str, session: aiohttp.ClientSession) -> List[FeedEntry]:
        """Fetch and parse a feed.

        Raises:
            FeedFetchError: If the feed cannot be downloaded
            FeedParseError: If the document yields no entries
        """
        body, headers = await self.fetch_feed(feed_url, session)
        parsed = await asyncio.to_thread(self.parse_document, body, headers)

        if parsed.get("bozo") and parsed.get("entries"):
            self.logger.info(
                f"Feed has parse warnings but contains entries: {feed_url} "
                f"({parsed.get('bozo_exception')})"
            )

        entries = self.parse_entries(parsed, feed_url)
        if not entries:
            reason = parsed.get("bozo_exception") if parsed.get("bozo") else "no entries"
            raise FeedParseError(f"No entries found in feed ({reason})", feed_url=feed_url)

        self.logger.debug(f"Parsed {len(entries)} entries from {feed_url}")
        return entries

    @staticmethod
    def parse_document(body: bytes, headers: Optional[dict] = None):
        """Parse a feed document with entry HTML left unsanitized.

        Sanitizing would drop <iframe> player embeds before the video
        hint scan sees them. Stored text goes through strip_html.
        """
        return feedparser.parse(body, response_headers=headers or {}, sanitize_html=False)

    def parse_entries(self, parsed, feed_url: str) -> List[FeedEntry]:
        """Normalize feedparser entries, skipping ones without url or title."""
        entries = []

        for entry in _get(parsed, "entries", []) or []:
            link = _entry_link(entry)
            title = (_get(entry, "title") or "").strip()
            guid = (_get(entry, "id") or link or title or "").strip()
            url = link or guid

            if not url or not title:
                continue

            entries.append(
                FeedEntry(
                    guid=guid,
                    url=url,
                    title=title,
                    raw_content=_entry_content(entry) or _entry_description(entry),
                    raw_description=_entry_description(entry),
                    author=_entry_author(entry),
                    published_at=_entry_published(entry),
                    hinted_image_url=extract_image_hint(entry, url),
                    hinted_video=extract_video_hint(entry, url),
                )
            )

        return entries

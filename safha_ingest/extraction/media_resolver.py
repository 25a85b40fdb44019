"""
Image and Video Resolver
========================

Finds the lead image and embedded video of an article page and
canonicalizes their URLs. Every function here returns ``None`` instead of
raising, so a page with broken metadata simply yields no media.
"""

import re
from typing import Iterable, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from ..database.models import VideoInfo, VideoType
from ..utils.validators import URLValidator

YOUTUBE_PATTERN = re.compile(
    r"(?:youtube(?:-nocookie)?\.com/(?:embed/|watch\?(?:[^\"'\s<>]*&)?v=|v/|shorts/)|youtu\.be/)"
    r"([A-Za-z0-9_-]{11})"
)
VIMEO_PATTERN = re.compile(r"vimeo\.com/(?:video/|channels/[^/\s\"']+/)?(\d+)")
DAILYMOTION_PATTERN = re.compile(r"(?:dailymotion\.com/(?:embed/)?video/|dai\.ly/)([A-Za-z0-9]+)")
DIRECT_VIDEO_PATTERN = re.compile(r"\.(?:mp4|webm|m3u8|mov)(?:$|[?#])", re.IGNORECASE)

EXCLUDED_IMAGE_PATTERN = re.compile(
    r"(?:^|[/_.-])(?:logo|icon|avatar|button|banner|ad|ads|sprite|pixel)(?:[/_.-]|s?\.|$)",
    re.IGNORECASE,
)
IMAGE_EXTENSION_PATTERN = re.compile(r"\.(?:jpe?g|png|webp)(?:$|[?#])", re.IGNORECASE)
MIN_IMAGE_DIMENSION = 100

IMAGE_META_KEYS = [
    ("property", "og:image"),
    ("property", "og:image:url"),
    ("property", "og:image:secure_url"),
    ("name", "twitter:image"),
    ("name", "twitter:image:src"),
    ("property", "twitter:image"),
]

VIDEO_META_KEYS = [
    ("property", "og:video:secure_url"),
    ("property", "og:video:url"),
    ("property", "og:video"),
    ("name", "twitter:player"),
    ("property", "twitter:player"),
]

CONTENT_CONTAINER_SELECTORS = [
    "article",
    "main",
    "[role=main]",
    ".article-content",
    ".article-body",
    ".post-content",
    ".entry-content",
    ".story-body",
    ".content",
    "#content",
]

LAZY_IMAGE_ATTRIBUTES = ("src", "data-src", "data-lazy-src", "data-original")


def resolve_image_url(url: Optional[str], base_url: Optional[str]) -> Optional[str]:
    """Turn a discovered media URL into an absolute http(s) URL.

    Absolute URLs pass through unchanged, protocol-relative URLs get
    ``https:`` and anything else is resolved against the page origin.
    Returns None when the result is still not a valid absolute URL.
    """
    if not url or not isinstance(url, str):
        return None

    candidate = url.strip()
    if not candidate or candidate.lower().startswith(("data:", "javascript:")):
        return None

    if URLValidator.is_absolute_http_url(candidate):
        return candidate

    if candidate.startswith("//"):
        resolved = f"https:{candidate}"
    else:
        if not base_url:
            return None
        try:
            parsed_base = urlparse(base_url)
        except ValueError:
            return None
        if not parsed_base.scheme or not parsed_base.netloc:
            return None
        origin = f"{parsed_base.scheme}://{parsed_base.netloc}/"
        try:
            resolved = urljoin(origin, candidate)
        except ValueError:
            return None

    return resolved if URLValidator.is_absolute_http_url(resolved) else None


def normalize_video_url(url: Optional[str]) -> Optional[VideoInfo]:
    """Map a video URL to its canonical watch-page form and type."""
    if not url:
        return None

    match = YOUTUBE_PATTERN.search(url)
    if match:
        return VideoInfo(
            url=f"https://www.youtube.com/watch?v={match.group(1)}",
            type=VideoType.YOUTUBE.value,
        )

    match = VIMEO_PATTERN.search(url)
    if match:
        return VideoInfo(url=f"https://vimeo.com/{match.group(1)}", type=VideoType.VIMEO.value)

    match = DAILYMOTION_PATTERN.search(url)
    if match:
        return VideoInfo(
            url=f"https://www.dailymotion.com/video/{match.group(1)}",
            type=VideoType.DAILYMOTION.value,
        )

    if DIRECT_VIDEO_PATTERN.search(url) and URLValidator.is_absolute_http_url(url):
        return VideoInfo(url=url, type=VideoType.MP4.value)

    return None


def find_embedded_video(html: Optional[str]) -> Optional[VideoInfo]:
    """Scan raw HTML for YouTube, Vimeo or Dailymotion references."""
    if not html:
        return None

    for pattern in (YOUTUBE_PATTERN, VIMEO_PATTERN, DAILYMOTION_PATTERN):
        match = pattern.search(html)
        if match:
            return normalize_video_url(match.group(0))
    return None


def is_excluded_image(url: str) -> bool:
    """True for logos, icons, avatars, buttons, banners and ad images."""
    path = urlparse(url).path
    filename = path.rsplit("/", 1)[-1]
    return bool(EXCLUDED_IMAGE_PATTERN.search(filename))


def _declared_dimension(img: Tag, attribute: str) -> Optional[int]:
    value = img.get(attribute)
    if not value:
        return None
    match = re.match(r"\s*(\d+)", str(value))
    return int(match.group(1)) if match else None


def _is_too_small(img: Tag) -> bool:
    for attribute in ("width", "height"):
        dimension = _declared_dimension(img, attribute)
        if dimension is not None and dimension < MIN_IMAGE_DIMENSION:
            return True
    return False


def _meta_content(soup: BeautifulSoup, keys: Iterable) -> Iterable[str]:
    for attribute, value in keys:
        for tag in soup.find_all("meta", attrs={attribute: value}):
            content = tag.get("content")
            if content and content.strip():
                yield content.strip()


def _image_source(img: Tag) -> Optional[str]:
    for attribute in LAZY_IMAGE_ATTRIBUTES:
        value = img.get(attribute)
        if value and not str(value).startswith("data:"):
            return str(value)
    srcset = img.get("srcset")
    if srcset:
        return str(srcset).split(",")[0].strip().split(" ")[0]
    return None


def _usable_img(img: Tag, page_url: str, require_extension: bool = False) -> Optional[str]:
    if _is_too_small(img):
        return None
    resolved = resolve_image_url(_image_source(img), page_url)
    if not resolved or is_excluded_image(resolved):
        return None
    if require_extension and not IMAGE_EXTENSION_PATTERN.search(resolved):
        return None
    return resolved


def extract_image(soup: BeautifulSoup, page_url: str) -> Optional[str]:
    """Pick the lead image of a page.

    Priority: og:image, twitter:image, itemprop=image, link rel=image_src,
    the first usable image in the article container, then any jpg/png/webp
    image on the page.
    """
    for content in _meta_content(soup, IMAGE_META_KEYS):
        resolved = resolve_image_url(content, page_url)
        if resolved:
            return resolved

    for tag in soup.find_all(attrs={"itemprop": "image"}):
        value = tag.get("content") or tag.get("src") or tag.get("href")
        if not value and tag.name != "img":
            nested = tag.find("meta", attrs={"itemprop": "url"}) or tag.find("img")
            if nested:
                value = nested.get("content") or nested.get("src")
        resolved = resolve_image_url(value, page_url)
        if resolved:
            return resolved

    for link in soup.find_all("link", href=True):
        rel = link.get("rel") or []
        if isinstance(rel, str):
            rel = rel.split()
        if "image_src" in [r.lower() for r in rel]:
            resolved = resolve_image_url(link["href"], page_url)
            if resolved:
                return resolved

    for selector in CONTENT_CONTAINER_SELECTORS:
        container = soup.select_one(selector)
        if not container:
            continue
        for img in container.find_all("img"):
            resolved = _usable_img(img, page_url)
            if resolved:
                return resolved

    for img in soup.find_all("img"):
        resolved = _usable_img(img, page_url, require_extension=True)
        if resolved:
            return resolved

    return None


def extract_video(soup: BeautifulSoup, page_url: str) -> Optional[VideoInfo]:
    """Pick the main video of a page.

    Priority: og:video variants, twitter:player, a <video> element, an
    iframe embed from a known host, then a regex scan of the body HTML.
    """
    for content in _meta_content(soup, VIDEO_META_KEYS):
        video = _resolve_video(content, page_url)
        if video:
            return video

    for video_tag in soup.find_all("video"):
        sources = [video_tag.get("src")] + [
            source.get("src") for source in video_tag.find_all("source")
        ]
        for src in sources:
            resolved = resolve_image_url(src, page_url)
            if resolved:
                return normalize_video_url(resolved) or VideoInfo(
                    url=resolved, type=VideoType.MP4.value
                )

    for iframe in soup.find_all("iframe"):
        src = iframe.get("src") or iframe.get("data-src")
        video = _resolve_video(src, page_url)
        if video and video.type != VideoType.MP4.value:
            return video

    body = soup.select_one("article") or soup.body or soup
    return find_embedded_video(str(body))


def _resolve_video(url: Optional[str], page_url: str) -> Optional[VideoInfo]:
    resolved = resolve_image_url(url, page_url)
    if not resolved:
        return None
    return normalize_video_url(resolved)

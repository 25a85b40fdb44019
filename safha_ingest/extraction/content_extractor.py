"""
Content Extractor
=================

Full-text extraction from article HTML using an ordered list of
strategies. Each strategy parses the page on its own and returns a
``StrategyResult``; the first one that finds content wins:

1. JSON-LD structured data (author-asserted article body)
2. Reader mode via readability-lxml
3. Heuristic DOM extraction over known content containers
"""

import json
import re
from dataclasses import dataclass
from typing import Callable, List, Optional

from bs4 import BeautifulSoup
from lxml import etree
from lxml import html as lxml_html
from readability import Document
from readability.readability import Unparseable

from ..config.settings import ExtractionSettings
from ..database.models import ExtractionMethod
from ..utils.logging import get_logger_for_component
from ..utils.text import clean_text, is_boilerplate, WHITESPACE_PATTERN

logger = get_logger_for_component("content_extractor")

JSON_LD_ARTICLE_TYPES = {"NewsArticle", "Article", "BlogPosting", "WebPage"}

UNWANTED_SELECTORS = [
    "script", "style", "noscript", "nav", "footer", "aside", "header", "form", "iframe",
    ".ad", ".ads", ".advertisement", ".promo", ".banner", ".sidebar", ".related",
    ".comments", ".share", ".social", ".newsletter", ".popup", ".modal",
    "[role=navigation]", ".breadcrumb", ".pagination", ".author-bio", ".tags",
]

# Ordered from most to least specific; includes common Arabic CMS themes
CONTENT_SELECTORS = [
    "article", "main article", "[role=article]",
    ".article-body", ".article-content", ".article__body", ".article__content",
    ".post-body", ".post-content", ".post__body", ".post__content",
    ".entry-content", ".entry-body", ".story-body", ".story-content",
    ".news-body", ".news-content", ".content-body", ".main-content",
    ".article-text", ".news-text", ".story-text", ".content-text",
    ".td-post-content", ".jeg_post_content", ".single-content",
    "#article", "#content", "#main-content", "#story", "#post-content",
    "main", "[role=main]",
]

READABILITY_BLOCK_TAGS = ("p", "h1", "h2", "h3", "h4", "h5", "h6", "li", "blockquote", "pre")

SENTENCE_SPLIT_PATTERN = re.compile(r"(?<=[.!?،。])\s+")

NAMED_CONTAINER_MIN_TEXT = 200
FALLBACK_DIV_MIN_TEXT = 300
FALLBACK_DIV_MIN_PARAGRAPHS = 2
PSEUDO_PARAGRAPH_MIN_SOURCE = 300
PSEUDO_PARAGRAPH_CHUNK = 150


@dataclass
class StrategyResult:
    """Outcome of one extraction strategy.

    ``found`` discriminates the two cases; when it is False every other
    field is empty.
    """
    found: bool
    content: Optional[str] = None
    method: str = ExtractionMethod.FAILED.value
    quality: float = 0.0
    excerpt: Optional[str] = None
    byline: Optional[str] = None
    site_name: Optional[str] = None

    @classmethod
    def missing(cls) -> "StrategyResult":
        return cls(found=False)


Strategy = Callable[[str, str, ExtractionSettings], StrategyResult]


# ============================================================================
# JSON-LD
# ============================================================================


def _json_ld_items(data) -> List[dict]:
    """Flatten a JSON-LD payload into candidate objects."""
    if isinstance(data, list):
        items = []
        for entry in data:
            items.extend(_json_ld_items(entry))
        return items
    if isinstance(data, dict):
        items = [data]
        graph = data.get("@graph")
        if isinstance(graph, list):
            items.extend(item for item in graph if isinstance(item, dict))
        return items
    return []


def _has_article_type(item: dict) -> bool:
    item_type = item.get("@type")
    types = item_type if isinstance(item_type, list) else [item_type]
    return any(isinstance(t, str) and t in JSON_LD_ARTICLE_TYPES for t in types)


def _json_ld_text(value) -> Optional[str]:
    if isinstance(value, list):
        value = " ".join(str(v) for v in value if isinstance(v, str))
    if not isinstance(value, str) or not value.strip():
        return None
    # Bodies are sometimes HTML-escaped markup
    if "<" in value:
        value = BeautifulSoup(value, "lxml").get_text("\n")
    return clean_text(value)


def extract_json_ld(html: str, url: str, config: ExtractionSettings) -> StrategyResult:
    """Read the article body from schema.org JSON-LD blocks."""
    soup = BeautifulSoup(html, "lxml")

    for script in soup.find_all("script", type="application/ld+json"):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            data = json.loads(raw.strip())
        except (json.JSONDecodeError, ValueError):
            logger.debug(f"Skipping unparseable JSON-LD block on {url}")
            continue

        for item in _json_ld_items(data):
            if not _has_article_type(item):
                continue

            body = _json_ld_text(item.get("articleBody")) or _json_ld_text(item.get("text"))
            description = _json_ld_text(item.get("description"))
            if not body and description and len(description) >= config.json_ld_min_description:
                body = description

            if body and len(body) >= config.min_content_length:
                author = item.get("author")
                if isinstance(author, list) and author:
                    author = author[0]
                if isinstance(author, dict):
                    author = author.get("name")
                publisher = item.get("publisher")
                site_name = publisher.get("name") if isinstance(publisher, dict) else None

                return StrategyResult(
                    found=True,
                    content=body,
                    method=ExtractionMethod.JSON_LD.value,
                    quality=config.json_ld_confidence,
                    excerpt=description,
                    byline=author if isinstance(author, str) else None,
                    site_name=site_name,
                )

    return StrategyResult.missing()


# ============================================================================
# Readability
# ============================================================================


def readability_quality(
    text: str,
    excerpt: Optional[str],
    byline: Optional[str],
    site_name: Optional[str],
) -> float:
    """Score a reader-mode extraction: base 0.5 plus additive bonuses."""
    score = 0.5
    length = len(text)

    if length >= 2000:
        score += 0.25
    elif length >= 1000:
        score += 0.2
    elif length >= 500:
        score += 0.15
    elif length >= 300:
        score += 0.1

    if excerpt and len(excerpt) > 50:
        score += 0.1
    if byline:
        score += 0.05
    if site_name:
        score += 0.05

    if text.count("\n\n") + 1 >= 3:
        score += 0.05

    return min(score, 1.0)


def _meta_value(tree, *xpaths: str) -> Optional[str]:
    for xpath in xpaths:
        values = tree.xpath(xpath)
        for value in values:
            value = WHITESPACE_PATTERN.sub(" ", str(value)).strip()
            if value:
                return value
    return None


def _summary_text(summary_html: str) -> str:
    summary_tree = lxml_html.fromstring(summary_html)
    blocks = []
    for element in summary_tree.iter(*READABILITY_BLOCK_TAGS):
        text = WHITESPACE_PATTERN.sub(" ", element.text_content()).strip()
        if text:
            blocks.append(text)
    if not blocks:
        return clean_text(summary_tree.text_content())
    return clean_text("\n\n".join(blocks))


def extract_readability(html: str, url: str, config: ExtractionSettings) -> StrategyResult:
    """Reader-mode extraction over a script-free copy of the page."""
    try:
        tree = lxml_html.fromstring(html)
        for element in tree.xpath("//script|//style|//noscript"):
            element.drop_tree()

        excerpt = _meta_value(
            tree,
            "//meta[@name='description']/@content",
            "//meta[@property='og:description']/@content",
        )
        byline = _meta_value(
            tree,
            "//meta[@name='author']/@content",
            "//meta[@property='article:author']/@content",
        )
        site_name = _meta_value(tree, "//meta[@property='og:site_name']/@content")

        document = Document(
            lxml_html.tostring(tree, encoding="unicode"),
            url=url,
            retry_length=config.min_content_length,
        )
        text = _summary_text(document.summary(html_partial=True))

    except (Unparseable, etree.ParserError, etree.XMLSyntaxError, ValueError) as e:
        logger.debug(f"Readability failed for {url}: {e}")
        return StrategyResult.missing()

    if len(text) < config.min_content_length:
        return StrategyResult.missing()

    return StrategyResult(
        found=True,
        content=text,
        method=ExtractionMethod.READABILITY.value,
        quality=readability_quality(text, excerpt, byline, site_name),
        excerpt=excerpt,
        byline=byline,
        site_name=site_name,
    )


# ============================================================================
# Heuristic DOM
# ============================================================================


def dom_quality(paragraphs: List[str], used_named_container: bool) -> float:
    """Score DOM-extracted paragraphs.

    Paragraph count contributes up to 0.3, average paragraph length up to
    0.3, total length up to 0.2, and matching a named content container
    adds 0.2. The sum is capped at 1.0.
    """
    if not paragraphs:
        return 0.0

    count = len(paragraphs)
    total_length = sum(len(p) for p in paragraphs)
    average_length = total_length / count
    score = 0.0

    if count >= 5:
        score += 0.3
    elif count >= 3:
        score += 0.2
    elif count >= 2:
        score += 0.1

    if average_length >= 100:
        score += 0.3
    elif average_length >= 60:
        score += 0.2
    elif average_length >= 40:
        score += 0.1

    if total_length >= 1500:
        score += 0.2
    elif total_length >= 800:
        score += 0.15
    elif total_length >= 400:
        score += 0.1

    if used_named_container:
        score += 0.2

    return min(score, 1.0)


def _normalized_text(element) -> str:
    return WHITESPACE_PATTERN.sub(" ", element.get_text(" ")).strip()


def _find_container(soup: BeautifulSoup):
    """Return (container, matched_named_selector) or (None, False)."""
    for selector in CONTENT_SELECTORS:
        for candidate in soup.select(selector):
            if len(_normalized_text(candidate)) > NAMED_CONTAINER_MIN_TEXT:
                return candidate, True

    best, best_score = None, 0
    for div in soup.find_all("div"):
        paragraph_count = len(div.find_all("p"))
        if paragraph_count < FALLBACK_DIV_MIN_PARAGRAPHS:
            continue
        text_length = len(_normalized_text(div))
        if text_length <= FALLBACK_DIV_MIN_TEXT:
            continue
        score = paragraph_count * 100 + text_length
        if score > best_score:
            best, best_score = div, score

    return best, False


def split_pseudo_paragraphs(text: str, min_remainder: int = 40) -> List[str]:
    """Group sentences into chunks of roughly 150 characters."""
    chunks, current = [], ""
    for sentence in SENTENCE_SPLIT_PATTERN.split(text):
        sentence = sentence.strip()
        if not sentence:
            continue
        current = f"{current} {sentence}".strip()
        if len(current) >= PSEUDO_PARAGRAPH_CHUNK:
            chunks.append(current)
            current = ""
    if len(current) > min_remainder:
        chunks.append(current)
    return chunks


def extract_dom(html: str, url: str, config: ExtractionSettings) -> StrategyResult:
    """Last-resort extraction from the most article-like container."""
    soup = BeautifulSoup(html, "lxml")

    for selector in UNWANTED_SELECTORS:
        for element in soup.select(selector):
            element.decompose()

    container, used_named_container = _find_container(soup)
    if container is None:
        return StrategyResult.missing()

    paragraphs = []
    for p in container.find_all("p"):
        text = _normalized_text(p)
        if len(text) >= config.min_paragraph_length and not is_boilerplate(text):
            paragraphs.append(text)

    if len(paragraphs) < 2:
        full_text = _normalized_text(container)
        if len(full_text) >= PSEUDO_PARAGRAPH_MIN_SOURCE and not is_boilerplate(full_text):
            paragraphs = split_pseudo_paragraphs(full_text, config.min_paragraph_length)

    content = clean_text("\n\n".join(paragraphs))
    if len(content) < config.min_content_length:
        return StrategyResult.missing()

    return StrategyResult(
        found=True,
        content=content,
        method=ExtractionMethod.DOM.value,
        quality=dom_quality(paragraphs, used_named_container),
    )


DEFAULT_STRATEGIES: List[Strategy] = [extract_json_ld, extract_readability, extract_dom]


class ContentExtractor:
    """Runs extraction strategies in order and keeps the first hit."""

    def __init__(
        self,
        settings: Optional[ExtractionSettings] = None,
        strategies: Optional[List[Strategy]] = None,
    ):
        self.settings = settings or ExtractionSettings()
        self.strategies = list(strategies) if strategies is not None else list(DEFAULT_STRATEGIES)
        self.logger = get_logger_for_component("content_extractor")

    def extract(self, html: Optional[str], url: str) -> StrategyResult:
        if not html or not html.strip():
            return StrategyResult.missing()

        for strategy in self.strategies:
            result = strategy(html, url, self.settings)
            if result.found:
                if result.content and len(result.content) > self.settings.max_content_length:
                    result.content = result.content[: self.settings.max_content_length]
                self.logger.debug(
                    f"Extracted {len(result.content or '')} chars from {url} via {result.method}"
                )
                return result

        self.logger.debug(f"No extraction strategy succeeded for {url}")
        return StrategyResult.missing()

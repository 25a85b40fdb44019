"""
Text Utilities
==============

HTML stripping, whitespace normalization, boilerplate detection and
content hashing shared by the feed reader, extractor and dedup gate.
"""

import hashlib
import html
import re
from typing import Optional

from bs4 import BeautifulSoup

WHITESPACE_PATTERN = re.compile(r"\s+")
TAB_CR_PATTERN = re.compile(r"[\t\r]+")
BLANK_LINES_PATTERN = re.compile(r"\n\s*\n")
MULTI_SPACE_PATTERN = re.compile(r" {2,}")

# English and Arabic phrases that mark navigation, promo or legal text
BOILERPLATE_PATTERNS = [
    re.compile(r"copyright|©|all rights reserved", re.IGNORECASE),
    re.compile(r"subscribe|newsletter|sign up", re.IGNORECASE),
    re.compile(r"share on|follow us|like us", re.IGNORECASE),
    re.compile(r"read more|continue reading|click here", re.IGNORECASE),
    re.compile(r"advertisement|sponsored|promoted", re.IGNORECASE),
    re.compile(r"cookie|privacy policy|terms of", re.IGNORECASE),
    re.compile(r"اشترك|تابعنا|شاركنا"),
    re.compile(r"حقوق النشر|جميع الحقوق محفوظة"),
    re.compile(r"اقرأ أيضا|مواضيع ذات صلة"),
]

CONTENT_HASH_LENGTH = 32

# Elements whose body is never reader-visible text
NON_TEXT_TAGS = ["script", "style", "noscript", "template"]


def strip_html(value: Optional[str]) -> str:
    """Remove markup and entities, collapsing whitespace to single spaces."""
    if not value:
        return ""

    if "<" in value:
        soup = BeautifulSoup(value, "html.parser")
        for element in soup(NON_TEXT_TAGS):
            element.decompose()
        text = soup.get_text(" ")
    else:
        text = value

    text = html.unescape(text).replace("\xa0", " ")
    return WHITESPACE_PATTERN.sub(" ", text).strip()


def clean_text(value: Optional[str]) -> str:
    """Normalize extracted article text while keeping paragraph breaks."""
    if not value:
        return ""

    text = TAB_CR_PATTERN.sub(" ", value)
    text = BLANK_LINES_PATTERN.sub("\n\n", text)
    text = MULTI_SPACE_PATTERN.sub(" ", text)
    text = "\n".join(line.strip() for line in text.split("\n"))
    return text.strip()


def is_boilerplate(value: Optional[str]) -> bool:
    """True when text looks like a share prompt, legal notice or promo."""
    if not value:
        return False
    return any(pattern.search(value) for pattern in BOILERPLATE_PATTERNS)


def content_hash(title: Optional[str], content: Optional[str]) -> str:
    """Deduplication hash of title plus stripped content.

    The input is lowercased and trimmed before hashing so casing or
    surrounding whitespace differences map to the same hash.
    """
    normalized = f"{(title or '').strip()}{strip_html(content)}".lower().strip()
    digest = hashlib.sha256(normalized.encode("utf-8")).hexdigest()
    return digest[:CONTENT_HASH_LENGTH]


def truncate(value: Optional[str], max_length: int) -> Optional[str]:
    """Cut text to max_length characters, marking the cut with an ellipsis."""
    if value is None or len(value) <= max_length:
        return value
    return value[: max_length - 3].rstrip() + "..."

"""
Safha Ingest Input Validators
=============================

URL validation for configured feed sources and on-demand extraction
requests.
"""

import re
from urllib.parse import urlparse, urlunparse
from typing import Optional

from .exceptions import ValidationError, ErrorCode


class URLValidator:
    """URL validation and normalization utilities."""

    ALLOWED_SCHEMES = {"http", "https"}

    RSS_PATTERNS = [
        r"\.rss$", r"\.xml$", r"\.atom$",
        r"/rss/?$", r"/feed/?$", r"/feeds/?$",
        r"/atom/?$", r"/rss\.xml$", r"/feed\.xml$",
    ]

    SUSPICIOUS_PATTERNS = [
        r"^javascript:",
        r"^data:",
        r"^file:",
        r"^ftp:",
    ]

    @classmethod
    def validate_url(cls, url: str, field_name: str = "url") -> str:
        """Validate and normalize an http(s) URL.

        Args:
            url: URL to validate
            field_name: Name reported in the validation error

        Returns:
            Normalized URL

        Raises:
            ValidationError: If URL is invalid
        """
        if not url or not isinstance(url, str):
            raise ValidationError(
                "URL is required and must be a string",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name=field_name,
            )

        url = url.strip()

        if any(re.search(pattern, url.lower()) for pattern in cls.SUSPICIOUS_PATTERNS):
            raise ValidationError(
                "URL uses a forbidden scheme",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name=field_name,
            )

        try:
            parsed = urlparse(url)
        except ValueError as e:
            raise ValidationError(
                f"Invalid URL format: {str(e)}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name=field_name,
            ) from e

        if parsed.scheme.lower() not in cls.ALLOWED_SCHEMES:
            raise ValidationError(
                "URL scheme must be http or https",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name=field_name,
            )

        if not parsed.netloc:
            raise ValidationError(
                "URL must include a hostname",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name=field_name,
            )

        return urlunparse(
            parsed._replace(
                scheme=parsed.scheme.lower(),
                netloc=parsed.netloc.lower(),
                path=parsed.path or "/",
                fragment="",
            )
        )

    @classmethod
    def validate_feed_url(cls, url: str) -> str:
        """Validate an RSS/Atom source URL."""
        return cls.validate_url(url, field_name="feed_url")

    @classmethod
    def is_absolute_http_url(cls, url: Optional[str]) -> bool:
        """True for a well-formed absolute http(s) URL with a host."""
        if not url or not isinstance(url, str):
            return False
        try:
            parsed = urlparse(url)
        except ValueError:
            return False
        return parsed.scheme in cls.ALLOWED_SCHEMES and bool(parsed.netloc)

    @classmethod
    def is_likely_feed_url(cls, url: str) -> bool:
        """Check if URL is likely an RSS/Atom feed."""
        url_lower = url.lower()
        return any(re.search(pattern, url_lower) for pattern in cls.RSS_PATTERNS)

#!/usr/bin/env python3
"""
Error Handling Tests for Safha Ingest
=====================================

Tests for the exception hierarchy and URL validation.
"""

import pytest

from safha_ingest.utils.exceptions import (
    SafhaError,
    ConfigurationError,
    DatabaseError,
    FeedError,
    FeedFetchError,
    FeedParseError,
    ValidationError,
    ErrorCode,
)
from safha_ingest.utils.validators import URLValidator


class TestExceptionHierarchy:
    """Test error codes, context and serialization."""

    def test_str_includes_code(self):
        error = SafhaError("Something broke", error_code=ErrorCode.DATABASE_ERROR)
        assert str(error) == "[D006] Something broke"
        assert error.message == "Something broke"

    def test_feed_error_context(self):
        error = FeedFetchError("HTTP 500", feed_url="https://x.example.com/rss",
                               error_code=ErrorCode.FEED_HTTP_ERROR)

        assert isinstance(error, FeedError)
        assert error.context == {"feed_url": "https://x.example.com/rss"}
        assert error.recoverable

    def test_parse_error_default_code(self):
        assert FeedParseError("no entries").error_code == ErrorCode.FEED_PARSE_ERROR

    def test_validation_error_not_recoverable(self):
        error = ValidationError("bad", field_name="url")

        assert not error.recoverable
        assert error.user_message == "Invalid url: bad"

    def test_to_dict(self):
        error = FeedParseError("no entries", feed_url="https://x.example.com/rss")
        data = error.to_dict()

        assert data["error_type"] == "FeedParseError"
        assert data["error_code"] == ErrorCode.FEED_PARSE_ERROR.value
        assert data["context"]["feed_url"] == "https://x.example.com/rss"
        assert data["recoverable"]

    def test_database_error_defaults(self):
        error = DatabaseError("locked", query="INSERT INTO raw_articles")

        assert error.error_code == ErrorCode.DATABASE_CONNECTION
        assert error.context["query"] == "INSERT INTO raw_articles"
        assert error.user_message == "Database operation failed"

    def test_configuration_error_key(self):
        error = ConfigurationError("missing", config_key="database.path",
                                   error_code=ErrorCode.CONFIG_MISSING)

        assert error.context["config_key"] == "database.path"
        assert error.error_code == ErrorCode.CONFIG_MISSING


class TestURLValidator:
    """Test URL validation for sources and on-demand extraction."""

    def test_normalizes(self):
        assert URLValidator.validate_url("HTTPS://News.Example.COM#top") == "https://news.example.com/"

    def test_keeps_path_and_query(self):
        url = "https://news.example.com/a/b?id=3"
        assert URLValidator.validate_url(url) == url

    @pytest.mark.parametrize("url", [
        "",
        None,
        "javascript:alert(1)",
        "ftp://files.example.com/feed.xml",
        "mailto:editor@example.com",
        "https:///no-host",
    ])
    def test_rejects(self, url):
        with pytest.raises(ValidationError):
            URLValidator.validate_url(url)

    def test_feed_url_field_name(self):
        with pytest.raises(ValidationError) as exc_info:
            URLValidator.validate_feed_url("not-a-url")

        assert exc_info.value.context["field_name"] == "feed_url"

    @pytest.mark.parametrize("url,expected", [
        ("https://example.com/rss.xml", True),
        ("https://example.com/feed/", True),
        ("https://example.com/news/story", False),
    ])
    def test_is_likely_feed_url(self, url, expected):
        assert URLValidator.is_likely_feed_url(url) is expected

"""
Text Utility Tests
==================

Tests for HTML stripping, text cleanup, boilerplate detection and the
deduplication hash.
"""

import pytest

from safha_ingest.utils.text import (
    strip_html,
    clean_text,
    is_boilerplate,
    content_hash,
    truncate,
)


class TestStripHtml:
    """Test markup and entity removal."""

    def test_removes_tags_and_entities(self):
        assert strip_html("<p>Hello&nbsp;<b>world</b> &amp; more</p>") == "Hello world & more"

    def test_collapses_whitespace(self):
        assert strip_html("  one\n\n two\tthree  ") == "one two three"

    def test_drops_script_and_style_bodies(self):
        html = '<p>Intro</p><script>track("x")</script><style>p{color:red}</style><iframe src="https://v.example.com"></iframe>'
        assert strip_html(html) == "Intro"

    @pytest.mark.parametrize("value", [None, ""])
    def test_empty_input(self, value):
        assert strip_html(value) == ""


class TestCleanText:
    """Test article text normalization."""

    def test_keeps_paragraph_breaks(self):
        text = "First paragraph.\n\n\n\nSecond   paragraph.\t\r"
        assert clean_text(text) == "First paragraph.\n\nSecond paragraph."

    def test_trims_each_line(self):
        assert clean_text("  a  \n  b  ") == "a\nb"


class TestBoilerplate:
    """Test promo and legal text detection."""

    @pytest.mark.parametrize("text", [
        "Copyright 2024 Example Media",
        "Subscribe to our newsletter",
        "Follow us on Twitter",
        "Click here to continue reading",
        "جميع الحقوق محفوظة",
        "تابعنا على تويتر",
    ])
    def test_detects_boilerplate(self, text):
        assert is_boilerplate(text)

    def test_regular_sentence_is_not_boilerplate(self):
        assert not is_boilerplate("The council approved three new bus corridors on Tuesday.")


class TestContentHash:
    """Test the deduplication hash."""

    def test_hash_is_32_hex_characters(self):
        value = content_hash("Title", "<p>Body</p>")
        assert len(value) == 32
        int(value, 16)

    def test_case_and_markup_insensitive(self):
        assert content_hash("Breaking News", "<p>Some <b>body</b></p>") == \
            content_hash("breaking news", "Some body")

    def test_surrounding_whitespace_ignored(self):
        assert content_hash("  Title  ", "  body text ") == content_hash("Title", "body text")

    def test_different_content_differs(self):
        assert content_hash("Title", "first body") != content_hash("Title", "second body")

    def test_missing_content_hashes_title(self):
        assert content_hash("Title", None) == content_hash("Title", "")


class TestTruncate:

    def test_short_text_unchanged(self):
        assert truncate("short", 10) == "short"

    def test_long_text_marked(self):
        assert truncate("a" * 20, 10) == "aaaaaaa..."

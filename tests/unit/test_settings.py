"""
Configuration Tests
===================

Tests for settings defaults, environment overrides and validation.
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from safha_ingest.config.settings import (
    ApiSettings,
    SafhaSettings,
    SchedulingSettings,
    get_settings,
)
from safha_ingest.processing.pipeline import clamp_batch_limit


class TestDefaults:
    """Test documented default values."""

    def test_scheduling_defaults(self):
        scheduling = SchedulingSettings()

        assert scheduling.default_batch_size == 10
        assert scheduling.max_batch_size == 20
        assert scheduling.concurrency_group_size == 3
        assert scheduling.stale_minutes == 30
        assert scheduling.max_source_errors == 5

    def test_fetch_and_extraction_defaults(self):
        settings = SafhaSettings()

        assert settings.fetch.feed_timeout == 30
        assert settings.fetch.page_timeout == 25
        assert settings.extraction.min_content_length == 200
        assert settings.extraction.json_ld_confidence == 0.85


class TestEnvironmentOverrides:

    def test_nested_override(self, monkeypatch):
        monkeypatch.setenv("SAFHA_SCHEDULING__STALE_MINUTES", "45")
        monkeypatch.setenv("SAFHA_FETCH__PAGE_TIMEOUT", "10")

        settings = SafhaSettings()

        assert settings.scheduling.stale_minutes == 45
        assert settings.fetch.page_timeout == 10

    def test_debug_forces_debug_log_level(self, monkeypatch):
        monkeypatch.setenv("SAFHA_DEBUG", "true")
        assert SafhaSettings().get_effective_log_level() == "DEBUG"

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()


class TestValidation:

    def test_max_batch_not_below_default(self):
        with pytest.raises(PydanticValidationError):
            SchedulingSettings(default_batch_size=10, max_batch_size=5)

    def test_origins_cleaned(self):
        api = ApiSettings(allowed_origins=[" https://app.example.com/ ", ""])
        assert api.allowed_origins == ["https://app.example.com"]

    @pytest.mark.parametrize("origins", [[], ["*"], ["  "]])
    def test_origins_rejected(self, origins):
        with pytest.raises(PydanticValidationError):
            ApiSettings(allowed_origins=origins)


class TestBatchLimit:
    """Test the caller-supplied limit clamp."""

    @pytest.mark.parametrize("requested,expected", [
        (None, 10),
        (5, 5),
        ("7", 7),
        (50, 20),
        (0, 10),
        (-3, 10),
        ("abc", 10),
        (True, 10),
        (3.9, 3),
    ])
    def test_clamp(self, requested, expected):
        assert clamp_batch_limit(requested) == expected

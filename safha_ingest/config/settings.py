"""
Safha Ingest Configuration System
=================================

Configuration management with environment variables and Pydantic models.
Environment variables (prefix ``SAFHA_``, nested with ``__``) override
Field defaults.
"""

from pathlib import Path
from typing import List, Optional
from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from ..utils.exceptions import ConfigurationError, ErrorCode


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class FetchSettings(BaseModel):
    """Outbound HTTP configuration for feeds and article pages."""
    feed_timeout: int = Field(default=30, ge=1, le=300, description="Feed request timeout in seconds")
    page_timeout: int = Field(default=25, ge=1, le=300, description="Webpage request timeout in seconds")
    feed_user_agent: str = Field(default="Safha News Aggregator/1.0", description="User-Agent sent to feed hosts")
    page_user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        ),
        description="Browser-like User-Agent sent to article pages",
    )
    accept_language: str = Field(default="en-US,en;q=0.9,ar;q=0.8", description="Accept-Language for article pages")
    connection_limit: int = Field(default=20, ge=1, le=200, description="Total pooled connections per session")
    limit_per_host: int = Field(default=5, ge=1, le=50, description="Pooled connections per host")


class SchedulingSettings(BaseModel):
    """Source selection and batching configuration."""
    default_batch_size: int = Field(default=10, ge=1, le=100, description="Sources per run when no limit is given")
    max_batch_size: int = Field(default=20, ge=1, le=100, description="Hard cap on sources per run")
    concurrency_group_size: int = Field(default=3, ge=1, le=20, description="Sources fetched concurrently")
    stale_minutes: int = Field(default=30, ge=1, le=1440, description="Minimum idle time before re-fetching a source")
    max_source_errors: int = Field(default=5, ge=1, le=100, description="Consecutive failures that exclude a source")

    @field_validator('max_batch_size')
    @classmethod
    def validate_max_batch(cls, v, info):
        """Ensure the hard cap is not below the default."""
        default = info.data.get('default_batch_size')
        if default is not None and v < default:
            raise ValueError("max_batch_size must be >= default_batch_size")
        return v


class ExtractionSettings(BaseModel):
    """Full-text extraction thresholds."""
    min_content_length: int = Field(default=200, ge=50, le=5000, description="Shortest accepted article body")
    min_paragraph_length: int = Field(default=40, ge=1, le=1000, description="Shortest paragraph kept by DOM extraction")
    json_ld_min_description: int = Field(default=300, ge=0, description="Shortest JSON-LD description used as body")
    json_ld_confidence: float = Field(default=0.85, ge=0.0, le=1.0, description="Quality assigned to JSON-LD bodies")
    max_content_length: int = Field(default=50000, ge=1000, description="Longest stored article body")


class BackfillSettings(BaseModel):
    """Backfill job configuration."""
    default_limit: int = Field(default=20, ge=1, le=500, description="Articles per backfill run")
    max_limit: int = Field(default=50, ge=1, le=500, description="Hard cap on articles per backfill run")
    delay_seconds: float = Field(default=0.5, ge=0.0, le=30.0, description="Pause between page requests")


class DatabaseSettings(BaseModel):
    """Database configuration."""
    path: str = Field(default="data/safha_ingest.db", description="SQLite database file path")
    pool_size: int = Field(default=5, ge=1, le=20, description="Connection pool size")


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default="logs/safha_ingest.log", description="Log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=100, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of log backup files")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging")
    console_logging: bool = Field(default=True, description="Enable console logging")


class ApiSettings(BaseModel):
    """HTTP trigger configuration."""
    host: str = Field(default="127.0.0.1", description="Bind address")
    port: int = Field(default=8000, ge=1, le=65535, description="Bind port")
    allowed_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:8081"],
        description="Origins echoed back in CORS responses",
    )

    @field_validator('allowed_origins')
    @classmethod
    def validate_origins(cls, v):
        """Wildcards are not allowed; the list must name concrete origins."""
        cleaned = [origin.strip().rstrip("/") for origin in v if origin and origin.strip()]
        if not cleaned:
            raise ValueError("allowed_origins must contain at least one origin")
        if "*" in cleaned:
            raise ValueError("allowed_origins must not contain '*'")
        return cleaned


class SafhaSettings(BaseSettings):
    """Main application settings."""

    fetch: FetchSettings = Field(default_factory=FetchSettings)
    scheduling: SchedulingSettings = Field(default_factory=SchedulingSettings)
    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    backfill: BackfillSettings = Field(default_factory=BackfillSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)

    app_name: str = Field(default="Safha Ingest", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "env_prefix": "SAFHA_",
        "extra": "ignore",
    }

    def validate_configuration(self) -> None:
        """Validate complete configuration."""
        errors = []

        if not self.database.path or not self.database.path.strip():
            errors.append("Database path is not configured")
        elif self.database.path != ":memory:":
            try:
                Path(self.database.path).parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Invalid database path: {e}")

        if self.logging.file_path:
            try:
                Path(self.logging.file_path).parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Invalid log file path: {e}")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID
            )

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def load_settings() -> SafhaSettings:
    """Load settings from environment variables, .env and defaults.

    Returns:
        Loaded and validated settings

    Raises:
        ConfigurationError: If configuration is invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    try:
        settings = SafhaSettings()
        settings.validate_configuration()
        return settings

    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID
        ) from e


_settings: Optional[SafhaSettings] = None


def get_settings(reload: bool = False) -> SafhaSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings

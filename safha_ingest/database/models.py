"""
Safha Ingest Data Models
========================

Pydantic models for persisted rows and dataclasses for the transient
values passed between the feed reader, the extractor and the pipeline.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Dict, Any
from dataclasses import dataclass, field
import uuid

from pydantic import BaseModel, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_db_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Format a datetime as a UTC ``YYYY-MM-DD HH:MM:SS`` string.

    The format matches SQLite's CURRENT_TIMESTAMP so stored values compare
    correctly as text.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


class SourceLanguage(str, Enum):
    """Languages a source may publish in."""
    ARABIC = "ar"
    ENGLISH = "en"


class ArticleStatus(str, Enum):
    """Lifecycle of a raw article; this pipeline only creates PENDING rows."""
    PENDING = "pending"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"
    DUPLICATE = "duplicate"
    REJECTED = "rejected"


class VideoType(str, Enum):
    """Canonical video kinds."""
    MP4 = "mp4"
    YOUTUBE = "youtube"
    VIMEO = "vimeo"
    DAILYMOTION = "dailymotion"


class ExtractionMethod(str, Enum):
    """Strategy that produced an article body."""
    JSON_LD = "json-ld"
    READABILITY = "readability"
    DOM = "dom"
    FAILED = "failed"


class RssSource(BaseModel):
    """Configured RSS/Atom feed and its fetch health."""
    id: Optional[int] = Field(default=None, description="Database primary key")
    name: str = Field(..., min_length=1, max_length=255, description="Source display name")
    feed_url: str = Field(..., min_length=1, description="RSS/Atom feed URL")
    website_url: Optional[str] = Field(default=None, description="Publisher home page")
    language: SourceLanguage = Field(default=SourceLanguage.ARABIC, description="Publication language")
    category: Optional[str] = Field(default=None, max_length=100, description="Editorial category")
    is_active: bool = Field(default=True, description="Whether source is scheduled")
    error_count: int = Field(default=0, ge=0, description="Consecutive fetch failures")
    last_fetched_at: Optional[datetime] = Field(default=None, description="Last fetch attempt")
    last_error: Optional[str] = Field(default=None, description="Message from the last failed fetch")
    created_at: Optional[datetime] = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = Field(default_factory=utc_now)

    def is_schedulable(self, max_errors: int = 5) -> bool:
        """True when the source may be picked up by the scheduler at all."""
        return self.is_active and self.error_count < max_errors

    model_config = {
        "use_enum_values": True,
    }

    def __str__(self) -> str:
        return f"RssSource({self.name}:{self.feed_url})"


class RawArticle(BaseModel):
    """Deduplicated article awaiting downstream summarization."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique article ID")
    rss_source_id: int = Field(..., description="Owning source ID")
    guid: str = Field(..., min_length=1, description="Feed-supplied identifier")
    original_url: str = Field(..., min_length=1, description="Article page URL")
    original_title: str = Field(..., min_length=1, description="Title from the feed")
    original_content: Optional[str] = Field(default=None, description="Feed content as plain text")
    original_description: Optional[str] = Field(default=None, description="Feed description/summary as plain text")
    full_content: Optional[str] = Field(default=None, description="Extracted article body")
    content_quality: float = Field(default=0.0, ge=0.0, le=1.0, description="Extraction quality score")
    extraction_method: Optional[ExtractionMethod] = Field(default=None, description="Strategy that produced full_content")
    image_url: Optional[str] = Field(default=None, description="Lead image URL")
    video_url: Optional[str] = Field(default=None, description="Canonical video URL")
    video_type: Optional[VideoType] = Field(default=None, description="Video kind")
    author: Optional[str] = Field(default=None, description="Byline")
    published_at: Optional[datetime] = Field(default=None, description="Publication date")
    content_hash: str = Field(..., min_length=1, description="Deduplication hash")
    status: ArticleStatus = Field(default=ArticleStatus.PENDING, description="Lifecycle status")
    retry_count: int = Field(default=0, ge=0, description="Downstream retry counter")
    error_message: Optional[str] = Field(default=None, description="Downstream failure message")
    fetched_at: Optional[datetime] = Field(default_factory=utc_now)
    processed_at: Optional[datetime] = Field(default=None)

    @field_validator('content_quality')
    @classmethod
    def round_quality(cls, v):
        """Store quality with two decimals."""
        return round(v, 2)

    @field_validator('full_content')
    @classmethod
    def validate_content_length(cls, v):
        """Cap stored bodies to keep rows bounded."""
        if v and len(v) > 50000:
            return v[:50000]
        return v

    model_config = {
        "use_enum_values": True,
    }

    def __str__(self) -> str:
        return f"RawArticle({self.original_title[:50]})"


@dataclass
class VideoInfo:
    """A canonical video reference."""
    url: str
    type: str


@dataclass
class FeedEntry:
    """One normalized feed item, not persisted."""
    guid: str
    url: str
    title: str
    raw_content: Optional[str] = None
    raw_description: Optional[str] = None
    author: Optional[str] = None
    published_at: Optional[datetime] = None
    hinted_image_url: Optional[str] = None
    hinted_video: Optional[VideoInfo] = None


@dataclass
class WebpageExtraction:
    """Everything recovered from an article page; failure is a value, not an exception."""
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    video_type: Optional[str] = None
    full_content: Optional[str] = None
    content_quality: float = 0.0
    extraction_method: str = ExtractionMethod.FAILED.value
    excerpt: Optional[str] = None
    byline: Optional[str] = None
    site_name: Optional[str] = None

    @classmethod
    def failed(cls) -> "WebpageExtraction":
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "image_url": self.image_url,
            "video_url": self.video_url,
            "video_type": self.video_type,
            "full_content": self.full_content,
            "content_quality": self.content_quality,
            "extraction_method": self.extraction_method,
            "excerpt": self.excerpt,
            "byline": self.byline,
            "site_name": self.site_name,
        }


@dataclass
class SourceResult:
    """Outcome of one source fetch within a pipeline run."""
    source_id: int
    source_name: str
    articles_fetched: int = 0
    new_articles: int = 0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "source_name": self.source_name,
            "articles_fetched": self.articles_fetched,
            "new_articles": self.new_articles,
            "error": self.error,
        }


@dataclass
class PipelineSummary:
    """Totals across all sources in a run."""
    sources_processed: int = 0
    total_articles_fetched: int = 0
    total_new_articles: int = 0
    errors: int = 0

    @classmethod
    def from_results(cls, results: List[SourceResult]) -> "PipelineSummary":
        return cls(
            sources_processed=len(results),
            total_articles_fetched=sum(r.articles_fetched for r in results),
            total_new_articles=sum(r.new_articles for r in results),
            errors=sum(1 for r in results if r.error),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sources_processed": self.sources_processed,
            "total_articles_fetched": self.total_articles_fetched,
            "total_new_articles": self.total_new_articles,
            "errors": self.errors,
        }


@dataclass
class PipelineRunResult:
    """Result of one orchestrator invocation."""
    summary: PipelineSummary = field(default_factory=PipelineSummary)
    results: List[SourceResult] = field(default_factory=list)
    message: Optional[str] = None
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        if self.message and not self.results:
            return {"message": self.message, "results": []}
        return {
            "summary": self.summary.to_dict(),
            "results": [r.to_dict() for r in self.results],
        }

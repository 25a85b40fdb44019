"""
Safha Ingest Custom Exceptions
==============================

Exception hierarchy for the ingestion pipeline with error codes,
context information, and operator-friendly messages.
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration errors (C001-C099)
    CONFIG_INVALID = "C001"
    CONFIG_MISSING = "C002"

    # Database errors (D001-D099)
    DATABASE_CONNECTION = "D001"
    DATABASE_CONSTRAINT = "D003"
    DATABASE_ERROR = "D006"

    # Feed ingestion errors (F001-F099)
    FEED_FETCH_TIMEOUT = "F002"
    FEED_PARSE_ERROR = "F003"
    FEED_NETWORK_ERROR = "F004"
    FEED_HTTP_ERROR = "F005"

    # Validation errors (V001-V099)
    VALIDATION_REQUIRED_FIELD = "V001"
    VALIDATION_INVALID_FORMAT = "V002"


class SafhaError(Exception):
    """Base exception for all ingestion errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        recoverable: bool = False,
    ):
        """Initialize error.

        Args:
            message: Technical error message for logging
            error_code: Categorized error code
            context: Additional context information
            user_message: Operator-facing error message
            recoverable: Whether the error is recoverable
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.user_message = user_message or message
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": str(self),
            "user_message": self.user_message,
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        """String representation with error code."""
        if self.error_code:
            return f"[{self.error_code.value}] {super().__str__()}"
        return super().__str__()


class ConfigurationError(SafhaError):
    """Configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        """Initialize configuration error.

        Args:
            message: Error message
            config_key: Configuration key that caused the error
            **kwargs: Additional arguments for SafhaError
        """
        context = kwargs.get("context", {})
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CONFIG_INVALID),
            context=context,
            user_message=kwargs.get("user_message", f"Configuration error: {message}"),
            **{
                k: v
                for k, v in kwargs.items()
                if k not in ["context", "error_code", "user_message"]
            },
        )


class DatabaseError(SafhaError):
    """Database-related errors."""

    def __init__(self, message: str, query: Optional[str] = None, **kwargs):
        """Initialize database error.

        Args:
            message: Error message
            query: SQL query that caused the error
            **kwargs: Additional arguments for SafhaError
        """
        context = kwargs.get("context", {})
        if query:
            context["query"] = query

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.DATABASE_CONNECTION),
            context=context,
            user_message=kwargs.get("user_message", "Database operation failed"),
            recoverable=kwargs.get("recoverable", True),
            **{
                k: v
                for k, v in kwargs.items()
                if k not in ["context", "error_code", "user_message", "recoverable"]
            },
        )


class FeedError(SafhaError):
    """Feed ingestion and parsing errors."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        """Initialize feed error.

        Args:
            message: Error message
            feed_url: Feed URL that caused the error
            **kwargs: Additional arguments for SafhaError
        """
        context = kwargs.get("context", {})
        if feed_url:
            context["feed_url"] = feed_url

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.FEED_NETWORK_ERROR),
            context=context,
            user_message=kwargs.get("user_message", f"Feed processing failed: {message}"),
            recoverable=kwargs.get("recoverable", True),
            **{
                k: v
                for k, v in kwargs.items()
                if k not in ["context", "error_code", "user_message", "recoverable"]
            },
        )


class FeedFetchError(FeedError):
    """Feed could not be downloaded (HTTP status or transport failure)."""

    pass


class FeedParseError(FeedError):
    """Feed was downloaded but yielded no usable entries."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.FEED_PARSE_ERROR)
        super().__init__(message, feed_url=feed_url, **kwargs)


class ValidationError(SafhaError):
    """Data validation errors."""

    def __init__(self, message: str, field_name: Optional[str] = None, **kwargs):
        """Initialize validation error.

        Args:
            message: Error message
            field_name: Field name that failed validation
            **kwargs: Additional arguments for SafhaError
        """
        context = kwargs.get("context", {})
        if field_name:
            context["field_name"] = field_name

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.VALIDATION_INVALID_FORMAT),
            context=context,
            user_message=kwargs.get(
                "user_message", f"Invalid {field_name or 'input'}: {message}"
            ),
            recoverable=kwargs.get("recoverable", False),
            **{
                k: v
                for k, v in kwargs.items()
                if k not in ["context", "error_code", "user_message", "recoverable"]
            },
        )


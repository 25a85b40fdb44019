"""
Source Repository
=================

Database access for configured RSS sources: CRUD, the due-source
scheduling query and fetch-health bookkeeping.
"""

import sqlite3
from datetime import datetime, timedelta
from typing import List, Optional

from ..database.connection import DatabaseConnection
from ..database.models import RssSource, to_db_timestamp, utc_now
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode

LAST_ERROR_MAX_LENGTH = 1000


class SourceRepository:
    """Repository for RSS source rows."""

    def __init__(self, db_connection: DatabaseConnection):
        """Initialize source repository.

        Args:
            db_connection: Database connection manager
        """
        self.db = db_connection
        self.logger = get_logger_for_component("source_repository")

    def create_source(self, source: RssSource) -> int:
        """Insert a new source.

        Returns:
            New source ID

        Raises:
            DatabaseError: If the feed URL already exists or the insert fails
        """
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO rss_sources (
                        name, feed_url, website_url, language, category,
                        is_active, error_count, last_fetched_at, last_error
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                    (
                        source.name,
                        source.feed_url,
                        source.website_url,
                        source.language,
                        source.category,
                        source.is_active,
                        source.error_count,
                        to_db_timestamp(source.last_fetched_at),
                        source.last_error,
                    ),
                )
                conn.commit()

                self.logger.info(f"Created source {cursor.lastrowid}: {source.feed_url}")
                return cursor.lastrowid

        except sqlite3.IntegrityError as e:
            raise DatabaseError(
                f"Source with feed URL {source.feed_url} already exists",
                error_code=ErrorCode.DATABASE_CONSTRAINT,
                recoverable=False,
            ) from e
        except sqlite3.Error as e:
            self.logger.error(f"Failed to create source: {e}")
            raise DatabaseError(
                f"Failed to create source: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

    def get_source(self, source_id: int) -> Optional[RssSource]:
        row = self.db.execute_one("SELECT * FROM rss_sources WHERE id = ?", (source_id,))
        return self._row_to_source(row) if row else None

    def get_source_by_feed_url(self, feed_url: str) -> Optional[RssSource]:
        row = self.db.execute_one(
            "SELECT * FROM rss_sources WHERE feed_url = ?", (feed_url,)
        )
        return self._row_to_source(row) if row else None

    def list_sources(self, active_only: bool = False) -> List[RssSource]:
        """All sources ordered by name."""
        if active_only:
            rows = self.db.execute_query(
                "SELECT * FROM rss_sources WHERE is_active = 1 ORDER BY name"
            )
        else:
            rows = self.db.execute_query("SELECT * FROM rss_sources ORDER BY name")
        return [self._row_to_source(row) for row in rows]

    def get_due_sources(
        self,
        limit: int,
        stale_minutes: int = 30,
        max_errors: int = 5,
        now: Optional[datetime] = None,
    ) -> List[RssSource]:
        """Select sources that are eligible for fetching.

        A source is due when it is active, has fewer than ``max_errors``
        consecutive failures, and was never fetched or was last fetched
        more than ``stale_minutes`` ago. Never-fetched sources come first,
        then the longest-idle ones.

        Args:
            limit: Maximum number of sources to return
            stale_minutes: Minimum idle time before a re-fetch
            max_errors: Error count at which a source is excluded
            now: Reference time (defaults to current UTC time)

        Returns:
            Due sources in scheduling order
        """
        cutoff = to_db_timestamp((now or utc_now()) - timedelta(minutes=stale_minutes))

        try:
            rows = self.db.execute_query(
                """
                SELECT * FROM rss_sources
                WHERE is_active = 1
                  AND error_count < ?
                  AND (last_fetched_at IS NULL OR last_fetched_at < ?)
                ORDER BY last_fetched_at IS NOT NULL, last_fetched_at ASC, id ASC
                LIMIT ?
            """,
                (max_errors, cutoff, limit),
            )
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to select due sources: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

        return [self._row_to_source(row) for row in rows]

    def mark_success(self, source_id: int) -> bool:
        """Record a clean fetch: clears the error streak."""
        now = to_db_timestamp(utc_now())
        return self._update_health(
            """
            UPDATE rss_sources
            SET last_fetched_at = ?, error_count = 0, last_error = NULL, updated_at = ?
            WHERE id = ?
        """,
            (now, now, source_id),
        )

    def mark_failure(self, source_id: int, message: str) -> bool:
        """Record a failed fetch and extend the error streak."""
        now = to_db_timestamp(utc_now())
        return self._update_health(
            """
            UPDATE rss_sources
            SET last_fetched_at = ?, error_count = error_count + 1, last_error = ?, updated_at = ?
            WHERE id = ?
        """,
            (now, (message or "Unknown error")[:LAST_ERROR_MAX_LENGTH], now, source_id),
        )

    def reset_source_health(self, source_id: int) -> bool:
        """Operator reset that makes an excluded source schedulable again."""
        updated = self._update_health(
            """
            UPDATE rss_sources
            SET error_count = 0, last_error = NULL, updated_at = ?
            WHERE id = ?
        """,
            (to_db_timestamp(utc_now()), source_id),
        )
        if updated:
            self.logger.info(f"Reset health for source {source_id}")
        return updated

    def set_active(self, source_id: int, active: bool) -> bool:
        return self._update_health(
            "UPDATE rss_sources SET is_active = ?, updated_at = ? WHERE id = ?",
            (active, to_db_timestamp(utc_now()), source_id),
        )

    def _update_health(self, query: str, params: tuple) -> bool:
        try:
            return self.db.execute_update(query, params) > 0
        except sqlite3.Error as e:
            self.logger.error(f"Failed to update source health: {e}")
            raise DatabaseError(
                f"Failed to update source: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

    def _row_to_source(self, row) -> RssSource:
        return RssSource(
            id=row["id"],
            name=row["name"],
            feed_url=row["feed_url"],
            website_url=row["website_url"],
            language=row["language"],
            category=row["category"],
            is_active=bool(row["is_active"]),
            error_count=row["error_count"],
            last_fetched_at=row["last_fetched_at"],
            last_error=row["last_error"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

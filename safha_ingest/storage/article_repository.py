"""
Article Repository
==================

Deduplication and persistence gate for raw articles. Every lookup and
write uses bound parameters; feed content is attacker-controlled and is
never interpolated into SQL.
"""

import sqlite3
from typing import Dict, List, Optional

from ..database.connection import DatabaseConnection
from ..database.models import RawArticle, ArticleStatus, to_db_timestamp
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode


class ArticleRepository:
    """Repository for raw_articles rows."""

    def __init__(self, db_connection: DatabaseConnection):
        """Initialize article repository.

        Args:
            db_connection: Database connection manager
        """
        self.db = db_connection
        self.logger = get_logger_for_component("article_repository")

    def exists_by_url(self, url: str) -> bool:
        row = self.db.execute_one(
            "SELECT 1 FROM raw_articles WHERE original_url = ? LIMIT 1", (url,)
        )
        return row is not None

    def exists_by_hash(self, content_hash: str) -> bool:
        row = self.db.execute_one(
            "SELECT 1 FROM raw_articles WHERE content_hash = ? LIMIT 1", (content_hash,)
        )
        return row is not None

    def is_duplicate(self, url: str, content_hash: str) -> bool:
        """True when either the URL or the content hash is already stored."""
        try:
            return self.exists_by_url(url) or self.exists_by_hash(content_hash)
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Duplicate lookup failed: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

    def insert_if_new(self, article: RawArticle) -> bool:
        """Insert an article unless it already exists.

        A unique-constraint violation (a concurrent fetch won the race)
        counts as "already exists" rather than an error.

        Args:
            article: Article to persist with status pending

        Returns:
            True if a row was inserted, False if it already existed

        Raises:
            DatabaseError: For any database failure other than a duplicate
        """
        if self.is_duplicate(article.original_url, article.content_hash):
            self.logger.debug(f"Skipping existing article: {article.original_url}")
            return False

        try:
            with self.db.get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO raw_articles (
                        id, rss_source_id, guid, original_url, original_title,
                        original_content, original_description, full_content,
                        content_quality, extraction_method, image_url, video_url,
                        video_type, author, published_at, content_hash, status,
                        retry_count, fetched_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                    (
                        article.id,
                        article.rss_source_id,
                        article.guid,
                        article.original_url,
                        article.original_title,
                        article.original_content,
                        article.original_description,
                        article.full_content,
                        article.content_quality,
                        article.extraction_method,
                        article.image_url,
                        article.video_url,
                        article.video_type,
                        article.author,
                        to_db_timestamp(article.published_at),
                        article.content_hash,
                        ArticleStatus.PENDING.value,
                        0,
                        to_db_timestamp(article.fetched_at),
                    ),
                )
                conn.commit()
                return True

        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e).upper():
                self.logger.debug(
                    f"Article inserted concurrently, treating as existing: {article.original_url}"
                )
                return False
            raise DatabaseError(
                f"Failed to insert article: {e}", error_code=ErrorCode.DATABASE_CONSTRAINT
            ) from e
        except sqlite3.Error as e:
            self.logger.error(f"Failed to insert article {article.original_url}: {e}")
            raise DatabaseError(
                f"Failed to insert article: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

    def get_article(self, article_id: str) -> Optional[RawArticle]:
        row = self.db.execute_one("SELECT * FROM raw_articles WHERE id = ?", (article_id,))
        return self._row_to_article(row) if row else None

    def get_article_by_url(self, url: str) -> Optional[RawArticle]:
        row = self.db.execute_one(
            "SELECT * FROM raw_articles WHERE original_url = ?", (url,)
        )
        return self._row_to_article(row) if row else None

    def get_pending_articles(self, limit: int = 50) -> List[RawArticle]:
        """Oldest pending articles first, as the downstream stage consumes them."""
        rows = self.db.execute_query(
            """
            SELECT * FROM raw_articles
            WHERE status = ?
            ORDER BY fetched_at ASC
            LIMIT ?
        """,
            (ArticleStatus.PENDING.value, limit),
        )
        return [self._row_to_article(row) for row in rows]

    def find_missing_content(self, limit: int) -> List[RawArticle]:
        """Pending articles with no extracted body, newest first."""
        rows = self.db.execute_query(
            """
            SELECT * FROM raw_articles
            WHERE status = ? AND full_content IS NULL
            ORDER BY fetched_at DESC
            LIMIT ?
        """,
            (ArticleStatus.PENDING.value, limit),
        )
        return [self._row_to_article(row) for row in rows]

    def find_missing_images(self, limit: int) -> List[RawArticle]:
        """Articles with no lead image, newest first."""
        rows = self.db.execute_query(
            """
            SELECT * FROM raw_articles
            WHERE image_url IS NULL
            ORDER BY fetched_at DESC
            LIMIT ?
        """,
            (limit,),
        )
        return [self._row_to_article(row) for row in rows]

    def update_full_content(
        self,
        article_id: str,
        full_content: str,
        content_quality: float,
        extraction_method: str,
    ) -> bool:
        return self._execute_update(
            """
            UPDATE raw_articles
            SET full_content = ?, content_quality = ?, extraction_method = ?
            WHERE id = ?
        """,
            (full_content, round(content_quality, 2), extraction_method, article_id),
        )

    def update_media(
        self,
        article_id: str,
        image_url: Optional[str] = None,
        video_url: Optional[str] = None,
        video_type: Optional[str] = None,
    ) -> bool:
        """Fill in media columns that are still empty; existing values win."""
        return self._execute_update(
            """
            UPDATE raw_articles
            SET image_url = COALESCE(image_url, ?),
                video_url = COALESCE(video_url, ?),
                video_type = CASE WHEN video_url IS NULL THEN ? ELSE video_type END
            WHERE id = ?
        """,
            (image_url, video_url, video_type if video_url else None, article_id),
        )

    def count_by_status(self) -> Dict[str, int]:
        rows = self.db.execute_query(
            "SELECT status, COUNT(*) AS total FROM raw_articles GROUP BY status"
        )
        return {row["status"]: row["total"] for row in rows}

    def count_for_source(self, source_id: int) -> int:
        row = self.db.execute_one(
            "SELECT COUNT(*) AS total FROM raw_articles WHERE rss_source_id = ?",
            (source_id,),
        )
        return row["total"] if row else 0

    def _execute_update(self, query: str, params: tuple) -> bool:
        try:
            return self.db.execute_update(query, params) > 0
        except sqlite3.Error as e:
            self.logger.error(f"Failed to update article: {e}")
            raise DatabaseError(
                f"Failed to update article: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

    def _row_to_article(self, row) -> RawArticle:
        return RawArticle(
            id=row["id"],
            rss_source_id=row["rss_source_id"],
            guid=row["guid"],
            original_url=row["original_url"],
            original_title=row["original_title"],
            original_content=row["original_content"],
            original_description=row["original_description"],
            full_content=row["full_content"],
            content_quality=row["content_quality"] or 0.0,
            extraction_method=row["extraction_method"],
            image_url=row["image_url"],
            video_url=row["video_url"],
            video_type=row["video_type"],
            author=row["author"],
            published_at=row["published_at"],
            content_hash=row["content_hash"],
            status=row["status"],
            retry_count=row["retry_count"],
            error_message=row["error_message"],
            fetched_at=row["fetched_at"],
            processed_at=row["processed_at"],
        )

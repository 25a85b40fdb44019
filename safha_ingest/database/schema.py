"""
Safha Ingest Database Schema
============================

SQLite schema for the ingestion pipeline:
- rss_sources: configured feeds and their fetch health
- raw_articles: deduplicated articles awaiting downstream summarization

Uniqueness of ``original_url`` and ``content_hash`` is the final arbiter
of deduplication when concurrent fetches race.
"""

import sqlite3
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

ARTICLE_STATUSES = ("pending", "processing", "processed", "failed", "duplicate", "rejected")
VIDEO_TYPES = ("mp4", "youtube", "vimeo", "dailymotion")


class DatabaseSchema:
    """Schema manager for the ingestion database."""

    EXPECTED_TABLES = {"rss_sources", "raw_articles"}

    def __init__(self, db_path: str = "data/safha_ingest.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all tables and indexes."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("PRAGMA foreign_keys = ON")

            self._create_rss_sources_table(conn)
            self._create_raw_articles_table(conn)
            self._create_indexes(conn)

            conn.commit()
            logger.info("Database schema created successfully")

    def _create_rss_sources_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS rss_sources (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                feed_url TEXT NOT NULL UNIQUE,
                website_url TEXT,
                language TEXT NOT NULL DEFAULT 'ar' CHECK (language IN ('ar', 'en')),
                category TEXT,
                is_active BOOLEAN NOT NULL DEFAULT 1,
                last_fetched_at TIMESTAMP,
                error_count INTEGER NOT NULL DEFAULT 0,
                last_error TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

    def _create_raw_articles_table(self, conn: sqlite3.Connection) -> None:
        statuses = ", ".join(f"'{s}'" for s in ARTICLE_STATUSES)
        video_types = ", ".join(f"'{v}'" for v in VIDEO_TYPES)
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS raw_articles (
                id TEXT PRIMARY KEY,
                rss_source_id INTEGER NOT NULL,
                guid TEXT NOT NULL,
                original_url TEXT NOT NULL UNIQUE,
                original_title TEXT NOT NULL,
                original_content TEXT,
                original_description TEXT,
                full_content TEXT,
                content_quality REAL NOT NULL DEFAULT 0 CHECK (content_quality BETWEEN 0.0 AND 1.0),
                extraction_method TEXT,
                image_url TEXT,
                video_url TEXT,
                video_type TEXT CHECK (video_type IS NULL OR video_type IN ({video_types})),
                author TEXT,
                published_at TIMESTAMP,
                content_hash TEXT NOT NULL UNIQUE,
                status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ({statuses})),
                retry_count INTEGER NOT NULL DEFAULT 0,
                error_message TEXT,
                fetched_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                processed_at TIMESTAMP,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (rss_source_id) REFERENCES rss_sources(id) ON DELETE CASCADE,
                UNIQUE(rss_source_id, guid)
            )
        """
        )

    def _create_indexes(self, conn: sqlite3.Connection) -> None:
        indexes = [
            "CREATE INDEX IF NOT EXISTS idx_sources_due ON rss_sources(is_active, error_count, last_fetched_at)",
            "CREATE INDEX IF NOT EXISTS idx_raw_articles_status ON raw_articles(status)",
            "CREATE INDEX IF NOT EXISTS idx_raw_articles_source ON raw_articles(rss_source_id)",
            "CREATE INDEX IF NOT EXISTS idx_raw_articles_fetched ON raw_articles(fetched_at)",
        ]

        for index_sql in indexes:
            conn.execute(index_sql)

    def drop_tables(self) -> None:
        """Drop all tables (for testing/reset purposes)."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("DROP TABLE IF EXISTS raw_articles")
            conn.execute("DROP TABLE IF EXISTS rss_sources")
            conn.commit()
            logger.info("All database tables dropped")

    def verify_schema(self) -> bool:
        """Check that every expected table exists and foreign keys hold."""
        try:
            with sqlite3.connect(self.db_path) as conn:
                tables = {
                    row[0]
                    for row in conn.execute(
                        "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'"
                    ).fetchall()
                }

                missing = self.EXPECTED_TABLES - tables
                if missing:
                    logger.error(f"Missing tables: {sorted(missing)}")
                    return False

                violations = conn.execute("PRAGMA foreign_key_check").fetchall()
                if violations:
                    logger.error(f"Foreign key violations found: {len(violations)}")
                    return False

                logger.info("Database schema verification passed")
                return True

        except sqlite3.Error as e:
            logger.error(f"Schema verification failed: {e}")
            return False

"""
Safha Ingest Database Connection Management
===========================================

Pooled SQLite connections with transaction helpers. Uniqueness of
ingested articles is enforced by the schema, so concurrent source
fetches share this pool without any in-process locking of their own.
"""

import sqlite3
import threading
import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Generator, Any, List, Dict
from queue import Queue, Empty, Full

logger = logging.getLogger(__name__)

MANAGED_TABLES = ("rss_sources", "raw_articles")


class DatabaseConnection:
    """Thread-safe SQLite connection manager with pooling."""

    def __init__(self, db_path: str = "data/safha_ingest.db", pool_size: int = 5):
        """Initialize database connection manager.

        Args:
            db_path: Path to SQLite database file
            pool_size: Maximum number of idle connections kept in the pool
        """
        self.db_path = Path(db_path)
        self.pool_size = pool_size
        self.pool: Queue = Queue(maxsize=pool_size)
        self.lock = threading.Lock()
        self._total_connections = 0

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        for _ in range(self.pool_size):
            self.pool.put(self._create_connection())

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_path,
            check_same_thread=False,
            timeout=30.0,
        )

        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
        conn.execute("PRAGMA temp_store = MEMORY")
        conn.row_factory = sqlite3.Row

        with self.lock:
            self._total_connections += 1

        logger.debug(f"Created database connection #{self._total_connections}")
        return conn

    def _release(self, conn: sqlite3.Connection) -> None:
        try:
            self.pool.put_nowait(conn)
        except Full:
            conn.close()
            with self.lock:
                self._total_connections -= 1

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Borrow a connection from the pool, returning it afterwards.

        Usage:
            with db.get_connection() as conn:
                rows = conn.execute("SELECT * FROM rss_sources").fetchall()
        """
        start_time = time.time()

        try:
            conn = self.pool.get(timeout=10.0)
        except Empty:
            logger.warning("Connection pool exhausted, creating new connection")
            conn = self._create_connection()

        acquisition_time = time.time() - start_time
        if acquisition_time > 1.0:
            logger.warning(f"Database connection acquisition took {acquisition_time:.2f}s")

        try:
            yield conn
        except sqlite3.Error as e:
            logger.error(f"Database connection error: {e}")
            conn.rollback()
            raise
        finally:
            self._release(conn)

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """Run statements in one IMMEDIATE transaction.

        Commits on success and rolls back when the block raises.
        """
        with self.get_connection() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
                yield conn
                conn.commit()
            except Exception as e:
                conn.rollback()
                logger.error(f"Transaction rolled back due to error: {e}")
                raise

    def execute_query(self, query: str, params: tuple = ()) -> List[sqlite3.Row]:
        """Execute a SELECT query and return all rows."""
        with self.get_connection() as conn:
            return conn.execute(query, params).fetchall()

    def execute_one(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        """Execute a query and return the first row or None."""
        with self.get_connection() as conn:
            return conn.execute(query, params).fetchone()

    def execute_update(self, query: str, params: tuple = ()) -> int:
        """Execute an INSERT/UPDATE/DELETE and return the affected row count."""
        with self.get_connection() as conn:
            cursor = conn.execute(query, params)
            conn.commit()
            return cursor.rowcount

    def get_database_info(self) -> Dict[str, Any]:
        """Size and row counts for the managed tables."""
        with self.get_connection() as conn:
            page_count = conn.execute("PRAGMA page_count").fetchone()[0]
            page_size = conn.execute("PRAGMA page_size").fetchone()[0]

            table_counts = {}
            for table in MANAGED_TABLES:
                try:
                    # Table names come from MANAGED_TABLES, never from input
                    table_counts[table] = conn.execute(
                        f"SELECT COUNT(*) FROM {table}"
                    ).fetchone()[0]
                except sqlite3.OperationalError:
                    table_counts[table] = 0

            return {
                'database_size_mb': page_count * page_size / (1024 * 1024),
                'table_counts': table_counts,
                'connection_pool_size': self.pool.qsize(),
                'total_connections': self._total_connections,
            }

    def close_all_connections(self) -> None:
        """Close all idle connections in the pool."""
        logger.debug("Closing all database connections")

        while True:
            try:
                conn = self.pool.get_nowait()
            except Empty:
                break
            conn.close()

        with self.lock:
            self._total_connections = 0


_db_manager: Optional[DatabaseConnection] = None


def get_db_manager(db_path: Optional[str] = None, pool_size: Optional[int] = None) -> DatabaseConnection:
    """Get global database manager instance (singleton pattern).

    Args:
        db_path: Path to database file (defaults to settings)
        pool_size: Pool size (defaults to settings)

    Returns:
        Database connection manager instance
    """
    global _db_manager

    if _db_manager is None:
        if db_path is None or pool_size is None:
            from ..config.settings import get_settings
            settings = get_settings()
            db_path = db_path or settings.database.path
            pool_size = pool_size or settings.database.pool_size
        _db_manager = DatabaseConnection(db_path, pool_size)

    return _db_manager

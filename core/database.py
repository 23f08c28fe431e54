"""
Database Module - SQLite-based storage for timers
=================================================

This module provides the persistent storage behind the sqlite timer
backend:
- Cooldown and permit timer rows keyed by digest
- Expiry lookups and cleanup of expired rows
- Thread-local connections with WAL mode
"""

import sqlite3
from pathlib import Path
from typing import Optional
from contextlib import contextmanager
import threading

from .exceptions import DatabaseError
from .logging import get_logger

logger = get_logger("core.database")


class Database:
    """
    SQLite database manager for the bot.

    Provides thread-safe database operations with one connection per
    thread and automatic schema creation.

    Attributes:
        db_path (str): Path to SQLite database file
        lock (threading.Lock): Thread lock for concurrent writes
    """

    def __init__(self, db_path: str):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file

        Raises:
            DatabaseError: If database cannot be initialized
        """
        self.db_path = db_path
        self.lock = threading.Lock()
        self._local = threading.local()

        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()

    def _get_connection(self) -> sqlite3.Connection:
        """
        Get thread-local database connection.

        Returns:
            sqlite3.Connection: Database connection for current thread
        """
        if getattr(self._local, "connection", None) is None:
            self._local.connection = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                timeout=30.0
            )
            self._local.connection.row_factory = sqlite3.Row
            # Enable WAL mode for better concurrent access
            self._local.connection.execute("PRAGMA journal_mode = WAL")
        return self._local.connection

    @contextmanager
    def transaction(self):
        """
        Context manager for database transactions.

        Provides automatic commit on success and rollback on error.

        Yields:
            sqlite3.Connection: Database connection

        Example:
            with db.transaction() as conn:
                conn.execute("DELETE FROM timers WHERE ...")
        """
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception as e:
            conn.rollback()
            raise DatabaseError(f"Transaction failed: {e}")

    def _init_schema(self) -> None:
        """
        Initialize database schema.

        Raises:
            DatabaseError: If schema creation fails
        """
        schema_sql = """
        -- Timers table: cooldown and permit expiries keyed by digest
        CREATE TABLE IF NOT EXISTS timers (
            id TEXT PRIMARY KEY,
            expires_at REAL NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_timers_expires ON timers(expires_at);
        """

        try:
            with self.transaction() as conn:
                conn.executescript(schema_sql)
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to initialize database schema: {e}")

    # === Timer Operations ===

    def set_timer(self, timer_id: str, expires_at: float) -> None:
        """
        Store a timer, replacing any earlier expiry for the same ID.

        Args:
            timer_id: Timer key
            expires_at: Expiry as unix timestamp

        Raises:
            DatabaseError: If the write fails
        """
        with self.lock:
            with self.transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO timers (id, expires_at) VALUES (?, ?)
                    ON CONFLICT(id) DO UPDATE SET expires_at = excluded.expires_at
                    """,
                    (timer_id, expires_at)
                )

    def get_timer(self, timer_id: str) -> Optional[float]:
        """
        Get the stored expiry of a timer.

        Returns:
            Expiry as unix timestamp or None when no row exists
        """
        try:
            row = self._get_connection().execute(
                "SELECT expires_at FROM timers WHERE id = ?",
                (timer_id,)
            ).fetchone()
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to get timer: {e}", {"id": timer_id})

        return row["expires_at"] if row else None

    def delete_expired_timers(self, now: float) -> int:
        """
        Remove timers that expired at or before `now`.

        Returns:
            Number of deleted rows
        """
        with self.lock:
            with self.transaction() as conn:
                cursor = conn.execute("DELETE FROM timers WHERE expires_at <= ?", (now,))
                return cursor.rowcount

    def count_timers(self) -> int:
        """Return the number of stored timer rows."""
        row = self._get_connection().execute("SELECT COUNT(*) AS n FROM timers").fetchone()
        return row["n"]

    def close(self) -> None:
        """Close the connection of the current thread."""
        if getattr(self._local, "connection", None) is not None:
            self._local.connection.close()
            self._local.connection = None


def init_database(db_path: str) -> Database:
    """
    Initialize and return a database instance.

    Args:
        db_path: Path to SQLite database file

    Returns:
        Database instance
    """
    logger.info("Opening timer database", extra={"path": db_path})
    return Database(db_path)

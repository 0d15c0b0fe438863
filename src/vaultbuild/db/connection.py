"""SQLite connection layer with optional sqlite-vec extension."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

import sqlite_vec

logger = logging.getLogger(__name__)


class Database:
    """Snapshot SQLite database, with sqlite-vec vector search when loadable.

    The connection runs in autocommit mode (``isolation_level=None``) so the
    snapshot builder controls its single ``BEGIN … COMMIT`` explicitly.
    """

    def __init__(self, db_path: Path | str, *, load_vectors: bool = True) -> None:
        """Store the database path. Call connect() to open the connection.

        Args:
            db_path: Path to the SQLite database file (created if missing).
            load_vectors: Try to load sqlite-vec on connect.
        """
        self.db_path = Path(db_path)
        self.load_vectors = load_vectors
        self.vectors_available = False
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Open a connection, try to load sqlite-vec, and return the connection."""
        conn = sqlite3.connect(self.db_path, isolation_level=None)
        conn.row_factory = sqlite3.Row
        if self.load_vectors:
            self.vectors_available = _load_sqlite_vec(conn)
        conn.execute("PRAGMA foreign_keys = ON")
        # Snapshot ships as one self-contained file: no -wal/-shm sidecars.
        conn.execute("PRAGMA journal_mode = DELETE")
        return conn

    def __enter__(self) -> sqlite3.Connection:
        """Open the database and return the connection (context manager support)."""
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *args: object) -> None:
        """Close the connection when leaving the context manager."""
        if self._conn:
            self._conn.close()
            self._conn = None


def _load_sqlite_vec(conn: sqlite3.Connection) -> bool:
    """Load sqlite-vec into *conn*; return False if this SQLite build can't."""
    try:
        conn.enable_load_extension(True)
        sqlite_vec.load(conn)
        conn.enable_load_extension(False)
    except (AttributeError, sqlite3.OperationalError) as exc:
        logger.warning("sqlite-vec unavailable, snapshot will have no vector table: %s", exc)
        return False
    return True

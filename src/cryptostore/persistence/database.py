"""
SQLite Storage Backend

Keys live in a single table keyed by name. Uniqueness is enforced by the
primary key and replace() is a single UPDATE, so both are atomic at the
database level.
"""

import os
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Generator, List, Optional
import threading
import structlog

from ..errors import DuplicateName, NotFound
from .models import EncryptedRecord
from .storage import Storage

logger = structlog.get_logger()

# Schema version for migrations
SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS keys (
    name TEXT PRIMARY KEY,
    salt BLOB NOT NULL,
    ciphertext BLOB NOT NULL,
    public_key BLOB NOT NULL,
    tag INTEGER NOT NULL,
    algorithm TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);
"""


class SqliteStorage(Storage):
    """
    SQLite-backed key storage.

    Usage:
        storage = SqliteStorage("sqlite:///keys.db")
        storage.put(record)
    """

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or os.environ.get(
            "DATABASE_URL",
            "sqlite:///cryptostore.db"
        )
        self._path = self._get_sqlite_path()
        self._uri = False
        if self._path == ":memory:":
            # Thread-local connections must all see the same in-memory database
            self._path = f"file:cryptostore-{uuid.uuid4().hex}?mode=memory&cache=shared"
            self._uri = True
        self._local = threading.local()
        self._lock = threading.Lock()
        self._keepalive: Optional[sqlite3.Connection] = None
        self.initialize()

    def _get_sqlite_path(self) -> str:
        """Extract SQLite file path from URL."""
        if self.database_url.startswith("sqlite:///"):
            return self.database_url[10:]
        raise ValueError(f"Unsupported database URL: {self.database_url}")

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self._path,
            check_same_thread=False,
            timeout=30.0,
            uri=self._uri,
        )
        conn.row_factory = sqlite3.Row
        if not self._uri:
            # Enable WAL mode for better concurrency
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=FULL")
        return conn

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection (thread-safe)."""
        if getattr(self._local, 'conn', None) is None:
            self._local.conn = self._connect()

        try:
            yield self._local.conn
            self._local.conn.commit()
        except Exception:
            self._local.conn.rollback()
            raise

    def initialize(self) -> None:
        """Initialize database schema."""
        with self._lock:
            if self._uri and self._keepalive is None:
                # A shared in-memory database lives as long as one connection does
                self._keepalive = self._connect()

            with self.connection() as conn:
                conn.executescript(SCHEMA_SQL)
                now = datetime.now(timezone.utc).isoformat()
                conn.execute(
                    "INSERT OR IGNORE INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (SCHEMA_VERSION, now)
                )

        logger.info("database_initialized", url=self.database_url[:20] + "...")

    def execute(self, query: str, params: tuple = ()) -> List[Dict[str, Any]]:
        """Execute a query and return results as list of dicts."""
        with self.connection() as conn:
            cursor = conn.execute(query, params)
            if cursor.description:
                return [dict(row) for row in cursor.fetchall()]
            return []

    def put(self, record: EncryptedRecord) -> None:
        try:
            self.execute(
                """INSERT INTO keys
                   (name, salt, ciphertext, public_key, tag, algorithm, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                record.to_db_tuple()
            )
        except sqlite3.IntegrityError:
            raise DuplicateName(record.name)
        logger.debug("storage_put", backend="sqlite", name=record.name)

    def get(self, name: str) -> EncryptedRecord:
        results = self.execute("SELECT * FROM keys WHERE name = ?", (name,))
        if not results:
            raise NotFound(name)
        return EncryptedRecord.from_row(results[0])

    def replace(self, record: EncryptedRecord) -> None:
        with self.connection() as conn:
            cursor = conn.execute(
                """UPDATE keys
                   SET salt = ?, ciphertext = ?, public_key = ?, tag = ?, algorithm = ?, updated_at = ?
                   WHERE name = ?""",
                (
                    record.salt,
                    record.ciphertext,
                    record.info.public_key,
                    record.info.tag,
                    record.info.algorithm,
                    record.updated_at,
                    record.name,
                )
            )
            if cursor.rowcount == 0:
                raise NotFound(record.name)
        logger.debug("storage_replaced", backend="sqlite", name=record.name)

    def delete(self, name: str) -> None:
        with self.connection() as conn:
            cursor = conn.execute("DELETE FROM keys WHERE name = ?", (name,))
            if cursor.rowcount == 0:
                raise NotFound(name)
        logger.debug("storage_deleted", backend="sqlite", name=name)

    def list(self) -> List[EncryptedRecord]:
        return [EncryptedRecord.from_row(r) for r in self.execute("SELECT * FROM keys")]

    def close(self) -> None:
        """Close database connections."""
        if getattr(self._local, 'conn', None) is not None:
            self._local.conn.close()
            self._local.conn = None
        if self._keepalive is not None:
            self._keepalive.close()
            self._keepalive = None

"""SQLite connection factory and unit-of-work boundaries.

Each mutating operation runs inside :meth:`Database.unit_of_work`, which
opens a fresh connection and issues ``BEGIN IMMEDIATE``.  The immediate
transaction takes the database write lock *before* the first read, so the
negotiation row and its latest offer are read from the same snapshot that
the writes land on.  A concurrent writer blocks (up to ``busy_timeout``)
until the first commits, then re-reads and observes the new state.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import closing, contextmanager
from datetime import UTC, datetime
from pathlib import Path

import structlog

from negotiation_engine.audit.store import init_audit_tables
from negotiation_engine.storage.schema import init_schema

logger = structlog.get_logger()


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(tz=UTC)


class Database:
    """File-backed SQLite database shared by concurrent request handlers.

    Connections are never shared between units of work; SQLite's own locking
    provides mutual exclusion between them.

    Args:
        path: Path to the SQLite database file.  ``:memory:`` is not
              supported because every unit of work opens its own connection.
        busy_timeout_ms: How long a writer waits for the lock before failing.
    """

    def __init__(self, path: Path | str, busy_timeout_ms: int = 5000) -> None:
        self._path = Path(path)
        self._busy_timeout_ms = busy_timeout_ms

    @property
    def path(self) -> Path:
        return self._path

    def connect(self) -> sqlite3.Connection:
        """Open a connection in autocommit mode with foreign keys enforced.

        Transactions are managed explicitly by :meth:`unit_of_work` and
        :meth:`snapshot`.
        """
        conn = sqlite3.connect(
            str(self._path),
            timeout=self._busy_timeout_ms / 1000,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        conn.execute(f"PRAGMA busy_timeout={int(self._busy_timeout_ms)}")
        return conn

    def initialize(self) -> None:
        """Create the database file, switch to WAL mode and create all tables."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with closing(self.connect()) as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            init_schema(conn)
            init_audit_tables(conn)
        logger.info("Database initialized", path=str(self._path))

    @contextmanager
    def unit_of_work(self) -> Iterator[sqlite3.Connection]:
        """Run a block as one atomic, write-locked transaction.

        Commits when the block exits normally and rolls back on any
        exception, which is then re-raised.

        Yields:
            A connection with an open ``BEGIN IMMEDIATE`` transaction.
        """
        with closing(self.connect()) as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    @contextmanager
    def snapshot(self) -> Iterator[sqlite3.Connection]:
        """Run read-only queries against one consistent snapshot.

        Yields:
            A connection with an open deferred transaction.
        """
        with closing(self.connect()) as conn:
            conn.execute("BEGIN")
            try:
                yield conn
            finally:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")

    def ping(self) -> None:
        """Execute ``SELECT 1``; raises ``sqlite3.Error`` if the database is unusable."""
        with closing(self.connect()) as conn:
            conn.execute("SELECT 1")

"""SQLite connection wrapper with nestable, explicit transactions.

The orchestrator commits a ledger append, a stage transition and an
approval change as one unit, while the individual stores also work on their
own.  ``Database.transaction()`` nests: only the outermost block issues
``BEGIN IMMEDIATE`` / ``COMMIT`` (or ``ROLLBACK`` on error).
"""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any


class Database:
    """A shared SQLite connection guarded by a re-entrant lock.

    Args:
        conn: An open connection created with ``isolation_level=None`` so that
              transactions are controlled explicitly.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0

    @property
    def connection(self) -> sqlite3.Connection:
        """Return the underlying connection."""
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed block in a transaction, joining an outer one if open.

        Yields:
            The underlying connection.
        """
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self._conn.execute("BEGIN IMMEDIATE")
            self._depth += 1
            try:
                yield self._conn
            except BaseException:
                self._depth -= 1
                if outermost:
                    self._conn.execute("ROLLBACK")
                raise
            else:
                self._depth -= 1
                if outermost:
                    self._conn.execute("COMMIT")

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        """Execute a single statement outside any explicit transaction block."""
        with self._lock:
            return self._conn.execute(sql, params)

    def fetchone(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        """Execute a query and return its first row, or ``None``."""
        with self._lock:
            row: sqlite3.Row | None = self._conn.execute(sql, params).fetchone()
            return row

    def fetchall(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        """Execute a query and return all rows."""
        with self._lock:
            return list(self._conn.execute(sql, params).fetchall())

    def close(self) -> None:
        """Close the underlying connection."""
        with self._lock:
            self._conn.close()


def open_database(db_path: Path | str) -> Database:
    """Open (creating if needed) a database with WAL mode and foreign keys on.

    Args:
        db_path: Path to the SQLite file, or ``":memory:"``.

    Returns:
        A ``Database`` whose connection may be used from any thread.
    """
    conn = sqlite3.connect(str(db_path), isolation_level=None, check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return Database(conn)

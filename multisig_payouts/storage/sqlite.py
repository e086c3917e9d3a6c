"""
SQLite connection & migrations runner for the payout service.

- `Database(path)` owns the file path and hands out one connection per thread.
- Applies the idempotent schema bundled at `storage/schema.sql` via
  `Database.run_migrations()`.
- Sets sane PRAGMAs for web workloads (WAL, busy_timeout, foreign_keys).

Writers that read-then-write (vote insert + threshold recompute) use
`transaction()`, which opens with BEGIN IMMEDIATE so the write lock is taken
up front and concurrent writers serialize instead of racing.
"""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from importlib.resources import files as pkg_files
from pathlib import Path
from typing import Iterator, Optional, Union

from ..logging import get_logger

log = get_logger(__name__)


def _configure_connection(conn: sqlite3.Connection) -> None:
    conn.row_factory = sqlite3.Row
    # WAL for concurrency; NORMAL is a good latency/durability tradeoff
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA foreign_keys=ON;")
    conn.execute("PRAGMA temp_store=MEMORY;")
    conn.execute("PRAGMA busy_timeout=5000;")  # 5s


def _schema_sql_text() -> str:
    """
    Load the baseline schema SQL bundled at:
      multisig_payouts/storage/schema.sql
    The schema MUST be idempotent (CREATE ... IF NOT EXISTS).
    """
    resource = pkg_files("multisig_payouts.storage").joinpath("schema.sql")
    return resource.read_text(encoding="utf-8")


class Database:
    """
    Thread-local SQLite connections to a single database file.

        db = Database(settings.storage.db_path)
        db.run_migrations()
        with db.transaction() as conn:
            conn.execute("INSERT ...")
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser().resolve()
        self._tlocal = threading.local()

    def _open_connection(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            self.path.as_posix(),
            check_same_thread=False,  # safely used across threads with our thread-local
            isolation_level=None,  # autocommit by default; explicit transactions when needed
        )
        _configure_connection(conn)
        return conn

    def connection(self) -> sqlite3.Connection:
        """Get the current thread's connection, opening it if needed."""
        conn: Optional[sqlite3.Connection] = getattr(self._tlocal, "conn", None)
        if conn is None:
            conn = self._open_connection()
            self._tlocal.conn = conn
        return conn

    def close(self) -> None:
        """Close and clear the thread-local connection, if any."""
        conn: Optional[sqlite3.Connection] = getattr(self._tlocal, "conn", None)
        if conn is not None:
            try:
                conn.close()
            finally:
                self._tlocal.conn = None

    @contextmanager
    def transaction(self, *, immediate: bool = True) -> Iterator[sqlite3.Connection]:
        """
        Explicit transaction; commits on success, rolls back on exception.

        ``immediate=True`` takes the write lock at BEGIN so a read made inside
        the block cannot be invalidated by another writer before COMMIT.
        """
        db = self.connection()
        db.execute("BEGIN IMMEDIATE;" if immediate else "BEGIN;")
        try:
            yield db
        except BaseException:
            db.execute("ROLLBACK;")
            raise
        db.execute("COMMIT;")

    def run_migrations(self) -> None:
        """
        Apply the bundled schema. Safe to call multiple times (idempotent).

        executescript() manages its own transaction, so it runs outside
        `transaction()`.
        """
        conn = self.connection()
        conn.executescript(_schema_sql_text())
        columns = {r[1] for r in conn.execute("PRAGMA table_info(signatory_votes);").fetchall()}
        if "on_chain" not in columns:
            with self.transaction() as db:
                db.execute("ALTER TABLE signatory_votes ADD COLUMN on_chain INTEGER NOT NULL DEFAULT 0;")
                db.execute("UPDATE signatory_votes SET on_chain = 1 WHERE tx_hash IS NOT NULL;")
        log.info("migrations_applied", db_path=str(self.path))

    def ping(self) -> bool:
        try:
            self.connection().execute("SELECT 1;").fetchone()
        except sqlite3.Error:
            return False
        return True


__all__ = ["Database"]

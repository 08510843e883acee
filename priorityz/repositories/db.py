# Rev 0.7.0

"""SQLite connection, transactions & migration runner (Rev 0.7.0)
- One connection per thread, WAL mode, foreign_keys=ON, autocommit (we issue BEGIN ourselves)
- transaction() opens BEGIN IMMEDIATE so read-check-write sequences hold the write lock;
  a thread only ever joins a transaction it opened itself
- Applies SQL files in priorityz/data/migrations in lexical order
- Tracks applied files in schema_migrations(filename TEXT PRIMARY KEY, applied_at UTC)
"""
from __future__ import annotations
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from datetime import datetime, timezone
from typing import Iterator, List


from ..utils.logging_setup import get_logger
from ..utils.paths import DB_PATH, MIGRATIONS_DIR, ensure_dirs


log = get_logger("db")


class Database:
    def __init__(self, path: Path | str = DB_PATH, *, busy_timeout_ms: int = 5000) -> None:
        self.path = Path(path)
        if str(path) != ":memory:":
            if self.path == DB_PATH:
                ensure_dirs()
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._target = str(path)
        self._busy_timeout_ms = int(busy_timeout_ms)
        self._local = threading.local()
        self._lock = threading.Lock()
        self._open: List[sqlite3.Connection] = []
        self.conn.execute("PRAGMA journal_mode=WAL;")
        self.conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_migrations (filename TEXT PRIMARY KEY, applied_at TEXT NOT NULL)"
        )
        log.info("SQLite open %s", path)

    def _connect(self) -> sqlite3.Connection:
        # check_same_thread=False only so close() can reap other threads' handles
        conn = sqlite3.connect(self._target, isolation_level=None, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON;")
        conn.execute(f"PRAGMA busy_timeout={self._busy_timeout_ms};")
        with self._lock:
            self._open.append(conn)
        log.debug("SQLite connection for thread %s", threading.get_ident())
        return conn

    @property
    def conn(self) -> sqlite3.Connection:
        """The calling thread's connection, opened on first use."""
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = self._local.conn = self._connect()
        return conn

    def close(self) -> None:
        with self._lock:
            conns, self._open = self._open, []
        for conn in conns:
            conn.close()
        self._local = threading.local()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        BEGIN IMMEDIATE … COMMIT, rolling back on any exception.
        A nested call on the same thread joins the open transaction; other
        threads use their own connection and wait on SQLite's write lock.
        """
        conn = self.conn
        if conn.in_transaction:
            yield conn
            return
        conn.execute("BEGIN IMMEDIATE;")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK;")
            raise
        else:
            conn.execute("COMMIT;")

    def applied(self) -> set[str]:
        rows = self.conn.execute("SELECT filename FROM schema_migrations").fetchall()
        return {r[0] for r in rows}

    def apply_sql(self, sql: str) -> None:
        self.conn.executescript(sql)

    def run_migrations(self, migrations_dir: Path = MIGRATIONS_DIR) -> list[str]:
        applied = self.applied()
        to_apply = [p for p in sorted(Path(migrations_dir).glob("*.sql")) if p.name not in applied]
        for p in to_apply:
            sql = p.read_text(encoding="utf-8")
            self.apply_sql(sql)
            self.conn.execute(
                "INSERT INTO schema_migrations(filename, applied_at) VALUES(?, ?)",
                (p.name, datetime.now(timezone.utc).isoformat()),
            )
            log.info("Applied migration %s", p.name)
        return [p.name for p in to_apply]

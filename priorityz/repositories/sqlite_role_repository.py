# Rev 0.7.0
# priorityZ – SQLiteRoleRepository
# Role lookup over the users table; identity itself lives outside this package.

from __future__ import annotations
import sqlite3
from typing import Any, Dict, List, Optional


class SQLiteRoleRepository:
    """
    Thin wrapper around the 'users' table.
    Expected schema (minimum): users(id INTEGER PRIMARY KEY, name TEXT, role TEXT)
    """

    def __init__(self, db):
        self._db = db

    # --- public API ---------------------------------------------------------

    def role_for(self, user_id: int) -> Optional[str]:
        row = self._conn().execute("SELECT role FROM users WHERE id = ?;", (user_id,)).fetchone()
        return row[0] if row else None

    def add_user(self, name: str, role: str = "MEMBER", email: Optional[str] = None) -> int:
        cur = self._conn().execute(
            "INSERT INTO users(name, email, role) VALUES (?, ?, ?);",
            (name, email, role.upper()),
        )
        return int(cur.lastrowid)

    def list_users(self) -> List[Dict[str, Any]]:
        rows = self._conn().execute("SELECT id, name, email, role FROM users ORDER BY id;").fetchall()
        return [dict(zip(("id", "name", "email", "role"), r)) for r in rows]

    # --- internals ----------------------------------------------------------

    def _conn(self) -> sqlite3.Connection:
        if isinstance(self._db, sqlite3.Connection):
            return self._db
        if hasattr(self._db, "conn") and isinstance(self._db.conn, sqlite3.Connection):
            return self._db.conn
        raise RuntimeError("Database handle does not expose a sqlite3.Connection via .conn.")

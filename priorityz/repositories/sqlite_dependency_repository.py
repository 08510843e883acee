# Rev 0.7.0 — schema Rev 0.7.0 alignment
from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Any, List, Optional, Tuple, Union

from ..errors import DuplicateDependencyError, InvalidEstimateError, SelfDependencyError
from ..models.entities import DependencyEdge, PertEstimate
from ..models.types import DependencyKind
from ..utils.clock import to_iso


class SQLiteDependencyRepository:
    """
    Read/append task dependency edges and PERT estimates.

    Schema expectation (Rev 0.7.0):

      task_dependencies(
        id INTEGER PRIMARY KEY,
        task_id INTEGER NOT NULL,
        depends_on_task_id INTEGER NOT NULL,
        kind TEXT NOT NULL,            -- PRECEDES | FOLLOWS
        created_at_utc TEXT NOT NULL,
        UNIQUE(task_id, depends_on_task_id, kind)
      )

      pert_estimates(
        task_id INTEGER PRIMARY KEY,
        optimistic REAL, most_likely REAL, pessimistic REAL,
        updated_at_utc TEXT NOT NULL
      )
    """

    def __init__(self, db_or_conn: Union[sqlite3.Connection, Any]):
        self._db_or_conn = db_or_conn

    # -------------------------
    # Connection handling
    # -------------------------
    def _conn(self) -> sqlite3.Connection:
        if isinstance(self._db_or_conn, sqlite3.Connection):
            return self._db_or_conn
        if hasattr(self._db_or_conn, "conn") and isinstance(self._db_or_conn.conn, sqlite3.Connection):
            return self._db_or_conn.conn
        raise RuntimeError(
            "SQLiteDependencyRepository: could not obtain sqlite3.Connection "
            "(expected .conn on wrapper, or a raw Connection)."
        )

    @staticmethod
    def _row_to_edge(row: Union[sqlite3.Row, Tuple]) -> DependencyEdge:
        return DependencyEdge(
            id=row[0],
            task_id=row[1],
            depends_on_task_id=row[2],
            kind=DependencyKind(row[3]),
        )

    # -------------------------
    # Edges
    # -------------------------
    def get_edge(self, edge_id: int) -> Optional[DependencyEdge]:
        row = self._conn().execute(
            "SELECT id, task_id, depends_on_task_id, kind FROM task_dependencies WHERE id = ?",
            (edge_id,),
        ).fetchone()
        return self._row_to_edge(row) if row else None

    def edges_touching(self, task_id: int) -> List[DependencyEdge]:
        """Every edge where the task appears on either end."""
        rows = self._conn().execute(
            """
            SELECT id, task_id, depends_on_task_id, kind
            FROM task_dependencies
            WHERE task_id = ? OR depends_on_task_id = ?
            ORDER BY id
            """,
            (task_id, task_id),
        ).fetchall()
        return [self._row_to_edge(r) for r in rows]

    def upstream_edges(self, task_id: int) -> List[DependencyEdge]:
        """Edges whose predecessor must finish before `task_id` starts."""
        return [e for e in self.edges_touching(task_id) if e.successor_id == task_id]

    def edges_for_project(self, project_id: int) -> List[DependencyEdge]:
        """Edges with at least one endpoint in the project, cross-project links included."""
        rows = self._conn().execute(
            """
            SELECT d.id, d.task_id, d.depends_on_task_id, d.kind
            FROM task_dependencies d
            JOIN tasks t ON t.id = d.task_id
            JOIN tasks u ON u.id = d.depends_on_task_id
            WHERE t.project_id = ? OR u.project_id = ?
            ORDER BY d.id
            """,
            (project_id, project_id),
        ).fetchall()
        return [self._row_to_edge(r) for r in rows]

    def all_edges(self) -> List[DependencyEdge]:
        rows = self._conn().execute(
            "SELECT id, task_id, depends_on_task_id, kind FROM task_dependencies ORDER BY id"
        ).fetchall()
        return [self._row_to_edge(r) for r in rows]

    def add_edge(
        self,
        task_id: int,
        depends_on_task_id: int,
        kind: DependencyKind,
        *,
        now: datetime,
    ) -> DependencyEdge:
        if task_id == depends_on_task_id:
            raise SelfDependencyError(f"task {task_id} cannot depend on itself")
        try:
            cur = self._conn().execute(
                """
                INSERT INTO task_dependencies(task_id, depends_on_task_id, kind, created_at_utc)
                VALUES (?, ?, ?, ?)
                """,
                (task_id, depends_on_task_id, kind.value, to_iso(now)),
            )
        except sqlite3.IntegrityError as exc:
            if "UNIQUE" in str(exc):
                raise DuplicateDependencyError(
                    f"dependency {task_id} -> {depends_on_task_id} ({kind.value}) already exists"
                ) from exc
            raise
        return DependencyEdge(int(cur.lastrowid), task_id, depends_on_task_id, kind)

    def delete_edge(self, edge_id: int) -> bool:
        cur = self._conn().execute("DELETE FROM task_dependencies WHERE id = ?", (edge_id,))
        return cur.rowcount > 0

    # -------------------------
    # PERT
    # -------------------------
    def get_estimate(self, task_id: int) -> Optional[PertEstimate]:
        row = self._conn().execute(
            "SELECT task_id, optimistic, most_likely, pessimistic FROM pert_estimates WHERE task_id = ?",
            (task_id,),
        ).fetchone()
        return PertEstimate(row[0], row[1], row[2], row[3]) if row else None

    def estimates_for_project(self, project_id: int) -> dict[int, PertEstimate]:
        rows = self._conn().execute(
            """
            SELECT p.task_id, p.optimistic, p.most_likely, p.pessimistic
            FROM pert_estimates p
            JOIN tasks t ON t.id = p.task_id
            WHERE t.project_id = ?
            """,
            (project_id,),
        ).fetchall()
        return {r[0]: PertEstimate(r[0], r[1], r[2], r[3]) for r in rows}

    def upsert_estimate(self, estimate: PertEstimate, *, now: datetime) -> PertEstimate:
        """One estimate per task; saving again replaces it."""
        try:
            self._conn().execute(
                """
                INSERT INTO pert_estimates(task_id, optimistic, most_likely, pessimistic, updated_at_utc)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(task_id) DO UPDATE SET
                    optimistic = excluded.optimistic,
                    most_likely = excluded.most_likely,
                    pessimistic = excluded.pessimistic,
                    updated_at_utc = excluded.updated_at_utc
                """,
                (estimate.task_id, estimate.optimistic, estimate.most_likely,
                 estimate.pessimistic, to_iso(now)),
            )
        except sqlite3.IntegrityError as exc:
            raise InvalidEstimateError(str(exc)) from exc
        return estimate

# Rev 0.7.0
from __future__ import annotations

import sqlite3
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from ..errors import (
    EntityNotFoundError,
    InvalidDateWindowError,
    RankCollisionError,
    StaleEntityError,
    ValidationError,
)
from ..models.entities import DateWindow, Module, PrioritizedEntity, Project, Task
from ..models.types import DEFAULT_QUADRANT, EntityType, PriorityQuadrant, QUADRANT_ORDER, TaskStatus
from ..utils.clock import from_iso, to_iso

_TABLES = {
    EntityType.PROJECT: "projects",
    EntityType.MODULE: "modules",
    EntityType.TASK: "tasks",
}

_COMMON_COLS = (
    "id, name, description, priority_quadrant, priority_rank, start_date, end_date, "
    "has_time_dependencies, created_at_utc, updated_at_utc"
)

_SELECT = {
    EntityType.PROJECT: f"SELECT {_COMMON_COLS} FROM projects",
    EntityType.MODULE: f"SELECT {_COMMON_COLS}, project_id FROM modules",
    EntityType.TASK: f"SELECT {_COMMON_COLS}, project_id, module_id, status FROM tasks",
}


def _iso_date(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d else None


def _parse_date(s: Optional[str]) -> Optional[date]:
    return date.fromisoformat(s) if s else None


class SQLiteEntityRepository:
    """
    Entity store for projects, modules and tasks.

    Every table carries priority_quadrant + priority_rank, UNIQUE per quadrant,
    and an optional date window. Ranks are handed in by the caller (see
    PriorityOrderingService); this repository only records the highest rank
    issued per (entity_type, quadrant) in rank_counters.
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
            "SQLiteEntityRepository: could not obtain sqlite3.Connection "
            "(expected .conn on wrapper, or a raw Connection)."
        )

    @staticmethod
    def _row_to_entity(entity_type: EntityType, row: sqlite3.Row) -> PrioritizedEntity:
        common = dict(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            quadrant=PriorityQuadrant(row["priority_quadrant"]),
            rank=row["priority_rank"],
            start_date=_parse_date(row["start_date"]),
            end_date=_parse_date(row["end_date"]),
            has_time_dependencies=bool(row["has_time_dependencies"]),
            created_at=from_iso(row["created_at_utc"]),
        )
        if entity_type is EntityType.MODULE:
            return Module(project_id=row["project_id"], **common)
        if entity_type is EntityType.TASK:
            return Task(
                project_id=row["project_id"],
                module_id=row["module_id"],
                status=TaskStatus(row["status"]),
                **common,
            )
        return Project(**common)

    # -------------------------
    # Reads
    # -------------------------
    def get(self, entity_type: EntityType | str, entity_id: int) -> Optional[PrioritizedEntity]:
        et = EntityType.parse(entity_type)
        row = self._conn().execute(f"{_SELECT[et]} WHERE id = ?", (entity_id,)).fetchone()
        return self._row_to_entity(et, row) if row else None

    def require(self, entity_type: EntityType | str, entity_id: int) -> PrioritizedEntity:
        entity = self.get(entity_type, entity_id)
        if entity is None:
            raise EntityNotFoundError(f"{EntityType.parse(entity_type).value} {entity_id} not found")
        return entity

    def list_by_container(
        self,
        entity_type: EntityType | str,
        *,
        project_id: Optional[int] = None,
        module_id: Optional[int] = None,
    ) -> List[PrioritizedEntity]:
        et = EntityType.parse(entity_type)
        where, params = [], []
        if project_id is not None:
            where.append("id = ?" if et is EntityType.PROJECT else "project_id = ?")
            params.append(project_id)
        if module_id is not None:
            if et is not EntityType.TASK:
                raise ValueError("module_id filter only applies to tasks")
            where.append("module_id = ?")
            params.append(module_id)
        sql = _SELECT[et]
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY id"
        return [self._row_to_entity(et, r) for r in self._conn().execute(sql, params).fetchall()]

    def rank_holder(self, entity_type: EntityType | str, quadrant: PriorityQuadrant, rank: int) -> Optional[int]:
        et = EntityType.parse(entity_type)
        row = self._conn().execute(
            f"SELECT id FROM {_TABLES[et]} WHERE priority_quadrant = ? AND priority_rank = ?",
            (quadrant.value, rank),
        ).fetchone()
        return int(row[0]) if row else None

    def max_rank(self, entity_type: EntityType | str, quadrant: PriorityQuadrant) -> int:
        et = EntityType.parse(entity_type)
        row = self._conn().execute(
            f"SELECT MAX(priority_rank) FROM {_TABLES[et]} WHERE priority_quadrant = ?",
            (quadrant.value,),
        ).fetchone()
        return int(row[0]) if row and row[0] is not None else 0

    def quadrant_counts(self, entity_type: EntityType | str, *, project_id: Optional[int] = None) -> Dict[PriorityQuadrant, int]:
        et = EntityType.parse(entity_type)
        sql = f"SELECT priority_quadrant, COUNT(1) FROM {_TABLES[et]}"
        params: list = []
        if project_id is not None:
            sql += " WHERE " + ("id = ?" if et is EntityType.PROJECT else "project_id = ?")
            params.append(project_id)
        sql += " GROUP BY priority_quadrant"
        counts = {q: 0 for q in QUADRANT_ORDER}
        for quadrant, n in self._conn().execute(sql, params).fetchall():
            counts[PriorityQuadrant(quadrant)] = int(n)
        return counts

    # -------------------------
    # Rank counters
    # -------------------------
    def last_issued_rank(self, entity_type: EntityType | str, quadrant: PriorityQuadrant) -> int:
        et = EntityType.parse(entity_type)
        row = self._conn().execute(
            "SELECT last_rank FROM rank_counters WHERE entity_type = ? AND quadrant = ?",
            (et.value, quadrant.value),
        ).fetchone()
        return int(row[0]) if row else 0

    def record_issued_rank(self, entity_type: EntityType | str, quadrant: PriorityQuadrant, rank: int) -> None:
        et = EntityType.parse(entity_type)
        self._conn().execute(
            """
            INSERT INTO rank_counters(entity_type, quadrant, last_rank) VALUES (?, ?, ?)
            ON CONFLICT(entity_type, quadrant)
            DO UPDATE SET last_rank = MAX(last_rank, excluded.last_rank)
            """,
            (et.value, quadrant.value, rank),
        )

    # -------------------------
    # Commands
    # -------------------------
    def create(
        self,
        entity_type: EntityType | str,
        *,
        name: str,
        rank: int,
        now: datetime,
        quadrant: PriorityQuadrant = DEFAULT_QUADRANT,
        description: Optional[str] = None,
        window: DateWindow = DateWindow(),
        has_time_dependencies: bool = False,
        project_id: Optional[int] = None,
        module_id: Optional[int] = None,
        status: TaskStatus = TaskStatus.TODO,
    ) -> PrioritizedEntity:
        et = EntityType.parse(entity_type)
        window.check(has_time_dependencies)
        cols = ["name", "description", "priority_quadrant", "priority_rank", "start_date",
                "end_date", "has_time_dependencies", "created_at_utc", "updated_at_utc"]
        stamp = to_iso(now)
        vals: list = [name, description, quadrant.value, rank, _iso_date(window.start_date),
                      _iso_date(window.end_date), int(has_time_dependencies), stamp, stamp]
        if et is not EntityType.PROJECT:
            if project_id is None:
                raise ValueError(f"{et.value} requires project_id")
            self.require(EntityType.PROJECT, project_id)
            cols.append("project_id")
            vals.append(project_id)
        if et is EntityType.TASK:
            if module_id is not None:
                self.require(EntityType.MODULE, module_id)
            cols.extend(["module_id", "status"])
            vals.extend([module_id, status.value])

        try:
            cur = self._conn().execute(
                f"INSERT INTO {_TABLES[et]}({', '.join(cols)}) VALUES ({', '.join('?' * len(cols))})",
                vals,
            )
        except sqlite3.IntegrityError as exc:
            if "module_project_mismatch" in str(exc):
                raise ValidationError(f"module {module_id} does not belong to project {project_id}") from exc
            if "UNIQUE" in str(exc):
                raise RankCollisionError(f"rank {rank} in {quadrant.value} is already held") from exc
            raise
        self.record_issued_rank(et, quadrant, rank)
        return self.require(et, int(cur.lastrowid))

    def update_priority(
        self,
        entity_type: EntityType | str,
        entity_id: int,
        quadrant: PriorityQuadrant,
        rank: int,
        *,
        now: datetime,
    ) -> PrioritizedEntity:
        """Commit quadrant+rank. StaleEntityError if the row is gone or the slot is held."""
        et = EntityType.parse(entity_type)
        try:
            cur = self._conn().execute(
                f"""
                UPDATE {_TABLES[et]}
                SET priority_quadrant = ?, priority_rank = ?, updated_at_utc = ?
                WHERE id = ?
                """,
                (quadrant.value, rank, to_iso(now), entity_id),
            )
        except sqlite3.IntegrityError as exc:
            raise StaleEntityError(
                f"{et.value} {entity_id}: rank {rank} in {quadrant.value} is already held ({exc})"
            ) from exc
        if cur.rowcount == 0:
            raise StaleEntityError(f"{et.value} {entity_id} no longer exists")
        self.record_issued_rank(et, quadrant, rank)
        return self.require(et, entity_id)

    def update_window(
        self,
        entity_type: EntityType | str,
        entity_id: int,
        window: DateWindow,
        *,
        now: datetime,
        has_time_dependencies: Optional[bool] = None,
    ) -> PrioritizedEntity:
        et = EntityType.parse(entity_type)
        current = self.require(et, entity_id)
        htd = current.has_time_dependencies if has_time_dependencies is None else has_time_dependencies
        window.check(htd)
        try:
            self._conn().execute(
                f"""
                UPDATE {_TABLES[et]}
                SET start_date = ?, end_date = ?, has_time_dependencies = ?, updated_at_utc = ?
                WHERE id = ?
                """,
                (_iso_date(window.start_date), _iso_date(window.end_date), int(htd), to_iso(now), entity_id),
            )
        except sqlite3.IntegrityError as exc:
            raise InvalidDateWindowError(str(exc)) from exc
        return self.require(et, entity_id)

    def set_task_status(self, task_id: int, status: TaskStatus, *, now: datetime) -> Task:
        cur = self._conn().execute(
            "UPDATE tasks SET status = ?, updated_at_utc = ? WHERE id = ?",
            (status.value, to_iso(now), task_id),
        )
        if cur.rowcount == 0:
            raise EntityNotFoundError(f"TASK {task_id} not found")
        return self.require(EntityType.TASK, task_id)

    def delete(self, entity_type: EntityType | str, entity_id: int) -> bool:
        et = EntityType.parse(entity_type)
        cur = self._conn().execute(f"DELETE FROM {_TABLES[et]} WHERE id = ?", (entity_id,))
        return cur.rowcount > 0


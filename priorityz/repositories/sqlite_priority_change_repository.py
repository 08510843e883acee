# Rev 0.7.0
from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Any, Iterable, List, Optional, Tuple, Union

from ..errors import AlreadyReviewedError, RecordNotFoundError
from ..models.entities import PriorityChangeRecord
from ..models.types import ChangeStatus, EntityType, PriorityQuadrant
from ..utils.clock import from_iso, to_iso

_COLS = (
    "id, entity_type, entity_id, old_quadrant, new_quadrant, old_rank, new_rank, reason, "
    "requested_by, status, reviewed_by, created_at_utc, reviewed_at_utc"
)


class SQLitePriorityChangeRepository:
    """
    Append-only priority change log.

    Rows are inserted once and updated at most once (PENDING → APPROVED |
    REJECTED); schema triggers reject any other update and all deletes.
    Ordering is (created_at_utc, id); id is AUTOINCREMENT and never reused.
    """

    def __init__(self, db_or_conn: Union[sqlite3.Connection, Any]):
        self._db_or_conn = db_or_conn

    def _conn(self) -> sqlite3.Connection:
        if isinstance(self._db_or_conn, sqlite3.Connection):
            return self._db_or_conn
        if hasattr(self._db_or_conn, "conn") and isinstance(self._db_or_conn.conn, sqlite3.Connection):
            return self._db_or_conn.conn
        raise RuntimeError(
            "SQLitePriorityChangeRepository: could not obtain sqlite3.Connection "
            "(expected .conn on wrapper, or a raw Connection)."
        )

    @staticmethod
    def _row_to_record(row: Union[sqlite3.Row, Tuple]) -> PriorityChangeRecord:
        return PriorityChangeRecord(
            id=row[0],
            entity_type=EntityType(row[1]),
            entity_id=row[2],
            old_quadrant=PriorityQuadrant(row[3]),
            new_quadrant=PriorityQuadrant(row[4]),
            old_rank=row[5],
            new_rank=row[6],
            reason=row[7],
            requested_by=row[8],
            status=ChangeStatus(row[9]),
            reviewed_by=row[10],
            created_at=from_iso(row[11]),
            reviewed_at=from_iso(row[12]),
        )

    # -------------------------
    # Queries
    # -------------------------
    def get(self, record_id: int) -> Optional[PriorityChangeRecord]:
        row = self._conn().execute(
            f"SELECT {_COLS} FROM priority_change_log WHERE id = ?", (record_id,)
        ).fetchone()
        return self._row_to_record(row) if row else None

    def list_records(
        self,
        *,
        status: Optional[ChangeStatus] = None,
        entity_type: Optional[EntityType] = None,
        entity_id: Optional[int] = None,
        newest_first: bool = True,
        limit: Optional[int] = None,
    ) -> List[PriorityChangeRecord]:
        where, params = [], []
        if status is not None:
            where.append("status = ?")
            params.append(status.value)
        if entity_type is not None:
            where.append("entity_type = ?")
            params.append(entity_type.value)
        if entity_id is not None:
            where.append("entity_id = ?")
            params.append(entity_id)
        order = "DESC" if newest_first else "ASC"
        sql = f"SELECT {_COLS} FROM priority_change_log"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += f" ORDER BY created_at_utc {order}, id {order}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return [self._row_to_record(r) for r in self._conn().execute(sql, params).fetchall()]

    def list_for_entities(
        self,
        refs: Iterable[Tuple[EntityType, int]],
        *,
        limit: int = 10,
    ) -> List[PriorityChangeRecord]:
        """Newest records touching any of the (entity_type, entity_id) refs."""
        refs = list(refs)
        if not refs:
            return []
        clause = " OR ".join("(entity_type = ? AND entity_id = ?)" for _ in refs)
        params: list = [v for et, eid in refs for v in (et.value, eid)]
        params.append(limit)
        rows = self._conn().execute(
            f"""
            SELECT {_COLS} FROM priority_change_log
            WHERE {clause}
            ORDER BY created_at_utc DESC, id DESC
            LIMIT ?
            """,
            params,
        ).fetchall()
        return [self._row_to_record(r) for r in rows]

    # -------------------------
    # Commands
    # -------------------------
    def append(self, record: PriorityChangeRecord) -> PriorityChangeRecord:
        cur = self._conn().execute(
            """
            INSERT INTO priority_change_log(
              entity_type, entity_id, old_quadrant, new_quadrant, old_rank, new_rank,
              reason, requested_by, status, reviewed_by, created_at_utc, reviewed_at_utc
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.entity_type.value,
                record.entity_id,
                record.old_quadrant.value,
                record.new_quadrant.value,
                record.old_rank,
                record.new_rank,
                record.reason,
                record.requested_by,
                record.status.value,
                record.reviewed_by,
                to_iso(record.created_at),
                to_iso(record.reviewed_at) if record.reviewed_at else None,
            ),
        )
        return self.get(int(cur.lastrowid))

    def mark_reviewed(
        self,
        record_id: int,
        status: ChangeStatus,
        *,
        reviewed_by: int,
        reviewed_at: datetime,
        new_rank: Optional[int] = None,
    ) -> PriorityChangeRecord:
        """PENDING → status, exactly once. `new_rank` fills a rank left open at request time."""
        try:
            cur = self._conn().execute(
                """
                UPDATE priority_change_log
                SET status = ?, reviewed_by = ?, reviewed_at_utc = ?,
                    new_rank = COALESCE(?, new_rank)
                WHERE id = ? AND status = 'PENDING'
                """,
                (status.value, reviewed_by, to_iso(reviewed_at), new_rank, record_id),
            )
        except sqlite3.IntegrityError as exc:
            if "already_reviewed" in str(exc):
                raise AlreadyReviewedError(f"change request {record_id} has already been reviewed") from exc
            raise
        if cur.rowcount == 0:
            if self.get(record_id) is None:
                raise RecordNotFoundError(f"change request {record_id} not found")
            raise AlreadyReviewedError(f"change request {record_id} has already been reviewed")
        return self.get(record_id)

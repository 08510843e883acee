# Rev 0.7.0 — quadrant board + approval queue
from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from PySide6.QtCore import QObject, Signal

from ..errors import PriorityZError, StaleEntityError
from ..models.types import ChangeStatus, EntityType, QUADRANT_ORDER


def _row(item) -> Dict[str, Any]:
    """to_dict() with dates as ISO text, safe to carry through a Qt signal."""
    return {k: v.isoformat() if isinstance(v, date) else v for k, v in item.to_dict().items()}


class PriorityBoardViewModel(QObject):
    """
    Feeds a four-quadrant priority board and the pending-approval list.
    Engine errors are reported through errorRaised(code, message) instead of
    propagating into Qt slots.
    """
    boardReloaded = Signal(str, dict)          # entity_type, {quadrant: [row dicts]}
    pendingLoaded = Signal(list)               # [record dicts]
    changeSubmitted = Signal(dict, bool)       # record, needs_approval
    changeReviewed = Signal(dict, bool)        # record, applied
    errorRaised = Signal(str, str)             # code, message

    def __init__(self, ordering, workflow):
        super().__init__()
        self._ordering = ordering
        self._workflow = workflow
        self._entity_type = EntityType.TASK
        self._project_id: Optional[int] = None

    # ---- filters
    def set_scope(self, entity_type: EntityType | str, project_id: Optional[int] = None) -> None:
        self._entity_type = EntityType.parse(entity_type)
        self._project_id = project_id

    # ---- queries
    def reload(self) -> None:
        grouped = self._ordering.list_by_quadrant(self._entity_type, self._project_id)
        board: Dict[str, List[Dict[str, Any]]] = {
            q.value: [_row(e) for e in grouped[q]] for q in QUADRANT_ORDER
        }
        self.boardReloaded.emit(self._entity_type.value, board)

    def load_pending(self) -> None:
        records = self._workflow.list_requests(status=ChangeStatus.PENDING)
        self.pendingLoaded.emit([_row(r) for r in records])

    # ---- commands
    def request_change(
        self,
        *,
        entity_id: int,
        new_quadrant: str,
        requester: int,
        new_rank: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> bool:
        try:
            result = self._workflow.request_change(
                self._entity_type, entity_id, new_quadrant, new_rank, reason, requester=requester
            )
        except PriorityZError as exc:
            self.errorRaised.emit(exc.code, str(exc))
            return False
        self.changeSubmitted.emit(_row(result.record), result.needs_approval)
        if not result.needs_approval:
            self.reload()
        return True

    def review(self, *, record_id: int, decision: str, reviewer: int) -> bool:
        try:
            result = self._workflow.review(record_id, decision, reviewer=reviewer)
        except StaleEntityError as exc:
            # decision is recorded; only the apply step failed
            self.changeReviewed.emit(_row(exc.record), False)
            self.errorRaised.emit(exc.code, str(exc))
            self.load_pending()
            return False
        except PriorityZError as exc:
            self.errorRaised.emit(exc.code, str(exc))
            return False
        self.changeReviewed.emit(_row(result.record), result.applied)
        self.load_pending()
        if result.applied:
            self.reload()
        return True

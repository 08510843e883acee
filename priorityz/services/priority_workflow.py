# Rev 0.7.0

"""Priority change workflow (Rev 0.7.0)

Every request appends exactly one PriorityChangeRecord. Privileged requesters
are auto-approved and the entity is committed in the same transaction; others
leave a PENDING record for a privileged reviewer. A record leaves PENDING once
and never changes again.

    request_change ──privileged──▶ APPROVED (entity committed)
          │
          └──────────otherwise───▶ PENDING ──review(APPROVE)──▶ APPROVED (entity committed,
                                         │                            or StaleEntityError)
                                         └──review(REJECT)───▶ REJECTED

Concurrent approvals for one entity are last-writer-wins.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..errors import (
    AlreadyReviewedError,
    InvalidRankError,
    PermissionDeniedError,
    RankCollisionError,
    RecordNotFoundError,
    StaleEntityError,
)
from ..models.entities import PrioritizedEntity, PriorityChangeRecord
from ..models.types import ChangeStatus, EntityType, PriorityQuadrant, ReviewDecision
from ..utils.clock import Clock, utc_now
from ..utils.logging_setup import get_logger

log = get_logger("priority_workflow")


@dataclass(frozen=True)
class ChangeRequestResult:
    record: PriorityChangeRecord
    needs_approval: bool

    @property
    def message(self) -> str:
        if self.needs_approval:
            return "Priority change submitted for approval"
        return "Priority updated successfully"


@dataclass(frozen=True)
class ReviewResult:
    record: PriorityChangeRecord
    applied: bool
    entity: Optional[PrioritizedEntity] = None


def _check_rank(rank) -> int:
    if isinstance(rank, bool) or not isinstance(rank, int) or rank <= 0:
        raise InvalidRankError(f"rank must be a positive integer, got {rank!r}")
    return rank


class PriorityWorkflowEngine:
    def __init__(
        self,
        db,
        entities,
        changes,
        ordering,
        is_privileged: Callable[[int], bool],
        *,
        clock: Clock = utc_now,
    ):
        self._db = db
        self._entities = entities
        self._changes = changes
        self._ordering = ordering
        self._is_privileged = is_privileged
        self._clock = clock

    # -------------------------
    # Commands
    # -------------------------
    def request_change(
        self,
        entity_type: EntityType | str,
        entity_id: int,
        new_quadrant: PriorityQuadrant | str,
        new_rank: Optional[int] = None,
        reason: Optional[str] = None,
        *,
        requester: int,
    ) -> ChangeRequestResult:
        et = EntityType.parse(entity_type)
        quadrant = PriorityQuadrant.parse(new_quadrant)
        if new_rank is not None:
            _check_rank(new_rank)
        privileged = self._is_privileged(requester)

        with self._db.transaction():
            entity = self._entities.require(et, entity_id)
            if new_rank is not None:
                holder = self._entities.rank_holder(et, quadrant, new_rank)
                if holder is not None and holder != entity_id:
                    raise RankCollisionError(
                        f"rank {new_rank} in {quadrant.value} is held by {et.value} {holder}"
                    )
            now = self._clock()
            if privileged:
                rank = new_rank if new_rank is not None else self._ordering.next_rank(et, quadrant)
                record = self._changes.append(PriorityChangeRecord(
                    id=None, entity_type=et, entity_id=entity_id,
                    old_quadrant=entity.quadrant, new_quadrant=quadrant,
                    old_rank=entity.rank, new_rank=rank,
                    reason=reason, requested_by=requester,
                    status=ChangeStatus.APPROVED, reviewed_by=requester,
                    created_at=now, reviewed_at=now,
                ))
                self._entities.update_priority(et, entity_id, quadrant, rank, now=now)
            else:
                record = self._changes.append(PriorityChangeRecord(
                    id=None, entity_type=et, entity_id=entity_id,
                    old_quadrant=entity.quadrant, new_quadrant=quadrant,
                    old_rank=entity.rank, new_rank=new_rank,
                    reason=reason, requested_by=requester,
                    status=ChangeStatus.PENDING, created_at=now,
                ))

        if privileged:
            log.info("Change #%s auto-approved: %s %s → %s/%s by user %s",
                     record.id, et.value, entity_id, quadrant.value, record.new_rank, requester)
        else:
            log.info("Change #%s pending approval: %s %s → %s by user %s",
                     record.id, et.value, entity_id, quadrant.value, requester)
        return ChangeRequestResult(record=record, needs_approval=not privileged)

    def review(self, record_id: int, decision: ReviewDecision | str, *, reviewer: int) -> ReviewResult:
        decision = ReviewDecision.parse(decision)
        if not self._is_privileged(reviewer):
            raise PermissionDeniedError(f"user {reviewer} may not review priority changes")

        stale: Optional[str] = None
        entity: Optional[PrioritizedEntity] = None
        with self._db.transaction():
            record = self._changes.get(record_id)
            if record is None:
                raise RecordNotFoundError(f"change request {record_id} not found")
            if record.status is not ChangeStatus.PENDING:
                raise AlreadyReviewedError(
                    f"change request {record_id} has already been reviewed ({record.status.value})"
                )
            now = self._clock()

            if decision is ReviewDecision.REJECT:
                record = self._changes.mark_reviewed(
                    record_id, ChangeStatus.REJECTED, reviewed_by=reviewer, reviewed_at=now
                )
            else:
                et, quadrant = record.entity_type, record.new_quadrant
                rank = record.new_rank
                current = self._entities.get(et, record.entity_id)
                if current is None:
                    stale = f"{et.value} {record.entity_id} no longer exists"
                elif rank is None:
                    rank = self._ordering.next_rank(et, quadrant)
                record = self._changes.mark_reviewed(
                    record_id, ChangeStatus.APPROVED,
                    reviewed_by=reviewer, reviewed_at=now, new_rank=rank,
                )
                if stale is None:
                    try:
                        entity = self._entities.update_priority(et, record.entity_id, quadrant, rank, now=now)
                    except StaleEntityError as exc:
                        stale = str(exc)

        if stale is not None:
            log.warning("Change #%s approved by user %s but not applied: %s", record_id, reviewer, stale)
            raise StaleEntityError(stale, record=record)
        log.info("Change #%s %s by user %s", record_id, record.status.value.lower(), reviewer)
        return ReviewResult(record=record, applied=entity is not None, entity=entity)

    # -------------------------
    # Queries
    # -------------------------
    def get_record(self, record_id: int) -> PriorityChangeRecord:
        record = self._changes.get(record_id)
        if record is None:
            raise RecordNotFoundError(f"change request {record_id} not found")
        return record

    def list_requests(
        self,
        status: Optional[ChangeStatus | str] = None,
        entity_type: Optional[EntityType | str] = None,
    ) -> List[PriorityChangeRecord]:
        return self._changes.list_records(
            status=ChangeStatus.parse(status) if status else None,
            entity_type=EntityType.parse(entity_type) if entity_type else None,
        )

    def history(self, entity_type: EntityType | str, entity_id: int) -> List[PriorityChangeRecord]:
        return self._changes.list_records(
            entity_type=EntityType.parse(entity_type), entity_id=entity_id, newest_first=False
        )

    def priority_statistics(self, project_id: int, *, recent: int = 10) -> Dict[str, Any]:
        self._entities.require(EntityType.PROJECT, project_id)
        modules = self._entities.list_by_container(EntityType.MODULE, project_id=project_id)
        tasks = self._entities.list_by_container(EntityType.TASK, project_id=project_id)
        refs = [(EntityType.PROJECT, project_id)]
        refs += [(EntityType.MODULE, m.id) for m in modules]
        refs += [(EntityType.TASK, t.id) for t in tasks]
        return {
            "task_distribution": self._entities.quadrant_counts(EntityType.TASK, project_id=project_id),
            "module_distribution": self._entities.quadrant_counts(EntityType.MODULE, project_id=project_id),
            "recent_changes": self._changes.list_for_entities(refs, limit=recent),
        }

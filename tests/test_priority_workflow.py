# tests/test_priority_workflow.py
# Request/review lifecycle against the real schema.

from __future__ import annotations

import pytest

from priorityz.errors import (
    AlreadyReviewedError,
    EntityNotFoundError,
    InvalidDecisionError,
    InvalidQuadrantError,
    InvalidRankError,
    PermissionDeniedError,
    RankCollisionError,
    RecordNotFoundError,
    StaleEntityError,
    ValidationError,
)
from priorityz.models.types import ChangeStatus, EntityType, PriorityQuadrant, ReviewDecision

IU = PriorityQuadrant.IMPORTANT_URGENT
INU = PriorityQuadrant.IMPORTANT_NOT_URGENT
NIU = PriorityQuadrant.NOT_IMPORTANT_URGENT


@pytest.fixture()
def project(make):
    return make.project("Apollo")


@pytest.fixture()
def task(make, project):
    return make.task(project, "Launch", quadrant=IU)


def _current(ctx, entity):
    return ctx.entities.require(entity.entity_type, entity.id)


# --- request_change ---------------------------------------------------------

def test_member_request_stays_pending(ctx, users, task):
    result = ctx.workflow.request_change(EntityType.TASK, task.id, NIU, reason="can wait", requester=users["dev"])

    assert result.needs_approval
    assert result.message == "Priority change submitted for approval"
    rec = result.record
    assert rec.status is ChangeStatus.PENDING
    assert (rec.old_quadrant, rec.old_rank) == (IU, task.rank)
    assert rec.new_quadrant is NIU
    assert rec.new_rank is None
    assert rec.reviewed_by is None
    assert rec.reason == "can wait"

    current = _current(ctx, task)
    assert (current.quadrant, current.rank) == (IU, task.rank)


@pytest.mark.parametrize("who", ["admin", "pm"])
def test_privileged_request_applies_immediately(ctx, users, task, who):
    result = ctx.workflow.request_change("TASK", task.id, "NOT_IMPORTANT_URGENT", requester=users[who])

    assert not result.needs_approval
    assert result.message == "Priority updated successfully"
    rec = result.record
    assert rec.status is ChangeStatus.APPROVED
    assert rec.reviewed_by == users[who]
    assert rec.reviewed_at is not None
    assert rec.new_rank == 1

    current = _current(ctx, task)
    assert (current.quadrant, current.rank) == (NIU, 1)


def test_privileged_request_with_explicit_rank(ctx, users, task):
    result = ctx.workflow.request_change(EntityType.TASK, task.id, INU, 42, requester=users["pm"])
    assert result.record.new_rank == 42
    assert _current(ctx, task).rank == 42
    # the explicit rank raises the floor for the next issued rank
    assert ctx.ordering.next_rank(EntityType.TASK, INU) == 43


def test_unknown_user_is_not_privileged(ctx, task):
    result = ctx.workflow.request_change(EntityType.TASK, task.id, NIU, requester=9999)
    assert result.record.status is ChangeStatus.PENDING


def test_project_and_module_requests(ctx, users, make, project):
    module = make.module(project, "Core")
    ctx.workflow.request_change(EntityType.PROJECT, project.id, IU, requester=users["pm"])
    ctx.workflow.request_change(EntityType.MODULE, module.id, IU, requester=users["pm"])
    assert _current(ctx, project).quadrant is IU
    assert _current(ctx, module).quadrant is IU


@pytest.mark.parametrize("rank", [0, -3, 1.5, True, "2"])
def test_invalid_rank_rejected_without_record(ctx, users, task, rank):
    with pytest.raises(InvalidRankError):
        ctx.workflow.request_change(EntityType.TASK, task.id, NIU, rank, requester=users["pm"])
    assert ctx.workflow.history(EntityType.TASK, task.id) == []


def test_invalid_quadrant_rejected(ctx, users, task):
    with pytest.raises(InvalidQuadrantError):
        ctx.workflow.request_change(EntityType.TASK, task.id, "URGENT", requester=users["pm"])


def test_missing_entity_rejected(ctx, users):
    with pytest.raises(EntityNotFoundError):
        ctx.workflow.request_change(EntityType.TASK, 404, NIU, requester=users["pm"])
    assert ctx.workflow.list_requests() == []


def test_rank_held_by_another_entity_is_a_collision(ctx, users, make, project, task):
    other = make.task(project, "Other", quadrant=NIU)
    with pytest.raises(RankCollisionError):
        ctx.workflow.request_change(EntityType.TASK, task.id, NIU, other.rank, requester=users["dev"])
    assert ctx.workflow.history(EntityType.TASK, task.id) == []


def test_requesting_own_current_slot_is_allowed(ctx, users, task):
    result = ctx.workflow.request_change(EntityType.TASK, task.id, IU, task.rank, requester=users["pm"])
    assert result.record.status is ChangeStatus.APPROVED
    assert _current(ctx, task).rank == task.rank


# --- review -----------------------------------------------------------------

def test_move_is_applied_on_approval(ctx, users, make, project):
    for name in ("first", "second"):
        make.task(project, name, quadrant=IU)
    e = make.task(project, "E", quadrant=IU)
    assert (e.quadrant, e.rank) == (IU, 3)

    pending = ctx.workflow.request_change(EntityType.TASK, e.id, NIU, requester=users["dev"]).record
    assert pending.status is ChangeStatus.PENDING
    assert (_current(ctx, e).quadrant, _current(ctx, e).rank) == (IU, 3)

    result = ctx.workflow.review(pending.id, ReviewDecision.APPROVE, reviewer=users["pm"])

    assert result.applied
    assert result.record.status is ChangeStatus.APPROVED
    assert result.record.reviewed_by == users["pm"]
    after = _current(ctx, e)
    assert after.quadrant is NIU
    assert after.rank == result.record.new_rank == 1
    assert result.entity.id == e.id


def test_reject_leaves_entity_untouched(ctx, users, task):
    rec = ctx.workflow.request_change(EntityType.TASK, task.id, NIU, requester=users["dev"]).record
    result = ctx.workflow.review(rec.id, "reject", reviewer=users["admin"])

    assert not result.applied
    assert result.record.status is ChangeStatus.REJECTED
    assert result.record.reviewed_by == users["admin"]
    assert result.record.new_rank is None
    assert _current(ctx, task).quadrant is IU


def test_second_review_raises_and_changes_nothing(ctx, users, task):
    rec = ctx.workflow.request_change(EntityType.TASK, task.id, NIU, requester=users["dev"]).record
    first = ctx.workflow.review(rec.id, ReviewDecision.APPROVE, reviewer=users["pm"]).record

    with pytest.raises(AlreadyReviewedError):
        ctx.workflow.review(rec.id, ReviewDecision.REJECT, reviewer=users["admin"])

    again = ctx.workflow.get_record(rec.id)
    assert again == first
    assert _current(ctx, task).quadrant is NIU


def test_member_cannot_review(ctx, users, task):
    rec = ctx.workflow.request_change(EntityType.TASK, task.id, NIU, requester=users["dev"]).record
    with pytest.raises(PermissionDeniedError):
        ctx.workflow.review(rec.id, ReviewDecision.APPROVE, reviewer=users["dev"])
    assert ctx.workflow.get_record(rec.id).status is ChangeStatus.PENDING


def test_invalid_decision(ctx, users, task):
    rec = ctx.workflow.request_change(EntityType.TASK, task.id, NIU, requester=users["dev"]).record
    with pytest.raises(InvalidDecisionError):
        ctx.workflow.review(rec.id, "MAYBE", reviewer=users["pm"])


def test_review_unknown_record(ctx, users):
    with pytest.raises(RecordNotFoundError):
        ctx.workflow.review(12345, ReviewDecision.APPROVE, reviewer=users["pm"])
    with pytest.raises(RecordNotFoundError):
        ctx.workflow.get_record(12345)


def test_approval_of_deleted_entity_is_recorded_but_stale(ctx, users, task):
    rec = ctx.workflow.request_change(EntityType.TASK, task.id, NIU, requester=users["dev"]).record
    ctx.entities.delete(EntityType.TASK, task.id)

    with pytest.raises(StaleEntityError) as info:
        ctx.workflow.review(rec.id, ReviewDecision.APPROVE, reviewer=users["pm"])

    assert info.value.record.status is ChangeStatus.APPROVED
    stored = ctx.workflow.get_record(rec.id)
    assert stored.status is ChangeStatus.APPROVED
    assert stored.reviewed_by == users["pm"]


def test_approval_into_taken_slot_is_recorded_but_stale(ctx, users, make, project):
    a = make.task(project, "A")
    b = make.task(project, "B")
    rec = ctx.workflow.request_change(EntityType.TASK, a.id, IU, 7, requester=users["dev"]).record
    # someone else gets there first
    ctx.workflow.request_change(EntityType.TASK, b.id, IU, 7, requester=users["pm"])

    with pytest.raises(StaleEntityError):
        ctx.workflow.review(rec.id, ReviewDecision.APPROVE, reviewer=users["pm"])

    assert ctx.workflow.get_record(rec.id).status is ChangeStatus.APPROVED
    assert _current(ctx, a).quadrant is a.quadrant
    assert _current(ctx, b).rank == 7


def test_last_approved_writer_wins(ctx, users, task):
    r1 = ctx.workflow.request_change(EntityType.TASK, task.id, NIU, requester=users["dev"]).record
    r2 = ctx.workflow.request_change(EntityType.TASK, task.id, INU, requester=users["dev"]).record
    ctx.workflow.review(r2.id, ReviewDecision.APPROVE, reviewer=users["pm"])
    ctx.workflow.review(r1.id, ReviewDecision.APPROVE, reviewer=users["pm"])
    assert _current(ctx, task).quadrant is NIU


# --- queries ----------------------------------------------------------------

def test_history_is_chronological(ctx, users, task):
    ids = [
        ctx.workflow.request_change(EntityType.TASK, task.id, q, requester=users["dev"]).record.id
        for q in (NIU, INU, IU)
    ]
    history = ctx.workflow.history(EntityType.TASK, task.id)
    assert [r.id for r in history] == ids
    assert [r.created_at for r in history] == sorted(r.created_at for r in history)


def test_list_requests_filters(ctx, users, make, project, task):
    module = make.module(project)
    ctx.workflow.request_change(EntityType.TASK, task.id, NIU, requester=users["dev"])
    ctx.workflow.request_change(EntityType.MODULE, module.id, NIU, requester=users["dev"])
    ctx.workflow.request_change(EntityType.MODULE, module.id, IU, requester=users["pm"])

    assert len(ctx.workflow.list_requests()) == 3
    assert len(ctx.workflow.list_requests(status="pending")) == 2
    assert [r.entity_type for r in ctx.workflow.list_requests(status=ChangeStatus.PENDING, entity_type="MODULE")] == [
        EntityType.MODULE
    ]
    approved = ctx.workflow.list_requests(status=ChangeStatus.APPROVED)
    assert [r.entity_id for r in approved] == [module.id]


def test_list_requests_rejects_unknown_status(ctx):
    with pytest.raises(ValidationError) as exc:
        ctx.workflow.list_requests(status="CANCELLED")
    assert exc.value.code == "invalid"


def test_priority_statistics(ctx, users, make, project, task):
    make.task(project, "Other")
    make.module(project, quadrant=INU)
    ctx.workflow.request_change(EntityType.TASK, task.id, NIU, requester=users["pm"])

    stats = ctx.workflow.priority_statistics(project.id)
    assert stats["task_distribution"][NIU] == 1
    assert stats["task_distribution"][PriorityQuadrant.NOT_IMPORTANT_NOT_URGENT] == 1
    assert stats["task_distribution"][IU] == 0
    assert stats["module_distribution"][INU] == 1
    assert [r.entity_id for r in stats["recent_changes"]] == [task.id]

# tests/test_priority_ordering.py
from __future__ import annotations

import threading

import pytest

from priorityz.errors import RankCollisionError
from priorityz.models.types import EntityType, PriorityQuadrant, QUADRANT_ORDER

IU = PriorityQuadrant.IMPORTANT_URGENT
NIU = PriorityQuadrant.NOT_IMPORTANT_URGENT


def test_first_rank_is_one(ctx):
    assert ctx.ordering.next_rank(EntityType.TASK, IU) == 1


def test_next_rank_strictly_increasing(ctx):
    ranks = [ctx.ordering.next_rank(EntityType.MODULE, NIU) for _ in range(5)]
    assert ranks == sorted(set(ranks))
    assert ranks[0] == 1


def test_ranks_are_not_reissued_after_delete(ctx, make):
    project = make.project()
    tasks = [make.task(project, f"T{i}", quadrant=IU) for i in range(3)]
    assert [t.rank for t in tasks] == [1, 2, 3]

    ctx.entities.delete(EntityType.TASK, tasks[-1].id)
    assert ctx.ordering.next_rank(EntityType.TASK, IU) == 4

    ctx.entities.delete(EntityType.TASK, tasks[-2].id)
    replacement = make.task(project, "T-new", quadrant=IU)
    assert replacement.rank == 5


def test_ranks_are_independent_per_type_and_quadrant(ctx, make):
    project = make.project(quadrant=IU)
    task = make.task(project, quadrant=IU)
    other = make.task(project, quadrant=NIU)
    assert project.rank == 1
    assert task.rank == 1
    assert other.rank == 1


def test_quadrant_accepts_strings(ctx):
    assert ctx.ordering.next_rank("task", "important_urgent") == 1


def test_list_by_quadrant_contains_every_quadrant(ctx, make):
    project = make.project()
    make.task(project, quadrant=IU)
    grouped = ctx.ordering.list_by_quadrant(EntityType.TASK, project.id)
    assert list(grouped) == QUADRANT_ORDER
    assert len(grouped[IU]) == 1
    assert grouped[PriorityQuadrant.IMPORTANT_NOT_URGENT] == []


def test_list_by_quadrant_orders_by_rank(ctx, make, users):
    project = make.project()
    a = make.task(project, "A", quadrant=IU)
    b = make.task(project, "B", quadrant=IU)
    c = make.task(project, "C", quadrant=IU)
    ctx.workflow.request_change(EntityType.TASK, a.id, IU, 10, requester=users["pm"])

    grouped = ctx.ordering.list_by_quadrant(EntityType.TASK, project.id)
    assert [t.name for t in grouped[IU]] == ["B", "C", "A"]
    assert [t.id for t in grouped[IU]] == [b.id, c.id, a.id]


def test_list_by_quadrant_scopes_to_project(ctx, make):
    p1, p2 = make.project("P1"), make.project("P2")
    make.task(p1, "mine")
    make.task(p2, "theirs")
    names = [t.name for q in QUADRANT_ORDER for t in ctx.ordering.list_by_quadrant(EntityType.TASK, p1.id)[q]]
    assert names == ["mine"]
    everything = ctx.ordering.list_by_quadrant(EntityType.TASK)
    assert sum(len(v) for v in everything.values()) == 2


def test_store_rejects_duplicate_rank(ctx, make, clock):
    project = make.project()
    make.task(project, quadrant=IU)
    with pytest.raises(RankCollisionError):
        ctx.entities.create(EntityType.TASK, name="dup", rank=1, quadrant=IU,
                            project_id=project.id, now=clock())


def test_rank_from_another_thread_survives_foreign_rollback(ctx):
    issued = []
    worker = threading.Thread(target=lambda: issued.append(ctx.ordering.next_rank(EntityType.TASK, IU)))

    with pytest.raises(RuntimeError):
        with ctx.db.transaction():
            assert ctx.ordering.next_rank(EntityType.TASK, IU) == 1
            worker.start()
            worker.join(timeout=0.3)
            # waiting on the write lock, not running inside this transaction
            assert worker.is_alive()
            raise RuntimeError("roll back")
    worker.join(timeout=5)

    assert issued == [1]
    assert ctx.ordering.next_rank(EntityType.TASK, IU) == 2


def test_nested_transaction_on_same_thread_joins(ctx):
    with ctx.db.transaction() as outer:
        with ctx.db.transaction() as inner:
            assert inner is outer
        assert outer.in_transaction
    assert not ctx.db.conn.in_transaction

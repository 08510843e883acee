# Rev 0.7.0
"""
Task scheduling: dependency edges, PERT estimates, rescheduling and
project-level dependency analysis (critical path, chains, blocked tasks).
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from ..errors import (
    DependencyCycleError,
    DuplicateDependencyError,
    ScheduleConflictError,
    SelfDependencyError,
)
from ..models.entities import Conflict, DateWindow, DependencyEdge, PertEstimate, Task
from ..models.types import DependencyKind, EntityType, TaskStatus
from ..utils.clock import Clock, utc_now
from ..utils.logging_setup import get_logger
from .dependency_graph import CriticalPathResult, DependencyChain, DependencyGraph
from .pert import PertResult, estimate, expected_duration

log = get_logger("scheduling")


@dataclass(frozen=True)
class RescheduleResult:
    task: Task
    conflicts: List[Conflict]


class SchedulingService:
    def __init__(
        self,
        db,
        entities,
        dependencies,
        validator,
        *,
        clock: Clock = utc_now,
        completed_statuses: Iterable[str] = ("COMPLETED",),
        inactive_statuses: Iterable[str] = ("COMPLETED", "CANCELLED"),
    ):
        self._db = db
        self._entities = entities
        self._deps = dependencies
        self._validator = validator
        self._clock = clock
        self._completed = {TaskStatus(s) for s in completed_statuses}
        self._inactive = {TaskStatus(s) for s in inactive_statuses}

    # -------------------------
    # Edges
    # -------------------------
    def add_dependency(
        self,
        task_id: int,
        depends_on_task_id: int,
        kind: DependencyKind | str = DependencyKind.PRECEDES,
    ) -> DependencyEdge:
        kind = DependencyKind(str(getattr(kind, "value", kind)).upper())
        if task_id == depends_on_task_id:
            raise SelfDependencyError(f"task {task_id} cannot depend on itself")
        with self._db.transaction():
            self._entities.require(EntityType.TASK, task_id)
            self._entities.require(EntityType.TASK, depends_on_task_id)
            probe = DependencyEdge(None, task_id, depends_on_task_id, kind)
            graph = DependencyGraph(self._deps.all_edges())
            if graph.has_edge(probe.predecessor_id, probe.successor_id):
                raise DuplicateDependencyError(
                    f"task {probe.predecessor_id} already precedes task {probe.successor_id}"
                )
            cycle = graph.cycle_if_added(probe.predecessor_id, probe.successor_id)
            if cycle:
                log.warning("Rejected dependency %s → %s: cycle %s",
                            probe.predecessor_id, probe.successor_id, cycle)
                raise DependencyCycleError(
                    "Adding this dependency would create a circular dependency: "
                    + " → ".join(str(n) for n in cycle),
                    cycle,
                )
            edge = self._deps.add_edge(task_id, depends_on_task_id, kind, now=self._clock())
        log.info("Added dependency #%s: %s precedes %s", edge.id, edge.predecessor_id, edge.successor_id)
        return edge

    def remove_dependency(self, edge_id: int) -> bool:
        with self._db.transaction():
            edge = self._deps.get_edge(edge_id)
            if edge is None:
                return False
            self._deps.delete_edge(edge_id)
        log.info("Removed dependency #%s: %s precedes %s", edge_id, edge.predecessor_id, edge.successor_id)
        return True

    def dependencies_for(self, task_id: int) -> List[DependencyEdge]:
        self._entities.require(EntityType.TASK, task_id)
        return self._deps.edges_touching(task_id)

    # -------------------------
    # PERT
    # -------------------------
    def save_estimate(self, task_id: int, optimistic: float, most_likely: float, pessimistic: float) -> PertResult:
        result = estimate(optimistic, most_likely, pessimistic)
        with self._db.transaction():
            self._entities.require(EntityType.TASK, task_id)
            self._deps.upsert_estimate(
                PertEstimate(task_id, optimistic, most_likely, pessimistic), now=self._clock()
            )
        return result

    def get_estimate(self, task_id: int) -> Optional[PertResult]:
        est = self._deps.get_estimate(task_id)
        if est is None:
            return None
        return estimate(est.optimistic, est.most_likely, est.pessimistic)

    # -------------------------
    # Dates
    # -------------------------
    def reschedule(
        self,
        task_id: int,
        start_date: Optional[date],
        end_date: Optional[date] = None,
        *,
        enforce: bool = False,
        has_time_dependencies: Optional[bool] = None,
    ) -> RescheduleResult:
        """
        Validate and store a task's date window. With enforce=True any conflict
        aborts the write with ScheduleConflictError; otherwise conflicts are
        returned alongside the updated task for the caller to surface.
        """
        with self._db.transaction():
            task = self._entities.require(EntityType.TASK, task_id)
            conflicts = self._validator.validate(task, start_date, end_date)
            if conflicts and enforce:
                raise ScheduleConflictError(
                    f"task {task_id} has {len(conflicts)} schedule conflict(s)", conflicts
                )
            task = self._entities.update_window(
                EntityType.TASK, task_id, DateWindow(start_date, end_date),
                now=self._clock(), has_time_dependencies=has_time_dependencies,
            )
        return RescheduleResult(task=task, conflicts=conflicts)

    def set_status(self, task_id: int, status: TaskStatus | str) -> Task:
        status = TaskStatus(str(getattr(status, "value", status)).upper())
        with self._db.transaction():
            return self._entities.set_task_status(task_id, status, now=self._clock())

    # -------------------------
    # Project analysis
    # -------------------------
    def _project_graph(self, project_id: int) -> tuple[Dict[int, Task], DependencyGraph]:
        tasks, graph, _ = self._project_edges(project_id)
        return tasks, graph

    def _project_edges(self, project_id: int) -> tuple[Dict[int, Task], DependencyGraph, List[DependencyEdge]]:
        """Project tasks, the graph of edges internal to the project, and every touching edge."""
        self._entities.require(EntityType.PROJECT, project_id)
        tasks = {t.id: t for t in self._entities.list_by_container(EntityType.TASK, project_id=project_id)}
        touching = self._deps.edges_for_project(project_id)
        internal = [e for e in touching if e.predecessor_id in tasks and e.successor_id in tasks]
        return tasks, DependencyGraph(internal, nodes=tasks), touching

    def critical_path(self, project_id: int) -> CriticalPathResult:
        tasks, graph = self._project_graph(project_id)
        estimates = self._deps.estimates_for_project(project_id)
        durations = {tid: expected_duration(estimates.get(tid)) for tid in tasks}
        return graph.critical_path(durations)

    def dependency_chain(self, task_id: int, max_depth: Optional[int] = None) -> DependencyChain:
        self._entities.require(EntityType.TASK, task_id)
        return DependencyGraph(self._deps.all_edges()).chain(task_id, max_depth)

    def blocked_tasks(self, project_id: int) -> List[Dict[str, Any]]:
        tasks, graph = self._project_graph(project_id)
        out: List[Dict[str, Any]] = []
        for tid in sorted(tasks):
            task = tasks[tid]
            if task.status in self._inactive:
                continue
            blocking = [tasks[p] for p in graph.predecessors(tid) if tasks[p].status not in self._completed]
            if blocking:
                out.append({"task": task, "blocking": blocking})
        return out

    def available_tasks(self, project_id: int) -> List[Task]:
        tasks, graph = self._project_graph(project_id)
        out: List[Task] = []
        for tid in sorted(tasks):
            task = tasks[tid]
            if task.status in self._inactive:
                continue
            if all(tasks[p].status in self._completed for p in graph.predecessors(tid)):
                out.append(task)
        return out

    def dependency_stats(self, project_id: int) -> Dict[str, Any]:
        """Edge counts include links to tasks in other projects."""
        tasks, _, touching = self._project_edges(project_id)
        linked = {e.predecessor_id for e in touching} | {e.successor_id for e in touching}
        with_deps = [t for t in tasks if t in linked]
        total = len(tasks)
        return {
            "total_tasks": total,
            "tasks_with_dependencies": len(with_deps),
            "total_dependencies": len(touching),
            "blocked_tasks": len(self.blocked_tasks(project_id)),
            "dependency_ratio": (len(with_deps) / total) if total else 0.0,
        }

# Rev 0.7.0

"""Date-window validation across containment and task dependencies (Rev 0.7.0)

Advisory only: every rule is evaluated and the complete conflict list is
returned. An empty list means "validated, clean". Only malformed input raises.
"""
from __future__ import annotations

from datetime import date
from typing import Iterable, List, Optional

from ..models.entities import Conflict, DateWindow, Module, PrioritizedEntity, Project, Task
from ..models.types import ConflictScope, EntityType, TaskStatus
from ..utils.logging_setup import get_logger

log = get_logger("dependency_validator")


def _starts_before_container(proposed_start: Optional[date], container: Optional[PrioritizedEntity]) -> bool:
    return bool(
        proposed_start
        and container is not None
        and container.has_time_dependencies
        and container.start_date
        and proposed_start < container.start_date
    )


class DependencyValidator:
    def __init__(self, entities, dependencies, *, completed_statuses: Iterable[str] = ("COMPLETED",)):
        self._entities = entities
        self._deps = dependencies
        self._completed = {TaskStatus(s) for s in completed_statuses}

    def validate(
        self,
        task: Task,
        proposed_start: Optional[date],
        proposed_end: Optional[date] = None,
    ) -> List[Conflict]:
        DateWindow(proposed_start, proposed_end).check()
        conflicts: List[Conflict] = []

        # 1. module containment
        if task.module_id is not None:
            module = self._entities.get(EntityType.MODULE, task.module_id)
            if _starts_before_container(proposed_start, module):
                conflicts.append(Conflict(
                    ConflictScope.MODULE, module.id,
                    f"Task start date {proposed_start} is before module start date {module.start_date}",
                    module.name,
                ))

        # 2. project containment
        project = self._entities.get(EntityType.PROJECT, task.project_id)
        if _starts_before_container(proposed_start, project):
            conflicts.append(Conflict(
                ConflictScope.PROJECT, project.id,
                f"Task start date {proposed_start} is before project start date {project.start_date}",
                project.name,
            ))

        # 3. dependency precedence
        if task.id is not None and proposed_start:
            for edge in self._deps.upstream_edges(task.id):
                upstream = self._entities.get(EntityType.TASK, edge.predecessor_id)
                if upstream is None or upstream.status in self._completed or upstream.end_date is None:
                    continue
                if proposed_start < upstream.end_date:
                    conflicts.append(Conflict(
                        ConflictScope.DEPENDENCY, upstream.id,
                        f"Task start date {proposed_start} conflicts with dependency end date {upstream.end_date}",
                        upstream.name,
                    ))

        if conflicts:
            log.info("Task %s: %d schedule conflict(s) for start=%s", task.id, len(conflicts), proposed_start)
        return conflicts

    def validate_module(
        self,
        module: Module,
        proposed_start: Optional[date],
        proposed_end: Optional[date] = None,
    ) -> List[Conflict]:
        DateWindow(proposed_start, proposed_end).check()
        project = self._entities.get(EntityType.PROJECT, module.project_id)
        if _starts_before_container(proposed_start, project):
            return [Conflict(
                ConflictScope.PROJECT, project.id,
                f"Module start date {proposed_start} is before project start date {project.start_date}",
                project.name,
            )]
        return []

    def validate_project(
        self,
        project: Project,
        proposed_start: Optional[date],
        proposed_end: Optional[date] = None,
    ) -> List[Conflict]:
        """Time-dependent modules that would start before the proposed project start."""
        DateWindow(proposed_start, proposed_end).check()
        if not proposed_start:
            return []
        conflicts: List[Conflict] = []
        for module in self._entities.list_by_container(EntityType.MODULE, project_id=project.id):
            if module.has_time_dependencies and module.start_date and module.start_date < proposed_start:
                conflicts.append(Conflict(
                    ConflictScope.MODULE, module.id,
                    f"Module start date {module.start_date} is before project start date {proposed_start}",
                    module.name,
                ))
        return conflicts

# Rev 0.7.0
"""Lightweight entities for the priority & scheduling schema (Rev 0.7.0)"""
from __future__ import annotations
from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from typing import Any, Dict, Optional

from .types import (
    ChangeStatus,
    ConflictScope,
    DEFAULT_QUADRANT,
    DependencyKind,
    EntityType,
    PriorityQuadrant,
    TaskStatus,
)
from ..errors import InvalidDateWindowError


@dataclass(frozen=True)
class DateWindow:
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    def check(self, has_time_dependencies: bool = False) -> "DateWindow":
        if has_time_dependencies and self.start_date is None:
            raise InvalidDateWindowError("start_date is required when has_time_dependencies is set")
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise InvalidDateWindowError(
                f"start_date {self.start_date} is after end_date {self.end_date}"
            )
        return self


@dataclass
class PrioritizedEntity:
    id: int | None
    name: str
    quadrant: PriorityQuadrant = DEFAULT_QUADRANT
    rank: int = 0
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    has_time_dependencies: bool = False
    created_at: Optional[datetime] = None

    entity_type = None  # set by subclasses

    @property
    def window(self) -> DateWindow:
        return DateWindow(self.start_date, self.end_date)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["entity_type"] = self.entity_type.value
        d["quadrant"] = self.quadrant.value
        return d


@dataclass
class Project(PrioritizedEntity):
    description: Optional[str] = None

    entity_type = EntityType.PROJECT

    @property
    def project_id(self) -> int | None:
        return self.id


@dataclass
class Module(PrioritizedEntity):
    project_id: int = 0
    description: Optional[str] = None

    entity_type = EntityType.MODULE


@dataclass
class Task(PrioritizedEntity):
    project_id: int = 0
    module_id: Optional[int] = None
    status: TaskStatus = TaskStatus.TODO
    description: Optional[str] = None

    entity_type = EntityType.TASK

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["status"] = self.status.value
        return d


@dataclass(frozen=True)
class DependencyEdge:
    id: int | None
    task_id: int
    depends_on_task_id: int
    kind: DependencyKind = DependencyKind.PRECEDES

    @property
    def predecessor_id(self) -> int:
        if self.kind is DependencyKind.PRECEDES:
            return self.depends_on_task_id
        return self.task_id

    @property
    def successor_id(self) -> int:
        if self.kind is DependencyKind.PRECEDES:
            return self.task_id
        return self.depends_on_task_id


@dataclass(frozen=True)
class PertEstimate:
    task_id: int
    optimistic: float
    most_likely: float
    pessimistic: float


@dataclass
class PriorityChangeRecord:
    id: int | None
    entity_type: EntityType
    entity_id: int
    old_quadrant: PriorityQuadrant
    new_quadrant: PriorityQuadrant
    old_rank: Optional[int]
    new_rank: Optional[int]
    reason: Optional[str]
    requested_by: int
    status: ChangeStatus
    reviewed_by: Optional[int] = None
    created_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        for key in ("entity_type", "old_quadrant", "new_quadrant", "status"):
            d[key] = d[key].value
        return d


@dataclass(frozen=True)
class Conflict:
    scope: ConflictScope
    referenced_entity_id: int
    message: str
    referenced_name: Optional[str] = field(default=None, compare=False)

# priorityZ type definitions
# Rev 0.7.0

from __future__ import annotations
from enum import Enum

from ..errors import InvalidDecisionError, InvalidQuadrantError, ValidationError


class EntityType(str, Enum):
    """Containment hierarchy: project → module → task."""
    PROJECT = "PROJECT"
    MODULE = "MODULE"
    TASK = "TASK"

    @classmethod
    def parse(cls, value: "EntityType | str") -> "EntityType":
        try:
            return cls(str(getattr(value, "value", value)).upper())
        except ValueError:
            raise ValidationError(f"Invalid entity type: {value!r}") from None


class PriorityQuadrant(str, Enum):
    IMPORTANT_URGENT = "IMPORTANT_URGENT"
    IMPORTANT_NOT_URGENT = "IMPORTANT_NOT_URGENT"
    NOT_IMPORTANT_URGENT = "NOT_IMPORTANT_URGENT"
    NOT_IMPORTANT_NOT_URGENT = "NOT_IMPORTANT_NOT_URGENT"

    @classmethod
    def parse(cls, value: "PriorityQuadrant | str") -> "PriorityQuadrant":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise InvalidQuadrantError(f"Invalid priority quadrant: {value!r}") from None


QUADRANT_ORDER = [
    PriorityQuadrant.IMPORTANT_URGENT,
    PriorityQuadrant.IMPORTANT_NOT_URGENT,
    PriorityQuadrant.NOT_IMPORTANT_URGENT,
    PriorityQuadrant.NOT_IMPORTANT_NOT_URGENT,
]

DEFAULT_QUADRANT = PriorityQuadrant.NOT_IMPORTANT_NOT_URGENT


class ChangeStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

    @classmethod
    def parse(cls, value: "ChangeStatus | str") -> "ChangeStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ValidationError(f"Invalid change status: {value!r}") from None



class ReviewDecision(str, Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"

    @classmethod
    def parse(cls, value: "ReviewDecision | str") -> "ReviewDecision":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise InvalidDecisionError(f"Decision must be APPROVE or REJECT, got {value!r}") from None


class DependencyKind(str, Enum):
    # (task_id=B, depends_on=A, PRECEDES): A precedes B
    # (task_id=A, depends_on=B, FOLLOWS):  B follows A
    PRECEDES = "PRECEDES"
    FOLLOWS = "FOLLOWS"


class ConflictScope(str, Enum):
    MODULE = "MODULE"
    PROJECT = "PROJECT"
    DEPENDENCY = "DEPENDENCY"


class TaskStatus(str, Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

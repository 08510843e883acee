# Rev 0.7.0
"""Error taxonomy for the priority & scheduling engine.

Validation errors are raised before any write. Conflict errors mean the
caller's view of state was stale. StaleEntityError means an approval decision
was recorded but could not be applied to the entity.
"""
from __future__ import annotations

from typing import Any, List, Optional, Sequence


class PriorityZError(Exception):
    code = "error"


# --- validation --------------------------------------------------------------

class ValidationError(PriorityZError, ValueError):
    code = "invalid"


class InvalidQuadrantError(ValidationError):
    code = "invalid_quadrant"


class InvalidRankError(ValidationError):
    code = "invalid_rank"


class InvalidEstimateError(ValidationError):
    code = "invalid_estimate"


class InvalidDateWindowError(ValidationError):
    code = "invalid_date_window"


class InvalidDecisionError(ValidationError):
    code = "invalid_decision"


class SelfDependencyError(ValidationError):
    code = "self_dependency"


class DependencyCycleError(ValidationError):
    code = "dependency_cycle"

    def __init__(self, message: str, cycle: Sequence[int] = ()):
        super().__init__(message)
        self.cycle: List[int] = list(cycle)


# --- conflicts ---------------------------------------------------------------

class ConflictError(PriorityZError):
    code = "conflict"


class AlreadyReviewedError(ConflictError):
    code = "already_reviewed"


class RankCollisionError(ConflictError):
    code = "rank_collision"


class DuplicateDependencyError(ConflictError):
    code = "duplicate_dependency"


class ScheduleConflictError(ConflictError):
    code = "schedule_conflict"

    def __init__(self, message: str, conflicts: Sequence[Any] = ()):
        super().__init__(message)
        self.conflicts = list(conflicts)


# --- lookups / access --------------------------------------------------------

class NotFoundError(PriorityZError, LookupError):
    code = "not_found"


class EntityNotFoundError(NotFoundError):
    code = "entity_not_found"


class RecordNotFoundError(NotFoundError):
    code = "record_not_found"


class PermissionDeniedError(PriorityZError):
    code = "permission_denied"


# --- apply failure -----------------------------------------------------------

class StaleEntityError(PriorityZError):
    """The entity changed shape or vanished between request and commit."""
    code = "stale_entity"

    def __init__(self, message: str, record: Optional[Any] = None):
        super().__init__(message)
        self.record = record

# priorityZ application context
# Rev 0.7.0

from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .utils.clock import Clock, utc_now
from .utils.config import load_settings
from .utils.logging_setup import get_logger
from .repositories.db import Database
from .repositories.sqlite_dependency_repository import SQLiteDependencyRepository
from .repositories.sqlite_entity_repository import SQLiteEntityRepository
from .repositories.sqlite_priority_change_repository import SQLitePriorityChangeRepository
from .repositories.sqlite_role_repository import SQLiteRoleRepository
from .services.dependency_validator import DependencyValidator
from .services.priority_ordering import PriorityOrderingService
from .services.priority_policy import PrivilegePolicy
from .services.priority_workflow import PriorityWorkflowEngine
from .services.scheduling_service import SchedulingService


@dataclass
class AppContext:
    """Central container for shared app resources."""
    db: Database
    settings: Dict[str, Any]
    entities: SQLiteEntityRepository
    dependencies: SQLiteDependencyRepository
    changes: SQLitePriorityChangeRepository
    roles: SQLiteRoleRepository
    policy: PrivilegePolicy
    ordering: PriorityOrderingService
    validator: DependencyValidator
    workflow: PriorityWorkflowEngine
    scheduling: SchedulingService

    @classmethod
    def create(
        cls,
        db_path: Path | str,
        *,
        settings: Optional[Dict[str, Any]] = None,
        clock: Clock = utc_now,
    ) -> "AppContext":
        """Open the DB, apply migrations, and wire repositories + services."""
        log = get_logger("AppContext")
        settings = settings or load_settings()
        db = Database(db_path)
        db.run_migrations()

        entities = SQLiteEntityRepository(db)
        dependencies = SQLiteDependencyRepository(db)
        changes = SQLitePriorityChangeRepository(db)
        roles = SQLiteRoleRepository(db)

        policy = PrivilegePolicy(roles, settings["priority"]["privileged_roles"])
        ordering = PriorityOrderingService(db, entities, clock=clock)
        sched_cfg = settings["scheduling"]
        validator = DependencyValidator(
            entities, dependencies, completed_statuses=sched_cfg["completed_statuses"]
        )
        workflow = PriorityWorkflowEngine(db, entities, changes, ordering, policy.is_privileged, clock=clock)
        scheduling = SchedulingService(
            db, entities, dependencies, validator,
            clock=clock,
            completed_statuses=sched_cfg["completed_statuses"],
            inactive_statuses=sched_cfg["inactive_statuses"],
        )
        log.info("AppContext initialized with DB=%s", db_path)
        return cls(
            db=db, settings=settings, entities=entities, dependencies=dependencies,
            changes=changes, roles=roles, policy=policy, ordering=ordering,
            validator=validator, workflow=workflow, scheduling=scheduling,
        )

    def close(self) -> None:
        self.db.close()

# Rev 0.7.0

"""Pytest fixtures for priorityZ (Rev 0.7.0)"""
from __future__ import annotations
from datetime import datetime, timezone
from pathlib import Path

import pytest

from priorityz.app_context import AppContext
from priorityz.models.entities import DateWindow
from priorityz.models.types import EntityType, PriorityQuadrant
from priorityz.repositories.db import Database
from priorityz.utils.clock import FixedClock
from priorityz.utils.config import load_settings


@pytest.fixture()
def db(tmp_path: Path):
    db = Database(path=tmp_path / "test.db")
    try:
        db.run_migrations()
        yield db
    finally:
        db.close()


@pytest.fixture()
def db_conn(db: Database):
    return db.conn


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock(datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc))


@pytest.fixture()
def ctx(tmp_path: Path, clock: FixedClock):
    # defaults only; never touch the real XDG config dir from tests
    settings = load_settings(tmp_path / "no-settings.json")
    context = AppContext.create(tmp_path / "ctx.db", settings=settings, clock=clock)
    try:
        yield context
    finally:
        context.close()


@pytest.fixture()
def users(ctx: AppContext) -> dict:
    return {
        "admin": ctx.roles.add_user("Ada", "ADMIN"),
        "pm": ctx.roles.add_user("Pat", "PROJECT_MANAGER"),
        "dev": ctx.roles.add_user("Dev", "MEMBER"),
    }


@pytest.fixture()
def make(ctx: AppContext):
    """Factory for entities created through the ordering service."""

    def _project(name="Project", *, start=None, end=None, time_deps=False,
                 quadrant=PriorityQuadrant.NOT_IMPORTANT_NOT_URGENT):
        return ctx.ordering.create_entity(
            EntityType.PROJECT, name=name, quadrant=quadrant,
            window=DateWindow(start, end), has_time_dependencies=time_deps,
        )

    def _module(project, name="Module", *, start=None, end=None, time_deps=False,
                quadrant=PriorityQuadrant.NOT_IMPORTANT_NOT_URGENT):
        return ctx.ordering.create_entity(
            EntityType.MODULE, name=name, quadrant=quadrant, project_id=project.id,
            window=DateWindow(start, end), has_time_dependencies=time_deps,
        )

    def _task(project, name="Task", *, module=None, start=None, end=None,
              quadrant=PriorityQuadrant.NOT_IMPORTANT_NOT_URGENT):
        return ctx.ordering.create_entity(
            EntityType.TASK, name=name, quadrant=quadrant, project_id=project.id,
            module_id=module.id if module else None, window=DateWindow(start, end),
        )

    class _Factory:
        project = staticmethod(_project)
        module = staticmethod(_module)
        task = staticmethod(_task)

    return _Factory()



# tests/test_config.py
from __future__ import annotations

import json

from priorityz.app_context import AppContext
from priorityz.models.types import ChangeStatus, EntityType, PriorityQuadrant
from priorityz.utils.config import load_settings, save_settings


def test_missing_file_gives_defaults(tmp_path):
    settings = load_settings(tmp_path / "absent.json")
    assert settings["priority"]["privileged_roles"] == ["ADMIN", "PROJECT_MANAGER"]
    assert settings["scheduling"]["completed_statuses"] == ["COMPLETED"]


def test_file_overrides_are_merged(tmp_path):
    path = tmp_path / "settings.json"
    save_settings({"priority": {"privileged_roles": ["LEAD"]}}, path)
    settings = load_settings(path)
    assert settings["priority"]["privileged_roles"] == ["LEAD"]
    assert settings["scheduling"]["inactive_statuses"] == ["COMPLETED", "CANCELLED"]


def test_unreadable_file_falls_back(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")
    assert load_settings(path)["priority"]["privileged_roles"] == ["ADMIN", "PROJECT_MANAGER"]


def test_privileged_roles_come_from_settings(tmp_path, clock):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"priority": {"privileged_roles": ["lead"]}}), encoding="utf-8")
    ctx = AppContext.create(tmp_path / "cfg.db", settings=load_settings(path), clock=clock)
    try:
        lead = ctx.roles.add_user("Lee", "LEAD")
        admin = ctx.roles.add_user("Ada", "ADMIN")
        assert [u["role"] for u in ctx.roles.list_users()] == ["LEAD", "ADMIN"]
        project = ctx.ordering.create_entity(EntityType.PROJECT, name="P")

        by_lead = ctx.workflow.request_change(
            EntityType.PROJECT, project.id, PriorityQuadrant.IMPORTANT_URGENT, requester=lead
        )
        by_admin = ctx.workflow.request_change(
            EntityType.PROJECT, project.id, PriorityQuadrant.IMPORTANT_NOT_URGENT, requester=admin
        )
        assert by_lead.record.status is ChangeStatus.APPROVED
        assert by_admin.record.status is ChangeStatus.PENDING
    finally:
        ctx.close()

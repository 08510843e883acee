# priorityz/services/priority_policy.py
# Rev 0.7.0
# The one place that decides who may auto-approve and review priority changes.

from __future__ import annotations

from typing import Iterable, Optional, Protocol


class RoleLookup(Protocol):
    def role_for(self, user_id: int) -> Optional[str]: ...


class PrivilegePolicy:
    def __init__(self, roles: RoleLookup, privileged_roles: Iterable[str] = ("ADMIN", "PROJECT_MANAGER")):
        self._roles = roles
        self._privileged = {r.upper() for r in privileged_roles}

    def is_privileged(self, user_id: int) -> bool:
        role = self._roles.role_for(user_id)
        return role is not None and role.upper() in self._privileged

    __call__ = is_privileged

"""
auth/roles.py -- Role promotion and demotion.

RoleService performs no authorization of its own. It must only be called
from code that has already passed the admin gate -- AuthService.set_user_role
and the operator CLI (which runs with direct database access).

Role changes are not pushed into open sessions. A promoted user keeps their
old snapshot until they log in again.

Layer rule: no imports from api/, web/ or core/.
"""

from __future__ import annotations

import logging

from auth.errors import UserNotFoundError, ValidationError
from auth.models import VALID_ROLES, Role
from auth.store import UserStore

logger = logging.getLogger("membergate.auth")


class RoleService:
    def __init__(self, store: UserStore) -> None:
        self.store = store

    def set_role(self, username: str, role: str) -> None:
        """Set username's role. Raises ValidationError / UserNotFoundError."""
        if role not in VALID_ROLES:
            raise ValidationError(f"Unknown role: {role!r}.", errors=[f"role must be one of {sorted(VALID_ROLES)}"])
        if not self.store.set_role(username, role):
            raise UserNotFoundError(f"User {username!r} not found.")
        logger.info("Role of %r set to %r", username, role)

    def promote(self, username: str) -> None:
        self.set_role(username, Role.ADMIN.value)

    def demote(self, username: str) -> None:
        self.set_role(username, Role.USER.value)

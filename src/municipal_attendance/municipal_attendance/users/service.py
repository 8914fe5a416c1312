from __future__ import annotations

import uuid
from typing import Optional

from ..common.validators import require_non_empty
from ..core.enums import Role
from ..core.exceptions import ValidationError
from ..sync.remote import RemoteStore
from .model import User


class RegistrationService:
    """Use case: self-registration.

    New accounts are stored inactive; HR or an administrator activates them
    from a session (`SyncSession.set_user_active`).
    """

    def __init__(self, store: RemoteStore):
        self._store = store

    async def register(
        self,
        *,
        username: str,
        full_name: str,
        role: Role,
        area_id: Optional[str] = None,
        handled_nationality: Optional[str] = None,
    ) -> User:
        username = require_non_empty(username, "Username")
        full_name = require_non_empty(full_name, "Full name")
        try:
            role = Role(role)
        except ValueError:
            raise ValidationError(f"Unknown role: {role}")
        if role == Role.ADMIN:
            raise ValidationError("Administrator accounts cannot be self-registered")

        if await self._store.get_user_by_username(username) is not None:
            raise ValidationError(f"Username {username} is already taken")

        user = User(
            user_id=str(uuid.uuid4()),
            username=username,
            full_name=full_name,
            role=role,
            area_id=area_id or None,
            is_active=False,
            handled_nationality=(handled_nationality or "").strip() or None,
        )
        return await self._store.create_user(user, actor=username)

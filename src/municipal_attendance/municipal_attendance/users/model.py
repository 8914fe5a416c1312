from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..core.enums import Role


@dataclass(frozen=True)
class User:
    """Domain entity: a role holder.

    `area_id` is the primary (legacy single) assignment and may be "ALL";
    `area_ids` holds any additional assigned areas.
    """

    user_id: str
    username: str
    full_name: str
    role: Role
    area_id: Optional[str] = None
    area_ids: tuple[str, ...] = ()
    is_active: bool = False
    handled_nationality: Optional[str] = None

    @property
    def assigned_area_ids(self) -> frozenset[str]:
        ids = set(self.area_ids)
        if self.area_id:
            ids.add(self.area_id)
        return frozenset(ids)

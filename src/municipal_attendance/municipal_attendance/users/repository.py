from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import User


class UserRepository(Protocol):
    """Repository interface for role holders.

    Note (DIP): the service layer depends on this interface, not on a concrete DB.
    """

    def get_by_id(self, user_id: str) -> Optional[User]:
        raise NotImplementedError

    def get_by_username(self, username: str) -> Optional[User]:
        raise NotImplementedError

    def list_all(self) -> Sequence[User]:
        raise NotImplementedError

    def create(self, user: User) -> User:
        raise NotImplementedError

    def update(self, user: User) -> User:
        """Update profile fields (not the additional area list)."""

        raise NotImplementedError

    def set_areas(self, user_id: str, area_ids: Sequence[str]) -> None:
        """Replace the user's additional area list as one set-operation."""

        raise NotImplementedError

    def delete_by_id(self, user_id: str) -> bool:
        raise NotImplementedError

from __future__ import annotations

from typing import Optional, Sequence

from ..core.enums import Role
from ..core.exceptions import RecordNotFoundError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import User
from .repository import UserRepository

_SELECT = """
    SELECT u.user_id, u.username, u.full_name, u.role, u.area_id, u.is_active, u.handled_nationality,
           GROUP_CONCAT(ua.area_id ORDER BY ua.area_id SEPARATOR ',') AS extra_areas
    FROM users u
    LEFT JOIN user_areas ua ON ua.user_id = u.user_id
"""


def _to_user(r: dict) -> User:
    extra = r.get("extra_areas") or ""
    return User(
        user_id=str(r["user_id"]),
        username=r["username"],
        full_name=r["full_name"],
        role=Role(r["role"]),
        area_id=r.get("area_id"),
        area_ids=tuple(a for a in extra.split(",") if a),
        is_active=bool(r.get("is_active", False)),
        handled_nationality=r.get("handled_nationality"),
    )


class MySQLUserRepository(UserRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def _get_where(self, column: str, value: str) -> Optional[User]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"{_SELECT} WHERE u.{column}=%s GROUP BY u.user_id", (value,))
            row = fetchone(cur)
            return _to_user(row) if row else None

    def get_by_id(self, user_id: str) -> Optional[User]:
        return self._get_where("user_id", user_id)

    def get_by_username(self, username: str) -> Optional[User]:
        return self._get_where("username", username)

    def list_all(self) -> Sequence[User]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"{_SELECT} GROUP BY u.user_id ORDER BY u.role ASC, u.full_name ASC")
            return [_to_user(r) for r in fetchall(cur)]

    def create(self, user: User) -> User:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO users(user_id, username, full_name, role, area_id, is_active, handled_nationality)
                VALUES(%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    user.user_id,
                    user.username,
                    user.full_name,
                    user.role.value,
                    user.area_id,
                    int(user.is_active),
                    user.handled_nationality,
                ),
            )
            if user.area_ids:
                cur.executemany(
                    "INSERT INTO user_areas(user_id, area_id) VALUES(%s,%s)",
                    [(user.user_id, a) for a in user.area_ids],
                )
        return self.get_by_id(user.user_id) or user

    def update(self, user: User) -> User:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE users
                SET username=%s, full_name=%s, role=%s, area_id=%s, is_active=%s, handled_nationality=%s
                WHERE user_id=%s
                """,
                (
                    user.username,
                    user.full_name,
                    user.role.value,
                    user.area_id,
                    int(user.is_active),
                    user.handled_nationality,
                    user.user_id,
                ),
            )
        stored = self.get_by_id(user.user_id)
        if stored is None:
            raise RecordNotFoundError(f"User {user.user_id} does not exist")
        return stored

    def set_areas(self, user_id: str, area_ids: Sequence[str]) -> None:
        # Delete + insert inside one transaction so readers never see a half-applied set.
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM user_areas WHERE user_id=%s", (user_id,))
            if area_ids:
                cur.executemany(
                    "INSERT INTO user_areas(user_id, area_id) VALUES(%s,%s)",
                    [(user_id, a) for a in area_ids],
                )

    def delete_by_id(self, user_id: str) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM users WHERE user_id=%s", (user_id,))
            return cur.rowcount > 0

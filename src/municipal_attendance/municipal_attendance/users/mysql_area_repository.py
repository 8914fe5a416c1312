from __future__ import annotations

import uuid
from typing import Optional, Sequence

from ..core.exceptions import RecordNotFoundError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .area_model import Area
from .area_repository import AreaRepository


class MySQLAreaRepository(AreaRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def list_all(self) -> Sequence[Area]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT area_id, name FROM areas ORDER BY name ASC")
            return [Area(area_id=str(r["area_id"]), name=r["name"]) for r in fetchall(cur)]

    def get_by_id(self, area_id: str) -> Optional[Area]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT area_id, name FROM areas WHERE area_id=%s", (area_id,))
            row = fetchone(cur)
            return Area(area_id=str(row["area_id"]), name=row["name"]) if row else None

    def create(self, *, name: str) -> Area:
        area = Area(area_id=str(uuid.uuid4()), name=name)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("INSERT INTO areas(area_id, name) VALUES(%s,%s)", (area.area_id, area.name))
        return area

    def rename(self, area_id: str, *, name: str) -> Area:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("UPDATE areas SET name=%s WHERE area_id=%s", (name, area_id))
            cur.execute("SELECT area_id, name FROM areas WHERE area_id=%s", (area_id,))
            row = fetchone(cur)
            if not row:
                raise RecordNotFoundError(f"Area {area_id} does not exist")
            return Area(area_id=str(row["area_id"]), name=row["name"])

    def delete_by_id(self, area_id: str) -> bool:
        # fk_workers_area (ON DELETE RESTRICT) refuses while workers reference the area.
        # users.area_id carries no foreign key, so the primary assignment is cleared here.
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("UPDATE users SET area_id=NULL WHERE area_id=%s", (area_id,))
            cur.execute("DELETE FROM areas WHERE area_id=%s", (area_id,))
            return cur.rowcount > 0

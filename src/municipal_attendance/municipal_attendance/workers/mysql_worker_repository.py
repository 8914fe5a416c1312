from __future__ import annotations

from typing import Optional, Sequence

from ..core.exceptions import RecordNotFoundError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, in_clause
from .model import Worker
from .repository import WorkerRepository

_COLUMNS = "worker_id, name, area_id, base_salary, day_value, nationality"


def _to_worker(r: dict) -> Worker:
    return Worker(
        worker_id=str(r["worker_id"]),
        name=r["name"],
        area_id=str(r["area_id"]),
        day_value=float(r.get("day_value") or 0),
        base_salary=float(r.get("base_salary") or 0),
        nationality=r.get("nationality"),
    )


class MySQLWorkerRepository(WorkerRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_id(self, worker_id: str) -> Optional[Worker]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM workers WHERE worker_id=%s", (worker_id,))
            row = fetchone(cur)
            return _to_worker(row) if row else None

    def list_by_areas(self, area_ids: Optional[Sequence[str]] = None) -> Sequence[Worker]:
        where = ""
        params: tuple = ()
        if area_ids is not None:
            if not area_ids:
                return []
            where = f"WHERE area_id IN ({in_clause(area_ids)})"
            params = tuple(area_ids)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM workers {where} ORDER BY area_id ASC, name ASC", params)
            return [_to_worker(r) for r in fetchall(cur)]

    def create(self, worker: Worker) -> Worker:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO workers(worker_id, name, area_id, base_salary, day_value, nationality)
                VALUES(%s,%s,%s,%s,%s,%s)
                """,
                (worker.worker_id, worker.name, worker.area_id, worker.base_salary, worker.day_value, worker.nationality),
            )
            cur.execute(f"SELECT {_COLUMNS} FROM workers WHERE worker_id=%s", (worker.worker_id,))
            return _to_worker(fetchone(cur))

    def update(self, worker: Worker) -> Worker:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE workers
                SET name=%s, area_id=%s, base_salary=%s, day_value=%s, nationality=%s
                WHERE worker_id=%s
                """,
                (worker.name, worker.area_id, worker.base_salary, worker.day_value, worker.nationality, worker.worker_id),
            )
            cur.execute(f"SELECT {_COLUMNS} FROM workers WHERE worker_id=%s", (worker.worker_id,))
            row = fetchone(cur)
            if not row:
                raise RecordNotFoundError(f"Worker {worker.worker_id} does not exist")
            return _to_worker(row)

    def delete_by_id(self, worker_id: str) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM workers WHERE worker_id=%s", (worker_id,))
            return cur.rowcount > 0

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from ..attendance.model import AttendanceRecord, RecordKey
from ..users.area_model import Area
from ..users.model import User
from ..workers.model import Worker


@dataclass
class WorkingSet:
    """Local copy of the store held by one session.

    Records accumulate by key: a fetch overwrites entries it returns and
    leaves every other held record alone. Roster families are small and are
    replaced wholesale by each fetch.
    """

    records: dict[RecordKey, AttendanceRecord] = field(default_factory=dict)
    workers: dict[str, Worker] = field(default_factory=dict)
    users: dict[str, User] = field(default_factory=dict)
    areas: dict[str, Area] = field(default_factory=dict)

    def merge_records(self, incoming: Iterable[AttendanceRecord]) -> int:
        n = 0
        for r in incoming:
            self.records[r.key] = r
            n += 1
        return n

    def put_record(self, record: AttendanceRecord) -> None:
        self.records[record.key] = record

    def records_for_period(self, month: int, year: int) -> list[AttendanceRecord]:
        out = [r for k, r in self.records.items() if k.month == month and k.year == year]
        out.sort(key=lambda r: r.key)
        return out

    def replace_workers(self, workers: Iterable[Worker]) -> None:
        self.workers = {w.worker_id: w for w in workers}

    def put_worker(self, worker: Worker) -> None:
        self.workers[worker.worker_id] = worker

    def drop_worker(self, worker_id: str) -> None:
        self.workers.pop(worker_id, None)
        # Attendance rows cascade with their worker in the store.
        for key in [k for k in self.records if k.worker_id == worker_id]:
            del self.records[key]

    def replace_users(self, users: Iterable[User]) -> None:
        self.users = {u.user_id: u for u in users}

    def put_user(self, user: User) -> None:
        self.users[user.user_id] = user

    def drop_user(self, user_id: str) -> None:
        self.users.pop(user_id, None)

    def replace_areas(self, areas: Iterable[Area]) -> None:
        self.areas = {a.area_id: a for a in areas}

    def put_area(self, area: Area) -> None:
        self.areas[area.area_id] = area

    def drop_area(self, area_id: str) -> None:
        self.areas.pop(area_id, None)

    def clear(self) -> None:
        self.records.clear()
        self.workers.clear()
        self.users.clear()
        self.areas.clear()

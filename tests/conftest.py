from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

import pytest

from src.municipal_attendance.municipal_attendance.attendance.model import AttendanceRecord, RecordKey
from src.municipal_attendance.municipal_attendance.audit.model import AuditEntry
from src.municipal_attendance.municipal_attendance.common.nationality import nationality_aliases
from src.municipal_attendance.municipal_attendance.core.enums import Role
from src.municipal_attendance.municipal_attendance.core.exceptions import (
    DuplicateRecordError,
    RecordNotFoundError,
    ReferentialIntegrityError,
)
from src.municipal_attendance.municipal_attendance.notifications.feed import ChangeFeed
from src.municipal_attendance.municipal_attendance.payroll.calculator.standard_calculator import StandardDayCalculator
from src.municipal_attendance.municipal_attendance.sync.remote import RepositoryRemoteStore
from src.municipal_attendance.municipal_attendance.sync.session import SyncSession
from src.municipal_attendance.municipal_attendance.users.area_model import Area
from src.municipal_attendance.municipal_attendance.users.model import User
from src.municipal_attendance.municipal_attendance.workers.model import Worker


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeDB:
    """Tables shared by the in-memory repositories (mirrors schema.sql constraints)."""

    def __init__(self):
        self.areas: dict[str, Area] = {}
        self.workers: dict[str, Worker] = {}
        self.users: dict[str, User] = {}
        self.records: dict[RecordKey, AttendanceRecord] = {}
        self.audit: list[AuditEntry] = []
        self.fail_next: Optional[Exception] = None
        self.writes = 0

    def maybe_fail(self) -> None:
        if self.fail_next is not None:
            exc, self.fail_next = self.fail_next, None
            raise exc
        self.writes += 1

    def user(self, username: str) -> User:
        for u in self.users.values():
            if u.username == username:
                return u
        raise KeyError(username)


class FakeAttendanceRepo:
    def __init__(self, db: FakeDB):
        self._db = db
        self._calc = StandardDayCalculator()
        self.list_calls: list[dict] = []

    def get(self, key):
        return self._db.records.get(key)

    def upsert(self, record):
        self._db.maybe_fail()
        if record.worker_id not in self._db.workers:
            raise ReferentialIntegrityError("Cannot add or update a child row: a foreign key constraint fails")
        stored = replace(
            record,
            total_days=self._calc.total_days(record.counts),
            updated_at=datetime.now(timezone.utc),
        )
        self._db.records[record.key] = stored
        return stored

    def patch_status(self, key, *, status, rejection_note, expected_status=None):
        self._db.maybe_fail()
        current = self._db.records.get(key)
        if current is None:
            return None
        if expected_status is not None and current.status != expected_status:
            return None
        stored = replace(current, status=status, rejection_note=rejection_note)
        self._db.records[key] = stored
        return stored

    def list_for_period(self, *, month, year, area_ids=None, nationality=None):
        self.list_calls.append({"month": month, "year": year, "area_ids": area_ids, "nationality": nationality})
        tags = nationality_aliases(nationality)
        out = []
        for key, r in sorted(self._db.records.items()):
            if key.month != month or key.year != year:
                continue
            w = self._db.workers[key.worker_id]
            if area_ids is not None and w.area_id not in area_ids:
                continue
            if tags and w.nationality not in tags:
                continue
            out.append(r)
        return out


class FakeWorkerRepo:
    def __init__(self, db: FakeDB):
        self._db = db

    def get_by_id(self, worker_id):
        return self._db.workers.get(worker_id)

    def list_by_areas(self, area_ids=None):
        rows = [w for w in self._db.workers.values() if area_ids is None or w.area_id in area_ids]
        return sorted(rows, key=lambda w: (w.area_id, w.name))

    def create(self, worker):
        self._db.maybe_fail()
        if worker.worker_id in self._db.workers:
            raise DuplicateRecordError(f"Duplicate entry '{worker.worker_id}' for key 'PRIMARY'")
        if worker.area_id not in self._db.areas:
            raise ReferentialIntegrityError("Cannot add or update a child row: a foreign key constraint fails")
        self._db.workers[worker.worker_id] = worker
        return worker

    def update(self, worker):
        self._db.maybe_fail()
        if worker.worker_id not in self._db.workers:
            raise RecordNotFoundError(f"Worker {worker.worker_id} does not exist")
        self._db.workers[worker.worker_id] = worker
        return worker

    def delete_by_id(self, worker_id):
        self._db.maybe_fail()
        if self._db.workers.pop(worker_id, None) is None:
            return False
        for key in [k for k in self._db.records if k.worker_id == worker_id]:
            del self._db.records[key]
        return True


class FakeUserRepo:
    def __init__(self, db: FakeDB):
        self._db = db

    def get_by_id(self, user_id):
        return self._db.users.get(user_id)

    def get_by_username(self, username):
        try:
            return self._db.user(username)
        except KeyError:
            return None

    def list_all(self):
        return sorted(self._db.users.values(), key=lambda u: (u.role.value, u.full_name))

    def create(self, user):
        self._db.maybe_fail()
        self._db.users[user.user_id] = user
        return user

    def update(self, user):
        self._db.maybe_fail()
        current = self._db.users.get(user.user_id)
        if current is None:
            raise RecordNotFoundError(f"User {user.user_id} does not exist")
        # The additional area list only changes through set_areas.
        stored = replace(user, area_ids=current.area_ids)
        self._db.users[user.user_id] = stored
        return stored

    def set_areas(self, user_id, area_ids):
        self._db.maybe_fail()
        self._db.users[user_id] = replace(self._db.users[user_id], area_ids=tuple(sorted(area_ids)))

    def delete_by_id(self, user_id):
        self._db.maybe_fail()
        return self._db.users.pop(user_id, None) is not None


class FakeAreaRepo:
    def __init__(self, db: FakeDB):
        self._db = db

    def list_all(self):
        return sorted(self._db.areas.values(), key=lambda a: a.name)

    def get_by_id(self, area_id):
        return self._db.areas.get(area_id)

    def create(self, *, name):
        self._db.maybe_fail()
        if any(a.name == name for a in self._db.areas.values()):
            raise DuplicateRecordError(f"Duplicate entry '{name}' for key 'uq_areas_name'")
        area = Area(area_id=str(uuid.uuid4()), name=name)
        self._db.areas[area.area_id] = area
        return area

    def rename(self, area_id, *, name):
        self._db.maybe_fail()
        if area_id not in self._db.areas:
            raise RecordNotFoundError(f"Area {area_id} does not exist")
        self._db.areas[area_id] = Area(area_id=area_id, name=name)
        return self._db.areas[area_id]

    def delete_by_id(self, area_id):
        self._db.maybe_fail()
        if any(w.area_id == area_id for w in self._db.workers.values()):
            raise ReferentialIntegrityError(
                "Cannot delete or update a parent row: a foreign key constraint fails (fk_workers_area)"
            )
        if self._db.areas.pop(area_id, None) is None:
            return False
        for uid, u in list(self._db.users.items()):
            if area_id in u.area_ids or u.area_id == area_id:
                self._db.users[uid] = replace(
                    u,
                    area_id=None if u.area_id == area_id else u.area_id,
                    area_ids=tuple(a for a in u.area_ids if a != area_id),
                )
        return True


class FakeAuditRepo:
    def __init__(self, db: FakeDB):
        self._db = db

    def append(self, *, action, table_name, record_id, changed_by, new_data=None):
        self._db.audit.append(
            AuditEntry(
                entry_id=len(self._db.audit) + 1,
                action=action,
                table_name=table_name,
                record_id=record_id,
                changed_by=changed_by,
                changed_at=datetime.now(timezone.utc),
                new_data=new_data,
            )
        )

    def list_recent(self, *, limit, actor_contains=None, table_name=None, action=None):
        rows = sorted(self._db.audit, key=lambda e: e.entry_id, reverse=True)
        if actor_contains:
            rows = [e for e in rows if actor_contains.lower() in (e.changed_by or "").lower()]
        if table_name:
            rows = [e for e in rows if e.table_name == table_name]
        if action is not None:
            rows = [e for e in rows if e.action == action]
        return rows[:limit]


def _user(user_id, role, *, area_id=None, area_ids=(), active=True, nationality=None):
    return User(
        user_id=user_id,
        username=user_id.removeprefix("u-"),
        full_name=user_id.removeprefix("u-").title(),
        role=role,
        area_id=area_id,
        area_ids=area_ids,
        is_active=active,
        handled_nationality=nationality,
    )


@pytest.fixture
def db() -> FakeDB:
    d = FakeDB()
    d.areas = {
        "area-a": Area(area_id="area-a", name="North"),
        "area-b": Area(area_id="area-b", name="South"),
    }
    d.workers = {
        "W1": Worker(worker_id="W1", name="Ahmad", area_id="area-a", day_value=10.0, nationality="JORDANIAN"),
        "W2": Worker(worker_id="W2", name="Bassam", area_id="area-a", day_value=12.0, nationality="مصري"),
        "W3": Worker(worker_id="W3", name="Karim", area_id="area-b", day_value=8.0, nationality="SYRIAN"),
    }
    for u in [
        _user("u-sup", Role.SUPERVISOR, area_id="area-a"),
        _user("u-gs", Role.GENERAL_SUPERVISOR, area_id="area-a"),
        _user("u-health", Role.HEALTH_DIRECTOR),
        _user("u-hr", Role.HR),
        _user("u-audit", Role.INTERNAL_AUDIT),
        _user("u-finance", Role.FINANCE),
        _user("u-payroll", Role.PAYROLL),
        _user("u-mayor", Role.MAYOR),
        _user("u-admin", Role.ADMIN, area_id="ALL"),
        _user("u-pending", Role.SUPERVISOR, area_id="area-b", active=False),
    ]:
        d.users[u.user_id] = u
    return d


@pytest.fixture
def feed() -> ChangeFeed:
    return ChangeFeed()


@pytest.fixture
def attendance_repo(db) -> FakeAttendanceRepo:
    return FakeAttendanceRepo(db)


@pytest.fixture
def store(db, feed, attendance_repo) -> RepositoryRemoteStore:
    return RepositoryRemoteStore(
        attendance=attendance_repo,
        workers=FakeWorkerRepo(db),
        users=FakeUserRepo(db),
        areas=FakeAreaRepo(db),
        audit=FakeAuditRepo(db),
        feed=feed,
    )


@pytest.fixture
def open_session(db, store, feed):
    """Factory: start a session for a seeded username."""

    async def _open(username: str, *, month: int = 1, year: int = 2026, remote=None, **kwargs) -> SyncSession:
        session = SyncSession(remote or store, feed, actor=db.user(username), **kwargs)
        await session.start(month=month, year=year)
        return session

    return _open

from __future__ import annotations

import dataclasses
import functools
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Protocol, Sequence

import anyio.to_thread

from ..attendance.model import AttendanceRecord, RecordKey
from ..attendance.repository import AttendanceRepository
from ..audit.model import AuditEntry
from ..audit.repository import AuditRepository
from ..core.enums import AttendanceStatus, AuditAction, ChangeFamily
from ..core.exceptions import ConcurrentModificationError, RecordNotFoundError
from ..notifications.feed import ChangeFeed
from ..payroll.calculator.base import DayTotalCalculator
from ..payroll.calculator.standard_calculator import StandardDayCalculator
from ..users.area_model import Area
from ..users.area_repository import AreaRepository
from ..users.model import User
from ..users.repository import UserRepository
from ..workers.model import Worker
from ..workers.repository import WorkerRepository

logger = logging.getLogger("municipal_attendance.store")


class RemoteStore(Protocol):
    """Asynchronous boundary to the authoritative store.

    Every write returns only after the store confirmed it, and raises a
    `StorageError` subclass otherwise.
    """

    async def fetch_attendance(
        self, *, month: int, year: int, area_ids: Optional[Sequence[str]], nationality: Optional[str]
    ) -> list[AttendanceRecord]: ...

    async def get_attendance(self, key: RecordKey) -> Optional[AttendanceRecord]: ...

    async def upsert_attendance(self, record: AttendanceRecord, *, actor: str) -> AttendanceRecord: ...

    async def patch_attendance_status(
        self,
        key: RecordKey,
        *,
        status: AttendanceStatus,
        rejection_note: Optional[str],
        expected_status: Optional[AttendanceStatus],
        actor: str,
    ) -> AttendanceRecord: ...

    async def fetch_workers(self, *, area_ids: Optional[Sequence[str]]) -> list[Worker]: ...

    async def get_worker(self, worker_id: str) -> Optional[Worker]: ...

    async def create_worker(self, worker: Worker, *, actor: str) -> Worker: ...

    async def update_worker(self, worker: Worker, *, actor: str) -> Worker: ...

    async def delete_worker(self, worker_id: str, *, actor: str) -> None: ...

    async def fetch_users(self) -> list[User]: ...

    async def get_user(self, user_id: str) -> Optional[User]: ...

    async def get_user_by_username(self, username: str) -> Optional[User]: ...

    async def create_user(self, user: User, *, actor: str) -> User: ...

    async def update_user(self, user: User, *, actor: str) -> User: ...

    async def set_user_areas(self, user_id: str, area_ids: Sequence[str], *, actor: str) -> None: ...

    async def delete_user(self, user_id: str, *, actor: str) -> None: ...

    async def fetch_areas(self) -> list[Area]: ...

    async def create_area(self, name: str, *, actor: str) -> Area: ...

    async def rename_area(self, area_id: str, name: str, *, actor: str) -> Area: ...

    async def delete_area(self, area_id: str, *, actor: str) -> None: ...

    async def fetch_audit_log(
        self,
        *,
        limit: int,
        actor_contains: Optional[str] = None,
        table_name: Optional[str] = None,
        action: Optional[AuditAction] = None,
    ) -> list[AuditEntry]: ...


def snapshot(entity: Any) -> dict[str, Any]:
    """JSON-friendly copy of a dataclass for the audit log."""
    out: dict[str, Any] = {}
    for f in dataclasses.fields(entity):
        v = getattr(entity, f.name)
        if isinstance(v, Enum):
            v = v.value
        elif isinstance(v, datetime):
            v = v.isoformat()
        elif isinstance(v, tuple):
            v = list(v)
        out[f.name] = v
    return out


class RepositoryRemoteStore(RemoteStore):
    """`RemoteStore` over the blocking repositories.

    Each call runs on a worker thread. Successful writes append an audit
    entry and publish the affected change families.
    """

    def __init__(
        self,
        *,
        attendance: AttendanceRepository,
        workers: WorkerRepository,
        users: UserRepository,
        areas: AreaRepository,
        audit: AuditRepository,
        feed: Optional[ChangeFeed] = None,
        calculator: Optional[DayTotalCalculator] = None,
    ):
        self._attendance = attendance
        self._workers = workers
        self._users = users
        self._areas = areas
        self._audit = audit
        self._feed = feed
        self._calculator = calculator or StandardDayCalculator()

    async def _run(self, fn, *args, **kwargs):
        return await anyio.to_thread.run_sync(functools.partial(fn, *args, **kwargs))

    def _write_audit(
        self, action: AuditAction, table_name: str, record_id: str, actor: str, new_data: Optional[dict] = None
    ) -> None:
        self._audit.append(
            action=action,
            table_name=table_name,
            record_id=record_id,
            changed_by=actor,
            new_data=new_data,
        )
        logger.debug("%s %s/%s by %s", action.value, table_name, record_id, actor)

    def _notify(self, *families: ChangeFamily) -> None:
        if self._feed is None:
            return
        for family in families:
            self._feed.publish(family)

    # ---------- attendance ----------

    async def fetch_attendance(self, *, month, year, area_ids, nationality) -> list[AttendanceRecord]:
        rows = await self._run(
            self._attendance.list_for_period,
            month=month,
            year=year,
            area_ids=area_ids,
            nationality=nationality,
        )
        return list(rows)

    async def get_attendance(self, key: RecordKey) -> Optional[AttendanceRecord]:
        return await self._run(self._attendance.get, key)

    async def upsert_attendance(self, record: AttendanceRecord, *, actor: str) -> AttendanceRecord:
        # Whatever total the caller carried, the stored one is recomputed.
        record = dataclasses.replace(record, total_days=self._calculator.total_days(record.counts))

        def _write() -> AttendanceRecord:
            existed = self._attendance.get(record.key) is not None
            stored = self._attendance.upsert(record)
            self._write_audit(
                AuditAction.UPDATE if existed else AuditAction.INSERT,
                ChangeFamily.ATTENDANCE.value,
                stored.key.record_id,
                actor,
                snapshot(stored),
            )
            return stored

        stored = await self._run(_write)
        self._notify(ChangeFamily.ATTENDANCE)
        return stored

    async def patch_attendance_status(
        self,
        key: RecordKey,
        *,
        status: AttendanceStatus,
        rejection_note: Optional[str],
        expected_status: Optional[AttendanceStatus],
        actor: str,
    ) -> AttendanceRecord:
        def _write() -> AttendanceRecord:
            stored = self._attendance.patch_status(
                key, status=status, rejection_note=rejection_note, expected_status=expected_status
            )
            if stored is None:
                current = self._attendance.get(key)
                if current is None:
                    raise RecordNotFoundError(f"Attendance record {key.record_id} does not exist")
                raise ConcurrentModificationError(
                    f"Attendance record {key.record_id} moved to {current.status.value} "
                    f"(expected {expected_status.value if expected_status else '-'})"
                )
            self._write_audit(AuditAction.UPDATE, ChangeFamily.ATTENDANCE.value, key.record_id, actor, snapshot(stored))
            return stored

        stored = await self._run(_write)
        self._notify(ChangeFamily.ATTENDANCE)
        return stored

    # ---------- workers ----------

    async def fetch_workers(self, *, area_ids: Optional[Sequence[str]]) -> list[Worker]:
        return list(await self._run(self._workers.list_by_areas, area_ids))

    async def get_worker(self, worker_id: str) -> Optional[Worker]:
        return await self._run(self._workers.get_by_id, worker_id)

    async def create_worker(self, worker: Worker, *, actor: str) -> Worker:
        def _write() -> Worker:
            created = self._workers.create(worker)
            self._write_audit(AuditAction.INSERT, ChangeFamily.WORKERS.value, created.worker_id, actor, snapshot(created))
            return created

        created = await self._run(_write)
        self._notify(ChangeFamily.WORKERS)
        return created

    async def update_worker(self, worker: Worker, *, actor: str) -> Worker:
        def _write() -> Worker:
            updated = self._workers.update(worker)
            self._write_audit(AuditAction.UPDATE, ChangeFamily.WORKERS.value, updated.worker_id, actor, snapshot(updated))
            return updated

        updated = await self._run(_write)
        self._notify(ChangeFamily.WORKERS)
        return updated

    async def delete_worker(self, worker_id: str, *, actor: str) -> None:
        def _write() -> None:
            if not self._workers.delete_by_id(worker_id):
                raise RecordNotFoundError(f"Worker {worker_id} does not exist")
            self._write_audit(AuditAction.DELETE, ChangeFamily.WORKERS.value, worker_id, actor)

        await self._run(_write)
        # The worker's attendance rows go with it.
        self._notify(ChangeFamily.WORKERS, ChangeFamily.ATTENDANCE)

    # ---------- users ----------

    async def fetch_users(self) -> list[User]:
        return list(await self._run(self._users.list_all))

    async def get_user(self, user_id: str) -> Optional[User]:
        return await self._run(self._users.get_by_id, user_id)

    async def get_user_by_username(self, username: str) -> Optional[User]:
        return await self._run(self._users.get_by_username, username)

    async def create_user(self, user: User, *, actor: str) -> User:
        def _write() -> User:
            created = self._users.create(user)
            self._write_audit(AuditAction.INSERT, ChangeFamily.USERS.value, created.user_id, actor, snapshot(created))
            return created

        created = await self._run(_write)
        self._notify(ChangeFamily.USERS)
        return created

    async def update_user(self, user: User, *, actor: str) -> User:
        def _write() -> User:
            updated = self._users.update(user)
            self._write_audit(AuditAction.UPDATE, ChangeFamily.USERS.value, updated.user_id, actor, snapshot(updated))
            return updated

        updated = await self._run(_write)
        self._notify(ChangeFamily.USERS)
        return updated

    async def set_user_areas(self, user_id: str, area_ids: Sequence[str], *, actor: str) -> None:
        def _write() -> None:
            if self._users.get_by_id(user_id) is None:
                raise RecordNotFoundError(f"User {user_id} does not exist")
            self._users.set_areas(user_id, list(area_ids))
            self._write_audit(
                AuditAction.UPDATE, "user_areas", user_id, actor, {"user_id": user_id, "area_ids": list(area_ids)}
            )

        await self._run(_write)
        self._notify(ChangeFamily.USERS)

    async def delete_user(self, user_id: str, *, actor: str) -> None:
        def _write() -> None:
            if not self._users.delete_by_id(user_id):
                raise RecordNotFoundError(f"User {user_id} does not exist")
            self._write_audit(AuditAction.DELETE, ChangeFamily.USERS.value, user_id, actor)

        await self._run(_write)
        self._notify(ChangeFamily.USERS)

    # ---------- areas ----------

    async def fetch_areas(self) -> list[Area]:
        return list(await self._run(self._areas.list_all))

    async def create_area(self, name: str, *, actor: str) -> Area:
        def _write() -> Area:
            area = self._areas.create(name=name)
            self._write_audit(AuditAction.INSERT, "areas", area.area_id, actor, snapshot(area))
            return area

        return await self._run(_write)

    async def rename_area(self, area_id: str, name: str, *, actor: str) -> Area:
        def _write() -> Area:
            area = self._areas.rename(area_id, name=name)
            self._write_audit(AuditAction.UPDATE, "areas", area.area_id, actor, snapshot(area))
            return area

        return await self._run(_write)

    async def delete_area(self, area_id: str, *, actor: str) -> None:
        def _write() -> None:
            if not self._areas.delete_by_id(area_id):
                raise RecordNotFoundError(f"Area {area_id} does not exist")
            self._write_audit(AuditAction.DELETE, "areas", area_id, actor)

        await self._run(_write)
        # Area assignments of users cascade away with the area.
        self._notify(ChangeFamily.USERS)

    # ---------- audit ----------

    async def fetch_audit_log(
        self,
        *,
        limit: int,
        actor_contains: Optional[str] = None,
        table_name: Optional[str] = None,
        action: Optional[AuditAction] = None,
    ) -> list[AuditEntry]:
        rows = await self._run(
            self._audit.list_recent,
            limit=limit,
            actor_contains=actor_contains,
            table_name=table_name,
            action=action,
        )
        return list(rows)

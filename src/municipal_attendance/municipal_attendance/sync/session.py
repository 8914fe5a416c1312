from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field, replace
from typing import Callable, Optional, Sequence

from ..attendance.model import AttendanceRecord, DayCounts, RecordKey
from ..audit.model import AuditEntry
from ..common.validators import (
    require_at_most,
    require_non_empty,
    require_non_negative_amount,
    require_period,
)
from ..core.constants import ALL_AREAS, DEFAULT_AUDIT_LOG_LIMIT, MAX_FESTIVAL_DAYS, MAX_OVERTIME_DAYS
from ..core.enums import AuditAction, ChangeFamily, Role
from ..core.exceptions import AuthorizationError, DomainError, ValidationError
from ..notifications.feed import ChangeFeed, Subscription
from ..payroll.calculator.standard_calculator import StandardDayCalculator
from ..payroll.export import write_report_csv
from ..payroll.service import PayrollReportService, ReportData
from ..scope.resolver import Scope, ScopeResolver
from ..users.area_model import Area
from ..users.model import User
from ..workers.model import Worker
from ..workflow.state_machine import AllowedActions, AttendanceWorkflow
from .remote import RemoteStore
from .working_set import WorkingSet

logger = logging.getLogger("municipal_attendance.sync")

# Roles allowed to maintain workers, users and areas.
ROSTER_ROLES = frozenset({Role.HR, Role.ADMIN})


@dataclass(frozen=True)
class BulkApproval:
    """Per-record outcome of `SyncSession.approve_many`."""

    approved: list[AttendanceRecord] = field(default_factory=list)
    failed: dict[str, DomainError] = field(default_factory=dict)


class SyncSession:
    """One user's synchronized view of the store.

    Holds the working set for the displayed period, refetches on change
    notifications and routes every mutation through the remote store first.
    Local state changes only after the store confirmed a write.
    """

    def __init__(
        self,
        store: RemoteStore,
        feed: ChangeFeed,
        *,
        actor: User,
        scope_resolver: Optional[ScopeResolver] = None,
        workflow: Optional[AttendanceWorkflow] = None,
        calculator: Optional[StandardDayCalculator] = None,
        report_service: Optional[PayrollReportService] = None,
        enforce_input_caps: bool = False,
        audit_log_limit: int = DEFAULT_AUDIT_LOG_LIMIT,
        on_error: Optional[Callable[[BaseException], None]] = None,
    ):
        self._store = store
        self._feed = feed
        self._actor = actor
        self._resolver = scope_resolver or ScopeResolver()
        self._calculator = calculator or StandardDayCalculator()
        self._workflow = workflow or AttendanceWorkflow(self._resolver, calculator=self._calculator)
        self._reports = report_service or PayrollReportService(calculator=self._calculator)
        self._enforce_input_caps = bool(enforce_input_caps)
        self._audit_log_limit = int(audit_log_limit)
        self._on_error = on_error

        self._scope: Scope = self._resolver.resolve(actor)
        self._data = WorkingSet()
        self._month: Optional[int] = None
        self._year: Optional[int] = None
        self._period_generation = 0
        self._subscriptions: list[Subscription] = []
        self._pending: set[asyncio.Task] = set()
        self._open = False

    # ---------- lifecycle ----------

    @property
    def actor(self) -> User:
        return self._actor

    @property
    def scope(self) -> Scope:
        return self._scope

    @property
    def period(self) -> tuple[int, int]:
        self._require_open()
        return self._month, self._year

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def working_set(self) -> WorkingSet:
        """Read access for views; mutate only through this session."""
        return self._data

    async def start(self, *, month: int, year: int) -> None:
        if self._open:
            raise RuntimeError("Session already started")
        if not self._actor.is_active:
            raise AuthorizationError("Inactive accounts are not permitted to open a session")
        self._month, self._year = require_period(month, year)

        for family in ChangeFamily:
            self._subscriptions.append(self._feed.subscribe(family, self._on_change))
        self._open = True
        logger.info("Session opened for %s (%s)", self._actor.username, self._actor.role.value)

        try:
            await self._feed.wait_connected()
            await self.refresh_all()
        except BaseException:
            await self.close()
            raise

    async def close(self) -> None:
        for sub in self._subscriptions:
            sub.unsubscribe()
        self._subscriptions.clear()

        pending = list(self._pending)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._pending.clear()

        self._data.clear()
        self._open = False
        logger.info("Session closed for %s", self._actor.username)

    async def __aenter__(self) -> "SyncSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _require_open(self) -> None:
        if not self._open:
            raise RuntimeError("Session is not open")

    # ---------- fetching ----------

    async def set_period(self, month: int, year: int) -> bool:
        self._require_open()
        month, year = require_period(month, year)
        self._month, self._year = month, year
        # Any fetch still in flight for the old period is now stale.
        self._period_generation += 1
        return await self.refresh_attendance()

    async def refresh_attendance(self) -> bool:
        """Fetch the displayed period within scope. Returns False if the response went stale."""

        self._require_open()
        generation, month, year, scope = self._period_generation, self._month, self._year, self._scope
        if scope.is_empty:
            return True

        records = await self._store.fetch_attendance(
            month=month,
            year=year,
            area_ids=scope.query_area_ids(),
            nationality=scope.nationality,
        )
        if generation != self._period_generation or not self._open:
            logger.debug("Discarding stale attendance response for %02d/%d", month, year)
            return False

        n = self._data.merge_records(records)
        logger.info("Fetched %d attendance records for %02d/%d", n, month, year)
        return True

    async def refresh_workers(self) -> None:
        self._require_open()
        scope = self._scope
        workers = [] if scope.is_empty else await self._store.fetch_workers(area_ids=scope.query_area_ids())
        self._data.replace_workers(w for w in workers if scope.covers_worker(w))
        logger.info("Fetched %d workers", len(self._data.workers))

    async def refresh_users(self) -> None:
        self._require_open()
        users = await self._store.fetch_users()
        self._data.replace_users(users)
        logger.info("Fetched %d users", len(users))

        me = self._data.users.get(self._actor.user_id)
        if me is not None and me != self._actor:
            self._actor = me
            scope = self._resolver.resolve(me)
            if scope != self._scope:
                logger.info("Scope of %s changed; refetching", me.username)
                self._scope = scope
                await asyncio.gather(self.refresh_workers(), self.refresh_attendance())

    async def refresh_areas(self) -> None:
        self._require_open()
        self._data.replace_areas(await self._store.fetch_areas())

    async def refresh_all(self) -> None:
        # Let every fetch settle before reporting the first failure.
        results = await asyncio.gather(
            self.refresh_areas(),
            self.refresh_users(),
            self.refresh_workers(),
            self.refresh_attendance(),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

    def _on_change(self, family: ChangeFamily) -> None:
        if not self._open:
            return
        refetch = {
            ChangeFamily.ATTENDANCE: self.refresh_attendance,
            ChangeFamily.WORKERS: self.refresh_workers,
            ChangeFamily.USERS: self.refresh_users,
        }[family]
        task = asyncio.get_running_loop().create_task(refetch())
        self._pending.add(task)
        task.add_done_callback(self._refetch_done)

    def _refetch_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        logger.error("Background refetch failed: %s", exc)
        if self._on_error is not None:
            self._on_error(exc)

    async def wait_idle(self) -> None:
        """Wait until notification-triggered refetches have finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ---------- reads ----------

    def records(self) -> list[AttendanceRecord]:
        """Records of the displayed period for workers in scope."""
        self._require_open()
        return [
            r
            for r in self._data.records_for_period(self._month, self._year)
            if r.worker_id in self._data.workers
        ]

    def record_for(self, worker_id: str) -> Optional[AttendanceRecord]:
        self._require_open()
        return self._data.records.get(RecordKey(worker_id=worker_id, month=self._month, year=self._year))

    def workers(self) -> list[Worker]:
        self._require_open()
        return sorted(self._data.workers.values(), key=lambda w: (w.name, w.worker_id))

    def users(self) -> list[User]:
        self._require_open()
        return sorted(self._data.users.values(), key=lambda u: (u.role.value, u.full_name))

    def areas(self) -> list[Area]:
        self._require_open()
        return sorted(
            self._resolver.visible_areas(self._actor, self._data.areas.values()),
            key=lambda a: a.name,
        )

    def allowed_actions(self, worker_id: str) -> AllowedActions:
        record = self.record_for(worker_id)
        worker = self._data.workers.get(worker_id)
        if record is None or worker is None:
            return AllowedActions(can_edit=False)
        return self._workflow.allowed_actions(self._actor, record, worker)

    def payable_amount(self, record: AttendanceRecord) -> float:
        worker = self._data.workers.get(record.worker_id)
        if worker is None:
            raise ValidationError(f"Worker {record.worker_id} is not loaded in this session")
        return self._calculator.payable_amount(record.counts, worker.day_value)

    def period_report(self) -> ReportData:
        return self._reports.build_period_report(
            records=self.records(),
            workers_by_id=self._data.workers,
            areas_by_id=self._data.areas,
        )

    def export_csv(self) -> str:
        return write_report_csv(self.period_report().rows)

    def unsupervised_areas(self) -> list[Area]:
        self._require_open()
        return self._resolver.unsupervised_areas(self._actor, self._data.areas.values(), list(self._data.users.values()))

    async def audit_log(
        self,
        *,
        limit: Optional[int] = None,
        actor_contains: Optional[str] = None,
        table_name: Optional[str] = None,
        action: Optional[AuditAction] = None,
    ) -> list[AuditEntry]:
        self._require_open()
        self._require_active()
        limit = self._audit_log_limit if limit is None else limit
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise ValidationError("Limit must be a positive whole number")
        return await self._store.fetch_audit_log(
            limit=limit,
            actor_contains=actor_contains or None,
            table_name=table_name or None,
            action=AuditAction(action) if action is not None else None,
        )

    # ---------- write helpers ----------

    @property
    def _actor_label(self) -> str:
        return self._actor.username

    def _require_active(self) -> None:
        if not self._actor.is_active:
            raise AuthorizationError("Inactive accounts are not permitted to act")

    def _require_roster_role(self, action: str) -> None:
        self._require_active()
        if self._actor.role not in ROSTER_ROLES:
            raise AuthorizationError(f"{self._actor.role.value} is not permitted to {action}")

    async def _write(self, what: str, call):
        try:
            return await call
        except DomainError as exc:
            logger.warning("Remote write failed (%s): %s", what, exc)
            raise

    async def _load_worker(self, worker_id: str) -> Worker:
        worker_id = require_non_empty(worker_id, "Worker id")
        worker = self._data.workers.get(worker_id) or await self._store.get_worker(worker_id)
        if worker is None:
            raise ValidationError(f"Worker {worker_id} does not exist")
        return worker

    def _resolve_period(self, month: Optional[int], year: Optional[int]) -> tuple[int, int]:
        return require_period(self._month if month is None else month, self._year if year is None else year)

    def _check_input_caps(self, counts: DayCounts) -> None:
        if not self._enforce_input_caps:
            return
        require_at_most(counts.overtime_normal_days, MAX_OVERTIME_DAYS, "Standard overtime days")
        require_at_most(counts.overtime_holiday_days, MAX_OVERTIME_DAYS, "Holiday overtime days")
        require_at_most(counts.overtime_festival_days, MAX_FESTIVAL_DAYS, "Festival days")

    async def _observed_record(self, key: RecordKey) -> AttendanceRecord:
        # The local copy may lag behind another session's write until its refetch lands.
        record = await self._store.get_attendance(key)
        if record is None:
            raise ValidationError(f"No attendance record for worker {key.worker_id} in {key.month:02d}/{key.year}")
        return record

    # ---------- attendance ----------

    async def save_attendance(
        self,
        worker_id: str,
        counts: DayCounts,
        *,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> AttendanceRecord:
        """Create or edit a worker's figures for a month (the displayed one by default)."""

        self._require_open()
        month, year = self._resolve_period(month, year)
        worker = await self._load_worker(worker_id)
        self._check_input_caps(counts)

        existing = await self._store.get_attendance(RecordKey(worker_id=worker.worker_id, month=month, year=year))
        record = self._workflow.submit(
            actor=self._actor, worker=worker, counts=counts, month=month, year=year, existing=existing
        )
        stored = await self._write("save attendance", self._store.upsert_attendance(record, actor=self._actor_label))
        self._data.put_record(stored)
        return stored

    async def _patch(self, what: str, observed: AttendanceRecord, target: AttendanceRecord) -> AttendanceRecord:
        stored = await self._write(
            what,
            self._store.patch_attendance_status(
                observed.key,
                status=target.status,
                rejection_note=target.rejection_note,
                expected_status=observed.status,
                actor=self._actor_label,
            ),
        )
        self._data.put_record(stored)
        return stored

    async def approve(self, worker_id: str, *, month: Optional[int] = None, year: Optional[int] = None) -> AttendanceRecord:
        self._require_open()
        month, year = self._resolve_period(month, year)
        worker = await self._load_worker(worker_id)
        observed = await self._observed_record(RecordKey(worker_id=worker.worker_id, month=month, year=year))
        target = self._workflow.approve(actor=self._actor, record=observed, worker=worker)
        return await self._patch("approve", observed, target)

    async def approve_many(
        self,
        worker_ids: Optional[Sequence[str]] = None,
        *,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> BulkApproval:
        """Approve several records one by one.

        Without `worker_ids`, every loaded record of the period that the
        actor may currently approve is taken. A record that fails does not
        stop the others; its error is reported in `failed`.
        """

        self._require_open()
        month, year = self._resolve_period(month, year)
        if worker_ids is None:
            workers = self._data.workers
            worker_ids = [
                r.worker_id
                for r in self._data.records_for_period(month, year)
                if r.worker_id in workers
                and self._workflow.allowed_actions(self._actor, r, workers[r.worker_id]).approve_to is not None
            ]

        outcome = BulkApproval()
        for worker_id in dict.fromkeys(worker_ids):
            try:
                outcome.approved.append(await self.approve(worker_id, month=month, year=year))
            except DomainError as exc:
                logger.warning("Bulk approval skipped worker %s: %s", worker_id, exc)
                outcome.failed[worker_id] = exc
        logger.info("Bulk approval: %d approved, %d failed", len(outcome.approved), len(outcome.failed))
        return outcome

    async def reject(
        self,
        worker_id: str,
        *,
        reason: Optional[str] = None,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> AttendanceRecord:
        self._require_open()
        month, year = self._resolve_period(month, year)
        worker = await self._load_worker(worker_id)
        observed = await self._observed_record(RecordKey(worker_id=worker.worker_id, month=month, year=year))
        target = self._workflow.reject(actor=self._actor, record=observed, worker=worker, reason=reason)
        return await self._patch("reject", observed, target)

    async def reopen(self, worker_id: str, *, month: Optional[int] = None, year: Optional[int] = None) -> AttendanceRecord:
        self._require_open()
        month, year = self._resolve_period(month, year)
        observed = await self._observed_record(RecordKey(worker_id=require_non_empty(worker_id, "Worker id"), month=month, year=year))
        target = self._workflow.reopen(actor=self._actor, record=observed)
        return await self._patch("reopen", observed, target)

    # ---------- workers ----------

    def _validated_worker(self, worker: Worker) -> Worker:
        area_id = require_non_empty(worker.area_id, "Area")
        if area_id not in self._data.areas:
            raise ValidationError(f"Area {area_id} does not exist")
        return replace(
            worker,
            worker_id=require_non_empty(worker.worker_id, "Worker id"),
            name=require_non_empty(worker.name, "Worker name"),
            area_id=area_id,
            day_value=require_non_negative_amount(worker.day_value, "Day value"),
            base_salary=require_non_negative_amount(worker.base_salary, "Base salary"),
            nationality=(worker.nationality or "").strip() or None,
        )

    def _keep_worker(self, worker: Worker) -> None:
        if self._scope.covers_worker(worker):
            self._data.put_worker(worker)
        else:
            self._data.workers.pop(worker.worker_id, None)

    async def add_worker(self, worker: Worker) -> Worker:
        self._require_open()
        self._require_roster_role("add workers")
        worker = self._validated_worker(worker)
        if await self._store.get_worker(worker.worker_id) is not None:
            raise ValidationError(f"Worker id {worker.worker_id} already exists")

        created = await self._write("add worker", self._store.create_worker(worker, actor=self._actor_label))
        self._keep_worker(created)
        return created

    async def update_worker(self, worker: Worker) -> Worker:
        self._require_open()
        self._require_roster_role("update workers")
        worker = self._validated_worker(worker)

        updated = await self._write("update worker", self._store.update_worker(worker, actor=self._actor_label))
        self._keep_worker(updated)
        return updated

    async def delete_worker(self, worker_id: str) -> None:
        self._require_open()
        self._require_roster_role("delete workers")
        worker_id = require_non_empty(worker_id, "Worker id")

        await self._write("delete worker", self._store.delete_worker(worker_id, actor=self._actor_label))
        self._data.drop_worker(worker_id)

    # ---------- users ----------

    def _validated_user(self, user: User) -> User:
        try:
            role = Role(user.role)
        except ValueError:
            raise ValidationError(f"Unknown role: {user.role}")
        area_ids = tuple(dict.fromkeys(a for a in user.area_ids if a))
        for a in (*area_ids, user.area_id):
            if a and a != ALL_AREAS and a not in self._data.areas:
                raise ValidationError(f"Area {a} does not exist")
        return replace(
            user,
            user_id=require_non_empty(user.user_id, "User id"),
            username=require_non_empty(user.username, "Username"),
            full_name=require_non_empty(user.full_name, "Full name"),
            role=role,
            area_id=user.area_id or None,
            area_ids=area_ids,
            handled_nationality=(user.handled_nationality or "").strip() or None,
        )

    async def add_user(
        self,
        *,
        username: str,
        full_name: str,
        role: Role,
        area_id: Optional[str] = None,
        area_ids: Sequence[str] = (),
        handled_nationality: Optional[str] = None,
        is_active: bool = True,
    ) -> User:
        self._require_open()
        self._require_roster_role("add users")
        user = self._validated_user(
            User(
                user_id=str(uuid.uuid4()),
                username=username,
                full_name=full_name,
                role=role,
                area_id=area_id,
                area_ids=tuple(area_ids),
                is_active=bool(is_active),
                handled_nationality=handled_nationality,
            )
        )
        if await self._store.get_user_by_username(user.username) is not None:
            raise ValidationError(f"Username {user.username} is already taken")

        created = await self._write("add user", self._store.create_user(user, actor=self._actor_label))
        self._data.put_user(created)
        return created

    async def update_user(self, user: User) -> User:
        """Update profile fields; the additional area list goes through `set_user_areas`."""

        self._require_open()
        self._require_roster_role("update users")
        user = self._validated_user(user)
        other = await self._store.get_user_by_username(user.username)
        if other is not None and other.user_id != user.user_id:
            raise ValidationError(f"Username {user.username} is already taken")

        updated = await self._write("update user", self._store.update_user(user, actor=self._actor_label))
        self._data.put_user(updated)
        return updated

    async def set_user_active(self, user_id: str, active: bool) -> User:
        self._require_open()
        self._require_roster_role("activate users")
        user = self._data.users.get(user_id) or await self._store.get_user(user_id)
        if user is None:
            raise ValidationError(f"User {user_id} does not exist")
        return await self.update_user(replace(user, is_active=bool(active)))

    async def set_user_areas(self, user_id: str, area_ids: Sequence[str]) -> None:
        self._require_open()
        self._require_roster_role("assign areas")
        area_ids = list(dict.fromkeys(a for a in area_ids if a))
        for a in area_ids:
            if a not in self._data.areas:
                raise ValidationError(f"Area {a} does not exist")

        await self._write("assign areas", self._store.set_user_areas(user_id, area_ids, actor=self._actor_label))
        await self.refresh_users()

    async def delete_user(self, user_id: str) -> None:
        self._require_open()
        self._require_roster_role("delete users")
        if user_id == self._actor.user_id:
            raise ValidationError("You cannot delete your own account")

        await self._write("delete user", self._store.delete_user(user_id, actor=self._actor_label))
        self._data.drop_user(user_id)

    # ---------- areas ----------

    async def _require_unique_area_name(self, name: str, *, except_id: Optional[str] = None) -> None:
        areas = await self._store.fetch_areas()
        for a in areas:
            if a.area_id != except_id and a.name.strip().casefold() == name.casefold():
                raise ValidationError(f"Area name {name} already exists")

    async def add_area(self, name: str) -> Area:
        self._require_open()
        self._require_roster_role("add areas")
        name = require_non_empty(name, "Area name")
        await self._require_unique_area_name(name)

        area = await self._write("add area", self._store.create_area(name, actor=self._actor_label))
        self._data.put_area(area)
        return area

    async def rename_area(self, area_id: str, name: str) -> Area:
        self._require_open()
        self._require_roster_role("rename areas")
        name = require_non_empty(name, "Area name")
        await self._require_unique_area_name(name, except_id=area_id)

        area = await self._write("rename area", self._store.rename_area(area_id, name, actor=self._actor_label))
        self._data.put_area(area)
        return area

    async def delete_area(self, area_id: str) -> None:
        self._require_open()
        self._require_roster_role("delete areas")

        await self._write("delete area", self._store.delete_area(area_id, actor=self._actor_label))
        self._data.drop_area(area_id)
        await self.refresh_users()

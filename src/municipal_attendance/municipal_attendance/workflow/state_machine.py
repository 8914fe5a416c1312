from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Optional

from ..attendance.model import AttendanceRecord, DayCounts, RecordKey
from ..common.datetime_utils import now_utc
from ..common.validators import require_period
from ..core.enums import AttendanceStatus, Role
from ..core.exceptions import AuthorizationError, ValidationError
from ..payroll.calculator.standard_calculator import StandardDayCalculator
from ..scope.resolver import ScopeResolver
from ..users.model import User
from ..workers.model import Worker
from .transitions import (
    REOPEN_TRANSITIONS,
    SUBMITTING_ROLES,
    TERMINAL_STATUSES,
    holder_of,
    initial_status,
    rule_for,
)

# Statuses a field submitter may (re)submit from; both re-enter the chain at the creation status.
_RESUBMITTABLE = frozenset({AttendanceStatus.PENDING_SUPERVISOR, AttendanceStatus.PENDING_GS})
_FIELD_ROLES = frozenset({Role.SUPERVISOR, Role.GENERAL_SUPERVISOR})


@dataclass(frozen=True)
class AllowedActions:
    can_edit: bool
    approve_to: Optional[AttendanceStatus] = None
    reject_to: Optional[AttendanceStatus] = None
    reopen_to: Optional[AttendanceStatus] = None


class AttendanceWorkflow:
    """Lifecycle state machine for monthly attendance records.

    Every method is pure: it validates, authorizes and returns the record as
    it must be written. Nothing here touches storage; a failed check raises
    and leaves the input record untouched.
    """

    def __init__(
        self,
        scope_resolver: Optional[ScopeResolver] = None,
        *,
        calculator: Optional[StandardDayCalculator] = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._scope = scope_resolver or ScopeResolver()
        self._calculator = calculator or StandardDayCalculator()
        self._clock = clock

    # -- checks -------------------------------------------------------------

    @staticmethod
    def _require_active(actor: User) -> None:
        if not actor.is_active:
            raise AuthorizationError("Inactive accounts are not permitted to act on attendance")

    def _require_in_scope(self, actor: User, worker: Worker) -> None:
        if not self._scope.resolve(actor).covers_worker(worker):
            raise AuthorizationError(f"Worker {worker.worker_id} is outside your scope; action not permitted")

    @staticmethod
    def _require_same_worker(record: AttendanceRecord, worker: Worker) -> None:
        if record.worker_id != worker.worker_id:
            raise ValueError(f"Record {record.key.record_id} does not belong to worker {worker.worker_id}")

    def can_edit(self, actor: User, record: AttendanceRecord) -> bool:
        """Whether `actor` may change the raw figures of an existing record."""
        if not actor.is_active or actor.role == Role.MAYOR:
            return False
        if record.status in TERMINAL_STATUSES:
            return False
        if actor.role == Role.ADMIN:
            return True
        return holder_of(record.status) == actor.role

    def allowed_actions(self, actor: User, record: AttendanceRecord, worker: Worker) -> AllowedActions:
        if not actor.is_active or not self._scope.resolve(actor).covers_worker(worker):
            return AllowedActions(can_edit=False)

        rule = rule_for(record.status, actor.role)
        return AllowedActions(
            can_edit=self.can_edit(actor, record),
            approve_to=rule.forward if rule else None,
            reject_to=rule.reject_to if rule else None,
            reopen_to=REOPEN_TRANSITIONS.get((record.status, actor.role)),
        )

    # -- transitions ----------------------------------------------------------

    def submit(
        self,
        *,
        actor: User,
        worker: Worker,
        counts: DayCounts,
        month: int,
        year: int,
        existing: Optional[AttendanceRecord] = None,
    ) -> AttendanceRecord:
        """Create or edit a month's figures and stamp the payable-day total."""

        self._require_active(actor)
        month, year = require_period(month, year)
        key = RecordKey(worker_id=worker.worker_id, month=month, year=year)
        if existing is not None and existing.key != key:
            raise ValueError(f"Existing record {existing.key.record_id} does not match {key.record_id}")

        if existing is None:
            if actor.role not in SUBMITTING_ROLES:
                raise AuthorizationError(f"{actor.role.value} is not permitted to submit attendance")
        elif not self.can_edit(actor, existing):
            raise AuthorizationError(
                f"{actor.role.value} is not permitted to edit a record at {existing.status.value}"
            )
        self._require_in_scope(actor, worker)
        self._calculator.validate(counts, month=month, year=year)

        if existing is None or (actor.role in _FIELD_ROLES and existing.status in _RESUBMITTABLE):
            status = initial_status(actor.role)
            note = None
        else:
            status = existing.status
            note = existing.rejection_note

        return AttendanceRecord(
            worker_id=key.worker_id,
            month=key.month,
            year=key.year,
            normal_days=counts.normal_days,
            overtime_normal_days=counts.overtime_normal_days,
            overtime_holiday_days=counts.overtime_holiday_days,
            overtime_festival_days=counts.overtime_festival_days,
            total_days=self._calculator.total_days(counts),
            status=status,
            rejection_note=note,
            updated_at=self._clock(),
        )

    def approve(self, *, actor: User, record: AttendanceRecord, worker: Worker) -> AttendanceRecord:
        self._require_active(actor)
        self._require_same_worker(record, worker)
        rule = rule_for(record.status, actor.role)
        if rule is None:
            raise AuthorizationError(
                f"{actor.role.value} is not permitted to approve a record at {record.status.value}"
            )
        self._require_in_scope(actor, worker)
        return replace(record, status=rule.forward, updated_at=self._clock())

    def reject(
        self,
        *,
        actor: User,
        record: AttendanceRecord,
        worker: Worker,
        reason: Optional[str] = None,
    ) -> AttendanceRecord:
        self._require_active(actor)
        self._require_same_worker(record, worker)
        rule = rule_for(record.status, actor.role)
        if rule is None or rule.reject_to is None:
            raise AuthorizationError(
                f"{actor.role.value} is not permitted to reject a record at {record.status.value}"
            )
        self._require_in_scope(actor, worker)
        if reason is not None and not isinstance(reason, str):
            raise ValidationError("Rejection reason must be text")
        note = (reason or "").strip() or None
        return replace(record, status=rule.reject_to, rejection_note=note, updated_at=self._clock())

    def reopen(self, *, actor: User, record: AttendanceRecord) -> AttendanceRecord:
        """Administrative override: move a finalized record back to finance."""

        self._require_active(actor)
        target = REOPEN_TRANSITIONS.get((record.status, actor.role))
        if target is None:
            raise AuthorizationError(
                f"{actor.role.value} is not permitted to reopen a record at {record.status.value}"
            )
        return replace(record, status=target, updated_at=self._clock())

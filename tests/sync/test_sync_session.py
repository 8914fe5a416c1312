from __future__ import annotations

import asyncio
from dataclasses import replace

import pytest

from src.municipal_attendance.municipal_attendance.attendance.model import AttendanceRecord, DayCounts, RecordKey
from src.municipal_attendance.municipal_attendance.core.enums import AttendanceStatus, AuditAction, ChangeFamily, Role
from src.municipal_attendance.municipal_attendance.core.exceptions import (
    AuthorizationError,
    ConcurrentModificationError,
    ReferentialIntegrityError,
    StorageError,
    ValidationError,
)
from src.municipal_attendance.municipal_attendance.sync.session import SyncSession
from src.municipal_attendance.municipal_attendance.users.service import RegistrationService
from src.municipal_attendance.municipal_attendance.workers.model import Worker

pytestmark = pytest.mark.anyio

COUNTS = DayCounts(normal_days=20, overtime_normal_days=2, overtime_holiday_days=1, overtime_festival_days=0)


def stored_record(worker_id="W1", month=1, status=AttendanceStatus.PENDING_GS, **kwargs) -> AttendanceRecord:
    return AttendanceRecord(
        worker_id=worker_id,
        month=month,
        year=2026,
        normal_days=20,
        overtime_normal_days=2,
        overtime_holiday_days=1,
        overtime_festival_days=0,
        total_days=22.0,
        status=status,
        **kwargs,
    )


class GatedStore:
    """Delegates to the real store but can hold attendance fetches for a given month."""

    def __init__(self, inner):
        self._inner = inner
        self.gates: dict[int, asyncio.Event] = {}
        self.entered: dict[int, asyncio.Event] = {}

    def __getattr__(self, name):
        return getattr(self._inner, name)

    async def fetch_attendance(self, *, month, year, **kwargs):
        rows = await self._inner.fetch_attendance(month=month, year=year, **kwargs)
        if month in self.entered:
            self.entered[month].set()
        if month in self.gates:
            await self.gates[month].wait()
        return rows


class FlakyStore:
    """Delegates to the real store; attendance fetches raise `fail` once it is set."""

    def __init__(self, inner):
        self._inner = inner
        self.fail = None

    def __getattr__(self, name):
        return getattr(self._inner, name)

    async def fetch_attendance(self, **kwargs):
        if self.fail is not None:
            raise self.fail
        return await self._inner.fetch_attendance(**kwargs)


class RacingStore:
    """Delegates to the real store; runs `after_read` once right after a single-record read."""

    def __init__(self, inner):
        self._inner = inner
        self.after_read = None

    def __getattr__(self, name):
        return getattr(self._inner, name)

    async def get_attendance(self, key):
        record = await self._inner.get_attendance(key)
        if self.after_read is not None:
            hook, self.after_read = self.after_read, None
            hook()
        return record


async def test_start_loads_scoped_working_set(open_session):
    sup = await open_session("sup")

    assert sup.period == (1, 2026)
    assert [w.worker_id for w in sup.workers()] == ["W1", "W2"]
    assert [a.name for a in sup.areas()] == ["North"]
    assert len(sup.users()) == 10


async def test_inactive_account_cannot_open_session(open_session):
    with pytest.raises(AuthorizationError):
        await open_session("pending")


async def test_supervisor_submission_scenario(open_session, db):
    sup = await open_session("sup")

    rec = await sup.save_attendance("W1", COUNTS)

    assert rec.status == AttendanceStatus.PENDING_GS
    assert rec.total_days == 22.0
    assert sup.payable_amount(rec) == 220.0
    assert sup.record_for("W1") == rec
    assert db.records[rec.key] == rec


async def test_general_supervisor_submission_scenario(open_session):
    gs = await open_session("gs")
    rec = await gs.save_attendance("W1", COUNTS)
    assert rec.status == AttendanceStatus.PENDING_HEALTH


async def test_saving_twice_keeps_one_record(open_session, db):
    admin = await open_session("admin")
    await admin.save_attendance("W1", COUNTS)
    await admin.save_attendance("W1", replace(COUNTS, normal_days=10))

    assert len(db.records) == 1
    assert admin.record_for("W1").normal_days == 10
    assert admin.record_for("W1").total_days == 12.0


async def test_supervisor_cannot_edit_once_forwarded(open_session):
    sup = await open_session("sup")
    await sup.save_attendance("W1", COUNTS)

    assert not sup.allowed_actions("W1").can_edit
    with pytest.raises(AuthorizationError, match="not permitted to edit"):
        await sup.save_attendance("W1", replace(COUNTS, normal_days=10))


async def test_chain_with_rejection(open_session, db):
    sup = await open_session("sup")
    gs = await open_session("gs")
    health = await open_session("health")
    hr = await open_session("hr")

    await sup.save_attendance("W1", COUNTS)
    await gs.approve("W1")
    await health.approve("W1")
    rec = await hr.reject("W1", reason="missing signature")

    assert rec.status == AttendanceStatus.PENDING_GS
    assert rec.rejection_note == "missing signature"
    assert rec.counts == COUNTS
    assert db.records[rec.key].rejection_note == "missing signature"


async def test_failed_remote_write_leaves_local_state(open_session, db):
    admin = await open_session("admin")
    first = await admin.save_attendance("W1", COUNTS)

    db.fail_next = StorageError("connection reset")
    with pytest.raises(StorageError, match="connection reset"):
        await admin.save_attendance("W1", replace(COUNTS, normal_days=5))

    assert admin.record_for("W1") == first
    assert db.records[first.key] == first


async def test_validation_and_authorization_happen_before_any_write(open_session, db):
    sup = await open_session("sup")
    mayor = await open_session("mayor")
    db.records[RecordKey("W1", 1, 2026)] = stored_record()
    await mayor.refresh_attendance()
    writes = db.writes

    with pytest.raises(ValidationError):
        await sup.save_attendance("W2", DayCounts(normal_days=-3))
    with pytest.raises(ValidationError):
        await sup.save_attendance("W404", COUNTS)
    with pytest.raises(AuthorizationError, match="not permitted"):
        await sup.save_attendance("W3", COUNTS)
    with pytest.raises(AuthorizationError, match="not permitted"):
        await mayor.approve("W1")

    assert db.writes == writes
    assert db.audit == []


async def test_input_caps_are_optional(open_session):
    strict = await open_session("admin", enforce_input_caps=True)
    with pytest.raises(ValidationError, match="Festival days cannot exceed 10"):
        await strict.save_attendance("W3", DayCounts(normal_days=5, overtime_festival_days=11))

    relaxed = await open_session("admin")
    rec = await relaxed.save_attendance("W3", DayCounts(normal_days=5, overtime_festival_days=11))
    assert rec.total_days == 16.0


async def test_stale_period_response_is_discarded(open_session, store, db):
    db.records[RecordKey("W1", 2, 2026)] = stored_record(month=2)
    db.records[RecordKey("W1", 3, 2026)] = stored_record(month=3)
    gated = GatedStore(store)
    admin = await open_session("admin", remote=gated)

    gated.gates[2] = asyncio.Event()
    gated.entered[2] = asyncio.Event()
    slow = asyncio.create_task(admin.set_period(2, 2026))
    await gated.entered[2].wait()

    assert await admin.set_period(3, 2026) is True
    gated.gates[2].set()

    assert await slow is False
    assert admin.period == (3, 2026)
    assert {k.month for k in admin.working_set.records} == {3}
    assert [r.month for r in admin.records()] == [3]


async def test_merge_keeps_records_of_other_periods(open_session, db):
    db.records[RecordKey("W1", 1, 2026)] = stored_record(month=1)
    db.records[RecordKey("W2", 2, 2026)] = stored_record(worker_id="W2", month=2)
    admin = await open_session("admin")

    await admin.set_period(2, 2026)
    assert [r.worker_id for r in admin.records()] == ["W2"]
    assert RecordKey("W1", 1, 2026) in admin.working_set.records

    # Incoming rows overwrite held rows with the same key.
    db.records[RecordKey("W2", 2, 2026)] = stored_record(worker_id="W2", month=2, status=AttendanceStatus.PENDING_HR)
    await admin.refresh_attendance()
    assert admin.record_for("W2").status == AttendanceStatus.PENDING_HR


async def test_change_notification_triggers_scoped_refetch(open_session, attendance_repo):
    hr = await open_session("hr")
    sup = await open_session("sup")
    calls = len(attendance_repo.list_calls)

    await sup.save_attendance("W1", COUNTS)
    await hr.wait_idle()
    await sup.wait_idle()

    assert hr.record_for("W1").status == AttendanceStatus.PENDING_GS
    assert len(attendance_repo.list_calls) > calls
    assert {"month": 1, "year": 2026, "area_ids": ["area-a"], "nationality": None} in attendance_repo.list_calls


async def test_worker_roster_change_reaches_other_sessions(open_session):
    sup = await open_session("sup")
    hr = await open_session("hr")

    await hr.add_worker(Worker(worker_id="W4", name="Zaid", area_id="area-a", day_value=9.5))
    await sup.wait_idle()

    assert "W4" in [w.worker_id for w in sup.workers()]


async def test_background_refetch_failure_is_reported(open_session, store):
    errors = []
    flaky = FlakyStore(store)
    hr = await open_session("hr", remote=flaky, on_error=errors.append)
    sup = await open_session("sup")

    flaky.fail = StorageError("lost connection")
    await sup.save_attendance("W1", COUNTS)
    await hr.wait_idle()

    assert [str(e) for e in errors] == ["lost connection"]
    assert hr.record_for("W1") is None


async def test_concurrent_status_change_is_refused(open_session, store, db):
    key = RecordKey("W1", 1, 2026)
    db.records[key] = stored_record(status=AttendanceStatus.PENDING_HR)
    racing = RacingStore(store)
    hr = await open_session("hr", remote=racing)

    # Another writer lands between the read and the status patch.
    racing.after_read = lambda: db.records.__setitem__(key, stored_record(status=AttendanceStatus.PENDING_AUDIT))
    with pytest.raises(ConcurrentModificationError):
        await hr.approve("W1")

    assert hr.record_for("W1").status == AttendanceStatus.PENDING_HR
    assert db.records[key].status == AttendanceStatus.PENDING_AUDIT


async def test_approval_uses_stored_status_while_refetch_is_pending(open_session, db):
    sup = await open_session("sup")
    gs = await open_session("gs")
    health = await open_session("health")

    await sup.save_attendance("W1", COUNTS)
    await gs.approve("W1")
    # No wait_idle: health's own copy has not caught up yet.
    rec = await health.approve("W1")

    assert rec.status == AttendanceStatus.PENDING_HR
    assert db.records[rec.key].status == AttendanceStatus.PENDING_HR
    await health.wait_idle()
    assert health.record_for("W1").status == AttendanceStatus.PENDING_HR


async def test_failed_start_closes_the_session(db, store, feed, attendance_repo):
    flaky = FlakyStore(store)
    flaky.fail = StorageError("database unreachable")
    session = SyncSession(flaky, feed, actor=db.user("hr"))

    with pytest.raises(StorageError, match="database unreachable"):
        await session.start(month=1, year=2026)

    assert not session.is_open
    assert all(not subs for subs in feed._subscribers.values())

    flaky.fail = None
    feed.publish(ChangeFamily.ATTENDANCE)
    await asyncio.sleep(0)
    assert attendance_repo.list_calls == []
    with pytest.raises(RuntimeError):
        session.records()


async def test_approve_many_reports_each_record(open_session, db):
    db.records[RecordKey("W1", 1, 2026)] = stored_record(status=AttendanceStatus.PENDING_GS)
    db.records[RecordKey("W2", 1, 2026)] = stored_record(worker_id="W2", status=AttendanceStatus.PENDING_HEALTH)
    gs = await open_session("gs")

    outcome = await gs.approve_many(["W1", "W2", "W9"])

    assert [r.worker_id for r in outcome.approved] == ["W1"]
    assert outcome.approved[0].status == AttendanceStatus.PENDING_HEALTH
    assert isinstance(outcome.failed["W2"], AuthorizationError)
    assert isinstance(outcome.failed["W9"], ValidationError)
    assert db.records[RecordKey("W1", 1, 2026)].status == AttendanceStatus.PENDING_HEALTH
    assert db.records[RecordKey("W2", 1, 2026)].status == AttendanceStatus.PENDING_HEALTH


async def test_approve_many_defaults_to_approvable_records(open_session, db):
    db.records[RecordKey("W1", 1, 2026)] = stored_record(status=AttendanceStatus.PENDING_GS)
    db.records[RecordKey("W2", 1, 2026)] = stored_record(worker_id="W2", status=AttendanceStatus.PENDING_GS)
    db.records[RecordKey("W3", 1, 2026)] = stored_record(worker_id="W3", status=AttendanceStatus.PENDING_GS)
    gs = await open_session("gs")
    health = await open_session("health")

    outcome = await gs.approve_many()

    assert sorted(r.worker_id for r in outcome.approved) == ["W1", "W2"]
    assert outcome.failed == {}
    assert db.records[RecordKey("W3", 1, 2026)].status == AttendanceStatus.PENDING_GS

    await health.wait_idle()
    assert sorted(r.worker_id for r in (await health.approve_many()).approved) == ["W1", "W2"]
    assert db.records[RecordKey("W1", 1, 2026)].status == AttendanceStatus.PENDING_HR


async def test_admin_reopens_approved_record(open_session, db):
    db.records[RecordKey("W3", 1, 2026)] = stored_record(worker_id="W3", status=AttendanceStatus.APPROVED)
    admin = await open_session("admin")
    payroll = await open_session("payroll")

    with pytest.raises(AuthorizationError):
        await payroll.reopen("W3")
    rec = await admin.reopen("W3")
    assert rec.status == AttendanceStatus.PENDING_FINANCE


async def test_roster_changes_need_hr_or_admin(open_session):
    sup = await open_session("sup")
    with pytest.raises(AuthorizationError, match="not permitted"):
        await sup.add_worker(Worker(worker_id="W9", name="X", area_id="area-a", day_value=1.0))
    with pytest.raises(AuthorizationError):
        await sup.add_area("West")
    with pytest.raises(AuthorizationError):
        await sup.set_user_areas("u-sup", ["area-b"])


async def test_worker_validation(open_session):
    hr = await open_session("hr")

    with pytest.raises(ValidationError, match="already exists"):
        await hr.add_worker(Worker(worker_id="W1", name="Dup", area_id="area-a", day_value=1.0))
    with pytest.raises(ValidationError, match="does not exist"):
        await hr.add_worker(Worker(worker_id="W9", name="Nowhere", area_id="area-x", day_value=1.0))
    with pytest.raises(ValidationError, match="required"):
        await hr.add_worker(Worker(worker_id="W9", name=" ", area_id="area-a", day_value=1.0))
    with pytest.raises(ValidationError, match="negative"):
        await hr.add_worker(Worker(worker_id="W9", name="Neg", area_id="area-a", day_value=-1.0))


async def test_deleting_area_with_worker_fails_and_keeps_area(open_session, db):
    admin = await open_session("admin")

    with pytest.raises(ReferentialIntegrityError):
        await admin.delete_area("area-b")

    assert "area-b" in db.areas
    assert "South" in [a.name for a in admin.areas()]


async def test_area_lifecycle(open_session, db):
    admin = await open_session("admin")

    with pytest.raises(ValidationError, match="already exists"):
        await admin.add_area("north")

    area = await admin.add_area("Harbour")
    renamed = await admin.rename_area(area.area_id, "Harbour District")
    assert renamed.name == "Harbour District"
    with pytest.raises(ValidationError):
        await admin.rename_area(area.area_id, "South")

    await admin.delete_area(area.area_id)
    assert area.area_id not in db.areas
    assert "Harbour District" not in [a.name for a in admin.areas()]


async def test_deleting_area_clears_primary_assignment(open_session, db):
    sup = await open_session("sup")
    admin = await open_session("admin")
    area = await admin.add_area("Harbour")
    await admin.update_user(replace(db.users["u-sup"], area_id=area.area_id))
    await sup.wait_idle()
    assert sup.scope.area_ids == frozenset({area.area_id})

    await admin.delete_area(area.area_id)
    await sup.wait_idle()

    assert db.users["u-sup"].area_id is None
    assert area.area_id not in sup.scope.area_ids
    assert sup.workers() == []
    assert [u.area_id for u in admin.users() if u.user_id == "u-sup"] == [None]


async def test_area_assignment_widens_supervisor_scope(open_session, db):
    sup = await open_session("sup")
    admin = await open_session("admin")

    await admin.set_user_areas("u-sup", ["area-b"])
    await sup.wait_idle()

    assert db.users["u-sup"].area_ids == ("area-b",)
    assert sup.scope.area_ids == frozenset({"area-a", "area-b"})
    assert [w.worker_id for w in sup.workers()] == ["W1", "W2", "W3"]
    assert [a.area_id for a in admin.unsupervised_areas()] == []


async def test_registration_then_activation(open_session, store, db):
    hr = await open_session("hr")
    user = await RegistrationService(store).register(
        username="newbie", full_name="New Bie", role=Role.SUPERVISOR, area_id="area-b"
    )
    assert user.is_active is False

    with pytest.raises(ValidationError, match="already taken"):
        await RegistrationService(store).register(username="newbie", full_name="Again", role=Role.HR)

    activated = await hr.set_user_active(user.user_id, True)
    assert activated.is_active
    assert db.users[user.user_id].is_active


async def test_user_management(open_session, db):
    admin = await open_session("admin")

    created = await admin.add_user(username="auditor2", full_name="Second Auditor", role=Role.INTERNAL_AUDIT)
    assert db.users[created.user_id].is_active

    with pytest.raises(ValidationError, match="already taken"):
        await admin.add_user(username="auditor2", full_name="Clash", role=Role.HR)
    with pytest.raises(ValidationError, match="Unknown role"):
        await admin.add_user(username="x", full_name="X", role="JANITOR")
    with pytest.raises(ValidationError):
        await admin.delete_user("u-admin")

    await admin.delete_user(created.user_id)
    assert created.user_id not in db.users


async def test_audit_log_through_session(open_session):
    sup = await open_session("sup")
    await sup.save_attendance("W1", COUNTS)

    entries = await sup.audit_log(action=AuditAction.INSERT)
    assert [e.changed_by for e in entries] == ["sup"]
    with pytest.raises(ValidationError):
        await sup.audit_log(limit=0)


async def test_export_and_report(open_session):
    admin = await open_session("admin")
    await admin.save_attendance("W1", COUNTS)
    await admin.save_attendance("W3", DayCounts(normal_days=10))

    lines = admin.export_csv().splitlines()
    assert lines[0] == (
        "worker_id,name,area_name,normal_days,overtime_normal_days,"
        "overtime_holiday_days,overtime_festival_days,total_days"
    )
    assert lines[1:] == ["W1,Ahmad,North,20,2,1,0,22.0", "W3,Karim,South,10,0,0,0,10.0"]

    report = admin.period_report()
    assert report.status_counts["PENDING_GS"] == 2
    assert {s["area_name"]: s["total_amount"] for s in report.summary} == {"North": 220.0, "South": 80.0}


async def test_empty_scope_fetches_nothing(open_session, db, attendance_repo):
    db.users["u-sup"] = replace(db.users["u-sup"], area_id=None)
    sup = await open_session("sup")

    assert sup.scope.is_empty
    assert sup.workers() == []
    assert sup.records() == []
    assert attendance_repo.list_calls == []


async def test_close_stops_listening(open_session, feed):
    sup = await open_session("sup")
    await sup.close()

    assert not sup.is_open
    assert all(not subs for subs in feed._subscribers.values())
    with pytest.raises(RuntimeError):
        sup.records()

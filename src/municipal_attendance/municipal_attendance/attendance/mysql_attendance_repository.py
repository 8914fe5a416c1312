from __future__ import annotations

from typing import Optional, Sequence

from ..common.nationality import nationality_aliases
from ..core.enums import AttendanceStatus
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, in_clause
from ..payroll.calculator.base import DayTotalCalculator
from ..payroll.calculator.standard_calculator import StandardDayCalculator
from .model import AttendanceRecord, DayCounts, RecordKey
from .repository import AttendanceRepository

_COLUMNS = """
    ar.worker_id, ar.month, ar.year,
    ar.normal_days, ar.overtime_normal_days, ar.overtime_holiday_days, ar.overtime_festival_days,
    ar.status, ar.rejection_notes, ar.updated_at
"""


class MySQLAttendanceRepository(AttendanceRepository):
    def __init__(self, conn_factory: DatabaseConnection, *, calculator: Optional[DayTotalCalculator] = None):
        self._conn_factory = conn_factory
        self._calculator = calculator or StandardDayCalculator()

    def _to_record(self, r: dict) -> AttendanceRecord:
        counts = DayCounts(
            normal_days=int(r["normal_days"]),
            overtime_normal_days=int(r["overtime_normal_days"]),
            overtime_holiday_days=int(r["overtime_holiday_days"]),
            overtime_festival_days=int(r["overtime_festival_days"]),
        )
        # The stored total column is for SQL reporting only; re-derive on read.
        return AttendanceRecord(
            worker_id=str(r["worker_id"]),
            month=int(r["month"]),
            year=int(r["year"]),
            normal_days=counts.normal_days,
            overtime_normal_days=counts.overtime_normal_days,
            overtime_holiday_days=counts.overtime_holiday_days,
            overtime_festival_days=counts.overtime_festival_days,
            total_days=self._calculator.total_days(counts),
            status=AttendanceStatus(r["status"]),
            rejection_note=r.get("rejection_notes"),
            updated_at=r.get("updated_at"),
        )

    def _select_one(self, cur, key: RecordKey) -> Optional[AttendanceRecord]:
        cur.execute(
            f"""
            SELECT {_COLUMNS}
            FROM attendance_records ar
            WHERE ar.worker_id=%s AND ar.month=%s AND ar.year=%s
            """,
            (key.worker_id, key.month, key.year),
        )
        row = fetchone(cur)
        return self._to_record(row) if row else None

    def get(self, key: RecordKey) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            return self._select_one(cur, key)

    def upsert(self, record: AttendanceRecord) -> AttendanceRecord:
        total = self._calculator.total_days(record.counts)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO attendance_records(
                    worker_id, month, year,
                    normal_days, overtime_normal_days, overtime_holiday_days, overtime_festival_days,
                    total_calculated_days, status, rejection_notes
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                ON DUPLICATE KEY UPDATE
                    normal_days=VALUES(normal_days),
                    overtime_normal_days=VALUES(overtime_normal_days),
                    overtime_holiday_days=VALUES(overtime_holiday_days),
                    overtime_festival_days=VALUES(overtime_festival_days),
                    total_calculated_days=VALUES(total_calculated_days),
                    status=VALUES(status),
                    rejection_notes=VALUES(rejection_notes),
                    updated_at=CURRENT_TIMESTAMP
                """,
                (
                    record.worker_id,
                    record.month,
                    record.year,
                    record.normal_days,
                    record.overtime_normal_days,
                    record.overtime_holiday_days,
                    record.overtime_festival_days,
                    total,
                    record.status.value,
                    record.rejection_note,
                ),
            )
            stored = self._select_one(cur, record.key)
        if stored is None:
            raise RuntimeError(f"Upserted attendance row vanished: {record.key.record_id}")
        return stored

    def patch_status(
        self,
        key: RecordKey,
        *,
        status: AttendanceStatus,
        rejection_note: Optional[str],
        expected_status: Optional[AttendanceStatus] = None,
    ) -> Optional[AttendanceRecord]:
        clauses = ["worker_id=%s", "month=%s", "year=%s"]
        params: list[object] = [status.value, rejection_note, key.worker_id, key.month, key.year]
        if expected_status is not None:
            clauses.append("status=%s")
            params.append(expected_status.value)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                UPDATE attendance_records
                SET status=%s, rejection_notes=%s, updated_at=CURRENT_TIMESTAMP
                WHERE {" AND ".join(clauses)}
                """,
                tuple(params),
            )
            if cur.rowcount <= 0:
                return None
            return self._select_one(cur, key)

    def list_for_period(
        self,
        *,
        month: int,
        year: int,
        area_ids: Optional[Sequence[str]] = None,
        nationality: Optional[str] = None,
    ) -> Sequence[AttendanceRecord]:
        clauses = ["ar.month=%s", "ar.year=%s"]
        params: list[object] = [int(month), int(year)]

        if area_ids is not None:
            if not area_ids:
                return []
            clauses.append(f"w.area_id IN ({in_clause(area_ids)})")
            params.extend(area_ids)
        tags = nationality_aliases(nationality)
        if tags:
            clauses.append(f"w.nationality IN ({in_clause(tags)})")
            params.extend(tags)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM attendance_records ar
                JOIN workers w ON w.worker_id = ar.worker_id
                WHERE {" AND ".join(clauses)}
                ORDER BY ar.worker_id ASC
                """,
                tuple(params),
            )
            return [self._to_record(r) for r in fetchall(cur)]

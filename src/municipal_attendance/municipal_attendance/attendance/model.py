from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.enums import AttendanceStatus


@dataclass(frozen=True, order=True)
class RecordKey:
    """Identity of an attendance record: one record per worker per calendar month."""

    worker_id: str
    month: int
    year: int

    @property
    def record_id(self) -> str:
        """Text form used for audit log references."""
        return f"{self.worker_id}-{self.month}-{self.year}"


@dataclass(frozen=True)
class DayCounts:
    """Raw monthly figures entered by a supervisor."""

    normal_days: int = 0
    overtime_normal_days: int = 0
    overtime_holiday_days: int = 0
    overtime_festival_days: int = 0


@dataclass(frozen=True)
class AttendanceRecord:
    """Domain entity: a worker's attendance for one month.

    `total_days` is always stamped by the calculation engine; it is never
    taken from caller input.
    """

    worker_id: str
    month: int
    year: int
    normal_days: int
    overtime_normal_days: int
    overtime_holiday_days: int
    overtime_festival_days: int
    total_days: float
    status: AttendanceStatus
    rejection_note: Optional[str] = None
    updated_at: Optional[datetime] = None

    @property
    def key(self) -> RecordKey:
        return RecordKey(worker_id=self.worker_id, month=self.month, year=self.year)

    @property
    def counts(self) -> DayCounts:
        return DayCounts(
            normal_days=self.normal_days,
            overtime_normal_days=self.overtime_normal_days,
            overtime_holiday_days=self.overtime_holiday_days,
            overtime_festival_days=self.overtime_festival_days,
        )

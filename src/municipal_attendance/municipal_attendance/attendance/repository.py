from __future__ import annotations

from typing import Optional, Protocol, Sequence

from ..core.enums import AttendanceStatus
from .model import AttendanceRecord, RecordKey


class AttendanceRepository(Protocol):
    def get(self, key: RecordKey) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def upsert(self, record: AttendanceRecord) -> AttendanceRecord:
        """Insert or overwrite the row sharing `record.key`; returns the stored row."""

        raise NotImplementedError

    def patch_status(
        self,
        key: RecordKey,
        *,
        status: AttendanceStatus,
        rejection_note: Optional[str],
        expected_status: Optional[AttendanceStatus] = None,
    ) -> Optional[AttendanceRecord]:
        """Update status + rejection note only.

        Returns None when no row matched (missing, or no longer at `expected_status`).
        """

        raise NotImplementedError

    def list_for_period(
        self,
        *,
        month: int,
        year: int,
        area_ids: Optional[Sequence[str]] = None,
        nationality: Optional[str] = None,
    ) -> Sequence[AttendanceRecord]:
        """Scoped read. `area_ids=None` means organization-wide."""

        raise NotImplementedError

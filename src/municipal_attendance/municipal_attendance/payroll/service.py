from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from ..attendance.model import AttendanceRecord
from ..core.constants import (
    ANOMALY_OVERTIME_HOLIDAY_DAYS,
    ANOMALY_OVERTIME_NORMAL_DAYS,
    ANOMALY_TOTAL_DAYS,
    MONEY_DECIMALS,
)
from ..core.enums import AttendanceStatus
from ..users.area_model import Area
from ..workers.model import Worker
from .calculator.base import DayTotalCalculator
from .calculator.standard_calculator import StandardDayCalculator


@dataclass(frozen=True)
class ReportData:
    rows: list[dict]
    summary: list[dict]
    status_counts: dict[str, int]
    anomalies: int = 0


def is_anomaly(record: AttendanceRecord, total_days: float) -> bool:
    return (
        total_days > ANOMALY_TOTAL_DAYS
        or record.overtime_normal_days > ANOMALY_OVERTIME_NORMAL_DAYS
        or record.overtime_holiday_days > ANOMALY_OVERTIME_HOLIDAY_DAYS
    )


class PayrollReportService:
    """Period report over records already loaded for a session."""

    def __init__(self, *, calculator: Optional[DayTotalCalculator] = None):
        self._calculator = calculator or StandardDayCalculator()

    def build_period_report(
        self,
        *,
        records: Iterable[AttendanceRecord],
        workers_by_id: Mapping[str, Worker],
        areas_by_id: Mapping[str, Area],
    ) -> ReportData:
        out_rows: list[dict] = []
        summary_map: dict[str, dict] = {}
        status_counts = {s.value: 0 for s in AttendanceStatus}
        anomalies = 0

        # Every visible area gets a summary row, even with no records yet.
        for w in workers_by_id.values():
            s = summary_map.get(w.area_id)
            if not s:
                area = areas_by_id.get(w.area_id)
                s = {
                    "area_id": w.area_id,
                    "area_name": area.name if area else "-",
                    "workers": 0,
                    "records": 0,
                    "total_days": 0.0,
                    "total_amount": 0.0,
                    "approved": 0,
                }
                summary_map[w.area_id] = s
            s["workers"] += 1

        for r in records:
            worker = workers_by_id.get(r.worker_id)
            if worker is None:
                continue
            area = areas_by_id.get(worker.area_id)
            total = self._calculator.total_days(r.counts)
            amount = self._calculator.payable_amount(r.counts, worker.day_value)
            flagged = is_anomaly(r, total)
            if flagged:
                anomalies += 1

            out_rows.append(
                {
                    "worker_id": worker.worker_id,
                    "name": worker.name,
                    "area_id": worker.area_id,
                    "area_name": area.name if area else "-",
                    "nationality": worker.nationality or "",
                    "normal_days": r.normal_days,
                    "overtime_normal_days": r.overtime_normal_days,
                    "overtime_holiday_days": r.overtime_holiday_days,
                    "overtime_festival_days": r.overtime_festival_days,
                    "total_days": total,
                    "day_value": worker.day_value,
                    "amount": amount,
                    "status": r.status.value,
                    "rejection_note": r.rejection_note or "",
                    "is_anomaly": flagged,
                }
            )

            s = summary_map[worker.area_id]
            s["records"] += 1
            s["total_days"] += total
            s["total_amount"] += amount
            if r.status == AttendanceStatus.APPROVED:
                s["approved"] += 1
            status_counts[r.status.value] += 1

        summary = []
        for s in summary_map.values():
            s["total_amount"] = round(s["total_amount"], MONEY_DECIMALS)
            summary.append(s)

        out_rows.sort(key=lambda x: (x["area_name"], x["name"], x["worker_id"]))
        summary.sort(key=lambda x: x["area_name"])
        return ReportData(rows=out_rows, summary=summary, status_counts=status_counts, anomalies=anomalies)

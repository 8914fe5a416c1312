from __future__ import annotations

import csv
import io
from typing import Iterable

EXPORT_COLUMNS = [
    "worker_id",
    "name",
    "area_name",
    "normal_days",
    "overtime_normal_days",
    "overtime_holiday_days",
    "overtime_festival_days",
    "total_days",
]


def write_report_csv(rows: Iterable[dict]) -> str:
    """Render report rows as CSV text with a header row.

    Pure projection: extra row keys (amount, status...) are left out.
    """

    out = io.StringIO()
    writer = csv.DictWriter(out, fieldnames=EXPORT_COLUMNS, extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    return out.getvalue()

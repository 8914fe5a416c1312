from __future__ import annotations

from ...attendance.model import DayCounts
from ...common.datetime_utils import days_in_month
from ...common.validators import require_non_negative_int
from ...core.constants import (
    MONEY_DECIMALS,
    NORMAL_DAY_RATE,
    OVERTIME_FESTIVAL_RATE,
    OVERTIME_HOLIDAY_RATE,
    OVERTIME_NORMAL_RATE,
)
from ...core.exceptions import ValidationError
from .base import DayTotalCalculator


class StandardDayCalculator(DayTotalCalculator):
    """Standard rule: normal + 0.5 * standard overtime + holiday overtime + festival days."""

    def total_days(self, counts: DayCounts) -> float:
        return (
            counts.normal_days * NORMAL_DAY_RATE
            + counts.overtime_normal_days * OVERTIME_NORMAL_RATE
            + counts.overtime_holiday_days * OVERTIME_HOLIDAY_RATE
            + counts.overtime_festival_days * OVERTIME_FESTIVAL_RATE
        )

    def payable_amount(self, counts: DayCounts, day_value: float) -> float:
        return round(self.total_days(counts) * float(day_value), MONEY_DECIMALS)

    def validate(self, counts: DayCounts, *, month: int, year: int) -> DayCounts:
        """Engine bounds: every count non-negative, normal days within the month."""
        require_non_negative_int(counts.normal_days, "Normal days")
        require_non_negative_int(counts.overtime_normal_days, "Standard overtime days")
        require_non_negative_int(counts.overtime_holiday_days, "Holiday overtime days")
        require_non_negative_int(counts.overtime_festival_days, "Festival days")

        limit = days_in_month(month, year)
        if counts.normal_days > limit:
            raise ValidationError(f"Normal days cannot exceed {limit} for {month:02d}/{year}")
        return counts

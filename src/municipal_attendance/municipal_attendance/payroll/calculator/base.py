from __future__ import annotations

from abc import ABC, abstractmethod

from ...attendance.model import DayCounts


class DayTotalCalculator(ABC):
    """Calculator interface (Strategy Pattern for payable days)."""

    @abstractmethod
    def total_days(self, counts: DayCounts) -> float:
        raise NotImplementedError

    @abstractmethod
    def payable_amount(self, counts: DayCounts, day_value: float) -> float:
        raise NotImplementedError

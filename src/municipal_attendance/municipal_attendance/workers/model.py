from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Worker:
    """Domain entity: a field worker paid per attendance day.

    The worker id is issued by the organization and never changes.
    """

    worker_id: str
    name: str
    area_id: str
    day_value: float
    base_salary: float = 0.0
    nationality: Optional[str] = None

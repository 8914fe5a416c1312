from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Area:
    area_id: str
    name: str

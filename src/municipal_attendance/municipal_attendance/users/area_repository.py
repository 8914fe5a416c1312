from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .area_model import Area


class AreaRepository(Protocol):
    def list_all(self) -> Sequence[Area]:
        raise NotImplementedError

    def get_by_id(self, area_id: str) -> Optional[Area]:
        raise NotImplementedError

    def create(self, *, name: str) -> Area:
        raise NotImplementedError

    def rename(self, area_id: str, *, name: str) -> Area:
        raise NotImplementedError

    def delete_by_id(self, area_id: str) -> bool:
        """Must refuse while any worker references the area."""

        raise NotImplementedError

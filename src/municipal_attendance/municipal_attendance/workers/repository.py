from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import Worker


class WorkerRepository(Protocol):
    def get_by_id(self, worker_id: str) -> Optional[Worker]:
        raise NotImplementedError

    def list_by_areas(self, area_ids: Optional[Sequence[str]] = None) -> Sequence[Worker]:
        """`None` means every area."""

        raise NotImplementedError

    def create(self, worker: Worker) -> Worker:
        raise NotImplementedError

    def update(self, worker: Worker) -> Worker:
        raise NotImplementedError

    def delete_by_id(self, worker_id: str) -> bool:
        raise NotImplementedError

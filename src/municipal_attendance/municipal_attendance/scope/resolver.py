from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Sequence

from ..attendance.model import AttendanceRecord
from ..common.nationality import is_wildcard, nationality_matches, normalize_nationality
from ..core.constants import ALL_AREAS
from ..core.enums import Role
from ..users.area_model import Area
from ..users.model import User
from ..workers.model import Worker

# Roles whose visibility follows their area assignments. Every other role
# works organization-wide (still narrowed by a handled-nationality setting).
AREA_SCOPED_ROLES = frozenset({Role.SUPERVISOR, Role.GENERAL_SUPERVISOR})


@dataclass(frozen=True)
class Scope:
    """Resolved visibility of one user.

    A global scope is a rule, not a snapshot: it covers areas created after
    the scope was resolved.
    """

    is_global: bool
    area_ids: frozenset[str] = frozenset()
    nationality: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.is_global and not self.area_ids

    def covers_area(self, area_id: Optional[str]) -> bool:
        if self.is_global:
            return True
        return area_id is not None and area_id in self.area_ids

    def covers_worker(self, worker: Worker) -> bool:
        return self.covers_area(worker.area_id) and nationality_matches(worker.nationality, self.nationality)

    def query_area_ids(self) -> Optional[list[str]]:
        """Area filter for scoped reads; `None` means no area filter."""
        if self.is_global:
            return None
        return sorted(self.area_ids)


class ScopeResolver:
    """Decides which areas, workers and records a user may see or act on."""

    def resolve(self, user: User) -> Scope:
        nationality = None if is_wildcard(user.handled_nationality) else normalize_nationality(user.handled_nationality)

        if user.role == Role.ADMIN or user.area_id == ALL_AREAS or ALL_AREAS in user.area_ids:
            return Scope(is_global=True, nationality=nationality)
        if user.role not in AREA_SCOPED_ROLES:
            return Scope(is_global=True, nationality=nationality)

        return Scope(is_global=False, area_ids=user.assigned_area_ids, nationality=nationality)

    def visible_areas(self, user: User, areas: Iterable[Area]) -> list[Area]:
        scope = self.resolve(user)
        return [a for a in areas if scope.covers_area(a.area_id)]

    def visible_workers(self, user: User, workers: Iterable[Worker]) -> list[Worker]:
        scope = self.resolve(user)
        return [w for w in workers if scope.covers_worker(w)]

    def visible_records(
        self,
        user: User,
        records: Iterable[AttendanceRecord],
        workers_by_id: Mapping[str, Worker],
    ) -> list[AttendanceRecord]:
        scope = self.resolve(user)
        out = []
        for r in records:
            worker = workers_by_id.get(r.worker_id)
            if worker is not None and scope.covers_worker(worker):
                out.append(r)
        return out

    def unsupervised_areas(self, user: User, areas: Iterable[Area], users: Sequence[User]) -> list[Area]:
        """Areas in the user's scope that no active field supervisor claims."""

        claimed: set[str] = set()
        for u in users:
            if u.role == Role.SUPERVISOR and u.is_active:
                claimed.update(u.assigned_area_ids)
        if ALL_AREAS in claimed:
            return []

        return [a for a in self.visible_areas(user, areas) if a.area_id not in claimed]

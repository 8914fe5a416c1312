from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence

from ..core.enums import AuditAction
from .model import AuditEntry


class AuditRepository(Protocol):
    def append(
        self,
        *,
        action: AuditAction,
        table_name: str,
        record_id: str,
        changed_by: Optional[str],
        new_data: Optional[dict[str, Any]] = None,
    ) -> None:
        raise NotImplementedError

    def list_recent(
        self,
        *,
        limit: int,
        actor_contains: Optional[str] = None,
        table_name: Optional[str] = None,
        action: Optional[AuditAction] = None,
    ) -> Sequence[AuditEntry]:
        """Most recent first."""

        raise NotImplementedError

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..core.enums import AuditAction


@dataclass(frozen=True)
class AuditEntry:
    """Append-only log row written as a side effect of every store write."""

    entry_id: int
    action: AuditAction
    table_name: str
    record_id: str
    changed_by: Optional[str]
    changed_at: datetime
    new_data: Optional[dict[str, Any]] = field(default=None)

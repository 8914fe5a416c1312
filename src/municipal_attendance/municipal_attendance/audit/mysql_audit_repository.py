from __future__ import annotations

import json
from typing import Any, Optional, Sequence

from ..core.enums import AuditAction
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall
from .model import AuditEntry
from .repository import AuditRepository


class MySQLAuditRepository(AuditRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def append(
        self,
        *,
        action: AuditAction,
        table_name: str,
        record_id: str,
        changed_by: Optional[str],
        new_data: Optional[dict[str, Any]] = None,
    ) -> None:
        payload = json.dumps(new_data, default=str, ensure_ascii=False) if new_data is not None else None
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO audit_logs(table_name, record_id, action, new_data, changed_by)
                VALUES(%s,%s,%s,%s,%s)
                """,
                (table_name, record_id, action.value, payload, changed_by),
            )

    def list_recent(
        self,
        *,
        limit: int,
        actor_contains: Optional[str] = None,
        table_name: Optional[str] = None,
        action: Optional[AuditAction] = None,
    ) -> Sequence[AuditEntry]:
        clauses: list[str] = []
        params: list[object] = []
        if actor_contains:
            clauses.append("LOCATE(%s, LOWER(changed_by)) > 0")
            params.append(actor_contains.lower())
        if table_name:
            clauses.append("table_name=%s")
            params.append(table_name)
        if action is not None:
            clauses.append("action=%s")
            params.append(action.value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(int(limit))

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT id, table_name, record_id, action, new_data, changed_by, changed_at
                FROM audit_logs
                {where}
                ORDER BY changed_at DESC, id DESC
                LIMIT %s
                """,
                tuple(params),
            )
            out: list[AuditEntry] = []
            for r in fetchall(cur):
                raw = r.get("new_data")
                out.append(
                    AuditEntry(
                        entry_id=int(r["id"]),
                        action=AuditAction(r["action"]),
                        table_name=r["table_name"],
                        record_id=r["record_id"],
                        changed_by=r.get("changed_by"),
                        changed_at=r["changed_at"],
                        new_data=json.loads(raw) if isinstance(raw, (str, bytes)) else raw,
                    )
                )
            return out

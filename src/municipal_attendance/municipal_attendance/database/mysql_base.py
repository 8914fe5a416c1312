from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import mysql.connector
from mysql.connector import errorcode

from ..core.exceptions import DuplicateRecordError, ReferentialIntegrityError, StorageError
from .connection import DatabaseConnection

_REFERENCE_ERRORS = {
    errorcode.ER_ROW_IS_REFERENCED,
    errorcode.ER_ROW_IS_REFERENCED_2,
    errorcode.ER_NO_REFERENCED_ROW,
    errorcode.ER_NO_REFERENCED_ROW_2,
}


def translate_mysql_error(exc: mysql.connector.Error) -> StorageError:
    """Map a driver error onto the storage error family, keeping its message."""

    message = exc.msg or str(exc)
    if exc.errno in _REFERENCE_ERRORS:
        return ReferentialIntegrityError(message)
    if exc.errno == errorcode.ER_DUP_ENTRY:
        return DuplicateRecordError(message)
    return StorageError(message)


@contextmanager
def db_cursor(conn_factory: DatabaseConnection, *, dictionary: bool = True):
    try:
        conn = conn_factory.connect()
    except mysql.connector.Error as exc:
        raise translate_mysql_error(exc) from exc
    try:
        cur = conn.cursor(dictionary=dictionary)
        try:
            yield conn, cur
            conn.commit()
        finally:
            cur.close()
    except mysql.connector.Error as exc:
        conn.rollback()
        raise translate_mysql_error(exc) from exc
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def fetchone(cur) -> Optional[Dict[str, Any]]:
    row = cur.fetchone()
    return row if row else None


def fetchall(cur) -> List[Dict[str, Any]]:
    rows = cur.fetchall()
    return list(rows or [])


def in_clause(values) -> str:
    """Placeholder list for a `col IN (...)` filter."""
    return ", ".join(["%s"] * len(values))

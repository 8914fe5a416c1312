"""Schema bootstrap for `database/schema.sql`.

The schema file names a default database; whatever `DB_CONFIG` says wins,
so the `CREATE DATABASE` / `USE` lines are dropped before execution.
"""

from __future__ import annotations

import logging
import re
from contextlib import closing
from pathlib import Path
from typing import Iterator, Mapping

import mysql.connector

from .connection import DBConfig

logger = logging.getLogger("municipal_attendance.database")

_DATABASE_LINE = re.compile(r"(?im)^\s*(CREATE\s+DATABASE|USE)\b.*?;\s*$")


def strip_database_selection(sql: str) -> str:
    return _DATABASE_LINE.sub("", sql)


def iter_sql_statements(sql: str) -> Iterator[str]:
    """Yield statements split on ';' outside quoted literals. Whole-line '--' comments are dropped."""

    body = "\n".join(ln for ln in sql.splitlines() if not ln.lstrip().startswith("--"))
    start = 0
    quote = None
    i = 0
    while i < len(body):
        ch = body[i]
        if quote is not None:
            if ch == "\\":
                i += 1
            elif ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch == ";":
            stmt = body[start:i].strip()
            if stmt:
                yield stmt
            start = i + 1
        i += 1

    tail = body[start:].strip()
    if tail:
        yield tail


def ensure_database_exists(db_config: Mapping) -> None:
    target = DBConfig.from_mapping(db_config)
    with closing(mysql.connector.connect(**target.connect_kwargs(with_database=False))) as conn:
        cur = conn.cursor()
        cur.execute(
            f"CREATE DATABASE IF NOT EXISTS `{target.database}` CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
        )
        conn.commit()


def apply_schema(db_config: Mapping, *, schema_path: str | Path) -> int:
    """Create the database if needed and run every schema statement. Returns the statement count."""

    target = DBConfig.from_mapping(db_config)
    ensure_database_exists(db_config)

    statements = list(iter_sql_statements(strip_database_selection(Path(schema_path).read_text(encoding="utf-8"))))
    with closing(mysql.connector.connect(**target.connect_kwargs())) as conn:
        cur = conn.cursor()
        for stmt in statements:
            cur.execute(stmt)
        conn.commit()
    logger.info("Applied %d schema statements to %s", len(statements), target.database)
    return len(statements)


def list_tables(db_config: Mapping) -> list[str]:
    target = DBConfig.from_mapping(db_config)
    with closing(mysql.connector.connect(**target.connect_kwargs())) as conn:
        cur = conn.cursor()
        cur.execute("SHOW TABLES")
        return [row[0] for row in cur.fetchall()]

"""Create the configured database and apply database/schema.sql.

Usage: APP_ENV=production python scripts/init_db.py
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from src.municipal_attendance.municipal_attendance.database.bootstrap import apply_schema, list_tables
from src.municipal_attendance.municipal_attendance.logging_config import configure_logging
from src.municipal_attendance.municipal_attendance.main import SCHEMA_PATH, load_settings

logger = logging.getLogger("municipal_attendance.scripts")


def main() -> int:
    settings = load_settings()
    configure_logging(getattr(settings, "LOG_LEVEL", "INFO"))
    db_config = dict(settings.DB_CONFIG)

    count = apply_schema(db_config, schema_path=SCHEMA_PATH)
    tables = sorted(list_tables(db_config))
    logger.info(
        "%s: %d statements applied to %s@%s/%s; tables: %s",
        settings.__name__,
        count,
        db_config.get("user"),
        db_config.get("host"),
        db_config.get("database"),
        ", ".join(tables),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())

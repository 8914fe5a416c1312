from __future__ import annotations

import importlib
import logging
from pathlib import Path

from dotenv import load_dotenv

from config import get_settings_module

from .container import Container, build_container
from .core.constants import DEFAULT_AUDIT_LOG_LIMIT
from .core.exceptions import AuthorizationError, ValidationError
from .database.bootstrap import apply_schema, list_tables
from .logging_config import configure_logging
from .sync.session import SyncSession

logger = logging.getLogger("municipal_attendance")

SCHEMA_PATH = Path(__file__).resolve().parents[3] / "database" / "schema.sql"


def load_settings():
    load_dotenv(override=False)
    return importlib.import_module(get_settings_module())


def bootstrap(settings=None) -> Container:
    """Load settings, configure logging, optionally apply the schema, wire the container."""

    settings = settings or load_settings()
    configure_logging(getattr(settings, "LOG_LEVEL", "INFO"))
    db_config = getattr(settings, "DB_CONFIG")

    logger.info(
        "settings=%s db=%s@%s:%s/%s",
        settings.__name__,
        db_config.get("user"),
        db_config.get("host"),
        db_config.get("port", 3306),
        db_config.get("database"),
    )

    if bool(getattr(settings, "AUTO_INIT_DB", False)):
        apply_schema(db_config, schema_path=SCHEMA_PATH)
        logger.info("schema ready (tables=%d)", len(list_tables(db_config)))

    return build_container(db_config=db_config, mqtt_config=getattr(settings, "MQTT_CONFIG", None))


async def open_session(
    container: Container,
    *,
    username: str,
    month: int,
    year: int,
    settings=None,
    on_error=None,
) -> SyncSession:
    """Start a synchronized session for an existing, active user.

    Credential checks happen before this call; only the account state is checked here.
    """

    user = await container.store.get_user_by_username(username)
    if user is None:
        raise ValidationError(f"Unknown user: {username}")
    if not user.is_active:
        raise AuthorizationError(f"Account {username} is not active; session not permitted")

    session = SyncSession(
        container.store,
        container.feed,
        actor=user,
        scope_resolver=container.scope_resolver,
        workflow=container.workflow,
        calculator=container.calculator,
        report_service=container.payroll_report_service,
        enforce_input_caps=bool(getattr(settings, "ENFORCE_INPUT_CAPS", False)),
        audit_log_limit=int(getattr(settings, "AUDIT_LOG_LIMIT", DEFAULT_AUDIT_LOG_LIMIT)),
        on_error=on_error,
    )
    await container.feed.start()
    await session.start(month=month, year=year)
    return session

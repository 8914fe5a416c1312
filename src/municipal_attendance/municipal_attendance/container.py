from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .attendance.mysql_attendance_repository import MySQLAttendanceRepository
from .audit.mysql_audit_repository import MySQLAuditRepository
from .database.connection import DBConfig, DatabaseConnection
from .notifications.feed import ChangeFeed
from .notifications.mqtt_feed import MQTTChangeFeed
from .payroll.calculator.standard_calculator import StandardDayCalculator
from .payroll.service import PayrollReportService
from .scope.resolver import ScopeResolver
from .sync.remote import RepositoryRemoteStore
from .users.mysql_area_repository import MySQLAreaRepository
from .users.mysql_user_repository import MySQLUserRepository
from .users.service import RegistrationService
from .workers.mysql_worker_repository import MySQLWorkerRepository
from .workflow.state_machine import AttendanceWorkflow


@dataclass(frozen=True)
class Container:
    conn: DatabaseConnection

    attendance_repo: MySQLAttendanceRepository
    workers_repo: MySQLWorkerRepository
    users_repo: MySQLUserRepository
    areas_repo: MySQLAreaRepository
    audit_repo: MySQLAuditRepository

    feed: ChangeFeed
    store: RepositoryRemoteStore
    calculator: StandardDayCalculator
    scope_resolver: ScopeResolver
    workflow: AttendanceWorkflow
    payroll_report_service: PayrollReportService
    registration_service: RegistrationService


def build_feed(mqtt_config: Optional[dict]) -> ChangeFeed:
    if not mqtt_config or not mqtt_config.get("enabled"):
        return ChangeFeed()
    return MQTTChangeFeed(
        broker=str(mqtt_config["broker"]),
        port=int(mqtt_config.get("port", 1883)),
        base_topic=str(mqtt_config.get("base_topic", "municipal_attendance")),
        username=mqtt_config.get("username"),
        password=mqtt_config.get("password"),
    )


def build_container(*, db_config: dict, mqtt_config: Optional[dict] = None) -> Container:
    conn = DatabaseConnection.get_instance(DBConfig.from_mapping(db_config))
    calculator = StandardDayCalculator()

    attendance_repo = MySQLAttendanceRepository(conn, calculator=calculator)
    workers_repo = MySQLWorkerRepository(conn)
    users_repo = MySQLUserRepository(conn)
    areas_repo = MySQLAreaRepository(conn)
    audit_repo = MySQLAuditRepository(conn)

    feed = build_feed(mqtt_config)
    store = RepositoryRemoteStore(
        attendance=attendance_repo,
        workers=workers_repo,
        users=users_repo,
        areas=areas_repo,
        audit=audit_repo,
        feed=feed,
        calculator=calculator,
    )
    scope_resolver = ScopeResolver()
    workflow = AttendanceWorkflow(scope_resolver, calculator=calculator)

    return Container(
        conn=conn,
        attendance_repo=attendance_repo,
        workers_repo=workers_repo,
        users_repo=users_repo,
        areas_repo=areas_repo,
        audit_repo=audit_repo,
        feed=feed,
        store=store,
        calculator=calculator,
        scope_resolver=scope_resolver,
        workflow=workflow,
        payroll_report_service=PayrollReportService(calculator=calculator),
        registration_service=RegistrationService(store),
    )

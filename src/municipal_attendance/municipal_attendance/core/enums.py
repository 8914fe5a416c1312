from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Roles along the approval chain plus the read-only and admin roles."""

    SUPERVISOR = "SUPERVISOR"
    GENERAL_SUPERVISOR = "GENERAL_SUPERVISOR"
    HEALTH_DIRECTOR = "HEALTH_DIRECTOR"
    HR = "HR"
    INTERNAL_AUDIT = "INTERNAL_AUDIT"
    FINANCE = "FINANCE"
    PAYROLL = "PAYROLL"
    MAYOR = "MAYOR"
    ADMIN = "ADMIN"


class AttendanceStatus(str, Enum):
    """Lifecycle states of a monthly attendance record, in forward order."""

    PENDING_SUPERVISOR = "PENDING_SUPERVISOR"
    PENDING_GS = "PENDING_GS"
    PENDING_HEALTH = "PENDING_HEALTH"
    PENDING_HR = "PENDING_HR"
    PENDING_AUDIT = "PENDING_AUDIT"
    PENDING_FINANCE = "PENDING_FINANCE"
    PENDING_PAYROLL = "PENDING_PAYROLL"
    APPROVED = "APPROVED"


class AuditAction(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeFamily(str, Enum):
    """Entity families watched by the change feed (value = table name)."""

    ATTENDANCE = "attendance_records"
    WORKERS = "workers"
    USERS = "users"

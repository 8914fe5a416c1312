from __future__ import annotations

from typing import Optional

from ..core.exceptions import ValidationError


def require_non_empty(value: Optional[str], field_name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field_name} is required")
    return str(value).strip()


def require_non_negative_int(value, field_name: str) -> int:
    # bool is an int subclass; a checkbox value is never a day count.
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field_name} must be a whole number")
    if value < 0:
        raise ValidationError(f"{field_name} must not be negative")
    return value


def require_non_negative_amount(value, field_name: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number")
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number")
    if amount < 0:
        raise ValidationError(f"{field_name} must not be negative")
    return amount


def require_period(month, year) -> tuple[int, int]:
    month = require_non_negative_int(month, "Month")
    year = require_non_negative_int(year, "Year")
    if not 1 <= month <= 12:
        raise ValidationError("Month must be between 1 and 12")
    if year < 2000:
        raise ValidationError("Year is out of range")
    return month, year


def require_at_most(value: int, cap: int, field_name: str) -> int:
    if value > cap:
        raise ValidationError(f"{field_name} cannot exceed {cap}")
    return value

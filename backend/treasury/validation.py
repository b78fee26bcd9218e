from __future__ import annotations

import enum
from datetime import date
from typing import Any, TypeVar

from .time_utils import parse_iso_date

# Upper bound for any single amount: 99,999,999.99
MAX_AMOUNT_CENTS = 9_999_999_999

E = TypeVar("E", bound=enum.Enum)


class ValidationError(ValueError):
    """400-level input problem."""


def require_fields(data: dict | None, *names: str) -> dict:
    if not isinstance(data, dict):
        raise ValidationError("JSON object body required")
    missing = [name for name in names if data.get(name) in (None, "")]
    if missing:
        raise ValidationError(f"{', '.join(missing)} required")
    return data


def parse_cents(value: Any, field: str, *, allow_zero: bool = False) -> int:
    """
    Strict integer-cents parsing.

    Rejects floats, booleans, decimals and scientific notation so that no
    amount is ever silently rounded on the way in.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer number of cents")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer number of cents, not a decimal")
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be a plain integer number of cents")
        try:
            value = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer number of cents")
    if not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer number of cents")

    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"{field} must be positive")
    if value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds maximum allowed amount")
    return value


def parse_optional_int(value: Any, field: str) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValidationError(f"{field} must be an integer")


def parse_int_list(value: Any, field: str) -> list[int] | None:
    if value is None:
        return None
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list of integers")
    return [parse_optional_int(item, field) for item in value]


def parse_date(value: Any, field: str) -> date:
    if isinstance(value, date):
        return value
    try:
        parsed = parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD)")
    if parsed is None:
        raise ValidationError(f"{field} required")
    return parsed


def parse_enum(enum_cls: type[E], value: Any, field: str) -> E:
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}")

from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, TypeVar

from .errors import ValidationFailure

CENT = Decimal("0.01")

E = TypeVar("E", bound=Enum)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_datetime(value: datetime | None) -> datetime:
    """Normalise a database timestamp to an aware UTC datetime."""

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    raise TypeError("Expected datetime value from database")


def optional_datetime(value: datetime | None) -> datetime | None:
    return None if value is None else ensure_datetime(value)


def to_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def money(value: Any) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def optional_float(value: Any, digits: int = 2) -> float | None:
    if value is None:
        return None
    return round(float(value), digits)


def coerce_enum(enum_cls: type[E], value: Any, field_name: str) -> E:
    """Convert ``value`` to ``enum_cls`` or raise a validation failure."""

    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise ValidationFailure(f"Invalid {field_name}: {value!r}") from exc

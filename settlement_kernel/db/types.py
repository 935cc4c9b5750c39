"""
Module: settlement_kernel.db.types
Responsibility: Annotated type aliases and utility functions for money and
    timestamp columns.  Centralizes precision and rounding so that every
    model, calculation and service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models, domain,
    services and selectors.  MUST NOT import from any of those layers.

Invariants enforced:
    - round_money() is the ONLY sanctioned rounding function for statement
      amounts (2 places, ROUND_HALF_UP).
    - No floats anywhere.  money() rejects float input outright.
    - UTCDateTime always returns timezone-aware UTC datetimes, on every
      backend.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated, Any

from sqlalchemy import DateTime, Numeric, String
from sqlalchemy.types import TypeDecorator


# Monetary amount with high storage precision
Money = Annotated[Decimal, Numeric(38, 9)]

# Short identifier strings
ShortCode = Annotated[str, String(50)]

# SHA-256 hash as hex string (64 characters)
PayloadHash = Annotated[str, String(64)]


STATEMENT_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0")


def money(value: Any) -> Decimal:
    """
    Coerce a str/int/Decimal into a finite Decimal.

    Raises:
        TypeError: If value is a float (binary floats never enter the engine).
        ValueError: If value is not a finite number.
    """
    if isinstance(value, float):
        raise TypeError("float amounts are not accepted; pass str or Decimal")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation as exc:
            raise ValueError(f"Not a number: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def round_money(
    value: Decimal,
    decimal_places: int = STATEMENT_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to specified decimal places.

    This is the ONLY sanctioned rounding function for statement amounts.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime column.

    PostgreSQL keeps tzinfo natively; SQLite stores naive text.  Values are
    normalized to UTC on the way in and re-tagged as UTC on the way out, so
    comparisons against ``Clock.now()`` never mix naive and aware values.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime passed to a UTCDateTime column")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

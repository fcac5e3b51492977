# Overview: Fixed-point helpers for stock quantities and valuations.

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

QTY_PLACES = Decimal("0.001")
UNIT_COST_PLACES = Decimal("0.0001")
VALUE_PLACES = Decimal("0.01")

ZERO_QTY = Decimal("0.000")


def as_decimal(value) -> Decimal:
    """Coerce DB/aggregate results (Decimal, float, int, str, None) to Decimal."""
    if value is None:
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    # str() first so SQLite float sums don't drag binary noise along
    return Decimal(str(value))


def quantize_qty(value) -> Decimal:
    return as_decimal(value).quantize(QTY_PLACES, rounding=ROUND_HALF_UP)


def quantize_value(value) -> Decimal:
    return as_decimal(value).quantize(VALUE_PLACES, rounding=ROUND_HALF_UP)


def compute_total_value(quantity, unit_cost) -> Optional[Decimal]:
    """quantity x unit_cost rounded to cents; None when there is no unit cost."""
    if unit_cost is None:
        return None
    return quantize_value(as_decimal(quantity) * as_decimal(unit_cost))


def to_str(value) -> Optional[str]:
    """Serialize a Decimal column for JSON (string keeps the fixed-point scale)."""
    if value is None:
        return None
    return str(value)

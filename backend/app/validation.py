from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from app.time_utils import parse_iso_date

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Date, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from app.models.inventory import MovementType


MOVEMENT_KINDS = tuple(t.value for t in MovementType)

# Largest magnitude accepted for any quantity or money column (Numeric(14, n))
MAX_NUMERIC_DIGITS = 14


class ValidationError(ValueError):
    """400-level input problem."""


class NotFoundError(ValueError):
    """404-level: a referenced warehouse/product/session/invoice does not exist."""


class InvalidOperationError(ValueError):
    """400-level: well-formed request that violates a state invariant."""


class InsufficientStockError(ValueError):
    """400-level: a depleting movement asks for more than is on hand."""

    def __init__(self, available: Decimal, requested: Decimal, message: str = "Insufficient stock"):
        self.available = available
        self.requested = requested
        super().__init__(f"{message}. Available: {available}, Requested: {requested}")


class InternalError(RuntimeError):
    """500-level transaction failure (constraint violation, deadlock); safe to retry."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_decimal(key: str, value: Any, scale: int | None = None) -> Decimal:
    """
    Parse a non-negative fixed-point number.

    Accepts Decimal, int and numeric strings; floats go through str() so that
    0.1 stays 0.1. Rejects booleans, NaN/Infinity, negatives and values with
    more fractional digits than the column scale.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    if isinstance(value, Decimal):
        dec = value
    elif isinstance(value, (int, float, str)):
        raw = str(value).strip()
        if not raw:
            raise ValidationError(f"{key} must be a number")
        try:
            dec = Decimal(raw)
        except InvalidOperation:
            raise ValidationError(f"{key} must be a valid number")
    else:
        raise ValidationError(f"{key} must be a number")

    if not dec.is_finite():
        raise ValidationError(f"{key} must be a valid number")
    if dec < 0:
        raise ValidationError(f"{key} must be >= 0")
    if dec != 0 and dec.adjusted() >= MAX_NUMERIC_DIGITS - (scale or 0):
        raise ValidationError(f"{key} is too large")
    if scale is not None:
        places = Decimal(1).scaleb(-scale)
        # 2.500 is fine for scale 1, 2.55 is not
        if dec != dec.quantize(places):
            raise ValidationError(f"{key} must have at most {scale} decimal places")
        dec = dec.quantize(places)
    return dec


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or not stripped.lstrip("-").isdigit():
                raise ValidationError(f"{col.key} must be an integer")
            return int(stripped)
        raise ValidationError(f"{col.key} must be an integer")

    # Fixed-point quantities and money
    if isinstance(coltype, Numeric):
        return coerce_decimal(col.key, value, coltype.scale)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    # Calendar dates (YYYY-MM-DD)
    if isinstance(coltype, Date):
        if isinstance(value, (date, datetime)):
            return parse_iso_date(value)
        if isinstance(value, str):
            try:
                d = parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be in YYYY-MM-DD format")
            if d is None:
                raise ValidationError(f"{col.key} must be in YYYY-MM-DD format")
            return d
        raise ValidationError(f"{col.key} must be a date")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length, Numeric scale)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload or payload[f] is None)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_movement(patch: dict) -> None:
    """
    Business rules for a directly submitted movement that are not captured
    by column metadata alone.
    """
    movement_type = patch.get("type")
    if movement_type not in MOVEMENT_KINDS:
        raise ValidationError(f"type must be one of: {', '.join(MOVEMENT_KINDS)}")

    quantity = patch.get("quantity")
    if quantity is None or quantity <= 0:
        raise ValidationError("quantity must be > 0")

    if movement_type != MovementType.TRANSFER.value and patch.get("destination_warehouse_id") is not None:
        raise ValidationError("destination_warehouse_id is only allowed for transfers")


def enforce_rules_transfer(patch: dict) -> None:
    """
    Payload-level transfer rules.

    Warehouse existence and the source != destination rule are checked by
    validate_movement, which resolves both warehouses first.
    """
    quantity = patch.get("quantity")
    if quantity is None or quantity <= 0:
        raise ValidationError("quantity must be > 0")

# Overview: Service-layer operations for the stock ledger; movement store, aggregation and validation.

# backend/app/services/stock_service.py

from __future__ import annotations

import math
from datetime import date
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Product, StockLock, StockMovement, Warehouse
from ..models.inventory import MovementType
from ..quantities import compute_total_value, quantize_qty, quantize_value, to_str
from ..time_utils import parse_iso_date, to_iso_date
from ..validation import (
    InsufficientStockError,
    InvalidOperationError,
    NotFoundError,
    ValidationError,
    coerce_decimal,
)
from .concurrency import lock_for_update, run_with_retry
"""
Stock Ledger Invariants (authoritative)

Ledger model:
- Stock is ledger-derived from StockMovement rows; never stored as a mutable quantity field.
- Quantity on hand for (warehouse, product) is SUM(sign * quantity), sign from
  models.inventory.movement_sign():
    in, adjustment, return: +   out: -
    transfer: - on the source leg (destination set), + on the inbound leg.
- Quantities are stored non-negative with 3 decimals; unit cost 4; value 2.

Business invariants:
- Only products with tracks_stock=True appear in movements.
- A depleting movement (out, or the source leg of a transfer) may not take
  more than is on hand. The check and the insert run under a row lock on
  the (warehouse, product) StockLock row.
- Rows are never updated. Invoice-sourced rows are the only ones ever deleted.

Time:
- movement_date is a calendar date; as_of filters are inclusive (movement_date <= as_of).
"""


def _get_warehouse(warehouse_id, *, label: str = "Warehouse") -> Warehouse:
    warehouse = db.session.get(Warehouse, warehouse_id) if warehouse_id is not None else None
    if warehouse is None:
        raise NotFoundError(f"{label} not found")
    return warehouse


def _get_product(product_id) -> Product:
    product = db.session.get(Product, product_id) if product_id is not None else None
    if product is None:
        raise NotFoundError("Product not found")
    return product


def _is_depleting(movement_type: str, destination_warehouse_id) -> bool:
    return movement_type == MovementType.OUT.value or (
        movement_type == MovementType.TRANSFER.value and destination_warehouse_id is not None
    )


def lock_stock_key(warehouse_id: int, product_id: int) -> StockLock:
    """
    Take the per-(warehouse, product) write lock, creating its row on first use.

    A concurrent first-use insert loses on the unique constraint; the
    IntegrityError is retried by run_with_retry and the second attempt finds
    the row.
    """
    query = db.session.query(StockLock).filter_by(warehouse_id=warehouse_id, product_id=product_id)
    lock = lock_for_update(query).first()
    if lock is None:
        lock = StockLock(warehouse_id=warehouse_id, product_id=product_id)
        db.session.add(lock)
        db.session.flush()
        lock = lock_for_update(query).first()
    return lock


def get_current_stock(warehouse_id: int, product_id: int, as_of: date | None = None) -> Decimal:
    """Signed sum over every movement of the pair (optionally as-of a date)."""
    q = db.session.query(StockMovement.signed_sum(StockMovement.quantity)).filter(
        StockMovement.warehouse_id == warehouse_id,
        StockMovement.product_id == product_id,
    )
    if as_of is not None:
        q = q.filter(StockMovement.movement_date <= as_of)
    return quantize_qty(q.scalar())


def get_stock_value(warehouse_id: int, product_id: int, as_of: date | None = None) -> Decimal:
    q = db.session.query(StockMovement.signed_sum(StockMovement.total_value)).filter(
        StockMovement.warehouse_id == warehouse_id,
        StockMovement.product_id == product_id,
    )
    if as_of is not None:
        q = q.filter(StockMovement.movement_date <= as_of)
    return quantize_value(q.scalar())


def get_stock_summary(*, warehouse_id: int, product_id: int, as_of=None) -> dict:
    _get_warehouse(warehouse_id)
    product = _get_product(product_id)
    try:
        as_of_date = parse_iso_date(as_of)
    except ValueError:
        raise ValidationError("as_of must be in YYYY-MM-DD format")

    qty = get_current_stock(warehouse_id, product_id, as_of=as_of_date)
    value = get_stock_value(warehouse_id, product_id, as_of=as_of_date)

    return {
        "warehouse_id": warehouse_id,
        "product_id": product_id,
        "as_of": to_iso_date(as_of_date),
        "quantity": to_str(qty),
        "total_value": to_str(value),
        "min_stock": to_str(product.min_stock),
        "low_stock": product.min_stock is not None and qty < product.min_stock,
    }


def get_stock_levels(
    *,
    warehouse_id: int | None = None,
    product_id: int | None = None,
    parish_id: int | None = None,
    low_stock: bool = False,
) -> list[dict]:
    """
    Stock per (warehouse, product) pair, with signed value and last movement date.

    Pairs whose quantity is zero or below are left out. low_stock keeps only
    products that define min_stock and sit below it.
    """
    qty_expr = StockMovement.signed_sum(StockMovement.quantity).label("quantity")
    value_expr = StockMovement.signed_sum(StockMovement.total_value).label("total_value")

    q = db.session.query(
        StockMovement.warehouse_id,
        StockMovement.product_id,
        qty_expr,
        value_expr,
        func.max(StockMovement.movement_date).label("last_movement_date"),
    )
    if warehouse_id is not None:
        q = q.filter(StockMovement.warehouse_id == warehouse_id)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if parish_id is not None:
        q = q.filter(StockMovement.parish_id == parish_id)

    rows = q.group_by(StockMovement.warehouse_id, StockMovement.product_id).all()

    levels = []
    for row in rows:
        quantity = quantize_qty(row.quantity)
        if quantity <= 0:
            continue

        product = db.session.get(Product, row.product_id)
        warehouse = db.session.get(Warehouse, row.warehouse_id)

        if low_stock:
            if product is None or not product.tracks_stock or product.min_stock is None:
                continue
            if quantity >= product.min_stock:
                continue

        levels.append({
            "warehouse_id": row.warehouse_id,
            "product_id": row.product_id,
            "quantity": to_str(quantity),
            "total_value": to_str(quantize_value(row.total_value)),
            "last_movement_date": to_iso_date(parse_iso_date(row.last_movement_date)),
            "warehouse": {"id": warehouse.id, "name": warehouse.name, "code": warehouse.code} if warehouse else None,
            "product": {
                "id": product.id,
                "name": product.name,
                "code": product.code,
                "unit": product.unit,
                "min_stock": to_str(product.min_stock),
            } if product else None,
        })

    levels.sort(key=lambda level: (level["warehouse_id"], level["product_id"]))
    return levels


def validate_movement(
    *,
    warehouse_id,
    product_id,
    movement_type: str,
    quantity,
    unit_cost=None,
    total_value=None,
    destination_warehouse_id=None,
    skip_stock_check: bool = False,
) -> dict:
    """
    Admission checks for one movement, in order, stopping at the first failure:

    1. warehouse exists                                  -> NotFoundError
    2. product exists / tracks stock                     -> NotFoundError / InvalidOperationError
    3. transfer: destination given / exists / differs    -> ValidationError / NotFoundError / InvalidOperationError
    4. depleting movement: on hand >= requested          -> InsufficientStockError
    5. total_value = quantity * unit_cost when omitted

    Step 4 takes the (warehouse, product) lock so the caller's insert is
    serialized with the check. skip_stock_check is the explicit override used
    by inventory reconciliation, whose outbound adjustments bring stock down
    to a counted truth and must not be refused by the book figure.

    Returns the normalized numeric fields plus the pre-movement stock when it
    was read.
    """
    try:
        movement_type = MovementType(movement_type).value
    except ValueError:
        raise ValidationError(f"Invalid movement type: {movement_type}")

    quantity = coerce_decimal("quantity", quantity, 3)
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")
    unit_cost = coerce_decimal("unit_cost", unit_cost, 4) if unit_cost is not None else None
    total_value = coerce_decimal("total_value", total_value, 2) if total_value is not None else None

    _get_warehouse(warehouse_id)

    product = _get_product(product_id)
    if not product.tracks_stock:
        raise InvalidOperationError("Product does not track stock")

    if movement_type == MovementType.TRANSFER.value:
        if destination_warehouse_id is None:
            raise ValidationError("Destination warehouse is required for transfers")
        _get_warehouse(destination_warehouse_id, label="Destination warehouse")
        if destination_warehouse_id == warehouse_id:
            raise InvalidOperationError("Source and destination warehouses must be different")
    elif destination_warehouse_id is not None:
        raise ValidationError("destination_warehouse_id is only allowed for transfers")

    available = None
    if _is_depleting(movement_type, destination_warehouse_id):
        lock_stock_key(warehouse_id, product_id)
        available = get_current_stock(warehouse_id, product_id)
        if not skip_stock_check and available < quantity:
            raise InsufficientStockError(available=available, requested=quantity)

    if total_value is None:
        total_value = compute_total_value(quantity, unit_cost)

    return {
        "type": movement_type,
        "quantity": quantity,
        "unit_cost": unit_cost,
        "total_value": total_value,
        "available": available,
    }


def append_movement(
    *,
    parish_id: int,
    warehouse_id: int,
    product_id: int,
    movement_type: str,
    movement_date: date,
    quantity: Decimal,
    unit_cost: Decimal | None = None,
    total_value: Decimal | None = None,
    invoice_id: int | None = None,
    invoice_item_index: int | None = None,
    document_type: str | None = None,
    document_number: str | None = None,
    document_date: date | None = None,
    client_id: int | None = None,
    destination_warehouse_id: int | None = None,
    transfer_group_id: str | None = None,
    notes: str | None = None,
    created_by_user_id: int | None = None,
) -> StockMovement:
    """Core insert without validation, locking, retry or commit.

    Called by create_movement(), the transfer coordinator, the invoice
    projection and inventory reconciliation; each is responsible for the
    invariants of what it appends.
    """
    movement = StockMovement(
        parish_id=parish_id,
        warehouse_id=warehouse_id,
        product_id=product_id,
        type=MovementType(movement_type).value,
        movement_date=movement_date,
        quantity=quantity,
        unit_cost=unit_cost,
        total_value=total_value,
        invoice_id=invoice_id,
        invoice_item_index=invoice_item_index,
        document_type=document_type,
        document_number=document_number,
        document_date=document_date,
        client_id=client_id,
        destination_warehouse_id=destination_warehouse_id,
        transfer_group_id=transfer_group_id,
        notes=notes,
        created_by_user_id=created_by_user_id,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def create_movement(
    *,
    parish_id: int,
    warehouse_id: int,
    product_id: int,
    movement_type: str,
    movement_date,
    quantity,
    unit_cost=None,
    total_value=None,
    invoice_id: int | None = None,
    invoice_item_index: int | None = None,
    document_type: str | None = None,
    document_number: str | None = None,
    document_date=None,
    client_id: int | None = None,
    destination_warehouse_id: int | None = None,
    notes: str | None = None,
    actor_id: int | None = None,
) -> StockMovement:
    """
    Validate and record one movement.

    A transfer is handed to the transfer coordinator so that its inbound
    leg is always written in the same transaction; the source leg is returned.
    """
    if movement_type == MovementType.TRANSFER.value:
        from .transfer_service import create_transfer

        outbound, _inbound = create_transfer(
            source_warehouse_id=warehouse_id,
            destination_warehouse_id=destination_warehouse_id,
            product_id=product_id,
            parish_id=parish_id,
            movement_date=movement_date,
            quantity=quantity,
            unit_cost=unit_cost,
            total_value=total_value,
            document_type=document_type,
            document_number=document_number,
            document_date=document_date,
            client_id=client_id,
            notes=notes,
            actor_id=actor_id,
        )
        return outbound

    try:
        movement_dt = parse_iso_date(movement_date)
        document_dt = parse_iso_date(document_date)
    except ValueError:
        raise ValidationError("dates must be in YYYY-MM-DD format")
    if movement_dt is None:
        raise ValidationError("movement_date is required")

    def _op():
        checked = validate_movement(
            warehouse_id=warehouse_id,
            product_id=product_id,
            movement_type=movement_type,
            quantity=quantity,
            unit_cost=unit_cost,
            total_value=total_value,
            destination_warehouse_id=destination_warehouse_id,
        )

        movement = append_movement(
            parish_id=parish_id,
            warehouse_id=warehouse_id,
            product_id=product_id,
            movement_type=checked["type"],
            movement_date=movement_dt,
            quantity=checked["quantity"],
            unit_cost=checked["unit_cost"],
            total_value=checked["total_value"],
            invoice_id=invoice_id,
            invoice_item_index=invoice_item_index,
            document_type=document_type,
            document_number=document_number,
            document_date=document_dt,
            client_id=client_id,
            notes=notes,
            created_by_user_id=actor_id,
        )

        db.session.commit()
        return movement

    return run_with_retry(_op)


def get_movement(movement_id: int) -> StockMovement:
    movement = db.session.get(StockMovement, movement_id)
    if movement is None:
        raise NotFoundError("Stock movement not found")
    return movement


def get_movements_for_transfer_group(transfer_group_id: str) -> list[StockMovement]:
    """Both legs of a transfer, source leg first."""
    rows = (
        db.session.query(StockMovement)
        .filter(StockMovement.transfer_group_id == transfer_group_id)
        .order_by(StockMovement.id.asc())
        .all()
    )
    if not rows:
        raise NotFoundError("Transfer not found")
    return rows


MOVEMENT_FILTERS = {
    "warehouse_id": StockMovement.warehouse_id,
    "product_id": StockMovement.product_id,
    "parish_id": StockMovement.parish_id,
    "type": StockMovement.type,
    "invoice_id": StockMovement.invoice_id,
    "client_id": StockMovement.client_id,
    "transfer_group_id": StockMovement.transfer_group_id,
}

MOVEMENT_SORT_COLUMNS = {
    "movement_date": StockMovement.movement_date,
    "created_at": StockMovement.created_at,
}


def list_movements(
    *,
    filters: dict | None = None,
    page: int = 1,
    page_size: int = 10,
    sort_by: str = "movement_date",
    sort_order: str = "desc",
) -> dict:
    """
    Paginated movement listing.

    filters: any of MOVEMENT_FILTERS (equality) plus date_from / date_to
    (inclusive, on movement_date). Unknown sort keys fall back to movement_date.
    """
    filters = filters or {}
    max_page_size = current_app.config.get("MOVEMENTS_MAX_PAGE_SIZE", 200)
    page = max(1, int(page))
    page_size = max(1, min(int(page_size), max_page_size))

    q = db.session.query(StockMovement)
    for key, column in MOVEMENT_FILTERS.items():
        value = filters.get(key)
        if value is not None:
            q = q.filter(column == value)

    try:
        date_from = parse_iso_date(filters.get("date_from"))
        date_to = parse_iso_date(filters.get("date_to"))
    except ValueError:
        raise ValidationError("date_from and date_to must be in YYYY-MM-DD format")
    if date_from is not None:
        q = q.filter(StockMovement.movement_date >= date_from)
    if date_to is not None:
        q = q.filter(StockMovement.movement_date <= date_to)

    total = q.count()

    sort_column = MOVEMENT_SORT_COLUMNS.get(sort_by, StockMovement.movement_date)
    if sort_order == "asc":
        q = q.order_by(sort_column.asc(), StockMovement.id.asc())
    else:
        q = q.order_by(sort_column.desc(), StockMovement.id.desc())

    rows = q.limit(page_size).offset((page - 1) * page_size).all()

    return {
        "items": rows,
        "pagination": {
            "page": page,
            "page_size": page_size,
            "total": total,
            "total_pages": math.ceil(total / page_size) if total else 0,
        },
    }

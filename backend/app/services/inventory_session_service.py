# backend/app/services/inventory_session_service.py
"""
Physical inventory session service.

WHY: Periodic counts keep the ledger honest. A session snapshots the book
(ledger) quantity of each product, records the physically counted quantity,
and on completion posts the differences to the stock ledger.

LIFECYCLE:
1. open: items loaded/added, physical quantities entered
2. completed: one "in" (surplus) or "out" (shortage) movement per product
   item whose difference is not negligible; terminal, cannot be reopened

Completion is one transaction: every adjustment movement and the status
change commit together, so a failed completion leaves the session open with
no adjustments and can simply be retried.
"""
from __future__ import annotations

from decimal import Decimal

from flask import current_app

from app.extensions import db
from app.models import InventoryItem, InventorySession, Parish, Product, StockMovement, Warehouse
from app.models.documents import (
    ITEM_TYPE_FIXED_ASSET,
    ITEM_TYPE_PRODUCT,
    ITEM_TYPES,
    SESSION_STATUS_COMPLETED,
    SESSION_STATUS_OPEN,
)
from app.models.inventory import MovementType
from app.quantities import ZERO_QTY, quantize_qty, to_str
from app.services.concurrency import lock_for_update, run_with_retry
from app.services.stock_service import append_movement, get_current_stock, validate_movement
from app.time_utils import parse_iso_date, utcnow
from app.validation import InvalidOperationError, NotFoundError, ValidationError, coerce_decimal


INVENTORY_DOCUMENT_TYPE = "inventory_adjustment"


def _locked_session(session_id: int) -> InventorySession:
    session = lock_for_update(db.session.query(InventorySession).filter_by(id=session_id)).first()
    if session is None:
        raise NotFoundError(f"Inventory session {session_id} not found")
    return session


def _require_open(session: InventorySession) -> None:
    if session.status != SESSION_STATUS_OPEN:
        raise InvalidOperationError(f"Inventory session is already {session.status}")


def item_delta(item: InventoryItem) -> Decimal:
    """physical - book, with missing quantities counted as zero."""
    physical = item.physical_quantity if item.physical_quantity is not None else ZERO_QTY
    book = item.book_quantity if item.book_quantity is not None else ZERO_QTY
    return quantize_qty(Decimal(physical) - Decimal(book))


def create_session(
    *,
    parish_id: int,
    date,
    actor_id: int | None = None,
    warehouse_id: int | None = None,
    notes: str | None = None,
) -> InventorySession:
    """
    Open a new inventory session.

    Args:
        parish_id: Parish being counted
        date: Count date (date or YYYY-MM-DD); adjustments are dated with it
        warehouse_id: Warehouse being counted; optional for fixed-asset-only sessions
        actor_id: User opening the session

    Raises:
        ValidationError, NotFoundError, InvalidOperationError
    """
    try:
        session_date = parse_iso_date(date)
    except ValueError:
        raise ValidationError("date must be in YYYY-MM-DD format")
    if session_date is None:
        raise ValidationError("date is required")

    def _op():
        if db.session.get(Parish, parish_id) is None:
            raise NotFoundError("Parish not found")
        if warehouse_id is not None:
            warehouse = db.session.get(Warehouse, warehouse_id)
            if warehouse is None:
                raise NotFoundError("Warehouse not found")
            if warehouse.parish_id != parish_id:
                raise InvalidOperationError("Warehouse does not belong to the specified parish")

        session = InventorySession(
            parish_id=parish_id,
            warehouse_id=warehouse_id,
            date=session_date,
            status=SESSION_STATUS_OPEN,
            notes=notes,
            created_by_user_id=actor_id,
        )
        db.session.add(session)
        db.session.commit()
        return session

    return run_with_retry(_op)


def _stocked_product_ids(warehouse_id: int) -> list[int]:
    rows = (
        db.session.query(StockMovement.product_id)
        .filter(StockMovement.warehouse_id == warehouse_id)
        .distinct()
        .all()
    )
    return sorted(row.product_id for row in rows)


def load_book_inventory(session_id: int) -> list[InventoryItem]:
    """
    Add one product item per stock-tracked product with stock in the
    session's warehouse, book_quantity = current ledger quantity.

    Products already on the session are left alone, so loading twice is harmless.
    """
    def _op():
        session = _locked_session(session_id)
        _require_open(session)
        if session.warehouse_id is None:
            raise ValidationError("Inventory session has no warehouse")

        existing = {item.product_id for item in session.items if item.item_type == ITEM_TYPE_PRODUCT}

        created = []
        for product_id in _stocked_product_ids(session.warehouse_id):
            if product_id in existing:
                continue
            product = db.session.get(Product, product_id)
            if product is None or not product.tracks_stock:
                continue
            book = get_current_stock(session.warehouse_id, product_id)
            if book <= 0:
                continue
            item = InventoryItem(
                session_id=session.id,
                item_type=ITEM_TYPE_PRODUCT,
                product_id=product_id,
                unit=product.unit,
                book_quantity=book,
            )
            db.session.add(item)
            created.append(item)

        db.session.commit()
        return created

    return run_with_retry(_op)


def add_item(
    *,
    session_id: int,
    item_type: str,
    product_id: int | None = None,
    fixed_asset_id: int | None = None,
    book_quantity=None,
    physical_quantity=None,
    unit: str | None = None,
    notes: str | None = None,
) -> InventoryItem:
    """
    Add a line to an open session.

    For product items the book quantity defaults to the current ledger
    quantity in the session's warehouse.
    """
    if item_type not in ITEM_TYPES:
        raise ValidationError(f"item_type must be one of: {', '.join(ITEM_TYPES)}")
    if item_type == ITEM_TYPE_PRODUCT and product_id is None:
        raise ValidationError("product_id is required for product items")
    if item_type == ITEM_TYPE_FIXED_ASSET and fixed_asset_id is None:
        raise ValidationError("fixed_asset_id is required for fixed asset items")

    book = coerce_decimal("book_quantity", book_quantity, 3) if book_quantity is not None else None
    physical = coerce_decimal("physical_quantity", physical_quantity, 3) if physical_quantity is not None else None

    def _op():
        session = _locked_session(session_id)
        _require_open(session)

        item_book = book
        item_unit = unit
        if item_type == ITEM_TYPE_PRODUCT:
            if session.warehouse_id is None:
                raise ValidationError("Product items require a session warehouse")
            product = db.session.get(Product, product_id)
            if product is None:
                raise NotFoundError("Product not found")
            if not product.tracks_stock:
                raise InvalidOperationError("Product does not track stock")
            duplicate = db.session.query(InventoryItem).filter_by(
                session_id=session.id, product_id=product_id
            ).first()
            if duplicate:
                raise InvalidOperationError(f"Product {product_id} already on this session")
            if item_book is None:
                item_book = get_current_stock(session.warehouse_id, product_id)
            item_unit = item_unit or product.unit

        item = InventoryItem(
            session_id=session.id,
            item_type=item_type,
            product_id=product_id if item_type == ITEM_TYPE_PRODUCT else None,
            fixed_asset_id=fixed_asset_id if item_type == ITEM_TYPE_FIXED_ASSET else None,
            unit=item_unit,
            book_quantity=item_book,
            physical_quantity=physical,
            notes=notes,
        )
        db.session.add(item)
        db.session.commit()
        return item

    return run_with_retry(_op)


def record_count(
    *,
    item_id: int,
    physical_quantity,
    notes: str | None = None,
    session_id: int | None = None,
) -> InventoryItem:
    """Set the physically counted quantity of an item of an open session.

    When session_id is given the item must belong to that session.
    """
    if physical_quantity is None:
        raise ValidationError("physical_quantity is required")
    physical = coerce_decimal("physical_quantity", physical_quantity, 3)

    def _op():
        item = db.session.get(InventoryItem, item_id)
        if item is None or (session_id is not None and item.session_id != session_id):
            raise NotFoundError(f"Inventory item {item_id} not found")
        session = _locked_session(item.session_id)
        _require_open(session)

        item.physical_quantity = physical
        if notes is not None:
            item.notes = notes
        db.session.commit()
        return item

    return run_with_retry(_op)


def delete_session(session_id: int) -> None:
    """Delete an open session and its items. Completed sessions are permanent."""
    def _op():
        session = _locked_session(session_id)
        if session.status == SESSION_STATUS_COMPLETED:
            raise InvalidOperationError("Cannot delete completed sessions")
        db.session.delete(session)
        db.session.commit()

    run_with_retry(_op)


def complete_session(session_id: int, actor_id: int | None = None) -> dict:
    """
    Post the session's differences to the ledger and close it.

    For each product item with |physical - book| >= INVENTORY_EPSILON one
    movement is written: "in" for a surplus, "out" for a shortage, dated
    with the session date and traceable through
    document_type="inventory_adjustment" / document_number=<session id>.

    Outbound adjustments skip the insufficient-stock guard
    (validate_movement(skip_stock_check=True)), so the ledger may go below
    zero when the book figure disagrees with the current aggregate. Each
    such case is logged.

    Returns:
        {"session": InventorySession, "adjustments_created": int}

    Raises:
        NotFoundError: Unknown session
        InvalidOperationError: Session already completed
        ValidationError: Session has no warehouse
    """
    epsilon = Decimal(current_app.config.get("INVENTORY_EPSILON", Decimal("0.001")))

    def _op():
        session = _locked_session(session_id)
        _require_open(session)
        if session.warehouse_id is None:
            raise ValidationError("Inventory session has no warehouse; product reconciliation requires one")

        created = 0
        for item in session.items:
            if item.item_type != ITEM_TYPE_PRODUCT or item.product_id is None:
                continue

            delta = item_delta(item)
            if abs(delta) < epsilon:
                continue

            movement_type = MovementType.IN.value if delta > 0 else MovementType.OUT.value
            quantity = abs(delta)

            checked = validate_movement(
                warehouse_id=session.warehouse_id,
                product_id=item.product_id,
                movement_type=movement_type,
                quantity=quantity,
                skip_stock_check=True,
            )
            available = checked["available"]
            if available is not None and available < quantity:
                current_app.logger.warning(
                    "Inventory session %s: shortage of %s for product %s exceeds ledger stock %s; posting anyway",
                    session.id, quantity, item.product_id, available,
                )

            sign = "+" if delta > 0 else "-"
            append_movement(
                parish_id=session.parish_id,
                warehouse_id=session.warehouse_id,
                product_id=item.product_id,
                movement_type=movement_type,
                movement_date=session.date,
                quantity=checked["quantity"],
                document_type=INVENTORY_DOCUMENT_TYPE,
                document_number=str(session.id),
                document_date=session.date,
                notes=f"Inventory adjustment: {sign}{to_str(quantity)}",
                created_by_user_id=actor_id,
            )
            created += 1

        session.status = SESSION_STATUS_COMPLETED
        session.completed_by_user_id = actor_id
        session.completed_at = utcnow()
        session.adjustments_created = created

        db.session.commit()
        return {"session": session, "adjustments_created": created}

    return run_with_retry(_op)


def get_session_summary(session_id: int) -> dict:
    """
    Session with its items and each item's physical - book difference.

    Raises:
        NotFoundError: If session not found
    """
    session = db.session.get(InventorySession, session_id)
    if session is None:
        raise NotFoundError(f"Inventory session {session_id} not found")

    items = []
    for item in session.items:
        row = item.to_dict()
        row["delta"] = to_str(item_delta(item))
        items.append(row)

    return {
        **session.to_dict(),
        "items": items,
    }

# backend/app/services/invoice_stock_service.py
"""
Invoice -> stock ledger projection.

WHY: Stock that arrives on a received invoice or leaves on an issued one is
recorded from the invoice itself, so the movements of an invoice are a
function of its current line items and nothing else:

- saved (not cancelled): delete every movement with invoice_id, then write
  one movement per line that names both a product and a warehouse
  (received -> "in", issued -> "out")
- cancelled or deleted: delete every movement with invoice_id

Saving the same items twice therefore leaves the ledger exactly as saving
once. These are the only code paths that delete stock movements.
"""
from __future__ import annotations

from datetime import date

from flask import current_app

from app.extensions import db
from app.models import Product, StockMovement, Warehouse
from app.models.documents import INVOICE_TYPE_ISSUED, INVOICE_TYPE_RECEIVED
from app.models.inventory import MovementType
from app.quantities import QTY_PLACES, UNIT_COST_PLACES, as_decimal, compute_total_value
from app.services.concurrency import run_with_retry
from app.services.stock_service import append_movement
from app.time_utils import parse_iso_date
from app.validation import ValidationError


INVOICE_DOCUMENT_TYPE = "invoice"

MOVEMENT_TYPE_BY_INVOICE_TYPE = {
    INVOICE_TYPE_RECEIVED: MovementType.IN.value,
    INVOICE_TYPE_ISSUED: MovementType.OUT.value,
}


def _line_movement_fields(index: int, item: dict) -> dict | None:
    """Quantity/cost for one stock-bearing line, or None when the line is skipped."""
    product_id = item.get("product_id")
    warehouse_id = item.get("warehouse_id")
    if product_id is None or warehouse_id is None:
        return None

    product = db.session.get(Product, product_id)
    if product is None or not product.tracks_stock:
        current_app.logger.info(
            "Invoice line %s skipped: product %s missing or not stock-tracked", index, product_id
        )
        return None
    if db.session.get(Warehouse, warehouse_id) is None:
        current_app.logger.info("Invoice line %s skipped: warehouse %s not found", index, warehouse_id)
        return None

    quantity = as_decimal(item.get("quantity")).quantize(QTY_PLACES)
    if quantity <= 0:
        return None

    unit_cost = item.get("unit_cost")
    unit_cost = as_decimal(unit_cost).quantize(UNIT_COST_PLACES) if unit_cost is not None else None

    return {
        "product_id": product_id,
        "warehouse_id": warehouse_id,
        "quantity": quantity,
        "unit_cost": unit_cost,
        "total_value": compute_total_value(quantity, unit_cost),
    }


def generate_movements_from_invoice(
    *,
    invoice_id: int,
    invoice_type: str,
    invoice_date: date,
    items: list[dict],
    parish_id: int,
    client_id: int | None = None,
    invoice_number: str | None = None,
    actor_id: int | None = None,
) -> list[StockMovement]:
    """Core generation without delete, retry or commit."""
    movement_type = MOVEMENT_TYPE_BY_INVOICE_TYPE.get(invoice_type)
    if movement_type is None:
        raise ValidationError(f"Invalid invoice type: {invoice_type}")

    movements = []
    for index, item in enumerate(items or []):
        fields = _line_movement_fields(index, item)
        if fields is None:
            continue

        movements.append(append_movement(
            parish_id=parish_id,
            warehouse_id=fields["warehouse_id"],
            product_id=fields["product_id"],
            movement_type=movement_type,
            movement_date=invoice_date,
            quantity=fields["quantity"],
            unit_cost=fields["unit_cost"],
            total_value=fields["total_value"],
            invoice_id=invoice_id,
            invoice_item_index=index,
            document_type=INVOICE_DOCUMENT_TYPE,
            document_number=invoice_number,
            document_date=invoice_date,
            client_id=client_id,
            notes=f"Invoice {invoice_number or invoice_id} line {index + 1}",
            created_by_user_id=actor_id,
        ))

    return movements


def delete_movements_for_invoice(invoice_id: int) -> int:
    """Core reversal without retry or commit. Returns the number of rows deleted."""
    return (
        db.session.query(StockMovement)
        .filter(StockMovement.invoice_id == invoice_id)
        .delete(synchronize_session="fetch")
    )


def on_invoice_saved(
    *,
    invoice_id: int,
    invoice_type: str,
    invoice_date,
    items: list[dict],
    parish_id: int,
    client_id: int | None = None,
    invoice_number: str | None = None,
    actor_id: int | None = None,
) -> list[StockMovement]:
    """
    Re-project an invoice's lines onto the ledger (delete, then regenerate).

    Both steps commit together; on failure the previous projection stays.
    """
    try:
        invoice_dt = parse_iso_date(invoice_date)
    except ValueError:
        raise ValidationError("invoice date must be in YYYY-MM-DD format")
    if invoice_dt is None:
        raise ValidationError("invoice date is required")

    def _op():
        delete_movements_for_invoice(invoice_id)
        movements = generate_movements_from_invoice(
            invoice_id=invoice_id,
            invoice_type=invoice_type,
            invoice_date=invoice_dt,
            items=items,
            parish_id=parish_id,
            client_id=client_id,
            invoice_number=invoice_number,
            actor_id=actor_id,
        )
        db.session.commit()
        return movements

    return run_with_retry(_op)


def on_invoice_cancelled_or_deleted(*, invoice_id: int, actor_id: int | None = None) -> int:
    """Remove an invoice's projection. Returns the number of movements deleted."""
    def _op():
        deleted = delete_movements_for_invoice(invoice_id)
        db.session.commit()
        return deleted

    return run_with_retry(_op)

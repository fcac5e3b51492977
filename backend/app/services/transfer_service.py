# backend/app/services/transfer_service.py
"""
Inter-warehouse stock transfer service.

WHY: Moving stock between two warehouses must never be half-applied. A
transfer is written as two StockMovement rows of type "transfer" in ONE
database transaction:

1. source leg: warehouse_id = source, destination_warehouse_id = destination
   (counts negative at the source)
2. inbound leg: warehouse_id = destination, destination_warehouse_id = NULL
   (counts positive at the destination)

Both legs carry the same quantity, unit cost, total value and a shared
transfer_group_id. Either both rows commit or neither does.
"""
from __future__ import annotations

import uuid

from app.extensions import db
from app.models import StockMovement, Warehouse
from app.models.inventory import MovementType
from app.services.concurrency import run_with_retry
from app.services.stock_service import (
    append_movement,
    get_movements_for_transfer_group,
    validate_movement,
)
from app.time_utils import parse_iso_date
from app.validation import ValidationError


def _transfer_notes(prefix: str, warehouse: Warehouse, notes: str | None) -> str:
    base = f"{prefix} {warehouse.name}"
    return f"{base}: {notes}" if notes else base


def create_transfer(
    *,
    source_warehouse_id: int,
    destination_warehouse_id: int,
    product_id: int,
    parish_id: int,
    movement_date,
    quantity,
    unit_cost=None,
    total_value=None,
    document_type: str | None = None,
    document_number: str | None = None,
    document_date=None,
    client_id: int | None = None,
    notes: str | None = None,
    actor_id: int | None = None,
) -> tuple[StockMovement, StockMovement]:
    """
    Move quantity of a product from one warehouse to another.

    Args:
        source_warehouse_id: Warehouse the stock leaves
        destination_warehouse_id: Warehouse the stock arrives at
        product_id: Stock-tracked product
        parish_id: Owning parish (recorded on both legs)
        movement_date: Calendar date (date or YYYY-MM-DD)
        quantity: Non-negative quantity, up to 3 decimals
        unit_cost: Optional unit cost, up to 4 decimals
        notes: Optional free text appended to the generated leg notes
        actor_id: User recording the transfer (attribution only)

    Returns:
        (outbound, inbound): the source leg and the destination leg

    Raises:
        ValidationError, NotFoundError, InvalidOperationError,
        InsufficientStockError: validation failed; nothing was written
    """
    try:
        movement_dt = parse_iso_date(movement_date)
        document_dt = parse_iso_date(document_date)
    except ValueError:
        raise ValidationError("dates must be in YYYY-MM-DD format")
    if movement_dt is None:
        raise ValidationError("movement_date is required")

    def _op():
        checked = validate_movement(
            warehouse_id=source_warehouse_id,
            product_id=product_id,
            movement_type=MovementType.TRANSFER.value,
            quantity=quantity,
            unit_cost=unit_cost,
            total_value=total_value,
            destination_warehouse_id=destination_warehouse_id,
        )

        source = db.session.get(Warehouse, source_warehouse_id)
        destination = db.session.get(Warehouse, destination_warehouse_id)
        group_id = str(uuid.uuid4())

        outbound = append_movement(
            parish_id=parish_id,
            warehouse_id=source_warehouse_id,
            product_id=product_id,
            movement_type=MovementType.TRANSFER.value,
            movement_date=movement_dt,
            quantity=checked["quantity"],
            unit_cost=checked["unit_cost"],
            total_value=checked["total_value"],
            document_type=document_type,
            document_number=document_number,
            document_date=document_dt,
            client_id=client_id,
            destination_warehouse_id=destination_warehouse_id,
            transfer_group_id=group_id,
            notes=_transfer_notes("Transfer to", destination, notes),
            created_by_user_id=actor_id,
        )

        inbound = append_movement(
            parish_id=parish_id,
            warehouse_id=destination_warehouse_id,
            product_id=product_id,
            movement_type=MovementType.TRANSFER.value,
            movement_date=movement_dt,
            quantity=checked["quantity"],
            unit_cost=checked["unit_cost"],
            total_value=checked["total_value"],
            document_type="transfer",
            document_number=str(outbound.id),
            document_date=movement_dt,
            client_id=client_id,
            destination_warehouse_id=None,
            transfer_group_id=group_id,
            notes=_transfer_notes("Transfer from", source, notes),
            created_by_user_id=actor_id,
        )

        db.session.commit()
        return outbound, inbound

    return run_with_retry(_op)


def get_transfer_summary(transfer_group_id: str) -> dict:
    """
    Both legs of a transfer.

    Raises:
        NotFoundError: If no movement carries the group id
    """
    legs = get_movements_for_transfer_group(transfer_group_id)
    outbound = next((m for m in legs if m.destination_warehouse_id is not None), None)
    inbound = next((m for m in legs if m.destination_warehouse_id is None), None)

    return {
        "transfer_group_id": transfer_group_id,
        "out_movement": outbound.to_dict() if outbound else None,
        "in_movement": inbound.to_dict() if inbound else None,
    }

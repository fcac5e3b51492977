# Overview: Flask API routes for the stock ledger; movements, transfers and stock levels.

# backend/app/routes/stock_movements.py
"""
Stock ledger API routes.

The acting user comes from the X-User-Id header (see decorators.with_actor).
Quantities and money are exchanged as decimal strings, e.g. "12.500".
"""
from flask import Blueprint, request, jsonify, g

from ..decorators import with_actor
from ..models import StockMovement
from ..services import stock_service, transfer_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_movement,
    enforce_rules_transfer,
)
from .errors import json_error, parse_bool_arg


MOVEMENT_POLICY = ModelValidationPolicy(
    writable_fields={
        "parish_id", "warehouse_id", "product_id", "type", "movement_date",
        "quantity", "unit_cost", "total_value",
        "document_type", "document_number", "document_date", "client_id",
        "destination_warehouse_id", "notes",
    },
    required_on_create={"parish_id", "warehouse_id", "product_id", "type", "movement_date", "quantity"},
)

TRANSFER_POLICY = ModelValidationPolicy(
    writable_fields={
        "parish_id", "warehouse_id", "destination_warehouse_id", "product_id", "movement_date",
        "quantity", "unit_cost", "total_value",
        "document_type", "document_number", "document_date", "client_id", "notes",
    },
    required_on_create={
        "parish_id", "warehouse_id", "destination_warehouse_id", "product_id", "movement_date", "quantity",
    },
)

stock_movements_bp = Blueprint("stock_movements", __name__, url_prefix="/api/stock-movements")
stock_levels_bp = Blueprint("stock_levels", __name__, url_prefix="/api/stock-levels")


@stock_movements_bp.get("")
@with_actor
def list_movements():
    """
    List movements, newest first.

    Query params:
    - warehouse_id, product_id, parish_id, type, invoice_id, client_id, transfer_group_id
    - date_from, date_to: YYYY-MM-DD, inclusive
    - page (default 1), page_size (default 10, capped by MOVEMENTS_MAX_PAGE_SIZE)
    - sort_by: movement_date | created_at; sort_order: asc | desc
    """
    filters = {
        "warehouse_id": request.args.get("warehouse_id", type=int),
        "product_id": request.args.get("product_id", type=int),
        "parish_id": request.args.get("parish_id", type=int),
        "type": request.args.get("type"),
        "invoice_id": request.args.get("invoice_id", type=int),
        "client_id": request.args.get("client_id", type=int),
        "transfer_group_id": request.args.get("transfer_group_id"),
        "date_from": request.args.get("date_from"),
        "date_to": request.args.get("date_to"),
    }

    try:
        result = stock_service.list_movements(
            filters=filters,
            page=request.args.get("page", 1, type=int),
            page_size=request.args.get("page_size", 10, type=int),
            sort_by=request.args.get("sort_by", "movement_date"),
            sort_order=request.args.get("sort_order", "desc"),
        )
    except Exception as e:
        return json_error(e)

    return jsonify({
        "items": [m.to_dict() for m in result["items"]],
        "pagination": result["pagination"],
    }), 200


@stock_movements_bp.post("")
@with_actor
def create_movement():
    """
    Record one movement.

    A "transfer" also writes its inbound leg at the destination; the
    response then carries both legs.

    Returns:
        201: Movement created
        400: Invalid request / insufficient stock (with available and requested)
        404: Warehouse or product not found
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=StockMovement, payload=payload, policy=MOVEMENT_POLICY, partial=False)
        enforce_rules_movement(patch)

        movement = stock_service.create_movement(
            parish_id=patch["parish_id"],
            warehouse_id=patch["warehouse_id"],
            product_id=patch["product_id"],
            movement_type=patch["type"],
            movement_date=patch["movement_date"],
            quantity=patch["quantity"],
            unit_cost=patch.get("unit_cost"),
            total_value=patch.get("total_value"),
            document_type=patch.get("document_type"),
            document_number=patch.get("document_number"),
            document_date=patch.get("document_date"),
            client_id=patch.get("client_id"),
            destination_warehouse_id=patch.get("destination_warehouse_id"),
            notes=patch.get("notes"),
            actor_id=g.actor_id,
        )
        if movement.transfer_group_id:
            return jsonify(transfer_service.get_transfer_summary(movement.transfer_group_id)), 201
    except Exception as e:
        return json_error(e)

    return jsonify(movement.to_dict()), 201


@stock_movements_bp.get("/<int:movement_id>")
@with_actor
def get_movement(movement_id: int):
    try:
        movement = stock_service.get_movement(movement_id)
    except Exception as e:
        return json_error(e)
    return jsonify(movement.to_dict()), 200


@stock_movements_bp.post("/transfer")
@with_actor
def create_transfer():
    """
    Move stock between two warehouses of a parish.

    Request body:
    {
        "parish_id": int,
        "warehouse_id": int,                (source)
        "destination_warehouse_id": int,
        "product_id": int,
        "movement_date": "YYYY-MM-DD",
        "quantity": "3.000",
        "unit_cost": "1.2500" (optional),
        "notes": str (optional)
    }

    Returns:
        201: {"transfer_group_id", "out_movement", "in_movement"}
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=StockMovement, payload=payload, policy=TRANSFER_POLICY, partial=False)
        enforce_rules_transfer(patch)

        outbound, _inbound = transfer_service.create_transfer(
            source_warehouse_id=patch["warehouse_id"],
            destination_warehouse_id=patch["destination_warehouse_id"],
            product_id=patch["product_id"],
            parish_id=patch["parish_id"],
            movement_date=patch["movement_date"],
            quantity=patch["quantity"],
            unit_cost=patch.get("unit_cost"),
            total_value=patch.get("total_value"),
            document_type=patch.get("document_type"),
            document_number=patch.get("document_number"),
            document_date=patch.get("document_date"),
            client_id=patch.get("client_id"),
            notes=patch.get("notes"),
            actor_id=g.actor_id,
        )
        summary = transfer_service.get_transfer_summary(outbound.transfer_group_id)
    except Exception as e:
        return json_error(e)

    return jsonify(summary), 201


@stock_movements_bp.get("/transfer/<transfer_group_id>")
@with_actor
def get_transfer(transfer_group_id: str):
    try:
        summary = transfer_service.get_transfer_summary(transfer_group_id)
    except Exception as e:
        return json_error(e)
    return jsonify(summary), 200


@stock_levels_bp.get("")
@with_actor
def list_stock_levels():
    """
    Current stock per (warehouse, product).

    Query params:
    - warehouse_id, product_id, parish_id: optional filters
    - low_stock: true to keep only products below their min_stock
    """
    try:
        levels = stock_service.get_stock_levels(
            warehouse_id=request.args.get("warehouse_id", type=int),
            product_id=request.args.get("product_id", type=int),
            parish_id=request.args.get("parish_id", type=int),
            low_stock=parse_bool_arg(request.args.get("low_stock")),
        )
    except Exception as e:
        return json_error(e)

    return jsonify({"items": levels, "count": len(levels)}), 200


@stock_levels_bp.get("/summary")
@with_actor
def stock_summary():
    """Quantity and value of one (warehouse, product) pair, optionally as of a date."""
    warehouse_id = request.args.get("warehouse_id", type=int)
    product_id = request.args.get("product_id", type=int)
    if warehouse_id is None or product_id is None:
        return jsonify({"error": "warehouse_id and product_id are required"}), 400

    try:
        summary = stock_service.get_stock_summary(
            warehouse_id=warehouse_id,
            product_id=product_id,
            as_of=request.args.get("as_of"),
        )
    except Exception as e:
        return json_error(e)

    return jsonify(summary), 200

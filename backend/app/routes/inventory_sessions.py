# backend/app/routes/inventory_sessions.py
"""
Physical inventory session routes.

WORKFLOW:
1. POST /api/inventory-sessions                     open a session
2. POST /api/inventory-sessions/<id>/load-book      snapshot book stock as items
3. PUT  /api/inventory-sessions/<id>/items/<item>   enter counted quantities
4. POST /api/inventory-sessions/<id>/complete       post differences to the ledger
"""
from flask import Blueprint, request, jsonify, g

from ..decorators import with_actor
from ..services import inventory_session_service
from .errors import json_error


inventory_sessions_bp = Blueprint("inventory_sessions", __name__, url_prefix="/api/inventory-sessions")


@inventory_sessions_bp.post("")
@with_actor
def create_session():
    """
    Request body:
    {
        "parish_id": int,
        "warehouse_id": int (optional),
        "date": "YYYY-MM-DD",
        "notes": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        session = inventory_session_service.create_session(
            parish_id=data["parish_id"],
            warehouse_id=data.get("warehouse_id"),
            date=data["date"],
            notes=data.get("notes"),
            actor_id=g.actor_id,
        )
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except Exception as e:
        return json_error(e)

    return jsonify(session.to_dict()), 201


@inventory_sessions_bp.get("/<int:session_id>")
@with_actor
def get_session(session_id: int):
    """Session with items and per-item differences."""
    try:
        summary = inventory_session_service.get_session_summary(session_id)
    except Exception as e:
        return json_error(e)
    return jsonify(summary), 200


@inventory_sessions_bp.post("/<int:session_id>/load-book")
@with_actor
def load_book(session_id: int):
    try:
        items = inventory_session_service.load_book_inventory(session_id)
    except Exception as e:
        return json_error(e)

    return jsonify({"items": [item.to_dict() for item in items], "count": len(items)}), 201


@inventory_sessions_bp.post("/<int:session_id>/items")
@with_actor
def add_item(session_id: int):
    """
    Request body:
    {
        "item_type": "product" | "fixed_asset",
        "product_id": int (product items),
        "fixed_asset_id": int (fixed asset items),
        "book_quantity": "10.000" (optional; defaults to ledger stock for products),
        "physical_quantity": "7.000" (optional),
        "unit": str (optional),
        "notes": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        item = inventory_session_service.add_item(
            session_id=session_id,
            item_type=data["item_type"],
            product_id=data.get("product_id"),
            fixed_asset_id=data.get("fixed_asset_id"),
            book_quantity=data.get("book_quantity"),
            physical_quantity=data.get("physical_quantity"),
            unit=data.get("unit"),
            notes=data.get("notes"),
        )
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except Exception as e:
        return json_error(e)

    return jsonify(item.to_dict()), 201


@inventory_sessions_bp.put("/<int:session_id>/items/<int:item_id>")
@with_actor
def record_count(session_id: int, item_id: int):
    """Request body: {"physical_quantity": "7.000", "notes": str (optional)}"""
    data = request.get_json(silent=True) or {}

    try:
        item = inventory_session_service.record_count(
            session_id=session_id,
            item_id=item_id,
            physical_quantity=data.get("physical_quantity"),
            notes=data.get("notes"),
        )
    except Exception as e:
        return json_error(e)

    return jsonify(item.to_dict()), 200


@inventory_sessions_bp.post("/<int:session_id>/complete")
@with_actor
def complete_session(session_id: int):
    """
    Post book/physical differences as stock movements and close the session.

    Returns:
        200: {"session": {...}, "adjustments_created": int}
        400: Session already completed or without warehouse
        404: Session not found
    """
    try:
        result = inventory_session_service.complete_session(session_id, actor_id=g.actor_id)
    except Exception as e:
        return json_error(e)

    return jsonify({
        "session": result["session"].to_dict(),
        "adjustments_created": result["adjustments_created"],
    }), 200


@inventory_sessions_bp.delete("/<int:session_id>")
@with_actor
def delete_session(session_id: int):
    try:
        inventory_session_service.delete_session(session_id)
    except Exception as e:
        return json_error(e)
    return jsonify({"ok": True}), 200

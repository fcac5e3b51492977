# backend/app/routes/invoices.py
"""
Invoice routes.

Only the invoice fields the stock ledger depends on are handled here. Every
mutation answers with the invoice and a "warnings" list: a non-empty list
means the invoice change was saved but its stock movements could not be
brought in line (see invoice_service).
"""
from flask import Blueprint, request, jsonify, g

from ..decorators import with_actor
from ..services import invoice_service
from ..services.invoice_service import PROJECTED_FIELDS
from .errors import json_error


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")

UPDATABLE_FIELDS = set(PROJECTED_FIELDS) | {"status"}


@invoices_bp.post("")
@with_actor
def create_invoice():
    """
    Create an invoice.

    Request body:
    {
        "parish_id": int,
        "invoice_number": str,
        "type": "issued" | "received",
        "date": "YYYY-MM-DD",
        "items": [{"description", "quantity", "unit_price", "product_id"?, "warehouse_id"?, "unit_cost"?}],
        "client_id": int (optional),
        "status": str (optional, default "draft")
    }

    Returns:
        201: {"invoice": {...}, "warnings": [...]}
    """
    data = request.get_json(silent=True) or {}

    try:
        invoice, warnings = invoice_service.create_invoice(
            parish_id=data["parish_id"],
            invoice_number=data["invoice_number"],
            invoice_type=data["type"],
            date=data["date"],
            items=data.get("items", []),
            client_id=data.get("client_id"),
            status=data.get("status", "draft"),
            actor_id=g.actor_id,
        )
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except Exception as e:
        return json_error(e)

    return jsonify({"invoice": invoice.to_dict(), "warnings": warnings}), 201


@invoices_bp.get("/<int:invoice_id>")
@with_actor
def get_invoice(invoice_id: int):
    try:
        invoice = invoice_service.get_invoice(invoice_id)
    except Exception as e:
        return json_error(e)
    return jsonify(invoice.to_dict()), 200


@invoices_bp.put("/<int:invoice_id>")
@with_actor
def update_invoice(invoice_id: int):
    """Partial update; changing items, type, date or status re-projects stock."""
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    unknown = sorted(set(data) - UPDATABLE_FIELDS)
    if unknown:
        return jsonify({"error": f"Field not allowed: {', '.join(unknown)}"}), 400

    try:
        invoice, warnings = invoice_service.update_invoice(invoice_id, actor_id=g.actor_id, **data)
    except Exception as e:
        return json_error(e)

    return jsonify({"invoice": invoice.to_dict(), "warnings": warnings}), 200


@invoices_bp.post("/<int:invoice_id>/cancel")
@with_actor
def cancel_invoice(invoice_id: int):
    try:
        invoice, warnings = invoice_service.cancel_invoice(invoice_id, actor_id=g.actor_id)
    except Exception as e:
        return json_error(e)

    return jsonify({"invoice": invoice.to_dict(), "warnings": warnings}), 200


@invoices_bp.delete("/<int:invoice_id>")
@with_actor
def delete_invoice(invoice_id: int):
    try:
        snapshot, warnings = invoice_service.delete_invoice(invoice_id, actor_id=g.actor_id)
    except Exception as e:
        return json_error(e)

    return jsonify({"ok": True, "invoice": snapshot, "warnings": warnings}), 200

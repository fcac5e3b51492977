# backend/app/services/invoice_service.py
"""
Thin invoice mutations that keep the stock ledger in step.

The invoice row is authoritative and is committed first. The ledger is then
re-projected in its own transaction; if that fails the failure is logged and
returned as a warning instead of undoing the invoice change. A lagging ledger
is corrected by re-saving the invoice or through an inventory session.
"""
from __future__ import annotations

from flask import current_app

from app.extensions import db
from app.models import Invoice, Parish
from app.models.documents import INVOICE_STATUS_CANCELLED, INVOICE_STATUSES, INVOICE_TYPES
from app.quantities import to_str
from app.services import invoice_stock_service
from app.services.concurrency import lock_for_update, run_with_retry
from app.time_utils import parse_iso_date
from app.validation import NotFoundError, ValidationError, coerce_decimal


# Changing any of these re-projects the invoice onto the ledger
PROJECTED_FIELDS = ("type", "date", "items", "parish_id", "client_id", "invoice_number")


def _normalize_items(items) -> list[dict]:
    if not isinstance(items, list):
        raise ValidationError("items must be a list")

    normalized = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object")

        quantity = coerce_decimal(f"items[{index}].quantity", item.get("quantity"), 3)
        if quantity <= 0:
            raise ValidationError(f"items[{index}].quantity must be > 0")

        unit_price = item.get("unit_price", 0)
        unit_price = coerce_decimal(f"items[{index}].unit_price", unit_price, 4)

        unit_cost = item.get("unit_cost")
        if unit_cost is not None:
            unit_cost = coerce_decimal(f"items[{index}].unit_cost", unit_cost, 4)

        for key in ("product_id", "warehouse_id"):
            value = item.get(key)
            if value is not None and (not isinstance(value, int) or isinstance(value, bool)):
                raise ValidationError(f"items[{index}].{key} must be an integer")

        normalized.append({
            "description": str(item.get("description") or "").strip(),
            "quantity": to_str(quantity),
            "unit_price": to_str(unit_price),
            "product_id": item.get("product_id"),
            "warehouse_id": item.get("warehouse_id"),
            "unit_cost": to_str(unit_cost),
        })
    return normalized


def _check_type_and_status(invoice_type, status) -> None:
    if invoice_type not in INVOICE_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(INVOICE_TYPES)}")
    if status not in INVOICE_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(INVOICE_STATUSES)}")


def _sync_ledger(invoice: Invoice, *, actor_id: int | None) -> list[str]:
    """Best-effort projection of the committed invoice. Returns warnings."""
    try:
        if invoice.is_cancelled:
            invoice_stock_service.on_invoice_cancelled_or_deleted(invoice_id=invoice.id, actor_id=actor_id)
        else:
            invoice_stock_service.on_invoice_saved(
                invoice_id=invoice.id,
                invoice_type=invoice.type,
                invoice_date=invoice.date,
                items=invoice.items,
                parish_id=invoice.parish_id,
                client_id=invoice.client_id,
                invoice_number=invoice.invoice_number,
                actor_id=actor_id,
            )
    except Exception as exc:
        current_app.logger.warning("Stock movements for invoice %s not updated: %s", invoice.id, exc)
        return [f"Stock movements could not be updated: {exc}"]
    return []


def get_invoice(invoice_id: int) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFoundError("Invoice not found")
    return invoice


def create_invoice(
    *,
    parish_id: int,
    invoice_number: str,
    invoice_type: str,
    date,
    items: list[dict],
    client_id: int | None = None,
    status: str = "draft",
    actor_id: int | None = None,
) -> tuple[Invoice, list[str]]:
    """
    Create an invoice and project its stock lines.

    Returns:
        (invoice, warnings): warnings is empty unless the ledger update failed
    """
    _check_type_and_status(invoice_type, status)
    try:
        invoice_date = parse_iso_date(date)
    except ValueError:
        raise ValidationError("date must be in YYYY-MM-DD format")
    if invoice_date is None:
        raise ValidationError("date is required")
    if not invoice_number or not str(invoice_number).strip():
        raise ValidationError("invoice_number is required")
    normalized = _normalize_items(items)

    def _op():
        if db.session.get(Parish, parish_id) is None:
            raise NotFoundError("Parish not found")

        invoice = Invoice(
            parish_id=parish_id,
            client_id=client_id,
            invoice_number=str(invoice_number).strip(),
            type=invoice_type,
            date=invoice_date,
            status=status,
            items=normalized,
            created_by_user_id=actor_id,
        )
        db.session.add(invoice)
        db.session.commit()
        return invoice

    invoice = run_with_retry(_op)
    warnings = _sync_ledger(invoice, actor_id=actor_id)
    return invoice, warnings


def update_invoice(invoice_id: int, *, actor_id: int | None = None, **changes) -> tuple[Invoice, list[str]]:
    """
    Apply changes (any of PROJECTED_FIELDS and status) to an invoice.

    The ledger is re-projected when a projected field changes, when the
    invoice is cancelled, or when a cancelled invoice is reinstated.
    """
    unknown = set(changes) - set(PROJECTED_FIELDS) - {"status"}
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    if "items" in changes:
        changes["items"] = _normalize_items(changes["items"])
    if "date" in changes:
        try:
            changes["date"] = parse_iso_date(changes["date"])
        except ValueError:
            raise ValidationError("date must be in YYYY-MM-DD format")
        if changes["date"] is None:
            raise ValidationError("date cannot be null")
    if "parish_id" in changes and changes["parish_id"] is None:
        raise ValidationError("parish_id cannot be null")

    def _op():
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if invoice is None:
            raise NotFoundError("Invoice not found")
        if "parish_id" in changes and db.session.get(Parish, changes["parish_id"]) is None:
            raise NotFoundError("Parish not found")

        was_cancelled = invoice.is_cancelled
        _check_type_and_status(changes.get("type", invoice.type), changes.get("status", invoice.status))

        projected_change = False
        for key, value in changes.items():
            if getattr(invoice, key) != value:
                setattr(invoice, key, value)
                projected_change = projected_change or key in PROJECTED_FIELDS

        needs_sync = projected_change or was_cancelled != invoice.is_cancelled
        db.session.commit()
        return invoice, needs_sync

    invoice, needs_sync = run_with_retry(_op)
    warnings = _sync_ledger(invoice, actor_id=actor_id) if needs_sync else []
    return invoice, warnings


def cancel_invoice(invoice_id: int, *, actor_id: int | None = None) -> tuple[Invoice, list[str]]:
    return update_invoice(invoice_id, actor_id=actor_id, status=INVOICE_STATUS_CANCELLED)


def delete_invoice(invoice_id: int, *, actor_id: int | None = None) -> tuple[dict, list[str]]:
    """
    Hard-delete an invoice, then remove its movements (best effort).

    Returns:
        (deleted invoice as dict, warnings)
    """
    def _op():
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if invoice is None:
            raise NotFoundError("Invoice not found")
        snapshot = invoice.to_dict()
        db.session.delete(invoice)
        db.session.commit()
        return snapshot

    snapshot = run_with_retry(_op)

    warnings = []
    try:
        invoice_stock_service.on_invoice_cancelled_or_deleted(invoice_id=invoice_id, actor_id=actor_id)
    except Exception as exc:
        current_app.logger.warning("Stock movements for deleted invoice %s not reversed: %s", invoice_id, exc)
        warnings.append(f"Stock movements could not be reversed: {exc}")
    return snapshot, warnings

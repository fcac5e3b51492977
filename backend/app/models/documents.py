from __future__ import annotations

from ..extensions import db
from app.quantities import to_str
from app.time_utils import to_iso_date, to_utc_z


# Invoice types and statuses
INVOICE_TYPE_ISSUED = "issued"
INVOICE_TYPE_RECEIVED = "received"
INVOICE_TYPES = (INVOICE_TYPE_ISSUED, INVOICE_TYPE_RECEIVED)

INVOICE_STATUS_CANCELLED = "cancelled"
INVOICE_STATUSES = ("draft", "sent", "paid", "overdue", INVOICE_STATUS_CANCELLED)

# Inventory session statuses (open -> completed, one way)
SESSION_STATUS_OPEN = "open"
SESSION_STATUS_COMPLETED = "completed"

ITEM_TYPE_PRODUCT = "product"
ITEM_TYPE_FIXED_ASSET = "fixed_asset"
ITEM_TYPES = (ITEM_TYPE_PRODUCT, ITEM_TYPE_FIXED_ASSET)


class Invoice(db.Model):
    """
    Sales (issued) or purchase (received) invoice.

    Only the fields the stock ledger reads are modelled here. items is a JSON
    list of line dicts; a line that carries both product_id and warehouse_id
    projects to one stock movement while the invoice is not cancelled.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.Index("ix_invoices_parish_date", "parish_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    parish_id = db.Column(db.Integer, db.ForeignKey("parishes.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, nullable=True, index=True)

    invoice_number = db.Column(db.String(50), nullable=False)

    # issued | received
    type = db.Column(db.String(16), nullable=False)
    date = db.Column(db.Date, nullable=False)
    # draft | sent | paid | overdue | cancelled
    status = db.Column(db.String(16), nullable=False, default="draft", index=True)

    items = db.Column(db.JSON, nullable=False, default=list)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_cancelled(self) -> bool:
        return self.status == INVOICE_STATUS_CANCELLED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "parish_id": self.parish_id,
            "client_id": self.client_id,
            "invoice_number": self.invoice_number,
            "type": self.type,
            "date": to_iso_date(self.date),
            "status": self.status,
            "items": list(self.items or []),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class InventorySession(db.Model):
    """
    Physical inventory session for one parish (and usually one warehouse).

    LIFECYCLE:
    1. open: items loaded from book stock, physical counts entered
    2. completed: differences posted to the stock ledger; terminal

    A session without a warehouse can only hold fixed-asset items and can
    not be completed through the ledger.
    """
    __tablename__ = "inventory_sessions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    parish_id = db.Column(db.Integer, db.ForeignKey("parishes.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=True, index=True)

    date = db.Column(db.Date, nullable=False)

    # open, completed
    status = db.Column(db.String(16), nullable=False, default=SESSION_STATUS_OPEN, index=True)

    notes = db.Column(db.Text, nullable=True)

    # Number of adjustment movements posted on completion
    adjustments_created = db.Column(db.Integer, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    completed_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    warehouse = db.relationship("Warehouse")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "parish_id": self.parish_id,
            "warehouse_id": self.warehouse_id,
            "date": to_iso_date(self.date),
            "status": self.status,
            "notes": self.notes,
            "adjustments_created": self.adjustments_created,
            "created_by_user_id": self.created_by_user_id,
            "completed_by_user_id": self.completed_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "version_id": self.version_id,
        }


class InventoryItem(db.Model):
    """
    One counted line of an inventory session.

    book_quantity is the ledger quantity when the item was added;
    physical_quantity is what was counted. Only product items are reconciled
    against the stock ledger.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.Index("ix_inventory_items_session_product", "session_id", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("inventory_sessions.id"), nullable=False, index=True)

    # product | fixed_asset
    item_type = db.Column(db.String(16), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    fixed_asset_id = db.Column(db.Integer, nullable=True)

    unit = db.Column(db.String(16), nullable=True)
    book_quantity = db.Column(db.Numeric(14, 3), nullable=True)
    physical_quantity = db.Column(db.Numeric(14, 3), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    session = db.relationship(
        "InventorySession",
        backref=db.backref("items", lazy=True, cascade="all, delete-orphan", order_by="InventoryItem.id"),
    )
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "item_type": self.item_type,
            "product_id": self.product_id,
            "fixed_asset_id": self.fixed_asset_id,
            "unit": self.unit,
            "book_quantity": to_str(self.book_quantity),
            "physical_quantity": to_str(self.physical_quantity),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

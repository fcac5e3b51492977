from __future__ import annotations

import enum

from sqlalchemy import and_, case, func

from ..extensions import db
from app.quantities import to_str
from app.time_utils import to_iso_date, to_utc_z


class MovementType(str, enum.Enum):
    IN = "in"
    OUT = "out"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"
    RETURN = "return"


def movement_sign(movement_type, has_destination: bool) -> int:
    """
    Sign a movement contributes to its warehouse's stock.

    This is the only place the sign rule lives; the SQL aggregate below is
    generated from it.

    - in, adjustment, return: +1 (quantities are stored non-negative, so a
      decrease is always recorded as an `out`)
    - out: -1
    - transfer: -1 on the source leg (destination set), +1 on the mirrored
      inbound leg (destination null)
    """
    movement_type = MovementType(movement_type)
    if movement_type is MovementType.OUT:
        return -1
    if movement_type is MovementType.TRANSFER:
        return -1 if has_destination else 1
    if movement_type in (MovementType.IN, MovementType.ADJUSTMENT, MovementType.RETURN):
        return 1
    raise ValueError(f"unhandled movement type: {movement_type!r}")


class Product(db.Model):
    """
    Product master data.

    Only products with tracks_stock=True may appear in stock movements.
    min_stock drives the low-stock filter of the stock level report.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("parish_id", "code", name="uq_products_parish_code"),
        db.Index("ix_products_parish_name", "parish_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Null parish_id = shared catalogue entry
    parish_id = db.Column(db.Integer, db.ForeignKey("parishes.id"), nullable=True, index=True)

    code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(16), nullable=False, default="pcs")

    tracks_stock = db.Column(db.Boolean, nullable=False, default=True)
    min_stock = db.Column(db.Numeric(14, 3), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.code!r} name={self.name!r} tracks_stock={self.tracks_stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "parish_id": self.parish_id,
            "code": self.code,
            "name": self.name,
            "unit": self.unit,
            "tracks_stock": self.tracks_stock,
            "min_stock": to_str(self.min_stock),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    One immutable stock ledger entry.

    Stock on hand is never stored: it is SUM(sign * quantity) over the rows
    of a (warehouse, product) pair, see signed_sum().

    Rows are inserted once and never updated (enforced by an ORM listener).
    The only deletions are those of invoice-sourced rows when their invoice
    is edited, cancelled or deleted.

    Transfers are written as two rows sharing transfer_group_id: the source
    leg carries destination_warehouse_id, the destination leg does not.
    """
    __tablename__ = "stock_movements"

    id = db.Column(db.Integer, primary_key=True)

    parish_id = db.Column(db.Integer, db.ForeignKey("parishes.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # in | out | transfer | adjustment | return
    type = db.Column(db.String(16), nullable=False, index=True)

    movement_date = db.Column(db.Date, nullable=False, index=True)

    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    unit_cost = db.Column(db.Numeric(14, 4), nullable=True)
    total_value = db.Column(db.Numeric(14, 2), nullable=True)

    # Provenance. invoice_id is not a foreign key; a deleted
    # invoice whose reversal failed must still be traceable from its rows.
    invoice_id = db.Column(db.Integer, nullable=True, index=True)
    invoice_item_index = db.Column(db.Integer, nullable=True)
    document_type = db.Column(db.String(50), nullable=True)
    document_number = db.Column(db.String(50), nullable=True)
    document_date = db.Column(db.Date, nullable=True)
    client_id = db.Column(db.Integer, nullable=True, index=True)

    destination_warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=True)
    transfer_group_id = db.Column(db.String(36), nullable=True, index=True)

    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    warehouse = db.relationship("Warehouse", foreign_keys=[warehouse_id])
    destination_warehouse = db.relationship("Warehouse", foreign_keys=[destination_warehouse_id])
    product = db.relationship("Product")

    __table_args__ = (
        db.Index("ix_stockmv_warehouse_product_date", "warehouse_id", "product_id", "movement_date"),
        db.Index("ix_stockmv_invoice_line", "invoice_id", "invoice_item_index"),
        db.CheckConstraint("quantity >= 0", name="ck_stockmv_quantity_non_negative"),
        db.CheckConstraint(
            "type IN ('in', 'out', 'transfer', 'adjustment', 'return')",
            name="ck_stockmv_type",
        ),
        {"sqlite_autoincrement": True},
    )

    @classmethod
    def signed_sum(cls, column):
        """
        SQL expression: COALESCE(SUM(<sign> * column), 0) using movement_sign().

        column may be quantity or total_value (NULL values count as 0).
        """
        column = func.coalesce(column, 0)
        whens = []
        for movement_type in MovementType:
            source_sign = movement_sign(movement_type, has_destination=True)
            inbound_sign = movement_sign(movement_type, has_destination=False)
            if source_sign == inbound_sign:
                whens.append((cls.type == movement_type.value, column * source_sign))
            else:
                whens.append((
                    and_(cls.type == movement_type.value, cls.destination_warehouse_id.isnot(None)),
                    column * source_sign,
                ))
                whens.append((cls.type == movement_type.value, column * inbound_sign))
        return func.coalesce(func.sum(case(*whens, else_=0)), 0)

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} type={self.type} warehouse_id={self.warehouse_id} "
            f"product_id={self.product_id} quantity={self.quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "parish_id": self.parish_id,
            "warehouse_id": self.warehouse_id,
            "product_id": self.product_id,
            "type": self.type,
            "movement_date": to_iso_date(self.movement_date),
            "quantity": to_str(self.quantity),
            "unit_cost": to_str(self.unit_cost),
            "total_value": to_str(self.total_value),
            "invoice_id": self.invoice_id,
            "invoice_item_index": self.invoice_item_index,
            "document_type": self.document_type,
            "document_number": self.document_number,
            "document_date": to_iso_date(self.document_date),
            "client_id": self.client_id,
            "destination_warehouse_id": self.destination_warehouse_id,
            "transfer_group_id": self.transfer_group_id,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class StockLock(db.Model):
    """
    One row per (warehouse, product) pair, used only as a SELECT ... FOR UPDATE
    target so that validate-then-insert of depleting movements is serialized
    per pair. Holds no quantity.
    """
    __tablename__ = "stock_locks"
    __table_args__ = (
        db.UniqueConstraint("warehouse_id", "product_id", name="uq_stock_locks_warehouse_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

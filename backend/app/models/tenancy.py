from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z

class Parish(db.Model):
    """
    Tenant root: every warehouse, movement and inventory session belongs to a parish.
    """
    __tablename__ = "parishes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Parish id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }

class Warehouse(db.Model):
    """
    Storage location within a parish.

    Movements reference exactly one warehouse (where the quantity changes);
    the outbound leg of a transfer additionally names a destination warehouse.
    Names and codes are unique within a parish, not globally.
    """
    __tablename__ = "warehouses"
    __table_args__ = (
        db.UniqueConstraint("parish_id", "name", name="uq_warehouses_parish_name"),
        db.UniqueConstraint("parish_id", "code", name="uq_warehouses_parish_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    parish_id = db.Column(db.Integer, db.ForeignKey("parishes.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    parish = db.relationship("Parish", backref=db.backref("warehouses", lazy=True))

    def __repr__(self) -> str:
        return f"<Warehouse id={self.id} name={self.name!r} parish_id={self.parish_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "parish_id": self.parish_id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }

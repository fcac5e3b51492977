"""Stock ledger schema: parishes, warehouses, products, stock movements,
stock locks, invoices and inventory sessions

Revision ID: 20261019_stock_ledger
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_stock_ledger"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(*names):
    return [
        sa.Column(name, sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False)
        for name in names
    ]


def upgrade():
    op.create_table(
        "parishes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        *_timestamps("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code", name="uq_parishes_code"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("parishes", schema=None) as batch_op:
        batch_op.create_index("ix_parishes_is_active", ["is_active"], unique=False)

    op.create_table(
        "warehouses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("parish_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("code", sa.String(32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        *_timestamps("created_at"),
        sa.ForeignKeyConstraint(["parish_id"], ["parishes.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("parish_id", "name", name="uq_warehouses_parish_name"),
        sa.UniqueConstraint("parish_id", "code", name="uq_warehouses_parish_code"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("warehouses", schema=None) as batch_op:
        batch_op.create_index("ix_warehouses_parish_id", ["parish_id"], unique=False)
        batch_op.create_index("ix_warehouses_code", ["code"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("parish_id", sa.Integer(), nullable=True),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("unit", sa.String(16), nullable=False, server_default="pcs"),
        sa.Column("tracks_stock", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("min_stock", sa.Numeric(14, 3), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        *_timestamps("created_at", "updated_at"),
        sa.ForeignKeyConstraint(["parish_id"], ["parishes.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("parish_id", "code", name="uq_products_parish_code"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_parish_id", ["parish_id"], unique=False)
        batch_op.create_index("ix_products_parish_name", ["parish_id", "name"], unique=False)

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("parish_id", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("movement_date", sa.Date(), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 3), nullable=False),
        sa.Column("unit_cost", sa.Numeric(14, 4), nullable=True),
        sa.Column("total_value", sa.Numeric(14, 2), nullable=True),
        sa.Column("invoice_id", sa.Integer(), nullable=True),
        sa.Column("invoice_item_index", sa.Integer(), nullable=True),
        sa.Column("document_type", sa.String(50), nullable=True),
        sa.Column("document_number", sa.String(50), nullable=True),
        sa.Column("document_date", sa.Date(), nullable=True),
        sa.Column("client_id", sa.Integer(), nullable=True),
        sa.Column("destination_warehouse_id", sa.Integer(), nullable=True),
        sa.Column("transfer_group_id", sa.String(36), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        *_timestamps("created_at"),
        sa.ForeignKeyConstraint(["parish_id"], ["parishes.id"]),
        sa.ForeignKeyConstraint(["warehouse_id"], ["warehouses.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["destination_warehouse_id"], ["warehouses.id"]),
        sa.CheckConstraint("quantity >= 0", name="ck_stockmv_quantity_non_negative"),
        sa.CheckConstraint(
            "type IN ('in', 'out', 'transfer', 'adjustment', 'return')",
            name="ck_stockmv_type",
        ),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_movements", schema=None) as batch_op:
        batch_op.create_index("ix_stock_movements_parish_id", ["parish_id"], unique=False)
        batch_op.create_index("ix_stock_movements_warehouse_id", ["warehouse_id"], unique=False)
        batch_op.create_index("ix_stock_movements_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_stock_movements_type", ["type"], unique=False)
        batch_op.create_index("ix_stock_movements_movement_date", ["movement_date"], unique=False)
        batch_op.create_index("ix_stock_movements_invoice_id", ["invoice_id"], unique=False)
        batch_op.create_index("ix_stock_movements_client_id", ["client_id"], unique=False)
        batch_op.create_index("ix_stock_movements_transfer_group_id", ["transfer_group_id"], unique=False)
        batch_op.create_index(
            "ix_stockmv_warehouse_product_date", ["warehouse_id", "product_id", "movement_date"], unique=False
        )
        batch_op.create_index("ix_stockmv_invoice_line", ["invoice_id", "invoice_item_index"], unique=False)

    op.create_table(
        "stock_locks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        *_timestamps("created_at"),
        sa.ForeignKeyConstraint(["warehouse_id"], ["warehouses.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("warehouse_id", "product_id", name="uq_stock_locks_warehouse_product"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("parish_id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=True),
        sa.Column("invoice_number", sa.String(50), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="draft"),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        *_timestamps("created_at", "updated_at"),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["parish_id"], ["parishes.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("invoices", schema=None) as batch_op:
        batch_op.create_index("ix_invoices_parish_id", ["parish_id"], unique=False)
        batch_op.create_index("ix_invoices_client_id", ["client_id"], unique=False)
        batch_op.create_index("ix_invoices_status", ["status"], unique=False)
        batch_op.create_index("ix_invoices_parish_date", ["parish_id", "date"], unique=False)

    op.create_table(
        "inventory_sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("parish_id", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="open"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("adjustments_created", sa.Integer(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("completed_by_user_id", sa.Integer(), nullable=True),
        *_timestamps("created_at"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["parish_id"], ["parishes.id"]),
        sa.ForeignKeyConstraint(["warehouse_id"], ["warehouses.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_sessions", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_sessions_parish_id", ["parish_id"], unique=False)
        batch_op.create_index("ix_inventory_sessions_warehouse_id", ["warehouse_id"], unique=False)
        batch_op.create_index("ix_inventory_sessions_status", ["status"], unique=False)

    op.create_table(
        "inventory_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("session_id", sa.Integer(), nullable=False),
        sa.Column("item_type", sa.String(16), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("fixed_asset_id", sa.Integer(), nullable=True),
        sa.Column("unit", sa.String(16), nullable=True),
        sa.Column("book_quantity", sa.Numeric(14, 3), nullable=True),
        sa.Column("physical_quantity", sa.Numeric(14, 3), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps("created_at", "updated_at"),
        sa.ForeignKeyConstraint(["session_id"], ["inventory_sessions.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_items", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_items_session_id", ["session_id"], unique=False)
        batch_op.create_index("ix_inventory_items_session_product", ["session_id", "product_id"], unique=False)


def downgrade():
    op.drop_table("inventory_items")
    op.drop_table("inventory_sessions")
    op.drop_table("invoices")
    op.drop_table("stock_locks")
    op.drop_table("stock_movements")
    op.drop_table("products")
    op.drop_table("warehouses")
    op.drop_table("parishes")

"""add cart lines, per-farm orders and direct sales

Revision ID: 20261012_0002
Revises: 20261012_0001
Create Date: 2026-10-12 09:30:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261012_0002"
down_revision: Union[str, None] = "20261012_0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _index_exists(inspector: sa.Inspector, table_name: str, index_name: str) -> bool:
    return index_name in {index["name"] for index in inspector.get_indexes(table_name)}


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not _table_exists(inspector, "cart_lines"):
        op.create_table(
            "cart_lines",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("customer_id", sa.String(length=36), nullable=False),
            sa.Column("store_product_id", sa.String(length=36), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("added_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.ForeignKeyConstraint(["customer_id"], ["users.id"], name="fk_cart_lines_customer_id_users"),
            sa.ForeignKeyConstraint(
                ["store_product_id"],
                ["store_products.id"],
                name="fk_cart_lines_store_product_id_store_products",
            ),
            sa.PrimaryKeyConstraint("id", name="pk_cart_lines"),
            sa.UniqueConstraint("customer_id", "store_product_id", name="uq_cart_lines_customer_store_product"),
        )

    if not _table_exists(inspector, "orders"):
        op.create_table(
            "orders",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("customer_id", sa.String(length=36), nullable=False),
            sa.Column("farm_id", sa.String(length=36), nullable=False),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="pending"),
            sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("delivery_fee", sa.Numeric(12, 2), nullable=True),
            sa.Column("final_amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("customer_phone", sa.String(length=40), nullable=False),
            sa.Column("delivery_address", sa.String(length=500), nullable=False),
            sa.Column("notes", sa.String(length=500), nullable=True),
            sa.Column("cancellation_reason", sa.String(length=500), nullable=True),
            sa.Column("courier_contact", sa.String(length=255), nullable=True),
            sa.Column("courier_ref_id", sa.String(length=100), nullable=True),
            sa.Column("payment_info", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.CheckConstraint(
                "delivery_fee IS NULL OR delivery_fee >= 0",
                name="ck_orders_delivery_fee_non_negative",
            ),
            sa.ForeignKeyConstraint(["customer_id"], ["users.id"], name="fk_orders_customer_id_users"),
            sa.ForeignKeyConstraint(["farm_id"], ["farms.id"], name="fk_orders_farm_id_farms"),
            sa.PrimaryKeyConstraint("id", name="pk_orders"),
        )

    if not _table_exists(inspector, "order_items"):
        op.create_table(
            "order_items",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("order_id", sa.String(length=36), nullable=False),
            sa.Column("store_product_id", sa.String(length=36), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
            sa.Column("line_total", sa.Numeric(12, 2), nullable=False),
            sa.Column("product_name", sa.String(length=255), nullable=False),
            sa.Column("category", sa.String(length=100), nullable=True),
            sa.Column("unit", sa.String(length=30), nullable=True),
            sa.ForeignKeyConstraint(["order_id"], ["orders.id"], name="fk_order_items_order_id_orders"),
            sa.ForeignKeyConstraint(
                ["store_product_id"],
                ["store_products.id"],
                name="fk_order_items_store_product_id_store_products",
            ),
            sa.PrimaryKeyConstraint("id", name="pk_order_items"),
        )

    if not _table_exists(inspector, "sales"):
        op.create_table(
            "sales",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("farm_id", sa.String(length=36), nullable=False),
            sa.Column("product_id", sa.String(length=36), nullable=False),
            sa.Column("product_name", sa.String(length=255), nullable=True),
            sa.Column("product_batch_id", sa.String(length=36), nullable=True),
            sa.Column("product_batch_name", sa.String(length=255), nullable=True),
            sa.Column("quantity_sold", sa.Integer(), nullable=False),
            sa.Column("price_per_unit", sa.Numeric(12, 2), nullable=False),
            sa.Column("unit_cost", sa.Numeric(12, 2), nullable=False),
            sa.Column("avg_expense_per_unit", sa.Numeric(14, 4), nullable=False),
            sa.Column("total_cost_per_unit", sa.Numeric(14, 4), nullable=False),
            sa.Column("profit_per_unit", sa.Numeric(14, 4), nullable=False),
            sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("profit", sa.Numeric(12, 2), nullable=False),
            sa.Column("sale_date", sa.DateTime(timezone=True), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.ForeignKeyConstraint(["farm_id"], ["farms.id"], name="fk_sales_farm_id_farms"),
            sa.PrimaryKeyConstraint("id", name="pk_sales"),
        )

    inspector = sa.inspect(bind)
    indexes = [
        ("cart_lines", "ix_cart_lines_customer_id", ["customer_id"]),
        ("cart_lines", "ix_cart_lines_store_product_id", ["store_product_id"]),
        ("orders", "ix_orders_customer_id", ["customer_id"]),
        ("orders", "ix_orders_farm_id", ["farm_id"]),
        ("orders", "ix_orders_customer_created_at", ["customer_id", "created_at"]),
        ("orders", "ix_orders_farm_status_created_at", ["farm_id", "status", "created_at"]),
        ("order_items", "ix_order_items_order_id", ["order_id"]),
        ("order_items", "ix_order_items_store_product_id", ["store_product_id"]),
        ("sales", "ix_sales_farm_id", ["farm_id"]),
        ("sales", "ix_sales_product_id", ["product_id"]),
        ("sales", "ix_sales_farm_sale_date", ["farm_id", "sale_date"]),
    ]
    for table_name, index_name, columns in indexes:
        if _table_exists(inspector, table_name) and not _index_exists(inspector, table_name, index_name):
            op.create_index(index_name, table_name, columns, unique=False)


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    for table_name in ("sales", "order_items", "orders", "cart_lines"):
        if _table_exists(inspector, table_name):
            op.drop_table(table_name)

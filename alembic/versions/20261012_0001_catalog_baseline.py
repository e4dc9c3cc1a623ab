"""catalog baseline: farms, users, batches, products, listings, expenses

Revision ID: 20261012_0001
Revises:
Create Date: 2026-10-12 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261012_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _index_exists(inspector: sa.Inspector, table_name: str, index_name: str) -> bool:
    return index_name in {index["name"] for index in inspector.get_indexes(table_name)}


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def _updated_at() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not _table_exists(inspector, "farms"):
        op.create_table(
            "farms",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            _created_at(),
            sa.PrimaryKeyConstraint("id", name="pk_farms"),
        )

    if not _table_exists(inspector, "users"):
        op.create_table(
            "users",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("full_name", sa.String(length=100), nullable=True),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="customer"),
            sa.Column("farm_id", sa.String(length=36), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
            sa.ForeignKeyConstraint(["farm_id"], ["farms.id"], name="fk_users_farm_id_farms"),
            sa.PrimaryKeyConstraint("id", name="pk_users"),
            sa.UniqueConstraint("email", name="uq_users_email"),
        )

    if not _table_exists(inspector, "product_batches"):
        op.create_table(
            "product_batches",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("farm_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            _created_at(),
            sa.ForeignKeyConstraint(["farm_id"], ["farms.id"], name="fk_product_batches_farm_id_farms"),
            sa.PrimaryKeyConstraint("id", name="pk_product_batches"),
        )

    if not _table_exists(inspector, "products"):
        op.create_table(
            "products",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("farm_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("category", sa.String(length=100), nullable=True),
            sa.Column("unit", sa.String(length=30), nullable=True),
            sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
            sa.Column("total_value", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("product_batch_id", sa.String(length=36), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="unsold"),
            _created_at(),
            _updated_at(),
            sa.CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),
            sa.ForeignKeyConstraint(["farm_id"], ["farms.id"], name="fk_products_farm_id_farms"),
            sa.ForeignKeyConstraint(
                ["product_batch_id"],
                ["product_batches.id"],
                name="fk_products_product_batch_id_product_batches",
            ),
            sa.PrimaryKeyConstraint("id", name="pk_products"),
        )

    if not _table_exists(inspector, "store_products"):
        op.create_table(
            "store_products",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("product_id", sa.String(length=36), nullable=False),
            sa.Column("farm_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("category", sa.String(length=100), nullable=True),
            sa.Column("unit", sa.String(length=30), nullable=True),
            sa.Column("selling_price", sa.Numeric(12, 2), nullable=False),
            sa.Column("available_stock", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.false()),
            _created_at(),
            _updated_at(),
            sa.CheckConstraint("available_stock >= 0", name="ck_store_products_available_stock_non_negative"),
            sa.ForeignKeyConstraint(["farm_id"], ["farms.id"], name="fk_store_products_farm_id_farms"),
            sa.ForeignKeyConstraint(["product_id"], ["products.id"], name="fk_store_products_product_id_products"),
            sa.PrimaryKeyConstraint("id", name="pk_store_products"),
        )

    if not _table_exists(inspector, "expenses"):
        op.create_table(
            "expenses",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("farm_id", sa.String(length=36), nullable=False),
            sa.Column("product_batch_id", sa.String(length=36), nullable=True),
            sa.Column("category", sa.String(length=50), nullable=True),
            sa.Column("amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("note", sa.String(length=255), nullable=True),
            _created_at(),
            sa.ForeignKeyConstraint(["farm_id"], ["farms.id"], name="fk_expenses_farm_id_farms"),
            sa.ForeignKeyConstraint(
                ["product_batch_id"],
                ["product_batches.id"],
                name="fk_expenses_product_batch_id_product_batches",
            ),
            sa.PrimaryKeyConstraint("id", name="pk_expenses"),
        )

    inspector = sa.inspect(bind)
    indexes = [
        ("users", "ix_users_email", ["email"]),
        ("users", "ix_users_farm_id", ["farm_id"]),
        ("product_batches", "ix_product_batches_farm_id", ["farm_id"]),
        ("products", "ix_products_farm_id", ["farm_id"]),
        ("products", "ix_products_product_batch_id", ["product_batch_id"]),
        ("products", "ix_products_farm_created_at", ["farm_id", "created_at"]),
        ("store_products", "ix_store_products_product_id", ["product_id"]),
        ("store_products", "ix_store_products_farm_id", ["farm_id"]),
        ("store_products", "ix_store_products_farm_published", ["farm_id", "is_published"]),
        ("expenses", "ix_expenses_farm_id", ["farm_id"]),
        ("expenses", "ix_expenses_product_batch_id", ["product_batch_id"]),
        ("expenses", "ix_expenses_farm_created_at", ["farm_id", "created_at"]),
    ]
    for table_name, index_name, columns in indexes:
        if _table_exists(inspector, table_name) and not _index_exists(inspector, table_name, index_name):
            op.create_index(index_name, table_name, columns, unique=False)

    if not _index_exists(inspector, "users", "ux_users_email_lower"):
        op.create_index("ux_users_email_lower", "users", [sa.text("lower(email)")], unique=True)


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    for table_name in ("expenses", "store_products", "products", "product_batches", "users", "farms"):
        if _table_exists(inspector, table_name):
            op.drop_table(table_name)

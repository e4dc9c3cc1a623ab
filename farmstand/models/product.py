from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from farmstand.core.id_utils import generate_shortuuid
from farmstand.db.base import Base

PRODUCT_STATUS_UNSOLD = "unsold"
PRODUCT_STATUS_SOLD = "sold"


class ProductBatch(Base):
    """Groups farm products and expenses for cost allocation; holds no numbers of its own."""

    __tablename__ = "product_batches"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_shortuuid)
    farm_id: Mapped[str] = mapped_column(String(36), ForeignKey("farms.id"), index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Product(Base):
    """Farm-held physical stock, tracked separately from the storefront listing."""

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_shortuuid)
    farm_id: Mapped[str] = mapped_column(String(36), ForeignKey("farms.id"), index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    unit: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0, server_default="0")
    product_batch_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("product_batches.id"), nullable=True, index=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PRODUCT_STATUS_UNSOLD, server_default=PRODUCT_STATUS_UNSOLD
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="quantity_non_negative"),
        Index("ix_products_farm_created_at", "farm_id", "created_at"),
    )


class StoreProduct(Base):
    """Storefront listing; available_stock is the only reservable inventory."""

    __tablename__ = "store_products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_shortuuid)
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), index=True)
    farm_id: Mapped[str] = mapped_column(String(36), ForeignKey("farms.id"), index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    unit: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    selling_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    available_stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        CheckConstraint("available_stock >= 0", name="available_stock_non_negative"),
        Index("ix_store_products_farm_published", "farm_id", "is_published"),
    )

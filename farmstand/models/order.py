from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import JSON, CheckConstraint, DateTime, ForeignKey, Index, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from farmstand.db.base import Base


class Order(Base):
    """One farm's share of a checkout. Mutated only through status transitions."""

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    customer_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), index=True)
    farm_id: Mapped[str] = mapped_column(String(36), ForeignKey("farms.id"), index=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="pending", server_default="pending")

    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    delivery_fee: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    final_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    customer_phone: Mapped[str] = mapped_column(String(40), nullable=False)
    delivery_address: Mapped[str] = mapped_column(String(500), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    cancellation_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    courier_contact: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    courier_ref_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    payment_info: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        CheckConstraint("delivery_fee IS NULL OR delivery_fee >= 0", name="delivery_fee_non_negative"),
        Index("ix_orders_customer_created_at", "customer_id", "created_at"),
        Index("ix_orders_farm_status_created_at", "farm_id", "status", "created_at"),
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("orders.id"), index=True)
    store_product_id: Mapped[str] = mapped_column(String(36), ForeignKey("store_products.id"), index=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    line_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Snapshot of the listing at order time; listings can be renamed or repriced later.
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    unit: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

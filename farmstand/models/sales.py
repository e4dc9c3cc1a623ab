from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from farmstand.db.base import Base


class Sale(Base):
    """A direct farm sale recorded by a farm manager, outside the storefront."""

    __tablename__ = "sales"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    farm_id: Mapped[str] = mapped_column(String(36), ForeignKey("farms.id"), index=True)
    # No FK: a sale may outlive its product, and reversal must still be able to delete it.
    product_id: Mapped[str] = mapped_column(String(36), index=True)
    product_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    product_batch_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    product_batch_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    quantity_sold: Mapped[int] = mapped_column(Integer, nullable=False)
    price_per_unit: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    avg_expense_per_unit: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    total_cost_per_unit: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    profit_per_unit: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    profit: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    sale_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_sales_farm_sale_date", "farm_id", "sale_date"),
    )

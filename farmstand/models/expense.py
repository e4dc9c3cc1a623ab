from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from farmstand.core.id_utils import generate_shortuuid
from farmstand.db.base import Base


class ExpenseRecord(Base):
    __tablename__ = "expenses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_shortuuid)
    farm_id: Mapped[str] = mapped_column(String(36), ForeignKey("farms.id"), index=True)
    product_batch_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("product_batches.id"), nullable=True, index=True
    )

    category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)  # feed, labor, transport...
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_expenses_farm_created_at", "farm_id", "created_at"),
    )

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from farmstand.core.id_utils import generate_shortuuid
from farmstand.db.base import Base


class CartLine(Base):
    __tablename__ = "cart_lines"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_shortuuid)
    customer_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), index=True)
    store_product_id: Mapped[str] = mapped_column(String(36), ForeignKey("store_products.id"), index=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("customer_id", "store_product_id", name="uq_cart_lines_customer_store_product"),
    )

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from farmstand.schemas.common import PaginationMeta


class SaleCreate(BaseModel):
    product_id: str = Field(min_length=1)
    farm_id: str = Field(min_length=1)
    quantity_sold: int = Field(gt=0)
    price_per_unit: Decimal = Field(gt=0)
    sale_date: Optional[datetime] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "product_id": "product-id-here",
                "farm_id": "farm-id-here",
                "quantity_sold": 10,
                "price_per_unit": 25.0,
            }
        }
    )


class SaleOut(BaseModel):
    id: str
    farm_id: str
    product_id: str
    product_name: Optional[str] = None
    product_batch_id: Optional[str] = None
    product_batch_name: Optional[str] = None
    quantity_sold: int
    price_per_unit: float
    unit_cost: float
    avg_expense_per_unit: float
    total_cost_per_unit: float
    profit_per_unit: float
    total_amount: float
    profit: float
    sale_date: datetime
    created_at: datetime | None = None


class SaleListOut(BaseModel):
    pagination: PaginationMeta
    start_date: date | None = None
    end_date: date | None = None
    product_id: str | None = None
    product_batch_id: str | None = None
    items: list[SaleOut]


class SaleReverseOut(BaseModel):
    message: str
    sale_id: str
    product_id: str
    restored_quantity: int
    product_quantity: int
    product_status: str

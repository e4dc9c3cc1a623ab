from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from farmstand.schemas.common import PaginationMeta


class OrderItemIn(BaseModel):
    store_product_id: str = Field(min_length=1)
    quantity: int = Field(gt=0)


class OrderCreate(BaseModel):
    items: list[OrderItemIn]
    customer_phone: Optional[str] = None
    delivery_address: Optional[str] = None
    notes: Optional[str] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "items": [
                    {"store_product_id": "store-product-id-1", "quantity": 2},
                    {"store_product_id": "store-product-id-2", "quantity": 1},
                ],
                "customer_phone": "+2348000000000",
                "delivery_address": "12 Market Road, Ibadan",
                "notes": "Call on arrival",
            }
        }
    )


class OrderFromCartIn(BaseModel):
    customer_phone: Optional[str] = None
    delivery_address: Optional[str] = None
    notes: Optional[str] = None


class OrderStatusUpdateIn(BaseModel):
    status: str
    delivery_fee: Optional[Decimal] = None
    cancellation_reason: Optional[str] = None
    courier_contact: Optional[str] = None
    courier_ref_id: Optional[str] = None
    payment_info: Optional[dict[str, Any]] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "confirmed",
                "delivery_fee": 50.0,
            }
        }
    )


class DeliveryFeeIn(BaseModel):
    delivery_fee: Decimal = Field(ge=0)


class OrderCancelIn(BaseModel):
    reason: Optional[str] = None


class OrderItemOut(BaseModel):
    id: str
    store_product_id: str
    product_name: str
    category: Optional[str] = None
    unit: Optional[str] = None
    quantity: int
    unit_price: float
    line_total: float


class OrderOut(BaseModel):
    id: str
    customer_id: str
    farm_id: str
    status: str
    total_amount: float
    delivery_fee: float | None = None
    final_amount: float
    customer_phone: str
    delivery_address: str
    notes: str | None = None
    cancellation_reason: str | None = None
    courier_contact: str | None = None
    courier_ref_id: str | None = None
    payment_info: dict[str, Any] | None = None
    items: list[OrderItemOut] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


class FailedFarmOut(BaseModel):
    farm_id: str
    code: str
    message: str
    details: dict[str, Any] | None = None


class OrderCreateOut(BaseModel):
    message: str
    count: int
    orders: list[OrderOut]
    failed_farms: list[FailedFarmOut] = Field(default_factory=list)


class OrderListOut(BaseModel):
    pagination: PaginationMeta
    status: str | None = None
    items: list[OrderOut]

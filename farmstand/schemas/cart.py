from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CartLineIn(BaseModel):
    store_product_id: str = Field(min_length=1)
    quantity: int = Field(gt=0)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "store_product_id": "store-product-id-here",
                "quantity": 2,
            }
        }
    )


class CartLineQuantityIn(BaseModel):
    quantity: int = Field(gt=0)


class CartSyncIn(BaseModel):
    items: list[CartLineIn]

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "items": [
                    {"store_product_id": "store-product-id-1", "quantity": 2},
                    {"store_product_id": "store-product-id-2", "quantity": 1},
                ]
            }
        }
    )


class CartProductOut(BaseModel):
    id: str
    farm_id: str
    name: str
    category: Optional[str] = None
    unit: Optional[str] = None
    selling_price: float
    available_stock: int
    is_published: bool


class CartLineOut(BaseModel):
    id: str
    store_product_id: str
    quantity: int
    added_at: datetime | None = None
    product: CartProductOut | None = None


class CartLineMutationOut(BaseModel):
    message: str
    item: CartLineOut


class CartOut(BaseModel):
    count: int
    items: list[CartLineOut]


class CartClearOut(BaseModel):
    message: str
    removed: int

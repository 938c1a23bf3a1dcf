from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from constructmart.models.order import ORDER_STATUSES


class CartItemIn(BaseModel):
    product_uid: str
    variant_uid: Optional[str] = None
    quantity: int = Field(default=1, ge=1)


class CartItemUpdate(BaseModel):
    quantity: Optional[int] = Field(default=None, ge=1)
    is_saved_for_later: Optional[bool] = None


class OrderCreate(BaseModel):
    shipping_address_uid: str = Field(min_length=1)
    billing_address_uid: str = Field(min_length=1)
    payment_method: str = Field(min_length=1)
    shipping_method: Optional[str] = None
    special_instructions: Optional[str] = None
    is_gift: bool = False
    gift_message: Optional[str] = None
    coupon_code: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    status: str
    tracking_number: Optional[str] = None
    shipping_method: Optional[str] = None
    estimated_delivery_date: Optional[datetime] = None
    note: Optional[str] = None

    @field_validator("status")
    @classmethod
    def check_status(cls, v):
        if v not in ORDER_STATUSES:
            raise ValueError("Invalid status")
        return v

"""Orders domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...models import OrderPaymentStatus, OrderStatus


class OrderItemCreate(BaseModel):
    product_name: str = Field(..., min_length=1, max_length=255)
    unit_price: float = Field(..., gt=0)
    quantity: int = Field(1, ge=1)


class OrderCreate(BaseModel):
    items: list[OrderItemCreate]
    shipping_address: str

    @field_validator("items")
    @classmethod
    def validate_items(cls, v: list[OrderItemCreate]) -> list[OrderItemCreate]:
        if not v:
            raise ValueError("Order items are required")
        return v

    @field_validator("shipping_address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Address is required")
        return v.strip()


class OrderStatusUpdate(BaseModel):
    """Admin update; at least one field"""

    status: Optional[str] = None
    payment_status: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        value = v.upper()
        if value not in OrderStatus.ALL:
            raise ValueError(f"status must be one of {', '.join(OrderStatus.ALL)}")
        return value

    @field_validator("payment_status")
    @classmethod
    def validate_payment_status(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        value = v.upper()
        allowed = (
            OrderPaymentStatus.PENDING,
            OrderPaymentStatus.PAID,
            OrderPaymentStatus.FAILED,
            OrderPaymentStatus.REFUNDED,
        )
        if value not in allowed:
            raise ValueError(f"payment_status must be one of {', '.join(allowed)}")
        return value


class OrderItemResponse(BaseModel):
    id: int
    product_name: str
    unit_price: float
    quantity: int

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: int
    user_id: int
    total_amount: float
    status: str
    payment_status: str
    transaction_id: Optional[str] = None
    shipping_address: Optional[str] = None
    items: list[OrderItemResponse] = []
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

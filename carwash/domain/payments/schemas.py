"""Payments domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class PaymentInitiateRequest(BaseModel):
    """Pay for exactly one order or one appointment"""

    order_id: Optional[int] = None
    appointment_id: Optional[int] = None

    @model_validator(mode="after")
    def validate_single_target(self):
        if (self.order_id is None) == (self.appointment_id is None):
            raise ValueError("Provide exactly one of order_id or appointment_id")
        return self


class PaymentFormResponse(BaseModel):
    form_url: str
    fields: dict[str, str]


class PaymentCallbackRequest(BaseModel):
    """Server-to-server callback; some gateway integrations send 'encodedResponse'"""

    data: Optional[str] = None
    encodedResponse: Optional[str] = None

    @property
    def encoded(self) -> Optional[str]:
        return self.data or self.encodedResponse


class PaymentCallbackResponse(BaseModel):
    success: bool
    type: str
    entity_id: int
    already_processed: bool


class PaymentStatusRequest(BaseModel):
    transaction_uuid: str = Field(..., min_length=1)
    total_amount: float = Field(..., gt=0)


class PaymentStatusResponse(BaseModel):
    success: bool
    status: str
    ref_id: Optional[str] = None
    settled: bool = False
    already_processed: bool = False


class PaymentResponse(BaseModel):
    id: int
    user_id: int
    order_id: Optional[int] = None
    appointment_id: Optional[int] = None
    amount: float
    status: str
    method: str
    transaction_id: str
    gateway_reference: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

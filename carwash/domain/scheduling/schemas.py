"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import date as Date
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import AppointmentPaymentStatus, AppointmentStatus, PaymentType
from .time_slots import parse_bookable_slot


def _normalize_slot(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    return parse_bookable_slot(v).to_12h()


class AppointmentCreate(BaseModel):
    """Schema for booking a wash appointment"""

    service_id: int
    vehicle_id: int
    date: Date
    time_slot: str  # "14:30" or "2:30 PM"
    notes: Optional[str] = None
    payment_type: str = PaymentType.FULL
    payment_method: str = "ESEWA"

    @field_validator("time_slot")
    @classmethod
    def validate_time_slot(cls, v: str) -> str:
        return _normalize_slot(v)

    @field_validator("payment_type")
    @classmethod
    def validate_payment_type(cls, v: str) -> str:
        value = (v or "").upper()
        if value not in (PaymentType.FULL, PaymentType.HALF):
            raise ValueError("payment_type must be 'FULL' or 'HALF'")
        return value

    @field_validator("payment_method")
    @classmethod
    def validate_payment_method(cls, v: str) -> str:
        if (v or "").upper() != "ESEWA":
            raise ValueError("Only ESEWA payments are supported")
        return "ESEWA"


class AppointmentUpdate(BaseModel):
    """Schema for editing an appointment (owner or staff)"""

    service_id: Optional[int] = None
    vehicle_id: Optional[int] = None
    date: Optional[Date] = None
    time_slot: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = None
    staff_id: Optional[int] = None
    payment_status: Optional[str] = None

    @field_validator("time_slot")
    @classmethod
    def validate_time_slot(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_slot(v)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        value = v.upper()
        if value not in AppointmentStatus.ALL:
            raise ValueError(f"status must be one of {', '.join(AppointmentStatus.ALL)}")
        return value

    @field_validator("payment_status")
    @classmethod
    def validate_payment_status(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        value = v.upper()
        if value not in AppointmentPaymentStatus.ALL:
            raise ValueError(
                f"payment_status must be one of {', '.join(AppointmentPaymentStatus.ALL)}"
            )
        return value


class AppointmentResponse(BaseModel):
    id: int
    user_id: int
    service_id: int
    vehicle_id: int
    staff_id: Optional[int] = None
    date: Date
    time_slot: str
    status: str
    payment_status: str
    payment_type: str
    payment_method: str
    price: float
    notes: Optional[str] = None
    transaction_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AvailabilityResponse(BaseModel):
    date: str
    capacity: int
    timeSlotsCount: dict[str, int]
    fullyBooked: list[str]

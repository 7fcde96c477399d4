"""Catalog schemas - wash services and customer vehicles"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class ServiceCreate(BaseModel):
    name: str
    description: Optional[str] = None
    price: float
    duration_minutes: int = 30

    @field_validator("price")
    @classmethod
    def validate_price(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("price must be greater than 0")
        return v

    @field_validator("duration_minutes")
    @classmethod
    def validate_duration(cls, v: int) -> int:
        if v < 1:
            raise ValueError("duration_minutes must be at least 1")
        return v


class ServiceResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    price: float
    duration_minutes: int
    is_active: bool

    class Config:
        from_attributes = True


class VehicleCreate(BaseModel):
    make: str
    model: str
    plate_number: Optional[str] = None
    vehicle_type: Optional[str] = None


class VehicleResponse(BaseModel):
    id: int
    make: str
    model: str
    plate_number: Optional[str] = None
    vehicle_type: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

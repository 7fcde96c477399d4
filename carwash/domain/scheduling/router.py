"""Scheduling router - appointment booking and slot availability"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_staff
from ...database import get_db
from ...models import User
from ...realtime import RealtimePublisher, get_realtime_publisher
from .schemas import (
    AppointmentCreate,
    AppointmentResponse,
    AppointmentUpdate,
    AvailabilityResponse,
)
from .service import AppointmentService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Appointments"])


def get_appointment_service(
    db: Session = Depends(get_db),
    publisher: RealtimePublisher = Depends(get_realtime_publisher),
) -> AppointmentService:
    return AppointmentService(db, publisher)


@router.get("/availability", response_model=AvailabilityResponse)
async def get_availability(
    day: date = Query(..., alias="date"),
    service: AppointmentService = Depends(get_appointment_service),
):
    """
    Public endpoint: booked count per slot for one day.
    Slots are keyed by both "14:30" and "2:30 PM".
    """
    return service.get_availability(day)


@router.post("/appointments", response_model=AppointmentResponse, status_code=201)
async def create_appointment(
    body: AppointmentCreate,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.create_appointment(body, current_user)


@router.get("/appointments", response_model=list[AppointmentResponse])
async def get_my_appointments(
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.list_appointments(current_user)


@router.get("/admin/appointments", response_model=list[AppointmentResponse])
async def get_all_appointments(
    day: Optional[date] = Query(None, alias="date"),
    _staff: User = Depends(require_staff),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.list_all_appointments(day)


@router.get("/appointments/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.get_appointment(appointment_id, current_user)


@router.patch("/appointments/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    appointment_id: int,
    body: AppointmentUpdate,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Edit, move or cancel a booking"""
    return service.update_appointment(appointment_id, body, current_user)

"""Appointment service - booking, editing and cancelling with slot admission"""

import logging
from datetime import date, datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...errors import AdmissionRejected
from ...models import (
    Appointment,
    AppointmentPaymentStatus,
    AppointmentStatus,
    NotificationType,
    Role,
    User,
)
from ...realtime import RealtimePublisher
from ..catalog.repository import CatalogRepository
from ..notifications.relay import NotificationRelay
from .admission import AdmissionController
from .availability import SlotAvailabilityCounter
from .broadcaster import AvailabilityBroadcaster
from .repository import SchedulingRepository
from .schemas import AppointmentCreate, AppointmentUpdate
from .time_slots import TimeSlot

logger = logging.getLogger(__name__)

# Fields only staff may change
STAFF_FIELDS = ("staff_id", "payment_status")


def is_staff(user: User) -> bool:
    return user.role in (Role.ADMIN, Role.EMPLOYEE)


class AppointmentService:
    """Service layer for appointment business logic"""

    def __init__(self, db: Session, publisher: RealtimePublisher):
        self.db = db
        self.repo = SchedulingRepository()
        self.catalog = CatalogRepository()
        self.admission = AdmissionController(db)
        self.counter = SlotAvailabilityCounter(db)
        self.broadcaster = AvailabilityBroadcaster(db, publisher)
        self.relay = NotificationRelay(db, publisher)

    def get_availability(self, day: date) -> dict:
        snapshot = self.counter.snapshot(day)
        snapshot["fullyBooked"] = [
            slot.to_12h()
            for slot, count in sorted(self.counter.counts_by_slot(day).items())
            if count >= self.counter.capacity
        ]
        return snapshot

    def get_appointment(self, appointment_id: int, user: User) -> Appointment:
        appointment = self.repo.get_appointment(self.db, appointment_id)
        if not appointment or (appointment.user_id != user.id and not is_staff(user)):
            raise HTTPException(status_code=404, detail="Appointment not found")
        return appointment

    def list_appointments(self, user: User) -> list[Appointment]:
        return self.repo.get_user_appointments(self.db, user.id)

    def list_all_appointments(self, day: Optional[date] = None) -> list[Appointment]:
        return self.repo.get_all_appointments(self.db, day)

    def create_appointment(self, data: AppointmentCreate, user: User) -> Appointment:
        """Create a PENDING appointment if its slot has a free seat"""
        logger.info(f"📅 Booking request from user {user.id}: {data.date} {data.time_slot}")

        service = self.catalog.get_service(self.db, data.service_id)
        if not service or not service.is_active:
            raise HTTPException(status_code=404, detail="Service not found")
        vehicle = self.catalog.get_user_vehicle(self.db, data.vehicle_id, user.id)
        if not vehicle:
            raise HTTPException(status_code=404, detail="Vehicle not found")

        slot = TimeSlot.parse(data.time_slot)
        self._require_future(data.date, slot)

        appointment = Appointment(
            user_id=user.id,
            service_id=service.id,
            vehicle_id=vehicle.id,
            date=data.date,
            slot_minutes=slot.minutes,
            time_slot=slot.to_12h(),
            notes=data.notes,
            price=service.price,
            payment_type=data.payment_type,
            payment_method=data.payment_method,
            status=AppointmentStatus.PENDING,
            payment_status=AppointmentPaymentStatus.PENDING,
        )
        self.db.add(appointment)
        try:
            self.db.flush()
            self.admission.reserve_slot(data.date, slot, appointment.id)
            self.db.commit()
        except AdmissionRejected:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        logger.info(f"✅ Appointment {appointment.id} created for {slot.to_12h()} on {data.date}")
        self.broadcaster.publish(appointment.date)
        return appointment

    def update_appointment(
        self, appointment_id: int, data: AppointmentUpdate, user: User
    ) -> Appointment:
        """
        Apply an edit. Moving to another slot re-runs admission with the
        appointment's own seat excluded; cancelling frees the seat.
        """
        appointment = self.get_appointment(appointment_id, user)
        staff = is_staff(user)

        if not staff:
            if any(getattr(data, f) is not None for f in STAFF_FIELDS):
                raise HTTPException(status_code=403, detail="Only staff can change these fields")
            if data.status not in (None, AppointmentStatus.CANCELLED):
                raise HTTPException(status_code=403, detail="You can only cancel your booking")
            if appointment.status in (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED):
                raise HTTPException(
                    status_code=400, detail=f"Appointment is already {appointment.status.lower()}"
                )

        old_day = appointment.date
        old_status = appointment.status
        new_status = data.status or old_status
        new_day = data.date or appointment.date
        new_slot = (
            TimeSlot.parse(data.time_slot) if data.time_slot else TimeSlot(appointment.slot_minutes)
        )
        moved = new_day != appointment.date or new_slot.minutes != appointment.slot_minutes
        reactivated = (
            old_status == AppointmentStatus.CANCELLED and new_status != AppointmentStatus.CANCELLED
        )

        if moved or reactivated:
            self._require_future(new_day, new_slot)

        try:
            if new_status == AppointmentStatus.CANCELLED:
                self.admission.release(appointment.id)
            elif moved or reactivated:
                self.admission.reserve_slot(
                    new_day, new_slot, appointment.id, exclude_appointment_id=appointment.id
                )

            if data.service_id is not None and data.service_id != appointment.service_id:
                service = self.catalog.get_service(self.db, data.service_id)
                if not service or not service.is_active:
                    raise HTTPException(status_code=404, detail="Service not found")
                appointment.service_id = service.id
                appointment.price = service.price
            if data.vehicle_id is not None:
                vehicle = self.catalog.get_user_vehicle(
                    self.db, data.vehicle_id, appointment.user_id
                )
                if not vehicle:
                    raise HTTPException(status_code=404, detail="Vehicle not found")
                appointment.vehicle_id = vehicle.id
            if data.notes is not None:
                appointment.notes = data.notes
            if data.staff_id is not None:
                appointment.staff_id = data.staff_id
            if data.payment_status is not None:
                appointment.payment_status = data.payment_status

            appointment.date = new_day
            appointment.slot_minutes = new_slot.minutes
            appointment.time_slot = new_slot.to_12h()
            appointment.status = new_status

            if new_status != old_status and appointment.user_id != user.id:
                owner = self.db.query(User).filter(User.id == appointment.user_id).first()
                if owner:
                    self.relay.notify(
                        owner,
                        "Booking Status Updated",
                        f"Your booking on {appointment.date:%b %d, %Y} at {appointment.time_slot} "
                        f"is now {new_status.replace('_', ' ').lower()}.",
                        NotificationType.APPOINTMENT,
                    )

            self.db.commit()
        except (AdmissionRejected, HTTPException):
            self.db.rollback()
            self.relay.discard()
            raise

        self.db.refresh(appointment)
        logger.info(f"✏️ Appointment {appointment.id} updated by user {user.id}")

        self.relay.flush()
        if moved or new_status != old_status:
            self.broadcaster.publish(old_day, appointment.date)
        return appointment

    @staticmethod
    def _require_future(day: date, slot: TimeSlot) -> None:
        starts_at = datetime.combine(day, datetime.min.time()).replace(
            hour=slot.hour, minute=slot.minute
        )
        if starts_at <= datetime.now():
            raise HTTPException(status_code=400, detail="Cannot book a time slot in the past")

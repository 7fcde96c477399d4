"""Scheduling repository - Database operations for appointments and slot seats"""

from datetime import date
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ...models import Appointment, AppointmentPaymentStatus, AppointmentStatus, SlotReservation


class SchedulingRepository:
    """Repository for appointment and reservation database operations"""

    @staticmethod
    def get_appointment(db: Session, appointment_id: int) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .options(joinedload(Appointment.service), joinedload(Appointment.vehicle))
            .filter(Appointment.id == appointment_id)
            .first()
        )

    @staticmethod
    def get_user_appointments(db: Session, user_id: int) -> list[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.user_id == user_id)
            .order_by(Appointment.date.desc(), Appointment.slot_minutes.desc())
            .all()
        )

    @staticmethod
    def get_all_appointments(db: Session, day: Optional[date] = None) -> list[Appointment]:
        query = db.query(Appointment)
        if day:
            query = query.filter(Appointment.date == day)
        return query.order_by(Appointment.date.desc(), Appointment.slot_minutes).all()

    @staticmethod
    def count_by_slot(db: Session, day: date) -> dict[int, int]:
        """Occupied seats per slot (minutes since midnight) for one day"""
        rows = (
            db.query(SlotReservation.slot_minutes, func.count(SlotReservation.id))
            .filter(SlotReservation.date == day)
            .group_by(SlotReservation.slot_minutes)
            .all()
        )
        return {slot_minutes: count for slot_minutes, count in rows}

    @staticmethod
    def taken_seats(db: Session, day: date, slot_minutes: int) -> list[SlotReservation]:
        return (
            db.query(SlotReservation)
            .filter(SlotReservation.date == day, SlotReservation.slot_minutes == slot_minutes)
            .order_by(SlotReservation.seat)
            .all()
        )

    @staticmethod
    def get_reservation(db: Session, appointment_id: int) -> Optional[SlotReservation]:
        return (
            db.query(SlotReservation)
            .filter(SlotReservation.appointment_id == appointment_id)
            .first()
        )

    @staticmethod
    def latest_pending_payment_appointment(db: Session) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .filter(
                Appointment.payment_method == "ESEWA",
                Appointment.payment_status == AppointmentPaymentStatus.PENDING,
                Appointment.status != AppointmentStatus.CANCELLED,
            )
            .order_by(Appointment.created_at.desc(), Appointment.id.desc())
            .first()
        )

"""Admission controller - decides whether an appointment may take a time slot.

Each slot has SLOT_CAPACITY numbered seats. Admitting an appointment means
claiming a free seat row in slot_reservations; the unique (date, slot, seat)
constraint makes two concurrent claims for the same seat impossible, so the
loser retries the next seat and is rejected once none are left.
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import SLOT_CAPACITY
from ...errors import AdmissionRejected
from ...models import SlotReservation
from .availability import SlotAvailabilityCounter
from .repository import SchedulingRepository
from .time_slots import TimeSlot

logger = logging.getLogger(__name__)


class AdmissionController:
    def __init__(self, db: Session, capacity: int = SLOT_CAPACITY):
        self.db = db
        self.capacity = capacity
        self.repo = SchedulingRepository()
        self.counter = SlotAvailabilityCounter(db, capacity)

    def reserve_slot(
        self,
        day: date,
        slot: TimeSlot,
        appointment_id: int,
        exclude_appointment_id: Optional[int] = None,
    ) -> SlotReservation:
        """
        Claim a seat in (day, slot) for appointment_id.

        exclude_appointment_id is the appointment being edited: its own seat
        does not count against the target slot. An appointment that already
        holds a seat in the target slot keeps it.

        Raises AdmissionRejected when every seat is taken. Does not commit.
        """
        current = self.repo.get_reservation(self.db, appointment_id)
        if current and current.date == day and current.slot_minutes == slot.minutes:
            logger.debug(f"Appointment {appointment_id} already holds {slot} on {day}")
            return current

        free_seats = self.counter.free_seats(day, slot, appointment_id, exclude_appointment_id)
        return self.claim(day, slot, appointment_id, free_seats, current)

    def claim(
        self,
        day: date,
        slot: TimeSlot,
        appointment_id: int,
        free_seats: list[int],
        current: Optional[SlotReservation] = None,
    ) -> SlotReservation:
        """
        Take the first of free_seats that is still free when written. The list
        may be stale; a seat claimed meanwhile fails on the unique constraint.
        """
        for seat in free_seats:
            try:
                with self.db.begin_nested():
                    if current:
                        # Moving: re-point the existing seat row in one statement
                        current.date = day
                        current.slot_minutes = slot.minutes
                        current.seat = seat
                        reservation = current
                    else:
                        reservation = SlotReservation(
                            date=day,
                            slot_minutes=slot.minutes,
                            seat=seat,
                            appointment_id=appointment_id,
                        )
                        self.db.add(reservation)
                    self.db.flush()
            except IntegrityError:
                logger.info(f"🔁 Seat {seat} of {slot} on {day} was taken concurrently, trying next")
                continue

            logger.info(
                f"✅ Admitted appointment {appointment_id} to {slot.to_12h()} on {day} (seat {seat})"
            )
            return reservation

        occupied = self.counter.occupancy(day, slot, appointment_id)
        logger.warning(
            f"🚫 Slot {slot.to_12h()} on {day} is full ({occupied} of {self.capacity} seats held)"
        )
        raise AdmissionRejected(day, slot.to_12h(), self.capacity)

    def release(self, appointment_id: int) -> bool:
        """Free the appointment's seat. Does not commit."""
        reservation = self.repo.get_reservation(self.db, appointment_id)
        if not reservation:
            return False

        self.db.delete(reservation)
        self.db.flush()
        logger.info(
            f"🔓 Released seat {reservation.seat} of {TimeSlot(reservation.slot_minutes)} "
            f"on {reservation.date} (appointment {appointment_id})"
        )
        return True

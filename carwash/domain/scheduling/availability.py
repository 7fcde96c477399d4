"""Slot availability counter - occupancy per time slot for one day"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...config import SLOT_CAPACITY
from .repository import SchedulingRepository
from .time_slots import TimeSlot, slot_grid

logger = logging.getLogger(__name__)


class SlotAvailabilityCounter:
    """Counts non-cancelled appointments per slot from the reservation table"""

    def __init__(self, db: Session, capacity: int = SLOT_CAPACITY):
        self.db = db
        self.capacity = capacity
        self.repo = SchedulingRepository()

    def counts_by_slot(self, day: date) -> dict[TimeSlot, int]:
        counts = {slot: 0 for slot in slot_grid()}
        for slot_minutes, count in self.repo.count_by_slot(self.db, day).items():
            counts[TimeSlot(slot_minutes)] = count
        return counts

    def counts_for_date(self, day: date) -> dict[str, int]:
        """
        Count map keyed by both "14:30" and "2:30 PM" so callers using either
        format can look a slot up without converting.
        """
        published: dict[str, int] = {}
        for slot, count in sorted(self.counts_by_slot(day).items()):
            for key in slot.keys():
                published[key] = count
        return published

    def held_seats(
        self, day: date, slot: TimeSlot, *exclude_appointment_ids: Optional[int]
    ) -> set[int]:
        """Seat numbers held in (day, slot), ignoring the excluded appointments' seats"""
        return {
            r.seat
            for r in self.repo.taken_seats(self.db, day, slot.minutes)
            if r.appointment_id not in exclude_appointment_ids
        }

    def occupancy(
        self, day: date, slot: TimeSlot, exclude_appointment_id: Optional[int] = None
    ) -> int:
        return len(self.held_seats(day, slot, exclude_appointment_id))

    def free_seats(
        self, day: date, slot: TimeSlot, *exclude_appointment_ids: Optional[int]
    ) -> list[int]:
        held = self.held_seats(day, slot, *exclude_appointment_ids)
        return [seat for seat in range(1, self.capacity + 1) if seat not in held]

    def snapshot(self, day: date) -> dict:
        """Payload published to availability subscribers"""
        return {
            "date": day.isoformat(),
            "capacity": self.capacity,
            "timeSlotsCount": self.counts_for_date(day),
        }

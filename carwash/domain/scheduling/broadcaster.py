"""Real-time availability broadcaster"""

import logging
from datetime import date

from sqlalchemy.orm import Session

from ...errors import NotificationDeliveryFailed
from ...realtime import SLOT_AVAILABILITY_UPDATED, RealtimePublisher, get_availability_channel
from .availability import SlotAvailabilityCounter

logger = logging.getLogger(__name__)


class AvailabilityBroadcaster:
    """Publishes the full per-slot count snapshot of a day after it changes"""

    def __init__(self, db: Session, publisher: RealtimePublisher):
        self.counter = SlotAvailabilityCounter(db)
        self.publisher = publisher

    def publish(self, *days: date) -> None:
        """Best-effort: failures are logged, never raised"""
        for day in dict.fromkeys(days):
            if day is None:
                continue
            try:
                self.publisher.trigger(
                    get_availability_channel(day),
                    SLOT_AVAILABILITY_UPDATED,
                    self.counter.snapshot(day),
                )
            except NotificationDeliveryFailed as e:
                logger.warning(f"⚠️ Availability update for {day} not delivered: {e}")

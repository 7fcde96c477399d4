"""Time slot parsing and formatting.

Slots are stored as minutes since midnight. Callers may send either
"14:30" or "2:30 PM"; both normalize to the same TimeSlot.
"""

from dataclasses import dataclass
from datetime import datetime

from ...config import SLOT_CLOSING_TIME, SLOT_INTERVAL_MINUTES, SLOT_OPENING_TIME


class InvalidTimeSlot(ValueError):
    pass


@dataclass(frozen=True, order=True)
class TimeSlot:
    minutes: int

    @classmethod
    def parse(cls, raw: str) -> "TimeSlot":
        text = " ".join((raw or "").strip().upper().split())
        if not text:
            raise InvalidTimeSlot("Time slot is required")

        # Try 24h format first, then 12h ("2:30 PM" or "2:30PM")
        for fmt in ("%H:%M", "%I:%M %p", "%I:%M%p"):
            try:
                parsed = datetime.strptime(text, fmt).time()
                return cls(parsed.hour * 60 + parsed.minute)
            except ValueError:
                continue

        raise InvalidTimeSlot(f"Unrecognized time slot: {raw!r}")

    @property
    def hour(self) -> int:
        return self.minutes // 60

    @property
    def minute(self) -> int:
        return self.minutes % 60

    def to_24h(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"

    def to_12h(self) -> str:
        period = "AM" if self.hour < 12 else "PM"
        display_hour = self.hour % 12 or 12
        return f"{display_hour}:{self.minute:02d} {period}"

    def keys(self) -> tuple[str, str]:
        """Both textual forms this slot is published under"""
        return self.to_24h(), self.to_12h()

    def __str__(self) -> str:
        return self.to_24h()


def slot_grid(
    opening: str = SLOT_OPENING_TIME,
    closing: str = SLOT_CLOSING_TIME,
    interval: int = SLOT_INTERVAL_MINUTES,
) -> list[TimeSlot]:
    """All bookable slots of a day, opening to closing inclusive"""
    start = TimeSlot.parse(opening).minutes
    end = TimeSlot.parse(closing).minutes
    return [TimeSlot(m) for m in range(start, end + 1, interval)]


def parse_bookable_slot(raw: str) -> TimeSlot:
    """Parse a slot and require it to sit on the booking grid"""
    slot = TimeSlot.parse(raw)
    if slot not in slot_grid():
        raise InvalidTimeSlot(
            f"{slot.to_12h()} is not a bookable slot "
            f"({SLOT_OPENING_TIME}-{SLOT_CLOSING_TIME}, every {SLOT_INTERVAL_MINUTES} minutes)"
        )
    return slot

"""
Scheduling Domain

Appointment booking with per-slot capacity.

Structure:
- time_slots.py    TimeSlot value type, slot grid
- repository.py    Appointment and seat queries
- availability.py  Booked count per slot
- admission.py     Seat claiming under the unique (date, slot, seat) constraint
- broadcaster.py   availability-<date> channel updates
- service.py       Create / edit / cancel workflow
- router.py        /appointments, /availability
"""

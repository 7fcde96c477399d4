"""
Payments Domain

eSewa ePay v2 round trip for orders and appointments.

Structure:
- esewa.py        Form signing, callback decoding, status API client
- repository.py   Payment and target lookups
- coordinator.py  Idempotent settlement keyed by transaction reference
- router.py       /payments endpoints
"""

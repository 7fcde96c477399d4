"""
Domain errors for booking admission and payment settlement.

Request handlers map these onto HTTP responses (see main.py) or onto
failure redirects carrying a machine-readable reason code.
"""


class AdmissionRejected(Exception):
    """Raised when a time slot is already at capacity"""

    def __init__(self, date, time_slot: str, capacity: int):
        self.date = date
        self.time_slot = time_slot
        self.capacity = capacity
        super().__init__(f"Time slot {time_slot} on {date} is fully booked")


class PaymentCallbackError(Exception):
    """Base class for terminal payment callback failures"""

    reason = "server_error"
    status_code = 500

    def __init__(self, message: str = "", reason: str | None = None):
        if reason:
            self.reason = reason
        super().__init__(message or self.reason)


class CallbackMalformed(PaymentCallbackError):
    """Callback payload missing, undecodable, or missing required fields"""

    reason = "invalid_response"
    status_code = 400


class SignatureInvalid(PaymentCallbackError):
    """Callback signature does not match the shared-secret HMAC"""

    reason = "invalid_signature"
    status_code = 401


class PaymentNotCompleted(PaymentCallbackError):
    """Gateway reported a status other than COMPLETE"""

    reason = "payment_failed"
    status_code = 400

    def __init__(self, status: str):
        self.status = status
        super().__init__(f"Payment was not completed. Status: {status}")


class EntityResolutionFailed(PaymentCallbackError):
    """Callback cannot be matched to an order or appointment"""

    reason = "transaction_not_found"
    status_code = 404


class NotificationDeliveryFailed(Exception):
    """A real-time channel push failed; the stored notification remains"""

    def __init__(self, channel: str, cause: Exception):
        self.channel = channel
        self.cause = cause
        super().__init__(f"Delivery to {channel} failed: {cause}")


class StoreUnavailable(Exception):
    """The persistent store could not be reached"""

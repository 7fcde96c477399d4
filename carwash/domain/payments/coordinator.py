"""
Payment Round-Trip Coordinator

Builds the signed gateway form for an order or appointment, then settles the
gateway's response exactly once:

1. decode and validate the callback payload
2. verify the HMAC signature
3. require status COMPLETE
4. resolve the order or appointment the transaction belongs to
5. create the Payment, update the target and store notifications in one
   transaction keyed by the unique transaction reference
6. push notifications after commit (best-effort)
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union
from urllib.parse import urlencode

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import (
    ESEWA_ALLOW_PENDING_FALLBACK,
    FRONTEND_URL,
    PARTIAL_PAYMENT_THRESHOLD,
    PUBLIC_API_URL,
)
from ...errors import EntityResolutionFailed, PaymentCallbackError, PaymentNotCompleted
from ...models import (
    Appointment,
    AppointmentPaymentStatus,
    AppointmentStatus,
    NotificationType,
    Order,
    OrderPaymentStatus,
    OrderStatus,
    Payment,
    PaymentAttempt,
    PaymentType,
    Role,
    User,
)
from ...realtime import RealtimePublisher
from ..notifications.relay import NotificationRelay
from ..scheduling.repository import SchedulingRepository
from .esewa import (
    STATUS_COMPLETE,
    EsewaStatusClient,
    build_form_fields,
    decode_callback_payload,
    format_amount,
    parse_amount,
    signed_field_list,
    verify_callback_signature,
)
from .repository import PaymentRepository

logger = logging.getLogger(__name__)

ORDER = "order"
APPOINTMENT = "appointment"


@dataclass
class SettlementResult:
    entity_type: str
    entity_id: int
    payment: Payment
    already_processed: bool = False

    @property
    def redirect_url(self) -> str:
        if self.entity_type == ORDER:
            query = urlencode({"order_id": self.entity_id, "clear_cart": "true"})
            return f"{FRONTEND_URL}/dashboard/user/orders/success?{query}"
        query = urlencode({"payment_success": "true", "appointment_id": self.entity_id})
        return f"{FRONTEND_URL}/dashboard/user/bookings?{query}"

    def to_response(self) -> dict:
        return {
            "success": True,
            "type": self.entity_type,
            "entity_id": self.entity_id,
            "already_processed": self.already_processed,
        }


def failure_redirect_url(reason: str, status: Optional[str] = None) -> str:
    params = {"reason": reason}
    if status:
        params["status"] = status
    return f"{FRONTEND_URL}/dashboard/user/orders/failed?{urlencode(params)}"


def appointment_payment_status(appointment: Appointment, amount_paid: Optional[float]) -> str:
    """HALF when the booking was paid in half, or when the gateway paid visibly less"""
    if appointment.payment_type == PaymentType.HALF:
        return AppointmentPaymentStatus.HALF_PAID
    if amount_paid is not None and amount_paid < appointment.price * PARTIAL_PAYMENT_THRESHOLD:
        return AppointmentPaymentStatus.HALF_PAID
    return AppointmentPaymentStatus.PAID


def appointment_amount_due(appointment: Appointment) -> float:
    if appointment.payment_type == PaymentType.HALF:
        return round(appointment.price / 2)
    return appointment.price


Target = Union[Order, Appointment]


class PaymentCoordinator:
    def __init__(
        self,
        db: Session,
        publisher: RealtimePublisher,
        status_client: Optional[EsewaStatusClient] = None,
    ):
        self.db = db
        self.repo = PaymentRepository()
        self.relay = NotificationRelay(db, publisher)
        self.status_client = status_client or EsewaStatusClient()

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def initiate(
        self,
        user: User,
        order_id: Optional[int] = None,
        appointment_id: Optional[int] = None,
    ) -> dict[str, str]:
        """
        Issue a fresh transaction reference for the target and return the
        signed form fields. The reference is the link back from the callback.
        """
        target: Optional[Target]
        if order_id is not None:
            target = self.repo.get_order(self.db, order_id)
            label = "Order"
        else:
            target = self.repo.get_appointment(self.db, appointment_id)
            label = "Appointment"

        if not target or (target.user_id != user.id and user.role != Role.ADMIN):
            raise HTTPException(status_code=404, detail=f"{label} not found")

        if isinstance(target, Order):
            if target.payment_status == OrderPaymentStatus.PAID:
                raise HTTPException(status_code=400, detail="Order is already paid")
            if target.status == OrderStatus.CANCELED:
                raise HTTPException(status_code=400, detail="Order was canceled")
            amount = target.total_amount
        else:
            if target.payment_status != AppointmentPaymentStatus.PENDING:
                raise HTTPException(status_code=400, detail="Appointment is already paid")
            if target.status == AppointmentStatus.CANCELLED:
                raise HTTPException(status_code=400, detail="Appointment was cancelled")
            amount = appointment_amount_due(target)

        # The gateway rejects a reused transaction_uuid, so every attempt gets a new one.
        # Earlier references stay in payment_attempts: the customer may still pay through
        # a form opened before this one.
        transaction_uuid = str(uuid.uuid4())
        self.db.add(
            PaymentAttempt(
                transaction_uuid=transaction_uuid,
                order_id=target.id if isinstance(target, Order) else None,
                appointment_id=target.id if isinstance(target, Appointment) else None,
                amount=amount,
            )
        )
        target.transaction_id = transaction_uuid
        self.db.commit()

        fields = build_form_fields(
            amount,
            transaction_uuid,
            success_url=f"{PUBLIC_API_URL}/payments/success",
            failure_url=f"{PUBLIC_API_URL}/payments/failure",
        )
        logger.info(
            f"💳 eSewa payment initiated for {label.lower()} {target.id}: "
            f"Rs{fields['total_amount']} ({transaction_uuid})"
        )
        return fields

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def process_callback(self, encoded: Optional[str]) -> SettlementResult:
        """
        Full callback pipeline. Raises a PaymentCallbackError subclass on any
        terminal failure; nothing is written before the entity is resolved.
        """
        data = decode_callback_payload(encoded)
        logger.info(
            f"📥 eSewa callback: {data.get('transaction_uuid')} status={data.get('status')}"
        )
        verify_callback_signature(data)

        if data["status"] != STATUS_COMPLETE:
            logger.error(f"❌ Payment not complete: {data['status']}")
            raise PaymentNotCompleted(data["status"])

        return self.settle(data)

    def process_failure(self, encoded: Optional[str]) -> Optional[Order]:
        """
        Gateway failure redirect. Marks a matching order FAILED; appointments
        stay PENDING so the customer can retry.
        """
        try:
            data = decode_callback_payload(encoded)
        except PaymentCallbackError as e:
            logger.warning(f"⚠️ Failure redirect without usable data: {str(e)}")
            return None

        attempt = self.repo.get_attempt(self.db, data["transaction_uuid"])
        order = (
            attempt.order
            if attempt
            else self.repo.get_order_by_transaction(self.db, data["transaction_uuid"])
        )
        if order and order.payment_status == OrderPaymentStatus.PENDING:
            order.payment_status = OrderPaymentStatus.FAILED
            self.db.commit()
            logger.info(f"❌ Order {order.id} payment marked FAILED")
        return order

    def resolve_entity(self, data: dict) -> Target:
        transaction_uuid = data["transaction_uuid"]

        attempt = self.repo.get_attempt(self.db, transaction_uuid)
        if attempt:
            target = attempt.order or attempt.appointment
            if target:
                return target

        # References issued before attempts were recorded
        order = self.repo.get_order_by_transaction(self.db, transaction_uuid)
        if order:
            return order

        appointment = self.repo.get_appointment_by_transaction(self.db, transaction_uuid)
        if appointment:
            return appointment

        # An echoed booking id is only trusted when the gateway signed it
        payment_id = data.get("payment_id")
        if (
            payment_id is not None
            and str(payment_id).isdigit()
            and "payment_id" in signed_field_list(data)
        ):
            appointment = self.repo.get_appointment(self.db, int(payment_id))
            if appointment:
                return appointment

        if ESEWA_ALLOW_PENDING_FALLBACK:
            appointment = SchedulingRepository.latest_pending_payment_appointment(self.db)
            if appointment:
                logger.warning(
                    f"⚠️ Matched transaction {transaction_uuid} to the newest pending "
                    f"appointment {appointment.id} (ESEWA_ALLOW_PENDING_FALLBACK)"
                )
                return appointment

        logger.error(f"❌ No order or appointment for transaction {transaction_uuid}")
        raise EntityResolutionFailed(f"No order or appointment for transaction {transaction_uuid}")

    def settle(self, data: dict) -> SettlementResult:
        """
        Apply a COMPLETE payment exactly once. A replay returns the first
        outcome without changes or notifications.
        """
        transaction_uuid = data["transaction_uuid"]

        existing = self.repo.get_payment_by_transaction(self.db, transaction_uuid)
        if existing:
            logger.info(
                f"🔁 Transaction {transaction_uuid} already processed (payment {existing.id})"
            )
            return self._previous_outcome(existing)

        target = self.resolve_entity(data)
        amount_paid = parse_amount(data.get("total_amount"))

        try:
            if isinstance(target, Order):
                payment = self._settle_order(target, data, amount_paid)
            else:
                payment = self._settle_appointment(target, data, amount_paid)
            self.db.commit()
        except IntegrityError:
            # A concurrent delivery of the same callback won the insert
            self.db.rollback()
            self.relay.discard()
            existing = self.repo.get_payment_by_transaction(self.db, transaction_uuid)
            if existing is None:
                raise
            logger.info(f"🔁 Transaction {transaction_uuid} settled concurrently")
            return self._previous_outcome(existing)

        self.db.refresh(payment)
        logger.info(
            f"✅ Payment {payment.id} recorded: Rs{payment.amount} {payment.status} "
            f"({transaction_uuid})"
        )

        self.relay.flush()

        if isinstance(target, Order):
            return SettlementResult(ORDER, target.id, payment)
        return SettlementResult(APPOINTMENT, target.id, payment)

    def check_status(
        self, transaction_uuid: str, total_amount
    ) -> tuple[dict, Optional[SettlementResult]]:
        """
        Ask the gateway about a transaction and settle it if it completed.
        Used by the status endpoint and the reconciliation worker.
        """
        status_data = self.status_client.check_status(transaction_uuid, total_amount)
        status = status_data.get("status", "")
        logger.info(f"📊 eSewa status for {transaction_uuid}: {status}")

        if status != STATUS_COMPLETE:
            return status_data, None

        result = self.settle(
            {
                "transaction_uuid": transaction_uuid,
                "status": status,
                "total_amount": status_data.get("total_amount", total_amount),
                "transaction_code": status_data.get("ref_id"),
            }
        )
        return status_data, result

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def _settle_order(self, order: Order, data: dict, amount_paid: Optional[float]) -> Payment:
        amount = amount_paid if amount_paid is not None else order.total_amount
        owner = self._get_user(order.user_id)

        if order.status == OrderStatus.CANCELED or order.payment_status == OrderPaymentStatus.PAID:
            # Paid through a stale form, or after the order was cancelled
            payment = self._add_payment(
                order.user_id, data, amount, OrderPaymentStatus.PAID, order_id=order.id
            )
            self.db.flush()
            reason = "was cancelled" if order.status == OrderStatus.CANCELED else "was already paid"
            self._refund_required(owner, f"order #{order.id}", amount, reason)
            return payment

        order.transaction_id = data["transaction_uuid"]
        if round(amount, 2) < round(order.total_amount, 2):
            payment = self._add_payment(
                order.user_id, data, amount, OrderPaymentStatus.UNDERPAID, order_id=order.id
            )
            order.payment_status = OrderPaymentStatus.UNDERPAID
            self.db.flush()
            logger.warning(
                f"⚠️ Order {order.id} underpaid: Rs{format_amount(amount)} of "
                f"Rs{format_amount(order.total_amount)}"
            )
            self.relay.notify_admins(
                "Order Underpaid",
                f"Order #{order.id} received Rs{format_amount(amount)} but totals "
                f"Rs{format_amount(order.total_amount)}. Please follow up with the customer.",
                NotificationType.PAYMENT,
            )
            return payment

        payment = self._add_payment(
            order.user_id, data, amount, OrderPaymentStatus.PAID, order_id=order.id
        )

        order.payment_status = OrderPaymentStatus.PAID
        order.status = OrderStatus.PROCESSING
        self.db.flush()

        item_count = sum(item.quantity for item in order.items)
        customer_name = (owner.full_name if owner else None) or "A customer"

        if owner:
            self.relay.notify(
                owner,
                "Payment Successful",
                f"Your payment of Rs{format_amount(amount)} for the order has been received. "
                f"Your order is being processed.",
                NotificationType.PAYMENT,
            )
        self.relay.notify_admins(
            "New Order Payment",
            f"{customer_name} has paid Rs{format_amount(amount)} for {item_count} item(s). "
            f"Order #{order.id}.",
            NotificationType.PAYMENT,
        )
        self.relay.broadcast_to_admins(
            {
                "message": f"New order payment received: Rs{format_amount(amount)}",
                "orderId": order.id,
                "timestamp": datetime.utcnow().isoformat(),
            }
        )
        return payment

    def _settle_appointment(
        self, appointment: Appointment, data: dict, amount_paid: Optional[float]
    ) -> Payment:
        amount = amount_paid if amount_paid is not None else appointment_amount_due(appointment)
        status = appointment_payment_status(appointment, amount)
        owner = self._get_user(appointment.user_id)

        payment = self._add_payment(
            appointment.user_id, data, amount, status, appointment_id=appointment.id
        )

        if appointment.status == AppointmentStatus.CANCELLED:
            self.db.flush()
            self._refund_required(owner, f"booking #{appointment.id}", amount, "was cancelled")
            return payment
        if appointment.payment_status != AppointmentPaymentStatus.PENDING:
            self.db.flush()
            self._refund_required(owner, f"booking #{appointment.id}", amount, "was already paid")
            return payment

        appointment.transaction_id = data["transaction_uuid"]
        appointment.payment_status = status
        self.db.flush()

        service_name = appointment.service.name if appointment.service else "car wash"
        customer_name = (owner.full_name if owner else None) or "A customer"
        paid_label = "half payment" if status == AppointmentPaymentStatus.HALF_PAID else "payment"

        if owner:
            self.relay.notify(
                owner,
                "Payment Successful",
                f"Your {paid_label} of Rs{format_amount(amount)} for the {service_name} booking "
                f"has been received. We look forward to serving you!",
                NotificationType.PAYMENT,
            )
        self.relay.notify_admins(
            "New Booking Payment",
            f"{customer_name} has paid Rs{format_amount(amount)} for {service_name} on "
            f"{appointment.date:%b %d, %Y} at {appointment.time_slot}.",
            NotificationType.PAYMENT,
        )
        self.relay.broadcast_to_admins(
            {
                "message": f"New booking payment received: Rs{format_amount(amount)}",
                "appointmentId": appointment.id,
                "timestamp": datetime.utcnow().isoformat(),
            }
        )
        return payment

    def _add_payment(
        self,
        user_id: int,
        data: dict,
        amount: float,
        status: str,
        order_id: Optional[int] = None,
        appointment_id: Optional[int] = None,
    ) -> Payment:
        payment = Payment(
            user_id=user_id,
            order_id=order_id,
            appointment_id=appointment_id,
            amount=amount,
            status=status,
            method="ESEWA",
            transaction_id=data["transaction_uuid"],
            gateway_reference=data.get("transaction_code"),
        )
        self.db.add(payment)
        return payment

    def _refund_required(
        self, owner: Optional[User], label: str, amount: float, reason: str
    ) -> None:
        """Money arrived that cannot be applied; staff refund it by hand"""
        logger.warning(
            f"⚠️ Payment of Rs{format_amount(amount)} received for {label}, which {reason}"
        )
        if owner:
            self.relay.notify(
                owner,
                "Payment Received",
                f"We received Rs{format_amount(amount)} for your {label}. "
                f"It {reason}, so the amount will be refunded.",
                NotificationType.PAYMENT,
            )
        self.relay.notify_admins(
            "Refund Required",
            f"Rs{format_amount(amount)} was paid for {label}, which {reason}. "
            f"Please refund the customer.",
            NotificationType.PAYMENT,
        )

    def _get_user(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def _previous_outcome(payment: Payment) -> SettlementResult:
        if payment.order_id is not None:
            return SettlementResult(ORDER, payment.order_id, payment, already_processed=True)
        return SettlementResult(
            APPOINTMENT, payment.appointment_id, payment, already_processed=True
        )

"""Payments repository - Database operations for payments and their targets"""

from datetime import datetime
from typing import Optional

from sqlalchemy import and_, exists, or_
from sqlalchemy.orm import Session, joinedload

from ...models import (
    Appointment,
    AppointmentPaymentStatus,
    AppointmentStatus,
    Order,
    OrderPaymentStatus,
    OrderStatus,
    Payment,
    PaymentAttempt,
)


class PaymentRepository:
    """Repository for payment database operations"""

    @staticmethod
    def get_payment_by_transaction(db: Session, transaction_id: str) -> Optional[Payment]:
        return db.query(Payment).filter(Payment.transaction_id == transaction_id).first()

    @staticmethod
    def get_order(db: Session, order_id: int) -> Optional[Order]:
        return db.query(Order).filter(Order.id == order_id).first()

    @staticmethod
    def get_order_by_transaction(db: Session, transaction_id: str) -> Optional[Order]:
        return (
            db.query(Order)
            .options(joinedload(Order.items))
            .filter(Order.transaction_id == transaction_id)
            .first()
        )

    @staticmethod
    def get_appointment(db: Session, appointment_id: int) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .options(joinedload(Appointment.service))
            .filter(Appointment.id == appointment_id)
            .first()
        )

    @staticmethod
    def get_appointment_by_transaction(db: Session, transaction_id: str) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .options(joinedload(Appointment.service))
            .filter(Appointment.transaction_id == transaction_id)
            .first()
        )

    @staticmethod
    def get_user_payments(db: Session, user_id: int) -> list[Payment]:
        return (
            db.query(Payment)
            .filter(Payment.user_id == user_id)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .all()
        )

    @staticmethod
    def get_all_payments(db: Session, limit: int = 200) -> list[Payment]:
        return (
            db.query(Payment)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def get_attempt(db: Session, transaction_uuid: str) -> Optional[PaymentAttempt]:
        return (
            db.query(PaymentAttempt)
            .filter(PaymentAttempt.transaction_uuid == transaction_uuid)
            .first()
        )

    @staticmethod
    def get_stale_pending_attempts(db: Session, created_before: datetime) -> list[PaymentAttempt]:
        """
        Every reference issued before the cutoff whose target is still unpaid
        and that has no Payment yet. Older forms count too: the customer may
        have paid through any of them.
        """
        settled = exists().where(Payment.transaction_id == PaymentAttempt.transaction_uuid)
        return (
            db.query(PaymentAttempt)
            .outerjoin(Order, PaymentAttempt.order_id == Order.id)
            .outerjoin(Appointment, PaymentAttempt.appointment_id == Appointment.id)
            .filter(
                PaymentAttempt.created_at <= created_before,
                ~settled,
                or_(
                    and_(
                        Order.payment_status.in_(
                            (
                                OrderPaymentStatus.PENDING,
                                OrderPaymentStatus.UNDERPAID,
                                OrderPaymentStatus.FAILED,
                            )
                        ),
                        Order.status != OrderStatus.CANCELED,
                    ),
                    and_(
                        Appointment.payment_status == AppointmentPaymentStatus.PENDING,
                        Appointment.status != AppointmentStatus.CANCELLED,
                    ),
                ),
            )
            .order_by(PaymentAttempt.created_at, PaymentAttempt.id)
            .all()
        )

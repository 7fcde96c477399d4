from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class Role:
    USER = "USER"
    ADMIN = "ADMIN"
    EMPLOYEE = "EMPLOYEE"


class AppointmentStatus:
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    ALL = (PENDING, IN_PROGRESS, COMPLETED, CANCELLED)


class AppointmentPaymentStatus:
    PENDING = "PENDING"
    HALF_PAID = "HALF_PAID"
    PAID = "PAID"
    REFUNDED = "REFUNDED"

    ALL = (PENDING, HALF_PAID, PAID, REFUNDED)


class PaymentType:
    FULL = "FULL"
    HALF = "HALF"


class OrderStatus:
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELED = "CANCELED"
    REFUNDED = "REFUNDED"

    ALL = (PENDING, PROCESSING, SHIPPED, DELIVERED, CANCELED, REFUNDED)


class OrderPaymentStatus:
    PENDING = "PENDING"
    PAID = "PAID"
    UNDERPAID = "UNDERPAID"  # gateway settled less than the order total
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class NotificationType:
    PAYMENT = "PAYMENT"
    APPOINTMENT = "APPOINTMENT"
    ORDER = "ORDER"
    SYSTEM = "SYSTEM"

    ALL = (PAYMENT, APPOINTMENT, ORDER, SYSTEM)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    firebase_uid = Column(String(255), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    role = Column(String(20), default=Role.USER, nullable=False)  # USER, ADMIN, EMPLOYEE
    # Real-time channels this user listens on, resolved once at creation
    channel_aliases = Column(JSON, default=list, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    vehicles = relationship("Vehicle", back_populates="user")
    appointments = relationship(
        "Appointment", back_populates="user", foreign_keys="Appointment.user_id"
    )
    orders = relationship("Order", back_populates="user")
    notifications = relationship("Notification", back_populates="user")


class Vehicle(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    make = Column(String(100), nullable=False)
    model = Column(String(100), nullable=False)
    plate_number = Column(String(50), nullable=True)
    vehicle_type = Column(String(50), nullable=True)  # sedan, suv, bike...
    created_at = Column(DateTime, server_default=func.now())

    user = relationship("User", back_populates="vehicles")


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False)
    duration_minutes = Column(Integer, default=30, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False)
    staff_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    date = Column(Date, nullable=False, index=True)
    slot_minutes = Column(Integer, nullable=False)  # minutes since midnight
    time_slot = Column(String(20), nullable=False)  # display form, e.g. "2:30 PM"
    status = Column(String(20), default=AppointmentStatus.PENDING, nullable=False)
    payment_status = Column(String(20), default=AppointmentPaymentStatus.PENDING, nullable=False)
    payment_type = Column(String(10), default=PaymentType.FULL, nullable=False)
    payment_method = Column(String(20), default="ESEWA", nullable=False)
    price = Column(Float, nullable=False)
    notes = Column(Text, nullable=True)
    # Gateway transaction reference issued when the payment form is built
    transaction_id = Column(String(64), unique=True, nullable=True, index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="appointments", foreign_keys=[user_id])
    staff = relationship("User", foreign_keys=[staff_id])
    service = relationship("Service")
    vehicle = relationship("Vehicle")
    reservation = relationship(
        "SlotReservation", back_populates="appointment", uselist=False, passive_deletes=True
    )


class SlotReservation(Base):
    """One seat in a (date, slot); the unique seat constraint caps occupancy"""

    __tablename__ = "slot_reservations"
    __table_args__ = (
        UniqueConstraint("date", "slot_minutes", "seat", name="uq_slot_seat"),
        CheckConstraint("seat >= 1", name="ck_slot_seat_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False, index=True)
    slot_minutes = Column(Integer, nullable=False)
    seat = Column(Integer, nullable=False)
    appointment_id = Column(
        Integer, ForeignKey("appointments.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    created_at = Column(DateTime, server_default=func.now())

    appointment = relationship("Appointment", back_populates="reservation")


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    total_amount = Column(Float, nullable=False)
    status = Column(String(20), default=OrderStatus.PENDING, nullable=False)
    payment_status = Column(String(20), default=OrderPaymentStatus.PENDING, nullable=False)
    transaction_id = Column(String(64), unique=True, nullable=True, index=True)
    shipping_address = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    product_name = Column(String(255), nullable=False)
    unit_price = Column(Float, nullable=False)
    quantity = Column(Integer, default=1, nullable=False)

    order = relationship("Order", back_populates="items")


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint(
            "(order_id IS NULL) != (appointment_id IS NULL)", name="ck_payment_single_target"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True)
    amount = Column(Float, nullable=False)
    status = Column(String(20), nullable=False)
    method = Column(String(20), default="ESEWA", nullable=False)
    # Idempotency key: the gateway transaction reference
    transaction_id = Column(String(64), unique=True, nullable=False, index=True)
    gateway_reference = Column(String(64), nullable=True)  # eSewa transaction_code
    created_at = Column(DateTime, server_default=func.now())

    order = relationship("Order")
    appointment = relationship("Appointment")


class PaymentAttempt(Base):
    """Every transaction reference issued for an order or appointment"""

    __tablename__ = "payment_attempts"
    __table_args__ = (
        CheckConstraint(
            "(order_id IS NULL) != (appointment_id IS NULL)", name="ck_attempt_single_target"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    transaction_uuid = Column(String(64), unique=True, nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True, index=True)
    amount = Column(Float, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    order = relationship("Order")
    appointment = relationship("Appointment")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(20), default=NotificationType.SYSTEM, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), index=True)

    user = relationship("User", back_populates="notifications")

"""Order service - checkout and admin status changes"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import NotificationType, Order, OrderItem, Role, User
from ...realtime import RealtimePublisher
from ..notifications.relay import NotificationRelay
from .repository import OrderRepository
from .schemas import OrderCreate, OrderStatusUpdate

logger = logging.getLogger(__name__)


class OrderService:
    def __init__(self, db: Session, publisher: RealtimePublisher):
        self.db = db
        self.repo = OrderRepository()
        self.relay = NotificationRelay(db, publisher)

    def create_order(self, data: OrderCreate, user: User) -> Order:
        """Create a PENDING order; the total is computed from the items"""
        total = round(sum(item.unit_price * item.quantity for item in data.items), 2)
        order = Order(
            user_id=user.id,
            total_amount=total,
            shipping_address=data.shipping_address,
            items=[
                OrderItem(
                    product_name=item.product_name,
                    unit_price=item.unit_price,
                    quantity=item.quantity,
                )
                for item in data.items
            ],
        )
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        logger.info(f"🛒 Order {order.id} created for user {user.id}: Rs{total}")
        return order

    def get_order(self, order_id: int, user: User) -> Order:
        order = self.repo.get_order(self.db, order_id)
        if not order or (order.user_id != user.id and user.role != Role.ADMIN):
            raise HTTPException(status_code=404, detail="Order not found")
        return order

    def list_orders(self, user: User) -> list[Order]:
        return self.repo.get_user_orders(self.db, user.id)

    def list_all_orders(self, status: Optional[str] = None) -> list[Order]:
        return self.repo.get_all_orders(self.db, status)

    def update_status(self, order_id: int, data: OrderStatusUpdate, admin: User) -> Order:
        """Admin status change; the owner is notified when the status moves"""
        if data.status is None and data.payment_status is None:
            raise HTTPException(status_code=400, detail="Nothing to update")

        order = self.repo.get_order(self.db, order_id)
        if not order:
            raise HTTPException(status_code=404, detail="Order not found")

        old_status = order.status
        if data.status is not None:
            order.status = data.status
        if data.payment_status is not None:
            order.payment_status = data.payment_status

        if order.status != old_status:
            owner = self.db.query(User).filter(User.id == order.user_id).first()
            if owner:
                self.relay.notify(
                    owner,
                    "Order Status Updated",
                    f"Your order #{order.id} is now {order.status.lower()}.",
                    NotificationType.ORDER,
                )

        self.db.commit()
        self.db.refresh(order)
        logger.info(
            f"📦 Order {order.id} updated by admin {admin.id}: {old_status} -> {order.status}"
        )
        self.relay.flush()
        return order


"""Orders repository - Database operations for orders"""

from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Order


class OrderRepository:
    @staticmethod
    def get_order(db: Session, order_id: int) -> Optional[Order]:
        return (
            db.query(Order).options(joinedload(Order.items)).filter(Order.id == order_id).first()
        )

    @staticmethod
    def get_user_orders(db: Session, user_id: int) -> list[Order]:
        return (
            db.query(Order)
            .options(joinedload(Order.items))
            .filter(Order.user_id == user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .all()
        )

    @staticmethod
    def get_all_orders(db: Session, status: Optional[str] = None) -> list[Order]:
        query = db.query(Order).options(joinedload(Order.items))
        if status:
            query = query.filter(Order.status == status)
        return query.order_by(Order.created_at.desc(), Order.id.desc()).all()

"""Orders router - customer checkout and admin order management"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin
from ...database import get_db
from ...models import User
from ...realtime import RealtimePublisher, get_realtime_publisher
from .schemas import OrderCreate, OrderResponse, OrderStatusUpdate
from .service import OrderService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Orders"])


def get_order_service(
    db: Session = Depends(get_db),
    publisher: RealtimePublisher = Depends(get_realtime_publisher),
) -> OrderService:
    return OrderService(db, publisher)


@router.post("/orders", response_model=OrderResponse, status_code=201)
async def create_order(
    body: OrderCreate,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    return service.create_order(body, current_user)


@router.get("/orders", response_model=list[OrderResponse])
async def get_my_orders(
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    return service.list_orders(current_user)


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    return service.get_order(order_id, current_user)


@router.get("/admin/orders", response_model=list[OrderResponse])
async def get_all_orders(
    status: Optional[str] = Query(None),
    _admin: User = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    return service.list_all_orders(status.upper() if status else None)


@router.patch("/admin/orders/{order_id}", response_model=OrderResponse)
async def update_order_status(
    order_id: int,
    body: OrderStatusUpdate,
    admin: User = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    """Change an order's status; the customer is notified"""
    return service.update_status(order_id, body, admin)

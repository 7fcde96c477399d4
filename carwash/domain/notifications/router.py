"""Notification router - FastAPI endpoints for stored notifications"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin
from ...database import get_db
from ...models import User
from ...realtime import RealtimePublisher, get_realtime_publisher
from .relay import NotificationRelay
from .repository import NotificationRepository
from .schemas import NotificationCreate, NotificationListResponse, NotificationResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationListResponse)
async def get_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get the current user's notifications, newest first"""
    notifications = NotificationRepository.get_user_notifications(
        db, current_user.id, unread_only=unread_only, limit=limit
    )
    return NotificationListResponse(
        unread_count=NotificationRepository.unread_count(db, current_user.id),
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
    )


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notification = NotificationRepository.get_notification(db, notification_id, current_user.id)
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    return NotificationRepository.mark_read(db, notification)


@router.post("/mark-all-read")
async def mark_all_notifications_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    updated = NotificationRepository.mark_all_read(db, current_user.id)
    return {"message": "All notifications marked as read", "updated": updated}


@router.post("", response_model=NotificationResponse, status_code=201)
async def create_notification(
    body: NotificationCreate,
    _admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    publisher: RealtimePublisher = Depends(get_realtime_publisher),
):
    """Create a notification for a user and push it to their live channels (admin)"""
    recipient = db.query(User).filter(User.id == body.user_id).first()
    if not recipient:
        raise HTTPException(status_code=404, detail="User not found")

    relay = NotificationRelay(db, publisher)
    notification = relay.notify(recipient, body.title, body.message, body.type)
    db.commit()
    relay.flush()

    db.refresh(notification)
    return notification

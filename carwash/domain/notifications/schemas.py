"""Notification domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import NotificationType


class NotificationResponse(BaseModel):
    id: int
    title: str
    message: str
    type: str
    is_read: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class NotificationListResponse(BaseModel):
    unread_count: int
    notifications: list[NotificationResponse]


class NotificationCreate(BaseModel):
    """Admin-issued notification for one user"""

    user_id: int
    title: str
    message: str
    type: str = NotificationType.SYSTEM

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        value = v.upper()
        if value not in NotificationType.ALL:
            raise ValueError(f"type must be one of {', '.join(NotificationType.ALL)}")
        return value

    @field_validator("title", "message")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v.strip()

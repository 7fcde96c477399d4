"""
Notification Relay

Persists notifications and pushes them to every live channel a user may be
listening on. The stored row is the source of truth: pushes happen only after
the caller commits, and a failed push is logged and dropped so that the user
still sees the notification on their next fetch.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from ...errors import NotificationDeliveryFailed
from ...models import Notification, NotificationType, Role, User
from ...realtime import ADMIN_CHANNEL, NEW_NOTIFICATION, RealtimePublisher, get_user_channel

logger = logging.getLogger(__name__)


def resolve_channel_aliases(user: User) -> list[str]:
    """
    Channels a user listens on: their internal id and their identity-provider id.
    The user row must be flushed so that user.id is set.
    """
    aliases = [get_user_channel(user.id)]
    if user.firebase_uid and str(user.firebase_uid) != str(user.id):
        aliases.append(get_user_channel(user.firebase_uid))
    return aliases


def serialize_notification(notification: Notification) -> dict:
    return {
        "id": notification.id,
        "title": notification.title,
        "message": notification.message,
        "type": notification.type,
        "createdAt": notification.created_at.isoformat() if notification.created_at else None,
        "isRead": notification.is_read,
    }


@dataclass
class DeliveryReport:
    delivered: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class NotificationRelay:
    def __init__(self, db: Session, publisher: RealtimePublisher):
        self.db = db
        self.publisher = publisher
        self._pending: list[tuple[list[str], Notification]] = []
        self._broadcasts: list[dict] = []

    def notify(
        self,
        user: User,
        title: str,
        message: str,
        type: str = NotificationType.SYSTEM,
    ) -> Notification:
        """Store a notification in the current transaction and queue its push"""
        notification = Notification(
            user_id=user.id, title=title, message=message, type=type, is_read=False
        )
        self.db.add(notification)
        self.db.flush()

        aliases = list(user.channel_aliases or []) or resolve_channel_aliases(user)
        self._pending.append((aliases, notification))
        return notification

    def notify_admins(
        self, title: str, message: str, type: str = NotificationType.SYSTEM
    ) -> list[Notification]:
        admins = self.db.query(User).filter(User.role == Role.ADMIN).all()
        logger.info(f"Found {len(admins)} admin users to notify")
        return [self.notify(admin, title, message, type) for admin in admins]

    def broadcast_to_admins(self, payload: dict) -> None:
        """Queue a role-wide event on the admin channel"""
        self._broadcasts.append(payload)

    def discard(self) -> None:
        """Drop queued pushes after a rollback"""
        self._pending.clear()
        self._broadcasts.clear()

    def flush(self) -> DeliveryReport:
        """
        Push everything queued since the last flush. Call after commit.
        Each channel is attempted independently.
        """
        report = DeliveryReport()
        pending, self._pending = self._pending, []
        broadcasts, self._broadcasts = self._broadcasts, []

        for aliases, notification in pending:
            payload = serialize_notification(notification)
            for channel in aliases:
                self._push(channel, payload, report)

        for payload in broadcasts:
            self._push(ADMIN_CHANNEL, payload, report)

        if report.failed:
            logger.warning(
                f"⚠️ {len(report.failed)} notification push(es) failed: {report.failed}"
            )
        return report

    def _push(self, channel: str, payload: dict, report: DeliveryReport) -> None:
        try:
            self.publisher.trigger(channel, NEW_NOTIFICATION, payload)
            report.delivered.append(channel)
        except NotificationDeliveryFailed as e:
            logger.error(f"❌ Failed to push notification to {channel}: {e.cause}")
            report.failed.append(channel)

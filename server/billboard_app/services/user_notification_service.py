from typing import Any, Dict, Iterable, List, Optional

from ..extensions import db
from ..models import UserNotification
from .gateway import atomic


class UserNotificationService:
    """Helper utilities for creating and retrieving owner-facing notifications."""

    DEFAULT_LIMIT = 20
    MAX_LIMIT = 100
    TYPES = {"info", "success", "warning", "error"}

    @staticmethod
    def create_notification(account_id: str, title: str, message: str, notif_type: str = "info") -> UserNotification:
        """Persist a notification row for the account."""
        notification = UserNotification(
            AccountID=account_id,
            Title=(title or "Notification")[:255],
            Message=message or "",
            Type=notif_type if notif_type in UserNotificationService.TYPES else "info",
        )
        with atomic("create user notification"):
            db.session.add(notification)
        return notification

    @staticmethod
    def fetch_notifications(account_id: str, limit: int = DEFAULT_LIMIT, unread_only: bool = False) -> List[UserNotification]:
        limit = max(1, min(limit, UserNotificationService.MAX_LIMIT))
        query = UserNotification.query.filter_by(AccountID=account_id)
        if unread_only:
            query = query.filter_by(IsRead=False)
        return query.order_by(UserNotification.CreatedAt.desc()).limit(limit).all()

    @staticmethod
    def mark_read(account_id: str, notification_ids: Iterable[str]) -> int:
        ids = [nid for nid in notification_ids or [] if nid]
        if not ids:
            return 0
        with atomic("mark user notifications read"):
            rows = UserNotification.query.filter(
                UserNotification.AccountID == account_id,
                UserNotification.NotificationID.in_(ids),
            ).all()
            for row in rows:
                row.mark_read()
        return len(rows)

    @staticmethod
    def serialize(notification: UserNotification) -> Dict[str, Any]:
        return {
            "id": notification.NotificationID,
            "title": notification.Title,
            "message": notification.Message,
            "type": notification.Type,
            "read": bool(notification.IsRead),
            "created_at": notification.CreatedAt.isoformat() if notification.CreatedAt else None,
        }

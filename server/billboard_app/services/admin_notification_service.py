from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from flask import current_app
from flask_mail import Message

from ..errors import ValidationError
from ..extensions import db, mail
from ..models import (
    Account,
    AdminNotification,
    AdminNotificationPreferences,
    NOTIFICATION_SECURITY_ALERT,
    NOTIFICATION_TYPES,
    ROLE_ADMIN,
)
from .gateway import atomic, gateway_errors
from .notification_hub import serialize_admin_notification


class AdminNotificationService:
    """Publishes, lists and acknowledges admin notifications."""

    MAX_PAGE_SIZE = 200

    @staticmethod
    def _active_admin_ids() -> List[str]:
        rows = (
            db.session.query(Account.AccountID)
            .filter(Account.Role == ROLE_ADMIN, Account.IsActive.is_(True))
            .all()
        )
        return [row[0] for row in rows]

    @staticmethod
    def publish(
        notification_type: str,
        payload: Optional[Dict[str, Any]] = None,
        *,
        target_admin_id: Optional[str] = None,
        source_admin: Optional[Account] = None,
    ) -> List[AdminNotification]:
        """
        Persist a notification for one admin, or for every active admin when
        ``target_admin_id`` is None (broadcast).

        Rows reach hub subscribers once this transaction commits.

        Returns:
            List[AdminNotification]: the rows created (one per recipient)
        """
        if notification_type not in NOTIFICATION_TYPES:
            raise ValidationError(f"Unknown notification type: {notification_type}")

        with atomic("publish admin notification"):
            targets = [target_admin_id] if target_admin_id else AdminNotificationService._active_admin_ids()
            rows = [
                AdminNotification(
                    NotificationType=notification_type,
                    TargetAdminID=admin_id,
                    SourceAdminID=source_admin.AccountID if source_admin else None,
                    SourceAdminName=source_admin.Name if source_admin else "system",
                    Payload=dict(payload or {}),
                )
                for admin_id in targets
            ]
            db.session.add_all(rows)

        current_app.logger.info(
            "Published %s notification to %d admin(s)", notification_type, len(rows)
        )
        return rows

    @staticmethod
    def get_admin_notifications(
        admin_id: str,
        limit: Optional[int] = None,
        include_processed: bool = False,
    ) -> List[AdminNotification]:
        """Polling fallback: newest first, unprocessed only by default."""
        if limit is None:
            limit = current_app.config.get("ADMIN_NOTIFICATION_PAGE_SIZE", 50)
        limit = max(1, min(int(limit), AdminNotificationService.MAX_PAGE_SIZE))

        with gateway_errors("fetch admin notifications"):
            query = AdminNotification.query.filter_by(TargetAdminID=admin_id)
            if not include_processed:
                query = query.filter_by(IsProcessed=False)
            return (
                query.order_by(AdminNotification.CreatedAt.desc())
                .limit(limit)
                .all()
            )

    @staticmethod
    def mark_processed(admin_id: str, notification_ids: Iterable[str]) -> int:
        """
        Mark the admin's own notifications as processed.

        Returns:
            int: number of rows that changed state
        """
        ids = [nid for nid in (notification_ids or []) if nid]
        if not ids:
            return 0
        with atomic("mark notifications processed"):
            rows = AdminNotification.query.filter(
                AdminNotification.TargetAdminID == admin_id,
                AdminNotification.NotificationID.in_(ids),
                AdminNotification.IsProcessed.is_(False),
            ).all()
            for row in rows:
                row.mark_processed()
        return len(rows)

    @staticmethod
    def serialize(notification: AdminNotification) -> Dict[str, Any]:
        return serialize_admin_notification(notification)

    PREFERENCE_FIELDS = {
        "security_alerts": "SecurityAlerts",
        "email_enabled": "EmailEnabled",
        "in_app_enabled": "InAppEnabled",
    }

    @staticmethod
    def get_preferences(admin_id: str) -> AdminNotificationPreferences:
        """Preferences for an admin; rows missing for older admins are created with defaults."""
        with atomic("load notification preferences"):
            prefs = AdminNotificationPreferences.query.filter_by(AdminID=admin_id).first()
            if prefs is None:
                prefs = AdminNotificationPreferences(AdminID=admin_id)
                db.session.add(prefs)
        return prefs

    @staticmethod
    def update_preferences(admin_id: str, changes: Dict[str, Any]) -> AdminNotificationPreferences:
        unknown = set(changes) - set(AdminNotificationService.PREFERENCE_FIELDS)
        if unknown:
            raise ValidationError("Unknown preference: " + ", ".join(sorted(unknown)))
        for key, value in changes.items():
            if not isinstance(value, bool):
                raise ValidationError(f"{key} must be true or false")

        prefs = AdminNotificationService.get_preferences(admin_id)
        with atomic("update notification preferences"):
            for key, value in changes.items():
                setattr(prefs, AdminNotificationService.PREFERENCE_FIELDS[key], value)
        return prefs

    @staticmethod
    def serialize_preferences(prefs: AdminNotificationPreferences) -> Dict[str, Any]:
        return {
            key: bool(getattr(prefs, column))
            for key, column in AdminNotificationService.PREFERENCE_FIELDS.items()
        }

    @staticmethod
    def send_security_alert(email: str, failures: int, blocked_until: Optional[datetime], ip: Optional[str]):
        """Broadcast a security_alert and e-mail admins who opted in."""
        payload = {
            "email": email,
            "failed_attempts": failures,
            "ip_address": ip,
            "blocked_until": blocked_until.isoformat() if blocked_until else None,
        }
        AdminNotificationService.publish(NOTIFICATION_SECURITY_ALERT, payload)

        recipients = [
            row[0]
            for row in db.session.query(Account.Email)
            .join(AdminNotificationPreferences, AdminNotificationPreferences.AdminID == Account.AccountID)
            .filter(
                Account.Role == ROLE_ADMIN,
                Account.IsActive.is_(True),
                AdminNotificationPreferences.SecurityAlerts.is_(True),
                AdminNotificationPreferences.EmailEnabled.is_(True),
            )
            .all()
        ]
        if not recipients:
            return

        msg = Message(
            subject="Security Alert: repeated failed logins",
            recipients=recipients,
            body=(
                f"Account: {email}\nIP: {ip}\nRecent failures: {failures}\n"
                f"Blocked until: {payload['blocked_until']} UTC"
            ),
        )
        mail.send(msg)

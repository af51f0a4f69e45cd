"""
In-process delivery of admin notifications.

Rows added to ``admin_notifications`` are captured when the session flushes
and handed to subscribers only after the surrounding transaction commits,
so a rolled-back notification is never delivered.
"""
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import event
from sqlalchemy.orm import Session

from ..models import AdminNotification

logger = logging.getLogger(__name__)

_PENDING_KEY = "pending_admin_notifications"

EventCallback = Callable[[Dict[str, Any]], None]


def serialize_admin_notification(notification: AdminNotification) -> Dict[str, Any]:
    return {
        "id": notification.NotificationID,
        "type": notification.NotificationType,
        "target_admin_id": notification.TargetAdminID,
        "source_admin_id": notification.SourceAdminID,
        "source_admin_name": notification.SourceAdminName,
        "payload": notification.Payload or {},
        "processed": bool(notification.IsProcessed),
        "created_at": notification.CreatedAt.isoformat() if notification.CreatedAt else None,
        "processed_at": notification.ProcessedAt.isoformat() if notification.ProcessedAt else None,
    }


class NotificationHub:
    """Per-admin subscriber registry with at-least-once, in-order delivery."""

    def __init__(self):
        self._lock = threading.RLock()
        self._subscribers: Dict[str, Dict[int, EventCallback]] = {}
        self._next_id = 0
        self._connected = True

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self):
        with self._lock:
            self._connected = True

    def shutdown(self):
        """Drop every subscriber and refuse new ones until ``connect``."""
        with self._lock:
            self._connected = False
            self._subscribers.clear()

    def subscribe(self, admin_id: str, on_event: EventCallback) -> Optional[Callable[[], None]]:
        """
        Register a callback for notifications targeted at ``admin_id``.

        Returns:
            Optional[Callable]: an unsubscribe function, or None when the hub
            is not connected (the caller should fall back to polling)
        """
        with self._lock:
            if not self._connected:
                logger.warning("Notification hub not connected; admin %s must poll", admin_id)
                return None
            self._next_id += 1
            sub_id = self._next_id
            self._subscribers.setdefault(admin_id, {})[sub_id] = on_event

        def unsubscribe():
            with self._lock:
                subs = self._subscribers.get(admin_id)
                if subs is not None:
                    subs.pop(sub_id, None)
                    if not subs:
                        self._subscribers.pop(admin_id, None)

        return unsubscribe

    def subscriber_count(self, admin_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(admin_id, {}))

    def deliver(self, events: List[Dict[str, Any]]) -> int:
        """Push serialized notifications to their target admin's callbacks."""
        delivered = 0
        for payload in events:
            with self._lock:
                callbacks = list(self._subscribers.get(payload.get("target_admin_id"), {}).values())
            for callback in callbacks:
                try:
                    callback(payload)
                    delivered += 1
                except Exception:
                    logger.warning(
                        "Subscriber callback failed for notification %s", payload.get("id"), exc_info=True
                    )
        return delivered


hub = NotificationHub()


def _collect_new_notifications(session, flush_context):
    new_rows = [obj for obj in session.new if isinstance(obj, AdminNotification)]
    if new_rows:
        session.info.setdefault(_PENDING_KEY, []).extend(
            serialize_admin_notification(row) for row in new_rows
        )


def _deliver_after_commit(session):
    events = session.info.pop(_PENDING_KEY, None)
    if events:
        hub.deliver(events)


def _discard_after_rollback(session, previous_transaction):
    session.info.pop(_PENDING_KEY, None)


def register_session_hooks():
    """Attach flush/commit/rollback listeners once per process."""
    hooks = (
        ("after_flush", _collect_new_notifications),
        ("after_commit", _deliver_after_commit),
        ("after_soft_rollback", _discard_after_rollback),
    )
    for name, fn in hooks:
        if not event.contains(Session, name, fn):
            event.listen(Session, name, fn)

"""
Process-wide read-through cache of user display records, plus the admin-side
event consumer that keeps it fresh.

The cache is for rendering lists only. Authorization always reads the store.
"""
import logging
import threading
from collections import deque
from typing import Any, Callable, Dict, List, Optional

from cachetools import LRUCache, TTLCache

from ..models import (
    Account,
    NOTIFICATION_DASHBOARD_UPDATE,
    NOTIFICATION_USER_DELETED,
    NOTIFICATION_USER_UPDATED,
)
from .notification_hub import NotificationHub, hub as default_hub

logger = logging.getLogger(__name__)


def _user_summary(account: Account) -> Dict[str, Any]:
    return {
        "id": account.AccountID,
        "email": account.Email,
        "name": account.Name,
        "role": account.Role,
        "is_active": bool(account.IsActive),
        "kyc_status": account.KYCStatus,
    }


class UserCache:
    """TTL cache keyed by user id."""

    def __init__(self, maxsize: int = 1000, ttl: int = 300):
        self._lock = threading.RLock()
        self._cache = TTLCache(maxsize=maxsize, ttl=ttl)

    def configure(self, maxsize: int, ttl: int):
        with self._lock:
            self._cache = TTLCache(maxsize=maxsize, ttl=ttl)

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            cached = self._cache.get(user_id)
        if cached is not None:
            return cached

        account = Account.query.filter_by(AccountID=user_id).first()
        if not account:
            return None
        summary = _user_summary(account)
        with self._lock:
            self._cache[user_id] = summary
        return summary

    def get_users(self, user_ids: List[str]) -> List[Dict[str, Any]]:
        """Summaries for ``user_ids`` in the given order; misses load in one query."""
        with self._lock:
            found = {user_id: self._cache.get(user_id) for user_id in user_ids}
        missing = [user_id for user_id, summary in found.items() if summary is None]
        if missing:
            for account in Account.query.filter(Account.AccountID.in_(missing)).all():
                summary = _user_summary(account)
                found[account.AccountID] = summary
                with self._lock:
                    self._cache[account.AccountID] = summary
        return [found[user_id] for user_id in user_ids if found.get(user_id) is not None]

    def peek(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._cache.get(user_id)

    def invalidate(self, user_id: str) -> bool:
        with self._lock:
            return self._cache.pop(user_id, None) is not None

    def clear(self):
        with self._lock:
            self._cache.clear()

    def __contains__(self, user_id):
        with self._lock:
            return user_id in self._cache

    def __len__(self):
        with self._lock:
            return len(self._cache)


user_cache = UserCache()


def init_user_cache(app):
    user_cache.configure(
        maxsize=app.config.get("USER_CACHE_MAXSIZE", 1000),
        ttl=app.config.get("USER_CACHE_TTL_SECONDS", 300),
    )


class AdminEventConsumer:
    """
    Idempotent consumer for one admin's notification stream.

    Redelivered events (same notification id) are ignored. User events prune
    the shared user cache so the next render re-reads the store. New events
    are passed on to ``forward`` (a live connection's outbound queue).
    """

    SEEN_IDS_MAXSIZE = 5000
    DELETED_USERS_MAXSIZE = 1000
    SECURITY_ALERTS_MAXLEN = 100

    def __init__(
        self,
        admin_id: str,
        cache: UserCache = user_cache,
        forward: Optional[Callable[[Dict[str, Any]], None]] = None,
    ):
        self.admin_id = admin_id
        self.cache = cache
        self.forward = forward
        self._lock = threading.Lock()
        self._seen = LRUCache(maxsize=self.SEEN_IDS_MAXSIZE)
        self.deleted_users = LRUCache(maxsize=self.DELETED_USERS_MAXSIZE)
        self.dashboard_refreshes = 0
        self.security_alerts = deque(maxlen=self.SECURITY_ALERTS_MAXLEN)
        self._unsubscribe = None

    def attach(self, notification_hub: NotificationHub = default_hub) -> bool:
        """Subscribe to the hub; False means the caller must poll instead."""
        self._unsubscribe = notification_hub.subscribe(self.admin_id, self.handle)
        return self._unsubscribe is not None

    def detach(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def handle(self, event: Dict[str, Any]) -> bool:
        """Apply one event. Returns False when it was already seen."""
        event_id = event.get("id")
        with self._lock:
            if event_id in self._seen:
                return False
            self._seen[event_id] = True

        kind = event.get("type")
        payload = event.get("payload") or {}
        if kind == NOTIFICATION_USER_DELETED:
            user_id = payload.get("user_id")
            self.cache.invalidate(user_id)
            self.deleted_users[user_id] = {
                "name": payload.get("user_name"),
                "deleted_by": event.get("source_admin_name"),
            }
        elif kind == NOTIFICATION_USER_UPDATED:
            self.cache.invalidate(payload.get("user_id"))
        elif kind == NOTIFICATION_DASHBOARD_UPDATE:
            self.dashboard_refreshes += 1
        else:
            self.security_alerts.append(payload)
        logger.debug("Admin %s consumed %s event %s", self.admin_id, kind, event_id)
        if self.forward is not None:
            self.forward(event)
        return True

    def poll(self, limit: Optional[int] = None) -> int:
        """Polling fallback: apply unprocessed rows from the store."""
        from .admin_notification_service import AdminNotificationService

        rows = AdminNotificationService.get_admin_notifications(self.admin_id, limit=limit)
        applied = 0
        for row in rows:
            if self.handle(AdminNotificationService.serialize(row)):
                applied += 1
        return applied

"""
Session Management Service
Issues opaque session tokens, validates them, and revokes them
"""

import logging
import re
import secrets
from datetime import timedelta
from typing import Any, Dict, List, Optional

from flask import current_app

from ..extensions import db
from ..models import Account, UserSessions, utcnow
from .gateway import atomic

logger = logging.getLogger(__name__)


class SessionManagementService:
    """Service for managing user sessions and security"""

    SESSION_EXPIRY_HOURS = 24  # Sessions expire after 24 hours

    @staticmethod
    def _expiry_hours() -> int:
        try:
            return int(current_app.config.get("SESSION_EXPIRY_HOURS", SessionManagementService.SESSION_EXPIRY_HOURS))
        except RuntimeError:
            return SessionManagementService.SESSION_EXPIRY_HOURS

    @staticmethod
    def create_session(account_id: str, ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> UserSessions:
        """
        Stage a new session row in the current transaction.

        Args:
            account_id: ID of the account
            ip_address: client address
            user_agent: raw User-Agent header

        Returns:
            UserSessions: the pending session (committed by the caller)
        """
        session_token = secrets.token_urlsafe(32)
        device_info = SessionManagementService._parse_user_agent(user_agent or "")

        now_utc = utcnow()
        user_session = UserSessions(
            AccountID=account_id,
            SessionToken=session_token,
            DeviceType=device_info["device_type"],
            BrowserName=device_info["browser_name"],
            OperatingSystem=device_info["os_name"],
            IPAddress=ip_address,
            UserAgent=user_agent,
            CreatedAt=now_utc,
            LastActivityAt=now_utc,
            ExpiresAt=now_utc + timedelta(hours=SessionManagementService._expiry_hours()),
        )
        db.session.add(user_session)
        return user_session

    @staticmethod
    def validate_session(session_token: str) -> Optional[str]:
        """
        Resolve a token to its account id.

        Read-only and fail-closed: an unknown, expired or revoked token, an
        inactive account, or any store error all yield None.

        Args:
            session_token: The session token to validate

        Returns:
            Optional[str]: the account id, or None
        """
        if not session_token:
            return None
        try:
            row = (
                db.session.query(UserSessions.AccountID, UserSessions.ExpiresAt, Account.IsActive)
                .join(Account, Account.AccountID == UserSessions.AccountID)
                .filter(UserSessions.SessionToken == session_token, UserSessions.IsActive.is_(True))
                .first()
            )
        except Exception:
            logger.warning("Session validation failed; treating token as invalid", exc_info=True)
            db.session.rollback()
            return None

        if row is None:
            return None
        account_id, expires_at, account_active = row
        if expires_at is None or utcnow() >= expires_at or not account_active:
            return None
        return account_id

    @staticmethod
    def update_session_activity(session_token: str) -> bool:
        """
        Update the last activity time for a session

        Returns:
            bool: True if session was updated, False if not found or expired
        """
        with atomic("touch session"):
            updated = UserSessions.query.filter(
                UserSessions.SessionToken == session_token,
                UserSessions.IsActive.is_(True),
                UserSessions.ExpiresAt > utcnow(),
            ).update({"LastActivityAt": utcnow()}, synchronize_session=False)
        return bool(updated)

    @staticmethod
    def invalidate_session(session_token: str) -> bool:
        """
        Revoke a specific session (logout)

        Returns:
            bool: True if an active session was revoked
        """
        with atomic("invalidate session"):
            updated = UserSessions.query.filter(
                UserSessions.SessionToken == session_token,
                UserSessions.IsActive.is_(True),
            ).update({"IsActive": False, "RevokedAt": utcnow()}, synchronize_session=False)
        return bool(updated)

    @staticmethod
    def revoke_session(account_id: str, session_id: str) -> bool:
        """Revoke one of the account's own sessions by id."""
        with atomic("revoke session"):
            updated = UserSessions.query.filter(
                UserSessions.SessionID == session_id,
                UserSessions.AccountID == account_id,
                UserSessions.IsActive.is_(True),
            ).update({"IsActive": False, "RevokedAt": utcnow()}, synchronize_session=False)
        return bool(updated)

    @staticmethod
    def revoke_all_sessions(account_id: str) -> int:
        """
        Revoke all sessions for a specific account

        Returns:
            int: Number of sessions revoked
        """
        with atomic("revoke all sessions"):
            count = UserSessions.query.filter(
                UserSessions.AccountID == account_id,
                UserSessions.IsActive.is_(True),
            ).update({"IsActive": False, "RevokedAt": utcnow()}, synchronize_session=False)
        logger.info("Revoked %d session(s) for account %s", count, account_id)
        return count

    @staticmethod
    def get_active_sessions(account_id: str) -> List[UserSessions]:
        """
        Get all active, unexpired sessions for an account, most recent activity first
        """
        return UserSessions.query.filter(
            UserSessions.AccountID == account_id,
            UserSessions.IsActive.is_(True),
            UserSessions.ExpiresAt > utcnow(),
        ).order_by(UserSessions.LastActivityAt.desc()).all()

    @staticmethod
    def cleanup_expired_sessions() -> int:
        """
        Deactivate session rows past their expiry

        Returns:
            int: Number of sessions cleaned up
        """
        with atomic("cleanup expired sessions"):
            count = UserSessions.query.filter(
                UserSessions.ExpiresAt <= utcnow(),
                UserSessions.IsActive.is_(True),
            ).update({"IsActive": False, "RevokedAt": utcnow()}, synchronize_session=False)
        return count

    @staticmethod
    def serialize_session(user_session: UserSessions, current_token: Optional[str] = None) -> Dict[str, Any]:
        return {
            "id": user_session.SessionID,
            "device_type": user_session.DeviceType,
            "browser": user_session.BrowserName,
            "os": user_session.OperatingSystem,
            "ip_address": user_session.IPAddress,
            "created_at": user_session.CreatedAt.isoformat() if user_session.CreatedAt else None,
            "last_activity_at": user_session.LastActivityAt.isoformat() if user_session.LastActivityAt else None,
            "expires_at": user_session.ExpiresAt.isoformat(),
            "current": current_token is not None and user_session.SessionToken == current_token,
        }

    @staticmethod
    def _parse_user_agent(user_agent: str) -> Dict[str, str]:
        """
        Parse user agent string to extract device and browser information

        Args:
            user_agent: The user agent string

        Returns:
            Dict[str, str]: Parsed device information
        """
        if not user_agent:
            return {
                'device_type': 'unknown',
                'browser_name': 'Unknown Browser',
                'os_name': 'Unknown OS'
            }

        device_type = 'desktop'
        if re.search(r'(Tablet|iPad)', user_agent, re.IGNORECASE):
            device_type = 'tablet'
        elif re.search(r'(Mobile|Android|iPhone|iPod)', user_agent, re.IGNORECASE):
            device_type = 'mobile'

        browser_name = 'Unknown Browser'
        if 'Edg' in user_agent:
            browser_name = 'Edge'
        elif 'Chrome' in user_agent:
            browser_name = 'Chrome'
        elif 'Firefox' in user_agent:
            browser_name = 'Firefox'
        elif 'Safari' in user_agent:
            browser_name = 'Safari'

        os_name = 'Unknown OS'
        if 'Windows' in user_agent:
            os_name = 'Windows'
        elif 'Android' in user_agent:
            os_name = 'Android'
        elif 'iPhone' in user_agent or 'iPad' in user_agent:
            os_name = 'iOS'
        elif 'Mac' in user_agent:
            os_name = 'macOS'
        elif 'Linux' in user_agent:
            os_name = 'Linux'

        return {
            'device_type': device_type,
            'browser_name': browser_name,
            'os_name': os_name
        }

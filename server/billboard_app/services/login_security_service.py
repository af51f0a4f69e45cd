"""
Login Security Service
Append-only login attempt log and the sliding-window rate limiter built on it
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError

from ..errors import ServiceUnavailable
from ..extensions import db
from ..models import LoginAttempts, utcnow
from .admin_notification_service import AdminNotificationService
from .gateway import atomic, gateway_errors
from .side_effects import PostCommitActions

logger = logging.getLogger(__name__)

FAILURE_INVALID_CREDENTIALS = "invalid_credentials"
FAILURE_ACCOUNT_INACTIVE = "account_inactive"
FAILURE_RATE_LIMITED = "rate_limited"


@dataclass
class RateLimitStatus:
    allowed: bool
    attempts_remaining: int
    blocked_until: Optional[datetime] = None
    degraded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "attempts_remaining": self.attempts_remaining,
            "blocked_until": self.blocked_until.isoformat() if self.blocked_until else None,
            "degraded": self.degraded,
        }


def _settings():
    cfg = current_app.config
    return (
        int(cfg.get("LOGIN_RATE_LIMIT_MAX_ATTEMPTS", 5)),
        timedelta(minutes=int(cfg.get("LOGIN_RATE_LIMIT_WINDOW_MINUTES", 15))),
        timedelta(minutes=int(cfg.get("LOGIN_RATE_LIMIT_BLOCK_MINUTES", 15))),
    )


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


class LoginSecurityService:
    """Rate limiting and login history"""

    @staticmethod
    def _window_failures(email: str, since: datetime):
        # Blocked attempts never reached the credential check; only real failures count
        return LoginAttempts.query.filter(
            LoginAttempts.Email == email,
            LoginAttempts.WasSuccessful.is_(False),
            LoginAttempts.AttemptedAt >= since,
            or_(LoginAttempts.FailureReason.is_(None), LoginAttempts.FailureReason != FAILURE_RATE_LIMITED),
        )

    @staticmethod
    def check_rate_limit(email: str, ip_address: Optional[str] = None) -> RateLimitStatus:
        """
        Sliding-window check over recent failed attempts for an email.

        When the attempt log cannot be read the result follows
        ``LOGIN_RATE_LIMIT_FAIL_OPEN``: allowed (logged as a warning) or
        ``ServiceUnavailable``.

        Args:
            email: login e-mail (normalized here)
            ip_address: client address, used only for logging

        Returns:
            RateLimitStatus
        """
        email = normalize_email(email)
        max_attempts, window, _ = _settings()
        now = utcnow()

        try:
            failures = LoginSecurityService._window_failures(email, now - window)
            count, oldest = failures.with_entities(
                func.count(LoginAttempts.LoginAttemptID), func.min(LoginAttempts.AttemptedAt)
            ).one()
            active_block = (
                db.session.query(func.max(LoginAttempts.BlockedUntil))
                .filter(LoginAttempts.Email == email, LoginAttempts.BlockedUntil > now)
                .scalar()
            )
        except SQLAlchemyError:
            db.session.rollback()
            if current_app.config.get("LOGIN_RATE_LIMIT_FAIL_OPEN", True):
                logger.warning(
                    "Rate limit check unavailable for %s (ip=%s); failing open", email, ip_address, exc_info=True
                )
                return RateLimitStatus(allowed=True, attempts_remaining=max_attempts, degraded=True)
            logger.error("Rate limit check unavailable for %s; failing closed", email, exc_info=True)
            raise ServiceUnavailable()

        if count >= max_attempts or active_block is not None:
            candidates = [b for b in (active_block, oldest + window if count >= max_attempts else None) if b]
            blocked_until = max(candidates)
            logger.info("Login blocked for %s until %s (%d recent failures)", email, blocked_until, count)
            return RateLimitStatus(allowed=False, attempts_remaining=0, blocked_until=blocked_until)

        return RateLimitStatus(allowed=True, attempts_remaining=max_attempts - count)

    @staticmethod
    def log_login_attempt(
        email: str,
        success: bool,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        failure_reason: Optional[str] = None,
        account_id: Optional[str] = None,
        attempt_count: int = 1,
        blocked_until: Optional[datetime] = None,
    ) -> LoginAttempts:
        """Stage an append-only attempt row in the current transaction."""
        attempt = LoginAttempts(
            AccountID=account_id,
            Email=normalize_email(email),
            IPAddress=ip_address,
            UserAgent=user_agent,
            WasSuccessful=success,
            FailureReason=None if success else failure_reason,
            AttemptCount=attempt_count,
            BlockedUntil=blocked_until,
            AttemptedAt=utcnow(),
        )
        db.session.add(attempt)
        return attempt

    @staticmethod
    def record_failure(
        email: str,
        reason: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        account_id: Optional[str] = None,
        blocked_until: Optional[datetime] = None,
    ) -> LoginAttempts:
        """
        Append a failed attempt. When this failure reaches the threshold the
        row records the block and admins get a security alert after commit.
        """
        email = normalize_email(email)
        max_attempts, window, block = _settings()
        after_commit = PostCommitActions()

        with atomic("record failed login"):
            attempt_count = 1
            if reason != FAILURE_RATE_LIMITED:
                attempt_count = LoginSecurityService._window_failures(email, utcnow() - window).count() + 1
                if attempt_count == max_attempts:
                    blocked_until = utcnow() + block
                    after_commit.add(
                        "security_alert",
                        AdminNotificationService.send_security_alert,
                        email,
                        attempt_count,
                        blocked_until,
                        ip_address,
                    )
            attempt = LoginSecurityService.log_login_attempt(
                email,
                False,
                ip_address=ip_address,
                user_agent=user_agent,
                failure_reason=reason,
                account_id=account_id,
                attempt_count=attempt_count,
                blocked_until=blocked_until,
            )

        current_app.logger.warning(
            "Failed login for %s from %s (%s, %d in window)", email, ip_address, reason, attempt_count
        )
        after_commit.run()
        return attempt

    @staticmethod
    def get_login_history(email: Optional[str] = None, limit: int = 100) -> List[LoginAttempts]:
        """Newest attempts first, optionally for one e-mail."""
        limit = max(1, min(int(limit), 500))
        with gateway_errors("login history"):
            query = LoginAttempts.query
            if email:
                query = query.filter(LoginAttempts.Email == normalize_email(email))
            return query.order_by(LoginAttempts.AttemptedAt.desc()).limit(limit).all()

    @staticmethod
    def serialize_attempt(attempt: LoginAttempts) -> Dict[str, Any]:
        return {
            "id": attempt.LoginAttemptID,
            "email": attempt.Email,
            "ip_address": attempt.IPAddress,
            "user_agent": attempt.UserAgent,
            "success": bool(attempt.WasSuccessful),
            "failure_reason": attempt.FailureReason,
            "attempt_count": attempt.AttemptCount,
            "blocked_until": attempt.BlockedUntil.isoformat() if attempt.BlockedUntil else None,
            "attempted_at": attempt.AttemptedAt.isoformat() if attempt.AttemptedAt else None,
        }

"""
Authentication Service
Credential checks, session issuance and logout
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from ..errors import AuthenticationFailed, RateLimited
from ..models import Account, utcnow
from .gateway import atomic, gateway_errors
from .login_security_service import (
    FAILURE_ACCOUNT_INACTIVE,
    FAILURE_INVALID_CREDENTIALS,
    FAILURE_RATE_LIMITED,
    LoginSecurityService,
    normalize_email,
)
from .password_security_service import PasswordSecurityService
from .session_management_service import SessionManagementService

logger = logging.getLogger(__name__)


@dataclass
class AuthResult:
    user: Account
    session_token: str
    expires_at: datetime


class AuthService:

    @staticmethod
    def authenticate(
        email: str,
        password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        allowed_roles: Optional[Iterable[str]] = None,
    ) -> AuthResult:
        """
        Check credentials and open a session.

        The rate limiter runs first. Unknown e-mails, wrong passwords and
        roles outside ``allowed_roles`` all fail the same way so callers
        cannot tell whether the e-mail exists.

        Args:
            email: login e-mail (case-insensitive)
            password: plaintext password
            ip_address: client address
            user_agent: raw User-Agent header
            allowed_roles: restrict login to these roles (e.g. {"sub_admin"})

        Returns:
            AuthResult: the account and its new session token

        Raises:
            RateLimited, AuthenticationFailed, ServiceUnavailable
        """
        email = normalize_email(email)

        status = LoginSecurityService.check_rate_limit(email, ip_address)
        if not status.allowed:
            LoginSecurityService.record_failure(
                email, FAILURE_RATE_LIMITED, ip_address, user_agent, blocked_until=status.blocked_until
            )
            raise RateLimited(blocked_until=status.blocked_until)

        with gateway_errors("credential lookup"):
            account = Account.query.filter_by(Email=email).first() if email else None

        password_ok = PasswordSecurityService.verify_password(
            password or "", account.PasswordHash if account else None
        )
        role_ok = account is not None and (allowed_roles is None or account.Role in set(allowed_roles))

        if not (password_ok and role_ok):
            LoginSecurityService.record_failure(
                email,
                FAILURE_INVALID_CREDENTIALS,
                ip_address,
                user_agent,
                account_id=account.AccountID if account else None,
            )
            raise AuthenticationFailed()

        if not account.IsActive:
            LoginSecurityService.record_failure(
                email, FAILURE_ACCOUNT_INACTIVE, ip_address, user_agent, account_id=account.AccountID
            )
            raise AuthenticationFailed("This account has been deactivated", reason=FAILURE_ACCOUNT_INACTIVE)

        with atomic("open session"):
            LoginSecurityService.log_login_attempt(
                email, True, ip_address=ip_address, user_agent=user_agent, account_id=account.AccountID
            )
            user_session = SessionManagementService.create_session(account.AccountID, ip_address, user_agent)
            account.LastLoginAt = utcnow()
            token, expires_at = user_session.SessionToken, user_session.ExpiresAt

        logger.info("Login succeeded for %s (%s) from %s", account.AccountID, account.Role, ip_address)
        return AuthResult(user=account, session_token=token, expires_at=expires_at)

    @staticmethod
    def logout(session_token: str) -> bool:
        """Invalidate the given session token."""
        revoked = SessionManagementService.invalidate_session(session_token)
        if revoked:
            logger.info("Session logged out")
        return revoked

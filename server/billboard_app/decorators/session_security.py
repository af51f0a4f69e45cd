"""
Session Security Decorators
Bearer-token session checks and role gates for the JSON API
"""

from functools import wraps
from typing import Optional

from flask import g, request
from flask_login import current_user

from ..errors import AuthenticationFailed, AuthorizationDenied
from ..services.session_management_service import SessionManagementService


def bearer_token() -> Optional[str]:
    """Session token from ``Authorization: Bearer <token>``."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def require_active_session(f):
    """
    Decorator to ensure the request carries a valid session token; refreshes
    the session's last activity time
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        session_token = bearer_token()
        if not session_token or not SessionManagementService.validate_session(session_token):
            raise AuthenticationFailed("Your session has expired. Please log in again.", reason="session_invalid")

        SessionManagementService.update_session_activity(session_token)
        g.session_token = session_token

        return f(*args, **kwargs)

    return decorated_function


def require_role(allowed_roles):
    """
    Decorator to require specific user roles
    """
    allowed = {role.lower() for role in allowed_roles}

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                raise AuthenticationFailed("You must be logged in to access this resource.", reason="session_invalid")

            if current_user.Role not in allowed:
                raise AuthorizationDenied("You don't have permission to access this resource.")

            return f(*args, **kwargs)

        return decorated_function
    return decorator

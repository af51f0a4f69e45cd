"""
Workflow error taxonomy.

Every error carries a stable ``code`` and an HTTP status so the JSON error
handler in ``create_app`` can render it without knowing the concrete class.
"""
from datetime import datetime
from typing import Optional


class WorkflowError(Exception):
    code = "workflow_error"
    status_code = 400
    default_message = "Request could not be completed"

    def __init__(self, message: Optional[str] = None, **details):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details

    def to_dict(self) -> dict:
        body = {"success": False, "error": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(WorkflowError):
    code = "validation_error"
    status_code = 400
    default_message = "Invalid input"


class KYCNotApproved(ValidationError):
    code = "kyc_not_approved"
    status_code = 403
    default_message = "KYC verification must be approved before listing billboards"


class InvalidStateTransition(WorkflowError):
    code = "invalid_state_transition"
    status_code = 409
    default_message = "Operation is not valid from the current state"

    def __init__(self, message: Optional[str] = None, current: Optional[str] = None, **details):
        if current is not None:
            details["current_status"] = current
        super().__init__(message, **details)
        self.current = current


class AuthenticationFailed(WorkflowError):
    code = "authentication_failed"
    status_code = 401
    default_message = "Invalid email or password"

    def __init__(self, message: Optional[str] = None, reason: str = "invalid_credentials", **details):
        super().__init__(message, **details)
        self.reason = reason


class RateLimited(AuthenticationFailed):
    code = "rate_limited"
    status_code = 429
    default_message = "Too many failed login attempts. Please try again later."

    def __init__(self, message: Optional[str] = None, blocked_until: Optional[datetime] = None):
        details = {}
        if blocked_until is not None:
            details["blocked_until"] = blocked_until.isoformat()
        super().__init__(message, reason="rate_limited", **details)
        self.blocked_until = blocked_until


class AuthorizationDenied(WorkflowError):
    code = "authorization_denied"
    status_code = 403
    default_message = "You are not allowed to perform this action"


class AdminDeletionForbidden(AuthorizationDenied):
    code = "admin_deletion_forbidden"
    default_message = "Admin accounts cannot be deleted"


class NotFound(WorkflowError):
    code = "not_found"
    status_code = 404
    default_message = "Requested record was not found"


class ServiceUnavailable(WorkflowError):
    code = "service_unavailable"
    status_code = 503
    default_message = "Service temporarily unavailable, please try again"
    retryable = True

    def __init__(self):
        super().__init__(self.default_message)


class PartialFailure(WorkflowError):
    """A secondary step failed after the primary change committed.

    Never raised to callers; collected on the result as a warning.
    """
    code = "partial_failure"
    status_code = 200
    default_message = "Completed with warnings"

    def __init__(self, step: str, message: Optional[str] = None):
        super().__init__(message or f"{step} failed", step=step)
        self.step = step

"""
Admin Audit Service

Records administrative actions (approvals, KYC decisions, deactivations,
deletions) and answers audit-log queries.
"""
from typing import Any, Dict, Iterable, List, Optional

from ..errors import AuthorizationDenied, NotFound
from ..extensions import db
from ..models import Account, AdminAuditLog, ROLE_ADMIN
from .gateway import gateway_errors


def load_actor(account_id: str, roles: Optional[Iterable[str]] = None, *, label: str = "account") -> Account:
    """
    Fetch an account acting on the workflow and check its role.

    Raises:
        NotFound: no such account
        AuthorizationDenied: inactive, or role not in ``roles``
    """
    with gateway_errors(f"load {label}"):
        account = db.session.get(Account, account_id) if account_id else None
    if account is None:
        raise NotFound(f"{label.capitalize()} not found")
    if not account.IsActive:
        raise AuthorizationDenied(f"{label.capitalize()} is not active")
    if roles is not None and account.Role not in set(roles):
        raise AuthorizationDenied()
    return account


def load_admin(admin_id: str) -> Account:
    return load_actor(admin_id, {ROLE_ADMIN}, label="admin")


class AdminAuditService:
    """Service for writing and reading the admin audit log."""

    @staticmethod
    def log_action(
        admin: Account,
        action_type: str,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> AdminAuditLog:
        """Stage an audit row in the caller's transaction."""
        entry = AdminAuditLog(
            AdminID=admin.AccountID,
            AdminName=admin.Name,
            ActionType=action_type,
            TargetType=target_type,
            TargetID=target_id,
            Details=details or {},
        )
        db.session.add(entry)
        return entry

    @staticmethod
    def get_admin_audit_logs(
        admin_id: Optional[str] = None,
        action_type: Optional[str] = None,
        limit: int = 100,
    ) -> List[AdminAuditLog]:
        limit = max(1, min(int(limit), 500))
        with gateway_errors("audit log query"):
            query = AdminAuditLog.query
            if admin_id:
                query = query.filter_by(AdminID=admin_id)
            if action_type:
                query = query.filter_by(ActionType=action_type)
            return query.order_by(AdminAuditLog.CreatedAt.desc()).limit(limit).all()

    @staticmethod
    def serialize(entry: AdminAuditLog) -> Dict[str, Any]:
        return {
            "id": entry.AuditID,
            "admin_id": entry.AdminID,
            "admin_name": entry.AdminName,
            "action_type": entry.ActionType,
            "target_type": entry.TargetType,
            "target_id": entry.TargetID,
            "details": entry.Details or {},
            "created_at": entry.CreatedAt.isoformat() if entry.CreatedAt else None,
        }

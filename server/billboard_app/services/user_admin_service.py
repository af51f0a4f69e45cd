"""
User Administration Service
Account activation changes and staff account creation
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.exc import IntegrityError

from ..errors import InvalidStateTransition, NotFound, PartialFailure, ValidationError
from ..extensions import db
from ..models import (
    Account,
    AdminNotificationPreferences,
    KYC_PENDING,
    NOTIFICATION_USER_UPDATED,
    ROLE_ADMIN,
    ROLE_OWNER,
    ROLE_SUB_ADMIN,
    ROLES,
)
from .admin_audit_service import AdminAuditService, load_admin
from .admin_notification_service import AdminNotificationService
from .gateway import atomic, gateway_errors
from .login_security_service import normalize_email
from .password_security_service import PasswordSecurityService
from .session_management_service import SessionManagementService
from .side_effects import PostCommitActions
from .user_cache import user_cache

logger = logging.getLogger(__name__)


@dataclass
class AccountStatusResult:
    user_id: str
    is_active: bool
    sessions_revoked: Optional[int] = None
    warnings: List[PartialFailure] = field(default_factory=list)


class UserAdminService:

    @staticmethod
    def _set_active(user_id: str, admin_id: str, active: bool, reason: Optional[str]) -> AccountStatusResult:
        admin = load_admin(admin_id)
        if user_id == admin.AccountID:
            raise ValidationError("You cannot change your own account status")

        with atomic("change account status"):
            updated = Account.query.filter(
                Account.AccountID == user_id,
                Account.IsActive.is_(not active),
            ).update({"IsActive": active}, synchronize_session=False)
            if not updated:
                if db.session.get(Account, user_id) is None:
                    raise NotFound("User not found")
                state = "active" if active else "inactive"
                raise InvalidStateTransition(f"Account is already {state}", current=state)
            AdminAuditService.log_action(
                admin, "user_reactivated" if active else "user_deactivated", "user", user_id, {"reason": reason}
            )

        logger.info("Admin %s set account %s active=%s", admin.AccountID, user_id, active)

        result = AccountStatusResult(user_id=user_id, is_active=active)

        def _revoke():
            result.sessions_revoked = SessionManagementService.revoke_all_sessions(user_id)

        after_commit = PostCommitActions()
        if not active:
            after_commit.add("revoke_sessions", _revoke)
        after_commit.add("invalidate_user_cache", user_cache.invalidate, user_id)
        after_commit.add(
            "user_updated_notification",
            AdminNotificationService.publish,
            NOTIFICATION_USER_UPDATED,
            {"user_id": user_id, "is_active": active},
            source_admin=admin,
        )
        result.warnings = after_commit.run()
        return result

    @staticmethod
    def deactivate_user(user_id: str, admin_id: str, reason: Optional[str] = None) -> AccountStatusResult:
        """
        Disable an account, then revoke its sessions.

        The account is disabled even when revocation fails; that failure is
        returned as a warning.
        """
        return UserAdminService._set_active(user_id, admin_id, False, reason)

    @staticmethod
    def reactivate_user(user_id: str, admin_id: str, reason: Optional[str] = None) -> AccountStatusResult:
        return UserAdminService._set_active(user_id, admin_id, True, reason)

    @staticmethod
    def create_account(
        email: str,
        name: str,
        password: str,
        role: str,
        phone: Optional[str] = None,
        is_demo: bool = False,
        created_by: Optional[Account] = None,
    ) -> Account:
        """Create an account after the strong-password and unique-email checks."""
        email = normalize_email(email)
        name = (name or "").strip()
        if not email or "@" not in email:
            raise ValidationError("A valid email address is required")
        if not name:
            raise ValidationError("Name is required")
        if role not in ROLES:
            raise ValidationError(f"Unknown role: {role}")
        is_strong, message = PasswordSecurityService.is_password_strong(password or "")
        if not is_strong:
            raise ValidationError(message)

        with gateway_errors("email uniqueness check"):
            taken = db.session.query(Account.AccountID).filter_by(Email=email).first() is not None
        if taken:
            raise ValidationError("An account with this email already exists")

        try:
            with atomic("create account"):
                account = Account(
                    Email=email,
                    Name=name,
                    Phone=phone,
                    Role=role,
                    PasswordHash=PasswordSecurityService.hash_password(password),
                    IsActive=True,
                    IsDemo=is_demo,
                    KYCStatus=KYC_PENDING if role == ROLE_OWNER else None,
                )
                db.session.add(account)
                db.session.flush()
                if role == ROLE_ADMIN:
                    db.session.add(AdminNotificationPreferences(AdminID=account.AccountID))
                if created_by is not None:
                    AdminAuditService.log_action(
                        created_by, f"{role}_created", "user", account.AccountID, {"email": email}
                    )
        except IntegrityError:
            raise ValidationError("An account with this email already exists")
        return account

    @staticmethod
    def create_sub_admin(admin_id: str, email: str, name: str, password: str, phone: Optional[str] = None) -> Account:
        admin = load_admin(admin_id)
        account = UserAdminService.create_account(
            email, name, password, ROLE_SUB_ADMIN, phone=phone, created_by=admin
        )
        logger.info("Admin %s created sub-admin %s", admin.AccountID, account.AccountID)
        return account

    @staticmethod
    def create_admin(email: str, name: str, password: str) -> Account:
        """Bootstrap an admin (CLI)."""
        return UserAdminService.create_account(email, name, password, ROLE_ADMIN)

    @staticmethod
    def list_users(role: Optional[str] = None, limit: int = 100) -> List[dict]:
        """Newest accounts first, rendered from the read-through user cache."""
        if role is not None and role not in ROLES:
            raise ValidationError(f"Unknown role: {role}")
        limit = max(1, min(int(limit), 500))
        with gateway_errors("list users"):
            query = db.session.query(Account.AccountID)
            if role is not None:
                query = query.filter(Account.Role == role)
            user_ids = [row[0] for row in query.order_by(Account.CreatedAt.desc()).limit(limit).all()]
            return user_cache.get_users(user_ids)

    @staticmethod
    def get_user(user_id: str) -> dict:
        with gateway_errors("load user"):
            summary = user_cache.get_user(user_id)
        if summary is None:
            raise NotFound("User not found")
        return summary

"""
Secure Deletion Service

Deletes a user and every dependent row in one transaction, audited, then
tells every admin which user disappeared so cached lists can be pruned.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy import or_

from ..errors import AdminDeletionForbidden, AuthorizationDenied, NotFound, PartialFailure
from ..extensions import db
from ..models import (
    Account,
    AdminNotification,
    AdminNotificationPreferences,
    Billboard,
    BillboardAssignment,
    BillboardImage,
    Booking,
    KYCDocument,
    NOTIFICATION_USER_DELETED,
    ROLE_ADMIN,
    SiteVisit,
    UserNotification,
    UserSessions,
)
from .admin_audit_service import AdminAuditService, load_admin
from .admin_notification_service import AdminNotificationService
from .gateway import atomic, gateway_errors
from .session_management_service import SessionManagementService
from .side_effects import PostCommitActions
from .user_cache import user_cache

logger = logging.getLogger(__name__)


@dataclass
class DeletionResult:
    user_id: str
    records_deleted: int
    ms: int
    warnings: List[PartialFailure] = field(default_factory=list)


class SecureDeletionService:

    @staticmethod
    def _delete_rows(label: str, query) -> int:
        """Bulk-delete one dependency level; returns rows removed."""
        count = query.delete(synchronize_session=False)
        logger.debug("Secure deletion removed %d row(s) from %s", count, label)
        return count

    @staticmethod
    def _cascade(user_id: str) -> int:
        billboard_ids = [
            row[0] for row in db.session.query(Billboard.BillboardID).filter(Billboard.OwnerID == user_id).all()
        ]

        def on_owned(column):
            return column.in_(billboard_ids) if billboard_ids else None

        def scoped(model, *clauses):
            clauses = [clause for clause in clauses if clause is not None]
            return model.query.filter(or_(*clauses)) if clauses else None

        # Dependency order: children before parents, the account row last.
        # Visits a sub-admin recorded on other owners' billboards are kept.
        steps = [
            ("site_visits", scoped(SiteVisit, on_owned(SiteVisit.BillboardID))),
            ("billboard_assignments", scoped(
                BillboardAssignment,
                on_owned(BillboardAssignment.BillboardID),
                BillboardAssignment.SubAdminID == user_id,
                BillboardAssignment.AssignedBy == user_id,
            )),
            ("bookings", scoped(Booking, on_owned(Booking.BillboardID), Booking.CustomerID == user_id)),
            ("billboard_images", scoped(BillboardImage, on_owned(BillboardImage.BillboardID))),
            ("billboards", scoped(Billboard, Billboard.OwnerID == user_id)),
            ("kyc_documents", scoped(KYCDocument, KYCDocument.AccountID == user_id)),
            ("notifications", scoped(UserNotification, UserNotification.AccountID == user_id)),
            ("admin_notifications", scoped(AdminNotification, AdminNotification.TargetAdminID == user_id)),
            ("admin_notification_preferences", scoped(
                AdminNotificationPreferences, AdminNotificationPreferences.AdminID == user_id)),
            ("user_sessions", scoped(UserSessions, UserSessions.AccountID == user_id)),
            ("users", scoped(Account, Account.AccountID == user_id)),
        ]
        return sum(
            SecureDeletionService._delete_rows(label, query) for label, query in steps if query is not None
        )

    @staticmethod
    def delete_user(target_user_id: str, requesting_admin_id: str, reason: Optional[str] = None) -> DeletionResult:
        """
        Delete a user and all dependent rows.

        Order: revoke sessions (best-effort), cascade delete plus audit row
        in one transaction, then publish ``user_deleted`` to every admin.

        Returns:
            DeletionResult: total rows removed and elapsed milliseconds

        Raises:
            AuthorizationDenied: requester is not an active, non-demo admin
            AdminDeletionForbidden: target is an admin
            NotFound, ServiceUnavailable
        """
        started = time.monotonic()
        admin = load_admin(requesting_admin_id)
        if admin.IsDemo:
            raise AuthorizationDenied("Demo admin accounts cannot delete users")

        with gateway_errors("load deletion target"):
            target = db.session.get(Account, target_user_id) if target_user_id else None
        if target is None:
            raise NotFound("User not found")
        if target.Role == ROLE_ADMIN:
            raise AdminDeletionForbidden()

        user_id = target.AccountID
        snapshot = {"name": target.Name, "email": target.Email, "role": target.Role}
        reason = (reason or "").strip() or None

        warnings = PostCommitActions().add(
            "revoke_sessions", SessionManagementService.revoke_all_sessions, user_id
        ).run()

        with atomic("secure user deletion"):
            records_deleted = SecureDeletionService._cascade(user_id)
            AdminAuditService.log_action(
                admin, "user_deleted", "user", user_id,
                dict(snapshot, reason=reason, records_deleted=records_deleted),
            )

        ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Admin %s deleted user %s (%s): %d record(s) in %d ms",
            requesting_admin_id, user_id, snapshot["role"], records_deleted, ms,
        )

        after_commit = PostCommitActions()
        after_commit.add("invalidate_user_cache", user_cache.invalidate, user_id)
        after_commit.add(
            "user_deleted_notification",
            AdminNotificationService.publish,
            NOTIFICATION_USER_DELETED,
            {
                "user_id": user_id,
                "user_name": snapshot["name"],
                "user_email": snapshot["email"],
                "deleted_by": admin.Name,
                "records_deleted": records_deleted,
                "ms": ms,
                "reason": reason,
            },
            source_admin=admin,
        )
        warnings.extend(after_commit.run())
        return DeletionResult(user_id, records_deleted, ms, warnings)


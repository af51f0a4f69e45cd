"""
Assignment Service

Binds approved billboards to sub-admins for on-site verification. At most
one assignment per billboard is active; assigning again supersedes the
current one instead of failing.
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import InvalidStateTransition, NotFound, PartialFailure, ServiceUnavailable, ValidationError
from ..extensions import db
from ..models import (
    ASSIGNMENT_COMPLETED,
    ASSIGNMENT_PENDING,
    ASSIGNMENT_PRIORITIES,
    ASSIGNMENT_SUPERSEDED,
    Account,
    BILLBOARD_APPROVED,
    Billboard,
    BillboardAssignment,
    NOTIFICATION_DASHBOARD_UPDATE,
    ROLE_SUB_ADMIN,
    utcnow,
)
from .admin_audit_service import AdminAuditService, load_admin
from .admin_notification_service import AdminNotificationService
from .gateway import atomic, gateway_errors
from .side_effects import PostCommitActions

logger = logging.getLogger(__name__)


class AssignmentOutcome(enum.Enum):
    CREATED = "created"
    SUPERSEDED = "superseded"


@dataclass
class AssignmentResult:
    outcome: AssignmentOutcome
    assignment: BillboardAssignment
    superseded_id: Optional[str] = None
    warnings: List[PartialFailure] = field(default_factory=list)

    @property
    def assignment_id(self) -> str:
        return self.assignment.AssignmentID


def retire_active_assignment(billboard_id: str, status: str) -> Optional[str]:
    """
    Release the billboard's active slot inside the caller's transaction.

    Returns:
        Optional[str]: id of the assignment that was active, if any
    """
    current = (
        BillboardAssignment.query.filter_by(ActiveBillboardID=billboard_id)
        .with_for_update()
        .first()
    )
    if current is None:
        return None
    values = {"IsActive": False, "ActiveBillboardID": None, "Status": status}
    if status == ASSIGNMENT_COMPLETED:
        values["CompletedAt"] = utcnow()
    updated = BillboardAssignment.query.filter(
        BillboardAssignment.AssignmentID == current.AssignmentID,
        BillboardAssignment.ActiveBillboardID == billboard_id,
    ).update(values, synchronize_session=False)
    return current.AssignmentID if updated else None


class AssignmentService:

    @staticmethod
    def _assign_once(billboard_id, sub_admin_id, admin, priority, notes):
        with atomic("assign billboard"):
            billboard = (
                Billboard.query.filter_by(BillboardID=billboard_id).with_for_update().first()
            )
            if billboard is None:
                raise NotFound("Billboard not found")
            if billboard.Status != BILLBOARD_APPROVED:
                raise InvalidStateTransition(
                    "Only approved billboards can be assigned for verification", current=billboard.Status
                )

            superseded_id = retire_active_assignment(billboard_id, ASSIGNMENT_SUPERSEDED)
            assignment = BillboardAssignment(
                BillboardID=billboard_id,
                SubAdminID=sub_admin_id,
                AssignedBy=admin.AccountID,
                Status=ASSIGNMENT_PENDING,
                Priority=priority,
                Notes=notes,
                AssignedAt=utcnow(),
                IsActive=True,
                ActiveBillboardID=billboard_id,
            )
            db.session.add(assignment)
            db.session.flush()
            AdminAuditService.log_action(
                admin, "billboard_assigned", "billboard", billboard_id,
                {"sub_admin_id": sub_admin_id, "priority": priority, "superseded_id": superseded_id},
            )
        return assignment, superseded_id

    @staticmethod
    def assign(
        billboard_id: str,
        sub_admin_id: str,
        admin_id: str,
        priority: str = "medium",
        notes: Optional[str] = None,
    ) -> AssignmentResult:
        """
        Assign an approved billboard to an active sub-admin.

        Supersedes any active assignment in the same transaction. If a
        concurrent assignment claims the active slot first, the unique
        constraint on ``ActiveBillboardID`` rejects this insert and the whole
        transaction is retried against the new state.

        Returns:
            AssignmentResult: CREATED, or SUPERSEDED with the retired id

        Raises:
            ValidationError, NotFound, AuthorizationDenied,
            InvalidStateTransition, ServiceUnavailable
        """
        priority = (priority or "medium").lower()
        if priority not in ASSIGNMENT_PRIORITIES:
            raise ValidationError(f"priority must be one of {', '.join(ASSIGNMENT_PRIORITIES)}")
        notes = (notes or "").strip() or None

        admin = load_admin(admin_id)
        with gateway_errors("load sub-admin"):
            sub_admin = db.session.get(Account, sub_admin_id) if sub_admin_id else None
        if sub_admin is None:
            raise NotFound("Sub-admin not found")
        if sub_admin.Role != ROLE_SUB_ADMIN or not sub_admin.IsActive:
            raise ValidationError("Billboards can only be assigned to active sub-admins")

        retries = int(current_app.config.get("ASSIGNMENT_UPSERT_RETRIES", 3))
        for attempt in range(retries + 1):
            try:
                assignment, superseded_id = AssignmentService._assign_once(
                    billboard_id, sub_admin_id, admin, priority, notes
                )
                break
            except IntegrityError:
                logger.info(
                    "Concurrent assignment on billboard %s (attempt %d/%d); retrying",
                    billboard_id, attempt + 1, retries + 1,
                )
        else:
            logger.error("Could not claim the active assignment slot for billboard %s", billboard_id)
            raise ServiceUnavailable()

        outcome = AssignmentOutcome.SUPERSEDED if superseded_id else AssignmentOutcome.CREATED
        logger.info(
            "Admin %s assigned billboard %s to %s (%s, priority=%s)",
            admin.AccountID, billboard_id, sub_admin_id, outcome.value, priority,
        )

        after_commit = PostCommitActions()
        after_commit.add(
            "dashboard_update",
            AdminNotificationService.publish,
            NOTIFICATION_DASHBOARD_UPDATE,
            {
                "event": "billboard_assigned",
                "billboard_id": billboard_id,
                "sub_admin_id": sub_admin_id,
                "assignment_id": assignment.AssignmentID,
                "outcome": outcome.value,
            },
            source_admin=admin,
        )
        return AssignmentResult(outcome, assignment, superseded_id, after_commit.run())

    @staticmethod
    def get_assignments_for(sub_admin_id: str) -> List[Dict[str, Any]]:
        """Active worklist for a sub-admin, newest first, with billboard and owner fields."""
        with gateway_errors("sub-admin assignments"):
            rows = (
                db.session.query(BillboardAssignment, Billboard, Account)
                .join(Billboard, Billboard.BillboardID == BillboardAssignment.BillboardID)
                .join(Account, Account.AccountID == Billboard.OwnerID)
                .filter(
                    BillboardAssignment.SubAdminID == sub_admin_id,
                    BillboardAssignment.IsActive.is_(True),
                )
                .order_by(BillboardAssignment.AssignedAt.desc())
                .all()
            )
        return [serialize_assignment(assignment, billboard, owner) for assignment, billboard, owner in rows]

    @staticmethod
    def assignment_health() -> Dict[str, int]:
        """Counts used by the admin dashboard to spot routing gaps."""
        with gateway_errors("assignment health"):
            unassigned = (
                db.session.query(func.count(Billboard.BillboardID))
                .outerjoin(BillboardAssignment, BillboardAssignment.ActiveBillboardID == Billboard.BillboardID)
                .filter(Billboard.Status == BILLBOARD_APPROVED, BillboardAssignment.AssignmentID.is_(None))
                .scalar()
            )
            orphaned = (
                db.session.query(func.count(BillboardAssignment.AssignmentID))
                .join(Account, Account.AccountID == BillboardAssignment.SubAdminID)
                .filter(BillboardAssignment.IsActive.is_(True), Account.IsActive.is_(False))
                .scalar()
            )
            by_status = dict(
                db.session.query(BillboardAssignment.Status, func.count(BillboardAssignment.AssignmentID))
                .group_by(BillboardAssignment.Status)
                .all()
            )
        return {
            "approved_without_assignment": unassigned or 0,
            "assigned_to_inactive_sub_admins": orphaned or 0,
            "pending": by_status.get(ASSIGNMENT_PENDING, 0),
            "completed": by_status.get(ASSIGNMENT_COMPLETED, 0),
            "superseded": by_status.get(ASSIGNMENT_SUPERSEDED, 0),
        }

    @staticmethod
    def integrity_issues() -> List[Dict[str, Any]]:
        """Active assignments that no longer make sense."""
        issues = []
        with gateway_errors("assignment integrity"):
            rows = (
                db.session.query(BillboardAssignment, Billboard.Status, Account.Role, Account.IsActive)
                .join(Billboard, Billboard.BillboardID == BillboardAssignment.BillboardID)
                .join(Account, Account.AccountID == BillboardAssignment.SubAdminID)
                .filter(BillboardAssignment.IsActive.is_(True))
                .all()
            )
        for assignment, billboard_status, role, account_active in rows:
            if billboard_status != BILLBOARD_APPROVED:
                issues.append({
                    "assignment_id": assignment.AssignmentID,
                    "billboard_id": assignment.BillboardID,
                    "issue": "billboard_not_approved",
                    "billboard_status": billboard_status,
                })
            if role != ROLE_SUB_ADMIN or not account_active:
                issues.append({
                    "assignment_id": assignment.AssignmentID,
                    "billboard_id": assignment.BillboardID,
                    "issue": "sub_admin_unavailable",
                    "sub_admin_id": assignment.SubAdminID,
                })
        return issues


def serialize_assignment(
    assignment: BillboardAssignment,
    billboard: Optional[Billboard] = None,
    owner: Optional[Account] = None,
) -> Dict[str, Any]:
    data = {
        "id": assignment.AssignmentID,
        "billboard_id": assignment.BillboardID,
        "sub_admin_id": assignment.SubAdminID,
        "assigned_by": assignment.AssignedBy,
        "status": assignment.Status,
        "priority": assignment.Priority,
        "notes": assignment.Notes,
        "is_active": bool(assignment.IsActive),
        "assigned_at": assignment.AssignedAt.isoformat() if assignment.AssignedAt else None,
        "completed_at": assignment.CompletedAt.isoformat() if assignment.CompletedAt else None,
        "has_draft": bool(assignment.DraftReport),
    }
    if billboard is not None:
        data["billboard"] = {
            "title": billboard.Title,
            "location_address": billboard.LocationAddress,
            "city": billboard.City,
            "state": billboard.State,
            "billboard_type": billboard.BillboardType,
            "status": billboard.Status,
        }
    if owner is not None:
        data["owner"] = {"name": owner.Name, "email": owner.Email, "phone": owner.Phone}
    return data

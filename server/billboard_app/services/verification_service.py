"""
Verification Service

Records a sub-admin's site visit and, in the same transaction, moves the
billboard to active/rejected and completes the assignment.
"""
import logging
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional

from ..errors import AuthorizationDenied, PartialFailure, ValidationError
from ..extensions import db
from ..models import (
    ASSIGNMENT_COMPLETED,
    BILLBOARD_ACTIVE,
    BILLBOARD_REJECTED,
    Billboard,
    BillboardAssignment,
    NOTIFICATION_DASHBOARD_UPDATE,
    ROLE_SUB_ADMIN,
    SiteVisit,
    utcnow,
)
from .admin_audit_service import load_actor
from .admin_notification_service import AdminNotificationService
from .assignment_service import retire_active_assignment
from .billboard_lifecycle_service import BillboardLifecycleService
from .gateway import atomic, gateway_errors
from .side_effects import PostCommitActions
from .user_notification_service import UserNotificationService

logger = logging.getLogger(__name__)

LOCATION_ACCURACY = ("exact", "approximate", "incorrect")
STRUCTURAL_CONDITION = ("excellent", "good", "fair", "poor")
TEXT_FIELDS = (
    "owner_selfie_url", "billboard_photo_url", "verification_notes", "location_accuracy",
    "structural_condition", "recommendations", "accessibility_notes",
)


@dataclass
class SiteVisitReport:
    owner_selfie_url: Optional[str] = None
    billboard_photo_url: Optional[str] = None
    verification_notes: Optional[str] = None
    location_accuracy: Optional[str] = None
    structural_condition: Optional[str] = None
    visibility_rating: Optional[int] = None
    issues_found: List[str] = field(default_factory=list)
    recommendations: Optional[str] = None
    accessibility_notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SiteVisitReport":
        data = data or {}
        if not isinstance(data, dict):
            raise ValidationError("report must be an object")
        known = {f.name for f in fields(cls)}
        report = cls(**{key: value for key, value in data.items() if key in known})
        if report.issues_found is None:
            report.issues_found = []
        return report

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def merged_with(self, draft: Optional[Dict[str, Any]]) -> "SiteVisitReport":
        """Fill fields this report leaves empty from a saved draft."""
        if not draft:
            return self
        base = SiteVisitReport.from_dict(draft).to_dict()
        for key, value in self.to_dict().items():
            if value not in (None, "", []):
                base[key] = value
        return SiteVisitReport.from_dict(base)

    def validate(self, for_submission: bool = True):
        """Checklist checks; photos and notes are only required on submission."""
        for name in TEXT_FIELDS:
            value = getattr(self, name)
            if value is not None and not isinstance(value, str):
                raise ValidationError(f"{name} must be a string")
        if self.visibility_rating is not None:
            rating = self.visibility_rating
            if isinstance(rating, bool) or not isinstance(rating, (int, str)):
                raise ValidationError("visibility_rating must be a whole number between 1 and 10")
            try:
                rating = int(rating)
            except ValueError:
                raise ValidationError("visibility_rating must be a whole number between 1 and 10")
            if not 1 <= rating <= 10:
                raise ValidationError("visibility_rating must be between 1 and 10")
            self.visibility_rating = rating
        if self.location_accuracy is not None and self.location_accuracy not in LOCATION_ACCURACY:
            raise ValidationError(f"location_accuracy must be one of {', '.join(LOCATION_ACCURACY)}")
        if self.structural_condition is not None and self.structural_condition not in STRUCTURAL_CONDITION:
            raise ValidationError(f"structural_condition must be one of {', '.join(STRUCTURAL_CONDITION)}")
        if not isinstance(self.issues_found, list) or not all(isinstance(i, str) for i in self.issues_found):
            raise ValidationError("issues_found must be a list of strings")

        if for_submission:
            missing = [
                name for name in ("owner_selfie_url", "billboard_photo_url", "verification_notes")
                if not (getattr(self, name) or "").strip()
            ]
            if missing:
                raise ValidationError("Missing required fields: " + ", ".join(missing), missing=missing)


@dataclass
class VerificationResult:
    visit_id: str
    billboard_id: str
    billboard_status: str
    assignment_id: str
    warnings: List[PartialFailure] = field(default_factory=list)


def _active_assignment(billboard_id: str, sub_admin_id: str, lock: bool = False) -> BillboardAssignment:
    query = BillboardAssignment.query.filter_by(ActiveBillboardID=billboard_id, SubAdminID=sub_admin_id)
    if lock:
        query = query.with_for_update()
    assignment = query.first()
    if assignment is None:
        raise AuthorizationDenied("This billboard is not assigned to you for verification")
    return assignment


class VerificationService:

    @staticmethod
    def record_visit(billboard_id: str, sub_admin_id: str, decision: bool, report) -> VerificationResult:
        """
        Store a site visit and apply its decision atomically.

        Args:
            billboard_id: billboard visited
            sub_admin_id: sub-admin holding the active assignment
            decision: True to activate, False to reject
            report: SiteVisitReport or dict

        Raises:
            ValidationError, AuthorizationDenied, InvalidStateTransition,
            NotFound, ServiceUnavailable
        """
        if not isinstance(report, SiteVisitReport):
            report = SiteVisitReport.from_dict(report)
        if not isinstance(decision, bool):
            raise ValidationError("decision must be true or false")
        sub_admin = load_actor(sub_admin_id, {ROLE_SUB_ADMIN}, label="sub-admin")

        with atomic("record site visit"):
            assignment = _active_assignment(billboard_id, sub_admin.AccountID, lock=True)
            report = report.merged_with(assignment.DraftReport)
            report.validate(for_submission=True)

            visit = SiteVisit(
                BillboardID=billboard_id,
                SubAdminID=sub_admin.AccountID,
                SubAdminName=sub_admin.Name,
                AssignmentID=assignment.AssignmentID,
                IsVerified=decision,
                OwnerSelfieURL=report.owner_selfie_url,
                BillboardPhotoURL=report.billboard_photo_url,
                VerificationNotes=report.verification_notes.strip(),
                LocationAccuracy=report.location_accuracy,
                StructuralCondition=report.structural_condition,
                VisibilityRating=report.visibility_rating,
                IssuesFound=list(report.issues_found or []),
                Recommendations=report.recommendations,
                AccessibilityNotes=report.accessibility_notes,
                VisitDate=utcnow(),
            )
            db.session.add(visit)
            db.session.flush()

            action = "verification_passed" if decision else "verification_failed"
            extra = {} if decision else {"RejectionReason": report.verification_notes.strip()}
            BillboardLifecycleService.apply_transition(billboard_id, action, extra)

            retire_active_assignment(billboard_id, ASSIGNMENT_COMPLETED)
            owner_id = db.session.query(Billboard.OwnerID).filter_by(BillboardID=billboard_id).scalar()
            visit_id, assignment_id = visit.VisitID, assignment.AssignmentID

        status = BILLBOARD_ACTIVE if decision else BILLBOARD_REJECTED
        logger.info(
            "Sub-admin %s recorded site visit %s for billboard %s -> %s",
            sub_admin.AccountID, visit_id, billboard_id, status,
        )

        after_commit = PostCommitActions()
        after_commit.add(
            "dashboard_update",
            AdminNotificationService.publish,
            NOTIFICATION_DASHBOARD_UPDATE,
            {"event": "site_visit_recorded", "billboard_id": billboard_id, "status": status, "visit_id": visit_id},
            source_admin=sub_admin,
        )
        if decision:
            owner_message = ("Billboard verified", "Your billboard passed verification and is now live.", "success")
        else:
            owner_message = ("Billboard verification failed", "Your billboard did not pass the on-site verification.", "error")
        after_commit.add("owner_notification", UserNotificationService.create_notification, owner_id, *owner_message)

        return VerificationResult(visit_id, billboard_id, status, assignment_id, after_commit.run())

    @staticmethod
    def save_draft(billboard_id: str, sub_admin_id: str, report) -> Dict[str, Any]:
        """Store a partial report on the active assignment without submission checks."""
        if not isinstance(report, SiteVisitReport):
            report = SiteVisitReport.from_dict(report)
        report.validate(for_submission=False)
        sub_admin = load_actor(sub_admin_id, {ROLE_SUB_ADMIN}, label="sub-admin")

        with atomic("save site visit draft"):
            assignment = _active_assignment(billboard_id, sub_admin.AccountID, lock=True)
            draft = report.merged_with(assignment.DraftReport).to_dict()
            assignment.DraftReport = draft
        return draft

    @staticmethod
    def get_verification_history(sub_admin_id: str, limit: int = 100) -> List[Dict[str, Any]]:
        """Site visits by a sub-admin, newest first."""
        limit = max(1, min(int(limit), 500))
        with gateway_errors("verification history"):
            rows = (
                db.session.query(SiteVisit, Billboard.Title, Billboard.City)
                .join(Billboard, Billboard.BillboardID == SiteVisit.BillboardID)
                .filter(SiteVisit.SubAdminID == sub_admin_id)
                .order_by(SiteVisit.VisitDate.desc())
                .limit(limit)
                .all()
            )
        return [serialize_visit(visit, title, city) for visit, title, city in rows]


def serialize_visit(visit: SiteVisit, billboard_title: Optional[str] = None, city: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": visit.VisitID,
        "billboard_id": visit.BillboardID,
        "billboard_title": billboard_title,
        "city": city,
        "sub_admin_id": visit.SubAdminID,
        "sub_admin_name": visit.SubAdminName,
        "assignment_id": visit.AssignmentID,
        "is_verified": bool(visit.IsVerified),
        "owner_selfie_url": visit.OwnerSelfieURL,
        "billboard_photo_url": visit.BillboardPhotoURL,
        "verification_notes": visit.VerificationNotes,
        "location_accuracy": visit.LocationAccuracy,
        "structural_condition": visit.StructuralCondition,
        "visibility_rating": visit.VisibilityRating,
        "issues_found": visit.IssuesFound or [],
        "recommendations": visit.Recommendations,
        "accessibility_notes": visit.AccessibilityNotes,
        "visit_date": visit.VisitDate.isoformat() if visit.VisitDate else None,
    }

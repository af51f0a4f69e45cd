"""
Billboard Lifecycle Service

Owns the billboard status graph:

    draft    --submit-->                   pending
    rejected --submit (resubmission)-->    pending
    pending  --approve-->                  approved
    pending  --reject(reason)-->           rejected
    approved --verification passed-->      active
    approved --verification failed-->      rejected
    active   --request_reverification-->   approved
    active   --deactivate-->               inactive
    inactive --reactivate-->               active

Every transition is a conditional UPDATE guarded by the expected source
status, so of two concurrent callers exactly one wins and the other gets
InvalidStateTransition with nothing changed.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, exists

from ..errors import AuthorizationDenied, InvalidStateTransition, NotFound, PartialFailure, ValidationError
from ..extensions import db
from ..models import (
    Account,
    BILLBOARD_ACTIVE,
    BILLBOARD_APPROVED,
    BILLBOARD_DRAFT,
    BILLBOARD_INACTIVE,
    BILLBOARD_PENDING,
    BILLBOARD_REJECTED,
    Billboard,
    BillboardAssignment,
    BillboardImage,
    NOTIFICATION_DASHBOARD_UPDATE,
    ROLE_OWNER,
    SiteVisit,
    utcnow,
)
from .admin_audit_service import AdminAuditService, load_actor, load_admin
from .admin_notification_service import AdminNotificationService
from .gateway import atomic, gateway_errors
from .kyc_service import KYCService
from .side_effects import PostCommitActions
from .user_notification_service import UserNotificationService

logger = logging.getLogger(__name__)

# action -> (allowed source states, target state)
TRANSITIONS = {
    "submit": ((BILLBOARD_DRAFT, BILLBOARD_REJECTED), BILLBOARD_PENDING),
    "approve": ((BILLBOARD_PENDING,), BILLBOARD_APPROVED),
    "reject": ((BILLBOARD_PENDING,), BILLBOARD_REJECTED),
    "verification_passed": ((BILLBOARD_APPROVED,), BILLBOARD_ACTIVE),
    "verification_failed": ((BILLBOARD_APPROVED,), BILLBOARD_REJECTED),
    "request_reverification": ((BILLBOARD_ACTIVE,), BILLBOARD_APPROVED),
    "deactivate": ((BILLBOARD_ACTIVE,), BILLBOARD_INACTIVE),
    "reactivate": ((BILLBOARD_INACTIVE,), BILLBOARD_ACTIVE),
}

EDITABLE_STATES = (BILLBOARD_DRAFT, BILLBOARD_REJECTED)

TEXT_FIELDS = {
    "title": "Title",
    "description": "Description",
    "billboard_type": "BillboardType",
    "location_address": "LocationAddress",
    "city": "City",
    "state": "State",
}
NUMERIC_FIELDS = {
    "width": "Width",
    "height": "Height",
    "price_per_day": "PricePerDay",
}
REQUIRED_FOR_SUBMISSION = (
    "title", "location_address", "city", "state", "width", "height", "price_per_day", "billboard_type",
)


@dataclass
class TransitionResult:
    billboard_id: str
    status: str
    warnings: List[PartialFailure] = field(default_factory=list)


def _parse_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Map API field names to column values, validating numbers."""
    values = {}
    for key, column in TEXT_FIELDS.items():
        if key in payload:
            raw = payload.get(key)
            if raw is not None and not isinstance(raw, str):
                raise ValidationError(f"{key} must be a string")
            values[column] = raw.strip() if raw is not None else None
    for key, column in NUMERIC_FIELDS.items():
        if key in payload:
            raw = payload.get(key)
            if raw in (None, ""):
                values[column] = None
                continue
            if isinstance(raw, bool) or not isinstance(raw, (int, float, str)):
                raise ValidationError(f"{key} must be a number")
            try:
                number = Decimal(str(raw))
            except (InvalidOperation, ValueError):
                raise ValidationError(f"{key} must be a number")
            if not number.is_finite() or number <= 0:
                raise ValidationError(f"{key} must be greater than zero")
            values[column] = number
    return values


def _parse_images(payload: Dict[str, Any]) -> Optional[List[str]]:
    if "images" not in payload:
        return None
    images = payload.get("images") or []
    if not isinstance(images, list):
        raise ValidationError("images must be a list of URLs")
    urls = [url.strip() for url in images if isinstance(url, str) and url.strip()]
    if len(urls) != len(images):
        raise ValidationError("images must be a list of URLs")
    return urls


def missing_submission_fields(billboard: Billboard) -> List[str]:
    missing = []
    for key in REQUIRED_FOR_SUBMISSION:
        column = TEXT_FIELDS.get(key) or NUMERIC_FIELDS[key]
        value = getattr(billboard, column)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(key)
    if not billboard.images:
        missing.append("images")
    return missing


class BillboardLifecycleService:

    @staticmethod
    def apply_transition(billboard_id: str, action: str, extra: Optional[Dict[str, Any]] = None, *condition) -> None:
        """
        Conditionally move a billboard along ``action`` inside the caller's
        transaction.

        Raises:
            NotFound: billboard does not exist
            InvalidStateTransition: current status is not a valid source
        """
        sources, target = TRANSITIONS[action]
        values = {"Status": target, "UpdatedAt": utcnow()}
        values.update(extra or {})
        updated = Billboard.query.filter(
            Billboard.BillboardID == billboard_id,
            Billboard.Status.in_(sources),
            *condition,
        ).update(values, synchronize_session=False)
        if updated:
            return

        current = db.session.query(Billboard.Status).filter(Billboard.BillboardID == billboard_id).scalar()
        if current is None:
            raise NotFound("Billboard not found")
        raise InvalidStateTransition(f"Cannot {action.replace('_', ' ')} a billboard that is {current}", current=current)

    # ------------------------------------------------------------------
    # Owner operations
    # ------------------------------------------------------------------

    @staticmethod
    def create_billboard(owner_id: str, payload: Dict[str, Any]) -> Billboard:
        """Create a draft. Drafts do not need approved KYC."""
        owner = load_actor(owner_id, {ROLE_OWNER}, label="owner")
        values = _parse_payload(payload or {})
        images = _parse_images(payload or {}) or []

        with atomic("create billboard"):
            billboard = Billboard(OwnerID=owner.AccountID, Status=BILLBOARD_DRAFT, **values)
            billboard.images = [BillboardImage(ImageURL=url) for url in images]
            db.session.add(billboard)

        logger.info("Owner %s created draft billboard %s", owner.AccountID, billboard.BillboardID)
        return billboard

    @staticmethod
    def update_billboard(billboard_id: str, owner_id: str, payload: Dict[str, Any]) -> Billboard:
        """Edit a draft or rejected billboard owned by ``owner_id``."""
        values = _parse_payload(payload or {})
        images = _parse_images(payload or {})

        with atomic("update billboard"):
            billboard = (
                Billboard.query.filter_by(BillboardID=billboard_id).with_for_update().first()
            )
            if billboard is None:
                raise NotFound("Billboard not found")
            if billboard.OwnerID != owner_id:
                raise AuthorizationDenied("You can only edit your own billboards")
            if billboard.Status not in EDITABLE_STATES:
                raise InvalidStateTransition(
                    f"Billboards that are {billboard.Status} cannot be edited", current=billboard.Status
                )
            for column, value in values.items():
                setattr(billboard, column, value)
            if images is not None:
                billboard.images = [BillboardImage(ImageURL=url) for url in images]

        return billboard

    @staticmethod
    def submit(billboard_id: str, owner_id: str) -> TransitionResult:
        """
        Send a draft (or a rejected billboard) for admin review.

        Raises:
            KYCNotApproved, ValidationError, AuthorizationDenied,
            InvalidStateTransition, NotFound
        """
        owner = load_actor(owner_id, {ROLE_OWNER}, label="owner")
        KYCService.ensure_can_list(owner)

        with atomic("submit billboard"):
            billboard = db.session.get(Billboard, billboard_id)
            if billboard is None:
                raise NotFound("Billboard not found")
            if billboard.OwnerID != owner.AccountID:
                raise AuthorizationDenied("You can only submit your own billboards")
            missing = missing_submission_fields(billboard)
            if missing:
                raise ValidationError("Missing required fields: " + ", ".join(missing), missing=missing)
            BillboardLifecycleService.apply_transition(
                billboard_id, "submit", {"RejectionReason": None}, Billboard.OwnerID == owner.AccountID
            )

        logger.info("Billboard %s submitted for review by %s", billboard_id, owner.AccountID)
        return TransitionResult(billboard_id, BILLBOARD_PENDING)

    @staticmethod
    def create_and_submit(owner_id: str, payload: Dict[str, Any]) -> Billboard:
        """Create a billboard directly in ``pending``; nothing is stored if any check fails."""
        owner = load_actor(owner_id, {ROLE_OWNER}, label="owner")
        KYCService.ensure_can_list(owner)
        values = _parse_payload(payload or {})
        images = _parse_images(payload or {}) or []

        with atomic("create and submit billboard"):
            billboard = Billboard(OwnerID=owner.AccountID, Status=BILLBOARD_PENDING, **values)
            billboard.images = [BillboardImage(ImageURL=url) for url in images]
            missing = missing_submission_fields(billboard)
            if missing:
                raise ValidationError("Missing required fields: " + ", ".join(missing), missing=missing)
            db.session.add(billboard)

        logger.info("Owner %s submitted new billboard %s", owner.AccountID, billboard.BillboardID)
        return billboard

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    @staticmethod
    def _admin_transition(
        billboard_id: str,
        admin_id: str,
        action: str,
        extra: Optional[Dict[str, Any]] = None,
        owner_message=None,
        condition=(),
    ) -> TransitionResult:
        admin = load_admin(admin_id)
        target = TRANSITIONS[action][1]

        with atomic(f"billboard {action}"):
            BillboardLifecycleService.apply_transition(billboard_id, action, extra, *condition)
            owner_id = db.session.query(Billboard.OwnerID).filter_by(BillboardID=billboard_id).scalar()
            AdminAuditService.log_action(
                admin, f"billboard_{action}", "billboard", billboard_id, {
                    key: value for key, value in (extra or {}).items()
                    if key in ("AdminNotes", "RejectionReason")
                },
            )

        logger.info("Admin %s: billboard %s -> %s (%s)", admin.AccountID, billboard_id, target, action)

        after_commit = PostCommitActions()
        after_commit.add(
            "dashboard_update",
            AdminNotificationService.publish,
            NOTIFICATION_DASHBOARD_UPDATE,
            {"billboard_id": billboard_id, "status": target, "event": action},
            source_admin=admin,
        )
        if owner_message:
            title, message, kind = owner_message
            after_commit.add("owner_notification", UserNotificationService.create_notification, owner_id, title, message, kind)
        return TransitionResult(billboard_id, target, after_commit.run())

    @staticmethod
    def approve(billboard_id: str, admin_id: str, notes: Optional[str] = None) -> TransitionResult:
        """pending -> approved. Does not assign a verifier."""
        notes = (notes or "").strip() or None
        return BillboardLifecycleService._admin_transition(
            billboard_id, admin_id, "approve",
            {"ApprovedAt": utcnow(), "ApprovedBy": admin_id, "AdminNotes": notes},
            owner_message=(
                "Billboard approved",
                "Your billboard was approved and is awaiting an on-site verification visit.",
                "success",
            ),
        )

    @staticmethod
    def reject(billboard_id: str, admin_id: str, reason: str) -> TransitionResult:
        """pending -> rejected. An empty reason is rejected before anything changes."""
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A rejection reason is required")
        return BillboardLifecycleService._admin_transition(
            billboard_id, admin_id, "reject",
            {"RejectionReason": reason},
            owner_message=("Billboard rejected", f"Your billboard was rejected: {reason}", "error"),
        )

    @staticmethod
    def request_reverification(billboard_id: str, admin_id: str) -> TransitionResult:
        """active -> approved; prior site visits are kept."""
        return BillboardLifecycleService._admin_transition(
            billboard_id, admin_id, "request_reverification",
            owner_message=(
                "Billboard re-verification",
                "Your billboard will be visited again for verification.",
                "info",
            ),
        )

    @staticmethod
    def deactivate(billboard_id: str, admin_id: str) -> TransitionResult:
        return BillboardLifecycleService._admin_transition(
            billboard_id, admin_id, "deactivate",
            owner_message=("Billboard deactivated", "Your billboard is no longer listed.", "warning"),
        )

    @staticmethod
    def reactivate(billboard_id: str, admin_id: str) -> TransitionResult:
        """inactive -> active, only when a verified site visit exists."""
        verified = exists().where(and_(SiteVisit.BillboardID == billboard_id, SiteVisit.IsVerified.is_(True)))
        try:
            return BillboardLifecycleService._admin_transition(
                billboard_id, admin_id, "reactivate",
                owner_message=("Billboard reactivated", "Your billboard is listed again.", "success"),
                condition=(verified,),
            )
        except InvalidStateTransition as exc:
            if exc.current == BILLBOARD_INACTIVE:
                raise InvalidStateTransition(
                    "Billboard has no verified site visit and must be verified first", current=exc.current
                )
            raise

    # ------------------------------------------------------------------
    # Queues
    # ------------------------------------------------------------------

    @staticmethod
    def list_pending() -> List[Billboard]:
        with gateway_errors("pending billboards"):
            return (
                Billboard.query.filter_by(Status=BILLBOARD_PENDING)
                .order_by(Billboard.UpdatedAt.desc(), Billboard.CreatedAt.desc())
                .all()
            )

    @staticmethod
    def list_awaiting_verification() -> List[Dict[str, Any]]:
        """Approved billboards, oldest approval first, with assignment coverage."""
        with gateway_errors("billboards awaiting verification"):
            rows = (
                db.session.query(Billboard, BillboardAssignment.AssignmentID, BillboardAssignment.SubAdminID)
                .outerjoin(BillboardAssignment, BillboardAssignment.ActiveBillboardID == Billboard.BillboardID)
                .filter(Billboard.Status == BILLBOARD_APPROVED)
                .order_by(Billboard.ApprovedAt.asc())
                .all()
            )
        result = []
        for billboard, assignment_id, sub_admin_id in rows:
            item = serialize_billboard(billboard)
            item["has_active_assignment"] = assignment_id is not None
            item["assigned_sub_admin_id"] = sub_admin_id
            result.append(item)
        return result


def serialize_billboard(billboard: Billboard) -> Dict[str, Any]:
    def _num(value):
        return float(value) if value is not None else None

    owner: Optional[Account] = billboard.owner
    return {
        "id": billboard.BillboardID,
        "owner_id": billboard.OwnerID,
        "owner_name": owner.Name if owner else None,
        "title": billboard.Title,
        "description": billboard.Description,
        "billboard_type": billboard.BillboardType,
        "location_address": billboard.LocationAddress,
        "city": billboard.City,
        "state": billboard.State,
        "width": _num(billboard.Width),
        "height": _num(billboard.Height),
        "price_per_day": _num(billboard.PricePerDay),
        "status": billboard.Status,
        "admin_notes": billboard.AdminNotes,
        "rejection_reason": billboard.RejectionReason,
        "approved_at": billboard.ApprovedAt.isoformat() if billboard.ApprovedAt else None,
        "images": [image.ImageURL for image in billboard.images],
        "created_at": billboard.CreatedAt.isoformat() if billboard.CreatedAt else None,
    }

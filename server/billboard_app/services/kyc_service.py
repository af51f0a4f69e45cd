"""
KYC Service

Owns the owner KYC state machine:

    pending   --submit_documents-->            submitted
    rejected  --submit_documents-->            submitted
    submitted --approve-->                     approved
    submitted --reject(notes)-->               rejected
    approved  --request_kyc_reverification-->  pending

Only approved owners may submit billboards for review.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ..errors import InvalidStateTransition, KYCNotApproved, NotFound, PartialFailure, ValidationError
from ..extensions import db
from ..models import (
    Account,
    KYC_APPROVED,
    KYC_PENDING,
    KYC_REJECTED,
    KYC_SUBMITTED,
    KYCDocument,
    NOTIFICATION_USER_UPDATED,
    ROLE_OWNER,
)
from .admin_audit_service import AdminAuditService, load_actor, load_admin
from .admin_notification_service import AdminNotificationService
from .gateway import atomic
from .side_effects import PostCommitActions
from .user_cache import user_cache
from .user_notification_service import UserNotificationService

logger = logging.getLogger(__name__)

DOCUMENT_TYPES = {"identity", "business_registration", "address_proof", "tax", "other"}


@dataclass
class KYCResult:
    user_id: str
    kyc_status: str
    warnings: List[PartialFailure] = field(default_factory=list)


class KYCService:

    @staticmethod
    def ensure_can_list(owner: Account):
        """Raise KYCNotApproved unless the owner's KYC is approved."""
        if owner.KYCStatus != KYC_APPROVED:
            raise KYCNotApproved(current_status=owner.KYCStatus)

    @staticmethod
    def _transition(user_id: str, from_states: Iterable[str], to_state: str, notes: Optional[str] = None) -> None:
        updated = Account.query.filter(
            Account.AccountID == user_id,
            Account.Role == ROLE_OWNER,
            Account.KYCStatus.in_(list(from_states)),
        ).update({"KYCStatus": to_state, "RejectionNotes": notes}, synchronize_session=False)
        if updated:
            return
        owner = db.session.get(Account, user_id)
        if owner is None or owner.Role != ROLE_OWNER:
            raise NotFound("Owner not found")
        raise InvalidStateTransition(
            f"KYC cannot move from {owner.KYCStatus} to {to_state}", current=owner.KYCStatus
        )

    @staticmethod
    def submit_documents(owner_id: str, documents: List[Dict[str, Any]]) -> KYCResult:
        """
        Attach KYC documents and move the owner to ``submitted``.

        Args:
            owner_id: the owner submitting
            documents: [{"document_type": ..., "document_url": ...}, ...]
        """
        if documents is None:
            documents = []
        if not isinstance(documents, list):
            raise ValidationError("documents must be a list")
        cleaned = []
        for doc in documents:
            if not isinstance(doc, dict):
                raise ValidationError("Each document must be an object with document_type and document_url")
            doc_type, doc_url = doc.get("document_type") or "", doc.get("document_url") or ""
            if not isinstance(doc_type, str) or not isinstance(doc_url, str):
                raise ValidationError("document_type and document_url must be strings")
            doc_type, doc_url = doc_type.strip(), doc_url.strip()
            if doc_type not in DOCUMENT_TYPES:
                raise ValidationError(f"Unsupported document type: {doc_type or 'missing'}")
            if not doc_url:
                raise ValidationError("Each document needs a document_url")
            cleaned.append((doc_type, doc_url))
        if not cleaned:
            raise ValidationError("At least one KYC document is required")

        owner = load_actor(owner_id, {ROLE_OWNER}, label="owner")
        with atomic("submit kyc documents"):
            KYCService._transition(owner.AccountID, (KYC_PENDING, KYC_REJECTED), KYC_SUBMITTED)
            db.session.add_all(
                KYCDocument(AccountID=owner.AccountID, DocumentType=doc_type, DocumentURL=doc_url)
                for doc_type, doc_url in cleaned
            )
        user_cache.invalidate(owner.AccountID)

        logger.info("Owner %s submitted %d KYC document(s)", owner.AccountID, len(cleaned))
        return KYCResult(user_id=owner.AccountID, kyc_status=KYC_SUBMITTED)

    @staticmethod
    def _admin_decision(user_id, admin_id, from_states, to_state, action, notes=None, owner_message=None):
        admin = load_admin(admin_id)
        with atomic(f"kyc {action}"):
            KYCService._transition(user_id, from_states, to_state, notes)
            AdminAuditService.log_action(
                admin, f"kyc_{action}", "user", user_id, {"kyc_status": to_state, "notes": notes}
            )

        logger.info("Admin %s set KYC of %s to %s", admin.AccountID, user_id, to_state)
        after_commit = PostCommitActions()
        after_commit.add("invalidate_user_cache", user_cache.invalidate, user_id)
        after_commit.add(
            "user_updated_notification",
            AdminNotificationService.publish,
            NOTIFICATION_USER_UPDATED,
            {"user_id": user_id, "kyc_status": to_state},
            source_admin=admin,
        )
        if owner_message:
            title, message, kind = owner_message
            after_commit.add("owner_notification", UserNotificationService.create_notification, user_id, title, message, kind)
        return KYCResult(user_id=user_id, kyc_status=to_state, warnings=after_commit.run())

    @staticmethod
    def approve(user_id: str, admin_id: str) -> KYCResult:
        return KYCService._admin_decision(
            user_id, admin_id, (KYC_SUBMITTED,), KYC_APPROVED, "approved",
            owner_message=("KYC approved", "Your verification is complete. You can now list billboards.", "success"),
        )

    @staticmethod
    def reject(user_id: str, admin_id: str, notes: str) -> KYCResult:
        notes = (notes or "").strip()
        if not notes:
            raise ValidationError("Rejection notes are required")
        return KYCService._admin_decision(
            user_id, admin_id, (KYC_SUBMITTED,), KYC_REJECTED, "rejected", notes=notes,
            owner_message=("KYC rejected", f"Your verification was rejected: {notes}", "error"),
        )

    @staticmethod
    def request_kyc_reverification(user_id: str, admin_id: str) -> KYCResult:
        return KYCService._admin_decision(
            user_id, admin_id, (KYC_APPROVED,), KYC_PENDING, "reverification_requested",
            owner_message=("KYC re-verification required", "Please submit your KYC documents again.", "warning"),
        )

    @staticmethod
    def get_documents(user_id: str) -> List[KYCDocument]:
        return KYCDocument.query.filter_by(AccountID=user_id).order_by(KYCDocument.UploadedAt.desc()).all()

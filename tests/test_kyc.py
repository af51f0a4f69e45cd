import pytest

from billboard_app.errors import InvalidStateTransition, NotFound, ValidationError
from billboard_app.extensions import db
from billboard_app.models import (
    KYC_APPROVED,
    KYC_PENDING,
    KYC_REJECTED,
    KYC_SUBMITTED,
    Account,
    AdminAuditLog,
    AdminNotification,
    UserNotification,
)
from billboard_app.services.kyc_service import KYCService

from factories import create_admin, create_owner, create_sub_admin

DOCUMENTS = [
    {"document_type": "identity", "document_url": "https://cdn.example.com/kyc/id.pdf"},
    {"document_type": "business_registration", "document_url": "https://cdn.example.com/kyc/cac.pdf"},
]


def _kyc_status(user_id):
    db.session.expire_all()
    return db.session.get(Account, user_id).KYCStatus


def test_submit_then_approve(app):
    owner = create_owner(kyc_status=KYC_PENDING)
    admin = create_admin()

    result = KYCService.submit_documents(owner.AccountID, DOCUMENTS)
    assert result.kyc_status == KYC_SUBMITTED
    assert len(KYCService.get_documents(owner.AccountID)) == 2

    result = KYCService.approve(owner.AccountID, admin.AccountID)
    assert result.kyc_status == KYC_APPROVED
    assert _kyc_status(owner.AccountID) == KYC_APPROVED
    assert AdminAuditLog.query.filter_by(ActionType="kyc_approved", TargetID=owner.AccountID).count() == 1

    updates = AdminNotification.query.filter_by(NotificationType="user_updated").all()
    assert [n.Payload["kyc_status"] for n in updates] == [KYC_APPROVED]
    assert UserNotification.query.filter_by(AccountID=owner.AccountID, Title="KYC approved").count() == 1


def test_reject_needs_notes_and_allows_resubmission(app):
    owner = create_owner(kyc_status=KYC_SUBMITTED)
    admin = create_admin()

    with pytest.raises(ValidationError):
        KYCService.reject(owner.AccountID, admin.AccountID, "")
    assert _kyc_status(owner.AccountID) == KYC_SUBMITTED

    KYCService.reject(owner.AccountID, admin.AccountID, "ID photo unreadable")
    owner_row = db.session.get(Account, owner.AccountID)
    assert owner_row.KYCStatus == KYC_REJECTED
    assert owner_row.RejectionNotes == "ID photo unreadable"

    KYCService.submit_documents(owner.AccountID, DOCUMENTS[:1])
    assert _kyc_status(owner.AccountID) == KYC_SUBMITTED


def test_reverification_moves_approved_owner_back_to_pending(app):
    owner = create_owner(kyc_status=KYC_APPROVED)
    admin = create_admin()

    result = KYCService.request_kyc_reverification(owner.AccountID, admin.AccountID)
    assert result.kyc_status == KYC_PENDING
    assert _kyc_status(owner.AccountID) == KYC_PENDING


def test_invalid_kyc_transitions(app):
    owner = create_owner(kyc_status=KYC_PENDING)
    admin = create_admin()
    sub_admin = create_sub_admin()

    with pytest.raises(InvalidStateTransition) as exc:
        KYCService.approve(owner.AccountID, admin.AccountID)
    assert exc.value.current == KYC_PENDING

    with pytest.raises(NotFound):
        KYCService.approve(sub_admin.AccountID, admin.AccountID)
    assert AdminAuditLog.query.count() == 0


def test_document_validation(app):
    owner = create_owner(kyc_status=KYC_PENDING)

    with pytest.raises(ValidationError):
        KYCService.submit_documents(owner.AccountID, [])
    with pytest.raises(ValidationError):
        KYCService.submit_documents(owner.AccountID, [{"document_type": "selfie", "document_url": "x"}])
    with pytest.raises(ValidationError):
        KYCService.submit_documents(owner.AccountID, [{"document_type": "identity", "document_url": " "}])
    with pytest.raises(ValidationError):
        KYCService.submit_documents(owner.AccountID, ["https://cdn.example.com/kyc/id.pdf"])
    with pytest.raises(ValidationError):
        KYCService.submit_documents(owner.AccountID, [{"document_type": "identity", "document_url": 7}])
    with pytest.raises(ValidationError):
        KYCService.submit_documents(owner.AccountID, {"document_type": "identity"})
    assert _kyc_status(owner.AccountID) == KYC_PENDING

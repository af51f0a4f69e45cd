from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

from billboard_app.errors import AdminDeletionForbidden, AuthorizationDenied, NotFound, ServiceUnavailable
from billboard_app.extensions import db
from billboard_app.models import (
    ASSIGNMENT_COMPLETED,
    BILLBOARD_ACTIVE,
    BILLBOARD_APPROVED,
    BILLBOARD_INACTIVE,
    Account,
    AdminAuditLog,
    AdminNotification,
    Billboard,
    BillboardAssignment,
    BillboardImage,
    Booking,
    KYCDocument,
    SiteVisit,
    UserNotification,
    UserSessions,
)
from billboard_app.services.auth_service import AuthService
from billboard_app.services.billboard_lifecycle_service import BillboardLifecycleService
from billboard_app.services.secure_deletion_service import SecureDeletionService
from billboard_app.services.session_management_service import SessionManagementService
from billboard_app.services.user_cache import AdminEventConsumer, user_cache

from factories import PASSWORD, create_admin, create_assignment, create_billboard, create_owner, create_sub_admin


def _owner_with_history():
    owner = create_owner(email="doomed@example.com", name="Doomed Owner")
    customer = create_owner()
    sub_admin = create_sub_admin()
    billboard = create_billboard(owner, BILLBOARD_ACTIVE)
    db.session.add_all([
        KYCDocument(AccountID=owner.AccountID, DocumentType="identity", DocumentURL="https://cdn.example.com/id.pdf"),
        UserNotification(AccountID=owner.AccountID, Title="Hi", Message="Welcome"),
        Booking(
            BillboardID=billboard.BillboardID,
            CustomerID=customer.AccountID,
            StartDate=date(2026, 1, 1),
            EndDate=date(2026, 1, 7),
        ),
        SiteVisit(BillboardID=billboard.BillboardID, SubAdminID=sub_admin.AccountID, IsVerified=True),
    ])
    db.session.commit()
    return owner, billboard


def test_delete_owner_removes_every_dependent_row(app):
    admin = create_admin(name="Root Admin")
    owner, billboard = _owner_with_history()
    token = AuthService.authenticate("doomed@example.com", PASSWORD).session_token
    owner_id = owner.AccountID

    result = SecureDeletionService.delete_user(owner_id, admin.AccountID, reason="Fraud")

    # account, session, billboard, image, booking, site visit, kyc document, notification
    assert result.records_deleted == 8
    assert result.warnings == []
    assert db.session.get(Account, owner_id) is None
    assert Billboard.query.count() == 0
    assert BillboardImage.query.count() == 0
    assert Booking.query.count() == 0
    assert SiteVisit.query.count() == 0
    assert KYCDocument.query.count() == 0
    assert UserSessions.query.filter_by(AccountID=owner_id).count() == 0
    assert SessionManagementService.validate_session(token) is None

    audit = AdminAuditLog.query.filter_by(ActionType="user_deleted").one()
    assert audit.TargetID == owner_id
    assert audit.Details["reason"] == "Fraud"


def test_deletion_broadcast_carries_names(app):
    admin = create_admin(name="Root Admin")
    watcher = create_admin()
    owner, _ = _owner_with_history()
    owner_id = owner.AccountID
    user_cache.get_user(owner_id)

    consumer = AdminEventConsumer(watcher.AccountID)
    consumer.attach()
    SecureDeletionService.delete_user(owner_id, admin.AccountID)
    consumer.detach()

    note = AdminNotification.query.filter_by(
        NotificationType="user_deleted", TargetAdminID=watcher.AccountID
    ).one()
    assert note.Payload["user_id"] == owner_id
    assert note.Payload["user_name"] == "Doomed Owner"
    assert note.Payload["deleted_by"] == "Root Admin"
    assert note.SourceAdminName == "Root Admin"
    assert consumer.deleted_users[owner_id]["name"] == "Doomed Owner"
    assert user_cache.peek(owner_id) is None


def test_admins_cannot_be_deleted(app):
    admin = create_admin()
    other_admin = create_admin()

    with pytest.raises(AdminDeletionForbidden):
        SecureDeletionService.delete_user(other_admin.AccountID, admin.AccountID)
    assert db.session.get(Account, other_admin.AccountID) is not None


def test_demo_and_non_admin_requesters_are_denied(app):
    demo = create_admin(is_demo=True)
    sub_admin = create_sub_admin()
    owner = create_owner()

    with pytest.raises(AuthorizationDenied):
        SecureDeletionService.delete_user(owner.AccountID, demo.AccountID)
    with pytest.raises(AuthorizationDenied):
        SecureDeletionService.delete_user(owner.AccountID, sub_admin.AccountID)
    with pytest.raises(NotFound):
        SecureDeletionService.delete_user("missing", create_admin().AccountID)
    assert db.session.get(Account, owner.AccountID) is not None


def test_mid_cascade_failure_rolls_everything_back(app, monkeypatch):
    admin = create_admin()
    owner, billboard = _owner_with_history()
    owner_id = owner.AccountID
    real_delete = SecureDeletionService._delete_rows

    def flaky(label, query):
        if label == "billboards":
            raise OperationalError("DELETE", {}, Exception("connection lost"))
        return real_delete(label, query)

    monkeypatch.setattr(SecureDeletionService, "_delete_rows", staticmethod(flaky))
    with pytest.raises(ServiceUnavailable):
        SecureDeletionService.delete_user(owner_id, admin.AccountID)

    db.session.expire_all()
    assert db.session.get(Account, owner_id) is not None
    assert db.session.get(Billboard, billboard.BillboardID) is not None
    assert SiteVisit.query.count() == 1
    assert Booking.query.count() == 1
    assert AdminAuditLog.query.count() == 0
    assert AdminNotification.query.count() == 0


def test_deleting_a_sub_admin_keeps_visits_on_other_billboards(app):
    admin = create_admin()
    owner = create_owner()
    sub_admin = create_sub_admin(email="leaving@example.com", name="Leaving Sub")
    verified_board = create_billboard(owner, BILLBOARD_ACTIVE)
    pending_board = create_billboard(owner, BILLBOARD_APPROVED)
    done = create_assignment(verified_board, sub_admin, admin, active=False)
    done.Status = ASSIGNMENT_COMPLETED
    db.session.add(SiteVisit(
        BillboardID=verified_board.BillboardID,
        SubAdminID=sub_admin.AccountID,
        SubAdminName=sub_admin.Name,
        AssignmentID=done.AssignmentID,
        IsVerified=True,
    ))
    db.session.commit()
    create_assignment(pending_board, sub_admin, admin)
    AuthService.authenticate("leaving@example.com", PASSWORD)
    sub_admin_id, verified_id, admin_id = sub_admin.AccountID, verified_board.BillboardID, admin.AccountID

    result = SecureDeletionService.delete_user(sub_admin_id, admin_id)

    # account, session, both assignments
    assert result.records_deleted == 4
    assert BillboardAssignment.query.filter_by(SubAdminID=sub_admin_id).count() == 0
    visit = SiteVisit.query.one()
    assert visit.SubAdminID == sub_admin_id
    assert visit.SubAdminName == "Leaving Sub"
    assert db.session.get(Billboard, verified_id).Status == BILLBOARD_ACTIVE

    assert BillboardLifecycleService.deactivate(verified_id, admin_id).status == BILLBOARD_INACTIVE
    assert BillboardLifecycleService.reactivate(verified_id, admin_id).status == BILLBOARD_ACTIVE


def test_session_revocation_failure_is_reported_as_a_warning(app, monkeypatch):
    admin = create_admin()
    owner = create_owner(email="revoke-fails@example.com")
    AuthService.authenticate("revoke-fails@example.com", PASSWORD)
    owner_id = owner.AccountID

    def broken(account_id):
        raise ServiceUnavailable()

    monkeypatch.setattr(SessionManagementService, "revoke_all_sessions", staticmethod(broken))
    result = SecureDeletionService.delete_user(owner_id, admin.AccountID)

    assert [w.step for w in result.warnings] == ["revoke_sessions"]
    db.session.expire_all()
    assert db.session.get(Account, owner_id) is None
    assert UserSessions.query.filter_by(AccountID=owner_id).count() == 0

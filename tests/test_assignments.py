import uuid

import pytest
from sqlalchemy.exc import IntegrityError

from billboard_app.errors import InvalidStateTransition, NotFound, ServiceUnavailable, ValidationError
from billboard_app.extensions import db
from billboard_app.models import (
    ASSIGNMENT_PENDING,
    ASSIGNMENT_SUPERSEDED,
    BILLBOARD_ACTIVE,
    BILLBOARD_PENDING,
    Account,
    AdminAuditLog,
    BillboardAssignment,
)
from billboard_app.services.assignment_service import AssignmentOutcome, AssignmentService
from billboard_app.services.billboard_lifecycle_service import BillboardLifecycleService

from factories import create_admin, create_assignment, create_billboard, create_owner, create_sub_admin


def _active_rows(billboard_id):
    return BillboardAssignment.query.filter_by(BillboardID=billboard_id, IsActive=True).all()


def test_assign_creates_then_supersedes(app):
    owner = create_owner()
    admin = create_admin()
    first, second = create_sub_admin(), create_sub_admin()
    billboard = create_billboard(owner)

    created = AssignmentService.assign(billboard.BillboardID, first.AccountID, admin.AccountID, priority="high")
    assert created.outcome is AssignmentOutcome.CREATED
    assert created.superseded_id is None

    moved = AssignmentService.assign(billboard.BillboardID, second.AccountID, admin.AccountID)
    assert moved.outcome is AssignmentOutcome.SUPERSEDED
    assert moved.superseded_id == created.assignment_id

    active = _active_rows(billboard.BillboardID)
    assert [row.SubAdminID for row in active] == [second.AccountID]
    old = db.session.get(BillboardAssignment, created.assignment_id)
    assert old.Status == ASSIGNMENT_SUPERSEDED
    assert old.ActiveBillboardID is None
    assert AdminAuditLog.query.filter_by(ActionType="billboard_assigned").count() == 2


def test_reassigning_the_same_sub_admin_keeps_one_active_row(app):
    owner = create_owner()
    admin = create_admin()
    sub_admin = create_sub_admin()
    billboard = create_billboard(owner)

    for _ in range(3):
        AssignmentService.assign(billboard.BillboardID, sub_admin.AccountID, admin.AccountID)

    assert len(_active_rows(billboard.BillboardID)) == 1
    assert BillboardAssignment.query.filter_by(Status=ASSIGNMENT_SUPERSEDED).count() == 2


def test_store_refuses_a_second_active_row(app):
    owner = create_owner()
    admin = create_admin()
    sub_admin = create_sub_admin()
    billboard = create_billboard(owner)
    create_assignment(billboard, sub_admin, admin)

    db.session.add(BillboardAssignment(
        AssignmentID=str(uuid.uuid4()),
        BillboardID=billboard.BillboardID,
        SubAdminID=sub_admin.AccountID,
        AssignedBy=admin.AccountID,
        Status=ASSIGNMENT_PENDING,
        ActiveBillboardID=billboard.BillboardID,
    ))
    with pytest.raises(IntegrityError):
        db.session.commit()
    db.session.rollback()


def test_conflict_retries_are_bounded(app, monkeypatch):
    owner = create_owner()
    admin = create_admin()
    sub_admin = create_sub_admin()
    billboard = create_billboard(owner)
    calls = []

    def always_conflicts(*args):
        calls.append(args)
        raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))

    monkeypatch.setattr(AssignmentService, "_assign_once", staticmethod(always_conflicts))
    with pytest.raises(ServiceUnavailable):
        AssignmentService.assign(billboard.BillboardID, sub_admin.AccountID, admin.AccountID)
    assert len(calls) == app.config["ASSIGNMENT_UPSERT_RETRIES"] + 1


def test_assign_rejects_bad_targets(app):
    owner = create_owner()
    admin = create_admin()
    sub_admin = create_sub_admin()
    inactive = create_sub_admin(is_active=False)
    pending = create_billboard(owner, BILLBOARD_PENDING)
    approved = create_billboard(owner)

    with pytest.raises(InvalidStateTransition):
        AssignmentService.assign(pending.BillboardID, sub_admin.AccountID, admin.AccountID)
    with pytest.raises(ValidationError):
        AssignmentService.assign(approved.BillboardID, inactive.AccountID, admin.AccountID)
    with pytest.raises(ValidationError):
        AssignmentService.assign(approved.BillboardID, owner.AccountID, admin.AccountID)
    with pytest.raises(NotFound):
        AssignmentService.assign(approved.BillboardID, "nobody", admin.AccountID)
    with pytest.raises(ValidationError):
        AssignmentService.assign(approved.BillboardID, sub_admin.AccountID, admin.AccountID, priority="asap")
    assert BillboardAssignment.query.count() == 0


def test_worklist_and_awaiting_queue(app):
    owner = create_owner(name="Ada Owner")
    admin = create_admin()
    sub_admin = create_sub_admin()
    billboard = create_billboard(owner, Title="Third Mainland")

    AssignmentService.assign(billboard.BillboardID, sub_admin.AccountID, admin.AccountID, notes="Call ahead")

    worklist = AssignmentService.get_assignments_for(sub_admin.AccountID)
    assert len(worklist) == 1
    assert worklist[0]["billboard"]["title"] == "Third Mainland"
    assert worklist[0]["owner"]["name"] == "Ada Owner"
    assert worklist[0]["notes"] == "Call ahead"

    awaiting = BillboardLifecycleService.list_awaiting_verification()
    assert awaiting[0]["has_active_assignment"] is True
    assert awaiting[0]["assigned_sub_admin_id"] == sub_admin.AccountID


def test_health_and_integrity_report(app):
    owner = create_owner()
    admin = create_admin()
    sub_admin = create_sub_admin()
    retired = create_sub_admin()
    create_billboard(owner)
    live = create_billboard(owner, BILLBOARD_ACTIVE)
    stranded = create_billboard(owner)

    create_assignment(live, sub_admin, admin)
    create_assignment(stranded, retired, admin)
    retired_row = db.session.get(Account, retired.AccountID)
    retired_row.IsActive = False
    db.session.commit()

    health = AssignmentService.assignment_health()
    assert health["approved_without_assignment"] == 1
    assert health["assigned_to_inactive_sub_admins"] == 1
    assert health["pending"] == 2

    issues = {(i["billboard_id"], i["issue"]) for i in AssignmentService.integrity_issues()}
    assert issues == {
        (live.BillboardID, "billboard_not_approved"),
        (stranded.BillboardID, "sub_admin_unavailable"),
    }

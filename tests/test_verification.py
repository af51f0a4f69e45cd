import pytest

from billboard_app.errors import AuthorizationDenied, InvalidStateTransition, ValidationError
from billboard_app.extensions import db
from billboard_app.models import (
    ASSIGNMENT_COMPLETED,
    BILLBOARD_ACTIVE,
    BILLBOARD_APPROVED,
    BILLBOARD_PENDING,
    BILLBOARD_REJECTED,
    Billboard,
    BillboardAssignment,
    SiteVisit,
    UserNotification,
)
from billboard_app.services.assignment_service import AssignmentService
from billboard_app.services.verification_service import SiteVisitReport, VerificationService

from factories import create_admin, create_assignment, create_billboard, create_owner, create_sub_admin, visit_report


@pytest.fixture()
def assigned(app):
    owner = create_owner()
    admin = create_admin()
    sub_admin = create_sub_admin()
    billboard = create_billboard(owner)
    assignment = create_assignment(billboard, sub_admin, admin)
    return owner, sub_admin, billboard, assignment


def test_passed_visit_activates_and_completes_assignment(app, assigned):
    owner, sub_admin, billboard, assignment = assigned

    result = VerificationService.record_visit(billboard.BillboardID, sub_admin.AccountID, True, visit_report())

    assert result.billboard_status == BILLBOARD_ACTIVE
    assert result.assignment_id == assignment.AssignmentID
    db.session.expire_all()
    assert db.session.get(Billboard, billboard.BillboardID).Status == BILLBOARD_ACTIVE
    done = db.session.get(BillboardAssignment, assignment.AssignmentID)
    assert done.Status == ASSIGNMENT_COMPLETED
    assert done.IsActive is False
    assert done.CompletedAt is not None
    visit = db.session.get(SiteVisit, result.visit_id)
    assert visit.IsVerified is True
    assert visit.VisibilityRating == 8
    assert AssignmentService.get_assignments_for(sub_admin.AccountID) == []
    assert UserNotification.query.filter_by(AccountID=owner.AccountID, Title="Billboard verified").count() == 1


def test_failed_visit_rejects_with_notes(app, assigned):
    _, sub_admin, billboard, _ = assigned

    result = VerificationService.record_visit(
        billboard.BillboardID, sub_admin.AccountID, False,
        visit_report(verification_notes="Board is not at the listed address", location_accuracy="incorrect"),
    )

    assert result.billboard_status == BILLBOARD_REJECTED
    row = db.session.get(Billboard, billboard.BillboardID)
    assert row.Status == BILLBOARD_REJECTED
    assert row.RejectionReason == "Board is not at the listed address"


def test_unassigned_sub_admin_is_denied(app, assigned):
    _, _, billboard, _ = assigned
    stranger = create_sub_admin()

    with pytest.raises(AuthorizationDenied):
        VerificationService.record_visit(billboard.BillboardID, stranger.AccountID, True, visit_report())
    assert SiteVisit.query.count() == 0
    assert db.session.get(Billboard, billboard.BillboardID).Status == BILLBOARD_APPROVED


def test_missing_evidence_changes_nothing(app, assigned):
    _, sub_admin, billboard, assignment = assigned

    with pytest.raises(ValidationError) as exc:
        VerificationService.record_visit(
            billboard.BillboardID, sub_admin.AccountID, True, visit_report(owner_selfie_url="", verification_notes=None)
        )
    assert set(exc.value.details["missing"]) == {"owner_selfie_url", "verification_notes"}
    assert SiteVisit.query.count() == 0
    db.session.expire_all()
    assert db.session.get(BillboardAssignment, assignment.AssignmentID).IsActive is True


def test_decision_must_be_boolean(app, assigned):
    _, sub_admin, billboard, _ = assigned
    with pytest.raises(ValidationError):
        VerificationService.record_visit(billboard.BillboardID, sub_admin.AccountID, "yes", visit_report())


def test_visit_on_billboard_no_longer_approved_rolls_back(app, assigned):
    _, sub_admin, billboard, assignment = assigned
    row = db.session.get(Billboard, billboard.BillboardID)
    row.Status = BILLBOARD_PENDING
    db.session.commit()

    with pytest.raises(InvalidStateTransition):
        VerificationService.record_visit(billboard.BillboardID, sub_admin.AccountID, True, visit_report())
    assert SiteVisit.query.count() == 0
    db.session.expire_all()
    assert db.session.get(BillboardAssignment, assignment.AssignmentID).IsActive is True


def test_draft_is_merged_into_the_final_report(app, assigned):
    _, sub_admin, billboard, _ = assigned

    VerificationService.save_draft(billboard.BillboardID, sub_admin.AccountID, {
        "owner_selfie_url": "https://cdn.example.com/visits/draft-selfie.jpg",
        "visibility_rating": "7",
        "issues_found": ["faded paint"],
    })
    draft = VerificationService.save_draft(billboard.BillboardID, sub_admin.AccountID, {"structural_condition": "fair"})
    assert draft["visibility_rating"] == 7
    assert draft["structural_condition"] == "fair"

    result = VerificationService.record_visit(billboard.BillboardID, sub_admin.AccountID, True, {
        "billboard_photo_url": "https://cdn.example.com/visits/board.jpg",
        "verification_notes": "All good",
    })
    visit = db.session.get(SiteVisit, result.visit_id)
    assert visit.OwnerSelfieURL == "https://cdn.example.com/visits/draft-selfie.jpg"
    assert visit.IssuesFound == ["faded paint"]
    assert visit.StructuralCondition == "fair"


def test_report_checklist_validation():
    with pytest.raises(ValidationError):
        SiteVisitReport.from_dict({"visibility_rating": 11}).validate(for_submission=False)
    with pytest.raises(ValidationError):
        SiteVisitReport.from_dict({"visibility_rating": "high"}).validate(for_submission=False)
    with pytest.raises(ValidationError):
        SiteVisitReport.from_dict({"structural_condition": "wobbly"}).validate(for_submission=False)
    with pytest.raises(ValidationError):
        SiteVisitReport.from_dict({"location_accuracy": "nearby"}).validate(for_submission=False)
    SiteVisitReport.from_dict({"visibility_rating": 1, "unknown_field": "ignored"}).validate(for_submission=False)


def test_report_rejects_non_string_values():
    with pytest.raises(ValidationError):
        SiteVisitReport.from_dict([1])
    with pytest.raises(ValidationError):
        SiteVisitReport.from_dict({"verification_notes": 123}).validate(for_submission=False)
    with pytest.raises(ValidationError):
        SiteVisitReport.from_dict({"owner_selfie_url": {"url": "x"}}).validate(for_submission=True)
    with pytest.raises(ValidationError):
        SiteVisitReport.from_dict({"issues_found": "rust"}).validate(for_submission=False)


def test_site_visits_are_append_only(app, assigned):
    _, sub_admin, billboard, _ = assigned
    result = VerificationService.record_visit(billboard.BillboardID, sub_admin.AccountID, True, visit_report())

    visit = db.session.get(SiteVisit, result.visit_id)
    visit.VerificationNotes = "edited"
    with pytest.raises(ValueError):
        db.session.commit()
    db.session.rollback()


def test_verification_history(app, assigned):
    _, sub_admin, billboard, _ = assigned
    VerificationService.record_visit(billboard.BillboardID, sub_admin.AccountID, True, visit_report())

    history = VerificationService.get_verification_history(sub_admin.AccountID)
    assert len(history) == 1
    assert history[0]["billboard_id"] == billboard.BillboardID
    assert history[0]["sub_admin_name"] == sub_admin.Name

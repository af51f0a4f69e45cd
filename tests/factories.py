"""Row builders shared by the test modules; they write straight to the store."""
import uuid
from datetime import timedelta

from billboard_app.extensions import db
from billboard_app.models import (
    ASSIGNMENT_PENDING,
    BILLBOARD_APPROVED,
    KYC_APPROVED,
    ROLE_ADMIN,
    ROLE_OWNER,
    ROLE_SUB_ADMIN,
    Account,
    AdminNotificationPreferences,
    Billboard,
    BillboardAssignment,
    BillboardImage,
    utcnow,
)
from billboard_app.services.password_security_service import PasswordSecurityService

PASSWORD = "Str0ng!Pass"


def create_account(role, email=None, name=None, password=PASSWORD, is_active=True, kyc_status=None, is_demo=False):
    account = Account(
        AccountID=str(uuid.uuid4()),
        Email=email or f"{role}_{uuid.uuid4().hex[:6]}@example.com",
        Name=name or f"{role.title()} {uuid.uuid4().hex[:4]}",
        Role=role,
        PasswordHash=PasswordSecurityService.hash_password(password),
        IsActive=is_active,
        IsDemo=is_demo,
        KYCStatus=kyc_status,
    )
    db.session.add(account)
    db.session.commit()
    return account


def create_admin(**kwargs):
    return create_account(ROLE_ADMIN, **kwargs)


def create_sub_admin(**kwargs):
    return create_account(ROLE_SUB_ADMIN, **kwargs)


def create_owner(kyc_status=KYC_APPROVED, **kwargs):
    return create_account(ROLE_OWNER, kyc_status=kyc_status, **kwargs)


def billboard_payload(**overrides):
    payload = {
        "title": "Highway 9 Digital",
        "description": "Double-sided LED board",
        "billboard_type": "digital",
        "location_address": "12 Ring Road",
        "city": "Lagos",
        "state": "Lagos",
        "width": 12,
        "height": 6,
        "price_per_day": "150.00",
        "images": ["https://cdn.example.com/bb/1.jpg"],
    }
    payload.update(overrides)
    return payload


def create_billboard(owner, status=BILLBOARD_APPROVED, **columns):
    billboard = Billboard(
        BillboardID=str(uuid.uuid4()),
        OwnerID=owner.AccountID,
        Title=columns.pop("Title", "Billboard"),
        BillboardType="static",
        LocationAddress="1 Main St",
        City="Abuja",
        State="FCT",
        Width=10,
        Height=5,
        PricePerDay=100,
        Status=status,
        ApprovedAt=utcnow() - timedelta(days=1) if status == BILLBOARD_APPROVED else None,
        **columns,
    )
    billboard.images = [BillboardImage(ImageURL="https://cdn.example.com/bb/main.jpg")]
    db.session.add(billboard)
    db.session.commit()
    return billboard


def create_assignment(billboard, sub_admin, admin, active=True):
    assignment = BillboardAssignment(
        AssignmentID=str(uuid.uuid4()),
        BillboardID=billboard.BillboardID,
        SubAdminID=sub_admin.AccountID,
        AssignedBy=admin.AccountID,
        Status=ASSIGNMENT_PENDING,
        IsActive=active,
        ActiveBillboardID=billboard.BillboardID if active else None,
    )
    db.session.add(assignment)
    db.session.commit()
    return assignment


def set_admin_preferences(admin, **flags):
    prefs = AdminNotificationPreferences(AdminID=admin.AccountID, **flags)
    db.session.add(prefs)
    db.session.commit()
    return prefs


def visit_report(**overrides):
    report = {
        "owner_selfie_url": "https://cdn.example.com/visits/selfie.jpg",
        "billboard_photo_url": "https://cdn.example.com/visits/board.jpg",
        "verification_notes": "Structure matches listing",
        "location_accuracy": "exact",
        "structural_condition": "good",
        "visibility_rating": 8,
        "issues_found": [],
    }
    report.update(overrides)
    return report

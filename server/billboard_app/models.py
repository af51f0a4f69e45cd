"""
All SQLAlchemy models for the billboard verification workflow.

Place new models in the appropriate section below. Use the section headers
to find where each model belongs. All models must inherit from db.Model.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import event
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import validates

from .extensions import db
from flask_login import UserMixin

JSONT = db.JSON


def utcnow():
    """Return the current UTC time as a naive datetime (the store keeps UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _uuid():
    return str(uuid.uuid4())


# =============================================================================
# LOOKUP VALUES
# Roles and status vocabularies shared by models and services.
# =============================================================================
ROLE_USER = "user"
ROLE_OWNER = "owner"
ROLE_VENDOR = "vendor"
ROLE_ADMIN = "admin"
ROLE_SUB_ADMIN = "sub_admin"
ROLES = {ROLE_USER, ROLE_OWNER, ROLE_VENDOR, ROLE_ADMIN, ROLE_SUB_ADMIN}

KYC_PENDING = "pending"
KYC_SUBMITTED = "submitted"
KYC_APPROVED = "approved"
KYC_REJECTED = "rejected"

BILLBOARD_DRAFT = "draft"
BILLBOARD_PENDING = "pending"
BILLBOARD_APPROVED = "approved"
BILLBOARD_REJECTED = "rejected"
BILLBOARD_ACTIVE = "active"
BILLBOARD_INACTIVE = "inactive"

ASSIGNMENT_PENDING = "pending"
ASSIGNMENT_COMPLETED = "completed"
ASSIGNMENT_SUPERSEDED = "superseded"
ASSIGNMENT_PRIORITIES = ("low", "medium", "high", "urgent")

NOTIFICATION_USER_DELETED = "user_deleted"
NOTIFICATION_USER_UPDATED = "user_updated"
NOTIFICATION_DASHBOARD_UPDATE = "dashboard_update"
NOTIFICATION_SECURITY_ALERT = "security_alert"
NOTIFICATION_TYPES = {
    NOTIFICATION_USER_DELETED,
    NOTIFICATION_USER_UPDATED,
    NOTIFICATION_DASHBOARD_UPDATE,
    NOTIFICATION_SECURITY_ALERT,
}


# =============================================================================
# CORE ENTITIES
# Accounts of every role (owners, admins, sub-admins, ...).
# =============================================================================

class Account(db.Model, UserMixin):
    __tablename__ = "users"

    AccountID      = db.Column(db.String(36), primary_key=True, default=_uuid)
    Email          = db.Column(db.String(255), nullable=False, unique=True)
    Name           = db.Column(db.String(200), nullable=False)
    Phone          = db.Column(db.String(50))
    Role           = db.Column(db.String(20), nullable=False, default=ROLE_USER)
    PasswordHash   = db.Column(db.String(255), nullable=False)

    IsActive       = db.Column(db.Boolean, nullable=False, default=True)
    IsDemo         = db.Column(db.Boolean, nullable=False, default=False)

    # Owners only: pending | submitted | approved | rejected
    KYCStatus      = db.Column(db.String(20))
    RejectionNotes = db.Column(db.Text)

    LastLoginAt    = db.Column(db.DateTime)
    CreatedAt      = db.Column(db.DateTime, default=utcnow)
    UpdatedAt      = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    @validates("Email")
    def _normalize_email(self, key, value):
        return (value or "").strip().lower()

    @validates("Role")
    def _check_role(self, key, value):
        if value not in ROLES:
            raise ValueError(f"Unknown role: {value}")
        return value

    # Flask-Login
    def get_id(self) -> str:
        return str(self.AccountID)

    @hybrid_property
    def is_active(self) -> bool:
        return bool(self.IsActive)

    @is_active.expression
    def is_active(cls):
        return cls.IsActive.is_(True)

    @property
    def is_admin(self) -> bool:
        return self.Role == ROLE_ADMIN

    @property
    def is_sub_admin(self) -> bool:
        return self.Role == ROLE_SUB_ADMIN

    @property
    def is_owner(self) -> bool:
        return self.Role == ROLE_OWNER

    def __repr__(self) -> str:
        return f"<Account {self.Email} ({self.Role})>"


# =============================================================================
# BILLBOARDS
# Billboards, their images, and bookings made against them.
# =============================================================================

class Billboard(db.Model):
    __tablename__ = "billboards"

    BillboardID     = db.Column(db.String(36), primary_key=True, default=_uuid)
    OwnerID         = db.Column(db.String(36), db.ForeignKey("users.AccountID"), nullable=False, index=True)

    Title           = db.Column(db.String(255))
    Description     = db.Column(db.Text)
    BillboardType   = db.Column(db.String(100))
    LocationAddress = db.Column(db.String(500))
    City            = db.Column(db.String(100))
    State           = db.Column(db.String(100))
    Width           = db.Column(db.Numeric(10, 2))
    Height          = db.Column(db.Numeric(10, 2))
    PricePerDay     = db.Column(db.Numeric(12, 2))

    Status          = db.Column(db.String(20), nullable=False, default=BILLBOARD_DRAFT, index=True)
    AdminNotes      = db.Column(db.Text)
    RejectionReason = db.Column(db.Text)
    ApprovedAt      = db.Column(db.DateTime)
    ApprovedBy      = db.Column(db.String(36))

    CreatedAt       = db.Column(db.DateTime, default=utcnow)
    UpdatedAt       = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    owner = db.relationship("Account", backref=db.backref("billboards", lazy="dynamic"))
    images = db.relationship(
        "BillboardImage",
        backref="billboard",
        order_by="BillboardImage.CreatedAt",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Billboard {self.BillboardID} [{self.Status}]>"


class BillboardImage(db.Model):
    __tablename__ = "billboard_images"

    ImageID     = db.Column(db.String(36), primary_key=True, default=_uuid)
    BillboardID = db.Column(db.String(36), db.ForeignKey("billboards.BillboardID"), nullable=False, index=True)
    ImageURL    = db.Column(db.String(500), nullable=False)
    ImageType   = db.Column(db.String(50), default="main")
    CreatedAt   = db.Column(db.DateTime, default=utcnow)


class Booking(db.Model):
    __tablename__ = "bookings"

    BookingID   = db.Column(db.String(36), primary_key=True, default=_uuid)
    BillboardID = db.Column(db.String(36), db.ForeignKey("billboards.BillboardID"), nullable=False, index=True)
    CustomerID  = db.Column(db.String(36), db.ForeignKey("users.AccountID"), nullable=False, index=True)
    StartDate   = db.Column(db.Date, nullable=False)
    EndDate     = db.Column(db.Date, nullable=False)
    TotalAmount = db.Column(db.Numeric(12, 2))
    Status      = db.Column(db.String(20), nullable=False, default="pending")
    CreatedAt   = db.Column(db.DateTime, default=utcnow)


# =============================================================================
# KYC
# Identity / business documents uploaded by billboard owners.
# =============================================================================

class KYCDocument(db.Model):
    __tablename__ = "kyc_documents"

    DocumentID   = db.Column(db.String(36), primary_key=True, default=_uuid)
    AccountID    = db.Column(db.String(36), db.ForeignKey("users.AccountID"), nullable=False, index=True)
    DocumentType = db.Column(db.String(50), nullable=False)
    DocumentURL  = db.Column(db.String(500), nullable=False)
    UploadedAt   = db.Column(db.DateTime, default=utcnow)

    account = db.relationship("Account", backref=db.backref("kyc_documents", lazy="dynamic"))


# =============================================================================
# VERIFICATION
# Sub-admin assignments and the site visits they produce.
# =============================================================================

class BillboardAssignment(db.Model):
    """Binds one billboard to one sub-admin for physical verification.

    ActiveBillboardID mirrors BillboardID while the row is active and is NULL
    otherwise; its unique constraint lets the store itself refuse a second
    active assignment for the same billboard.
    """
    __tablename__ = "billboard_assignments"

    AssignmentID      = db.Column(db.String(36), primary_key=True, default=_uuid)
    BillboardID       = db.Column(db.String(36), db.ForeignKey("billboards.BillboardID"), nullable=False, index=True)
    SubAdminID        = db.Column(db.String(36), db.ForeignKey("users.AccountID"), nullable=False, index=True)
    AssignedBy        = db.Column(db.String(36), db.ForeignKey("users.AccountID"), nullable=False)
    Status            = db.Column(db.String(20), nullable=False, default=ASSIGNMENT_PENDING)
    Priority          = db.Column(db.String(10), nullable=False, default="medium")
    Notes             = db.Column(db.Text)
    DraftReport       = db.Column(JSONT)
    AssignedAt        = db.Column(db.DateTime, nullable=False, default=utcnow)
    CompletedAt       = db.Column(db.DateTime)
    IsActive          = db.Column(db.Boolean, nullable=False, default=True)
    ActiveBillboardID = db.Column(db.String(36), unique=True, nullable=True)

    billboard = db.relationship("Billboard", backref=db.backref("assignments", lazy="dynamic"))
    sub_admin = db.relationship("Account", foreign_keys=[SubAdminID])
    assigned_by_account = db.relationship("Account", foreign_keys=[AssignedBy])

    def __repr__(self) -> str:
        return f"<BillboardAssignment {self.AssignmentID} {self.BillboardID}->{self.SubAdminID} [{self.Status}]>"


class SiteVisit(db.Model):
    """Immutable verification report; re-verification appends a new row."""
    __tablename__ = "site_visits"

    VisitID             = db.Column(db.String(36), primary_key=True, default=_uuid)
    BillboardID         = db.Column(db.String(36), db.ForeignKey("billboards.BillboardID"), nullable=False, index=True)
    # no FKs to the visitor or assignment: a visit outlives a deleted sub-admin
    SubAdminID          = db.Column(db.String(36), nullable=False, index=True)
    SubAdminName        = db.Column(db.String(200))
    AssignmentID        = db.Column(db.String(36))
    IsVerified          = db.Column(db.Boolean, nullable=False)

    OwnerSelfieURL      = db.Column(db.String(500))
    BillboardPhotoURL   = db.Column(db.String(500))
    VerificationNotes   = db.Column(db.Text)
    LocationAccuracy    = db.Column(db.String(20))
    StructuralCondition = db.Column(db.String(20))
    VisibilityRating    = db.Column(db.Integer)
    IssuesFound         = db.Column(JSONT)
    Recommendations     = db.Column(db.Text)
    AccessibilityNotes  = db.Column(db.Text)

    VisitDate           = db.Column(db.DateTime, nullable=False, default=utcnow)

    billboard = db.relationship("Billboard", backref=db.backref("site_visits", lazy="dynamic"))


# =============================================================================
# LOGIN SECURITY & SESSIONS
# Append-only login attempt log and issued session tokens.
# =============================================================================

class LoginAttempts(db.Model):
    __tablename__ = "login_attempts"

    LoginAttemptID = db.Column(db.String(36), primary_key=True, default=_uuid)
    AccountID      = db.Column(db.String(36), index=True)  # no FK: the log outlives deleted accounts
    Email          = db.Column(db.String(255), nullable=False, index=True)
    IPAddress      = db.Column(db.String(45))
    UserAgent      = db.Column(db.Text)
    WasSuccessful  = db.Column(db.Boolean, nullable=False)
    FailureReason  = db.Column(db.String(50))
    AttemptCount   = db.Column(db.Integer, nullable=False, default=1)
    BlockedUntil   = db.Column(db.DateTime)
    AttemptedAt    = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)


class UserSessions(db.Model):
    """Issued session tokens; every row carries an expiry."""
    __tablename__ = "user_sessions"

    SessionID       = db.Column(db.String(36), primary_key=True, default=_uuid)
    AccountID       = db.Column(db.String(36), db.ForeignKey("users.AccountID"), nullable=False, index=True)
    SessionToken    = db.Column(db.String(255), nullable=False, unique=True)
    DeviceType      = db.Column(db.String(50))  # 'desktop', 'mobile', 'tablet', 'unknown'
    BrowserName     = db.Column(db.String(100))
    OperatingSystem = db.Column(db.String(100))
    IPAddress       = db.Column(db.String(45))
    UserAgent       = db.Column(db.Text)
    CreatedAt       = db.Column(db.DateTime, nullable=False, default=utcnow)
    LastActivityAt  = db.Column(db.DateTime, nullable=False, default=utcnow)
    ExpiresAt       = db.Column(db.DateTime, nullable=False)
    IsActive        = db.Column(db.Boolean, nullable=False, default=True)
    RevokedAt       = db.Column(db.DateTime)

    account = db.relationship("Account", backref=db.backref("sessions", lazy="dynamic"))

    def __repr__(self):
        return f"<UserSession {self.SessionID}: {self.AccountID}>"

    @property
    def is_expired(self):
        return utcnow() >= self.ExpiresAt


# =============================================================================
# NOTIFICATIONS
# Admin fan-out events, admin preferences, and owner-facing notifications.
# =============================================================================

class AdminNotification(db.Model):
    """Admin event row; names are denormalized so it renders without joins."""
    __tablename__ = "admin_notifications"

    NotificationID   = db.Column(db.String(36), primary_key=True, default=_uuid)
    NotificationType = db.Column(db.String(30), nullable=False)
    TargetAdminID    = db.Column(db.String(36), db.ForeignKey("users.AccountID"), nullable=False, index=True)
    SourceAdminID    = db.Column(db.String(36))
    SourceAdminName  = db.Column(db.String(200))
    Payload          = db.Column(JSONT)
    IsProcessed      = db.Column(db.Boolean, nullable=False, default=False, index=True)
    CreatedAt        = db.Column(db.DateTime, nullable=False, default=utcnow)
    ProcessedAt      = db.Column(db.DateTime)

    def mark_processed(self):
        if not self.IsProcessed:
            self.IsProcessed = True
            self.ProcessedAt = utcnow()


class AdminNotificationPreferences(db.Model):
    __tablename__ = "admin_notification_preferences"

    PreferenceID   = db.Column(db.String(36), primary_key=True, default=_uuid)
    AdminID        = db.Column(db.String(36), db.ForeignKey("users.AccountID"), nullable=False, unique=True)
    SecurityAlerts = db.Column(db.Boolean, nullable=False, default=True)
    EmailEnabled   = db.Column(db.Boolean, nullable=False, default=True)
    InAppEnabled   = db.Column(db.Boolean, nullable=False, default=True)
    UpdatedAt      = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)


class UserNotification(db.Model):
    __tablename__ = "notifications"

    NotificationID = db.Column(db.String(36), primary_key=True, default=_uuid)
    AccountID      = db.Column(db.String(36), db.ForeignKey("users.AccountID"), nullable=False, index=True)
    Title          = db.Column(db.String(255), nullable=False)
    Message        = db.Column(db.Text, nullable=False)
    Type           = db.Column(db.String(20), nullable=False, default="info")  # info, success, warning, error
    IsRead         = db.Column(db.Boolean, nullable=False, default=False)
    CreatedAt      = db.Column(db.DateTime, nullable=False, default=utcnow)
    ReadAt         = db.Column(db.DateTime)

    def mark_read(self):
        if not self.IsRead:
            self.IsRead = True
            self.ReadAt = utcnow()


# =============================================================================
# AUDIT
# =============================================================================

class AdminAuditLog(db.Model):
    __tablename__ = "admin_audit_log"

    AuditID    = db.Column(db.String(36), primary_key=True, default=_uuid)
    AdminID    = db.Column(db.String(36), nullable=False, index=True)
    AdminName  = db.Column(db.String(200))
    ActionType = db.Column(db.String(50), nullable=False, index=True)
    TargetType = db.Column(db.String(50))
    TargetID   = db.Column(db.String(36))
    Details    = db.Column(JSONT)
    CreatedAt  = db.Column(db.DateTime, nullable=False, default=utcnow)


# Append-only tables: refuse in-place edits through the ORM.
@event.listens_for(SiteVisit, "before_update")
@event.listens_for(LoginAttempts, "before_update")
def _refuse_update(mapper, connection, target):
    raise ValueError(f"{type(target).__name__} rows are append-only")

"""initial billboard verification schema

Revision ID: 202610010900
Revises:
Create Date: 2026-10-01 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "202610010900"
down_revision = None
branch_labels = None
depends_on = None


def _id(name, **kwargs):
    return sa.Column(name, sa.String(length=36), **kwargs)


def _created(name="CreatedAt", nullable=False):
    return sa.Column(
        name,
        sa.DateTime(),
        nullable=nullable,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


def upgrade():
    op.create_table(
        "users",
        _id("AccountID", primary_key=True),
        sa.Column("Email", sa.String(length=255), nullable=False),
        sa.Column("Name", sa.String(length=200), nullable=False),
        sa.Column("Phone", sa.String(length=50), nullable=True),
        sa.Column("Role", sa.String(length=20), nullable=False),
        sa.Column("PasswordHash", sa.String(length=255), nullable=False),
        sa.Column("IsActive", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("IsDemo", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("KYCStatus", sa.String(length=20), nullable=True),
        sa.Column("RejectionNotes", sa.Text(), nullable=True),
        sa.Column("LastLoginAt", sa.DateTime(), nullable=True),
        _created(nullable=True),
        sa.Column("UpdatedAt", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("Email"),
    )

    op.create_table(
        "billboards",
        _id("BillboardID", primary_key=True),
        _id("OwnerID", nullable=False),
        sa.Column("Title", sa.String(length=255), nullable=True),
        sa.Column("Description", sa.Text(), nullable=True),
        sa.Column("BillboardType", sa.String(length=100), nullable=True),
        sa.Column("LocationAddress", sa.String(length=500), nullable=True),
        sa.Column("City", sa.String(length=100), nullable=True),
        sa.Column("State", sa.String(length=100), nullable=True),
        sa.Column("Width", sa.Numeric(10, 2), nullable=True),
        sa.Column("Height", sa.Numeric(10, 2), nullable=True),
        sa.Column("PricePerDay", sa.Numeric(12, 2), nullable=True),
        sa.Column("Status", sa.String(length=20), nullable=False, server_default="draft"),
        sa.Column("AdminNotes", sa.Text(), nullable=True),
        sa.Column("RejectionReason", sa.Text(), nullable=True),
        sa.Column("ApprovedAt", sa.DateTime(), nullable=True),
        _id("ApprovedBy", nullable=True),
        _created(nullable=True),
        sa.Column("UpdatedAt", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["OwnerID"], ["users.AccountID"]),
    )
    op.create_index("ix_billboards_OwnerID", "billboards", ["OwnerID"], unique=False)
    op.create_index("ix_billboards_Status", "billboards", ["Status"], unique=False)

    op.create_table(
        "billboard_images",
        _id("ImageID", primary_key=True),
        _id("BillboardID", nullable=False),
        sa.Column("ImageURL", sa.String(length=500), nullable=False),
        sa.Column("ImageType", sa.String(length=50), nullable=True),
        _created(nullable=True),
        sa.ForeignKeyConstraint(["BillboardID"], ["billboards.BillboardID"]),
    )
    op.create_index("ix_billboard_images_BillboardID", "billboard_images", ["BillboardID"], unique=False)

    op.create_table(
        "bookings",
        _id("BookingID", primary_key=True),
        _id("BillboardID", nullable=False),
        _id("CustomerID", nullable=False),
        sa.Column("StartDate", sa.Date(), nullable=False),
        sa.Column("EndDate", sa.Date(), nullable=False),
        sa.Column("TotalAmount", sa.Numeric(12, 2), nullable=True),
        sa.Column("Status", sa.String(length=20), nullable=False, server_default="pending"),
        _created(nullable=True),
        sa.ForeignKeyConstraint(["BillboardID"], ["billboards.BillboardID"]),
        sa.ForeignKeyConstraint(["CustomerID"], ["users.AccountID"]),
    )
    op.create_index("ix_bookings_BillboardID", "bookings", ["BillboardID"], unique=False)
    op.create_index("ix_bookings_CustomerID", "bookings", ["CustomerID"], unique=False)

    op.create_table(
        "kyc_documents",
        _id("DocumentID", primary_key=True),
        _id("AccountID", nullable=False),
        sa.Column("DocumentType", sa.String(length=50), nullable=False),
        sa.Column("DocumentURL", sa.String(length=500), nullable=False),
        _created("UploadedAt", nullable=True),
        sa.ForeignKeyConstraint(["AccountID"], ["users.AccountID"]),
    )
    op.create_index("ix_kyc_documents_AccountID", "kyc_documents", ["AccountID"], unique=False)

    op.create_table(
        "billboard_assignments",
        _id("AssignmentID", primary_key=True),
        _id("BillboardID", nullable=False),
        _id("SubAdminID", nullable=False),
        _id("AssignedBy", nullable=False),
        sa.Column("Status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("Priority", sa.String(length=10), nullable=False, server_default="medium"),
        sa.Column("Notes", sa.Text(), nullable=True),
        sa.Column("DraftReport", sa.JSON(), nullable=True),
        _created("AssignedAt"),
        sa.Column("CompletedAt", sa.DateTime(), nullable=True),
        sa.Column("IsActive", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        # Mirrors BillboardID while active, NULL once retired
        _id("ActiveBillboardID", nullable=True),
        sa.ForeignKeyConstraint(["BillboardID"], ["billboards.BillboardID"]),
        sa.ForeignKeyConstraint(["SubAdminID"], ["users.AccountID"]),
        sa.ForeignKeyConstraint(["AssignedBy"], ["users.AccountID"]),
        sa.UniqueConstraint("ActiveBillboardID"),
    )
    op.create_index("ix_billboard_assignments_BillboardID", "billboard_assignments", ["BillboardID"], unique=False)
    op.create_index("ix_billboard_assignments_SubAdminID", "billboard_assignments", ["SubAdminID"], unique=False)

    op.create_table(
        "site_visits",
        _id("VisitID", primary_key=True),
        _id("BillboardID", nullable=False),
        _id("SubAdminID", nullable=False),
        sa.Column("SubAdminName", sa.String(length=200), nullable=True),
        _id("AssignmentID", nullable=True),
        sa.Column("IsVerified", sa.Boolean(), nullable=False),
        sa.Column("OwnerSelfieURL", sa.String(length=500), nullable=True),
        sa.Column("BillboardPhotoURL", sa.String(length=500), nullable=True),
        sa.Column("VerificationNotes", sa.Text(), nullable=True),
        sa.Column("LocationAccuracy", sa.String(length=20), nullable=True),
        sa.Column("StructuralCondition", sa.String(length=20), nullable=True),
        sa.Column("VisibilityRating", sa.Integer(), nullable=True),
        sa.Column("IssuesFound", sa.JSON(), nullable=True),
        sa.Column("Recommendations", sa.Text(), nullable=True),
        sa.Column("AccessibilityNotes", sa.Text(), nullable=True),
        _created("VisitDate"),
        sa.ForeignKeyConstraint(["BillboardID"], ["billboards.BillboardID"]),
    )
    op.create_index("ix_site_visits_BillboardID", "site_visits", ["BillboardID"], unique=False)
    op.create_index("ix_site_visits_SubAdminID", "site_visits", ["SubAdminID"], unique=False)

    op.create_table(
        "login_attempts",
        _id("LoginAttemptID", primary_key=True),
        _id("AccountID", nullable=True),
        sa.Column("Email", sa.String(length=255), nullable=False),
        sa.Column("IPAddress", sa.String(length=45), nullable=True),
        sa.Column("UserAgent", sa.Text(), nullable=True),
        sa.Column("WasSuccessful", sa.Boolean(), nullable=False),
        sa.Column("FailureReason", sa.String(length=50), nullable=True),
        sa.Column("AttemptCount", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("BlockedUntil", sa.DateTime(), nullable=True),
        _created("AttemptedAt"),
    )
    op.create_index("ix_login_attempts_AccountID", "login_attempts", ["AccountID"], unique=False)
    op.create_index("ix_login_attempts_Email", "login_attempts", ["Email"], unique=False)
    op.create_index("ix_login_attempts_AttemptedAt", "login_attempts", ["AttemptedAt"], unique=False)

    op.create_table(
        "user_sessions",
        _id("SessionID", primary_key=True),
        _id("AccountID", nullable=False),
        sa.Column("SessionToken", sa.String(length=255), nullable=False),
        sa.Column("DeviceType", sa.String(length=50), nullable=True),
        sa.Column("BrowserName", sa.String(length=100), nullable=True),
        sa.Column("OperatingSystem", sa.String(length=100), nullable=True),
        sa.Column("IPAddress", sa.String(length=45), nullable=True),
        sa.Column("UserAgent", sa.Text(), nullable=True),
        _created(),
        _created("LastActivityAt"),
        sa.Column("ExpiresAt", sa.DateTime(), nullable=False),
        sa.Column("IsActive", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("RevokedAt", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["AccountID"], ["users.AccountID"]),
        sa.UniqueConstraint("SessionToken"),
    )
    op.create_index("ix_user_sessions_AccountID", "user_sessions", ["AccountID"], unique=False)

    op.create_table(
        "admin_notifications",
        _id("NotificationID", primary_key=True),
        sa.Column("NotificationType", sa.String(length=30), nullable=False),
        _id("TargetAdminID", nullable=False),
        _id("SourceAdminID", nullable=True),
        sa.Column("SourceAdminName", sa.String(length=200), nullable=True),
        sa.Column("Payload", sa.JSON(), nullable=True),
        sa.Column("IsProcessed", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        _created(),
        sa.Column("ProcessedAt", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["TargetAdminID"], ["users.AccountID"]),
    )
    op.create_index("ix_admin_notifications_TargetAdminID", "admin_notifications", ["TargetAdminID"], unique=False)
    op.create_index("ix_admin_notifications_IsProcessed", "admin_notifications", ["IsProcessed"], unique=False)

    op.create_table(
        "admin_notification_preferences",
        _id("PreferenceID", primary_key=True),
        _id("AdminID", nullable=False),
        sa.Column("SecurityAlerts", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("EmailEnabled", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("InAppEnabled", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("UpdatedAt", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["AdminID"], ["users.AccountID"]),
        sa.UniqueConstraint("AdminID"),
    )

    op.create_table(
        "notifications",
        _id("NotificationID", primary_key=True),
        _id("AccountID", nullable=False),
        sa.Column("Title", sa.String(length=255), nullable=False),
        sa.Column("Message", sa.Text(), nullable=False),
        sa.Column("Type", sa.String(length=20), nullable=False, server_default="info"),
        sa.Column("IsRead", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        _created(),
        sa.Column("ReadAt", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["AccountID"], ["users.AccountID"]),
    )
    op.create_index("ix_notifications_AccountID", "notifications", ["AccountID"], unique=False)

    op.create_table(
        "admin_audit_log",
        _id("AuditID", primary_key=True),
        _id("AdminID", nullable=False),
        sa.Column("AdminName", sa.String(length=200), nullable=True),
        sa.Column("ActionType", sa.String(length=50), nullable=False),
        sa.Column("TargetType", sa.String(length=50), nullable=True),
        _id("TargetID", nullable=True),
        sa.Column("Details", sa.JSON(), nullable=True),
        _created(),
    )
    op.create_index("ix_admin_audit_log_AdminID", "admin_audit_log", ["AdminID"], unique=False)
    op.create_index("ix_admin_audit_log_ActionType", "admin_audit_log", ["ActionType"], unique=False)


def downgrade():
    op.drop_index("ix_admin_audit_log_ActionType", table_name="admin_audit_log")
    op.drop_index("ix_admin_audit_log_AdminID", table_name="admin_audit_log")
    op.drop_table("admin_audit_log")
    op.drop_index("ix_notifications_AccountID", table_name="notifications")
    op.drop_table("notifications")
    op.drop_table("admin_notification_preferences")
    op.drop_index("ix_admin_notifications_IsProcessed", table_name="admin_notifications")
    op.drop_index("ix_admin_notifications_TargetAdminID", table_name="admin_notifications")
    op.drop_table("admin_notifications")
    op.drop_index("ix_user_sessions_AccountID", table_name="user_sessions")
    op.drop_table("user_sessions")
    op.drop_index("ix_login_attempts_AttemptedAt", table_name="login_attempts")
    op.drop_index("ix_login_attempts_Email", table_name="login_attempts")
    op.drop_index("ix_login_attempts_AccountID", table_name="login_attempts")
    op.drop_table("login_attempts")
    op.drop_index("ix_site_visits_SubAdminID", table_name="site_visits")
    op.drop_index("ix_site_visits_BillboardID", table_name="site_visits")
    op.drop_table("site_visits")
    op.drop_index("ix_billboard_assignments_SubAdminID", table_name="billboard_assignments")
    op.drop_index("ix_billboard_assignments_BillboardID", table_name="billboard_assignments")
    op.drop_table("billboard_assignments")
    op.drop_index("ix_kyc_documents_AccountID", table_name="kyc_documents")
    op.drop_table("kyc_documents")
    op.drop_index("ix_bookings_CustomerID", table_name="bookings")
    op.drop_index("ix_bookings_BillboardID", table_name="bookings")
    op.drop_table("bookings")
    op.drop_index("ix_billboard_images_BillboardID", table_name="billboard_images")
    op.drop_table("billboard_images")
    op.drop_index("ix_billboards_Status", table_name="billboards")
    op.drop_index("ix_billboards_OwnerID", table_name="billboards")
    op.drop_table("billboards")
    op.drop_table("users")

import uuid
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from billboard_app.errors import AuthenticationFailed, RateLimited, ServiceUnavailable
from billboard_app.extensions import db, mail
from billboard_app.models import Account, AdminNotification, LoginAttempts, UserSessions, utcnow
from billboard_app.services.admin_notification_service import AdminNotificationService
from billboard_app.services.auth_service import AuthService
from billboard_app.services.login_security_service import (
    FAILURE_INVALID_CREDENTIALS,
    FAILURE_RATE_LIMITED,
    LoginSecurityService,
)
from billboard_app.services.session_management_service import SessionManagementService
from billboard_app.services.user_admin_service import UserAdminService

from factories import PASSWORD, create_admin, create_owner, create_sub_admin, set_admin_preferences


def _fail_login(email, times):
    for _ in range(times):
        with pytest.raises(AuthenticationFailed):
            AuthService.authenticate(email, "wrong-password", "10.0.0.1", "pytest")


def test_login_creates_session_and_logs_success(app):
    owner = create_owner(email="owner@example.com")
    result = AuthService.authenticate("owner@example.com", PASSWORD, "10.0.0.1", "Mozilla/5.0 (Windows NT 10.0) Chrome/120")

    assert result.user.AccountID == owner.AccountID
    assert SessionManagementService.validate_session(result.session_token) == owner.AccountID

    session_row = UserSessions.query.filter_by(SessionToken=result.session_token).one()
    assert session_row.ExpiresAt == result.expires_at
    assert session_row.BrowserName == "Chrome"
    attempt = LoginAttempts.query.filter_by(Email="owner@example.com").one()
    assert attempt.WasSuccessful is True
    assert db.session.get(Account, owner.AccountID).LastLoginAt is not None


def test_login_email_is_case_insensitive(app):
    owner = create_owner(email="mixed@example.com")
    result = AuthService.authenticate("  MiXeD@Example.COM ", PASSWORD)
    assert result.user.AccountID == owner.AccountID


def test_unknown_email_and_wrong_password_fail_the_same_way(app):
    create_owner(email="known@example.com")

    with pytest.raises(AuthenticationFailed) as unknown:
        AuthService.authenticate("nobody@example.com", PASSWORD)
    with pytest.raises(AuthenticationFailed) as wrong:
        AuthService.authenticate("known@example.com", "not-it")

    assert unknown.value.message == wrong.value.message
    assert unknown.value.to_dict() == wrong.value.to_dict()
    assert LoginAttempts.query.filter_by(FailureReason=FAILURE_INVALID_CREDENTIALS).count() == 2


def test_portal_role_mismatch_is_reported_as_bad_credentials(app):
    create_owner(email="owner2@example.com")
    with pytest.raises(AuthenticationFailed) as exc:
        AuthService.authenticate("owner2@example.com", PASSWORD, allowed_roles={"sub_admin"})
    assert exc.value.reason == FAILURE_INVALID_CREDENTIALS


def test_inactive_account_cannot_log_in(app):
    create_sub_admin(email="gone@example.com", is_active=False)
    with pytest.raises(AuthenticationFailed) as exc:
        AuthService.authenticate("gone@example.com", PASSWORD)
    assert exc.value.reason == "account_inactive"
    assert UserSessions.query.count() == 0


def test_fifth_failure_blocks_even_the_correct_password(app):
    create_owner(email="victim@example.com")
    _fail_login("victim@example.com", 5)

    with pytest.raises(RateLimited) as exc:
        AuthService.authenticate("victim@example.com", PASSWORD)

    assert exc.value.blocked_until is not None
    assert exc.value.blocked_until > utcnow()
    assert UserSessions.query.count() == 0
    blocked = LoginAttempts.query.filter_by(FailureReason=FAILURE_RATE_LIMITED).one()
    assert blocked.BlockedUntil == exc.value.blocked_until


def test_rate_limit_counts_down_and_ignores_blocked_attempts(app):
    create_owner(email="count@example.com")
    _fail_login("count@example.com", 3)

    status = LoginSecurityService.check_rate_limit("count@example.com")
    assert status.allowed is True
    assert status.attempts_remaining == 2

    _fail_login("count@example.com", 2)
    for _ in range(3):
        with pytest.raises(RateLimited):
            AuthService.authenticate("count@example.com", PASSWORD)

    fifth = LoginAttempts.query.filter_by(FailureReason=FAILURE_INVALID_CREDENTIALS, AttemptCount=5).one()
    assert fifth.BlockedUntil is not None
    assert LoginSecurityService._window_failures("count@example.com", utcnow() - timedelta(minutes=15)).count() == 5


def test_block_lifts_once_the_window_passes(app):
    create_owner(email="later@example.com")
    long_ago = utcnow() - timedelta(minutes=40)
    for n in range(1, 6):
        db.session.add(LoginAttempts(
            LoginAttemptID=str(uuid.uuid4()),
            Email="later@example.com",
            WasSuccessful=False,
            FailureReason=FAILURE_INVALID_CREDENTIALS,
            AttemptCount=n,
            BlockedUntil=long_ago + timedelta(minutes=15) if n == 5 else None,
            AttemptedAt=long_ago,
        ))
    db.session.commit()

    status = LoginSecurityService.check_rate_limit("later@example.com")
    assert status.allowed is True
    assert status.attempts_remaining == 5
    assert AuthService.authenticate("later@example.com", PASSWORD).session_token


def test_rate_limit_fails_open_when_attempt_log_is_unreadable(app, monkeypatch):
    create_owner(email="open@example.com")

    def broken(email, since):
        raise OperationalError("SELECT", {}, Exception("store down"))

    monkeypatch.setattr(LoginSecurityService, "_window_failures", staticmethod(broken))
    status = LoginSecurityService.check_rate_limit("open@example.com")
    assert status.allowed is True
    assert status.degraded is True


def test_rate_limit_fails_closed_when_configured(app, monkeypatch):
    app.config["LOGIN_RATE_LIMIT_FAIL_OPEN"] = False

    def broken(email, since):
        raise OperationalError("SELECT", {}, Exception("store down"))

    monkeypatch.setattr(LoginSecurityService, "_window_failures", staticmethod(broken))
    with pytest.raises(ServiceUnavailable):
        LoginSecurityService.check_rate_limit("closed@example.com")


def test_lockout_alerts_admins_in_app_and_by_email(app):
    opted_in = create_admin(email="sec@example.com")
    quiet = create_admin(email="quiet@example.com")
    set_admin_preferences(opted_in, SecurityAlerts=True, EmailEnabled=True)
    set_admin_preferences(quiet, SecurityAlerts=True, EmailEnabled=False)
    create_owner(email="target@example.com")

    with mail.record_messages() as outbox:
        _fail_login("target@example.com", 5)

    alerts = AdminNotification.query.filter_by(NotificationType="security_alert").all()
    assert {a.TargetAdminID for a in alerts} == {opted_in.AccountID, quiet.AccountID}
    assert alerts[0].Payload["email"] == "target@example.com"
    assert len(outbox) == 1
    assert outbox[0].recipients == ["sec@example.com"]


def test_validate_session_is_idempotent_and_read_only(app):
    create_owner(email="idem@example.com")
    token = AuthService.authenticate("idem@example.com", PASSWORD).session_token
    before = UserSessions.query.filter_by(SessionToken=token).one().LastActivityAt

    first = SessionManagementService.validate_session(token)
    second = SessionManagementService.validate_session(token)

    assert first == second
    db.session.expire_all()
    assert UserSessions.query.filter_by(SessionToken=token).one().LastActivityAt == before


def test_expired_or_unknown_sessions_are_invalid(app):
    owner = create_owner()
    db.session.add(UserSessions(
        AccountID=owner.AccountID,
        SessionToken="expired-token",
        ExpiresAt=utcnow() - timedelta(minutes=1),
    ))
    db.session.commit()

    assert SessionManagementService.validate_session("expired-token") is None
    assert SessionManagementService.validate_session("no-such-token") is None
    assert SessionManagementService.validate_session("") is None
    assert SessionManagementService.cleanup_expired_sessions() == 1


def test_validate_session_fails_closed_on_store_error(app, monkeypatch):
    def broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("store down"))

    monkeypatch.setattr(db.session, "query", broken)
    assert SessionManagementService.validate_session("anything") is None


def test_logout_and_revoke_all(app):
    create_owner(email="multi@example.com")
    first = AuthService.authenticate("multi@example.com", PASSWORD).session_token
    second = AuthService.authenticate("multi@example.com", PASSWORD)

    assert AuthService.logout(first) is True
    assert AuthService.logout(first) is False
    assert SessionManagementService.validate_session(first) is None

    assert SessionManagementService.revoke_all_sessions(second.user.AccountID) == 1
    assert SessionManagementService.validate_session(second.session_token) is None
    assert SessionManagementService.get_active_sessions(second.user.AccountID) == []


def test_admins_created_by_the_service_get_security_alert_email(app):
    admin = UserAdminService.create_admin("new-sec@example.com", "New Sec", "S3cure!Pass")
    admin_id = admin.AccountID
    create_owner(email="first-target@example.com")
    create_owner(email="second-target@example.com")

    with mail.record_messages() as outbox:
        _fail_login("first-target@example.com", 5)
    assert [m.recipients for m in outbox] == [["new-sec@example.com"]]

    AdminNotificationService.update_preferences(admin_id, {"email_enabled": False})
    with mail.record_messages() as outbox:
        _fail_login("second-target@example.com", 5)
    assert outbox == []
    assert AdminNotification.query.filter_by(
        NotificationType="security_alert", TargetAdminID=admin_id
    ).count() == 2

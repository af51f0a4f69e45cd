from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user

from ..decorators.session_security import bearer_token, require_active_session
from ..errors import ValidationError
from ..models import ROLE_ADMIN, ROLE_SUB_ADMIN
from ..services.auth_service import AuthService
from ..services.login_security_service import LoginSecurityService
from ..services.user_notification_service import UserNotificationService
from .common import client_info, json_body, text_field

bp = Blueprint("auth", __name__, url_prefix="/auth")

# Staff portals only accept their own role
PORTAL_ROLES = {
    "admin": {ROLE_ADMIN},
    "sub_admin": {ROLE_SUB_ADMIN},
}


def serialize_account(acct) -> dict:
    return {
        "id": acct.AccountID,
        "email": acct.Email,
        "name": acct.Name,
        "role": acct.Role,
        "is_active": bool(acct.IsActive),
        "kyc_status": acct.KYCStatus,
    }


@bp.route("/login", methods=["POST"])
def login_api():
    data = json_body()
    email = text_field(data, "email") or ""
    password = text_field(data, "password", strip=False) or ""
    portal = (text_field(data, "portal") or "").lower() or None

    if not email or not password:
        raise ValidationError("Email and password are required")
    if portal and portal not in PORTAL_ROLES:
        raise ValidationError("Unknown portal")

    ip, user_agent = client_info()
    result = AuthService.authenticate(
        email, password, ip, user_agent, allowed_roles=PORTAL_ROLES.get(portal)
    )
    current_app.logger.info(f"[auth] login ok for {result.user.AccountID} via {portal or 'default'} portal")
    return jsonify({
        "success": True,
        "token": result.session_token,
        "expires_at": result.expires_at.isoformat(),
        "user": serialize_account(result.user),
    })


@bp.route("/logout", methods=["POST"])
def logout():
    token = bearer_token()
    revoked = AuthService.logout(token) if token else False
    return jsonify({"success": True, "revoked": revoked})


@bp.route("/session", methods=["GET"])
@require_active_session
def session_info():
    return jsonify({"success": True, "user": serialize_account(current_user)})


@bp.route("/rate-limit", methods=["POST"])
def rate_limit_status():
    data = json_body()
    email = text_field(data, "email")
    if not email:
        raise ValidationError("Email is required")
    ip, _ = client_info()
    status = LoginSecurityService.check_rate_limit(email, ip)
    return jsonify({"success": True, **status.to_dict()})


@bp.route("/notifications", methods=["GET"])
@require_active_session
def my_notifications():
    unread_only = request.args.get("unread", "").lower() in ("1", "true", "yes")
    notifications = UserNotificationService.fetch_notifications(
        current_user.AccountID,
        limit=request.args.get("limit", UserNotificationService.DEFAULT_LIMIT, type=int),
        unread_only=unread_only,
    )
    return jsonify({
        "success": True,
        "notifications": [UserNotificationService.serialize(n) for n in notifications],
    })


@bp.route("/notifications/read", methods=["POST"])
@require_active_session
def mark_notifications_read():
    ids = json_body().get("ids") or []
    if not isinstance(ids, list):
        raise ValidationError("ids must be a list")
    return jsonify({"success": True, "updated": UserNotificationService.mark_read(current_user.AccountID, ids)})

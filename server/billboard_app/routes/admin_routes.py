import json
import queue

from flask import Blueprint, Response, current_app, jsonify, request, stream_with_context
from flask_login import current_user

from ..decorators.session_security import require_active_session, require_role
from ..errors import ValidationError
from ..models import ROLE_ADMIN
from ..services.admin_audit_service import AdminAuditService
from ..services.admin_notification_service import AdminNotificationService
from ..services.login_security_service import LoginSecurityService
from ..services.notification_hub import hub
from ..services.secure_deletion_service import SecureDeletionService
from ..services.user_admin_service import UserAdminService
from ..services.user_cache import AdminEventConsumer
from .auth import serialize_account
from .common import json_body, text_field, with_warnings

bp = Blueprint("admin", __name__, url_prefix="/admin")


# -------------------------------------------------------------------
# Notifications (live stream with a polling fallback)
# -------------------------------------------------------------------
@bp.route("/notifications", methods=["GET"])
@require_active_session
@require_role([ROLE_ADMIN])
def list_notifications():
    include_processed = request.args.get("include_processed", "").lower() in ("1", "true", "yes")
    notifications = AdminNotificationService.get_admin_notifications(
        current_user.AccountID,
        limit=request.args.get("limit", type=int),
        include_processed=include_processed,
    )
    return jsonify({
        "success": True,
        "notifications": [AdminNotificationService.serialize(n) for n in notifications],
    })


@bp.route("/notifications/processed", methods=["POST"])
@require_active_session
@require_role([ROLE_ADMIN])
def mark_notifications_processed():
    ids = json_body().get("ids") or []
    if not isinstance(ids, list):
        raise ValidationError("ids must be a list")
    updated = AdminNotificationService.mark_processed(current_user.AccountID, ids)
    return jsonify({"success": True, "updated": updated})


def _sse(event: str, data, event_id=None) -> str:
    lines = [f"event: {event}"]
    if event_id is not None:
        lines.append(f"id: {event_id}")
    lines.append("data: " + json.dumps(data, default=str))
    return "\n".join(lines) + "\n\n"


@bp.route("/notifications/stream", methods=["GET"])
@require_active_session
@require_role([ROLE_ADMIN])
def stream_notifications():
    """Server-sent events for the signed-in admin; 503 tells the client to poll instead."""
    admin_id = current_user.AccountID
    if not hub.connected:
        return jsonify({
            "success": False,
            "error": "notifications_not_connected",
            "connected": False,
            "message": "Live notifications are unavailable; poll /admin/notifications",
        }), 503

    events = queue.Queue()
    consumer = AdminEventConsumer(admin_id, forward=events.put)
    keepalive = current_app.config.get("NOTIFICATION_STREAM_KEEPALIVE_SECONDS", 15)

    @stream_with_context
    def generate():
        if not consumer.attach(hub):
            yield _sse("error", {"error": "notifications_not_connected", "connected": False})
            return
        current_app.logger.info(f"[admin] notification stream opened for {admin_id}")
        try:
            yield _sse("connected", {"connected": True, "admin_id": admin_id})
            while True:
                try:
                    event = events.get(timeout=keepalive)
                except queue.Empty:
                    yield ": keepalive\n\n"
                    continue
                yield _sse(event.get("type", "message"), event, event.get("id"))
        finally:
            consumer.detach()
            current_app.logger.info(f"[admin] notification stream closed for {admin_id}")

    return Response(
        generate(),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@bp.route("/notification-preferences", methods=["GET"])
@require_active_session
@require_role([ROLE_ADMIN])
def get_notification_preferences():
    prefs = AdminNotificationService.get_preferences(current_user.AccountID)
    return jsonify({"success": True, "preferences": AdminNotificationService.serialize_preferences(prefs)})


@bp.route("/notification-preferences", methods=["PUT"])
@require_active_session
@require_role([ROLE_ADMIN])
def update_notification_preferences():
    prefs = AdminNotificationService.update_preferences(current_user.AccountID, json_body())
    return jsonify({"success": True, "preferences": AdminNotificationService.serialize_preferences(prefs)})


# -------------------------------------------------------------------
# User management
# -------------------------------------------------------------------
def _status_response(result):
    return jsonify(with_warnings({
        "success": True,
        "user_id": result.user_id,
        "is_active": result.is_active,
        "sessions_revoked": result.sessions_revoked,
    }, result.warnings))


@bp.route("/users", methods=["GET"])
@require_active_session
@require_role([ROLE_ADMIN])
def list_users():
    users = UserAdminService.list_users(
        role=request.args.get("role") or None,
        limit=request.args.get("limit", 100, type=int),
    )
    return jsonify({"success": True, "users": users})


@bp.route("/users/<user_id>", methods=["GET"])
@require_active_session
@require_role([ROLE_ADMIN])
def get_user(user_id):
    return jsonify({"success": True, "user": UserAdminService.get_user(user_id)})


@bp.route("/users/<user_id>/deactivate", methods=["POST"])
@require_active_session
@require_role([ROLE_ADMIN])
def deactivate_user(user_id):
    result = UserAdminService.deactivate_user(user_id, current_user.AccountID, text_field(json_body(), "reason"))
    current_app.logger.info(f"[admin] {current_user.AccountID} deactivated {user_id}")
    return _status_response(result)


@bp.route("/users/<user_id>/reactivate", methods=["POST"])
@require_active_session
@require_role([ROLE_ADMIN])
def reactivate_user(user_id):
    result = UserAdminService.reactivate_user(user_id, current_user.AccountID, text_field(json_body(), "reason"))
    current_app.logger.info(f"[admin] {current_user.AccountID} reactivated {user_id}")
    return _status_response(result)


@bp.route("/users/<user_id>", methods=["DELETE"])
@require_active_session
@require_role([ROLE_ADMIN])
def delete_user(user_id):
    reason = text_field(json_body(), "reason")
    result = SecureDeletionService.delete_user(user_id, current_user.AccountID, reason)
    current_app.logger.warning(
        f"[admin] {current_user.AccountID} deleted user {user_id} ({result.records_deleted} records, {result.ms}ms)"
    )
    return jsonify(with_warnings({
        "success": True,
        "user_id": result.user_id,
        "records_deleted": result.records_deleted,
        "ms": result.ms,
    }, result.warnings))


@bp.route("/sub-admins", methods=["POST"])
@require_active_session
@require_role([ROLE_ADMIN])
def create_sub_admin():
    data = json_body()
    account = UserAdminService.create_sub_admin(
        current_user.AccountID,
        text_field(data, "email"),
        text_field(data, "name"),
        text_field(data, "password", strip=False),
        phone=text_field(data, "phone"),
    )
    return jsonify({"success": True, "user": serialize_account(account)}), 201


# -------------------------------------------------------------------
# Security review
# -------------------------------------------------------------------
@bp.route("/login-history", methods=["GET"])
@require_active_session
@require_role([ROLE_ADMIN])
def login_history():
    attempts = LoginSecurityService.get_login_history(
        email=request.args.get("email") or None,
        limit=request.args.get("limit", 100, type=int),
    )
    return jsonify({"success": True, "attempts": [LoginSecurityService.serialize_attempt(a) for a in attempts]})


@bp.route("/audit-log", methods=["GET"])
@require_active_session
@require_role([ROLE_ADMIN])
def audit_log():
    entries = AdminAuditService.get_admin_audit_logs(
        admin_id=request.args.get("admin_id") or None,
        action_type=request.args.get("action_type") or None,
        limit=request.args.get("limit", 100, type=int),
    )
    return jsonify({"success": True, "entries": [AdminAuditService.serialize(e) for e in entries]})

"""
Session Management Routes
Lets a signed-in account list and revoke its own sessions
"""

from flask import Blueprint, g, jsonify
from flask_login import current_user

from ..decorators.session_security import require_active_session
from ..errors import NotFound
from ..services.session_management_service import SessionManagementService

bp = Blueprint("sessions", __name__, url_prefix="/sessions")


@bp.route("/")
@require_active_session
def view_sessions():
    """List active sessions for the current user"""
    active_sessions = SessionManagementService.get_active_sessions(current_user.AccountID)
    return jsonify({
        "success": True,
        "sessions": [
            SessionManagementService.serialize_session(s, current_token=g.session_token)
            for s in active_sessions
        ],
    })


@bp.route("/<session_id>/revoke", methods=["POST"])
@require_active_session
def revoke_session(session_id):
    """Revoke one of the current user's sessions"""
    if not SessionManagementService.revoke_session(current_user.AccountID, session_id):
        raise NotFound("Session not found")
    return jsonify({"success": True, "message": "Session revoked successfully"})

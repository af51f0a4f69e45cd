from flask import Blueprint, jsonify, request
from flask_login import current_user

from ..decorators.session_security import require_active_session, require_role
from ..models import ROLE_SUB_ADMIN
from ..services.verification_service import VerificationService
from .common import json_body, with_warnings

bp = Blueprint("site_visits", __name__, url_prefix="/site-visits")


@bp.route("/<billboard_id>", methods=["POST"])
@require_active_session
@require_role([ROLE_SUB_ADMIN])
def record_site_visit(billboard_id):
    data = json_body()
    result = VerificationService.record_visit(
        billboard_id, current_user.AccountID, data.get("is_verified"), data.get("report") or {}
    )
    return jsonify(with_warnings({
        "success": True,
        "visit_id": result.visit_id,
        "billboard_status": result.billboard_status,
        "assignment_id": result.assignment_id,
    }, result.warnings)), 201


@bp.route("/<billboard_id>/draft", methods=["PUT"])
@require_active_session
@require_role([ROLE_SUB_ADMIN])
def save_draft(billboard_id):
    draft = VerificationService.save_draft(billboard_id, current_user.AccountID, json_body())
    return jsonify({"success": True, "draft": draft})


@bp.route("/history", methods=["GET"])
@require_active_session
@require_role([ROLE_SUB_ADMIN])
def verification_history():
    limit = request.args.get("limit", 100, type=int)
    return jsonify({
        "success": True,
        "visits": VerificationService.get_verification_history(current_user.AccountID, limit=limit),
    })

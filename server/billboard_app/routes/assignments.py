from flask import Blueprint, current_app, jsonify
from flask_login import current_user

from ..decorators.session_security import require_active_session, require_role
from ..errors import ValidationError
from ..models import ROLE_ADMIN, ROLE_SUB_ADMIN
from ..services.assignment_service import AssignmentService, serialize_assignment
from .common import json_body, text_field, with_warnings

bp = Blueprint("assignments", __name__, url_prefix="/assignments")


@bp.route("/", methods=["POST"])
@require_active_session
@require_role([ROLE_ADMIN])
def assign_billboard():
    data = json_body()
    billboard_id = text_field(data, "billboard_id")
    sub_admin_id = text_field(data, "sub_admin_id")
    if not billboard_id or not sub_admin_id:
        raise ValidationError("billboard_id and sub_admin_id are required")

    result = AssignmentService.assign(
        billboard_id,
        sub_admin_id,
        current_user.AccountID,
        priority=text_field(data, "priority") or "medium",
        notes=text_field(data, "notes"),
    )
    current_app.logger.info(
        f"[assignments] {billboard_id} -> {sub_admin_id} ({result.outcome.value}) by {current_user.AccountID}"
    )
    return jsonify(with_warnings({
        "success": True,
        "outcome": result.outcome.value,
        "assignment": serialize_assignment(result.assignment),
        "superseded_id": result.superseded_id,
    }, result.warnings))


@bp.route("/mine", methods=["GET"])
@require_active_session
@require_role([ROLE_SUB_ADMIN])
def my_assignments():
    return jsonify({"success": True, "assignments": AssignmentService.get_assignments_for(current_user.AccountID)})


@bp.route("/health", methods=["GET"])
@require_active_session
@require_role([ROLE_ADMIN])
def assignment_health():
    return jsonify({
        "success": True,
        "health": AssignmentService.assignment_health(),
        "issues": AssignmentService.integrity_issues(),
    })

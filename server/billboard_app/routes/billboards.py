from flask import Blueprint, current_app, jsonify
from flask_login import current_user

from ..decorators.session_security import require_active_session, require_role
from ..models import ROLE_ADMIN, ROLE_OWNER
from ..services.billboard_lifecycle_service import BillboardLifecycleService, serialize_billboard
from .common import json_body, text_field, with_warnings

bp = Blueprint("billboards", __name__, url_prefix="/billboards")


def _transition_response(result):
    return jsonify(with_warnings(
        {"success": True, "billboard_id": result.billboard_id, "status": result.status},
        result.warnings,
    ))


# ---------------------------------------------------------------------------
# Owner
# ---------------------------------------------------------------------------

@bp.route("/", methods=["POST"])
@require_active_session
@require_role([ROLE_OWNER])
def create_billboard():
    """Create a draft, or create and submit in one step with ``"submit": true``."""
    data = json_body()
    if data.get("submit"):
        billboard = BillboardLifecycleService.create_and_submit(current_user.AccountID, data)
    else:
        billboard = BillboardLifecycleService.create_billboard(current_user.AccountID, data)
    return jsonify({"success": True, "billboard": serialize_billboard(billboard)}), 201


@bp.route("/<billboard_id>", methods=["PUT"])
@require_active_session
@require_role([ROLE_OWNER])
def update_billboard(billboard_id):
    billboard = BillboardLifecycleService.update_billboard(billboard_id, current_user.AccountID, json_body())
    return jsonify({"success": True, "billboard": serialize_billboard(billboard)})


@bp.route("/<billboard_id>/submit", methods=["POST"])
@require_active_session
@require_role([ROLE_OWNER])
def submit_billboard(billboard_id):
    result = BillboardLifecycleService.submit(billboard_id, current_user.AccountID)
    return _transition_response(result)


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------

@bp.route("/pending", methods=["GET"])
@require_active_session
@require_role([ROLE_ADMIN])
def pending_billboards():
    billboards = BillboardLifecycleService.list_pending()
    return jsonify({"success": True, "billboards": [serialize_billboard(b) for b in billboards]})


@bp.route("/awaiting-verification", methods=["GET"])
@require_active_session
@require_role([ROLE_ADMIN])
def awaiting_verification():
    return jsonify({"success": True, "billboards": BillboardLifecycleService.list_awaiting_verification()})


@bp.route("/<billboard_id>/approve", methods=["POST"])
@require_active_session
@require_role([ROLE_ADMIN])
def approve_billboard(billboard_id):
    data = json_body()
    result = BillboardLifecycleService.approve(billboard_id, current_user.AccountID, text_field(data, "notes"))
    current_app.logger.info(f"[billboards] {current_user.AccountID} approved {billboard_id}")
    return _transition_response(result)


@bp.route("/<billboard_id>/reject", methods=["POST"])
@require_active_session
@require_role([ROLE_ADMIN])
def reject_billboard(billboard_id):
    data = json_body()
    result = BillboardLifecycleService.reject(billboard_id, current_user.AccountID, text_field(data, "reason"))
    current_app.logger.info(f"[billboards] {current_user.AccountID} rejected {billboard_id}")
    return _transition_response(result)


@bp.route("/<billboard_id>/reverify", methods=["POST"])
@require_active_session
@require_role([ROLE_ADMIN])
def reverify_billboard(billboard_id):
    result = BillboardLifecycleService.request_reverification(billboard_id, current_user.AccountID)
    return _transition_response(result)


@bp.route("/<billboard_id>/deactivate", methods=["POST"])
@require_active_session
@require_role([ROLE_ADMIN])
def deactivate_billboard(billboard_id):
    result = BillboardLifecycleService.deactivate(billboard_id, current_user.AccountID)
    return _transition_response(result)


@bp.route("/<billboard_id>/reactivate", methods=["POST"])
@require_active_session
@require_role([ROLE_ADMIN])
def reactivate_billboard(billboard_id):
    result = BillboardLifecycleService.reactivate(billboard_id, current_user.AccountID)
    return _transition_response(result)

from flask import Blueprint, jsonify
from flask_login import current_user

from ..decorators.session_security import require_active_session, require_role
from ..models import ROLE_ADMIN, ROLE_OWNER
from ..services.kyc_service import KYCService
from .common import json_body, text_field, with_warnings

bp = Blueprint("kyc", __name__, url_prefix="/kyc")


def _kyc_response(result):
    return jsonify(with_warnings(
        {"success": True, "user_id": result.user_id, "kyc_status": result.kyc_status},
        result.warnings,
    ))


@bp.route("/documents", methods=["POST"])
@require_active_session
@require_role([ROLE_OWNER])
def submit_documents():
    data = json_body()
    result = KYCService.submit_documents(current_user.AccountID, data.get("documents") or [])
    return _kyc_response(result)


@bp.route("/<user_id>/approve", methods=["POST"])
@require_active_session
@require_role([ROLE_ADMIN])
def approve_kyc(user_id):
    return _kyc_response(KYCService.approve(user_id, current_user.AccountID))


@bp.route("/<user_id>/reject", methods=["POST"])
@require_active_session
@require_role([ROLE_ADMIN])
def reject_kyc(user_id):
    data = json_body()
    return _kyc_response(KYCService.reject(user_id, current_user.AccountID, text_field(data, "notes")))


@bp.route("/<user_id>/reverify", methods=["POST"])
@require_active_session
@require_role([ROLE_ADMIN])
def reverify_kyc(user_id):
    return _kyc_response(KYCService.request_kyc_reverification(user_id, current_user.AccountID))

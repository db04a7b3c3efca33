"""
Release Quality Hub
Security & Ops blueprint — scan bookkeeping and the SO pillar score.

Endpoints:
    GET    /api/v1/security-checks                  list (?release_id=)
    POST   /api/v1/security-checks                  register a check
    POST   /api/v1/security-checks/<id>/result      record finding counts
    GET    /api/v1/security-checks/so-score         SO score (?release_id=)
"""

from flask import Blueprint, jsonify, request

from qahub.blueprints import json_body
from qahub.middleware.tenant_context import current_tenant_id
from qahub.models import db
from qahub.services import security_ops_service
from qahub.utils.errors import E, api_error

security_ops_bp = Blueprint("security_ops", __name__, url_prefix="/api/v1")


@security_ops_bp.route("/security-checks", methods=["GET"])
def list_checks():
    checks = security_ops_service.list_checks(
        tenant_id=current_tenant_id(),
        release_id=request.args.get("release_id", type=int),
    )
    return jsonify({"items": [c.to_dict() for c in checks], "total": len(checks)})


@security_ops_bp.route("/security-checks", methods=["POST"])
def create_check():
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    if not data.get("check_type"):
        return api_error(E.VALIDATION_REQUIRED, "check_type is required")

    check = security_ops_service.create_check(tenant_id=current_tenant_id(), data=data)
    db.session.commit()
    return jsonify(check.to_dict()), 201


@security_ops_bp.route("/security-checks/<int:check_id>/result", methods=["POST"])
def record_result(check_id):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")

    check = security_ops_service.record_check_result(check_id, tenant_id=current_tenant_id(), data=data)
    db.session.commit()
    return jsonify(check.to_dict())


@security_ops_bp.route("/security-checks/so-score", methods=["GET"])
def so_score():
    result = security_ops_service.calculate_so_score(
        tenant_id=current_tenant_id(),
        release_id=request.args.get("release_id", type=int),
    )
    return jsonify(result)

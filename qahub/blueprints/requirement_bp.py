"""
Release Quality Hub
Requirement blueprint — the planning items behind the RP pillar.

Endpoints:
    GET    /api/v1/requirements           list (?state=)
    POST   /api/v1/requirements           create
    PATCH  /api/v1/requirements/<id>      update title/description/priority/state
"""

from flask import Blueprint, jsonify, request

from qahub.blueprints import json_body, paginate_items
from qahub.middleware.tenant_context import current_tenant_id
from qahub.models import db
from qahub.services import requirement_service
from qahub.utils.errors import E, api_error

requirement_bp = Blueprint("requirements", __name__, url_prefix="/api/v1")


@requirement_bp.route("/requirements", methods=["GET"])
def list_requirements():
    reqs = requirement_service.list_requirements(
        tenant_id=current_tenant_id(),
        state=request.args.get("state"),
    )
    page, total = paginate_items(reqs)
    return jsonify({"items": [r.to_dict() for r in page], "total": total})


@requirement_bp.route("/requirements", methods=["POST"])
def create_requirement():
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    if not data.get("title"):
        return api_error(E.VALIDATION_REQUIRED, "title is required")

    req = requirement_service.create_requirement(tenant_id=current_tenant_id(), data=data)
    db.session.commit()
    return jsonify(req.to_dict()), 201


@requirement_bp.route("/requirements/<int:req_id>", methods=["PATCH"])
def update_requirement(req_id):
    data = json_body()
    if not data:
        return api_error(E.VALIDATION_INVALID, "Request body must be a non-empty JSON object")

    req = requirement_service.update_requirement(req_id, tenant_id=current_tenant_id(), data=data)
    db.session.commit()
    return jsonify(req.to_dict())

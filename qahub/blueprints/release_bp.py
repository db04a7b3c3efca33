"""
Release Quality Hub
Release blueprint — releases, confidence scoring and release gates.

Endpoints:
    GET    /api/v1/releases                          list (?status=)
    POST   /api/v1/releases                          create
    GET    /api/v1/releases/<id>                     detail
    POST   /api/v1/releases/<id>/rcs                 calculate confidence score
    GET    /api/v1/releases/<id>/rcs                 last stored score + explanation
    POST   /api/v1/releases/<id>/evaluate-gates      run the gate checklist
    POST   /api/v1/releases/<id>/<action>            activate|freeze|ship|block|unblock|abort
"""

import logging

from flask import Blueprint, jsonify, request

from qahub import limiter
from qahub.blueprints import ai_rate_limit, json_body, paginate_items
from qahub.middleware.tenant_context import current_tenant_id, current_user_id
from qahub.models import db
from qahub.services import rcs_service, release_service
from qahub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

release_bp = Blueprint("releases", __name__, url_prefix="/api/v1")

_scoring_limit = limiter.shared_limit(ai_rate_limit, scope="release_scoring")


@release_bp.route("/releases", methods=["GET"])
def list_releases():
    releases = release_service.list_releases(
        tenant_id=current_tenant_id(),
        status=request.args.get("status"),
    )
    page, total = paginate_items(releases)
    return jsonify({"items": [r.to_dict() for r in page], "total": total})


@release_bp.route("/releases", methods=["POST"])
def create_release():
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    if not data.get("version"):
        return api_error(E.VALIDATION_REQUIRED, "version is required")

    release = release_service.create_release(
        tenant_id=current_tenant_id(), data=data, user_id=current_user_id(),
    )
    db.session.commit()
    return jsonify(release.to_dict()), 201


@release_bp.route("/releases/<int:release_id>", methods=["GET"])
def get_release(release_id):
    release = release_service.get_release(release_id, tenant_id=current_tenant_id())
    return jsonify(release.to_dict())


@release_bp.route("/releases/<int:release_id>/rcs", methods=["POST"])
@_scoring_limit
def calculate_rcs(release_id):
    result = rcs_service.calculate_rcs(release_id, tenant_id=current_tenant_id())
    return jsonify(result)


@release_bp.route("/releases/<int:release_id>/rcs", methods=["GET"])
def get_rcs(release_id):
    release = release_service.get_release(release_id, tenant_id=current_tenant_id())
    if release.rcs_evaluated_at is None:
        return api_error(E.NOT_FOUND, "Release has not been scored yet")
    return jsonify({
        "score": rcs_service.round_half_up(release.rcs_score or 0),
        "breakdown": release.rcs_breakdown,
        "explanation": release.rcs_explanation,
        "evaluated_at": release.to_dict()["rcs_evaluated_at"],
    })


@release_bp.route("/releases/<int:release_id>/evaluate-gates", methods=["POST"])
@_scoring_limit
def evaluate_gates(release_id):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    override_reason = data.get("override_reason")
    if override_reason is not None and not isinstance(override_reason, str):
        return api_error(E.VALIDATION_INVALID, "override_reason must be a string")

    evaluation = rcs_service.evaluate_release_gates(
        release_id,
        tenant_id=current_tenant_id(),
        override_reason=override_reason,
        user_id=current_user_id(),
    )
    return jsonify(evaluation)


@release_bp.route("/releases/<int:release_id>/<action>", methods=["POST"])
def release_action(release_id, action):
    if action not in release_service.LIFECYCLE_ACTIONS:
        return api_error(E.NOT_FOUND, f"Unknown release action '{action}'")
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")

    reason = data.get("reason")
    if reason is not None and not isinstance(reason, str):
        return api_error(E.VALIDATION_INVALID, "reason must be a string")

    release = release_service.apply_action(
        release_id,
        tenant_id=current_tenant_id(),
        action=action,
        reason=reason,
        user_id=current_user_id(),
    )
    db.session.commit()
    return jsonify(release.to_dict())

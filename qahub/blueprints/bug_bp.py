"""
Release Quality Hub
Bug blueprint — bug tracking, triage and AI triage suggestions.

Endpoints:
    GET    /api/v1/bugs                      list (?status=&severity=&priority=&assigned_to=)
    POST   /api/v1/bugs                      create (optionally triaged)
    GET    /api/v1/bugs/<id>                 detail
    DELETE /api/v1/bugs/<id>                 delete (OPEN or INVALID only)
    POST   /api/v1/bugs/<id>/triage          triage
    PATCH  /api/v1/bugs/<id>/triage          adjust severity/priority/assignee
    POST   /api/v1/bugs/<id>/transition      lifecycle action
    POST   /api/v1/bugs/<id>/ai-triage       AI severity/priority suggestion
"""

import logging

from flask import Blueprint, jsonify, request

from qahub import limiter
from qahub.blueprints import ai_rate_limit, json_body, paginate_items
from qahub.core.exceptions import AIProviderError
from qahub.middleware.tenant_context import current_tenant_id, current_user_id
from qahub.models import db
from qahub.services import bug_service
from qahub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

bug_bp = Blueprint("bugs", __name__, url_prefix="/api/v1")

_ai_triage_limit = limiter.shared_limit(ai_rate_limit, scope="ai_triage")


@bug_bp.route("/bugs", methods=["GET"])
def list_bugs():
    bugs = bug_service.list_bugs(
        tenant_id=current_tenant_id(),
        status=request.args.get("status"),
        severity=request.args.get("severity"),
        priority=request.args.get("priority"),
        assigned_to=request.args.get("assigned_to"),
    )
    page, total = paginate_items(bugs)
    return jsonify({"items": [b.to_dict() for b in page], "total": total})


@bug_bp.route("/bugs", methods=["POST"])
def create_bug():
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    for field in ("title", "description"):
        if not isinstance(data.get(field, ""), str):
            return api_error(E.VALIDATION_INVALID, f"{field} must be a string")
    if data.get("tags") is not None and not isinstance(data["tags"], list):
        return api_error(E.VALIDATION_INVALID, "tags must be a list")

    bug = bug_service.create_bug(tenant_id=current_tenant_id(), data=data, user_id=current_user_id())
    db.session.commit()
    return jsonify(bug.to_dict()), 201


@bug_bp.route("/bugs/<int:bug_id>", methods=["GET"])
def get_bug(bug_id):
    bug = bug_service.get_bug(bug_id, tenant_id=current_tenant_id())
    return jsonify(bug.to_dict())


@bug_bp.route("/bugs/<int:bug_id>", methods=["DELETE"])
def delete_bug(bug_id):
    bug_service.delete_bug(bug_id, tenant_id=current_tenant_id())
    db.session.commit()
    return jsonify({"message": "Bug deleted"}), 200


@bug_bp.route("/bugs/<int:bug_id>/triage", methods=["POST"])
def triage_bug(bug_id):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    missing = [f for f in ("severity", "priority") if not data.get(f)]
    if missing:
        return api_error(E.VALIDATION_REQUIRED, f"{', '.join(missing)} required",
                         details={f: "required" for f in missing})

    bug = bug_service.triage_bug(bug_id, tenant_id=current_tenant_id(), data=data, user_id=current_user_id())
    db.session.commit()
    return jsonify(bug.to_dict())


@bug_bp.route("/bugs/<int:bug_id>/triage", methods=["PATCH"])
def update_triage(bug_id):
    data = json_body()
    if not data:
        return api_error(E.VALIDATION_INVALID, "Request body must be a non-empty JSON object")

    bug = bug_service.update_triage(bug_id, tenant_id=current_tenant_id(), data=data)
    db.session.commit()
    return jsonify(bug.to_dict())


@bug_bp.route("/bugs/<int:bug_id>/transition", methods=["POST"])
def transition_bug(bug_id):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    action = data.get("action")
    if not action:
        return api_error(E.VALIDATION_REQUIRED, "action is required")
    reason = data.get("reason", data.get("resolution_notes"))
    if reason is not None and not isinstance(reason, str):
        return api_error(E.VALIDATION_INVALID, "reason must be a string")

    bug = bug_service.transition_bug(
        bug_id,
        tenant_id=current_tenant_id(),
        action=str(action).lower(),
        reason=reason,
        user_id=current_user_id(),
    )
    db.session.commit()
    return jsonify(bug.to_dict())


@bug_bp.route("/bugs/<int:bug_id>/ai-triage", methods=["POST"])
@_ai_triage_limit
def ai_triage(bug_id):
    try:
        suggestion = bug_service.suggest_triage(bug_id, tenant_id=current_tenant_id())
    except AIProviderError as exc:
        logger.warning("AI triage unavailable for bug %s: %s", bug_id, exc,
                       extra={"tenant_id": current_tenant_id()})
        return api_error(E.AI_UNAVAILABLE, str(exc))
    return jsonify({"bug_id": bug_id, **suggestion})

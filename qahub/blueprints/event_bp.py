"""
Release Quality Hub
Event blueprint — read access to the domain event outbox.

Endpoints:
    GET    /api/v1/events     (?aggregate_type=&aggregate_id=&event_type=&limit=)
"""

from flask import Blueprint, jsonify, request

from qahub.middleware.tenant_context import current_tenant_id
from qahub.services import event_store

event_bp = Blueprint("events", __name__, url_prefix="/api/v1")


@event_bp.route("/events", methods=["GET"])
def list_events():
    events = event_store.list_events(
        tenant_id=current_tenant_id(),
        aggregate_type=request.args.get("aggregate_type"),
        aggregate_id=request.args.get("aggregate_id", type=int),
        event_type=request.args.get("event_type"),
        limit=request.args.get("limit", 100, type=int),
    )
    return jsonify({"items": [e.to_dict() for e in events], "total": len(events)})

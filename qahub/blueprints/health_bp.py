"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        — service name + status
    GET /api/v1/health/ready  — readiness probe (database reachable)
    GET /api/v1/health/live   — simple 200 while the process runs
"""

import logging
import os
import time

from flask import Blueprint, current_app, jsonify

from qahub.ai.gateway import LLMGateway
from qahub.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def health():
    return jsonify({"status": "ok", "app": "Release Quality Hub"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness probe — always 200 if the app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Readiness probe with dependency status."""
    checks = {}
    overall = True

    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    checks["ai"] = {
        "providers": ["local"] + sorted(
            name for name, env_key in LLMGateway.API_KEY_ENV.items() if os.getenv(env_key)
        ),
    }
    checks["app"] = {"debug": current_app.debug, "testing": current_app.testing}

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
"""JSON error bodies shared by every blueprint.

Every error leaves the API as ``{"error": <message>, "code": <ERR_*>}`` plus an
optional ``details`` object; the HTTP status follows from the code.

    return api_error(E.NOT_FOUND, "Release not found")
    return api_error(E.VALIDATION_REQUIRED, "title is required")
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Error codes clients may branch on."""

    # 400: request body is malformed
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    # 422: well-formed but breaks a domain rule
    VALIDATION_RULE = "ERR_VALIDATION_RULE"

    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    FORBIDDEN = "ERR_FORBIDDEN"
    NOT_FOUND = "ERR_NOT_FOUND"

    # 409: duplicate key vs. action not allowed in the current state
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"

    RATE_LIMITED = "ERR_RATE_LIMITED"
    INTERNAL = "ERR_INTERNAL"
    AI_UNAVAILABLE = "ERR_AI_UNAVAILABLE"


STATUS_BY_CODE = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_RULE: 422,
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STATE: 409,
    E.RATE_LIMITED: 429,
    E.INTERNAL: 500,
    E.AI_UNAVAILABLE: 503,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Build ``(response, status)`` for a Flask view.

    ``status`` overrides the code's usual status; unknown codes map to 400.
    """
    payload = {"error": message, "code": code}
    if details:
        payload["details"] = details
    return jsonify(payload), status or STATUS_BY_CODE.get(code, 400)


def register_error_handlers(app):
    """Map the core exception hierarchy to JSON responses app-wide."""
    import logging

    from flask import request

    from qahub.core.exceptions import (
        ConflictError,
        InvalidTransitionError,
        NotFoundError,
        ValidationError,
    )

    logger = logging.getLogger("qahub.errors")

    @app.errorhandler(NotFoundError)
    def _not_found(exc):
        logger.info("Not found: %s", exc)
        return api_error(E.NOT_FOUND, f"{exc.resource} not found")

    @app.errorhandler(InvalidTransitionError)
    def _invalid_transition(exc):
        return api_error(E.CONFLICT_STATE, str(exc), details=exc.details)

    @app.errorhandler(ValidationError)
    def _validation(exc):
        return api_error(E.VALIDATION_RULE, str(exc), details=exc.details)

    @app.errorhandler(ConflictError)
    def _conflict(exc):
        return api_error(E.CONFLICT_DUPLICATE, str(exc))

    @app.errorhandler(404)
    def _route_not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def _rate_limited(e):
        return api_error(E.RATE_LIMITED, f"Rate limit exceeded: {e.description}")

    @app.errorhandler(Exception)
    def _unhandled(exc):
        from werkzeug.exceptions import HTTPException

        if isinstance(exc, HTTPException):
            return {"error": exc.description or exc.name}, exc.code
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return api_error(E.INTERNAL, "Internal server error")

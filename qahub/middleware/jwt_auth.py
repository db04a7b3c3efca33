"""
JWT Auth Middleware — Parses JWT from Authorization header, sets g.jwt_*.

Requests without a Bearer token fall through untouched (tenant context may
still come from the X-Tenant-ID header). A Bearer token that fails
verification is rejected with 401.
"""

import logging

import jwt as pyjwt
from flask import g, request

from qahub.services.jwt_service import decode_access_token
from qahub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_user_id = None
        g.jwt_tenant_id = None
        g.jwt_roles = []

        path = request.path
        if not path.startswith("/api/v1/"):
            return None
        if path.startswith(JWT_SKIP_PREFIXES):
            return None

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return None

        token = auth_header[7:]
        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            return api_error(E.UNAUTHORIZED, "Token expired")
        except pyjwt.InvalidTokenError as exc:
            logger.info("Rejected bearer token: %s", exc)
            return api_error(E.UNAUTHORIZED, "Invalid token")

        g.jwt_user_id = payload.get("sub")
        g.jwt_tenant_id = payload.get("tenant_id")
        g.jwt_roles = payload.get("roles", [])
        return None

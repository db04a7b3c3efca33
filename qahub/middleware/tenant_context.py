"""
Tenant Context Middleware — Resolves and validates the tenant of every API request.

Resolution order:
  1. g.jwt_tenant_id set by jwt_auth middleware
  2. X-Tenant-ID request header

The resolved tenant must exist and be active. Route handlers read the id
through ``current_tenant_id()`` and pass it explicitly to every service call.

Chain order:
  jwt_auth.py  →  tenant_context.py  →  route handler
"""

import logging

from flask import g, request

from qahub.models import db
from qahub.models.tenant import Tenant
from qahub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that skip tenant context (unauthenticated paths only)
TENANT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def _resolve_tenant_id():
    tenant_id = getattr(g, "jwt_tenant_id", None)
    if tenant_id is not None:
        return tenant_id
    header = request.headers.get("X-Tenant-ID", "").strip()
    if header.isdigit():
        return int(header)
    return None


def init_tenant_context(app):
    """Register tenant context middleware as a before_request hook."""

    @app.before_request
    def _tenant_context():
        g.tenant = None
        g.tenant_id = None

        if not request.path.startswith("/api/v1/"):
            return None
        if request.path.startswith(TENANT_SKIP_PREFIXES):
            return None

        tenant_id = _resolve_tenant_id()
        if tenant_id is None:
            return api_error(E.UNAUTHORIZED, "Tenant context required")

        tenant = db.session.get(Tenant, tenant_id)
        if tenant is None:
            logger.warning("Request for unknown tenant_id %s", tenant_id)
            return api_error(E.FORBIDDEN, "Tenant not found")
        if not tenant.is_active:
            logger.warning("Request for deactivated tenant_id %s", tenant_id)
            return api_error(E.FORBIDDEN, "Tenant account is deactivated")

        g.tenant = tenant
        g.tenant_id = tenant.id
        return None


def current_tenant_id() -> int:
    """Tenant id resolved for the current request."""
    return g.tenant_id


def current_user_id() -> str | None:
    """User id from the JWT, or the X-User-ID header for service-to-service calls."""
    return getattr(g, "jwt_user_id", None) or request.headers.get("X-User-ID")

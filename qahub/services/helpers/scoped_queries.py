"""
Tenant-scoped query helpers.

Every get-by-id goes through these helpers instead of db.session.get(Model, pk):
a bare primary-key lookup ignores tenant isolation.

Usage:
    release = get_scoped(Release, release_id, tenant_id=tenant_id)
    req = get_scoped_or_none(Requirement, req_id, tenant_id=tenant_id)
"""

import logging

from sqlalchemy import select

from qahub.core.exceptions import NotFoundError
from qahub.models import db

logger = logging.getLogger(__name__)


def get_scoped(model, pk: int, *, tenant_id: int):
    """Fetch a single entity by PK within one tenant.

    Cross-tenant access is indistinguishable from a missing record: both
    raise NotFoundError → HTTP 404.

    Raises:
        ValueError: If tenant_id is None or the model has no tenant_id column.
        NotFoundError: If the entity does not exist OR belongs to another tenant.
    """
    if tenant_id is None:
        raise ValueError(
            f"{model.__name__} id={pk} requires a tenant_id. "
            "Unscoped lookups are forbidden."
        )
    if not hasattr(model, "tenant_id"):
        raise ValueError(f"{model.__name__} is not tenant-scoped")

    stmt = select(model).where(model.id == pk, model.tenant_id == tenant_id)
    entity = db.session.execute(stmt).scalar_one_or_none()
    if entity is None:
        logger.debug("Scoped lookup miss: %s id=%s tenant=%s", model.__name__, pk, tenant_id)
        raise NotFoundError(resource=model.__name__, resource_id=pk, tenant_id=tenant_id)
    return entity


def get_scoped_or_none(model, pk: int | None, *, tenant_id: int):
    """Like get_scoped, but returns None instead of raising NotFoundError."""
    if pk is None:
        return None
    try:
        return get_scoped(model, pk, tenant_id=tenant_id)
    except NotFoundError:
        return None

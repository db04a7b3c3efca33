"""
Release Quality Hub
Requirement service — the planning snapshot behind the RP pillar.
"""

import logging

from qahub.core.exceptions import ValidationError
from qahub.models import db
from qahub.models.requirement import Requirement, RequirementState
from qahub.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)


def _state(value) -> RequirementState:
    try:
        return RequirementState(str(value).upper())
    except ValueError:
        raise ValidationError(
            f"Invalid requirement state '{value}'",
            details={"state": f"must be one of {[s.value for s in RequirementState]}"},
        ) from None


def create_requirement(*, tenant_id: int, data: dict) -> Requirement:
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("Requirement title is required", details={"title": "required"})
    req = Requirement(
        tenant_id=tenant_id,
        title=title,
        description=data.get("description") or "",
        state=_state(data.get("state", RequirementState.DRAFT)),
        priority=data.get("priority"),
    )
    db.session.add(req)
    db.session.flush()
    logger.info("Requirement created: id=%s state=%s", req.id, req.state, extra={"tenant_id": tenant_id})
    return req


def update_requirement(req_id: int, *, tenant_id: int, data: dict) -> Requirement:
    req = get_scoped(Requirement, req_id, tenant_id=tenant_id)
    if "title" in data:
        title = (data["title"] or "").strip()
        if not title:
            raise ValidationError("Requirement title is required", details={"title": "required"})
        req.title = title
    if "description" in data:
        req.description = data["description"] or ""
    if "priority" in data:
        req.priority = data["priority"]
    if "state" in data:
        req.state = _state(data["state"])
    db.session.flush()
    return req


def list_requirements(*, tenant_id: int, state: str | None = None) -> list[Requirement]:
    q = Requirement.query_for_tenant(tenant_id)
    if state:
        q = q.filter_by(state=_state(state))
    return q.order_by(Requirement.id).all()


def list_all_for_tenant(*, tenant_id: int) -> list[Requirement]:
    return Requirement.query_for_tenant(tenant_id).all()

"""
Release Quality Hub
Requirement — planning input to the RP pillar of the release confidence score.
"""

from enum import StrEnum

from qahub.models import db
from qahub.models.base import TenantModel, _iso, _utcnow


class RequirementState(StrEnum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    NEEDS_REVISION = "NEEDS_REVISION"
    READY = "READY"


class Requirement(TenantModel):
    __tablename__ = "requirements"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    state = db.Column(db.String(20), nullable=False, default=RequirementState.DRAFT)
    priority = db.Column(db.String(20), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def is_ready(self) -> bool:
        return self.state == RequirementState.READY

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "title": self.title,
            "description": self.description,
            "state": self.state,
            "priority": self.priority,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

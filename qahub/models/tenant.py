"""
Release Quality Hub
Tenant — isolation boundary for every other table.

``settings`` carries per-tenant options; ``settings["ai_config"]`` selects
the AI provider used for release explanations and bug triage:
    {"provider": "gemini" | "anthropic" | "openai" | "local", "model": "..."}
"""

from qahub.models import db
from qahub.models.base import _iso, _utcnow


class Tenant(db.Model):
    __tablename__ = "tenants"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    plan = db.Column(db.String(50), default="trial")
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    settings = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    @property
    def ai_config(self) -> dict:
        return (self.settings or {}).get("ai_config") or {}

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "plan": self.plan,
            "is_active": self.is_active,
            "settings": self.settings or {},
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

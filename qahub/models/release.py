"""
Release Quality Hub
Release aggregate — lifecycle state machine and readiness bookkeeping.

Lifecycle:
    PLANNED → ACTIVE → FROZEN → RELEASED
    BLOCKED is a detour back to ACTIVE; ABORTED ends any non-terminal release.

The score, breakdown and gate outcome are written by the RCS service through
``apply_evaluation``; the narrative explanation is written later by the
detached explanation task.
"""

import re
from enum import StrEnum

from qahub.core.exceptions import ValidationError
from qahub.models import db
from qahub.models.base import TenantModel, _iso, _utcnow
from qahub.models.events import (
    RELEASE_ABORTED,
    RELEASE_BLOCKED,
    RELEASE_CREATED,
    RELEASE_READINESS_ACHIEVED,
    RELEASE_READINESS_EVALUATED,
    AggregateMixin,
)
from qahub.models.transitions import check_transition, next_states


class ReleaseStatus(StrEnum):
    PLANNED = "PLANNED"
    ACTIVE = "ACTIVE"
    FROZEN = "FROZEN"
    RELEASED = "RELEASED"
    BLOCKED = "BLOCKED"
    ABORTED = "ABORTED"


class ReadinessStatus(StrEnum):
    READY = "READY"
    WARNING = "WARNING"
    BLOCKED = "BLOCKED"


RELEASE_TRANSITIONS: dict[ReleaseStatus, frozenset[ReleaseStatus]] = {
    ReleaseStatus.PLANNED: frozenset({ReleaseStatus.ACTIVE, ReleaseStatus.BLOCKED, ReleaseStatus.ABORTED}),
    ReleaseStatus.ACTIVE: frozenset({ReleaseStatus.FROZEN, ReleaseStatus.BLOCKED, ReleaseStatus.ABORTED}),
    ReleaseStatus.FROZEN: frozenset({ReleaseStatus.RELEASED, ReleaseStatus.BLOCKED, ReleaseStatus.ABORTED}),
    ReleaseStatus.BLOCKED: frozenset({ReleaseStatus.ACTIVE, ReleaseStatus.ABORTED}),
    ReleaseStatus.RELEASED: frozenset(),
    ReleaseStatus.ABORTED: frozenset(),
}

TERMINAL_RELEASE_STATUSES = frozenset({ReleaseStatus.RELEASED, ReleaseStatus.ABORTED})

SEMVER_RE = re.compile(r"^\d+\.\d+\.\d+(-[\da-z.-]*)?(\+[\da-z.-]*)?$", re.IGNORECASE)


def validate_release_transition(current, target, *, verb: str | None = None) -> None:
    check_transition("Release", RELEASE_TRANSITIONS, ReleaseStatus(current), ReleaseStatus(target), verb=verb)


def is_valid_version(version: str) -> bool:
    return bool(version) and SEMVER_RE.match(version) is not None


class Release(AggregateMixin, TenantModel):
    __tablename__ = "releases"

    AGGREGATE_TYPE = "Release"

    id = db.Column(db.Integer, primary_key=True)
    version = db.Column(db.String(50), nullable=False)
    name = db.Column(db.String(200), nullable=True)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(20), nullable=False, default=ReleaseStatus.PLANNED, index=True)

    rcs_score = db.Column(db.Float, nullable=True)
    rcs_breakdown = db.Column(db.JSON, nullable=True)
    rcs_explanation = db.Column(db.JSON, nullable=True)
    rcs_evaluated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    readiness_status = db.Column(db.String(20), nullable=True)
    gate_passed = db.Column(db.Boolean, nullable=True)
    override_reason = db.Column(db.Text, nullable=True)
    blocked_reason = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    released_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "version", name="uq_release_tenant_version"),
    )

    @classmethod
    def create(
        cls,
        *,
        tenant_id: int,
        version: str,
        name: str | None = None,
        description: str | None = None,
        created_by: str | None = None,
    ) -> "Release":
        version = (version or "").strip()
        if not is_valid_version(version):
            raise ValidationError(
                f"Invalid version '{version}'. Use semantic versioning (e.g. 1.2.0 or 2.0.0-rc.1)",
                details={"version": "must be MAJOR.MINOR.PATCH[-prerelease][+build]"},
            )
        release = cls(
            tenant_id=tenant_id,
            version=version,
            name=(name or "").strip() or f"Release {version}",
            description=description or "",
            status=ReleaseStatus.PLANNED,
            created_by=created_by,
        )
        release.record_event(RELEASE_CREATED, {
            "version": version,
            "name": release.name,
        }, user_id=created_by)
        return release

    # ── Queries ──────────────────────────────────────────────────────────

    def is_terminal(self) -> bool:
        return ReleaseStatus(self.status) in TERMINAL_RELEASE_STATUSES

    def has_evaluation(self) -> bool:
        return self.rcs_evaluated_at is not None

    def valid_next_states(self) -> list[str]:
        return sorted(next_states(RELEASE_TRANSITIONS, ReleaseStatus(self.status)))

    # ── Scoring ──────────────────────────────────────────────────────────

    def record_score(self, score: float, breakdown: dict) -> None:
        """Persist a freshly calculated confidence score."""
        if self.is_terminal():
            raise ValidationError(f"Cannot score a {self.status} release")
        self.rcs_score = score
        self.rcs_breakdown = breakdown
        self.rcs_evaluated_at = _utcnow()

    def apply_evaluation(self, evaluation: dict, *, user_id=None) -> None:
        """Store a gate evaluation and emit the readiness events."""
        if self.is_terminal():
            raise ValidationError(
                f"Cannot evaluate readiness of a {self.status} release",
                details={"status": self.status},
            )
        self.readiness_status = evaluation["readiness_status"]
        self.gate_passed = evaluation["can_release"]
        self.override_reason = evaluation.get("override_reason")

        summary = evaluation["summary"]
        self.record_event(RELEASE_READINESS_EVALUATED, {
            "version": self.version,
            "rcs_score": evaluation["rcs_score"],
            "readiness_status": self.readiness_status,
            "can_release": self.gate_passed,
            "override_applied": evaluation["override_applied"],
            "override_reason": self.override_reason,
            "gates_passed": summary["passed"],
            "gates_total": summary["total"],
        }, user_id=user_id)
        if summary["passed"] == summary["total"]:
            self.record_event(RELEASE_READINESS_ACHIEVED, {
                "version": self.version,
                "rcs_score": evaluation["rcs_score"],
            }, user_id=user_id)

    def set_explanation(self, explanation: dict) -> None:
        self.rcs_explanation = {
            "summary": explanation.get("summary", ""),
            "risks": list(explanation.get("risks") or []),
            "strengths": list(explanation.get("strengths") or []),
            "generated_at": _utcnow().isoformat(),
        }

    # ── Lifecycle ────────────────────────────────────────────────────────

    def activate(self) -> None:
        if not self.has_evaluation():
            raise ValidationError("Release readiness must be evaluated before activation")
        validate_release_transition(self.status, ReleaseStatus.ACTIVE, verb="activate")
        self.status = ReleaseStatus.ACTIVE

    def freeze(self) -> None:
        validate_release_transition(self.status, ReleaseStatus.FROZEN, verb="freeze")
        self.status = ReleaseStatus.FROZEN

    def ship(self) -> None:
        validate_release_transition(self.status, ReleaseStatus.RELEASED, verb="release")
        if not self.gate_passed:
            raise ValidationError(
                "Release gates have not passed. Evaluate gates (or supply an override) first.",
                details={"readiness_status": self.readiness_status},
            )
        self.status = ReleaseStatus.RELEASED
        self.released_at = _utcnow()

    def block(self, reason: str, *, user_id=None) -> None:
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to block a release", details={"reason": "required"})
        validate_release_transition(self.status, ReleaseStatus.BLOCKED, verb="block")
        previous = self.status
        self.status = ReleaseStatus.BLOCKED
        self.blocked_reason = reason.strip()
        self.record_event(RELEASE_BLOCKED, {
            "version": self.version,
            "from": previous,
            "reason": self.blocked_reason,
        }, user_id=user_id)

    def unblock(self) -> None:
        validate_release_transition(self.status, ReleaseStatus.ACTIVE, verb="unblock")
        self.status = ReleaseStatus.ACTIVE
        self.blocked_reason = None

    def abort(self, reason: str | None = None, *, user_id=None) -> None:
        validate_release_transition(self.status, ReleaseStatus.ABORTED, verb="abort")
        previous = self.status
        self.status = ReleaseStatus.ABORTED
        self.record_event(RELEASE_ABORTED, {
            "version": self.version,
            "from": previous,
            "reason": reason,
        }, user_id=user_id)

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "version": self.version,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "rcs_score": self.rcs_score,
            "rcs_breakdown": self.rcs_breakdown,
            "rcs_explanation": self.rcs_explanation,
            "rcs_evaluated_at": _iso(self.rcs_evaluated_at),
            "readiness_status": self.readiness_status,
            "gate_passed": self.gate_passed,
            "override_reason": self.override_reason,
            "blocked_reason": self.blocked_reason,
            "valid_next_states": self.valid_next_states(),
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "released_at": _iso(self.released_at),
        }

"""
Release Quality Hub
Bug aggregate — state machine, triage rules and severity/priority helpers.

Lifecycle:
    OPEN → TRIAGED → IN_PROGRESS → RESOLVED → VERIFIED → CLOSED
    side paths: DEFERRED, INVALID; reopen returns a resolved-like bug to OPEN.

Terminal (for triage edits): RESOLVED, CLOSED, DEFERRED, INVALID.
"""

import math
from datetime import datetime, timedelta, timezone
from enum import StrEnum

from qahub.core.exceptions import ValidationError
from qahub.models import db
from qahub.models.base import TenantModel, _iso, _utcnow
from qahub.models.events import (
    BUG_CREATED,
    BUG_REOPENED,
    BUG_RESOLVED,
    BUG_STATUS_CHANGED,
    BUG_TRIAGED,
    AggregateMixin,
)
from qahub.models.transitions import check_transition, next_states


class BugStatus(StrEnum):
    OPEN = "OPEN"
    TRIAGED = "TRIAGED"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    VERIFIED = "VERIFIED"
    CLOSED = "CLOSED"
    DEFERRED = "DEFERRED"
    INVALID = "INVALID"


class BugSeverity(StrEnum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class BugPriority(StrEnum):
    P0 = "P0"
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"


BUG_TRANSITIONS: dict[BugStatus, frozenset[BugStatus]] = {
    BugStatus.OPEN: frozenset({BugStatus.TRIAGED, BugStatus.DEFERRED, BugStatus.INVALID}),
    BugStatus.TRIAGED: frozenset({BugStatus.IN_PROGRESS, BugStatus.DEFERRED, BugStatus.INVALID}),
    BugStatus.IN_PROGRESS: frozenset({BugStatus.RESOLVED, BugStatus.DEFERRED, BugStatus.INVALID}),
    BugStatus.RESOLVED: frozenset({BugStatus.VERIFIED, BugStatus.OPEN, BugStatus.INVALID}),
    BugStatus.VERIFIED: frozenset({BugStatus.CLOSED, BugStatus.OPEN}),
    BugStatus.CLOSED: frozenset({BugStatus.OPEN}),
    BugStatus.DEFERRED: frozenset({BugStatus.TRIAGED, BugStatus.OPEN}),
    BugStatus.INVALID: frozenset(),
}

TERMINAL_BUG_STATUSES = frozenset({
    BugStatus.RESOLVED, BugStatus.CLOSED, BugStatus.DEFERRED, BugStatus.INVALID,
})

# Bugs in these states no longer count against a release
RESOLVED_BUG_STATUSES = frozenset({BugStatus.RESOLVED, BugStatus.CLOSED})

WORKFLOW_PERCENTAGE = {
    BugStatus.OPEN: 0,
    BugStatus.TRIAGED: 20,
    BugStatus.IN_PROGRESS: 40,
    BugStatus.RESOLVED: 60,
    BugStatus.VERIFIED: 80,
    BugStatus.CLOSED: 100,
    BugStatus.DEFERRED: 0,
    BugStatus.INVALID: 0,
}


def validate_bug_transition(current, target, *, verb: str | None = None) -> None:
    check_transition("Bug", BUG_TRANSITIONS, BugStatus(current), BugStatus(target), verb=verb)


# ── Severity helpers ─────────────────────────────────────────────────────

SEVERITY_WEIGHTS = {
    BugSeverity.CRITICAL: 100,
    BugSeverity.HIGH: 75,
    BugSeverity.MEDIUM: 40,
    BugSeverity.LOW: 10,
}

# Hours until first response is due
SEVERITY_SLA_HOURS = {
    BugSeverity.CRITICAL: 1,
    BugSeverity.HIGH: 4,
    BugSeverity.MEDIUM: 24,
    BugSeverity.LOW: 72,
}

SEVERITY_DESCRIPTIONS = {
    BugSeverity.CRITICAL: "System down, data loss, or security breach. No workaround.",
    BugSeverity.HIGH: "Major feature broken. Workaround is difficult or unavailable.",
    BugSeverity.MEDIUM: "Feature partially broken. A reasonable workaround exists.",
    BugSeverity.LOW: "Cosmetic issue or minor inconvenience.",
}


def severity_weight(severity) -> int:
    return SEVERITY_WEIGHTS.get(severity, 0) if severity else 0


def severity_blocks_release(severity) -> bool:
    return severity == BugSeverity.CRITICAL


def severity_sla_hours(severity) -> int | None:
    return SEVERITY_SLA_HOURS.get(severity) if severity else None


# ── Priority helpers ─────────────────────────────────────────────────────

PRIORITY_WEIGHTS = {
    BugPriority.P0: 100,
    BugPriority.P1: 75,
    BugPriority.P2: 40,
    BugPriority.P3: 10,
}

PRIORITY_TARGET_DAYS = {
    BugPriority.P0: 1,
    BugPriority.P1: 3,
    BugPriority.P2: 7,
    BugPriority.P3: 30,
}

PRIORITY_DESCRIPTIONS = {
    BugPriority.P0: "Fix immediately. Blocks release.",
    BugPriority.P1: "Fix in the current sprint.",
    BugPriority.P2: "Fix in an upcoming sprint.",
    BugPriority.P3: "Fix when capacity allows.",
}


def priority_weight(priority) -> int:
    return PRIORITY_WEIGHTS.get(priority, 0) if priority else 0


def priority_target_days(priority) -> int | None:
    return PRIORITY_TARGET_DAYS.get(priority) if priority else None


def suggest_priority(severity, affects_main_flow: bool = False) -> BugPriority:
    """Default priority for a severity, bumped one level when the main user flow is hit."""
    severity = BugSeverity(severity)
    if severity == BugSeverity.CRITICAL:
        return BugPriority.P0
    if severity == BugSeverity.HIGH:
        return BugPriority.P1 if affects_main_flow else BugPriority.P2
    if severity == BugSeverity.MEDIUM:
        return BugPriority.P2 if affects_main_flow else BugPriority.P3
    return BugPriority.P3


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they were stored as UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


# ═════════════════════════════════════════════════════════════════════════
# Bug
# ═════════════════════════════════════════════════════════════════════════

class Bug(AggregateMixin, TenantModel):
    __tablename__ = "bugs"

    AGGREGATE_TYPE = "Bug"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=BugStatus.OPEN, index=True)
    severity = db.Column(db.String(20), nullable=True)
    priority = db.Column(db.String(5), nullable=True)
    reported_by = db.Column(db.String(100), nullable=True)
    assigned_to = db.Column(db.String(100), nullable=True)
    tags = db.Column(db.JSON, default=list)
    resolution_notes = db.Column(db.Text, nullable=True)
    linked_requirement_id = db.Column(
        db.Integer, db.ForeignKey("requirements.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    triaged_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # ── Factory ──────────────────────────────────────────────────────────

    @classmethod
    def create(
        cls,
        *,
        tenant_id: int,
        title: str,
        description: str,
        reported_by: str | None = None,
        tags: list[str] | None = None,
        linked_requirement_id: int | None = None,
    ) -> "Bug":
        if not title or not title.strip():
            raise ValidationError("Bug title is required", details={"title": "required"})
        if not description or not description.strip():
            raise ValidationError("Bug description is required", details={"description": "required"})

        bug = cls(
            tenant_id=tenant_id,
            title=title.strip(),
            description=description.strip(),
            status=BugStatus.OPEN,
            reported_by=reported_by,
            tags=list(tags or []),
            linked_requirement_id=linked_requirement_id,
            created_at=_utcnow(),
        )
        bug.record_event(BUG_CREATED, {
            "title": bug.title,
            "reported_by": reported_by,
        }, user_id=reported_by)
        return bug

    # ── Queries ──────────────────────────────────────────────────────────

    def is_terminal(self) -> bool:
        return BugStatus(self.status) in TERMINAL_BUG_STATUSES

    def is_resolved(self) -> bool:
        return BugStatus(self.status) in RESOLVED_BUG_STATUSES

    def valid_next_states(self) -> list[str]:
        return sorted(next_states(BUG_TRANSITIONS, BugStatus(self.status)))

    def blocks_release(self) -> bool:
        if self.is_resolved():
            return False
        return self.severity == BugSeverity.CRITICAL or self.priority == BugPriority.P0

    def impact_score(self) -> int:
        """0-100: severity up to 50, priority up to 30, +20 while unresolved."""
        score = severity_weight(self.severity) / 100 * 50
        score += priority_weight(self.priority) / 100 * 30
        if not self.is_resolved():
            score += 20
        return int(math.floor(score + 0.5))

    def workflow_percentage(self) -> int:
        return WORKFLOW_PERCENTAGE.get(BugStatus(self.status), 0)

    def is_overdue_for_response(self, now: datetime | None = None) -> bool:
        """True when the severity SLA has elapsed and the bug was never triaged."""
        hours = severity_sla_hours(self.severity)
        if hours is None or self.triaged_at is not None or self.created_at is None:
            return False
        now = now or _utcnow()
        return _as_utc(now) > _as_utc(self.created_at) + timedelta(hours=hours)

    # ── Triage ───────────────────────────────────────────────────────────

    def triage(self, *, severity, priority, assigned_to: str | None = None, user_id=None) -> None:
        if self.is_terminal():
            raise ValidationError(
                f"Cannot triage {self.status} bug. Reopen it first.",
                details={"status": self.status},
            )
        if self.status == BugStatus.TRIAGED and self.severity:
            raise ValidationError("Bug is already triaged. Use update_triage to modify.")

        self.severity = BugSeverity(severity)
        self.priority = BugPriority(priority)
        if assigned_to:
            self.assigned_to = assigned_to
        self.triaged_at = _utcnow()
        if self.status == BugStatus.OPEN:
            self.status = BugStatus.TRIAGED

        self.record_event(BUG_TRIAGED, {
            "severity": self.severity,
            "priority": self.priority,
            "assigned_to": self.assigned_to,
        }, user_id=user_id)

    def update_triage(self, *, severity=None, priority=None, assigned_to: str | None = None) -> None:
        if self.is_terminal():
            raise ValidationError(
                f"Cannot update triage of {self.status} bug.",
                details={"status": self.status},
            )
        if severity is not None:
            self.severity = BugSeverity(severity)
        if priority is not None:
            self.priority = BugPriority(priority)
        if assigned_to is not None:
            self.assigned_to = assigned_to or None

    # ── Lifecycle ────────────────────────────────────────────────────────

    def _move(self, target: BugStatus, verb: str) -> BugStatus:
        previous = BugStatus(self.status)
        validate_bug_transition(previous, target, verb=verb)
        self.status = target
        return previous

    def _status_changed(self, previous, *, user_id=None, reason=None) -> None:
        payload = {"from": previous, "to": self.status}
        if reason:
            payload["reason"] = reason
        self.record_event(BUG_STATUS_CHANGED, payload, user_id=user_id)

    def mark_in_progress(self, *, user_id=None) -> None:
        previous = self._move(BugStatus.IN_PROGRESS, "mark as in progress")
        self._status_changed(previous, user_id=user_id)

    def mark_resolved(self, resolution_notes: str | None = None, *, user_id=None) -> None:
        self._move(BugStatus.RESOLVED, "resolve")
        self.resolution_notes = resolution_notes
        self.resolved_at = _utcnow()
        self.record_event(BUG_RESOLVED, {
            "resolution_notes": resolution_notes,
            "severity": self.severity,
        }, user_id=user_id)

    def mark_verified(self, *, user_id=None) -> None:
        previous = self._move(BugStatus.VERIFIED, "verify")
        self._status_changed(previous, user_id=user_id)

    def mark_closed(self, *, user_id=None) -> None:
        previous = self._move(BugStatus.CLOSED, "close")
        self.closed_at = _utcnow()
        self._status_changed(previous, user_id=user_id)

    def defer(self, reason: str | None = None, *, user_id=None) -> None:
        previous = self._move(BugStatus.DEFERRED, "defer")
        self._status_changed(previous, user_id=user_id, reason=reason)

    def mark_invalid(self, reason: str | None = None, *, user_id=None) -> None:
        previous = self._move(BugStatus.INVALID, "invalidate")
        self._status_changed(previous, user_id=user_id, reason=reason)

    def reopen(self, reason: str | None = None, *, user_id=None) -> None:
        previous = self._move(BugStatus.OPEN, "reopen")
        self.resolved_at = None
        self.closed_at = None
        self.record_event(BUG_REOPENED, {"from": previous, "reason": reason}, user_id=user_id)

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "severity": self.severity,
            "priority": self.priority,
            "reported_by": self.reported_by,
            "assigned_to": self.assigned_to,
            "tags": self.tags or [],
            "resolution_notes": self.resolution_notes,
            "linked_requirement_id": self.linked_requirement_id,
            "blocks_release": self.blocks_release(),
            "impact_score": self.impact_score(),
            "workflow_percentage": self.workflow_percentage(),
            "valid_next_states": self.valid_next_states(),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "triaged_at": _iso(self.triaged_at),
            "resolved_at": _iso(self.resolved_at),
            "closed_at": _iso(self.closed_at),
        }

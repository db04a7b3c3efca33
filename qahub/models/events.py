"""
Release Quality Hub
Domain events and the outbox table they are persisted to.

Aggregates (Bug, TestRun, Release) mix in ``AggregateMixin``: every state
change appends one immutable ``DomainEvent`` to a per-instance pending
buffer. The event store drains that buffer and writes the events to
``domain_events`` in the same transaction as the aggregate row.
"""

import copy
import dataclasses
import uuid
from datetime import datetime

from qahub.models import db
from qahub.models.base import TenantModel, _iso, _utcnow


# ── Event type names ─────────────────────────────────────────────────────
BUG_CREATED = "BugCreated"
BUG_TRIAGED = "BugTriaged"
BUG_STATUS_CHANGED = "BugStatusChanged"
BUG_RESOLVED = "BugResolved"
BUG_REOPENED = "BugReopened"

TEST_RUN_CREATED = "TestRunCreated"
TEST_RUN_STARTED = "TestRunStarted"
TEST_RESULT_RECORDED = "TestResultRecorded"
TEST_RUN_COMPLETED = "TestRunCompleted"
TEST_RUN_STOPPED = "TestRunStopped"
TEST_RUN_CANCELLED = "TestRunCancelled"

RELEASE_CREATED = "ReleaseCreated"
RELEASE_READINESS_EVALUATED = "ReleaseReadinessEvaluated"
RELEASE_READINESS_ACHIEVED = "ReleaseReadinessAchieved"
RELEASE_BLOCKED = "ReleaseBlocked"
RELEASE_ABORTED = "ReleaseAborted"


@dataclasses.dataclass(frozen=True)
class DomainEvent:
    """Immutable record of one state change on one aggregate."""

    event_type: str
    aggregate_type: str
    aggregate_id: int | None
    tenant_id: int
    payload: dict = dataclasses.field(default_factory=dict)
    user_id: str | None = None
    event_id: str = dataclasses.field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = dataclasses.field(default_factory=_utcnow)

    def __post_init__(self):
        # detach from the caller's dict; the outbox row gets its own copy too
        object.__setattr__(self, "payload", copy.deepcopy(dict(self.payload or {})))

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "aggregate_type": self.aggregate_type,
            "aggregate_id": self.aggregate_id,
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "occurred_at": self.occurred_at.isoformat(),
            "payload": dict(self.payload),
        }


class AggregateMixin:
    """Pending-event buffer for ORM-backed aggregates.

    Events recorded before the row has a primary key carry
    ``aggregate_id=None``; ``drain_events()`` fills it in from ``self.id``.
    """

    AGGREGATE_TYPE = "Aggregate"

    def _event_buffer(self) -> list:
        buf = getattr(self, "_pending_events", None)
        if buf is None:
            buf = []
            self._pending_events = buf
        return buf

    def record_event(self, event_type: str, payload: dict | None = None, *, user_id=None) -> DomainEvent:
        event = DomainEvent(
            event_type=event_type,
            aggregate_type=self.AGGREGATE_TYPE,
            aggregate_id=self.id,
            tenant_id=self.tenant_id,
            payload=payload or {},
            user_id=str(user_id) if user_id is not None else None,
        )
        self._event_buffer().append(event)
        return event

    @property
    def pending_events(self) -> tuple:
        return tuple(self._event_buffer())

    def drain_events(self) -> list[DomainEvent]:
        """Return pending events (oldest first) and clear the buffer."""
        buf = self._event_buffer()
        drained = [
            dataclasses.replace(e, aggregate_id=self.id) if e.aggregate_id is None else e
            for e in buf
        ]
        buf.clear()
        return drained


class StoredDomainEvent(TenantModel):
    """Outbox row for a published domain event."""

    __tablename__ = "domain_events"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.String(36), unique=True, nullable=False)
    event_type = db.Column(db.String(80), nullable=False, index=True)
    aggregate_type = db.Column(db.String(40), nullable=False)
    aggregate_id = db.Column(db.Integer, nullable=True)
    user_id = db.Column(db.String(100), nullable=True)
    payload = db.Column(db.JSON, default=dict)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)
    stored_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    published_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.Index("ix_domain_events_tenant_aggregate", "tenant_id", "aggregate_type", "aggregate_id"),
    )

    @classmethod
    def from_event(cls, event: DomainEvent) -> "StoredDomainEvent":
        return cls(
            event_id=event.event_id,
            event_type=event.event_type,
            aggregate_type=event.aggregate_type,
            aggregate_id=event.aggregate_id,
            tenant_id=event.tenant_id,
            user_id=event.user_id,
            payload=copy.deepcopy(event.payload),
            occurred_at=event.occurred_at,
        )

    def to_dict(self):
        return {
            "id": self.id,
            "event_id": self.event_id,
            "event_type": self.event_type,
            "aggregate_type": self.aggregate_type,
            "aggregate_id": self.aggregate_id,
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "payload": self.payload or {},
            "occurred_at": _iso(self.occurred_at),
            "stored_at": _iso(self.stored_at),
            "published_at": _iso(self.published_at),
        }

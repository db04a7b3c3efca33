"""
Release Quality Hub
Event store publisher — persist-then-publish for domain events.

Aggregates buffer events; services hand the aggregate to
``collect_and_publish`` after mutating it. Events are written to the
``domain_events`` outbox in the caller's transaction (flush, no commit), then
delivered to in-process subscribers. A persistence failure propagates and
nothing is delivered; a failing subscriber is logged and never affects the
caller or the other subscribers.

Usage:
    from qahub.services import event_store

    @event_store.subscribe("BugTriaged")
    def _on_triaged(event): ...

    event_store.collect_and_publish(bug, tenant_id=tenant_id)
"""

import logging
from collections import defaultdict
from typing import Callable

from qahub.models import db
from qahub.models.base import _utcnow
from qahub.models.events import DomainEvent, StoredDomainEvent

logger = logging.getLogger(__name__)

# event_type → handlers; "*" receives every event
_subscribers: dict[str, list[Callable[[DomainEvent], None]]] = defaultdict(list)


def subscribe(event_type: str):
    """Decorator registering ``fn(event)`` for one event type (or ``"*"``)."""

    def decorator(fn):
        if fn not in _subscribers[event_type]:
            _subscribers[event_type].append(fn)
        return fn

    return decorator


def unsubscribe(event_type: str, fn) -> None:
    handlers = _subscribers.get(event_type, [])
    if fn in handlers:
        handlers.remove(fn)


def publish_events(events: list[DomainEvent], *, tenant_id: int) -> list[StoredDomainEvent]:
    """Persist a batch of events, then deliver each to its subscribers.

    Raises:
        ValueError: If any event belongs to a different tenant than ``tenant_id``.
    """
    if not events:
        return []
    foreign = [e.event_id for e in events if e.tenant_id != tenant_id]
    if foreign:
        raise ValueError(f"Events {foreign} do not belong to tenant {tenant_id}")

    rows = [StoredDomainEvent.from_event(e) for e in events]
    db.session.add_all(rows)
    db.session.flush()
    logger.debug("Persisted %d domain events", len(rows), extra={"tenant_id": tenant_id})

    for event, row in zip(events, rows):
        _dispatch(event)
        row.published_at = _utcnow()
    db.session.flush()
    return rows


def collect_and_publish(aggregate, *, tenant_id: int) -> list[StoredDomainEvent]:
    """Flush the aggregate (so it has an id), drain its events and publish them."""
    db.session.flush()
    return publish_events(aggregate.drain_events(), tenant_id=tenant_id)


def _dispatch(event: DomainEvent) -> None:
    for handler in [*_subscribers.get(event.event_type, []), *_subscribers.get("*", [])]:
        try:
            handler(event)
        except Exception:
            logger.exception(
                "Subscriber %s failed for %s [%s]",
                getattr(handler, "__name__", handler), event.event_type, event.event_id,
                extra={"tenant_id": event.tenant_id, "event_type": event.event_type},
            )


def list_events(
    *,
    tenant_id: int,
    aggregate_type: str | None = None,
    aggregate_id: int | None = None,
    event_type: str | None = None,
    limit: int = 100,
) -> list[StoredDomainEvent]:
    """Events of one tenant in the order they were stored."""
    q = StoredDomainEvent.query_for_tenant(tenant_id)
    if aggregate_type:
        q = q.filter_by(aggregate_type=aggregate_type)
    if aggregate_id is not None:
        q = q.filter_by(aggregate_id=aggregate_id)
    if event_type:
        q = q.filter_by(event_type=event_type)
    return q.order_by(StoredDomainEvent.id).limit(min(limit, 500)).all()

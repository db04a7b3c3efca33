"""
Release Quality Hub
Built-in domain event subscribers.

They only log: notifications and analytics hook in here by registering
their own handlers with ``event_store.subscribe``.
"""

import logging

from qahub.models import events
from qahub.models.testing import RELEASE_GATE_PASS_RATE
from qahub.services import event_store

logger = logging.getLogger(__name__)


def on_bug_triaged(event):
    if event.payload.get("severity") == "CRITICAL" or event.payload.get("priority") == "P0":
        logger.warning(
            "Bug %s triaged as release blocker (%s/%s)",
            event.aggregate_id, event.payload.get("severity"), event.payload.get("priority"),
            extra={"tenant_id": event.tenant_id, "event_type": event.event_type},
        )


def on_test_run_completed(event):
    rate = event.payload.get("pass_rate", 0)
    if rate < RELEASE_GATE_PASS_RATE:
        logger.warning(
            "Test run %s completed below release gate: %s%% < %s%%",
            event.aggregate_id, rate, RELEASE_GATE_PASS_RATE,
            extra={"tenant_id": event.tenant_id, "event_type": event.event_type},
        )
    else:
        logger.info("Test run %s completed at %s%%", event.aggregate_id, rate,
                    extra={"tenant_id": event.tenant_id, "event_type": event.event_type})


def on_release_readiness_achieved(event):
    logger.info(
        "Release %s (%s) is ready: RCS %s",
        event.aggregate_id, event.payload.get("version"), event.payload.get("rcs_score"),
        extra={"tenant_id": event.tenant_id, "release_id": event.aggregate_id,
               "event_type": event.event_type},
    )


def register_default_subscribers() -> None:
    """Idempotent; called from the app factory."""
    event_store.subscribe(events.BUG_TRIAGED)(on_bug_triaged)
    event_store.subscribe(events.TEST_RUN_COMPLETED)(on_test_run_completed)
    event_store.subscribe(events.RELEASE_READINESS_ACHIEVED)(on_release_readiness_achieved)

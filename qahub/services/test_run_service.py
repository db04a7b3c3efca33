"""
Release Quality Hub
Test run service — tenant-scoped orchestration of the TestRun aggregate.

Also provides the QT pillar input: ``get_latest_pass_rate``.
"""

import logging

from qahub.core.exceptions import ValidationError
from qahub.models import db
from qahub.models.release import Release
from qahub.models.testing import TestOutcome, TestRun, TestRunStatus
from qahub.services import event_store
from qahub.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)

LIFECYCLE_ACTIONS = ("start", "complete", "stop", "cancel", "analyze")


def create_test_run(*, tenant_id: int, data: dict, user_id=None) -> TestRun:
    release_id = data.get("release_id")
    if release_id is not None:
        get_scoped(Release, release_id, tenant_id=tenant_id)

    run = TestRun.create(
        tenant_id=tenant_id,
        name=data.get("name", ""),
        expected_test_count=data.get("expected_test_count"),
        release_id=release_id,
        environment=data.get("environment"),
        created_by=user_id,
    )
    db.session.add(run)
    event_store.collect_and_publish(run, tenant_id=tenant_id)
    logger.info("Test run created: id=%s expected=%s", run.id, run.expected_test_count,
                extra={"tenant_id": tenant_id})
    return run


def get_test_run(run_id: int, *, tenant_id: int) -> TestRun:
    return get_scoped(TestRun, run_id, tenant_id=tenant_id)


def list_test_runs(*, tenant_id: int, status: str | None = None, release_id: int | None = None) -> list[TestRun]:
    q = TestRun.query_for_tenant(tenant_id)
    if status:
        q = q.filter_by(status=status.upper())
    if release_id is not None:
        q = q.filter_by(release_id=release_id)
    return q.order_by(TestRun.id.desc()).all()


def list_all_for_tenant(*, tenant_id: int) -> list[TestRun]:
    return TestRun.query_for_tenant(tenant_id).all()


def record_result(run_id: int, *, tenant_id: int, data: dict, user_id=None) -> TestRun:
    """Record one test-case outcome.

    ``data`` carries either ``outcome`` (PASSED/FAILED/SKIPPED) or a boolean ``passed``.
    """
    run = get_test_run(run_id, tenant_id=tenant_id)
    if data.get("outcome") is not None:
        try:
            outcome = TestOutcome(str(data["outcome"]).upper())
        except ValueError:
            raise ValidationError(
                f"Invalid outcome '{data['outcome']}'",
                details={"outcome": f"must be one of {[o.value for o in TestOutcome]}"},
            ) from None
    elif "passed" in data:
        outcome = TestOutcome.PASSED if data["passed"] else TestOutcome.FAILED
    else:
        raise ValidationError("outcome or passed is required", details={"outcome": "required"})

    run.record_result(
        test_case_id=data.get("test_case_id"),
        test_case_name=data.get("test_case_name"),
        outcome=outcome,
        duration_ms=data.get("duration_ms", 0),
        error_message=data.get("error_message"),
        user_id=user_id,
    )
    event_store.collect_and_publish(run, tenant_id=tenant_id)
    return run


def apply_action(run_id: int, *, tenant_id: int, action: str, reason: str | None = None, user_id=None) -> TestRun:
    """Run a lifecycle action: start, complete, stop, cancel, analyze."""
    if action not in LIFECYCLE_ACTIONS:
        raise ValidationError(
            f"Unknown test run action '{action}'",
            details={"action": f"must be one of {list(LIFECYCLE_ACTIONS)}"},
        )
    run = get_test_run(run_id, tenant_id=tenant_id)
    previous = run.status
    if action == "start":
        run.start(user_id=user_id)
    elif action == "complete":
        run.complete(user_id=user_id)
    elif action == "stop":
        run.stop(user_id=user_id)
    elif action == "cancel":
        run.cancel(reason, user_id=user_id)
    else:
        run.analyze()

    event_store.collect_and_publish(run, tenant_id=tenant_id)
    logger.info("Test run %s: %s → %s", run.id, previous, run.status, extra={"tenant_id": tenant_id})
    return run


def get_latest_pass_rate(*, tenant_id: int) -> float:
    """Pass rate of the most recently created run that has at least one result; 0 if none."""
    executed = TestRun.passed_count + TestRun.failed_count + TestRun.skipped_count
    run = (
        TestRun.query_for_tenant(tenant_id)
        .filter(executed > 0)
        .filter(TestRun.status != TestRunStatus.CANCELLED)
        .order_by(TestRun.id.desc())
        .first()
    )
    return float(run.pass_rate) if run else 0.0

"""
Release Quality Hub
Security & Ops service — check bookkeeping and the SO pillar score.

SO score:
    - latest completed (PASSED/FAILED/WARNING) check per check type
    - average of their scores, rounded
    - 80 baseline when nothing has completed yet
"""

import logging

from qahub.core.exceptions import ValidationError
from qahub.models import db
from qahub.models.base import _utcnow
from qahub.models.release import Release
from qahub.models.security import (
    SecurityCheck,
    SecurityCheckStatus,
    SecurityCheckType,
    score_findings,
    status_for_findings,
)
from qahub.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)

BASELINE_SO_SCORE = 80


def create_check(*, tenant_id: int, data: dict) -> SecurityCheck:
    try:
        check_type = SecurityCheckType(str(data.get("check_type", "")).upper())
    except ValueError:
        raise ValidationError(
            f"Invalid check_type '{data.get('check_type')}'",
            details={"check_type": f"must be one of {[t.value for t in SecurityCheckType]}"},
        ) from None
    release_id = data.get("release_id")
    if release_id is not None:
        get_scoped(Release, release_id, tenant_id=tenant_id)

    check = SecurityCheck(
        tenant_id=tenant_id,
        release_id=release_id,
        check_type=check_type,
        tool=data.get("tool"),
        status=SecurityCheckStatus.PENDING,
    )
    db.session.add(check)
    db.session.flush()
    logger.info("Security check created: id=%s type=%s", check.id, check_type, extra={"tenant_id": tenant_id})
    return check


def record_check_result(check_id: int, *, tenant_id: int, data: dict) -> SecurityCheck:
    """Store finding counts; status is derived from them unless given explicitly."""
    check = get_scoped(SecurityCheck, check_id, tenant_id=tenant_id)
    counts = {}
    for key in ("critical", "high", "medium", "low"):
        value = data.get(key, 0)
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ValidationError(f"{key} must be a non-negative integer", details={key: "invalid"})
        counts[key] = value

    status = data.get("status")
    if status is not None:
        try:
            status = SecurityCheckStatus(str(status).upper())
        except ValueError:
            raise ValidationError(f"Invalid status '{status}'", details={"status": "invalid"}) from None
    else:
        status = status_for_findings(counts["critical"], counts["high"])

    check.critical_count = counts["critical"]
    check.high_count = counts["high"]
    check.medium_count = counts["medium"]
    check.low_count = counts["low"]
    check.score = score_findings(**counts)
    check.status = status
    if check.is_completed():
        check.completed_at = _utcnow()
    db.session.flush()
    logger.info("Security check %s finished: %s score=%s", check.id, check.status, check.score,
                extra={"tenant_id": tenant_id})
    return check


def list_checks(*, tenant_id: int, release_id: int | None = None) -> list[SecurityCheck]:
    q = SecurityCheck.query_for_tenant(tenant_id)
    if release_id is not None:
        q = q.filter_by(release_id=release_id)
    return q.order_by(SecurityCheck.id).all()


def calculate_so_score(*, tenant_id: int, release_id: int | None = None) -> dict:
    """SO pillar: ``{"score": int, "details": {...}}``.

    Scoped to one release when ``release_id`` is given, otherwise tenant-wide.
    """
    checks = list_checks(tenant_id=tenant_id, release_id=release_id)

    latest_by_type: dict[str, SecurityCheck] = {}
    for check in checks:
        if not check.is_completed():
            continue
        existing = latest_by_type.get(check.check_type)
        if existing is None or _completed_after(check, existing):
            latest_by_type[check.check_type] = check

    completed = list(latest_by_type.values())
    if not completed:
        return {
            "score": BASELINE_SO_SCORE,
            "details": {
                "checks_run": len(checks),
                "checks_passed": 0,
                "critical_issues": 0,
                "high_issues": 0,
            },
        }

    avg = sum(c.score or 0 for c in completed) / len(completed)
    return {
        "score": int(avg + 0.5),
        "details": {
            "checks_run": len(completed),
            "checks_passed": sum(1 for c in completed if c.status == SecurityCheckStatus.PASSED),
            "critical_issues": sum(c.critical_count or 0 for c in completed),
            "high_issues": sum(c.high_count or 0 for c in completed),
        },
    }


def _completed_after(check: SecurityCheck, other: SecurityCheck) -> bool:
    if check.completed_at and other.completed_at and check.completed_at != other.completed_at:
        return check.completed_at > other.completed_at
    return check.id > other.id

"""
Release Quality Hub
Release Confidence Score (RCS) and release-gate evaluation.

Pillars (each 0-100):
    RP  Requirements & Planning  ready / max(total, 1) * 100
    QT  Quality & Testing        latest test-run pass rate (0 if none)
    B   Bugs                     100 minus a per-open-bug deduction by severity,
                                 CRITICAL 40, HIGH 20, MEDIUM 10, other 2; floor 0
    SO  Security & Ops           security_ops_service.calculate_so_score

    RCS = QT*0.4 + B*0.3 + RP*0.2 + SO*0.1

Gates, in order:
    1. RCS score >= 75                 required
    2. no open CRITICAL bugs           required
    3. QT >= 80                        required
    4. requirements readiness >= 90%   optional
    5. open HIGH bugs <= 2             optional

can_release is True when every required gate passes, or when a non-empty
override reason is supplied.

Transaction policy: unlike the other services, calculate_rcs and
evaluate_release_gates COMMIT, then dispatch the AI explanation as a
detached task so it reads committed data and can never affect the result.
"""

import logging
import math

from flask import current_app

from qahub.ai.provider_factory import AIProviderFactory
from qahub.ai.task_runner import dispatch_detached
from qahub.models import db
from qahub.models.bug import RESOLVED_BUG_STATUSES, BugSeverity, BugStatus
from qahub.models.release import ReadinessStatus, Release
from qahub.services import (
    bug_service,
    event_store,
    requirement_service,
    security_ops_service,
    test_run_service,
)
from qahub.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)


# ── Constants ────────────────────────────────────────────────────────────

PILLAR_WEIGHTS = {"qt": 0.4, "b": 0.3, "rp": 0.2, "so": 0.1}

BUG_DEDUCTIONS = {
    BugSeverity.CRITICAL: 40,
    BugSeverity.HIGH: 20,
    BugSeverity.MEDIUM: 10,
}
DEFAULT_BUG_DEDUCTION = 2

RCS_GATE_THRESHOLD = 75
TEST_PASS_RATE_THRESHOLD = 80
REQUIREMENTS_READY_THRESHOLD = 90
MAX_OPEN_HIGH_BUGS = 2

READINESS_BLOCK_SCORE = 50
SO_RECOMMENDATION_THRESHOLD = 70


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# ── Pillar arithmetic ────────────────────────────────────────────────────

def compute_rp(ready: int, total: int) -> float:
    return ready / max(total, 1) * 100


def is_open_bug(bug) -> bool:
    return BugStatus(bug.status) not in RESOLVED_BUG_STATUSES


def compute_bug_score(bugs) -> float:
    score = 100
    for bug in bugs:
        if is_open_bug(bug):
            score -= BUG_DEDUCTIONS.get(bug.severity, DEFAULT_BUG_DEDUCTION)
    return max(0, score)


def compute_total(*, rp: float, qt: float, b: float, so: float) -> float:
    return (
        qt * PILLAR_WEIGHTS["qt"]
        + b * PILLAR_WEIGHTS["b"]
        + rp * PILLAR_WEIGHTS["rp"]
        + so * PILLAR_WEIGHTS["so"]
    )


# ── Snapshot & score ─────────────────────────────────────────────────────

def _collect_snapshot(release: Release, *, tenant_id: int) -> dict:
    requirements = requirement_service.list_all_for_tenant(tenant_id=tenant_id)
    bugs = bug_service.list_all_for_tenant(tenant_id=tenant_id)
    test_runs = test_run_service.list_all_for_tenant(tenant_id=tenant_id)
    return {
        "requirements": requirements,
        "bugs": bugs,
        "test_runs_count": len(test_runs),
        "pass_rate": test_run_service.get_latest_pass_rate(tenant_id=tenant_id),
        "so": security_ops_service.calculate_so_score(tenant_id=tenant_id, release_id=release.id),
    }


def _score_snapshot(snapshot: dict) -> tuple[float, dict]:
    requirements = snapshot["requirements"]
    ready = sum(1 for r in requirements if r.is_ready())
    total_reqs = len(requirements)
    open_bugs = [b for b in snapshot["bugs"] if is_open_bug(b)]
    so = snapshot["so"]

    rp = compute_rp(ready, total_reqs)
    qt = snapshot["pass_rate"]
    b = compute_bug_score(snapshot["bugs"])
    total = compute_total(rp=rp, qt=qt, b=b, so=so["score"])

    breakdown = {
        "rp": round_half_up(rp),
        "qt": round_half_up(qt),
        "b": round_half_up(b),
        "so": round_half_up(so["score"]),
        "details": {
            "open_bugs": len(open_bugs),
            "ready_requirements": ready,
            "total_requirements": total_reqs,
            "test_pass_rate": qt,
            "test_runs_count": snapshot["test_runs_count"],
            "security_checks": so["details"]["checks_run"],
            "security_checks_passed": so["details"]["checks_passed"],
            "critical_security_issues": so["details"]["critical_issues"],
        },
    }
    return total, breakdown


# ── Gates ────────────────────────────────────────────────────────────────

def build_gates(*, score: int, breakdown: dict, bugs) -> list[dict]:
    """The fixed, ordered release checklist."""
    open_bugs = [b for b in bugs if is_open_bug(b)]
    critical = [b for b in open_bugs if b.severity == BugSeverity.CRITICAL]
    high = [b for b in open_bugs if b.severity == BugSeverity.HIGH]
    details = breakdown["details"]
    req_pct = round_half_up(
        details["ready_requirements"] / max(details["total_requirements"], 1) * 100
    )
    qt = breakdown["qt"]

    gates = []

    passed = score >= RCS_GATE_THRESHOLD
    gates.append({
        "name": "Release Confidence Score",
        "type": "rcs_score",
        "required": True,
        "passed": passed,
        "actual": score,
        "threshold": RCS_GATE_THRESHOLD,
        "message": (
            f"RCS score of {score} meets minimum threshold of {RCS_GATE_THRESHOLD}"
            if passed else
            f"RCS score of {score} is below minimum threshold of {RCS_GATE_THRESHOLD}"
        ),
    })

    passed = not critical
    gates.append({
        "name": "Critical Bugs",
        "type": "critical_bugs",
        "required": True,
        "passed": passed,
        "actual": len(critical),
        "threshold": 0,
        "message": (
            "No open critical bugs"
            if passed else
            f"{len(critical)} open critical bug(s) must be resolved"
        ),
        "details": [{"id": b.id, "title": b.title, "priority": b.priority} for b in critical],
    })

    passed = qt >= TEST_PASS_RATE_THRESHOLD
    gates.append({
        "name": "Test Coverage",
        "type": "test_coverage",
        "required": True,
        "passed": passed,
        "actual": qt,
        "threshold": TEST_PASS_RATE_THRESHOLD,
        "message": (
            f"Test pass rate of {qt}% meets {TEST_PASS_RATE_THRESHOLD}% requirement"
            if passed else
            f"Test pass rate of {qt}% is below {TEST_PASS_RATE_THRESHOLD}% requirement"
        ),
    })

    passed = req_pct >= REQUIREMENTS_READY_THRESHOLD
    gates.append({
        "name": "Requirements Readiness",
        "type": "requirements",
        "required": False,
        "passed": passed,
        "actual": req_pct,
        "threshold": REQUIREMENTS_READY_THRESHOLD,
        "message": (
            f"{req_pct}% of requirements are ready"
            if passed else
            f"Only {req_pct}% of requirements are ready ({REQUIREMENTS_READY_THRESHOLD}% target)"
        ),
    })

    passed = len(high) <= MAX_OPEN_HIGH_BUGS
    gates.append({
        "name": "High Priority Bugs",
        "type": "high_bugs",
        "required": False,
        "passed": passed,
        "actual": len(high),
        "threshold": MAX_OPEN_HIGH_BUGS,
        "message": (
            f"{len(high)} open high severity bug(s), within limit of {MAX_OPEN_HIGH_BUGS}"
            if passed else
            f"{len(high)} open high severity bugs exceeds limit of {MAX_OPEN_HIGH_BUGS}"
        ),
    })

    return gates


def summarize_gates(gates: list[dict]) -> dict:
    required = [g for g in gates if g["required"]]
    optional = [g for g in gates if not g["required"]]
    passed = sum(1 for g in gates if g["passed"])
    return {
        "total": len(gates),
        "passed": passed,
        "failed": len(gates) - passed,
        "required_passed": sum(1 for g in required if g["passed"]),
        "required_total": len(required),
        "optional_passed": sum(1 for g in optional if g["passed"]),
        "optional_total": len(optional),
    }


def readiness_status(gates: list[dict], score: float) -> ReadinessStatus:
    if all(g["passed"] for g in gates):
        return ReadinessStatus.READY
    critical_failed = any(g["type"] == "critical_bugs" and not g["passed"] for g in gates)
    if critical_failed or score < READINESS_BLOCK_SCORE:
        return ReadinessStatus.BLOCKED
    return ReadinessStatus.WARNING


def blocking_reasons(gates: list[dict]) -> list[str]:
    return [g["message"] for g in gates if g["required"] and not g["passed"]]


_RECOMMENDATIONS = {
    "rcs_score": "Raise the confidence score by improving the weakest pillar",
    "critical_bugs": "Resolve all open critical bugs before release",
    "test_coverage": f"Fix failing tests to reach a {TEST_PASS_RATE_THRESHOLD}% pass rate",
    "requirements": "Move remaining requirements to READY or descope them",
    "high_bugs": f"Reduce open high severity bugs to {MAX_OPEN_HIGH_BUGS} or fewer",
}


def recommendations(gates: list[dict], breakdown: dict) -> list[str]:
    recs = [_RECOMMENDATIONS[g["type"]] for g in gates if not g["passed"]]
    if breakdown["so"] < SO_RECOMMENDATION_THRESHOLD:
        recs.append(
            f"Address security findings to lift the security score above {SO_RECOMMENDATION_THRESHOLD}"
        )
    return recs


# ═════════════════════════════════════════════════════════════════════════
# Public operations
# ═════════════════════════════════════════════════════════════════════════

def calculate_rcs(release_id: int, *, tenant_id: int) -> dict:
    """Score a release, persist it, and kick off the AI explanation.

    Returns:
        {"score": int, "breakdown": {...}}
    """
    release = get_scoped(Release, release_id, tenant_id=tenant_id)
    snapshot = _collect_snapshot(release, tenant_id=tenant_id)
    total, breakdown = _score_snapshot(snapshot)
    score = round_half_up(total)

    release.record_score(total, breakdown)
    db.session.commit()
    logger.info("RCS calculated: release=%s score=%s", release_id, score,
                extra={"tenant_id": tenant_id, "release_id": release_id})

    _dispatch_explanation(release_id, tenant_id=tenant_id, score=score, breakdown=breakdown)
    return {"score": score, "breakdown": breakdown}


def evaluate_release_gates(
    release_id: int,
    *,
    tenant_id: int,
    override_reason: str | None = None,
    user_id=None,
) -> dict:
    """Score the release and run the gate checklist."""
    release = get_scoped(Release, release_id, tenant_id=tenant_id)
    snapshot = _collect_snapshot(release, tenant_id=tenant_id)
    total, breakdown = _score_snapshot(snapshot)
    score = round_half_up(total)

    gates = build_gates(score=score, breakdown=breakdown, bugs=snapshot["bugs"])
    summary = summarize_gates(gates)
    all_required_passed = summary["required_passed"] == summary["required_total"]

    # any non-empty reason wins, whitespace included
    override = override_reason or None
    evaluation = {
        "can_release": True if override else all_required_passed,
        "override_applied": override is not None,
        "override_reason": override,
        "gates": gates,
        "summary": summary,
        "rcs_score": score,
        "breakdown": breakdown,
        "readiness_status": readiness_status(gates, score),
        "blocking_reasons": blocking_reasons(gates),
        "recommendations": recommendations(gates, breakdown),
    }

    if override and not all_required_passed:
        logger.warning(
            "Release gate override applied: release=%s user=%s reason=%s failed=%s",
            release_id, user_id, override[:200],
            [g["type"] for g in gates if g["required"] and not g["passed"]],
            extra={"tenant_id": tenant_id, "release_id": release_id},
        )

    release.record_score(total, breakdown)
    release.apply_evaluation(evaluation, user_id=user_id)
    event_store.collect_and_publish(release, tenant_id=tenant_id)
    db.session.commit()
    logger.info(
        "Release gates evaluated: release=%s score=%s can_release=%s (%d/%d gates)",
        release_id, score, evaluation["can_release"], summary["passed"], summary["total"],
        extra={"tenant_id": tenant_id, "release_id": release_id},
    )

    _dispatch_explanation(release_id, tenant_id=tenant_id, score=score, breakdown=breakdown)
    return evaluation


# ── AI explanation (best effort) ─────────────────────────────────────────

def _dispatch_explanation(release_id: int, *, tenant_id: int, score: int, breakdown: dict) -> None:
    try:
        dispatch_detached(
            current_app._get_current_object(),
            generate_explanation,
            release_id,
            tenant_id=tenant_id,
            score=score,
            breakdown=breakdown,
        )
    except Exception:
        logger.exception("Could not dispatch RCS explanation for release %s", release_id,
                         extra={"tenant_id": tenant_id, "release_id": release_id})


def generate_explanation(release_id: int, *, tenant_id: int, score: int, breakdown: dict) -> dict | None:
    """Ask the tenant's AI provider to narrate the score and store it on the release.

    Never raises: any failure is logged and None is returned.
    """
    try:
        provider = AIProviderFactory().get_provider(tenant_id)
        explanation = provider.explain_rcs(score, breakdown)
        release = get_scoped(Release, release_id, tenant_id=tenant_id)
        release.set_explanation(explanation)
        db.session.flush()
    except Exception as exc:
        logger.warning("RCS explanation skipped for release %s: %s", release_id, exc,
                       extra={"tenant_id": tenant_id, "release_id": release_id})
        return None
    logger.info("RCS explanation stored for release %s", release_id,
                extra={"tenant_id": tenant_id, "release_id": release_id})
    return release.rcs_explanation

"""
Release Confidence Score and gate evaluation.

Reference scenario used throughout:
    requirements 3/4 READY           -> RP 75
    one open CRITICAL bug            -> B  60
    latest run 9 passed / 1 failed   -> QT 90
    one clean completed security scan -> SO 100
    RCS = 90*0.4 + 60*0.3 + 75*0.2 + 100*0.1 = 79
"""

from types import SimpleNamespace

import pytest

from qahub.models import db
from qahub.models.bug import BugSeverity, BugStatus
from qahub.models.release import ReadinessStatus, Release
from qahub.services import (
    bug_service,
    rcs_service,
    release_service,
    requirement_service,
    security_ops_service,
    test_run_service,
)


# ── Helpers ──────────────────────────────────────────────────────────────

def _release(tenant_id, version="1.0.0"):
    rel = release_service.create_release(tenant_id=tenant_id, data={"version": version})
    db.session.commit()
    return rel


def _requirements(tenant_id, ready, total):
    for i in range(total):
        requirement_service.create_requirement(
            tenant_id=tenant_id,
            data={"title": f"REQ-{i}", "state": "READY" if i < ready else "DRAFT"},
        )


def _bug(tenant_id, severity, priority="P1", status=None):
    bug = bug_service.create_bug(
        tenant_id=tenant_id,
        data={"title": f"{severity} bug", "description": "broken", "severity": severity, "priority": priority},
    )
    if status:
        bug.status = status
    db.session.flush()
    return bug


def _test_run(tenant_id, passed, failed, release_id=None):
    run = test_run_service.create_test_run(
        tenant_id=tenant_id,
        data={"name": "Regression", "expected_test_count": passed + failed, "release_id": release_id},
    )
    test_run_service.apply_action(run.id, tenant_id=tenant_id, action="start")
    for i in range(passed + failed):
        test_run_service.record_result(
            run.id, tenant_id=tenant_id, data={"test_case_id": f"TC-{i}", "passed": i < passed},
        )
    return run


def _clean_scan(tenant_id, release_id):
    check = security_ops_service.create_check(
        tenant_id=tenant_id, data={"check_type": "CODE_SCAN", "release_id": release_id},
    )
    security_ops_service.record_check_result(check.id, tenant_id=tenant_id, data={})
    return check


@pytest.fixture()
def scenario(tenant):
    rel = _release(tenant.id)
    _requirements(tenant.id, ready=3, total=4)
    _bug(tenant.id, "CRITICAL", "P0")
    _test_run(tenant.id, passed=9, failed=1, release_id=rel.id)
    _clean_scan(tenant.id, rel.id)
    db.session.commit()
    return rel


# ── Pure arithmetic ──────────────────────────────────────────────────────

class TestPillars:
    def test_rp_with_no_requirements_is_zero(self):
        assert rcs_service.compute_rp(0, 0) == 0

    def test_rp_ratio(self):
        assert rcs_service.compute_rp(3, 4) == 75

    def test_bug_score_deductions_by_severity(self):
        bugs = [
            SimpleNamespace(status=BugStatus.OPEN, severity=BugSeverity.CRITICAL),
            SimpleNamespace(status=BugStatus.TRIAGED, severity=BugSeverity.HIGH),
            SimpleNamespace(status=BugStatus.IN_PROGRESS, severity=BugSeverity.MEDIUM),
            SimpleNamespace(status=BugStatus.OPEN, severity=None),
        ]
        assert rcs_service.compute_bug_score(bugs) == 100 - 40 - 20 - 10 - 2

    def test_resolved_and_closed_bugs_do_not_count(self):
        bugs = [
            SimpleNamespace(status=BugStatus.RESOLVED, severity=BugSeverity.CRITICAL),
            SimpleNamespace(status=BugStatus.CLOSED, severity=BugSeverity.CRITICAL),
        ]
        assert rcs_service.compute_bug_score(bugs) == 100

    def test_deferred_critical_still_counts(self):
        bugs = [SimpleNamespace(status=BugStatus.DEFERRED, severity=BugSeverity.CRITICAL)]
        assert rcs_service.compute_bug_score(bugs) == 60

    def test_bug_score_floors_at_zero(self):
        bugs = [SimpleNamespace(status=BugStatus.OPEN, severity=BugSeverity.CRITICAL)] * 5
        assert rcs_service.compute_bug_score(bugs) == 0

    def test_weighted_total(self):
        assert rcs_service.compute_total(rp=75, qt=90, b=60, so=100) == pytest.approx(79)

    @pytest.mark.parametrize("value,expected", [(78.5, 79), (78.49, 78), (0.5, 1)])
    def test_round_half_up(self, value, expected):
        assert rcs_service.round_half_up(value) == expected


# ── calculate_rcs ────────────────────────────────────────────────────────

class TestCalculateRcs:
    def test_reference_scenario_scores_79(self, tenant, scenario):
        result = rcs_service.calculate_rcs(scenario.id, tenant_id=tenant.id)
        assert result["score"] == 79
        bd = result["breakdown"]
        assert (bd["rp"], bd["qt"], bd["b"], bd["so"]) == (75, 90, 60, 100)
        assert bd["details"]["open_bugs"] == 1
        assert bd["details"]["ready_requirements"] == 3
        assert bd["details"]["total_requirements"] == 4
        assert bd["details"]["test_runs_count"] == 1
        assert bd["details"]["security_checks"] == 1

    def test_score_is_persisted_on_release(self, tenant, scenario):
        rcs_service.calculate_rcs(scenario.id, tenant_id=tenant.id)
        rel = db.session.get(Release, scenario.id)
        assert rel.rcs_score == pytest.approx(79)
        assert rel.rcs_breakdown["qt"] == 90
        assert rel.rcs_evaluated_at is not None

    def test_empty_tenant_uses_baselines(self, tenant):
        rel = _release(tenant.id)
        result = rcs_service.calculate_rcs(rel.id, tenant_id=tenant.id)
        # RP 0, QT 0, B 100, SO 80 baseline
        assert result["breakdown"]["so"] == 80
        assert result["score"] == 38

    def test_cancelled_runs_are_ignored_for_qt(self, tenant, scenario):
        newer = _test_run(tenant.id, passed=1, failed=9)
        test_run_service.apply_action(newer.id, tenant_id=tenant.id, action="cancel")
        db.session.commit()
        result = rcs_service.calculate_rcs(scenario.id, tenant_id=tenant.id)
        assert result["breakdown"]["qt"] == 90

    def test_latest_run_wins(self, tenant, scenario):
        _test_run(tenant.id, passed=5, failed=5)
        db.session.commit()
        result = rcs_service.calculate_rcs(scenario.id, tenant_id=tenant.id)
        assert result["breakdown"]["qt"] == 50

    def test_explanation_stored_by_local_provider(self, tenant, scenario):
        rcs_service.calculate_rcs(scenario.id, tenant_id=tenant.id)
        rel = db.session.get(Release, scenario.id)
        assert rel.rcs_explanation["summary"] == "Release score is 79/100."
        assert rel.rcs_explanation["risks"] == []
        assert rel.rcs_explanation["generated_at"]

    def test_other_tenants_data_is_invisible(self, tenant, other_tenant, scenario):
        _bug(other_tenant.id, "CRITICAL", "P0")
        _requirements(other_tenant.id, ready=0, total=10)
        db.session.commit()
        result = rcs_service.calculate_rcs(scenario.id, tenant_id=tenant.id)
        assert result["score"] == 79


# ── evaluate_release_gates ───────────────────────────────────────────────

class TestGates:
    def test_reference_scenario_cannot_release(self, tenant, scenario):
        ev = rcs_service.evaluate_release_gates(scenario.id, tenant_id=tenant.id)
        assert ev["rcs_score"] == 79
        assert ev["can_release"] is False
        assert ev["override_applied"] is False
        assert ev["readiness_status"] == ReadinessStatus.BLOCKED

        gates = {g["type"]: g for g in ev["gates"]}
        assert [g["type"] for g in ev["gates"]] == [
            "rcs_score", "critical_bugs", "test_coverage", "requirements", "high_bugs",
        ]
        assert gates["rcs_score"]["passed"] is True
        assert gates["critical_bugs"]["passed"] is False
        assert gates["critical_bugs"]["actual"] == 1
        assert gates["critical_bugs"]["details"][0]["priority"] == "P0"
        assert gates["test_coverage"]["passed"] is True
        assert gates["requirements"]["passed"] is False
        assert gates["requirements"]["required"] is False
        assert gates["high_bugs"]["passed"] is True

        assert ev["summary"] == {
            "total": 5, "passed": 3, "failed": 2,
            "required_passed": 2, "required_total": 3,
            "optional_passed": 1, "optional_total": 2,
        }
        assert ev["blocking_reasons"] == ["1 open critical bug(s) must be resolved"]

    def test_override_allows_release(self, tenant, scenario):
        ev = rcs_service.evaluate_release_gates(
            scenario.id, tenant_id=tenant.id, override_reason="Hotfix approved by CTO",
        )
        assert ev["can_release"] is True
        assert ev["override_applied"] is True
        assert ev["override_reason"] == "Hotfix approved by CTO"
        rel = db.session.get(Release, scenario.id)
        assert rel.gate_passed is True
        assert rel.override_reason == "Hotfix approved by CTO"

    @pytest.mark.parametrize("reason", ["", None])
    def test_empty_override_is_ignored(self, tenant, scenario, reason):
        ev = rcs_service.evaluate_release_gates(scenario.id, tenant_id=tenant.id, override_reason=reason)
        assert ev["can_release"] is False
        assert ev["override_applied"] is False

    def test_whitespace_override_still_applies(self, tenant, scenario):
        ev = rcs_service.evaluate_release_gates(scenario.id, tenant_id=tenant.id, override_reason="  ")
        assert ev["can_release"] is True
        assert ev["override_applied"] is True
        assert ev["override_reason"] == "  "

    def test_all_gates_pass_makes_release_ready(self, tenant, captured_events):
        rel = _release(tenant.id)
        _requirements(tenant.id, ready=10, total=10)
        _test_run(tenant.id, passed=10, failed=0)
        _clean_scan(tenant.id, rel.id)
        db.session.commit()

        ev = rcs_service.evaluate_release_gates(rel.id, tenant_id=tenant.id)
        assert ev["can_release"] is True
        assert ev["readiness_status"] == ReadinessStatus.READY
        assert ev["recommendations"] == []
        types = [e.event_type for e in captured_events if e.aggregate_type == "Release"]
        assert "ReleaseReadinessEvaluated" in types
        assert "ReleaseReadinessAchieved" in types

    def test_optional_failure_gives_warning(self, tenant):
        rel = _release(tenant.id)
        _requirements(tenant.id, ready=8, total=10)
        _test_run(tenant.id, passed=10, failed=0)
        _clean_scan(tenant.id, rel.id)
        db.session.commit()

        ev = rcs_service.evaluate_release_gates(rel.id, tenant_id=tenant.id)
        assert ev["can_release"] is True
        assert ev["readiness_status"] == ReadinessStatus.WARNING

    def test_low_score_without_critical_bugs_is_blocked(self, tenant):
        rel = _release(tenant.id)
        ev = rcs_service.evaluate_release_gates(rel.id, tenant_id=tenant.id)
        assert ev["rcs_score"] < 50
        assert ev["readiness_status"] == ReadinessStatus.BLOCKED

    def test_too_many_high_bugs_fails_optional_gate(self, tenant):
        rel = _release(tenant.id)
        for _ in range(3):
            _bug(tenant.id, "HIGH")
        db.session.commit()
        ev = rcs_service.evaluate_release_gates(rel.id, tenant_id=tenant.id)
        high = next(g for g in ev["gates"] if g["type"] == "high_bugs")
        assert high["passed"] is False
        assert high["actual"] == 3

    def test_low_security_score_adds_recommendation(self, tenant):
        rel = _release(tenant.id)
        check = security_ops_service.create_check(
            tenant_id=tenant.id, data={"check_type": "VULNERABILITY_SCAN", "release_id": rel.id},
        )
        security_ops_service.record_check_result(check.id, tenant_id=tenant.id, data={"critical": 2})
        db.session.commit()
        ev = rcs_service.evaluate_release_gates(rel.id, tenant_id=tenant.id)
        assert ev["breakdown"]["so"] < 70
        assert any("security" in r for r in ev["recommendations"])

    def test_terminal_release_cannot_be_evaluated(self, tenant, scenario):
        from qahub.core.exceptions import ValidationError

        release_service.apply_action(scenario.id, tenant_id=tenant.id, action="abort", reason="scrapped")
        db.session.commit()
        with pytest.raises(ValidationError):
            rcs_service.evaluate_release_gates(scenario.id, tenant_id=tenant.id)

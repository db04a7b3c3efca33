"""
Security & Ops checks: finding scores, derived status and the SO pillar.
"""

import pytest

from qahub.core.exceptions import NotFoundError, ValidationError
from qahub.models import db
from qahub.models.security import SecurityCheckStatus, score_findings, status_for_findings
from qahub.services import release_service, security_ops_service


def _check(tenant_id, check_type="CODE_SCAN", release_id=None, **findings):
    check = security_ops_service.create_check(
        tenant_id=tenant_id, data={"check_type": check_type, "release_id": release_id},
    )
    if findings:
        security_ops_service.record_check_result(check.id, tenant_id=tenant_id, data=findings)
    db.session.commit()
    return check


class TestFindings:
    @pytest.mark.parametrize("counts,expected", [
        ({}, 100),
        ({"critical": 1}, 70),
        ({"high": 2, "medium": 1}, 65),
        ({"low": 7}, 93),
        ({"critical": 4}, 0),
    ])
    def test_score_findings(self, counts, expected):
        assert score_findings(**counts) == expected

    def test_status_for_findings(self):
        assert status_for_findings(critical=1, high=3) == SecurityCheckStatus.FAILED
        assert status_for_findings(high=1) == SecurityCheckStatus.WARNING
        assert status_for_findings() == SecurityCheckStatus.PASSED


class TestChecks:
    def test_new_check_is_pending(self, tenant):
        check = _check(tenant.id, "secrets_scan")
        assert check.check_type == "SECRETS_SCAN"
        assert check.status == SecurityCheckStatus.PENDING
        assert check.completed_at is None

    def test_unknown_type_rejected(self, tenant):
        with pytest.raises(ValidationError, match="Invalid check_type"):
            security_ops_service.create_check(tenant_id=tenant.id, data={"check_type": "PENTEST"})

    def test_foreign_release_rejected(self, tenant, other_tenant):
        rel = release_service.create_release(tenant_id=other_tenant.id, data={"version": "1.0.0"})
        with pytest.raises(NotFoundError):
            _check(tenant.id, release_id=rel.id)

    def test_result_derives_status_and_score(self, tenant):
        check = _check(tenant.id, high=1, low=2)
        assert check.status == SecurityCheckStatus.WARNING
        assert check.score == 83
        assert check.completed_at is not None

    def test_explicit_status_wins(self, tenant):
        check = _check(tenant.id)
        security_ops_service.record_check_result(
            check.id, tenant_id=tenant.id, data={"critical": 1, "status": "warning"},
        )
        assert check.status == SecurityCheckStatus.WARNING

    @pytest.mark.parametrize("value", [-1, "3", True, 1.5])
    def test_counts_must_be_non_negative_ints(self, tenant, value):
        check = _check(tenant.id)
        with pytest.raises(ValidationError):
            security_ops_service.record_check_result(check.id, tenant_id=tenant.id, data={"high": value})


class TestSoScore:
    def test_baseline_without_completed_checks(self, tenant):
        _check(tenant.id)
        result = security_ops_service.calculate_so_score(tenant_id=tenant.id)
        assert result["score"] == 80
        assert result["details"]["checks_run"] == 1
        assert result["details"]["checks_passed"] == 0

    def test_average_of_latest_per_type(self, tenant):
        _check(tenant.id, "CODE_SCAN", critical=2)
        _check(tenant.id, "CODE_SCAN", low=0)            # supersedes the failed scan
        _check(tenant.id, "DEPENDENCY_AUDIT", high=1)
        result = security_ops_service.calculate_so_score(tenant_id=tenant.id)
        # (100 + 85) / 2 = 92.5
        assert result["score"] == 93
        assert result["details"] == {
            "checks_run": 2,
            "checks_passed": 1,
            "critical_issues": 0,
            "high_issues": 1,
        }

    def test_release_scoping(self, tenant):
        rel = release_service.create_release(tenant_id=tenant.id, data={"version": "1.0.0"})
        _check(tenant.id, "VULNERABILITY_SCAN", release_id=rel.id, critical=1)
        _check(tenant.id, "CODE_SCAN", low=0)
        scoped = security_ops_service.calculate_so_score(tenant_id=tenant.id, release_id=rel.id)
        assert scoped["score"] == 70
        assert scoped["details"]["critical_issues"] == 1
        tenant_wide = security_ops_service.calculate_so_score(tenant_id=tenant.id)
        assert tenant_wide["score"] == 85

    def test_other_tenant_checks_ignored(self, tenant, other_tenant):
        _check(other_tenant.id, critical=3)
        assert security_ops_service.calculate_so_score(tenant_id=tenant.id)["score"] == 80


class TestApi:
    def test_create_and_record(self, client, auth_headers):
        res = client.post("/api/v1/security-checks", json={"check_type": "CODE_SCAN", "tool": "bandit"},
                          headers=auth_headers)
        assert res.status_code == 201
        check_id = res.get_json()["id"]

        res = client.post(f"/api/v1/security-checks/{check_id}/result", json={"medium": 2},
                          headers=auth_headers)
        assert res.status_code == 200
        assert res.get_json()["status"] == "PASSED"

        res = client.get("/api/v1/security-checks/so-score", headers=auth_headers)
        assert res.get_json()["score"] == 90

    def test_check_type_required(self, client, auth_headers):
        res = client.post("/api/v1/security-checks", json={}, headers=auth_headers)
        assert res.status_code == 400

    def test_invalid_check_type_is_422(self, client, auth_headers):
        res = client.post("/api/v1/security-checks", json={"check_type": "nope"}, headers=auth_headers)
        assert res.status_code == 422

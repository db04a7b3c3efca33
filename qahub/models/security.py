"""
Release Quality Hub
Security & Ops checks — source of the SO pillar.

A check's score is derived from its finding counts:
    100 - 30·critical - 15·high - 5·medium - 1·low, clamped to [0, 100].
"""

from enum import StrEnum

from qahub.models import db
from qahub.models.base import TenantModel, _iso, _utcnow


class SecurityCheckType(StrEnum):
    VULNERABILITY_SCAN = "VULNERABILITY_SCAN"
    DEPENDENCY_AUDIT = "DEPENDENCY_AUDIT"
    CODE_SCAN = "CODE_SCAN"
    SECRETS_SCAN = "SECRETS_SCAN"
    COMPLIANCE_CHECK = "COMPLIANCE_CHECK"


class SecurityCheckStatus(StrEnum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    PASSED = "PASSED"
    FAILED = "FAILED"
    WARNING = "WARNING"


COMPLETED_CHECK_STATUSES = frozenset({
    SecurityCheckStatus.PASSED, SecurityCheckStatus.FAILED, SecurityCheckStatus.WARNING,
})

FINDING_PENALTIES = {"critical": 30, "high": 15, "medium": 5, "low": 1}


def score_findings(critical: int = 0, high: int = 0, medium: int = 0, low: int = 0) -> int:
    penalty = (
        critical * FINDING_PENALTIES["critical"]
        + high * FINDING_PENALTIES["high"]
        + medium * FINDING_PENALTIES["medium"]
        + low * FINDING_PENALTIES["low"]
    )
    return max(0, min(100, 100 - penalty))


def status_for_findings(critical: int = 0, high: int = 0) -> SecurityCheckStatus:
    if critical:
        return SecurityCheckStatus.FAILED
    if high:
        return SecurityCheckStatus.WARNING
    return SecurityCheckStatus.PASSED


class SecurityCheck(TenantModel):
    __tablename__ = "security_checks"

    id = db.Column(db.Integer, primary_key=True)
    release_id = db.Column(
        db.Integer, db.ForeignKey("releases.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    check_type = db.Column(db.String(30), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=SecurityCheckStatus.PENDING)
    tool = db.Column(db.String(100), nullable=True)
    critical_count = db.Column(db.Integer, default=0)
    high_count = db.Column(db.Integer, default=0)
    medium_count = db.Column(db.Integer, default=0)
    low_count = db.Column(db.Integer, default=0)
    score = db.Column(db.Integer, nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def is_completed(self) -> bool:
        return self.status in COMPLETED_CHECK_STATUSES

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "release_id": self.release_id,
            "check_type": self.check_type,
            "status": self.status,
            "tool": self.tool,
            "critical_count": self.critical_count,
            "high_count": self.high_count,
            "medium_count": self.medium_count,
            "low_count": self.low_count,
            "score": self.score,
            "completed_at": _iso(self.completed_at),
            "created_at": _iso(self.created_at),
        }

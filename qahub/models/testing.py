"""
Release Quality Hub
TestRun aggregate, TestResult rows and pass-rate helpers.

Lifecycle:
    CREATED → RUNNING → COMPLETED | STOPPED → ANALYZED
    CANCELLED reachable from every non-cancelled state.

passRate = round(passed / (passed + failed + skipped) * 100), 0 before
the first result. Terminal runs (COMPLETED, CANCELLED) accept no results.
"""

import math
from enum import StrEnum

from qahub.core.exceptions import ValidationError
from qahub.models import db
from qahub.models.base import TenantModel, _iso, _utcnow
from qahub.models.events import (
    TEST_RESULT_RECORDED,
    TEST_RUN_CANCELLED,
    TEST_RUN_COMPLETED,
    TEST_RUN_CREATED,
    TEST_RUN_STARTED,
    TEST_RUN_STOPPED,
    AggregateMixin,
)
from qahub.models.transitions import check_transition, next_states


class TestRunStatus(StrEnum):
    CREATED = "CREATED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    STOPPED = "STOPPED"
    ANALYZED = "ANALYZED"
    CANCELLED = "CANCELLED"


class TestOutcome(StrEnum):
    PASSED = "PASSED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class PassRateStatus(StrEnum):
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    ACCEPTABLE = "ACCEPTABLE"
    NEEDS_ATTENTION = "NEEDS_ATTENTION"
    CRITICAL = "CRITICAL"


TEST_RUN_TRANSITIONS: dict[TestRunStatus, frozenset[TestRunStatus]] = {
    TestRunStatus.CREATED: frozenset({TestRunStatus.RUNNING, TestRunStatus.CANCELLED}),
    TestRunStatus.RUNNING: frozenset({
        TestRunStatus.COMPLETED, TestRunStatus.STOPPED, TestRunStatus.CANCELLED,
    }),
    TestRunStatus.COMPLETED: frozenset({TestRunStatus.ANALYZED, TestRunStatus.CANCELLED}),
    TestRunStatus.STOPPED: frozenset({TestRunStatus.ANALYZED, TestRunStatus.CANCELLED}),
    TestRunStatus.ANALYZED: frozenset({TestRunStatus.CANCELLED}),
    TestRunStatus.CANCELLED: frozenset(),
}

TERMINAL_TEST_RUN_STATUSES = frozenset({TestRunStatus.COMPLETED, TestRunStatus.CANCELLED})


def validate_test_run_transition(current, target, *, verb: str | None = None) -> None:
    check_transition("TestRun", TEST_RUN_TRANSITIONS, TestRunStatus(current), TestRunStatus(target), verb=verb)


# ── Pass-rate helpers ────────────────────────────────────────────────────

RELEASE_GATE_PASS_RATE = 80
TREND_THRESHOLD = 2

PASS_RATE_DESCRIPTIONS = {
    PassRateStatus.EXCELLENT: "Excellent test coverage and pass rate - no action needed",
    PassRateStatus.GOOD: "Good test results - minor improvements possible",
    PassRateStatus.ACCEPTABLE: "Acceptable pass rate - should address failing tests",
    PassRateStatus.NEEDS_ATTENTION: "Tests need attention - significant failures present",
    PassRateStatus.CRITICAL: "Critical - many tests failing, investigate immediately",
}

PASS_RATE_COLORS = {
    PassRateStatus.EXCELLENT: "#10b981",
    PassRateStatus.GOOD: "#3b82f6",
    PassRateStatus.ACCEPTABLE: "#f59e0b",
    PassRateStatus.NEEDS_ATTENTION: "#ef4444",
    PassRateStatus.CRITICAL: "#7f1d1d",
}


def pass_rate_status(rate: float) -> PassRateStatus:
    if rate >= 95:
        return PassRateStatus.EXCELLENT
    if rate >= 85:
        return PassRateStatus.GOOD
    if rate >= 75:
        return PassRateStatus.ACCEPTABLE
    if rate >= 50:
        return PassRateStatus.NEEDS_ATTENTION
    return PassRateStatus.CRITICAL


def meets_release_gate(rate: float) -> bool:
    return rate >= RELEASE_GATE_PASS_RATE


def passes_needed_for_target(current_passed: int, total_tests: int, target_rate: float) -> int:
    """Additional passing tests needed to reach ``target_rate`` percent of ``total_tests``."""
    target_passes = math.ceil(target_rate / 100 * total_tests)
    return max(0, target_passes - current_passed)


def pass_rate_trend(previous_rate: float, current_rate: float) -> str:
    difference = current_rate - previous_rate
    if difference > TREND_THRESHOLD:
        return "IMPROVING"
    if difference < -TREND_THRESHOLD:
        return "DECLINING"
    return "STABLE"


def compute_pass_rate(passed: int, failed: int, skipped: int) -> int:
    executed = passed + failed + skipped
    if executed == 0:
        return 0
    # half-up, matching how the score is displayed
    return int(math.floor(passed / executed * 100 + 0.5))


# ═════════════════════════════════════════════════════════════════════════
# TestRun
# ═════════════════════════════════════════════════════════════════════════

class TestRun(AggregateMixin, TenantModel):
    __tablename__ = "test_runs"
    __test__ = False  # keep pytest from collecting the model

    AGGREGATE_TYPE = "TestRun"

    id = db.Column(db.Integer, primary_key=True)
    release_id = db.Column(
        db.Integer, db.ForeignKey("releases.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    environment = db.Column(db.String(50), nullable=True)
    status = db.Column(db.String(20), nullable=False, default=TestRunStatus.CREATED, index=True)
    expected_test_count = db.Column(db.Integer, nullable=False)
    passed_count = db.Column(db.Integer, nullable=False, default=0)
    failed_count = db.Column(db.Integer, nullable=False, default=0)
    skipped_count = db.Column(db.Integer, nullable=False, default=0)
    total_duration_ms = db.Column(db.Integer, nullable=False, default=0)
    pass_rate = db.Column(db.Integer, nullable=False, default=0)
    pass_rate_status = db.Column(db.String(20), nullable=False, default=PassRateStatus.CRITICAL)
    created_by = db.Column(db.String(100), nullable=True)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    results = db.relationship(
        "TestResult", backref="test_run", lazy="select",
        cascade="all, delete-orphan", order_by="TestResult.id",
    )

    @classmethod
    def create(
        cls,
        *,
        tenant_id: int,
        name: str,
        expected_test_count: int,
        release_id: int | None = None,
        environment: str | None = None,
        created_by: str | None = None,
    ) -> "TestRun":
        if not name or not name.strip():
            raise ValidationError("Test run name is required", details={"name": "required"})
        if expected_test_count is None or expected_test_count <= 0:
            raise ValidationError(
                "Expected test count must be greater than 0",
                details={"expected_test_count": "must be > 0"},
            )
        run = cls(
            tenant_id=tenant_id,
            name=name.strip(),
            expected_test_count=expected_test_count,
            release_id=release_id,
            environment=environment,
            created_by=created_by,
            status=TestRunStatus.CREATED,
            passed_count=0,
            failed_count=0,
            skipped_count=0,
            total_duration_ms=0,
            pass_rate=0,
            pass_rate_status=PassRateStatus.CRITICAL,
        )
        run.record_event(TEST_RUN_CREATED, {
            "name": run.name,
            "expected_test_count": expected_test_count,
            "release_id": release_id,
        }, user_id=created_by)
        return run

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def executed_count(self) -> int:
        return self.passed_count + self.failed_count + self.skipped_count

    def is_terminal(self) -> bool:
        return TestRunStatus(self.status) in TERMINAL_TEST_RUN_STATUSES

    def is_complete(self) -> bool:
        return self.executed_count >= self.expected_test_count

    def average_duration_ms(self) -> float:
        if self.executed_count == 0:
            return 0.0
        return self.total_duration_ms / self.executed_count

    def meets_release_gate(self) -> bool:
        return meets_release_gate(self.pass_rate)

    def valid_next_states(self) -> list[str]:
        return sorted(next_states(TEST_RUN_TRANSITIONS, TestRunStatus(self.status)))

    # ── Lifecycle ────────────────────────────────────────────────────────

    def _move(self, target: TestRunStatus, verb: str) -> None:
        validate_test_run_transition(self.status, target, verb=verb)
        self.status = target

    def start(self, *, user_id=None) -> None:
        self._move(TestRunStatus.RUNNING, "start")
        self.started_at = _utcnow()
        self.record_event(TEST_RUN_STARTED, {"name": self.name}, user_id=user_id)

    def record_result(
        self,
        *,
        test_case_id: str,
        test_case_name: str | None = None,
        outcome=TestOutcome.PASSED,
        duration_ms: int = 0,
        error_message: str | None = None,
        user_id=None,
    ) -> "TestResult":
        if self.is_terminal():
            raise ValidationError(
                f"Cannot record results on a {self.status} test run",
                details={"status": self.status},
            )
        if not test_case_id:
            raise ValidationError("test_case_id is required", details={"test_case_id": "required"})
        outcome = TestOutcome(outcome)
        duration_ms = max(0, int(duration_ms or 0))

        if outcome == TestOutcome.PASSED:
            self.passed_count += 1
        elif outcome == TestOutcome.FAILED:
            self.failed_count += 1
        else:
            self.skipped_count += 1
        self.total_duration_ms += duration_ms

        result = TestResult(
            tenant_id=self.tenant_id,
            test_case_id=str(test_case_id),
            test_case_name=test_case_name,
            outcome=outcome,
            duration_ms=duration_ms,
            error_message=error_message,
            recorded_at=_utcnow(),
        )
        self.results.append(result)
        self._recalculate()

        self.record_event(TEST_RESULT_RECORDED, {
            "test_case_id": result.test_case_id,
            "outcome": outcome,
            "duration_ms": duration_ms,
            "pass_rate": self.pass_rate,
        }, user_id=user_id)
        return result

    def _recalculate(self) -> None:
        self.pass_rate = compute_pass_rate(self.passed_count, self.failed_count, self.skipped_count)
        self.pass_rate_status = pass_rate_status(self.pass_rate)

    def complete(self, *, user_id=None) -> None:
        self._move(TestRunStatus.COMPLETED, "complete")
        self.completed_at = _utcnow()
        self.record_event(TEST_RUN_COMPLETED, {
            "passed": self.passed_count,
            "failed": self.failed_count,
            "skipped": self.skipped_count,
            "pass_rate": self.pass_rate,
            "meets_release_gate": self.meets_release_gate(),
        }, user_id=user_id)

    def stop(self, *, user_id=None) -> None:
        self._move(TestRunStatus.STOPPED, "stop")
        self.completed_at = _utcnow()
        self.record_event(TEST_RUN_STOPPED, {"pass_rate": self.pass_rate}, user_id=user_id)

    def cancel(self, reason: str | None = None, *, user_id=None) -> None:
        self._move(TestRunStatus.CANCELLED, "cancel")
        self.record_event(TEST_RUN_CANCELLED, {"reason": reason}, user_id=user_id)

    def analyze(self) -> None:
        self._move(TestRunStatus.ANALYZED, "analyze")

    def to_dict(self, include_results: bool = False):
        d = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "release_id": self.release_id,
            "name": self.name,
            "environment": self.environment,
            "status": self.status,
            "expected_test_count": self.expected_test_count,
            "passed_count": self.passed_count,
            "failed_count": self.failed_count,
            "skipped_count": self.skipped_count,
            "total_duration_ms": self.total_duration_ms,
            "average_duration_ms": round(self.average_duration_ms(), 1),
            "pass_rate": self.pass_rate,
            "pass_rate_status": self.pass_rate_status,
            "meets_release_gate": self.meets_release_gate(),
            "is_complete": self.is_complete(),
            "valid_next_states": self.valid_next_states(),
            "created_by": self.created_by,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_results:
            d["results"] = [r.to_dict() for r in self.results]
        return d


class TestResult(TenantModel):
    __tablename__ = "test_results"
    __test__ = False

    id = db.Column(db.Integer, primary_key=True)
    test_run_id = db.Column(
        db.Integer, db.ForeignKey("test_runs.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    test_case_id = db.Column(db.String(100), nullable=False)
    test_case_name = db.Column(db.String(300), nullable=True)
    outcome = db.Column(db.String(10), nullable=False)
    duration_ms = db.Column(db.Integer, default=0)
    error_message = db.Column(db.Text, nullable=True)
    recorded_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "test_run_id": self.test_run_id,
            "test_case_id": self.test_case_id,
            "test_case_name": self.test_case_name,
            "outcome": self.outcome,
            "duration_ms": self.duration_ms,
            "error_message": self.error_message,
            "recorded_at": _iso(self.recorded_at),
        }

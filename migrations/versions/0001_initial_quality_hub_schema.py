"""initial_quality_hub_schema

Create tenants, requirements, releases, bugs, test_runs, test_results,
security_checks and the domain_events outbox.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _tenant_fk():
    return sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE")


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "tenants" not in existing_tables:
        op.create_table(
            "tenants",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("slug", sa.String(length=100), nullable=False),
            sa.Column("plan", sa.String(length=50), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("settings", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("slug"),
        )

    if "requirements" not in existing_tables:
        op.create_table(
            "requirements",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("state", sa.String(length=20), nullable=False, server_default="DRAFT"),
            sa.Column("priority", sa.String(length=20), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            _tenant_fk(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_requirements_tenant_id", "requirements", ["tenant_id"])

    if "releases" not in existing_tables:
        op.create_table(
            "releases",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("version", sa.String(length=50), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="PLANNED"),
            sa.Column("rcs_score", sa.Float(), nullable=True),
            sa.Column("rcs_breakdown", sa.JSON(), nullable=True),
            sa.Column("rcs_explanation", sa.JSON(), nullable=True),
            sa.Column("rcs_evaluated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("readiness_status", sa.String(length=20), nullable=True),
            sa.Column("gate_passed", sa.Boolean(), nullable=True),
            sa.Column("override_reason", sa.Text(), nullable=True),
            sa.Column("blocked_reason", sa.Text(), nullable=True),
            sa.Column("created_by", sa.String(length=100), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
            _tenant_fk(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("tenant_id", "version", name="uq_release_tenant_version"),
        )
        op.create_index("ix_releases_tenant_id", "releases", ["tenant_id"])
        op.create_index("ix_releases_status", "releases", ["status"])

    if "bugs" not in existing_tables:
        op.create_table(
            "bugs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="OPEN"),
            sa.Column("severity", sa.String(length=20), nullable=True),
            sa.Column("priority", sa.String(length=5), nullable=True),
            sa.Column("reported_by", sa.String(length=100), nullable=True),
            sa.Column("assigned_to", sa.String(length=100), nullable=True),
            sa.Column("tags", sa.JSON(), nullable=True),
            sa.Column("resolution_notes", sa.Text(), nullable=True),
            sa.Column("linked_requirement_id", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("triaged_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
            _tenant_fk(),
            sa.ForeignKeyConstraint(["linked_requirement_id"], ["requirements.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_bugs_tenant_id", "bugs", ["tenant_id"])
        op.create_index("ix_bugs_status", "bugs", ["status"])

    if "test_runs" not in existing_tables:
        op.create_table(
            "test_runs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("release_id", sa.Integer(), nullable=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("environment", sa.String(length=50), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="CREATED"),
            sa.Column("expected_test_count", sa.Integer(), nullable=False),
            sa.Column("passed_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("failed_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("skipped_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("total_duration_ms", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("pass_rate", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("pass_rate_status", sa.String(length=20), nullable=False, server_default="CRITICAL"),
            sa.Column("created_by", sa.String(length=100), nullable=True),
            sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            _tenant_fk(),
            sa.ForeignKeyConstraint(["release_id"], ["releases.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_test_runs_tenant_id", "test_runs", ["tenant_id"])
        op.create_index("ix_test_runs_release_id", "test_runs", ["release_id"])
        op.create_index("ix_test_runs_status", "test_runs", ["status"])

    if "test_results" not in existing_tables:
        op.create_table(
            "test_results",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("test_run_id", sa.Integer(), nullable=False),
            sa.Column("test_case_id", sa.String(length=100), nullable=False),
            sa.Column("test_case_name", sa.String(length=300), nullable=True),
            sa.Column("outcome", sa.String(length=10), nullable=False),
            sa.Column("duration_ms", sa.Integer(), nullable=True),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=True),
            _tenant_fk(),
            sa.ForeignKeyConstraint(["test_run_id"], ["test_runs.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_test_results_tenant_id", "test_results", ["tenant_id"])
        op.create_index("ix_test_results_test_run_id", "test_results", ["test_run_id"])

    if "security_checks" not in existing_tables:
        op.create_table(
            "security_checks",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("release_id", sa.Integer(), nullable=True),
            sa.Column("check_type", sa.String(length=30), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDING"),
            sa.Column("tool", sa.String(length=100), nullable=True),
            sa.Column("critical_count", sa.Integer(), nullable=True),
            sa.Column("high_count", sa.Integer(), nullable=True),
            sa.Column("medium_count", sa.Integer(), nullable=True),
            sa.Column("low_count", sa.Integer(), nullable=True),
            sa.Column("score", sa.Integer(), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            _tenant_fk(),
            sa.ForeignKeyConstraint(["release_id"], ["releases.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_security_checks_tenant_id", "security_checks", ["tenant_id"])
        op.create_index("ix_security_checks_release_id", "security_checks", ["release_id"])

    if "domain_events" not in existing_tables:
        op.create_table(
            "domain_events",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("event_id", sa.String(length=36), nullable=False),
            sa.Column("event_type", sa.String(length=80), nullable=False),
            sa.Column("aggregate_type", sa.String(length=40), nullable=False),
            sa.Column("aggregate_id", sa.Integer(), nullable=True),
            sa.Column("user_id", sa.String(length=100), nullable=True),
            sa.Column("payload", sa.JSON(), nullable=True),
            sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("stored_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
            _tenant_fk(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("event_id"),
        )
        op.create_index("ix_domain_events_tenant_id", "domain_events", ["tenant_id"])
        op.create_index("ix_domain_events_event_type", "domain_events", ["event_type"])
        op.create_index(
            "ix_domain_events_tenant_aggregate",
            "domain_events",
            ["tenant_id", "aggregate_type", "aggregate_id"],
        )


def downgrade():
    existing_tables = set(sa_inspect(op.get_bind()).get_table_names())
    for table in (
        "domain_events",
        "security_checks",
        "test_results",
        "test_runs",
        "bugs",
        "releases",
        "requirements",
        "tenants",
    ):
        if table in existing_tables:
            op.drop_table(table)

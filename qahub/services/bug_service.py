"""
Release Quality Hub
Bug service — tenant-scoped CRUD and lifecycle orchestration for the Bug aggregate.

Transaction policy: functions flush, route handlers commit.
"""

import logging

from qahub.core.exceptions import AIProviderError, ValidationError
from qahub.models import db
from qahub.models.bug import Bug, BugPriority, BugSeverity, BugStatus
from qahub.models.requirement import Requirement
from qahub.services import event_store
from qahub.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)

# transition action name → (aggregate method, accepts a reason/notes argument)
TRANSITION_ACTIONS = {
    "start": ("mark_in_progress", False),
    "resolve": ("mark_resolved", True),
    "verify": ("mark_verified", False),
    "close": ("mark_closed", False),
    "defer": ("defer", True),
    "invalidate": ("mark_invalid", True),
    "reopen": ("reopen", True),
}

# Only bugs nobody has worked on can be deleted
DELETABLE_STATUSES = frozenset({BugStatus.OPEN, BugStatus.INVALID})


def _coerce(enum_cls, value, field: str):
    try:
        return enum_cls(str(value).upper())
    except ValueError:
        raise ValidationError(
            f"Invalid {field} '{value}'",
            details={field: f"must be one of {[m.value for m in enum_cls]}"},
        ) from None


def create_bug(*, tenant_id: int, data: dict, user_id=None) -> Bug:
    """Create a bug, optionally triaging it in the same call when severity+priority are given."""
    given = [f for f in ("severity", "priority") if data.get(f)]
    if len(given) == 1:
        missing = "priority" if given == ["severity"] else "severity"
        raise ValidationError(
            f"{given[0]} requires {missing} when triaging on create",
            details={missing: "required"},
        )

    linked_requirement_id = data.get("linked_requirement_id")
    if linked_requirement_id is not None:
        get_scoped(Requirement, linked_requirement_id, tenant_id=tenant_id)

    bug = Bug.create(
        tenant_id=tenant_id,
        title=data.get("title", ""),
        description=data.get("description", ""),
        reported_by=user_id or data.get("reported_by"),
        tags=data.get("tags"),
        linked_requirement_id=linked_requirement_id,
    )
    db.session.add(bug)

    if given:
        bug.triage(
            severity=_coerce(BugSeverity, data["severity"], "severity"),
            priority=_coerce(BugPriority, data["priority"], "priority"),
            assigned_to=data.get("assigned_to"),
            user_id=user_id,
        )

    event_store.collect_and_publish(bug, tenant_id=tenant_id)
    logger.info("Bug created: id=%s title=%s", bug.id, bug.title[:80], extra={"tenant_id": tenant_id})
    return bug


def get_bug(bug_id: int, *, tenant_id: int) -> Bug:
    return get_scoped(Bug, bug_id, tenant_id=tenant_id)


def list_bugs(
    *,
    tenant_id: int,
    status: str | None = None,
    severity: str | None = None,
    priority: str | None = None,
    assigned_to: str | None = None,
) -> list[Bug]:
    q = Bug.query_for_tenant(tenant_id)
    if status:
        q = q.filter_by(status=_coerce(BugStatus, status, "status"))
    if severity:
        q = q.filter_by(severity=_coerce(BugSeverity, severity, "severity"))
    if priority:
        q = q.filter_by(priority=_coerce(BugPriority, priority, "priority"))
    if assigned_to:
        q = q.filter_by(assigned_to=assigned_to)
    return q.order_by(Bug.id.desc()).all()


def list_all_for_tenant(*, tenant_id: int) -> list[Bug]:
    """Full current snapshot for scoring; no pagination at this layer."""
    return Bug.query_for_tenant(tenant_id).all()


def triage_bug(bug_id: int, *, tenant_id: int, data: dict, user_id=None) -> Bug:
    bug = get_bug(bug_id, tenant_id=tenant_id)
    if not data.get("severity") or not data.get("priority"):
        raise ValidationError(
            "severity and priority are required to triage",
            details={"severity": "required", "priority": "required"},
        )
    bug.triage(
        severity=_coerce(BugSeverity, data["severity"], "severity"),
        priority=_coerce(BugPriority, data["priority"], "priority"),
        assigned_to=data.get("assigned_to"),
        user_id=user_id,
    )
    event_store.collect_and_publish(bug, tenant_id=tenant_id)
    logger.info("Bug triaged: id=%s severity=%s priority=%s", bug.id, bug.severity, bug.priority,
                extra={"tenant_id": tenant_id})
    return bug


def update_triage(bug_id: int, *, tenant_id: int, data: dict) -> Bug:
    bug = get_bug(bug_id, tenant_id=tenant_id)
    bug.update_triage(
        severity=_coerce(BugSeverity, data["severity"], "severity") if data.get("severity") else None,
        priority=_coerce(BugPriority, data["priority"], "priority") if data.get("priority") else None,
        assigned_to=data.get("assigned_to"),
    )
    db.session.flush()
    return bug


def transition_bug(bug_id: int, *, tenant_id: int, action: str, reason: str | None = None, user_id=None) -> Bug:
    """Apply a named lifecycle action (start, resolve, verify, close, defer, invalidate, reopen)."""
    if action not in TRANSITION_ACTIONS:
        raise ValidationError(
            f"Unknown bug action '{action}'",
            details={"action": f"must be one of {sorted(TRANSITION_ACTIONS)}"},
        )
    bug = get_bug(bug_id, tenant_id=tenant_id)
    method_name, takes_reason = TRANSITION_ACTIONS[action]
    previous = bug.status
    method = getattr(bug, method_name)
    if takes_reason:
        method(reason, user_id=user_id)
    else:
        method(user_id=user_id)

    event_store.collect_and_publish(bug, tenant_id=tenant_id)
    logger.info("Bug %s: %s → %s", bug.id, previous, bug.status, extra={"tenant_id": tenant_id})
    return bug


def delete_bug(bug_id: int, *, tenant_id: int) -> None:
    bug = get_bug(bug_id, tenant_id=tenant_id)
    if BugStatus(bug.status) not in DELETABLE_STATUSES:
        raise ValidationError(
            f"Cannot delete a {bug.status} bug",
            details={"status": f"must be one of {sorted(DELETABLE_STATUSES)}"},
        )
    db.session.delete(bug)
    db.session.flush()
    logger.info("Bug deleted: id=%s", bug_id, extra={"tenant_id": tenant_id})


def suggest_triage(bug_id: int, *, tenant_id: int, factory=None) -> dict:
    """Ask the tenant's AI provider for a severity/priority suggestion. Nothing is persisted.

    Raises:
        AIProviderError: no provider configured, or the provider call failed.
    """
    from qahub.ai.provider_factory import AIProviderFactory

    bug = get_bug(bug_id, tenant_id=tenant_id)
    related = ""
    if bug.linked_requirement_id is not None:
        req = get_scoped(Requirement, bug.linked_requirement_id, tenant_id=tenant_id)
        related = f"{req.title}: {req.description or ''}".strip()

    assistant = (factory or AIProviderFactory()).get_provider(tenant_id)
    try:
        suggestion = assistant.triage_bug(bug.title, bug.description or "", related)
    except AIProviderError:
        raise
    except RuntimeError as exc:
        raise AIProviderError(str(exc)) from exc

    logger.info("AI triage suggested for bug %s: %s/%s", bug.id,
                suggestion["suggested_severity"], suggestion["suggested_priority"],
                extra={"tenant_id": tenant_id})
    return suggestion

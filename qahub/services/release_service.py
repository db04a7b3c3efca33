"""
Release Quality Hub
Release service — tenant-scoped creation, listing and lifecycle of releases.

Scoring and gate evaluation live in rcs_service.
"""

import logging

from qahub.core.exceptions import ConflictError, ValidationError
from qahub.models import db
from qahub.models.release import Release, ReleaseStatus
from qahub.services import event_store
from qahub.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)

LIFECYCLE_ACTIONS = ("activate", "freeze", "ship", "block", "unblock", "abort")


def create_release(*, tenant_id: int, data: dict, user_id=None) -> Release:
    release = Release.create(
        tenant_id=tenant_id,
        version=data.get("version", ""),
        name=data.get("name"),
        description=data.get("description"),
        created_by=user_id,
    )
    duplicate = Release.query_for_tenant(tenant_id).filter_by(version=release.version).first()
    if duplicate is not None:
        raise ConflictError("Release", "version", release.version)

    db.session.add(release)
    event_store.collect_and_publish(release, tenant_id=tenant_id)
    logger.info("Release created: id=%s version=%s", release.id, release.version,
                extra={"tenant_id": tenant_id, "release_id": release.id})
    return release


def get_release(release_id: int, *, tenant_id: int) -> Release:
    return get_scoped(Release, release_id, tenant_id=tenant_id)


def list_releases(*, tenant_id: int, status: str | None = None) -> list[Release]:
    q = Release.query_for_tenant(tenant_id)
    if status:
        try:
            q = q.filter_by(status=ReleaseStatus(status.upper()))
        except ValueError:
            raise ValidationError(
                f"Invalid status '{status}'",
                details={"status": f"must be one of {[s.value for s in ReleaseStatus]}"},
            ) from None
    return q.order_by(Release.id.desc()).all()


def apply_action(release_id: int, *, tenant_id: int, action: str, reason: str | None = None, user_id=None) -> Release:
    """Run a lifecycle action: activate, freeze, ship, block, unblock, abort."""
    if action not in LIFECYCLE_ACTIONS:
        raise ValidationError(
            f"Unknown release action '{action}'",
            details={"action": f"must be one of {list(LIFECYCLE_ACTIONS)}"},
        )
    release = get_release(release_id, tenant_id=tenant_id)
    previous = release.status
    if action == "activate":
        release.activate()
    elif action == "freeze":
        release.freeze()
    elif action == "ship":
        release.ship()
    elif action == "block":
        release.block(reason, user_id=user_id)
    elif action == "unblock":
        release.unblock()
    else:
        release.abort(reason, user_id=user_id)

    event_store.collect_and_publish(release, tenant_id=tenant_id)
    logger.info("Release %s: %s → %s", release.version, previous, release.status,
                extra={"tenant_id": tenant_id, "release_id": release.id})
    return release

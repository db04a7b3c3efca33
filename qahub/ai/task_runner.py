"""
Release Quality Hub
Detached task runner for best-effort AI work.

``dispatch_detached`` runs a callable on a daemon thread inside an app
context. The caller never waits for it and never sees its errors; failures
go to the log only. With ``RCS_EXPLANATION_ASYNC`` off (testing) the callable
runs inline under the same isolation.
"""

import logging
import threading

from qahub.models import db

logger = logging.getLogger(__name__)


def _run_isolated(app, fn, args, kwargs):
    with app.app_context():
        try:
            fn(*args, **kwargs)
            db.session.commit()
        except Exception:
            logger.exception("Detached task %s failed", getattr(fn, "__name__", fn))
            db.session.rollback()
        finally:
            db.session.remove()


def dispatch_detached(app, fn, *args, **kwargs) -> threading.Thread | None:
    """Fire-and-forget ``fn(*args, **kwargs)``. Returns the thread when one was started."""
    if not app.config.get("RCS_EXPLANATION_ASYNC", True):
        _run_inline(fn, args, kwargs)
        return None

    t = threading.Thread(
        target=_run_isolated,
        args=(app, fn, args, kwargs),
        daemon=True,
        name=f"detached-{getattr(fn, '__name__', 'task')}",
    )
    t.start()
    return t


def _run_inline(fn, args, kwargs):
    # The caller committed before dispatching, so rollback only drops the task's writes
    try:
        fn(*args, **kwargs)
        db.session.commit()
    except Exception:
        logger.exception("Detached task %s failed", getattr(fn, "__name__", fn))
        db.session.rollback()

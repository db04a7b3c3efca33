"""
Release Quality Hub
Flask Application Factory.

Usage:
    from qahub import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from qahub.config import config
from qahub.middleware.jwt_auth import init_jwt_middleware
from qahub.middleware.logging_config import configure_logging
from qahub.middleware.tenant_context import init_tenant_context
from qahub.middleware.timing import init_request_timing
from qahub.models import db
from qahub.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)


# SQLite ignores FOREIGN KEY clauses unless enabled per connection
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, scoring and AI routes opt in
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request middleware: timing → JWT → tenant context ────────────────
    init_request_timing(app)
    init_jwt_middleware(app)
    init_tenant_context(app)

    # create_all and Alembic only see imported models
    from qahub.models import (  # noqa: F401
        bug, events, release, requirement, security, tenant, testing,
    )

    # Production schema comes from Alembic migrations
    if config_name != "production":
        os.makedirs(app.instance_path, exist_ok=True)
        with app.app_context():
            db.create_all()

    # ── Error handlers ───────────────────────────────────────────────────
    register_error_handlers(app)

    # ── Blueprints ───────────────────────────────────────────────────────
    from qahub.blueprints.bug_bp import bug_bp
    from qahub.blueprints.event_bp import event_bp
    from qahub.blueprints.health_bp import health_bp
    from qahub.blueprints.release_bp import release_bp
    from qahub.blueprints.requirement_bp import requirement_bp
    from qahub.blueprints.security_ops_bp import security_ops_bp
    from qahub.blueprints.test_run_bp import test_run_bp

    for blueprint in (
        health_bp, release_bp, bug_bp, test_run_bp, requirement_bp, security_ops_bp, event_bp,
    ):
        app.register_blueprint(blueprint)

    # ── Domain event subscribers ─────────────────────────────────────────
    from qahub.services.event_subscribers import register_default_subscribers
    register_default_subscribers()

    logger.info("Release Quality Hub started (config=%s)", config_name)
    return app

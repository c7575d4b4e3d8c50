"""
PLM Gate Workflow
Flask Application Factory.

Usage:
    from plm import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from plm.config import config
from plm.middleware.logging_config import configure_logging
from plm.middleware.rate_limiter import init_rate_limits
from plm.middleware.timing import init_request_timing
from plm.models import db

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit; applied per-blueprint
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
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
    cfg = config[config_name]
    app.config.from_object(cfg() if config_name == "production" else cfg)

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

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from plm.models import approval as _approval_models          # noqa: F401
    from plm.models import auth as _auth_models                  # noqa: F401
    from plm.models import document as _document_models          # noqa: F401
    from plm.models import notification as _notification_models  # noqa: F401
    from plm.models import project as _project_models            # noqa: F401
    from plm.models import scheduling as _scheduling_models      # noqa: F401

    # ── Auto-create tables (dev/test; production runs migrations) ────────
    if config_name != "production":
        if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") and ":memory:" not in app.config["SQLALCHEMY_DATABASE_URI"]:
            os.makedirs(app.instance_path, exist_ok=True)
        with app.app_context():
            db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from plm.blueprints.approval_bp import approval_bp
    from plm.blueprints.document_bp import document_bp
    from plm.blueprints.health_bp import health_bp
    from plm.blueprints.metrics_bp import metrics_bp
    from plm.blueprints.notification_bp import notification_bp
    from plm.blueprints.project_bp import project_bp
    from plm.blueprints.user_bp import user_bp

    app.register_blueprint(user_bp)
    app.register_blueprint(project_bp)
    app.register_blueprint(approval_bp)
    app.register_blueprint(document_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(metrics_bp)
    app.register_blueprint(health_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-document-requirements")
    def seed_document_requirements_cmd():
        """Load the default per-gate document checklist."""
        from plm.services.document_service import DocumentService
        count = DocumentService().seed_default_requirements()
        click.echo(f"Seeded {count} document requirements.")

    @app.cli.command("create-user")
    @click.option("--email", required=True)
    @click.option("--name", "full_name", default="")
    @click.option("--role", required=True)
    def create_user_cmd(email, full_name, role):
        """Create a user profile (bootstrap the first management user)."""
        from plm.models.auth import USER_ROLES, User
        if role not in USER_ROLES:
            raise click.BadParameter(f"must be one of {sorted(USER_ROLES)}", param_hint="--role")
        user = User(email=email.strip().lower(), full_name=full_name, role=role)
        db.session.add(user)
        db.session.commit()
        click.echo(f"Created user {user.id} ({role}).")

    @app.cli.command("run-job")
    @click.argument("job_name")
    def run_job_cmd(job_name):
        """Run a scheduled job once (for cron)."""
        from plm.services.scheduler_service import SchedulerService
        result = SchedulerService.run_job(job_name)
        click.echo(f"{job_name}: {result['status']} {result.get('result') or result.get('error')}")
        if result["status"] != "success":
            raise SystemExit(1)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "code": "ERR_NOT_FOUND", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error", "code": "ERR_INTERNAL"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    # ── Scheduler (importing the jobs module registers its jobs) ─────────
    import importlib
    importlib.import_module("plm.services.scheduled_jobs")
    from plm.services.scheduler_service import SchedulerService as _SchedulerSvc
    _SchedulerSvc.init_app(app)

    return app

"""
Procurement Workflow Platform
Flask Application Factory.

Usage:
    from procureflow import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import importlib
import logging
import os

import click
from flask import Flask
from flask_migrate import Migrate

from procureflow.config import config
from procureflow.middleware.logging_config import configure_logging
from procureflow.models import db

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()

# Model modules imported so metadata is complete for create_all / Alembic
_MODEL_MODULES = (
    "procureflow.models.directory",
    "procureflow.models.project",
    "procureflow.models.task",
    "procureflow.models.inventory",
    "procureflow.models.procurement",
    "procureflow.models.budget_allocation",
    "procureflow.models.approval",
    "procureflow.models.notification",
    "procureflow.models.audit",
    "procureflow.models.outbox",
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    config_cls = config[config_name]
    # ProductionConfig validates its environment on instantiation
    app.config.from_object(config_cls() if config_name == "production" else config_cls)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    for module in _MODEL_MODULES:
        importlib.import_module(module)
    db.init_app(app)
    migrate.init_app(app, db)

    # ── Outbox handlers (import registers @register_handler functions) ───
    importlib.import_module("procureflow.services.event_handlers")

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("dispatch-workflow-events")
    @click.option("--limit", type=int, default=None, help="Deliver at most this many events.")
    @click.option("--requeue-failed", is_flag=True, help="Move failed events back to pending first.")
    def dispatch_workflow_events_cmd(limit, requeue_failed):
        """Deliver pending workflow outbox events (notifications, audit rows)."""
        from procureflow.services.workflow_events import dispatch_pending_events, requeue_failed_events
        if requeue_failed:
            logger.info("Requeued %s failed events.", requeue_failed_events())
        summary = dispatch_pending_events(limit=limit)
        click.echo(f"delivered={summary['delivered']} retrying={summary['retrying']} failed={summary['failed']}")

    @app.cli.command("seed-workflow-templates")
    def seed_workflow_templates_cmd():
        """Seed the default project workflow templates."""
        from procureflow.services.workflow_template_service import seed_default_templates
        count = seed_default_templates()
        db.session.commit()
        logger.info("Seeded %s new workflow templates.", count)

    return app

"""
TestCraft Repository Hub Scanner
Flask Application Factory.

The app is a container for configuration, the database session and the
CLI; it serves no HTTP routes.

Usage:
    from testcraft import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config

    flask --app wsgi scan-now
    flask --app wsgi run-scheduler
"""

import json
import logging
import os

import click
from flask import Flask
from flask_migrate import Migrate

from testcraft.config import config
from testcraft.models import db
from testcraft.middleware.logging_config import configure_logging
from testcraft.middleware.diagnostics import run_startup_diagnostics

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
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db, directory=os.path.join(os.path.dirname(app.root_path), "migrations"))

    # ── Import all models so Alembic can detect them ─────────────────────
    from testcraft.models import scanning as _scanning_models      # noqa: F401
    from testcraft.models import scheduling as _scheduling_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── CLI commands ─────────────────────────────────────────────────────
    _register_cli(app)

    # ── Startup diagnostics ──────────────────────────────────────────────
    run_startup_diagnostics(app)

    # ── Scheduler initialization ─────────────────────────────────────────
    from testcraft.services.scheduler_service import ScanScheduler
    ScanScheduler.init_app(app)

    return app


def _echo_json(payload) -> None:
    click.echo(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def _register_cli(app: Flask) -> None:
    @app.cli.command("scan-now")
    def scan_now_cmd():
        """Sync the hub, scan it and persist the results once."""
        outcome = app.extensions["scan_scheduler"].trigger(source="cli")
        _echo_json(outcome)
        if outcome["status"] != "success":
            raise SystemExit(1)

    @app.cli.command("sync-hub")
    def sync_hub_cmd():
        """Clone or pull every repository in REPOSITORY_LIST_FILE."""
        from testcraft.services.git_hub_manager import GitHubManager
        from testcraft.services.scheduled_jobs import load_entries

        manager = GitHubManager.from_config(app.config)
        manager.ensure_hub()
        report = manager.sync_all(load_entries(app))
        _echo_json(report.to_dict())
        if report.failed_count:
            raise SystemExit(1)

    @app.cli.command("scan-status")
    @click.option("--limit", default=5, show_default=True, help="Number of recent scan sessions.")
    def scan_status_cmd(limit):
        """Show the scheduler state and the most recent scan sessions."""
        from testcraft.models.scanning import ScanSession
        from testcraft.models.scheduling import ScheduledJob
        from testcraft.services.scheduler_service import JOB_NAME

        sessions = ScanSession.query.order_by(ScanSession.id.desc()).limit(limit).all()
        job = ScheduledJob.query.filter_by(job_name=JOB_NAME).first()
        _echo_json({
            "scheduler": app.extensions["scan_scheduler"].status(),
            "job": job.to_dict() if job else None,
            "recent_sessions": [s.to_dict() for s in sessions],
        })

    @app.cli.command("run-scheduler")
    def run_scheduler_cmd():
        """Run the daily scan timer in the foreground until interrupted."""
        scheduler = app.extensions["scan_scheduler"]
        logger.info("Scheduler running with schedule %s; Ctrl+C to stop", scheduler.schedule)
        try:
            scheduler.serve_forever()
        except KeyboardInterrupt:
            logger.info("Stopping scheduler")

"""
TestCraft Repository Hub Scanner
Startup diagnostics, run once when the app is created.

Checks the database, the repository hub, the git executable and the
Java grammar, then logs a summary banner.
"""

import logging
import os
import sys

from flask import Flask

from testcraft.models import db

logger = logging.getLogger(__name__)


def _hub_status(hub_path: str, issues: list[str]) -> str:
    if not hub_path:
        issues.append("REPOSITORY_HUB_PATH is not set")
        return "NOT SET"
    if not os.path.isdir(hub_path):
        return "missing (created on first scan)"
    if not os.access(hub_path, os.W_OK):
        issues.append(f"Repository hub {hub_path} is not writable")
        return "read-only"
    return "ok"


def _git_status(issues: list[str]) -> str:
    try:
        import git
        return git.Git().version().replace("git version ", "")
    except Exception as exc:
        issues.append(f"git executable unavailable: {exc}")
        return "NOT FOUND"


def _grammar_status(issues: list[str]) -> str:
    try:
        from testcraft.services.java_parser import JavaSourceParser
        JavaSourceParser().parse("class Probe {}", "<probe>")
        return "ok"
    except Exception as exc:
        issues.append(f"Java grammar failed to load: {exc}")
        return "FAILED"


def run_startup_diagnostics(app: Flask):
    """Run diagnostic checks during app startup (inside app context)."""
    if app.config.get("TESTING"):
        return  # skip during tests for speed

    issues: list[str] = []

    with app.app_context():
        # ── Python version ───────────────────────────────────────────
        py = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"

        # ── Database connectivity ────────────────────────────────────
        db_status = "ok"
        db_type = db.engine.dialect.name
        try:
            db.session.execute(db.text("SELECT 1"))
        except Exception as exc:
            db_status = "FAILED"
            issues.append(f"Database unreachable: {exc}")

        # ── Table count ──────────────────────────────────────────────
        try:
            from sqlalchemy import inspect as sa_inspect
            table_count = len(sa_inspect(db.engine).get_table_names())
            if table_count == 0:
                issues.append("No tables found — run 'flask db upgrade'")
        except Exception:
            table_count = "?"

        hub_path = app.config.get("REPOSITORY_HUB_PATH", "")
        hub_status = _hub_status(hub_path, issues)
        git_version = _git_status(issues)
        grammar = _grammar_status(issues)
        list_file = app.config.get("REPOSITORY_LIST_FILE") or "not set (scan only)"
        scheduler = "ENABLED" if app.config.get("SCAN_SCHEDULER_ENABLED") else "DISABLED"

        # ── Banner ───────────────────────────────────────────────────
        banner = f"""
╔══════════════════════════════════════════════════════════════╗
║  TestCraft Repository Hub Scanner — Startup Diagnostics      ║
╠══════════════════════════════════════════════════════════════╣
║  Python      : {py:<46s}║
║  Debug       : {str(app.debug):<46s}║
║  Database    : {f'{db_type} ({db_status})':<46s}║
║  Tables      : {str(table_count):<46s}║
║  Hub         : {hub_status:<46s}║
║  Repo list   : {list_file[:46]:<46s}║
║  git         : {git_version[:46]:<46s}║
║  Java parser : {grammar:<46s}║
║  Scheduler   : {scheduler:<46s}║
╚══════════════════════════════════════════════════════════════╝"""
        logger.info(banner)

        if issues:
            logger.warning("Startup issues detected:")
            for issue in issues:
                logger.warning("  ⚠ %s", issue)
        else:
            logger.info("✅ All startup checks passed")

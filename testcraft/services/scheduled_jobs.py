"""
TestCraft Repository Hub Scanner
Scheduled jobs.

The full hub scan executed by ``ScanScheduler``:

    ensure schema → validate config → sync hub → scan → persist
    → release temp clones → report hook (best-effort)

Each stage isolates its own failures:
    - bad configuration / unusable hub: raised before any git or DB work
    - one repository failing to sync: counted, the rest continue
    - scanner failure: run ends with status "error", nothing is written
    - persistence failure: run ends with status "failed", sync is not undone
    - report hook failure: logged, the run still counts as "success"
"""

from __future__ import annotations

import importlib
import logging
import time
from typing import Callable

from flask import Flask

from testcraft.core.exceptions import ConfigurationError, TestCraftError
from testcraft.middleware.logging_config import log_stage
from testcraft.models import db
from testcraft.models.records import ScanSummary
from testcraft.services.git_hub_manager import GitHubManager, SyncReport
from testcraft.services.glob_matcher import GlobMatcher
from testcraft.services.repository_list import RepositoryEntry, load_repository_list
from testcraft.services.scan_persistence_service import ScanPersistenceService
from testcraft.services.source_scanner import SourceScanner

logger = logging.getLogger(__name__)

ReportHook = Callable[[ScanSummary, int], "str | None"]


def load_report_hook(target: str | None) -> ReportHook | None:
    """Resolve a ``"package.module:function"`` reference to the report hook."""
    if not target:
        return None
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise ConfigurationError(f"Report hook must look like 'module:function', got {target!r}")
    try:
        hook = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as exc:
        raise ConfigurationError(f"Cannot load report hook {target!r}: {exc}") from exc
    if not callable(hook):
        raise ConfigurationError(f"Report hook {target!r} is not callable")
    return hook


def team_index(manager: GitHubManager, entries: list[RepositoryEntry]) -> dict[str, RepositoryEntry]:
    """Map hub folder name → configured entry, for tagging scanned repositories with teams."""
    index = {}
    for entry in entries:
        try:
            index.setdefault(manager.derive_repository_name(entry.url), entry)
        except ConfigurationError:
            continue
    return index


def load_entries(app: Flask) -> list[RepositoryEntry]:
    """
    Configured repositories. With no list file configured the hub is
    scanned as-is without syncing.

    Raises:
        ConfigurationError: a list file is configured but missing.
    """
    path = app.config.get("REPOSITORY_LIST_FILE")
    if not path:
        logger.warning("REPOSITORY_LIST_FILE not set; scanning existing hub checkouts without sync")
        return []
    return load_repository_list(path)


def run_full_scan(app: Flask, report_hook: ReportHook | None = None) -> dict:
    """
    Run one complete scan. Must be called inside an app context.

    Returns:
        Dict with status (success, failed, error), stage counters and the
        scan session id when one was written.

    Raises:
        ConfigurationError / HubIOError: the run could not start.
    """
    cfg = app.config
    start = time.monotonic()
    results: dict = {"status": "success"}

    # ── 1. Schema ────────────────────────────────────────────────────────
    db.create_all()

    # ── 2. Configuration (fatal before any I/O-heavy work) ───────────────
    manager = GitHubManager.from_config(cfg)
    manager.ensure_hub()
    entries = load_entries(app)
    if report_hook is None:
        report_hook = load_report_hook(cfg.get("SCAN_REPORT_HOOK"))

    # ── 3. Sync ──────────────────────────────────────────────────────────
    with log_stage(logger, "sync"):
        sync_report = manager.sync_all(entries) if entries else SyncReport()
    results["sync"] = sync_report.to_dict()

    # ── 4. Scan ──────────────────────────────────────────────────────────
    scanner = SourceScanner(
        matcher=GlobMatcher(cfg.get("SCAN_INCLUDE_PATTERNS"), cfg.get("SCAN_EXCLUDE_PATTERNS")),
        repository_entries=team_index(manager, entries),
    )
    try:
        with log_stage(logger, "scan"):
            summary = scanner.scan_hub(manager.hub_path)
    except Exception as exc:
        logger.exception("Hub scan aborted; nothing persisted")
        results.update(status="error", error=f"Scan failed: {exc}")
        return results
    results["scan"] = {**summary.to_dict(), **scanner.stats.to_dict()}

    # ── 5. Persist ───────────────────────────────────────────────────────
    service = ScanPersistenceService(batch_size=cfg.get("PERSIST_BATCH_SIZE", 1000))
    duration_ms = int((time.monotonic() - start) * 1000)
    try:
        with log_stage(logger, "persist"):
            session_id = service.persist(summary, duration_ms=duration_ms)
    except TestCraftError as exc:
        logger.error("Persisting scan failed: %s", exc)
        results.update(status="failed", error=str(exc))
        results["failed_session_id"] = service.record_failed_session(
            summary.scan_directory, str(exc), duration_ms=duration_ms,
        )
        return results
    results["scan_session_id"] = session_id
    results["persist"] = service.last_result.to_dict() if service.last_result else {}

    # ── 6. Temp-clone release (only after persistence) ───────────────────
    if manager.temp_clone:
        released = 0
        with log_stage(logger, "release"):
            for synced in sync_report.synced:
                try:
                    if manager.release(synced.name):
                        released += 1
                except TestCraftError as exc:
                    logger.error("Could not release %s: %s", synced.name, exc,
                                 extra={"repository": synced.name})
        results["released"] = released

    # ── 7. Report (best-effort) ──────────────────────────────────────────
    if report_hook is not None:
        try:
            with log_stage(logger, "report"):
                report_path = report_hook(summary, session_id)
            if report_path:
                service.attach_report(session_id, str(report_path))
                results["report_file_path"] = str(report_path)
        except Exception as exc:
            db.session.rollback()
            logger.exception("Report generation failed for scan session %s", session_id,
                             extra={"scan_session_id": session_id})
            results["report_error"] = str(exc)

    results["duration_ms"] = int((time.monotonic() - start) * 1000)
    return results

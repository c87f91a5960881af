"""
TestCraft Repository Hub Scanner
Scan Scheduler.

Runs the full hub scan from a daily timer thread or on demand, never
more than one at a time.

Architecture:
    - A non-blocking lock is the single-flight guard: a second trigger
      while a scan is running returns "skipped" immediately
    - The guard is released on every exit path
    - Live status (last run time, status, error) is kept in memory and
      mirrored to the ScheduledJob table for history across restarts
    - The timer thread is a daemon; ``stop()`` wakes it up and joins it
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable

from flask import Flask
from sqlalchemy.exc import SQLAlchemyError

from testcraft.core.exceptions import ConfigurationError
from testcraft.middleware.logging_config import scan_run
from testcraft.models import db
from testcraft.models.scheduling import ScheduledJob
from testcraft.services.scheduled_jobs import run_full_scan

logger = logging.getLogger(__name__)

JOB_NAME = "repository_hub_scan"
DEFAULT_SCHEDULE = {"hour": "2", "minute": "0", "description": "Daily at 02:00"}

STATUS_NEVER_RUN = "never_run"
STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"
STATUS_ERROR = "error"
STATUS_SKIPPED = "skipped"


# ═══════════════════════════════════════════════════════════════════════════
#  Schedule evaluation
# ═══════════════════════════════════════════════════════════════════════════


def _parse_hours(value) -> list[int]:
    text = str(value).strip()
    if text == "*":
        return list(range(24))
    if text.startswith("*/"):
        step = int(text[2:])
        if step <= 0:
            raise ValueError(text)
        return list(range(0, 24, step))
    hours = sorted({int(part) for part in text.split(",")})
    if any(h < 0 or h > 23 for h in hours):
        raise ValueError(text)
    return hours


def next_run_time(schedule: dict, now: datetime) -> datetime:
    """
    Next datetime strictly after ``now`` matching ``schedule``.

    ``schedule`` uses the same shape as the job config:
    ``{"hour": "2", "minute": "0"}``; hour may be ``"*"``, ``"*/N"`` or
    a comma list.

    Raises:
        ConfigurationError: the schedule cannot be evaluated.
    """
    try:
        hours = _parse_hours(schedule.get("hour", "0"))
        minute = int(str(schedule.get("minute", "0")).strip())
        if minute < 0 or minute > 59:
            raise ValueError(minute)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid scan schedule {schedule!r}") from exc

    base = now.replace(second=0, microsecond=0)
    for day in range(2):
        for hour in hours:
            candidate = base.replace(hour=hour, minute=minute) + timedelta(days=day)
            if candidate > now:
                return candidate
    # unreachable with a non-empty hour list
    raise ConfigurationError(f"Invalid scan schedule {schedule!r}")


# ═══════════════════════════════════════════════════════════════════════════
#  Scheduler
# ═══════════════════════════════════════════════════════════════════════════


class ScanScheduler:
    """
    Single-flight scan runner.

    ``trigger()`` is the manual entry point; the timer thread calls the
    same method, so both share one guard.
    """

    def __init__(
        self,
        app: Flask,
        job: Callable[[Flask], dict] | None = None,
        schedule: dict | None = None,
    ):
        self._app = app
        self._job = job or run_full_scan
        self.schedule = dict(schedule or app.config.get("SCAN_SCHEDULE") or DEFAULT_SCHEDULE)
        next_run_time(self.schedule, datetime.now())  # fail fast on a bad schedule

        self._guard = threading.Lock()
        self._state_lock = threading.Lock()
        self._last_run_time: datetime | None = None
        self._last_status = STATUS_NEVER_RUN
        self._last_error: str | None = None
        self._last_result: dict | None = None
        self._next_run_at: datetime | None = None

        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @classmethod
    def init_app(cls, app: Flask, **kwargs) -> ScanScheduler:
        """Attach a scheduler to the app; start the timer when enabled."""
        scheduler = cls(app, **kwargs)
        app.extensions["scan_scheduler"] = scheduler
        if app.config.get("SCAN_SCHEDULER_ENABLED") and not app.config.get("TESTING"):
            scheduler.start()
        logger.info("ScanScheduler initialized (schedule=%s)", scheduler.schedule)
        return scheduler

    # ── Status ───────────────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._guard.locked()

    @property
    def last_status(self) -> str:
        with self._state_lock:
            return self._last_status

    def status(self) -> dict:
        with self._state_lock:
            return {
                "job_name": JOB_NAME,
                "running": self._guard.locked(),
                "last_run_time": self._last_run_time.isoformat() if self._last_run_time else None,
                "last_status": self._last_status,
                "last_error": self._last_error,
                "last_result": self._last_result,
                "next_run_at": self._next_run_at.isoformat() if self._next_run_at else None,
                "schedule": self.schedule,
                "timer_active": bool(self._thread and self._thread.is_alive()),
            }

    # ── Execution ────────────────────────────────────────────────────────

    def trigger(self, source: str = "manual") -> dict:
        """
        Run one scan now unless one is already in flight.

        Returns:
            Dict with run_id, status, duration_ms, result or error. A rejected
            trigger returns status "skipped" and leaves the recorded
            last-run state untouched.
        """
        if not self._guard.acquire(blocking=False):
            logger.warning("Scan trigger (%s) rejected: a scan is already running", source)
            return {"job_name": JOB_NAME, "status": STATUS_SKIPPED,
                    "error": "Scan already in progress"}

        start = time.monotonic()
        result = None
        error = None
        try:
            with scan_run() as run_id:
                logger.info("Scan started (%s)", source, extra={"event_type": "scan_start"})
                try:
                    with self._app.app_context():
                        result = self._job(self._app)
                    status = (result or {}).get("status", STATUS_SUCCESS)
                    error = (result or {}).get("error")
                except Exception as exc:
                    status = STATUS_ERROR
                    error = str(exc)
                    logger.exception("Scan job failed: %s", exc)

                duration_ms = int((time.monotonic() - start) * 1000)
                with self._state_lock:
                    self._last_run_time = datetime.now(timezone.utc)
                    self._last_status = status
                    self._last_error = error
                    self._last_result = result
                self._record_run(source, status, duration_ms, result, error)
                logger.info("Scan finished (%s): %s", source, status,
                            extra={"event_type": "scan_end", "duration_ms": duration_ms})
        finally:
            self._guard.release()

        return {
            "job_name": JOB_NAME,
            "run_id": run_id,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }

    def _record_run(self, source: str, status: str, duration_ms: int,
                    result: dict | None, error: str | None) -> None:
        """Mirror the outcome to the ScheduledJob row. Failures here never affect the run."""
        try:
            with self._app.app_context():
                job = ScheduledJob.query.filter_by(job_name=JOB_NAME).first()
                if job is None:
                    job = ScheduledJob(
                        job_name=JOB_NAME,
                        description="Sync, scan and persist the repository hub",
                        schedule_config=self.schedule,
                    )
                    db.session.add(job)
                job.record_run(status=status, source=source, duration_ms=duration_ms,
                               result=_json_safe(result), error=error)
                db.session.commit()
        except SQLAlchemyError:
            logger.exception("Failed to update job record for %s", JOB_NAME)

    # ── Timer ────────────────────────────────────────────────────────────

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="scan-scheduler", daemon=True)
        self._thread.start()
        logger.info("Scan timer started")

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
        self._thread = None
        with self._state_lock:
            self._next_run_at = None

    def serve_forever(self, poll_seconds: float = 1.0) -> None:
        """Start the timer and block until it stops; always stops it on exit."""
        self.start()
        try:
            while self._thread is not None and self._thread.is_alive():
                self._thread.join(timeout=poll_seconds)
        finally:
            self.stop()

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            now = datetime.now()
            next_run = next_run_time(self.schedule, now)
            with self._state_lock:
                self._next_run_at = next_run
            logger.info("Next scheduled scan at %s", next_run.isoformat())
            if self._stop_event.wait(timeout=max(0.0, (next_run - now).total_seconds())):
                break
            self.trigger(source="timer")


def _json_safe(result: dict | None) -> dict | None:
    if result is None:
        return None
    return {k: v for k, v in result.items() if isinstance(v, (str, int, float, bool, dict, list, type(None)))}

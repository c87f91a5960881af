"""
TestCraft Repository Hub Scanner
Logging configuration.

One stderr handler on the root logger, two renderings:
    - Production: one JSON object per line
    - Development / testing: coloured single-line text

Every record passes through ``ScanContextFilter``, which stamps it with
the id of the scan run and the pipeline stage currently executing in
this thread, so interleaved timer and CLI runs stay distinguishable:

    with scan_run("a1b2c3d4"):
        with log_stage(logger, "sync"):
            manager.sync_all(entries)   # every log line carries run_id + stage

Log level comes from the LOG_LEVEL env variable.
"""

import contextvars
import json
import logging
import os
import sys
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone

_run_id: contextvars.ContextVar = contextvars.ContextVar("scan_run_id", default=None)
_stage: contextvars.ContextVar = contextvars.ContextVar("scan_stage", default=None)

# Attributes callers pass through ``extra={...}``; rendered when present
EXTRA_FIELDS = (
    "repository",
    "scan_session_id",
    "duration_ms",
    "event_type",
    "file_path",
    "attempt",
)


# ── Scan context ─────────────────────────────────────────────────────────


def new_run_id() -> str:
    return uuid.uuid4().hex[:8]


def current_run_id():
    return _run_id.get()


def current_stage():
    return _stage.get()


@contextmanager
def scan_run(run_id=None):
    """Bind ``run_id`` (or a fresh one) to every record logged inside the block."""
    token = _run_id.set(run_id or new_run_id())
    try:
        yield _run_id.get()
    finally:
        _run_id.reset(token)


@contextmanager
def log_stage(logger: logging.Logger, stage: str):
    """
    Log the start and end of a pipeline stage with its duration.

    A failing stage is logged at ERROR with ``event_type="stage_failed"``
    and the exception propagates unchanged.
    """
    token = _stage.set(stage)
    start = time.monotonic()
    logger.debug("Stage %s started", stage, extra={"event_type": "stage_start"})
    try:
        yield
    except Exception:
        logger.error("Stage %s failed", stage, extra={
            "event_type": "stage_failed",
            "duration_ms": (time.monotonic() - start) * 1000,
        })
        raise
    else:
        logger.info("Stage %s finished", stage, extra={
            "event_type": "stage_end",
            "duration_ms": (time.monotonic() - start) * 1000,
        })
    finally:
        _stage.reset(token)


class ScanContextFilter(logging.Filter):
    """Copies the active run id and stage onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "run_id", None) is None:
            record.run_id = _run_id.get()
        if getattr(record, "stage", None) is None:
            record.stage = _stage.get()
        return True


# ── Formatters ───────────────────────────────────────────────────────────


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "thread": record.threadName,
        }
        for key in ("run_id", "stage") + EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = round(value) if key == "duration_ms" else value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Coloured one-liner: ``12:00:01 INFO  logger [run/stage] [repo]: msg (12ms)``."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        context = "/".join(str(v) for v in (getattr(record, "run_id", None),
                                             getattr(record, "stage", None)) if v)
        parts = [f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}"]
        if context:
            parts.append(f" [{context}]")
        repo = getattr(record, "repository", None)
        if repo:
            parts.append(f" [{repo}]")
        parts.append(f": {record.getMessage()}")
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            parts.append(f" ({duration:.0f}ms)")

        line = "".join(parts)
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


# ── Setup ────────────────────────────────────────────────────────────────


def configure_logging(app):
    """
    Install the root handler for the app's environment.

    Production uses JSONFormatter; everything else uses ReadableFormatter.
    The level defaults to INFO in production and DEBUG otherwise.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.addFilter(ScanContextFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    # app factory runs once per test session and once per CLI call; replace, don't stack
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # git.cmd logs every subprocess at DEBUG
    for noisy in ("git.cmd", "git.util", "sqlalchemy.engine", "alembic.runtime.migration"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "json" if is_prod else "readable")

"""
TestCraft Repository Hub Scanner
Tests — Logging configuration.
"""

import json
import logging

import pytest

from testcraft.middleware.logging_config import (
    JSONFormatter,
    ReadableFormatter,
    ScanContextFilter,
    current_run_id,
    current_stage,
    log_stage,
    scan_run,
)
from testcraft.services.scheduler_service import ScanScheduler

logger = logging.getLogger("testcraft.tests.logging")


def _record(msg="hello", **extra):
    record = logging.LogRecord("testcraft.x", logging.INFO, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestScanContext:
    def test_filter_stamps_run_and_stage(self):
        with scan_run("run-1"):
            with log_stage(logger, "sync"):
                record = _record()
                ScanContextFilter().filter(record)
        assert record.run_id == "run-1"
        assert record.stage == "sync"
        assert current_run_id() is None
        assert current_stage() is None

    def test_fresh_run_id_when_none_given(self):
        with scan_run() as run_id:
            assert len(run_id) == 8
            assert current_run_id() == run_id

    def test_failing_stage_logs_and_reraises(self, caplog):
        caplog.set_level(logging.DEBUG, logger=logger.name)
        with pytest.raises(ValueError):
            with log_stage(logger, "persist"):
                raise ValueError("nope")
        failed = [r for r in caplog.records if getattr(r, "event_type", None) == "stage_failed"]
        assert len(failed) == 1
        assert failed[0].levelno == logging.ERROR
        assert current_stage() is None

    def test_finished_stage_reports_duration(self, caplog):
        caplog.set_level(logging.DEBUG, logger=logger.name)
        with log_stage(logger, "scan"):
            pass
        (end,) = [r for r in caplog.records if getattr(r, "event_type", None) == "stage_end"]
        assert end.duration_ms >= 0

    def test_trigger_result_carries_run_id(self, app):
        result = ScanScheduler(app, job=lambda a: {"status": "success"}).trigger()
        assert len(result["run_id"]) == 8


class TestFormatters:
    def test_json_includes_context_and_extras(self):
        record = _record("cloned", run_id="abc", stage="sync", repository="billing",
                         duration_ms=12.6)
        entry = json.loads(JSONFormatter().format(record))
        assert entry["message"] == "cloned"
        assert entry["run_id"] == "abc"
        assert entry["repository"] == "billing"
        assert entry["duration_ms"] == 13
        assert "scan_session_id" not in entry

    def test_readable_line(self):
        record = _record("cloned", run_id="abc", stage="sync", repository="billing",
                         duration_ms=5)
        line = ReadableFormatter().format(record)
        assert "[abc/sync]" in line
        assert "[billing]" in line
        assert line.endswith("cloned (5ms)")

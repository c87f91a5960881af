"""
TestCraft Repository Hub Scanner
Tests — Startup diagnostics.
"""

import logging

from testcraft.middleware.diagnostics import run_startup_diagnostics


def test_skipped_while_testing(app, caplog):
    caplog.set_level(logging.INFO, logger="testcraft.middleware.diagnostics")
    run_startup_diagnostics(app)
    assert caplog.records == []


def test_banner_and_issues(app, tmp_path, monkeypatch, caplog):
    caplog.set_level(logging.INFO, logger="testcraft.middleware.diagnostics")
    monkeypatch.setitem(app.config, "TESTING", False)
    monkeypatch.setitem(app.config, "REPOSITORY_HUB_PATH", "")
    run_startup_diagnostics(app)

    text = "\n".join(r.getMessage() for r in caplog.records)
    assert "Startup Diagnostics" in text
    assert "sqlite (ok)" in text
    assert "REPOSITORY_HUB_PATH is not set" in text


def test_clean_startup(app, hub, monkeypatch, caplog):
    caplog.set_level(logging.INFO, logger="testcraft.middleware.diagnostics")
    monkeypatch.setitem(app.config, "TESTING", False)
    monkeypatch.setitem(app.config, "REPOSITORY_HUB_PATH", str(hub))
    run_startup_diagnostics(app)

    messages = [r.getMessage() for r in caplog.records]
    assert any("All startup checks passed" in m for m in messages)

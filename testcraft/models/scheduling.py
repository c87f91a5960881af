"""
TestCraft Repository Hub Scanner
Scan job history model.

Models:
    - ScheduledJob: one row per scheduler job; cumulative run history of the
      hub scan (last outcome, last successful scan, failure streak)
"""

from datetime import datetime, timezone

from testcraft.models import db

FAILURE_STATUSES = ("failed", "error")


class ScheduledJob(db.Model):
    """
    Run history of the hub scan job.

    ``ScanScheduler`` keeps the live state in memory; this row survives
    restarts and answers "when was the hub last scanned successfully, and
    how many runs in a row have failed since".
    """

    __tablename__ = "scheduled_jobs"

    id = db.Column(db.Integer, primary_key=True)
    job_name = db.Column(db.String(100), unique=True, nullable=False,
                         comment="Scheduler job name, e.g. repository_hub_scan")
    description = db.Column(db.String(500), default="")
    schedule_config = db.Column(db.JSON, default=dict,
                                comment='Daily schedule, e.g. {"hour": "2", "minute": "0"}')

    # Last run
    last_run_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_run_source = db.Column(db.String(20), nullable=True,
                                comment="timer, cli, manual")
    last_run_status = db.Column(db.String(20), nullable=True,
                                comment="success, failed, error")
    last_run_duration_ms = db.Column(db.Integer, nullable=True)
    last_run_result = db.Column(db.JSON, nullable=True,
                                comment="Stage counters returned by the job")
    last_error = db.Column(db.Text, nullable=True)

    # History
    last_success_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_scan_session_id = db.Column(db.Integer, nullable=True,
                                     comment="scan_sessions.id written by the last successful run")
    run_count = db.Column(db.Integer, default=0)
    error_count = db.Column(db.Integer, default=0)
    consecutive_failures = db.Column(db.Integer, default=0)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def record_run(self, *, status, source=None, duration_ms=0, result=None, error=None):
        """Fold one finished run into the history. Skipped triggers are never recorded."""
        now = datetime.now(timezone.utc)
        self.last_run_at = now
        self.last_run_source = source
        self.last_run_status = status
        self.last_run_duration_ms = duration_ms
        self.last_run_result = result
        self.run_count = (self.run_count or 0) + 1

        if status in FAILURE_STATUSES:
            self.error_count = (self.error_count or 0) + 1
            self.consecutive_failures = (self.consecutive_failures or 0) + 1
            self.last_error = str(error) if error else None
        else:
            self.consecutive_failures = 0
            self.last_error = None
            self.last_success_at = now
            session_id = (result or {}).get("scan_session_id")
            if session_id is not None:
                self.last_scan_session_id = session_id

    def to_dict(self):
        return {
            "job_name": self.job_name,
            "schedule_config": self.schedule_config,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_run_source": self.last_run_source,
            "last_run_status": self.last_run_status,
            "last_run_duration_ms": self.last_run_duration_ms,
            "last_run_result": self.last_run_result,
            "last_error": self.last_error,
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
            "last_scan_session_id": self.last_scan_session_id,
            "run_count": self.run_count,
            "error_count": self.error_count,
            "consecutive_failures": self.consecutive_failures,
        }

    def __repr__(self):
        return f"<ScheduledJob {self.job_name} [{self.last_run_status or 'never_run'}]>"

"""
TestCraft Repository Hub Scanner
Scan result models.

Models:
    - ScanSession: One row per pipeline run
    - Team: Owning team, created lazily the first time a repository claims its code
    - Repository: One row per hub checkout, keyed by hub-relative name
    - TestClass: Test class per repository, keyed by (repository, class, package)
    - TestMethod: Test method per class, keyed by (class, method, signature)
    - TestHelperClass: Non-test class under a test root, keyed by (repository, class, package)
    - DailyMetric: One cumulative rollup row per calendar date

Every TestClass / TestMethod / TestHelperClass row carries
``scan_session_id``: the last session that touched it. Downstream readers
rely on that tag and on the natural keys staying stable across runs.
"""

from datetime import datetime, timezone

from testcraft.models import db


# ── Constants ────────────────────────────────────────────────────────────────

SCAN_STATUSES = {"COMPLETED", "FAILED"}


def _utcnow():
    return datetime.now(timezone.utc)


class ScanSession(db.Model):
    """One end-to-end scan run."""

    __tablename__ = "scan_sessions"

    id = db.Column(db.Integer, primary_key=True)
    scan_date = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    scan_directory = db.Column(db.String(1000), nullable=False)
    total_repositories = db.Column(db.Integer, nullable=False, default=0)
    total_test_classes = db.Column(db.Integer, nullable=False, default=0)
    total_test_methods = db.Column(db.Integer, nullable=False, default=0)
    total_annotated_methods = db.Column(db.Integer, nullable=False, default=0)
    scan_duration_ms = db.Column(db.BigInteger, nullable=True)
    scan_status = db.Column(db.String(20), nullable=False, default="COMPLETED",
                            comment="COMPLETED, FAILED")
    error_log = db.Column(db.Text, nullable=True)
    report_file_path = db.Column(db.String(1000), nullable=True,
                                 comment="Path returned by the downstream report hook")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "scan_date": self.scan_date.isoformat() if self.scan_date else None,
            "scan_directory": self.scan_directory,
            "total_repositories": self.total_repositories,
            "total_test_classes": self.total_test_classes,
            "total_test_methods": self.total_test_methods,
            "total_annotated_methods": self.total_annotated_methods,
            "scan_duration_ms": self.scan_duration_ms,
            "scan_status": self.scan_status,
            "error_log": self.error_log,
            "report_file_path": self.report_file_path,
        }

    def __repr__(self):
        return f"<ScanSession {self.id} {self.scan_status}>"


class Team(db.Model):
    """Team owning one or more repositories."""

    __tablename__ = "teams"

    id = db.Column(db.Integer, primary_key=True)
    team_name = db.Column(db.String(255), nullable=False)
    team_code = db.Column(db.String(100), nullable=False, unique=True)
    department = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def __repr__(self):
        return f"<Team {self.team_code}>"


class Repository(db.Model):
    """
    A repository checkout in the hub.

    ``repository_name`` is the hub-relative path of the checkout (the folder
    name for top-level checkouts) and is the only natural key.
    """

    __tablename__ = "repositories"
    __table_args__ = (
        db.UniqueConstraint("repository_name", name="uq_repositories_name"),
    )

    id = db.Column(db.Integer, primary_key=True)
    repository_name = db.Column(db.String(255), nullable=False)
    repository_path = db.Column(db.String(1000), nullable=False)
    git_url = db.Column(db.String(1000), nullable=True)
    team_id = db.Column(db.Integer, db.ForeignKey("teams.id", ondelete="SET NULL"),
                        nullable=True, index=True)
    total_test_classes = db.Column(db.Integer, nullable=False, default=0)
    total_test_methods = db.Column(db.Integer, nullable=False, default=0)
    total_annotated_methods = db.Column(db.Integer, nullable=False, default=0)
    annotation_coverage_rate = db.Column(db.Float, nullable=False, default=0.0)
    first_scan_date = db.Column(db.DateTime(timezone=True), default=_utcnow)
    last_scan_date = db.Column(db.DateTime(timezone=True), default=_utcnow)

    team = db.relationship("Team", lazy="joined")

    def __repr__(self):
        return f"<Repository {self.repository_name}>"


class TestClass(db.Model):
    """A test class inside a repository."""

    __test__ = False
    __tablename__ = "test_classes"
    __table_args__ = (
        db.UniqueConstraint("repository_id", "class_name", "package_name",
                            name="uq_test_classes_repo_class_pkg"),
    )

    id = db.Column(db.Integer, primary_key=True)
    repository_id = db.Column(db.Integer, db.ForeignKey("repositories.id", ondelete="CASCADE"),
                              nullable=False, index=True)
    class_name = db.Column(db.String(255), nullable=False)
    package_name = db.Column(db.String(500), nullable=False, default="")
    file_path = db.Column(db.String(1000), nullable=False)
    total_test_methods = db.Column(db.Integer, nullable=False, default=0)
    annotated_test_methods = db.Column(db.Integer, nullable=False, default=0)
    coverage_rate = db.Column(db.Float, nullable=False, default=0.0)
    scan_session_id = db.Column(db.Integer, db.ForeignKey("scan_sessions.id"),
                                nullable=False, index=True,
                                comment="Last scan session that touched this row")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def __repr__(self):
        return f"<TestClass {self.package_name}.{self.class_name}>"


class TestMethod(db.Model):
    """A test method and the annotation metadata found on it."""

    __test__ = False
    __tablename__ = "test_methods"
    __table_args__ = (
        db.UniqueConstraint("test_class_id", "method_name", "method_signature",
                            name="uq_test_methods_class_method_sig"),
    )

    id = db.Column(db.Integer, primary_key=True)
    test_class_id = db.Column(db.Integer, db.ForeignKey("test_classes.id", ondelete="CASCADE"),
                              nullable=False, index=True)
    method_name = db.Column(db.String(255), nullable=False)
    method_signature = db.Column(db.String(1000), nullable=False, default="")
    line_number = db.Column(db.Integer, nullable=True)
    has_annotation = db.Column(db.Boolean, nullable=False, default=False)
    annotation_data = db.Column(db.Text, nullable=True,
                                comment="Full annotation as JSON")

    annotation_title = db.Column(db.String(500), nullable=True)
    annotation_author = db.Column(db.String(255), nullable=True)
    annotation_status = db.Column(db.String(100), nullable=True)
    annotation_target_class = db.Column(db.String(500), nullable=True)
    annotation_target_method = db.Column(db.String(500), nullable=True)
    annotation_description = db.Column(db.Text, nullable=True)
    annotation_tags = db.Column(db.Text, nullable=True, comment="';'-delimited")
    annotation_test_points = db.Column(db.Text, nullable=True, comment="';'-delimited")
    annotation_related_requirements = db.Column(db.Text, nullable=True, comment="';'-delimited")
    annotation_related_defects = db.Column(db.Text, nullable=True, comment="';'-delimited")
    annotation_related_testcases = db.Column(db.Text, nullable=True, comment="';'-delimited")
    annotation_last_update_time = db.Column(db.String(100), nullable=True)
    annotation_last_update_author = db.Column(db.String(255), nullable=True)
    test_case_ids = db.Column(db.Text, nullable=True,
                              comment="';'-delimited external test case ids")

    scan_session_id = db.Column(db.Integer, db.ForeignKey("scan_sessions.id"),
                                nullable=False, index=True,
                                comment="Last scan session that touched this row")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def __repr__(self):
        return f"<TestMethod {self.method_name}{self.method_signature}>"


class TestHelperClass(db.Model):
    """A non-test top-level class found under a repository's test roots."""

    __test__ = False
    __tablename__ = "test_helper_classes"
    __table_args__ = (
        db.UniqueConstraint("repository_id", "class_name", "package_name",
                            name="uq_test_helper_classes_repo_class_pkg"),
    )

    id = db.Column(db.Integer, primary_key=True)
    repository_id = db.Column(db.Integer, db.ForeignKey("repositories.id", ondelete="CASCADE"),
                              nullable=False, index=True)
    class_name = db.Column(db.String(255), nullable=False)
    package_name = db.Column(db.String(500), nullable=False, default="")
    file_path = db.Column(db.String(1000), nullable=False)
    class_line_number = db.Column(db.Integer, nullable=True)
    loc = db.Column(db.Integer, nullable=False, default=0,
                    comment="Lines spanned by the class declaration")
    scan_session_id = db.Column(db.Integer, db.ForeignKey("scan_sessions.id"),
                                nullable=False, index=True,
                                comment="Last scan session that touched this row")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def __repr__(self):
        return f"<TestHelperClass {self.package_name}.{self.class_name}>"


class DailyMetric(db.Model):
    """Latest cumulative totals for a calendar date."""

    __tablename__ = "daily_metrics"

    id = db.Column(db.Integer, primary_key=True)
    metric_date = db.Column(db.Date, nullable=False, unique=True)
    total_repositories = db.Column(db.Integer, nullable=False, default=0)
    total_test_classes = db.Column(db.Integer, nullable=False, default=0)
    total_test_methods = db.Column(db.Integer, nullable=False, default=0)
    total_annotated_methods = db.Column(db.Integer, nullable=False, default=0)
    overall_coverage_rate = db.Column(db.Float, nullable=False, default=0.0)
    new_test_methods = db.Column(db.Integer, nullable=False, default=0)
    new_annotated_methods = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def __repr__(self):
        return f"<DailyMetric {self.metric_date} methods={self.total_test_methods}>"

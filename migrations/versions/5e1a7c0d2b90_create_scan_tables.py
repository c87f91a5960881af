"""create_scan_tables

Scan sessions, teams, repositories, test classes, test methods, test
helper classes, daily metrics and the scheduled job table.

Revision ID: 5e1a7c0d2b90
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5e1a7c0d2b90"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "scan_sessions" not in existing_tables:
        op.create_table(
            "scan_sessions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("scan_date", sa.DateTime(timezone=True), nullable=False),
            sa.Column("scan_directory", sa.String(length=1000), nullable=False),
            sa.Column("total_repositories", sa.Integer(), nullable=False),
            sa.Column("total_test_classes", sa.Integer(), nullable=False),
            sa.Column("total_test_methods", sa.Integer(), nullable=False),
            sa.Column("total_annotated_methods", sa.Integer(), nullable=False),
            sa.Column("scan_duration_ms", sa.BigInteger(), nullable=True),
            sa.Column("scan_status", sa.String(length=20), nullable=False,
                      comment="COMPLETED, FAILED"),
            sa.Column("error_log", sa.Text(), nullable=True),
            sa.Column("report_file_path", sa.String(length=1000), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )

    if "teams" not in existing_tables:
        op.create_table(
            "teams",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("team_name", sa.String(length=255), nullable=False),
            sa.Column("team_code", sa.String(length=100), nullable=False),
            sa.Column("department", sa.String(length=255), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("team_code"),
        )

    if "repositories" not in existing_tables:
        op.create_table(
            "repositories",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("repository_name", sa.String(length=255), nullable=False),
            sa.Column("repository_path", sa.String(length=1000), nullable=False),
            sa.Column("git_url", sa.String(length=1000), nullable=True),
            sa.Column("team_id", sa.Integer(), nullable=True),
            sa.Column("total_test_classes", sa.Integer(), nullable=False),
            sa.Column("total_test_methods", sa.Integer(), nullable=False),
            sa.Column("total_annotated_methods", sa.Integer(), nullable=False),
            sa.Column("annotation_coverage_rate", sa.Float(), nullable=False),
            sa.Column("first_scan_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("last_scan_date", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("repository_name", name="uq_repositories_name"),
        )
        op.create_index("ix_repositories_team_id", "repositories", ["team_id"])

    if "test_classes" not in existing_tables:
        op.create_table(
            "test_classes",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("repository_id", sa.Integer(), nullable=False),
            sa.Column("class_name", sa.String(length=255), nullable=False),
            sa.Column("package_name", sa.String(length=500), nullable=False),
            sa.Column("file_path", sa.String(length=1000), nullable=False),
            sa.Column("total_test_methods", sa.Integer(), nullable=False),
            sa.Column("annotated_test_methods", sa.Integer(), nullable=False),
            sa.Column("coverage_rate", sa.Float(), nullable=False),
            sa.Column("scan_session_id", sa.Integer(), nullable=False,
                      comment="Last scan session that touched this row"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["repository_id"], ["repositories.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["scan_session_id"], ["scan_sessions.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("repository_id", "class_name", "package_name",
                                name="uq_test_classes_repo_class_pkg"),
        )
        op.create_index("ix_test_classes_repository_id", "test_classes", ["repository_id"])
        op.create_index("ix_test_classes_scan_session_id", "test_classes", ["scan_session_id"])

    if "test_methods" not in existing_tables:
        op.create_table(
            "test_methods",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("test_class_id", sa.Integer(), nullable=False),
            sa.Column("method_name", sa.String(length=255), nullable=False),
            sa.Column("method_signature", sa.String(length=1000), nullable=False),
            sa.Column("line_number", sa.Integer(), nullable=True),
            sa.Column("has_annotation", sa.Boolean(), nullable=False),
            sa.Column("annotation_data", sa.Text(), nullable=True, comment="Full annotation as JSON"),
            sa.Column("annotation_title", sa.String(length=500), nullable=True),
            sa.Column("annotation_author", sa.String(length=255), nullable=True),
            sa.Column("annotation_status", sa.String(length=100), nullable=True),
            sa.Column("annotation_target_class", sa.String(length=500), nullable=True),
            sa.Column("annotation_target_method", sa.String(length=500), nullable=True),
            sa.Column("annotation_description", sa.Text(), nullable=True),
            sa.Column("annotation_tags", sa.Text(), nullable=True),
            sa.Column("annotation_test_points", sa.Text(), nullable=True),
            sa.Column("annotation_related_requirements", sa.Text(), nullable=True),
            sa.Column("annotation_related_defects", sa.Text(), nullable=True),
            sa.Column("annotation_related_testcases", sa.Text(), nullable=True),
            sa.Column("annotation_last_update_time", sa.String(length=100), nullable=True),
            sa.Column("annotation_last_update_author", sa.String(length=255), nullable=True),
            sa.Column("test_case_ids", sa.Text(), nullable=True),
            sa.Column("scan_session_id", sa.Integer(), nullable=False,
                      comment="Last scan session that touched this row"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["test_class_id"], ["test_classes.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["scan_session_id"], ["scan_sessions.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("test_class_id", "method_name", "method_signature",
                                name="uq_test_methods_class_method_sig"),
        )
        op.create_index("ix_test_methods_test_class_id", "test_methods", ["test_class_id"])
        op.create_index("ix_test_methods_scan_session_id", "test_methods", ["scan_session_id"])

    if "test_helper_classes" not in existing_tables:
        op.create_table(
            "test_helper_classes",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("repository_id", sa.Integer(), nullable=False),
            sa.Column("class_name", sa.String(length=255), nullable=False),
            sa.Column("package_name", sa.String(length=500), nullable=False),
            sa.Column("file_path", sa.String(length=1000), nullable=False),
            sa.Column("class_line_number", sa.Integer(), nullable=True),
            sa.Column("loc", sa.Integer(), nullable=False,
                      comment="Lines spanned by the class declaration"),
            sa.Column("scan_session_id", sa.Integer(), nullable=False,
                      comment="Last scan session that touched this row"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["repository_id"], ["repositories.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["scan_session_id"], ["scan_sessions.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("repository_id", "class_name", "package_name",
                                name="uq_test_helper_classes_repo_class_pkg"),
        )
        op.create_index("ix_test_helper_classes_repository_id", "test_helper_classes", ["repository_id"])
        op.create_index("ix_test_helper_classes_scan_session_id", "test_helper_classes",
                        ["scan_session_id"])

    if "daily_metrics" not in existing_tables:
        op.create_table(
            "daily_metrics",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("metric_date", sa.Date(), nullable=False),
            sa.Column("total_repositories", sa.Integer(), nullable=False),
            sa.Column("total_test_classes", sa.Integer(), nullable=False),
            sa.Column("total_test_methods", sa.Integer(), nullable=False),
            sa.Column("total_annotated_methods", sa.Integer(), nullable=False),
            sa.Column("overall_coverage_rate", sa.Float(), nullable=False),
            sa.Column("new_test_methods", sa.Integer(), nullable=False),
            sa.Column("new_annotated_methods", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("metric_date"),
        )

    if "scheduled_jobs" not in existing_tables:
        op.create_table(
            "scheduled_jobs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("job_name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.String(length=500), nullable=True),
            sa.Column("schedule_config", sa.JSON(), nullable=True),
            sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("last_run_source", sa.String(length=20), nullable=True),
            sa.Column("last_run_status", sa.String(length=20), nullable=True),
            sa.Column("last_run_duration_ms", sa.Integer(), nullable=True),
            sa.Column("last_run_result", sa.JSON(), nullable=True),
            sa.Column("last_error", sa.Text(), nullable=True),
            sa.Column("last_success_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("last_scan_session_id", sa.Integer(), nullable=True),
            sa.Column("run_count", sa.Integer(), nullable=True),
            sa.Column("error_count", sa.Integer(), nullable=True),
            sa.Column("consecutive_failures", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("job_name"),
        )


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    for table in ("scheduled_jobs", "daily_metrics", "test_helper_classes", "test_methods",
                  "test_classes", "repositories", "teams", "scan_sessions"):
        if table in existing_tables:
            op.drop_table(table)

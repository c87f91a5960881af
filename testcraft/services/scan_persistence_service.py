"""
TestCraft Repository Hub Scanner
Scan persistence service.

Writes one ScanSummary as one transaction:

    1. INSERT scan_sessions                     (always a fresh row)
    2. per repository:
         resolve-or-create teams by code
         UPSERT repositories                    key: repository_name
         UPSERT test_classes   (batched)        key: repository_id, class_name, package_name
         re-read class ids by natural key
         UPSERT test_methods   (batched)        key: test_class_id, method_name, method_signature
         UPSERT test_helper_classes (batched)   key: repository_id, class_name, package_name
    3. UPSERT daily_metrics for the scan date   key: metric_date

Any failure rolls everything back; a half-written session is never
visible. Array-valued annotation fields are stored twice: as a
``;``-joined string per column and inside the full JSON document in
``annotation_data``. ``[]`` is stored as ``""`` and ``None`` as NULL.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from testcraft.core.exceptions import ConnectivityError, PersistenceError
from testcraft.models import db
from testcraft.models.records import (
    RepositoryRecord,
    ScanSummary,
    TestHelperClassRecord,
    TestMethodAnnotation,
    TestMethodRecord,
    coverage_rate,
)
from testcraft.models.scanning import (
    DailyMetric,
    Repository,
    ScanSession,
    Team,
    TestClass,
    TestHelperClass,
    TestMethod,
)
from testcraft.services.batch_helper import (
    DEFAULT_BATCH_SIZE,
    BatchResult,
    UpsertStrategy,
    detect_vendor,
    execute_batch_with_fallback,
)

logger = logging.getLogger(__name__)

DELIMITER = ";"
DELIMITER_REPLACEMENT = ","

CLASS_KEY = ("repository_id", "class_name", "package_name")
CLASS_UPDATE = ("file_path", "total_test_methods", "annotated_test_methods",
                "coverage_rate", "scan_session_id", "updated_at")

METHOD_KEY = ("test_class_id", "method_name", "method_signature")
METHOD_UPDATE = (
    "line_number", "has_annotation", "annotation_data",
    "annotation_title", "annotation_author", "annotation_status",
    "annotation_target_class", "annotation_target_method", "annotation_description",
    "annotation_tags", "annotation_test_points", "annotation_related_requirements",
    "annotation_related_defects", "annotation_related_testcases",
    "annotation_last_update_time", "annotation_last_update_author",
    "test_case_ids", "scan_session_id", "updated_at",
)

HELPER_KEY = ("repository_id", "class_name", "package_name")
HELPER_UPDATE = ("file_path", "class_line_number", "loc", "scan_session_id", "updated_at")

REPOSITORY_UPDATE = ("repository_path", "git_url", "total_test_classes", "total_test_methods",
                     "total_annotated_methods", "annotation_coverage_rate", "last_scan_date")

DAILY_UPDATE = ("total_repositories", "total_test_classes", "total_test_methods",
                "total_annotated_methods", "overall_coverage_rate",
                "new_test_methods", "new_annotated_methods")


def join_values(values: list[str] | None) -> str | None:
    """``None`` → NULL, ``[]`` → ``""``, otherwise ``;``-joined with ``;`` removed from tokens."""
    if values is None:
        return None
    return DELIMITER.join(str(v).replace(DELIMITER, DELIMITER_REPLACEMENT) for v in values)


def split_values(value: str | None) -> list[str] | None:
    """Inverse of ``join_values`` for readers of the delimited columns."""
    if value is None:
        return None
    if value == "":
        return []
    return value.split(DELIMITER)


def annotation_columns(annotation: TestMethodAnnotation | None) -> dict:
    """Column values for one method's annotation.

    ``annotation_data`` is written whenever an annotation is present; the
    individual ``annotation_*`` columns and ``has_annotation`` only when it
    carries a title.
    """
    cols = {
        "has_annotation": False,
        "annotation_data": None,
        "annotation_title": None,
        "annotation_author": None,
        "annotation_status": None,
        "annotation_target_class": None,
        "annotation_target_method": None,
        "annotation_description": None,
        "annotation_tags": None,
        "annotation_test_points": None,
        "annotation_related_requirements": None,
        "annotation_related_defects": None,
        "annotation_related_testcases": None,
        "annotation_last_update_time": None,
        "annotation_last_update_author": None,
    }
    if annotation is None:
        return cols
    cols["annotation_data"] = json.dumps(annotation.to_dict(), ensure_ascii=False)
    if not annotation.is_annotated:
        return cols
    cols.update({
        "has_annotation": True,
        "annotation_title": annotation.title,
        "annotation_author": annotation.author,
        "annotation_status": annotation.status,
        "annotation_target_class": annotation.target_class,
        "annotation_target_method": annotation.target_method,
        "annotation_description": annotation.description,
        "annotation_tags": join_values(annotation.tags),
        "annotation_test_points": join_values(annotation.test_points),
        "annotation_related_requirements": join_values(annotation.related_requirements),
        "annotation_related_defects": join_values(annotation.related_defects),
        "annotation_related_testcases": join_values(annotation.related_testcases),
        "annotation_last_update_time": annotation.last_update_time,
        "annotation_last_update_author": annotation.last_update_author,
    })
    return cols


@dataclass
class PersistResult:
    """What one ``persist`` call wrote."""

    scan_session_id: int | None = None
    repositories: int = 0
    classes: BatchResult = field(default_factory=BatchResult)
    methods: BatchResult = field(default_factory=BatchResult)
    helpers: BatchResult = field(default_factory=BatchResult)
    teams_created: int = 0

    def to_dict(self) -> dict:
        return {
            "scan_session_id": self.scan_session_id,
            "repositories": self.repositories,
            "classes_written": self.classes.succeeded,
            "classes_skipped": len(self.classes.skipped),
            "methods_written": self.methods.succeeded,
            "methods_skipped": len(self.methods.skipped),
            "helpers_written": self.helpers.succeeded,
            "helpers_skipped": len(self.helpers.skipped),
            "teams_created": self.teams_created,
        }


class ScanPersistenceService:
    """Persist ScanSummaries through one SQLAlchemy session.

    The vendor (and with it the upsert dialect) is resolved once when
    the service is created.
    """

    def __init__(self, session=None, batch_size: int = DEFAULT_BATCH_SIZE):
        self.session = session if session is not None else db.session
        self.batch_size = batch_size
        self.vendor = detect_vendor(self.session.get_bind())
        self.upserts = UpsertStrategy(self.vendor)
        self.last_result: PersistResult | None = None

    # ── Public API ───────────────────────────────────────────────────────

    def persist(self, summary: ScanSummary, duration_ms: int | None = None) -> int:
        """
        Write ``summary`` atomically and return the new scan session id.

        Raises:
            ConnectivityError: the database connection was lost.
            PersistenceError: any other database failure. Nothing was written.
        """
        start = time.monotonic()
        result = PersistResult()
        try:
            scan_session = ScanSession(
                scan_date=summary.scan_date,
                scan_directory=summary.scan_directory,
                total_repositories=summary.total_repositories,
                total_test_classes=summary.total_test_classes,
                total_test_methods=summary.total_test_methods,
                total_annotated_methods=summary.total_annotated_methods,
                scan_duration_ms=duration_ms,
                scan_status="COMPLETED",
            )
            self.session.add(scan_session)
            self.session.flush()
            result.scan_session_id = scan_session.id

            now = datetime.now(timezone.utc)
            for repo in summary.repositories:
                self._persist_repository(repo, scan_session.id, now, result)
                result.repositories += 1

            self._upsert_daily_metric(summary, summary.scan_date.date())
            self.session.commit()
        except DBAPIError as exc:
            self.session.rollback()
            if exc.connection_invalidated:
                raise ConnectivityError(f"Database connection lost while persisting scan: {exc.orig}") from exc
            raise PersistenceError(f"Persisting scan failed: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceError(f"Persisting scan failed: {exc}") from exc
        except Exception:
            self.session.rollback()
            raise

        self.last_result = result
        logger.info(
            "Persisted scan session %s: %d repositories, %d classes, %d methods (%d skipped)",
            result.scan_session_id, result.repositories, result.classes.succeeded,
            result.methods.succeeded, len(result.classes.skipped) + len(result.methods.skipped),
            extra={"scan_session_id": result.scan_session_id,
                   "duration_ms": int((time.monotonic() - start) * 1000)},
        )
        return result.scan_session_id

    def record_failed_session(self, scan_directory: str, error: str, duration_ms: int | None = None) -> int | None:
        """Best-effort FAILED session row, written in its own transaction."""
        try:
            row = ScanSession(
                scan_directory=str(scan_directory),
                scan_duration_ms=duration_ms,
                scan_status="FAILED",
                error_log=error,
            )
            self.session.add(row)
            self.session.commit()
            return row.id
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception("Could not record failed scan session")
            return None

    def attach_report(self, scan_session_id: int, report_path: str) -> None:
        row = self.session.get(ScanSession, scan_session_id)
        if row is None:
            return
        row.report_file_path = report_path
        self.session.commit()

    # ── Steps ────────────────────────────────────────────────────────────

    def _persist_repository(self, repo: RepositoryRecord, session_id: int, now: datetime,
                            result: PersistResult) -> None:
        team_id = self._resolve_team(repo, result)
        repo_row = {
            "repository_name": repo.name,
            "repository_path": repo.path,
            "git_url": repo.git_url,
            "team_id": team_id,
            "total_test_classes": repo.total_test_classes,
            "total_test_methods": repo.total_test_methods,
            "total_annotated_methods": repo.annotated_test_methods,
            "annotation_coverage_rate": repo.coverage_rate,
            "first_scan_date": now,
            "last_scan_date": now,
        }
        update_cols = REPOSITORY_UPDATE + (("team_id",) if team_id is not None else ())
        self.upserts.execute(self.session, Repository.__table__, [repo_row],
                             ["repository_name"], update_cols)
        repository_id = self.session.execute(
            select(Repository.id).where(Repository.repository_name == repo.name)
        ).scalar_one()

        # classes
        class_rows = _dedupe([
            {
                "repository_id": repository_id,
                "class_name": cls.class_name,
                "package_name": cls.package_name or "",
                "file_path": cls.file_path,
                "total_test_methods": cls.total_test_methods,
                "annotated_test_methods": cls.annotated_test_methods,
                "coverage_rate": cls.coverage_rate,
                "scan_session_id": session_id,
                "updated_at": now,
            }
            for cls in repo.classes
        ], CLASS_KEY, f"{repo.name} test_classes")
        result.classes.merge(execute_batch_with_fallback(
            self.session, class_rows,
            lambda chunk: self.upserts.execute(self.session, TestClass.__table__, chunk,
                                               CLASS_KEY, CLASS_UPDATE),
            batch_size=self.batch_size, vendor=self.vendor, label="test_classes",
        ))

        # batched inserts do not return per-row keys; look them up by natural key
        class_ids = {
            (row.class_name, row.package_name): row.id
            for row in self.session.execute(
                select(TestClass.id, TestClass.class_name, TestClass.package_name)
                .where(TestClass.repository_id == repository_id)
            )
        }

        method_rows = []
        for cls in repo.classes:
            class_id = class_ids.get((cls.class_name, cls.package_name or ""))
            if class_id is None:
                logger.warning("No row for class %s; skipping its methods", cls.qualified_name,
                               extra={"repository": repo.name})
                continue
            for method in cls.methods:
                method_rows.append(self._method_row(method, class_id, session_id, now))
        method_rows = _dedupe(method_rows, METHOD_KEY, f"{repo.name} test_methods")
        result.methods.merge(execute_batch_with_fallback(
            self.session, method_rows,
            lambda chunk: self.upserts.execute(self.session, TestMethod.__table__, chunk,
                                               METHOD_KEY, METHOD_UPDATE),
            batch_size=self.batch_size, vendor=self.vendor, label="test_methods",
        ))

        helper_rows = _dedupe([
            self._helper_row(helper, repository_id, session_id, now) for helper in repo.helper_classes
        ], HELPER_KEY, f"{repo.name} test_helper_classes")
        result.helpers.merge(execute_batch_with_fallback(
            self.session, helper_rows,
            lambda chunk: self.upserts.execute(self.session, TestHelperClass.__table__, chunk,
                                               HELPER_KEY, HELPER_UPDATE),
            batch_size=self.batch_size, vendor=self.vendor, label="test_helper_classes",
        ))

    def _resolve_team(self, repo: RepositoryRecord, result: PersistResult) -> int | None:
        if not repo.team_code:
            return None
        team = self.session.query(Team).filter_by(team_code=repo.team_code).first()
        if team is None:
            team = Team(team_name=repo.team_name or repo.team_code, team_code=repo.team_code)
            self.session.add(team)
            self.session.flush()
            result.teams_created += 1
            logger.info("Created team %s", repo.team_code)
        return team.id

    @staticmethod
    def _method_row(method: TestMethodRecord, class_id: int, session_id: int, now: datetime) -> dict:
        row = {
            "test_class_id": class_id,
            "method_name": method.method_name,
            "method_signature": method.method_signature or "",
            "line_number": method.line_number,
            "test_case_ids": join_values(method.test_case_ids),
            "scan_session_id": session_id,
            "updated_at": now,
        }
        row.update(annotation_columns(method.annotation))
        return row

    @staticmethod
    def _helper_row(helper: TestHelperClassRecord, repository_id: int, session_id: int,
                    now: datetime) -> dict:
        return {
            "repository_id": repository_id,
            "class_name": helper.class_name,
            "package_name": helper.package_name or "",
            "file_path": helper.file_path,
            "class_line_number": helper.line_number,
            "loc": helper.loc,
            "scan_session_id": session_id,
            "updated_at": now,
        }

    def _upsert_daily_metric(self, summary: ScanSummary, metric_date: date) -> None:
        previous = (
            self.session.query(DailyMetric)
            .filter(DailyMetric.metric_date < metric_date)
            .order_by(DailyMetric.metric_date.desc())
            .first()
        )
        prev_methods = previous.total_test_methods if previous else 0
        prev_annotated = previous.total_annotated_methods if previous else 0
        row = {
            "metric_date": metric_date,
            "total_repositories": summary.total_repositories,
            "total_test_classes": summary.total_test_classes,
            "total_test_methods": summary.total_test_methods,
            "total_annotated_methods": summary.total_annotated_methods,
            "overall_coverage_rate": coverage_rate(summary.total_annotated_methods,
                                                   summary.total_test_methods),
            "new_test_methods": max(0, summary.total_test_methods - prev_methods),
            "new_annotated_methods": max(0, summary.total_annotated_methods - prev_annotated),
        }
        self.upserts.execute(self.session, DailyMetric.__table__, [row], ["metric_date"], DAILY_UPDATE)


def _dedupe(rows: list[dict], key: tuple[str, ...], label: str) -> list[dict]:
    """Keep the first row per natural key; a statement may not touch one key twice."""
    seen = set()
    out = []
    for row in rows:
        k = tuple(row[c] for c in key)
        if k in seen:
            logger.warning("Duplicate %s key %s; keeping first occurrence", label, k)
            continue
        seen.add(k)
        out.append(row)
    return out

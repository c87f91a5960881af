"""
TestCraft Repository Hub Scanner
Source Scanner.

Walks the hub and builds the aggregate model:

    1. Depth-first walk; a directory holding ``.git`` is a repository root
       and is not descended into.
    2. Include/exclude globs filter repository roots by hub-relative path.
    3. Test roots are found by convention (``src/test/java``, ``tests``, ...)
       plus any directory named ``test`` under ``src/``.
    4. Every ``.java`` file under a test root is parsed once.
    5. Methods carrying a test marker (``@Test`` and friends) become
       TestMethodRecords; top-level classes without any are recorded as
       helper classes.

Failures are isolated per file: a file that does not parse is logged,
counted, and skipped.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from testcraft.core.exceptions import HubIOError, ParseError
from testcraft.models.records import (
    RepositoryRecord,
    ScanSummary,
    TestClassRecord,
    TestHelperClassRecord,
    TestMethodRecord,
)
from testcraft.services.extractors import (
    CASE_INFO_ANNOTATION,
    ExtractorRegistry,
    parse_case_info,
)
from testcraft.services.git_hub_manager import GitHubManager
from testcraft.services.glob_matcher import GlobMatcher
from testcraft.services.java_parser import JavaClass, JavaSourceParser
from testcraft.services.repository_list import RepositoryEntry

logger = logging.getLogger(__name__)

VCS_MARKER = ".git"
SOURCE_SUFFIX = ".java"

# Checked in this order; every existing one is scanned
TEST_ROOT_CONVENTIONS = (
    "src/test/java",
    "src/test",
    "test",
    "tests",
    "test/java",
    "tests/java",
)
MAIN_SOURCE_ROOT = "src"
TEST_DIR_NAME = "test"

TEST_MARKERS = frozenset({
    "Test",
    "org.junit.Test",
    "org.junit.jupiter.api.Test",
    "junit.framework.TestCase",
})


@dataclass
class ScanStats:
    """Counters for one hub walk."""

    repositories_found: int = 0
    repositories_filtered: int = 0
    repositories_without_tests: int = 0
    files_scanned: int = 0
    failed_files: list[str] = field(default_factory=list)
    duration_ms: int = 0

    def to_dict(self) -> dict:
        return {
            "repositories_found": self.repositories_found,
            "repositories_filtered": self.repositories_filtered,
            "repositories_without_tests": self.repositories_without_tests,
            "files_scanned": self.files_scanned,
            "failed_files": len(self.failed_files),
            "duration_ms": self.duration_ms,
        }


@dataclass
class FileScan:
    """Records produced by one source file, in declaration order."""

    test_classes: list[TestClassRecord] = field(default_factory=list)
    helper_classes: list[TestHelperClassRecord] = field(default_factory=list)


class SourceScanner:
    """Build a ScanSummary from the checkouts in a hub directory."""

    def __init__(
        self,
        registry: ExtractorRegistry | None = None,
        matcher: GlobMatcher | None = None,
        repository_entries: Mapping[str, RepositoryEntry] | None = None,
        parser: JavaSourceParser | None = None,
    ):
        self.registry = registry or ExtractorRegistry.with_defaults()
        self.matcher = matcher or GlobMatcher()
        self.repository_entries = dict(repository_entries or {})
        self.parser = parser or JavaSourceParser()
        self.stats = ScanStats()

    # ── Hub level ────────────────────────────────────────────────────────

    def scan_hub(self, hub_path: str | os.PathLike) -> ScanSummary:
        """
        Scan every repository under ``hub_path``.

        Raises:
            HubIOError: the hub directory is missing or cannot be listed.
        """
        hub = Path(hub_path)
        if not hub.is_dir():
            raise HubIOError("Hub directory does not exist", path=str(hub))

        self.stats = ScanStats()
        start = time.monotonic()
        records = []
        for repo_root in self.find_repositories(hub):
            self.stats.repositories_found += 1
            rel = repo_root.relative_to(hub).as_posix()
            if not self.matcher.matches(rel):
                self.stats.repositories_filtered += 1
                logger.debug("Repository %s filtered out", rel)
                continue
            record = self.scan_repository(repo_root, name=rel)
            if record.total_test_classes == 0:
                self.stats.repositories_without_tests += 1
                logger.info("Repository %s has no test classes", rel, extra={"repository": rel})
                continue
            records.append(record)

        summary = ScanSummary.build(str(hub), records)
        self.stats.duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Hub scan finished: %d repositories, %d classes, %d methods (%d annotated), %d failed files",
            summary.total_repositories, summary.total_test_classes, summary.total_test_methods,
            summary.total_annotated_methods, len(self.stats.failed_files),
            extra={"duration_ms": self.stats.duration_ms},
        )
        return summary

    def find_repositories(self, hub: Path) -> list[Path]:
        """Depth-first, name-ordered list of repository roots. Nested repos are opaque."""
        found = []
        stack = [hub]
        while stack:
            current = stack.pop()
            if current != hub and (current / VCS_MARKER).exists():
                found.append(current)
                continue
            try:
                children = sorted(
                    (e for e in os.scandir(current)
                     if e.is_dir(follow_symlinks=False) and not e.name.startswith(".")),
                    key=lambda e: e.name,
                )
            except OSError as exc:
                if current == hub:
                    raise HubIOError(f"Cannot list hub directory: {exc}", path=str(hub)) from exc
                logger.warning("Cannot list %s: %s", current, exc)
                continue
            stack.extend(Path(e.path) for e in reversed(children))
        return found

    # ── Repository level ─────────────────────────────────────────────────

    def scan_repository(self, repo_root: str | os.PathLike, name: str | None = None) -> RepositoryRecord:
        repo_root = Path(repo_root)
        name = name or repo_root.name
        entry = self.repository_entries.get(name) or self.repository_entries.get(repo_root.name)
        record = RepositoryRecord(
            name=name,
            path=str(repo_root),
            git_url=GitHubManager.read_git_url(repo_root),
            team_name=entry.team_name if entry else None,
            team_code=entry.team_code if entry else None,
        )

        seen_files: set[Path] = set()
        for test_root in self.find_test_roots(repo_root):
            for source in sorted(test_root.rglob(f"*{SOURCE_SUFFIX}")):
                resolved = source.resolve()
                if resolved in seen_files or not source.is_file():
                    continue
                seen_files.add(resolved)
                self.stats.files_scanned += 1
                try:
                    found = self.scan_file(source, repo_root)
                    for test_class in found.test_classes:
                        record.add_class(test_class)
                    for helper in found.helper_classes:
                        record.add_helper_class(helper)
                except ParseError as exc:
                    self.stats.failed_files.append(str(source))
                    logger.warning("Skipping %s: %s", source, exc,
                                   extra={"repository": name, "file_path": str(source)})
                except Exception:
                    self.stats.failed_files.append(str(source))
                    logger.exception("Failed to extract tests from %s", source,
                                     extra={"repository": name, "file_path": str(source)})

        logger.debug("Scanned %s: %d classes, %d methods", name,
                     record.total_test_classes, record.total_test_methods,
                     extra={"repository": name})
        return record

    def find_test_roots(self, repo_root: Path) -> list[Path]:
        roots: list[Path] = []
        seen: set[Path] = set()

        def _add(path: Path):
            resolved = path.resolve()
            if path.is_dir() and resolved not in seen:
                seen.add(resolved)
                roots.append(path)

        for rel in TEST_ROOT_CONVENTIONS:
            _add(repo_root / rel)

        main_root = repo_root / MAIN_SOURCE_ROOT
        if main_root.is_dir():
            for dirpath, dirnames, _files in os.walk(main_root):
                dirnames.sort()
                if Path(dirpath).name == TEST_DIR_NAME:
                    _add(Path(dirpath))
        return roots

    # ── File level ───────────────────────────────────────────────────────

    def scan_file(self, path: Path, repo_root: Path | None = None) -> FileScan:
        """
        Parse one source file into test class and helper class records.

        A top-level class with at least one test method is a test class;
        any other top-level class is a helper. Files declaring more than
        one public top-level class are skipped entirely.

        Raises:
            ParseError: the file could not be parsed.
        """
        source = self.parser.parse_file(path)
        found = FileScan()
        if len(source.public_classes) > 1:
            logger.debug("Skipping %s: %d public top-level classes", path, len(source.public_classes))
            return found

        rel_path = path.relative_to(repo_root).as_posix() if repo_root else str(path)
        for java_class in source.classes:
            test_class = self._test_class(java_class, source.package_name, rel_path)
            if test_class.total_test_methods > 0:
                found.test_classes.append(test_class)
            else:
                found.helper_classes.append(TestHelperClassRecord(
                    class_name=java_class.name,
                    package_name=source.package_name,
                    file_path=rel_path,
                    line_number=java_class.line_number,
                    loc=java_class.loc,
                ))
        return found

    def _test_class(self, java_class: JavaClass, package_name: str, rel_path: str) -> TestClassRecord:
        record = TestClassRecord(java_class.name, package_name, rel_path)
        for method in java_class.methods:
            if not (method.annotation_names() & TEST_MARKERS):
                continue
            case_info = next((a for a in method.annotations if a.simple_name == CASE_INFO_ANNOTATION), None)
            record.add_method(TestMethodRecord(
                method_name=method.name,
                class_name=java_class.name,
                package_name=package_name,
                file_path=rel_path,
                line_number=method.line_number,
                method_signature=method.signature,
                annotation=parse_case_info(case_info) if case_info is not None else None,
                test_case_ids=self.registry.extract_all(method.annotations),
            ))
        return record

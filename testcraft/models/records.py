"""
TestCraft Repository Hub Scanner
Aggregate scan model.

Transient, per-run records built by the source scanner:

    ScanSummary
      └── RepositoryRecord
            ├── TestClassRecord
            │     └── TestMethodRecord (+ optional TestMethodAnnotation)
            └── TestHelperClassRecord

Counts on a class are maintained incrementally as methods are appended;
repository and summary totals are always the sum over their children.
Nothing here touches the database; ``ScanPersistenceService`` turns a
finished ``ScanSummary`` into rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable

DEFAULT_STATUS = "TODO"


def coverage_rate(annotated: int, total: int) -> float:
    """Percentage of annotated methods, two decimals. 0.0 when there is nothing to cover."""
    if total <= 0:
        return 0.0
    return round(annotated * 100.0 / total, 2)


@dataclass
class TestMethodAnnotation:
    """Structured metadata carried by a ``@UnittestCaseInfo`` annotation."""

    __test__ = False

    title: str = ""
    author: str = ""
    status: str = DEFAULT_STATUS
    target_class: str = ""
    target_method: str = ""
    description: str = ""
    tags: list[str] | None = field(default_factory=list)
    test_points: list[str] | None = field(default_factory=list)
    related_requirements: list[str] | None = field(default_factory=list)
    related_defects: list[str] | None = field(default_factory=list)
    related_testcases: list[str] | None = field(default_factory=list)
    test_case_ids: list[str] | None = field(default_factory=list)
    last_update_time: str = ""
    last_update_author: str = ""
    method_signature: str = ""

    # attribute name in source → dataclass field
    SOURCE_NAMES = {
        "author": "author",
        "title": "title",
        "targetClass": "target_class",
        "targetMethod": "target_method",
        "testPoints": "test_points",
        "description": "description",
        "tags": "tags",
        "testCaseIds": "test_case_ids",
        "status": "status",
        "relatedRequirements": "related_requirements",
        "relatedDefects": "related_defects",
        "relatedTestcases": "related_testcases",
        "lastUpdateTime": "last_update_time",
        "lastUpdateAuthor": "last_update_author",
        "methodSignature": "method_signature",
    }
    ARRAY_FIELDS = (
        "tags",
        "test_points",
        "related_requirements",
        "related_defects",
        "related_testcases",
        "test_case_ids",
    )

    @property
    def is_annotated(self) -> bool:
        """A method counts as annotated only when its annotation carries a title."""
        return bool(self.title and self.title.strip())

    def to_dict(self) -> dict:
        """Lossless structured form, keyed by the source attribute names."""
        out = {}
        for source_name, attr in self.SOURCE_NAMES.items():
            value = getattr(self, attr)
            out[source_name] = list(value) if isinstance(value, list) else value
        return out

    @classmethod
    def from_dict(cls, data: dict) -> TestMethodAnnotation:
        kwargs = {}
        for source_name, attr in cls.SOURCE_NAMES.items():
            if source_name in data:
                value = data[source_name]
                kwargs[attr] = list(value) if isinstance(value, list) else value
        return cls(**kwargs)


@dataclass
class TestMethodRecord:
    """One test method found in a test class.

    Identity across runs is (repository, class, method name, method signature).
    """

    __test__ = False

    method_name: str
    class_name: str
    package_name: str
    file_path: str
    line_number: int
    method_signature: str = ""
    annotation: TestMethodAnnotation | None = None
    test_case_ids: list[str] = field(default_factory=list)

    @property
    def is_annotated(self) -> bool:
        return self.annotation is not None and self.annotation.is_annotated

    @property
    def identity(self) -> tuple[str, str, str, str]:
        return (self.package_name, self.class_name, self.method_name, self.method_signature)


class TestClassRecord:
    """A test class and its ordered test methods.

    ``total_test_methods`` and ``annotated_test_methods`` are updated by
    ``add_method`` and recomputed from scratch by ``replace_methods``;
    there is no other way to change them.
    """

    __test__ = False

    def __init__(self, class_name: str, package_name: str = "", file_path: str = ""):
        self.class_name = class_name
        self.package_name = package_name
        self.file_path = file_path
        self._methods: list[TestMethodRecord] = []
        self._total_test_methods = 0
        self._annotated_test_methods = 0

    @property
    def methods(self) -> tuple[TestMethodRecord, ...]:
        return tuple(self._methods)

    @property
    def total_test_methods(self) -> int:
        return self._total_test_methods

    @property
    def annotated_test_methods(self) -> int:
        return self._annotated_test_methods

    @property
    def coverage_rate(self) -> float:
        return coverage_rate(self._annotated_test_methods, self._total_test_methods)

    @property
    def qualified_name(self) -> str:
        return f"{self.package_name}.{self.class_name}" if self.package_name else self.class_name

    def add_method(self, method: TestMethodRecord) -> None:
        self._methods.append(method)
        self._total_test_methods += 1
        if method.is_annotated:
            self._annotated_test_methods += 1

    def replace_methods(self, methods: Iterable[TestMethodRecord]) -> None:
        """Bulk replace; counts are recomputed deterministically from the new list."""
        self._methods = list(methods)
        self._total_test_methods = len(self._methods)
        self._annotated_test_methods = sum(1 for m in self._methods if m.is_annotated)

    def __repr__(self):
        return (f"<TestClassRecord {self.qualified_name} "
                f"methods={self._total_test_methods} annotated={self._annotated_test_methods}>")


@dataclass
class TestHelperClassRecord:
    """A top-level class under a test root that declares no test methods.

    Fixtures, builders and abstract base tests land here. ``loc`` covers
    the class declaration only, not the whole file.
    """

    __test__ = False

    class_name: str
    package_name: str = ""
    file_path: str = ""
    line_number: int = 0
    loc: int = 0

    @property
    def qualified_name(self) -> str:
        return f"{self.package_name}.{self.class_name}" if self.package_name else self.class_name


class RepositoryRecord:
    """A scanned repository checkout with its test and helper classes in discovery order."""

    def __init__(
        self,
        name: str,
        path: str,
        git_url: str | None = None,
        team_name: str | None = None,
        team_code: str | None = None,
    ):
        self.name = name
        self.path = path
        self.git_url = git_url
        self.team_name = team_name
        self.team_code = team_code
        self._classes: list[TestClassRecord] = []
        self._helper_classes: list[TestHelperClassRecord] = []

    @property
    def classes(self) -> tuple[TestClassRecord, ...]:
        return tuple(self._classes)

    @property
    def helper_classes(self) -> tuple[TestHelperClassRecord, ...]:
        return tuple(self._helper_classes)

    def add_class(self, test_class: TestClassRecord) -> None:
        self._classes.append(test_class)

    def add_helper_class(self, helper: TestHelperClassRecord) -> None:
        self._helper_classes.append(helper)

    def replace_classes(self, classes: Iterable[TestClassRecord]) -> None:
        self._classes = list(classes)

    @property
    def total_test_classes(self) -> int:
        return len(self._classes)

    @property
    def total_helper_classes(self) -> int:
        return len(self._helper_classes)

    @property
    def total_test_methods(self) -> int:
        return sum(c.total_test_methods for c in self._classes)

    @property
    def annotated_test_methods(self) -> int:
        return sum(c.annotated_test_methods for c in self._classes)

    @property
    def coverage_rate(self) -> float:
        return coverage_rate(self.annotated_test_methods, self.total_test_methods)

    def __repr__(self):
        return f"<RepositoryRecord {self.name} classes={self.total_test_classes}>"


@dataclass(frozen=True)
class ScanSummary:
    """One finished scan: the unit of persistence.

    Build through ``ScanSummary.build`` so repositories without any test
    class are dropped.
    """

    scan_directory: str
    scan_date: datetime
    repositories: tuple[RepositoryRecord, ...] = ()

    @classmethod
    def build(
        cls,
        scan_directory: str,
        repositories: Iterable[RepositoryRecord],
        scan_date: datetime | None = None,
    ) -> ScanSummary:
        kept = tuple(r for r in repositories if r.total_test_classes > 0)
        return cls(
            scan_directory=str(scan_directory),
            scan_date=scan_date or datetime.now(timezone.utc),
            repositories=kept,
        )

    @property
    def total_repositories(self) -> int:
        return len(self.repositories)

    @property
    def total_test_classes(self) -> int:
        return sum(r.total_test_classes for r in self.repositories)

    @property
    def total_test_methods(self) -> int:
        return sum(r.total_test_methods for r in self.repositories)

    @property
    def total_annotated_methods(self) -> int:
        return sum(r.annotated_test_methods for r in self.repositories)

    @property
    def total_helper_classes(self) -> int:
        return sum(r.total_helper_classes for r in self.repositories)

    @property
    def coverage_rate(self) -> float:
        return coverage_rate(self.total_annotated_methods, self.total_test_methods)

    def to_dict(self) -> dict:
        return {
            "scan_directory": self.scan_directory,
            "scan_date": self.scan_date.isoformat(),
            "total_repositories": self.total_repositories,
            "total_test_classes": self.total_test_classes,
            "total_helper_classes": self.total_helper_classes,
            "total_test_methods": self.total_test_methods,
            "total_annotated_methods": self.total_annotated_methods,
            "coverage_rate": self.coverage_rate,
        }

"""
TestCraft Repository Hub Scanner
Tests — Aggregate scan model.

Covers:
    1. Coverage rate rounding
    2. Class counts under add_method / replace_methods
    3. Repository and summary totals are sums over children
    4. Zero-class repositories are dropped from the summary
    5. Annotation dict round trip keeps empty vs missing lists
"""

from datetime import datetime, timezone

from testcraft.models.records import (
    RepositoryRecord,
    ScanSummary,
    TestClassRecord,
    TestMethodAnnotation,
    TestMethodRecord,
    coverage_rate,
)


def _method(name, title=None, cls="CalcTest"):
    annotation = TestMethodAnnotation(title=title) if title is not None else None
    return TestMethodRecord(
        method_name=name, class_name=cls, package_name="com.example",
        file_path=f"src/test/java/com/example/{cls}.java", line_number=1,
        method_signature=f"{name}()", annotation=annotation,
    )


def _class(name, methods):
    record = TestClassRecord(name, "com.example", f"{name}.java")
    for m in methods:
        record.add_method(m)
    return record


def _assert_consistent(summary):
    assert summary.total_test_methods == sum(r.total_test_methods for r in summary.repositories)
    for repo in summary.repositories:
        assert repo.total_test_methods == sum(c.total_test_methods for c in repo.classes)
        for cls in repo.classes:
            assert cls.total_test_methods == len(cls.methods)
            assert cls.annotated_test_methods == sum(1 for m in cls.methods if m.is_annotated)


class TestCoverageRate:
    def test_rounding(self):
        assert coverage_rate(1, 3) == 33.33
        assert coverage_rate(2, 3) == 66.67
        assert coverage_rate(0, 0) == 0.0
        assert coverage_rate(5, 5) == 100.0


class TestClassCounts:
    def test_add_method(self):
        cls = _class("CalcTest", [_method("a", "A"), _method("b"), _method("c", "")])
        assert cls.total_test_methods == 3
        assert cls.annotated_test_methods == 1
        assert cls.coverage_rate == 33.33
        assert cls.qualified_name == "com.example.CalcTest"

    def test_replace_methods_recomputes(self):
        cls = _class("CalcTest", [_method("a", "A"), _method("b", "B")])
        cls.replace_methods([_method("x")])
        assert cls.total_test_methods == 1
        assert cls.annotated_test_methods == 0
        assert [m.method_name for m in cls.methods] == ["x"]

    def test_whitespace_title_is_not_annotated(self):
        assert not _method("a", "   ").is_annotated


class TestSummary:
    def test_totals_after_every_mutation(self):
        repo_a = RepositoryRecord("alpha", "/hub/alpha")
        repo_a.add_class(_class("ATest", [_method("a1", "t"), _method("a2")]))
        repo_b = RepositoryRecord("beta", "/hub/beta")
        repo_b.add_class(_class("BTest", [_method("b1", "t")]))
        summary = ScanSummary.build("/hub", [repo_a, repo_b])
        _assert_consistent(summary)
        assert summary.total_test_methods == 3
        assert summary.total_annotated_methods == 2

        repo_a.classes[0].add_method(_method("a3", "t"))
        repo_b.replace_classes([_class("BTest", []), _class("CTest", [_method("c1")])])
        _assert_consistent(summary)
        assert summary.total_test_methods == 4
        assert summary.total_test_classes == 3
        assert summary.total_annotated_methods == 2

    def test_zero_class_repository_dropped(self):
        empty = RepositoryRecord("docs", "/hub/docs")
        full = RepositoryRecord("core", "/hub/core")
        full.add_class(_class("CoreTest", [_method("t")]))
        summary = ScanSummary.build("/hub", [empty, full])
        assert [r.name for r in summary.repositories] == ["core"]
        assert summary.total_repositories == 1

    def test_to_dict(self):
        when = datetime(2026, 1, 2, 3, 4, tzinfo=timezone.utc)
        summary = ScanSummary.build("/hub", [], scan_date=when)
        data = summary.to_dict()
        assert data["scan_date"] == when.isoformat()
        assert data["total_repositories"] == 0
        assert data["coverage_rate"] == 0.0


class TestAnnotationDict:
    def test_round_trip_keeps_none_and_empty(self):
        info = TestMethodAnnotation(title="t", tags=[], test_points=None, related_defects=["B-1"])
        data = info.to_dict()
        assert data["tags"] == []
        assert data["testPoints"] is None
        restored = TestMethodAnnotation.from_dict(data)
        assert restored == info

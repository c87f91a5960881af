"""
TestCraft Repository Hub Scanner
Tests — Annotation extractors.

Covers:
    1. @UnittestCaseInfo → TestMethodAnnotation
    2. Built-in test case id extractors
    3. Registry ordering, deduplication and runtime registration
"""

import pytest

from testcraft.services.extractors import (
    ExtractorRegistry,
    TagIdExtractor,
    TestCaseIdAnnotationExtractor,
    UnittestCaseInfoIdExtractor,
    is_test_case_id,
    parse_case_info,
)
from testcraft.services.java_parser import JavaAnnotation, JavaSourceParser


def _method_annotations(source_annotations: str) -> list[JavaAnnotation]:
    src = f"class A {{ {source_annotations} void t() {{}} }}"
    return JavaSourceParser().parse(src).classes[0].methods[0].annotations


@pytest.fixture()
def registry():
    return ExtractorRegistry.with_defaults()


# ═══════════════════════════════════════════════════════════════════════════
#  1. parse_case_info
# ═══════════════════════════════════════════════════════════════════════════


class TestParseCaseInfo:
    def test_full_annotation(self):
        (ann,) = _method_annotations(
            '@UnittestCaseInfo(title = "Login", author = "dana", targetClass = "AuthService",'
            ' tags = {"smoke"}, relatedDefects = "BUG-1", status = "DONE")'
        )
        info = parse_case_info(ann)
        assert info.title == "Login"
        assert info.author == "dana"
        assert info.target_class == "AuthService"
        assert info.tags == ["smoke"]
        assert info.related_defects == ["BUG-1"]
        assert info.status == "DONE"
        assert info.test_points == []
        assert info.is_annotated

    def test_defaults(self):
        (ann,) = _method_annotations("@UnittestCaseInfo(author = \"dana\")")
        info = parse_case_info(ann)
        assert info.title == ""
        assert info.status == "TODO"
        assert not info.is_annotated

    def test_single_member_sets_title(self):
        (ann,) = _method_annotations('@UnittestCaseInfo("Login works")')
        assert parse_case_info(ann).title == "Login works"

    def test_unknown_attributes_ignored(self):
        (ann,) = _method_annotations('@UnittestCaseInfo(title = "x", priority = "HIGH")')
        assert parse_case_info(ann).to_dict()["title"] == "x"


# ═══════════════════════════════════════════════════════════════════════════
#  2. Extractors
# ═══════════════════════════════════════════════════════════════════════════


class TestExtractors:
    def test_id_pattern(self):
        assert is_test_case_id("TC-1")
        assert is_test_case_id("PROJ-1234")
        assert not is_test_case_id("smoke")
        assert not is_test_case_id("tc-1")
        assert not is_test_case_id("")

    def test_case_info_field_wins_over_tags(self):
        (ann,) = _method_annotations('@UnittestCaseInfo(testCaseIds = {"TC-1", "TC-2"}, tags = {"TC-9"})')
        assert UnittestCaseInfoIdExtractor().extract(ann) == ["TC-1", "TC-2"]

    def test_case_info_falls_back_to_id_shaped_tags(self):
        (ann,) = _method_annotations('@UnittestCaseInfo(tags = {"smoke", "TC-9"})')
        assert UnittestCaseInfoIdExtractor().extract(ann) == ["TC-9"]

    def test_lightweight_annotation(self):
        (ann,) = _method_annotations('@TestCaseId(value = {"TC-3", "TC-4"})')
        assert TestCaseIdAnnotationExtractor().extract(ann) == ["TC-3", "TC-4"]

    def test_tag_ignores_non_ids(self):
        (ann,) = _method_annotations('@Tag("slow")')
        assert TagIdExtractor().supports(ann)
        assert TagIdExtractor().extract(ann) == []

    def test_unsupported_annotation(self):
        (ann,) = _method_annotations("@Test")
        assert not TagIdExtractor().supports(ann)
        assert TagIdExtractor().extract(ann) == []


# ═══════════════════════════════════════════════════════════════════════════
#  3. Registry
# ═══════════════════════════════════════════════════════════════════════════


class TestRegistry:
    def test_rich_annotation_ids_only(self, registry):
        anns = _method_annotations('@Test @UnittestCaseInfo(testCaseIds = {"TC-1", "TC-2"}, tags = {"TC-9"})')
        assert registry.extract_all(anns) == ["TC-1", "TC-2"]

    def test_lightweight_only(self, registry):
        anns = _method_annotations('@TestCaseId({"TC-3", "TC-4"})')
        assert registry.extract_all(anns) == ["TC-3", "TC-4"]

    def test_duplicate_across_extractors_reported_once(self, registry):
        anns = _method_annotations('@TestCaseId("TC-5") @Tag("TC-5")')
        assert registry.extract_all(anns) == ["TC-5"]

    @pytest.mark.parametrize("annotations", [None, []])
    def test_empty_input(self, registry, annotations):
        assert registry.extract_all(annotations) == []

    def test_defaults_sorted_by_priority(self, registry):
        assert [e.priority for e in registry.extractors] == [100, 90, 50]

    def test_runtime_registration_resorts(self, registry):
        class JiraKeyExtractor:
            priority = 95

            def supports(self, annotation):
                return annotation.simple_name == "Jira"

            def extract(self, annotation):
                return annotation.values()

        registry.register(JiraKeyExtractor())
        assert [e.priority for e in registry.extractors] == [100, 95, 90, 50]
        anns = _method_annotations('@Jira("PAY-7") @Tag("PAY-7") @Tag("PAY-8")')
        assert registry.extract_all(anns) == ["PAY-7", "PAY-8"]

    def test_failing_extractor_is_skipped(self, registry):
        class Broken:
            priority = 200

            def supports(self, annotation):
                return True

            def extract(self, annotation):
                raise RuntimeError("boom")

        registry.register(Broken())
        anns = _method_annotations('@Tag("TC-1")')
        assert registry.extract_all(anns) == ["TC-1"]

    def test_registries_are_independent(self):
        a = ExtractorRegistry.with_defaults()
        b = ExtractorRegistry()
        a.register(TagIdExtractor())
        assert len(b.extractors) == 0
        assert len(a.extractors) == 4

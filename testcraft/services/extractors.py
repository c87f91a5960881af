"""
TestCraft Repository Hub Scanner
Annotation extractors.

Two jobs live here:

1. ``parse_case_info`` turns a ``@UnittestCaseInfo`` annotation into a
   ``TestMethodAnnotation`` (title, author, tags, ...).
2. ``ExtractorRegistry`` runs pluggable test-case-id extractors over all
   annotations of a method. Each extractor recognises one annotation
   dialect and exposes ``priority``, ``supports(annotation)`` and
   ``extract(annotation)``. Built-ins, highest priority first:

       100  @UnittestCaseInfo(testCaseIds = {...}, tags = {...})
        90  @TestCaseId("TC-1") / @TestCaseId({"TC-1", "TC-2"})
        50  @Tag("TC-1")   (only values shaped like an id)

Usage:
    registry = ExtractorRegistry.with_defaults()
    ids = registry.extract_all(method.annotations)
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Protocol

from testcraft.models.records import DEFAULT_STATUS, TestMethodAnnotation
from testcraft.services.java_parser import VALUE_KEY, JavaAnnotation

logger = logging.getLogger(__name__)

CASE_INFO_ANNOTATION = "UnittestCaseInfo"
TEST_CASE_ID_ANNOTATION = "TestCaseId"
TAG_ANNOTATION = "Tag"

# Two to four upper-case letters, a hyphen, digits: TC-1, PROJ-1234
TEST_CASE_ID_PATTERN = re.compile(r"^[A-Z]{2,4}-\d+$")


def is_test_case_id(value: str | None) -> bool:
    return bool(value) and bool(TEST_CASE_ID_PATTERN.match(value.strip()))


# ═══════════════════════════════════════════════════════════════════════════
#  @UnittestCaseInfo → TestMethodAnnotation
# ═══════════════════════════════════════════════════════════════════════════


def parse_case_info(annotation: JavaAnnotation) -> TestMethodAnnotation:
    """
    Build a TestMethodAnnotation from ``@UnittestCaseInfo``.

    Unset string attributes are ``""``, unset arrays are ``[]`` and an
    unset status is ``"TODO"``. The single-member form
    ``@UnittestCaseInfo("Login works")`` sets the title.
    """
    info = TestMethodAnnotation()
    for key, value in annotation.arguments.items():
        if key == VALUE_KEY:
            info.title = _as_string(value)
            continue
        attr = TestMethodAnnotation.SOURCE_NAMES.get(key)
        if attr is None:
            logger.debug("Ignoring unknown @%s attribute %r", CASE_INFO_ANNOTATION, key)
            continue
        if attr in TestMethodAnnotation.ARRAY_FIELDS:
            setattr(info, attr, _as_list(value))
        else:
            setattr(info, attr, _as_string(value))
    if not info.status:
        info.status = DEFAULT_STATUS
    return info


def _as_string(value) -> str:
    if isinstance(value, list):
        return ", ".join(value)
    return value or ""


def _as_list(value) -> list[str]:
    if isinstance(value, list):
        return list(value)
    if value in (None, ""):
        return []
    return [value]


# ═══════════════════════════════════════════════════════════════════════════
#  Test case id extractors
# ═══════════════════════════════════════════════════════════════════════════


class TestCaseIdExtractor(Protocol):
    """Capability set every extractor provides."""

    priority: int

    def supports(self, annotation: JavaAnnotation) -> bool: ...

    def extract(self, annotation: JavaAnnotation) -> list[str]: ...


class UnittestCaseInfoIdExtractor:
    """Ids from ``@UnittestCaseInfo``: ``testCaseIds`` if set, otherwise id-shaped ``tags``.

    The two are never merged; a non-empty ``testCaseIds`` wins outright.
    """

    priority = 100

    def supports(self, annotation: JavaAnnotation) -> bool:
        return annotation is not None and annotation.simple_name == CASE_INFO_ANNOTATION

    def extract(self, annotation: JavaAnnotation) -> list[str]:
        if not self.supports(annotation):
            return []
        explicit = [v.strip() for v in annotation.values("testCaseIds") if v and v.strip()]
        if explicit:
            return explicit
        return [v.strip() for v in annotation.values("tags") if is_test_case_id(v)]


class TestCaseIdAnnotationExtractor:
    """Ids from ``@TestCaseId``: single value, array or ``value = ...``."""

    __test__ = False
    priority = 90

    def supports(self, annotation: JavaAnnotation) -> bool:
        return annotation is not None and annotation.simple_name == TEST_CASE_ID_ANNOTATION

    def extract(self, annotation: JavaAnnotation) -> list[str]:
        if not self.supports(annotation):
            return []
        return [v.strip() for v in annotation.values(VALUE_KEY) if v and v.strip()]


class TagIdExtractor:
    """Ids from JUnit 5 ``@Tag``; tags that do not look like an id are ignored."""

    priority = 50

    def supports(self, annotation: JavaAnnotation) -> bool:
        return annotation is not None and annotation.simple_name == TAG_ANNOTATION

    def extract(self, annotation: JavaAnnotation) -> list[str]:
        if not self.supports(annotation):
            return []
        return [v.strip() for v in annotation.values(VALUE_KEY) if is_test_case_id(v)]


class ExtractorRegistry:
    """Priority-ordered set of extractors.

    Instances are independent: build one per scanner (or per test) rather
    than sharing a process-wide list.
    """

    def __init__(self, extractors: Iterable[TestCaseIdExtractor] = ()):
        self._extractors: list[TestCaseIdExtractor] = []
        for extractor in extractors:
            self.register(extractor)

    @classmethod
    def with_defaults(cls) -> ExtractorRegistry:
        return cls([UnittestCaseInfoIdExtractor(), TestCaseIdAnnotationExtractor(), TagIdExtractor()])

    @property
    def extractors(self) -> tuple[TestCaseIdExtractor, ...]:
        return tuple(self._extractors)

    def register(self, extractor: TestCaseIdExtractor) -> None:
        """Add an extractor; the list is re-sorted by descending priority (stable)."""
        self._extractors.append(extractor)
        self._extractors.sort(key=lambda e: -e.priority)

    def extract_all(self, annotations: Iterable[JavaAnnotation] | None) -> list[str]:
        """
        Run every supporting extractor over every annotation.

        Results are concatenated in annotation order, extractor priority
        within an annotation, then de-duplicated keeping the first
        occurrence. ``None`` or no annotations yields ``[]``.
        """
        if not annotations:
            return []
        seen: set[str] = set()
        ids: list[str] = []
        for annotation in annotations:
            if annotation is None:
                continue
            for extractor in self._extractors:
                try:
                    if not extractor.supports(annotation):
                        continue
                    extracted = extractor.extract(annotation) or []
                except Exception:
                    logger.exception("Extractor %s failed on @%s",
                                     type(extractor).__name__, annotation.name)
                    continue
                for value in extracted:
                    if value and value not in seen:
                        seen.add(value)
                        ids.append(value)
        return ids

"""
TestCraft Repository Hub Scanner
Tests — Java source parser.

Covers:
    1. Package, imports, top-level classes and nested-class methods
    2. Method signatures and line numbers
    3. Annotation arguments (single-member, pairs, arrays, concatenation)
    4. Syntax errors
"""

import pytest

from testcraft.core.exceptions import ParseError
from testcraft.services.java_parser import JavaSourceParser, unescape_java_string


SAMPLE = '''package com.example.billing;

import org.junit.jupiter.api.Test;
import static org.junit.jupiter.api.Assertions.*;

@DisplayName("Invoices")
public class InvoiceServiceTest {

    @Test
    void createsInvoice() {
    }

    @org.junit.Test
    @UnittestCaseInfo(title = "Totals " + "add up", tags = {"smoke", "TC-7"}, status = "DONE")
    public void totals(String currency, int[] amounts, Object... extra) {
        int x = 1;
    }

    private void helper() {}
}

class PackagePrivateHelper {
    void notATest() {}
}
'''


@pytest.fixture()
def parser():
    return JavaSourceParser()


class TestStructure:
    def test_package_and_imports(self, parser):
        parsed = parser.parse(SAMPLE, "InvoiceServiceTest.java")
        assert parsed.package_name == "com.example.billing"
        assert "org.junit.jupiter.api.Test" in parsed.imports
        assert any(i.startswith("static org.junit.jupiter.api.Assertions") for i in parsed.imports)

    def test_top_level_classes(self, parser):
        parsed = parser.parse(SAMPLE)
        assert [c.name for c in parsed.classes] == ["InvoiceServiceTest", "PackagePrivateHelper"]
        assert [c.name for c in parsed.public_classes] == ["InvoiceServiceTest"]
        assert parsed.classes[0].annotations[0].simple_name == "DisplayName"

    def test_default_package(self, parser):
        parsed = parser.parse("class A { void t() {} }")
        assert parsed.package_name == ""
        assert parsed.classes[0].is_public is False

    def test_nested_classes_are_not_top_level(self, parser):
        parsed = parser.parse("public class Outer { static class Inner { void t() {} } void o() {} }")
        assert [c.name for c in parsed.classes] == ["Outer"]
        assert [m.name for m in parsed.classes[0].methods] == ["t", "o"]

    def test_nested_class_methods_carry_their_path(self, parser):
        parsed = parser.parse(
            "class Outer { void run() {}"
            " class Inner { void run() {} class Deeper { void run(int n) {} } } }"
        )
        methods = parsed.classes[0].methods
        assert [m.signature for m in methods] == ["run()", "Inner.run()", "Inner.Deeper.run(int)"]
        assert [m.enclosing for m in methods] == ["", "Inner", "Inner.Deeper"]


class TestMethods:
    def test_signatures(self, parser):
        methods = parser.parse(SAMPLE).classes[0].methods
        assert [m.signature for m in methods] == [
            "createsInvoice()",
            "totals(String, int[], Object...)",
            "helper()",
        ]

    def test_line_numbers_are_one_based(self, parser):
        methods = parser.parse(SAMPLE).classes[0].methods
        assert methods[0].line_number == 9
        assert methods[0].loc == 3

    def test_annotation_names_include_qualified_and_simple(self, parser):
        totals = parser.parse(SAMPLE).classes[0].methods[1]
        assert {"org.junit.Test", "Test", "UnittestCaseInfo"} <= totals.annotation_names()


class TestAnnotationArguments:
    def test_pairs_arrays_and_concatenation(self, parser):
        totals = parser.parse(SAMPLE).classes[0].methods[1]
        info = next(a for a in totals.annotations if a.simple_name == "UnittestCaseInfo")
        assert info.get("title") == "Totals add up"
        assert info.get("tags") == ["smoke", "TC-7"]
        assert info.values("status") == ["DONE"]
        assert info.values("missing") == []

    def test_marker_annotation(self, parser):
        test = parser.parse(SAMPLE).classes[0].methods[0].annotations[0]
        assert test.name == "Test"
        assert test.is_marker

    def test_single_member_value(self, parser):
        src = 'class A { @TestCaseId({"PAY-1", "PAY-2"}) @Tag("TC-9") void t() {} }'
        anns = parser.parse(src).classes[0].methods[0].annotations
        assert anns[0].values() == ["PAY-1", "PAY-2"]
        assert anns[1].values() == ["TC-9"]

    def test_non_string_values_keep_source_text(self, parser):
        src = "class A { @Timeout(value = 5, unit = TimeUnit.SECONDS) void t() {} }"
        ann = parser.parse(src).classes[0].methods[0].annotations[0]
        assert ann.get("value") == "5"
        assert ann.get("unit") == "TimeUnit.SECONDS"

    def test_escapes(self, parser):
        src = r'class A { @Info(title = "say \"hi\"\tnow") void t() {} }'
        ann = parser.parse(src).classes[0].methods[0].annotations[0]
        assert ann.get("title") == 'say "hi"\tnow'


class TestErrors:
    def test_syntax_error_raises_parse_error(self, parser):
        with pytest.raises(ParseError) as exc_info:
            parser.parse("public class Broken { void t( { }", "Broken.java")
        assert exc_info.value.file_path == "Broken.java"

    def test_unreadable_file(self, parser, tmp_path):
        with pytest.raises(ParseError):
            parser.parse_file(tmp_path / "missing.java")

    def test_parse_file(self, parser, tmp_path):
        path = tmp_path / "A.java"
        path.write_text("package p; public class A {}", encoding="utf-8")
        parsed = parser.parse_file(path)
        assert parsed.file_path == str(path)
        assert parsed.classes[0].name == "A"


def test_unescape_java_string():
    assert unescape_java_string(r"a\nbA\101\\") == "a\nbAA\\"

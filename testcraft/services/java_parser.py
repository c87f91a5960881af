"""
TestCraft Repository Hub Scanner
Java source parser.

Thin layer over tree-sitter-java that turns a source file into the few
facts the scanner needs:

    JavaSourceFile
      ├── package_name, imports
      └── JavaClass (top-level only)
            ├── name, is_public, annotations
            └── JavaMethod (own and nested-class methods)
                  ├── name, signature, line_number, loc
                  └── JavaAnnotation (name + literal arguments)

Annotation arguments are reduced to plain Python values: string literals
become ``str``, array initializers become ``list[str]``, anything else
(enum constants, class literals, numbers) becomes its source text.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

import tree_sitter_java
from tree_sitter import Language, Node, Parser

from testcraft.core.exceptions import ParseError

logger = logging.getLogger(__name__)

JAVA_LANGUAGE = Language(tree_sitter_java.language())

# Argument key used for the single-member form: @Foo("x") == @Foo(value = "x")
VALUE_KEY = "value"

_ESCAPES = {
    "n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "s": " ",
    "0": "\0", "\\": "\\", "'": "'", '"': '"',
}
_ESCAPE_RE = re.compile(r"\\(u+[0-9a-fA-F]{4}|[0-7]{1,3}|.)", re.DOTALL)


def unescape_java_string(body: str) -> str:
    """Resolve Java escape sequences inside a string literal body."""
    def _sub(match):
        esc = match.group(1)
        if esc[0] == "u":
            return chr(int(esc.lstrip("u"), 16))
        if esc[0] in "01234567" and esc not in _ESCAPES:
            return chr(int(esc, 8))
        return _ESCAPES.get(esc, esc)
    return _ESCAPE_RE.sub(_sub, body)


# ═══════════════════════════════════════════════════════════════════════════
#  Parsed structures
# ═══════════════════════════════════════════════════════════════════════════


@dataclass
class JavaAnnotation:
    """One annotation usage with its literal arguments."""

    name: str                       # as written: "Test" or "org.junit.Test"
    arguments: dict[str, str | list[str]] = field(default_factory=dict)
    line_number: int = 0

    @property
    def simple_name(self) -> str:
        return self.name.rsplit(".", 1)[-1]

    @property
    def is_marker(self) -> bool:
        return not self.arguments

    def get(self, key: str, default=None):
        return self.arguments.get(key, default)

    def values(self, key: str = VALUE_KEY) -> list[str]:
        """Argument as a list: arrays as-is, scalars wrapped, missing → []."""
        value = self.arguments.get(key)
        if value is None:
            return []
        if isinstance(value, list):
            return list(value)
        return [value]


@dataclass
class JavaMethod:
    name: str
    parameter_types: list[str] = field(default_factory=list)
    annotations: list[JavaAnnotation] = field(default_factory=list)
    line_number: int = 0
    loc: int = 0
    enclosing: str = ""             # nested class path inside the top-level class, e.g. "Inner.Deeper"

    @property
    def signature(self) -> str:
        params = f"{self.name}({', '.join(self.parameter_types)})"
        return f"{self.enclosing}.{params}" if self.enclosing else params

    def annotation_names(self) -> set[str]:
        names = set()
        for ann in self.annotations:
            names.add(ann.name)
            names.add(ann.simple_name)
        return names


@dataclass
class JavaClass:
    name: str
    is_public: bool = False
    annotations: list[JavaAnnotation] = field(default_factory=list)
    methods: list[JavaMethod] = field(default_factory=list)
    line_number: int = 0
    loc: int = 0


@dataclass
class JavaSourceFile:
    file_path: str
    package_name: str = ""
    imports: list[str] = field(default_factory=list)
    classes: list[JavaClass] = field(default_factory=list)

    @property
    def public_classes(self) -> list[JavaClass]:
        return [c for c in self.classes if c.is_public]


# ═══════════════════════════════════════════════════════════════════════════
#  Parser
# ═══════════════════════════════════════════════════════════════════════════


class JavaSourceParser:
    """Parse Java sources. One instance per thread; tree-sitter parsers are not shared."""

    def __init__(self):
        self._parser = Parser(JAVA_LANGUAGE)

    def parse_file(self, path: str | Path) -> JavaSourceFile:
        try:
            data = Path(path).read_bytes()
        except OSError as exc:
            raise ParseError(f"Cannot read {path}: {exc}", file_path=str(path)) from exc
        return self.parse(data, file_path=str(path))

    def parse(self, source: bytes | str, file_path: str = "<memory>") -> JavaSourceFile:
        """
        Parse one compilation unit.

        Raises:
            ParseError: the source has syntax errors.
        """
        data = source.encode("utf-8") if isinstance(source, str) else source
        tree = self._parser.parse(data)
        root = tree.root_node
        if root.has_error:
            raise ParseError(f"Syntax error in {file_path} near line {_first_error_line(root)}",
                             file_path=file_path)

        result = JavaSourceFile(file_path=file_path)
        for child in root.named_children:
            if child.type == "package_declaration":
                result.package_name = _package_name(child, data)
            elif child.type == "import_declaration":
                result.imports.append(_import_name(child, data))
            elif child.type == "class_declaration":
                result.classes.append(self._class(child, data))
        return result

    def _class(self, node: Node, data: bytes) -> JavaClass:
        modifiers = _modifiers(node)
        cls = JavaClass(
            name=_text(node.child_by_field_name("name"), data),
            is_public=_has_keyword(modifiers, "public"),
            annotations=_annotations(modifiers, data),
            line_number=node.start_point[0] + 1,
            loc=node.end_point[0] - node.start_point[0] + 1,
        )
        self._collect_methods(node, data, cls.methods, enclosing="")
        return cls

    def _collect_methods(self, node: Node, data: bytes, into: list[JavaMethod], enclosing: str) -> None:
        """Methods of ``node`` and of its nested classes, in source order.

        Methods of a nested class (``@Nested class Inner``) belong to the
        top-level class; ``enclosing`` keeps their signatures distinct.
        """
        body = node.child_by_field_name("body")
        if body is None:
            return
        for member in body.named_children:
            if member.type == "method_declaration":
                into.append(self._method(member, data, enclosing))
            elif member.type == "class_declaration":
                name = _text(member.child_by_field_name("name"), data)
                self._collect_methods(member, data, into,
                                      f"{enclosing}.{name}" if enclosing else name)

    def _method(self, node: Node, data: bytes, enclosing: str = "") -> JavaMethod:
        return JavaMethod(
            name=_text(node.child_by_field_name("name"), data),
            parameter_types=_parameter_types(node.child_by_field_name("parameters"), data),
            annotations=_annotations(_modifiers(node), data),
            line_number=node.start_point[0] + 1,
            loc=node.end_point[0] - node.start_point[0] + 1,
            enclosing=enclosing,
        )


# ── Node helpers ─────────────────────────────────────────────────────────────


def _text(node: Node | None, data: bytes) -> str:
    if node is None:
        return ""
    return data[node.start_byte:node.end_byte].decode("utf-8", errors="replace")


def _first_error_line(root: Node) -> int:
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "ERROR" or node.is_missing:
            return node.start_point[0] + 1
        stack.extend(reversed([c for c in node.children if c.has_error or c.is_missing]))
    return 0


def _package_name(node: Node, data: bytes) -> str:
    for child in node.named_children:
        if child.type in ("scoped_identifier", "identifier"):
            return _text(child, data)
    return ""


def _import_name(node: Node, data: bytes) -> str:
    text = _text(node, data).strip()
    if text.startswith("import"):
        text = text[len("import"):]
    return " ".join(text.rstrip(";").split())


def _modifiers(node: Node) -> Node | None:
    for child in node.children:
        if child.type == "modifiers":
            return child
    return None


def _has_keyword(modifiers: Node | None, keyword: str) -> bool:
    if modifiers is None:
        return False
    return any(child.type == keyword for child in modifiers.children)


def _parameter_types(params: Node | None, data: bytes) -> list[str]:
    if params is None:
        return []
    types = []
    for param in params.named_children:
        if param.type == "formal_parameter":
            types.append(" ".join(_text(param.child_by_field_name("type"), data).split()))
        elif param.type == "spread_parameter":
            type_node = next((c for c in param.named_children
                              if c.type not in ("modifiers", "variable_declarator")), None)
            types.append(" ".join(_text(type_node, data).split()) + "...")
    return types


def _annotations(modifiers: Node | None, data: bytes) -> list[JavaAnnotation]:
    if modifiers is None:
        return []
    found = []
    for child in modifiers.named_children:
        if child.type == "marker_annotation":
            found.append(JavaAnnotation(name=_text(child.child_by_field_name("name"), data),
                                        line_number=child.start_point[0] + 1))
        elif child.type == "annotation":
            found.append(JavaAnnotation(
                name=_text(child.child_by_field_name("name"), data),
                arguments=_annotation_arguments(child.child_by_field_name("arguments"), data),
                line_number=child.start_point[0] + 1,
            ))
    return found


def _annotation_arguments(args: Node | None, data: bytes) -> dict[str, str | list[str]]:
    if args is None:
        return {}
    out: dict[str, str | list[str]] = {}
    for child in args.named_children:
        if child.type == "element_value_pair":
            key = _text(child.child_by_field_name("key"), data)
            out[key] = _element_value(child.child_by_field_name("value"), data)
        elif child.type not in ("line_comment", "block_comment"):
            out[VALUE_KEY] = _element_value(child, data)
    return out


def _element_value(node: Node | None, data: bytes) -> str | list[str]:
    if node is None:
        return ""
    if node.type == "element_value_array_initializer":
        values = []
        for item in node.named_children:
            if item.type in ("line_comment", "block_comment"):
                continue
            value = _element_value(item, data)
            if isinstance(value, list):
                values.extend(value)
            else:
                values.append(value)
        return values
    return _scalar_value(node, data)


def _scalar_value(node: Node, data: bytes) -> str:
    if node.type in ("string_literal", "text_block"):
        return _string_literal(_text(node, data))
    if node.type == "parenthesized_expression" and node.named_children:
        return _scalar_value(node.named_children[0], data)
    if node.type == "binary_expression":
        left = node.child_by_field_name("left")
        right = node.child_by_field_name("right")
        operator = node.child_by_field_name("operator")
        if _text(operator, data) == "+" and left is not None and right is not None:
            return _scalar_value(left, data) + _scalar_value(right, data)
    return " ".join(_text(node, data).split())


def _string_literal(raw: str) -> str:
    if raw.startswith('"""') and raw.endswith('"""') and len(raw) >= 6:
        lines = raw[3:-3].split("\n")[1:]
        indent = min((len(line) - len(line.lstrip()) for line in lines if line.strip()), default=0)
        return unescape_java_string("\n".join(line[indent:] for line in lines).rstrip(" "))
    if len(raw) >= 2 and raw[0] == raw[-1] == '"':
        raw = raw[1:-1]
    return unescape_java_string(raw)

"""Import and lexical-scope binding resolution for TypeScript trees.

The scanner must only treat a template tag as a query tag when the
identifier actually refers to the configured import. This module collects
the file's import statements and the names each lexical scope declares, so
an identifier can be resolved to the innermost declaration that binds it.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from pgtypegen.parsing.treesitter import node_text
from pgtypegen.typegen.models import Span

# node_type -> scope kind
SCOPE_TYPES: dict[str, str] = {
    "program": "module",
    "statement_block": "block",
    "function_declaration": "function",
    "generator_function_declaration": "function",
    "function_expression": "function",
    "function": "function",
    "generator_function": "function",
    "arrow_function": "function",
    "method_definition": "function",
    "class_declaration": "class",
    "class": "class",
    "for_statement": "block",
    "for_in_statement": "block",
    "catch_clause": "block",
    "switch_body": "block",
}

_PATTERN_LEAVES = frozenset({"identifier", "shorthand_property_identifier_pattern"})


@dataclass(frozen=True)
class NamedImport:
    """One ``name`` or ``name as alias`` specifier."""

    name: str
    alias: str | None
    span: Span
    type_only: bool = False

    @property
    def local(self) -> str:
        return self.alias or self.name


@dataclass(frozen=True)
class ImportStatement:
    """A top-level ``import ... from '...'`` statement."""

    source: str
    span: Span
    source_span: Span  # string literal including quotes
    line: int
    type_only: bool = False
    default: str | None = None
    namespace: str | None = None
    named: tuple[NamedImport, ...] = ()

    def local_names(self) -> list[str]:
        names = [n.local for n in self.named]
        if self.default:
            names.append(self.default)
        if self.namespace:
            names.append(self.namespace)
        return names


@dataclass(frozen=True)
class Declaration:
    """A non-import binding of a name in some scope."""

    name: str
    kind: str  # variable, parameter, function, class
    span: Span


@dataclass
class ScopeIndex:
    """Names declared per scope node, keyed by tree-sitter node id."""

    declarations: dict[int, dict[str, Declaration]] = field(default_factory=dict)
    imports: dict[str, tuple[ImportStatement, NamedImport | None]] = field(default_factory=dict)

    def resolve(self, identifier: Any) -> Declaration | tuple[ImportStatement, NamedImport | None] | None:
        """Resolve an identifier node to its innermost binding.

        Returns a ``Declaration`` for local bindings, the ``(statement,
        specifier)`` pair for imports (specifier is None for default and
        namespace imports), or None for free names.
        """
        name = node_text(identifier)
        node = identifier.parent
        while node is not None:
            if node.type in SCOPE_TYPES:
                scope = self.declarations.get(node.id)
                if scope and name in scope:
                    return scope[name]
                if node.type == "program":
                    return self.imports.get(name)
            node = node.parent
        return self.imports.get(name)


def _string_value(node: Any) -> str:
    text = node_text(node)
    if len(text) >= 2 and text[0] in "'\"" and text[-1] == text[0]:
        return text[1:-1]
    return text


def _has_type_keyword(node: Any) -> bool:
    return any(child.type == "type" for child in node.children if not child.is_named)


def parse_import(node: Any) -> ImportStatement | None:
    """Build an ImportStatement from an ``import_statement`` node."""
    source_node = node.child_by_field_name("source")
    if source_node is None:
        return None

    default: str | None = None
    namespace: str | None = None
    named: list[NamedImport] = []

    for child in node.children:
        if child.type != "import_clause":
            continue
        for clause_child in child.children:
            if clause_child.type == "identifier":
                default = node_text(clause_child)
            elif clause_child.type == "namespace_import":
                for ns_child in clause_child.children:
                    if ns_child.type == "identifier":
                        namespace = node_text(ns_child)
            elif clause_child.type == "named_imports":
                for spec in clause_child.children:
                    if spec.type != "import_specifier":
                        continue
                    name_node = spec.child_by_field_name("name")
                    alias_node = spec.child_by_field_name("alias")
                    if name_node is None:
                        continue
                    named.append(
                        NamedImport(
                            name=_string_value(name_node),
                            alias=node_text(alias_node) if alias_node is not None else None,
                            span=Span(spec.start_byte, spec.end_byte),
                            type_only=_has_type_keyword(spec),
                        )
                    )

    return ImportStatement(
        source=_string_value(source_node),
        span=Span(node.start_byte, node.end_byte),
        source_span=Span(source_node.start_byte, source_node.end_byte),
        line=node.start_point[0] + 1,
        type_only=_has_type_keyword(node),
        default=default,
        namespace=namespace,
        named=tuple(named),
    )


def collect_imports(root: Any) -> list[ImportStatement]:
    """All top-level import statements, in source order."""
    imports: list[ImportStatement] = []
    for child in root.children:
        if child.type == "import_statement":
            parsed = parse_import(child)
            if parsed is not None:
                imports.append(parsed)
    return imports


def iter_nodes(root: Any) -> Iterator[Any]:
    """Pre-order traversal without recursion (deeply nested code is common)."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def _enclosing_scope(node: Any) -> Any:
    current = node.parent
    while current is not None and current.type not in SCOPE_TYPES:
        current = current.parent
    return current


def _pattern_names(node: Any) -> Iterator[Any]:
    """Identifier nodes bound by a (possibly destructuring) pattern."""
    if node is None:
        return
    if node.type in _PATTERN_LEAVES:
        yield node
        return
    if node.type == "pair_pattern":
        yield from _pattern_names(node.child_by_field_name("value"))
        return
    if node.type == "assignment_pattern":
        yield from _pattern_names(node.child_by_field_name("left"))
        return
    if node.type == "object_assignment_pattern":
        yield from _pattern_names(node.child_by_field_name("left"))
        return
    if node.type in ("object_pattern", "array_pattern", "rest_pattern"):
        for child in node.named_children:
            yield from _pattern_names(child)


def _declare(index: ScopeIndex, scope: Any, name_node: Any, kind: str) -> None:
    if scope is None or name_node is None:
        return
    name = node_text(name_node)
    if not name:
        return
    index.declarations.setdefault(scope.id, {})[name] = Declaration(
        name=name,
        kind=kind,
        span=Span(name_node.start_byte, name_node.end_byte),
    )


def _declare_parameters(index: ScopeIndex, function: Any) -> None:
    single = function.child_by_field_name("parameter")
    if single is not None:
        for ident in _pattern_names(single):
            _declare(index, function, ident, "parameter")
    params = function.child_by_field_name("parameters")
    if params is None:
        return
    for param in params.named_children:
        target = param.child_by_field_name("pattern") or param
        for ident in _pattern_names(target):
            _declare(index, function, ident, "parameter")


def build_scope_index(root: Any, imports: list[ImportStatement]) -> ScopeIndex:
    """Index every local declaration and every value import of a file."""
    index = ScopeIndex()

    for statement in imports:
        if statement.type_only:
            continue
        if statement.default:
            index.imports[statement.default] = (statement, None)
        if statement.namespace:
            index.imports[statement.namespace] = (statement, None)
        for spec in statement.named:
            if not spec.type_only:
                index.imports[spec.local] = (statement, spec)

    for node in iter_nodes(root):
        kind = node.type
        if kind == "variable_declarator":
            scope = _enclosing_scope(node)
            for ident in _pattern_names(node.child_by_field_name("name")):
                _declare(index, scope, ident, "variable")
        elif kind in ("function_declaration", "generator_function_declaration", "class_declaration"):
            _declare(
                index,
                _enclosing_scope(node),
                node.child_by_field_name("name"),
                "class" if kind == "class_declaration" else "function",
            )
            if kind != "class_declaration":
                _declare_parameters(index, node)
        elif kind in ("function_expression", "function", "generator_function", "arrow_function"):
            # A named function expression binds its name inside itself only
            name_node = node.child_by_field_name("name")
            if name_node is not None:
                _declare(index, node, name_node, "function")
            _declare_parameters(index, node)
        elif kind == "method_definition":
            _declare_parameters(index, node)
        elif kind == "catch_clause":
            for ident in _pattern_names(node.child_by_field_name("parameter")):
                _declare(index, node, ident, "parameter")
        elif kind == "for_in_statement":
            for ident in _pattern_names(node.child_by_field_name("left")):
                _declare(index, node, ident, "variable")

    return index

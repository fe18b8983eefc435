"""Declaration synthesis: generated types -> TypeScript source text."""

from __future__ import annotations

import re
from collections.abc import Iterable

from pgtypegen.typegen.models import ColumnDescriptor, Field, Fields, GeneratedType
from pgtypegen.typegen.resolver import duplicate_warning

MARKER = "// Generated by pgtypegen"

TRUNCATE_AFTER = 100
TRUNCATE_KEEP = 40
TRUNCATION = "... [truncated] ..."

INDENT = "  "

_IDENTIFIER = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")


def simplify_query(text: str) -> str:
    """Collapse whitespace; long queries keep only their head and tail."""
    collapsed = " ".join(text.split())
    if len(collapsed) > TRUNCATE_AFTER:
        collapsed = collapsed[:TRUNCATE_KEEP] + TRUNCATION + collapsed[-TRUNCATE_KEEP:]
    return collapsed


def _doc_safe(text: str) -> str:
    return text.replace("*/", "*\\/")


def property_key(label: str) -> str:
    if _IDENTIFIER.match(label):
        return label
    return "'" + label.replace("\\", "\\\\").replace("'", "\\'") + "'"


def jsdoc(paragraphs: list[str], indent: str) -> list[str]:
    """``/** one line */`` for a single line, a block otherwise."""
    lines: list[str] = []
    for i, paragraph in enumerate(paragraphs):
        if i:
            lines.append("")
        lines.extend(_doc_safe(paragraph).splitlines() or [""])
    if not lines:
        return []
    if len(lines) == 1:
        return [f"{indent}/** {lines[0]} */"]
    body = [f"{indent} *" + (f" {line}" if line else "") for line in lines]
    return [f"{indent}/**", *body, f"{indent} */"]


def column_meta(column: ColumnDescriptor) -> str:
    parts: list[str] = []
    if column.attribution:
        parts.append(f"column: `{column.attribution}`")
    if column.not_null:
        parts.append("not null: `true`")
    parts.append(f"regtype: `{column.regtype}`")
    return ", ".join(parts)


def field_doc(field: Field) -> list[str]:
    paragraphs: list[str] = []
    if field.is_merged:
        paragraphs.append(duplicate_warning(field))
    for column in field.candidates:
        if column.comment:
            paragraphs.append(column.comment)
        paragraphs.append(column_meta(column))
    return paragraphs


def query_doc(queries: Iterable[str]) -> list[str]:
    simplified = sorted({simplify_query(q) for q in queries})
    if len(simplified) == 1:
        return [f"- query: `{simplified[0]}`"]
    return ["queries:\n" + "\n".join(f"- `{q}`" for q in simplified)]


def render_type(generated: GeneratedType, indent: str = "") -> list[str]:
    lines = jsdoc(query_doc(generated.queries), indent)
    if not isinstance(generated.shape, Fields):
        lines.append(f"{indent}export type {generated.name} = {{}}")
        return lines
    if not generated.shape.fields:
        lines.append(f"{indent}export interface {generated.name} {{}}")
        return lines

    lines.append(f"{indent}export interface {generated.name} {{")
    inner = indent + INDENT
    for i, field in enumerate(generated.shape.fields):
        if i:
            lines.append("")
        lines.extend(jsdoc(field_doc(field), inner))
        lines.append(f"{inner}{property_key(field.name)}: {field.ts_type}")
    lines.append(f"{indent}}}")
    return lines


def render_declarations(types: Iterable[GeneratedType], indent: str = "") -> list[str]:
    """Marker line followed by every type, separated by blank lines."""
    lines = [f"{indent}{MARKER}"]
    for generated in types:
        lines.append("")
        lines.extend(render_type(generated, indent))
    return lines


def render_inline(types: Iterable[GeneratedType], namespace: str) -> str:
    """The ``export declare namespace`` block appended to a source file."""
    lines = [f"export declare namespace {namespace} {{"]
    lines.extend(render_declarations(types, INDENT))
    lines.append("}")
    return "\n".join(lines)


def render_sibling(types: Iterable[GeneratedType]) -> str:
    """Contents of a sibling declarations module, ending with a newline."""
    return "\n".join(render_declarations(types)) + "\n"

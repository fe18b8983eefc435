"""Query scanner: find tagged SQL templates whose tag is the configured import.

Recognized forms, given ``tag.name = "sql"`` and ``tag.module = "slonik"``::

    import {sql} from 'slonik'          sql`...`       direct
    import {sql as s} from 'slonik'     s`...`         alias
    import * as db from 'slonik'        db.sql`...`    namespace
    import {sql} from 'slonik'          sql.Foo`...`   member (legacy, opt-in)

Anything else that looks like a tagged template (``otherTag`...```,
``gql.Foo`...```, a local ``sql`` shadowing the import) is ignored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from pgtypegen.config.models import TagConfig
from pgtypegen.parsing.bindings import (
    ImportStatement,
    NamedImport,
    ScopeIndex,
    build_scope_index,
    collect_imports,
    iter_nodes,
)
from pgtypegen.parsing.treesitter import ParseResult, TypeScriptParser, node_text
from pgtypegen.typegen.models import BindingKind, QueryUsage, Span

logger = structlog.get_logger()


@dataclass
class ScanResult:
    """Usages plus the parse artifacts the patcher needs."""

    path: Path
    parse: ParseResult
    imports: list[ImportStatement]
    usages: list[QueryUsage] = field(default_factory=list)


def _resolves_to_tag(
    index: ScopeIndex, identifier: Any, tag: TagConfig
) -> tuple[ImportStatement, NamedImport] | None:
    binding = index.resolve(identifier)
    if not isinstance(binding, tuple):
        return None
    statement, spec = binding
    if spec is None or statement.source != tag.module or spec.name != tag.name:
        return None
    return statement, spec


def _resolves_to_namespace(index: ScopeIndex, identifier: Any, tag: TagConfig) -> bool:
    binding = index.resolve(identifier)
    if not isinstance(binding, tuple):
        return False
    statement, spec = binding
    return spec is None and statement.namespace == node_text(identifier) and statement.source == tag.module


def classify_tag(
    index: ScopeIndex, tag_node: Any, tag: TagConfig, *, allow_members: bool = False
) -> BindingKind | None:
    """Return how ``tag_node`` refers to the query tag, or None if it doesn't."""
    if tag_node.type == "identifier":
        resolved = _resolves_to_tag(index, tag_node, tag)
        if resolved is None:
            return None
        _statement, spec = resolved
        return "alias" if spec.alias and spec.alias != spec.name else "direct"

    if tag_node.type == "member_expression":
        obj = tag_node.child_by_field_name("object")
        prop = tag_node.child_by_field_name("property")
        if obj is None or prop is None or obj.type != "identifier":
            return None
        if node_text(prop) == tag.name and _resolves_to_namespace(index, obj, tag):
            return "namespace"
        if allow_members and _resolves_to_tag(index, obj, tag) is not None:
            return "member"
    return None


def _split_call(call: Any, content: bytes) -> tuple[Any, Any | None, Span | None] | None:
    """Return (tag node, template node, type-argument span) for a tagged template call.

    Depending on the grammar version, ``sql<T>`...``` exposes its type
    arguments on the call itself or wraps the tag in an
    ``instantiation_expression``; both are handled.
    """
    template = call.child_by_field_name("arguments")
    if template is None or template.type != "template_string":
        return None
    function = call.child_by_field_name("function")
    if function is None:
        return None

    type_args = call.child_by_field_name("type_arguments")
    if function.type == "instantiation_expression":
        inner = function.child_by_field_name("function") or function.named_children[0]
        for child in function.named_children:
            if child.type == "type_arguments":
                type_args = child
        function = inner

    if type_args is not None:
        return function, template, Span(type_args.start_byte, type_args.end_byte)

    between = content[function.end_byte : template.start_byte]
    stripped = between.strip()
    if stripped.startswith(b"<") and stripped.endswith(b">"):
        offset = function.end_byte + between.index(b"<")
        return function, template, Span(offset, offset + len(stripped))
    return function, template, None


def _split_comparison(node: Any) -> tuple[Any, Any, Span] | None:
    """Same as ``_split_call`` for grammars that read ``sql<T>`...``` as ``(sql < T) > `...```."""
    template = node.child_by_field_name("right")
    if template is None or template.type != "template_string":
        return None
    closing = node.child_by_field_name("operator")
    left = node.child_by_field_name("left")
    if closing is None or closing.type != ">" or left is None or left.type != "binary_expression":
        return None
    opening = left.child_by_field_name("operator")
    tag_node = left.child_by_field_name("left")
    if opening is None or opening.type != "<" or tag_node is None:
        return None
    if tag_node.type not in ("identifier", "member_expression"):
        return None
    return tag_node, template, Span(opening.start_byte, closing.end_byte)


def _split_usage(node: Any, content: bytes) -> tuple[Any, Any | None, Span | None] | None:
    if node.type == "call_expression":
        return _split_call(node, content)
    if node.type == "binary_expression":
        return _split_comparison(node)
    return None


def _holes(template: Any, content: bytes) -> tuple[Span, ...]:
    """${...} spans as character offsets into the decoded template text."""
    base = template.start_byte + 1
    spans: list[Span] = []
    for child in template.named_children:
        if child.type != "template_substitution":
            continue
        start = len(content[base : child.start_byte].decode("utf-8"))
        end = start + len(content[child.start_byte : child.end_byte].decode("utf-8"))
        spans.append(Span(start, end))
    return tuple(spans)


def scan_tree(
    path: Path,
    parse: ParseResult,
    tag: TagConfig,
    *,
    allow_members: bool = False,
) -> ScanResult:
    """Find query usages in an already-parsed file, in source order."""
    root = parse.root_node
    content = parse.content
    imports = collect_imports(root)
    result = ScanResult(path=path, parse=parse, imports=imports)

    has_tag_import = any(
        statement.source == tag.module and not statement.type_only for statement in imports
    )
    if not has_tag_import:
        return result

    index = build_scope_index(root, imports)
    for node in iter_nodes(root):
        split = _split_usage(node, content)
        if split is None:
            continue
        tag_node, template, type_span = split
        binding = classify_tag(index, tag_node, tag, allow_members=allow_members)
        if binding is None:
            continue

        template_bytes = content[template.start_byte + 1 : template.end_byte - 1]
        result.usages.append(
            QueryUsage(
                path=path,
                line=tag_node.start_point[0] + 1,
                call=Span(node.start_byte, node.end_byte),
                tag=Span(tag_node.start_byte, tag_node.end_byte),
                tag_text=node_text(tag_node),
                binding=binding,
                template=template_bytes.decode("utf-8"),
                holes=_holes(template, content),
                type_arguments=type_span,
                type_arguments_text=(
                    content[type_span.start : type_span.end].decode("utf-8") if type_span else None
                ),
            )
        )

    result.usages.sort(key=lambda usage: usage.call.start)
    logger.debug("file_scanned", path=str(path), usages=len(result.usages))
    return result


def scan_file(
    path: Path,
    content: bytes,
    tag: TagConfig,
    *,
    parser: TypeScriptParser | None = None,
    allow_members: bool = False,
) -> ScanResult:
    """Parse and scan one file.

    Raises:
        ScanError: the file is not TypeScript or does not parse cleanly.
    """
    parser = parser or TypeScriptParser()
    parse = parser.parse(path, content)
    return scan_tree(path, parse, tag, allow_members=allow_members)

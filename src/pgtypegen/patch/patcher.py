"""Source patching: annotate query tags and keep the declarations in sync.

All edits for a file are computed against the original bytes and applied
once. Only three regions are ever touched: the type arguments right after a
query tag, the generated declarations block (or its sibling module and the
import of it), and nothing else::

    sql`select 1 as a`             ->  sql<queries.A>`select 1 as a`
    (end of file)                  ->  export declare namespace queries { ... }

Rerunning on patched output produces no edits.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from pgtypegen.config.models import OutputConfig
from pgtypegen.core.errors import WriteError
from pgtypegen.parsing.bindings import ImportStatement
from pgtypegen.parsing.scanner import ScanResult
from pgtypegen.parsing.treesitter import node_text
from pgtypegen.patch.edits import TextEdit, apply_edits, delete_file, line_span, write_atomic
from pgtypegen.typegen.models import GeneratedType, QueryUsage, Resolution, Span, Typed
from pgtypegen.typegen.render import MARKER, render_inline, render_sibling

logger = structlog.get_logger()

# Given a source path, where its declarations go: None means inline
PlacementPolicy = Callable[[Path], Path | None]

_MODULE_NODES = frozenset({"internal_module", "module"})


def inline_placement(path: Path) -> Path | None:  # noqa: ARG001
    return None


def sibling_placement(dirname: str) -> PlacementPolicy:
    """``src/a.ts`` -> ``src/<dirname>/a.ts``."""

    def place(path: Path) -> Path | None:
        return path.parent / dirname / path.name

    return place


def import_specifier(source: Path, target: Path) -> str:
    """Relative module specifier from ``source`` to ``target``, extension dropped."""
    rel = os.path.relpath(target.with_suffix(""), source.parent)
    rel = Path(rel).as_posix()
    return rel if rel.startswith(".") else f"./{rel}"


def is_generated_text(content: bytes | str) -> bool:
    """True for content whose first line is the generated marker."""
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")
    return content.split("\n", 1)[0].strip() == MARKER


@dataclass
class PatchPlan:
    """Everything that must change for one source file."""

    path: Path
    content: bytes | None = None  # new source bytes; None leaves the file alone
    sibling: Path | None = None
    sibling_content: bytes | None = None
    delete_sibling: bool = False
    annotated: int = 0

    @property
    def changed(self) -> bool:
        return self.content is not None or self.sibling_content is not None or self.delete_sibling


def _generated_type_arguments(text: str | None, namespace: str) -> bool:
    if not text:
        return False
    inner = text.strip()[1:-1].strip()
    return inner.startswith(f"{namespace}.")


def annotation_edits(
    usages: Sequence[QueryUsage], resolutions: Sequence[Resolution], namespace: str
) -> list[TextEdit]:
    """Insert, replace or drop ``<namespace.Name>`` after each tag.

    Hand-written type arguments are never touched.
    """
    edits: list[TextEdit] = []
    for usage, resolution in zip(usages, resolutions, strict=True):
        generated = _generated_type_arguments(usage.type_arguments_text, namespace)
        if usage.type_arguments is not None and not generated:
            continue

        if isinstance(resolution, Typed):
            wanted = f"<{namespace}.{resolution.type_name}>"
            if usage.type_arguments is None:
                edits.append(TextEdit.insert(usage.tag.end, wanted))
            elif usage.type_arguments_text != wanted:
                edits.append(TextEdit(usage.type_arguments, wanted))
        elif usage.type_arguments is not None:
            edits.append(TextEdit.delete(usage.type_arguments))
    return edits


def _module_node(statement: Any) -> Any | None:
    """The namespace/module declared by a top-level statement, if any."""
    node = statement
    for _ in range(3):
        if node.type in _MODULE_NODES:
            return node
        if node.type not in ("export_statement", "ambient_declaration", "expression_statement"):
            return None
        declaration = node.child_by_field_name("declaration")
        if declaration is None:
            named = [child for child in node.named_children if child.type != "comment"]
            declaration = named[0] if named else None
        if declaration is None:
            return None
        node = declaration
    return node if node.type in _MODULE_NODES else None


def _starts_with_marker(module: Any) -> bool:
    body = module.child_by_field_name("body")
    if body is None or not body.named_children:
        return False
    first = body.named_children[0]
    return first.type == "comment" and node_text(first).strip() == MARKER


def find_generated_block(root: Any, namespace: str) -> Span | None:
    """Span of the top-level statement holding the marked generated namespace.

    Only a namespace whose body opens with the marker comment counts.
    """
    for statement in root.children:
        module = _module_node(statement)
        if module is None:
            continue
        name = module.child_by_field_name("name")
        if name is None or node_text(name) != namespace:
            continue
        if _starts_with_marker(module):
            return Span(statement.start_byte, statement.end_byte)
    return None


def _removal_span(content: bytes, span: Span) -> Span:
    """Extend a block span backwards over the whitespace separating it."""
    start = span.start
    while start > 0 and content[start - 1 : start].isspace():
        start -= 1
    end = span.end
    if start == 0:
        while end < len(content) and content[end : end + 1].isspace():
            end += 1
    return Span(start, end)


def block_edits(
    content: bytes, existing: Span | None, block: str | None
) -> list[TextEdit]:
    """Replace, append or remove the inline declarations block."""
    if block is None:
        if existing is None:
            return []
        return [TextEdit.delete(_removal_span(content, existing))]

    if existing is not None:
        if content[existing.start : existing.end] == block.encode("utf-8"):
            return []
        return [TextEdit(existing, block)]

    prefix = "" if not content or content.endswith(b"\n") else "\n"
    return [TextEdit.insert(len(content), f"{prefix}\n{block}\n")]


def find_namespace_import(imports: Sequence[ImportStatement], namespace: str) -> ImportStatement | None:
    """An ``import * as <namespace>`` (value or type-only) statement."""
    for statement in imports:
        if statement.namespace == namespace and not statement.default and not statement.named:
            return statement
    return None


def import_edits(
    content: bytes,
    imports: Sequence[ImportStatement],
    namespace: str,
    specifier: str,
    *,
    wanted: bool,
) -> list[TextEdit]:
    """Make exactly one namespace import point at the sibling, or drop it."""
    existing = find_namespace_import(imports, namespace)

    if not wanted:
        if existing is None or existing.source != specifier:
            return []
        return [TextEdit.delete(line_span(content, existing.span))]

    if existing is not None:
        if existing.source == specifier:
            return []
        quote = content[existing.source_span.start : existing.source_span.start + 1].decode()
        return [TextEdit(existing.source_span, f"{quote}{specifier}{quote}")]

    statement = f"import * as {namespace} from '{specifier}'\n"
    offset = imports[0].span.start if imports else 0
    return [TextEdit.insert(offset, statement)]


def plan_patch(
    scan: ScanResult,
    resolutions: Sequence[Resolution],
    types: Sequence[GeneratedType],
    output: OutputConfig,
    placement: PlacementPolicy = inline_placement,
) -> PatchPlan:
    """Compute the new source (and sibling) contents for one file.

    Raises:
        WriteError: the sibling path holds a file that was not generated.
    """
    content = scan.parse.content
    namespace = output.namespace
    plan = PatchPlan(path=scan.path)

    edits = annotation_edits(scan.usages, resolutions, namespace)
    plan.annotated = sum(1 for r in resolutions if isinstance(r, Typed))
    existing_block = find_generated_block(scan.parse.root_node, namespace)
    sibling = placement(scan.path)

    if sibling is None:
        block = render_inline(types, namespace) if types else None
        edits.extend(block_edits(content, existing_block, block))
    else:
        plan.sibling = sibling
        edits.extend(block_edits(content, existing_block, None))
        specifier = import_specifier(scan.path, sibling)
        edits.extend(
            import_edits(content, scan.imports, namespace, specifier, wanted=bool(types))
        )
        current = sibling.read_bytes() if sibling.exists() else None
        if types:
            if current is not None and not is_generated_text(current):
                raise WriteError.not_generated(str(sibling))
            wanted = render_sibling(types).encode("utf-8")
            if current != wanted:
                plan.sibling_content = wanted
        elif current is not None and is_generated_text(current):
            plan.delete_sibling = True

    if edits:
        patched = apply_edits(content, edits)
        if patched != content:
            plan.content = patched
    return plan


def apply_plan(plan: PatchPlan) -> list[Path]:
    """Persist a plan: sibling first, then the source. Returns touched paths.

    Raises:
        WriteError: a write or delete failed; earlier writes are kept.
    """
    touched: list[Path] = []
    if plan.sibling is not None and plan.sibling_content is not None:
        write_atomic(plan.sibling, plan.sibling_content)
        touched.append(plan.sibling)
        logger.debug("sibling_written", path=str(plan.sibling))
    if plan.content is not None:
        write_atomic(plan.path, plan.content)
        touched.append(plan.path)
        logger.debug("file_written", path=str(plan.path))
    if plan.sibling is not None and plan.delete_sibling:
        delete_file(plan.sibling)
        touched.append(plan.sibling)
        logger.debug("sibling_deleted", path=str(plan.sibling))
    return touched

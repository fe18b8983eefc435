"""Tests for patch/patcher.py.

Covers:
- annotation_edits() on hand-written, generated and missing type arguments
- plan_patch() in inline and sibling mode, including idempotent reruns
- Removal of stale blocks, sibling modules and imports
"""

from __future__ import annotations

from pathlib import Path

import pytest

from pgtypegen.config.models import OutputConfig, TagConfig
from pgtypegen.core.errors import ErrorCode, WriteError
from pgtypegen.parsing.scanner import ScanResult, scan_file
from pgtypegen.parsing.treesitter import TypeScriptParser
from pgtypegen.patch.edits import apply_edits
from pgtypegen.patch.patcher import (
    annotation_edits,
    apply_plan,
    import_specifier,
    is_generated_text,
    plan_patch,
    sibling_placement,
)
from pgtypegen.typegen.models import ColumnDescriptor, Field, Fields, GeneratedType, Typed, Unresolved
from pgtypegen.typegen.render import MARKER, render_inline

OUTPUT = OutputConfig()
SOURCE = "import {sql} from 'slonik'\n\nexport const q = sql`select 1 as a`\n"


def _a_type() -> GeneratedType:
    column = ColumnDescriptor(label="a", regtype="integer")
    return GeneratedType(
        name="A",
        shape=Fields(fields=(Field(name="a", ts_type="number | null", candidates=(column,)),)),
        queries={"select 1 as a"},
    )


def _scan(parser: TypeScriptParser, path: Path, content: str | bytes) -> ScanResult:
    data = content.encode() if isinstance(content, str) else content
    return scan_file(path, data, TagConfig(), parser=parser)


class TestAnnotationEdits:
    """Type argument edits per usage."""

    def _edited(self, parser: TypeScriptParser, source: str, resolution) -> str:
        scan = _scan(parser, Path("a.ts"), source)
        edits = annotation_edits(scan.usages, [resolution], "queries")
        return apply_edits(source.encode(), edits).decode()

    def test_inserts_missing(self, parser: TypeScriptParser) -> None:
        out = self._edited(parser, SOURCE, Typed("A"))

        assert "sql<queries.A>`select 1 as a`" in out

    def test_replaces_stale_generated(self, parser: TypeScriptParser) -> None:
        source = SOURCE.replace("sql`", "sql<queries.Old>`")

        out = self._edited(parser, source, Typed("A"))

        assert "sql<queries.A>`" in out
        assert "Old" not in out

    def test_keeps_hand_written(self, parser: TypeScriptParser) -> None:
        source = SOURCE.replace("sql`", "sql<{a: number}>`")

        assert self._edited(parser, source, Typed("A")) == source

    def test_removes_generated_when_unresolved(self, parser: TypeScriptParser) -> None:
        source = SOURCE.replace("sql`", "sql<queries.A>`")

        assert self._edited(parser, source, Unresolved("describe-failed")) == SOURCE

    def test_unresolved_without_annotation_untouched(self, parser: TypeScriptParser) -> None:
        assert self._edited(parser, SOURCE, Unresolved("multi-statement")) == SOURCE


class TestPlanInline:
    """Inline namespace mode."""

    def test_appends_block(self, tmp_path: Path, parser: TypeScriptParser) -> None:
        path = tmp_path / "a.ts"
        scan = _scan(parser, path, SOURCE)

        plan = plan_patch(scan, [Typed("A")], [_a_type()], OUTPUT)

        expected = (
            SOURCE.replace("sql`", "sql<queries.A>`") + "\n" + render_inline([_a_type()], "queries") + "\n"
        )
        assert plan.content is not None
        assert plan.content.decode() == expected
        assert plan.annotated == 1

    def test_rerun_is_noop(self, tmp_path: Path, parser: TypeScriptParser) -> None:
        path = tmp_path / "a.ts"
        first = plan_patch(_scan(parser, path, SOURCE), [Typed("A")], [_a_type()], OUTPUT)
        assert first.content is not None

        second = plan_patch(_scan(parser, path, first.content), [Typed("A")], [_a_type()], OUTPUT)

        assert second.content is None
        assert not second.changed

    def test_replaces_outdated_block(self, tmp_path: Path, parser: TypeScriptParser) -> None:
        path = tmp_path / "a.ts"
        stale = (
            SOURCE.replace("sql`", "sql<queries.A>`")
            + "\nexport declare namespace queries {\n"
            + f"  {MARKER}\n\n  export interface A {{\n    a: string\n  }}\n}}\n"
        )

        plan = plan_patch(_scan(parser, path, stale), [Typed("A")], [_a_type()], OUTPUT)

        assert plan.content is not None
        text = plan.content.decode()
        assert "a: string" not in text
        assert text.count("export declare namespace queries") == 1
        assert text.endswith(render_inline([_a_type()], "queries") + "\n")

    def test_removes_block_when_nothing_typed(self, tmp_path: Path, parser: TypeScriptParser) -> None:
        path = tmp_path / "a.ts"
        typed = plan_patch(_scan(parser, path, SOURCE), [Typed("A")], [_a_type()], OUTPUT).content
        assert typed is not None

        plan = plan_patch(_scan(parser, path, typed), [Unresolved("describe-failed")], [], OUTPUT)

        assert plan.content is not None
        assert plan.content.decode() == SOURCE

    def test_unmarked_namespace_left_alone(self, tmp_path: Path, parser: TypeScriptParser) -> None:
        """A hand-written namespace with the same name isn't treated as generated."""
        path = tmp_path / "a.ts"
        source = SOURCE + "\nexport declare namespace queries {\n  export type Mine = string\n}\n"

        plan = plan_patch(_scan(parser, path, source), [Unresolved("describe-failed")], [], OUTPUT)

        assert plan.content is None

    def test_marker_not_first_is_hand_written(self, tmp_path: Path, parser: TypeScriptParser) -> None:
        """Only a namespace whose body opens with the marker comment is generated."""
        path = tmp_path / "a.ts"
        source = (
            SOURCE
            + "\nexport namespace queries {\n"
            + f"  export const note = '{MARKER}'\n"
            + f"  {MARKER}\n"
            + "}\n"
        )

        plan = plan_patch(_scan(parser, path, source), [Unresolved("describe-failed")], [], OUTPUT)

        assert plan.content is None


class TestPlanSibling:
    """Sibling module mode."""

    def test_writes_sibling_and_import(self, tmp_path: Path, parser: TypeScriptParser) -> None:
        path = tmp_path / "src" / "a.ts"
        path.parent.mkdir()
        path.write_text(SOURCE)
        placement = sibling_placement("__sql__")

        plan = plan_patch(_scan(parser, path, SOURCE), [Typed("A")], [_a_type()], OUTPUT, placement)
        touched = apply_plan(plan)

        sibling = tmp_path / "src" / "__sql__" / "a.ts"
        assert touched == [sibling, path]
        assert sibling.read_text().startswith(MARKER + "\n")
        text = path.read_text()
        assert text.startswith("import * as queries from './__sql__/a'\nimport {sql} from 'slonik'\n")
        assert "sql<queries.A>`" in text
        assert "export declare namespace" not in text

        rerun = plan_patch(_scan(parser, path, path.read_bytes()), [Typed("A")], [_a_type()], OUTPUT, placement)
        assert not rerun.changed

    def test_sibling_removed_when_nothing_typed(self, tmp_path: Path, parser: TypeScriptParser) -> None:
        path = tmp_path / "a.ts"
        path.write_text(SOURCE)
        placement = sibling_placement("__sql__")
        apply_plan(plan_patch(_scan(parser, path, SOURCE), [Typed("A")], [_a_type()], OUTPUT, placement))

        plan = plan_patch(
            _scan(parser, path, path.read_bytes()), [Unresolved("describe-failed")], [], OUTPUT, placement
        )
        apply_plan(plan)

        assert not (tmp_path / "__sql__" / "a.ts").exists()
        assert path.read_text() == SOURCE

    def test_hand_written_sibling_refused(self, tmp_path: Path, parser: TypeScriptParser) -> None:
        path = tmp_path / "a.ts"
        path.write_text(SOURCE)
        sibling = tmp_path / "__sql__" / "a.ts"
        sibling.parent.mkdir()
        sibling.write_text("export const handWritten = 42\n")

        placement = sibling_placement("__sql__")

        with pytest.raises(WriteError) as exc_info:
            plan_patch(_scan(parser, path, SOURCE), [Typed("A")], [_a_type()], OUTPUT, placement)

        assert exc_info.value.code == ErrorCode.WRITE_NOT_GENERATED
        assert sibling.read_text() == "export const handWritten = 42\n"


class TestHelpers:
    """Small helpers."""

    def test_import_specifier(self) -> None:
        assert import_specifier(Path("/p/src/a.ts"), Path("/p/src/__sql__/a.ts")) == "./__sql__/a"
        assert import_specifier(Path("/p/src/a.ts"), Path("/p/gen/a.ts")) == "../gen/a"

    def test_is_generated_text(self) -> None:
        assert is_generated_text(f"{MARKER}\nexport type _void = {{}}\n")
        assert is_generated_text(MARKER.encode())
        assert not is_generated_text(f"// header\n{MARKER}\n")

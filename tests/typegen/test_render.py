"""Tests for typegen/render.py declaration text."""

from __future__ import annotations

from pgtypegen.typegen.models import ColumnDescriptor, Field, Fields, GeneratedType, TableRef, Void
from pgtypegen.typegen.render import (
    MARKER,
    TRUNCATION,
    jsdoc,
    property_key,
    render_inline,
    render_sibling,
    render_type,
    simplify_query,
)

ID_COLUMN = ColumnDescriptor(
    label="id",
    regtype="integer",
    not_null=True,
    table=TableRef(name="test_table", schema="public"),
    column="id",
    comment="The primary key",
)


def _type(name: str, *fields: Field, queries: set[str] | None = None) -> GeneratedType:
    return GeneratedType(name=name, shape=Fields(fields=fields), queries=queries or {"select 1"})


class TestSimplifyQuery:
    """Query text shown in docs."""

    def test_whitespace_collapsed(self) -> None:
        assert simplify_query("\n  select 1\n    as a\n") == "select 1 as a"

    def test_short_query_untouched(self) -> None:
        text = "select " + "x" * 93
        assert simplify_query(text) == text

    def test_long_query_truncated(self) -> None:
        text = "select " + ", ".join(f"c{i}" for i in range(40)) + " from some_table"

        simplified = simplify_query(text)

        assert simplified == text[:40] + TRUNCATION + text[-40:]


class TestPropertyKey:
    """Field names as object keys."""

    def test_identifier_unquoted(self) -> None:
        assert property_key("t_nn_aliased") == "t_nn_aliased"

    def test_non_identifier_quoted(self) -> None:
        assert property_key("?column?") == "'?column?'"

    def test_quote_escaped(self) -> None:
        assert property_key("it's") == "'it\\'s'"


class TestJsdoc:
    """Doc comment layout."""

    def test_single_line(self) -> None:
        assert jsdoc(["regtype: `integer`"], "  ") == ["  /** regtype: `integer` */"]

    def test_paragraphs(self) -> None:
        assert jsdoc(["one", "two"], "") == ["/**", " * one", " *", " * two", " */"]

    def test_comment_terminator_escaped(self) -> None:
        assert jsdoc(["a */ b"], "") == ["/** a *\\/ b */"]

    def test_empty(self) -> None:
        assert jsdoc([], "") == []


class TestRenderType:
    """Single declarations."""

    def test_attributed_field(self) -> None:
        generated = _type(
            "TestTable_id",
            Field(name="id", ts_type="number", candidates=(ID_COLUMN,)),
            queries={"select id from test_table"},
        )

        assert render_type(generated) == [
            "/** - query: `select id from test_table` */",
            "export interface TestTable_id {",
            "  /**",
            "   * The primary key",
            "   *",
            "   * column: `public.test_table.id`, not null: `true`, regtype: `integer`",
            "   */",
            "  id: number",
            "}",
        ]

    def test_fields_separated_by_blank_line(self) -> None:
        generated = _type(
            "A_b",
            Field(name="a", ts_type="number | null", candidates=(ColumnDescriptor("a", "integer"),)),
            Field(name="b", ts_type="string | null", candidates=(ColumnDescriptor("b", "text"),)),
        )

        assert render_type(generated)[1:] == [
            "export interface A_b {",
            "  /** regtype: `integer` */",
            "  a: number | null",
            "",
            "  /** regtype: `text` */",
            "  b: string | null",
            "}",
        ]

    def test_void(self) -> None:
        generated = GeneratedType(name="_void", shape=Void(), queries={"update test_table set n = 1"})

        assert render_type(generated) == [
            "/** - query: `update test_table set n = 1` */",
            "export type _void = {}",
        ]

    def test_no_fields(self) -> None:
        assert render_type(_type("Empty"))[-1] == "export interface Empty {}"

    def test_multiple_queries_sorted(self) -> None:
        generated = _type("A", queries={"select 2 as a", "select 1 as a"})

        assert render_type(generated)[:5] == [
            "/**",
            " * queries:",
            " * - `select 1 as a`",
            " * - `select 2 as a`",
            " */",
        ]

    def test_merged_field_warns_first(self) -> None:
        candidates = (ColumnDescriptor("a", "integer"), ColumnDescriptor("a", "text"))
        generated = _type(
            "A_a",
            Field(name="a", ts_type="(number | null) | (string | null)", candidates=candidates),
        )

        assert render_type(generated)[1:] == [
            "export interface A_a {",
            "  /**",
            "   * Warning: 2 columns detected for field a!",
            "   *",
            "   * regtype: `integer`",
            "   *",
            "   * regtype: `text`",
            "   */",
            "  a: (number | null) | (string | null)",
            "}",
        ]


class TestRenderBlocks:
    """Inline namespace and sibling module."""

    def test_inline(self) -> None:
        generated = _type(
            "A",
            Field(name="a", ts_type="number | null", candidates=(ColumnDescriptor("a", "integer"),)),
            queries={"select 1 as a"},
        )

        assert render_inline([generated], "queries") == "\n".join(
            [
                "export declare namespace queries {",
                f"  {MARKER}",
                "",
                "  /** - query: `select 1 as a` */",
                "  export interface A {",
                "    /** regtype: `integer` */",
                "    a: number | null",
                "  }",
                "}",
            ]
        )

    def test_sibling(self) -> None:
        generated = GeneratedType(name="_void", shape=Void(), queries={"delete from t"})

        assert render_sibling([generated]) == (
            f"{MARKER}\n\n/** - query: `delete from t` */\nexport type _void = {{}}\n"
        )

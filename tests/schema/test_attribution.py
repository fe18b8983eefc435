"""Tests for schema/attribution.py.

Covers:
- Column attribution for plain, qualified, aliased and star projections
- Outer-join nullability
- Never-null expressions
- Enum label lookup
- Fallbacks: subqueries, count mismatches, DML
"""

from __future__ import annotations

from typing import Any

import pytest
import sqlglot

from pgtypegen.schema.attribution import attribute, never_null
from pgtypegen.typegen.models import ColumnDescriptor, NormalizedQuery, TableRef

TEST_TABLE = TableRef(name="test_table", schema="public")


def _query(text: str) -> NormalizedQuery:
    return NormalizedQuery(text=text, analysis_text=text, statement_count=1, placeholder_count=0)


def _columns(*pairs: tuple[str, str]) -> tuple[ColumnDescriptor, ...]:
    return tuple(ColumnDescriptor(label=label, regtype=regtype) for label, regtype in pairs)


class TestAttribute:
    """attribute() against the test_table catalog."""

    def test_plain_columns(self, catalog: Any) -> None:
        result = attribute(
            _query("select id, t from test_table"),
            _columns(("id", "integer"), ("t", "text")),
            catalog,
        )

        id_, t = result.columns
        assert id_.attribution == "public.test_table.id"
        assert id_.not_null is True
        assert id_.comment == "The primary key"
        assert t.attribution == "public.test_table.t"
        assert t.not_null is False
        assert result.single_table == TEST_TABLE

    def test_star_expands_catalog_projection(self, catalog: Any) -> None:
        result = attribute(
            _query("select * from test_table"),
            _columns(("id", "integer"), ("t", "text"), ("n", "integer")),
            catalog,
        )

        assert [c.column for c in result.columns] == ["id", "t", "n"]

    def test_aliased_table_and_column(self, catalog: Any) -> None:
        result = attribute(
            _query("select tt.id as idalias, tt.t as talias from test_table tt"),
            _columns(("idalias", "integer"), ("talias", "text")),
            catalog,
        )

        assert [c.column for c in result.columns] == ["id", "t"]
        assert result.columns[0].not_null is True

    def test_left_join_side_is_nullable(self, catalog: Any) -> None:
        result = attribute(
            _query("select a.id, b.id from test_table a left join test_table b on a.id = b.n"),
            _columns(("id", "integer"), ("id", "integer")),
            catalog,
        )

        left, right = result.columns
        assert left.not_null is True
        assert right.not_null is False
        assert right.attribution == "public.test_table.id"

    def test_self_join_is_single_table(self, catalog: Any) -> None:
        result = attribute(
            _query("select a.id from test_table a join test_table b on a.id = b.id"),
            _columns(("id", "integer")),
            catalog,
        )

        assert result.single_table == TEST_TABLE

    def test_ambiguous_unqualified_column_not_attributed(self, catalog: Any) -> None:
        result = attribute(
            _query("select id from test_table a join test_table b on a.id = b.id"),
            _columns(("id", "integer")),
            catalog,
        )

        assert result.columns[0].attribution is None

    def test_count_is_never_null(self, catalog: Any) -> None:
        result = attribute(
            _query("select count(*) from test_table"),
            _columns(("count", "bigint")),
            catalog,
        )

        assert result.columns[0].not_null is True
        assert result.columns[0].attribution is None

    def test_subquery_source_has_no_single_table(self, catalog: Any) -> None:
        result = attribute(
            _query("select t from (select t from test_table) sub"),
            _columns(("t", "text")),
            catalog,
        )

        assert result.single_table is None
        assert result.columns[0].attribution is None

    def test_projection_count_mismatch_keeps_oracle_columns(self, catalog: Any) -> None:
        columns = _columns(("id", "integer"))

        result = attribute(_query("select id, t from test_table"), columns, catalog)

        assert result.columns == columns

    def test_insert_returning(self, catalog: Any) -> None:
        result = attribute(
            _query("insert into test_table (id, t) values (null, null) returning id"),
            _columns(("id", "integer")),
            catalog,
        )

        assert result.columns[0].attribution == "public.test_table.id"
        assert result.single_table == TEST_TABLE

    def test_enum_labels(self, catalog: Any) -> None:
        catalog.enums["mood"] = ("happy", "sad")

        result = attribute(
            _query("select 'happy'::mood as m, array['sad'::mood] as ms"),
            _columns(("m", "mood"), ("ms", "mood[]")),
            catalog,
        )

        assert [c.enum_labels for c in result.columns] == [("happy", "sad"), ("happy", "sad")]

    def test_unknown_table_keeps_oracle_data(self, catalog: Any) -> None:
        result = attribute(
            _query("select x from other_table"),
            _columns(("x", "integer")),
            catalog,
        )

        assert result.columns[0].attribution is None
        assert result.single_table == TableRef(name="other_table")

    @pytest.mark.parametrize("operator", ["union all", "union", "except", "intersect"])
    def test_set_operation_keeps_oracle_data(self, catalog: Any, operator: str) -> None:
        """No branch decides nullability or source for the combined column."""
        columns = _columns(("id", "integer"))

        result = attribute(
            _query(f"select id from test_table {operator} select null::int"),
            columns,
            catalog,
        )

        assert result.columns == columns
        assert result.sources == ()
        assert result.single_table is None

    def test_set_operation_still_gets_enum_labels(self, catalog: Any) -> None:
        catalog.enums["mood"] = ("happy", "sad")

        result = attribute(
            _query("select 'happy'::mood as m union select 'sad'::mood"),
            _columns(("m", "mood")),
            catalog,
        )

        assert result.columns[0].enum_labels == ("happy", "sad")


class TestNeverNull:
    """Expressions that can't produce null."""

    @pytest.mark.parametrize(
        ("sql", "expected"),
        [
            ("count(*)", True),
            ("count(id)", True),
            ("exists (select 1)", True),
            ("coalesce(n, 0)", True),
            ("coalesce(0, n)", True),
            ("coalesce(n, m)", False),
            ("coalesce(n, count(*))", True),
            ("(count(*))", True),
            ("sum(n)", False),
            ("n", False),
        ],
    )
    def test_never_null(self, sql: str, expected: bool) -> None:
        assert never_null(sqlglot.parse_one(sql, read="postgres")) is expected

    def test_none(self) -> None:
        assert never_null(None) is False

"""Static column attribution with sqlglot.

The oracle reports labels and types only. To document where a column comes
from, and whether it can be null, the query is parsed (with interpolations
replaced by ``null``) and its projections are matched by position with the
oracle's columns::

    select t.id, count(*) as n from test_table t
           ^^^^  ^^^^^^^^
           |     never null: count
           public.test_table.id (not null from pg_attribute)

Anything that cannot be attributed with certainty keeps oracle-only data.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field

import sqlglot
import structlog
from sqlglot import exp
from sqlglot.errors import SqlglotError

from pgtypegen.schema.catalog import CatalogColumn, SchemaCatalog
from pgtypegen.typegen.models import ColumnDescriptor, NormalizedQuery, TableRef
from pgtypegen.typegen.pgtypes import is_builtin

logger = structlog.get_logger()

_SET_OPERATIONS = (exp.Union, exp.Except, exp.Intersect)


@dataclass(frozen=True)
class Source:
    """A FROM/JOIN item. ``table`` is None for subqueries, CTEs and VALUES."""

    alias: str
    table: TableRef | None
    outer: bool = False  # on the nullable side of an outer join


@dataclass(frozen=True)
class Attribution:
    """Enriched columns plus the tables the statement reads from."""

    columns: tuple[ColumnDescriptor, ...]
    sources: tuple[Source, ...] = ()
    # Catalog-resolved tables, keyed by qualified name as written
    resolved: dict[str, TableRef] = field(default_factory=dict, compare=False)

    @property
    def single_table(self) -> TableRef | None:
        """The only table the statement reads from; self-joins count once."""
        if not self.sources or any(source.table is None for source in self.sources):
            return None
        tables = {
            self.resolved.get(source.table.qualified, source.table)
            for source in self.sources
            if source.table is not None
        }
        return tables.pop() if len(tables) == 1 else None


@dataclass(frozen=True)
class _Projected:
    node: exp.Expression | None
    column: CatalogColumn | None = None
    outer: bool = False


def parse_statement(text: str) -> exp.Expression | None:
    """Parse a single postgres statement, or None if sqlglot can't."""
    try:
        parsed = [node for node in sqlglot.parse(text, read="postgres") if node is not None]
    except SqlglotError as e:
        logger.debug("attribution_parse_failed", error=str(e).splitlines()[0] if str(e) else "")
        return None
    return parsed[0] if len(parsed) == 1 else None


def _unwrap(node: exp.Expression) -> exp.Expression:
    while isinstance(node, exp.Subquery) and isinstance(node.this, exp.Expression):
        node = node.this
    return node


def _arg(node: exp.Expression, *names: str) -> exp.Expression | None:
    for name in names:
        value = node.args.get(name)
        if value is not None:
            return value
    return None


def _cte_names(statement: exp.Expression) -> set[str]:
    return {cte.alias for cte in statement.find_all(exp.CTE) if cte.alias}


def _source(node: exp.Expression, ctes: set[str], outer: bool = False) -> Source:
    if isinstance(node, exp.Schema):
        node = node.this
    if isinstance(node, exp.Table) and isinstance(node.this, exp.Identifier):
        name = node.name
        schema = node.db or None
        alias = node.alias or name
        if schema is None and name in ctes:
            return Source(alias=alias, table=None, outer=outer)
        return Source(alias=alias, table=TableRef(name=name, schema=schema), outer=outer)
    return Source(alias=node.alias_or_name, table=None, outer=outer)


def _from_items(node: exp.Expression) -> list[exp.Expression]:
    from_ = _arg(node, "from", "from_")
    if from_ is None:
        return []
    items = [from_.this] if from_.this is not None else []
    items.extend(from_.expressions or [])
    return items


def collect_sources(statement: exp.Expression) -> list[Source]:
    """Top-level sources of a statement, in FROM/JOIN order."""
    ctes = _cte_names(statement)
    sources: list[Source] = []
    if isinstance(statement, (exp.Insert, exp.Update, exp.Delete)):
        sources.append(_source(statement.this, ctes))
    sources.extend(_source(item, ctes) for item in _from_items(statement))

    for join in statement.args.get("joins") or []:
        side = (join.side or "").upper()
        if side in ("RIGHT", "FULL"):
            sources = [dataclasses.replace(source, outer=True) for source in sources]
        sources.append(_source(join.this, ctes, outer=side in ("LEFT", "FULL")))
    return sources


def projections(statement: exp.Expression) -> list[exp.Expression] | None:
    """The output expressions: the SELECT list, or RETURNING for DML."""
    if isinstance(statement, exp.Select):
        return list(statement.expressions)
    if isinstance(statement, (exp.Insert, exp.Update, exp.Delete)):
        returning = statement.args.get("returning")
        return list(returning.expressions) if returning is not None else []
    return None


class _Expander:
    """Expands stars and resolves bare columns against catalog projections."""

    def __init__(self, sources: list[Source], catalog: SchemaCatalog) -> None:
        self._sources = sources
        self._catalog = catalog
        self._columns: dict[str, list[CatalogColumn] | None] = {}
        for source in sources:
            if source.table is not None and source.table.qualified not in self._columns:
                self._columns[source.table.qualified] = catalog.table_columns(source.table)

    def columns_of(self, source: Source) -> list[CatalogColumn] | None:
        if source.table is None:
            return None
        return self._columns.get(source.table.qualified)

    @property
    def resolved(self) -> dict[str, TableRef]:
        return {key: cols[0].table for key, cols in self._columns.items() if cols}

    def _by_alias(self, alias: str) -> Source | None:
        for source in self._sources:
            if source.alias == alias:
                return source
        return None

    def _star(self, sources: list[Source]) -> list[_Projected] | None:
        out: list[_Projected] = []
        for source in sources:
            columns = self.columns_of(source)
            if columns is None:
                return None
            out.extend(_Projected(node=None, column=c, outer=source.outer) for c in columns)
        return out

    def _column(self, node: exp.Column) -> _Projected:
        qualifier = node.table
        if qualifier:
            source = self._by_alias(qualifier)
            if source is None:
                return _Projected(node=node)
            matches = [(source, c) for c in self.columns_of(source) or () if c.name == node.name]
        else:
            if any(self.columns_of(source) is None for source in self._sources):
                # The name might come from a subquery we know nothing about
                return _Projected(node=node)
            matches = [
                (source, c)
                for source in self._sources
                for c in self.columns_of(source) or ()
                if c.name == node.name
            ]
            if len({id(source) for source, _c in matches}) > 1:
                return _Projected(node=node)
        if len(matches) != 1:
            return _Projected(node=node)
        source, column = matches[0]
        return _Projected(node=node, column=column, outer=source.outer)

    def expand(self, projection: exp.Expression) -> list[_Projected] | None:
        inner = projection.this if isinstance(projection, exp.Alias) else projection
        if isinstance(inner, exp.Star):
            return self._star(self._sources)
        if isinstance(inner, exp.Column):
            if inner.is_star:
                source = self._by_alias(inner.table)
                return self._star([source]) if source is not None else None
            return [self._column(inner)]
        return [_Projected(node=inner)]


def _is_literal(node: exp.Expression) -> bool:
    if isinstance(node, exp.Cast):
        return _is_literal(node.this)
    return isinstance(node, (exp.Literal, exp.Boolean))


def never_null(node: exp.Expression | None) -> bool:
    """Expressions whose value can't be null whatever the data."""
    if node is None:
        return False
    if isinstance(node, (exp.Paren, exp.Alias)):
        return never_null(node.this)
    if isinstance(node, (exp.Count, exp.Exists)):
        return True
    if isinstance(node, exp.Coalesce):
        args = [node.this, *node.expressions]
        return any(_is_literal(arg) or never_null(arg) for arg in args if arg is not None)
    return False


def _enum_labels(column: ColumnDescriptor, catalog: SchemaCatalog) -> tuple[str, ...] | None:
    if is_builtin(column.regtype):
        return None
    return catalog.enum_labels(column.regtype)


def _enrich(
    column: ColumnDescriptor, projected: _Projected | None, catalog: SchemaCatalog
) -> ColumnDescriptor:
    changes: dict[str, object] = {}
    if projected is not None and projected.column is not None:
        source = projected.column
        changes.update(
            table=source.table,
            column=source.name,
            not_null=source.not_null and not projected.outer,
            comment=source.comment,
        )
    elif projected is not None and never_null(projected.node):
        changes["not_null"] = True

    labels = _enum_labels(column, catalog)
    if labels:
        changes["enum_labels"] = labels
    return dataclasses.replace(column, **changes) if changes else column


def attribute(
    query: NormalizedQuery,
    columns: tuple[ColumnDescriptor, ...],
    catalog: SchemaCatalog,
) -> Attribution:
    """Enrich oracle columns with table, nullability, comment and enum data.

    Never raises for SQL sqlglot can't handle. Such queries, and set
    operations, keep the oracle columns (with enum labels looked up by type)
    and have no sources.
    """
    statement = parse_statement(query.analysis_text)
    if statement is not None:
        statement = _unwrap(statement)
    # Branches of a set operation may disagree on source and nullability
    if statement is None or isinstance(statement, _SET_OPERATIONS):
        return Attribution(columns=tuple(_enrich(c, None, catalog) for c in columns))

    sources = collect_sources(statement)
    expander = _Expander(sources, catalog)

    projected: list[_Projected] | None = []
    for projection in projections(statement) or []:
        expanded = expander.expand(projection)
        if expanded is None:
            projected = None
            break
        projected.extend(expanded)

    if projected is not None and len(projected) != len(columns):
        logger.debug(
            "attribution_count_mismatch",
            projections=len(projected),
            columns=len(columns),
        )
        projected = None

    enriched = tuple(
        _enrich(column, projected[i] if projected is not None else None, catalog)
        for i, column in enumerate(columns)
    )
    return Attribution(columns=enriched, sources=tuple(sources), resolved=expander.resolved)

"""Deterministic type names.

Names are derived, in order of preference, from:

1. the single table a query reads, when it returns every column of that
   table in table order (``select * from test_table`` -> ``TestTable``);
2. the single table plus the output labels
   (``select id, t from test_table`` -> ``TestTable_id_t``);
3. the output labels alone (``select 1 as a, 'two' as b`` -> ``A_b``);
4. a hash of the query text (``Anonymous1a2b3c``).
"""

from __future__ import annotations

import hashlib
import re
from collections.abc import Sequence

from pgtypegen.schema.catalog import CatalogColumn, SchemaCatalog
from pgtypegen.typegen.models import ColumnDescriptor, NormalizedQuery, TableRef

VOID_TYPE_NAME = "_void"

_WORD_SPLIT = re.compile(r"[^A-Za-z0-9]+")
_PLAIN_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def pascal_case(text: str) -> str:
    """``pg_advisory_lock`` -> ``PgAdvisoryLock``, ``?column?`` -> ``Column``."""
    return "".join(part[:1].upper() + part[1:] for part in _WORD_SPLIT.split(text) if part)


def camel_case(text: str) -> str:
    """``t_nn_aliased`` -> ``tNnAliased``."""
    pascal = pascal_case(text)
    return pascal[:1].lower() + pascal[1:]


def is_plain_identifier(label: str) -> bool:
    return bool(_PLAIN_IDENTIFIER.match(label))


def _join(head: str, labels: Sequence[str]) -> str:
    parts = [head, *(camel_case(label) for label in labels)]
    name = "_".join(part for part in parts if part)
    if name[:1].isdigit():
        name = f"_{name}"
    return name


def anonymous_name(query: NormalizedQuery) -> str:
    digest = hashlib.sha256(query.text.encode("utf-8")).hexdigest()
    return f"Anonymous{digest[:6]}"


def label_name(labels: Sequence[str]) -> str | None:
    """``PascalCase(first)_camelCase(rest)``, skipping unusable labels."""
    usable = [label for label in labels if pascal_case(label)]
    if not usable:
        return None
    return _join(pascal_case(usable[0]), usable[1:])


def _full_projection(columns: Sequence[ColumnDescriptor], projection: Sequence[CatalogColumn]) -> bool:
    """Every table column, in table order, under its own name."""
    if len(columns) != len(projection):
        return False
    return all(
        column.table == source.table and column.column == source.name and column.label == source.name
        for column, source in zip(columns, projection, strict=True)
    )


def derive_name(
    query: NormalizedQuery,
    columns: Sequence[ColumnDescriptor],
    table: TableRef | None,
    catalog: SchemaCatalog,
) -> str:
    """Base name for a field-bearing type, before collision suffixes."""
    labels = [column.label for column in columns]
    if table is not None and pascal_case(table.name):
        projection = catalog.table_columns(table)
        if projection and _full_projection(columns, projection):
            return pascal_case(table.name)
        if labels and all(is_plain_identifier(label) for label in labels):
            return _join(pascal_case(table.name), labels)

    return label_name(labels) or anonymous_name(query)


def with_suffix(base: str, taken: set[str]) -> str:
    """``base``, or ``base_1``, ``base_2``, ... whichever is free first."""
    if base not in taken:
        return base
    index = 1
    while f"{base}_{index}" in taken:
        index += 1
    return f"{base}_{index}"

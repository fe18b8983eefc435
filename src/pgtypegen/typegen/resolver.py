"""Type resolution: oracle result -> named, deduplicated generated type.

One ``TypeRegistry`` exists per source file. Queries with the same ordered
``(label, type)`` fields share a type, whose docs list every query; names
are unique within the file.
"""

from __future__ import annotations

from collections.abc import Mapping

import structlog

from pgtypegen.schema.attribution import attribute
from pgtypegen.schema.catalog import SchemaCatalog
from pgtypegen.schema.oracle import DescribeFailure, DescribeResult, VoidResult
from pgtypegen.typegen.models import (
    ColumnDescriptor,
    Field,
    Fields,
    GeneratedType,
    NormalizedQuery,
    Resolution,
    Typed,
    TypeShape,
    Unresolved,
    Void,
)
from pgtypegen.typegen.naming import VOID_TYPE_NAME, derive_name, with_suffix
from pgtypegen.typegen.pgtypes import nullable, ts_type

logger = structlog.get_logger()

ShapeKey = tuple[tuple[str, str], ...] | None


def column_type(column: ColumnDescriptor, type_map: Mapping[str, str] | None = None) -> str:
    base = ts_type(column.regtype, enum_labels=column.enum_labels, overrides=type_map)
    return base if column.not_null else nullable(base)


def duplicate_warning(field: Field) -> str:
    return f"Warning: {len(field.candidates)} columns detected for field {field.name}!"


def build_fields(
    columns: tuple[ColumnDescriptor, ...], type_map: Mapping[str, str] | None = None
) -> Fields:
    """Group columns by label; repeated labels become one union-typed field."""
    grouped: dict[str, list[ColumnDescriptor]] = {}
    for column in columns:
        grouped.setdefault(column.label, []).append(column)

    fields: list[Field] = []
    for label, candidates in grouped.items():
        if len(candidates) == 1:
            ts = column_type(candidates[0], type_map)
        else:
            ts = " | ".join(f"({column_type(c, type_map)})" for c in candidates)
        fields.append(Field(name=label, ts_type=ts, candidates=tuple(candidates)))
    return Fields(fields=tuple(fields))


def shape_key(shape: TypeShape) -> ShapeKey:
    if isinstance(shape, Void):
        return None
    return tuple((f.name, f.ts_type) for f in shape.fields)


class TypeRegistry:
    """Generated types of one file, in first-appearance order."""

    def __init__(self) -> None:
        self._by_key: dict[ShapeKey, GeneratedType] = {}
        self._order: list[GeneratedType] = []

    @property
    def types(self) -> list[GeneratedType]:
        return list(self._order)

    def __len__(self) -> int:
        return len(self._order)

    def get(self, name: str) -> GeneratedType | None:
        return next((t for t in self._order if t.name == name), None)

    def register(self, query: NormalizedQuery, shape: TypeShape, base_name: str) -> GeneratedType:
        key = shape_key(shape)
        existing = self._by_key.get(key)
        if existing is not None:
            existing.queries.add(query.text)
            return existing

        if isinstance(shape, Void):
            name = VOID_TYPE_NAME
        else:
            name = with_suffix(base_name, {t.name for t in self._order} | {VOID_TYPE_NAME})
        generated = GeneratedType(name=name, shape=shape, queries={query.text})
        if isinstance(shape, Fields):
            generated.warnings.extend(duplicate_warning(f) for f in shape.fields if f.is_merged)
        self._by_key[key] = generated
        self._order.append(generated)
        return generated


def format_failure(failure: DescribeFailure) -> str:
    lines = [
        "Describing query failed.",
        f"Query: {failure.query_sent}",
        f"Error: {failure.diagnostic}",
    ]
    if failure.hint:
        lines.append(f"Hint: {failure.hint}")
    return "\n".join(lines)


def resolve(
    query: NormalizedQuery,
    result: DescribeResult,
    catalog: SchemaCatalog,
    registry: TypeRegistry,
    type_map: Mapping[str, str] | None = None,
) -> Resolution:
    """Turn one oracle answer into a type reference, registering the type."""
    if isinstance(result, DescribeFailure):
        return Unresolved(reason="describe-failed", diagnostic=format_failure(result))

    if isinstance(result, VoidResult):
        generated = registry.register(query, Void(), VOID_TYPE_NAME)
        return Typed(type_name=generated.name)

    attribution = attribute(query, result.columns, catalog)
    shape = build_fields(attribution.columns, type_map)
    base = derive_name(query, attribution.columns, attribution.single_table, catalog)
    generated = registry.register(query, shape, base)

    for field in shape.fields:
        if field.is_merged:
            logger.warning(
                "duplicate_label",
                field=field.name,
                columns=len(field.candidates),
                type_name=generated.name,
            )
    return Typed(type_name=generated.name)

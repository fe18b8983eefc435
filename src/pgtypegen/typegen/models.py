"""Data model shared by the scan, describe, resolve and patch stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

# direct:    sql`...`          (imported under its own name)
# alias:     s`...`            (import {sql as s})
# namespace: db.sql`...`       (import * as db)
# member:    sql.Foo`...`      (legacy setupTypeGen tag, migration only)
BindingKind = Literal["direct", "alias", "namespace", "member"]

Severity = Literal["debug", "warning", "error"]


@dataclass(frozen=True)
class Span:
    """Half-open byte range into a file's UTF-8 content."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"Invalid span: {self.start} > {self.end}")


@dataclass(frozen=True)
class QueryUsage:
    """One tagged template literal whose tag resolves to the query tag import."""

    path: Path
    line: int
    call: Span
    tag: Span
    tag_text: str
    binding: BindingKind
    template: str  # text between the backticks, escapes untouched
    holes: tuple[Span, ...] = ()  # ${...} character spans within ``template``
    type_arguments: Span | None = None
    type_arguments_text: str | None = None

    @property
    def location(self) -> str:
        return f"{self.path}:{self.line}"


@dataclass(frozen=True)
class NormalizedQuery:
    """Query text ready for the oracle."""

    text: str  # interpolations replaced by $1, $2, ...
    analysis_text: str  # interpolations replaced by null, for static parsing
    statement_count: int
    placeholder_count: int

    @property
    def is_multi_statement(self) -> bool:
        return self.statement_count > 1


@dataclass(frozen=True)
class TableRef:
    """A table as named in a query or resolved through the catalog."""

    name: str
    schema: str | None = None

    @property
    def qualified(self) -> str:
        return f"{self.schema}.{self.name}" if self.schema else self.name


@dataclass(frozen=True)
class ColumnDescriptor:
    """One output column, as reported by the oracle and enriched by the catalog."""

    label: str
    regtype: str
    not_null: bool = False
    table: TableRef | None = None
    column: str | None = None
    comment: str | None = None
    enum_labels: tuple[str, ...] | None = None

    @property
    def attribution(self) -> str | None:
        if self.table is None or self.column is None:
            return None
        return f"{self.table.qualified}.{self.column}"


@dataclass(frozen=True)
class Field:
    """A field of a generated interface.

    Normally backed by one column; duplicate labels merge several candidates
    into a union-typed field.
    """

    name: str
    ts_type: str
    candidates: tuple[ColumnDescriptor, ...]

    @property
    def is_merged(self) -> bool:
        return len(self.candidates) > 1


@dataclass(frozen=True)
class Fields:
    """Shape of a query that returns columns."""

    fields: tuple[Field, ...]


@dataclass(frozen=True)
class Void:
    """Shape of a query that returns no columns (DML without RETURNING, DDL)."""


TypeShape = Fields | Void


@dataclass
class GeneratedType:
    """A named declaration shared by every query in a file with the same shape."""

    name: str
    shape: TypeShape
    queries: set[str] = field(default_factory=set)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_void(self) -> bool:
        return isinstance(self.shape, Void)


@dataclass(frozen=True)
class Typed:
    """A usage that resolved to a generated type."""

    type_name: str


@dataclass(frozen=True)
class Unresolved:
    """A usage for which no type could be produced; it stays unannotated."""

    reason: str
    diagnostic: str | None = None


Resolution = Typed | Unresolved


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal problem, keyed by file and line for the run report."""

    path: Path
    line: int | None
    severity: Severity
    message: str

    @property
    def location(self) -> str:
        return f"{self.path}:{self.line}" if self.line is not None else str(self.path)

    def __str__(self) -> str:
        return f"{self.location} {self.message}"

"""Schema catalog lookup: column metadata straight from pg_catalog.

The oracle only reports labels and types. The catalog adds what a type
declaration needs on top of that: the table a column came from, whether it
is ``NOT NULL``, its comment, and the labels of enum types.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Protocol

import psycopg2
import structlog
from psycopg2.extras import RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

from pgtypegen.config.models import DatabaseConfig
from pgtypegen.typegen.models import TableRef

logger = structlog.get_logger()

TABLE_COLUMNS_SQL = """
select
    n.nspname as schema_name,
    c.relname as table_name,
    a.attname as column_name,
    format_type(a.atttypid, a.atttypmod) as regtype,
    a.attnotnull as not_null,
    col_description(c.oid, a.attnum) as comment
from pg_catalog.pg_attribute a
join pg_catalog.pg_class c on c.oid = a.attrelid
join pg_catalog.pg_namespace n on n.oid = c.relnamespace
where a.attrelid = to_regclass(%s)
  and a.attnum > 0
  and not a.attisdropped
order by a.attnum
"""

ENUM_LABELS_SQL = """
select e.enumlabel
from pg_catalog.pg_enum e
where e.enumtypid = to_regtype(%s)
order by e.enumsortorder
"""


@dataclass(frozen=True)
class CatalogColumn:
    """One column of a table, as stored in pg_catalog."""

    table: TableRef
    name: str
    regtype: str
    not_null: bool
    comment: str | None = None


class SchemaCatalog(Protocol):
    """Read-only view of table and type metadata."""

    def table_columns(self, table: TableRef) -> list[CatalogColumn] | None: ...

    def describe_column(self, table: TableRef, column: str) -> CatalogColumn | None: ...

    def enum_labels(self, regtype: str) -> tuple[str, ...] | None: ...


class NullCatalog:
    """Catalog that knows nothing. Columns keep oracle-only data."""

    def table_columns(self, table: TableRef) -> list[CatalogColumn] | None:  # noqa: ARG002
        return None

    def describe_column(self, table: TableRef, column: str) -> CatalogColumn | None:  # noqa: ARG002
        return None

    def enum_labels(self, regtype: str) -> tuple[str, ...] | None:  # noqa: ARG002
        return None


class PostgresCatalog:
    """pg_catalog reader backed by a thread-safe psycopg2 pool.

    Results are cached for the lifetime of the instance, which is one run.
    The first database error disables the catalog; later lookups return
    None without touching the pool.
    """

    def __init__(self, pool: ThreadedConnectionPool) -> None:
        self._pool = pool
        self._cache: dict[tuple[str, str], Any] = {}
        self._lock = threading.Lock()
        self._disabled = False
        # getconn raises instead of blocking when the pool is exhausted
        self._slots = threading.BoundedSemaphore(pool.maxconn)

    @contextmanager
    def _cursor(self) -> Iterator[Any]:
        with self._slots:
            conn = self._pool.getconn()
            try:
                with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                    yield cursor
                conn.rollback()
            finally:
                self._pool.putconn(conn)

    def _cached(self, key: tuple[str, str], load: Any) -> Any:
        with self._lock:
            if key in self._cache:
                return self._cache[key]
            if self._disabled:
                return None
        try:
            value = load()
        except psycopg2.Error as e:
            with self._lock:
                if not self._disabled:
                    logger.warning("catalog_disabled", reason=str(e).strip())
                self._disabled = True
            return None
        with self._lock:
            self._cache[key] = value
        return value

    def _load_table(self, table: TableRef) -> list[CatalogColumn] | None:
        with self._cursor() as cursor:
            cursor.execute(TABLE_COLUMNS_SQL, (table.qualified,))
            rows = cursor.fetchall()
        if not rows:
            return None
        resolved = TableRef(name=rows[0]["table_name"], schema=rows[0]["schema_name"])
        return [
            CatalogColumn(
                table=resolved,
                name=row["column_name"],
                regtype=row["regtype"],
                not_null=bool(row["not_null"]),
                comment=row["comment"],
            )
            for row in rows
        ]

    def _load_enum(self, regtype: str) -> tuple[str, ...] | None:
        with self._cursor() as cursor:
            cursor.execute(ENUM_LABELS_SQL, (regtype,))
            rows = cursor.fetchall()
        return tuple(row["enumlabel"] for row in rows) or None

    def table_columns(self, table: TableRef) -> list[CatalogColumn] | None:
        return self._cached(("table", table.qualified), lambda: self._load_table(table))

    def describe_column(self, table: TableRef, column: str) -> CatalogColumn | None:
        for candidate in self.table_columns(table) or ():
            if candidate.name == column:
                return candidate
        return None

    def enum_labels(self, regtype: str) -> tuple[str, ...] | None:
        # Arrays of enums carry the element's labels
        base = regtype[:-2] if regtype.endswith("[]") else regtype
        return self._cached(("enum", base), lambda: self._load_enum(base))


@contextmanager
def open_catalog(config: DatabaseConfig) -> Iterator[SchemaCatalog]:
    """Open the catalog for one run.

    Yields a ``NullCatalog`` when enrichment is switched off or the database
    cannot be reached; a connection failure is logged once and is not fatal.
    """
    if not config.catalog:
        yield NullCatalog()
        return

    try:
        pool = ThreadedConnectionPool(1, config.pool_max_connections, dsn=config.url)
    except psycopg2.Error as e:
        logger.warning("catalog_unavailable", reason=str(e).strip())
        yield NullCatalog()
        return

    logger.debug("catalog_opened", max_connections=config.pool_max_connections)
    try:
        yield PostgresCatalog(pool)
    finally:
        pool.closeall()
        logger.debug("catalog_closed")

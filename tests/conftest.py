"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages, and
provides in-memory stand-ins for the database-backed oracle and catalog.
"""

from __future__ import annotations

import sys
import textwrap
import threading
from collections.abc import Callable
from pathlib import Path

import pytest

# Insert local src directory at the beginning of sys.path
# This ensures that the local pgtypegen package is used, not any installed one
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

# Force reimport of pgtypegen modules if already imported
for module_name in list(sys.modules.keys()):
    if module_name.startswith("pgtypegen"):
        del sys.modules[module_name]

from pgtypegen.config.models import DatabaseConfig, TypegenConfig  # noqa: E402
from pgtypegen.parsing.treesitter import TypeScriptParser  # noqa: E402
from pgtypegen.schema.catalog import CatalogColumn  # noqa: E402
from pgtypegen.schema.oracle import (  # noqa: E402
    Described,
    DescribeFailure,
    DescribeResult,
    VoidResult,
)
from pgtypegen.typegen.models import ColumnDescriptor, TableRef  # noqa: E402


def _collapse(text: str) -> str:
    return " ".join(text.split())


class FakeOracle:
    """Describes only the queries it was taught; everything else fails.

    Queries are matched with whitespace collapsed, so tests can register
    multi-line templates on one line.
    """

    def __init__(self) -> None:
        self._results: dict[str, DescribeResult] = {}
        self._lock = threading.Lock()
        self.calls: list[str] = []

    def add(self, text: str, *columns: tuple[str, str]) -> FakeOracle:
        self._results[_collapse(text)] = Described(
            columns=tuple(ColumnDescriptor(label=label, regtype=regtype) for label, regtype in columns)
        )
        return self

    def void(self, text: str) -> FakeOracle:
        self._results[_collapse(text)] = VoidResult()
        return self

    def describe(self, text: str) -> DescribeResult:
        with self._lock:
            self.calls.append(text)
        found = self._results.get(_collapse(text))
        if found is not None:
            return found
        return DescribeFailure(
            query_sent=text,
            diagnostic='ERROR:  relation "nope" does not exist',
            hint="Try moving comments to dedicated lines." if "--" in text else None,
        )


class FakeCatalog:
    """pg_catalog stand-in. Tables live in the ``public`` schema."""

    def __init__(self) -> None:
        self.tables: dict[str, list[CatalogColumn]] = {}
        self.enums: dict[str, tuple[str, ...]] = {}

    def add_table(self, name: str, *columns: tuple) -> FakeCatalog:
        table = TableRef(name=name, schema="public")
        self.tables[name] = [
            CatalogColumn(
                table=table,
                name=column[0],
                regtype=column[1],
                not_null=column[2] if len(column) > 2 else False,
                comment=column[3] if len(column) > 3 else None,
            )
            for column in columns
        ]
        return self

    def table_columns(self, table: TableRef) -> list[CatalogColumn] | None:
        if table.schema not in (None, "public"):
            return None
        return self.tables.get(table.name)

    def describe_column(self, table: TableRef, column: str) -> CatalogColumn | None:
        for candidate in self.table_columns(table) or ():
            if candidate.name == column:
                return candidate
        return None

    def enum_labels(self, regtype: str) -> tuple[str, ...] | None:
        return self.enums.get(regtype.removesuffix("[]"))


@pytest.fixture
def oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture
def catalog() -> FakeCatalog:
    """test_table(id integer primary key, t text, n integer)."""
    return FakeCatalog().add_table(
        "test_table",
        ("id", "integer", True, "The primary key"),
        ("t", "text"),
        ("n", "integer"),
    )


@pytest.fixture(scope="session")
def parser() -> TypeScriptParser:
    return TypeScriptParser()


@pytest.fixture
def config(tmp_path: Path) -> TypegenConfig:
    """Single-worker config rooted at tmp_path, catalog lookups off."""
    return TypegenConfig(root_dir=tmp_path, workers=1, database=DatabaseConfig(catalog=False))


@pytest.fixture
def write(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write a dedented file below tmp_path and return its path."""

    def _write(rel: str, content: str) -> Path:
        path = tmp_path / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(content).lstrip("\n"))
        return path

    return _write

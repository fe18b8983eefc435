"""Database-facing collaborators: the describe oracle and the pg_catalog reader."""

from pgtypegen.schema.attribution import Attribution, attribute
from pgtypegen.schema.catalog import (
    CatalogColumn,
    NullCatalog,
    PostgresCatalog,
    SchemaCatalog,
    open_catalog,
)
from pgtypegen.schema.oracle import (
    Described,
    DescribeFailure,
    DescribeResult,
    PsqlOracle,
    SchemaOracle,
    VoidResult,
)

__all__ = [
    "Attribution",
    "CatalogColumn",
    "DescribeFailure",
    "DescribeResult",
    "Described",
    "NullCatalog",
    "PostgresCatalog",
    "PsqlOracle",
    "SchemaCatalog",
    "SchemaOracle",
    "VoidResult",
    "attribute",
    "open_catalog",
]

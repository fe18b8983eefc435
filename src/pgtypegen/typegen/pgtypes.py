"""PostgreSQL regtype -> TypeScript type mapping."""

from __future__ import annotations

import re
from collections.abc import Mapping

# Bases that already admit every value; "| null" would add nothing
OPAQUE_TYPES = frozenset({"unknown", "void", "any"})

_NUMBER = frozenset(
    {
        "smallint",
        "integer",
        "bigint",
        "real",
        "double precision",
        "numeric",
        "decimal",
        "oid",
        "money",
        "timestamp without time zone",
        "timestamp with time zone",
        "time without time zone",
        "time with time zone",
    }
)

_STRING = frozenset(
    {
        "text",
        "character varying",
        "character",
        "name",
        "citext",
        "uuid",
        "date",
        "interval",
        "bytea",
        "inet",
        "cidr",
        "macaddr",
        "tsvector",
        "tsquery",
        "xml",
        "bit",
        "bit varying",
        "regclass",
        "regtype",
        "regproc",
        '"char"',
    }
)

BUILTIN_TYPES: dict[str, str] = {
    **{name: "number" for name in _NUMBER},
    **{name: "string" for name in _STRING},
    "boolean": "boolean",
    "json": "unknown",
    "jsonb": "unknown",
    "record": "unknown",
    "void": "void",
}

_MODIFIER = re.compile(r"\([^)]*\)")


def base_regtype(regtype: str) -> str:
    """Strip type modifiers: ``character varying(1)`` -> ``character varying``."""
    return " ".join(_MODIFIER.sub("", regtype).split())


def is_builtin(regtype: str) -> bool:
    base = base_regtype(regtype)
    while base.endswith("[]"):
        base = base[:-2]
    return base in BUILTIN_TYPES


def _quote(label: str) -> str:
    return "'" + label.replace("\\", "\\\\").replace("'", "\\'") + "'"


def enum_union(labels: tuple[str, ...]) -> str:
    return "(" + " | ".join(_quote(label) for label in labels) + ")"


def ts_type(
    regtype: str,
    *,
    enum_labels: tuple[str, ...] | None = None,
    overrides: Mapping[str, str] | None = None,
) -> str:
    """TypeScript type of a non-null value of ``regtype``.

    Overrides match the regtype as reported or without modifiers. Arrays
    map element-wise; unknown types become ``unknown``.
    """
    overrides = overrides or {}
    for key in (regtype, base_regtype(regtype)):
        if key in overrides:
            return overrides[key]

    base = base_regtype(regtype)
    if base.endswith("[]"):
        element = ts_type(base[:-2], enum_labels=enum_labels, overrides=overrides)
        if " " in element or "|" in element:
            element = f"({element})" if not element.startswith("(") else element
        return f"{element}[]"

    if enum_labels:
        return enum_union(enum_labels)
    return BUILTIN_TYPES.get(base, "unknown")


def nullable(ts: str) -> str:
    """Append ``| null`` unless the type already admits anything."""
    if ts in OPAQUE_TYPES:
        return ts
    return f"{ts} | null"

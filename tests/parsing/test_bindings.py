"""Tests for parsing/bindings.py import collection."""

from __future__ import annotations

from pathlib import Path

from pgtypegen.parsing.bindings import collect_imports
from pgtypegen.parsing.treesitter import TypeScriptParser


def _imports(parser: TypeScriptParser, source: str):
    return collect_imports(parser.parse(Path("a.ts"), source.encode()).root_node)


class TestCollectImports:
    """Import statement parsing."""

    def test_named_and_aliased(self, parser: TypeScriptParser) -> None:
        imports = _imports(parser, "import {sql, createPool as pool} from 'slonik'\n")

        assert len(imports) == 1
        statement = imports[0]
        assert statement.source == "slonik"
        assert [(n.name, n.alias) for n in statement.named] == [("sql", None), ("createPool", "pool")]
        assert statement.local_names() == ["sql", "pool"]
        assert statement.line == 1

    def test_default_and_namespace(self, parser: TypeScriptParser) -> None:
        imports = _imports(parser, "import fs from 'fs'\nimport * as db from 'slonik'\n")

        assert imports[0].default == "fs"
        assert imports[1].namespace == "db"
        assert imports[1].named == ()

    def test_side_effect_import(self, parser: TypeScriptParser) -> None:
        imports = _imports(parser, "import 'path'\n")

        assert imports[0].source == "path"
        assert imports[0].local_names() == []

    def test_type_only_import(self, parser: TypeScriptParser) -> None:
        imports = _imports(parser, "import type {Foo} from './foo'\n")

        assert imports[0].type_only is True

    def test_source_span_includes_quotes(self, parser: TypeScriptParser) -> None:
        source = 'import {sql} from "slonik"\n'
        statement = _imports(parser, source)[0]

        assert source[statement.source_span.start : statement.source_span.end] == '"slonik"'

    def test_nested_imports_not_collected(self, parser: TypeScriptParser) -> None:
        imports = _imports(parser, "export async function f() {\n  return import('slonik')\n}\n")

        assert imports == []

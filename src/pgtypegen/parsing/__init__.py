"""TypeScript parsing: tree-sitter grammars, import bindings, query scanning."""

from pgtypegen.parsing.bindings import ImportStatement, NamedImport, ScopeIndex
from pgtypegen.parsing.scanner import ScanResult, classify_tag, scan_file, scan_tree
from pgtypegen.parsing.treesitter import ParseResult, TypeScriptParser

__all__ = [
    "ImportStatement",
    "NamedImport",
    "ParseResult",
    "ScanResult",
    "ScopeIndex",
    "TypeScriptParser",
    "classify_tag",
    "scan_file",
    "scan_tree",
]

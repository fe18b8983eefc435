"""Tree-sitter parsing for TypeScript sources.

Grammars come from the ``tree-sitter-typescript`` package, which ships two
languages: ``typescript`` for .ts/.mts/.cts and ``tsx`` for .tsx.
"""

from __future__ import annotations

import importlib
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tree_sitter

from pgtypegen.core.errors import ScanError


@dataclass(frozen=True)
class GrammarSpec:
    """Where a tree-sitter language lives and which files use it."""

    name: str
    grammar_module: str
    language_func: str
    extensions: frozenset[str]


GRAMMARS: tuple[GrammarSpec, ...] = (
    GrammarSpec(
        name="typescript",
        grammar_module="tree_sitter_typescript",
        language_func="language_typescript",
        extensions=frozenset({"ts", "mts", "cts"}),
    ),
    GrammarSpec(
        name="tsx",
        grammar_module="tree_sitter_typescript",
        language_func="language_tsx",
        extensions=frozenset({"tsx"}),
    ),
)

SUPPORTED_EXTENSIONS: frozenset[str] = frozenset(
    ext for spec in GRAMMARS for ext in spec.extensions
)


def grammar_for_path(path: Path) -> GrammarSpec | None:
    ext = path.suffix.lower().lstrip(".")
    for spec in GRAMMARS:
        if ext in spec.extensions:
            return spec
    return None


@dataclass
class ParseResult:
    """Result of parsing a file."""

    tree: Any  # Tree-sitter Tree
    language: str
    error_count: int
    content: bytes

    @property
    def root_node(self) -> Any:
        return self.tree.root_node


def node_text(node: Any) -> str:
    return node.text.decode("utf-8") if node is not None and node.text else ""


def count_errors(node: Any) -> int:
    """Count ERROR and missing nodes below ``node``."""
    if not node.has_error:
        return 0
    count = 1 if node.type == "ERROR" or node.is_missing else 0
    for child in node.children:
        count += count_errors(child)
    return count


@dataclass
class TypeScriptParser:
    """
    Tree-sitter parser for TypeScript and TSX.

    ``tree_sitter.Parser`` objects are not shareable across threads, so each
    thread lazily gets its own parser; loaded languages are shared.

    Usage::

        parser = TypeScriptParser()
        result = parser.parse(Path("src/db.ts"), content)
    """

    _languages: dict[str, Any] = field(default_factory=dict, repr=False)
    _local: threading.local = field(default_factory=threading.local, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def _get_language(self, spec: GrammarSpec) -> Any:
        with self._lock:
            if spec.name in self._languages:
                return self._languages[spec.name]
            try:
                mod = importlib.import_module(spec.grammar_module)
                lang_fn = getattr(mod, spec.language_func)
            except (ImportError, AttributeError) as err:
                raise ValueError(f"Language not available: {spec.name}") from err
            lang = tree_sitter.Language(lang_fn())
            self._languages[spec.name] = lang
            return lang

    def _get_parser(self, spec: GrammarSpec) -> Any:
        parsers: dict[str, Any] | None = getattr(self._local, "parsers", None)
        if parsers is None:
            parsers = {}
            self._local.parsers = parsers
        parser = parsers.get(spec.name)
        if parser is None:
            parser = tree_sitter.Parser(self._get_language(spec))
            parsers[spec.name] = parser
        return parser

    def parse(self, path: Path, content: bytes | None = None) -> ParseResult:
        """
        Parse a file with Tree-sitter.

        Args:
            path: Path to file (used for grammar selection)
            content: File content as bytes. If None, reads from path.

        Raises:
            ScanError: unsupported extension, content that is not UTF-8, or syntax errors.
        """
        spec = grammar_for_path(path)
        if spec is None:
            raise ScanError.unsupported(str(path))
        if content is None:
            content = path.read_bytes()
        try:
            content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ScanError.not_utf8(str(path), e.start) from e

        tree = self._get_parser(spec).parse(content)
        error_count = count_errors(tree.root_node)
        if error_count:
            raise ScanError.parse_failed(str(path), error_count)

        return ParseResult(tree=tree, language=spec.name, error_count=0, content=content)

"""Migration from the legacy ``setupTypeGen`` format (``<=0.8.0``).

Legacy projects declare their tag through a setup module::

    import {knownTypes} from './generated/db'
    import {setupTypeGen} from '@slonik/typegen'

    export const {sql, poolConfig} = setupTypeGen({knownTypes, writeTypes: ...})

and tag queries as ``sql.Foo`...```, with types written to a generated
directory. The migration runs ``CleanCheck -> Scan -> Transform -> Cleanup
-> Report``: the setup call becomes a plain ``slonik`` import, importers of
the setup module get ``sql`` from ``slonik`` directly, member tags become
plain tags, and marked files in the generated directories are deleted.
The regular generator then annotates everything in the current format.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import structlog

from pgtypegen.config.models import TagConfig, TypegenConfig
from pgtypegen.core.errors import MigrationError, PgTypegenError
from pgtypegen.git import VersionControlStatus
from pgtypegen.parsing.bindings import ImportStatement, collect_imports
from pgtypegen.parsing.scanner import scan_tree
from pgtypegen.parsing.treesitter import ParseResult, TypeScriptParser, node_text
from pgtypegen.patch.edits import TextEdit, apply_edits, delete_file, line_span, write_atomic
from pgtypegen.typegen.models import Diagnostic, Span

logger = structlog.get_logger()

SETUP_FUNCTION = "setupTypeGen"
SETUP_MODULE = "@slonik/typegen"
LEGACY_MARKER = "this file is generated by a tool; don't change it manually."

# Legacy generated files carry the marker within their first few lines
_MARKER_LINES = 5

_MODULE_EXTENSIONS = (".ts", ".tsx", ".mts", ".cts")


class MigrationStage(Enum):
    """Migration state machine stages, in order."""

    CLEAN_CHECK = "clean_check"
    SCAN = "scan"
    TRANSFORM = "transform"
    CLEANUP = "cleanup"
    REPORT = "report"


class MigrationStatus(Enum):
    """Outcome for one file."""

    MIGRATED = "migrated"
    DELETED = "deleted"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass(frozen=True)
class MigrationEntry:
    path: Path
    status: MigrationStatus
    detail: str | None = None


@dataclass
class MigrationReport:
    """Per-file outcomes plus the manual follow-ups."""

    entries: list[MigrationEntry] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)

    def paths(self, status: MigrationStatus) -> list[Path]:
        return [entry.path for entry in self.entries if entry.status is status]

    @property
    def failed(self) -> bool:
        return any(entry.status is MigrationStatus.FAILED for entry in self.entries)


@dataclass(frozen=True)
class SetupModule:
    """A file that calls ``setupTypeGen`` at top level."""

    path: Path
    statement: Span
    line: int
    setup_import: ImportStatement
    sql_local: str
    leftover_names: tuple[str, ...]
    generated_imports: tuple[ImportStatement, ...]
    generated_dirs: tuple[Path, ...]


def resolve_module(importer: Path, specifier: str) -> Path | None:
    """Resolve a relative import specifier to a TypeScript file."""
    if not specifier.startswith("."):
        return None
    base = importer.parent / specifier
    if base.suffix == ".js":
        base = base.with_suffix("")
    candidates = [Path(f"{base}{ext}") for ext in _MODULE_EXTENSIONS]
    candidates.extend(base / f"index{ext}" for ext in _MODULE_EXTENSIONS)
    for candidate in candidates:
        if candidate.is_file():
            return candidate.resolve()
    return None


def has_legacy_marker(path: Path) -> bool:
    try:
        with path.open(encoding="utf-8", errors="replace") as f:
            head = [f.readline() for _ in range(_MARKER_LINES)]
    except OSError:
        return False
    return any(LEGACY_MARKER in line for line in head)


def _string_value(node: Any) -> str | None:
    if node is None or node.type != "string":
        return None
    text = node_text(node)
    return text[1:-1] if len(text) >= 2 else None


def _setup_call(statement: Any, setup_local: str) -> tuple[Any, Any] | None:
    """(object pattern, call arguments) of ``const {..} = setupTypeGen(..)``."""
    declaration = statement
    if declaration.type == "export_statement":
        declaration = statement.child_by_field_name("declaration")
    if declaration is None or declaration.type not in ("lexical_declaration", "variable_declaration"):
        return None
    for declarator in declaration.named_children:
        if declarator.type != "variable_declarator":
            continue
        pattern = declarator.child_by_field_name("name")
        value = declarator.child_by_field_name("value")
        if pattern is None or value is None or value.type != "call_expression":
            continue
        function = value.child_by_field_name("function")
        if function is None or node_text(function) != setup_local:
            continue
        if pattern.type != "object_pattern":
            continue
        return pattern, value.child_by_field_name("arguments")
    return None


def _destructured(pattern: Any) -> list[tuple[str, str]]:
    """(property, local name) pairs of an object pattern."""
    names: list[tuple[str, str]] = []
    for child in pattern.named_children:
        if child.type == "shorthand_property_identifier_pattern":
            names.append((node_text(child), node_text(child)))
        elif child.type == "pair_pattern":
            key = child.child_by_field_name("key")
            value = child.child_by_field_name("value")
            if key is not None and value is not None:
                names.append((node_text(key), node_text(value)))
    return names


def _options(arguments: Any) -> dict[str, Any]:
    """Property name -> value node of the first object argument."""
    options: dict[str, Any] = {}
    if arguments is None:
        return options
    obj = next((c for c in arguments.named_children if c.type == "object"), None)
    if obj is None:
        return options
    for prop in obj.named_children:
        if prop.type == "shorthand_property_identifier":
            options[node_text(prop)] = prop
        elif prop.type == "pair":
            key = prop.child_by_field_name("key")
            if key is not None:
                options[node_text(key).strip("'\"")] = prop.child_by_field_name("value")
    return options


def find_setup_module(path: Path, parse: ParseResult, root_dir: Path) -> SetupModule | None:
    """Detect a legacy setup module and the generated directories it names."""
    root = parse.root_node
    imports = collect_imports(root)
    setup_import = next(
        (
            statement
            for statement in imports
            if statement.source == SETUP_MODULE
            and any(spec.name == SETUP_FUNCTION for spec in statement.named)
        ),
        None,
    )
    if setup_import is None:
        return None
    setup_local = next(s.local for s in setup_import.named if s.name == SETUP_FUNCTION)

    for statement in root.children:
        found = _setup_call(statement, setup_local)
        if found is None:
            continue
        pattern, arguments = found
        names = _destructured(pattern)
        options = _options(arguments)

        generated_imports: list[ImportStatement] = []
        dirs: list[Path] = []
        known = options.get("knownTypes")
        if known is not None:
            local = node_text(known)
            for candidate in imports:
                if local in candidate.local_names():
                    generated_imports.append(candidate)
                    target = (path.parent / candidate.source).resolve()
                    if target.is_dir():
                        dirs.append(target)
        write_types = _string_value(options.get("writeTypes"))
        if write_types:
            target = Path(write_types)
            target = target if target.is_absolute() else (root_dir / target)
            if target.resolve().is_dir():
                dirs.append(target.resolve())

        return SetupModule(
            path=path,
            statement=Span(statement.start_byte, statement.end_byte),
            line=statement.start_point[0] + 1,
            setup_import=setup_import,
            sql_local=next((local for prop, local in names if prop == "sql"), "sql"),
            leftover_names=tuple(local for prop, local in names if prop != "sql"),
            generated_imports=tuple(generated_imports),
            generated_dirs=tuple(dict.fromkeys(dirs)),
        )
    return None


def _sql_import(local: str, tag: TagConfig) -> str:
    spec = tag.name if local == tag.name else f"{tag.name} as {local}"
    return f"import {{{spec}}} from '{tag.module}'"


def _rebuild_import(content: bytes, statement: ImportStatement, drop: set[str]) -> str | None:
    """The import without the dropped specifiers, or None if nothing is left."""
    kept = [
        content[spec.span.start : spec.span.end].decode("utf-8")
        for spec in statement.named
        if spec.name not in drop
    ]
    clauses: list[str] = []
    if statement.default:
        clauses.append(statement.default)
    if kept:
        clauses.append("{" + ", ".join(kept) + "}")
    if not clauses:
        return None
    source = content[statement.source_span.start : statement.source_span.end].decode("utf-8")
    keyword = "import type" if statement.type_only else "import"
    return f"{keyword} {', '.join(clauses)} from {source}"


def setup_module_edits(content: bytes, setup: SetupModule, tag: TagConfig) -> list[TextEdit]:
    """Swap the setup call for a plain tag import."""
    edits: list[TextEdit] = []
    replacement = _sql_import(setup.sql_local, tag)
    rest = _rebuild_import(content, setup.setup_import, {SETUP_FUNCTION})
    if rest:
        replacement = f"{replacement}\n{rest}"
    edits.append(TextEdit(setup.setup_import.span, replacement))

    for statement in setup.generated_imports:
        if statement is not setup.setup_import:
            edits.append(TextEdit.delete(line_span(content, statement.span)))

    comment = f"/* {SETUP_FUNCTION} call removed"
    if setup.leftover_names:
        comment += (
            f". There may be remaining references to {', '.join(setup.leftover_names)}"
            " which should be deleted manually"
        )
    edits.append(TextEdit(setup.statement, comment + " */"))
    return edits


def importer_edits(
    path: Path, content: bytes, imports: Sequence[ImportStatement], setup_paths: set[Path], tag: TagConfig
) -> list[TextEdit]:
    """Import the tag from its real module instead of a setup module."""
    edits: list[TextEdit] = []
    for statement in imports:
        target = resolve_module(path, statement.source)
        if target is None or target not in setup_paths:
            continue
        sql_specs = [spec for spec in statement.named if spec.name == tag.name]
        if not sql_specs:
            continue
        new_import = _sql_import(sql_specs[0].local, tag)
        rest = _rebuild_import(content, statement, {tag.name})
        edits.append(TextEdit(statement.span, f"{new_import}\n{rest}" if rest else new_import))
    return edits


def member_tag_edits(path: Path, parse: ParseResult, tag: TagConfig) -> list[TextEdit]:
    """``sql.Foo`...``` -> ``sql`...```."""
    scan = scan_tree(path, parse, tag, allow_members=True)
    edits: list[TextEdit] = []
    for usage in scan.usages:
        if usage.binding != "member":
            continue
        plain = usage.tag_text.split(".", 1)[0]
        edits.append(TextEdit(usage.tag, plain))
    return edits


class LegacyMigration:
    """One migration run over a set of candidate files.

    Usage::

        report = LegacyMigration(config, files, vcs=GitStatus(root)).run()
    """

    def __init__(
        self,
        config: TypegenConfig,
        files: Sequence[Path],
        *,
        vcs: VersionControlStatus | None = None,
        parser: TypeScriptParser | None = None,
    ) -> None:
        if config.migrate != "<=0.8.0":
            raise MigrationError.unsupported_version(str(config.migrate))
        self._config = config
        self._files = [f.resolve() for f in files]
        self._vcs = vcs
        self._parser = parser or TypeScriptParser()
        self._stage = MigrationStage.CLEAN_CHECK

    @property
    def stage(self) -> MigrationStage:
        return self._stage

    def _enter(self, stage: MigrationStage) -> None:
        self._stage = stage
        logger.debug("migration_stage", stage=stage.value)

    def _check_clean(self) -> None:
        if "before-migrate" not in self._config.check_clean:
            return
        if self._vcs is None:
            raise MigrationError.dirty_tree("no version control status available")
        status = self._vcs.check()
        if not status.clean:
            raise MigrationError.dirty_tree(status.diagnostic or "working tree has changes")

    def _parse(self, path: Path, content: bytes) -> ParseResult:
        return self._parser.parse(path, content)

    def _scan(self) -> tuple[dict[Path, SetupModule], dict[Path, str]]:
        setups: dict[Path, SetupModule] = {}
        failures: dict[Path, str] = {}
        for path in self._files:
            try:
                setup = find_setup_module(path, self._parse(path, path.read_bytes()), self._config.root_dir)
            except (PgTypegenError, OSError) as e:
                failures[path] = str(e)
                continue
            if setup is not None:
                setups[path] = setup
                logger.info(
                    "legacy_setup_found",
                    path=str(path),
                    generated_dirs=[str(d) for d in setup.generated_dirs],
                )
        return setups, failures

    def _transform(
        self, path: Path, setups: dict[Path, SetupModule], report: MigrationReport
    ) -> bytes | None:
        """New content for ``path``, or None when nothing changes."""
        tag = self._config.tag
        original = path.read_bytes()
        content = original

        setup = setups.get(path)
        if setup is not None:
            content = apply_edits(content, setup_module_edits(content, setup, tag))
            rel = self._relative(path)
            for name in setup.leftover_names:
                message = f'WARNING: "{name}" should be removed manually - {rel}:{setup.line}'
                report.diagnostics.append(Diagnostic(path, setup.line, "warning", message))
                logger.warning("legacy_config_left", name=name, path=str(rel), line=setup.line)

        parse = self._parse(path, content)
        edits = importer_edits(path, content, collect_imports(parse.root_node), set(setups), tag)
        if edits:
            content = apply_edits(content, edits)
            parse = self._parse(path, content)

        edits = member_tag_edits(path, parse, tag)
        if edits:
            content = apply_edits(content, edits)

        return content if content != original else None

    def _relative(self, path: Path) -> Path:
        try:
            return path.relative_to(self._config.root_dir.resolve())
        except ValueError:
            return path

    def _cleanup(self, dirs: list[Path]) -> tuple[list[Path], dict[Path, str]]:
        deleted: list[Path] = []
        failures: dict[Path, str] = {}
        for directory in dirs:
            for candidate in sorted(directory.rglob("*")):
                if not candidate.is_file() or not has_legacy_marker(candidate):
                    continue
                try:
                    delete_file(candidate)
                except PgTypegenError as e:
                    failures[candidate] = str(e)
                    continue
                deleted.append(candidate)
        return deleted, failures

    def run(self) -> MigrationReport:
        """Run every stage.

        Raises:
            MigrationError: the working tree is dirty; nothing was written.
        """
        report = MigrationReport()

        self._enter(MigrationStage.CLEAN_CHECK)
        self._check_clean()

        self._enter(MigrationStage.SCAN)
        setups, failures = self._scan()
        generated_dirs = list(dict.fromkeys(d for s in setups.values() for d in s.generated_dirs))

        self._enter(MigrationStage.TRANSFORM)
        pending: dict[Path, bytes] = {}
        for path in self._files:
            if path in failures or any(path.is_relative_to(d) for d in generated_dirs):
                continue
            try:
                new_content = self._transform(path, setups, report)
            except (PgTypegenError, OSError) as e:
                failures[path] = str(e)
                continue
            if new_content is not None:
                pending[path] = new_content

        migrated: list[Path] = []
        for path, new_content in pending.items():
            try:
                write_atomic(path, new_content)
            except PgTypegenError as e:
                failures[path] = str(e)
                continue
            migrated.append(path)

        self._enter(MigrationStage.CLEANUP)
        deleted, cleanup_failures = self._cleanup(generated_dirs)
        failures.update(cleanup_failures)

        self._enter(MigrationStage.REPORT)
        for path in migrated:
            report.entries.append(MigrationEntry(path, MigrationStatus.MIGRATED))
        for path in deleted:
            report.entries.append(MigrationEntry(path, MigrationStatus.DELETED))
        for path, reason in failures.items():
            report.entries.append(MigrationEntry(path, MigrationStatus.FAILED, reason))
        seen = {entry.path for entry in report.entries}
        for path in self._files:
            if path not in seen:
                report.entries.append(MigrationEntry(path, MigrationStatus.UNCHANGED))
        report.entries.sort(key=lambda entry: str(entry.path))

        logger.info(
            "migration_complete",
            migrated=len(migrated),
            deleted=len(deleted),
            failed=len(failures),
        )
        return report

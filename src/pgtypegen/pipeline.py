"""Run orchestration: discover files, type their queries, patch them.

Each file goes through scan -> normalize -> describe -> attribute ->
resolve -> render -> patch on its own; files share only the oracle and the
catalog. A file is written only after all of its queries were handled, and
one file's failure never stops the others.
"""

from __future__ import annotations

import contextvars
from collections.abc import Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

import structlog

from pgtypegen.config.models import TypegenConfig
from pgtypegen.core.errors import InternalError, OracleError, PgTypegenError, ScanError
from pgtypegen.core.logging import set_run_id
from pgtypegen.files.discovery import discover
from pgtypegen.git import GitStatus, VersionControlStatus
from pgtypegen.migrate.legacy import LegacyMigration, MigrationReport
from pgtypegen.parsing.scanner import scan_file
from pgtypegen.parsing.treesitter import TypeScriptParser
from pgtypegen.patch.patcher import (
    PlacementPolicy,
    apply_plan,
    inline_placement,
    is_generated_text,
    plan_patch,
    sibling_placement,
)
from pgtypegen.query.normalize import normalize
from pgtypegen.schema.catalog import SchemaCatalog, open_catalog
from pgtypegen.schema.oracle import PsqlOracle, SchemaOracle
from pgtypegen.typegen.models import Diagnostic, QueryUsage, Resolution, Typed, Unresolved
from pgtypegen.typegen.resolver import TypeRegistry, resolve

logger = structlog.get_logger()

FileStatus = Literal["updated", "unchanged", "skipped", "failed"]


@dataclass
class FileResult:
    """Outcome of one source file."""

    path: Path
    status: FileStatus
    queries: int = 0
    typed: int = 0
    types: int = 0
    written: list[Path] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)

    @property
    def untypeable(self) -> int:
        return self.queries - self.typed


@dataclass
class RunReport:
    """Everything a run did, in file order."""

    files: list[FileResult] = field(default_factory=list)
    migration: MigrationReport | None = None

    def with_status(self, status: FileStatus) -> list[FileResult]:
        return [f for f in self.files if f.status == status]

    @property
    def diagnostics(self) -> list[Diagnostic]:
        found = list(self.migration.diagnostics) if self.migration else []
        for result in self.files:
            found.extend(result.diagnostics)
        return found

    @property
    def failed(self) -> bool:
        return bool(self.with_status("failed")) or bool(self.migration and self.migration.failed)


def placement_for(config: TypegenConfig) -> PlacementPolicy:
    if config.output.mode == "sibling":
        return sibling_placement(config.output.sibling_dir)
    return inline_placement


class FileProcessor:
    """Types and patches single files. Safe to share between worker threads."""

    def __init__(
        self,
        config: TypegenConfig,
        oracle: SchemaOracle,
        catalog: SchemaCatalog,
        *,
        placement: PlacementPolicy | None = None,
        parser: TypeScriptParser | None = None,
    ) -> None:
        self._config = config
        self._oracle = oracle
        self._catalog = catalog
        self._placement = placement or placement_for(config)
        self._parser = parser or TypeScriptParser()

    def _resolve_usage(
        self, usage: QueryUsage, registry: TypeRegistry, result: FileResult
    ) -> Resolution:
        query = normalize(usage)
        if query.is_multi_statement:
            logger.debug("query_untypeable", line=usage.line, reason="multi-statement")
            result.diagnostics.append(
                Diagnostic(
                    usage.path,
                    usage.line,
                    "warning",
                    f"Query has {query.statement_count} statements and cannot be typed: {query.text}",
                )
            )
            return Unresolved(reason="multi-statement")
        if query.statement_count == 0:
            logger.debug("query_untypeable", line=usage.line, reason="empty")
            result.diagnostics.append(Diagnostic(usage.path, usage.line, "debug", "Empty query"))
            return Unresolved(reason="empty")

        known = len(registry)
        resolution = resolve(
            query,
            self._oracle.describe(query.text),
            self._catalog,
            registry,
            self._config.type_map,
        )

        if isinstance(resolution, Unresolved):
            logger.warning("query_untypeable", line=usage.line, reason=resolution.reason)
            result.diagnostics.append(
                Diagnostic(usage.path, usage.line, "warning", resolution.diagnostic or resolution.reason)
            )
        elif len(registry) > known:
            generated = registry.get(resolution.type_name)
            for warning in generated.warnings if generated else ():
                result.diagnostics.append(
                    Diagnostic(usage.path, usage.line, "warning", f"{resolution.type_name}: {warning}")
                )
        return resolution

    def process(self, path: Path) -> FileResult:
        with structlog.contextvars.bound_contextvars(path=str(self._relative(path))):
            try:
                return self._process(path)
            except OracleError:
                raise
            except Exception as e:
                logger.error("file_failed", error=repr(e))
                error = InternalError.unexpected(repr(e), path=str(path))
                return FileResult(
                    path=path,
                    status="failed",
                    diagnostics=[Diagnostic(path, None, "error", error.message)],
                )

    def _relative(self, path: Path) -> Path:
        try:
            return path.relative_to(self._config.root_dir)
        except ValueError:
            return path

    def _process(self, path: Path) -> FileResult:
        result = FileResult(path=path, status="unchanged")
        try:
            content = path.read_bytes()
        except OSError as e:
            result.status = "failed"
            result.diagnostics.append(Diagnostic(path, None, "error", str(e)))
            return result

        if is_generated_text(content):
            result.status = "skipped"
            return result

        try:
            scan = scan_file(path, content, self._config.tag, parser=self._parser)
        except ScanError as e:
            logger.warning("file_skipped", reason=e.message)
            result.status = "skipped"
            result.diagnostics.append(Diagnostic(path, None, "error", e.message))
            return result

        registry = TypeRegistry()
        resolutions = [self._resolve_usage(usage, registry, result) for usage in scan.usages]
        result.queries = len(resolutions)
        result.typed = sum(1 for r in resolutions if isinstance(r, Typed))
        result.types = len(registry)

        try:
            plan = plan_patch(scan, resolutions, registry.types, self._config.output, self._placement)
            result.written = apply_plan(plan)
        except PgTypegenError as e:
            logger.error("file_failed", error=str(e))
            result.status = "failed"
            result.diagnostics.append(Diagnostic(path, None, "error", e.message))
            return result

        if result.written:
            result.status = "updated"
        logger.debug(
            "file_processed",
            status=result.status,
            queries=result.queries,
            types=result.types,
        )
        return result


def run_files(processor: FileProcessor, files: Sequence[Path], workers: int) -> list[FileResult]:
    """Process files on a bounded pool; results come back in input order."""
    if workers == 1 or len(files) <= 1:
        return [processor.process(path) for path in files]
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="pgtypegen") as executor:
        # Each task gets its own context copy so run-scoped log context carries over
        futures = [
            executor.submit(contextvars.copy_context().run, processor.process, path)
            for path in files
        ]
        return [future.result() for future in futures]


@contextmanager
def _catalog_scope(config: TypegenConfig, catalog: SchemaCatalog | None) -> Iterator[SchemaCatalog]:
    if catalog is not None:
        yield catalog
        return
    with open_catalog(config.database) as opened:
        yield opened


def generate(
    config: TypegenConfig,
    *,
    oracle: SchemaOracle | None = None,
    catalog: SchemaCatalog | None = None,
    vcs: VersionControlStatus | None = None,
) -> RunReport:
    """Run the generator (and the configured migration first, if any).

    Raises:
        MigrationError: the clean check failed; nothing was written.
        OracleError: psql could not be started at all.
    """
    run_id = set_run_id()
    root = config.root_dir
    report = RunReport()
    logger.info("run_started", root=str(root), run_id=run_id, migrate=config.migrate)

    if config.migrate:
        candidates = discover(root, config.include, config.exclude)
        migration = LegacyMigration(config, candidates, vcs=vcs or GitStatus(root))
        report.migration = migration.run()

    files = discover(root, config.include, config.exclude)
    oracle = oracle or PsqlOracle(config.database)
    with _catalog_scope(config, catalog) as opened:
        processor = FileProcessor(config, oracle, opened)
        report.files = run_files(processor, files, config.workers)

    logger.info(
        "run_complete",
        files=len(report.files),
        updated=len(report.with_status("updated")),
        failed=len(report.with_status("failed")),
        warnings=sum(1 for d in report.diagnostics if d.severity == "warning"),
    )
    return report

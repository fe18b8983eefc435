"""pgtypegen generate / migrate commands."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import click
from rich.table import Table

from pgtypegen.config.loader import load_config
from pgtypegen.config.models import TypegenConfig
from pgtypegen.core.errors import PgTypegenError
from pgtypegen.core.logging import configure_logging
from pgtypegen.core.progress import get_console, pluralize, spinner, status
from pgtypegen.pipeline import RunReport, generate

_STATUS_STYLES = {
    "updated": "green",
    "unchanged": "dim",
    "skipped": "yellow",
    "failed": "red",
}


def _overrides(
    *,
    include: tuple[str, ...],
    exclude: tuple[str, ...],
    database_url: str | None,
    sibling_dir: str | None,
    migrate: str | None,
    check_clean: tuple[str, ...],
) -> dict[str, Any]:
    overrides: dict[str, Any] = {
        "include": list(include) or None,
        "exclude": list(exclude) or None,
        "migrate": migrate,
        "check_clean": list(check_clean) or None,
    }
    if database_url:
        overrides["database"] = {"url": database_url}
    if sibling_dir:
        overrides["output"] = {"mode": "sibling", "sibling_dir": sibling_dir}
    return overrides


def _relative(path: Path, root: Path) -> str:
    try:
        return str(path.relative_to(root))
    except ValueError:
        return str(path)


def print_report(report: RunReport, config: TypegenConfig) -> None:
    """Per-file summary table followed by warnings."""
    console = get_console()
    root = config.root_dir

    if report.migration is not None:
        for entry in report.migration.entries:
            if entry.status.value != "unchanged":
                status(f"{entry.status.value}: {_relative(entry.path, root)}", style="info")

    touched = [f for f in report.files if f.status != "unchanged" or f.queries]
    if touched:
        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("file")
        table.add_column("queries", justify="right")
        table.add_column("types", justify="right")
        table.add_column("status")
        for result in touched:
            style = _STATUS_STYLES.get(result.status, "")
            table.add_row(
                _relative(result.path, root),
                str(result.queries),
                str(result.types),
                f"[{style}]{result.status}[/{style}]",
            )
        console.print(table)

    for diagnostic in report.diagnostics:
        if diagnostic.severity == "debug":
            continue
        message = f"{_relative(diagnostic.path, root)}"
        if diagnostic.line is not None:
            message += f":{diagnostic.line}"
        style = "error" if diagnostic.severity == "error" else "warning"
        status(f"{message} {diagnostic.message}", style=style)

    updated = len(report.with_status("updated"))
    status(
        f"{pluralize(updated, 'file')} updated, {pluralize(len(report.files), 'file')} scanned",
        style="error" if report.failed else "success",
    )


def _run(ctx: click.Context, path: Path | None, **options: Any) -> None:
    verbose = bool(ctx.obj and ctx.obj.get("verbose"))
    try:
        config = load_config(path, **_overrides(**options))
    except PgTypegenError as e:
        raise click.ClickException(str(e)) from e

    if verbose:
        configure_logging(level="DEBUG")
    else:
        configure_logging(config=config.logging)

    try:
        with spinner(f"Generating query types in {config.root_dir}"):
            report = generate(config)
    except PgTypegenError as e:
        status(str(e), style="error")
        ctx.exit(1)

    print_report(report, config)
    if report.failed:
        ctx.exit(1)


_path_argument = click.argument(
    "path", default=None, required=False, type=click.Path(exists=True, file_okay=False, path_type=Path)
)


@click.command()
@_path_argument
@click.option("--include", multiple=True, help="Glob of files to scan (repeatable)")
@click.option("--exclude", multiple=True, help="Glob of files to skip (repeatable)")
@click.option("--database-url", default=None, help="PostgreSQL connection URI")
@click.option("--sibling-dir", default=None, help="Write declarations to <dir>/<name> next to each file")
@click.option("--migrate", type=click.Choice(["<=0.8.0"]), default=None, help="Migrate a legacy setup first")
@click.option(
    "--check-clean",
    type=click.Choice(["before-migrate"]),
    multiple=True,
    help="Require a clean git working tree at this point",
)
@click.pass_context
def generate_command(
    ctx: click.Context,
    path: Path | None,
    include: tuple[str, ...],
    exclude: tuple[str, ...],
    database_url: str | None,
    sibling_dir: str | None,
    migrate: str | None,
    check_clean: tuple[str, ...],
) -> None:
    """Annotate sql`...` queries with generated types.

    PATH is the project root (default: current directory).
    """
    _run(
        ctx,
        path,
        include=include,
        exclude=exclude,
        database_url=database_url,
        sibling_dir=sibling_dir,
        migrate=migrate,
        check_clean=check_clean,
    )


@click.command()
@_path_argument
@click.option("--database-url", default=None, help="PostgreSQL connection URI")
@click.option("--no-check-clean", is_flag=True, help="Skip the git clean check")
@click.pass_context
def migrate_command(
    ctx: click.Context, path: Path | None, database_url: str | None, no_check_clean: bool
) -> None:
    """Migrate a setupTypeGen (<=0.8.0) project, then generate types.

    The git working tree must be clean unless --no-check-clean is given.
    """
    _run(
        ctx,
        path,
        include=(),
        exclude=(),
        database_url=database_url,
        sibling_dir=None,
        migrate="<=0.8.0",
        check_clean=() if no_check_clean else ("before-migrate",),
    )

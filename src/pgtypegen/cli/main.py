"""pgtypegen CLI."""

import click

from pgtypegen import __version__
from pgtypegen.cli.generate import generate_command, migrate_command
from pgtypegen.core.logging import configure_logging


@click.group()
@click.version_option(version=__version__, prog_name="pgtypegen")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """pgtypegen - TypeScript types for SQL queries, from a live PostgreSQL schema."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    configure_logging(level="DEBUG" if verbose else "INFO")


cli.add_command(generate_command, name="generate")
cli.add_command(migrate_command, name="migrate")


if __name__ == "__main__":
    cli()

from pgtypegen.cli.main import cli

cli()

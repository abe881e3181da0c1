from actrun.cli import cli

cli()

from cidrmath.cli import cli

cli()

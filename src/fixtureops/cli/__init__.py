"""fixtureops CLI."""

from fixtureops.cli.main import cli, main

__all__ = ["cli", "main"]

"""Command-line interface for dblock."""

from dblock.cli.main import main, parse_arguments

__all__ = ["main", "parse_arguments"]

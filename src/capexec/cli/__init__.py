"""
CLI layer for capexec.

Provides a Typer application whose commands delegate to
``capexec.cli.run``; this package handles only terminal transport:
argument parsing, coloured output and exit codes.

Entry point::

    capexec --help
"""

from capexec.cli.app import app

__all__ = ["app"]

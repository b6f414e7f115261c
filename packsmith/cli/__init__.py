"""packsmith CLI — Typer-based command-line interface.

Provides the ``packsmith`` command with subcommands for building
applications, creating buildpack packages and inspecting builders.

All output uses Rich for formatted terminal display.
"""

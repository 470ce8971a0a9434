"""mender-artifact CLI — Typer-based command-line interface.

Provides the ``mender-artifact`` command with subcommands for writing,
reading, validating, signing and modifying artifacts.

All output uses Rich for terminal display.
"""

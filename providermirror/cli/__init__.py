"""Provider Mirror CLI — Typer-based command-line interface.

Provides the ``providermirror`` command with subcommands for managing
groups and limits, mirroring provider versions, uploading packages and
listing what a group can serve.

All output uses Rich for formatted terminal display.
"""

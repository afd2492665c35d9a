"""Typer application for the ``providermirror`` command line.

Entry point: ``providermirror`` (configured via pyproject.toml scripts).

Commands: groups create, limits set, mirrors create/list/delete,
packages upload/list, versions.
"""

from __future__ import annotations

import typer

from providermirror.cli.commands.groups import groups_app, limits_app
from providermirror.cli.commands.mirrors import mirrors_app, versions_cmd
from providermirror.cli.commands.packages import packages_app
from providermirror.cli.context import configure_logging
from providermirror.config import MirrorSettings

app = typer.Typer(
    name="providermirror",
    help="Provider Mirror: signature-verified Terraform provider caching.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        None, "--log-level", help="Override PROVIDERMIRROR_LOG_LEVEL."
    ),
) -> None:
    configure_logging(log_level or MirrorSettings().log_level)


# Register subcommands
app.add_typer(groups_app, name="groups")
app.add_typer(limits_app, name="limits")
app.add_typer(mirrors_app, name="mirrors")
app.add_typer(packages_app, name="packages")
app.command(name="versions", help="List mirrored versions a group can serve.")(versions_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()

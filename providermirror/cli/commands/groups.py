"""``providermirror groups`` and ``providermirror limits`` — catalog administration.

Groups and resource limits are owned by the surrounding platform; these
commands exist to seed a local catalog.
"""

from __future__ import annotations

import typer

from providermirror.cli.context import console, get_service, mirror_errors
from providermirror.core.quota import VERSION_MIRRORS_PER_GROUP
from providermirror.errors import not_found

groups_app = typer.Typer(help="Manage groups in the local catalog.", no_args_is_help=True)
limits_app = typer.Typer(help="Manage resource limits.", no_args_is_help=True)


@groups_app.command(name="create", help="Create a group (its parent must exist).")
def create_group_cmd(
    full_path: str = typer.Argument(..., help="Group path, e.g. 'acme' or 'acme/team'."),
) -> None:
    with mirror_errors():
        service = get_service()
        with service.catalog.reader() as db:
            group = db.create_group(full_path)

    kind = "root group" if group.is_root else "group"
    console.print(f"[bold green]Created {kind}[/bold green] {group.full_path} [dim]({group.id})[/dim]")


@limits_app.command(name="set", help="Set a resource limit globally or for one group.")
def set_limit_cmd(
    value: int = typer.Argument(..., help="New limit value."),
    name: str = typer.Option(
        VERSION_MIRRORS_PER_GROUP, "--name", "-n", help="Resource limit name."
    ),
    group_path: str = typer.Option(
        None, "--group", "-g", help="Scope the limit to this group."
    ),
) -> None:
    with mirror_errors():
        service = get_service()
        with service.catalog.reader() as db:
            scope = ""
            if group_path:
                group = db.get_group_by_full_path(group_path)
                if group is None:
                    raise not_found(f"Group {group_path} not found")
                scope = group.id
            db.set_resource_limit(name, value, scope=scope)

    target = group_path or "all groups"
    console.print(f"[bold green]Limit set:[/bold green] {name} = {value} for {target}")

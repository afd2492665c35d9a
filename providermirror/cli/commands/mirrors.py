"""``providermirror mirrors`` — create, list and delete provider version mirrors.

Also provides ``providermirror versions``, the network-mirror style listing
of versions a group can serve.
"""

from __future__ import annotations

import typer
from rich.panel import Panel
from rich.table import Table

from providermirror.cli.context import console, get_service, mirror_errors, request_context
from providermirror.models.mirrors import PaginationOptions, VersionMirrorSort

mirrors_app = typer.Typer(help="Manage provider version mirrors.", no_args_is_help=True)


def _split_address(address: str) -> tuple[str, str, str]:
    parts = address.split("/")
    if len(parts) != 3:
        console.print(
            f"[bold red]Invalid provider address:[/bold red] {address} "
            "[dim](expected hostname/namespace/type)[/dim]"
        )
        raise typer.Exit(code=1)
    return parts[0], parts[1], parts[2]


@mirrors_app.command(name="create", help="Mirror a provider version into a root group.")
def create_mirror_cmd(
    address: str = typer.Argument(..., help="Provider address: hostname/namespace/type."),
    version: str = typer.Argument(..., help="Semantic version to mirror."),
    group_path: str = typer.Option(..., "--group", "-g", help="Root group path."),
) -> None:
    """Verify the upstream checksum manifest and record the version mirror."""
    hostname, namespace, provider_type = _split_address(address)
    with mirror_errors():
        service = get_service()
        mirror = service.create_version_mirror(
            request_context(),
            group_path=group_path,
            registry_hostname=hostname,
            registry_namespace=namespace,
            provider_type=provider_type,
            semantic_version=version,
        )

    console.print()
    console.print(
        Panel(
            "\n".join([
                "[bold green]Provider version mirrored![/bold green]",
                "",
                f"[bold]ID:[/bold]        {mirror.id}",
                f"[bold]TRN:[/bold]       {mirror.metadata.trn}",
                f"[bold]Provider:[/bold]  {mirror.provider_address}",
                f"[bold]Version:[/bold]   {mirror.semantic_version}",
                f"[bold]Packages:[/bold]  {len(mirror.digests)} verified checksum(s)",
            ]),
            title="[bold]Provider Mirror[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )
    console.print()

    # Print the ID plainly for scripting
    console.print(f"[bold]{mirror.id}[/bold]")


@mirrors_app.command(name="list", help="List version mirrors of a group.")
def list_mirrors_cmd(
    group_path: str = typer.Option(..., "--group", "-g", help="Group path."),
    include_inherited: bool = typer.Option(
        False, "--inherited/--no-inherited", help="Include mirrors of ancestor groups."
    ),
    sort: VersionMirrorSort = typer.Option(
        VersionMirrorSort.CREATED_AT_ASC, "--sort", help="Sort order."
    ),
    first: int = typer.Option(None, "--first", help="Page size."),
    offset: int = typer.Option(0, "--offset", help="Rows to skip."),
) -> None:
    with mirror_errors():
        service = get_service()
        result = service.get_version_mirrors(
            request_context(),
            namespace_path=group_path,
            include_inherited=include_inherited,
            sort=sort,
            pagination=PaginationOptions(first=first, offset=offset),
        )

    if not result.version_mirrors:
        console.print(f"[dim]No version mirrors ({result.page_info.total_count} total).[/dim]")
        return

    table = Table(title=f"Version Mirrors ({result.page_info.total_count} total)")
    table.add_column("ID", style="cyan")
    table.add_column("Provider")
    table.add_column("Version", style="green")
    table.add_column("Created By")
    table.add_column("Created At", style="dim")
    for m in result.version_mirrors:
        table.add_row(
            m.id,
            m.provider_address,
            m.semantic_version,
            m.created_by,
            m.metadata.created_at.isoformat(timespec="seconds"),
        )
    console.print(table)
    if result.page_info.has_next_page:
        console.print("[dim]More results available; use --offset.[/dim]")


@mirrors_app.command(name="delete", help="Delete a version mirror.")
def delete_mirror_cmd(
    version_mirror_id: str = typer.Argument(..., help="Version mirror ID."),
    force: bool = typer.Option(
        False, "--force", "-f", help="Also delete its platform mirrors."
    ),
) -> None:
    with mirror_errors():
        service = get_service()
        ctx = request_context()
        mirror = service.get_version_mirror_by_id(ctx, version_mirror_id)
        service.delete_version_mirror(ctx, mirror, force=force)

    console.print(
        f"[bold green]Deleted[/bold green] {mirror.provider_address} {mirror.semantic_version}"
    )


def versions_cmd(
    address: str = typer.Argument(..., help="Provider address: hostname/namespace/type."),
    group_path: str = typer.Option(..., "--group", "-g", help="Group path."),
) -> None:
    """List versions of a provider that have at least one admitted package."""
    hostname, namespace, provider_type = _split_address(address)
    with mirror_errors():
        service = get_service()
        versions = service.get_available_versions(
            request_context(),
            group_path=group_path,
            registry_hostname=hostname,
            registry_namespace=namespace,
            provider_type=provider_type,
        )

    for version in versions:
        console.print(version)

"""``providermirror packages`` — upload and list platform packages."""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.table import Table

from providermirror.cli.commands.mirrors import _split_address
from providermirror.cli.context import console, get_service, mirror_errors, request_context

packages_app = typer.Typer(help="Upload and list provider packages.", no_args_is_help=True)


@packages_app.command(name="upload", help="Upload a provider package for one platform.")
def upload_package_cmd(
    version_mirror_id: str = typer.Argument(..., help="Version mirror ID."),
    package_file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="Package zip file."
    ),
    os: str = typer.Option(..., "--os", help="Target operating system, e.g. linux."),
    arch: str = typer.Option(..., "--arch", help="Target architecture, e.g. amd64."),
) -> None:
    """Admit the package if its SHA-256 matches the verified manifest."""
    with mirror_errors():
        service = get_service()
        with package_file.open("rb") as data:
            mirror = service.upload_installation_package(
                request_context(),
                version_mirror_id=version_mirror_id,
                os=os,
                architecture=arch,
                data=data,
            )

    console.print(
        f"[bold green]Package admitted[/bold green] {mirror.platform} "
        f"[dim]({mirror.id})[/dim]"
    )


@packages_app.command(name="list", help="List admitted packages for a provider version.")
def list_packages_cmd(
    address: str = typer.Argument(..., help="Provider address: hostname/namespace/type."),
    version: str = typer.Argument(..., help="Semantic version."),
    group_path: str = typer.Option(..., "--group", "-g", help="Group path."),
    as_json: bool = typer.Option(
        False, "--json", help="Print the network mirror protocol JSON."
    ),
) -> None:
    hostname, namespace, provider_type = _split_address(address)
    with mirror_errors():
        service = get_service()
        packages = service.get_available_installation_packages(
            request_context(),
            group_path=group_path,
            registry_hostname=hostname,
            registry_namespace=namespace,
            provider_type=provider_type,
            semantic_version=version,
        )

    if as_json:
        console.print_json(json.dumps({"archives": packages}))
        return

    table = Table(title=f"Packages for {address} {version}")
    table.add_column("Platform", style="cyan")
    table.add_column("Hash", style="green")
    table.add_column("URL", style="dim", overflow="fold")
    for platform, entry in sorted(packages.items()):
        table.add_row(platform, entry["hashes"][0], entry["url"])
    console.print(table)

"""Shared CLI plumbing — service construction, request context, error rendering."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

import typer
from rich.console import Console
from rich.logging import RichHandler

from providermirror.auth import RequestContext, SystemCaller
from providermirror.config import MirrorSettings
from providermirror.core.mirror_service import MirrorService
from providermirror.core.production_guard import ProductionConfigError
from providermirror.errors import ErrorCode, MirrorError

console = Console()
err_console = Console(stderr=True)


def configure_logging(level: str) -> None:
    """Route package logs through Rich."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True)],
        force=True,
    )


def get_service() -> MirrorService:
    """Build the service from environment settings."""
    return MirrorService.from_settings(MirrorSettings())


def request_context(subject: str = "cli") -> RequestContext:
    settings = MirrorSettings()
    return RequestContext(SystemCaller(subject), timeout=settings.registry_timeout_seconds * 4)


@contextmanager
def mirror_errors() -> Iterator[None]:
    """Render mirror errors and exit non-zero."""
    try:
        yield
    except MirrorError as exc:
        err_console.print(f"[bold red]{exc.code.value}:[/bold red] {exc.public_message()}")
        if exc.code == ErrorCode.INTERNAL:
            logging.getLogger(__name__).error("Internal error: %s", exc.message)
        raise typer.Exit(code=1) from exc
    except ProductionConfigError as exc:
        err_console.print(f"[bold red]Configuration error:[/bold red] {exc}")
        raise typer.Exit(code=2) from exc

"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, TypeVar

import typer

from httpaccessory.core.errors import AccessoryError
from httpaccessory.core.mappers import to_text
from httpaccessory.core.model import AttributeEvent
from httpaccessory.core.service import AccessoryService

app = typer.Typer(help="Read, write, and poll accessory attributes backed by HTTP actions")

T = TypeVar("T")


@app.callback()
def main(
    ctx: typer.Context,
    config: list[Path] | None = typer.Option(
        None, "--config", "-c", help="Accessory file or directory (repeatable)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log dispatch and mapper details"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"config": config or None}


def _build_service(ctx: typer.Context) -> AccessoryService:
    service = AccessoryService(config_paths=ctx.obj["config"] if ctx.obj else None)
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


def _run(service: AccessoryService, call: Coroutine[Any, Any, T]) -> T:
    async def _main() -> T:
        try:
            return await call
        finally:
            await service.shutdown()

    return asyncio.run(_main())


@app.command("list")
def list_accessories(ctx: typer.Context) -> None:
    """List configured accessories, their services, and attributes."""
    try:
        service = _build_service(ctx)
        accessories = service.list_accessories()
        if not accessories:
            typer.echo("No accessories configured")
            raise typer.Exit(code=1)

        for accessory in accessories:
            typer.echo(accessory.name)
            for svc, attribute in accessory.iter_attributes():
                binding = accessory.binding_for(attribute)
                flags = []
                if binding is not None and binding.get_action is not None:
                    flags.append(f"get every {binding.refresh_interval_s:g}s" if binding.polling else "get")
                if binding is not None and binding.set_action is not None:
                    flags.append("set")
                suffix = f" [{', '.join(flags)}]" if flags else ""
                typer.echo(f"  {svc.name}.{attribute.display_name} = {to_text(attribute.value)}{suffix}")
    except AccessoryError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("validate")
def validate(ctx: typer.Context) -> None:
    """Load and validate the configuration without contacting any device."""
    try:
        service = _build_service(ctx)
        count = len(service.list_accessories())
        typer.echo(f"Configuration OK: {count} accessor{'y' if count == 1 else 'ies'}")
    except AccessoryError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("get")
def get_attribute(
    ctx: typer.Context,
    attribute: str,
    accessory: str | None = typer.Option(None, "--accessory", "-a", help="Accessory name or partial name"),
) -> None:
    """Read ATTRIBUTE (optionally SERVICE.ATTRIBUTE) through its get action.

    Attributes with a refresh interval answer on the next poll tick.
    """
    try:
        service = _build_service(ctx)
        reading = _run(service, service.read(accessory, attribute))
        typer.echo(f"{reading.service}.{reading.attribute} = {to_text(reading.value)}")
        if not reading.fresh:
            typer.echo("Warning: read returned no data; showing the last known value", err=True)
    except AccessoryError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("set")
def set_attribute(
    ctx: typer.Context,
    attribute: str,
    value: str,
    accessory: str | None = typer.Option(None, "--accessory", "-a", help="Accessory name or partial name"),
) -> None:
    """Write VALUE to ATTRIBUTE through its set action."""
    try:
        service = _build_service(ctx)
        reading = _run(service, service.write(accessory, attribute, value))
        typer.echo(f"Set {reading.service}.{reading.attribute}={to_text(reading.value)} on {reading.accessory}")
    except AccessoryError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("identify")
def identify(
    ctx: typer.Context,
    accessory: str | None = typer.Option(None, "--accessory", "-a", help="Accessory name or partial name"),
) -> None:
    """Run the accessory's identify action."""
    try:
        service = _build_service(ctx)
        result = _run(service, service.identify(accessory))
        if result.error is not None:
            typer.echo(f"Error: identify failed: {result.error}", err=True)
            raise typer.Exit(code=1)
        typer.echo(f"Identify: {result.value if result.value is not None else '<no data>'}")
    except AccessoryError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("watch")
def watch(
    ctx: typer.Context,
    accessory: str | None = typer.Option(None, "--accessory", "-a", help="Accessory name or partial name"),
    duration: float | None = typer.Option(None, "--duration", help="Stop after this many seconds"),
) -> None:
    """Start every poll loop and print each value as it is applied."""

    def _print_event(event: AttributeEvent) -> None:
        typer.echo(
            f"{event.service}.{event.attribute}: {to_text(event.old_value)} -> {to_text(event.new_value)}"
        )

    try:
        service = _build_service(ctx)
        started = _run(service, service.watch(accessory, _print_event, duration_s=duration))
        typer.echo(f"Stopped {started} poller{'' if started == 1 else 's'}")
    except KeyboardInterrupt:
        typer.echo("Interrupted", err=True)
    except AccessoryError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()

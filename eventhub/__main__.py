"""CLI entry-point: python -m eventhub [serve|init-db|events]."""

from __future__ import annotations

import asyncio

import typer
import uvicorn

from eventhub.config import log_level
from eventhub.database import ConnectionCache
from eventhub.errors import EventHubError
from eventhub.events import EventRecords
from eventhub.logging_config import setup_logging

app = typer.Typer(help="eventhub – events and bookings backend")


@app.callback()
def main() -> None:
    setup_logging(log_level())


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Interface to bind."),
    port: int = typer.Option(8000, help="Port to listen on."),
    reload: bool = typer.Option(False, help="Reload on code changes."),
) -> None:
    """Run the HTTP API with uvicorn."""
    uvicorn.run("eventhub.main:app", host=host, port=port, reload=reload, log_config=None)


async def _init_db() -> None:
    cache = ConnectionCache()
    try:
        await cache.acquire()
    finally:
        await cache.close()


async def _list_events() -> list[str]:
    cache = ConnectionCache()
    try:
        db = await cache.acquire()
        return [
            f"{event.date} {event.time}  {event.slug}"
            async for event in EventRecords(db).list()
        ]
    finally:
        await cache.close()


@app.command(name="init-db")
def init_db() -> None:
    """Connect to the store and create collections and indexes."""
    try:
        asyncio.run(_init_db())
    except EventHubError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1)
    typer.echo("Database ready.")


@app.command(name="events")
def list_events() -> None:
    """List stored events, newest first."""
    try:
        lines = asyncio.run(_list_events())
    except EventHubError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1)
    if not lines:
        typer.echo("No events.")
        raise typer.Exit()
    for line in lines:
        typer.echo(f"  {line}")


if __name__ == "__main__":
    app()

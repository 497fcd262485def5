"""
CLI entrypoint for the telemetry service.
"""
import asyncio
import json

import httpx
import typer
from rich.console import Console
from rich.table import Table

from telemetry_service.client.long_poll_client import SCOPE_PATHS, LongPollClient
from telemetry_service.shared.config import settings
from telemetry_service.shared.enums import ActionType, EventType, UserRole
from telemetry_service.shared.models import Event

app = typer.Typer(help="Telemetry service: long-poll notification engine")
console = Console()


def _base_url(host: str, port: int | None) -> str:
    return f"http://{host}:{port or settings.PORT}"


def event_row(event: Event) -> list[str]:
    return [
        event.timestamp.strftime("%H:%M:%S"),
        event.event_type.value,
        event.action.value,
        f"{event.entity_type}:{event.entity_id}",
        json.dumps(event.metadata, default=str),
    ]


@app.command()
def server(host: str = typer.Option("0.0.0.0"), port: int = typer.Option(None, help="Defaults to PORT")):
    """Start the FastAPI server using Uvicorn."""
    import uvicorn
    port = port or settings.PORT
    typer.echo(f"Starting telemetry service on port {port}...")
    uvicorn.run("telemetry_service.server.main:app", host=host, port=port, log_level=settings.LOG_LEVEL.lower())


@app.command()
def poll(
    user_id: str = typer.Option(..., help="Value forwarded as X-User-Id"),
    role: UserRole = typer.Option(UserRole.CUSTOMER, help="Value forwarded as X-User-Role"),
    scope: str = typer.Option("user", help=f"One of: {', '.join(SCOPE_PATHS)}"),
    event_type: EventType = typer.Option(None, help="Only with --scope filtered"),
    short: bool = typer.Option(False, "--short", help="Short polling instead of long polling"),
    duration: float = typer.Option(60.0, help="How long to keep polling, in seconds"),
    host: str = typer.Option("127.0.0.1"),
    port: int = typer.Option(None),
):
    """Follow a subject queue and print every event as it arrives."""
    client = LongPollClient(
        _base_url(host, port), user_id, role=role, scope=scope, event_type=event_type,
        long_poll=not short, server_timeout_s=settings.long_poll_timeout_s,
    )

    async def on_event(event: Event) -> None:
        table = Table(show_header=False, box=None)
        table.add_row(*event_row(event))
        console.print(table)

    client.set_callback(on_event)
    try:
        asyncio.run(client.run(duration))
    except KeyboardInterrupt:
        pass
    console.print(client.stats)


@app.command()
def publish(
    event_type: EventType = typer.Option(...),
    action: ActionType = typer.Option(...),
    entity_id: str = typer.Option(...),
    entity_type: str = typer.Option(...),
    user_id: str = typer.Option(None, help="Omit to publish to the admin queue"),
    metadata: str = typer.Option("{}", help="JSON object"),
    host: str = typer.Option("127.0.0.1"),
    port: int = typer.Option(None),
):
    """Publish a generic event through the internal API."""
    try:
        meta = json.loads(metadata)
    except json.JSONDecodeError as e:
        raise typer.BadParameter(f"metadata is not valid JSON: {e}")
    body = {
        "eventType": event_type.value,
        "action": action.value,
        "entityId": entity_id,
        "entityType": entity_type,
        "metadata": meta,
    }
    if user_id:
        body["userId"] = user_id
    resp = httpx.post(f"{_base_url(host, port)}/v1/internal/events/publish", json=body)
    typer.echo(resp.json())
    if resp.is_error:
        raise typer.Exit(1)


@app.command()
def health(host: str = typer.Option("127.0.0.1"), port: int = typer.Option(None)):
    """Query the server's health endpoint."""
    resp = httpx.get(f"{_base_url(host, port)}/health")
    typer.echo(resp.json())
    if resp.is_error:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()

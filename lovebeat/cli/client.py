"""
Client CLI Commands

Commands that talk to a running Lovebeat server over HTTP.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any

import httpx
import structlog
import typer
from rich.console import Console
from rich.table import Table

from lovebeat.heartbeat import ALL_VIEW, ServiceRecord, ViewRecord

logger = structlog.get_logger(__name__)
console = Console()

DEFAULT_SERVER = "http://localhost:8080"

ServerOption = Annotated[
    str,
    typer.Option("--server", "-s", envvar="LOVEBEAT_SERVER", help="Lovebeat server URL"),
]

STATE_STYLES = {
    "paused": "dim",
    "ok": "green",
    "warning": "yellow",
    "error": "red",
}


def parse_timeout(value: str) -> str | float:
    """
    Parse a timeout option.

    Accepts 'auto', 'clear' and durations such as '90', '90s', '5m',
    '2h' or '1d'. Durations are returned in seconds.
    """
    value = value.lower().strip()

    if value in ("auto", "clear"):
        return value
    if value.endswith("s"):
        seconds = float(value[:-1])
    elif value.endswith("m"):
        seconds = float(value[:-1]) * 60
    elif value.endswith("h"):
        seconds = float(value[:-1]) * 3600
    elif value.endswith("d"):
        seconds = float(value[:-1]) * 86400
    else:
        # Assume seconds
        seconds = float(value)

    if seconds <= 0:
        raise ValueError(f"timeout must be positive: {value}")
    return seconds


def _format_ago(ts: float | None) -> str:
    """Format a timestamp as time elapsed since then."""
    if ts is None:
        return "never"
    elapsed = int(datetime.now(timezone.utc).timestamp() - ts)
    if elapsed < 60:
        return f"{elapsed}s ago"
    elif elapsed < 3600:
        return f"{elapsed // 60}m ago"
    elif elapsed < 86400:
        return f"{elapsed // 3600}h ago"
    return f"{elapsed // 86400}d ago"


def _request(method: str, server: str, path: str, **kwargs: Any) -> httpx.Response:
    url = f"{server.rstrip('/')}/api{path}"
    try:
        response = httpx.request(method, url, timeout=10.0, **kwargs)
    except httpx.HTTPError as e:
        console.print(f"[red]Could not reach {server}: {e}[/red]")
        raise typer.Exit(1)
    return response


def _check(response: httpx.Response) -> None:
    if response.status_code >= 400:
        try:
            detail = response.json().get("detail", response.text)
        except ValueError:
            detail = response.text
        console.print(f"[red]Request failed ({response.status_code}): {detail}[/red]")
        raise typer.Exit(1)


def beat(
    name: Annotated[str, typer.Argument(help="Service name")],
    warning: Annotated[
        str | None,
        typer.Option("--warning", "-w", help="Warning timeout: auto, clear or a duration (90s, 5m, 1h)"),
    ] = None,
    error: Annotated[
        str | None,
        typer.Option("--error", "-e", help="Error timeout: auto, clear or a duration (90s, 5m, 1h)"),
    ] = None,
    no_beat: Annotated[
        bool,
        typer.Option("--no-beat", help="Only update timeouts, do not register a beat"),
    ] = False,
    server: ServerOption = DEFAULT_SERVER,
) -> None:
    """
    Register a beat for a service.

    Examples:
        lovebeat beat db-backup
        lovebeat beat db-backup -w 1m -e 5m
        lovebeat beat nightly-report -w auto -e auto
    """
    body: dict[str, Any] = {"beat": not no_beat}
    try:
        if warning is not None:
            body["warning_timeout"] = parse_timeout(warning)
        if error is not None:
            body["error_timeout"] = parse_timeout(error)
    except ValueError as e:
        console.print(f"[red]Invalid timeout: {e}[/red]")
        raise typer.Exit(1)

    response = _request("POST", server, f"/services/{name}", json=body)
    _check(response)
    console.print(f"[green]✓ Beat registered for {name}[/green]")


def delete(
    name: Annotated[str, typer.Argument(help="Service name")],
    server: ServerOption = DEFAULT_SERVER,
) -> None:
    """Delete a service."""
    response = _request("DELETE", server, f"/services/{name}")
    _check(response)
    console.print(f"[green]✓ Service {name} deleted[/green]")


def status(
    view: Annotated[str, typer.Option("--view", "-v", help="Only services in this view")] = ALL_VIEW,
    server: ServerOption = DEFAULT_SERVER,
) -> None:
    """Show the state of all services in a view."""
    response = _request("GET", server, "/services", params={"view": view})
    _check(response)
    services = [ServiceRecord.model_validate(s) for s in response.json()]

    if not services:
        console.print(f"[dim]No services in view '{view}'[/dim]")
        return

    table = Table(title=f"Services ({view})")
    table.add_column("Service", style="cyan")
    table.add_column("State")
    table.add_column("Last beat", style="dim")
    table.add_column("Warning")
    table.add_column("Error")
    table.add_column("Incidents", justify="right")

    for service in services:
        style = STATE_STYLES.get(service.state.value, "white")
        table.add_row(
            service.name,
            f"[{style}]{service.state.value.upper()}[/{style}]",
            _format_ago(service.last_beat),
            str(service.warning_timeout),
            str(service.error_timeout),
            str(service.incident_nbr),
        )

    console.print(table)


def views(server: ServerOption = DEFAULT_SERVER) -> None:
    """Show the state of all views."""
    response = _request("GET", server, "/views")
    _check(response)
    records = [ViewRecord.model_validate(v) for v in response.json()]

    table = Table(title="Views")
    table.add_column("View", style="cyan")
    table.add_column("Pattern", style="dim")
    table.add_column("State")
    table.add_column("Incidents", justify="right")

    for record in records:
        style = STATE_STYLES.get(record.state.value, "white")
        table.add_row(
            record.name,
            record.pattern or "*",
            f"[{style}]{record.state.value.upper()}[/{style}]",
            str(record.incident_nbr),
        )

    console.print(table)

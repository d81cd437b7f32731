"""
Lovebeat CLI Main Entry Point

The main Typer application: the server command plus the client commands.
"""

import logging
from pathlib import Path
from typing import Annotated

import structlog
import typer
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from lovebeat import __version__
from lovebeat.cli import client

# Configure structlog
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)
console = Console()

# Create the main app
app = typer.Typer(
    name="lovebeat",
    help="Lovebeat - a dead man's switch for services",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(
            Panel(
                Text.from_markup(
                    f"[bold cyan]Lovebeat[/bold cyan] v{__version__}\n"
                    "[dim]A dead man's switch for services[/dim]"
                ),
                title="Version",
                border_style="cyan",
            )
        )
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            help="Enable verbose output.",
        ),
    ] = False,
) -> None:
    """
    Lovebeat - a dead man's switch for services

    Services report beats; Lovebeat alerts when they stop.
    """
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO)


@app.command()
def serve(
    host: Annotated[str | None, typer.Option("--host", help="Address to bind")] = None,
    port: Annotated[int | None, typer.Option("--port", "-p", help="Port to listen on")] = None,
    data_file: Annotated[
        Path | None,
        typer.Option("--data-file", "-d", help="JSON file to persist state in"),
    ] = None,
) -> None:
    """
    Run the Lovebeat server.

    Example: lovebeat serve --port 8080 --data-file /var/lib/lovebeat/state.json
    """
    import uvicorn

    from lovebeat.api.config import settings
    from lovebeat.api.main import create_app

    overrides = {
        key: value
        for key, value in {"host": host, "port": port, "data_file": data_file}.items()
        if value is not None
    }
    server_settings = settings.model_copy(update=overrides)

    logger.info(
        "Starting Lovebeat",
        host=server_settings.host,
        port=server_settings.port,
        data_file=str(server_settings.data_file) if server_settings.data_file else None,
        views=len(server_settings.views),
    )
    uvicorn.run(
        create_app(server_settings),
        host=server_settings.host,
        port=server_settings.port,
        log_config=None,
    )


app.command()(client.beat)
app.command()(client.delete)
app.command()(client.status)
app.command()(client.views)


if __name__ == "__main__":
    app()

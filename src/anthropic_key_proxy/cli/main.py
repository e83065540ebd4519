"""Command line entry point for the key rotation proxy."""

from typing import Annotated

import typer
import uvicorn
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from anthropic_key_proxy import __version__
from anthropic_key_proxy.api.app import create_app
from anthropic_key_proxy.config.settings import (
    ConfigurationError,
    Settings,
    get_settings,
)
from anthropic_key_proxy.core.logging import setup_logging
from anthropic_key_proxy.rotation.credentials import mask_key


console = Console(stderr=True)
output = Console()

app = typer.Typer(
    name="anthropic-key-proxy",
    help="Reverse proxy rotating API keys on upstream rate limits.",
    no_args_is_help=False,
    add_completion=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"anthropic-key-proxy {__version__}")
        raise typer.Exit()


def load_settings_or_exit(**overrides: object) -> Settings:
    """Load settings, exiting with status 1 when they are invalid."""
    try:
        return get_settings(**overrides)
    except ConfigurationError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        console.print("Set API_KEYS to a comma-separated list of API keys.")
        raise typer.Exit(1) from e


@app.callback(invoke_without_command=True)
def app_main(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """Start the proxy server when no command is given."""
    if ctx.invoked_subcommand is None:
        serve()


@app.command()
def serve(
    host: Annotated[
        str | None, typer.Option("--host", help="Interface to bind (env HOST)")
    ] = None,
    port: Annotated[
        int | None, typer.Option("--port", "-p", help="Port to listen on (env PORT)")
    ] = None,
    log_level: Annotated[
        str | None, typer.Option("--log-level", help="Logging level (env LOG_LEVEL)")
    ] = None,
    json_logs: Annotated[
        bool | None,
        typer.Option("--json-logs/--console-logs", help="Log format (env JSON_LOGS)"),
    ] = None,
) -> None:
    """Run the proxy server."""
    settings = load_settings_or_exit(
        host=host, port=port, log_level=log_level, json_logs=json_logs
    )
    setup_logging(json_logs=settings.json_logs, log_level_name=settings.log_level)

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,
        access_log=False,
    )


@app.command()
def keys() -> None:
    """Show the configured API keys in rotation order (masked)."""
    settings = load_settings_or_exit()

    table = Table(title="API Keys")
    table.add_column("Index", style="cyan", justify="right")
    table.add_column("Key", style="green")
    table.add_column("Initial")

    for index, key in enumerate(settings.api_keys):
        table.add_row(str(index), mask_key(key), "*" if index == 0 else "")

    output.print(table)
    output.print(
        f"Upstream: [bold]{settings.upstream_url}[/bold] "
        f"(header [bold]{settings.api_key_header}[/bold])"
    )


def main() -> None:
    """Console script entry point."""
    app()

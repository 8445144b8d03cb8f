"""CLI entry point for opencode-console."""

import logging

import click
import uvicorn

from .config import load_config
from .server import create_app


@click.group()
def main():
    """Browse, trash and restore OpenCode sessions from a web dashboard."""
    pass


@main.command()
@click.option("--port", default=4177, help="Port to serve on.")
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
@click.option(
    "--log-level",
    default="info",
    type=click.Choice(["debug", "info", "warning", "error"]),
    help="Logging verbosity.",
)
def serve(port: int, host: str, log_level: str):
    """Start the web interface."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = load_config()
    click.echo(f"Starting opencode-console on http://{host}:{port}")
    click.echo(f"Storage: {config.storage_root}")
    uvicorn.run(create_app(config), host=host, port=port, log_level=log_level, reload=False)

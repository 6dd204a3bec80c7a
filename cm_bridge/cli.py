"""
CLI entry point for cm-bridge.

This module provides the main Typer CLI application with commands for
running the relay server and maintaining its rate limit storage.
"""

# ruff: noqa: PLC0415 (intentional lazy imports keep CLI start-up fast)
import sys

from typer import Argument, Option, Typer

from cm_bridge.config import get_config
from cm_bridge.logging import setup_logging

app = Typer(
    name="cm-bridge",
    help="CloudMonitor alarm relay for Telegram",
    add_completion=False,
)

ratelimit_app = Typer(help="Inspect and maintain rate limit records")
app.add_typer(ratelimit_app, name="ratelimit")


@app.callback()
def main_callback() -> None:
    """
    Configure logging from the loaded configuration.
    """
    log_config = get_config().logging
    setup_logging(
        level=log_config.get("level", "INFO"),
        log_format=log_config.get("format", "json"),
        log_file=log_config.get("file"),
        max_bytes=log_config.get("max_bytes", 10485760),
        backup_count=log_config.get("backup_count", 5),
    )


@app.command()
def server(
    host: str | None = Option(None, help="Bind address (default from config)"),
    port: int | None = Option(None, help="Port (default from config)"),
    reload: bool = Option(False, help="Enable auto-reload"),
):
    """
    Start the webhook server.
    """
    from cm_bridge.commands.server import main as server_main

    sys.exit(server_main(host=host, port=port, reload=reload))


@app.command()
def send(
    text: str = Argument(..., help="Message text"),
    silent: bool = Option(False, help="Send without notification"),
):
    """
    Send a test message to the configured chat.
    """
    from cm_bridge.commands.send import main as send_main

    sys.exit(send_main(text, silent=silent))


@app.command()
def config(
    key: str | None = Argument(None, help="Dot-separated key"),
    value: str | None = Argument(None, help="New value"),
):
    """
    Show, set or check configuration.
    """
    from cm_bridge.commands.config import main as config_main

    sys.exit(config_main(key=key, value=value))


@app.command()
def cleanup():
    """
    Remove expired rate limit records.
    """
    from cm_bridge.commands.ratelimit import cleanup as ratelimit_cleanup

    sys.exit(ratelimit_cleanup())


@ratelimit_app.command("status")
def ratelimit_status(identifier: str = Argument(..., help="Client identifier, e.g. an IP")):
    """
    Show remaining requests for an identifier.
    """
    from cm_bridge.commands.ratelimit import status

    sys.exit(status(identifier))


@ratelimit_app.command("clear")
def ratelimit_clear(identifier: str = Argument(..., help="Client identifier, e.g. an IP")):
    """
    Reset the rate limit of an identifier.
    """
    from cm_bridge.commands.ratelimit import clear

    sys.exit(clear(identifier))


if __name__ == "__main__":
    app()

"""Click CLI for running and exercising the webhook relay."""

from __future__ import annotations

import dataclasses
import errno
import json
import logging
import random
import socket
from datetime import UTC, datetime

import click
import httpx
import uvicorn

from botrelay.api.app import create_app
from botrelay.config import RelayConfig
from botrelay.models import MessageType
from botrelay.service import RelayService

logger = logging.getLogger(__name__)


def port_available(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError as e:
            if e.errno == errno.EADDRINUSE:
                return False
            raise
    return True


def choose_port(host: str, primary: int, fallback: int) -> int:
    """Return ``primary`` if free, else ``fallback``; raise if both are bound."""
    if port_available(host, primary):
        return primary
    logger.warning("Port %d is already in use, trying fallback port %d", primary, fallback)
    if port_available(host, fallback):
        return fallback
    raise click.ClickException(
        f"Both primary port {primary} and fallback port {fallback} are in use. "
        "Set WEBHOOK_PORT to a free port."
    )


@click.group()
@click.option("--log-level", default="INFO", help="Logging level.")
def cli(log_level: str) -> None:
    """BotPass webhook relay CLI."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.option("--host", default=None, help="Bind address (default: WEBHOOK_HOST).")
@click.option("--port", type=int, default=None, help="Primary port (default: WEBHOOK_PORT).")
def serve(host: str | None, port: int | None) -> None:
    """Run the relay server, falling back to the alternate port if needed."""
    config = RelayConfig.from_env()
    overrides = {k: v for k, v in {"host": host, "port": port}.items() if v is not None}
    config = dataclasses.replace(config, **overrides)

    chosen = choose_port(config.host, config.port, config.fallback_port)
    suffix = " (fallback)" if chosen != config.port else ""
    click.echo(f"Webhook relay listening on {config.host}:{chosen}{suffix}")
    click.echo(f"Webhook URL: http://localhost:{chosen}/api/webhook/incoming")

    app = create_app(RelayService.build(config))
    uvicorn.run(app, host=config.host, port=chosen)


@cli.command()
@click.option("--bot-id", default="9U8JhxaBe8Fv8OtLq4KN", help="Bot id to send as.")
@click.option(
    "--type", "message_type",
    type=click.Choice([t.value for t in MessageType]),
    default=None,
    help="Message type (random when omitted).",
)
@click.option("--content", default=None, help="Message content.")
@click.option("--host", default="localhost", help="Relay host.")
@click.option("--port", type=int, multiple=True, help="Ports to try in order.")
def send(
    bot_id: str, message_type: str | None, content: str | None, host: str, port: tuple[int, ...],
) -> None:
    """Send a test webhook, trying the primary and then the fallback port."""
    config = RelayConfig.from_env()
    ports = port or (config.port, config.fallback_port)
    now = datetime.now(UTC).isoformat()
    payload = {
        "botId": bot_id,
        "messageType": message_type or random.choice([t.value for t in MessageType]),
        "content": content or f"Test webhook from botrelay CLI ({now})",
        "timestamp": now,
        "data": {"source": "botrelay-cli"},
    }
    click.echo(json.dumps(payload, indent=2))

    for candidate in ports:
        url = f"http://{host}:{candidate}/api/webhook/incoming"
        try:
            resp = httpx.post(url, json=payload, timeout=10.0)
        except httpx.TransportError as e:
            click.echo(f"Could not reach {url}: {e}", err=True)
            continue
        click.echo(resp.text)
        if resp.is_success:
            return
        raise click.ClickException(f"Relay rejected the webhook (HTTP {resp.status_code})")

    raise click.ClickException("No relay reachable on any of the tried ports")

"""Click CLI for running the relay server and a terminal chat consumer."""

from __future__ import annotations

import asyncio
import logging

import click
import uvicorn

from src.config import RelaySettings
from src.consumer.client import DEFAULT_RECONNECT_DELAY, ChatConsumer


@click.group()
@click.option("--log-level", default="info", help="Python logging level.")
def cli(log_level: str) -> None:
    """Web chat relay between chat clients and the automation engine."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.option("--host", default=None, help="Bind address (default: RELAY_HOST).")
@click.option(
    "--port", default=None, type=click.IntRange(0, 65535),
    help="Listen port, 0 for any free port (default: RELAY_PORT).",
)
def serve(host: str | None, port: int | None) -> None:
    """Run the relay server."""
    settings = RelaySettings.from_env()
    uvicorn.run(
        "src.server.app:create_app_from_env",
        factory=True,
        host=host if host is not None else settings.host,
        port=port if port is not None else settings.port,
    )


@cli.command()
@click.option("--server", default="http://localhost:8080", help="Relay server base URL.")
@click.option(
    "--reconnect-delay",
    default=DEFAULT_RECONNECT_DELAY,
    type=float,
    help="Seconds to wait before reconnecting a dropped stream.",
)
def chat(server: str, reconnect_delay: float) -> None:
    """Chat with the engine from the terminal, one line per message."""
    asyncio.run(_chat_loop(server, reconnect_delay))


async def _chat_loop(server: str, reconnect_delay: float) -> None:
    consumer = ChatConsumer(
        server,
        reconnect_delay=reconnect_delay,
        on_reply=lambda text: click.echo(f"bot> {text}"),
    )
    await consumer.connect()
    stdin = click.get_text_stream("stdin")
    try:
        while True:
            line = await asyncio.to_thread(stdin.readline)
            if not line:
                break
            if not line.strip():
                continue
            if not await consumer.send(line):
                click.echo("Still waiting for the previous reply.", err=True)
    finally:
        await consumer.close()

"""Chat consumer: client side of the relay with reconnect and HTTP fallback.

State machine::

    DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED -> (timer) CONNECTING

A close or failed connect schedules one reconnect after a fixed delay.
When the timer fires the reconnect only runs if the consumer is still
active, so a backgrounded consumer does not keep hammering the server.
Messages go over the WebSocket when connected and fall back to
``POST /chat`` otherwise.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import httpx
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

logger = logging.getLogger(__name__)

INVALID_FRAME_MESSAGE = "Sorry, I received an invalid response. Please try again."
EMPTY_RESPONSE_MESSAGE = "Received empty response from server."
CONNECTION_ERROR_MESSAGE = "Sorry, there was an error connecting to the server."

DEFAULT_RECONNECT_DELAY = 3.0


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass
class ChatLine:
    text: str
    is_bot: bool
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


def to_ws_url(server_url: str) -> str:
    """Derive the streaming endpoint URL from the server's HTTP base URL."""
    base = server_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return f"{base}/ws/chat"


class ChatConsumer:
    """Sends chat messages to the relay and collects the bot's replies."""

    def __init__(
        self,
        server_url: str = "http://localhost:8080",
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        on_reply: Callable[[str], None] | None = None,
        origin: str | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._http_url = f"{server_url.rstrip('/')}/chat"
        self._ws_url = to_ws_url(server_url)
        self._reconnect_delay = reconnect_delay
        self._on_reply = on_reply
        self._origin = origin
        self._http_transport = http_transport

        self.state = ConnectionState.DISCONNECTED
        self.transcript: list[ChatLine] = []
        self.awaiting_reply = False
        self.active = True

        self._ws: Any = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._closing = False
        self._stream_pending = False

    # --- Connection lifecycle ---

    async def connect(self) -> None:
        if self._closing or self.state != ConnectionState.DISCONNECTED:
            return
        self.state = ConnectionState.CONNECTING
        logger.info("Connecting to %s", self._ws_url)
        try:
            ws = await websockets.connect(self._ws_url, origin=self._origin)
        except (OSError, TimeoutError, WebSocketException) as exc:
            logger.warning("WebSocket connect failed: %s", exc)
            self._on_disconnect()
            return

        if self._closing:
            await ws.close()
            self.state = ConnectionState.DISCONNECTED
            return

        self._ws = ws
        self.state = ConnectionState.CONNECTED
        logger.info("Connected to chat server")
        self._spawn(self._read_frames(ws))

    def set_active(self, active: bool) -> None:
        """Update the liveness signal; becoming active reconnects right away."""
        self.active = active
        if active and self.state == ConnectionState.DISCONNECTED and self._ws is None:
            self._cancel_reconnect()
            self._spawn(self.connect())

    async def close(self) -> None:
        self._closing = True
        self._cancel_reconnect()
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self.state = ConnectionState.DISCONNECTED

    async def _read_frames(self, ws: Any) -> None:
        try:
            async for frame in ws:
                self._handle_frame(frame)
        except ConnectionClosed as exc:
            logger.info("Disconnected from chat server: %s", exc)
        finally:
            if self._ws is ws:
                self._ws = None
                if self._stream_pending:
                    # The reply to the outstanding message will never arrive.
                    self._deliver(CONNECTION_ERROR_MESSAGE)
                self._on_disconnect()

    def _on_disconnect(self) -> None:
        self.state = ConnectionState.DISCONNECTED
        if not self._closing:
            self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self._reconnect_delay, self._reconnect_due)

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _reconnect_due(self) -> None:
        self._reconnect_handle = None
        if self._closing or not self.active:
            return
        self._spawn(self.connect())

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # --- Messaging ---

    async def send(self, text: str) -> bool:
        """Send one message. Returns False if it was blank or a reply is still pending."""
        message = text.strip()
        if not message or self.awaiting_reply:
            return False

        self.transcript.append(ChatLine(message, is_bot=False))
        self.awaiting_reply = True

        if self.state == ConnectionState.CONNECTED and self._ws is not None:
            try:
                await self._ws.send(json.dumps({"message": message}))
                self._stream_pending = True
                return True
            except ConnectionClosed as exc:
                logger.warning("WebSocket send failed, falling back to HTTP: %s", exc)

        await self._send_via_http(message)
        return True

    async def _send_via_http(self, message: str) -> None:
        try:
            async with httpx.AsyncClient(
                transport=self._http_transport, timeout=None,
            ) as client:
                resp = await client.post(self._http_url, json={"message": message})
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("HTTP send failed: %s", exc)
            self._deliver(CONNECTION_ERROR_MESSAGE)
            return

        self._deliver(_reply_text(data) or EMPTY_RESPONSE_MESSAGE)

    def _handle_frame(self, frame: str | bytes) -> None:
        try:
            data = json.loads(frame)
        except ValueError:
            logger.error("Error parsing WebSocket frame")
            self._deliver(INVALID_FRAME_MESSAGE)
            return

        text = _reply_text(data)
        if text is None and isinstance(data, dict) and "reply" in data:
            text = EMPTY_RESPONSE_MESSAGE
        if text is not None:
            self._deliver(text)

    def _deliver(self, text: str) -> None:
        self.transcript.append(ChatLine(text, is_bot=True))
        self.awaiting_reply = False
        self._stream_pending = False
        if self._on_reply:
            self._on_reply(text)


def _reply_text(data: object) -> str | None:
    if not isinstance(data, dict):
        return None
    reply = data.get("reply")
    if isinstance(reply, str) and reply:
        return reply
    error = data.get("error")
    if isinstance(error, str) and error:
        return f"Error: {error}"
    return None

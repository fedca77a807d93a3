"""Streaming chat session: per-connection read/relay/reply loop.

Lifecycle::

    Open     accept the WebSocket, register the connection
    Reading  wait for the next frame
               malformed frame or disconnect  -> Closing
               valid frame -> relay, send one {"reply": ...} frame -> Reading
    Closing  unregister and close the transport, exactly once

Frames on one connection are handled strictly one at a time, so replies
go out in the order their requests were read.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError
from starlette.websockets import WebSocketState

from src.chat.registry import Connection, ConnectionRegistry
from src.models import AuditEvent, AuditEventType, InboundMessage, Transport
from src.relay.models import outcome_kind, render_outcome

if TYPE_CHECKING:
    from src.audit.logger import AuditLogger
    from src.relay.client import RelayClient

logger = logging.getLogger(__name__)


class StreamingSession:
    """Drives one WebSocket connection from accept to close."""

    def __init__(
        self,
        websocket: WebSocket,
        registry: ConnectionRegistry,
        relay_client: RelayClient,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._ws = websocket
        self._registry = registry
        self._relay = relay_client
        self._audit = audit_logger
        self._conn = Connection(transport=websocket)
        self._closed = False

    @property
    def connection(self) -> Connection:
        return self._conn

    async def run(self) -> None:
        await self._ws.accept()
        self._registry.register(self._conn)
        logger.info("Connection %s opened", self._conn.connection_id)
        self._log_event(AuditEventType.CONNECTION_OPENED, "open", "success")

        close_code = status.WS_1000_NORMAL_CLOSURE
        try:
            while True:
                message = await self._ws.receive()
                if message["type"] == "websocket.disconnect":
                    return

                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes") or b""
                try:
                    inbound = InboundMessage.model_validate_json(raw)
                except ValidationError:
                    logger.warning(
                        "Connection %s sent a malformed frame, closing",
                        self._conn.connection_id,
                    )
                    self._log_event(
                        AuditEventType.MALFORMED_MESSAGE, "receive", "rejected",
                    )
                    close_code = status.WS_1003_UNSUPPORTED_DATA
                    return

                if not await self._handle(inbound):
                    return
        finally:
            await self._close(close_code)

    async def _handle(self, inbound: InboundMessage) -> bool:
        """Relay one message and send its reply. Returns False if the send failed."""
        outcome = await self._relay.relay(inbound.message)
        kind = outcome_kind(outcome)
        logger.info("Connection %s relay outcome: %s", self._conn.connection_id, kind)
        self._log_event(
            AuditEventType.RELAY,
            "relay",
            "success" if kind in ("reply", "empty") else "failure",
            {"outcome": kind},
        )

        reply = render_outcome(outcome)
        try:
            await self._ws.send_json({"reply": reply.text})
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            logger.warning(
                "Connection %s write error: %s", self._conn.connection_id, exc,
            )
            return False
        return True

    async def _close(self, code: int) -> None:
        if self._closed:
            return
        self._closed = True
        self._registry.unregister(self._conn)
        if (
            self._ws.application_state != WebSocketState.DISCONNECTED
            and self._ws.client_state != WebSocketState.DISCONNECTED
        ):
            try:
                await self._ws.close(code=code)
            except (RuntimeError, OSError) as exc:
                logger.debug("Close on connection %s failed: %s", self._conn.connection_id, exc)
        logger.info("Connection %s closed", self._conn.connection_id)
        self._log_event(AuditEventType.CONNECTION_CLOSED, "close", "success", {"code": code})

    def _log_event(
        self,
        event_type: AuditEventType,
        action: str,
        result: str,
        details: dict[str, object] | None = None,
    ) -> None:
        if not self._audit:
            return
        client = self._ws.client
        self._audit.log(AuditEvent(
            event_type=event_type,
            transport=Transport.STREAM,
            source_ip=client.host if client else None,
            connection_id=self._conn.connection_id,
            action=action,
            result=result,
            details=details,
        ))

"""FastAPI chat relay application."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, WebSocket, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from src.audit.logger import AuditLogger
from src.chat.registry import ConnectionRegistry
from src.chat.session import StreamingSession
from src.config import RelaySettings
from src.models import AuditEvent, AuditEventType, InboundMessage, Transport
from src.relay.client import RelayClient
from src.relay.models import outcome_kind, render_outcome

logger = logging.getLogger(__name__)


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables."""
    return create_app(RelaySettings.from_env())


def create_app(
    settings: RelaySettings,
    relay_client: RelayClient | None = None,
    registry: ConnectionRegistry | None = None,
    audit_logger: AuditLogger | None = None,
) -> FastAPI:
    """Create the chat relay app with both entry points sharing one relay client."""
    app = FastAPI(docs_url=None, redoc_url=None)

    relay = relay_client or RelayClient(settings.webhook_url, settings.timeout_seconds)
    connections = registry if registry is not None else ConnectionRegistry()
    audit = audit_logger or AuditLogger.from_settings(settings)
    app.state.registry = connections

    @app.get("/health")
    async def health() -> dict[str, object]:
        return {"status": "ok", "connections": len(connections)}

    @app.post("/chat")
    async def chat(request: Request) -> JSONResponse:
        body = await request.body()
        source_ip = request.client.host if request.client else None
        try:
            inbound = InboundMessage.model_validate_json(body)
        except ValidationError:
            logger.warning("Rejected malformed one-shot request from %s", source_ip)
            _audit(audit, AuditEventType.MALFORMED_MESSAGE, "receive", "rejected", source_ip)
            return JSONResponse({"error": "Invalid request"}, status_code=400)

        outcome = await relay.relay(inbound.message)
        kind = outcome_kind(outcome)
        reply = render_outcome(outcome)
        logger.info("One-shot relay outcome: %s", kind)
        _audit(
            audit, AuditEventType.RELAY, "relay",
            "success" if reply.status_code == 200 else "failure",
            source_ip, {"outcome": kind},
        )
        return JSONResponse({"reply": reply.text}, status_code=reply.status_code)

    @app.websocket("/ws/chat")
    async def chat_ws(websocket: WebSocket) -> None:
        origin = websocket.headers.get("origin")
        if origin is not None and origin != settings.allowed_origin:
            logger.warning("Rejected WebSocket from origin %s", origin)
            if audit:
                audit.log(AuditEvent(
                    event_type=AuditEventType.ORIGIN_REJECTED,
                    transport=Transport.STREAM,
                    source_ip=websocket.client.host if websocket.client else None,
                    action="handshake",
                    result="rejected",
                    details={"origin": origin},
                ))
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return
        await StreamingSession(websocket, connections, relay, audit).run()

    # Only WebSocket upgrades may use /ws/*; plain HTTP lands here.
    @app.api_route("/ws/{path:path}", methods=["GET", "POST", "PUT", "DELETE", "PATCH"])
    async def upgrade_required(path: str) -> JSONResponse:
        return JSONResponse(
            {"error": "Upgrade required"},
            status_code=status.HTTP_426_UPGRADE_REQUIRED,
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.allowed_origin],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Origin", "Content-Type", "Accept"],
    )

    return app


def _audit(
    audit_logger: AuditLogger | None,
    event_type: AuditEventType,
    action: str,
    result: str,
    source_ip: str | None,
    details: dict[str, object] | None = None,
) -> None:
    if audit_logger:
        audit_logger.log(AuditEvent(
            event_type=event_type,
            transport=Transport.ONE_SHOT,
            source_ip=source_ip,
            action=action,
            result=result,
            details=details,
        ))

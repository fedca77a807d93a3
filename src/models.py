"""Shared Pydantic data models for webchat-relay."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, StrictStr

# --- Enums ---


class AuditEventType(str, Enum):
    CONNECTION_OPENED = "connection_opened"
    CONNECTION_CLOSED = "connection_closed"
    RELAY = "relay"
    MALFORMED_MESSAGE = "malformed_message"
    ORIGIN_REJECTED = "origin_rejected"


class Transport(str, Enum):
    STREAM = "stream"
    ONE_SHOT = "one_shot"


# --- Inbound Models ---


class InboundMessage(BaseModel):
    """A chat message as sent by a client on either entry point."""

    model_config = ConfigDict(frozen=True)

    message: StrictStr


# --- Audit Models ---


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class AuditEvent(BaseModel):
    timestamp: str = Field(default_factory=_now_iso)
    event_type: AuditEventType
    transport: Transport
    source_ip: str | None = None
    connection_id: str | None = None
    action: str
    result: str  # "success" | "failure" | "rejected"
    details: dict[str, object] | None = None

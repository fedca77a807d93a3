"""Shared test fixtures for webchat-relay."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from unittest.mock import MagicMock

import httpx
import pytest

from src.audit.logger import AuditLogger
from src.config import RelaySettings
from src.models import AuditEvent, AuditEventType, Transport
from src.relay.client import RelayClient
from src.relay.models import RelayOutcome, Reply

WEBHOOK_URL = "http://engine.test/webhook/web-chatbot"
ALLOWED_ORIGIN = "http://localhost:4321"


class FakeRelayClient:
    """Stands in for RelayClient: records messages, answers from a script."""

    def __init__(
        self,
        respond: Callable[[str], RelayOutcome] | None = None,
        delays: dict[str, float] | None = None,
    ) -> None:
        self.messages: list[str] = []
        self._respond = respond or (lambda message: Reply(f"echo: {message}"))
        self._delays = delays or {}

    async def relay(self, message: str) -> RelayOutcome:
        self.messages.append(message)
        delay = self._delays.get(message)
        if delay:
            await asyncio.sleep(delay)
        return self._respond(message)


@pytest.fixture
def settings() -> RelaySettings:
    return RelaySettings(
        webhook_url=WEBHOOK_URL,
        timeout_seconds=2.0,
        allowed_origin=ALLOWED_ORIGIN,
    )


@pytest.fixture
def fake_relay() -> FakeRelayClient:
    return FakeRelayClient()


@pytest.fixture
def mock_audit_logger() -> MagicMock:
    return MagicMock(spec=AuditLogger)


def make_engine_client(
    handler: Callable[[httpx.Request], httpx.Response],
    timeout_seconds: float = 2.0,
) -> RelayClient:
    """RelayClient whose webhook is simulated by ``handler``."""
    return RelayClient(
        WEBHOOK_URL, timeout_seconds, transport=httpx.MockTransport(handler),
    )


def make_audit_event(**kwargs: object) -> AuditEvent:
    """Factory for AuditEvent with sensible defaults."""
    defaults: dict[str, object] = {
        "event_type": AuditEventType.RELAY,
        "transport": Transport.ONE_SHOT,
        "action": "relay",
        "result": "success",
    }
    defaults.update(kwargs)
    return AuditEvent(**defaults)  # type: ignore[arg-type]

"""Relay client: forwards one chat message to the automation engine.

Single outbound call per message, no retries. Every failure is mapped
to a user-safe ``TransportError``; the raw exception only reaches the
log. Successful responses are handed to the normalizer.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from src.relay.models import RelayOutcome, TransportError
from src.relay.normalizer import normalize

logger = logging.getLogger(__name__)

UNREACHABLE_MESSAGE = "Sorry, I couldn't process your message. Please try again later."
UNREADABLE_MESSAGE = "Sorry, I couldn't read the response from the server."


class RelayClient:
    """Posts ``{"message": ...}`` to the configured webhook and normalizes the answer."""

    def __init__(
        self,
        webhook_url: str,
        timeout_seconds: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._webhook_url = webhook_url
        self._timeout_seconds = timeout_seconds
        self._timeout = httpx.Timeout(timeout_seconds)
        self._transport = transport

    async def relay(self, message: str) -> RelayOutcome:
        """Relay ``message`` downstream and classify the response."""
        async with httpx.AsyncClient(
            transport=self._transport, timeout=self._timeout,
        ) as client:
            try:
                # httpx bounds each phase; this bounds the whole exchange.
                async with asyncio.timeout(self._timeout_seconds):
                    async with client.stream(
                        "POST", self._webhook_url, json={"message": message},
                    ) as resp:
                        try:
                            body = await resp.aread()
                        except httpx.HTTPError as exc:
                            logger.warning("Error reading webhook response body: %s", exc)
                            return TransportError(UNREADABLE_MESSAGE)
            except TimeoutError:
                logger.warning(
                    "Webhook call exceeded %.1fs deadline", self._timeout_seconds,
                )
                return TransportError(UNREACHABLE_MESSAGE)
            except httpx.HTTPError as exc:
                logger.warning("Error contacting webhook: %s", exc)
                return TransportError(UNREACHABLE_MESSAGE)

        logger.debug(
            "Webhook answered status=%d bytes=%d", resp.status_code, len(body),
        )
        return normalize(body)

"""Response normalizer: classifies a raw engine payload into a RelayOutcome.

The engine does not commit to one response shape. Depending on the
workflow it answers with a bare sentence, a JSON envelope carrying a
``reply`` field, an n8n error object (``{"code": 404, "message": ...}``)
or nothing at all. ``normalize`` folds every one of these into a
single outcome and never raises, so one malformed upstream response
cannot break a chat session.
"""

from __future__ import annotations

import json
import logging
import math

from src.relay.models import DownstreamError, Empty, RelayOutcome, Reply

logger = logging.getLogger(__name__)

# Canned greetings from the engine ("Halo ...", "Selamat ...") arrive as
# plain text rather than JSON.
_PLAIN_TEXT_PREFIXES = (b"H", b"S")

WEBHOOK_NOT_FOUND_CODE = 404
WEBHOOK_NOT_FOUND_MESSAGE = "Webhook not found or not registered."


def normalize(raw: bytes) -> RelayOutcome:
    """Classify ``raw`` into exactly one relay outcome."""
    if not raw.strip():
        return Empty()

    text = raw.decode("utf-8", errors="replace")

    if raw.startswith(_PLAIN_TEXT_PREFIXES):
        logger.debug("Plain text greeting detected, passing through")
        return Reply(text)

    try:
        payload = json.loads(text)
    except (ValueError, RecursionError):
        logger.debug("Response is not JSON, treating as plain text")
        return Reply(text)

    if not isinstance(payload, dict):
        return Reply(text)

    if _is_not_found(payload.get("code")):
        message = payload.get("message")
        if not isinstance(message, str):
            message = WEBHOOK_NOT_FOUND_MESSAGE
        return DownstreamError(WEBHOOK_NOT_FOUND_CODE, message)

    if "reply" in payload:
        return Reply(_stringify(payload["reply"]))

    # Unrecognized envelope: surface it verbatim so the shape is visible.
    return Reply(text)


def _is_not_found(code: object) -> bool:
    if isinstance(code, bool) or not isinstance(code, (int, float)):
        return False
    return code == WEBHOOK_NOT_FOUND_CODE


def _stringify(value: object) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool) or value is None:
        return json.dumps(value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _format_float(value)
    return json.dumps(value, ensure_ascii=False)


def _format_float(value: float) -> str:
    if math.isfinite(value) and value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(value)

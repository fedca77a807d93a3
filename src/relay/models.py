"""Relay outcomes and their rendering into user-facing replies."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

EMPTY_REPLY_TEXT = "No response received from the server."


@dataclass(frozen=True)
class Reply:
    """A user-facing answer from the automation engine."""

    text: str


@dataclass(frozen=True)
class TransportError:
    """The engine could not be reached or its response could not be read."""

    reason: str  # user-safe, never the raw exception text


@dataclass(frozen=True)
class DownstreamError:
    """A structured failure reported by the engine itself."""

    code: int
    message: str


@dataclass(frozen=True)
class Empty:
    """The engine answered with a blank body."""


RelayOutcome = Union[Reply, TransportError, DownstreamError, Empty]


@dataclass
class ChatReply:
    """Rendered outcome, ready to be serialized back to a chat client."""

    text: str
    status_code: int


def render_outcome(outcome: RelayOutcome) -> ChatReply:
    """Map a relay outcome to reply text and an HTTP-equivalent status.

    Both entry points go through here: the streaming session sends only
    the text, the one-shot handler also uses the status.
    """
    if isinstance(outcome, Reply):
        return ChatReply(text=outcome.text, status_code=200)
    if isinstance(outcome, Empty):
        return ChatReply(text=EMPTY_REPLY_TEXT, status_code=200)
    if isinstance(outcome, DownstreamError):
        return ChatReply(text=f"Error: {outcome.message}", status_code=500)
    return ChatReply(text=outcome.reason, status_code=500)


def outcome_kind(outcome: RelayOutcome) -> str:
    """Short label for logs and audit events."""
    return {
        Reply: "reply",
        TransportError: "transport_error",
        DownstreamError: "downstream_error",
        Empty: "empty",
    }[type(outcome)]

"""Chat-protocol transports for ircantispam."""

from typing import Any

from ircantispam.transport.base import (
    BaseTransport,
    EmitCallback,
    Transport,
    TransportHealth,
    TransportStatus,
)
from ircantispam.transport.mock import MockTransport

__all__ = [
    "BaseTransport",
    "EmitCallback",
    "MockTransport",
    "Transport",
    "TransportHealth",
    "TransportStatus",
    # Lazy import
    "IRCTransport",
]


def __getattr__(name: str) -> Any:
    """Lazy import for the network transport."""
    if name == "IRCTransport":
        from ircantispam.transport.irc import IRCTransport

        return IRCTransport
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

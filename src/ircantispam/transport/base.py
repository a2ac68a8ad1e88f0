"""Base abstraction for chat-protocol transports."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from enum import StrEnum, unique
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from ircantispam.models.command import IrcCommand

if TYPE_CHECKING:
    from ircantispam.models.events import InboundEvent


@unique
class TransportStatus(StrEnum):
    """Connection status for a transport."""

    STOPPED = "stopped"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    ERROR = "error"


class TransportHealth(BaseModel):
    """Health information for a transport."""

    status: TransportStatus = TransportStatus.STOPPED
    connected_at: datetime | None = None
    last_event_at: datetime | None = None
    events_received: int = 0
    commands_sent: int = 0
    reconnects: int = 0
    error: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)


# Type alias for the emit callback
EmitCallback = Callable[["InboundEvent"], Awaitable[None]]


class Transport(ABC):
    """Base class for the protocol client the moderation engine talks to.

    A transport delivers membership and message events in through the
    ``emit`` callback given to :meth:`start`, and accepts the four
    moderation commands (say, kick, ban, voice) plus raw commands out.

    Lifecycle:
        1. Create the transport with its configuration
        2. Call ``start(emit)`` - connect, register, and emit events
        3. Issue commands while connected
        4. Call ``stop()`` to disconnect

    Command methods raise :class:`~ircantispam.core.errors.TransportError`
    when a command cannot be handed to the connection.  Retrying is the
    transport's business, not the caller's.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier for logging, e.g. ``"irc:irc.libera.chat:6697"``."""
        ...

    @abstractmethod
    async def start(self, emit: EmitCallback) -> None:
        """Connect and emit inbound events until stopped.

        Reconnection after a dropped connection is handled here, so this
        returns only after :meth:`stop` or an unrecoverable error.
        """
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Disconnect and release resources."""
        ...

    @abstractmethod
    async def send(self, command: IrcCommand) -> None:
        """Send a raw command."""
        ...

    async def say(self, channel: str, text: str) -> None:
        await self.send(IrcCommand(name="privmsg", args=(channel, text)))

    async def kick(self, channel: str, nick: str, reason: str) -> None:
        await self.send(IrcCommand(name="kick", args=(channel, nick, reason)))

    async def set_ban(self, channel: str, mask: str) -> None:
        await self.send(IrcCommand(name="mode", args=(channel, "+b", mask)))

    async def set_voice(self, channel: str, nick: str) -> None:
        await self.send(IrcCommand(name="mode", args=(channel, "+v", nick)))

    @property
    def status(self) -> TransportStatus:
        return TransportStatus.STOPPED

    async def healthcheck(self) -> TransportHealth:
        return TransportHealth(status=self.status)


class BaseTransport(Transport):
    """Convenience base class with common transport bookkeeping.

    Provides:
    - Status tracking
    - Event and command counting
    - Stop signal via asyncio.Event
    """

    def __init__(self) -> None:
        self._status = TransportStatus.STOPPED
        self._connected_at: datetime | None = None
        self._last_event_at: datetime | None = None
        self._events_received: int = 0
        self._commands_sent: int = 0
        self._reconnects: int = 0
        self._error: str | None = None
        self._stop_event = asyncio.Event()

    @property
    def status(self) -> TransportStatus:
        return self._status

    async def healthcheck(self) -> TransportHealth:
        return TransportHealth(
            status=self._status,
            connected_at=self._connected_at,
            last_event_at=self._last_event_at,
            events_received=self._events_received,
            commands_sent=self._commands_sent,
            reconnects=self._reconnects,
            error=self._error,
        )

    def _set_status(self, status: TransportStatus, error: str | None = None) -> None:
        """Update status and optionally set error message."""
        self._status = status
        self._error = error
        if status == TransportStatus.CONNECTED:
            self._connected_at = datetime.now(UTC)
            self._error = None

    def _record_event(self) -> None:
        self._events_received += 1
        self._last_event_at = datetime.now(UTC)

    def _record_command(self) -> None:
        self._commands_sent += 1

    async def stop(self) -> None:
        """Signal the transport to stop."""
        self._stop_event.set()
        self._status = TransportStatus.STOPPED

    def _should_stop(self) -> bool:
        return self._stop_event.is_set()

    def _reset_stop(self) -> None:
        self._stop_event.clear()

"""Events consumed by the moderation engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

from ircantispam.models.enums import EventKind, LeaveReason
from ircantispam.models.identity import Identity

if TYPE_CHECKING:
    from irc.client import Event as RawEvent

    from ircantispam.core.scheduler import VoiceKey


@dataclass(frozen=True, slots=True)
class MessageEvent:
    """Text posted to a channel."""

    kind: ClassVar[EventKind] = EventKind.MESSAGE

    identity: Identity
    channel: str
    text: str
    raw: RawEvent | None = None


@dataclass(frozen=True, slots=True)
class JoinEvent:
    kind: ClassVar[EventKind] = EventKind.JOIN

    identity: Identity
    channel: str
    raw: RawEvent | None = None


@dataclass(frozen=True, slots=True)
class LeaveEvent:
    """Part, quit, kick or kill, always scoped to one channel."""

    kind: ClassVar[EventKind] = EventKind.LEAVE

    identity: Identity
    channel: str
    reason: LeaveReason = LeaveReason.PART


@dataclass(frozen=True, slots=True)
class RegisteredEvent:
    """The connection finished registration with the server.

    ``nick`` is the nick the server accepted, which may differ from the
    configured one when it was already taken.
    """

    kind: ClassVar[EventKind] = EventKind.REGISTERED

    server: str | None = None
    nick: str | None = None


@dataclass(frozen=True, slots=True)
class VoiceDue:
    """A pending-voice timer expired.

    Produced by the voice scheduler and routed through the engine queue so
    that expiry is handled in order with every other event.
    """

    kind: ClassVar[EventKind] = EventKind.VOICE_DUE

    key: VoiceKey
    token: int


InboundEvent = MessageEvent | JoinEvent | LeaveEvent | RegisteredEvent
EngineEvent = InboundEvent | VoiceDue

"""All string enums for ircantispam."""

from __future__ import annotations

from enum import StrEnum, unique


@unique
class BanFacet(StrEnum):
    """Identity dimension a ban mask can target."""

    NICK = "nick"
    ACCOUNT = "account"
    HOST = "host"


@unique
class VoiceState(StrEnum):
    NONE = "none"
    PENDING = "pending"
    VOICED = "voiced"
    CANCELLED = "cancelled"


@unique
class LeaveReason(StrEnum):
    PART = "part"
    QUIT = "quit"
    KICK = "kick"
    KILL = "kill"


@unique
class EventKind(StrEnum):
    MESSAGE = "message"
    JOIN = "join"
    LEAVE = "leave"
    REGISTERED = "registered"
    VOICE_DUE = "voice_due"

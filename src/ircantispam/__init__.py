"""ircantispam - asyncio IRC channel moderation bot."""

from ircantispam._version import __version__
from ircantispam.core.bot import AntiSpamBot, run_bot
from ircantispam.core.engine import ModerationEngine
from ircantispam.core.errors import (
    AccessListError,
    AntiSpamError,
    ConfigurationError,
    NotConnectedError,
    PatternError,
    TransportError,
)
from ircantispam.core.matcher import ContentMatcher
from ircantispam.core.scheduler import PendingVoice, VoiceKey, VoiceScheduler
from ircantispam.models.command import IrcCommand
from ircantispam.models.config import AntiSpamConfig, load_config
from ircantispam.models.enums import BanFacet, EventKind, LeaveReason, VoiceState
from ircantispam.models.events import (
    JoinEvent,
    LeaveEvent,
    MessageEvent,
    RegisteredEvent,
    VoiceDue,
)
from ircantispam.models.identity import Identity
from ircantispam.models.stats import SpamStats
from ircantispam.store.base import AccessList, AccessLists
from ircantispam.store.json_file import JSONFileAccessList
from ircantispam.store.memory import InMemoryAccessList
from ircantispam.transport.base import (
    BaseTransport,
    Transport,
    TransportHealth,
    TransportStatus,
)
from ircantispam.transport.mock import MockTransport

__all__ = [
    "__version__",
    # Core
    "AntiSpamBot",
    "ContentMatcher",
    "ModerationEngine",
    "PendingVoice",
    "VoiceKey",
    "VoiceScheduler",
    "run_bot",
    # Errors
    "AccessListError",
    "AntiSpamError",
    "ConfigurationError",
    "NotConnectedError",
    "PatternError",
    "TransportError",
    # Models
    "AntiSpamConfig",
    "BanFacet",
    "EventKind",
    "Identity",
    "IrcCommand",
    "JoinEvent",
    "LeaveEvent",
    "LeaveReason",
    "MessageEvent",
    "RegisteredEvent",
    "SpamStats",
    "VoiceDue",
    "VoiceState",
    "load_config",
    # Stores
    "AccessList",
    "AccessLists",
    "InMemoryAccessList",
    "JSONFileAccessList",
    # Transports
    "BaseTransport",
    "IRCTransport",
    "MockTransport",
    "Transport",
    "TransportHealth",
    "TransportStatus",
]


def __getattr__(name: str) -> object:
    if name == "IRCTransport":
        from ircantispam.transport.irc import IRCTransport

        return IRCTransport
    raise AttributeError(f"module 'ircantispam' has no attribute {name}")

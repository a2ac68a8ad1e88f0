"""Exception hierarchy for ircantispam."""

from __future__ import annotations


class AntiSpamError(Exception):
    """Base exception for all ircantispam errors."""


class ConfigurationError(AntiSpamError):
    """Configuration is missing, unreadable or invalid. Fatal at startup."""


class PatternError(ConfigurationError):
    """A configured spam pattern does not compile."""

    def __init__(self, pattern: str, reason: str) -> None:
        super().__init__(f"Invalid spam pattern {pattern!r}: {reason}")
        self.pattern = pattern
        self.reason = reason


class AccessListError(AntiSpamError):
    """An access list file could not be read, parsed or written."""


class TransportError(AntiSpamError):
    """Connection-level failure reported by a transport."""


class NotConnectedError(TransportError):
    """A command was issued while the transport is not connected."""

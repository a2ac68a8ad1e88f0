"""Delayed voice grants keyed by (nick, channel)."""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import NamedTuple

from ircantispam.models.enums import VoiceState
from ircantispam.models.events import VoiceDue

logger = logging.getLogger("ircantispam.scheduler")

NotifyFn = Callable[[VoiceDue], None]


class VoiceKey(NamedTuple):
    nick: str
    channel: str


@dataclass
class PendingVoice:
    """A scheduled voice grant.

    Attributes:
        key: The (nick, channel) pair to voice.
        token: Distinguishes this timer from earlier ones for the same key.
        due_at: ``time.monotonic()`` value at which the timer expires.
        handle: The loop timer; ``None`` once it has fired.
    """

    key: VoiceKey
    token: int
    due_at: float
    handle: asyncio.TimerHandle | None = None


class VoiceScheduler:
    """Tracks at most one pending voice timer per key.

    The scheduler never voices anyone itself.  When a timer expires it hands
    a :class:`VoiceDue` to *notify* (normally the engine queue), and the
    engine then calls :meth:`complete`.  Only a key that is still pending
    with the same token completes, so a timer that was cancelled or
    replaced after it fired is ignored.

    **Concurrency note:** all methods must run on the event loop thread.
    Timer callbacks and queue consumers share that thread, so there is no
    ``await`` between the pending-set check and its mutation.
    """

    def __init__(self, delay: float, notify: NotifyFn) -> None:
        """Initialize the scheduler.

        Args:
            delay: Seconds between join and voice. ``0`` disables scheduling.
            notify: Called with a :class:`VoiceDue` when a timer expires.
        """
        self._delay = delay
        self._notify = notify
        self._pending: dict[VoiceKey, PendingVoice] = {}
        self._tokens = itertools.count(1)

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def enabled(self) -> bool:
        return self._delay > 0

    def schedule(self, key: VoiceKey) -> PendingVoice:
        """Start the timer for *key*, replacing any existing one."""
        if key in self._pending:
            self.cancel(key)

        loop = asyncio.get_running_loop()
        token = next(self._tokens)
        entry = PendingVoice(key=key, token=token, due_at=time.monotonic() + self._delay)
        entry.handle = loop.call_later(self._delay, self._expire, key, token)
        self._pending[key] = entry
        logger.debug("%s/%s: %s -> %s", key.nick, key.channel, VoiceState.NONE, VoiceState.PENDING)
        return entry

    def _expire(self, key: VoiceKey, token: int) -> None:
        entry = self._pending.get(key)
        if entry is None or entry.token != token:
            return
        entry.handle = None
        self._notify(VoiceDue(key=key, token=token))

    def complete(self, key: VoiceKey, token: int) -> bool:
        """Consume an expired timer.

        Returns ``True`` if *key* should be voiced now.
        """
        entry = self._pending.get(key)
        if entry is None or entry.token != token:
            logger.debug("Ignoring stale voice timer for %s/%s", key.nick, key.channel)
            return False
        del self._pending[key]
        logger.debug(
            "%s/%s: %s -> %s", key.nick, key.channel, VoiceState.PENDING, VoiceState.VOICED
        )
        return True

    def cancel(self, key: VoiceKey) -> bool:
        """Drop the pending timer for *key*. Returns ``False`` if none."""
        entry = self._pending.pop(key, None)
        if entry is None:
            return False
        if entry.handle is not None:
            entry.handle.cancel()
        logger.debug(
            "%s/%s: %s -> %s", key.nick, key.channel, VoiceState.PENDING, VoiceState.CANCELLED
        )
        return True

    def cancel_all(self) -> int:
        """Cancel every pending timer and return how many there were."""
        keys = list(self._pending)
        for key in keys:
            self.cancel(key)
        return len(keys)

    def state(self, key: VoiceKey) -> VoiceState:
        """``PENDING`` while a timer exists for *key*, else ``NONE``."""
        return VoiceState.PENDING if key in self._pending else VoiceState.NONE

    def get(self, key: VoiceKey) -> PendingVoice | None:
        return self._pending.get(key)

    def pending_keys(self) -> list[VoiceKey]:
        return list(self._pending)

    def __contains__(self, key: object) -> bool:
        return key in self._pending

    def __len__(self) -> int:
        return len(self._pending)

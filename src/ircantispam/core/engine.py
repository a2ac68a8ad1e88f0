"""Moderation engine: turns channel events into enforcement commands."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable
from typing import TYPE_CHECKING

from ircantispam.core.errors import AccessListError, TransportError
from ircantispam.core.matcher import ContentMatcher
from ircantispam.core.scheduler import VoiceKey, VoiceScheduler
from ircantispam.models.config import AntiSpamConfig
from ircantispam.models.events import (
    EngineEvent,
    JoinEvent,
    LeaveEvent,
    MessageEvent,
    RegisteredEvent,
    VoiceDue,
)
from ircantispam.models.identity import Identity
from ircantispam.models.stats import SpamStats
from ircantispam.store.base import AccessLists
from ircantispam.transport.base import Transport

if TYPE_CHECKING:
    from irc.client import Event as RawEvent

logger = logging.getLogger("ircantispam.engine")

_STOP = object()


class ModerationEngine:
    """Single-consumer moderation state machine.

    Every inbound event and every voice-timer expiry goes through one
    queue drained by one task, so handlers never interleave and the access
    lists, counters and pending-voice set need no locking.

    Example::

        engine = ModerationEngine(config, lists, matcher, transport)
        await engine.start()
        await transport.start(engine.emit)
        ...
        await engine.stop()

    Handlers can also be awaited directly (``await engine.on_join(...)``)
    when no consumer task is running, which is how the tests drive it.
    """

    def __init__(
        self,
        config: AntiSpamConfig,
        lists: AccessLists,
        matcher: ContentMatcher,
        transport: Transport,
        *,
        stats: SpamStats | None = None,
    ) -> None:
        self._config = config
        self._lists = lists
        self._matcher = matcher
        self._transport = transport
        self._stats = stats or SpamStats()
        self._nick = config.bot_name
        self._queue: asyncio.Queue[EngineEvent | object] = asyncio.Queue()
        self._scheduler = VoiceScheduler(config.voice_delay_seconds, self.submit)
        self._task: asyncio.Task[None] | None = None

    # -- Accessors --

    @property
    def stats(self) -> SpamStats:
        return self._stats

    @property
    def lists(self) -> AccessLists:
        return self._lists

    @property
    def scheduler(self) -> VoiceScheduler:
        return self._scheduler

    @property
    def nick(self) -> str:
        """The bot's current nick."""
        return self._nick

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # -- Queue --

    def submit(self, event: EngineEvent) -> None:
        """Enqueue *event* without waiting (safe from loop callbacks)."""
        self._queue.put_nowait(event)

    async def emit(self, event: EngineEvent) -> None:
        """Emit callback handed to the transport."""
        await self._queue.put(event)

    async def start(self) -> None:
        """Start the background consumer task."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="moderation_engine"
        )

    async def stop(self, timeout: float = 5.0) -> None:
        """Cancel pending voice timers and stop the consumer.

        Events already queued are handled before the consumer exits.
        """
        cancelled = self._scheduler.cancel_all()
        if cancelled:
            logger.info("Dropped %d pending voice grant(s)", cancelled)
        if self._task is None:
            return
        self._queue.put_nowait(_STOP)
        try:
            await asyncio.wait_for(self._task, timeout=timeout)
        except (TimeoutError, asyncio.CancelledError):
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None

    async def drain(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    async def process_pending(self) -> int:
        """Handle queued events inline. Only valid while not :attr:`running`."""
        handled = 0
        while not self._queue.empty():
            event = self._queue.get_nowait()
            try:
                if event is not _STOP:
                    await self._safe_dispatch(event)  # type: ignore[arg-type]
                    handled += 1
            finally:
                self._queue.task_done()
        return handled

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                if event is _STOP:
                    return
                await self._safe_dispatch(event)  # type: ignore[arg-type]
            finally:
                self._queue.task_done()

    async def _safe_dispatch(self, event: EngineEvent) -> None:
        try:
            await self.dispatch(event)
        except Exception:
            logger.exception("Failed to handle %s event", event.kind)

    async def dispatch(self, event: EngineEvent) -> None:
        """Route one event to its handler."""
        if isinstance(event, MessageEvent):
            await self.on_message(event.identity, event.channel, event.text, event.raw)
        elif isinstance(event, JoinEvent):
            await self.on_join(event.identity, event.channel, event.raw)
        elif isinstance(event, LeaveEvent):
            await self.on_leave(event.identity, event.channel)
        elif isinstance(event, VoiceDue):
            await self.on_voice_due(event)
        elif isinstance(event, RegisteredEvent):
            await self.on_registered(event)
        else:
            logger.warning("Ignoring unknown event %r", event)

    # -- Event handlers --

    async def on_message(
        self,
        identity: Identity,
        channel: str,
        text: str,
        raw: RawEvent | None = None,
    ) -> None:
        """Evaluate a channel message.

        Order: bot commands, allow-list, deny-list, spam patterns.  With
        ``commands_before_lists`` disabled the deny-list is checked before
        the bot commands, so denied identities get no reply.
        """
        if self._is_self(identity):
            return

        if not self._config.commands_before_lists and self._is_denied(identity):
            await self._enforce_denied(identity, channel, raw)
            return

        if await self._handle_command(identity, channel, text):
            return

        if self._is_allowed(identity):
            return

        if self._is_denied(identity):
            await self._enforce_denied(identity, channel, raw)
            return

        if self._matcher.is_spam(text):
            self._stats.record_spam()
            await self.enforce(identity, channel, raw)

    async def on_join(
        self,
        identity: Identity,
        channel: str,
        raw: RawEvent | None = None,
    ) -> None:
        """Voice, schedule, or enforce against a new arrival."""
        if self._is_self(identity):
            return

        if self._is_allowed(identity):
            logger.info("Trusted user %s joined %s, voicing now", identity.nick, channel)
            await self._voice(channel, identity.nick)
            return

        if self._is_denied(identity):
            logger.warning("Banned user %s joined %s", identity, channel)
            await self.enforce(identity, channel, raw)
            return

        if not self._scheduler.enabled:
            return

        logger.info(
            "Will allow %s to speak in %s after %dms",
            identity.nick,
            channel,
            self._config.voice_delay,
        )
        self._scheduler.schedule(VoiceKey(identity.nick, channel))

    async def on_leave(self, identity: Identity, channel: str) -> None:
        """Forget any pending voice grant for the departed identity."""
        if self._scheduler.cancel(VoiceKey(identity.nick, channel)):
            logger.info("%s left %s before being voiced", identity.nick, channel)

    async def on_voice_due(self, event: VoiceDue) -> None:
        """Voice the key unless it left or was banned in the meantime."""
        if not self._scheduler.complete(event.key, event.token):
            return
        if self._is_denied(Identity(nick=event.key.nick)):
            logger.info(
                "Not voicing banned user %s in %s", event.key.nick, event.key.channel
            )
            return
        await self._voice(event.key.channel, event.key.nick)

    async def on_registered(self, event: RegisteredEvent | None = None) -> None:
        """Replay the configured auto-send commands in order."""
        if event is not None and event.nick:
            self._nick = event.nick
        for command in self._config.auto_send_commands:
            await self._best_effort(f"send {command.name}", self._transport.send(command))

    # -- Enforcement --

    async def enforce(
        self,
        identity: Identity,
        channel: str,
        raw: RawEvent | None = None,
    ) -> list[str]:
        """Kick and ban *identity* and record it on the deny-list.

        A mask for every known facet is added to the deny-list and the list
        is persisted once before the kick and bans are sent.  Command failures
        are logged and do not undo the list update.

        Returns:
            The masks newly added to the deny-list.

        Raises:
            AccessListError: The deny-list could not be persisted.  The kick
                and bans have still been sent.
        """
        logger.warning(
            "Spam detected ... kick-banning user %s from channel %s", identity, channel
        )
        if raw is not None:
            logger.debug("Offending event: %s %s", raw.type, raw.arguments)

        deny = self._lists.deny
        added = [m for m in identity.masks() if not deny.contains(m)]
        persist_error: AccessListError | None = None
        try:
            deny.add_many(added)
        except AccessListError as exc:
            persist_error = exc
        if added:
            self._stats.record_ban()

        await self._best_effort(
            f"kick {identity.nick} from {channel}",
            self._transport.kick(channel, identity.nick, self._config.kick_reason),
        )
        for facet in self._config.ban_facets:
            mask = identity.ban_mask(facet)
            if mask is None:
                continue
            await self._best_effort(
                f"ban {mask} on {channel}", self._transport.set_ban(channel, mask)
            )

        if persist_error is not None:
            raise persist_error
        return added

    async def _enforce_denied(
        self, identity: Identity, channel: str, raw: RawEvent | None
    ) -> None:
        logger.warning("Message from banned user %s in %s", identity, channel)
        self._stats.record_spam()
        await self.enforce(identity, channel, raw)

    # -- Helpers --

    async def _handle_command(self, identity: Identity, channel: str, text: str) -> bool:
        if self._matcher.is_greeting(text):
            await self._best_effort("greet", self._transport.say(channel, f"Hi, {identity.nick}"))
            return True
        if self._matcher.is_status_query(text):
            await self._best_effort("report status", self._transport.say(channel, self.status()))
            return True
        return False

    def status(self) -> str:
        """The status-query reply text."""
        return f"{self._stats.summary()} {len(self._lists.deny)} deny-list entries."

    async def _voice(self, channel: str, nick: str) -> None:
        await self._best_effort(
            f"voice {nick} in {channel}", self._transport.set_voice(channel, nick)
        )

    @staticmethod
    async def _best_effort(description: str, command: Awaitable[None]) -> None:
        try:
            await command
        except TransportError as exc:
            logger.warning("Failed to %s: %s", description, exc)

    def _is_self(self, identity: Identity) -> bool:
        return identity.nick in (self._nick, self._config.bot_name)

    def _is_allowed(self, identity: Identity) -> bool:
        return self._lists.allow.contains_any(identity.masks())

    def _is_denied(self, identity: Identity) -> bool:
        return self._lists.deny.contains_any(identity.masks())

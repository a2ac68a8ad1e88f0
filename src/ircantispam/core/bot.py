"""AntiSpamBot: wires configuration, lists, engine and transport together."""

from __future__ import annotations

import asyncio
import logging

from ircantispam.core.engine import ModerationEngine
from ircantispam.core.matcher import ContentMatcher
from ircantispam.models.config import AntiSpamConfig
from ircantispam.models.stats import SpamStats
from ircantispam.store.base import AccessLists
from ircantispam.transport.base import Transport, TransportHealth

logger = logging.getLogger("ircantispam.bot")


class AntiSpamBot:
    """One moderation bot on one connection.

    Construction does all the startup validation: spam patterns are
    compiled and list files are loaded, so a bad configuration fails here
    rather than after the bot has joined its channels.

    Example::

        config = load_config("config.yml")
        bot = AntiSpamBot(config)
        await bot.run()

    Raises:
        PatternError: A spam pattern does not compile.
        AccessListError: A configured list file is corrupt.
    """

    def __init__(
        self,
        config: AntiSpamConfig,
        *,
        transport: Transport | None = None,
        lists: AccessLists | None = None,
    ) -> None:
        self._config = config
        self._matcher = ContentMatcher(config.bot_name, config.messages)
        self._lists = lists if lists is not None else AccessLists.from_config(config)
        if transport is None:
            from ircantispam.transport.irc import IRCTransport

            transport = IRCTransport(config)
        self._transport = transport
        self._engine = ModerationEngine(config, self._lists, self._matcher, transport)
        self._stopping = False

    @property
    def config(self) -> AntiSpamConfig:
        return self._config

    @property
    def engine(self) -> ModerationEngine:
        return self._engine

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def lists(self) -> AccessLists:
        return self._lists

    @property
    def stats(self) -> SpamStats:
        return self._engine.stats

    async def healthcheck(self) -> TransportHealth:
        return await self._transport.healthcheck()

    async def run(self) -> None:
        """Run until the transport stops or :meth:`stop` is called."""
        self._stopping = False
        logger.info(
            "Starting %s on %s (%d spam pattern(s), %d denied, %d allowed)",
            self._config.bot_name,
            self._transport.name,
            len(self._matcher.patterns),
            len(self._lists.deny),
            len(self._lists.allow),
        )
        await self._engine.start()
        try:
            await self._transport.start(self._engine.emit)
        finally:
            if not self._stopping:
                await self._engine.stop()

    async def stop(self) -> None:
        """Disconnect, drop pending voice grants and finish queued events."""
        if self._stopping:
            return
        self._stopping = True
        await self._transport.stop()
        await self._engine.stop()
        logger.info("%s stopped: %s", self._config.bot_name, self._engine.status())

    async def __aenter__(self) -> AntiSpamBot:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.stop()


async def run_bot(config: AntiSpamConfig) -> None:
    """Run a bot until cancelled, then shut it down cleanly."""
    bot = AntiSpamBot(config)
    try:
        await bot.run()
    except asyncio.CancelledError:
        logger.info("Shutdown requested")
        raise
    finally:
        await bot.stop()

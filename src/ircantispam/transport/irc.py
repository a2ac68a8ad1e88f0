"""IRC transport built on the ``irc`` library's asyncio client."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import ssl

from irc.client import Event, IRCError
from irc.client_aio import AioConnection, AioReactor
from irc.connection import AioFactory
from irc.events import numeric
from jaraco.stream import buffer

from ircantispam.core.errors import NotConnectedError, TransportError
from ircantispam.models.command import IrcCommand
from ircantispam.models.config import AntiSpamConfig
from ircantispam.models.enums import LeaveReason
from ircantispam.models.events import (
    InboundEvent,
    JoinEvent,
    LeaveEvent,
    MessageEvent,
    RegisteredEvent,
)
from ircantispam.models.identity import Identity
from ircantispam.transport.base import BaseTransport, EmitCallback, TransportStatus

logger = logging.getLogger("ircantispam.transport.irc")

NICK_MODE_PREFIXES = "~&@%+"
MAX_RECONNECT_BACKOFF = 60.0

# Library event types with an ``_on_<type>`` handler below
_HANDLED_EVENTS = (
    "welcome",
    "nicknameinuse",
    "pubmsg",
    "join",
    "part",
    "kick",
    "quit",
    "kill",
    "nick",
    "namreply",
    "pubnotice",
    "privnotice",
    "error",
    "disconnect",
)

# Error reply event names (4xx and 5xx numerics) mapped back to their codes
_ERROR_CODES = {name: code for code, name in numeric.items() if code[0] in "45"}


class IRCTransport(BaseTransport):
    """Plain or TLS IRC transport over :mod:`irc.client_aio`.

    The library owns the socket, registration, line parsing and pings.  This
    adapter keeps track of who is in which channel and turns library events
    into engine events:

    - ``pubmsg`` -> :class:`MessageEvent`
    - ``join`` -> :class:`JoinEvent`
    - ``part``, ``kick`` -> :class:`LeaveEvent` for that channel
    - ``quit``, ``kill`` -> one :class:`LeaveEvent` per channel the nick
      was seen in
    - ``welcome`` -> :class:`RegisteredEvent`, then the configured channels
      are joined

    Library handlers are synchronous, so events are queued and a pump task
    awaits the ``emit`` callback.  Outbound commands go through a queue
    spaced ``flood_protection_delay`` apart when flood protection is on.  A
    dropped connection is retried with exponential backoff up to
    ``retry_count`` consecutive times.

    Example::

        transport = IRCTransport(config)
        await transport.start(engine.emit)
    """

    def __init__(self, config: AntiSpamConfig) -> None:
        super().__init__()
        self._config = config
        self._nick = config.bot_name
        self._emit: EmitCallback | None = None
        self._connection: AioConnection | None = None
        self._closed = asyncio.Event()
        self._inbound: asyncio.Queue[InboundEvent] = asyncio.Queue()
        self._outbox: asyncio.Queue[IrcCommand] = asyncio.Queue()
        self._pump_task: asyncio.Task[None] | None = None
        self._sender: asyncio.Task[None] | None = None
        self._registered = False
        # casefolded channel -> nicks seen in it, and -> name as first seen
        self._members: dict[str, set[str]] = {}
        self._channel_names: dict[str, str] = {}

    @property
    def name(self) -> str:
        return f"irc:{self._config.server}:{self._config.port}"

    @property
    def nick(self) -> str:
        return self._nick

    @property
    def registered(self) -> bool:
        return self._registered

    def members(self, channel: str) -> set[str]:
        return set(self._members.get(channel.casefold(), ()))

    @property
    def channels(self) -> list[str]:
        """Channels the bot is currently in."""
        return [self._channel_names[key] for key in self._members]

    # -- Lifecycle --

    async def start(self, emit: EmitCallback) -> None:
        """Connect, register and emit events until :meth:`stop`.

        Raises:
            TransportError: ``retry_count`` consecutive connection attempts
                failed.
        """
        self._reset_stop()
        self._emit = emit
        self._pump_task = asyncio.get_running_loop().create_task(
            self._pump(), name=f"irc_pump:{self.name}"
        )
        try:
            await self._run()
        finally:
            self._pump_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._pump_task
            self._pump_task = None

    async def _run(self) -> None:
        failures = 0
        backoff = 1.0

        while not self._should_stop():
            self._set_status(TransportStatus.CONNECTING)
            try:
                await self._connect()
                await self._session()
            except asyncio.CancelledError:
                await self._close_connection()
                raise
            except (OSError, IRCError, TransportError) as exc:
                self._set_status(TransportStatus.ERROR, str(exc))
                if self._should_stop():
                    break
                if self._registered:
                    failures = 0
                    backoff = 1.0
                failures += 1
                if failures > self._config.retry_count:
                    await self._close_connection()
                    raise TransportError(
                        f"Giving up on {self.name} after {failures} failed attempt(s): {exc}"
                    ) from exc
                logger.warning(
                    "IRC connection to %s lost (%s), reconnecting in %.1fs",
                    self.name,
                    exc,
                    backoff,
                )
            finally:
                await self._close_connection()

            if self._should_stop():
                break
            self._reconnects += 1
            self._set_status(TransportStatus.RECONNECTING)
            await self._sleep_unless_stopped(backoff)
            backoff = min(backoff * 2, MAX_RECONNECT_BACKOFF)

        self._set_status(TransportStatus.STOPPED)

    async def stop(self) -> None:
        """Send ``QUIT`` if connected and close the connection."""
        already_stopping = self._should_stop()
        await super().stop()
        connection = self._connection
        if not already_stopping and connection is not None and connection.is_connected():
            with contextlib.suppress(IRCError, OSError):
                connection.disconnect("shutting down")
        self._closed.set()
        logger.info("IRC transport stopped")

    async def _sleep_unless_stopped(self, seconds: float) -> None:
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)

    def _make_reactor(self) -> AioReactor:
        reactor = AioReactor(loop=asyncio.get_running_loop())
        for event_type in _HANDLED_EVENTS:
            reactor.add_global_handler(event_type, getattr(self, f"_on_{event_type}"))
        reactor.add_global_handler("all_events", self._on_any_event)
        return reactor

    async def _connect(self) -> None:
        self._closed = asyncio.Event()
        self._registered = False
        self._members.clear()
        self._channel_names.clear()
        self._nick = self._config.bot_name

        connection = self._make_reactor().server()
        connection.buffer_class = buffer.LenientDecodingLineBuffer
        self._connection = connection
        if self._config.tls:
            factory = AioFactory(ssl=ssl.create_default_context())
        else:
            factory = AioFactory()
        password = self._config.password
        await connection.connect(
            self._config.server,
            self._config.port,
            self._nick,
            password=password.get_secret_value() if password is not None else None,
            username=self._config.bot_name,
            ircname=self._config.bot_name,
            connect_factory=factory,
        )
        logger.info("Connected to %s", self.name)
        self._sender = asyncio.get_running_loop().create_task(
            self._send_loop(connection), name=f"irc_sender:{self.name}"
        )

    async def _session(self) -> None:
        await self._closed.wait()
        if not self._should_stop():
            raise TransportError("connection closed by server")

    async def _close_connection(self) -> None:
        self._registered = False
        if self._sender is not None:
            self._sender.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sender
            self._sender = None
        # Commands queued for a dead connection are not replayed.
        while not self._outbox.empty():
            self._outbox.get_nowait()
        connection, self._connection = self._connection, None
        if connection is not None and connection.is_connected():
            with contextlib.suppress(IRCError, OSError):
                connection.disconnect()

    # -- Receiving --

    async def _pump(self) -> None:
        while True:
            event = await self._inbound.get()
            try:
                if self._emit is not None:
                    await self._emit(event)
            except Exception:
                logger.exception("Failed to emit %s event", event.kind)
            finally:
                self._inbound.task_done()

    def _dispatch(self, event: InboundEvent) -> None:
        self._record_event()
        self._inbound.put_nowait(event)

    def _on_welcome(self, connection: AioConnection, event: Event) -> None:
        self._nick = event.target or self._nick
        self._registered = True
        self._set_status(TransportStatus.CONNECTED)
        server = str(event.source) if event.source else None
        logger.info("Registered on %s as %s", server or self.name, self._nick)
        self._dispatch(RegisteredEvent(server=server, nick=self._nick))
        for channel in self._config.channels:
            self._queue(IrcCommand(name="join", args=(channel,)))

    def _on_nicknameinuse(self, connection: AioConnection, event: Event) -> None:
        if self._registered:
            return
        self._nick = f"{self._nick}_"
        logger.warning("Nick in use, trying %s", self._nick)
        connection.nick(self._nick)

    def _on_pubmsg(self, connection: AioConnection, event: Event) -> None:
        identity = _source(event)
        if identity is None or not event.arguments:
            return
        self._dispatch(
            MessageEvent(
                identity=identity, channel=event.target, text=event.arguments[0], raw=event
            )
        )

    def _on_join(self, connection: AioConnection, event: Event) -> None:
        identity = _source(event)
        channel = event.target
        if identity is None or not channel:
            return
        if self._is_me(identity.nick):
            logger.info("Joined %s", channel)
            self._track(channel).clear()
            return
        self._track(channel).add(identity.nick)
        self._dispatch(JoinEvent(identity=identity, channel=channel, raw=event))

    def _on_part(self, connection: AioConnection, event: Event) -> None:
        identity = _source(event)
        channel = event.target
        if identity is None or not channel:
            return
        if self._is_me(identity.nick):
            self._untrack(channel)
            return
        self._forget(channel, identity.nick)
        self._dispatch(LeaveEvent(identity=identity, channel=channel, reason=LeaveReason.PART))

    def _on_kick(self, connection: AioConnection, event: Event) -> None:
        channel = event.target
        target = event.arguments[0] if event.arguments else ""
        if not channel or not target:
            return
        if self._is_me(target):
            self._untrack(channel)
            reason = event.arguments[1] if len(event.arguments) > 1 else ""
            logger.warning("Kicked from %s: %s", channel, reason)
            if self._config.auto_rejoin:
                self._queue(IrcCommand(name="join", args=(channel,)))
            return
        self._forget(channel, target)
        self._dispatch(
            LeaveEvent(identity=Identity(nick=target), channel=channel, reason=LeaveReason.KICK)
        )

    def _on_quit(self, connection: AioConnection, event: Event) -> None:
        identity = _source(event)
        if identity is not None:
            self._leave_everywhere(identity, LeaveReason.QUIT)

    def _on_kill(self, connection: AioConnection, event: Event) -> None:
        if event.target:
            self._leave_everywhere(Identity(nick=event.target), LeaveReason.KILL)

    def _on_nick(self, connection: AioConnection, event: Event) -> None:
        identity = _source(event)
        new_nick = event.target
        if identity is None or not new_nick:
            return
        if self._is_me(identity.nick):
            self._nick = new_nick
        for nicks in self._members.values():
            if identity.nick in nicks:
                nicks.discard(identity.nick)
                nicks.add(new_nick)

    def _on_namreply(self, connection: AioConnection, event: Event) -> None:
        # arguments: <type> <channel> <nicks>
        if len(event.arguments) < 2:
            return
        channel, names = event.arguments[-2], event.arguments[-1]
        nicks = self._track(channel)
        for entry in names.split():
            nick = entry.lstrip(NICK_MODE_PREFIXES)
            if nick and not self._is_me(nick):
                nicks.add(nick)

    def _on_pubnotice(self, connection: AioConnection, event: Event) -> None:
        if event.arguments:
            logger.info("%s", event.arguments[-1])

    _on_privnotice = _on_pubnotice

    def _on_error(self, connection: AioConnection, event: Event) -> None:
        if self._config.show_errors:
            logger.error("ERROR: %s", event.target or " ".join(event.arguments))

    def _on_disconnect(self, connection: AioConnection, event: Event) -> None:
        if connection is not self._connection:
            return
        logger.info("Disconnected from %s", self.name)
        self._closed.set()

    def _on_any_event(self, connection: AioConnection, event: Event) -> None:
        code = _ERROR_CODES.get(event.type)
        if code is None or not self._config.show_errors:
            return
        # Numeric error replies, e.g. 482 when the bot lacks channel ops
        logger.warning("Server error %s (%s): %s", code, event.type, " ".join(event.arguments))

    def _leave_everywhere(self, identity: Identity, reason: LeaveReason) -> None:
        for key, nicks in list(self._members.items()):
            if identity.nick not in nicks:
                continue
            nicks.discard(identity.nick)
            channel = self._channel_names.get(key, key)
            self._dispatch(LeaveEvent(identity=identity, channel=channel, reason=reason))

    def _track(self, channel: str) -> set[str]:
        key = channel.casefold()
        self._channel_names.setdefault(key, channel)
        return self._members.setdefault(key, set())

    def _untrack(self, channel: str) -> None:
        key = channel.casefold()
        self._members.pop(key, None)
        self._channel_names.pop(key, None)

    def _forget(self, channel: str, nick: str) -> None:
        nicks = self._members.get(channel.casefold())
        if nicks is not None:
            nicks.discard(nick)

    def _is_me(self, nick: str) -> bool:
        return nick.casefold() == self._nick.casefold()

    # -- Sending --

    async def send(self, command: IrcCommand) -> None:
        """Queue *command* for the connection.

        Raises:
            NotConnectedError: There is no live connection.
        """
        connection = self._connection
        if connection is None or not connection.is_connected() or self._should_stop():
            raise NotConnectedError(f"{self.name} is not connected")
        self._queue(command)

    def _queue(self, command: IrcCommand) -> None:
        self._outbox.put_nowait(command)

    async def _send_loop(self, connection: AioConnection) -> None:
        # ServerConnection.set_rate_limit sleeps in the calling thread, which
        # would stall the event loop, so spacing happens here instead.
        delay = self._config.flood_delay_seconds if self._config.flood_protection else 0.0
        while True:
            command = await self._outbox.get()
            try:
                _deliver(connection, command)
            except (IRCError, OSError, ValueError) as exc:
                logger.warning("Failed to send %s: %s", command.name.upper(), exc)
            else:
                self._record_command()
            if delay:
                await asyncio.sleep(delay)


def _source(event: Event) -> Identity | None:
    if not event.source:
        return None
    return Identity.from_prefix(str(event.source))


def _deliver(connection: AioConnection, command: IrcCommand) -> None:
    """Hand *command* to the library connection.

    The moderation commands use the connection's own helpers; anything else
    (``autoSendCommands`` entries, mostly) goes out as a raw line.
    """
    name = command.name.lower()
    args = command.args
    if name == "privmsg" and len(args) == 2:
        connection.privmsg(*args)
    elif name == "kick" and len(args) in (2, 3):
        connection.kick(*args)
    elif name == "mode" and len(args) >= 2:
        connection.mode(args[0], " ".join(args[1:]))
    elif name == "join" and len(args) in (1, 2):
        connection.join(*args)
    else:
        connection.send_raw(command.to_line())

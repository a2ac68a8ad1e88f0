"""Tests for IRCTransport."""

from __future__ import annotations

import asyncio
import contextlib

import pytest
from irc.client import Event, NickMask, ServerNotConnectedError

from ircantispam.core.bot import AntiSpamBot
from ircantispam.core.errors import NotConnectedError, TransportError
from ircantispam.models.command import IrcCommand
from ircantispam.models.enums import LeaveReason
from ircantispam.models.events import (
    InboundEvent,
    JoinEvent,
    LeaveEvent,
    MessageEvent,
    RegisteredEvent,
)
from ircantispam.models.identity import Identity
from ircantispam.store.base import AccessLists
from ircantispam.store.memory import InMemoryAccessList
from ircantispam.transport.base import TransportStatus
from ircantispam.transport.irc import IRCTransport, _deliver
from tests.conftest import BOT, make_config


class FakeConnection:
    """Records the calls the transport makes on an irc library connection."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[str, ...]]] = []
        self.connected = True

    def is_connected(self) -> bool:
        return self.connected

    def privmsg(self, target: str, text: str) -> None:
        self.calls.append(("privmsg", (target, text)))

    def kick(self, channel: str, nick: str, comment: str = "") -> None:
        self.calls.append(("kick", (channel, nick, comment)))

    def mode(self, target: str, command: str) -> None:
        self.calls.append(("mode", (target, command)))

    def join(self, channel: str, key: str = "") -> None:
        self.calls.append(("join", (channel,)))

    def nick(self, new_nick: str) -> None:
        self.calls.append(("nick", (new_nick,)))

    def send_raw(self, line: str) -> None:
        if not self.connected:
            raise ServerNotConnectedError("Not connected.")
        self.calls.append(("raw", (line,)))

    def disconnect(self, message: str = "") -> None:
        self.connected = False
        self.calls.append(("disconnect", (message,)))


def event(
    type_: str, source: str | None, target: str | None, *arguments: str
) -> Event:
    return Event(type_, NickMask(source) if source else None, target, list(arguments))


class Harness:
    def __init__(self, **overrides: object) -> None:
        overrides.setdefault("channels", ["#room"])
        self.transport = IRCTransport(make_config(**overrides))
        self.connection = FakeConnection()
        self.transport._connection = self.connection  # type: ignore[assignment]

    def feed(self, type_: str, source: str | None, target: str | None, *args: str) -> None:
        handler = getattr(self.transport, f"_on_{type_}")
        handler(self.connection, event(type_, source, target, *args))

    @property
    def events(self) -> list[InboundEvent]:
        queue = self.transport._inbound
        return list(queue._queue)  # type: ignore[attr-defined]

    def queued(self) -> list[str]:
        lines = []
        while not self.transport._outbox.empty():
            lines.append(self.transport._outbox.get_nowait().to_line())
        return lines


@pytest.fixture
def irc() -> Harness:
    return Harness()


class TestRegistration:
    async def test_welcome_emits_and_joins(self, irc: Harness) -> None:
        irc.feed("welcome", "irc.test", BOT, "Welcome to the network")

        assert irc.events == [RegisteredEvent(server="irc.test", nick=BOT)]
        assert irc.transport.registered
        assert irc.transport.status is TransportStatus.CONNECTED
        assert irc.queued() == ["JOIN #room"]

    async def test_nick_in_use_before_registration(self, irc: Harness) -> None:
        irc.feed("nicknameinuse", "irc.test", "*", BOT, "Nickname is already in use")

        assert irc.transport.nick == f"{BOT}_"
        assert irc.connection.calls == [("nick", (f"{BOT}_",))]

    async def test_nick_in_use_after_registration_ignored(self, irc: Harness) -> None:
        irc.feed("welcome", "irc.test", BOT, "Welcome")
        irc.feed("nicknameinuse", "irc.test", BOT, "other", "Nickname is already in use")

        assert irc.transport.nick == BOT
        assert irc.connection.calls == []

    async def test_server_error_logged(
        self, irc: Harness, caplog: pytest.LogCaptureFixture
    ) -> None:
        irc.transport._on_any_event(
            irc.connection,  # type: ignore[arg-type]
            event("chanoprivsneeded", "irc.test", BOT, "#room", "You're not channel operator"),
        )
        assert "Server error 482" in caplog.text

    async def test_server_error_silenced(self, caplog: pytest.LogCaptureFixture) -> None:
        irc = Harness(show_errors=False)
        irc.transport._on_any_event(
            irc.connection,  # type: ignore[arg-type]
            event("chanoprivsneeded", "irc.test", BOT, "#room", "You're not channel operator"),
        )
        assert "Server error" not in caplog.text


class TestInbound:
    async def test_channel_message(self, irc: Harness) -> None:
        irc.feed("pubmsg", "bob!~bobby@1.2.3.4", "#room", "buy now cheap")

        assert len(irc.events) == 1
        message = irc.events[0]
        assert isinstance(message, MessageEvent)
        assert message.identity == Identity(nick="bob", user="~bobby", host="1.2.3.4")
        assert message.channel == "#room"
        assert message.text == "buy now cheap"
        assert message.raw is not None
        assert message.raw.type == "pubmsg"

    async def test_private_message_ignored(self) -> None:
        # Only channel messages have a handler; the library reports private
        # ones as "privmsg", which the transport never registers for.
        assert not hasattr(IRCTransport, "_on_privmsg")

    async def test_join_tracks_member(self, irc: Harness) -> None:
        irc.feed("join", "eve!~eve@9.9.9.9", "#room")

        assert len(irc.events) == 1
        joined = irc.events[0]
        assert isinstance(joined, JoinEvent)
        assert joined.identity.nick == "eve"
        assert irc.transport.members("#ROOM") == {"eve"}

    async def test_own_join_not_emitted(self, irc: Harness) -> None:
        irc.feed("join", f"{BOT}!~bot@host", "#Room")
        assert irc.events == []
        assert irc.transport.channels == ["#Room"]

    async def test_part(self, irc: Harness) -> None:
        irc.feed("join", "eve!~eve@h", "#room")
        irc.feed("part", "eve!~eve@h", "#room", "bye")

        left = irc.events[-1]
        assert isinstance(left, LeaveEvent)
        assert left.reason is LeaveReason.PART
        assert irc.transport.members("#room") == set()

    async def test_kick_of_other_user(self, irc: Harness) -> None:
        irc.feed("join", "bob!~b@h", "#room")
        irc.feed("kick", "op!~op@h", "#room", "bob", "spam")

        assert irc.events[-1] == LeaveEvent(
            identity=Identity(nick="bob"), channel="#room", reason=LeaveReason.KICK
        )

    async def test_kicked_bot_rejoins(self, irc: Harness) -> None:
        irc.feed("join", f"{BOT}!~bot@h", "#room")
        irc.feed("kick", "op!~op@h", "#room", BOT, "out")

        assert irc.events == []
        assert irc.transport.channels == []
        assert irc.queued() == ["JOIN #room"]

    async def test_kicked_bot_without_auto_rejoin(self) -> None:
        irc = Harness(auto_rejoin=False)
        irc.feed("kick", "op!~op@h", "#room", BOT, "out")
        assert irc.queued() == []

    async def test_quit_leaves_every_channel(self, irc: Harness) -> None:
        irc.feed("join", "eve!~eve@h", "#Room")
        irc.feed("join", "eve!~eve@h", "#other")
        irc.feed("join", "mallory!~m@h", "#third")
        irc.feed("quit", "eve!~eve@h", None, "gone")

        leaves = [e for e in irc.events if isinstance(e, LeaveEvent)]
        assert [(e.channel, e.reason) for e in leaves] == [
            ("#Room", LeaveReason.QUIT),
            ("#other", LeaveReason.QUIT),
        ]

    async def test_kill(self, irc: Harness) -> None:
        irc.feed("join", "eve!~eve@h", "#room")
        irc.feed("kill", "oper", "eve", "bad")

        assert irc.events[-1] == LeaveEvent(
            identity=Identity(nick="eve"), channel="#room", reason=LeaveReason.KILL
        )

    async def test_nick_change_updates_members(self, irc: Harness) -> None:
        irc.feed("join", "eve!~eve@h", "#room")
        irc.feed("nick", "eve!~eve@h", "evelyn")
        assert irc.transport.members("#room") == {"evelyn"}

    async def test_names_reply(self, irc: Harness) -> None:
        irc.feed("namreply", "irc.test", BOT, "=", "#room", f"@op +voiced {BOT} plain")
        assert irc.transport.members("#room") == {"op", "voiced", "plain"}

    async def test_disconnect_of_current_connection_ends_session(self, irc: Harness) -> None:
        irc.feed("disconnect", "irc.test", "", "")

        with pytest.raises(TransportError, match="closed by server"):
            await asyncio.wait_for(irc.transport._session(), timeout=1.0)

    async def test_disconnect_of_stale_connection_ignored(self, irc: Harness) -> None:
        irc.transport._on_disconnect(
            FakeConnection(),  # type: ignore[arg-type]
            event("disconnect", "irc.test", "", ""),
        )
        assert not irc.transport._closed.is_set()

    async def test_pump_emits_in_order(self, irc: Harness) -> None:
        received: list[InboundEvent] = []

        async def emit(inbound: InboundEvent) -> None:
            received.append(inbound)

        irc.transport._emit = emit
        irc.feed("join", "eve!~eve@h", "#room")
        irc.feed("pubmsg", "eve!~eve@h", "#room", "hello")
        pump = asyncio.create_task(irc.transport._pump())
        try:
            await asyncio.wait_for(irc.transport._inbound.join(), timeout=1.0)
        finally:
            pump.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await pump

        assert [type(e) for e in received] == [JoinEvent, MessageEvent]


class TestDeliver:
    def test_moderation_commands_use_library_helpers(self) -> None:
        connection = FakeConnection()
        _deliver(connection, IrcCommand(name="privmsg", args=("#room", "hello there")))  # type: ignore[arg-type]
        _deliver(connection, IrcCommand(name="kick", args=("#room", "bob", "spam")))  # type: ignore[arg-type]
        _deliver(connection, IrcCommand(name="mode", args=("#room", "+b", "bob!*@*")))  # type: ignore[arg-type]
        _deliver(connection, IrcCommand(name="join", args=("#room",)))  # type: ignore[arg-type]

        assert connection.calls == [
            ("privmsg", ("#room", "hello there")),
            ("kick", ("#room", "bob", "spam")),
            ("mode", ("#room", "+b bob!*@*")),
            ("join", ("#room",)),
        ]

    def test_other_commands_sent_raw(self) -> None:
        connection = FakeConnection()
        _deliver(connection, IrcCommand(name="mode", args=(BOT,)))  # type: ignore[arg-type]
        _deliver(connection, IrcCommand(name="whois", args=("bob",)))  # type: ignore[arg-type]

        assert connection.calls == [("raw", (f"MODE {BOT}",)), ("raw", ("WHOIS bob",))]


class TestSending:
    async def test_send_queues_command(self, irc: Harness) -> None:
        await irc.transport.kick("#room", "bob", "you are a spammer")
        await irc.transport.set_ban("#room", "bob!*@*")
        assert irc.queued() == [
            "KICK #room bob :you are a spammer",
            "MODE #room +b bob!*@*",
        ]

    async def test_send_without_connection(self) -> None:
        transport = IRCTransport(make_config())
        with pytest.raises(NotConnectedError):
            await transport.send(IrcCommand(name="privmsg", args=("#room", "hi")))

    async def test_send_after_disconnect(self, irc: Harness) -> None:
        irc.connection.connected = False
        with pytest.raises(NotConnectedError):
            await irc.transport.say("#room", "hi")

    async def test_stop_sends_quit(self, irc: Harness) -> None:
        await irc.transport.stop()

        assert irc.connection.calls == [("disconnect", ("shutting down",))]
        assert irc.transport._closed.is_set()
        with pytest.raises(NotConnectedError):
            await irc.transport.say("#room", "hi")

    async def test_send_loop_delivers_and_counts(self) -> None:
        irc = Harness(flood_protection=False)
        sender = asyncio.create_task(irc.transport._send_loop(irc.connection))  # type: ignore[arg-type]
        try:
            await irc.transport.say("#room", "hi")
            await irc.transport.send(IrcCommand(name="whois", args=("bob",)))
            async with asyncio.timeout(1.0):
                while len(irc.connection.calls) < 2:
                    await asyncio.sleep(0)
        finally:
            sender.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sender

        assert irc.connection.calls == [("privmsg", ("#room", "hi")), ("raw", ("WHOIS bob",))]
        health = await irc.transport.healthcheck()
        assert health.commands_sent == 2

    async def test_send_loop_spaces_commands(self) -> None:
        irc = Harness(flood_protection=True, flood_protection_delay=20)
        loop = asyncio.get_running_loop()
        sender = asyncio.create_task(irc.transport._send_loop(irc.connection))  # type: ignore[arg-type]
        try:
            started = loop.time()
            for n in range(3):
                await irc.transport.say("#room", f"line {n}")
            async with asyncio.timeout(2.0):
                while len(irc.connection.calls) < 3:
                    await asyncio.sleep(0.001)
            elapsed = loop.time() - started
        finally:
            sender.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sender

        # Two gaps between three sends
        assert elapsed >= 0.035

    async def test_send_failure_logged_and_skipped(
        self, irc: Harness, caplog: pytest.LogCaptureFixture
    ) -> None:
        irc.transport._config = make_config(flood_protection=False)
        connection = FakeConnection()
        connection.connected = False
        irc.transport._queue(IrcCommand(name="whois", args=("bob",)))
        irc.transport._queue(IrcCommand(name="privmsg", args=("#room", "still here")))
        sender = asyncio.create_task(irc.transport._send_loop(connection))  # type: ignore[arg-type]
        try:
            async with asyncio.timeout(1.0):
                while not connection.calls:
                    await asyncio.sleep(0)
        finally:
            sender.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sender

        assert "Failed to send WHOIS" in caplog.text
        assert connection.calls == [("privmsg", ("#room", "still here"))]


class TestReconnect:
    async def test_gives_up_after_retry_count(self) -> None:
        # Grab a free port, then close it so connecting is refused
        server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        server.close()
        await server.wait_closed()

        transport = IRCTransport(make_config(server="127.0.0.1", port=port, retry_count=0))

        async def emit(inbound: InboundEvent) -> None:
            pass

        with pytest.raises(TransportError, match="Giving up"):
            await asyncio.wait_for(transport.start(emit), timeout=5.0)
        assert transport._pump_task is None


class TestLiveConnection:
    async def test_spammer_kicked_end_to_end(self) -> None:
        received: asyncio.Queue[str] = asyncio.Queue()

        async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            writer.write(f":irc.test 001 {BOT} :Welcome\r\n".encode())
            writer.write(b":bob!~bobby@1.2.3.4 PRIVMSG #room :buy now cheap\r\n")
            await writer.drain()
            while line := await reader.readline():
                await received.put(line.decode().rstrip("\r\n"))
            writer.close()

        server = await asyncio.start_server(handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        config = make_config(
            server="127.0.0.1",
            port=port,
            channels=["#room"],
            flood_protection=False,
            ban_facets=["nick"],
        )
        lists = AccessLists(allow=InMemoryAccessList(), deny=InMemoryAccessList())
        bot = AntiSpamBot(config, lists=lists)
        task = asyncio.create_task(bot.run())

        lines: list[str] = []
        try:
            async with asyncio.timeout(5.0):
                while not any(line.startswith("MODE") for line in lines):
                    lines.append(await received.get())
        finally:
            await bot.stop()
            with contextlib.suppress(TransportError):
                await asyncio.wait_for(task, timeout=5.0)
            server.close()
            await server.wait_closed()

        assert lines[0] == f"NICK {BOT}"
        assert "JOIN #room" in lines
        assert "KICK #room bob :you are a spammer" in lines
        assert "MODE #room +b bob!*@*" in lines
        assert bot.stats.users_banned == 1
        assert bot.lists.deny.entries() == ["bob!*@*", "*!bobby@*", "*!*@1.2.3.4"]

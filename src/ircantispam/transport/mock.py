"""Mock transport for testing."""

from __future__ import annotations

from ircantispam.core.errors import NotConnectedError, TransportError
from ircantispam.models.command import IrcCommand
from ircantispam.models.events import InboundEvent
from ircantispam.transport.base import BaseTransport, EmitCallback, TransportStatus


class MockTransport(BaseTransport):
    """Records sent commands for verification in tests.

    Commands whose name is in ``fail_on`` raise :class:`TransportError`
    instead of being recorded.
    """

    def __init__(self, *, fail_on: set[str] | None = None) -> None:
        super().__init__()
        self.sent: list[IrcCommand] = []
        self.fail_on: set[str] = {name.lower() for name in fail_on or ()}
        self._emit: EmitCallback | None = None

    @property
    def name(self) -> str:
        return "mock"

    async def start(self, emit: EmitCallback) -> None:
        self._reset_stop()
        self._emit = emit
        self._set_status(TransportStatus.CONNECTED)
        await self._stop_event.wait()

    async def stop(self) -> None:
        await super().stop()
        self._emit = None

    async def inject(self, event: InboundEvent) -> None:
        """Deliver *event* as if it arrived from the server."""
        if self._emit is None:
            raise NotConnectedError("mock transport not started")
        self._record_event()
        await self._emit(event)

    async def send(self, command: IrcCommand) -> None:
        if command.name.lower() in self.fail_on:
            raise TransportError(f"{command.name} failed")
        self._record_command()
        self.sent.append(command)

    def _by_mode(self, flag: str) -> list[tuple[str, str]]:
        return [
            (c.args[0], c.args[2])
            for c in self.sent
            if c.name == "mode" and len(c.args) == 3 and c.args[1] == flag
        ]

    @property
    def said(self) -> list[tuple[str, str]]:
        return [(c.args[0], c.args[1]) for c in self.sent if c.name == "privmsg"]

    @property
    def kicks(self) -> list[tuple[str, str, str]]:
        return [(c.args[0], c.args[1], c.args[2]) for c in self.sent if c.name == "kick"]

    @property
    def bans(self) -> list[tuple[str, str]]:
        return self._by_mode("+b")

    @property
    def voices(self) -> list[tuple[str, str]]:
        return self._by_mode("+v")

    def clear(self) -> None:
        self.sent.clear()

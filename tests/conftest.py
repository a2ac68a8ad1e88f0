"""Shared test fixtures and helpers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from typing import Any

import pytest

from ircantispam.core.engine import ModerationEngine
from ircantispam.core.matcher import ContentMatcher
from ircantispam.models.config import AntiSpamConfig
from ircantispam.models.enums import BanFacet
from ircantispam.models.identity import Identity
from ircantispam.store.base import AccessLists
from ircantispam.store.memory import InMemoryAccessList
from ircantispam.transport.mock import MockTransport

BOT = "IrcAntiSpam"


@pytest.fixture
def advance() -> Callable[[int], Coroutine[Any, Any, None]]:
    """Yield control to let pending tasks run without real delay.

    Replaces ``await asyncio.sleep(0.05)`` patterns with zero-delay
    event loop yields::

        await advance()       # 5 yields (default)
        await advance(10)     # 10 yields for heavier workloads
    """

    async def _advance(n: int = 5) -> None:
        for _ in range(n):
            await asyncio.sleep(0)

    return _advance


def make_config(**overrides: Any) -> AntiSpamConfig:
    values: dict[str, Any] = {
        "bot_name": BOT,
        "voice_delay": 30000,
        "messages": ["buy now"],
        "ban_facets": list(BanFacet),
    }
    values.update(overrides)
    return AntiSpamConfig(**values)


def make_identity(
    nick: str = "bob", user: str | None = "~bobby", host: str | None = "1.2.3.4"
) -> Identity:
    return Identity(nick=nick, user=user, host=host)


def make_engine(
    config: AntiSpamConfig | None = None,
    *,
    lists: AccessLists | None = None,
    transport: MockTransport | None = None,
) -> tuple[ModerationEngine, MockTransport]:
    config = config or make_config()
    transport = transport or MockTransport()
    lists = lists or AccessLists(
        allow=InMemoryAccessList(config.trusted), deny=InMemoryAccessList()
    )
    engine = ModerationEngine(
        config, lists, ContentMatcher(config.bot_name, config.messages), transport
    )
    return engine, transport


@pytest.fixture
def config() -> AntiSpamConfig:
    return make_config()


@pytest.fixture
def transport() -> MockTransport:
    return MockTransport()


@pytest.fixture
def engine(config: AntiSpamConfig, transport: MockTransport) -> ModerationEngine:
    return make_engine(config, transport=transport)[0]


@pytest.fixture
def bob() -> Identity:
    return make_identity()

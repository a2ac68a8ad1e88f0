"""Bot configuration model and loader."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

from ircantispam.core.errors import ConfigurationError
from ircantispam.models.command import IrcCommand
from ircantispam.models.enums import BanFacet

logger = logging.getLogger("ircantispam.config")

CONFIG_ENV_VAR = "CONFIG_FILE"
DEFAULT_CONFIG_PATH = "config.yml"


class AntiSpamConfig(BaseModel):
    """Immutable bot configuration.

    Keys may be written in snake_case or in camelCase (``botName``,
    ``voiceDelay``, ``autoSendCommands``...).

    Attributes:
        server: IRC server host name.
        port: IRC server port.
        tls: Wrap the connection in TLS.
        password: Optional server password sent with ``PASS``.
        bot_name: The bot's nick. Also the prefix of the greeting and
            status-query commands.
        channels: Channels joined once registered.
        voice_delay: Milliseconds before a new arrival is voiced.
            ``0`` disables delayed voicing.
        messages: Spam patterns, matched case-insensitively as alternatives.
        ban_facets: Which identity facets get a ban mask on enforcement.
        allow_file: JSON list of trusted masks, loaded at startup.
        deny_file: JSON list of banned masks, rewritten on every new ban.
        trusted: Immediately trusted nicks, used only without ``allow_file``.
        auto_send_commands: Commands sent verbatim once registered.
        commands_before_lists: Answer greeting/status queries even from
            denied identities.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
    )

    server: str = "irc.libera.chat"
    port: int = Field(default=6667, gt=0, lt=65536)
    tls: bool = False
    password: SecretStr | None = None
    bot_name: str = Field(default="IrcAntiSpam", min_length=1)
    channels: list[str] = Field(default_factory=list)

    debug: bool = False
    log_level: str = "INFO"
    show_errors: bool = True

    auto_rejoin: bool = True
    flood_protection: bool = True
    flood_protection_delay: int = Field(default=500, ge=0)
    retry_count: int = Field(default=10, ge=0)

    voice_delay: int = Field(default=3000, ge=0)
    messages: list[str] = Field(default_factory=list)
    ban_facets: list[BanFacet] = Field(default_factory=lambda: [BanFacet.NICK])
    kick_reason: str = "you are a spammer"

    allow_file: Path | None = None
    deny_file: Path | None = None
    trusted: list[str] = Field(default_factory=list)

    auto_send_commands: list[IrcCommand] = Field(default_factory=list)
    commands_before_lists: bool = True

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level {v!r}")
        return level

    @field_validator("ban_facets")
    @classmethod
    def dedupe_ban_facets(cls, v: list[BanFacet]) -> list[BanFacet]:
        return list(dict.fromkeys(v))

    @property
    def voice_delay_seconds(self) -> float:
        return self.voice_delay / 1000.0

    @property
    def flood_delay_seconds(self) -> float:
        return self.flood_protection_delay / 1000.0

    @property
    def effective_log_level(self) -> int:
        if self.debug:
            return logging.DEBUG
        return logging.getLevelName(self.log_level)


def resolve_config_path(path: str | os.PathLike[str] | None = None) -> Path:
    """Explicit path, else ``$CONFIG_FILE``, else ``./config.yml``."""
    if path is not None:
        return Path(path)
    return Path(os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)


def load_config(path: str | os.PathLike[str] | None = None) -> AntiSpamConfig:
    """Load an :class:`AntiSpamConfig` from a YAML (or JSON) file.

    Raises:
        ConfigurationError: The file is unreadable, is not a mapping, or
            fails validation.
    """
    config_path = resolve_config_path(path)
    try:
        with config_path.open(encoding="utf-8") as fh:
            data: Any = yaml.safe_load(fh)
    except OSError as exc:
        raise ConfigurationError(f"Cannot read config file {config_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Cannot parse config file {config_path}: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config file {config_path} must contain a mapping, got {type(data).__name__}"
        )

    try:
        config = AntiSpamConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration in {config_path}: {exc}") from exc

    logger.debug("Loaded configuration from %s", config_path)
    return config

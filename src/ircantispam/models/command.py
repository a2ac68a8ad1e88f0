"""Raw IRC command records."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class IrcCommand(BaseModel):
    """An IRC command name plus its ordered arguments.

    Configuration files may spell a command either as a mapping
    (``{"name": "privmsg", "args": ["NickServ", "identify pw"]}``) or as a
    flat list (``["privmsg", "NickServ", "identify pw"]``).
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    args: tuple[str, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def _from_sequence(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)):
            if not data:
                raise ValueError("command list must not be empty")
            name, *args = data
            return {"name": name, "args": [str(a) for a in args]}
        return data

    def to_line(self) -> str:
        """Serialize to a wire line (without CRLF).

        The last argument becomes a trailing parameter when it contains a
        space, starts with ``:`` or is empty.
        """
        parts = [self.name.upper()]
        if self.args:
            *middle, last = self.args
            parts.extend(middle)
            if not last or " " in last or last.startswith(":"):
                last = f":{last}"
            parts.append(last)
        return " ".join(parts)

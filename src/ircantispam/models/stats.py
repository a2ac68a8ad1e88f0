"""Spam counters."""

from __future__ import annotations

from pydantic import BaseModel, Field


class SpamStats(BaseModel):
    """Counters reported by the status query.

    Both values only ever grow.
    """

    spam_messages: int = Field(default=0, ge=0)
    users_banned: int = Field(default=0, ge=0)

    def record_spam(self) -> None:
        self.spam_messages += 1

    def record_ban(self) -> None:
        self.users_banned += 1

    def summary(self) -> str:
        return (
            f"{self.users_banned} user(s) kicked. "
            f"{self.spam_messages} spam message(s) blocked."
        )

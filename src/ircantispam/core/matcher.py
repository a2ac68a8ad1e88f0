"""Spam and bot-command pattern matching."""

from __future__ import annotations

import re
from collections.abc import Sequence

from ircantispam.core.errors import PatternError

# Leading "(?i)"-style groups apply to the whole pattern
_LEADING_FLAGS = re.compile(r"(?:\(\?[aiLmsux]+\))+")


class ContentMatcher:
    """Compiled spam patterns plus the two fixed bot commands.

    Spam patterns are alternatives and match case-insensitively anywhere in
    the text.  The greeting (``"<bot>, hi"``) and status query
    (``"<bot>, info"``) only match at the start of the text.

    Raises:
        PatternError: A spam pattern does not compile.
    """

    def __init__(self, bot_name: str, patterns: Sequence[str] = ()) -> None:
        self._bot_name = bot_name
        self._patterns = list(patterns)
        self._spam = self._compile_spam(self._patterns)
        escaped = re.escape(bot_name)
        self._greeting = re.compile(rf"^{escaped}, hi")
        self._status = re.compile(rf"^{escaped}, info")

    @staticmethod
    def _compile_spam(patterns: list[str]) -> re.Pattern[str] | None:
        if not patterns:
            return None
        # Compile each alternative alone first so the error names the culprit.
        for pattern in patterns:
            try:
                re.compile(pattern, re.IGNORECASE)
            except re.error as exc:
                raise PatternError(pattern, str(exc)) from exc
        combined = "|".join(ContentMatcher._scoped(p) for p in patterns)
        try:
            return re.compile(combined, re.IGNORECASE)
        except re.error as exc:
            raise PatternError(combined, str(exc)) from exc

    @staticmethod
    def _scoped(pattern: str) -> str:
        """Wrap *pattern* as one alternative.

        Leading inline flags such as ``(?i)`` become a scoped group, since
        global flags are only allowed at the very start of the combined
        expression.
        """
        match = _LEADING_FLAGS.match(pattern)
        if match is None:
            return f"(?:{pattern})"
        flags = "".join(sorted(set(match.group()) & set("aiLmsux")))
        return f"(?{flags}:{pattern[match.end():]})"

    @property
    def bot_name(self) -> str:
        return self._bot_name

    @property
    def patterns(self) -> list[str]:
        return list(self._patterns)

    def is_spam(self, text: str) -> bool:
        if self._spam is None:
            return False
        return self._spam.search(text) is not None

    def is_greeting(self, text: str) -> bool:
        return self._greeting.match(text) is not None

    def is_status_query(self, text: str) -> bool:
        return self._status.match(text) is not None

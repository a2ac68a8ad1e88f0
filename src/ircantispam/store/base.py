"""Abstract base class for identity access lists."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ircantispam.models.config import AntiSpamConfig


class AccessList(ABC):
    """An ordered, duplicate-free collection of identity masks.

    Entries are ban masks in one of three shapes: ``nick!*@*``,
    ``*!account@*`` or ``*!*@host`` (see :meth:`Identity.masks`).  A bare
    entry such as ``"bob"`` is read as the nick mask ``bob!*@*``.
    Membership is an exact, case-sensitive comparison of masks, so a value
    never matches outside its own dimension.  Implement this ABC to plug in
    another storage backend; the library ships with ``InMemoryAccessList``
    and ``JSONFileAccessList``.
    """

    @abstractmethod
    def contains(self, mask: str) -> bool:
        """Return ``True`` if *mask* is on the list."""
        ...

    @abstractmethod
    def add(self, mask: str) -> bool:
        """Append *mask*. Returns ``False`` if it was already present."""
        ...

    @abstractmethod
    def add_many(self, masks: Iterable[str]) -> list[str]:
        """Append every new mask and persist at most once.

        Returns the masks that were newly added, in order.
        """
        ...

    @abstractmethod
    def entries(self) -> list[str]:
        """Return a copy of the list in insertion order."""
        ...

    @abstractmethod
    def persist(self) -> None:
        """Write the full list to durable storage, if any."""
        ...

    def contains_any(self, masks: Iterable[str]) -> bool:
        return any(self.contains(m) for m in masks)

    def __contains__(self, mask: object) -> bool:
        return isinstance(mask, str) and self.contains(mask)

    def __iter__(self) -> Iterator[str]:
        return iter(self.entries())

    def __len__(self) -> int:
        return len(self.entries())


@dataclass
class AccessLists:
    """The allow-list and deny-list owned by one moderation engine."""

    allow: AccessList
    deny: AccessList

    @classmethod
    def from_config(cls, config: AntiSpamConfig) -> AccessLists:
        """Build lists from configuration.

        A configured path gives a file-backed list; otherwise the list lives
        in memory.  Without an allow file the allow-list is seeded with a
        nick mask for each of ``config.trusted``.

        Raises:
            AccessListError: A configured list file exists but is corrupt.
        """
        from ircantispam.store.json_file import JSONFileAccessList
        from ircantispam.store.memory import InMemoryAccessList

        allow: AccessList
        if config.allow_file is not None:
            allow = JSONFileAccessList.load(config.allow_file)
        else:
            allow = InMemoryAccessList(f"{nick}!*@*" for nick in config.trusted)

        deny: AccessList
        if config.deny_file is not None:
            deny = JSONFileAccessList.load(config.deny_file)
        else:
            deny = InMemoryAccessList()

        return cls(allow=allow, deny=deny)

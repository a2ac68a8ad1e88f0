"""In-memory implementation of AccessList."""

from __future__ import annotations

from collections.abc import Iterable

from ircantispam.models.identity import as_mask
from ircantispam.store.base import AccessList


class InMemoryAccessList(AccessList):
    """List-plus-set access list with no durable storage.

    Every entry goes through :func:`as_mask` on the way in and on lookup,
    so ``add("bob")`` and ``contains("bob!*@*")`` refer to the same entry.
    """

    def __init__(self, masks: Iterable[str] = ()) -> None:
        self._entries: list[str] = []
        self._index: set[str] = set()
        for mask in masks:
            self._append(mask)

    def _append(self, entry: str) -> bool:
        mask = as_mask(entry)
        if mask in self._index:
            return False
        self._entries.append(mask)
        self._index.add(mask)
        return True

    def contains(self, mask: str) -> bool:
        return as_mask(mask) in self._index

    def add(self, mask: str) -> bool:
        if not self._append(mask):
            return False
        self.persist()
        return True

    def add_many(self, masks: Iterable[str]) -> list[str]:
        added = [as_mask(m) for m in masks if self._append(m)]
        if added:
            self.persist()
        return added

    def entries(self) -> list[str]:
        return list(self._entries)

    def persist(self) -> None:
        return None

    def __len__(self) -> int:
        return len(self._entries)

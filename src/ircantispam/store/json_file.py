"""JSON-file-backed access list."""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
from collections.abc import Iterable
from pathlib import Path

from ircantispam.core.errors import AccessListError
from ircantispam.store.memory import InMemoryAccessList

logger = logging.getLogger("ircantispam.store")


class JSONFileAccessList(InMemoryAccessList):
    """Access list snapshotted to a JSON array of mask strings.

    Bare nicks in an existing file are read as nick masks and are written
    back in mask form on the next save.

    The file is read in full by :meth:`load` and rewritten in full on every
    mutation that adds a new mask.  Writes go to a temporary file in the
    same directory which then replaces the target, so a crash mid-write
    leaves the previous snapshot intact.

    Example::

        deny = JSONFileAccessList.load("spammers.json")
        if deny.add("bob!*@*"):
            ...  # spammers.json now contains "bob!*@*"
    """

    def __init__(self, path: str | os.PathLike[str], masks: Iterable[str] = ()) -> None:
        self._path = Path(path)
        super().__init__(masks)

    @property
    def path(self) -> Path:
        return self._path

    @classmethod
    def load(cls, path: str | os.PathLike[str]) -> JSONFileAccessList:
        """Read the snapshot at *path*.

        A missing file yields an empty list.

        Raises:
            AccessListError: The file exists but cannot be read or is not a
                JSON array of strings.
        """
        file_path = Path(path)
        if not file_path.exists():
            logger.info("Access list %s does not exist yet, starting empty", file_path)
            return cls(file_path)

        try:
            data = json.loads(file_path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise AccessListError(f"Cannot read access list {file_path}: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise AccessListError(f"Access list {file_path} is not valid UTF-8: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise AccessListError(f"Access list {file_path} is not valid JSON: {exc}") from exc

        if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
            raise AccessListError(f"Access list {file_path} must be a JSON array of strings")

        access_list = cls(file_path, data)
        logger.info("Loaded %d entries from %s", len(access_list), file_path)
        return access_list

    def persist(self) -> None:
        """Atomically rewrite the snapshot.

        Raises:
            AccessListError: The snapshot could not be written.
        """
        payload = json.dumps(self._entries, indent=2)
        directory = self._path.parent
        tmp_name: str | None = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=directory,
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(payload)
                tmp.write("\n")
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, self._path)
        except OSError as exc:
            if tmp_name is not None:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
            raise AccessListError(f"Cannot write access list {self._path}: {exc}") from exc

        logger.debug("Persisted %d entries to %s", len(self._entries), self._path)

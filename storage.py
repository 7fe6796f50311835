"""
storage.py – Vault data model and persistence.

This module contains the in-memory model of a vault and the collaborator
that reads and writes it:

  - MasterCredentialRecord, Entry and Database: immutable snapshot values.
    A mutation never edits a Database in place; with_entry() and
    without_entry() return a new snapshot, which the vault persists before
    adopting it.
  - DatabaseStore: the persistence collaborator (exists / load / save / path)
    backed by a single JSON file whose binary fields are base64 encoded.
  - DirectWriteStrategy and AtomicWriteStrategy: interchangeable ways of
    replacing the file on disk.  The atomic variant writes a *.tmp*
    companion and swaps it in with os.replace().

The whole snapshot is rewritten on every save; there is no partial write and
no locking against other processes.
"""

import base64
import binascii
import json
import logging
import os
from dataclasses import dataclass, field, replace
from typing import Dict, Iterator, Mapping, Tuple

from config import APP_NAME
from errors import DatabaseNotFound, StorageError

logger = logging.getLogger(APP_NAME)


def b64encode(data: bytes) -> str:
    return base64.b64encode(bytes(data)).decode("ascii")


def b64decode(text: str, what: str) -> bytes:
    """Decode a base64 field, raising StorageError naming *what* on failure."""
    try:
        return base64.b64decode(text.encode("ascii"), validate=True)
    except (AttributeError, UnicodeEncodeError, binascii.Error) as exc:
        raise StorageError(f"Invalid {what}: {exc}") from exc


# ---------------------------------------------------------------------------
# Snapshot values
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MasterCredentialRecord:
    """Salt, verifier and iteration count of the master password."""

    salt: bytes
    verifier: bytes
    iterations: int

    def to_dict(self) -> dict:
        return {
            "salt": b64encode(self.salt),
            "verifier": b64encode(self.verifier),
            "iterations": self.iterations,
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "MasterCredentialRecord":
        try:
            iterations = int(data["iterations"])
            return cls(
                salt=b64decode(data["salt"], "salt"),
                verifier=b64decode(data["verifier"], "verifier"),
                iterations=iterations,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageError(f"Invalid credential record: {exc}") from exc


@dataclass(frozen=True)
class Entry:
    """One encrypted secret: AES-GCM ciphertext, its nonce and the lock flag."""

    ciphertext: bytes
    nonce: bytes
    locked: bool = False

    def to_dict(self) -> dict:
        return {
            "ciphertext": b64encode(self.ciphertext),
            "nonce": b64encode(self.nonce),
            "locked": self.locked,
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "Entry":
        try:
            return cls(
                ciphertext=b64decode(data["ciphertext"], "ciphertext"),
                nonce=b64decode(data["nonce"], "nonce"),
                locked=bool(data.get("locked", False)),
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise StorageError(f"Invalid entry record: {exc}") from exc


@dataclass(frozen=True)
class Database:
    """
    The whole persisted state of a vault.

    Names are unique and case-sensitive.  Treat instances as values: use
    with_entry() / without_entry() to obtain a modified copy.
    """

    credential: MasterCredentialRecord
    entries: Dict[str, Entry] = field(default_factory=dict)

    def __contains__(self, name: str) -> bool:
        return name in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, name: str):
        return self.entries.get(name)

    def items(self) -> Iterator[Tuple[str, Entry]]:
        return iter(self.entries.items())

    def with_entry(self, name: str, entry: Entry) -> "Database":
        """Return a copy of this snapshot with *name* set to *entry*."""
        entries = dict(self.entries)
        entries[name] = entry
        return replace(self, entries=entries)

    def with_entries(self, updates: Mapping[str, Entry]) -> "Database":
        entries = dict(self.entries)
        entries.update(updates)
        return replace(self, entries=entries)

    def without_entry(self, name: str) -> "Database":
        """Return a copy of this snapshot with *name* removed."""
        entries = dict(self.entries)
        entries.pop(name, None)
        return replace(self, entries=entries)

    def to_dict(self) -> dict:
        return {
            "credential": self.credential.to_dict(),
            "entries": {name: entry.to_dict() for name, entry in sorted(self.entries.items())},
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "Database":
        if not isinstance(data, Mapping):
            raise StorageError("Invalid database: expected a JSON object")
        try:
            credential = MasterCredentialRecord.from_dict(data["credential"])
            raw_entries = data.get("entries") or {}
            entries = {str(name): Entry.from_dict(raw) for name, raw in raw_entries.items()}
        except (KeyError, AttributeError, TypeError) as exc:
            raise StorageError(f"Invalid database: {exc}") from exc
        return cls(credential=credential, entries=entries)

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict(), indent=2).encode("utf-8")

    @classmethod
    def from_json(cls, raw: bytes) -> "Database":
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise StorageError(f"Failed to load database: {exc}") from exc
        return cls.from_dict(data)


# ---------------------------------------------------------------------------
# Write strategies
# ---------------------------------------------------------------------------

class DirectWriteStrategy:
    """Truncate the target and write the new bytes in place."""

    def write(self, path: str, data: bytes) -> None:
        with open(path, "wb") as fh:
            fh.write(data)


class AtomicWriteStrategy:
    """
    Write *data* to a *.tmp* companion, flush it to disk, then atomically
    replace the original with os.replace().  A crash leaves either the old
    or the new snapshot, never a truncated one.
    """

    suffix = ".tmp"

    def write(self, path: str, data: bytes) -> None:
        tmp = path + self.suffix
        try:
            with open(tmp, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, path)
        except OSError:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise


# ---------------------------------------------------------------------------
# Persistence collaborator
# ---------------------------------------------------------------------------

class DatabaseStore:
    """
    Reads and writes the Database snapshot at a single file location.

    Parameters
    ----------
    path : str
        The vault file.
    strategy : DirectWriteStrategy or AtomicWriteStrategy, optional
        How save() replaces the file.  Defaults to AtomicWriteStrategy.
    """

    def __init__(self, path, strategy=None) -> None:
        self._path: str = os.fspath(path)
        self.strategy = strategy if strategy is not None else AtomicWriteStrategy()

    def __repr__(self) -> str:
        return f"DatabaseStore({self._path!r})"

    def path(self) -> str:
        return self._path

    def exists(self) -> bool:
        return os.path.isfile(self._path)

    def load(self) -> Database:
        """
        Read and parse the snapshot.

        Raises DatabaseNotFound if the file is absent and StorageError if it
        cannot be read or parsed.
        """
        if not self.exists():
            raise DatabaseNotFound()
        try:
            with open(self._path, "rb") as fh:
                raw = fh.read()
        except OSError as exc:
            raise StorageError(f"Failed to load database: {exc}") from exc
        return Database.from_json(raw)

    def save(self, database: Database) -> None:
        """Serialize *database* and replace the file with it."""
        data = database.to_json()
        try:
            parent = os.path.dirname(self._path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            self.strategy.write(self._path, data)
        except OSError as exc:
            logger.exception("Failed to save database to %s", self._path)
            raise StorageError(f"Failed to save database: {exc}") from exc
        logger.debug("Database saved (%d entries)", len(database))

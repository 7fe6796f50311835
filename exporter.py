"""
exporter.py – Encrypted export bundles.

ExportCodec turns a vault snapshot into a self-contained bundle that can be
carried to another machine or kept as a backup:

  1. Every entry is decrypted with the vault's session key (locked entries
     included; the lock flag travels with the record).
  2. The (name, value, locked) records are serialized to JSON, sorted by
     name.
  3. A fresh salt is generated and a key is derived from the *export*
     password, independent of the vault's master credential.
  4. The JSON payload is sealed with AES-256-GCM under that key.
  5. The ciphertext is wrapped with the format version, a timestamp, the
     encryption parameters and some descriptive metadata.

Bundle file layout (JSON, binary fields base64):

  {
    "format_version": "1.0.0",
    "exported_at": "<ISO-8601>",
    "entry_count": 2,
    "encryption": {"algorithm": "AES-256-GCM", "salt": ..., "nonce": ...,
                   "iterations": 100000},
    "encrypted_payload": "...",
    "metadata": {"exported_from": "Strongbox v0.1.0", "vault_name": null,
                 "tags": null}
  }
"""

import base64
import binascii
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from config import APP_NAME, APP_VERSION, DEFAULT_ITERATIONS
from crypto import ALGORITHM, AeadCipher, KeyDerivation, SessionKey, key_material
from errors import DestinationExists, MalformedBundle, StorageError
from storage import Database, b64encode

logger = logging.getLogger(APP_NAME)

EXPORT_FORMAT_VERSION = "1.0.0"


class OverwritePolicy(Enum):
    """Whether an export may replace an existing file."""

    REFUSE = "refuse"
    OVERWRITE = "overwrite"


@dataclass(frozen=True)
class ExportRecord:
    """One decrypted entry inside a bundle payload."""

    name: str
    value: str
    locked: bool = False

    def to_dict(self) -> dict:
        return {"name": self.name, "value": self.value, "locked": self.locked}

    @classmethod
    def from_dict(cls, data) -> "ExportRecord":
        try:
            name = data["name"]
            value = data["value"]
        except (KeyError, TypeError) as exc:
            raise MalformedBundle(f"Invalid record in export payload: {exc}") from exc
        if not isinstance(name, str) or not isinstance(value, str):
            raise MalformedBundle("Invalid record in export payload: name and value must be strings")
        return cls(name=name, value=value, locked=bool(data.get("locked", False)))


@dataclass(frozen=True)
class ExportEncryption:
    algorithm: str
    salt: bytes
    nonce: bytes
    iterations: int

    def to_dict(self) -> dict:
        return {
            "algorithm": self.algorithm,
            "salt": b64encode(self.salt),
            "nonce": b64encode(self.nonce),
            "iterations": self.iterations,
        }


@dataclass(frozen=True)
class ExportBundle:
    """The portable, encrypted export artifact."""

    format_version: str
    exported_at: str
    entry_count: int
    encryption: ExportEncryption
    encrypted_payload: bytes
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "format_version": self.format_version,
            "exported_at": self.exported_at,
            "entry_count": self.entry_count,
            "encryption": self.encryption.to_dict(),
            "encrypted_payload": b64encode(self.encrypted_payload),
            "metadata": dict(self.metadata),
        }

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict(), indent=2).encode("utf-8")

    @classmethod
    def from_dict(cls, data: dict) -> "ExportBundle":
        """
        Build a bundle from its parsed JSON form.

        Raises MalformedBundle if a field is missing or cannot be decoded.
        The format version is not checked here.
        """
        try:
            enc = data["encryption"]
            encryption = ExportEncryption(
                algorithm=str(enc["algorithm"]),
                salt=_b64(enc["salt"]),
                nonce=_b64(enc["nonce"]),
                iterations=int(enc["iterations"]),
            )
            return cls(
                format_version=str(data["format_version"]),
                exported_at=str(data["exported_at"]),
                entry_count=int(data["entry_count"]),
                encryption=encryption,
                encrypted_payload=_b64(data["encrypted_payload"]),
                metadata=dict(data.get("metadata") or {}),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise MalformedBundle(f"Invalid export file: {exc}") from exc


def _b64(text) -> bytes:
    try:
        return base64.b64decode(text.encode("ascii"), validate=True)
    except (AttributeError, UnicodeEncodeError, binascii.Error) as exc:
        raise MalformedBundle(f"Invalid export file: {exc}") from exc


def parse_bundle_json(raw: bytes) -> dict:
    """Parse bundle bytes into a dict, raising MalformedBundle on bad JSON."""
    try:
        data = json.loads(bytes(raw).decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise MalformedBundle(f"Failed to parse export file: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedBundle("Failed to parse export file: expected a JSON object")
    return data


class ExportCodec:
    """
    Builds encrypted export bundles from a vault snapshot.

    Parameters
    ----------
    iterations : int
        PBKDF2 rounds for the export key.  Chosen per codec, never copied
        from the vault's own credential.
    vault_name : str, optional
        Descriptive name written to the bundle metadata.
    tags : list of str, optional
        Free-form labels written to the bundle metadata.
    """

    def __init__(
        self,
        iterations: int = DEFAULT_ITERATIONS,
        vault_name: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> None:
        self.iterations = iterations
        self.vault_name = vault_name
        self.tags = list(tags) if tags else None

    # ------------------------------------------------------------------
    # Building the bundle
    # ------------------------------------------------------------------

    @staticmethod
    def collect(database: Database, session_key) -> List[ExportRecord]:
        """Decrypt every entry of *database*, sorted by name, lock state included."""
        key = key_material(session_key)
        records = []
        for name, entry in sorted(database.items()):
            value = AeadCipher.decrypt_text(entry.ciphertext, entry.nonce, key)
            records.append(ExportRecord(name=name, value=value, locked=entry.locked))
        return records

    def seal(self, records: List[ExportRecord], export_password: str) -> ExportBundle:
        """Encrypt *records* under a fresh key derived from *export_password*."""
        payload = json.dumps([r.to_dict() for r in records]).encode("utf-8")

        salt = KeyDerivation.generate_salt()
        with SessionKey(KeyDerivation.derive(export_password, salt, self.iterations)) as export_key:
            sealed = AeadCipher.encrypt(payload, export_key.material)

        return ExportBundle(
            format_version=EXPORT_FORMAT_VERSION,
            exported_at=datetime.now(timezone.utc).isoformat(),
            entry_count=len(records),
            encryption=ExportEncryption(
                algorithm=ALGORITHM,
                salt=salt,
                nonce=sealed.nonce,
                iterations=self.iterations,
            ),
            encrypted_payload=sealed.ciphertext,
            metadata={
                "exported_from": f"{APP_NAME} v{APP_VERSION}",
                "vault_name": self.vault_name,
                "tags": self.tags,
            },
        )

    def encode(self, database: Database, session_key, export_password: str) -> bytes:
        """Return the serialized bundle for *database* without touching the filesystem."""
        records = self.collect(database, session_key)
        return self.seal(records, export_password).to_json()

    # ------------------------------------------------------------------
    # Writing the bundle
    # ------------------------------------------------------------------

    def export(
        self,
        database: Database,
        session_key,
        export_password: str,
        destination,
        overwrite_policy: OverwritePolicy = OverwritePolicy.REFUSE,
    ) -> bytes:
        """
        Build the bundle for *database* and write it to *destination*.

        The destination is checked before any decryption happens.  Returns
        the bytes written.

        Raises
        ------
        DestinationExists
            If the file exists and *overwrite_policy* is REFUSE.
        StorageError
            If the file cannot be written.
        """
        destination = os.fspath(destination)
        if overwrite_policy is OverwritePolicy.REFUSE and os.path.exists(destination):
            raise DestinationExists(destination)

        data = self.encode(database, session_key, export_password)
        self.write(destination, data, overwrite_policy)
        logger.info("Exported %d entries to %s", len(database), destination)
        return data

    @staticmethod
    def write(destination: str, data: bytes, overwrite_policy: OverwritePolicy) -> None:
        mode = "wb" if overwrite_policy is OverwritePolicy.OVERWRITE else "xb"
        try:
            with open(destination, mode) as fh:
                fh.write(data)
        except FileExistsError:
            raise DestinationExists(destination) from None
        except OSError as exc:
            raise StorageError(f"Failed to write export file: {exc}") from exc

"""
importer.py – Reconciling an export bundle into a live vault.

ImportReconciler opens a bundle produced by exporter.py with the export
password and classifies every record against the destination snapshot:

  - name absent               → added
  - name present, MERGE       → skipped (existing entry kept)
  - name present, REPLACE     → updated (value and lock flag overwritten)
  - name present, DIFF        → updated, but nothing is written

DIFF reports what REPLACE would do without mutating or persisting anything.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from config import APP_NAME
from crypto import AeadCipher, KeyDerivation, SessionKey, key_material
from errors import MalformedBundle, UnsupportedFormatVersion
from exporter import EXPORT_FORMAT_VERSION, ExportBundle, ExportRecord, parse_bundle_json
from storage import Database, Entry

logger = logging.getLogger(APP_NAME)


class ImportStrategy(Enum):
    """Conflict-resolution policy for names present in both vault and bundle."""

    MERGE = "merge"
    REPLACE = "replace"
    DIFF = "diff"


@dataclass
class ImportOutcome:
    """What an import did (or, for DIFF, would do)."""

    added: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    total_in_bundle: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated)


class ImportReconciler:
    """
    Decrypts bundles and merges, replaces or diffs them into a snapshot.

    The reconciler never persists anything itself: reconcile() returns the
    new snapshot (or None when nothing must be written) and the Vault saves
    it through its store.
    """

    supported_version = EXPORT_FORMAT_VERSION

    def open_bundle(self, bundle_bytes: bytes, import_password: str) -> List[ExportRecord]:
        """
        Parse, version-check and decrypt a bundle.

        Raises
        ------
        MalformedBundle
            If the file is not a well-formed bundle.
        UnsupportedFormatVersion
            If its format_version is not the supported one.
        AuthenticationFailure
            If the password is wrong or the payload was tampered with.
        """
        data = parse_bundle_json(bundle_bytes)
        version = data.get("format_version")
        if version != self.supported_version:
            raise UnsupportedFormatVersion(version, self.supported_version)

        bundle = ExportBundle.from_dict(data)
        enc = bundle.encryption

        with SessionKey(KeyDerivation.derive(import_password, enc.salt, enc.iterations)) as import_key:
            payload = AeadCipher.decrypt(bundle.encrypted_payload, enc.nonce, import_key.material)

        try:
            raw_records = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise MalformedBundle(f"Failed to parse decrypted entries: {exc}") from exc
        if not isinstance(raw_records, list):
            raise MalformedBundle("Failed to parse decrypted entries: expected a list")
        return [ExportRecord.from_dict(raw) for raw in raw_records]

    @staticmethod
    def reconcile(
        database: Database,
        records: List[ExportRecord],
        session_key,
        strategy: ImportStrategy,
    ) -> Tuple[ImportOutcome, Optional[Database]]:
        """
        Classify *records* against *database* according to *strategy*.

        Returns (outcome, new_database).  new_database is None for DIFF and
        whenever no record needs writing.
        """
        key = key_material(session_key)
        outcome = ImportOutcome(total_in_bundle=len(records))
        staged: Dict[str, Entry] = {}
        seen = set()

        for record in records:
            exists = record.name in database or record.name in seen
            seen.add(record.name)
            if exists and strategy is ImportStrategy.MERGE:
                outcome.skipped.append(record.name)
                continue

            if exists:
                outcome.updated.append(record.name)
            else:
                outcome.added.append(record.name)

            if strategy is ImportStrategy.DIFF:
                continue

            sealed = AeadCipher.encrypt_text(record.value, key)
            staged[record.name] = Entry(
                ciphertext=sealed.ciphertext,
                nonce=sealed.nonce,
                locked=record.locked,
            )

        if not staged:
            return outcome, None
        return outcome, database.with_entries(staged)

    def import_bundle(
        self,
        database: Database,
        session_key,
        bundle_bytes: bytes,
        import_password: str,
        strategy: ImportStrategy,
    ) -> Tuple[ImportOutcome, Optional[Database]]:
        records = self.open_bundle(bundle_bytes, import_password)
        outcome, updated = self.reconcile(database, records, session_key, strategy)
        logger.info(
            "Import (%s): %d added, %d updated, %d skipped of %d",
            strategy.value,
            len(outcome.added),
            len(outcome.updated),
            len(outcome.skipped),
            outcome.total_in_bundle,
        )
        return outcome, updated

"""
vault.py – The Strongbox vault engine.

Vault ties together KeyDerivation, AeadCipher and a DatabaseStore:

  - init() creates a new master credential and an empty Database.
  - unlock() loads the Database, checks the password against the stored
    verifier and keeps the derived session key for the rest of the session.
  - Entry operations (create / get / update / delete / toggle_lock / list)
    work on the in-memory snapshot.  Every mutation builds a new snapshot,
    saves it through the store and only then adopts it, so a failed save
    leaves the session unchanged.
  - export_* and import_* delegate to ExportCodec and ImportReconciler.
  - close() overwrites the session key with zeros.  Vault is a context
    manager, so ``with Vault(store) as vault:`` closes on every exit path.

Session states: CLOSED → UNLOCKING → OPEN → CLOSED.
"""

import hmac
import logging
import os
from enum import Enum
from typing import List, Optional, Tuple

from config import APP_NAME, DEFAULT_ITERATIONS
from crypto import AeadCipher, KeyDerivation, SessionKey
from errors import (
    CredentialAlreadyExists,
    EmptyPassword,
    EntryAlreadyExists,
    EntryLocked,
    EntryNotFound,
    InvalidMasterPassword,
    SessionClosed,
    StorageError,
)
from exporter import ExportCodec, OverwritePolicy
from importer import ImportOutcome, ImportReconciler, ImportStrategy
from report import write_inventory
from storage import Database, DatabaseStore, Entry, MasterCredentialRecord

logger = logging.getLogger(APP_NAME)


class SessionState(Enum):
    CLOSED = "closed"
    UNLOCKING = "unlocking"
    OPEN = "open"


class Vault:
    """
    A single secret vault backed by one DatabaseStore.

    Parameters
    ----------
    store : DatabaseStore
        Persistence collaborator (exists / load / save / path).
    iterations : int
        PBKDF2 rounds used when init() creates a new credential.  Existing
        vaults always use the count stored in their credential.
    export_iterations : int
        PBKDF2 rounds for bundles written by this vault.
    """

    def __init__(
        self,
        store: DatabaseStore,
        iterations: int = DEFAULT_ITERATIONS,
        export_iterations: int = DEFAULT_ITERATIONS,
    ) -> None:
        self.store = store
        self.iterations = iterations
        self.export_iterations = export_iterations

        self.state: SessionState = SessionState.CLOSED
        self._db: Optional[Database] = None
        self._key: Optional[SessionKey] = None

    @classmethod
    def from_config(cls, config) -> "Vault":
        """Build a vault from an AppConfig's store and iteration settings."""
        return cls(
            config.open_store(),
            iterations=config.kdf_iterations,
            export_iterations=config.export_iterations,
        )

    def __enter__(self) -> "Vault":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __del__(self) -> None:
        key = getattr(self, "_key", None)
        if key is not None:
            key.wipe()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self.state is SessionState.OPEN

    def init(self, password: str) -> "Vault":
        """
        Create a new vault protected by *password* and open a session on it.

        Raises
        ------
        CredentialAlreadyExists
            If the store already holds a Database.
        EmptyPassword
            If *password* is empty or only whitespace.
        """
        if self.store.exists():
            raise CredentialAlreadyExists()
        if not password or not password.strip():
            raise EmptyPassword()

        self.close()
        self.state = SessionState.UNLOCKING
        key = None
        try:
            salt = KeyDerivation.generate_salt()
            key, verifier = KeyDerivation.derive_pair(password, salt, self.iterations)
            database = Database(
                credential=MasterCredentialRecord(
                    salt=salt,
                    verifier=verifier,
                    iterations=self.iterations,
                ),
            )
            self.store.save(database)
        except Exception:
            if key is not None:
                key.wipe()
            self.state = SessionState.CLOSED
            raise

        self._open(database, key)
        logger.info("Vault initialised at %s", self.store.path())
        return self

    def unlock(self, password: str) -> "Vault":
        """
        Open a session on an existing vault.

        Raises
        ------
        DatabaseNotFound
            If the store holds no Database.
        InvalidMasterPassword
            If *password* does not match the stored verifier.
        """
        self.close()
        self.state = SessionState.UNLOCKING
        try:
            database = self.store.load()
            key = self._check_password(database, password)
        except Exception:
            self.state = SessionState.CLOSED
            raise

        self._open(database, key)
        logger.info("Vault unlocked (%d entries)", len(database))
        return self

    def verify_master_password(self, password: str) -> bool:
        """Return True if *password* unlocks the stored vault, without opening a session."""
        database = self.store.load()
        try:
            key = self._check_password(database, password)
        except InvalidMasterPassword:
            return False
        key.wipe()
        return True

    def close(self) -> None:
        """Zero the session key and forget the snapshot.  Safe to call twice."""
        was_open = self.state is SessionState.OPEN
        if self._key is not None:
            self._key.wipe()
        self._key = None
        self._db = None
        self.state = SessionState.CLOSED
        if was_open:
            logger.info("Vault closed")

    @staticmethod
    def _check_password(database: Database, password: str) -> SessionKey:
        """Derive the key pair for *password* and compare verifiers in constant time."""
        cred = database.credential
        if not password:
            logger.warning("Unlock attempt with an empty password")
            raise InvalidMasterPassword()
        key, verifier = KeyDerivation.derive_pair(password, cred.salt, cred.iterations)
        if not hmac.compare_digest(verifier, cred.verifier):
            key.wipe()
            logger.warning("Vault unlock failed: incorrect master password")
            raise InvalidMasterPassword()
        return key

    def _open(self, database: Database, key: SessionKey) -> None:
        self._db = database
        self._key = key
        self.state = SessionState.OPEN

    def _require_open(self) -> Tuple[Database, SessionKey]:
        if self.state is not SessionState.OPEN or self._db is None or self._key is None:
            raise SessionClosed()
        return self._db, self._key

    def _commit(self, database: Database) -> None:
        """Persist *database* and adopt it as the current snapshot."""
        self.store.save(database)
        self._db = database

    @staticmethod
    def _unlocked_entry(database: Database, name: str) -> Entry:
        entry = database.get(name)
        if entry is None:
            raise EntryNotFound(name)
        if entry.locked:
            raise EntryLocked(name)
        return entry

    # ------------------------------------------------------------------
    # Entry operations
    # ------------------------------------------------------------------

    def create_entry(self, name: str, value: str) -> None:
        database, key = self._require_open()
        if name in database:
            raise EntryAlreadyExists(name)

        sealed = AeadCipher.encrypt_text(value, key.material)
        entry = Entry(ciphertext=sealed.ciphertext, nonce=sealed.nonce, locked=False)
        self._commit(database.with_entry(name, entry))
        logger.info("Entry created: %s", name)

    def get_entry(self, name: str) -> str:
        """Decrypt and return the value of *name*.  Locked entries cannot be read."""
        database, key = self._require_open()
        entry = self._unlocked_entry(database, name)
        return AeadCipher.decrypt_text(entry.ciphertext, entry.nonce, key.material)

    def update_entry(self, name: str, new_value: str) -> None:
        database, key = self._require_open()
        entry = self._unlocked_entry(database, name)

        sealed = AeadCipher.encrypt_text(new_value, key.material)
        updated = Entry(ciphertext=sealed.ciphertext, nonce=sealed.nonce, locked=entry.locked)
        self._commit(database.with_entry(name, updated))
        logger.info("Entry updated: %s", name)

    def delete_entry(self, name: str) -> None:
        database, _ = self._require_open()
        self._unlocked_entry(database, name)
        self._commit(database.without_entry(name))
        logger.info("Entry deleted: %s", name)

    def toggle_lock(self, name: str) -> bool:
        """Flip the lock flag of *name* and return the new state."""
        database, _ = self._require_open()
        entry = database.get(name)
        if entry is None:
            raise EntryNotFound(name)

        flipped = Entry(ciphertext=entry.ciphertext, nonce=entry.nonce, locked=not entry.locked)
        self._commit(database.with_entry(name, flipped))
        logger.info("Entry %s: %s", "locked" if flipped.locked else "unlocked", name)
        return flipped.locked

    def list_entries(
        self,
        search: Optional[str] = None,
        lock_filter: Optional[bool] = None,
    ) -> List[Tuple[str, bool]]:
        """
        Return (name, locked) pairs sorted by name.

        *search* is a case-insensitive substring (None or "" matches all);
        *lock_filter* keeps only entries whose flag equals it.  Both filters
        must match.
        """
        database, _ = self._require_open()
        needle = (search or "").lower()
        results = [
            (name, entry.locked)
            for name, entry in database.items()
            if needle in name.lower()
            and (lock_filter is None or entry.locked == lock_filter)
        ]
        results.sort(key=lambda pair: pair[0])
        return results

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    def _codec(self) -> ExportCodec:
        return ExportCodec(iterations=self.export_iterations)

    def export_bundle(self, export_password: str) -> bytes:
        """Return an encrypted bundle of every entry, sealed with *export_password*."""
        database, key = self._require_open()
        return self._codec().encode(database, key, export_password)

    def export_to_file(
        self,
        path,
        export_password: str,
        overwrite_policy: OverwritePolicy = OverwritePolicy.REFUSE,
    ) -> bytes:
        database, key = self._require_open()
        return self._codec().export(database, key, export_password, path, overwrite_policy)

    def import_bundle(
        self,
        bundle_bytes: bytes,
        import_password: str,
        strategy: ImportStrategy = ImportStrategy.MERGE,
    ) -> ImportOutcome:
        """
        Reconcile a bundle into this vault.

        The snapshot is saved once, after every record was processed, and
        only if something was added or updated.  DIFF never saves.
        """
        database, key = self._require_open()
        outcome, updated = ImportReconciler().import_bundle(
            database, key, bundle_bytes, import_password, strategy
        )
        if updated is not None:
            self._commit(updated)
        return outcome

    def import_from_file(
        self,
        path,
        import_password: str,
        strategy: ImportStrategy = ImportStrategy.MERGE,
    ) -> ImportOutcome:
        self._require_open()
        try:
            with open(os.fspath(path), "rb") as fh:
                bundle_bytes = fh.read()
        except OSError as exc:
            raise StorageError(f"Failed to read import file: {exc}") from exc
        return self.import_bundle(bundle_bytes, import_password, strategy)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def write_inventory(
        self,
        path,
        search: Optional[str] = None,
        lock_filter: Optional[bool] = None,
        column_widths: Optional[dict] = None,
    ) -> int:
        """Write the filtered entry list (names and lock flags only) to an Excel file."""
        rows = self.list_entries(search, lock_filter)
        write_inventory(rows, path, column_widths=column_widths)
        return len(rows)

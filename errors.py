"""
errors.py – Error taxonomy for Strongbox.

Every failure the vault engine can report is one member of the closed
ErrorKind enumeration.  Each member has a matching exception class deriving
from VaultError, so callers can either catch a specific class or catch
VaultError and dispatch on the ``kind`` attribute.

Cryptographic failures (AuthenticationFailure, InvalidKeyMaterial) carry a
deliberately vague message: the caller must not be able to tell a wrong
password apart from a tampered file.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Closed set of failure kinds raised by the vault engine."""

    # Entry errors
    ENTRY_NOT_FOUND = "entry_not_found"
    ENTRY_ALREADY_EXISTS = "entry_already_exists"
    ENTRY_LOCKED = "entry_locked"

    # Master credential errors
    INVALID_MASTER_PASSWORD = "invalid_master_password"
    EMPTY_PASSWORD = "empty_password"
    CREDENTIAL_ALREADY_EXISTS = "credential_already_exists"
    DATABASE_NOT_FOUND = "database_not_found"
    SESSION_CLOSED = "session_closed"

    # Crypto errors
    INVALID_PARAMETERS = "invalid_parameters"
    AUTHENTICATION_FAILURE = "authentication_failure"
    INVALID_KEY_MATERIAL = "invalid_key_material"

    # Export / import policy errors
    UNSUPPORTED_FORMAT_VERSION = "unsupported_format_version"
    DESTINATION_EXISTS = "destination_exists"
    MALFORMED_BUNDLE = "malformed_bundle"

    # Persistence
    STORAGE_ERROR = "storage_error"


class VaultError(Exception):
    """Base class of every error raised by Strongbox."""

    kind: ErrorKind = ErrorKind.STORAGE_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Entry errors
# ---------------------------------------------------------------------------

class EntryError(VaultError):
    """
    Base class for errors about a single named entry.

    Attributes
    ----------
    name : str
        The entry name the operation was asked about.
    """

    def __init__(self, message: str, name: str) -> None:
        super().__init__(message)
        self.name: str = name


class EntryNotFound(EntryError):
    kind = ErrorKind.ENTRY_NOT_FOUND

    def __init__(self, name: str) -> None:
        super().__init__(f"Entry '{name}' not found", name)


class EntryAlreadyExists(EntryError):
    kind = ErrorKind.ENTRY_ALREADY_EXISTS

    def __init__(self, name: str) -> None:
        super().__init__(f"Entry '{name}' already exists", name)


class EntryLocked(EntryError):
    kind = ErrorKind.ENTRY_LOCKED

    def __init__(self, name: str) -> None:
        super().__init__(f"Entry '{name}' is locked", name)


# ---------------------------------------------------------------------------
# Master credential errors
# ---------------------------------------------------------------------------

class InvalidMasterPassword(VaultError):
    kind = ErrorKind.INVALID_MASTER_PASSWORD

    def __init__(self) -> None:
        super().__init__("Invalid master password")


class EmptyPassword(VaultError):
    kind = ErrorKind.EMPTY_PASSWORD

    def __init__(self) -> None:
        super().__init__("Password cannot be empty")


class CredentialAlreadyExists(VaultError):
    kind = ErrorKind.CREDENTIAL_ALREADY_EXISTS

    def __init__(self) -> None:
        super().__init__("A vault already exists at this location. Unlock it instead.")


class DatabaseNotFound(VaultError):
    kind = ErrorKind.DATABASE_NOT_FOUND

    def __init__(self) -> None:
        super().__init__("Vault not found. Run 'strongbox init' first.")


class SessionClosed(VaultError):
    kind = ErrorKind.SESSION_CLOSED

    def __init__(self) -> None:
        super().__init__("Vault is not unlocked")


# ---------------------------------------------------------------------------
# Crypto errors
# ---------------------------------------------------------------------------

class InvalidParameters(VaultError):
    kind = ErrorKind.INVALID_PARAMETERS


class AuthenticationFailure(VaultError):
    kind = ErrorKind.AUTHENTICATION_FAILURE

    def __init__(self, message: str = "Wrong password or corrupted data") -> None:
        super().__init__(message)


class InvalidKeyMaterial(VaultError):
    kind = ErrorKind.INVALID_KEY_MATERIAL

    def __init__(self, message: str = "Wrong password or corrupted data") -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Export / import policy errors
# ---------------------------------------------------------------------------

class UnsupportedFormatVersion(VaultError):
    """
    Raised when a bundle's format_version differs from the supported one.

    Attributes
    ----------
    found : str or None
        The version string read from the bundle.
    expected : str
        The only version this engine reads.
    """

    kind = ErrorKind.UNSUPPORTED_FORMAT_VERSION

    def __init__(self, found: Optional[str], expected: str) -> None:
        super().__init__(
            f"Unsupported export format version: {found} (expected {expected})"
        )
        self.found: Optional[str] = found
        self.expected: str = expected


class DestinationExists(VaultError):
    kind = ErrorKind.DESTINATION_EXISTS

    def __init__(self, path) -> None:
        super().__init__(f"File '{path}' already exists. Use --force to overwrite.")
        self.path = path


class MalformedBundle(VaultError):
    kind = ErrorKind.MALFORMED_BUNDLE


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

class StorageError(VaultError):
    kind = ErrorKind.STORAGE_ERROR

"""
crypto.py – Cryptographic operations for Strongbox.

This module is the single place responsible for every cryptographic concern
of the vault:

  - KeyDerivation: PBKDF2-HMAC-SHA256 key derivation from a password, a
    salt and an iteration count, constant-time verification, and the
    domain-separated session-key / verifier pair used by the vault.
  - AeadCipher: AES-256-GCM encryption and decryption of byte payloads
    (256-bit key, 96-bit random nonce, 128-bit tag appended to the
    ciphertext), provided by the 'cryptography' package.
  - SessionKey: a mutable key buffer that is overwritten with zeros when
    the session ends.

Failures surface as the typed errors from errors.py.  Decryption never
reveals whether the key was wrong or the ciphertext was tampered with.
"""

import hmac
import os
from typing import NamedTuple, Tuple, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from config import DEFAULT_ITERATIONS
from errors import (
    AuthenticationFailure,
    EmptyPassword,
    InvalidKeyMaterial,
    InvalidParameters,
)

KEY_LENGTH = 32    # 256-bit AES key
NONCE_LENGTH = 12  # 96-bit GCM nonce
SALT_LENGTH = 32
TAG_LENGTH = 16

ALGORITHM = "AES-256-GCM"

# HKDF context strings separating the session key from the stored verifier.
SESSION_KEY_INFO = b"strongbox/session-key"
VERIFIER_INFO = b"strongbox/verifier"

KeyBytes = Union[bytes, bytearray, memoryview]


class EncryptedData(NamedTuple):
    """Ciphertext (with appended GCM tag) and the nonce it was sealed under."""

    ciphertext: bytes
    nonce: bytes


# ---------------------------------------------------------------------------
# Session key buffer
# ---------------------------------------------------------------------------

class SessionKey:
    """
    Holds the working key of an unlocked vault in a mutable buffer.

    wipe() overwrites the buffer with zeros; it runs on close(), on leaving a
    ``with`` block and, as a last resort, when the object is collected.
    Once wiped the key can no longer be used.
    """

    def __init__(self, key: KeyBytes) -> None:
        if len(key) != KEY_LENGTH:
            raise InvalidKeyMaterial()
        self._buf = bytearray(key)
        self._wiped = False

    def __enter__(self) -> "SessionKey":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wipe()

    def __del__(self) -> None:
        self.wipe()

    def __len__(self) -> int:
        return len(self._buf)

    def __repr__(self) -> str:
        state = "wiped" if self._wiped else "active"
        return f"<SessionKey {state}>"

    @property
    def wiped(self) -> bool:
        return self._wiped

    @property
    def material(self) -> bytearray:
        """The live key buffer.  Raises InvalidKeyMaterial once wiped."""
        if self._wiped:
            raise InvalidKeyMaterial()
        return self._buf

    def wipe(self) -> None:
        """Overwrite every byte of the key with zero."""
        buf = getattr(self, "_buf", None)
        if buf is None:
            return
        for i in range(len(buf)):
            buf[i] = 0
        self._wiped = True


def key_material(key) -> KeyBytes:
    """Return the raw bytes behind *key*, which may be a SessionKey or plain bytes."""
    if isinstance(key, SessionKey):
        return key.material
    return key


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

class KeyDerivation:
    """PBKDF2-HMAC-SHA256 derivation and verification of key material."""

    @staticmethod
    def generate_salt() -> bytes:
        """Return SALT_LENGTH bytes from the OS CSPRNG."""
        return os.urandom(SALT_LENGTH)

    @staticmethod
    def derive(password: str, salt: bytes, iterations: int = DEFAULT_ITERATIONS) -> bytes:
        """
        Derive KEY_LENGTH bytes from *password* and *salt*.

        Deterministic: the same inputs always produce the same output.

        Raises
        ------
        EmptyPassword
            If *password* is empty.
        InvalidParameters
            If *iterations* is not a positive integer.
        """
        if not password:
            raise EmptyPassword()
        if not isinstance(iterations, int) or iterations <= 0:
            raise InvalidParameters(f"Invalid iteration count: {iterations!r}")

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=bytes(salt),
            iterations=iterations,
        )
        return kdf.derive(password.encode("utf-8"))

    @staticmethod
    def verify(password: str, salt: bytes, iterations: int, expected: KeyBytes) -> bool:
        """
        Recompute the derivation and compare it with *expected* in
        constant time.  An empty password never verifies.
        """
        try:
            candidate = KeyDerivation.derive(password, salt, iterations)
        except EmptyPassword:
            return False
        return hmac.compare_digest(candidate, bytes(expected))

    @staticmethod
    def derive_pair(password: str, salt: bytes, iterations: int) -> Tuple[SessionKey, bytes]:
        """
        Derive the vault's session key and its stored verifier.

        PBKDF2 runs once; its output is expanded with HKDF-SHA256 under two
        different context strings, so the persisted verifier reveals
        nothing about the key that encrypts the entries.

        Returns a (SessionKey, verifier) tuple.
        """
        master = bytearray(KeyDerivation.derive(password, salt, iterations))
        try:
            key = HKDF(
                algorithm=hashes.SHA256(),
                length=KEY_LENGTH,
                salt=None,
                info=SESSION_KEY_INFO,
            ).derive(bytes(master))
            verifier = HKDF(
                algorithm=hashes.SHA256(),
                length=KEY_LENGTH,
                salt=None,
                info=VERIFIER_INFO,
            ).derive(bytes(master))
        finally:
            for i in range(len(master)):
                master[i] = 0
        return SessionKey(key), verifier


# ---------------------------------------------------------------------------
# Authenticated encryption
# ---------------------------------------------------------------------------

class AeadCipher:
    """AES-256-GCM with a fresh random nonce for every encryption."""

    @staticmethod
    def _check_key(key: KeyBytes) -> None:
        if key is None or len(key) != KEY_LENGTH:
            raise InvalidKeyMaterial()

    @staticmethod
    def encrypt(plaintext: bytes, key: KeyBytes) -> EncryptedData:
        """
        Seal *plaintext* under *key*.

        The nonce comes from the OS CSPRNG, never from the content, and the
        16-byte tag is appended to the returned ciphertext.
        """
        AeadCipher._check_key(key)
        nonce = os.urandom(NONCE_LENGTH)
        ciphertext = AESGCM(key).encrypt(nonce, plaintext, None)
        return EncryptedData(ciphertext=ciphertext, nonce=nonce)

    @staticmethod
    def decrypt(ciphertext: bytes, nonce: bytes, key: KeyBytes) -> bytes:
        """
        Open *ciphertext* sealed under *key* and *nonce*.

        Raises
        ------
        InvalidKeyMaterial
            If the key is not 32 bytes or the nonce is not 12 bytes.
        AuthenticationFailure
            If the tag does not verify: wrong key, tampered or truncated data.
        """
        AeadCipher._check_key(key)
        if nonce is None or len(nonce) != NONCE_LENGTH:
            raise InvalidKeyMaterial()
        try:
            return AESGCM(key).decrypt(nonce, ciphertext, None)
        except InvalidTag:
            raise AuthenticationFailure() from None

    @staticmethod
    def encrypt_text(value: str, key: KeyBytes) -> EncryptedData:
        return AeadCipher.encrypt(value.encode("utf-8"), key)

    @staticmethod
    def decrypt_text(ciphertext: bytes, nonce: bytes, key: KeyBytes) -> str:
        """Like decrypt(), but returns UTF-8 text; undecodable bytes count as corruption."""
        plaintext = AeadCipher.decrypt(ciphertext, nonce, key)
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError:
            raise AuthenticationFailure() from None

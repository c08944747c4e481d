"""
Passphrase Encryption for Key Pairs

FernetEncoder derives a Fernet key from the passphrase with PBKDF2-HMAC-SHA256
and a fresh random salt on every encrypt call, so re-encrypting the same key
under the same passphrase never repeats a salt.

Serialized key layout (the Fernet plaintext):
    tag (1) || len(private_key) (2, big-endian) || private_key || public_key
"""

import base64
import os
import struct
from abc import ABC, abstractmethod
from typing import Optional, Tuple
import structlog

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..core.keys import KeyPair, wipe_bytes
from ..errors import AuthenticationFailed, DecodeError

logger = structlog.get_logger()

SALT_SIZE = 16
DEFAULT_ITERATIONS = 100000

_HEADER = struct.Struct(">BH")


def serialize_key(key: KeyPair) -> bytearray:
    """Pack a key pair into a mutable buffer the caller must wipe."""
    buffer = bytearray(_HEADER.pack(key.tag, len(key.private_key)))
    buffer += key.private_key
    buffer += key.public_key
    return buffer


def deserialize_key(data: bytes) -> KeyPair:
    """Unpack a key pair, raising DecodeError on malformed input."""
    if len(data) < _HEADER.size:
        raise DecodeError("Serialized key is truncated")
    tag, private_len = _HEADER.unpack_from(data)
    end = _HEADER.size + private_len
    if private_len == 0 or len(data) <= end:
        raise DecodeError("Serialized key has an invalid length")
    return KeyPair(
        private_key=bytearray(data[_HEADER.size:end]),
        public_key=bytes(data[end:]),
        tag=tag,
    )


class Encoder(ABC):
    """Passphrase-based encryption of key pairs."""

    @abstractmethod
    def encrypt(self, key: KeyPair, passphrase: str) -> Tuple[bytes, bytes]:
        """Return (salt, ciphertext)."""
        pass

    @abstractmethod
    def decrypt(self, salt: bytes, ciphertext: bytes, passphrase: str) -> KeyPair:
        pass


class FernetEncoder(Encoder):
    """PBKDF2-HMAC-SHA256 key derivation with Fernet authenticated encryption."""

    def __init__(self, iterations: Optional[int] = None):
        self.iterations = DEFAULT_ITERATIONS if iterations is None else iterations
        if self.iterations < 1:
            raise ValueError("KDF iterations must be positive")

    def _derive_key(self, passphrase: str, salt: bytes) -> bytes:
        """Derive a Fernet key from a passphrase and salt."""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=self.iterations,
        )
        return base64.urlsafe_b64encode(kdf.derive(passphrase.encode('utf-8')))

    def encrypt(self, key: KeyPair, passphrase: str) -> Tuple[bytes, bytes]:
        salt = os.urandom(SALT_SIZE)
        plaintext = serialize_key(key)
        try:
            token = Fernet(self._derive_key(passphrase, salt)).encrypt(bytes(plaintext))
        finally:
            wipe_bytes(plaintext)
        return salt, token

    def decrypt(self, salt: bytes, ciphertext: bytes, passphrase: str) -> KeyPair:
        if not isinstance(salt, (bytes, bytearray)) or len(salt) != SALT_SIZE:
            raise DecodeError(f"Salt must be {SALT_SIZE} bytes")
        if not isinstance(ciphertext, (bytes, bytearray)) or not ciphertext:
            raise DecodeError("Ciphertext must be non-empty bytes")

        try:
            plaintext = bytearray(Fernet(self._derive_key(passphrase, bytes(salt))).decrypt(bytes(ciphertext)))
        except InvalidToken:
            # Wrong passphrase and tampered token are reported identically
            raise AuthenticationFailed()

        try:
            return deserialize_key(plaintext)
        finally:
            wipe_bytes(plaintext)


class NoopEncoder(Encoder):
    """
    Stores keys unencrypted. For tests only.

    The salt is always empty and any passphrase is accepted.
    """

    def encrypt(self, key: KeyPair, passphrase: str) -> Tuple[bytes, bytes]:
        return b"", bytes(serialize_key(key))

    def decrypt(self, salt: bytes, ciphertext: bytes, passphrase: str) -> KeyPair:
        return deserialize_key(ciphertext)

"""
Error Types for cryptostore

Every failure surfaced by the key manager is one of these. Callers can tell
"no such key" from "wrong passphrase" from "bad input", but never whether a
ciphertext was tampered with or simply encrypted under another passphrase.
"""

from typing import Optional


class CryptoStoreError(Exception):
    """Base class for all cryptostore errors."""
    pass


class DuplicateName(CryptoStoreError):
    """Raised when a key is already stored under the requested name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Key already exists: {name}")


class NotFound(CryptoStoreError):
    """Raised when no key is stored under the requested name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Key not found: {name}")


class AuthenticationFailed(CryptoStoreError):
    """Raised when a record cannot be decrypted with the given passphrase."""

    def __init__(self, message: str = "Invalid passphrase"):
        super().__init__(message)


class UnsupportedAlgorithm(CryptoStoreError):
    """Raised for an unknown algorithm name or type tag."""

    def __init__(self, algorithm: object, message: Optional[str] = None):
        self.algorithm = algorithm
        super().__init__(message or f"Unsupported algorithm: {algorithm}")


class InvalidPhrase(CryptoStoreError):
    """Raised when a mnemonic phrase fails to decode."""
    pass


class DecodeError(CryptoStoreError):
    """Raised when a stored record or ciphertext is structurally invalid."""
    pass


class SignatureError(CryptoStoreError):
    """Raised when a Signable refuses a signature."""
    pass

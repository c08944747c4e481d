"""
Signable Messages

The Manager signs anything exposing sign_bytes() and attach_signature().
Two simple implementations are provided: a message carrying exactly one
signature and one collecting signatures from several keys.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from ..errors import SignatureError


class Signable(ABC):
    """Capability interface for objects the Manager can sign."""

    @abstractmethod
    def sign_bytes(self) -> bytes:
        """The exact bytes to be signed."""
        pass

    @abstractmethod
    def attach_signature(self, public_key: bytes, signature: bytes) -> None:
        """Record a signature produced by the holder of public_key."""
        pass


class SignedMessage(Signable):
    """A payload that accepts a single signature."""

    def __init__(self, payload: bytes):
        self.payload = bytes(payload)
        self.public_key: Optional[bytes] = None
        self.signature: Optional[bytes] = None

    @property
    def is_signed(self) -> bool:
        return self.signature is not None

    def sign_bytes(self) -> bytes:
        return self.payload

    def attach_signature(self, public_key: bytes, signature: bytes) -> None:
        if self.is_signed:
            raise SignatureError("Message already signed")
        self.public_key = bytes(public_key)
        self.signature = bytes(signature)


class MultiSignedMessage(Signable):
    """A payload collecting signatures in the order they were attached."""

    def __init__(self, payload: bytes):
        self.payload = bytes(payload)
        self.signatures: List[Tuple[bytes, bytes]] = []

    @property
    def signers(self) -> List[bytes]:
        return [public_key for public_key, _ in self.signatures]

    def sign_bytes(self) -> bytes:
        return self.payload

    def attach_signature(self, public_key: bytes, signature: bytes) -> None:
        if bytes(public_key) in self.signers:
            raise SignatureError("Public key has already signed this message")
        self.signatures.append((bytes(public_key), bytes(signature)))

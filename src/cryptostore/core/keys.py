"""
Key Material

KeyPair is the decrypted form of a key and only ever lives in memory for
the duration of one operation. KeyInfo is its public projection and is
safe to persist and list in plaintext.
"""

import base64
import hashlib
from dataclasses import dataclass
from typing import Any, Dict, Optional


def wipe_bytes(buffer: Optional[bytearray]) -> None:
    """Zero a mutable buffer in place."""
    if buffer is None:
        return
    for i in range(len(buffer)):
        buffer[i] = 0


@dataclass
class KeyPair:
    """Private key material plus its one-byte algorithm tag."""
    private_key: bytearray
    public_key: bytes
    tag: int

    def __post_init__(self):
        if not isinstance(self.private_key, bytearray):
            self.private_key = bytearray(self.private_key)
        if not 0 <= self.tag <= 0xFF:
            raise ValueError(f"Tag must fit in one byte: {self.tag}")

    def wipe(self) -> None:
        """Erase the private key bytes."""
        wipe_bytes(self.private_key)

    def __repr__(self) -> str:
        return f"KeyPair(tag=0x{self.tag:02x}, public_key={self.public_key.hex()})"


@dataclass(frozen=True)
class KeyInfo:
    """Public information about a stored key."""
    name: str
    public_key: bytes
    tag: int
    algorithm: str

    @property
    def key_id(self) -> str:
        return hashlib.sha256(self.public_key).hexdigest()[:16]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "public_key": base64.b64encode(self.public_key).decode('utf-8'),
            "tag": self.tag,
            "algorithm": self.algorithm,
            "key_id": self.key_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KeyInfo":
        return cls(
            name=data["name"],
            public_key=base64.b64decode(data["public_key"]),
            tag=int(data["tag"]),
            algorithm=data["algorithm"],
        )


def info(name: str, key: KeyPair, algorithm: str) -> KeyInfo:
    """Build the public projection of a key pair."""
    return KeyInfo(
        name=name,
        public_key=bytes(key.public_key),
        tag=key.tag,
        algorithm=algorithm,
    )

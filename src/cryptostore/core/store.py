"""
Encrypted Key Store

Composes an Encoder with a raw Storage: keys go in as KeyPairs and come out
as KeyPairs, but only ever touch storage as (salt, ciphertext) records.
Passphrase checks before deletion are the Manager's job, not this layer's.
"""

from dataclasses import replace as _evolve
from datetime import datetime, timezone
from typing import List, Tuple
import structlog

from ..crypto.encoder import Encoder
from ..crypto.generators import GeneratorRegistry
from ..persistence.models import EncryptedRecord
from ..persistence.storage import Storage
from .keys import KeyInfo, KeyPair, info

logger = structlog.get_logger()


class EncryptedStore:
    """Named, passphrase-protected key records."""

    def __init__(self, encoder: Encoder, storage: Storage, registry: GeneratorRegistry):
        self.encoder = encoder
        self.storage = storage
        self.registry = registry

    def _record(self, name: str, passphrase: str, key: KeyPair) -> EncryptedRecord:
        algorithm = self.registry.for_tag(key.tag).name
        salt, ciphertext = self.encoder.encrypt(key, passphrase)
        return EncryptedRecord(
            name=name,
            salt=salt,
            ciphertext=ciphertext,
            info=info(name, key, algorithm),
        )

    def put(self, name: str, passphrase: str, key: KeyPair) -> KeyInfo:
        """Encrypt and store a new key. Raises DuplicateName."""
        record = self._record(name, passphrase, key)
        self.storage.put(record)
        return record.info

    def get(self, name: str, passphrase: str) -> Tuple[KeyPair, KeyInfo]:
        """Load and decrypt a key. Raises NotFound or AuthenticationFailed."""
        record = self.storage.get(name)
        key = self.encoder.decrypt(record.salt, record.ciphertext, passphrase)
        return key, record.info

    def replace(self, name: str, passphrase: str, key: KeyPair) -> KeyInfo:
        """Re-encrypt an existing key under a fresh salt and swap it in atomically."""
        current = self.storage.get(name)
        staged = self._record(name, passphrase, key)
        record = _evolve(
            staged,
            created_at=current.created_at,
            updated_at=datetime.now(timezone.utc).isoformat(),
        )
        self.storage.replace(record)
        return record.info

    def delete(self, name: str) -> None:
        self.storage.delete(name)

    def info(self, name: str) -> KeyInfo:
        return self.storage.get(name).info

    def list(self) -> List[KeyInfo]:
        return [record.info for record in self.storage.list()]

    def encrypt(self, key: KeyPair, passphrase: str) -> Tuple[bytes, bytes]:
        return self.encoder.encrypt(key, passphrase)

    def decrypt(self, salt: bytes, ciphertext: bytes, passphrase: str) -> KeyPair:
        return self.encoder.decrypt(salt, ciphertext, passphrase)

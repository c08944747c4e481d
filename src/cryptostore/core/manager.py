"""
Key Manager

Top-level orchestration of the key lifecycle: create, recover, list, get,
sign, export, import, delete and update. The Manager holds no persisted
state of its own; it composes a generator registry, a phrase codec and an
EncryptedStore, and owns every rule that spans them.

Each name is independently Absent or Present. Operations that mutate a name
hold that name's lock for their whole check-then-write sequence, and Update
swaps the re-encrypted record in atomically instead of deleting first.
"""

import secrets
from contextlib import contextmanager
from threading import Lock
from typing import Dict, Iterator, List, Optional, Tuple
import structlog

from ..crypto.codec import Codec, join_phrase, split_phrase
from ..crypto.encoder import Encoder
from ..crypto.generators import SECRET_SIZE, GeneratorRegistry, default_registry
from ..crypto.signable import Signable
from ..errors import AuthenticationFailed, DuplicateName, InvalidPhrase, NotFound
from ..persistence.storage import Storage
from .keys import KeyInfo, KeyPair, wipe_bytes
from .store import EncryptedStore

logger = structlog.get_logger()

# Secret plus one trailing tag byte
PAYLOAD_SIZE = SECRET_SIZE + 1


class NameLocks:
    """Per-name mutual exclusion. Locks are dropped once nobody holds them."""

    def __init__(self):
        self._guard = Lock()
        self._locks: Dict[str, Tuple[Lock, int]] = {}

    @contextmanager
    def hold(self, name: str) -> Iterator[None]:
        with self._guard:
            lock, waiters = self._locks.get(name, (None, 0))
            if lock is None:
                lock = Lock()
            self._locks[name] = (lock, waiters + 1)

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                lock, waiters = self._locks[name]
                if waiters == 1:
                    del self._locks[name]
                else:
                    self._locks[name] = (lock, waiters - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class Manager:
    """
    Passphrase-protected key manager.

    Features:
    - Keys are only ever persisted encrypted
    - Recovery phrase returned once at creation, never stored
    - Passphrase changes never leave the name without a record
    - Export/import between managers under a one-time transfer passphrase
    """

    def __init__(
        self,
        encoder: Encoder,
        storage: Storage,
        codec: Codec,
        registry: Optional[GeneratorRegistry] = None,
    ):
        self.registry = registry or default_registry()
        self.codec = codec
        self.es = EncryptedStore(encoder, storage, self.registry)
        self._locks = NameLocks()

    def _unlock(self, name: str, passphrase: str) -> Tuple[KeyPair, KeyInfo]:
        try:
            return self.es.get(name, passphrase)
        except AuthenticationFailed:
            logger.warning("key_unlock_failed", name=name)
            raise

    def _exists(self, name: str) -> bool:
        try:
            self.es.info(name)
        except NotFound:
            return False
        return True

    def create(self, name: str, passphrase: str, algorithm: str = "ed25519") -> Tuple[KeyInfo, str]:
        """
        Generate a new key and store it under name.

        Returns the key's public info and the recovery phrase. The phrase is
        the only place the secret is ever exposed.
        """
        generator = self.registry.for_algorithm(algorithm)

        with self._locks.hold(name):
            # 128 bits are all the randomness the generators make use of
            secret = bytearray(secrets.token_bytes(SECRET_SIZE))
            payload = None
            key = None
            try:
                key = generator.generate(secret)
                # [payload] = [secret] + [type]
                payload = secret + bytearray([key.tag])
                phrase = join_phrase(self.codec.bytes_to_words(payload))
                key_info = self.es.put(name, passphrase, key)
            finally:
                wipe_bytes(secret)
                wipe_bytes(payload)
                if key is not None:
                    key.wipe()

        logger.info("key_created", name=name, algorithm=key_info.algorithm, key_id=key_info.key_id)
        return key_info, phrase

    def recover(self, name: str, passphrase: str, phrase: str) -> KeyInfo:
        """
        Rebuild a key from its recovery phrase and store it under name.

        The algorithm comes from the tag byte embedded in the phrase, not
        from the caller.
        """
        payload = bytearray(self.codec.words_to_bytes(split_phrase(phrase)))
        key = None
        try:
            if len(payload) != PAYLOAD_SIZE:
                raise InvalidPhrase(f"Phrase must encode {PAYLOAD_SIZE} bytes, got {len(payload)}")
            secret, tag = payload[:SECRET_SIZE], payload[SECRET_SIZE]
            try:
                key = self.registry.for_tag(tag).generate(secret)
            finally:
                wipe_bytes(secret)

            with self._locks.hold(name):
                key_info = self.es.put(name, passphrase, key)
        finally:
            wipe_bytes(payload)
            if key is not None:
                key.wipe()

        logger.info("key_recovered", name=name, algorithm=key_info.algorithm, key_id=key_info.key_id)
        return key_info

    def list(self) -> List[KeyInfo]:
        """All keys, sorted by name."""
        return sorted(self.es.list(), key=lambda k: k.name)

    def get(self, name: str) -> KeyInfo:
        """Public information about one key."""
        return self.es.info(name)

    def sign(self, name: str, passphrase: str, tx: Signable) -> None:
        """
        Sign tx with the named key and attach the signature and public key.

        Raises NotFound or AuthenticationFailed.
        """
        key, key_info = self._unlock(name, passphrase)
        try:
            generator = self.registry.for_tag(key.tag)
            signature = generator.sign(key.private_key, tx.sign_bytes())
            tx.attach_signature(key.public_key, signature)
        finally:
            key.wipe()
        logger.info("key_signed", name=name, key_id=key_info.key_id)

    def verify(self, name: str, data: bytes, signature: bytes) -> bool:
        """Check a signature against the named key's public key."""
        key_info = self.es.info(name)
        return self.registry.for_tag(key_info.tag).verify(key_info.public_key, data, signature)

    def export(self, name: str, oldpass: str, transferpass: str) -> Tuple[bytes, bytes]:
        """
        Re-encrypt a key under a one-time transfer passphrase.

        Returns (salt, ciphertext) for import_key() on another Manager.
        """
        key, _ = self._unlock(name, oldpass)
        try:
            result = self.es.encrypt(key, transferpass)
        finally:
            key.wipe()
        logger.info("key_exported", name=name)
        return result

    def import_key(
        self,
        name: str,
        newpass: str,
        transferpass: str,
        salt: bytes,
        ciphertext: bytes,
    ) -> KeyInfo:
        """Store an exported key under name, protected by newpass."""
        with self._locks.hold(name):
            if self._exists(name):
                raise DuplicateName(name)
            try:
                key = self.es.decrypt(salt, ciphertext, transferpass)
            except AuthenticationFailed:
                logger.warning("key_import_failed", name=name)
                raise
            try:
                key_info = self.es.put(name, newpass, key)
            finally:
                key.wipe()

        logger.info("key_imported", name=name, algorithm=key_info.algorithm, key_id=key_info.key_id)
        return key_info

    def delete(self, name: str, passphrase: str) -> None:
        """Remove a key forever. The passphrase must be verified first."""
        with self._locks.hold(name):
            key, _ = self._unlock(name, passphrase)
            key.wipe()
            self.es.delete(name)
        logger.info("key_deleted", name=name)

    def update(self, name: str, oldpass: str, newpass: str) -> None:
        """
        Change the passphrase protecting a stored key.

        The new record is fully encrypted before it atomically replaces the
        old one, so a failure at any point leaves the old passphrase valid.
        """
        with self._locks.hold(name):
            key, _ = self._unlock(name, oldpass)
            try:
                self.es.replace(name, newpass, key)
            finally:
                key.wipe()
        logger.info("passphrase_updated", name=name)

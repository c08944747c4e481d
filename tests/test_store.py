"""
Tests for the Encrypted Store
"""

import pytest

from cryptostore.core.store import EncryptedStore
from cryptostore.crypto.generators import Ed25519Generator, Secp256k1Generator
from cryptostore.errors import AuthenticationFailed, DuplicateName, NotFound, UnsupportedAlgorithm
from cryptostore.core.keys import KeyPair
from cryptostore.persistence import MemoryStorage


@pytest.fixture
def store(encoder, registry):
    return EncryptedStore(encoder, MemoryStorage(), registry)


@pytest.fixture
def key():
    return Ed25519Generator().generate(b"\x01" * 16)


class TestEncryptedStore:
    """Test put/get/replace/delete over encrypted records."""

    def test_put_get(self, store, key):
        key_info = store.put("alice", "pass", key)

        restored, stored_info = store.get("alice", "pass")

        assert restored.public_key == key.public_key
        assert stored_info == key_info
        assert key_info.algorithm == "ed25519"

    def test_nothing_plaintext_at_rest(self, store, key):
        store.put("alice", "pass", key)

        record = store.storage.get("alice")

        assert bytes(key.private_key) not in record.ciphertext
        assert len(record.salt) == 16

    def test_wrong_passphrase(self, store, key):
        store.put("alice", "pass", key)

        with pytest.raises(AuthenticationFailed):
            store.get("alice", "nope")

    def test_duplicate(self, store, key):
        store.put("alice", "pass", key)

        with pytest.raises(DuplicateName):
            store.put("alice", "other", key)

    def test_missing(self, store):
        with pytest.raises(NotFound):
            store.get("alice", "pass")

    def test_replace_changes_salt_and_passphrase(self, store, key):
        store.put("alice", "old", key)
        before = store.storage.get("alice")

        store.replace("alice", "new", key)
        after = store.storage.get("alice")

        assert after.salt != before.salt
        assert after.created_at == before.created_at
        assert store.get("alice", "new")[0].public_key == key.public_key
        with pytest.raises(AuthenticationFailed):
            store.get("alice", "old")

    def test_delete_is_unconditional(self, store, key):
        store.put("alice", "pass", key)

        store.delete("alice")

        with pytest.raises(NotFound):
            store.info("alice")

    def test_list_projects_public_info(self, store):
        store.put("a", "p", Ed25519Generator().generate(b"\x01" * 16))
        store.put("b", "p", Secp256k1Generator().generate(b"\x02" * 16))

        infos = {i.name: i for i in store.list()}

        assert infos["a"].algorithm == "ed25519"
        assert infos["b"].algorithm == "secp256k1"

    def test_unregistered_tag_not_stored(self, store):
        bogus = KeyPair(private_key=b"\x01" * 32, public_key=b"\x02" * 32, tag=0x55)

        with pytest.raises(UnsupportedAlgorithm):
            store.put("bogus", "pass", bogus)

        with pytest.raises(NotFound):
            store.info("bogus")

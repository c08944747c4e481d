"""
Tests for Storage Backends

The same contract is exercised against memory, file and SQLite storage.
"""

import os
import threading

import pytest

from cryptostore.core.keys import KeyInfo
from cryptostore.errors import DecodeError, DuplicateName, NotFound
from cryptostore.persistence import (
    EncryptedRecord,
    FileStorage,
    MemoryStorage,
    SqliteStorage,
    get_storage,
)
from cryptostore.config import Settings


def make_record(name, salt=b"s" * 16, ciphertext=b"ct"):
    return EncryptedRecord(
        name=name,
        salt=salt,
        ciphertext=ciphertext,
        info=KeyInfo(name=name, public_key=b"\x01" * 32, tag=1, algorithm="ed25519"),
    )


@pytest.fixture(params=["memory", "file", "sqlite"])
def storage(request, temp_keys_dir):
    if request.param == "memory":
        yield MemoryStorage()
    elif request.param == "file":
        yield FileStorage(temp_keys_dir)
    else:
        db = SqliteStorage(f"sqlite:///{os.path.join(temp_keys_dir, 'keys.db')}")
        yield db
        db.close()


class TestStorageContract:
    """Behaviour every backend must share."""

    def test_put_and_get(self, storage):
        storage.put(make_record("alice"))

        record = storage.get("alice")

        assert record.name == "alice"
        assert record.salt == b"s" * 16
        assert record.ciphertext == b"ct"
        assert record.info.public_key == b"\x01" * 32
        assert record.info.algorithm == "ed25519"

    def test_duplicate_put(self, storage):
        storage.put(make_record("alice"))

        with pytest.raises(DuplicateName):
            storage.put(make_record("alice", ciphertext=b"other"))

        assert storage.get("alice").ciphertext == b"ct"

    def test_get_missing(self, storage):
        with pytest.raises(NotFound):
            storage.get("nobody")

    def test_delete(self, storage):
        storage.put(make_record("alice"))

        storage.delete("alice")

        with pytest.raises(NotFound):
            storage.get("alice")

    def test_delete_missing(self, storage):
        with pytest.raises(NotFound):
            storage.delete("nobody")

    def test_replace(self, storage):
        storage.put(make_record("alice"))

        storage.replace(make_record("alice", salt=b"t" * 16, ciphertext=b"new"))

        record = storage.get("alice")
        assert record.salt == b"t" * 16
        assert record.ciphertext == b"new"

    def test_replace_missing(self, storage):
        with pytest.raises(NotFound):
            storage.replace(make_record("nobody"))

    def test_list(self, storage):
        for name in ["zed", "amy", "bob"]:
            storage.put(make_record(name))

        assert sorted(r.name for r in storage.list()) == ["amy", "bob", "zed"]


class TestFileStorage:
    """File backend specifics."""

    def test_survives_reopen(self, temp_keys_dir):
        FileStorage(temp_keys_dir).put(make_record("alice"))

        reopened = FileStorage(temp_keys_dir)

        assert reopened.get("alice").ciphertext == b"ct"

    def test_existing_directory_mode_unchanged(self, temp_keys_dir):
        shared = os.path.join(temp_keys_dir, "shared")
        os.mkdir(shared)
        os.chmod(shared, 0o755)

        FileStorage(shared).put(make_record("alice"))

        assert os.stat(shared).st_mode & 0o777 == 0o755

    def test_new_directory_is_private(self, temp_keys_dir):
        created = os.path.join(temp_keys_dir, "nested", "keys")

        FileStorage(created)

        assert os.stat(created).st_mode & 0o077 == 0

    def test_file_permissions(self, temp_keys_dir):
        FileStorage(temp_keys_dir).put(make_record("alice"))

        mode = os.stat(os.path.join(temp_keys_dir, "alice.key")).st_mode & 0o777
        assert mode == 0o600

    def test_no_temp_files_left(self, temp_keys_dir):
        storage = FileStorage(temp_keys_dir)
        storage.put(make_record("alice"))
        storage.replace(make_record("alice", ciphertext=b"new"))
        with pytest.raises(DuplicateName):
            storage.put(make_record("alice"))

        assert sorted(os.listdir(temp_keys_dir)) == ["alice.key"]

    @pytest.mark.parametrize("name", ["", "../escape", "a/b", ".hidden"])
    def test_invalid_names(self, temp_keys_dir, name):
        with pytest.raises(ValueError):
            FileStorage(temp_keys_dir).put(make_record(name))

    def test_corrupt_file(self, temp_keys_dir):
        with open(os.path.join(temp_keys_dir, "broken.key"), "w") as f:
            f.write("{not json")

        with pytest.raises(DecodeError):
            FileStorage(temp_keys_dir).get("broken")

    def test_failed_replace_keeps_old_record(self, temp_keys_dir, monkeypatch):
        storage = FileStorage(temp_keys_dir)
        storage.put(make_record("alice"))

        def fail(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", fail)
        with pytest.raises(OSError):
            storage.replace(make_record("alice", ciphertext=b"new"))
        monkeypatch.undo()

        assert storage.get("alice").ciphertext == b"ct"
        assert sorted(os.listdir(temp_keys_dir)) == ["alice.key"]

    def test_delete_waits_for_replace_on_shared_directory(self, temp_keys_dir, monkeypatch):
        """A delete through a second storage cannot land inside a replace."""
        updater = FileStorage(temp_keys_dir)
        deleter = FileStorage(temp_keys_dir)
        updater.put(make_record("alice"))

        stage = updater._stage
        deleted = threading.Event()
        staged = []

        def delete_during_stage(record):
            worker = threading.Thread(target=lambda: (deleter.delete("alice"), deleted.set()))
            worker.start()
            # The delete must block until the swap below has finished
            assert not deleted.wait(timeout=0.2)
            staged.append(worker)
            return stage(record)

        monkeypatch.setattr(updater, "_stage", delete_during_stage)

        updater.replace(make_record("alice", ciphertext=b"new"))
        staged[0].join(timeout=5)

        assert deleted.is_set()
        with pytest.raises(NotFound):
            updater.get("alice")
        assert os.listdir(temp_keys_dir) == []


class TestSqliteStorage:
    """SQLite backend specifics."""

    def test_in_memory(self):
        storage = SqliteStorage("sqlite:///:memory:")
        storage.put(make_record("alice"))

        assert storage.get("alice").name == "alice"
        storage.close()

    def test_rejects_other_urls(self):
        with pytest.raises(ValueError):
            SqliteStorage("postgresql://localhost/keys")

    def test_replace_keeps_created_at(self, temp_keys_dir):
        storage = SqliteStorage(f"sqlite:///{os.path.join(temp_keys_dir, 'k.db')}")
        original = make_record("alice")
        storage.put(original)

        storage.replace(make_record("alice", ciphertext=b"new"))

        assert storage.get("alice").created_at == original.created_at
        storage.close()


class TestGetStorage:
    """Backend selection from settings."""

    def test_memory(self):
        assert isinstance(get_storage(Settings(backend="memory")), MemoryStorage)

    def test_file(self, temp_keys_dir):
        storage = get_storage(Settings(backend="file", storage_path=temp_keys_dir))
        assert isinstance(storage, FileStorage)

    def test_sqlite(self, temp_keys_dir):
        url = f"sqlite:///{os.path.join(temp_keys_dir, 'k.db')}"
        storage = get_storage(Settings(backend="sqlite", database_url=url))
        assert isinstance(storage, SqliteStorage)
        storage.close()

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            Settings(backend="redis")

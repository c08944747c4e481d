"""
Raw Storage Backends

Storage is the authority on name uniqueness: put() fails with DuplicateName
if the name is taken, and replace() swaps an existing record in a single
step so a passphrase change never leaves the name empty.
"""

import json
import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from threading import Lock
from typing import Dict, List, Union
import structlog

from ..errors import DecodeError, DuplicateName, NotFound
from .models import EncryptedRecord

logger = structlog.get_logger()

NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")

_directory_locks: Dict[str, Lock] = {}
_directory_locks_guard = Lock()


def _directory_lock(directory: Path) -> Lock:
    """One write lock per key directory, shared by every FileStorage in the process."""
    with _directory_locks_guard:
        return _directory_locks.setdefault(str(directory.resolve()), Lock())


class Storage(ABC):
    """Persistence for encrypted records keyed by name."""

    @abstractmethod
    def put(self, record: EncryptedRecord) -> None:
        """Store a new record. Raises DuplicateName if the name exists."""
        pass

    @abstractmethod
    def get(self, name: str) -> EncryptedRecord:
        """Load a record. Raises NotFound."""
        pass

    @abstractmethod
    def replace(self, record: EncryptedRecord) -> None:
        """Atomically swap an existing record. Raises NotFound."""
        pass

    @abstractmethod
    def delete(self, name: str) -> None:
        """Remove a record. Raises NotFound."""
        pass

    @abstractmethod
    def list(self) -> List[EncryptedRecord]:
        """All stored records, in no particular order."""
        pass


class MemoryStorage(Storage):
    """In-process storage, mainly for tests and ephemeral use."""

    def __init__(self):
        self._records: Dict[str, EncryptedRecord] = {}
        self._lock = Lock()

    def put(self, record: EncryptedRecord) -> None:
        with self._lock:
            if record.name in self._records:
                raise DuplicateName(record.name)
            self._records[record.name] = record

    def get(self, name: str) -> EncryptedRecord:
        with self._lock:
            record = self._records.get(name)
        if record is None:
            raise NotFound(name)
        return record

    def replace(self, record: EncryptedRecord) -> None:
        with self._lock:
            if record.name not in self._records:
                raise NotFound(record.name)
            self._records[record.name] = record

    def delete(self, name: str) -> None:
        with self._lock:
            if self._records.pop(name, None) is None:
                raise NotFound(name)

    def list(self) -> List[EncryptedRecord]:
        with self._lock:
            return list(self._records.values())


class FileStorage(Storage):
    """
    One JSON file per key in a directory.

    New records are written to a temp file and hard-linked into place, which
    fails if the name already exists. Replacements are written to a temp
    file, fsynced, then renamed over the old file with os.replace.

    Replace and delete run under a lock shared by every FileStorage opened on
    the same directory in this process, so a delete cannot slip between
    replace's existence check and its rename. Separate processes writing to
    one directory are not serialized against each other.
    """

    SUFFIX = ".key"

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        # An existing directory keeps its mode
        self.directory.mkdir(mode=0o700, parents=True, exist_ok=True)
        self._lock = _directory_lock(self.directory)

    def _path(self, name: str) -> Path:
        if not NAME_PATTERN.match(name or ""):
            raise ValueError(f"Invalid key name: {name!r}")
        return self.directory / f"{name}{self.SUFFIX}"

    def _stage(self, record: EncryptedRecord) -> str:
        """Write a record to a durable temp file and return its path."""
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=".", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record.to_dict(), f)
                f.flush()
                os.fsync(f.fileno())
        except Exception:
            os.unlink(tmp_path)
            raise
        return tmp_path

    def _read(self, path: Path, name: str) -> EncryptedRecord:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return EncryptedRecord.from_dict(data)
        except FileNotFoundError:
            raise NotFound(name)
        except (ValueError, KeyError, TypeError) as e:
            raise DecodeError(f"Corrupt record for {name}: {e}")

    def put(self, record: EncryptedRecord) -> None:
        path = self._path(record.name)
        tmp_path = self._stage(record)
        try:
            os.link(tmp_path, path)
        except FileExistsError:
            raise DuplicateName(record.name)
        finally:
            os.unlink(tmp_path)
        logger.debug("storage_put", backend="file", name=record.name)

    def get(self, name: str) -> EncryptedRecord:
        return self._read(self._path(name), name)

    def replace(self, record: EncryptedRecord) -> None:
        path = self._path(record.name)
        with self._lock:
            if not path.exists():
                raise NotFound(record.name)
            tmp_path = self._stage(record)
            try:
                os.replace(tmp_path, path)
            except Exception:
                os.unlink(tmp_path)
                raise
        logger.debug("storage_replaced", backend="file", name=record.name)

    def delete(self, name: str) -> None:
        path = self._path(name)
        with self._lock:
            try:
                path.unlink()
            except FileNotFoundError:
                raise NotFound(name)
        logger.debug("storage_deleted", backend="file", name=name)

    def list(self) -> List[EncryptedRecord]:
        records = []
        for path in self.directory.glob(f"*{self.SUFFIX}"):
            name = path.name[:-len(self.SUFFIX)]
            try:
                records.append(self._read(path, name))
            except NotFound:
                # Deleted between glob and read
                continue
        return records

"""
Persistence Layer for cryptostore

Supports in-memory, one-file-per-key, and SQLite backends.
"""

from .models import EncryptedRecord
from .storage import Storage, MemoryStorage, FileStorage
from .database import SqliteStorage


def get_storage(settings) -> Storage:
    """Build the storage backend named in settings."""
    if settings.backend == "memory":
        return MemoryStorage()
    if settings.backend == "sqlite":
        return SqliteStorage(settings.database_url)
    return FileStorage(settings.storage_path)


__all__ = [
    "EncryptedRecord",
    "Storage",
    "MemoryStorage",
    "FileStorage",
    "SqliteStorage",
    "get_storage",
]

"""
cryptostore - passphrase-protected private key manager.

Keys are created from 128 bits of randomness, backed up as a mnemonic
phrase, and only ever persisted encrypted under a passphrase.
"""

__version__ = "1.0.0"

from .errors import (
    CryptoStoreError,
    DuplicateName,
    NotFound,
    AuthenticationFailed,
    UnsupportedAlgorithm,
    InvalidPhrase,
    DecodeError,
    SignatureError,
)
from .core.keys import KeyPair, KeyInfo
from .crypto import (
    GeneratorRegistry,
    default_registry,
    WordCodec,
    FernetEncoder,
    SignedMessage,
    MultiSignedMessage,
)
from .persistence import MemoryStorage, FileStorage, SqliteStorage
from .core.store import EncryptedStore
from .core.manager import Manager
from .config import Settings, build_manager

__all__ = [
    "CryptoStoreError",
    "DuplicateName",
    "NotFound",
    "AuthenticationFailed",
    "UnsupportedAlgorithm",
    "InvalidPhrase",
    "DecodeError",
    "SignatureError",
    "KeyPair",
    "KeyInfo",
    "GeneratorRegistry",
    "default_registry",
    "WordCodec",
    "FernetEncoder",
    "SignedMessage",
    "MultiSignedMessage",
    "MemoryStorage",
    "FileStorage",
    "SqliteStorage",
    "EncryptedStore",
    "Manager",
    "Settings",
    "build_manager",
]

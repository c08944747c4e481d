"""
Cryptographic Building Blocks for cryptostore

Supports:
- Key generators (Ed25519, secp256k1) resolved by name or type tag
- Passphrase encryption of key pairs (PBKDF2 + Fernet)
- Mnemonic phrase codec over the BIP-39 English wordlist
"""

from .generators import (
    KeyGenerator,
    Ed25519Generator,
    Secp256k1Generator,
    GeneratorRegistry,
    default_registry,
)
from .codec import Codec, WordCodec, join_phrase, split_phrase
from .encoder import Encoder, FernetEncoder, NoopEncoder
from .signable import Signable, SignedMessage, MultiSignedMessage

__all__ = [
    "KeyGenerator",
    "Ed25519Generator",
    "Secp256k1Generator",
    "GeneratorRegistry",
    "default_registry",
    "Codec",
    "WordCodec",
    "join_phrase",
    "split_phrase",
    "Encoder",
    "FernetEncoder",
    "NoopEncoder",
    "Signable",
    "SignedMessage",
    "MultiSignedMessage",
]

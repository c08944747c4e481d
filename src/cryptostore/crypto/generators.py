"""
Key Generators

Each supported signature algorithm is a KeyGenerator with a text name and a
one-byte type tag. Generation is deterministic: the same 16-byte secret
always yields the same key pair, which is what makes phrase recovery work.

Supports:
- Ed25519 (tag 0x01) - private seed is SHA-256(secret)
- secp256k1 (tag 0x02) - scalar is SHA-256(secret) reduced into [1, n-1]
"""

import hashlib
from abc import ABC, abstractmethod
from typing import Dict, List, Optional
import structlog

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519

from ..core.keys import KeyPair
from ..errors import UnsupportedAlgorithm

logger = structlog.get_logger()

SECRET_SIZE = 16

# Order of the secp256k1 group
SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


class KeyGenerator(ABC):
    """Abstract base class for per-algorithm key generators."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Algorithm identifier, e.g. "ed25519"."""
        pass

    @property
    @abstractmethod
    def tag(self) -> int:
        """Single-byte type tag embedded in phrases and stored keys."""
        pass

    @abstractmethod
    def generate(self, secret: bytes) -> KeyPair:
        """Deterministically derive a key pair from a secret."""
        pass

    @abstractmethod
    def public_key(self, private_key: bytes) -> bytes:
        """Derive the public key bytes for a private key."""
        pass

    @abstractmethod
    def sign(self, private_key: bytes, data: bytes) -> bytes:
        """Sign data with a private key."""
        pass

    @abstractmethod
    def verify(self, public_key: bytes, data: bytes, signature: bytes) -> bool:
        """Check a signature against a public key."""
        pass

    def _seed(self, secret: bytes) -> bytes:
        if len(secret) != SECRET_SIZE:
            raise ValueError(f"Secret must be {SECRET_SIZE} bytes, got {len(secret)}")
        return hashlib.sha256(bytes(secret)).digest()


class Ed25519Generator(KeyGenerator):
    """Ed25519 keys using the cryptography library."""

    @property
    def name(self) -> str:
        return "ed25519"

    @property
    def tag(self) -> int:
        return 0x01

    def generate(self, secret: bytes) -> KeyPair:
        seed = bytearray(self._seed(secret))
        return KeyPair(
            private_key=seed,
            public_key=self.public_key(seed),
            tag=self.tag,
        )

    def public_key(self, private_key: bytes) -> bytes:
        sk = ed25519.Ed25519PrivateKey.from_private_bytes(bytes(private_key))
        return sk.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    def sign(self, private_key: bytes, data: bytes) -> bytes:
        sk = ed25519.Ed25519PrivateKey.from_private_bytes(bytes(private_key))
        return sk.sign(data)

    def verify(self, public_key: bytes, data: bytes, signature: bytes) -> bool:
        try:
            ed25519.Ed25519PublicKey.from_public_bytes(public_key).verify(signature, data)
            return True
        except (InvalidSignature, ValueError):
            return False


class Secp256k1Generator(KeyGenerator):
    """secp256k1 ECDSA keys with compressed public points and DER signatures."""

    @property
    def name(self) -> str:
        return "secp256k1"

    @property
    def tag(self) -> int:
        return 0x02

    def generate(self, secret: bytes) -> KeyPair:
        scalar = int.from_bytes(self._seed(secret), 'big') % (SECP256K1_ORDER - 1) + 1
        private_key = bytearray(scalar.to_bytes(32, 'big'))
        return KeyPair(
            private_key=private_key,
            public_key=self.public_key(private_key),
            tag=self.tag,
        )

    def _private(self, private_key: bytes) -> ec.EllipticCurvePrivateKey:
        return ec.derive_private_key(int.from_bytes(bytes(private_key), 'big'), ec.SECP256K1())

    def public_key(self, private_key: bytes) -> bytes:
        return self._private(private_key).public_key().public_bytes(
            encoding=serialization.Encoding.X962,
            format=serialization.PublicFormat.CompressedPoint,
        )

    def sign(self, private_key: bytes, data: bytes) -> bytes:
        return self._private(private_key).sign(data, ec.ECDSA(hashes.SHA256()))

    def verify(self, public_key: bytes, data: bytes, signature: bytes) -> bool:
        try:
            pk = ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), public_key)
            pk.verify(signature, data, ec.ECDSA(hashes.SHA256()))
            return True
        except (InvalidSignature, ValueError):
            return False


class GeneratorRegistry:
    """
    Resolves generators by algorithm name or by type tag.

    A registry is an explicit value handed to the Manager; there is no
    package-level table to mutate.
    """

    def __init__(self, generators: Optional[List[KeyGenerator]] = None):
        self._by_name: Dict[str, KeyGenerator] = {}
        self._by_tag: Dict[int, KeyGenerator] = {}
        for generator in generators or []:
            self.register(generator)

    def register(self, generator: KeyGenerator) -> None:
        name = generator.name.lower()
        if name in self._by_name:
            raise ValueError(f"Algorithm already registered: {generator.name}")
        if generator.tag in self._by_tag:
            raise ValueError(f"Tag already registered: 0x{generator.tag:02x}")
        self._by_name[name] = generator
        self._by_tag[generator.tag] = generator
        logger.debug("generator_registered", algorithm=name, tag=generator.tag)

    def for_algorithm(self, algorithm: str) -> KeyGenerator:
        generator = self._by_name.get((algorithm or "").lower())
        if generator is None:
            raise UnsupportedAlgorithm(algorithm)
        return generator

    def for_tag(self, tag: int) -> KeyGenerator:
        generator = self._by_tag.get(tag)
        if generator is None:
            raise UnsupportedAlgorithm(tag, f"Unsupported algorithm tag: 0x{tag:02x}")
        return generator

    def algorithms(self) -> List[str]:
        return sorted(self._by_name)


def default_registry() -> GeneratorRegistry:
    """Registry with every built-in generator."""
    return GeneratorRegistry([Ed25519Generator(), Secp256k1Generator()])

"""
Pytest Configuration and Fixtures
"""

import os
import sys
import pytest
import tempfile

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(__file__)), 'src'))

# Set test environment
os.environ["API_KEY"] = "test-key-12345"
os.environ["CRYPTOSTORE_BACKEND"] = "memory"
os.environ["CRYPTOSTORE_KDF_ITERATIONS"] = "1000"

from cryptostore.core.manager import Manager
from cryptostore.crypto.codec import WordCodec
from cryptostore.crypto.encoder import FernetEncoder
from cryptostore.crypto.generators import default_registry
from cryptostore.persistence import FileStorage, MemoryStorage

# Low iteration count keeps PBKDF2 fast in tests
TEST_ITERATIONS = 1000


@pytest.fixture
def temp_keys_dir():
    """Create a temporary directory for key storage."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def registry():
    return default_registry()


@pytest.fixture
def codec():
    return WordCodec()


@pytest.fixture
def encoder():
    return FernetEncoder(iterations=TEST_ITERATIONS)


@pytest.fixture
def manager(encoder, codec, registry):
    """Manager backed by in-memory storage."""
    return Manager(encoder=encoder, storage=MemoryStorage(), codec=codec, registry=registry)


@pytest.fixture
def file_manager(encoder, codec, registry, temp_keys_dir):
    """Manager backed by a temporary key directory."""
    return Manager(encoder=encoder, storage=FileStorage(temp_keys_dir), codec=codec, registry=registry)


@pytest.fixture
def make_manager(encoder, codec, registry):
    """Factory for independent managers, e.g. for export/import between devices."""
    def _make(storage=None):
        return Manager(
            encoder=encoder,
            storage=storage or MemoryStorage(),
            codec=codec,
            registry=registry,
        )
    return _make

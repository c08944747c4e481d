"""
Configuration for cryptostore.

Settings are read from the environment with development defaults.
"""

import os
from dataclasses import dataclass, field
from typing import List

BACKENDS = ("memory", "file", "sqlite")


@dataclass
class Settings:
    """Runtime configuration."""
    backend: str = "file"
    storage_path: str = ".keys"
    database_url: str = "sqlite:///cryptostore.db"
    kdf_iterations: int = 100000
    api_key: str = "dev-key-change-in-production"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    port: int = 8000
    debug: bool = False

    def __post_init__(self):
        if self.backend not in BACKENDS:
            raise ValueError(f"Unknown storage backend: {self.backend}. Use one of {list(BACKENDS)}")
        if self.kdf_iterations < 1:
            raise ValueError("KDF iterations must be positive")

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            backend=os.environ.get("CRYPTOSTORE_BACKEND", "file").lower(),
            storage_path=os.environ.get("CRYPTOSTORE_PATH", ".keys"),
            database_url=os.environ.get("DATABASE_URL", "sqlite:///cryptostore.db"),
            kdf_iterations=int(os.environ.get("CRYPTOSTORE_KDF_ITERATIONS", 100000)),
            api_key=os.environ.get("API_KEY", "dev-key-change-in-production"),
            cors_origins=os.environ.get("CORS_ORIGINS", "*").split(","),
            port=int(os.environ.get("PORT", 8000)),
            debug=os.environ.get("DEBUG", "false").lower() == "true",
        )


def build_manager(settings: Settings):
    """Wire the default registry, codec, encoder and configured storage into a Manager."""
    from .core.manager import Manager
    from .crypto.codec import WordCodec
    from .crypto.encoder import FernetEncoder
    from .crypto.generators import default_registry
    from .persistence import get_storage

    return Manager(
        encoder=FernetEncoder(iterations=settings.kdf_iterations),
        storage=get_storage(settings),
        codec=WordCodec(),
        registry=default_registry(),
    )

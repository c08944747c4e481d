"""
Data Models for Persistence Layer

An EncryptedRecord is the only form a key takes at rest: salt, ciphertext,
and the plaintext public projection used for Get/List.
"""

import base64
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict

from ..core.keys import KeyInfo


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class EncryptedRecord:
    """Persisted encrypted key record."""
    name: str
    salt: bytes
    ciphertext: bytes
    info: KeyInfo
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "salt": base64.b64encode(self.salt).decode('utf-8'),
            "ciphertext": base64.b64encode(self.ciphertext).decode('utf-8'),
            "info": self.info.to_dict(),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EncryptedRecord":
        return cls(
            name=data["name"],
            salt=base64.b64decode(data["salt"]),
            ciphertext=base64.b64decode(data["ciphertext"]),
            info=KeyInfo.from_dict(data["info"]),
            created_at=data.get("created_at", _now()),
            updated_at=data.get("updated_at", _now()),
        )

    def to_db_tuple(self) -> tuple:
        """Convert to database insert tuple."""
        return (
            self.name,
            self.salt,
            self.ciphertext,
            self.info.public_key,
            self.info.tag,
            self.info.algorithm,
            self.created_at,
            self.updated_at,
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "EncryptedRecord":
        return cls(
            name=row["name"],
            salt=bytes(row["salt"]),
            ciphertext=bytes(row["ciphertext"]),
            info=KeyInfo(
                name=row["name"],
                public_key=bytes(row["public_key"]),
                tag=row["tag"],
                algorithm=row["algorithm"],
            ),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

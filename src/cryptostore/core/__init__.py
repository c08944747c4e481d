"""
Key lifecycle core for cryptostore.

keys holds the in-memory key types; store and manager build on the crypto
and persistence packages and are imported from there directly.
"""

from .keys import KeyPair, KeyInfo, info, wipe_bytes

__all__ = [
    "KeyPair",
    "KeyInfo",
    "info",
    "wipe_bytes",
]

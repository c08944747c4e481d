"""
HTTP API for cryptostore
"""

from .server import create_app

__all__ = ["create_app"]

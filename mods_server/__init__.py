"""
Mods bridge server: JSON RPC routes and the static file server for Mods CE.
"""

from .app import create_app, BridgeContext
from .static_server import StaticServer, create_static_app

__all__ = [
    "create_app",
    "BridgeContext",
    "StaticServer",
    "create_static_app",
]

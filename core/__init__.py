"""
LensMirror Core
===============
- models: Lens, Unlock, User and remote record variants
- persistence: connection pool, schema, record store
- sync: search routing, mirroring, result cache, remirror trigger
- service: process-scoped wiring of all of the above
"""

from .models import Lens, Unlock, User, LensOnly, LensWithUnlock, RemoteRecord

__all__ = [
    "Lens",
    "Unlock",
    "User",
    "LensOnly",
    "LensWithUnlock",
    "RemoteRecord",
]

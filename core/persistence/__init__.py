"""
Persistence Module - local mirror of lens data
==============================================

[COMPONENTS]
- ConnectionPool: bounded aiosqlite connection pool
- RecordStore: lenses, unlocks and users with idempotent inserts
- run_migrations: versioned schema
"""

from .pool import ConnectionPool
from .record_store import RecordStore, InsertOutcome, MAX_SEARCH_RESULTS, is_duplicate_key
from .schema import run_migrations

__all__ = [
    "ConnectionPool",
    "RecordStore",
    "InsertOutcome",
    "MAX_SEARCH_RESULTS",
    "is_duplicate_key",
    "run_migrations",
]

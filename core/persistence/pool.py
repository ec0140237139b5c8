"""
Connection Pool - bounded set of aiosqlite connections
======================================================

[CONCURRENCY] The pool is the only shared mutable resource of the store:
- at most `size` connections exist
- a caller beyond the ceiling waits in the queue instead of failing
- connections are opened lazily and reused

[USAGE]
```python
pool = ConnectionPool("lensmirror.db", size=10)
async with pool.acquire() as db:
    cursor = await db.execute("SELECT 1")
await pool.close()
```
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

import aiosqlite

logger = logging.getLogger(__name__)


class ConnectionPool:
    """Fixed-ceiling pool of aiosqlite connections."""

    def __init__(self, db_path: str, size: int = 10, busy_timeout: float = 30.0):
        if size < 1:
            raise ValueError("pool size must be >= 1")
        self.db_path = db_path
        self.size = size
        self.busy_timeout = busy_timeout
        self._idle: Optional[asyncio.Queue] = None
        self._connections: List[aiosqlite.Connection] = []
        self._slots: Optional[asyncio.Semaphore] = None
        self._closed = False

    async def _open(self) -> aiosqlite.Connection:
        db = await aiosqlite.connect(self.db_path, timeout=self.busy_timeout)
        db.row_factory = aiosqlite.Row
        # WAL lets readers proceed while one writer commits
        await db.execute("PRAGMA journal_mode=WAL")
        await db.execute("PRAGMA foreign_keys=ON")
        self._connections.append(db)
        logger.debug(f"[POOL] Opened connection {len(self._connections)}/{self.size}")
        return db

    def _ensure_state(self) -> None:
        if self._idle is None:
            self._idle = asyncio.Queue()
            self._slots = asyncio.Semaphore(self.size)

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[aiosqlite.Connection]:
        """Borrow a connection; waits while all `size` connections are busy."""
        if self._closed:
            raise RuntimeError("connection pool is closed")
        self._ensure_state()

        await self._slots.acquire()
        try:
            if self._idle.empty():
                db = await self._open()
            else:
                db = self._idle.get_nowait()
            try:
                yield db
            finally:
                self._idle.put_nowait(db)
        finally:
            self._slots.release()

    @property
    def open_connections(self) -> int:
        return len(self._connections)

    async def close(self) -> None:
        """Close every connection. The pool cannot be reused afterwards."""
        self._closed = True
        for db in self._connections:
            try:
                await db.close()
            except Exception as e:
                logger.warning(f"[POOL] Close error: {e}")
        self._connections.clear()
        self._idle = None
        self._slots = None

"""
Mirror Service - process-scoped wiring
======================================

[SERVICE] One instance per process, created at startup, stopped at shutdown:
- ConnectionPool + RecordStore
- ResultCache (with its sweep task)
- LensFetcher and AssetSink (HTTP by default, fakes in tests)
- SyncEngine and RemirrorTrigger on top

Components receive their collaborators explicitly; nothing reaches for a
module-level singleton.
"""

import logging
from typing import Any, Dict, Optional

from config import Config
from web.downloader import AssetDownloader, AssetSink
from web.fetcher import LensFetcher, WebLensFetcher

from .persistence import ConnectionPool, RecordStore
from .sync import RemirrorTrigger, ResultCache, SyncEngine

logger = logging.getLogger(__name__)


class MirrorService:
    """
    [USAGE]
    ```python
    service = create_mirror_service(config)
    await service.start()
    lenses = await service.engine.search("dog")
    await service.stop()
    ```
    """

    def __init__(
        self,
        config: Config,
        store: RecordStore,
        fetcher: LensFetcher,
        assets: AssetSink,
        cache: ResultCache,
    ):
        self.config = config
        self.store = store
        self.fetcher = fetcher
        self.assets = assets
        self.cache = cache
        self.engine = SyncEngine(store, fetcher, cache, config.mirror)
        self.remirror = RemirrorTrigger(store)
        self._running = False

    async def start(self) -> None:
        if self._running:
            return
        await self.store.initialize()
        await self.cache.start()
        self._running = True
        logger.info(f"[SERVICE] Started: {self.config.to_dict()}")

    async def stop(self) -> None:
        if not self._running:
            return
        await self.cache.stop()
        await self.fetcher.close()
        await self.assets.close()
        await self.store.close()
        self._running = False
        logger.info("[SERVICE] Stopped")

    async def __aenter__(self) -> "MirrorService":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "cache": self.cache.get_stats(),
            "pool_connections": self.store.pool.open_connections,
        }


def create_mirror_service(
    config: Config,
    fetcher: Optional[LensFetcher] = None,
    assets: Optional[AssetSink] = None,
) -> MirrorService:
    """
    Factory for MirrorService.

    Args:
        config: Process configuration
        fetcher: Remote fetcher (WebLensFetcher if omitted)
        assets: Asset sink (AssetDownloader if omitted)
    """
    pool = ConnectionPool(
        config.database.path,
        size=config.database.pool_size,
        busy_timeout=config.database.busy_timeout,
    )
    store = RecordStore(pool, config.mirror)

    if assets is None:
        assets = AssetDownloader(config.storage, config.remote)
    if isinstance(assets, AssetDownloader):
        assets.attach_store(store)
    store.attach_assets(assets)

    cache = ResultCache(ttl=config.cache.ttl, check_period=config.cache.check_period)

    return MirrorService(
        config=config,
        store=store,
        fetcher=fetcher or WebLensFetcher(config.remote),
        assets=assets,
        cache=cache,
    )

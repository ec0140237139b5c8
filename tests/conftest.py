"""
LensMirror Test Configuration
=============================

[QA] Central pytest configuration with fixtures for all test types:
- Unit tests: one component, fakes for its collaborators
- Integration tests: full service wiring on a temporary database

[FIXTURES]
- db_path: per-test SQLite file
- fetcher: FakeFetcher (scripted remote platform)
- assets: RecordingAssets (records asset downloads)
- store / web_store: RecordStore without / with web-sourced rows
- engine: SyncEngine over store + fetcher + cache

Usage:
    pytest tests/unit/          # Fast unit tests
    pytest tests/integration/   # Integration tests
"""

import sys
import logging
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import MirrorConfig
from core.models import Lens, LensOnly, LensWithUnlock, RemoteRecord, Unlock
from web.downloader import AssetSink
from web.fetcher import LensFetcher


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests (I/O, slower)")


def pytest_collection_modifyitems(config, items):
    """Auto-mark tests based on their path."""
    for item in items:
        if "/unit/" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


# ============================================================================
# Logging Configuration
# ============================================================================

@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    """Configure logging for tests."""
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


# ============================================================================
# Record Factories
# ============================================================================

def make_lens(lens_id: int = 1, **overrides: Any) -> Lens:
    """Complete lens with predictable values."""
    values: Dict[str, Any] = {
        "id": lens_id,
        "uuid": f"{lens_id:032x}",
        "name": f"Lens {lens_id}",
        "creator_display_name": "Creator",
        "tags": "fun,face",
        "icon_url": f"https://cdn.example.com/{lens_id}/icon.png",
        "thumbnail_media_url": f"https://cdn.example.com/{lens_id}/thumb.mp4",
        "thumbnail_media_poster_url": f"https://cdn.example.com/{lens_id}/thumb.jpg",
        "standard_media_url": f"https://cdn.example.com/{lens_id}/std.mp4",
        "standard_media_poster_url": f"https://cdn.example.com/{lens_id}/std.jpg",
        "image_sequence": {"0": f"https://cdn.example.com/{lens_id}/0.jpg"},
    }
    values.update(overrides)
    return Lens(**values)


def make_unlock(lens_id: int = 1, **overrides: Any) -> Unlock:
    values: Dict[str, Any] = {
        "lens_id": lens_id,
        "lens_url": f"https://cdn.example.com/{lens_id}/lens.zip",
        "signature": "sig",
        "hint_id": "hint",
    }
    values.update(overrides)
    return Unlock(**values)


# ============================================================================
# Fakes
# ============================================================================

class FakeFetcher(LensFetcher):
    """
    Scripted remote platform.

    - records: hash -> RemoteRecord
    - keyword_results: term -> lenses
    - creator_totals: slug -> number of lenses the creator has
    - failures: hash -> exception raised by fetch_by_hash
    """

    def __init__(self):
        self.records: Dict[str, RemoteRecord] = {}
        self.keyword_results: Dict[str, List[Lens]] = {}
        self.creator_totals: Dict[str, int] = {}
        self.failures: Dict[str, Exception] = {}
        self.hash_calls: List[str] = []
        self.keyword_calls: List[str] = []
        self.creator_calls: List[Tuple[str, int, int]] = []
        self.closed = False

    def add_record(self, lens: Lens, unlock: Optional[Unlock] = None) -> None:
        if unlock is not None:
            self.records[lens.uuid] = LensWithUnlock(lens=lens, unlock=unlock)
        else:
            self.records[lens.uuid] = LensOnly(lens=lens)

    async def fetch_by_hash(self, lens_hash: str) -> Optional[RemoteRecord]:
        self.hash_calls.append(lens_hash)
        if lens_hash in self.failures:
            raise self.failures[lens_hash]
        return self.records.get(lens_hash)

    async def search_by_keyword(self, term: str) -> List[Lens]:
        self.keyword_calls.append(term)
        return [lens.copy() for lens in self.keyword_results.get(term, [])]

    async def list_by_creator(self, slug: str, offset: int, limit: int) -> List[Lens]:
        self.creator_calls.append((slug, offset, limit))
        total = self.creator_totals.get(slug, 0)
        return [
            make_lens(index + 1, creator_slug="")
            for index in range(offset, min(offset + limit, total))
        ]

    async def close(self) -> None:
        self.closed = True


class RecordingAssets(AssetSink):
    """Asset sink that only records what it was asked to download."""

    def __init__(self):
        self.lens_downloads: List[int] = []
        self.unlock_downloads: List[Tuple[int, str]] = []
        self.closed = False

    async def download_lens_assets(self, lens: Lens) -> None:
        self.lens_downloads.append(lens.id)

    async def download_unlock_assets(self, lens_id: Any, lens_url: str) -> None:
        self.unlock_downloads.append((lens_id, lens_url))

    async def close(self) -> None:
        self.closed = True


# ============================================================================
# Database Fixtures (Isolated)
# ============================================================================

@pytest.fixture(scope="function")
def db_path(tmp_path: Path) -> str:
    """Per-test database file (the pool opens several connections)."""
    return str(tmp_path / "lensmirror_test.db")


@pytest.fixture(scope="function")
def assets() -> RecordingAssets:
    return RecordingAssets()


@pytest.fixture(scope="function")
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest_asyncio.fixture(scope="function")
async def store(db_path: str, assets: RecordingAssets) -> AsyncGenerator[Any, None]:
    """RecordStore hiding web-sourced rows (default configuration)."""
    from core.persistence import ConnectionPool, RecordStore

    store_instance = RecordStore(ConnectionPool(db_path, size=4), MirrorConfig(), assets)
    await store_instance.initialize()
    yield store_instance
    await store_instance.close()


@pytest_asyncio.fixture(scope="function")
async def web_store(db_path: str, assets: RecordingAssets) -> AsyncGenerator[Any, None]:
    """RecordStore including web-sourced rows."""
    from core.persistence import ConnectionPool, RecordStore

    store_instance = RecordStore(
        ConnectionPool(db_path, size=4),
        MirrorConfig(enable_web_source=True),
        assets,
    )
    await store_instance.initialize()
    yield store_instance
    await store_instance.close()


@pytest_asyncio.fixture(scope="function")
async def engine(web_store, fetcher: FakeFetcher):
    """SyncEngine with a cache, over the web-source-enabled store."""
    from core.sync import ResultCache, SyncEngine

    return SyncEngine(web_store, fetcher, ResultCache())


async def count_rows(store, table: str) -> int:
    async with store.pool.acquire() as db:
        cursor = await db.execute(f"SELECT COUNT(*) FROM {table}")
        row = await cursor.fetchone()
        return row[0]


@pytest.fixture
def lens_factory():
    return make_lens


@pytest.fixture
def unlock_factory():
    return make_unlock


@pytest.fixture
def row_counter():
    return count_rows

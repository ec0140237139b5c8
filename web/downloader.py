"""
Asset Downloader - binary media of mirrored lenses
==================================================

[ASSETS] Given a stored record, fetch its media and keep a local copy:
- lens: icon, snapcode, preview/standard media, image sequence frames
- unlock: the lens archive behind lens_url
Files land in <storage>/<lens_id>/. When every file of a record made it,
the record is marked mirrored in the store.

[CONTRACT] Best-effort sink: nothing is raised to the caller. Failures are
logged here and the record simply stays unmirrored (repairable through the
remirror trigger).
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, List, Optional, Tuple, TYPE_CHECKING
from urllib.parse import urlparse

import aiohttp

from config import RemoteConfig, StorageConfig
from core.models import Lens

if TYPE_CHECKING:
    from core.persistence.record_store import RecordStore

logger = logging.getLogger(__name__)


UNLOCK_ARCHIVE_NAME = "lens.zip"
CHUNK_SIZE = 64 * 1024


class AssetSink(ABC):
    """Side effect triggered by the record store after inserts."""

    @abstractmethod
    async def download_lens_assets(self, lens: Lens) -> None:
        ...

    @abstractmethod
    async def download_unlock_assets(self, lens_id: Any, lens_url: str) -> None:
        ...

    async def close(self) -> None:
        return None


def _suffix(url: str, default: str = "") -> str:
    suffix = Path(urlparse(url).path).suffix
    return suffix if 0 < len(suffix) <= 6 else default


def lens_asset_targets(lens: Lens) -> List[Tuple[str, str]]:
    """(url, file name) pairs for every media URL of a lens."""
    named = [
        (lens.icon_url, "icon"),
        (lens.snapcode_url, "snapcode"),
        (lens.thumbnail_media_url, "thumbnail_media"),
        (lens.thumbnail_media_poster_url, "thumbnail_media_poster"),
        (lens.standard_media_url, "standard_media"),
        (lens.standard_media_poster_url, "standard_media_poster"),
    ]
    targets = [(url, f"{name}{_suffix(url)}") for url, name in named if url]
    for index, url in sorted((lens.image_sequence or {}).items(), key=lambda kv: str(kv[0])):
        frame = "".join(c for c in str(index) if c.isalnum() or c in "-_")
        if url and frame:
            targets.append((url, f"image_sequence/{frame}{_suffix(url)}"))
    return targets


def _is_http_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _write_file(path: Path, data: bytes) -> None:
    """Write through a temporary file so a crash never leaves half a file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    partial = path.with_name(path.name + ".part")
    partial.write_bytes(data)
    partial.replace(path)


class AssetDownloader(AssetSink):
    """
    AssetSink over HTTP.

    [USAGE]
    ```python
    downloader = AssetDownloader(config.storage, config.remote)
    store.attach_assets(downloader)
    downloader.attach_store(store)
    ```
    """

    def __init__(
        self,
        storage_config: Optional[StorageConfig] = None,
        remote_config: Optional[RemoteConfig] = None,
        store: Optional["RecordStore"] = None,
    ):
        self.storage_config = storage_config or StorageConfig()
        self.remote_config = remote_config or RemoteConfig()
        self.root = Path(self.storage_config.path)
        self.store = store
        self._session: Optional[aiohttp.ClientSession] = None

    def attach_store(self, store: "RecordStore") -> None:
        self.store = store

    def lens_dir(self, lens_id: Any) -> Path:
        return self.root / str(int(lens_id))

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.remote_config.timeout),
                headers={"User-Agent": self.remote_config.user_agent},
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _download(self, url: str, dest: Path) -> bool:
        if not _is_http_url(url):
            logger.warning(f"[ASSETS] Skipping invalid URL: {url!r}")
            return False

        max_size = self.storage_config.max_file_size
        try:
            async with self._get_session().get(url) as response:
                if response.status != 200:
                    logger.warning(f"[ASSETS] HTTP {response.status} for {url}")
                    return False

                content_length = response.headers.get("Content-Length")
                if content_length and int(content_length) > max_size:
                    logger.warning(f"[ASSETS] Too large ({content_length} bytes): {url}")
                    return False

                chunks = []
                size = 0
                async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                    size += len(chunk)
                    if size > max_size:
                        logger.warning(f"[ASSETS] Too large (>{max_size} bytes): {url}")
                        return False
                    chunks.append(chunk)

            await asyncio.to_thread(_write_file, dest, b"".join(chunks))
            return True

        except asyncio.TimeoutError:
            logger.warning(f"[ASSETS] Timeout after {self.remote_config.timeout}s: {url}")
        except (aiohttp.ClientError, ValueError) as e:
            logger.warning(f"[ASSETS] Download error for {url}: {e}")
        except OSError as e:
            logger.error(f"[ASSETS] Write error for {dest}: {e}")
        return False

    async def download_lens_assets(self, lens: Lens) -> None:
        if not self.storage_config.mirror_assets or not lens.id:
            return

        target_dir = self.lens_dir(lens.id)
        failed = 0
        targets = lens_asset_targets(lens)
        for url, name in targets:
            if not await self._download(url, target_dir / name):
                failed += 1

        if failed:
            logger.warning(f"[ASSETS] Lens {lens.id}: {failed}/{len(targets)} files failed")
            return

        logger.info(f"[ASSETS] Lens {lens.id}: {len(targets)} files mirrored")
        if self.store is not None:
            await self.store.mark_lens_mirrored(lens.id)

    async def download_unlock_assets(self, lens_id: Any, lens_url: str) -> None:
        if not self.storage_config.mirror_assets or not lens_id or not lens_url:
            return

        dest = self.lens_dir(lens_id) / UNLOCK_ARCHIVE_NAME
        if not await self._download(lens_url, dest):
            logger.warning(f"[ASSETS] Unlock {lens_id}: archive download failed")
            return

        logger.info(f"[ASSETS] Unlock {lens_id}: archive mirrored")
        if self.store is not None:
            await self.store.mark_unlock_mirrored(lens_id)

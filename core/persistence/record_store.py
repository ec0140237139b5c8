"""
Record Store - persistent lenses, unlocks and users
===================================================

[PERSISTENCE] SQLite tables (see schema.py):
- lenses: id PRIMARY KEY
- unlocks: lens_id PRIMARY KEY (at most one unlock per lens)
- users: creator_slug PRIMARY KEY

[READS] Every read goes through two post-filters:
- web-source filter: rows with is_web_sourced are dropped unless
  MirrorConfig.enable_web_source is set
- media filter: under ignore_alt_media / ignore_img_sequence heavy media
  fields are collapsed into the thumbnail to shrink payloads
Reads never raise. A failed query is logged and yields an empty result.

[WRITES] Inserts are idempotent:
- the primary key decides; a colliding insert never touches stored values
- a duplicate with force_asset_download re-runs only the asset download
- batches run one entry at a time, in order (see insert_lens)
"""

import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union, TYPE_CHECKING

import aiosqlite

from config import MirrorConfig
from core.models import (
    DEFAULT_STATUS,
    LENS_COLUMNS,
    UNLOCK_COLUMNS,
    Lens,
    Unlock,
    User,
)
from core.utils.lens_uuid import parse_lens_uuid

from .pool import ConnectionPool
from .schema import run_migrations

if TYPE_CHECKING:
    from web.downloader import AssetSink

logger = logging.getLogger(__name__)


MAX_SEARCH_RESULTS = 250
# SQLite caps bound parameters per statement
MAX_IN_PARAMS = 500

_DUPLICATE_ERROR_NAMES = ("SQLITE_CONSTRAINT_PRIMARYKEY", "SQLITE_CONSTRAINT_UNIQUE")


class InsertOutcome(Enum):
    INSERTED = "inserted"
    DUPLICATE = "duplicate"
    FAILED = "failed"


def is_duplicate_key(error: Exception) -> bool:
    """Tell a uniqueness violation apart from every other write failure."""
    if not isinstance(error, aiosqlite.IntegrityError):
        return False
    name = getattr(error, "sqlite_errorname", "")
    if name:
        return name in _DUPLICATE_ERROR_NAMES
    return "UNIQUE constraint failed" in str(error)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _chunks(values: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


def _coerce_ids(ids: Iterable[Any]) -> List[int]:
    result: List[int] = []
    for value in ids:
        try:
            result.append(int(value))
        except (TypeError, ValueError):
            continue
    return result


class RecordStore:
    """
    Local store of mirrored lens data.

    [USAGE]
    ```python
    store = RecordStore(ConnectionPool("lensmirror.db"), config.mirror)
    await store.initialize()
    store.attach_assets(downloader)

    await store.insert_lens(lens)            # True, assets downloaded
    await store.insert_lens(lens)            # True, nothing written
    await store.insert_lens(lens, True)      # True, assets downloaded again
    lenses = await store.search_by_name("dog")
    ```
    """

    def __init__(
        self,
        pool: ConnectionPool,
        mirror_config: Optional[MirrorConfig] = None,
        assets: Optional["AssetSink"] = None,
    ):
        self.pool = pool
        self.mirror_config = mirror_config or MirrorConfig()
        self.assets = assets

    async def initialize(self) -> None:
        """Create tables (pending migrations)."""
        async with self.pool.acquire() as db:
            version = await run_migrations(db)
        logger.info(f"[STORE] Initialized: {self.pool.db_path} (schema v{version})")

    async def close(self) -> None:
        await self.pool.close()

    def attach_assets(self, assets: "AssetSink") -> None:
        self.assets = assets

    # --- Read filters ---

    def _web_filter(self, rows: List[Any]) -> List[Any]:
        if self.mirror_config.enable_web_source:
            return rows
        return [row for row in rows if not row["is_web_sourced"]]

    def _media_filter(self, lenses: List[Lens]) -> List[Lens]:
        cfg = self.mirror_config
        if not (cfg.ignore_alt_media or cfg.ignore_img_sequence):
            return lenses

        for lens in lenses:
            # other media is redundant once a thumbnail exists
            if not lens.thumbnail_media_url:
                lens.thumbnail_media_url = lens.thumbnail_media_poster_url or ""
            if cfg.ignore_alt_media:
                lens.standard_media_url = ""
                lens.standard_media_poster_url = ""
            lens.image_sequence = {}
        return lenses

    # --- Queries ---

    async def _fetch_rows(self, sql: str, params: Tuple[Any, ...], context: Any) -> List[Any]:
        """Run a SELECT. Failures are logged and turned into an empty list."""
        try:
            async with self.pool.acquire() as db:
                cursor = await db.execute(sql, params)
                rows = await cursor.fetchall()
                await cursor.close()
                return list(rows)
        except (aiosqlite.Error, RuntimeError) as e:
            logger.error(f"[STORE] Query failed ({context!r}): {e}")
            return []

    async def _lenses(
        self,
        sql: str,
        params: Tuple[Any, ...],
        context: Any,
        apply_media_filter: bool = True,
    ) -> List[Lens]:
        rows = self._web_filter(await self._fetch_rows(sql, params, context))
        lenses = [Lens.from_row(row) for row in rows]
        return self._media_filter(lenses) if apply_media_filter else lenses

    async def search_by_name(self, term: str) -> List[Lens]:
        """Case-insensitive substring match on lens name or creator name."""
        if not term or not term.strip():
            return []
        pattern = f"%{_escape_like(term.strip())}%"
        return await self._lenses(
            "SELECT * FROM lenses "
            "WHERE name LIKE ? ESCAPE '\\' OR creator_display_name LIKE ? ESCAPE '\\' "
            f"LIMIT {MAX_SEARCH_RESULTS}",
            (pattern, pattern),
            pattern,
        )

    async def search_by_tags(self, tags: Sequence[str]) -> List[Lens]:
        """Lenses matching any of the tags."""
        cleaned = [tag.strip().lstrip("#") for tag in tags if tag and tag.strip().lstrip("#")]
        if not cleaned:
            return []
        clause = " OR ".join(["tags LIKE ? ESCAPE '\\'"] * len(cleaned))
        params = tuple(f"%{_escape_like(tag)}%" for tag in cleaned)
        return await self._lenses(
            f"SELECT * FROM lenses WHERE {clause} LIMIT {MAX_SEARCH_RESULTS}",
            params,
            cleaned,
        )

    async def search_by_uuid(self, uuid: str) -> List[Lens]:
        if not uuid:
            return []
        return await self._lenses(
            "SELECT * FROM lenses WHERE uuid = ? LIMIT 1",
            (uuid.lower(),),
            uuid,
        )

    async def get_by_ids(self, ids: Iterable[Any]) -> List[Lens]:
        lens_ids = _coerce_ids(ids)
        lenses: List[Lens] = []
        for chunk in _chunks(lens_ids, MAX_IN_PARAMS):
            placeholders = ", ".join("?" * len(chunk))
            lenses.extend(await self._lenses(
                f"SELECT * FROM lenses WHERE id IN ({placeholders})",
                tuple(chunk),
                chunk,
            ))
        return lenses

    async def get_by_id(self, lens_id: Any, apply_media_filter: bool = True) -> List[Lens]:
        """Zero or one lens, as a list like every other lookup."""
        ids = _coerce_ids([lens_id])
        if not ids:
            return []
        return await self._lenses(
            "SELECT * FROM lenses WHERE id = ? LIMIT 1",
            (ids[0],),
            ids[0],
            apply_media_filter=apply_media_filter,
        )

    async def get_unlock_by_lens_id(self, lens_id: Any) -> List[Unlock]:
        ids = _coerce_ids([lens_id])
        if not ids:
            return []
        rows = await self._fetch_rows(
            "SELECT * FROM unlocks WHERE lens_id = ? LIMIT 1",
            (ids[0],),
            ids[0],
        )
        return [Unlock.from_row(row) for row in self._web_filter(rows)]

    async def get_creator_slug_by_display_name(self, display_name: str) -> str:
        if not display_name:
            return ""
        rows = await self._fetch_rows(
            "SELECT creator_slug FROM users WHERE creator_display_name = ? LIMIT 1",
            (display_name,),
            display_name,
        )
        return rows[0]["creator_slug"] if rows else ""

    async def filter_existing(self, ids: Iterable[Any]) -> List[int]:
        """Subset of ids already stored (after web-source filtering)."""
        lens_ids = _coerce_ids(ids)
        existing: List[int] = []
        for chunk in _chunks(lens_ids, MAX_IN_PARAMS):
            placeholders = ", ".join("?" * len(chunk))
            rows = await self._fetch_rows(
                f"SELECT id, is_web_sourced FROM lenses WHERE id IN ({placeholders})",
                tuple(chunk),
                chunk,
            )
            existing.extend(int(row["id"]) for row in self._web_filter(rows))
        return existing

    # --- Writes ---

    async def _insert_row(
        self,
        table: str,
        columns: Tuple[str, ...],
        values: Tuple[Any, ...],
        key: Any,
    ) -> InsertOutcome:
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' * len(columns))})"
        )
        try:
            async with self.pool.acquire() as db:
                try:
                    await db.execute(sql, values)
                    await db.commit()
                except aiosqlite.Error as e:
                    await db.rollback()
                    if is_duplicate_key(e):
                        return InsertOutcome.DUPLICATE
                    logger.error(f"[STORE] Insert into {table} failed for {key}: {e}")
                    return InsertOutcome.FAILED
        except (aiosqlite.Error, RuntimeError) as e:
            logger.error(f"[STORE] Insert into {table} failed for {key}: {e}")
            return InsertOutcome.FAILED
        return InsertOutcome.INSERTED

    @staticmethod
    def _normalize_lens(lens: Lens) -> Lens:
        """Rebuild the record so exactly the expected values get inserted."""
        return Lens(
            id=int(lens.id),
            uuid=(lens.uuid or parse_lens_uuid(lens.deeplink)).lower(),
            snapcode_url=lens.snapcode_url or "",
            creator_display_name=lens.creator_display_name,
            name=lens.name,
            tags=lens.tags or "",
            status=lens.status or DEFAULT_STATUS,
            deeplink=lens.deeplink or "",
            icon_url=lens.icon_url or "",
            thumbnail_media_url=lens.thumbnail_media_url or "",
            thumbnail_media_poster_url=lens.thumbnail_media_poster_url or "",
            standard_media_url=lens.standard_media_url or "",
            standard_media_poster_url=lens.standard_media_poster_url or "",
            image_sequence=dict(lens.image_sequence or {}),
            creator_slug=lens.creator_slug or "",
            is_web_sourced=bool(lens.is_web_sourced),
            is_mirrored=False,
        )

    @staticmethod
    def _normalize_unlock(unlock: Unlock) -> Unlock:
        return Unlock(
            lens_id=int(unlock.lens_id),
            lens_url=unlock.lens_url,
            signature=unlock.signature or "",
            hint_id=unlock.hint_id or "",
            additional_hint_ids=dict(unlock.additional_hint_ids or {}),
            is_web_sourced=bool(unlock.is_web_sourced),
            is_mirrored=False,
        )

    async def _download_lens(self, lens: Lens) -> None:
        if self.assets is None:
            return
        try:
            await self.assets.download_lens_assets(lens)
        except Exception as e:
            logger.error(f"[STORE] Asset download failed for lens {lens.id}: {e}")

    async def _download_unlock(self, unlock: Unlock) -> None:
        if self.assets is None:
            return
        try:
            await self.assets.download_unlock_assets(unlock.lens_id, unlock.lens_url)
        except Exception as e:
            logger.error(f"[STORE] Asset download failed for unlock {unlock.lens_id}: {e}")

    async def insert_lens(
        self,
        lenses: Union[Lens, Dict[str, Any], Sequence[Union[Lens, Dict[str, Any]]]],
        force_asset_download: bool = False,
    ) -> bool:
        """
        Store one lens or a batch of lenses.

        The whole batch is validated first; a single entry without id, name
        or creator_display_name aborts the call before any write.

        Entries are then inserted strictly one after another, each awaited
        (insert, user, asset download) before the next one starts. This keeps
        at most one connection per batch busy and log lines in batch order.
        Do not turn this into a gather() without revisiting the pool size.

        Returns:
            True if every entry was inserted or already present
        """
        batch = [
            item if isinstance(item, Lens) else Lens.from_dict(item or {})
            for item in (lenses if isinstance(lenses, (list, tuple)) else [lenses])
        ]
        for lens in batch:
            if not lens.is_complete:
                logger.error(f"[STORE] Invalid lens, id/name/creator_display_name required: {lens!r}")
                return False

        ok = True
        for lens in batch:
            ok = await self._insert_lens(self._normalize_lens(lens), force_asset_download) and ok
        return ok

    async def _insert_lens(self, lens: Lens, force_asset_download: bool) -> bool:
        outcome = await self._insert_row("lenses", LENS_COLUMNS, lens.to_row(), lens.id)

        if outcome is InsertOutcome.INSERTED:
            user = User.from_lens(lens)
            if user:
                await self.insert_user(user)
            await self._download_lens(lens)
            logger.info(f"[STORE] Saved lens: {lens.id}")
            return True

        if outcome is InsertOutcome.DUPLICATE:
            if force_asset_download:
                logger.info(f"[STORE] Lens {lens.id} exists, re-downloading assets")
                await self._download_lens(lens)
            else:
                logger.debug(f"[STORE] Lens {lens.id} exists, skipped")
            return True

        return False

    async def insert_unlock(
        self,
        unlocks: Union[Unlock, Dict[str, Any], Sequence[Union[Unlock, Dict[str, Any]]]],
        force_asset_download: bool = False,
    ) -> bool:
        """Store one unlock or a batch; same rules as insert_lens."""
        batch = [
            item if isinstance(item, Unlock) else Unlock.from_dict(item or {})
            for item in (unlocks if isinstance(unlocks, (list, tuple)) else [unlocks])
        ]
        for unlock in batch:
            if not unlock.is_complete:
                logger.error(f"[STORE] Invalid unlock, lens_id/lens_url required: {unlock!r}")
                return False

        ok = True
        for unlock in batch:
            ok = await self._insert_unlock(self._normalize_unlock(unlock), force_asset_download) and ok
        return ok

    async def _insert_unlock(self, unlock: Unlock, force_asset_download: bool) -> bool:
        outcome = await self._insert_row("unlocks", UNLOCK_COLUMNS, unlock.to_row(), unlock.lens_id)

        if outcome is InsertOutcome.INSERTED:
            await self._download_unlock(unlock)
            logger.info(f"[STORE] Unlocked lens: {unlock.lens_id}")
            return True

        if outcome is InsertOutcome.DUPLICATE:
            if force_asset_download:
                logger.info(f"[STORE] Unlock {unlock.lens_id} exists, re-downloading assets")
                await self._download_unlock(unlock)
            return True

        return False

    async def insert_user(self, user: User) -> bool:
        """Idempotent by creator_slug."""
        if not user or not user.creator_slug or not user.creator_display_name:
            logger.error(f"[STORE] Invalid user, creator_slug/creator_display_name required: {user!r}")
            return False

        outcome = await self._insert_row(
            "users",
            ("creator_slug", "creator_display_name"),
            (user.creator_slug, user.creator_display_name),
            user.creator_slug,
        )
        if outcome is InsertOutcome.INSERTED:
            logger.info(f"[STORE] New user: {user.creator_display_name}")
        return outcome is not InsertOutcome.FAILED

    async def _mark_mirrored(self, sql: str, lens_id: Any) -> None:
        try:
            async with self.pool.acquire() as db:
                await db.execute(sql, (lens_id,))
                await db.commit()
        except (aiosqlite.Error, RuntimeError) as e:
            logger.warning(f"[STORE] Mark mirrored failed for {lens_id}: {e}")

    async def mark_lens_mirrored(self, lens_id: Any) -> None:
        """Bookkeeping only: failures are logged, never raised."""
        await self._mark_mirrored("UPDATE lenses SET is_mirrored = 1 WHERE id = ?", lens_id)

    async def mark_unlock_mirrored(self, lens_id: Any) -> None:
        await self._mark_mirrored("UPDATE unlocks SET is_mirrored = 1 WHERE lens_id = ?", lens_id)

"""
Sync Engine - store-first search and remote mirroring
=====================================================

[SEARCH] search(term) routes a term to exactly one remote capability:
1. creator profile URL -> paginated creator listing
2. content hash        -> hash lookup (single record -> one-element list)
3. anything else       -> keyword search
Candidates are then annotated: missing creator slugs are resolved through
the store, every candidate is flagged is_web_sourced.

[MIRROR] mirror_search_results(candidates) re-resolves each candidate by
hash and persists the authoritative record with its own origin flag, or the
candidate itself (flagged is_web_sourced) when the authoritative one is
incomplete. The unlock has no fallback source.

[ERRORS] Entry points never raise. Failures are logged and the caller gets
an empty result (reads) or a lower persisted count (mirroring).
"""

import asyncio
import logging
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional, Union

from config import MirrorConfig
from core.models import Lens, LensWithUnlock, RemoteRecord, Unlock
from core.persistence.record_store import RecordStore
from core.utils.lens_uuid import parse_lens_uuid
from web.fetcher import LensFetcher

from .cache import CREATOR_KEY_PREFIX, ResultCache

logger = logging.getLogger(__name__)


PAGE_SIZE = 100
# Upper bound on creator listings (10 pages)
MAX_CREATOR_SCAN = 1000

CREATOR_URL_PREFIXES = (
    "https://lensstudio.snapchat.com/creator/",
)


def creator_slug_from_url(term: str) -> str:
    """Creator slug of a creator profile URL, "" for any other term."""
    for prefix in CREATOR_URL_PREFIXES:
        if term.startswith(prefix):
            path = term[len(prefix):].split("?", 1)[0].split("#", 1)[0].strip("/")
            return path.rsplit("/", 1)[-1]
    return ""


def _split_tags(term: str) -> List[str]:
    return [tag for tag in term.replace(",", " ").split() if tag.strip("#")]


class SyncEngine:
    """
    Orchestrates the record store, the remote fetcher and the result cache.

    [USAGE]
    ```python
    engine = SyncEngine(store, WebLensFetcher(config.remote), ResultCache())
    candidates = await engine.search("dog filter")
    saved = await engine.mirror_search_results(candidates)
    ```
    """

    def __init__(
        self,
        store: RecordStore,
        fetcher: LensFetcher,
        cache: Optional[ResultCache] = None,
        mirror_config: Optional[MirrorConfig] = None,
    ):
        self.store = store
        self.fetcher = fetcher
        self.cache = cache
        self.mirror_config = mirror_config or store.mirror_config

    # --- Search ---

    async def search(self, term: str) -> List[Lens]:
        """Remote search with annotation. Never raises; [] on failure."""
        if not term or not term.strip():
            return []
        term = term.strip()

        slug = creator_slug_from_url(term)
        # creator slugs are case-sensitive, free text is not
        cache_key = f"{CREATOR_KEY_PREFIX}{slug}" if slug else term

        if self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug(f"[SYNC] Cache hit: '{cache_key}'")
                return [lens.copy() for lens in cached]

        try:
            if slug:
                results = await self.search_by_creator_slug(slug)
            else:
                results = await self._annotate(await self._remote_search(term))
        except Exception as e:
            logger.error(f"[SYNC] Search failed for '{term}': {e}")
            return []

        if self.cache is not None:
            self.cache.set(cache_key, [lens.copy() for lens in results])
        return list(results)

    async def _remote_search(self, term: str) -> List[Lens]:
        uuid = parse_lens_uuid(term)
        if uuid:
            record = await self.fetcher.fetch_by_hash(uuid)
            return [record.lens.copy()] if record is not None else []
        return list(await self.fetcher.search_by_keyword(term) or [])

    async def _annotate(self, candidates: List[Lens]) -> List[Lens]:
        async def annotate(lens: Lens) -> Lens:
            if lens.creator_display_name and not lens.creator_slug:
                lens.creator_slug = await self.store.get_creator_slug_by_display_name(
                    lens.creator_display_name
                )
            lens.is_web_sourced = True
            return lens

        return list(await asyncio.gather(*(annotate(lens) for lens in candidates)))

    async def search_by_user_name(self, display_name: str) -> List[Lens]:
        slug = await self.store.get_creator_slug_by_display_name(display_name)
        if slug:
            return await self.search_by_creator_slug(slug)
        return []

    async def search_by_creator_slug(self, slug: str) -> List[Lens]:
        """
        All lenses of a creator, page by page.

        Stops on the first short page or after MAX_CREATOR_SCAN items. A page
        failure ends the scan with whatever was collected so far.
        """
        if not slug:
            return []

        lenses: List[Lens] = []
        for offset in range(0, MAX_CREATOR_SCAN, PAGE_SIZE):
            try:
                page = list(await self.fetcher.list_by_creator(slug, offset, PAGE_SIZE) or [])
            except Exception as e:
                logger.error(f"[SYNC] Creator listing failed ({slug}, offset {offset}): {e}")
                break
            lenses.extend(page)
            if len(page) < PAGE_SIZE:
                break

        lenses = lenses[:MAX_CREATOR_SCAN]
        for lens in lenses:
            if not lens.creator_slug:
                lens.creator_slug = slug
            lens.is_web_sourced = True

        logger.info(f"[SYNC] Creator {slug}: {len(lenses)} lenses")
        return lenses

    async def find(self, term: str) -> List[Lens]:
        """
        Local-first lookup.

        "#tag ..." terms search tags, hashes search uuids, everything else
        searches names. Only an empty local result falls back to the remote
        search, and only with web sources enabled; remote candidates already
        stored are dropped.
        """
        if not term or not term.strip():
            return []
        term = term.strip()

        local: List[Lens] = []
        if not creator_slug_from_url(term):
            uuid = parse_lens_uuid(term)
            if term.startswith("#"):
                local = await self.store.search_by_tags(_split_tags(term))
            elif uuid:
                local = await self.store.search_by_uuid(uuid)
            else:
                local = await self.store.search_by_name(term)

        if local or not self.mirror_config.enable_web_source:
            return local

        remote = await self.search(term)
        existing = set(await self.store.filter_existing(lens.id for lens in remote if lens.id))
        return [lens for lens in remote if lens.id not in existing]

    # --- Hash lookups ---

    async def _fetch_record(self, uuid: str) -> Optional[RemoteRecord]:
        try:
            return await self.fetcher.fetch_by_hash(uuid)
        except Exception as e:
            logger.error(f"[SYNC] Hash lookup failed for {uuid}: {e}")
            return None

    async def get_by_hash(self, uuid: str) -> Optional[Lens]:
        record = await self._fetch_record(uuid)
        return record.lens if record is not None else None

    async def get_unlock_by_hash(self, uuid: str) -> Optional[Unlock]:
        # same remote capability: the record carries both halves
        record = await self._fetch_record(uuid)
        if isinstance(record, LensWithUnlock):
            return record.unlock
        return None

    # --- Mirroring ---

    async def mirror_search_results(
        self,
        candidates: Iterable[Union[Lens, Dict[str, Any]]],
    ) -> int:
        """
        Persist search candidates, one at a time.

        Returns:
            Number of candidates whose lens was stored (or already present)
        """
        persisted = 0
        for item in candidates or []:
            candidate = item.copy() if isinstance(item, Lens) else Lens.from_dict(item or {})
            candidate.uuid = parse_lens_uuid(candidate.uuid) or parse_lens_uuid(candidate.deeplink)
            if not candidate.uuid:
                logger.debug(f"[SYNC] Skipping candidate without hash: {candidate.id}")
                continue
            try:
                if await self._mirror_candidate(candidate):
                    persisted += 1
            except Exception as e:
                # isolated: the remaining candidates are still processed
                logger.error(f"[SYNC] Mirror failed for {candidate.uuid}: {e}")

        logger.info(f"[SYNC] Mirrored {persisted} lenses")
        return persisted

    async def _mirror_candidate(self, candidate: Lens) -> bool:
        record = await self.fetcher.fetch_by_hash(candidate.uuid)

        if record is not None and record.lens.is_complete:
            # authoritative record keeps its own origin flag
            chosen: Optional[Lens] = record.lens.copy()
        elif candidate.is_complete:
            chosen = candidate.copy(is_web_sourced=True)
        else:
            chosen = None
            logger.warning(f"[SYNC] Skipping {candidate.uuid}: no complete lens record")

        saved = False
        if chosen is not None:
            saved = await self.store.insert_lens(chosen)

        # no fallback source for the unlock
        if isinstance(record, LensWithUnlock):
            await self.store.insert_unlock(replace(
                record.unlock,
                additional_hint_ids=dict(record.unlock.additional_hint_ids),
            ))

        return saved

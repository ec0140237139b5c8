"""
Remote Fetcher - lens lookups on the content platform
=====================================================

[REMOTE] Three capabilities, nothing else is used by the mirror:
- fetch_by_hash(hash): authoritative record, metadata plus unlock if present
- search_by_keyword(term): partial lenses
- list_by_creator(slug, offset, limit): partial lenses, one page

[LIMITS]
- Request timeout: RemoteConfig.timeout (30 s by default)
- Maximum response size: 5 MB

Transport failures (aiohttp.ClientError, asyncio.TimeoutError) propagate to
the caller; "not found" is an empty result.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import aiohttp
from bs4 import BeautifulSoup

from config import RemoteConfig
from core.models import Lens, LensOnly, LensWithUnlock, RemoteRecord, Unlock

logger = logging.getLogger(__name__)


MAX_CONTENT_SIZE = 5 * 1024 * 1024  # 5 MB

# Remote (camelCase) key -> Lens attribute
_LENS_FIELDS: Dict[str, str] = {
    "lensId": "id",
    "scannableUuid": "uuid",
    "snapcodeUrl": "snapcode_url",
    "lensCreatorDisplayName": "creator_display_name",
    "lensName": "name",
    "deeplinkUrl": "deeplink",
    "iconUrl": "icon_url",
    "lensPreviewVideoUrl": "thumbnail_media_url",
    "lensPreviewImageUrl": "thumbnail_media_poster_url",
    "lensStandardVideoUrl": "standard_media_url",
    "lensStandardImageUrl": "standard_media_poster_url",
    "obfuscatedUserSlug": "creator_slug",
}


def _pick(item: Dict[str, Any], attribute: str) -> Any:
    """Value for a Lens attribute, from either key style."""
    if item.get(attribute) not in (None, ""):
        return item[attribute]
    for remote_key, name in _LENS_FIELDS.items():
        if name == attribute and item.get(remote_key) not in (None, ""):
            return item[remote_key]
    return None


def lens_from_remote(item: Dict[str, Any]) -> Lens:
    """Build a (possibly partial) Lens from a remote lens object."""
    data = {name: _pick(item, name) for name in set(_LENS_FIELDS.values())}
    tags = item.get("tags") or item.get("lensCreatorSearchTags") or ""
    if isinstance(tags, (list, tuple)):
        tags = ",".join(str(tag) for tag in tags)
    data["tags"] = tags
    data["status"] = item.get("status") or item.get("lensStatus")
    data["image_sequence"] = item.get("image_sequence") or item.get("imageSequence") or {}
    return Lens.from_dict(data)


def unlock_from_remote(item: Dict[str, Any], lens_id: Optional[int]) -> Optional[Unlock]:
    """Unlock payload of a remote lens object, None if it has none."""
    resource = item.get("lensResource") or {}
    lens_url = item.get("lens_url") or resource.get("archiveLink")
    if not lens_url or not lens_id:
        return None
    return Unlock(
        lens_id=lens_id,
        lens_url=lens_url,
        signature=item.get("signature") or resource.get("signature") or "",
        hint_id=item.get("hint_id") or item.get("hintId") or "",
        additional_hint_ids=item.get("additional_hint_ids") or item.get("additionalHintIds") or {},
    )


def record_from_remote(item: Dict[str, Any]) -> RemoteRecord:
    lens = lens_from_remote(item)
    unlock = unlock_from_remote(item, lens.id)
    if unlock is not None:
        return LensWithUnlock(lens=lens, unlock=unlock)
    return LensOnly(lens=lens)


def _extract_items(payload: Any) -> List[Dict[str, Any]]:
    """Lens list out of a JSON listing response."""
    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, dict)]
    if isinstance(payload, dict):
        for key in ("lenses", "items", "results", "data"):
            if key in payload:
                return _extract_items(payload[key])
    return []


def parse_lens_page(html: str) -> Optional[Dict[str, Any]]:
    """Lens object embedded in a lens web page (__NEXT_DATA__ script)."""
    soup = BeautifulSoup(html, "html.parser")
    script = soup.find("script", id="__NEXT_DATA__")
    if script is None or not script.string:
        return None
    try:
        data = json.loads(script.string)
    except ValueError:
        return None
    page_props = data.get("props", {}).get("pageProps", {})
    info = page_props.get("lensDisplayInfo")
    return info if isinstance(info, dict) else None


class LensFetcher(ABC):
    """Capability interface of the remote content platform."""

    @abstractmethod
    async def fetch_by_hash(self, lens_hash: str) -> Optional[RemoteRecord]:
        """Authoritative record for a content hash, None if unknown."""

    @abstractmethod
    async def search_by_keyword(self, term: str) -> List[Lens]:
        """Partial lenses matching a free-text term."""

    @abstractmethod
    async def list_by_creator(self, slug: str, offset: int, limit: int) -> List[Lens]:
        """One page of a creator's lenses."""

    async def close(self) -> None:
        return None


class WebLensFetcher(LensFetcher):
    """
    LensFetcher over HTTP.

    [REMOTE]
    - hash lookup: lens web page, parsed from its __NEXT_DATA__ JSON
    - keyword search / creator listing: JSON endpoints
    Endpoint templates come from RemoteConfig.
    """

    def __init__(self, remote_config: Optional[RemoteConfig] = None):
        self.remote_config = remote_config or RemoteConfig()
        self._session: Optional[aiohttp.ClientSession] = None

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

    async def _get_text(self, url: str) -> Optional[str]:
        """GET a URL. None on 404; raises on other failures."""
        async with self._get_session().get(url) as response:
            if response.status == 404:
                logger.debug(f"[FETCH] Not found: {url}")
                return None
            if response.status != 200:
                raise aiohttp.ClientResponseError(
                    response.request_info,
                    response.history,
                    status=response.status,
                    message=f"HTTP {response.status}: {response.reason}",
                )
            content_length = response.headers.get("Content-Length")
            if content_length and int(content_length) > MAX_CONTENT_SIZE:
                raise aiohttp.ClientPayloadError(f"Content too large: {content_length} bytes")
            return await response.text(errors="ignore")

    async def _get_json(self, url: str) -> Any:
        text = await self._get_text(url)
        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError:
            logger.warning(f"[FETCH] Invalid JSON from {url}")
            return None

    async def fetch_by_hash(self, lens_hash: str) -> Optional[RemoteRecord]:
        url = self.remote_config.lens_web_url.format(uuid=quote(lens_hash))
        html = await self._get_text(url)
        if not html:
            return None
        info = parse_lens_page(html)
        if info is None:
            logger.debug(f"[FETCH] No lens data on page: {url}")
            return None
        return record_from_remote(info)

    async def search_by_keyword(self, term: str) -> List[Lens]:
        url = self.remote_config.search_url.format(query=quote(term))
        payload = await self._get_json(url)
        lenses = [lens_from_remote(item) for item in _extract_items(payload)]
        logger.info(f"[FETCH] Search '{term}': {len(lenses)} results")
        return lenses

    async def list_by_creator(self, slug: str, offset: int, limit: int) -> List[Lens]:
        url = self.remote_config.creator_lenses_url.format(
            slug=quote(slug), offset=offset, limit=limit,
        )
        payload = await self._get_json(url)
        return [lens_from_remote(item) for item in _extract_items(payload)]


__all__ = [
    "LensFetcher",
    "WebLensFetcher",
    "lens_from_remote",
    "unlock_from_remote",
    "record_from_remote",
    "parse_lens_page",
]

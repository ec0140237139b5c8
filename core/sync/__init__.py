"""
Sync Module - remote fallback and mirroring
===========================================

[COMPONENTS]
- SyncEngine: search routing, creator pagination, mirroring
- ResultCache: TTL memo of remote search responses
- RemirrorTrigger: asset repair for stored lenses
"""

from .cache import ResultCache, normalize_key
from .engine import SyncEngine, PAGE_SIZE, MAX_CREATOR_SCAN, creator_slug_from_url
from .remirror import RemirrorTrigger, parse_lens_id

__all__ = [
    "ResultCache",
    "normalize_key",
    "SyncEngine",
    "PAGE_SIZE",
    "MAX_CREATOR_SCAN",
    "creator_slug_from_url",
    "RemirrorTrigger",
    "parse_lens_id",
]

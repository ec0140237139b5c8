"""
Remirror Trigger
================

[REPAIR] Fed by the "report lens" request of client apps: a single lens id.
If the lens is stored, its assets are downloaded again through
insert_lens(..., force_asset_download=True). The stored metadata is left
as is and nothing is fetched from the remote platform.
"""

import logging
from typing import Any, Dict, Optional

from core.persistence.record_store import RecordStore

logger = logging.getLogger(__name__)


def parse_lens_id(value: Any) -> Optional[int]:
    """Positive integer id, None for anything else."""
    if isinstance(value, bool):
        return None
    try:
        lens_id = int(value)
    except (TypeError, ValueError):
        return None
    return lens_id if lens_id > 0 else None


class RemirrorTrigger:
    def __init__(self, store: RecordStore):
        self.store = store

    async def remirror(self, lens_id: Any) -> bool:
        """Re-download the assets of a stored lens. False if it is unknown."""
        parsed = parse_lens_id(lens_id)
        if parsed is None:
            logger.debug(f"[REMIRROR] Ignoring invalid lens id: {lens_id!r}")
            return False

        # stored record as is, the read-side media filter would blank URLs
        lenses = await self.store.get_by_id(parsed, apply_media_filter=False)
        if not lenses:
            logger.debug(f"[REMIRROR] Lens {parsed} not stored")
            return False

        logger.info(f"[REMIRROR] Re-mirroring lens {parsed}")
        return await self.store.insert_lens([lenses[0]], force_asset_download=True)

    async def handle(self, payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Request handler: {"lens_id": ...} in, always {} out."""
        if isinstance(payload, dict) and payload.get("lens_id"):
            await self.remirror(payload["lens_id"])
        return {}

"""
Records - Lens, Unlock, User
============================

[MODEL] Canonical shapes of everything the mirror stores:
- Lens: metadata of one camera effect (primary key = remote id)
- Unlock: activation payload, paired 1:1 with a Lens by lens_id
- User: creator identity cache (creator_slug -> display name)

[REMOTE] A hash lookup on the remote platform yields a RemoteRecord:
- LensOnly: metadata without unlock fields
- LensWithUnlock: metadata plus the unlock payload
"""

import json
from dataclasses import dataclass, field, asdict, replace
from typing import Any, Dict, Optional, Tuple, Union

DEFAULT_STATUS = "Live"

LENS_COLUMNS: Tuple[str, ...] = (
    "id",
    "uuid",
    "snapcode_url",
    "creator_display_name",
    "name",
    "tags",
    "status",
    "deeplink",
    "icon_url",
    "thumbnail_media_url",
    "thumbnail_media_poster_url",
    "standard_media_url",
    "standard_media_poster_url",
    "creator_slug",
    "image_sequence",
    "is_web_sourced",
    "is_mirrored",
)

UNLOCK_COLUMNS: Tuple[str, ...] = (
    "lens_id",
    "lens_url",
    "signature",
    "hint_id",
    "additional_hint_ids",
    "is_web_sourced",
    "is_mirrored",
)


def _load_mapping(raw: Any) -> Dict[str, str]:
    """Decode a JSON column (or pass through an already decoded mapping)."""
    if not raw:
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    return value if isinstance(value, dict) else {}


def _to_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass
class Lens:
    """
    Metadata of one camera effect.

    Remote candidates are partial: any field except the flags may be empty.
    A Lens is storable only when is_complete is true.
    """

    id: Optional[int] = None
    uuid: str = ""
    snapcode_url: str = ""
    creator_display_name: str = ""
    name: str = ""
    tags: str = ""
    status: str = DEFAULT_STATUS
    deeplink: str = ""
    icon_url: str = ""
    thumbnail_media_url: str = ""
    thumbnail_media_poster_url: str = ""
    standard_media_url: str = ""
    standard_media_poster_url: str = ""
    image_sequence: Dict[str, str] = field(default_factory=dict)
    creator_slug: str = ""
    is_web_sourced: bool = False
    is_mirrored: bool = False

    @property
    def is_complete(self) -> bool:
        """Required fields for storage: id, name, creator display name."""
        return bool(self.id and self.name and self.creator_display_name)

    def copy(self, **changes: Any) -> "Lens":
        changes.setdefault("image_sequence", dict(self.image_sequence))
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Lens":
        return cls(
            id=_to_int(data.get("id")),
            uuid=data.get("uuid") or "",
            snapcode_url=data.get("snapcode_url") or "",
            creator_display_name=data.get("creator_display_name") or "",
            name=data.get("name") or "",
            tags=data.get("tags") or "",
            status=data.get("status") or DEFAULT_STATUS,
            deeplink=data.get("deeplink") or "",
            icon_url=data.get("icon_url") or "",
            thumbnail_media_url=data.get("thumbnail_media_url") or "",
            thumbnail_media_poster_url=data.get("thumbnail_media_poster_url") or "",
            standard_media_url=data.get("standard_media_url") or "",
            standard_media_poster_url=data.get("standard_media_poster_url") or "",
            image_sequence=_load_mapping(data.get("image_sequence")),
            creator_slug=data.get("creator_slug") or "",
            is_web_sourced=bool(data.get("is_web_sourced")),
            is_mirrored=bool(data.get("is_mirrored")),
        )

    def to_row(self) -> Tuple[Any, ...]:
        """Values in LENS_COLUMNS order, JSON-encoded where needed."""
        data = self.to_dict()
        data["image_sequence"] = json.dumps(self.image_sequence or {})
        data["is_web_sourced"] = int(self.is_web_sourced)
        data["is_mirrored"] = int(self.is_mirrored)
        return tuple(data[column] for column in LENS_COLUMNS)

    @classmethod
    def from_row(cls, row: Any) -> "Lens":
        return cls.from_dict({column: row[column] for column in row.keys()})


@dataclass
class Unlock:
    """Activation payload for the lens with the same id."""

    lens_id: Optional[int] = None
    lens_url: str = ""
    signature: str = ""
    hint_id: str = ""
    additional_hint_ids: Dict[str, str] = field(default_factory=dict)
    is_web_sourced: bool = False
    is_mirrored: bool = False

    @property
    def is_complete(self) -> bool:
        return bool(self.lens_id and self.lens_url)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Unlock":
        return cls(
            lens_id=_to_int(data.get("lens_id")),
            lens_url=data.get("lens_url") or "",
            signature=data.get("signature") or "",
            hint_id=data.get("hint_id") or "",
            additional_hint_ids=_load_mapping(data.get("additional_hint_ids")),
            is_web_sourced=bool(data.get("is_web_sourced")),
            is_mirrored=bool(data.get("is_mirrored")),
        )

    def to_row(self) -> Tuple[Any, ...]:
        data = self.to_dict()
        data["additional_hint_ids"] = json.dumps(self.additional_hint_ids or {})
        data["is_web_sourced"] = int(self.is_web_sourced)
        data["is_mirrored"] = int(self.is_mirrored)
        return tuple(data[column] for column in UNLOCK_COLUMNS)

    @classmethod
    def from_row(cls, row: Any) -> "Unlock":
        return cls.from_dict({column: row[column] for column in row.keys()})


@dataclass
class User:
    """Creator identity."""

    creator_slug: str
    creator_display_name: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_lens(cls, lens: Lens) -> Optional["User"]:
        if not lens.creator_slug or not lens.creator_display_name:
            return None
        return cls(creator_slug=lens.creator_slug, creator_display_name=lens.creator_display_name)


@dataclass
class LensOnly:
    """Authoritative hash lookup result without unlock data."""

    lens: Lens


@dataclass
class LensWithUnlock:
    """Authoritative hash lookup result carrying the unlock payload too."""

    lens: Lens
    unlock: Unlock


RemoteRecord = Union[LensOnly, LensWithUnlock]

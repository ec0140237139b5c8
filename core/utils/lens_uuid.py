"""Content hash (lens uuid) helpers.

[HASH] A lens uuid is 32 hexadecimal characters. It shows up bare, dashed
(8-4-4-4-12), as a ``uuid=`` query parameter of a deeplink, or as a path
segment of a lens page URL.
"""

import re
from typing import Optional
from urllib.parse import parse_qs, urlparse

_HEX32 = re.compile(r"^[0-9a-f]{32}$")


def _normalize(candidate: str) -> str:
    value = candidate.strip().lower().replace("-", "")
    return value if _HEX32.match(value) else ""


def parse_lens_uuid(value: Optional[str]) -> str:
    """
    Extract a lens uuid from a raw hash, a deeplink, or a lens URL.

    Returns:
        Lowercase 32-char hex string, or "" if nothing parses
    """
    if not value or not isinstance(value, str):
        return ""

    value = value.strip()
    uuid = _normalize(value)
    if uuid:
        return uuid

    if "://" not in value:
        return ""

    parsed = urlparse(value)
    for candidate in parse_qs(parsed.query).get("uuid", []):
        uuid = _normalize(candidate)
        if uuid:
            return uuid

    for segment in reversed(parsed.path.split("/")):
        uuid = _normalize(segment)
        if uuid:
            return uuid

    return ""


def is_lens_uuid(value: Optional[str]) -> bool:
    return bool(parse_lens_uuid(value))

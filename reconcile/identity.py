"""Stable identifiers for scraped records.

An id comes from, in order of preference:

1. an explicit identifier field on the record (``id``, ``uuid``, ...) or its slug
2. the LAST UUID-shaped token in the record URL
3. the token following a known product path marker (``/library/product/<token>``)
4. an FNV-1a hash of the normalized URL, prefixed with ``u_``

The "last UUID wins" rule exists because some producer URLs embed a
workspace UUID before the product UUID. It is a narrow heuristic for that
URL shape, kept because the product UUID is always the final one there.
"""

import re
from typing import Any, Mapping, Optional
from urllib.parse import urlsplit, urlunsplit

from reconcile.config import FIELD_ALIASES, HASH_ID_PREFIX, PRODUCT_PATH_MARKERS
from reconcile.models import pick_value

__all__ = [
    "UUID_RE",
    "extract_id",
    "extract_last_uuid",
    "path_token",
    "normalize_url",
    "fnv1a_32",
    "hashed_url_id",
    "storefront_link_id",
    "is_hashed_id",
]

UUID_RE = re.compile(
    r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
)

_FNV_OFFSET = 0x811C9DC5
_FNV_PRIME = 0x01000193


def fnv1a_32(text: str) -> str:
    """32-bit FNV-1a hash of ``text`` as 8 lower-case hex digits."""
    h = _FNV_OFFSET
    for byte in text.encode("utf-8"):
        h ^= byte
        h = (h * _FNV_PRIME) & 0xFFFFFFFF
    return f"{h:08x}"


def normalize_url(url: Optional[str]) -> str:
    """Strip whitespace, query string and fragment; lower-case scheme and host."""
    if not url:
        return ""
    url = str(url).strip()
    if not url:
        return ""
    parts = urlsplit(url)
    if parts.scheme or parts.netloc:
        return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path, "", ""))
    return parts.path


def extract_last_uuid(text: Optional[str]) -> Optional[str]:
    """Return the last UUID-shaped substring of ``text``, lower-cased."""
    matches = UUID_RE.findall(str(text or ""))
    if not matches:
        return None
    return matches[-1].lower()


def path_token(url: Optional[str]) -> Optional[str]:
    """Token after the last known product path marker, lower-cased."""
    path = urlsplit(normalize_url(url)).path
    for marker in PRODUCT_PATH_MARKERS:
        idx = path.lower().rfind(marker)
        if idx == -1:
            continue
        token = path[idx + len(marker):].split("/")[0].strip()
        if token:
            return token.lower()
    return None


def hashed_url_id(url: str) -> str:
    return HASH_ID_PREFIX + fnv1a_32(normalize_url(url))


def is_hashed_id(value: Optional[str]) -> bool:
    """True for ids produced by :func:`hashed_url_id`."""
    return bool(value) and bool(re.fullmatch(re.escape(HASH_ID_PREFIX) + r"[0-9a-f]{8}", value))


def extract_id(raw: Mapping[str, Any]) -> Optional[str]:
    """Derive a stable identifier for a raw source record.

    Returns None only when the record carries neither an explicit id nor a URL.
    """
    explicit = pick_value(raw, FIELD_ALIASES["source_id"])
    if explicit is None:
        explicit = pick_value(raw, FIELD_ALIASES["slug"])
    if explicit is not None:
        return str(explicit).strip().lower()

    url = pick_value(raw, FIELD_ALIASES["url"])
    if url is None or not normalize_url(url):
        return None
    url = str(url)

    uuid = extract_last_uuid(url)
    if uuid:
        return uuid

    token = path_token(url)
    if token:
        return token

    return hashed_url_id(url)


def storefront_link_id(url: Optional[str]) -> str:
    """Product id of a storefront link (``https://payhip.com/b/AbC12``).

    Storefront ids are case sensitive, so the token is returned as-is.
    """
    path = urlsplit(normalize_url(url)).path
    if "/b/" not in path:
        return ""
    return path.split("/b/", 1)[1].split("/")[0].strip()

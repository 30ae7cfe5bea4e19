"""Alias resolution for loosely structured producer records.

Scrapers and manual exports name the same thing differently (``title`` or
``name``, ``url`` or ``link`` or ``productUrl``...). This module turns those
raw dicts into typed :class:`SourceRecord` / :class:`LinkRef` values before
any matching or merging happens.
"""

from typing import Any, Dict, List, Mapping, Optional

from reconcile.config import (
    CATALOG_WRAPPER_KEYS,
    COVERS_URL_PREFIX,
    DEFAULT_SOURCE,
    FIELD_ALIASES,
    LINK_ALIASES,
    LINK_WRAPPER_KEYS,
)
from reconcile.identity import extract_id, normalize_url, storefront_link_id
from reconcile.logging_config import get_logger
from reconcile.matcher import TitleIndex
from reconcile.models import (
    PRODUCT_FORMATS,
    LinkRef,
    Product,
    SourceRecord,
    parse_number,
    pick_value,
)
from reconcile.normalize import clean_description, normalize_title, slugify

__all__ = [
    "RecordSkipped",
    "extract_records",
    "to_source_record",
    "source_to_product",
    "infer_format",
    "cover_reference",
    "coerce_links",
    "build_link_index",
]

logger = get_logger("sources")

# Keys consumed by alias resolution; anything else is kept as extra data
_KNOWN_KEYS = {key for aliases in FIELD_ALIASES.values() for key in aliases}

# Raw keys that only make sense inside the producer and are not carried over
_DROPPED_KEYS = {"meta", "details", "assets", "html", "raw"}

# Keyword -> format, checked in order
_FORMAT_KEYWORDS = (
    ("prompt", "prompt-pack"),
    ("template", "template"),
    ("workbook", "workbook"),
    ("checklist", "checklist"),
    ("audio", "audio"),
    ("video", "video"),
    ("guide", "guide"),
    ("ebook", "book"),
    ("book", "book"),
)


class RecordSkipped(Exception):
    """Raised when a raw record has no usable title; the caller counts and skips it."""


def extract_records(data: Any, wrapper_keys=CATALOG_WRAPPER_KEYS) -> Optional[List[Any]]:
    """Return the record list of a JSON document, or None if it has none.

    Accepts a bare array or an object wrapping one under one of ``wrapper_keys``.
    """
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in wrapper_keys:
            if isinstance(data.get(key), list):
                return data[key]
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return " ".join(str(v) for v in value).strip()
    return str(value).strip()


def infer_format(raw: Mapping[str, Any]) -> str:
    """Guess the content kind from explicit type fields and the description's first line."""
    explicit = _text(pick_value(raw, FIELD_ALIASES["format"])).lower()
    if explicit in PRODUCT_FORMATS:
        return explicit

    meta = raw.get("meta")
    if not explicit and isinstance(meta, dict):
        explicit = _text(meta.get("contentType")).lower()

    description = _text(
        pick_value(raw, FIELD_ALIASES["short_description"] + FIELD_ALIASES["description"])
    )
    first_line = description.replace("\r", "").split("\n")[0].lower()

    haystack = f"{explicit} {first_line}"
    for keyword, fmt in _FORMAT_KEYWORDS:
        if keyword in haystack:
            return fmt
    return ""


def cover_reference(value: Any, prefix: str = COVERS_URL_PREFIX) -> str:
    """Catalog cover path for a raw cover value: ``<prefix><basename>``."""
    text = _text(value)
    if not text:
        return ""
    basename = text.replace("\\", "/").split("?")[0].split("#")[0].rstrip("/").split("/")[-1]
    if not basename:
        return ""
    return prefix + basename


def to_source_record(raw: Any, source_tag: str = DEFAULT_SOURCE) -> SourceRecord:
    """Resolve aliases of one raw producer record.

    Raises:
        RecordSkipped: if the record is not an object or has no usable title
    """
    if not isinstance(raw, dict):
        raise RecordSkipped(f"record is not an object: {type(raw).__name__}")

    title = " ".join(_text(pick_value(raw, FIELD_ALIASES["title"])).split())
    if not normalize_title(title):
        raise RecordSkipped("record has no usable title")

    url = _text(pick_value(raw, FIELD_ALIASES["url"]))
    description = clean_description(_text(pick_value(raw, FIELD_ALIASES["description"])))
    short = clean_description(_text(pick_value(raw, FIELD_ALIASES["short_description"])))

    link_url = _text(pick_value(raw, FIELD_ALIASES["link_url"]))
    link_id = _text(pick_value(raw, FIELD_ALIASES["link_id"])) or storefront_link_id(link_url)

    extra: Dict[str, Any] = {
        key: value
        for key, value in raw.items()
        if key not in _KNOWN_KEYS and key not in _DROPPED_KEYS
    }

    return SourceRecord(
        title=title,
        source_id=extract_id(raw),
        url=normalize_url(url),
        slug=_text(pick_value(raw, FIELD_ALIASES["slug"])),
        description=description or short,
        short_description=short,
        category=_text(pick_value(raw, FIELD_ALIASES["category"])),
        subcategory=_text(pick_value(raw, FIELD_ALIASES["subcategory"])),
        format=infer_format(raw),
        price=parse_number(pick_value(raw, FIELD_ALIASES["price"])),
        compare_at=parse_number(pick_value(raw, FIELD_ALIASES["compare_at"])),
        cover=cover_reference(pick_value(raw, FIELD_ALIASES["cover"])),
        external_link_id=link_id,
        external_link_url=link_url,
        source=_text(pick_value(raw, FIELD_ALIASES["source"])) or source_tag,
        extra=extra,
    )


def source_to_product(record: SourceRecord, product_id: Optional[str] = None) -> Product:
    """Build the incoming Product for a source record.

    The id falls back to the extracted source id, then to a slug of the title.
    """
    extra = dict(record.extra)
    if record.url:
        extra.setdefault("sourceUrl", record.url)
    return Product(
        id=product_id or record.source_id or record.slug or slugify(record.title),
        title=record.title,
        description=record.description,
        short_description=record.short_description,
        category=record.category,
        subcategory=record.subcategory,
        format=record.format,
        price=record.price,
        compare_at=record.compare_at,
        cover=record.cover,
        external_link_id=record.external_link_id,
        external_link_url=record.external_link_url,
        source=record.source,
        extra=extra,
    )


# =============================================================================
# Link references
# =============================================================================

def _pick_link(raw: Mapping[str, Any], name: str) -> str:
    return _text(pick_value(raw, LINK_ALIASES[name]))


def coerce_links(data: Any) -> Optional[List[LinkRef]]:
    """Turn a link-reference document into LinkRef rows.

    Accepts an array of rows, an object wrapping one under a known key or as
    its only array value, or a flat ``{title: url}`` map. Returns None when
    the document has none of these shapes. Rows without a title are dropped.
    """
    rows: Optional[List[Any]] = None
    if isinstance(data, list):
        rows = data
    elif isinstance(data, dict):
        rows = extract_records(data, LINK_WRAPPER_KEYS)
        if rows is None:
            arrays = [v for v in data.values() if isinstance(v, list)]
            if len(arrays) == 1:
                rows = arrays[0]
        if rows is None and data and all(isinstance(v, str) for v in data.values()):
            return [
                LinkRef(title=str(title).strip(), url=url.strip(), link_id=storefront_link_id(url))
                for title, url in data.items()
                if str(title).strip()
            ]
    if rows is None:
        return None

    links: List[LinkRef] = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        title = _pick_link(row, "title")
        if not title:
            continue
        url = _pick_link(row, "url")
        link_id = _pick_link(row, "link_id") or storefront_link_id(url)
        links.append(LinkRef(title=title, url=url, link_id=link_id))
    return links


def build_link_index(links: List[LinkRef]) -> TitleIndex[LinkRef]:
    """Index link rows by normalized title; the first row for a title wins."""
    index: TitleIndex[LinkRef] = TitleIndex()
    for link in links:
        if not index.add_title(link.title, link):
            logger.debug(f"Duplicate or empty link title ignored: {link.title!r}")
    return index


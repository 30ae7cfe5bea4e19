"""Data models for catalog records."""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

from reconcile.config import CATALOG_FIELD_KEYS
from reconcile.logging_config import get_logger

__all__ = [
    "PRODUCT_FORMATS",
    "Number",
    "Product",
    "SourceRecord",
    "LinkRef",
    "MergeResult",
    "ReconcileStats",
    "Catalog",
    "LinkStats",
    "CoverStats",
    "pick_value",
    "parse_number",
    "is_blank",
]

# Enumerated content kinds a product can be
PRODUCT_FORMATS = (
    "book",
    "template",
    "workbook",
    "checklist",
    "prompt-pack",
    "audio",
    "video",
    "guide",
    "other",
)

Number = Union[int, float]


def is_blank(value: Any) -> bool:
    """True for None, empty/whitespace strings and empty containers."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict, tuple)):
        return len(value) == 0
    return False


def pick_value(raw: Mapping[str, Any], keys: Iterable[str]) -> Any:
    """Return the first non-blank value among ``keys`` in ``raw`` (or None)."""
    for key in keys:
        value = raw.get(key)
        if not is_blank(value):
            return value
    return None


def parse_number(value: Any) -> Optional[Number]:
    """Parse a price-like value.

    Ints and floats pass through, numeric strings ("10", "$9.99") are parsed.
    Booleans, blanks, unparseable text and non-finite values (NaN, Infinity)
    give None; JSON has no representation for the latter.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip().lstrip("$€£").replace(",", "").strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        if not math.isfinite(number):
            return None
        return int(number) if number.is_integer() else number
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _warn_on_conflict(raw: Mapping[str, Any], key: str, aliases: List[str], kept: Any) -> None:
    # Only the first non-blank alias is kept; the rest are consumed
    ignored = {
        alias: raw[alias]
        for alias in aliases
        if not is_blank(raw.get(alias)) and _text(raw[alias]) != _text(kept)
    }
    if ignored:
        get_logger("models").warning(
            "Catalog entry %s: %s=%r kept, ignoring %s",
            _text(raw.get("id")) or "?",
            key,
            kept,
            ", ".join(f"{alias}={value!r}" for alias, value in ignored.items()),
        )


@dataclass
class Product:
    """A single catalog entry.

    Field names are snake_case here; the catalog file uses the camelCase
    keys listed in CATALOG_FIELD_KEYS. Keys the model does not know about
    are carried in ``extra`` and written back untouched.
    """

    id: str
    title: str
    description: str = ""
    short_description: str = ""
    category: str = ""
    subcategory: str = ""
    format: str = ""
    price: Optional[Number] = None
    compare_at: Optional[Number] = None
    cover: str = ""
    external_link_id: str = ""
    external_link_url: str = ""
    source: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    # catalog key -> attribute name
    KEY_TO_ATTR = {
        "id": "id",
        "title": "title",
        "description": "description",
        "shortDescription": "short_description",
        "category": "category",
        "subcategory": "subcategory",
        "format": "format",
        "price": "price",
        "compareAt": "compare_at",
        "cover": "cover",
        "externalLinkId": "external_link_id",
        "externalLinkUrl": "external_link_url",
        "source": "source",
    }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Product":
        """Build a Product from a catalog entry, migrating legacy key names."""
        values: Dict[str, Any] = {}
        consumed = set()
        for key, aliases in CATALOG_FIELD_KEYS.items():
            consumed.update(aliases)
            value = pick_value(raw, aliases)
            _warn_on_conflict(raw, key, aliases, value)
            attr = cls.KEY_TO_ATTR[key]
            if attr in ("price", "compare_at"):
                values[attr] = parse_number(value)
            else:
                values[attr] = _text(value)

        extra = {k: v for k, v in raw.items() if k not in consumed}
        return cls(extra=extra, **values)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with canonical keys first, then extras in sorted order."""
        data: Dict[str, Any] = {
            key: getattr(self, attr) for key, attr in self.KEY_TO_ATTR.items()
        }
        for key in sorted(self.extra):
            if key not in data:
                data[key] = self.extra[key]
        return data


@dataclass
class SourceRecord:
    """A scraped record after alias resolution, before matching.

    ``source_id`` is the identifier extracted from the raw record (explicit
    id, URL token or URL hash); it may be None when the producer gave neither.
    """

    title: str
    source_id: Optional[str] = None
    url: str = ""
    slug: str = ""
    description: str = ""
    short_description: str = ""
    category: str = ""
    subcategory: str = ""
    format: str = ""
    price: Optional[Number] = None
    compare_at: Optional[Number] = None
    cover: str = ""
    external_link_id: str = ""
    external_link_url: str = ""
    source: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LinkRef:
    """One row of a link-reference file: a title and its storefront link."""

    title: str
    url: str = ""
    link_id: str = ""


@dataclass
class MergeResult:
    """Outcome of merging one incoming record into the catalog."""

    record: Product
    changed: bool
    changed_fields: List[str] = field(default_factory=list)


@dataclass
class ReconcileStats:
    """Counters reported at the end of a pass."""

    total: int = 0
    added: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "added": self.added,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
        }

    def summary_lines(self) -> List[str]:
        return [
            f"Source records: {self.total}",
            f"Added: {self.added}",
            f"Updated: {self.updated}",
            f"Unchanged: {self.unchanged}",
            f"Skipped: {self.skipped}",
        ]


@dataclass
class Catalog:
    """The product list of a catalog file plus the document shape it came in.

    ``wrapper`` holds the surrounding object when the file was
    ``{"products": [...]}`` (or ``items``) so the same shape is written back.
    """

    products: List[Product] = field(default_factory=list)
    wrapper: Optional[Dict[str, Any]] = None
    wrapper_key: Optional[str] = None

    def __len__(self) -> int:
        return len(self.products)

    def ids(self) -> Set[str]:
        return {p.id for p in self.products if p.id}

    def unique_id(self, base: str, taken: Optional[Set[str]] = None) -> str:
        """``base`` if unused, otherwise ``base-2``, ``base-3``..."""
        taken = self.ids() if taken is None else taken
        if base not in taken:
            return base
        n = 2
        while f"{base}-{n}" in taken:
            n += 1
        return f"{base}-{n}"

    def to_document(self) -> Any:
        items = [p.to_dict() for p in self.products]
        if self.wrapper is None or self.wrapper_key is None:
            return items
        document = dict(self.wrapper)
        document[self.wrapper_key] = items
        return document


@dataclass
class LinkStats:
    """Counters of a link application pass."""

    products: int = 0
    already_linked: int = 0
    updated: int = 0
    unmatched: int = 0
    with_valid_url: int = 0

    def summary_lines(self) -> List[str]:
        return [
            f"Products: {self.products}",
            f"Already linked: {self.already_linked}",
            f"Links updated: {self.updated}",
            f"Without title match: {self.unmatched}",
            f"With valid link URL: {self.with_valid_url}",
        ]


@dataclass
class CoverStats:
    """Counters of a cover resolution pass; ``missing`` rows are (id, title, cover)."""

    checked: int = 0
    fixed: int = 0
    missing: List[Tuple[str, str, str]] = field(default_factory=list)

    def summary_lines(self) -> List[str]:
        return [
            f"Covers checked: {self.checked}",
            f"Cover paths fixed: {self.fixed}",
            f"Missing covers: {len(self.missing)}",
        ]

"""Field-by-field merge of an incoming record into a catalog record.

Policy:
    - ``id`` and ``title`` never change once set.
    - Link fields are assigned at most once: only when currently empty.
    - Content fields are filled only when currently empty, so manual edits win.
    - Numeric fields are filled only when the current value is null or not finite.
    - Unknown extra keys are added when missing, never replaced.

Only fills ever happen, which makes a repeated merge of the same input a no-op.
"""

import copy
import math
from dataclasses import replace
from typing import Any, List, Optional

from reconcile.config import COVERS_URL_PREFIX, DEFAULT_CATEGORY, DEFAULT_FORMAT
from reconcile.models import PRODUCT_FORMATS, MergeResult, Number, Product, is_blank
from reconcile.normalize import short_description

__all__ = [
    "LINK_FIELDS",
    "CONTENT_FIELDS",
    "NUMERIC_FIELDS",
    "merge_products",
    "apply_defaults",
    "is_missing_number",
]

LINK_FIELDS = ("external_link_id", "external_link_url")
CONTENT_FIELDS = (
    "description",
    "short_description",
    "category",
    "subcategory",
    "format",
    "cover",
    "source",
)
NUMERIC_FIELDS = ("price", "compare_at")


def is_missing_number(value: Optional[Number]) -> bool:
    if value is None or isinstance(value, bool):
        return True
    if isinstance(value, float) and not math.isfinite(value):
        return True
    return False


def _is_empty(field_name: str, value: Any) -> bool:
    if field_name == "cover" and isinstance(value, str):
        return not value.strip() or value.strip() == COVERS_URL_PREFIX
    return is_blank(value)


def apply_defaults(product: Product, default_price: Optional[Number] = None) -> Product:
    """Return a copy of ``product`` with defaults for missing classification fields."""
    updated = replace(product, extra=copy.deepcopy(product.extra))
    if is_blank(updated.category):
        updated.category = DEFAULT_CATEGORY
    if updated.format not in PRODUCT_FORMATS:
        updated.format = DEFAULT_FORMAT
    if is_blank(updated.short_description) and updated.description:
        updated.short_description = short_description(updated.description)
    if is_missing_number(updated.price):
        updated.price = default_price
    if is_missing_number(updated.compare_at):
        updated.compare_at = None
    return updated


def merge_products(
    existing: Optional[Product],
    incoming: Product,
    default_price: Optional[Number] = None,
) -> MergeResult:
    """Merge ``incoming`` into ``existing`` without mutating either.

    With no existing record the incoming one (plus defaults) becomes the new
    record and ``changed`` is True. Otherwise ``changed`` reports whether any
    field ended up different.
    """
    if existing is None:
        return MergeResult(
            record=apply_defaults(incoming, default_price),
            changed=True,
            changed_fields=["*"],
        )

    merged = replace(existing, extra=copy.deepcopy(existing.extra))
    changed_fields: List[str] = []

    for name in LINK_FIELDS + CONTENT_FIELDS:
        new_value = getattr(incoming, name)
        if _is_empty(name, getattr(merged, name)) and not _is_empty(name, new_value):
            setattr(merged, name, new_value)
            changed_fields.append(name)

    for name in NUMERIC_FIELDS:
        new_value = getattr(incoming, name)
        if is_missing_number(getattr(merged, name)) and not is_missing_number(new_value):
            setattr(merged, name, new_value)
            changed_fields.append(name)

    for key, value in incoming.extra.items():
        if key not in merged.extra and not is_blank(value):
            merged.extra[key] = copy.deepcopy(value)
            changed_fields.append(key)

    return MergeResult(record=merged, changed=bool(changed_fields), changed_fields=changed_fields)

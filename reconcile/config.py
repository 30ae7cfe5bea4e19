"""Configuration and constants for catalog reconciliation."""

import math
import os
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from dotenv import load_dotenv

__all__ = [
    "PROJECT_ROOT",
    "CATALOG_PATH",
    "COVERS_DIR",
    "COVERS_URL_PREFIX",
    "DEFAULT_PRICE",
    "LOG_DIR",
    "MIN_FUZZY_KEY_LENGTH",
    "SHORT_DESCRIPTION_MAX",
    "DEFAULT_CATEGORY",
    "DEFAULT_FORMAT",
    "DEFAULT_SOURCE",
    "FIELD_ALIASES",
    "CATALOG_FIELD_KEYS",
    "LINK_ALIASES",
    "CATALOG_WRAPPER_KEYS",
    "LINK_WRAPPER_KEYS",
    "PRODUCT_PATH_MARKERS",
    "HASH_ID_PREFIX",
    "IMAGE_EXTENSIONS",
    "BACKUP_TIMESTAMP_FORMAT",
    "get_aliases",
]

PROJECT_ROOT = Path(__file__).parent.parent

# Load environment variables from .env file at the project root
load_dotenv(dotenv_path=PROJECT_ROOT / ".env")


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


# Paths (allow env overrides)
CATALOG_PATH = os.getenv("RECONCILE_CATALOG_PATH", "products.json")
COVERS_DIR = os.getenv("RECONCILE_COVERS_DIR", "covers")
COVERS_URL_PREFIX = os.getenv("RECONCILE_COVERS_URL_PREFIX", "/covers/")
LOG_DIR = Path(os.getenv("RECONCILE_LOG_DIR", str(PROJECT_ROOT / "logs")))

# Price applied to new records without one (None keeps price null)
DEFAULT_PRICE = _env_float("RECONCILE_DEFAULT_PRICE")

# Keys shorter than this never take part in containment matching
MIN_FUZZY_KEY_LENGTH = 8

SHORT_DESCRIPTION_MAX = 220

DEFAULT_CATEGORY = "Uncategorized"
DEFAULT_FORMAT = "other"
DEFAULT_SOURCE = "entrepedia"

# =============================================================================
# Field aliases
# =============================================================================
# Each logical field maps to the ordered list of raw keys producers use for it.
# The first non-empty value wins.

FIELD_ALIASES: Dict[str, List[str]] = {
    "title": ["title", "name"],
    "url": ["url", "link", "productUrl", "sourceUrl", "href", "permalink"],
    "source_id": ["id", "uuid", "productId", "product_id", "_id", "entrepediaId"],
    "slug": ["slug"],
    "description": ["description", "longDescription"],
    "short_description": ["shortDescription", "short_description"],
    "category": ["category", "mainCategory"],
    "subcategory": ["subcategory", "subCategory"],
    "format": ["format", "contentType", "type", "inferredType", "productType"],
    "price": ["price"],
    "compare_at": ["compareAt", "oldPrice", "compare_at"],
    "cover": [
        "cover",
        "coverLocalPath",
        "coverPath",
        "coverLocal",
        "coverFile",
        "coverFilename",
        "coverUrl",
        "image",
        "imageUrl",
        "thumbnail",
    ],
    "link_id": ["externalLinkId", "payhipId"],
    "link_url": ["externalLinkUrl", "payhipUrl"],
    "source": ["source"],
}

# Rows of a link-reference file (title -> storefront link)
LINK_ALIASES: Dict[str, List[str]] = {
    "title": ["title", "name"],
    "url": ["url", "payhipUrl", "externalLinkUrl", "link"],
    "link_id": ["payhipId", "externalLinkId", "id"],
}

CATALOG_WRAPPER_KEYS: Tuple[str, ...] = ("products", "items")
LINK_WRAPPER_KEYS: Tuple[str, ...] = ("links", "items", "products", "data", "rows", "results")

# Path segments followed by a product token, e.g. /library/product/<token>
PRODUCT_PATH_MARKERS: Tuple[str, ...] = ("/library/product/", "/b/")

# Marks ids derived from a URL hash rather than from the source itself
HASH_ID_PREFIX = "u_"

IMAGE_EXTENSIONS: Tuple[str, ...] = (".jpg", ".jpeg", ".png", ".webp")

BACKUP_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"


def get_aliases(field_name: str) -> List[str]:
    """Return the raw-key aliases for a logical field (empty list if unknown)."""
    return FIELD_ALIASES.get(field_name, [])


# Catalog JSON key -> accepted keys when reading an existing catalog entry.
# Legacy keys are migrated to the first name on write.
CATALOG_FIELD_KEYS: Dict[str, List[str]] = {
    "id": ["id"],
    "title": ["title", "name"],
    "description": ["description"],
    "shortDescription": ["shortDescription"],
    "category": ["category", "mainCategory"],
    "subcategory": ["subcategory", "subCategory"],
    "format": ["format"],
    "price": ["price"],
    "compareAt": ["compareAt", "oldPrice"],
    "cover": ["cover"],
    "externalLinkId": ["externalLinkId", "payhipId"],
    "externalLinkUrl": ["externalLinkUrl", "payhipUrl"],
    "source": ["source"],
}

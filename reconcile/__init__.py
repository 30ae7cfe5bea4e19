"""Product catalog reconciliation package."""

__version__ = "0.1.0"

# Re-export main components for convenient imports
from reconcile.config import CATALOG_PATH, MIN_FUZZY_KEY_LENGTH
from reconcile.identity import extract_id, extract_last_uuid
from reconcile.matcher import TitleIndex, match_key
from reconcile.merger import merge_products
from reconcile.models import Catalog, LinkRef, MergeResult, Product, ReconcileStats, SourceRecord
from reconcile.normalize import normalize_title
from reconcile.storage import (
    FatalInputError,
    WriteFailureError,
    backup_catalog,
    load_catalog,
    write_catalog,
)
from reconcile.workflows import apply_links, reconcile_records

__all__ = [
    # Version
    "__version__",
    # Config
    "CATALOG_PATH",
    "MIN_FUZZY_KEY_LENGTH",
    # Models
    "Catalog",
    "LinkRef",
    "MergeResult",
    "Product",
    "ReconcileStats",
    "SourceRecord",
    # Core functions
    "normalize_title",
    "extract_id",
    "extract_last_uuid",
    "TitleIndex",
    "match_key",
    "merge_products",
    "load_catalog",
    "backup_catalog",
    "write_catalog",
    "reconcile_records",
    "apply_links",
    # Errors
    "FatalInputError",
    "WriteFailureError",
]

"""Catalog reports and CSV export."""

import csv
import os
from typing import Any, Dict, Iterable, List, Sequence, Tuple

import pandas as pd

from reconcile.identity import extract_id, extract_last_uuid, path_token
from reconcile.models import Catalog, Product

__all__ = [
    "catalog_frame",
    "catalog_stats",
    "format_counts",
    "write_format_counts",
    "write_missing_covers",
    "find_missing_urls",
    "export_catalog_to_csv",
    "CSV_FIELDS",
]

CSV_FIELDS = [
    "id",
    "title",
    "format",
    "category",
    "subcategory",
    "price",
    "compareAt",
    "cover",
    "externalLinkId",
    "externalLinkUrl",
    "source",
    "shortDescription",
]


def catalog_frame(catalog: Catalog) -> pd.DataFrame:
    """One row per product with the canonical catalog columns."""
    rows = [_csv_row(p) for p in catalog.products]
    return pd.DataFrame(rows, columns=CSV_FIELDS)


def catalog_stats(catalog: Catalog) -> Dict[str, Any]:
    """Headline numbers for ``--stats``."""
    df = catalog_frame(catalog)
    if df.empty:
        return {
            "total": 0,
            "with_link": 0,
            "with_cover": 0,
            "without_price": 0,
            "by_format": {},
            "by_category": {},
        }

    prices = pd.to_numeric(df["price"], errors="coerce")
    return {
        "total": int(len(df)),
        "with_link": int(df["externalLinkUrl"].fillna("").str.startswith("http").sum()),
        "with_cover": int((df["cover"].fillna("").str.strip() != "").sum()),
        "without_price": int(prices.isna().sum()),
        "by_format": {k: int(v) for k, v in df["format"].replace("", "(missing)").value_counts().items()},
        "by_category": {
            k: int(v) for k, v in df["category"].replace("", "(missing)").value_counts().items()
        },
    }


def format_counts(records: Iterable[Dict[str, Any]], field: str = "type") -> pd.DataFrame:
    """Count raw records per value of ``field`` (empty values as "(missing)")."""
    values = [str(r.get(field) or "").strip() or "(missing)" for r in records if isinstance(r, dict)]
    counts = pd.Series(values, dtype="object").value_counts()
    return pd.DataFrame({field: counts.index, "count": counts.values})


def write_format_counts(df: pd.DataFrame, path: str) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    df.to_csv(path, index=False, quoting=csv.QUOTE_NONNUMERIC)


def write_missing_covers(missing: Sequence[Tuple[str, str, str]], path: str) -> int:
    """Write ``id<TAB>title<TAB>cover`` lines. Returns the number of lines."""
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        for product_id, title, cover in missing:
            f.write(f"{product_id}\t{title}\t{cover}\n")
    return len(missing)


def _url_key(url: str) -> str:
    return extract_last_uuid(url) or path_token(url) or ""


def find_missing_urls(url_lines: Iterable[str], scraped: Iterable[Any]) -> List[str]:
    """URLs from a URL list whose product id has no record in ``scraped``.

    Blank lines and ``#`` comments are ignored. URLs without a recognizable
    product id are skipped. The result is sorted and de-duplicated by id.
    """
    wanted: Dict[str, str] = {}
    for line in url_lines:
        url = line.strip()
        if not url or url.startswith("#"):
            continue
        key = _url_key(url)
        if key and key not in wanted:
            wanted[key] = url

    seen = {extract_id(r) for r in scraped if isinstance(r, dict)}
    return sorted(url for key, url in wanted.items() if key not in seen)


def export_catalog_to_csv(catalog: Catalog, csv_path: str) -> int:
    """Export the canonical catalog columns to CSV. Returns the row count."""
    if not catalog.products:
        print("No products to export.")
        return 0

    os.makedirs(os.path.dirname(csv_path) or ".", exist_ok=True)
    with open(csv_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDS, extrasaction="ignore")
        writer.writeheader()
        for product in catalog.products:
            writer.writerow(_csv_row(product))

    print(f"Exported {len(catalog.products)} products to {csv_path}")
    return len(catalog.products)


def _csv_row(product: Product) -> Dict[str, Any]:
    row = product.to_dict()
    return {key: "" if row.get(key) is None else row.get(key) for key in CSV_FIELDS}

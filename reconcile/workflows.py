"""Batch passes over a loaded catalog.

Each pass takes the in-memory :class:`Catalog`, updates it in place and
returns its counters. Nothing here reads or writes files; the CLI loads
inputs once, runs the passes in order and writes the catalog once.
"""

import logging
import re
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from reconcile.config import DEFAULT_SOURCE
from reconcile.covers import CoverIndex
from reconcile.logging_config import log_pass_summary, log_reconcile_event
from reconcile.matcher import TitleIndex
from reconcile.merger import merge_products
from reconcile.models import (
    Catalog,
    CoverStats,
    LinkRef,
    LinkStats,
    Number,
    Product,
    ReconcileStats,
    SourceRecord,
)
from reconcile.normalize import normalize_title, slugify, title_variants
from reconcile.sources import RecordSkipped, build_link_index, source_to_product, to_source_record

__all__ = [
    "build_title_index",
    "find_link",
    "reconcile_records",
    "apply_links",
    "fix_covers",
    "strip_zip_pass",
    "set_prices",
]


_ZIP_BLOCK_RE = re.compile(r"\n[ \t]*\nZIP[ \t]*\n[ \t]*\n")


def build_title_index(products: Sequence[Product]) -> TitleIndex[int]:
    """Normalized title -> position in ``products``; the first product per key wins."""
    index: TitleIndex[int] = TitleIndex()
    for position, product in enumerate(products):
        index.add_title(product.title, position)
    return index


def find_link(title: str, link_index: TitleIndex[LinkRef]) -> Optional[LinkRef]:
    """Link row for a title: exact lookup of each title variant, then fuzzy match."""
    for key in title_variants(title):
        hit = link_index.get(key)
        if hit is not None:
            return hit
    return link_index.match(normalize_title(title))


def _attach_link(record: SourceRecord, link_index: Optional[TitleIndex[LinkRef]]) -> None:
    if link_index is None or (record.external_link_url and record.external_link_id):
        return
    link = find_link(record.title, link_index)
    if link is None:
        return
    if not record.external_link_url:
        record.external_link_url = link.url
    if not record.external_link_id:
        record.external_link_id = link.link_id


def _attach_cover(record: SourceRecord, cover_index: Optional[CoverIndex]) -> None:
    if cover_index is None:
        return
    filename = cover_index.resolve(record.cover, record.title)
    if filename:
        record.cover = cover_index.reference(filename)


def reconcile_records(
    catalog: Catalog,
    raw_records: Iterable[Any],
    links: Optional[List[LinkRef]] = None,
    cover_index: Optional[CoverIndex] = None,
    default_price: Optional[Number] = None,
    source_tag: str = DEFAULT_SOURCE,
    stats: Optional[ReconcileStats] = None,
) -> ReconcileStats:
    """Merge raw producer records into ``catalog``.

    Each record is resolved to a SourceRecord, matched against the catalog by
    extracted id and then by normalized title, and either merged into the
    matching product or appended as a new one. Records added earlier in the
    same pass are visible to later ones, so duplicates inside one source
    collapse into the first occurrence.

    Args:
        catalog: Catalog to update in place
        raw_records: Records as read from a source file
        links: Optional link-reference rows used to fill storefront links
        cover_index: Optional local cover index used to resolve cover paths
        default_price: Price for new products that come without one
        source_tag: Provenance tag for records that carry none
        stats: Counters to accumulate into (a new one by default)
    """
    stats = stats or ReconcileStats()
    link_index = build_link_index(links) if links else None

    title_index = build_title_index(catalog.products)
    by_id: Dict[str, int] = {}
    for position, product in enumerate(catalog.products):
        if product.id:
            by_id.setdefault(product.id, position)
    taken = set(by_id)

    for raw in raw_records:
        stats.total += 1
        try:
            record = to_source_record(raw, source_tag)
        except RecordSkipped as e:
            stats.skipped += 1
            log_reconcile_event(
                "record_skipped",
                {"message": f"Skipped source record #{stats.total}: {e}", "reason": str(e)},
                level=logging.WARNING,
            )
            continue

        _attach_link(record, link_index)
        _attach_cover(record, cover_index)

        key = normalize_title(record.title)
        position = by_id.get(record.source_id) if record.source_id else None
        if position is None:
            position = title_index.match(key)

        if position is None:
            base_id = record.source_id or slugify(record.title)
            if not base_id:
                stats.skipped += 1
                log_reconcile_event(
                    "record_skipped",
                    {"message": f"Skipped {record.title!r}: no usable id", "title": record.title},
                    level=logging.WARNING,
                )
                continue
            product_id = catalog.unique_id(base_id, taken)
            result = merge_products(None, source_to_product(record, product_id), default_price)
            catalog.products.append(result.record)
            position = len(catalog.products) - 1
            taken.add(product_id)
            by_id[product_id] = position
            stats.added += 1
            log_reconcile_event(
                "record_added",
                {"message": f"Added {record.title!r} as {product_id}", "id": product_id},
                level=logging.DEBUG,
            )
        else:
            existing = catalog.products[position]
            result = merge_products(existing, source_to_product(record, existing.id))
            if result.changed:
                catalog.products[position] = result.record
                stats.updated += 1
                log_reconcile_event(
                    "record_updated",
                    {
                        "message": f"Updated {existing.id}: {', '.join(result.changed_fields)}",
                        "id": existing.id,
                        "fields": result.changed_fields,
                    },
                    level=logging.DEBUG,
                )
            else:
                stats.unchanged += 1

        # Later records may match on this record's own id or title
        title_index.add(key, position)
        if record.source_id:
            by_id.setdefault(record.source_id, position)

    log_pass_summary("merge", stats.to_dict(), logger_name="workflows")
    return stats


def apply_links(
    catalog: Catalog,
    links: List[LinkRef],
    overwrite: bool = False,
) -> LinkStats:
    """Fill (or, with ``overwrite``, replace) storefront links by title.

    Without ``overwrite`` a populated link field is never touched. With it,
    this is the one automated pass allowed to change an existing link.
    """
    stats = LinkStats(products=len(catalog.products))
    link_index = build_link_index(links)

    for position, product in enumerate(catalog.products):
        if product.external_link_url or product.external_link_id:
            stats.already_linked += 1

        link = find_link(product.title, link_index)
        if link is None:
            stats.unmatched += 1
            continue

        new_url, new_id = link.url, link.link_id
        updated = replace(product)
        if overwrite:
            if new_url and updated.external_link_url != new_url:
                updated.external_link_url = new_url
            if new_id and updated.external_link_id != new_id:
                updated.external_link_id = new_id
        else:
            if new_url and not updated.external_link_url:
                updated.external_link_url = new_url
            if new_id and not updated.external_link_id:
                updated.external_link_id = new_id

        if updated != product:
            catalog.products[position] = updated
            stats.updated += 1
            log_reconcile_event(
                "link_applied",
                {
                    "message": f"Link for {product.id}: {updated.external_link_url}",
                    "id": product.id,
                    "previous_url": product.external_link_url,
                    "url": updated.external_link_url,
                },
                level=logging.DEBUG,
            )

    stats.with_valid_url = sum(
        1 for p in catalog.products if p.external_link_url.startswith("http")
    )
    log_pass_summary(
        "update_links" if overwrite else "apply_links",
        {"updated": stats.updated, "unmatched": stats.unmatched},
        logger_name="workflows",
    )
    return stats


def fix_covers(
    catalog: Catalog,
    cover_index: CoverIndex,
    formats: Optional[Sequence[str]] = None,
) -> CoverStats:
    """Point cover fields at files that exist in the cover index.

    Args:
        catalog: Catalog to update in place
        cover_index: Index of the local covers directory
        formats: Only check products of these formats (default: all)
    """
    stats = CoverStats()
    for position, product in enumerate(catalog.products):
        if formats and product.format not in formats:
            continue
        stats.checked += 1

        filename = cover_index.resolve(product.cover, product.title)
        if filename is None:
            stats.missing.append((product.id, " ".join(product.title.split()), product.cover))
            continue

        reference = cover_index.reference(filename)
        if reference != product.cover:
            catalog.products[position] = replace(product, cover=reference)
            stats.fixed += 1
            log_reconcile_event(
                "cover_fixed",
                {
                    "message": f"Cover for {product.id}: {reference}",
                    "id": product.id,
                    "previous": product.cover,
                    "cover": reference,
                },
                level=logging.DEBUG,
            )
    log_pass_summary(
        "fix_covers",
        {"checked": stats.checked, "fixed": stats.fixed, "missing": len(stats.missing)},
        logger_name="workflows",
    )
    return stats


def strip_zip_pass(catalog: Catalog) -> Tuple[int, int]:
    """Remove isolated "ZIP" lines (blank line, ZIP, blank line) from descriptions.

    Returns:
        (products touched, occurrences removed)
    """
    touched = removed = 0
    for position, product in enumerate(catalog.products):
        before = product.description.replace("\r\n", "\n")
        count = len(_ZIP_BLOCK_RE.findall(before))
        if not count:
            continue
        after = before
        # Adjacent blocks share a newline, so repeat until none are left
        while _ZIP_BLOCK_RE.search(after):
            after = _ZIP_BLOCK_RE.sub("\n\n", after)
        after = re.sub(r"\n{3,}", "\n\n", after)
        catalog.products[position] = replace(product, description=after)
        touched += 1
        removed += count
    return touched, removed


def set_prices(catalog: Catalog, price: Number) -> int:
    """Set every product's price; link fields are left alone. Returns the change count."""
    changed = 0
    for position, product in enumerate(catalog.products):
        if product.price != price:
            catalog.products[position] = replace(product, price=price)
            changed += 1
    return changed

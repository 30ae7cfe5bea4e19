"""Command-line interface for catalog reconciliation."""

import argparse
import logging
import math
import sys
from pathlib import Path
from typing import Any, List, Optional

# Add parent directory to path to allow imports when run as script
sys.path.insert(0, str(Path(__file__).parent.parent))

__all__ = ["main", "parse_args", "run", "show_stats"]

from reconcile.config import (
    CATALOG_PATH,
    COVERS_DIR,
    COVERS_URL_PREFIX,
    DEFAULT_PRICE,
    DEFAULT_SOURCE,
)
from reconcile.covers import CoverIndex
from reconcile.logging_config import setup_logging
from reconcile.models import Catalog, ReconcileStats
from reconcile.reports import (
    catalog_stats,
    export_catalog_to_csv,
    find_missing_urls,
    format_counts,
    write_format_counts,
    write_missing_covers,
)
from reconcile.storage import (
    FatalInputError,
    WriteFailureError,
    load_catalog,
    load_links,
    load_source_records,
    write_catalog,
)
from reconcile.workflows import apply_links, fix_covers, reconcile_records, set_prices, strip_zip_pass


def _price(text: str) -> float:
    """argparse type for prices: a finite number."""
    try:
        value = float(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {text!r}")
    if not math.isfinite(value):
        raise argparse.ArgumentTypeError(f"price must be finite, got {text!r}")
    return value


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="reconcile",
        description="Merge scraped product records into the site catalog",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Merge a scraped file into products.json, filling storefront links by title
  python -m reconcile.cli --source scraped/entrepedia_products.json --links payhip_links.json

  # Same, but only show what would change
  python -m reconcile.cli --source scraped/entrepedia_products.json --dry-run

  # Refresh storefront links, replacing ones that changed
  python -m reconcile.cli --links payhip_links_merged.json --update-links

  # Repair cover paths and list products whose cover file is missing
  python -m reconcile.cli --fix-covers --covers-dir covers --missing-covers covers_missing.txt

  # Catalog statistics
  python -m reconcile.cli --stats
        """,
    )

    parser.add_argument(
        "--catalog",
        default=CATALOG_PATH,
        help=f"Catalog JSON path (default: {CATALOG_PATH})",
    )
    parser.add_argument(
        "--create",
        action="store_true",
        help="Start from an empty catalog if the catalog file does not exist",
    )

    # Merge
    parser.add_argument(
        "--source",
        nargs="+",
        default=[],
        metavar="FILE",
        help="Scraped source JSON file(s) to merge, processed in order",
    )
    parser.add_argument(
        "--source-tag",
        default=DEFAULT_SOURCE,
        help=f"Provenance tag for source records without one (default: {DEFAULT_SOURCE})",
    )
    parser.add_argument(
        "--default-price",
        type=_price,
        default=DEFAULT_PRICE,
        help="Price for new products that come without one (default: none)",
    )

    # Links
    parser.add_argument(
        "--links",
        metavar="FILE",
        help="Link-reference JSON (title -> storefront link) used to fill links",
    )
    parser.add_argument(
        "--apply-links",
        action="store_true",
        help="Fill empty link fields of the whole catalog from --links",
    )
    parser.add_argument(
        "--update-links",
        action="store_true",
        help="Like --apply-links, but also replace links that differ",
    )

    # Covers
    parser.add_argument(
        "--covers-dir",
        metavar="DIR",
        help=f"Local covers directory used to resolve cover paths (default for --fix-covers: {COVERS_DIR})",
    )
    parser.add_argument(
        "--fix-covers",
        action="store_true",
        help="Point cover fields at existing files in the covers directory",
    )
    parser.add_argument(
        "--cover-formats",
        nargs="+",
        metavar="FORMAT",
        help="Restrict --fix-covers to these formats (e.g. prompt-pack)",
    )
    parser.add_argument(
        "--missing-covers",
        metavar="PATH",
        help="Write products without a cover file to this TSV (with --fix-covers)",
    )

    # Bulk edits
    parser.add_argument(
        "--strip-zip",
        action="store_true",
        help="Remove isolated 'ZIP' lines from descriptions",
    )
    parser.add_argument(
        "--set-price",
        type=_price,
        metavar="N",
        help="Set every product's price to N",
    )

    # Reports
    parser.add_argument("--stats", action="store_true", help="Show catalog statistics")
    parser.add_argument("--export-csv", metavar="PATH", help="Export the catalog to CSV")
    parser.add_argument(
        "--type-counts",
        metavar="PATH",
        help="Write per-type record counts of the --source files to CSV",
    )
    parser.add_argument(
        "--urls",
        metavar="FILE",
        help="URL list to check against the --source files",
    )
    parser.add_argument(
        "--missing-urls",
        metavar="PATH",
        help="Write URLs from --urls with no scraped record to this file",
    )

    # Run options
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run every pass in memory; no backup, no write",
    )
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--no-log-file", action="store_true", help="Do not write the JSONL log")
    parser.add_argument(
        "--quiet", action="store_true", help="No log output on stderr (reports still print)"
    )

    args = parser.parse_args(argv)

    if (args.apply_links or args.update_links) and not args.links:
        parser.error("--apply-links/--update-links need --links FILE")
    if args.missing_urls and not (args.urls and args.source):
        parser.error("--missing-urls needs --urls FILE and --source FILE")
    if args.type_counts and not args.source:
        parser.error("--type-counts needs --source FILE")
    return args


def _number(value: Optional[float]) -> Optional[Any]:
    """Keep whole-number prices as ints in the catalog (10, not 10.0)."""
    if value is None:
        return None
    return int(value) if float(value).is_integer() else value


def _print_section(title: str, lines: List[str]) -> None:
    print(f"\n{'='*50}")
    print(title)
    print(f"{'='*50}")
    for line in lines:
        print(f"  {line}")


def show_stats(catalog: Catalog, catalog_path: str) -> None:
    """Display catalog statistics."""
    stats = catalog_stats(catalog)
    _print_section(
        f"Catalog: {catalog_path}",
        [
            f"Total products: {stats['total']}",
            f"With storefront link: {stats['with_link']}",
            f"With cover: {stats['with_cover']}",
            f"Without price: {stats['without_price']}",
        ],
    )
    print("\nProducts by format:")
    for name, count in stats["by_format"].items():
        print(f"  {name}: {count}")
    print("\nProducts by category:")
    for name, count in stats["by_category"].items():
        print(f"  {name}: {count}")
    print()


def _read_url_lines(path: str) -> List[str]:
    try:
        return Path(path).read_text(encoding="utf-8").splitlines()
    except OSError as e:
        raise FatalInputError(f"cannot read URL list {path}: {e}") from e


def run(args: argparse.Namespace) -> None:
    """Load inputs, run the requested passes, write once, then report.

    Raises:
        FatalInputError: before anything is written
        WriteFailureError: if the backup or write fails
    """
    # Load everything up front so a bad input aborts before any write
    catalog = load_catalog(args.catalog, allow_missing=args.create)
    sources = [(path, load_source_records(path)) for path in args.source]
    links = load_links(args.links) if args.links else None
    url_lines = _read_url_lines(args.urls) if args.urls else None

    covers_dir = args.covers_dir or (COVERS_DIR if args.fix_covers else None)
    cover_index = CoverIndex.from_directory(covers_dir, COVERS_URL_PREFIX) if covers_dir else None

    changed = False

    if sources:
        stats = ReconcileStats()
        for path, records in sources:
            reconcile_records(
                catalog,
                records,
                links=links,
                cover_index=cover_index,
                default_price=_number(args.default_price),
                source_tag=args.source_tag,
                stats=stats,
            )
        _print_section("MERGE", stats.summary_lines())
        changed |= bool(stats.added or stats.updated)

    if links is not None and (args.apply_links or args.update_links):
        link_stats = apply_links(catalog, links, overwrite=args.update_links)
        _print_section("LINKS", link_stats.summary_lines())
        changed |= bool(link_stats.updated)

    if args.fix_covers:
        cover_stats = fix_covers(catalog, cover_index, formats=args.cover_formats)
        _print_section("COVERS", cover_stats.summary_lines())
        changed |= bool(cover_stats.fixed)
        if args.missing_covers:
            write_missing_covers(cover_stats.missing, args.missing_covers)
            print(f"  Missing covers written to: {args.missing_covers}")

    if args.strip_zip:
        touched, removed = strip_zip_pass(catalog)
        _print_section("ZIP LINES", [f"Products touched: {touched}", f"Lines removed: {removed}"])
        changed |= bool(touched)

    if args.set_price is not None:
        price = _number(args.set_price)
        count = set_prices(catalog, price)
        _print_section("PRICES", [f"Products set to {price}: {count}"])
        changed |= bool(count)

    if changed and args.dry_run:
        print("\n[DRY RUN] Catalog not written. Remove --dry-run to save changes.")
    elif changed:
        backup = write_catalog(catalog, args.catalog)
        print(f"\nCatalog written: {Path(args.catalog).resolve()} ({len(catalog)} products)")
        if backup:
            print(f"Backup: {backup.resolve()}")
    elif sources or args.apply_links or args.update_links or args.fix_covers or args.strip_zip:
        print("\nNo changes; catalog left untouched.")

    if args.stats:
        show_stats(catalog, args.catalog)
    if args.export_csv:
        export_catalog_to_csv(catalog, args.export_csv)
    if args.type_counts:
        all_records = [r for _, records in sources for r in records]
        write_format_counts(format_counts(all_records), args.type_counts)
        print(f"Type counts written to: {args.type_counts}")
    if url_lines is not None and args.missing_urls:
        all_records = [r for _, records in sources for r in records]
        missing = find_missing_urls(url_lines, all_records)
        Path(args.missing_urls).write_text(
            "".join(f"{url}\n" for url in missing), encoding="utf-8"
        )
        print(f"URLs without scraped record: {len(missing)} -> {args.missing_urls}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI. Returns the process exit code."""
    args = parse_args(argv)

    try:
        setup_logging(
            level=logging.DEBUG if args.verbose else logging.INFO,
            log_to_file=not args.no_log_file,
            log_to_console=not args.quiet,
        )
        run(args)
    except (FatalInputError, WriteFailureError, OSError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

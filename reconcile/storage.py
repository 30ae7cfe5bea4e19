"""Loading, backing up and writing catalog files.

The catalog is read once at the start of a run and written once at the
end. Writes go through a temp file in the same directory followed by
``os.replace`` so a crash never leaves a truncated catalog, and a
timestamped backup is taken first; if the backup fails nothing is written.
"""

import json
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional, Union

from reconcile.config import BACKUP_TIMESTAMP_FORMAT, CATALOG_WRAPPER_KEYS
from reconcile.logging_config import get_logger, log_reconcile_event
from reconcile.models import Catalog, LinkRef, Product
from reconcile.sources import coerce_links, extract_records

__all__ = [
    "FatalInputError",
    "WriteFailureError",
    "read_json",
    "load_catalog",
    "load_source_records",
    "load_links",
    "backup_path_for",
    "backup_catalog",
    "write_json_atomic",
    "write_catalog",
    "dump_json",
]

PathLike = Union[str, os.PathLike]

logger = get_logger("storage")


class FatalInputError(Exception):
    """A required input is missing, not valid JSON, or not in an accepted shape."""


class WriteFailureError(Exception):
    """The backup copy or the catalog write failed."""


def read_json(path: PathLike, label: str = "input") -> Any:
    """Read and parse a JSON file.

    Raises:
        FatalInputError: if the file is missing, unreadable or not valid JSON
    """
    path = Path(path)
    if not path.is_file():
        raise FatalInputError(f"{label} file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8-sig") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise FatalInputError(f"invalid JSON in {label} file {path}: {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise FatalInputError(f"cannot read {label} file {path}: {e}") from e


def load_catalog(path: PathLike, allow_missing: bool = False) -> Catalog:
    """Load a catalog file (array, or object wrapping ``products``/``items``).

    Args:
        path: Catalog JSON path
        allow_missing: Return an empty catalog instead of failing when the file is absent

    Raises:
        FatalInputError: on a missing file (unless allowed), bad JSON or bad shape
    """
    if allow_missing and not Path(path).exists():
        logger.info(f"Catalog {path} does not exist yet, starting empty")
        return Catalog()

    data = read_json(path, "catalog")
    items = extract_records(data, CATALOG_WRAPPER_KEYS)
    if items is None:
        raise FatalInputError(
            f"catalog {path} is not an array or an object with products/items array"
        )

    products: List[Product] = []
    for position, item in enumerate(items):
        if not isinstance(item, dict):
            raise FatalInputError(f"catalog {path} entry #{position} is not an object")
        products.append(Product.from_dict(item))

    if isinstance(data, dict):
        wrapper_key = next(k for k in CATALOG_WRAPPER_KEYS if isinstance(data.get(k), list))
        wrapper = dict(data)
        return Catalog(products=products, wrapper=wrapper, wrapper_key=wrapper_key)
    return Catalog(products=products)


def load_source_records(path: PathLike) -> List[Any]:
    """Raw records of a source file (array, or object with products/items)."""
    data = read_json(path, "source")
    records = extract_records(data, CATALOG_WRAPPER_KEYS)
    if records is None:
        raise FatalInputError(
            f"source {path} is not an array or an object with products/items array"
        )
    return records


def load_links(path: PathLike) -> List[LinkRef]:
    """Rows of a link-reference file."""
    data = read_json(path, "links")
    links = coerce_links(data)
    if links is None:
        keys = ", ".join(list(data.keys())[:30]) if isinstance(data, dict) else type(data).__name__
        raise FatalInputError(f"links {path} has no usable rows (keys: {keys})")
    return links


def dump_json(data: Any) -> str:
    """Serialize for diffable output: 2-space indent, UTF-8, trailing newline."""
    return json.dumps(data, indent=2, ensure_ascii=False, allow_nan=False) + "\n"


def backup_path_for(path: PathLike, now: Optional[datetime] = None) -> Path:
    """``<path>.bak-<YYYYmmdd-HHMMSS>``, with a counter if that name is taken."""
    path = Path(path)
    stamp = (now or datetime.now()).strftime(BACKUP_TIMESTAMP_FORMAT)
    candidate = path.with_name(f"{path.name}.bak-{stamp}")
    n = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.name}.bak-{stamp}-{n}")
        n += 1
    return candidate


def backup_catalog(path: PathLike, now: Optional[datetime] = None) -> Path:
    """Copy the current catalog next to itself before it is overwritten.

    Raises:
        WriteFailureError: if the copy fails
    """
    target = backup_path_for(path, now)
    try:
        shutil.copy2(path, target)
    except OSError as e:
        raise WriteFailureError(f"backup of {path} failed: {e}") from e

    log_reconcile_event(
        "catalog_backup",
        {"message": f"Backup written: {target}", "catalog": str(path), "backup": str(target)},
    )
    return target


def _match_mode(path: Path, tmp_name: str) -> None:
    """Give the temp file the mode the catalog has (or a new file would get)."""
    if path.exists():
        shutil.copymode(path, tmp_name)
        return
    umask = os.umask(0)
    os.umask(umask)
    os.chmod(tmp_name, 0o666 & ~umask)


def write_json_atomic(path: PathLike, data: Any) -> None:
    """Write JSON to ``path`` via a temp file and an atomic rename.

    Raises:
        WriteFailureError: if any step fails; the original file is left untouched
    """
    path = Path(path)
    directory = path.parent if str(path.parent) else Path(".")
    tmp_name = None
    try:
        directory.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=directory,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as tmp:
            tmp_name = tmp.name
            tmp.write(dump_json(data))
            tmp.flush()
            os.fsync(tmp.fileno())
        _match_mode(path, tmp_name)
        os.replace(tmp_name, path)
    except (OSError, TypeError, ValueError) as e:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise WriteFailureError(f"writing {path} failed: {e}") from e


def write_catalog(
    catalog: Catalog,
    path: PathLike,
    backup: bool = True,
    now: Optional[datetime] = None,
) -> Optional[Path]:
    """Back up the existing file (if any), then write the catalog atomically.

    Returns:
        Path of the backup, or None when there was no previous file to back up
    """
    backup_file = None
    if backup and Path(path).exists():
        backup_file = backup_catalog(path, now)

    write_json_atomic(path, catalog.to_document())
    log_reconcile_event(
        "catalog_written",
        {"message": f"Catalog written: {path}", "catalog": str(path), "products": len(catalog)},
    )
    return backup_file

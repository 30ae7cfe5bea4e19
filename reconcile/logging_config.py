"""Logging for reconciliation runs.

Operators read the console (stderr); the JSONL file under ``logs/`` keeps
one structured entry per event so a catalog change can be traced back to
the run and source record that caused it. Every entry of a run carries the
same ``run_id``.
"""

import json
import logging
import sys
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from reconcile.config import LOG_DIR

__all__ = [
    "setup_logging",
    "get_logger",
    "log_reconcile_event",
    "log_pass_summary",
    "current_run_id",
]

ROOT_LOGGER = "reconcile"

_run_id: Optional[str] = None


def current_run_id() -> Optional[str]:
    """Id of the run configured by the last :func:`setup_logging` call."""
    return _run_id


class JSONLFileHandler(logging.Handler):
    """Appends one JSON object per record to ``reconcile_<YYYYMMDD>.jsonl``."""

    def __init__(self, log_dir: Path, run_id: str):
        super().__init__()
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.run_id = run_id

    @property
    def log_file(self) -> Path:
        return self.log_dir / f"reconcile_{datetime.now():%Y%m%d}.jsonl"

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry: Dict[str, Any] = {
                "timestamp": datetime.now().isoformat(),
                "run_id": self.run_id,
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
            }
            event_type = getattr(record, "event_type", None)
            if event_type:
                entry["event_type"] = event_type
            entry.update(getattr(record, "extra_data", {}))

            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
        except Exception:
            self.handleError(record)


class ColoredConsoleHandler(logging.StreamHandler):
    """Stream handler that colors the ``[LEVEL]`` tag when writing to a terminal."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        color = self.COLORS.get(record.levelname)
        if color and getattr(self.stream, "isatty", lambda: False)():
            tag = f"[{record.levelname}]"
            text = text.replace(tag, f"[{color}{record.levelname}{self.RESET}]", 1)
        return text


def setup_logging(
    level: int = logging.INFO,
    log_to_file: bool = True,
    log_to_console: bool = True,
    log_dir: Optional[Path] = None,
    run_id: Optional[str] = None,
) -> logging.Logger:
    """Configure the ``reconcile`` logger for one run.

    Args:
        level: Console level; the JSONL file always receives DEBUG and up
        log_to_file: Write the JSONL audit file
        log_to_console: Write human-readable lines to stderr
        log_dir: Directory for the JSONL file (default: LOG_DIR)
        run_id: Id stamped on every JSONL entry (default: random 8 hex chars)

    Returns:
        The configured ``reconcile`` logger
    """
    global _run_id
    _run_id = run_id or uuid.uuid4().hex[:8]

    logger = logging.getLogger(ROOT_LOGGER)
    logger.handlers.clear()
    # The logger passes DEBUG through whenever the file wants it
    logger.setLevel(logging.DEBUG if log_to_file else level)

    if log_to_console:
        console = ColoredConsoleHandler(sys.stderr)
        console.setLevel(level)
        console.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", datefmt="%H:%M:%S")
        )
        logger.addHandler(console)

    if log_to_file:
        jsonl = JSONLFileHandler(log_dir or LOG_DIR, _run_id)
        jsonl.setLevel(logging.DEBUG)
        logger.addHandler(jsonl)

    if not logger.handlers:
        # Keeps warnings off the stderr fallback handler
        logger.addHandler(logging.NullHandler())

    return logger


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """``reconcile`` logger, or its ``reconcile.<name>`` child."""
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def log_reconcile_event(
    event_type: str,
    data: Mapping[str, Any],
    level: int = logging.INFO,
    logger_name: str = ROOT_LOGGER,
) -> None:
    """Emit a structured event.

    ``data["message"]`` (or the event type) becomes the log text; the other
    keys are written as fields of the JSONL entry.

    Events: record_added, record_updated, record_skipped, link_applied,
    cover_fixed, catalog_backup, catalog_written, pass_summary.
    """
    logger = get_logger(logger_name)
    if not logger.isEnabledFor(level):
        return

    record = logger.makeRecord(
        logger.name, level, "(reconcile)", 0, data.get("message", event_type), (), None
    )
    record.event_type = event_type
    record.extra_data = {k: v for k, v in data.items() if k != "message"}
    logger.handle(record)


def log_pass_summary(pass_name: str, counters: Mapping[str, Any], logger_name: str = ROOT_LOGGER) -> None:
    """INFO line plus a ``pass_summary`` entry with the counters of one pass."""
    text = ", ".join(f"{key}={value}" for key, value in counters.items())
    log_reconcile_event(
        "pass_summary",
        {"message": f"{pass_name}: {text}", "pass": pass_name, **counters},
        logger_name=logger_name,
    )

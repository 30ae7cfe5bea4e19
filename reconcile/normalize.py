"""Title normalization and text cleanup helpers.

Everything here is pure: no I/O, same input gives same output.
"""

import re
import unicodedata
from typing import List, Optional

from bs4 import BeautifulSoup

from reconcile.config import SHORT_DESCRIPTION_MAX

__all__ = [
    "normalize_title",
    "title_variants",
    "slugify",
    "html_to_text",
    "strip_zip_lines",
    "clean_description",
    "short_description",
]

# Trailing "ebook" markers: "- Ebook", "(ebook)", bare "ebook" as its own word
_EBOOK_DASH_RE = re.compile(r"\s*[-–—]\s*ebook\s*$")
_EBOOK_PAREN_RE = re.compile(r"\s*\(\s*ebook\s*\)\s*$")
_EBOOK_BARE_RE = re.compile(r"(?:^|\s+)ebook\s*$")

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
_WHITESPACE_RE = re.compile(r"\s+")
_TAG_RE = re.compile(r"<[a-zA-Z/][^>]*>")
_ZIP_LINE_RE = re.compile(r"^\s*ZIP\s*$")


def _strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_title(title: Optional[str]) -> str:
    """Turn a display title into the key used for matching.

    Lower-cases, maps non-breaking spaces and curly quotes to ASCII, drops a
    trailing ebook marker, strips diacritics and punctuation and collapses
    whitespace. Empty or whitespace-only input gives "" which never matches.
    """
    if not title:
        return ""

    s = str(title).lower()
    s = s.replace("\u00a0", " ")
    s = s.replace("\u2019", "'").replace("\u2018", "'")
    s = s.replace("\u201c", '"').replace("\u201d", '"')
    s = s.replace("&amp;", "&")
    s = _WHITESPACE_RE.sub(" ", s).strip()

    s = _EBOOK_DASH_RE.sub("", s)
    s = _EBOOK_PAREN_RE.sub("", s)
    s = _EBOOK_BARE_RE.sub("", s)
    s = s.strip()

    s = _strip_accents(s)
    s = _NON_ALNUM_RE.sub("", s)
    return _WHITESPACE_RE.sub(" ", s).strip()


def title_variants(title: Optional[str]) -> List[str]:
    """Normalized keys for a title and its common shortened forms.

    Order matters: the full title comes first, then the part before a colon,
    the part before " - ", a dash-unified form, the form without "- Ebook"
    and the form without a trailing parenthetical. Duplicates and empty keys
    are dropped.
    """
    base = str(title or "")
    candidates = [
        base,
        base.split(":")[0],
        base.split(" - ")[0],
        re.sub(r"[–—]", "-", base),
        re.sub(r"\s*[-–—]\s*ebook\b", "", base, flags=re.IGNORECASE),
        re.sub(r"\s*\([^)]*\)\s*$", "", base),
    ]

    keys: List[str] = []
    for candidate in candidates:
        key = normalize_title(candidate)
        if key and key not in keys:
            keys.append(key)
    return keys


def slugify(text: Optional[str]) -> str:
    """URL-safe slug: ascii, lower-case, hyphen separated."""
    s = _strip_accents(str(text or "")).lower()
    s = re.sub(r"[^a-z0-9]+", "-", s)
    return s.strip("-")


def html_to_text(text: str) -> str:
    """Reduce HTML markup to plain text, keeping paragraph breaks."""
    if not text or not _TAG_RE.search(text):
        return text or ""
    soup = BeautifulSoup(text, "html.parser")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for block in soup.find_all(["p", "div", "li", "h1", "h2", "h3", "h4"]):
        block.insert_after("\n\n")
    return soup.get_text()


def strip_zip_lines(text: str) -> str:
    """Remove lines that contain only "ZIP" (a leftover of the download badge)."""
    lines = [line for line in text.split("\n") if not _ZIP_LINE_RE.match(line)]
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines))


def clean_description(text: Optional[str]) -> str:
    """Normalize a scraped description for the catalog."""
    if not text:
        return ""
    s = str(text).replace("\r\n", "\n").replace("\r", "\n")
    s = html_to_text(s)
    s = "\n".join(line.rstrip() for line in s.split("\n"))
    s = strip_zip_lines(s)
    return s.strip()


def short_description(text: Optional[str], max_length: int = SHORT_DESCRIPTION_MAX) -> str:
    """First paragraph of a description, truncated with "..." if too long."""
    s = (text or "").replace("\r", "").strip()
    if not s:
        return ""
    first = s.split("\n\n")[0].strip()
    if len(first) <= max_length:
        return first
    return first[: max_length - 3].strip() + "..."

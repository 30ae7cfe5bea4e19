"""Local cover image index.

Cover references in the catalog look like ``/covers/<filename>``. Scraped
records often point at a filename with the wrong case or extension, or
none at all, so resolution tries progressively looser strategies.
"""

from pathlib import Path
from typing import Dict, Iterable, List, Optional

from reconcile.config import COVERS_URL_PREFIX, IMAGE_EXTENSIONS
from reconcile.normalize import normalize_title, slugify

__all__ = ["CoverIndex", "cover_filename", "title_tokens"]

# Title tokens shorter than this are too common to identify a cover
MIN_TOKEN_LENGTH = 4
MAX_TOKENS = 6
MIN_TOKEN_SCORE = 2


def cover_filename(reference: Optional[str]) -> str:
    """Filename part of a cover reference (path, URL or bare name)."""
    if not reference:
        return ""
    text = str(reference).strip().replace("\\", "/")
    return text.split("?")[0].split("#")[0].rstrip("/").split("/")[-1]


def title_tokens(title: Optional[str]) -> List[str]:
    tokens = [t for t in normalize_title(title).split(" ") if len(t) >= MIN_TOKEN_LENGTH]
    return tokens[:MAX_TOKENS]


class CoverIndex:
    """Image files available in a covers directory."""

    def __init__(self, filenames: Iterable[str], prefix: str = COVERS_URL_PREFIX) -> None:
        self.prefix = prefix
        self.filenames: List[str] = sorted(
            name for name in filenames if Path(name).suffix.lower() in IMAGE_EXTENSIONS
        )
        self._by_lower: Dict[str, str] = {}
        self._by_stem: Dict[str, str] = {}
        for name in self.filenames:
            self._by_lower.setdefault(name.lower(), name)
            self._by_stem.setdefault(Path(name).stem.lower(), name)

    @classmethod
    def from_directory(cls, directory, prefix: str = COVERS_URL_PREFIX) -> "CoverIndex":
        """Index a directory; a missing directory gives an empty index."""
        directory = Path(directory)
        if not directory.is_dir():
            return cls([], prefix=prefix)
        return cls((p.name for p in directory.iterdir() if p.is_file()), prefix=prefix)

    def __len__(self) -> int:
        return len(self.filenames)

    def __contains__(self, filename: str) -> bool:
        return filename.lower() in self._by_lower

    def reference(self, filename: str) -> str:
        return self.prefix + filename

    def find_by_filename(self, reference: Optional[str]) -> Optional[str]:
        """Exact, case-insensitive, then same-stem-other-extension lookup."""
        name = cover_filename(reference)
        if not name:
            return None
        if name in self.filenames:
            return name
        hit = self._by_lower.get(name.lower())
        if hit:
            return hit
        return self._by_stem.get(Path(name).stem.lower())

    def find_by_slug(self, title: Optional[str]) -> Optional[str]:
        slug = slugify(title)
        if not slug:
            return None
        return self._by_stem.get(slug)

    def find_by_tokens(self, title: Optional[str]) -> Optional[str]:
        """Best filename by count of title tokens it contains (at least two)."""
        tokens = title_tokens(title)
        if not tokens:
            return None
        best, best_score = None, 0
        for name in self.filenames:
            lowered = name.lower()
            score = sum(1 for token in tokens if token in lowered)
            if score > best_score:
                best, best_score = name, score
        return best if best_score >= MIN_TOKEN_SCORE else None

    def resolve(self, reference: Optional[str], title: Optional[str] = None) -> Optional[str]:
        """Filename for a cover reference, falling back to the product title."""
        return (
            self.find_by_filename(reference)
            or self.find_by_slug(title)
            or self.find_by_tokens(title)
        )

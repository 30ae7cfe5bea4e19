"""Fuzzy title matching against an insertion-ordered index."""

from typing import Dict, Generic, Iterator, Optional, Tuple, TypeVar

from reconcile.config import MIN_FUZZY_KEY_LENGTH
from reconcile.normalize import normalize_title

__all__ = ["TitleIndex", "match_key"]

T = TypeVar("T")


class TitleIndex(Generic[T]):
    """Normalized title key -> item, in insertion order.

    The first item added under a key keeps it; later additions with the same
    key are ignored. Containment scans walk keys in insertion order, so ties
    resolve to the earliest inserted candidate.
    """

    def __init__(self, min_fuzzy_length: int = MIN_FUZZY_KEY_LENGTH) -> None:
        self._items: Dict[str, T] = {}
        self.min_fuzzy_length = min_fuzzy_length

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: str) -> bool:
        return key in self._items

    def __iter__(self) -> Iterator[Tuple[str, T]]:
        return iter(self._items.items())

    def add(self, key: str, item: T) -> bool:
        """Index ``item`` under ``key``. Returns False if the key was empty or taken."""
        if not key or key in self._items:
            return False
        self._items[key] = item
        return True

    def add_title(self, title: str, item: T) -> bool:
        return self.add(normalize_title(title), item)

    def get(self, key: str) -> Optional[T]:
        return self._items.get(key) if key else None

    def match(self, key: str) -> Optional[T]:
        """Exact lookup, then substring containment for long enough keys."""
        return match_key(key, self._items, self.min_fuzzy_length)

    def match_title(self, title: str) -> Optional[T]:
        return self.match(normalize_title(title))


def match_key(
    key: str,
    index: Dict[str, T],
    min_fuzzy_length: int = MIN_FUZZY_KEY_LENGTH,
) -> Optional[T]:
    """Find the item for ``key`` in ``index``.

    An empty key never matches. Without an exact hit, keys of at least
    ``min_fuzzy_length`` characters match the first indexed key (in insertion
    order) that contains them or is contained in them; indexed keys shorter
    than the minimum are not considered for containment.
    """
    if not key:
        return None

    hit = index.get(key)
    if hit is not None:
        return hit

    if len(key) < min_fuzzy_length:
        return None

    for candidate, item in index.items():
        if len(candidate) < min_fuzzy_length:
            continue
        if candidate in key or key in candidate:
            return item
    return None

"""Per-run indexed lookups.

An IndexedLookup turns an already-fetched collection into an id -> record
map the first time it is queried, and answers every later query from that
map. Collections are expected to be memoized by the caller, so the
underlying listing happens at most once per run.
"""

import logging
import threading
from collections.abc import Callable, Iterable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class IndexedLookup(Generic[T]):
    """Lazily built, memoized index over a collection.

    Lookups for an absent key return None; records themselves are never
    None, so None always means "no such resource".

    Example:
        >>> disks = IndexedLookup("managed_disks", collector.managed_disks,
        ...                       key=lambda d: d.id, case_insensitive=True)
        >>> disks.get("/subscriptions/S/.../disks/Disk-ABC")
    """

    def __init__(
        self,
        name: str,
        loader: Callable[[], Iterable[T]],
        key: Callable[[T], str | None],
        case_insensitive: bool = False,
    ):
        """Initialize lookup.

        Args:
            name: Label used in logs
            loader: Returns the collection to index (called once)
            key: Extracts the index key from a record
            case_insensitive: Casefold keys on insert and lookup
        """
        self.name = name
        self._loader = loader
        self._key = key
        self.case_insensitive = case_insensitive
        self._index: dict[str, T] | None = None
        self._lock = threading.Lock()

    def _normalize(self, key: str) -> str:
        return key.casefold() if self.case_insensitive else key

    @property
    def built(self) -> bool:
        return self._index is not None

    def _ensure_index(self) -> dict[str, T]:
        if self._index is None:
            with self._lock:
                if self._index is None:
                    index: dict[str, T] = {}
                    for record in self._loader():
                        record_key = self._key(record)
                        if record_key is None:
                            continue
                        index.setdefault(self._normalize(record_key), record)
                    logger.debug(f"Built {self.name} index with {len(index)} entries")
                    self._index = index
        return self._index

    def get(self, key: str | None) -> T | None:
        """Return the record indexed under ``key``, or None if there is none."""
        if key is None:
            return None
        return self._ensure_index().get(self._normalize(key))

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    def __len__(self) -> int:
        return len(self._ensure_index())


__all__ = ["IndexedLookup"]

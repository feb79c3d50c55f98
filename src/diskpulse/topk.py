"""Bounded top-N tracking of the largest entries in a stream."""

import heapq
import threading

from diskpulse.models import FileEntry


class _Ranked:
    """Heap slot ordered so the weakest entry is the heap minimum.

    Weaker means smaller size, or equal size with a later path.
    """

    __slots__ = ("size", "path", "entry")

    def __init__(self, entry: FileEntry) -> None:
        self.size = entry.size_bytes
        self.path = entry.path
        self.entry = entry

    def __lt__(self, other: "_Ranked") -> bool:
        if self.size != other.size:
            return self.size < other.size
        return self.path > other.path


class TopKTracker:
    """
    Keep the N largest entries seen so far.

    Memory is O(N) regardless of how many entries are observed. Safe to
    call ``observe`` from several worker threads.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 0:
            raise ValueError(f"capacity must be >= 0, got {capacity}")
        self.capacity = capacity
        self._heap: list[_Ranked] = []
        self._lock = threading.Lock()

    def observe(self, entry: FileEntry) -> None:
        """Offer an entry; it is kept only if it ranks among the top N."""
        if self.capacity == 0:
            return
        candidate = _Ranked(entry)
        with self._lock:
            if len(self._heap) < self.capacity:
                heapq.heappush(self._heap, candidate)
            elif self._heap[0] < candidate:
                heapq.heapreplace(self._heap, candidate)

    def __len__(self) -> int:
        with self._lock:
            return len(self._heap)

    def result(self) -> list[FileEntry]:
        """Kept entries, largest first, ties by path ascending."""
        with self._lock:
            ranked = sorted(self._heap, reverse=True)
        return [r.entry for r in ranked]

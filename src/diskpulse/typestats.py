"""Per-extension file count and size totals."""

import threading
from typing import Optional

from diskpulse.classifier import NO_EXTENSION, normalized_extension
from diskpulse.models import FileEntry, TypeStat

__all__ = ["NO_EXTENSION", "TypeStatsCollector"]


class TypeStatsCollector:
    """Accumulate (count, total size) per normalized extension. Thread-safe."""

    def __init__(self) -> None:
        self._totals: dict[str, list[int]] = {}
        self._lock = threading.Lock()

    def observe(self, entry: FileEntry) -> None:
        """Count a file entry; directories are ignored."""
        if entry.is_directory:
            return
        ext = normalized_extension(entry.name)
        with self._lock:
            totals = self._totals.get(ext)
            if totals is None:
                self._totals[ext] = [1, entry.size_bytes]
            else:
                totals[0] += 1
                totals[1] += entry.size_bytes

    def type_stats(self, limit: Optional[int] = None) -> list[TypeStat]:
        """Totals sorted by size descending, ties by extension ascending."""
        with self._lock:
            items = [(ext, count, size) for ext, (count, size) in self._totals.items()]
        items.sort(key=lambda t: (-t[2], t[0]))
        if limit is not None:
            items = items[:limit]
        return [TypeStat(extension=ext, count=count, total_size_bytes=size) for ext, count, size in items]

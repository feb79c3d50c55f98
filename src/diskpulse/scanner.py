"""Disk scanning functionality for diskpulse."""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from diskpulse.aggregator import SizeAggregator
from diskpulse.config import Settings, load_settings
from diskpulse.errors import InvalidRequestError, ScanRootError, failure_from
from diskpulse.models import (
    DeepScanResult,
    DirectoryNode,
    FileEntry,
    LargeFilesResult,
    ScanFailure,
    ScanResult,
)
from diskpulse.topk import TopKTracker
from diskpulse.typestats import TypeStatsCollector
from diskpulse.walker import CancelToken, DirectoryWalker, stat_entry

log = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 3
DEFAULT_TOP_FILES_LIMIT = 20
DEFAULT_MIN_LARGE_FILE_SIZE = 100 * 1024 * 1024
DEFAULT_LARGE_FILES_LIMIT = 50

Observer = Callable[[FileEntry], None]


@dataclass(slots=True)
class Subtree:
    """Aggregate reported by one worker for one directory."""

    entry: FileEntry
    node: DirectoryNode
    failures: list[ScanFailure] = field(default_factory=list)
    complete: bool = True


def scan_subtree(
    entry: FileEntry,
    max_depth: Optional[int],
    cancel: CancelToken,
    observers: tuple[Observer, ...] = (),
) -> Subtree:
    """
    Walk and aggregate one directory on its own.

    Every walked entry is also passed to ``observers``. An unreadable
    directory yields an empty node plus a failure record.
    """
    walker = DirectoryWalker(cancel)
    aggregator = SizeAggregator(entry.path)
    try:
        for walked in walker.walk(entry.path, max_depth):
            aggregator.observe(walked)
            for observer in observers:
                observer(walked)
    except ScanRootError as e:
        log.debug("Skipping unreadable subtree %s: %s", entry.path, e)
        cause = e.__cause__
        if isinstance(cause, OSError):
            walker.failures.append(failure_from(entry.path, cause))

    return Subtree(
        entry=entry,
        node=aggregator.result(),
        failures=walker.failures,
        complete=walker.complete,
    )


def fan_out(
    directories: list[FileEntry],
    max_depth: Optional[int],
    cancel: CancelToken,
    observers: tuple[Observer, ...] = (),
    max_workers: int = 1,
) -> list[Subtree]:
    """
    Scan independent directories on a bounded worker pool.

    Each worker owns its walker and aggregator and reports a finished
    Subtree; results keep the input order. Runs inline when only one
    worker is allowed or there is at most one directory.
    """
    if not directories:
        return []

    workers = min(max_workers, len(directories))
    if workers <= 1:
        return [scan_subtree(d, max_depth, cancel, observers) for d in directories]

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="diskpulse-scan") as executor:
        futures = [executor.submit(scan_subtree, d, max_depth, cancel, observers) for d in directories]
        return [future.result() for future in futures]


def _split(entries: list[FileEntry]) -> tuple[list[FileEntry], list[FileEntry]]:
    files = [e for e in entries if not e.is_directory]
    dirs = [e for e in entries if e.is_directory]
    return files, dirs


def _check_non_negative(**values: Optional[int]) -> None:
    for name, value in values.items():
        if value is not None and value < 0:
            raise InvalidRequestError(f"{name} must be >= 0, got {value}")


def get_home_directory() -> str:
    """Return the current user's home directory."""
    return str(Path.home())


def scan_directory(
    path: str,
    cancel: Optional[CancelToken] = None,
    settings: Optional[Settings] = None,
) -> ScanResult:
    """
    One-level listing with recursive sizes for subdirectories.

    Args:
        path: Directory to list
        cancel: Optional cancellation token
        settings: Engine settings (loaded from disk if omitted)

    Returns:
        ScanResult whose items carry their own size (recursive for directories)

    Raises:
        ScanRootError: if the directory itself cannot be read
    """
    cancel = cancel or CancelToken()
    settings = settings or load_settings()
    root = os.path.abspath(path)

    walker = DirectoryWalker(cancel)
    entries = walker.listdir(root)
    _, dirs = _split(entries)

    subtrees = fan_out(dirs, 0, cancel, max_workers=settings.worker_count())
    sized = {s.entry.path: s.node.size_bytes for s in subtrees}

    failures = list(walker.failures)
    for subtree in subtrees:
        failures.extend(subtree.failures)

    items = [
        e.model_copy(update={"size_bytes": sized[e.path]}) if e.is_directory else e
        for e in sorted(entries, key=lambda e: e.name)
    ]

    complete = walker.complete and all(s.complete for s in subtrees)
    log.info("Scanned %s: %d items", root, len(items))
    return ScanResult(
        path=root,
        size_bytes=sum(i.size_bytes for i in items),
        items=items,
        failures=failures,
        complete=complete,
    )


def scan_directory_deep(
    path: str,
    max_depth: int = DEFAULT_MAX_DEPTH,
    top_files_limit: int = DEFAULT_TOP_FILES_LIMIT,
    type_stats_limit: Optional[int] = None,
    cancel: Optional[CancelToken] = None,
    settings: Optional[Settings] = None,
) -> DeepScanResult:
    """
    Depth-bounded tree scan with large-file and file-type summaries.

    One traversal feeds the size tree, the top-N tracker and the type
    statistics. Each top-level subdirectory is walked by its own worker.

    Args:
        path: Directory to scan
        max_depth: Deepest tree level materialized (root children are 1)
        top_files_limit: Number of largest files to report
        type_stats_limit: Optional cap on the number of extensions reported
        cancel: Optional cancellation token
        settings: Engine settings (loaded from disk if omitted)

    Raises:
        InvalidRequestError: on negative limits
        ScanRootError: if the directory itself cannot be read
    """
    _check_non_negative(max_depth=max_depth, top_files_limit=top_files_limit, type_stats_limit=type_stats_limit)
    cancel = cancel or CancelToken()
    settings = settings or load_settings()
    root = os.path.abspath(path)

    top_files = TopKTracker(top_files_limit)
    type_stats = TypeStatsCollector()
    observers: tuple[Observer, ...] = (top_files.observe, type_stats.observe)

    walker = DirectoryWalker(cancel)
    files, dirs = _split(walker.listdir(root))

    aggregator = SizeAggregator(root)
    for entry in files:
        aggregator.observe(entry)
        for observer in observers:
            observer(entry)

    subtrees = fan_out(
        dirs,
        max(max_depth - 1, 0),
        cancel,
        observers,
        max_workers=settings.worker_count(),
    )

    failures = list(walker.failures)
    for subtree in subtrees:
        aggregator.attach(subtree.node)
        failures.extend(subtree.failures)

    root_node = aggregator.result()
    complete = walker.complete and all(s.complete for s in subtrees)
    if not complete:
        log.info("Deep scan of %s cancelled; returning partial result", root)

    return DeepScanResult(
        path=root,
        total_size_bytes=root_node.size_bytes,
        file_count=root_node.file_count,
        dir_count=root_node.dir_count,
        tree=root_node.children if max_depth > 0 else [],
        large_files=top_files.result(),
        type_stats=type_stats.type_stats(type_stats_limit),
        failures=failures,
        complete=complete,
    )


def find_large_files(
    path: str,
    min_size: int = DEFAULT_MIN_LARGE_FILE_SIZE,
    limit: int = DEFAULT_LARGE_FILES_LIMIT,
    cancel: Optional[CancelToken] = None,
    settings: Optional[Settings] = None,
) -> LargeFilesResult:
    """
    Find the largest files of at least ``min_size`` bytes.

    Args:
        path: Directory to search (whole tree)
        min_size: Minimum file size in bytes
        limit: Maximum number of files returned

    Returns:
        LargeFilesResult with files sorted by size descending (may be empty)

    Raises:
        InvalidRequestError: on negative arguments
        ScanRootError: if the directory itself cannot be read
    """
    _check_non_negative(min_size=min_size, limit=limit)
    cancel = cancel or CancelToken()
    settings = settings or load_settings()
    root = os.path.abspath(path)

    tracker = TopKTracker(limit)

    def observe(entry: FileEntry) -> None:
        if not entry.is_directory and entry.size_bytes >= min_size:
            tracker.observe(entry)

    walker = DirectoryWalker(cancel)
    files, dirs = _split(walker.listdir(root))
    for entry in files:
        observe(entry)

    subtrees = fan_out(dirs, 0, cancel, (observe,), max_workers=settings.worker_count())

    failures = list(walker.failures)
    for subtree in subtrees:
        failures.extend(subtree.failures)

    return LargeFilesResult(
        files=tracker.result(),
        failures=failures,
        complete=walker.complete and all(s.complete for s in subtrees),
    )


def get_directory_children(
    path: str,
    cancel: Optional[CancelToken] = None,
    settings: Optional[Settings] = None,
) -> list[DirectoryNode]:
    """
    Subdirectories of ``path`` with recursive totals, largest first.

    Used to expand a tree node on demand.

    Raises:
        ScanRootError: if the directory itself cannot be read
    """
    cancel = cancel or CancelToken()
    settings = settings or load_settings()

    walker = DirectoryWalker(cancel)
    _, dirs = _split(walker.listdir(path))
    subtrees = fan_out(dirs, 0, cancel, max_workers=settings.worker_count())

    nodes = [s.node for s in subtrees]
    nodes.sort(key=lambda n: (-n.size_bytes, n.name))
    return nodes


def measure(path: str, cancel: Optional[CancelToken] = None) -> tuple[int, list[ScanFailure]]:
    """
    Current size of a file, symlink or directory tree in bytes.

    Raises:
        OSError: if the path itself cannot be stat'ed
    """
    entry = stat_entry(path)
    if not entry.is_directory:
        return entry.size_bytes, []
    subtree = scan_subtree(entry, 0, cancel or CancelToken())
    return subtree.node.size_bytes, subtree.failures

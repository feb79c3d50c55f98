"""Cancellable, depth-first directory traversal."""

import logging
import os
import stat
import threading
from typing import Iterator, Optional

from diskpulse.errors import failure_from, root_error
from diskpulse.models import FileEntry, ScanFailure

log = logging.getLogger(__name__)


class CancelToken:
    """Cooperative cancellation flag shared between a caller and its workers."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """Whether cancellation was requested."""
        return self._event.is_set()


def _entry_from_stat(name: str, path: str, st: os.stat_result, depth: int, folded: bool) -> FileEntry:
    is_dir = stat.S_ISDIR(st.st_mode)
    return FileEntry(
        name=name,
        path=path,
        size_bytes=0 if is_dir else st.st_size,
        is_directory=is_dir,
        modified_at=int(st.st_mtime),
        depth=depth,
        folded=folded,
    )


def stat_entry(path: str, depth: int = 0) -> FileEntry:
    """
    Build a FileEntry for a single path without following symlinks.

    Raises:
        OSError: if the path cannot be stat'ed
    """
    path = os.path.abspath(path)
    st = os.lstat(path)
    return _entry_from_stat(os.path.basename(path) or path, path, st, depth, False)


class DirectoryWalker:
    """
    Depth-first walk yielding FileEntry objects lazily.

    Directories are listed with a single ``os.scandir`` call each, and the
    cancel token is checked once per listing. Symlinks are reported with
    their own size and never followed. Unreadable directories are recorded
    in ``failures`` and contribute nothing; the walk carries on.

    Entries deeper than ``max_depth`` are still yielded with ``folded=True``
    so size and file statistics cover the whole subtree.

    A walker is good for one walk; create a new one per call.
    """

    def __init__(self, cancel: Optional[CancelToken] = None) -> None:
        self.cancel = cancel or CancelToken()
        self.failures: list[ScanFailure] = []
        self.cancelled = False
        self.directories_listed = 0

    @property
    def complete(self) -> bool:
        """False when the walk stopped early on cancellation."""
        return not self.cancelled

    def walk(self, root: str, max_depth: Optional[int] = None) -> Iterator[FileEntry]:
        """
        Walk a directory tree.

        Args:
            root: Directory to walk (the root itself is not yielded)
            max_depth: Deepest level that is materialized; None means unbounded

        Yields:
            FileEntry objects in pre-order, each directory immediately
            before its contents, files before subdirectories, by name.

        Raises:
            ScanRootError: if the root itself cannot be listed
        """
        root = os.path.abspath(root)
        if max_depth is not None and max_depth < 0:
            max_depth = 0

        listing = self._list_root(root)
        if listing is None:
            return

        # Stack of (path, depth, entry-to-yield-before-listing)
        stack: list[tuple[str, int, FileEntry]] = []
        yield from self._emit(listing, 1, max_depth, stack)

        while stack:
            path, depth, entry = stack.pop()
            if self.cancel.cancelled:
                self._mark_cancelled(path)
                return
            yield entry

            try:
                listing = self._list(path)
            except OSError as e:
                log.debug("Cannot list %s: %s", path, e)
                self.failures.append(failure_from(path, e))
                continue

            yield from self._emit(listing, depth + 1, max_depth, stack)

    def listdir(self, path: str) -> list[FileEntry]:
        """
        List a single directory level as depth-1 entries, files first.

        Returns an empty list when the token is already cancelled.

        Raises:
            ScanRootError: if the directory cannot be listed
        """
        path = os.path.abspath(path)
        listing = self._list_root(path)
        if listing is None:
            return []
        stack: list[tuple[str, int, FileEntry]] = []
        files = list(self._emit(listing, 1, None, stack))
        return files + [entry for _, _, entry in reversed(stack)]

    def _list_root(self, root: str) -> Optional[list[os.DirEntry]]:
        if self.cancel.cancelled:
            self._mark_cancelled(root)
            return None
        try:
            return self._list(root)
        except OSError as e:
            log.info("Cannot open scan root %s: %s", root, e)
            raise root_error(root, e) from e

    def _list(self, path: str) -> list[os.DirEntry]:
        with os.scandir(path) as it:
            entries = list(it)
        self.directories_listed += 1
        entries.sort(key=lambda e: e.name)
        return entries

    def _emit(
        self,
        listing: list[os.DirEntry],
        depth: int,
        max_depth: Optional[int],
        stack: list[tuple[str, int, FileEntry]],
    ) -> Iterator[FileEntry]:
        folded = max_depth is not None and depth > max_depth
        subdirs: list[FileEntry] = []

        for dir_entry in listing:
            try:
                st = dir_entry.stat(follow_symlinks=False)
            except OSError as e:
                log.debug("Cannot stat %s: %s", dir_entry.path, e)
                self.failures.append(failure_from(dir_entry.path, e))
                continue

            entry = _entry_from_stat(dir_entry.name, dir_entry.path, st, depth, folded)
            if entry.is_directory:
                subdirs.append(entry)
            else:
                yield entry

        for entry in reversed(subdirs):
            stack.append((entry.path, depth, entry))

    def _mark_cancelled(self, path: str) -> None:
        if not self.cancelled:
            log.info("Walk cancelled at %s", path)
        self.cancelled = True

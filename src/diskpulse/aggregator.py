"""Bottom-up folding of a walk into a DirectoryNode tree."""

import os
from dataclasses import dataclass, field
from typing import Iterable

from diskpulse.models import DirectoryNode, FileEntry


@dataclass(slots=True)
class _PendingNode:
    """Directory still being aggregated."""

    name: str
    path: str
    depth: int
    size_bytes: int = 0
    file_count: int = 0
    dir_count: int = 0
    children: list[DirectoryNode] = field(default_factory=list)

    def finalize(self) -> DirectoryNode:
        self.children.sort(key=lambda n: (-n.size_bytes, n.name))
        return DirectoryNode(
            name=self.name,
            path=self.path,
            size_bytes=self.size_bytes,
            file_count=self.file_count,
            dir_count=self.dir_count,
            children=self.children,
        )


class SizeAggregator:
    """
    Consume a pre-order walk and build the DirectoryNode tree.

    Keeps a stack of open directories, one per depth level. When an entry
    arrives at a depth at or above an open directory, that directory is
    complete: it is popped, finalized and its totals are added to its
    parent. Auxiliary space is O(depth).

    Entries marked ``folded`` are counted into the deepest open directory
    without being materialized.
    """

    def __init__(self, root: str) -> None:
        root = os.path.abspath(root)
        self._root = _PendingNode(name=os.path.basename(root) or root, path=root, depth=0)
        self._stack: list[_PendingNode] = [self._root]
        self._result: DirectoryNode | None = None

    def observe(self, entry: FileEntry) -> None:
        """Fold one walk entry into the tree."""
        if self._result is not None:
            raise RuntimeError("aggregator already finalized")

        while len(self._stack) > 1 and self._stack[-1].depth >= entry.depth:
            self._close_top()

        top = self._stack[-1]
        if entry.is_directory:
            if entry.folded:
                top.dir_count += 1
            else:
                self._stack.append(_PendingNode(name=entry.name, path=entry.path, depth=entry.depth))
        else:
            top.size_bytes += entry.size_bytes
            top.file_count += 1

    def observe_all(self, entries: Iterable[FileEntry]) -> None:
        """Fold every entry of an iterable."""
        for entry in entries:
            self.observe(entry)

    def attach(self, node: DirectoryNode) -> None:
        """
        Attach an already-aggregated subtree as a child of the root.

        Used when a worker aggregated a top-level subdirectory on its own.
        """
        while len(self._stack) > 1:
            self._close_top()
        self._add_child(self._root, node)

    def result(self) -> DirectoryNode:
        """Close all open directories and return the root node."""
        if self._result is None:
            while len(self._stack) > 1:
                self._close_top()
            self._result = self._root.finalize()
        return self._result

    def _close_top(self) -> None:
        node = self._stack.pop().finalize()
        self._add_child(self._stack[-1], node)

    @staticmethod
    def _add_child(parent: _PendingNode, node: DirectoryNode) -> None:
        parent.children.append(node)
        parent.size_bytes += node.size_bytes
        parent.file_count += node.file_count
        parent.dir_count += node.dir_count + 1


def aggregate(entries: Iterable[FileEntry], root: str) -> DirectoryNode:
    """Aggregate a complete walk into its root node."""
    aggregator = SizeAggregator(root)
    aggregator.observe_all(entries)
    return aggregator.result()

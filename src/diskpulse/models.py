"""Data models for diskpulse."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def format_size(size_bytes: int) -> str:
    """Human-readable size string (decimal units like macOS)."""
    if size_bytes >= 1000**3:
        return f"{size_bytes / (1000**3):.1f} GB"
    elif size_bytes >= 1000**2:
        return f"{size_bytes / (1000**2):.1f} MB"
    elif size_bytes >= 1000:
        return f"{size_bytes / 1000:.1f} KB"
    else:
        return f"{size_bytes} B"


class PathKind(str, Enum):
    """Kind of a file as decided by its path and extension."""

    CACHE = "cache"
    LOG = "log"
    TEMP = "temp"
    RESIDUAL = "residual"
    ORDINARY = "ordinary"


class CleanCategory(str, Enum):
    """Closed set of cleanup targets."""

    CACHE = "cache"
    LOGS = "logs"
    TEMP = "temp"
    TRASH = "trash"
    RESIDUAL = "residual"
    DOWNLOADS = "downloads"


class FailureKind(str, Enum):
    """Why a single path could not be scanned or deleted."""

    PERMISSION_DENIED = "permission_denied"
    PATH_NOT_FOUND = "path_not_found"
    IO_ERROR = "io_error"
    OUTSIDE_SCOPE = "outside_scope"


class ScanFailure(BaseModel):
    """Non-fatal failure attached to a single path."""

    path: str = Field(..., description="Path that failed")
    kind: FailureKind = Field(..., description="Failure classification")
    message: str = Field("", description="Underlying error message")


class FileEntry(BaseModel):
    """A file or directory seen during a scan."""

    name: str = Field(..., description="Base name")
    path: str = Field(..., description="Absolute path")
    size_bytes: int = Field(0, ge=0, description="Size in bytes (own size for directories)")
    is_directory: bool = Field(False, description="Whether the entry is a directory")
    modified_at: int = Field(0, description="Last modification time (Unix epoch seconds)")

    # Walk metadata, not part of the serialized result
    depth: int = Field(0, exclude=True, description="Depth below the scan root (children are 1)")
    folded: bool = Field(False, exclude=True, description="Entry lies below the requested max depth")

    @property
    def size_human(self) -> str:
        """Human-readable size string."""
        return format_size(self.size_bytes)


class DirectoryNode(BaseModel):
    """Aggregated directory in a scan tree."""

    name: str = Field(..., description="Directory name")
    path: str = Field(..., description="Absolute path")
    size_bytes: int = Field(0, ge=0, description="Sum of all descendant file sizes")
    file_count: int = Field(0, ge=0, description="Number of descendant files")
    dir_count: int = Field(0, ge=0, description="Number of descendant directories")
    children: list["DirectoryNode"] = Field(default_factory=list, description="Materialized subdirectories")

    @property
    def size_human(self) -> str:
        """Human-readable size string."""
        return format_size(self.size_bytes)


class TypeStat(BaseModel):
    """Count and total size of files sharing an extension."""

    extension: str = Field(..., description="Lowercase extension, or the no-extension bucket")
    count: int = Field(0, ge=0, description="Number of files")
    total_size_bytes: int = Field(0, ge=0, description="Total size in bytes")


class ScanResult(BaseModel):
    """One-level listing of a directory."""

    path: str = Field(..., description="Path that was scanned")
    size_bytes: int = Field(0, ge=0, description="Total size of all items")
    items: list[FileEntry] = Field(default_factory=list, description="Direct children")
    failures: list[ScanFailure] = Field(default_factory=list, description="Paths that could not be read")
    complete: bool = Field(True, description="False when the scan was cancelled")

    @property
    def size_human(self) -> str:
        """Human-readable size string."""
        return format_size(self.size_bytes)


class DeepScanResult(BaseModel):
    """Depth-bounded tree scan with summary statistics."""

    path: str = Field(..., description="Path that was scanned")
    total_size_bytes: int = Field(0, ge=0, description="Total size of all reachable files")
    file_count: int = Field(0, ge=0, description="Number of files")
    dir_count: int = Field(0, ge=0, description="Number of directories")
    tree: list[DirectoryNode] = Field(default_factory=list, description="Top-level directory nodes")
    large_files: list[FileEntry] = Field(default_factory=list, description="Largest files, descending")
    type_stats: list[TypeStat] = Field(default_factory=list, description="Per-extension totals")
    failures: list[ScanFailure] = Field(default_factory=list, description="Paths that could not be read")
    complete: bool = Field(True, description="False when the scan was cancelled")

    @property
    def size_human(self) -> str:
        """Human-readable size string."""
        return format_size(self.total_size_bytes)


class LargeFilesResult(BaseModel):
    """Result of a large-file search."""

    files: list[FileEntry] = Field(default_factory=list, description="Largest files, descending")
    failures: list[ScanFailure] = Field(default_factory=list, description="Paths that could not be read")
    complete: bool = Field(True, description="False when the scan was cancelled")


class CleanItem(BaseModel):
    """A single reclaimable file or bundle."""

    category: CleanCategory = Field(..., description="Category that matched this item")
    path: str = Field(..., description="Absolute path (unique within a plan)")
    size_bytes: int = Field(0, ge=0, description="Reclaimable size in bytes")
    description: str = Field("", description="What this item is")

    @property
    def size_human(self) -> str:
        """Human-readable size string."""
        return format_size(self.size_bytes)


class CleanPlan(BaseModel):
    """Proposed, not-yet-executed set of deletable items."""

    items: list[CleanItem] = Field(default_factory=list, description="Candidate items")
    total_size_bytes: int = Field(0, ge=0, description="Sum of item sizes")
    total_items: int = Field(0, ge=0, description="Number of items")
    failures: list[ScanFailure] = Field(default_factory=list, description="Paths that could not be read")
    complete: bool = Field(True, description="False when the preview was cancelled")

    @classmethod
    def from_items(
        cls,
        items: list[CleanItem],
        failures: Optional[list[ScanFailure]] = None,
        complete: bool = True,
    ) -> "CleanPlan":
        """Build a plan whose totals are derived from its items."""
        return cls(
            items=items,
            total_size_bytes=sum(i.size_bytes for i in items),
            total_items=len(items),
            failures=failures or [],
            complete=complete,
        )

    @property
    def size_human(self) -> str:
        """Human-readable size string."""
        return format_size(self.total_size_bytes)

    def by_category(self) -> dict[CleanCategory, list[CleanItem]]:
        """Items grouped by category, in plan order."""
        groups: dict[CleanCategory, list[CleanItem]] = {}
        for item in self.items:
            groups.setdefault(item.category, []).append(item)
        return groups


class CleanResult(BaseModel):
    """Outcome of deleting a set of paths."""

    success: bool = Field(True, description="True when every requested path was deleted")
    released_size_bytes: int = Field(0, ge=0, description="Bytes released by successful deletions only")
    failed_items: list[str] = Field(default_factory=list, description="Paths that were not deleted")
    failures: list[ScanFailure] = Field(default_factory=list, description="Why each failed path failed")
    deleted_items: int = Field(0, ge=0, description="Number of paths deleted")
    dry_run: bool = Field(False, description="Whether this was a dry run")

    @property
    def size_human(self) -> str:
        """Human-readable size string."""
        return format_size(self.released_size_bytes)

"""Cleanup category definitions and hard-exclusion rules for diskpulse."""

import os
import tempfile
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from diskpulse.config import expand_path
from diskpulse.models import CleanCategory, PathKind


class Location(BaseModel):
    """A well-known location scanned for one category."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Path (supports ~ and $VAR expansion)")
    bundle: bool = Field(
        False,
        description="The location itself is one item instead of each of its children",
    )
    orphans_only: bool = Field(
        False,
        description="Only children that belong to no installed application qualify",
    )


class CategoryRule(BaseModel):
    """Inclusion rule for a cleanup category."""

    model_config = ConfigDict(frozen=True)

    id: CleanCategory = Field(..., description="Category identifier")
    name: str = Field(..., description="Human-readable name")
    label: str = Field(..., description="Prefix for item descriptions")
    locations: tuple[Location, ...] = Field(default=(), description="Where to look")
    kinds: Optional[frozenset[PathKind]] = Field(
        None,
        description="Accepted path kinds for child items; None accepts any",
    )
    min_size_bytes: int = Field(0, description="Minimum item size in bytes")
    skip_empty: bool = Field(False, description="Drop zero-byte items")
    skip_prefixes: tuple[str, ...] = Field(default=(), description="Child names never included")
    description: str = Field("", description="What this category contains")

    def expanded_locations(self) -> list[tuple[str, Location]]:
        """Absolute location paths, de-duplicated by real path."""
        seen: set[str] = set()
        result: list[tuple[str, Location]] = []
        for location in self.locations:
            expanded = os.path.abspath(str(expand_path(location.path)))
            if "$" in expanded:
                continue  # unset environment variable
            real = os.path.realpath(expanded)
            if real in seen:
                continue
            seen.add(real)
            result.append((expanded, location))
        return result


# Entry names that are never items
IGNORED_NAMES = frozenset({".DS_Store", ".localized"})

CATEGORY_RULES: dict[CleanCategory, CategoryRule] = {
    CleanCategory.CACHE: CategoryRule(
        id=CleanCategory.CACHE,
        name="Application Caches",
        label="Cache",
        locations=(
            Location(path="~/Library/Caches"),
            Location(path="~/.cache"),
        ),
        kinds=frozenset({PathKind.CACHE}),
        min_size_bytes=1024 * 1024,
        skip_empty=True,
        skip_prefixes=("com.apple.",),
        description="Per-application cache directories (re-created on demand)",
    ),
    CleanCategory.LOGS: CategoryRule(
        id=CleanCategory.LOGS,
        name="Logs",
        label="Log",
        locations=(Location(path="~/Library/Logs"),),
        kinds=frozenset({PathKind.LOG}),
        min_size_bytes=100 * 1024,
        skip_empty=True,
        description="Application log files and diagnostic reports",
    ),
    CleanCategory.TEMP: CategoryRule(
        id=CleanCategory.TEMP,
        name="Temporary Files",
        label="Temporary file",
        locations=(
            Location(path="/tmp"),
            Location(path="$TMPDIR"),
            Location(path="~/Library/Application Support/CrashReporter", bundle=True),
        ),
        min_size_bytes=1024 * 1024,
        skip_empty=True,
        description="Temporary files and crash reports",
    ),
    CleanCategory.TRASH: CategoryRule(
        id=CleanCategory.TRASH,
        name="Trash",
        label="Trash",
        locations=(
            Location(path="~/.Trash"),
            Location(path="~/.local/share/Trash/files"),
            Location(path="~/.local/share/Trash/info"),
        ),
        description="Files already moved to the trash",
    ),
    CleanCategory.RESIDUAL: CategoryRule(
        id=CleanCategory.RESIDUAL,
        name="Application Residuals",
        label="Residual",
        locations=(
            Location(path="~/Library/Saved Application State"),
            Location(path="~/Library/Application Support", orphans_only=True),
        ),
        skip_empty=True,
        skip_prefixes=("com.apple.",),
        description="Data left behind by applications that are no longer installed",
    ),
    CleanCategory.DOWNLOADS: CategoryRule(
        id=CleanCategory.DOWNLOADS,
        name="Downloads",
        label="Download",
        locations=(Location(path="~/Downloads"),),
        description="Files in the Downloads folder",
    ),
}


# =============================================================================
# Hard exclusions (process-wide, read-only)
# =============================================================================

# Never delete these or anything below them
SYSTEM_PATHS = (
    "/System",
    "/Library",
    "/Applications",
    "/bin",
    "/sbin",
    "/usr",
    "/lib",
    "/lib64",
    "/etc",
    "/boot",
    "/dev",
    "/proc",
    "/sys",
    "/opt",
    "/private/etc",
    "/private/var/db",
    "/var/lib",
    "/var/db",
)

# Never delete these folders themselves (their contents may qualify)
BLOCKED_FOLDERS = (
    "~",
    "~/Documents",
    "~/Desktop",
    "~/Downloads",
    "~/Pictures",
    "~/Music",
    "~/Movies",
    "~/Library",
    "~/.Trash",
    "/tmp",
    "/private/tmp",
    "/var/tmp",
)

# User-writable areas; nothing outside them is ever deletable
WRITABLE_ROOTS = (
    "~",
    "/tmp",
    "/private/tmp",
    "/var/tmp",
    "/private/var/folders",
    "$TMPDIR",
)

# Where installed applications are looked up for orphan detection
APPLICATION_DIRS = (
    "/Applications",
    "~/Applications",
    "/usr/share/applications",
    "~/.local/share/applications",
)


def get_rule(category_id: str) -> CategoryRule | None:
    """Get a category rule by ID."""
    try:
        return CATEGORY_RULES[CleanCategory(category_id)]
    except ValueError:
        return None


def get_all_rules() -> list[CategoryRule]:
    """All category rules in canonical order."""
    return list(CATEGORY_RULES.values())


def _is_within(path: str, root: str) -> bool:
    root = root.rstrip("/")
    return path == root or path.startswith(root + "/")


def is_system_path(path: str) -> bool:
    """Whether path is a system-critical location or inside one."""
    return any(_is_within(path, system) for system in SYSTEM_PATHS)


def is_blocked_folder(path: str) -> bool:
    """Whether path is one of the folders that must never be removed wholesale."""
    path = path.rstrip("/") or "/"
    for blocked in BLOCKED_FOLDERS:
        if path == os.path.abspath(str(expand_path(blocked))):
            return True
    return False


def writable_roots() -> list[str]:
    """Absolute user-writable roots for the current user."""
    roots = [os.path.abspath(str(expand_path(r))) for r in WRITABLE_ROOTS]
    roots.append(tempfile.gettempdir())
    return [r for r in roots if "$" not in r]


def resolve_parent(path: str) -> str:
    """Path with every symlink above its final component resolved.

    The final component is kept as is, since deleting a symlink removes
    the link and never its target.
    """
    return os.path.join(os.path.realpath(os.path.dirname(path)), os.path.basename(path))


def _is_strictly_within(path: str, roots: list[str]) -> bool:
    for root in roots:
        if _is_within(path, root) and path.rstrip("/") != root.rstrip("/"):
            return True
    return False


def is_user_writable_scope(path: str) -> bool:
    """Whether path lies inside an area the current user owns.

    Both the given path and its parent-resolved form must qualify, so a
    symlinked parent cannot lead outside the user's areas.
    """
    roots = writable_roots()
    roots += [os.path.realpath(r) for r in roots]
    return _is_strictly_within(path, roots) and _is_strictly_within(resolve_parent(path), roots)


def normalize_app_name(name: str) -> str:
    """Lowercase alphanumeric core of an application or bundle name."""
    base = name
    for suffix in (".app", ".desktop", ".savedState"):
        if base.endswith(suffix):
            base = base[: -len(suffix)]
    if base.count(".") >= 2:
        # Reverse-DNS bundle id: com.vendor.Product
        base = base.rsplit(".", 1)[-1]
    return "".join(c for c in base.lower() if c.isalnum())


def installed_app_names() -> frozenset[str]:
    """Normalized names of installed applications."""
    names: set[str] = set()
    for app_dir in APPLICATION_DIRS:
        directory = expand_path(app_dir)
        try:
            with os.scandir(directory) as entries:
                for entry in entries:
                    if entry.name.endswith((".app", ".desktop")):
                        names.add(normalize_app_name(entry.name))
        except OSError:
            continue
    names.discard("")
    return frozenset(names)

"""Path classification for cleanup candidates.

Pure functions only: nothing here touches the filesystem.
"""

import posixpath

from diskpulse.models import PathKind

# Directory names (lowercase) that mark everything below them
CACHE_DIR_NAMES = frozenset(
    {
        "caches",
        ".cache",
        "cache",
        "code cache",
        "gpucache",
        "shadercache",
        "__pycache__",
    }
)

LOG_DIR_NAMES = frozenset({"logs", "log", "diagnosticreports"})

TEMP_DIR_NAMES = frozenset({"tmp", "temp", "temporaryitems", "crashreporter"})

RESIDUAL_DIR_NAMES = frozenset({"saved application state", "application support", "containers"})

LOG_EXTENSIONS = frozenset({"log", "crash", "ips", "diag", "spin", "hang"})

TEMP_EXTENSIONS = frozenset({"tmp", "temp", "swp", "swo", "part", "crdownload", "download"})

CACHE_EXTENSIONS = frozenset({"cache", "pyc", "pyo"})

NO_EXTENSION = "<none>"


def normalized_extension(name: str) -> str:
    """
    Lowercase final dot-suffix of a file name.

    Names without a dot, with an empty suffix, or whose only dot is
    leading (dotfiles) map to NO_EXTENSION.
    """
    _, ext = posixpath.splitext(name)
    ext = ext[1:].lower()
    return ext or NO_EXTENSION


def _is_rotated_log(name: str) -> bool:
    # system.log.0, app.log.1.gz
    parts = name.lower().split(".")
    return "log" in parts[1:-1] and (parts[-1].isdigit() or parts[-1] in ("gz", "bz2", "xz"))


def classify(path: str) -> PathKind:
    """
    Decide the kind of a file from its path and extension.

    Extension rules win over directory rules, so a .log file inside a
    cache directory is a log. Directory rules apply to ancestors only,
    nearest ancestor first.
    """
    parts = [p for p in path.split("/") if p]
    if not parts:
        return PathKind.ORDINARY

    name = parts[-1]
    ext = normalized_extension(name)
    if ext in LOG_EXTENSIONS or _is_rotated_log(name):
        return PathKind.LOG
    if ext in TEMP_EXTENSIONS or name.startswith("~$"):
        return PathKind.TEMP
    if ext in CACHE_EXTENSIONS:
        return PathKind.CACHE

    for part in reversed(parts[:-1]):
        lowered = part.lower()
        if lowered in CACHE_DIR_NAMES:
            return PathKind.CACHE
        if lowered in LOG_DIR_NAMES:
            return PathKind.LOG
        if lowered in TEMP_DIR_NAMES:
            return PathKind.TEMP
        if lowered in RESIDUAL_DIR_NAMES:
            return PathKind.RESIDUAL

    return PathKind.ORDINARY

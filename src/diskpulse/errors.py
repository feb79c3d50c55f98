"""Exceptions and failure classification for diskpulse."""

import errno

from diskpulse.models import FailureKind, ScanFailure


class DiskPulseError(Exception):
    """Base class for all diskpulse errors."""


class InvalidRequestError(DiskPulseError):
    """A request carried invalid arguments."""


class ScanRootError(DiskPulseError):
    """The scan root itself could not be opened."""

    def __init__(self, path: str, message: str = "") -> None:
        self.path = path
        super().__init__(message or path)


class PathNotFoundError(ScanRootError):
    """The scan root does not exist."""


class PathPermissionError(ScanRootError):
    """The scan root is not readable."""


class RootNotDirectoryError(ScanRootError):
    """The scan root is not a directory."""


def failure_kind(exc: OSError) -> FailureKind:
    """Map an OSError to a failure kind."""
    if isinstance(exc, PermissionError) or exc.errno in (errno.EACCES, errno.EPERM):
        return FailureKind.PERMISSION_DENIED
    if isinstance(exc, FileNotFoundError) or exc.errno == errno.ENOENT:
        return FailureKind.PATH_NOT_FOUND
    return FailureKind.IO_ERROR


def failure_from(path: str, exc: OSError) -> ScanFailure:
    """Build a ScanFailure record for an OSError raised on path."""
    return ScanFailure(path=path, kind=failure_kind(exc), message=exc.strerror or str(exc))


def root_error(path: str, exc: OSError) -> ScanRootError:
    """Translate an OSError raised while opening a scan root."""
    kind = failure_kind(exc)
    if kind == FailureKind.PERMISSION_DENIED:
        return PathPermissionError(path, f"Permission denied: {path}")
    if kind == FailureKind.PATH_NOT_FOUND:
        return PathNotFoundError(path, f"Path does not exist: {path}")
    if exc.errno == errno.ENOTDIR:
        return RootNotDirectoryError(path, f"Path is not a directory: {path}")
    return ScanRootError(path, f"Cannot read {path}: {exc}")

"""Clean plan preview and execution with safety checks for diskpulse."""

import logging
import os
import shutil
import stat
import subprocess
from dataclasses import dataclass, field
from typing import Iterable, Optional

from diskpulse.aggregator import SizeAggregator
from diskpulse.categories import (
    CATEGORY_RULES,
    IGNORED_NAMES,
    CategoryRule,
    Location,
    installed_app_names,
    is_blocked_folder,
    is_system_path,
    is_user_writable_scope,
    normalize_app_name,
    resolve_parent,
)
from diskpulse.classifier import classify
from diskpulse.config import Settings, load_settings
from diskpulse.errors import InvalidRequestError, ScanRootError, failure_from
from diskpulse.models import (
    CleanCategory,
    CleanItem,
    CleanPlan,
    CleanResult,
    FailureKind,
    PathKind,
    ScanFailure,
)
from diskpulse.scanner import measure
from diskpulse.walker import CancelToken, DirectoryWalker

log = logging.getLogger(__name__)

# Kinds whose entries are named after the application that owns them
APP_DATA_KINDS = frozenset({PathKind.CACHE, PathKind.RESIDUAL})

APP_SUFFIXES = (".app", ".desktop", ".savedState")


def _is_app_shaped(name: str) -> bool:
    # Slack.app, firefox.desktop, com.vendor.Product
    return name.endswith(APP_SUFFIXES) or (name.count(".") >= 2 and not name.startswith("."))


@dataclass(frozen=True)
class RunningApps:
    """Applications running at the time of a request."""

    names: frozenset[str] = field(default_factory=frozenset)
    bundles: frozenset[str] = field(default_factory=frozenset)

    def owns(self, path: str) -> bool:
        """
        Whether path belongs to a running application.

        Names are only compared for application-shaped entries (bundles,
        desktop files, bundle ids) and for cache or residual data, so an
        ordinary file that happens to share a process name is not held.
        """
        for bundle in self.bundles:
            if path == bundle or path.startswith(bundle + "/"):
                return True
        name = os.path.basename(path)
        if not (_is_app_shaped(name) or classify(path) in APP_DATA_KINDS):
            return False
        return normalize_app_name(name) in self.names


def detect_running_apps() -> RunningApps:
    """Snapshot running application bundles and executable names via ``ps``."""
    try:
        result = subprocess.run(
            ["ps", "-axo", "comm="],
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        log.warning("Cannot list running processes: %s", e)
        return RunningApps()

    names: set[str] = set()
    bundles: set[str] = set()
    for line in result.stdout.splitlines():
        command = line.strip()
        if not command:
            continue
        marker = command.find(".app/")
        if marker != -1:
            bundle = command[: marker + len(".app")]
            bundles.add(bundle)
            names.add(normalize_app_name(os.path.basename(bundle)))
        else:
            names.add(normalize_app_name(os.path.basename(command)))
    names.discard("")
    return RunningApps(names=frozenset(names), bundles=frozenset(bundles))


def parse_categories(types: Iterable[str]) -> list[CleanCategory]:
    """
    Validate category ids, dropping duplicates.

    Raises:
        InvalidRequestError: on an unknown category id
    """
    categories: list[CleanCategory] = []
    for type_id in types:
        try:
            category = CleanCategory(type_id)
        except ValueError:
            raise InvalidRequestError(f"Unknown category: {type_id}") from None
        if category not in categories:
            categories.append(category)
    return categories


def _owned_by_other_user(path: str) -> bool:
    # Shared sticky directories like /tmp only let owners delete
    try:
        parent = os.stat(os.path.dirname(path))
        if not parent.st_mode & stat.S_ISVTX:
            return False
        return os.lstat(path).st_uid != os.getuid()
    except OSError:
        return False


def delete_path(path: str) -> None:
    """
    Remove a file, symlink or directory tree.

    Raises:
        OSError: if anything could not be removed
    """
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        os.unlink(path)


class CleanPlanBuilder:
    """
    Build clean plans over well-known locations and execute selections.

    A builder snapshots settings, running applications and installed
    applications once, so a preview and the checks it performs agree.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        running: Optional[RunningApps] = None,
        installed: Optional[frozenset[str]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> None:
        self.settings = settings or load_settings()
        self._running = running
        self._installed = installed
        self.cancel = cancel or CancelToken()

    @property
    def running(self) -> RunningApps:
        if self._running is None:
            self._running = detect_running_apps()
        return self._running

    @property
    def installed(self) -> frozenset[str]:
        if self._installed is None:
            self._installed = installed_app_names()
        return self._installed

    # -------------------------------------------------------------------------
    # Safety
    # -------------------------------------------------------------------------

    def exclusion_reason(self, path: str) -> Optional[str]:
        """Why path must never be deleted, or None if no hard exclusion applies."""
        real = resolve_parent(path)
        if is_system_path(path) or is_system_path(real):
            return "system path"
        if is_blocked_folder(path) or is_blocked_folder(real):
            return "protected folder"
        if self.settings.is_protected(path) or self.settings.is_protected(real):
            return "protected by configuration"
        if not is_user_writable_scope(path):
            return "outside user-writable scope"
        if _owned_by_other_user(path):
            return "owned by another user"
        if self.running.owns(path):
            return "application is running"
        return None

    def in_deletable_scope(self, path: str) -> bool:
        """
        Whether path is an item position of some category location.

        The parent-resolved path must be one as well, so a symlinked
        directory inside a location cannot lead somewhere else.
        """
        return self._in_location(path) and self._in_location(resolve_parent(path))

    def _in_location(self, path: str) -> bool:
        for rule in CATEGORY_RULES.values():
            for root, location in rule.expanded_locations():
                for candidate_root in {root, os.path.realpath(root)}:
                    if location.bundle:
                        if path == candidate_root:
                            return True
                    elif path.startswith(candidate_root.rstrip("/") + "/"):
                        return True
        return False

    # -------------------------------------------------------------------------
    # Preview
    # -------------------------------------------------------------------------

    def preview(self, categories: Iterable[CleanCategory]) -> CleanPlan:
        """
        Scan the locations of the requested categories into a plan.

        A path matched by more than one category keeps the first, in
        canonical category order. Items are ordered by size, then path.
        """
        requested = set(categories)
        items: dict[str, CleanItem] = {}
        failures: list[ScanFailure] = []

        for category, rule in CATEGORY_RULES.items():
            if category not in requested:
                continue
            for root, location in rule.expanded_locations():
                if self.cancel.cancelled:
                    break
                for item in self._scan_location(rule, root, location, failures):
                    items.setdefault(item.path, item)

        ordered = sorted(items.values(), key=lambda i: (-i.size_bytes, i.path))
        plan = CleanPlan.from_items(ordered, failures=failures, complete=not self.cancel.cancelled)
        log.info("Clean plan: %d items, %d bytes", plan.total_items, plan.total_size_bytes)
        return plan

    def _scan_location(
        self,
        rule: CategoryRule,
        root: str,
        location: Location,
        failures: list[ScanFailure],
    ) -> list[CleanItem]:
        if not os.path.lexists(root):
            return []
        if location.bundle:
            return self._bundle_item(rule, root, failures)

        walker = DirectoryWalker(self.cancel)
        aggregator = SizeAggregator(root)
        candidates: list[tuple[str, str, int]] = []
        try:
            for entry in walker.walk(root, max_depth=1):
                aggregator.observe(entry)
                if entry.depth == 1 and not entry.is_directory:
                    candidates.append((entry.name, entry.path, entry.size_bytes))
        except ScanRootError as e:
            log.debug("Cannot scan %s: %s", root, e)
            if isinstance(e.__cause__, OSError):
                failures.append(failure_from(root, e.__cause__))
            return []
        failures.extend(walker.failures)

        for node in aggregator.result().children:
            candidates.append((node.name, node.path, node.size_bytes))

        items = []
        for name, path, size in candidates:
            if self._qualifies(rule, location, name, path, size):
                items.append(
                    CleanItem(
                        category=rule.id,
                        path=path,
                        size_bytes=size,
                        description=f"{rule.label}: {name}",
                    )
                )
        return items

    def _bundle_item(self, rule: CategoryRule, path: str, failures: list[ScanFailure]) -> list[CleanItem]:
        try:
            size, measure_failures = measure(path, self.cancel)
        except OSError as e:
            failures.append(failure_from(path, e))
            return []
        failures.extend(measure_failures)

        if rule.skip_empty and size == 0:
            return []
        reason = self.exclusion_reason(path)
        if reason:
            log.debug("Excluding %s: %s", path, reason)
            return []
        return [
            CleanItem(
                category=rule.id,
                path=path,
                size_bytes=size,
                description=f"{rule.label}: {os.path.basename(path)}",
            )
        ]

    def _qualifies(self, rule: CategoryRule, location: Location, name: str, path: str, size: int) -> bool:
        if name in IGNORED_NAMES or name.startswith(rule.skip_prefixes):
            return False
        if rule.kinds is not None and classify(path) not in rule.kinds:
            return False
        if location.orphans_only and normalize_app_name(name) in self.installed:
            return False
        if size < rule.min_size_bytes or (rule.skip_empty and size == 0):
            return False
        reason = self.exclusion_reason(path)
        if reason:
            log.debug("Excluding %s: %s", path, reason)
            return False
        return True

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def execute(self, paths: Iterable[str], dry_run: bool = False) -> CleanResult:
        """
        Delete caller-selected paths, each independently.

        Every path is re-checked against the deletable scope and re-measured
        right before deletion; only successful deletions count toward the
        released size.
        """
        released = 0
        deleted = 0
        failures: list[ScanFailure] = []
        seen: set[str] = set()

        for raw in paths:
            if raw in seen:
                continue
            seen.add(raw)

            failure = self._check_deletable(raw)
            if failure is not None:
                log.warning("Refusing to delete %s: %s", raw, failure.message)
                failures.append(failure)
                continue

            path = os.path.normpath(raw)
            try:
                size, _ = measure(path)
                if not dry_run:
                    delete_path(path)
            except OSError as e:
                log.warning("Failed to delete %s: %s", path, e)
                failures.append(failure_from(raw, e))
                continue

            log.info("%s %s (%d bytes)", "Would delete" if dry_run else "Deleted", path, size)
            released += size
            deleted += 1

        return CleanResult(
            success=not failures,
            released_size_bytes=released,
            failed_items=[f.path for f in failures],
            failures=failures,
            deleted_items=deleted,
            dry_run=dry_run,
        )

    def _check_deletable(self, raw: str) -> Optional[ScanFailure]:
        if not os.path.isabs(raw):
            return ScanFailure(path=raw, kind=FailureKind.OUTSIDE_SCOPE, message="not an absolute path")
        path = os.path.normpath(raw)
        reason = self.exclusion_reason(path)
        if reason:
            return ScanFailure(path=raw, kind=FailureKind.OUTSIDE_SCOPE, message=reason)
        if not self.in_deletable_scope(path):
            return ScanFailure(path=raw, kind=FailureKind.OUTSIDE_SCOPE, message="not inside a cleanable location")
        if not os.path.lexists(path):
            return ScanFailure(path=raw, kind=FailureKind.PATH_NOT_FOUND, message="path does not exist")
        return None


def preview_clean_plan(
    types: Iterable[str],
    settings: Optional[Settings] = None,
    cancel: Optional[CancelToken] = None,
) -> CleanPlan:
    """
    Preview reclaimable items for the given category ids.

    Raises:
        InvalidRequestError: on an unknown category id
    """
    categories = parse_categories(types)
    return CleanPlanBuilder(settings=settings, cancel=cancel).preview(categories)


def execute_clean(
    paths: Iterable[str],
    dry_run: bool = False,
    settings: Optional[Settings] = None,
) -> CleanResult:
    """Delete previously previewed paths and report what was released."""
    return CleanPlanBuilder(settings=settings).execute(paths, dry_run=dry_run)


def empty_trash(dry_run: bool = False, settings: Optional[Settings] = None) -> CleanResult:
    """Delete everything currently in the trash."""
    builder = CleanPlanBuilder(settings=settings)
    plan = builder.preview([CleanCategory.TRASH])
    return builder.execute([item.path for item in plan.items], dry_run=dry_run)
